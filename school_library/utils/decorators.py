from functools import wraps

from flask_jwt_extended import verify_jwt_in_request

from school_library.errors import ForbiddenError
from school_library.models.user import LIBRARY_STAFF_ROLES, ROLE_ADMIN
from school_library.utils.auth import current_member


def role_required(*roles):
    """Allow the view only for members whose stored role is one of ``roles``."""
    allowed = set(roles)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            member = current_member()
            if member.role not in allowed:
                raise ForbiddenError(
                    f"Requires role: {', '.join(sorted(allowed))}",
                    role=member.role,
                )
            return fn(*args, **kwargs)
        return wrapper
    return decorator


staff_required = role_required(*LIBRARY_STAFF_ROLES)
admin_required = role_required(ROLE_ADMIN)
