from flask_jwt_extended import get_jwt_identity

from school_library.errors import ForbiddenError, NotFoundError
from school_library.repositories.user_repo import UserRepo


def current_member():
    """The member behind the JWT identity; role and active flag come from the row."""
    identity = get_jwt_identity()
    user = UserRepo.get_by_id(int(identity)) if identity is not None else None
    if user is None:
        raise NotFoundError("User not found")
    if not user.is_active:
        raise ForbiddenError("Member account is deactivated")
    return user
