from flask import current_app, has_request_context, request

from school_library.extensions import db
from school_library.models.audit_log import AuditLog
from school_library.utils.dates import utcnow


def client_ip() -> str | None:
    if has_request_context():
        return request.remote_addr
    return None


class AuditService:
    @staticmethod
    def record(actor_id, action: str, entity_type=None, entity_id=None, details=None, ip_address=None) -> bool:
        # best effort: an audit failure never reaches the caller
        try:
            db.session.add(
                AuditLog(
                    user_id=actor_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details=details,
                    ip_address=ip_address,
                    created_at=utcnow(),
                )
            )
            db.session.commit()
            return True
        except Exception as ex:
            db.session.rollback()
            current_app.logger.error(f"[audit] {action} {entity_type}#{entity_id} failed: {ex}")
            return False
