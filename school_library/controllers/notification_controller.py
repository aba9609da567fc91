from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from school_library.repositories.notification_repo import NotificationRepo
from school_library.utils.auth import current_member

notif_bp = Blueprint("notifications", __name__)

@notif_bp.get("/my")
@jwt_required()
def my_notifications():
    me = current_member()
    return jsonify({"success": True, "data": [
        {
            "id": n.id,
            "type": n.type,
            "subject": n.subject,
            "body": n.body,
            "reference_id": n.reference_id,
            "status": n.status,
            "created_at": n.created_at.isoformat(),
            "sent_at": n.sent_at.isoformat() if n.sent_at else None,
        } for n in NotificationRepo.list_by_user(me.id)
    ]})
