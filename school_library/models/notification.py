# school_library/models/notification.py
from school_library.utils.dates import utcnow
from school_library.extensions import db

NOTIF_PENDING = "pending"
NOTIF_SENT = "sent"
NOTIF_FAILED = "failed"


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # checkout_confirmation, due_reminder, overdue_notice, hold_ready ...
    type = db.Column(db.String(50), nullable=False, index=True)
    subject = db.Column(db.String(255), nullable=False)
    body = db.Column(db.String(2000), nullable=False)

    # loan id or reservation id, depending on type
    reference_id = db.Column(db.Integer, nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default=NOTIF_PENDING)
    error_message = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    sent_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User", backref="notifications")
