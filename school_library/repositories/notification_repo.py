from datetime import datetime, timedelta

from school_library.models.notification import Notification
from school_library.extensions import db

class NotificationRepo:
    @staticmethod
    def sent_within(reference_id: int, notif_type: str, now: datetime, window: timedelta = timedelta(days=1)) -> bool:
        """True if a notification of this type for this reference exists inside the window."""
        return (
            Notification.query.filter(
                Notification.reference_id == reference_id,
                Notification.type == notif_type,
                Notification.created_at > now - window,
            ).first()
            is not None
        )

    @staticmethod
    def log(entry: Notification):
        db.session.add(entry)
        db.session.commit()
        return entry

    @staticmethod
    def commit():
        db.session.commit()

    @staticmethod
    def list_by_user(user_id: int):
        return Notification.query.filter_by(user_id=user_id).order_by(Notification.id.desc()).all()
