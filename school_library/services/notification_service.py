from __future__ import annotations

from datetime import datetime

from flask import current_app

from school_library.extensions import db
from school_library.models.notification import Notification, NOTIF_PENDING, NOTIF_SENT, NOTIF_FAILED
from school_library.repositories.notification_repo import NotificationRepo
from school_library.repositories.user_repo import UserRepo
from school_library.services.mail_service import MailService
from school_library.utils.dates import utcnow

CHECKOUT_CONFIRMATION = "checkout_confirmation"
RETURN_CONFIRMATION = "return_confirmation"
RENEWAL_CONFIRMED = "renewal_confirmed"
HOLD_PLACED = "hold_placed"
HOLD_READY = "hold_ready"
HOLD_EXPIRED = "hold_expired"
DUE_REMINDER = "due_reminder"
OVERDUE_NOTICE = "overdue_notice"


class NotificationService:
    @staticmethod
    def notify(
        user_id: int,
        notif_type: str,
        subject: str,
        body: str,
        reference_id: int | None = None,
        now: datetime | None = None,
    ) -> Notification | None:
        """Persist a notice and mail it when the member wants email.

        Never raises: a failed notice is logged and reported as None so the
        operation that triggered it is unaffected.
        """
        now = now or utcnow()
        try:
            row = Notification(
                user_id=user_id,
                type=notif_type,
                subject=subject,
                body=body,
                reference_id=reference_id,
                status=NOTIF_PENDING,
                created_at=now,
            )
            NotificationRepo.log(row)

            user = UserRepo.get_by_id(user_id)
            wants_mail = bool(user and user.email and user.email_notifications)

            if wants_mail and current_app.config.get("MAIL_ENABLED"):
                ok, err = MailService.send_email(user.email, subject, body)
                row.status = NOTIF_SENT if ok else NOTIF_FAILED
                row.error_message = err
                row.sent_at = now if ok else None
            else:
                row.status = NOTIF_SENT
                row.sent_at = now

            NotificationRepo.commit()
            return row
        except Exception as ex:
            db.session.rollback()
            current_app.logger.exception(f"[notify] {notif_type} for user={user_id} failed: {ex}")
            return None
