# school_library/services/mail_service.py
from __future__ import annotations

from flask import current_app
from flask_mail import Message

from school_library.extensions import mail


class MailService:
    @staticmethod
    def send_email(to_email: str, subject: str, body: str) -> tuple[bool, str | None]:
        """
        return: (success, error_text)
        """
        try:
            msg = Message(subject=subject, recipients=[to_email], body=body, html=MailService.render_html(body))
            mail.send(msg)
            return True, None
        except Exception as e:
            current_app.logger.warning(f"[MailService] Mail could not be sent to {to_email}: {e}")
            return False, str(e)

    @staticmethod
    def render_html(body: str) -> str:
        return (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            '<h2 style="color: #1e40af;">School Library</h2>'
            f"<p>{body.replace(chr(10), '<br>')}</p>"
            "<hr>"
            '<p style="color: #6b7280; font-size: 12px;">'
            "Reply to this email or visit the library for assistance."
            "</p></div>"
        )
