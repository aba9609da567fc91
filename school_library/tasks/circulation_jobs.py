# school_library/tasks/circulation_jobs.py
from datetime import datetime, timedelta

from flask import current_app

from school_library.extensions import db
from school_library.repositories.loan_repo import LoanRepo
from school_library.repositories.notification_repo import NotificationRepo
from school_library.services.fine_calculator import compute_overdue_fine
from school_library.services.hold_queue import HoldQueue
from school_library.services.notification_service import (
    NotificationService,
    DUE_REMINDER,
    OVERDUE_NOTICE,
)
from school_library.services.policy import CirculationPolicy
from school_library.utils.dates import utcnow

NOTICE_WINDOW = timedelta(days=1)


def _fmt_day(moment: datetime) -> str:
    return moment.strftime("%a %b %d %Y")


def send_due_reminders(now: datetime | None = None) -> int:
    """
    Active loans due within DUE_REMINDER_DAYS get one reminder per day at most.
    Returns the number of reminders sent.
    """
    now = now or utcnow()
    policy = CirculationPolicy.current()
    limit = now + timedelta(days=policy.due_reminder_days)

    sent = 0
    for loan in LoanRepo.find_due_between(now, limit):
        if NotificationRepo.sent_within(loan.id, DUE_REMINDER, now, NOTICE_WINDOW):
            continue
        try:
            title = loan.book.title if loan.book else "your book"
            due_day = _fmt_day(loan.due_date)
            row = NotificationService.notify(
                loan.user_id,
                DUE_REMINDER,
                f'Reminder: "{title}" is due {due_day}',
                f'This is a reminder that "{title}" is due on {due_day}.\n\n'
                "Please return or renew it on time to avoid fines.",
                reference_id=loan.id,
                now=now,
            )
            if row is not None:
                sent += 1
        except Exception as ex:
            current_app.logger.exception(f"[jobs] due reminder for loan={loan.id} failed: {ex}")

    if sent:
        current_app.logger.info(f"[jobs] Sent {sent} due date reminders")
    return sent


def sweep_overdue(now: datetime | None = None) -> int:
    """
    active -> overdue for loans past their due time, then one overdue notice
    per loan per day with the fine so far. Returns the number of loans flipped.
    """
    now = now or utcnow()
    policy = CirculationPolicy.current()

    try:
        updated = LoanRepo.mark_overdue(now)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    noticed = 0
    for loan in LoanRepo.list_overdue():
        if NotificationRepo.sent_within(loan.id, OVERDUE_NOTICE, now, NOTICE_WINDOW):
            continue
        try:
            title = loan.book.title if loan.book else "your book"
            days, estimate = compute_overdue_fine(loan.due_date, now, policy.fine_rate_per_day)
            row = NotificationService.notify(
                loan.user_id,
                OVERDUE_NOTICE,
                f'Overdue: "{title}" - {days} days overdue',
                f'"{title}" was due on {_fmt_day(loan.due_date)} and is now {days} day(s) overdue.\n\n'
                f"Estimated fine: ${estimate:.2f}\n\n"
                "Please return the book immediately.",
                reference_id=loan.id,
                now=now,
            )
            if row is not None:
                noticed += 1
        except Exception as ex:
            current_app.logger.exception(f"[jobs] overdue notice for loan={loan.id} failed: {ex}")

    current_app.logger.info(f"[jobs] overdue updated={updated} notices={noticed}")
    return updated


def expire_holds(now: datetime | None = None) -> int:
    expired = HoldQueue.expire_ready_holds(now)
    if expired:
        current_app.logger.info(f"[jobs] Expired {len(expired)} holds")
    return len(expired)


def run_daily_jobs(app, now: datetime | None = None) -> dict:
    """
    Reminders, overdue sweep and hold expiry, in that order. One job failing
    does not stop the others.
    """
    results = {}
    with app.app_context():
        for name, job in (
            ("dueReminders", send_due_reminders),
            ("overdueUpdated", sweep_overdue),
            ("holdsExpired", expire_holds),
        ):
            try:
                results[name] = job(now)
            except Exception as ex:
                db.session.rollback()
                current_app.logger.exception(f"[jobs] {name} failed: {ex}")
                results[name] = None
    return results
