from datetime import datetime, timedelta

from school_library.extensions import db
from school_library.models.loan import Loan
from school_library.models.notification import Notification
from school_library.models.reservation import Reservation
from school_library.services.circulation_service import CirculationService
from school_library.services.notification_service import (
    NotificationService,
    DUE_REMINDER,
    OVERDUE_NOTICE,
)
from school_library.tasks import circulation_jobs
from school_library.tasks.circulation_jobs import (
    expire_holds,
    run_daily_jobs,
    send_due_reminders,
    sweep_overdue,
)

# loans checked out at t0 fall due on 2024-03-18 23:59:59
DUE = datetime(2024, 3, 18, 23, 59, 59)


def _borrow(make_user, make_book, t0):
    return CirculationService.checkout(make_user().id, book_id=make_book().id, now=t0)


def test_reminder_sent_once_inside_window(make_user, make_book, t0):
    loan = _borrow(make_user, make_book, t0)
    _borrow(make_user, make_book, t0 - timedelta(days=10))  # already past due
    now = datetime(2024, 3, 17, 8, 0)

    assert send_due_reminders(now) == 1
    assert send_due_reminders(now + timedelta(hours=3)) == 0

    notices = Notification.query.filter_by(type=DUE_REMINDER).all()
    assert [n.reference_id for n in notices] == [loan.id]
    assert "due" in notices[0].subject


def test_no_reminder_for_distant_due_date(make_user, make_book, t0):
    _borrow(make_user, make_book, t0)

    assert send_due_reminders(t0) == 0


def test_reminder_failure_does_not_stop_the_batch(make_user, make_book, t0, monkeypatch):
    _borrow(make_user, make_book, t0)
    _borrow(make_user, make_book, t0)
    real_notify = NotificationService.notify
    calls = []

    def flaky(*args, **kwargs):
        calls.append(args[0])
        if len(calls) == 1:
            raise RuntimeError("mail relay down")
        return real_notify(*args, **kwargs)

    monkeypatch.setattr(NotificationService, "notify", staticmethod(flaky))

    assert send_due_reminders(datetime(2024, 3, 17, 8, 0)) == 1
    assert len(calls) == 2


def test_overdue_sweep_flips_and_notices_daily(make_user, make_book, t0):
    loan = _borrow(make_user, make_book, t0)
    returned = _borrow(make_user, make_book, t0)
    CirculationService.return_book(loan_id=returned.id, now=t0)
    now = DUE + timedelta(days=1)

    assert sweep_overdue(now) == 1
    assert db.session.get(Loan, loan.id).status == "overdue"
    assert db.session.get(Loan, returned.id).status == "returned"

    notice = Notification.query.filter_by(type=OVERDUE_NOTICE).one()
    assert notice.reference_id == loan.id
    assert "$0.25" in notice.body

    assert sweep_overdue(now + timedelta(hours=1)) == 0
    assert Notification.query.filter_by(type=OVERDUE_NOTICE).count() == 1

    sweep_overdue(now + timedelta(days=1, seconds=1))
    assert Notification.query.filter_by(type=OVERDUE_NOTICE).count() == 2


def test_loan_on_its_due_day_is_not_overdue(make_user, make_book, t0):
    loan = _borrow(make_user, make_book, t0)

    assert sweep_overdue(DUE) == 0
    assert db.session.get(Loan, loan.id).status == "active"


def test_expire_holds_job(make_user, make_book, copies_of, t0):
    book = make_book()
    copy = copies_of(book)[0]
    CirculationService.checkout(make_user().id, copy_barcode=copy.barcode, now=t0)
    r = CirculationService.place_reservation(book.id, make_user().id, now=t0)
    CirculationService.return_book(copy_barcode=copy.barcode, now=t0)

    assert expire_holds(t0 + timedelta(days=4)) == 1
    assert db.session.get(Reservation, r.id).status == "expired"
    assert expire_holds(t0 + timedelta(days=4)) == 0


def test_daily_run_reports_each_job(app, make_user, make_book, t0):
    _borrow(make_user, make_book, t0)

    results = run_daily_jobs(app, now=DUE + timedelta(hours=1))

    assert results == {"dueReminders": 0, "overdueUpdated": 1, "holdsExpired": 0}


def test_daily_run_survives_a_failing_job(app, monkeypatch, t0):
    def broken(now=None):
        raise RuntimeError("database went away")

    monkeypatch.setattr(circulation_jobs, "sweep_overdue", broken)

    results = run_daily_jobs(app, now=t0)

    assert results["overdueUpdated"] is None
    assert results["dueReminders"] == 0
    assert results["holdsExpired"] == 0
