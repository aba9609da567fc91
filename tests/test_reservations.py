from datetime import timedelta

import pytest

from school_library.errors import (
    AlreadyAvailableError,
    AlreadyHasHoldError,
    AlreadyHasLoanError,
    AlreadyTerminalError,
    CopyUnavailableError,
    ForbiddenError,
    NotFoundError,
)
from school_library.extensions import db
from school_library.models.book import Book
from school_library.models.book_copy import BookCopy
from school_library.models.notification import Notification
from school_library.models.reservation import Reservation
from school_library.repositories.book_repo import BookRepo
from school_library.repositories.reservation_repo import ReservationRepo
from school_library.services.circulation_service import CirculationService
from school_library.services.hold_queue import HoldQueue
from school_library.services.notification_service import HOLD_EXPIRED, HOLD_PLACED


@pytest.fixture
def lent_out(make_user, make_book, copies_of, t0):
    """A single-copy book that is currently checked out."""
    book = make_book()
    copy = copies_of(book)[0]
    borrower = make_user()
    CirculationService.checkout(borrower.id, copy_barcode=copy.barcode, now=t0)
    return book, copy, borrower


def _positions(book):
    return [(r.user_id, r.queue_position) for r in ReservationRepo.queue_for_book(book.id)]


def test_positions_follow_arrival(lent_out, make_user, t0):
    book, _, _ = lent_out
    members = [make_user() for _ in range(3)]

    placed = [
        CirculationService.place_reservation(book.id, m.id, now=t0 + timedelta(minutes=i))
        for i, m in enumerate(members)
    ]

    assert [r.queue_position for r in placed] == [1, 2, 3]
    assert all(r.status == "pending" for r in placed)
    notice = Notification.query.filter_by(user_id=members[2].id, type=HOLD_PLACED).one()
    assert "#3" in notice.body


def test_one_active_hold_per_member_and_book(lent_out, make_user, t0):
    book, _, _ = lent_out
    member = make_user()
    CirculationService.place_reservation(book.id, member.id, now=t0)

    with pytest.raises(AlreadyHasHoldError):
        CirculationService.place_reservation(book.id, member.id, now=t0)


def test_hold_refused_while_a_copy_is_on_the_shelf(make_user, make_book):
    book = make_book(copies=2)

    with pytest.raises(AlreadyAvailableError) as exc:
        CirculationService.place_reservation(book.id, make_user().id)

    assert exc.value.payload["available"] is True
    assert exc.value.payload["availableCopies"] == 2
    assert Reservation.query.count() == 0


def test_borrower_cannot_hold_own_book(lent_out):
    book, _, borrower = lent_out

    with pytest.raises(AlreadyHasLoanError):
        CirculationService.place_reservation(book.id, borrower.id)


def test_hold_on_unknown_book(make_user):
    with pytest.raises(NotFoundError):
        CirculationService.place_reservation(777, make_user().id)


def test_cancel_closes_the_gap(lent_out, make_user, t0):
    book, _, _ = lent_out
    a, b, c = make_user(), make_user(), make_user()
    CirculationService.place_reservation(book.id, a.id, now=t0)
    middle = CirculationService.place_reservation(book.id, b.id, now=t0)
    CirculationService.place_reservation(book.id, c.id, now=t0)

    cancelled = CirculationService.cancel_reservation(middle.id, b.id)

    assert cancelled.status == "cancelled"
    assert _positions(book) == [(a.id, 1), (c.id, 2)]


def test_cancel_rules(lent_out, make_user, librarian, t0):
    book, _, _ = lent_out
    owner = make_user()
    r = CirculationService.place_reservation(book.id, owner.id, now=t0)

    with pytest.raises(ForbiddenError):
        CirculationService.cancel_reservation(r.id, make_user().id)

    CirculationService.cancel_reservation(r.id, librarian.id)

    with pytest.raises(AlreadyTerminalError):
        CirculationService.cancel_reservation(r.id, owner.id)
    with pytest.raises(NotFoundError):
        CirculationService.cancel_reservation(9999, owner.id)


def test_cancelling_a_ready_hold_puts_the_copy_back(lent_out, make_user, t0):
    book, copy, _ = lent_out
    first, second = make_user(), make_user()
    r1 = CirculationService.place_reservation(book.id, first.id, now=t0)
    r2 = CirculationService.place_reservation(book.id, second.id, now=t0)
    CirculationService.return_book(copy_barcode=copy.barcode, now=t0)

    CirculationService.cancel_reservation(r1.id, first.id)

    assert db.session.get(BookCopy, copy.id).status == "available"
    assert db.session.get(Book, book.id).available_copies == 1
    waiting = db.session.get(Reservation, r2.id)
    assert waiting.status == "pending"
    assert waiting.queue_position == 1


def test_ready_holder_collects_reserved_copy(lent_out, make_user, t0):
    book, copy, _ = lent_out
    first, second = make_user(), make_user()
    r1 = CirculationService.place_reservation(book.id, first.id, now=t0)
    r2 = CirculationService.place_reservation(book.id, second.id, now=t0)
    CirculationService.return_book(copy_barcode=copy.barcode, now=t0)

    with pytest.raises(CopyUnavailableError):
        CirculationService.checkout(second.id, copy_barcode=copy.barcode, now=t0)

    loan = CirculationService.checkout(first.id, book_id=book.id, now=t0 + timedelta(hours=2))

    assert loan.copy_id == copy.id
    done = db.session.get(Reservation, r1.id)
    assert done.status == "fulfilled"
    assert done.fulfilled_at == t0 + timedelta(hours=2)
    assert db.session.get(BookCopy, copy.id).status == "checked_out"
    assert db.session.get(Reservation, r2.id).queue_position == 1


def test_taking_another_copy_passes_the_reserved_one_on(lent_out, make_user, t0):
    book, copy, _ = lent_out
    first, second = make_user(), make_user()
    r1 = CirculationService.place_reservation(book.id, first.id, now=t0)
    r2 = CirculationService.place_reservation(book.id, second.id, now=t0)
    CirculationService.return_book(copy_barcode=copy.barcode, now=t0)
    fresh = BookRepo.add_copy(BookCopy(book_id=book.id, barcode=f"NEW-{book.id}"))

    loan = CirculationService.checkout(first.id, copy_barcode=fresh.barcode, now=t0)

    assert loan.copy_id == fresh.id
    assert db.session.get(Reservation, r1.id).status == "fulfilled"
    moved = db.session.get(Reservation, r2.id)
    assert moved.status == "ready"
    assert moved.copy_id == copy.id
    assert moved.queue_position == 1
    assert db.session.get(BookCopy, copy.id).status == "reserved"
    assert db.session.get(Book, book.id).available_copies == 0


def test_expiry_releases_copy_once(lent_out, make_user, t0):
    book, copy, _ = lent_out
    late, patient = make_user(), make_user()
    r1 = CirculationService.place_reservation(book.id, late.id, now=t0)
    r2 = CirculationService.place_reservation(book.id, patient.id, now=t0)
    CirculationService.return_book(copy_barcode=copy.barcode, now=t0)

    later = t0 + timedelta(days=3, seconds=1)
    expired = HoldQueue.expire_ready_holds(later)

    assert [r.id for r in expired] == [r1.id]
    assert db.session.get(Reservation, r1.id).status == "expired"
    assert db.session.get(Reservation, r1.id).copy_id is None
    assert db.session.get(BookCopy, copy.id).status == "available"
    assert db.session.get(Reservation, r2.id).queue_position == 1
    assert Notification.query.filter_by(user_id=late.id, type=HOLD_EXPIRED).count() == 1

    assert HoldQueue.expire_ready_holds(later) == []
    assert Notification.query.filter_by(type=HOLD_EXPIRED).count() == 1


def test_hold_inside_pickup_window_stays_ready(lent_out, make_user, t0):
    book, copy, _ = lent_out
    r = CirculationService.place_reservation(book.id, make_user().id, now=t0)
    CirculationService.return_book(copy_barcode=copy.barcode, now=t0)

    assert HoldQueue.expire_ready_holds(t0 + timedelta(days=3)) == []
    assert db.session.get(Reservation, r.id).status == "ready"


def test_reserved_copy_taken_out_of_circulation_requeues_holder(lent_out, make_user, librarian, t0):
    book, copy, _ = lent_out
    r = CirculationService.place_reservation(book.id, make_user().id, now=t0)
    CirculationService.return_book(copy_barcode=copy.barcode, now=t0)

    CirculationService.update_copy(copy.id, librarian.id, status="damaged")

    back = db.session.get(Reservation, r.id)
    assert back.status == "pending"
    assert back.queue_position == 1
    assert back.copy_id is None
    assert back.expires_at is None
    assert db.session.get(BookCopy, copy.id).status == "damaged"
