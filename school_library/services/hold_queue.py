from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from school_library.errors import (
    AlreadyAvailableError,
    AlreadyHasHoldError,
    AlreadyHasLoanError,
    AlreadyTerminalError,
    ForbiddenError,
    NotFoundError,
)
from school_library.models.book import Book
from school_library.models.book_copy import BookCopy, COPY_AVAILABLE, COPY_CHECKED_OUT, COPY_RESERVED
from school_library.models.reservation import (
    Reservation,
    RES_PENDING,
    RES_READY,
    RES_FULFILLED,
    RES_CANCELLED,
    RES_EXPIRED,
    TERMINAL_RESERVATION_STATUSES,
)
from school_library.models.user import User
from school_library.repositories.book_repo import BookRepo
from school_library.repositories.loan_repo import LoanRepo
from school_library.repositories.reservation_repo import ReservationRepo
from school_library.services import copy_state
from school_library.services.notification_service import NotificationService, HOLD_EXPIRED
from school_library.services.policy import CirculationPolicy
from school_library.utils.dates import utcnow
from school_library.utils.locks import circulation_locks, book_key
from school_library.utils.transaction import atomic


class HoldQueue:
    """Per-book waiting line.

    Positions of the pending and ready entries of a book always read
    1..n. Whenever an entry leaves that set (cancelled, expired or
    fulfilled) everything behind it moves up one place, in the same
    transaction.

    Apart from ``expire_ready_holds``, which locks and commits per hold,
    callers hold the book lock and own the transaction.
    """

    @staticmethod
    def _leave_queue(reservation: Reservation):
        reservation.copy_id = None
        ReservationRepo.close_gap(reservation.book_id, reservation.queue_position)

    @staticmethod
    def place_reservation(book: Book, member: User, now: datetime) -> Reservation:
        if LoanRepo.user_has_open_loan_for_book(member.id, book.id):
            raise AlreadyHasLoanError("You already have this book checked out")

        if ReservationRepo.active_for_user_and_book(member.id, book.id) is not None:
            raise AlreadyHasHoldError("You already have a hold on this book")

        available = BookRepo.count_copies(book.id, COPY_AVAILABLE)
        if available > 0:
            raise AlreadyAvailableError(
                "This book is currently available. Please check it out directly.",
                availableCopies=available,
            )

        position = ReservationRepo.max_active_position(book.id) + 1
        reservation = ReservationRepo.create(
            Reservation(
                book_id=book.id,
                user_id=member.id,
                queue_position=position,
                status=RES_PENDING,
                reserved_at=now,
            )
        )
        current_app.logger.info(
            f"[holds] book={book.id} user={member.id} queued at position {position}"
        )
        return reservation

    @staticmethod
    def promote_next(book_id: int, freed_copy: BookCopy, policy: CirculationPolicy, now: datetime):
        """Give ``freed_copy`` to the head of the queue, or put it back on the shelf.

        Returns the promoted reservation, or None when nobody is waiting.
        """
        nxt = ReservationRepo.next_pending_for_update(book_id)

        if nxt is None:
            if freed_copy.status != COPY_AVAILABLE:
                copy_state.transition(freed_copy, COPY_AVAILABLE)
            return None

        if freed_copy.status == COPY_CHECKED_OUT:
            copy_state.transition(freed_copy, COPY_RESERVED)
        # a copy already reserved for someone who let it go is simply reassigned

        nxt.status = RES_READY
        nxt.copy_id = freed_copy.id
        nxt.notified_at = now
        nxt.expires_at = now + timedelta(days=policy.hold_expiry_days)

        current_app.logger.info(
            f"[holds] book={book_id} copy={freed_copy.id} -> reservation={nxt.id} user={nxt.user_id}"
        )
        return nxt

    @staticmethod
    def _release_assigned_copy(reservation: Reservation):
        if reservation.status != RES_READY or not reservation.copy_id:
            return None
        copy = BookRepo.get_copy_for_update(reservation.copy_id)
        if copy is not None and copy.status == COPY_RESERVED:
            copy_state.transition(copy, COPY_AVAILABLE)
        return copy

    @staticmethod
    def cancel_reservation(reservation: Reservation, requester: User) -> Reservation:
        if not requester.is_library_staff and reservation.user_id != requester.id:
            raise ForbiddenError("Access denied")

        if reservation.status in TERMINAL_RESERVATION_STATUSES:
            raise AlreadyTerminalError(
                f"Reservation is already {reservation.status}",
                status=reservation.status,
            )

        HoldQueue._release_assigned_copy(reservation)
        reservation.status = RES_CANCELLED
        HoldQueue._leave_queue(reservation)
        return reservation

    @staticmethod
    def fulfil_for_checkout(member: User, book_id: int, copy: BookCopy, policy: CirculationPolicy, now: datetime):
        """Close the member's hold on a book they are checking out.

        If the hold was ready on a different copy, that copy goes to the next
        member in line.
        """
        reservation = ReservationRepo.active_for_user_and_book(member.id, book_id, for_update=True)
        if reservation is None:
            return None

        other_copy_id = None
        if reservation.status == RES_READY and reservation.copy_id and reservation.copy_id != copy.id:
            other_copy_id = reservation.copy_id

        reservation.status = RES_FULFILLED
        reservation.fulfilled_at = now
        HoldQueue._leave_queue(reservation)

        if other_copy_id:
            other = BookRepo.get_copy_for_update(other_copy_id)
            if other is not None and other.status == COPY_RESERVED:
                HoldQueue.promote_next(book_id, other, policy, now)

        return reservation

    @staticmethod
    def return_to_waiting(copy: BookCopy):
        """A reserved copy left circulation: its ready hold waits again at the same place."""
        reservation = ReservationRepo.ready_for_copy(copy.id, for_update=True)
        if reservation is None:
            return None
        reservation.status = RES_PENDING
        reservation.copy_id = None
        reservation.notified_at = None
        reservation.expires_at = None
        return reservation

    @staticmethod
    def expire_ready_holds(now: datetime | None = None) -> list[Reservation]:
        """Expire ready holds whose pickup window closed before ``now``.

        Each hold is locked, re-checked and committed on its own, so a
        second run (or a run racing a checkout) finds nothing left to do.
        """
        now = now or utcnow()
        expired = []

        candidates = [(r.id, r.book_id) for r in ReservationRepo.list_expired_ready(now)]
        for reservation_id, book_id in candidates:
            try:
                with circulation_locks.hold(book_key(book_id)), atomic():
                    r = ReservationRepo.get_for_update(reservation_id)
                    if r is None or r.status != RES_READY or not r.expires_at or r.expires_at >= now:
                        continue
                    HoldQueue._release_assigned_copy(r)
                    r.status = RES_EXPIRED
                    HoldQueue._leave_queue(r)
                    user_id, title = r.user_id, r.book.title if r.book else "your book"
            except Exception as ex:
                current_app.logger.exception(f"[holds] expiring reservation={reservation_id} failed: {ex}")
                continue

            expired.append(r)
            NotificationService.notify(
                user_id,
                HOLD_EXPIRED,
                f'Hold Expired: "{title}"',
                f'Your hold on "{title}" has expired because it was not picked up in time. '
                "You may place a new hold if needed.",
                reference_id=reservation_id,
                now=now,
            )

        return expired

    @staticmethod
    def get(reservation_id: int) -> Reservation:
        reservation = ReservationRepo.get(reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found")
        return reservation
