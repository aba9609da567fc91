from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from school_library.errors import (
    CopyUnavailableError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from school_library.models.book_copy import BookCopy, COPY_CHECKED_OUT, COPY_LOST, COPY_RESERVED
from school_library.models.fine import Fine
from school_library.models.loan import Loan, LOAN_LOST
from school_library.models.reservation import Reservation, RES_READY
from school_library.models.user import User
from school_library.repositories.book_repo import BookRepo
from school_library.repositories.loan_repo import LoanRepo
from school_library.repositories.reservation_repo import ReservationRepo
from school_library.repositories.user_repo import UserRepo
from school_library.services import copy_state
from school_library.services.audit_service import AuditService, client_ip
from school_library.services.fine_calculator import overdue_days
from school_library.services.hold_queue import HoldQueue
from school_library.services.loan_ledger import LoanLedger
from school_library.services.notification_service import (
    NotificationService,
    CHECKOUT_CONFIRMATION,
    RETURN_CONFIRMATION,
    RENEWAL_CONFIRMED,
    HOLD_PLACED,
    HOLD_READY,
)
from school_library.services.policy import CirculationPolicy
from school_library.tasks.dispatcher import dispatch_all
from school_library.utils.dates import utcnow
from school_library.utils.locks import circulation_locks, book_key, member_key
from school_library.utils.transaction import atomic


@dataclass
class ReturnResult:
    loan: Loan
    fine: Fine | None
    promoted: Reservation | None
    days_overdue: int = 0

    @property
    def is_overdue(self) -> bool:
        return self.days_overdue > 0

    @property
    def fine_amount(self) -> Decimal:
        return Decimal(str(self.fine.amount)) if self.fine else Decimal("0.00")


def _fmt_day(moment: datetime) -> str:
    return moment.strftime("%a %b %d %Y")


def _effect(fn, *args, **kwargs):
    return fn, args, kwargs


class CirculationService:
    """Checkout, return, renew and hold placement/cancellation.

    Each operation locks the book (and the member where balances matter),
    re-reads the rows it will change with FOR UPDATE, mutates them in one
    transaction, and only after the commit queues notices and audit
    records.
    """

    @staticmethod
    def _active_member(member_id) -> User:
        member = UserRepo.get_by_id(member_id) if member_id else None
        if member is None:
            raise NotFoundError("Member not found")
        if not member.is_active:
            raise ForbiddenError("Member account is deactivated")
        return member

    @staticmethod
    def _requester(user_id) -> User:
        user = UserRepo.get_by_id(user_id) if user_id else None
        if user is None:
            raise NotFoundError("User not found")
        return user

    # -----------------------------
    # Checkout
    # -----------------------------
    @staticmethod
    def checkout(
        member_id: int,
        copy_barcode: str | None = None,
        book_id: int | None = None,
        staff_id: int | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> Loan:
        if not member_id or (not copy_barcode and not book_id):
            raise ValidationError("User ID and book copy barcode or book ID are required")

        now = now or utcnow()
        policy = CirculationPolicy.current()
        member = CirculationService._active_member(member_id)

        if copy_barcode:
            target = BookRepo.get_copy_by_barcode(copy_barcode)
            target_book_id = target.book_id if target else None
        else:
            book = BookRepo.get(book_id)
            target_book_id = book.id if book else None

        with circulation_locks.hold(book_key(target_book_id) if target_book_id else None, member_key(member.id)):
            with atomic():
                # the member row lock serializes checkouts across worker processes
                UserRepo.get_for_update(member.id)
                LoanLedger.check_borrowing_allowed(member, policy)

                if target_book_id is None:
                    raise NotFoundError("Book copy not found" if copy_barcode else "Book not found")

                copy = CirculationService._lock_checkout_copy(member, target_book_id, copy_barcode)

                if copy.status == COPY_RESERVED:
                    holder = ReservationRepo.ready_for_copy(copy.id, for_update=True)
                    if holder is None or holder.user_id != member.id:
                        raise CopyUnavailableError(
                            "Copy is on hold for another member",
                            status=copy.status,
                        )
                else:
                    copy_state.ensure_checkout_allowed(copy)

                fulfilled = HoldQueue.fulfil_for_checkout(member, target_book_id, copy, policy, now)
                loan = LoanLedger.create_loan(copy, member, staff_id, policy.loan_period_days, now, notes)

                title = copy.book.title if copy.book else "your book"
                barcode = copy.barcode
                loan_id, due = loan.id, loan.due_date
                fulfilled_id = fulfilled.id if fulfilled else None

        current_app.logger.info(
            f"[circulation] checkout loan={loan_id} copy={barcode} user={member.id} due={due}"
        )
        dispatch_all([
            _effect(
                NotificationService.notify,
                member.id,
                CHECKOUT_CONFIRMATION,
                f"Book Checked Out: {title}",
                f'You have successfully checked out "{title}". Due date: {_fmt_day(due)}.',
                loan_id,
            ),
            _effect(
                AuditService.record,
                staff_id,
                "CHECKOUT",
                "loan",
                loan_id,
                {
                    "userId": member.id,
                    "copyBarcode": barcode,
                    "bookId": target_book_id,
                    "reservationFulfilled": fulfilled_id,
                },
                client_ip(),
            ),
        ])
        return loan

    @staticmethod
    def _lock_checkout_copy(member: User, book_id: int, copy_barcode: str | None) -> BookCopy:
        if copy_barcode:
            probe = BookRepo.get_copy_by_barcode(copy_barcode)
            copy = BookRepo.get_copy_for_update(probe.id) if probe else None
            if copy is None:
                raise NotFoundError("Book copy not found")
            return copy

        # a ready hold of this member decides which copy they take
        mine = ReservationRepo.active_for_user_and_book(member.id, book_id)
        if mine is not None and mine.status == RES_READY and mine.copy_id:
            copy = BookRepo.get_copy_for_update(mine.copy_id)
            if copy is not None:
                return copy

        copy = BookRepo.first_available_copy_for_update(book_id)
        if copy is None:
            if BookRepo.count_copies(book_id) == 0:
                raise NotFoundError("Book copy not found")
            raise CopyUnavailableError("No copy of this book is available", availableCopies=0)
        return copy

    # -----------------------------
    # Return
    # -----------------------------
    @staticmethod
    def return_book(
        copy_barcode: str | None = None,
        loan_id: int | None = None,
        staff_id: int | None = None,
        now: datetime | None = None,
    ) -> ReturnResult:
        now = now or utcnow()
        policy = CirculationPolicy.current()

        probe = LoanLedger.resolve_open_loan(loan_id=loan_id, copy_barcode=copy_barcode)
        probe_id, probe_book_id = probe.id, probe.book_id

        with circulation_locks.hold(book_key(probe_book_id)):
            with atomic():
                loan = LoanRepo.get_for_update(probe_id)
                if loan is None or not loan.is_open:
                    raise NotFoundError("No active loan found for this copy")

                loan, fine = LoanLedger.return_loan(loan, staff_id, policy, now)

                copy = BookRepo.get_copy_for_update(loan.copy_id)
                promoted = HoldQueue.promote_next(loan.book_id, copy, policy, now)

                result = ReturnResult(
                    loan=loan,
                    fine=fine,
                    promoted=promoted,
                    days_overdue=overdue_days(loan.due_date, now),
                )
                title = loan.book.title if loan.book else "your book"
                barcode = copy.barcode
                member_id = loan.user_id
                fine_id = fine.id if fine else None
                fine_amount = result.fine_amount
                promoted_info = (promoted.id, promoted.user_id) if promoted else None

        current_app.logger.info(
            f"[circulation] return loan={probe_id} copy={barcode} fine={fine_amount} "
            f"promoted={promoted_info[0] if promoted_info else None}"
        )

        body = f'Thank you for returning "{title}".'
        if fine_id:
            body += f" It was {result.days_overdue} day(s) late; a fine of ${fine_amount:.2f} has been issued."
        effects = [
            _effect(
                NotificationService.notify,
                member_id,
                RETURN_CONFIRMATION,
                f"Book Returned: {title}",
                body,
                probe_id,
            ),
        ]
        if promoted_info:
            effects.append(_effect(
                NotificationService.notify,
                promoted_info[1],
                HOLD_READY,
                f"Hold Ready: {title}",
                f'"{title}" is now available for pickup. '
                f"Please collect it within {policy.hold_expiry_days} days.",
                promoted_info[0],
            ))
        effects.append(_effect(
            AuditService.record,
            staff_id,
            "RETURN",
            "loan",
            probe_id,
            {"copyBarcode": barcode, "fineAmount": float(fine_amount), "fineId": fine_id},
            client_ip(),
        ))
        dispatch_all(effects)
        return result

    # -----------------------------
    # Renew
    # -----------------------------
    @staticmethod
    def renew(loan_id: int, requester_id: int, now: datetime | None = None) -> Loan:
        if not loan_id:
            raise ValidationError("Loan ID is required")

        now = now or utcnow()
        policy = CirculationPolicy.current()
        requester = CirculationService._requester(requester_id)

        probe = LoanRepo.get(loan_id)
        if probe is None:
            raise NotFoundError("Loan not found")

        with circulation_locks.hold(book_key(probe.book_id)):
            with atomic():
                loan = LoanRepo.get_for_update(loan_id)
                loan = LoanLedger.renew_loan(loan, requester, policy, now)
                title = loan.book.title if loan.book else "your book"
                member_id, new_due, count = loan.user_id, loan.due_date, loan.renewal_count

        dispatch_all([
            _effect(
                AuditService.record,
                requester.id,
                "RENEWAL",
                "loan",
                loan_id,
                {"newDueDate": new_due.isoformat(), "renewalCount": count},
                client_ip(),
            ),
            _effect(
                NotificationService.notify,
                member_id,
                RENEWAL_CONFIRMED,
                f"Renewal Confirmed: {title}",
                f'Your loan of "{title}" has been renewed. New due date: {_fmt_day(new_due)}.',
                loan_id,
            ),
        ])
        return loan

    # -----------------------------
    # Holds
    # -----------------------------
    @staticmethod
    def place_reservation(book_id: int, member_id: int, now: datetime | None = None) -> Reservation:
        if not book_id:
            raise ValidationError("Book ID is required")

        now = now or utcnow()
        member = CirculationService._active_member(member_id)

        book = BookRepo.get(book_id)
        if book is None or not book.is_active:
            raise NotFoundError("Book not found")

        with circulation_locks.hold(book_key(book.id), member_key(member.id)):
            with atomic():
                UserRepo.get_for_update(member.id)
                book = BookRepo.get_for_update(book.id)
                reservation = HoldQueue.place_reservation(book, member, now)
                reservation_id, position, title = reservation.id, reservation.queue_position, book.title

        dispatch_all([
            _effect(
                AuditService.record,
                member.id,
                "RESERVATION_PLACED",
                "reservation",
                reservation_id,
                {"bookId": book_id, "queuePosition": position},
                client_ip(),
            ),
            _effect(
                NotificationService.notify,
                member.id,
                HOLD_PLACED,
                f"Hold Placed: {title}",
                f'Your hold on "{title}" has been placed. You are #{position} in the queue.',
                reservation_id,
            ),
        ])
        return reservation

    @staticmethod
    def cancel_reservation(reservation_id: int, requester_id: int) -> Reservation:
        requester = CirculationService._requester(requester_id)
        probe = HoldQueue.get(reservation_id)

        with circulation_locks.hold(book_key(probe.book_id)):
            with atomic():
                reservation = ReservationRepo.get_for_update(reservation_id)
                HoldQueue.cancel_reservation(reservation, requester)

        current_app.logger.info(f"[holds] reservation={reservation_id} cancelled by user={requester.id}")
        dispatch_all([
            _effect(
                AuditService.record,
                requester.id,
                "RESERVATION_CANCELLED",
                "reservation",
                reservation_id,
                None,
                client_ip(),
            ),
        ])
        return reservation

    # -----------------------------
    # Manual copy status (librarian)
    # -----------------------------
    @staticmethod
    def update_copy(
        copy_id: int,
        staff_id: int,
        status: str | None = None,
        condition: str | None = None,
        location: str | None = None,
        notes: str | None = None,
    ) -> BookCopy:
        probe = BookRepo.get_copy(copy_id)
        if probe is None:
            raise NotFoundError("Book copy not found")

        previous = None
        with circulation_locks.hold(book_key(probe.book_id)):
            with atomic():
                copy = BookRepo.get_copy_for_update(copy_id)

                if status and status != copy.status:
                    if copy.status == COPY_CHECKED_OUT and status == COPY_LOST:
                        loan = LoanRepo.open_loan_for_copy(copy.id, for_update=True)
                        if loan is not None:
                            loan.status = LOAN_LOST
                    if copy.status == COPY_RESERVED:
                        HoldQueue.return_to_waiting(copy)
                    previous = copy_state.move_manually(copy, status)

                if condition is not None:
                    copy.condition = condition
                if location is not None:
                    copy.location = location
                if notes is not None:
                    copy.notes = notes

                barcode, current = copy.barcode, copy.status

        if previous:
            dispatch_all([
                _effect(
                    AuditService.record,
                    staff_id,
                    "COPY_STATUS_CHANGED",
                    "copy",
                    copy_id,
                    {"barcode": barcode, "from": previous, "to": current},
                    client_ip(),
                ),
            ])
        return copy
