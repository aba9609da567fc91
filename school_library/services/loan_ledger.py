from datetime import datetime

from flask import current_app

from school_library.errors import (
    AlreadyReturnedError,
    ConflictError,
    FineThresholdError,
    ForbiddenError,
    HasWaitingHoldsError,
    LoanLimitExceededError,
    MaxRenewalsReachedError,
    NotFoundError,
    ValidationError,
)
from school_library.models.book_copy import BookCopy, COPY_CHECKED_OUT
from school_library.models.fine import Fine, FINE_OVERDUE, FINE_UNPAID
from school_library.models.loan import Loan, LOAN_ACTIVE, LOAN_RETURNED
from school_library.models.user import User
from school_library.repositories.fine_repo import FineRepo
from school_library.repositories.loan_repo import LoanRepo
from school_library.repositories.reservation_repo import ReservationRepo
from school_library.services import copy_state
from school_library.services.fine_calculator import compute_overdue_fine
from school_library.services.policy import CirculationPolicy
from school_library.utils.dates import due_after


class LoanLedger:
    """Borrowing episodes and the loan-side policy checks.

    Every method expects to run inside the caller's transaction with the
    book (and, for checkout, the member) already locked; nothing here
    commits.
    """

    @staticmethod
    def check_borrowing_allowed(member: User, policy: CirculationPolicy):
        unpaid = FineRepo.sum_unpaid(member.id)
        if unpaid > policy.fine_threshold_for_checkout:
            raise FineThresholdError(
                f"Member has ${unpaid:.2f} in unpaid fines. Please settle fines before checking out.",
                unpaidFines=float(unpaid),
                threshold=float(policy.fine_threshold_for_checkout),
            )

        max_books = policy.max_books_for(member.role)
        active = LoanRepo.count_open_for_user(member.id)
        if active >= max_books:
            raise LoanLimitExceededError(
                f"Member has reached the maximum of {max_books} checked-out books.",
                activeLoans=active,
                maxBooks=max_books,
            )

    @staticmethod
    def create_loan(
        copy: BookCopy,
        member: User,
        staff_id: int | None,
        loan_period_days: int,
        now: datetime,
        notes: str | None = None,
    ) -> Loan:
        """Open a loan for ``copy``; the copy must be free for this member."""
        copy_state.transition(copy, COPY_CHECKED_OUT)

        loan = Loan(
            copy_id=copy.id,
            book_id=copy.book_id,
            user_id=member.id,
            checked_out_by=staff_id,
            checkout_date=now,
            due_date=due_after(now, loan_period_days),
            renewal_count=0,
            status=LOAN_ACTIVE,
            notes=notes,
        )
        LoanRepo.add(loan)
        return loan

    @staticmethod
    def resolve_open_loan(loan_id: int | None = None, copy_barcode: str | None = None) -> Loan:
        if not loan_id and not copy_barcode:
            raise ValidationError("Copy barcode or loan ID is required")

        if loan_id:
            loan = LoanRepo.get(loan_id)
            if loan is not None and not loan.is_open:
                loan = None
        else:
            loan = LoanRepo.open_loan_for_barcode(copy_barcode)

        if loan is None:
            raise NotFoundError("No active loan found for this copy")
        return loan

    @staticmethod
    def return_loan(loan: Loan, staff_id: int | None, policy: CirculationPolicy, now: datetime):
        """Close ``loan``; returns ``(loan, fine)`` where fine is None for on-time returns.

        The copy stays checked out here; the hold queue decides where it goes.
        """
        if not loan.is_open:
            raise NotFoundError("No active loan found for this copy")

        fine = None
        days, amount = compute_overdue_fine(loan.due_date, now, policy.fine_rate_per_day)
        if amount > 0:
            fine = FineRepo.create(
                Fine(
                    loan_id=loan.id,
                    user_id=loan.user_id,
                    book_id=loan.book_id,
                    fine_type=FINE_OVERDUE,
                    amount=amount,
                    days_overdue=days,
                    status=FINE_UNPAID,
                    issued_at=now,
                )
            )

        loan.status = LOAN_RETURNED
        loan.return_date = now
        loan.returned_by = staff_id

        current_app.logger.info(
            f"[circulation] loan={loan.id} returned days_overdue={days} fine={amount}"
        )
        return loan, fine

    @staticmethod
    def renew_loan(loan: Loan, requester: User, policy: CirculationPolicy, now: datetime) -> Loan:
        if not requester.is_library_staff and loan.user_id != requester.id:
            raise ForbiddenError("Access denied")

        if loan.status == LOAN_RETURNED:
            raise AlreadyReturnedError("Book has already been returned", status=loan.status)
        if not loan.is_open:
            raise ConflictError(f"Loan cannot be renewed (status: {loan.status})", status=loan.status)

        if loan.renewal_count >= policy.max_renewals:
            raise MaxRenewalsReachedError(
                f"Maximum renewals ({policy.max_renewals}) reached for this loan",
                maxRenewals=policy.max_renewals,
                renewalCount=loan.renewal_count,
            )

        waiting = ReservationRepo.count_active_for_book(loan.book_id)
        if waiting > 0:
            raise HasWaitingHoldsError(
                "Cannot renew: other members are waiting for this book",
                waiting=waiting,
            )

        loan.due_date = due_after(now, policy.renewal_period_days)
        loan.renewal_count += 1
        loan.status = LOAN_ACTIVE
        return loan
