from datetime import datetime

from sqlalchemy import func

from school_library.models.loan import Loan, LOAN_ACTIVE, LOAN_OVERDUE, OPEN_LOAN_STATUSES
from school_library.models.book_copy import BookCopy
from school_library.extensions import db
from school_library.utils.dates import utcnow

class LoanRepo:
    @staticmethod
    def get(loan_id: int):
        return db.session.get(Loan, loan_id)

    @staticmethod
    def get_for_update(loan_id: int):
        return (
            Loan.query.filter_by(id=loan_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def open_loan_for_copy(copy_id: int, for_update: bool = False):
        q = Loan.query.filter(Loan.copy_id == copy_id, Loan.status.in_(OPEN_LOAN_STATUSES))
        if for_update:
            q = q.populate_existing().with_for_update()
        return q.first()

    @staticmethod
    def open_loan_for_barcode(barcode: str):
        return (
            Loan.query.join(BookCopy, BookCopy.id == Loan.copy_id)
            .filter(BookCopy.barcode == barcode, Loan.status.in_(OPEN_LOAN_STATUSES))
            .first()
        )

    @staticmethod
    def count_open_for_user(user_id: int) -> int:
        return (
            db.session.query(func.count(Loan.id))
            .filter(Loan.user_id == user_id, Loan.status.in_(OPEN_LOAN_STATUSES))
            .scalar()
        )

    @staticmethod
    def user_has_open_loan_for_book(user_id: int, book_id: int) -> bool:
        return (
            Loan.query.filter(
                Loan.user_id == user_id,
                Loan.book_id == book_id,
                Loan.status.in_(OPEN_LOAN_STATUSES),
            ).first()
            is not None
        )

    @staticmethod
    def list_filtered(status: str | None = None, user_id: int | None = None, overdue: bool = False):
        q = Loan.query
        if status:
            q = q.filter(Loan.status == status)
        elif overdue:
            q = q.filter(Loan.status.in_(OPEN_LOAN_STATUSES), Loan.due_date < utcnow())
        if user_id:
            q = q.filter(Loan.user_id == user_id)
        return q.order_by(Loan.due_date.asc()).all()

    @staticmethod
    def list_by_user(user_id: int):
        return Loan.query.filter_by(user_id=user_id).order_by(Loan.id.desc()).all()

    @staticmethod
    def find_due_between(start: datetime, end: datetime):
        return Loan.query.filter(
            Loan.status == LOAN_ACTIVE,
            Loan.due_date >= start,
            Loan.due_date <= end,
        ).all()

    @staticmethod
    def mark_overdue(now: datetime) -> int:
        """Flip active loans past their due time to overdue in one statement."""
        return (
            Loan.query.filter(Loan.status == LOAN_ACTIVE, Loan.due_date < now)
            .update({Loan.status: LOAN_OVERDUE}, synchronize_session=False)
        )

    @staticmethod
    def list_overdue():
        return Loan.query.filter_by(status=LOAN_OVERDUE).order_by(Loan.due_date.asc()).all()

    @staticmethod
    def add(loan: Loan):
        db.session.add(loan)
        db.session.flush()
        return loan
