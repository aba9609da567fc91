from decimal import Decimal

from sqlalchemy import func

from school_library.models.fine import Fine, FINE_UNPAID
from school_library.extensions import db

class FineRepo:
    @staticmethod
    def get(fine_id: int):
        return db.session.get(Fine, fine_id)

    @staticmethod
    def get_for_update(fine_id: int):
        return (
            Fine.query.filter_by(id=fine_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def create(fine: Fine):
        db.session.add(fine)
        db.session.flush()
        return fine

    @staticmethod
    def sum_unpaid(user_id: int) -> Decimal:
        total = (
            db.session.query(func.coalesce(func.sum(Fine.amount), 0))
            .filter(Fine.user_id == user_id, Fine.status == FINE_UNPAID)
            .scalar()
        )
        return Decimal(str(total)).quantize(Decimal("0.01"))

    @staticmethod
    def list_unpaid_for_update(user_id: int):
        return (
            Fine.query.filter_by(user_id=user_id, status=FINE_UNPAID)
            .populate_existing()
            .with_for_update()
            .all()
        )

    @staticmethod
    def list_by_user(user_id: int):
        return Fine.query.filter_by(user_id=user_id).order_by(Fine.id.desc()).all()

    @staticmethod
    def list_filtered(status: str | None = None, user_id: int | None = None):
        q = Fine.query
        if status:
            q = q.filter(Fine.status == status)
        if user_id:
            q = q.filter(Fine.user_id == user_id)
        return q.order_by(Fine.issued_at.desc(), Fine.id.desc()).all()
