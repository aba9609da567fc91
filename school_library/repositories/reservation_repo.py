from sqlalchemy import func

from school_library.models.reservation import (
    Reservation,
    RES_PENDING,
    RES_READY,
    ACTIVE_RESERVATION_STATUSES,
)
from school_library.extensions import db

class ReservationRepo:
    @staticmethod
    def get(reservation_id: int):
        return db.session.get(Reservation, reservation_id)

    @staticmethod
    def get_for_update(reservation_id: int):
        return (
            Reservation.query.filter_by(id=reservation_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def create(reservation: Reservation):
        db.session.add(reservation)
        db.session.flush()
        return reservation

    @staticmethod
    def active_for_user_and_book(user_id: int, book_id: int, for_update: bool = False):
        q = Reservation.query.filter(
            Reservation.user_id == user_id,
            Reservation.book_id == book_id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        )
        if for_update:
            q = q.populate_existing().with_for_update()
        return q.first()

    @staticmethod
    def max_active_position(book_id: int) -> int:
        return (
            db.session.query(func.coalesce(func.max(Reservation.queue_position), 0))
            .filter(
                Reservation.book_id == book_id,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            )
            .scalar()
        )

    @staticmethod
    def count_active_for_book(book_id: int) -> int:
        return (
            db.session.query(func.count(Reservation.id))
            .filter(
                Reservation.book_id == book_id,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            )
            .scalar()
        )

    @staticmethod
    def next_pending_for_update(book_id: int):
        """Head of the waiting line: lowest position, earliest reservation."""
        return (
            Reservation.query.filter_by(book_id=book_id, status=RES_PENDING)
            .order_by(
                Reservation.queue_position.asc(),
                Reservation.reserved_at.asc(),
                Reservation.id.asc(),
            )
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def ready_for_copy(copy_id: int, for_update: bool = False):
        q = Reservation.query.filter_by(copy_id=copy_id, status=RES_READY)
        if for_update:
            q = q.populate_existing().with_for_update()
        return q.first()

    @staticmethod
    def close_gap(book_id: int, vacated_position: int) -> int:
        """Shift every waiting entry behind ``vacated_position`` one place forward."""
        return (
            Reservation.query.filter(
                Reservation.book_id == book_id,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
                Reservation.queue_position > vacated_position,
            )
            .update(
                {Reservation.queue_position: Reservation.queue_position - 1},
                synchronize_session="fetch",
            )
        )

    @staticmethod
    def queue_for_book(book_id: int):
        return (
            Reservation.query.filter(
                Reservation.book_id == book_id,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            )
            .order_by(Reservation.queue_position.asc())
            .all()
        )

    @staticmethod
    def list_expired_ready(now):
        return (
            Reservation.query.filter(
                Reservation.status == RES_READY,
                Reservation.expires_at < now,
            )
            .order_by(Reservation.expires_at.asc())
            .all()
        )

    @staticmethod
    def list_by_user(user_id: int):
        return Reservation.query.filter_by(user_id=user_id).order_by(Reservation.id.desc()).all()

    @staticmethod
    def list_filtered(status: str | None = None, book_id: int | None = None, user_id: int | None = None):
        q = Reservation.query
        if status:
            q = q.filter(Reservation.status == status)
        if book_id:
            q = q.filter(Reservation.book_id == book_id)
        if user_id:
            q = q.filter(Reservation.user_id == user_id)
        return q.order_by(Reservation.reserved_at.asc()).all()
