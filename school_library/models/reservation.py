from school_library.utils.dates import utcnow
from school_library.extensions import db

RES_PENDING = "pending"
RES_READY = "ready"
RES_FULFILLED = "fulfilled"
RES_CANCELLED = "cancelled"
RES_EXPIRED = "expired"

ACTIVE_RESERVATION_STATUSES = (RES_PENDING, RES_READY)
TERMINAL_RESERVATION_STATUSES = (RES_FULFILLED, RES_CANCELLED, RES_EXPIRED)


class Reservation(db.Model):
    __tablename__ = "reservations"
    __table_args__ = (
        db.CheckConstraint("queue_position > 0", name="ck_reservations_queue_position"),
    )

    id = db.Column(db.Integer, primary_key=True)

    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    queue_position = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RES_PENDING, index=True)

    reserved_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    notified_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    fulfilled_at = db.Column(db.DateTime, nullable=True)

    # assigned copy, only while status == ready
    copy_id = db.Column(db.Integer, db.ForeignKey("book_copies.id"), nullable=True)

    user = db.relationship("User", backref="reservations")
    book = db.relationship("Book", backref="reservations")
