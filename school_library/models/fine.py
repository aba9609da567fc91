from school_library.utils.dates import utcnow
from school_library.extensions import db

FINE_UNPAID = "unpaid"
FINE_PAID = "paid"
FINE_WAIVED = "waived"

FINE_OVERDUE = "overdue"
FINE_LOST = "lost"
FINE_DAMAGED = "damaged"

FINE_TYPES = (FINE_OVERDUE, FINE_LOST, FINE_DAMAGED)


class Fine(db.Model):
    __tablename__ = "fines"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_fines_amount_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # manual fines have no loan
    loan_id = db.Column(db.Integer, db.ForeignKey("loans.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=True)

    fine_type = db.Column(db.String(20), nullable=False, default=FINE_OVERDUE)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    days_overdue = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=FINE_UNPAID, index=True)

    issued_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    paid_at = db.Column(db.DateTime, nullable=True)
    waived_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    waive_reason = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], backref="fines")
    loan = db.relationship("Loan", backref=db.backref("fine", uselist=False))
