from school_library.utils.dates import utcnow
from school_library.extensions import db

LOAN_ACTIVE = "active"
LOAN_OVERDUE = "overdue"
LOAN_RETURNED = "returned"
LOAN_LOST = "lost"

OPEN_LOAN_STATUSES = (LOAN_ACTIVE, LOAN_OVERDUE)


class Loan(db.Model):
    __tablename__ = "loans"
    __table_args__ = (
        # one open loan per copy
        db.Index(
            "uq_loans_open_copy",
            "copy_id",
            unique=True,
            sqlite_where=db.text("status IN ('active', 'overdue')"),
            postgresql_where=db.text("status IN ('active', 'overdue')"),
        ),
        db.CheckConstraint("renewal_count >= 0", name="ck_loans_renewal_count"),
    )

    id = db.Column(db.Integer, primary_key=True)

    copy_id = db.Column(db.Integer, db.ForeignKey("book_copies.id"), nullable=False)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    checked_out_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    checkout_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime, nullable=False, index=True)
    return_date = db.Column(db.DateTime, nullable=True)
    returned_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    renewal_count = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=LOAN_ACTIVE, index=True)  # active/overdue/returned/lost
    notes = db.Column(db.String(500), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], backref="loans")
    book = db.relationship("Book", backref="loans")
    copy = db.relationship("BookCopy", backref="loans")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_LOAN_STATUSES
