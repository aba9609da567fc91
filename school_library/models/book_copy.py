from school_library.utils.dates import utcnow
from school_library.extensions import db

COPY_AVAILABLE = "available"
COPY_CHECKED_OUT = "checked_out"
COPY_RESERVED = "reserved"
COPY_LOST = "lost"
COPY_DAMAGED = "damaged"
COPY_WITHDRAWN = "withdrawn"

COPY_STATUSES = (
    COPY_AVAILABLE,
    COPY_CHECKED_OUT,
    COPY_RESERVED,
    COPY_LOST,
    COPY_DAMAGED,
    COPY_WITHDRAWN,
)


class BookCopy(db.Model):
    __tablename__ = "book_copies"

    id = db.Column(db.Integer, primary_key=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)

    barcode = db.Column(db.String(64), unique=True, nullable=False, index=True)
    condition = db.Column(db.String(20), nullable=False, default="good")
    status = db.Column(db.String(20), nullable=False, default=COPY_AVAILABLE, index=True)
    location = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    acquired_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    book = db.relationship("Book", backref="copies")
