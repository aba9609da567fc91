from school_library.utils.dates import utcnow
from school_library.extensions import db

ROLE_STUDENT = "student"
ROLE_STAFF = "staff"
ROLE_LIBRARIAN = "librarian"
ROLE_ADMIN = "admin"

LIBRARY_STAFF_ROLES = (ROLE_LIBRARIAN, ROLE_ADMIN)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)

    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    grade_class = db.Column(db.String(20), nullable=True)

    # student / staff borrow; librarian / admin run the desk
    role = db.Column(db.String(20), nullable=False, default=ROLE_STUDENT)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    email_notifications = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_library_staff(self) -> bool:
        return self.role in LIBRARY_STAFF_ROLES

