from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from school_library.errors import CopyUnavailableError
from school_library.extensions import db


@contextmanager
def atomic():
    """Single commit point: commit on success, roll everything back on error."""
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        # only the open-loan index can collide on the circulation tables
        if "uq_loans_open_copy" in str(e.orig) or "loans.copy_id" in str(e.orig):
            raise CopyUnavailableError("Copy already has an open loan") from e
        raise
    except Exception:
        db.session.rollback()
        raise
