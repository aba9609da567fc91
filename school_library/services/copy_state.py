from flask import current_app

from school_library.errors import ConflictError, CopyUnavailableError, ValidationError
from school_library.extensions import db
from school_library.models.book import Book
from school_library.models.book_copy import (
    BookCopy,
    COPY_AVAILABLE,
    COPY_CHECKED_OUT,
    COPY_RESERVED,
    COPY_LOST,
    COPY_DAMAGED,
    COPY_WITHDRAWN,
)

# circulation events only; manual moves are checked in move_manually()
CIRCULATION_TRANSITIONS = {
    COPY_AVAILABLE: {COPY_CHECKED_OUT},
    COPY_CHECKED_OUT: {COPY_AVAILABLE, COPY_RESERVED},
    COPY_RESERVED: {COPY_AVAILABLE, COPY_CHECKED_OUT},
}

OUT_OF_CIRCULATION = (COPY_LOST, COPY_DAMAGED, COPY_WITHDRAWN)
MANUAL_TARGETS = OUT_OF_CIRCULATION + (COPY_AVAILABLE,)


def _adjust_book_counter(copy: BookCopy, old: str, new: str):
    if old == new:
        return
    delta = 0
    if new == COPY_AVAILABLE:
        delta = 1
    elif old == COPY_AVAILABLE:
        delta = -1
    if not delta:
        return
    book = copy.book or db.session.get(Book, copy.book_id)
    if book is not None:
        book.available_copies = (book.available_copies or 0) + delta


def ensure_checkout_allowed(copy: BookCopy):
    if copy.status not in (COPY_AVAILABLE, COPY_RESERVED):
        raise CopyUnavailableError(
            f"Copy is not available (status: {copy.status})",
            status=copy.status,
        )


def transition(copy: BookCopy, new_status: str) -> BookCopy:
    """Apply a circulation transition and keep the book's available counter in step."""
    old = copy.status
    allowed = CIRCULATION_TRANSITIONS.get(old, set())
    if new_status not in allowed:
        if new_status == COPY_CHECKED_OUT:
            raise CopyUnavailableError(
                f"Copy is not available (status: {old})",
                status=old,
            )
        raise ConflictError(
            f"Copy {copy.barcode} cannot move from {old} to {new_status}",
            status=old,
        )
    copy.status = new_status
    _adjust_book_counter(copy, old, new_status)
    current_app.logger.debug(f"[copy] {copy.barcode}: {old} -> {new_status}")
    return copy


def move_manually(copy: BookCopy, new_status: str) -> str:
    """Librarian move outside the circulation events; returns the previous status.

    Callers deal with the loan or hold that referenced the copy.
    """
    if new_status not in MANUAL_TARGETS:
        raise ValidationError(f"Invalid copy status: {new_status}")
    old = copy.status
    if new_status == COPY_AVAILABLE and old not in OUT_OF_CIRCULATION:
        raise ConflictError(
            f"Only lost, damaged or withdrawn copies can be put back on the shelf (status: {old})",
            status=old,
        )
    if old == COPY_CHECKED_OUT and new_status != COPY_LOST:
        raise ConflictError(
            "Copy is checked out; return it first or mark it lost",
            status=old,
        )
    copy.status = new_status
    _adjust_book_counter(copy, old, new_status)
    return old
