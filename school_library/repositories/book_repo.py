from school_library.models.book import Book
from school_library.models.book_copy import BookCopy, COPY_AVAILABLE
from school_library.extensions import db

class BookRepo:
    @staticmethod
    def get(book_id: int):
        return db.session.get(Book, book_id)

    @staticmethod
    def get_for_update(book_id: int):
        return (
            Book.query.filter_by(id=book_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    # copies
    @staticmethod
    def get_copy(copy_id: int):
        return db.session.get(BookCopy, copy_id)

    @staticmethod
    def get_copy_by_barcode(barcode: str):
        return BookCopy.query.filter_by(barcode=barcode).first()

    @staticmethod
    def get_copy_for_update(copy_id: int):
        return (
            BookCopy.query.filter_by(id=copy_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def first_available_copy_for_update(book_id: int):
        return (
            BookCopy.query.filter_by(book_id=book_id, status=COPY_AVAILABLE)
            .order_by(BookCopy.id.asc())
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def count_copies(book_id: int, status: str | None = None) -> int:
        q = BookCopy.query.filter_by(book_id=book_id)
        if status:
            q = q.filter_by(status=status)
        return q.count()

    @staticmethod
    def add_copy(copy: BookCopy):
        book = db.session.get(Book, copy.book_id)
        if copy.status is None:
            # column default is only applied at flush; the counters need it now
            copy.status = COPY_AVAILABLE
        db.session.add(copy)
        if book:
            book.total_copies = (book.total_copies or 0) + 1
            if copy.status == COPY_AVAILABLE:
                book.available_copies = (book.available_copies or 0) + 1
        db.session.commit()
        return copy
