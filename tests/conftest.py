import itertools
from datetime import datetime

import pytest
from flask_jwt_extended import create_access_token

from school_library import create_app
from school_library.config import TestConfig
from school_library.extensions import db
from school_library.models.book import Book
from school_library.models.book_copy import BookCopy
from school_library.models.user import User
from school_library.repositories.book_repo import BookRepo

_seq = itertools.count(1)

# A Monday morning, far from any month or year boundary
T0 = datetime(2024, 3, 4, 10, 0, 0)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(role="student", active=True, email=True, **kwargs):
        n = next(_seq)
        user = User(
            username=kwargs.pop("username", f"{role}{n}"),
            email=f"{role}{n}@school.edu" if email else None,
            first_name=kwargs.pop("first_name", role.title()),
            last_name=kwargs.pop("last_name", str(n)),
            role=role,
            is_active=active,
            **kwargs,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_book(app):
    def _make(title=None, copies=1):
        n = next(_seq)
        book = Book(title=title or f"Book {n}", author="Author", isbn=f"978{n:010d}")
        db.session.add(book)
        db.session.commit()
        for i in range(copies):
            BookRepo.add_copy(BookCopy(book_id=book.id, barcode=f"C{book.id}-{i + 1}"))
        return book

    return _make


@pytest.fixture
def librarian(make_user):
    return make_user(role="librarian")


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def copies_of(app):
    def _copies(book):
        return BookCopy.query.filter_by(book_id=book.id).order_by(BookCopy.id).all()

    return _copies
