"""
conftest.py
-----------
Shared pytest fixtures for LocalLibrary tests.

Provides fixtures for:
- An application bound to a throwaway SQLite file
- The test client and the catalog storage handle
- A small seeded catalog (ids only, rows are re-read where needed)
"""
# --- Standard library imports ---
from datetime import date

# --- Third-party imports ---
import pytest

# --- Local imports ---
from locallibrary import create_app, shutdown
from locallibrary.data_models import db


# ----- Application Fixtures -----

@pytest.fixture
def app(tmp_path):
    """Application with CSRF and Open Library lookups switched off."""
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'library.sqlite'}",
        "WTF_CSRF_ENABLED": False,
        "OPENLIBRARY_LOOKUP": False,
    })
    with app.app_context():
        db.create_all()
    yield app
    shutdown(app)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def catalog(app):
    """Catalog handle inside a pushed request context."""
    with app.test_request_context():
        yield app.extensions["catalog"]


# ----- Seed Data -----

@pytest.fixture
def seeded(app):
    """
    Populate a small catalog and return the ids of what was created.

    - 2 authors (one with books, one without)
    - 2 genres (one used, one unused)
    - 2 books by the first author, one of them with two copies
    """
    with app.app_context():
        catalog = app.extensions["catalog"]
        austen = catalog.authors.create({
            "first_name": "Jane",
            "family_name": "Austen",
            "date_of_birth": date(1775, 12, 16),
            "date_of_death": date(1817, 7, 18),
        })
        loner = catalog.authors.create({
            "first_name": "Ann",
            "family_name": "Onymous",
            "date_of_birth": None,
            "date_of_death": None,
        })
        romance = catalog.genres.create({"name": "Romance"})
        poetry = catalog.genres.create({"name": "Poetry"})
        emma = catalog.books.create({
            "title": "Emma",
            "author_id": austen.id,
            "summary": "A matchmaker meddles.",
            "isbn": "9780141439587",
            "genre_ids": [romance.id],
        })
        persuasion = catalog.books.create({
            "title": "Persuasion",
            "author_id": austen.id,
            "summary": "Second chances.",
            "isbn": "9780141439686",
            "genre_ids": [romance.id],
        })
        copy_one = catalog.instances.create({
            "book_id": emma.id,
            "imprint": "Penguin 2003",
            "status": "Available",
            "due_back": None,
        })
        copy_two = catalog.instances.create({
            "book_id": emma.id,
            "imprint": "Penguin 2003",
            "status": "Loaned",
            "due_back": date(2024, 3, 15),
        })
        return {
            "austen": austen.id,
            "loner": loner.id,
            "romance": romance.id,
            "poetry": poetry.id,
            "emma": emma.id,
            "persuasion": persuasion.id,
            "copy_one": copy_one.id,
            "copy_two": copy_two.id,
        }
