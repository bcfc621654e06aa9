"""
Per-entity accessors over the catalog tables.

Every read that needs a referenced entity says so: ``get`` returns the bare
row with reference ids only, ``get_populated`` joins the referenced rows in
the same query. Rows returned by a repository running inside a parallel
fetch are detached as soon as the worker finishes, so anything a template
needs must be populated up front.
"""
import logging
from typing import Any, Iterable, Mapping

from sqlalchemy import func, select
from sqlalchemy.orm import joinedload, selectinload

from .data_models import Author, Book, BookInstance, Genre

logger = logging.getLogger(__name__)

# SQLite INTEGER primary keys are signed 64-bit.
MAX_ID = 2**63 - 1


def is_storable_id(value) -> bool:
    return isinstance(value, int) and 0 < value <= MAX_ID


class Repository:
    """Find/insert/replace/delete for one model class."""

    model: type = None
    fields: tuple[str, ...] = ()
    default_order: tuple = ()

    def __init__(self, session):
        self.session = session

    def get(self, entity_id: int):
        if not is_storable_id(entity_id):
            return None
        return self.session.get(self.model, entity_id)

    def list(self, *order_by):
        stmt = select(self.model).order_by(*(order_by or self.default_order))
        return list(self.session.scalars(stmt))

    def find(self, **filters):
        stmt = select(self.model).filter_by(**filters).order_by(*self.default_order)
        return list(self.session.scalars(stmt))

    def find_one(self, **filters):
        stmt = select(self.model).filter_by(**filters).limit(1)
        return self.session.scalars(stmt).first()

    def count(self, **filters) -> int:
        stmt = select(func.count()).select_from(self.model).filter_by(**filters)
        return self.session.scalar(stmt)

    def build(self, fields: Mapping[str, Any]):
        self._check_fields(fields)
        entity = self.model()
        self._assign(entity, fields)
        return entity

    def insert(self, entity):
        self.session.add(entity)
        self.session.commit()
        logger.info("Created %r", entity)
        return entity

    def create(self, fields: Mapping[str, Any]):
        return self.insert(self.build(fields))

    def replace(self, entity_id: int, fields: Mapping[str, Any]):
        """
        Overwrite every editable field of a stored row.

        Returns the updated row, or None when the id does not exist.
        """
        self._check_fields(fields)
        entity = self.get(entity_id)
        if entity is None:
            return None
        self._assign(entity, fields)
        self.session.commit()
        logger.info("Replaced %r", entity)
        return entity

    def delete(self, entity_id: int) -> bool:
        entity = self.get(entity_id)
        if entity is None:
            return False
        self.session.delete(entity)
        self.session.commit()
        logger.info("Deleted %s %s", self.model.__name__, entity_id)
        return True

    def _assign(self, entity, fields: Mapping[str, Any]) -> None:
        for key, value in fields.items():
            setattr(entity, key, value)

    def _check_fields(self, fields: Mapping[str, Any]) -> None:
        # Updates replace the whole record, never a subset of it.
        missing = set(self.fields) - set(fields)
        unknown = set(fields) - set(self.fields)
        if missing or unknown:
            raise ValueError(
                f"{self.model.__name__} needs exactly {sorted(self.fields)}; "
                f"missing {sorted(missing)}, unknown {sorted(unknown)}"
            )


class AuthorRepository(Repository):
    model = Author
    fields = ("first_name", "family_name", "date_of_birth", "date_of_death")
    default_order = (Author.family_name.asc(), Author.first_name.asc())


class GenreRepository(Repository):
    model = Genre
    fields = ("name",)
    default_order = (Genre.name.asc(),)

    def find_by_name(self, name: str):
        return self.find_one(name=name)


class BookRepository(Repository):
    model = Book
    fields = ("title", "author_id", "summary", "isbn", "genre_ids")
    default_order = (Book.title.asc(),)

    def _populated(self):
        return select(Book).options(joinedload(Book.author), selectinload(Book.genres))

    def get_populated(self, entity_id: int):
        if not is_storable_id(entity_id):
            return None
        stmt = self._populated().where(Book.id == entity_id)
        return self.session.scalars(stmt).first()

    def list_populated(self):
        stmt = self._populated().order_by(*self.default_order)
        return list(self.session.scalars(stmt))

    def find_by_author(self, author_id: int):
        if not is_storable_id(author_id):
            return []
        return self.find(author_id=author_id)

    def find_by_genre(self, genre_id: int):
        if not is_storable_id(genre_id):
            return []
        stmt = (
            select(Book)
            .where(Book.genres.any(Genre.id == genre_id))
            .order_by(*self.default_order)
        )
        return list(self.session.scalars(stmt))

    def _assign(self, entity, fields: Mapping[str, Any]) -> None:
        values = dict(fields)
        entity.genres = self._genres(values.pop("genre_ids"))
        super()._assign(entity, values)

    def _genres(self, genre_ids: Iterable[int]):
        ids = [genre_id for genre_id in genre_ids if is_storable_id(genre_id)]
        if not ids:
            return []
        stmt = select(Genre).where(Genre.id.in_(ids)).order_by(Genre.name.asc())
        return list(self.session.scalars(stmt))


class BookInstanceRepository(Repository):
    model = BookInstance
    fields = ("book_id", "imprint", "status", "due_back")
    default_order = (BookInstance.id.asc(),)

    def _populated(self):
        return select(BookInstance).options(joinedload(BookInstance.book))

    def get_populated(self, entity_id: int):
        if not is_storable_id(entity_id):
            return None
        stmt = self._populated().where(BookInstance.id == entity_id)
        return self.session.scalars(stmt).first()

    def list_populated(self):
        stmt = self._populated().order_by(*self.default_order)
        return list(self.session.scalars(stmt))

    def find_by_book(self, book_id: int):
        if not is_storable_id(book_id):
            return []
        return self.find(book_id=book_id)

    def _assign(self, entity, fields: Mapping[str, Any]) -> None:
        values = dict(fields)
        # An absent due date falls back to the column default (today).
        if values.get("due_back") is None:
            values.pop("due_back", None)
        super()._assign(entity, values)


class Catalog:
    """
    Storage handle for the whole catalog.

    Built once per application from an explicit session object and passed to
    whatever needs the store.
    """

    def __init__(self, session):
        self.session = session
        self.authors = AuthorRepository(session)
        self.genres = GenreRepository(session)
        self.books = BookRepository(session)
        self.instances = BookInstanceRepository(session)

    def rollback(self) -> None:
        self.session.rollback()
