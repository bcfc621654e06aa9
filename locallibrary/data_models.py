import sqlite3
from datetime import date

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()

STATUS_CHOICES = ("Available", "Maintenance", "Loaned", "Reserved")
DEFAULT_STATUS = "Maintenance"


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores FOREIGN KEY clauses unless asked per connection.
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def format_medium_date(value: date | None) -> str:
    """
    Render a date the way the catalog pages show it, e.g. 'Mar 15, 2024'.
    """
    if value is None:
        return ""
    return f"{value:%b} {value.day}, {value.year}"


book_genres = db.Table(
    "book_genres",
    db.Column("book_id", db.Integer, db.ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    db.Column("genre_id", db.Integer, db.ForeignKey("genres.id"), primary_key=True),
)


class Author(db.Model):
    """
    Author model storing names and optional life dates.
    """
    __tablename__ = 'authors'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    first_name = db.Column(db.String(100), nullable=False)
    family_name = db.Column(db.String(100), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=True)
    date_of_death = db.Column(db.Date, nullable=True)

    @property
    def name(self) -> str:
        return f"{self.family_name}, {self.first_name}"

    @property
    def lifespan(self) -> str:
        """
        Whole calendar years between birth and death.

        Only the year components are subtracted, so the value can run up to
        a year ahead of the true age. With a single date, that date is
        returned as an ISO string.
        """
        if self.date_of_birth and self.date_of_death:
            return str(self.date_of_death.year - self.date_of_birth.year)
        if self.date_of_birth:
            return self.date_of_birth.isoformat()
        if self.date_of_death:
            return self.date_of_death.isoformat()
        return ""

    @property
    def date_of_birth_formatted(self) -> str:
        return format_medium_date(self.date_of_birth)

    @property
    def date_of_death_formatted(self) -> str:
        return format_medium_date(self.date_of_death)

    @property
    def url(self) -> str:
        return f"/catalog/author/{self.id}"

    def __repr__(self):
        return f"Author(id = {self.id}, name = {self.name})"

    def __str__(self):
        return self.name


class Genre(db.Model):
    __tablename__ = 'genres'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), nullable=False)

    @property
    def url(self) -> str:
        return f"/catalog/genre/{self.id}"

    def __repr__(self):
        return f"<Genre id={self.id} name='{self.name}'>"

    def __str__(self):
        return self.name


class Book(db.Model):
    """
    Book model storing title, summary, ISBN, its author and its genres.

    ``author_id`` is the bare reference. Read paths that need ``author`` or
    ``genres`` ask a repository to populate them.
    """
    __tablename__ = 'books'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    title = db.Column(db.String(255), nullable=False)
    summary = db.Column(db.Text, nullable=False)
    isbn = db.Column(db.String(40), nullable=False)

    author_id = db.Column(db.Integer, db.ForeignKey("authors.id"), nullable=False)

    # No backrefs: deleting an author or genre must never touch books.
    author = db.relationship("Author")
    genres = db.relationship("Genre", secondary=book_genres, passive_deletes=True)

    @property
    def url(self) -> str:
        return f"/catalog/book/{self.id}"

    def __repr__(self):
        return f"<Book id={self.id} title='{self.title}'>"

    def __str__(self):
        return self.title


class BookInstance(db.Model):
    """
    A physical copy of a book, with its loan status and due date.
    """
    __tablename__ = 'book_instances'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False)
    imprint = db.Column(db.String(255), nullable=False)
    status = db.Column(
        db.Enum(*STATUS_CHOICES, name="book_instance_status", create_constraint=True),
        nullable=False,
        default=DEFAULT_STATUS,
    )
    due_back = db.Column(db.Date, nullable=False, default=date.today)

    book = db.relationship("Book")

    @property
    def due_back_formatted(self) -> str:
        return format_medium_date(self.due_back)

    @property
    def due_date_input(self) -> str:
        return self.due_back.isoformat() if self.due_back else ""

    @property
    def url(self) -> str:
        return f"/catalog/bookinstance/{self.id}"

    def __repr__(self):
        return f"<BookInstance id={self.id} book_id={self.book_id} status='{self.status}'>"
