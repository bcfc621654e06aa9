"""
Form validation and sanitization for catalog submissions.

Each form strips its text fields, runs every field's rules (errors are
collected for all fields, never just the first one), and HTML-escapes the
strings that end up in the database. A view only persists a submission when
``form.error_messages()`` is empty; otherwise it re-renders the bound form, which
still carries the submitted values and ``form.error_messages()``.
"""
from datetime import datetime
from typing import Any, Iterable, Mapping

from flask_wtf import FlaskForm
from markupsafe import Markup, escape
from werkzeug.datastructures import MultiDict
from wtforms import DateField, Field, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Length, Optional, Regexp, ValidationError

from .data_models import DEFAULT_STATUS, STATUS_CHOICES

ISO_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S.%f")
ALPHANUMERIC = r"^[A-Za-z0-9]+$"


def parse_date(date_str: str):
    """
    Parse an ISO-8601 date (or date-time) string into a datetime.date.

    Returns:
         datetime.date, or None for empty input.

    Raises:
        ValueError: the string is not a valid calendar date.
    """
    date_str = (date_str or "").strip()
    if not date_str:
        return None
    for fmt in ISO_DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"not an ISO-8601 date: {date_str!r}")


def normalize_selection(raw) -> list:
    """
    Turn a multi-select submission into a list.

    The raw value is one of three shapes: absent (None), a single scalar
    selection, or a collection of selections.

    >>> normalize_selection(None)
    []
    >>> normalize_selection("Fiction")
    ['Fiction']
    >>> normalize_selection(["Fiction", "Poetry"])
    ['Fiction', 'Poetry']
    """
    if raw is None:
        return []
    if isinstance(raw, (str, bytes, int)):
        return [raw]
    return list(raw)


def formdata_from_mapping(raw: Mapping[str, Any], multi_fields: Iterable[str] = ()) -> MultiDict:
    """
    Build WTForms form data from any mapping of field name to raw input.

    Fields named in ``multi_fields`` keep all their values; every other field
    keeps only its first value.
    """
    multi_fields = set(multi_fields)
    formdata = MultiDict()
    for key in raw.keys():
        if hasattr(raw, "getlist"):
            values = raw.getlist(key)
        else:
            values = normalize_selection(raw[key])
        if key not in multi_fields:
            values = values[:1]
        for value in values:
            formdata.add(key, value)
    return formdata


def strip_filter(value):
    return value.strip() if isinstance(value, str) else value


def escape_text(value):
    return str(escape(value)) if isinstance(value, str) else value


def unescape(value):
    """Undo ``escape_text`` so stored text can be edited again."""
    return Markup(value).unescape() if isinstance(value, str) else value


class IsoDateField(DateField):
    """
    Optional ISO-8601 date input.

    Empty input means no date. Anything else that does not parse is reported
    with ``invalid_message``.
    """

    def __init__(self, label=None, validators=None, invalid_message="Invalid date", **kwargs):
        super().__init__(label, validators, **kwargs)
        self.invalid_message = invalid_message

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        raw = " ".join(valuelist).strip()
        if not raw:
            self.data = None
            return
        try:
            self.data = parse_date(raw)
        except ValueError:
            self.data = None
            raise ValueError(self.invalid_message)


class SelectionField(Field):
    """
    Multi-valued reference field holding a list of id strings.
    """

    def process_data(self, value):
        self.data = [str(v) for v in normalize_selection(value)]

    def process_formdata(self, valuelist):
        self.data = [str(strip_filter(v)) for v in normalize_selection(valuelist)]


class CatalogForm(FlaskForm):
    multi_fields: tuple[str, ...] = ()

    def error_messages(self) -> list[str]:
        """All field errors, in field order."""
        return [message for field in self for message in field.errors]

    @classmethod
    def initial_data(cls, entity) -> dict:
        """
        Field values for editing ``entity``, keyed by form field name.

        Every form that backs an update page overrides this; ``for_entity``
        is only usable on those forms.
        """
        raise NotImplementedError(f"{cls.__name__} has no update page")

    @classmethod
    def for_entity(cls, entity, **kwargs):
        """Unbound form pre-filled from a stored entity, for update pages."""
        return cls(formdata=None, data=cls.initial_data(entity), **kwargs)


def _check_reference(field, choices, message):
    if choices is None:
        return
    if field.data not in {str(choice.id) for choice in choices}:
        raise ValidationError(message)


class AuthorForm(CatalogForm):
    first_name = StringField(
        "First name",
        filters=[strip_filter],
        validators=[
            DataRequired("First name must be specified"),
            Length(max=100, message="First name must be at most 100 characters"),
            Regexp(ALPHANUMERIC, message="First name has non-alphanumeric characters"),
        ],
    )
    family_name = StringField(
        "Family name",
        filters=[strip_filter],
        validators=[
            DataRequired("Family name must be specified"),
            Length(max=100, message="Family name must be at most 100 characters"),
            Regexp(ALPHANUMERIC, message="Family name has non-alphanumeric characters"),
        ],
    )
    date_of_birth = IsoDateField(
        "Date of birth", validators=[Optional()], invalid_message="Invalid date of birth"
    )
    date_of_death = IsoDateField(
        "Date of death", validators=[Optional()], invalid_message="Invalid date of death"
    )

    @classmethod
    def initial_data(cls, author) -> dict:
        return {
            "first_name": unescape(author.first_name),
            "family_name": unescape(author.family_name),
            "date_of_birth": author.date_of_birth,
            "date_of_death": author.date_of_death,
        }

    def entity_fields(self) -> dict:
        return {
            "first_name": escape_text(self.first_name.data),
            "family_name": escape_text(self.family_name.data),
            "date_of_birth": self.date_of_birth.data,
            "date_of_death": self.date_of_death.data,
        }


class GenreForm(CatalogForm):
    name = StringField(
        "Genre",
        filters=[strip_filter],
        validators=[
            DataRequired("Genre name must not be empty"),
            Length(max=100, message="Genre name must be at most 100 characters"),
        ],
    )

    @classmethod
    def initial_data(cls, genre) -> dict:
        return {"name": unescape(genre.name)}

    def entity_fields(self) -> dict:
        return {"name": escape_text(self.name.data)}


class BookForm(CatalogForm):
    multi_fields = ("genre",)

    title = StringField("Title", filters=[strip_filter], validators=[DataRequired("Title must not be empty")])
    author = StringField("Author", filters=[strip_filter], validators=[DataRequired("Author must not be empty")])
    summary = TextAreaField("Summary", filters=[strip_filter], validators=[DataRequired("Summary must not be empty")])
    isbn = StringField("ISBN", filters=[strip_filter], validators=[DataRequired("ISBN must not be empty")])
    genre = SelectionField("Genre", default=())

    def __init__(self, *args, authors=None, genres=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.author_choices = authors
        self.genre_choices = genres

    def validate_author(self, field):
        _check_reference(field, self.author_choices, "Author must be one of the listed authors")

    def validate_genre(self, field):
        for value in field.data:
            if not value.isdigit():
                raise ValidationError("Invalid genre")
        if self.genre_choices is not None:
            known = {str(genre.id) for genre in self.genre_choices}
            if not set(field.data) <= known:
                raise ValidationError("Genre must be one of the listed genres")

    @classmethod
    def initial_data(cls, book) -> dict:
        return {
            "title": unescape(book.title),
            "author": str(book.author_id),
            "summary": unescape(book.summary),
            "isbn": unescape(book.isbn),
            "genre": [genre.id for genre in book.genres],
        }

    def entity_fields(self) -> dict:
        return {
            "title": escape_text(self.title.data),
            "author_id": int(self.author.data),
            "summary": escape_text(self.summary.data),
            "isbn": escape_text(self.isbn.data),
            "genre_ids": [int(value) for value in self.genre.data],
        }


class BookInstanceForm(CatalogForm):
    book = StringField("Book", filters=[strip_filter], validators=[DataRequired("Book must be specified")])
    imprint = StringField("Imprint", filters=[strip_filter], validators=[DataRequired("Imprint must not be empty")])
    status = StringField(
        "Status",
        default=DEFAULT_STATUS,
        filters=[strip_filter],
        validators=[AnyOf(STATUS_CHOICES, message="Invalid status")],
    )
    due_back = IsoDateField("Date when book available", validators=[Optional()], invalid_message="Invalid date")

    def __init__(self, *args, books=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.book_choices = books

    def validate_book(self, field):
        _check_reference(field, self.book_choices, "Book must be one of the listed books")

    @classmethod
    def initial_data(cls, instance) -> dict:
        return {
            "book": str(instance.book_id),
            "imprint": unescape(instance.imprint),
            "status": instance.status,
            "due_back": instance.due_back,
        }

    def entity_fields(self) -> dict:
        return {
            "book_id": int(self.book.data),
            "imprint": escape_text(self.imprint.data),
            "status": self.status.data,
            "due_back": self.due_back.data,
        }


def validate_submission(form_cls, raw: Mapping[str, Any], **kwargs):
    """
    Bind raw submitted values to ``form_cls`` and validate them.

    Returns the bound form. The submission may be persisted only when
    ``form.error_messages()`` is empty.
    """
    form = form_cls(formdata=formdata_from_mapping(raw, form_cls.multi_fields), **kwargs)
    form.validate()
    return form
