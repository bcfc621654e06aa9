"""
Catalog pages: list, detail, create, update and delete for every entity.

Handlers fetch what a page needs (independent reads go through
``fetch_parallel``), validate submissions with the forms module, and hand
the result to a template. Validation failures and blocked deletes re-render
a page; only missing entities and storage failures become error pages.
"""
import logging

from flask import Blueprint, abort, current_app, redirect, render_template, request, url_for

from .data_models import STATUS_CHOICES
from .delete_guard import GuardState, author_guard, book_guard, genre_guard
from .forms import AuthorForm, BookForm, BookInstanceForm, GenreForm, validate_submission
from .openlibrary import fetch_summary_by_isbn
from .parallel import fetch_parallel
from .repository import Catalog, is_storable_id

logger = logging.getLogger(__name__)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/catalog")


def get_catalog() -> Catalog:
    return current_app.extensions["catalog"]


def _body_id(name: str) -> int | None:
    """Id named in the form body, or None when it cannot name a stored row."""
    value = request.form.get(name, "").strip()
    if not (value.isascii() and value.isdigit()):
        return None
    entity_id = int(value)
    return entity_id if is_storable_id(entity_id) else None


@catalog_bp.route("/")
def index():
    """
    Home page with record counts.
    """
    catalog = get_catalog()
    data = fetch_parallel(
        book_count=catalog.books.count,
        book_instance_count=catalog.instances.count,
        book_instance_available_count=lambda: catalog.instances.count(status="Available"),
        author_count=catalog.authors.count,
        genre_count=catalog.genres.count,
    )
    return render_template("index.html", title="Local Library Home", data=data)


# --- Authors ---

@catalog_bp.route("/authors")
def author_list():
    authors = get_catalog().authors.list()
    return render_template("author_list.html", title="Author List", author_list=authors)


@catalog_bp.route("/author/<int:author_id>")
def author_detail(author_id):
    catalog = get_catalog()
    results = fetch_parallel(
        author=lambda: catalog.authors.get(author_id),
        author_books=lambda: catalog.books.find_by_author(author_id),
    )
    if results["author"] is None:
        abort(404, description="Author not found")
    return render_template("author_detail.html", title="Author Detail", **results)


@catalog_bp.route("/author/create", methods=["GET", "POST"])
def author_create():
    """
    Add a new author to the catalog.
    """
    if request.method == "GET":
        return render_template("author_form.html", title="Create Author", form=AuthorForm(formdata=None))

    form = validate_submission(AuthorForm, request.form)
    errors = form.error_messages()
    if errors:
        return render_template("author_form.html", title="Create Author", form=form, errors=errors)

    author = get_catalog().authors.create(form.entity_fields())
    return redirect(author.url)


@catalog_bp.route("/author/<int:author_id>/delete", methods=["GET", "POST"])
def author_delete(author_id):
    """
    GET shows the author and any books that still reference it.
    POST deletes the author named by ``authorid`` in the form body, unless
    books still reference it.
    """
    guard = author_guard(get_catalog())
    if request.method == "GET":
        outcome = guard.inspect(author_id)
    else:
        target_id = _body_id("authorid")
        if target_id is None:
            return redirect(url_for("catalog.author_list"))
        outcome = guard.commit(target_id)

    if outcome.state in (GuardState.ABSENT, GuardState.DELETED):
        return redirect(url_for("catalog.author_list"))
    return render_template(
        "author_delete.html",
        title="Delete Author",
        author=outcome.target,
        author_books=outcome.dependents,
    )


@catalog_bp.route("/author/<int:author_id>/update", methods=["GET", "POST"])
def author_update(author_id):
    catalog = get_catalog()
    if request.method == "GET":
        author = catalog.authors.get(author_id)
        if author is None:
            abort(404, description="Author not found")
        return render_template("author_form.html", title="Update Author", form=AuthorForm.for_entity(author))

    form = validate_submission(AuthorForm, request.form)
    errors = form.error_messages()
    if errors:
        return render_template("author_form.html", title="Update Author", form=form, errors=errors)

    author = catalog.authors.replace(author_id, form.entity_fields())
    if author is None:
        abort(404, description="Author not found")
    return redirect(author.url)


# --- Genres ---

@catalog_bp.route("/genres")
def genre_list():
    genres = get_catalog().genres.list()
    return render_template("genre_list.html", title="Genre List", genre_list=genres)


@catalog_bp.route("/genre/<int:genre_id>")
def genre_detail(genre_id):
    catalog = get_catalog()
    results = fetch_parallel(
        genre=lambda: catalog.genres.get(genre_id),
        genre_books=lambda: catalog.books.find_by_genre(genre_id),
    )
    if results["genre"] is None:
        abort(404, description="Genre not found")
    return render_template("genre_detail.html", title="Genre Detail", **results)


@catalog_bp.route("/genre/create", methods=["GET", "POST"])
def genre_create():
    """
    Add a genre, or go to the existing one when the name is already taken.
    """
    if request.method == "GET":
        return render_template("genre_form.html", title="Create Genre", form=GenreForm(formdata=None))

    form = validate_submission(GenreForm, request.form)
    errors = form.error_messages()
    if errors:
        return render_template("genre_form.html", title="Create Genre", form=form, errors=errors)

    genres = get_catalog().genres
    fields = form.entity_fields()
    found = genres.find_by_name(fields["name"])
    if found is not None:
        return redirect(found.url)
    genre = genres.create(fields)
    return redirect(genre.url)


@catalog_bp.route("/genre/<int:genre_id>/delete", methods=["GET", "POST"])
def genre_delete(genre_id):
    guard = genre_guard(get_catalog())
    if request.method == "GET":
        outcome = guard.inspect(genre_id)
    else:
        target_id = _body_id("genreid")
        if target_id is None:
            return redirect(url_for("catalog.genre_list"))
        outcome = guard.commit(target_id)

    if outcome.state in (GuardState.ABSENT, GuardState.DELETED):
        return redirect(url_for("catalog.genre_list"))
    return render_template(
        "genre_delete.html",
        title="Delete Genre",
        genre=outcome.target,
        genre_books=outcome.dependents,
    )


@catalog_bp.route("/genre/<int:genre_id>/update", methods=["GET", "POST"])
def genre_update(genre_id):
    catalog = get_catalog()
    if request.method == "GET":
        genre = catalog.genres.get(genre_id)
        if genre is None:
            abort(404, description="Genre not found")
        return render_template("genre_form.html", title="Update Genre", form=GenreForm.for_entity(genre))

    form = validate_submission(GenreForm, request.form)
    errors = form.error_messages()
    if errors:
        return render_template("genre_form.html", title="Update Genre", form=form, errors=errors)

    genre = catalog.genres.replace(genre_id, form.entity_fields())
    if genre is None:
        abort(404, description="Genre not found")
    return redirect(genre.url)


# --- Books ---

def _book_choices(catalog: Catalog) -> dict:
    return fetch_parallel(authors=catalog.authors.list, genres=catalog.genres.list)


@catalog_bp.route("/books")
def book_list():
    books = get_catalog().books.list_populated()
    return render_template("book_list.html", title="Book List", book_list=books)


@catalog_bp.route("/book/<int:book_id>")
def book_detail(book_id):
    catalog = get_catalog()
    results = fetch_parallel(
        book=lambda: catalog.books.get_populated(book_id),
        book_instances=lambda: catalog.instances.find_by_book(book_id),
    )
    if results["book"] is None:
        abort(404, description="Book not found")
    return render_template("book_detail.html", title="Book Detail", **results)


@catalog_bp.route("/book/create", methods=["GET", "POST"])
def book_create():
    """
    Add a new book.

    ``?isbn=`` on the GET form pre-fills the summary from Open Library when
    lookups are enabled.
    """
    catalog = get_catalog()
    choices = _book_choices(catalog)

    if request.method == "GET":
        initial = {}
        isbn = request.args.get("isbn", "").strip()
        if isbn:
            initial["isbn"] = isbn
            if current_app.config["OPENLIBRARY_LOOKUP"]:
                summary = fetch_summary_by_isbn(isbn, timeout=current_app.config["OPENLIBRARY_TIMEOUT"])
                if summary:
                    initial["summary"] = summary
        form = BookForm(formdata=None, data=initial, **choices)
        return render_template("book_form.html", title="Create Book", form=form, **choices)

    form = validate_submission(BookForm, request.form, **choices)
    errors = form.error_messages()
    if errors:
        return render_template("book_form.html", title="Create Book", form=form, errors=errors, **choices)

    book = catalog.books.create(form.entity_fields())
    return redirect(book.url)


@catalog_bp.route("/book/<int:book_id>/delete", methods=["GET", "POST"])
def book_delete(book_id):
    guard = book_guard(get_catalog())
    if request.method == "GET":
        outcome = guard.inspect(book_id)
    else:
        target_id = _body_id("bookid")
        if target_id is None:
            return redirect(url_for("catalog.book_list"))
        outcome = guard.commit(target_id)

    if outcome.state in (GuardState.ABSENT, GuardState.DELETED):
        return redirect(url_for("catalog.book_list"))
    return render_template(
        "book_delete.html",
        title="Delete Book",
        book=outcome.target,
        book_instances=outcome.dependents,
    )


@catalog_bp.route("/book/<int:book_id>/update", methods=["GET", "POST"])
def book_update(book_id):
    catalog = get_catalog()
    if request.method == "GET":
        results = fetch_parallel(
            book=lambda: catalog.books.get_populated(book_id),
            authors=catalog.authors.list,
            genres=catalog.genres.list,
        )
        book = results.pop("book")
        if book is None:
            abort(404, description="Book not found")
        form = BookForm.for_entity(book, **results)
        return render_template("book_form.html", title="Update Book", form=form, **results)

    choices = _book_choices(catalog)
    form = validate_submission(BookForm, request.form, **choices)
    errors = form.error_messages()
    if errors:
        return render_template("book_form.html", title="Update Book", form=form, errors=errors, **choices)

    book = catalog.books.replace(book_id, form.entity_fields())
    if book is None:
        abort(404, description="Book not found")
    return redirect(book.url)


# --- Book instances ---

@catalog_bp.route("/bookinstances")
def bookinstance_list():
    instances = get_catalog().instances.list_populated()
    return render_template("bookinstance_list.html", title="Book Instance List", bookinstance_list=instances)


@catalog_bp.route("/bookinstance/<int:instance_id>")
def bookinstance_detail(instance_id):
    instance = get_catalog().instances.get_populated(instance_id)
    if instance is None:
        abort(404, description="Book instance not found")
    return render_template("bookinstance_detail.html", title=f"Copy: {instance.book.title}", bookinstance=instance)


def _render_instance_form(title, form, books, errors=None):
    return render_template(
        "bookinstance_form.html",
        title=title,
        form=form,
        book_list=books,
        statuses=STATUS_CHOICES,
        errors=errors,
    )


@catalog_bp.route("/bookinstance/create", methods=["GET", "POST"])
def bookinstance_create():
    catalog = get_catalog()
    books = catalog.books.list()
    if request.method == "GET":
        return _render_instance_form("Create Book Instance", BookInstanceForm(formdata=None, books=books), books)

    form = validate_submission(BookInstanceForm, request.form, books=books)
    errors = form.error_messages()
    if errors:
        return _render_instance_form("Create Book Instance", form, books, errors)

    instance = catalog.instances.create(form.entity_fields())
    return redirect(instance.url)


@catalog_bp.route("/bookinstance/<int:instance_id>/delete", methods=["GET", "POST"])
def bookinstance_delete(instance_id):
    """
    Copies have no dependents, so there is nothing to guard: GET asks for
    confirmation and POST deletes.
    """
    catalog = get_catalog()
    if request.method == "GET":
        instance = catalog.instances.get_populated(instance_id)
        if instance is None:
            return redirect(url_for("catalog.bookinstance_list"))
        return render_template("bookinstance_delete.html", title="Delete Book Instance", bookinstance=instance)

    target_id = _body_id("bookinstanceid")
    if target_id is not None:
        catalog.instances.delete(target_id)
    return redirect(url_for("catalog.bookinstance_list"))


@catalog_bp.route("/bookinstance/<int:instance_id>/update", methods=["GET", "POST"])
def bookinstance_update(instance_id):
    catalog = get_catalog()
    books = catalog.books.list()
    if request.method == "GET":
        instance = catalog.instances.get(instance_id)
        if instance is None:
            abort(404, description="Book instance not found")
        return _render_instance_form("Update Book Instance", BookInstanceForm.for_entity(instance, books=books), books)

    form = validate_submission(BookInstanceForm, request.form, books=books)
    errors = form.error_messages()
    if errors:
        return _render_instance_form("Update Book Instance", form, books, errors)

    instance = catalog.instances.replace(instance_id, form.entity_fields())
    if instance is None:
        abort(404, description="Book instance not found")
    return redirect(instance.url)
