"""
test_parallel.py
----------------
Tests for running independent reads concurrently.
"""
# --- Standard library imports ---
import threading

# --- Third-party imports ---
import pytest
from flask import current_app

# --- Local imports ---
from locallibrary.parallel import fetch_parallel


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield


@pytest.mark.usefixtures("app_ctx")
class TestFetchParallel:
    def test_results_are_keyed_by_name(self):
        assert fetch_parallel(a=lambda: 1, b=lambda: "two") == {"a": 1, "b": "two"}

    def test_no_queries(self):
        assert fetch_parallel() == {}

    def test_queries_see_the_application(self, app):
        assert fetch_parallel(name=lambda: current_app.name) == {"name": app.name}

    def test_queries_overlap(self):
        # Both queries wait for each other; sequential execution would time out.
        barrier = threading.Barrier(2, timeout=5)
        results = fetch_parallel(left=barrier.wait, right=barrier.wait)
        assert sorted(results.values()) == [0, 1]

    def test_first_error_is_raised(self):
        def broken():
            raise LookupError("no such shelf")

        with pytest.raises(LookupError, match="no such shelf"):
            fetch_parallel(ok=lambda: 1, broken=broken)


def test_storage_reads(catalog, seeded):
    results = fetch_parallel(
        author=lambda: catalog.authors.get(seeded["austen"]),
        books=lambda: catalog.books.find_by_author(seeded["austen"]),
    )
    assert results["author"].name == "Austen, Jane"
    assert sorted(book.title for book in results["books"]) == ["Emma", "Persuasion"]
