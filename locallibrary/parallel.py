"""
Run independent catalog reads side by side.

Each query runs on a worker thread inside its own application context, which
gives it its own scoped session. The caller blocks until every query is done.
If any of them raises, the first exception to surface is re-raised and the
other results are dropped; nothing is retried or cancelled.
"""
import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable

from flask import current_app

logger = logging.getLogger(__name__)


def fetch_parallel(**queries: Callable[[], Any]) -> dict[str, Any]:
    """
    Call every zero-argument query concurrently and collect the results.

    >>> fetch_parallel(author=lambda: catalog.authors.get(1),
    ...                books=lambda: catalog.books.find_by_author(1))
    {'author': <Author ...>, 'books': [...]}
    """
    if not queries:
        return {}

    app = current_app._get_current_object()

    def run(query):
        with app.app_context():
            return query()

    with ThreadPoolExecutor(max_workers=len(queries)) as pool:
        futures = {pool.submit(run, query): name for name, query in queries.items()}
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)

        for future in done:
            error = future.exception()
            if error is not None:
                logger.error("Parallel query %r failed: %s", futures[future], error)
                raise error

    return {name: future.result() for future, name in futures.items()}
