"""
Book summaries from Open Library, used to pre-fill the book form by ISBN.

Lookups never raise: any network, status or JSON problem yields None.
"""
import logging

import requests

logger = logging.getLogger(__name__)

OPENLIBRARY_URL = "https://openlibrary.org"

# Reuse one HTTP session for better performance and to set consistent headers.
SESSION = requests.Session()
SESSION.headers.update({
    "User-Agent": "LocalLibrary/1.0 (catalog staff tool)",
    "Accept": "application/json",
})


def normalize_isbn(isbn: str) -> str:
    """ISBN as typed on the book form, with the spaces and hyphens Open Library rejects removed."""
    return "".join((isbn or "").split()).replace("-", "")


def extract_summary(record: dict) -> str | None:
    """
    Summary text of an edition or work record, or None when it has none.

    Open Library stores ``description`` either as plain text or as a typed
    ``{"type": "/type/text", "value": ...}`` object.
    """
    description = record.get("description")
    if isinstance(description, dict):
        description = description.get("value")
    if not isinstance(description, str):
        return None
    return description.strip() or None


def _get_json(url: str, timeout: float):
    try:
        r = SESSION.get(url, timeout=timeout)
        if r.status_code != 200:
            logger.info("Open Library returned %s for %s", r.status_code, url)
            return None
        return r.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Open Library lookup failed for %s: %s", url, exc)
        return None


def fetch_summary_by_isbn(isbn: str, timeout: float = 8) -> str | None:
    """
    Fetch a book summary from Open Library using ISBN.

    Strategy:
    1) Try edition endpoint: (/isbn/{isbn}.json)
    2) If missing, fallback to the linked Work: /works/{id}.json
    """
    isbn = normalize_isbn(isbn)
    if not isbn:
        return None

    # --- 1) Edition ---
    edition = _get_json(f"{OPENLIBRARY_URL}/isbn/{isbn}.json", timeout)
    if not isinstance(edition, dict):
        return None

    summary = extract_summary(edition)
    if summary:
        return summary

    # --- 2) Work fallback ---
    works = edition.get("works") or []
    if works and isinstance(works, list) and isinstance(works[0], dict) and "key" in works[0]:
        work = _get_json(f"{OPENLIBRARY_URL}{works[0]['key']}.json", timeout)
        if isinstance(work, dict):
            return extract_summary(work)

    return None
