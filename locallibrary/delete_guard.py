"""
Check-before-destroy workflow for entities other rows point at.

An Author or Genre with books, or a Book with copies, is never deleted. The
guard has two steps that map onto the two request verbs of a delete page:

* ``inspect`` reads the target and its dependents (safe to repeat or abandon);
* ``commit`` re-reads them and deletes only when no dependent remains.

Both steps report a missing target as ``ABSENT``; callers redirect to the
listing page and stop there.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError

from .parallel import fetch_parallel
from .repository import Catalog, Repository

logger = logging.getLogger(__name__)


class GuardState(enum.Enum):
    ABSENT = "absent"
    BLOCKED = "blocked"
    CONFIRMED_EMPTY = "confirmed-empty"
    DELETED = "deleted"


@dataclass
class GuardOutcome:
    state: GuardState
    target: Any = None
    dependents: list = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.state is GuardState.BLOCKED


class DeleteGuard:
    """
    Delete-guard for one entity type.

    ``dependents`` maps a target id to every row that references it.
    """

    def __init__(self, target_repo: Repository, dependents: Callable[[int], list], label: str):
        self.target_repo = target_repo
        self.dependents = dependents
        self.label = label

    def inspect(self, target_id: int) -> GuardOutcome:
        results = fetch_parallel(
            target=lambda: self.target_repo.get(target_id),
            dependents=lambda: self.dependents(target_id),
        )
        target, dependents = results["target"], results["dependents"]
        if target is None:
            return GuardOutcome(GuardState.ABSENT)
        if dependents:
            return GuardOutcome(GuardState.BLOCKED, target, dependents)
        return GuardOutcome(GuardState.CONFIRMED_EMPTY, target)

    def commit(self, target_id: int) -> GuardOutcome:
        outcome = self.inspect(target_id)
        if outcome.state is not GuardState.CONFIRMED_EMPTY:
            logger.info("Not deleting %s %s: %s", self.label, target_id, outcome.state.value)
            return outcome

        session = self.target_repo.session
        try:
            # A dependent added since ``inspect`` either shows up here or
            # trips the foreign key when the delete is flushed.
            dependents = self.dependents(target_id)
            if dependents:
                session.rollback()
                return GuardOutcome(GuardState.BLOCKED, outcome.target, dependents)
            deleted = self.target_repo.delete(target_id)
        except IntegrityError:
            session.rollback()
            logger.warning("Delete of %s %s raced with a new reference", self.label, target_id)
            return self.inspect(target_id)

        if not deleted:
            return GuardOutcome(GuardState.ABSENT)
        return GuardOutcome(GuardState.DELETED, outcome.target)


def author_guard(catalog: Catalog) -> DeleteGuard:
    return DeleteGuard(catalog.authors, catalog.books.find_by_author, "author")


def genre_guard(catalog: Catalog) -> DeleteGuard:
    return DeleteGuard(catalog.genres, catalog.books.find_by_genre, "genre")


def book_guard(catalog: Catalog) -> DeleteGuard:
    return DeleteGuard(catalog.books, catalog.instances.find_by_book, "book")
