"""Due-Set Selector

Merges candidates from the curriculum and personal pools into one ordered
review queue: never-reviewed items first, then the least-mastered, with the
pool-qualified item key as tiebreaker so the order is reproducible.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterable
from uuid import UUID

from core.errors import AppError, Ok, Result, sequence_results
from core.logging import srs_logger
from engines.scheduling import mastery_rank
from engines.types import DueItem, ReviewState, Scope

if TYPE_CHECKING:
    from engines.repository import ReviewRepository

log = srs_logger()


def is_due(state: ReviewState | None, now: datetime) -> bool:
    """Never-reviewed items are always due."""
    if state is None or state.next_review_at is None:
        return True
    return state.next_review_at <= now


def _order_key(entry: DueItem) -> tuple[int, float, str]:
    reviewed = entry.state is not None
    return (int(reviewed), mastery_rank(entry.state) if reviewed else 0.0, entry.key)


def select_due(
    candidate_lists: Iterable[Iterable[DueItem]],
    now: datetime,
    limit: int | None = None,
) -> list[DueItem]:
    """Merge, de-duplicate and order due candidates.

    The first occurrence of a key wins. ``limit`` truncates after ordering.
    """
    seen: set[str] = set()
    due: list[DueItem] = []
    for candidates in candidate_lists:
        for entry in candidates:
            if entry.key in seen:
                continue
            seen.add(entry.key)
            if is_due(entry.state, now):
                due.append(entry)

    due.sort(key=_order_key)
    if limit is not None:
        due = due[:max(limit, 0)]
    return due


async def fetch_due_set(
    repository: ReviewRepository,
    user_id: UUID | None,
    scope: Scope,
    now: datetime,
    limit: int | None = None,
) -> Result[list[DueItem], AppError]:
    """Load and order the due set for a learner.

    Unauthenticated callers get an empty set rather than an error.
    """
    if user_id is None:
        log.debug("due_set_unauthenticated")
        return Ok([])

    results = [
        await repository.get_due_items(user_id, pool, now)
        for pool in scope.pools
    ]
    return sequence_results(results).map(
        lambda lists: select_due(lists, now, limit)
    )
