"""Review Session Controller

Drives one pass over a learner's due set:

    NOT_STARTED → IN_PROGRESS → COMPLETE

The due set is snapshotted at ``start()`` and never changes underneath the
session. Each submission reads the item's current state, applies the item
pool's scheduling strategy and persists the result before the session moves
on; a failed write leaves index and stats untouched so the same item can be
submitted again. The streak is updated after the review write and never
rolls it back: a failed streak write is reported and can be retried.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable
from uuid import UUID, uuid4

from core.config import settings
from core.errors import (
    AppError,
    Err,
    Ok,
    Result,
    operation_not_allowed,
    precondition_failed,
    state_conflict,
)
from core.logging import session_logger
from engines.due import fetch_due_set
from engines.exercises import Exercise, build_exercise
from engines.repository import ReviewRepository
from engines.scheduling import (
    SchedulingStrategy,
    ScheduleOutcome,
    mastery_stage,
    parse_grade,
    strategy_for,
)
from engines.streak import update_streak
from engines.types import (
    DueItem,
    Grade,
    Item,
    ItemPool,
    ReviewResult,
    ReviewState,
    Scope,
    Stage,
    Streak,
)

log = session_logger()

ORIGIN = "engines.session"


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class SessionStats:
    total: int = 0
    correct: int = 0
    incorrect: int = 0

    def record(self, passed: bool) -> SessionStats:
        if passed:
            return replace(self, total=self.total + 1, correct=self.correct + 1)
        return replace(self, total=self.total + 1, incorrect=self.incorrect + 1)

    @property
    def accuracy(self) -> int:
        return round(self.correct / self.total * 100) if self.total else 0


@dataclass(frozen=True, slots=True)
class ReviewCard:
    """What the learner is looking at right now."""
    item: Item
    state: ReviewState | None
    stage: Stage
    exercise: Exercise
    position: int
    total: int


@dataclass(frozen=True, slots=True)
class SubmitOutcome:
    item_key: str
    grade: Grade
    passed: bool
    state: ReviewState
    next_review_at: datetime
    stats: SessionStats
    status: SessionStatus
    streak: Streak | None = None
    streak_error: AppError | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewSession:
    """One learner's pass over their due items."""

    def __init__(
        self,
        repository: ReviewRepository,
        user_id: UUID | None,
        scope: Scope = Scope.BOTH,
        *,
        strategies: Callable[[ItemPool], SchedulingStrategy] = strategy_for,
        distractor_count: int | None = None,
        limit: int | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utcnow,
        session_id: str | None = None,
    ):
        self.id = session_id or str(uuid4())
        self.user_id = user_id
        self.scope = scope
        self._repository = repository
        self._strategies = strategies
        self._distractor_count = settings.DISTRACTOR_COUNT if distractor_count is None else distractor_count
        self._limit = settings.SESSION_MAX_ITEMS if limit is None else limit
        self._rng = rng or random.Random()
        self._clock = clock
        self._lock = asyncio.Lock()

        self._status = SessionStatus.NOT_STARTED
        self._items: tuple[DueItem, ...] = ()
        self._pool: tuple[Item, ...] = ()
        self._index = 0
        self._stats = SessionStats()
        self._card: ReviewCard | None = None
        self._streak: Streak | None = None
        self._streak_pending_at: datetime | None = None

    # ─── read-only views ───────────────────────────────────────────────────

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def items(self) -> tuple[DueItem, ...]:
        return self._items

    @property
    def index(self) -> int:
        return self._index

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def remaining(self) -> int:
        return max(len(self._items) - self._index, 0)

    @property
    def streak(self) -> Streak | None:
        return self._streak

    @property
    def streak_pending(self) -> bool:
        return self._streak_pending_at is not None

    @property
    def current(self) -> ReviewCard | None:
        """Card for the current item; built once per item so re-reads are stable."""
        if self._status is not SessionStatus.IN_PROGRESS:
            return None
        if self._card is None:
            entry = self._items[self._index]
            stage = mastery_stage(entry.state)
            self._card = ReviewCard(
                item=entry.item,
                state=entry.state,
                stage=stage,
                exercise=build_exercise(entry.item, stage, self._pool, self._distractor_count, self._rng),
                position=self._index,
                total=len(self._items),
            )
        return self._card

    # ─── transitions ───────────────────────────────────────────────────────

    def _busy(self, operation: str) -> Err[AppError] | None:
        if self._lock.locked():
            log.warning("session_busy", session_id=self.id, operation=operation)
            return operation_not_allowed(operation, "another operation is in flight", origin=ORIGIN)
        return None

    def _require_in_progress(self) -> Err[AppError] | None:
        if self._status is not SessionStatus.IN_PROGRESS:
            return state_conflict(
                "ReviewSession", self._status.value, SessionStatus.IN_PROGRESS.value, origin=ORIGIN
            )
        return None

    async def start(self) -> Result[ReviewCard | None, AppError]:
        """Snapshot the due set and show the first card.

        Allowed before the first run and again after completion.
        """
        if busy := self._busy("start"):
            return busy
        async with self._lock:
            if self._status is SessionStatus.IN_PROGRESS:
                return state_conflict(
                    "ReviewSession",
                    self._status.value,
                    f"{SessionStatus.NOT_STARTED.value} or {SessionStatus.COMPLETE.value}",
                    origin=ORIGIN,
                )

            now = self._clock()
            match await fetch_due_set(self._repository, self.user_id, self.scope, now, self._limit):
                case Err(error):
                    log.warning("session_start_failed", session_id=self.id, code=error.code.name)
                    return Err(error)
                case Ok(due):
                    items = tuple(due)

            pool: tuple[Item, ...] = ()
            if items:
                match await self._repository.get_distractor_pool(self.user_id):
                    case Ok(candidates):
                        pool = tuple(candidates)
                    case Err(error):
                        log.warning("distractor_pool_unavailable", session_id=self.id, code=error.code.name)
                        pool = tuple(entry.item for entry in items)

            self._items = items
            self._pool = pool
            self._index = 0
            self._stats = SessionStats()
            self._card = None
            self._status = SessionStatus.IN_PROGRESS if items else SessionStatus.COMPLETE

            log.info("session_started", session_id=self.id, items=len(items), scope=self.scope.value)
            return Ok(self.current)

    async def submit(self, grade: Grade | str) -> Result[SubmitOutcome, AppError]:
        """Grade the current item, persist it and move on."""
        if busy := self._busy("submit"):
            return busy
        async with self._lock:
            if conflict := self._require_in_progress():
                return conflict

            grade = parse_grade(grade)
            entry = self._items[self._index]
            strategy = self._strategies(entry.item.pool)
            now = self._clock()

            match await self._persist(entry, lambda state: strategy.transition(grade, state, now)):
                case Err(error):
                    return Err(error)
                case Ok(outcome):
                    pass

            self._stats = self._stats.record(outcome.passed)
            return Ok(await self._finish_item(entry, grade, outcome, now))

    async def complete_intro(self) -> Result[SubmitOutcome, AppError]:
        """Mark the intro of a NEW item as seen.

        Scheduled like a correct answer but not counted in session stats.
        """
        if busy := self._busy("complete_intro"):
            return busy
        async with self._lock:
            if conflict := self._require_in_progress():
                return conflict

            entry = self._items[self._index]
            strategy = self._strategies(entry.item.pool)
            now = self._clock()

            def introduce(state: ReviewState | None) -> ScheduleOutcome | Err[AppError]:
                if mastery_stage(state) is not Stage.NEW:
                    return precondition_failed("item is NEW", f"{entry.key} was already introduced", origin=ORIGIN)
                return strategy.introduce(state, now)

            match await self._persist(entry, introduce):
                case Err(error):
                    return Err(error)
                case Ok(outcome):
                    pass

            return Ok(await self._finish_item(entry, ReviewResult.CORRECT, outcome, now))

    async def retry_streak(self) -> Result[Streak | None, AppError]:
        """Re-attempt a streak update that failed after a successful review."""
        if busy := self._busy("retry_streak"):
            return busy
        async with self._lock:
            if self._streak_pending_at is None:
                return Ok(self._streak)
            streak, error = await self._record_streak(self._streak_pending_at)
            if error is not None:
                return Err(error)
            return Ok(streak)

    # ─── internals ─────────────────────────────────────────────────────────

    async def _persist(
        self,
        entry: DueItem,
        schedule: Callable[[ReviewState | None], ScheduleOutcome | Err[AppError]],
    ) -> Result[ScheduleOutcome, AppError]:
        match await self._repository.get_review_state(self.user_id, entry.key):
            case Err(error):
                log.warning("review_state_read_failed", session_id=self.id, item_key=entry.key, code=error.code.name)
                return Err(error)
            case Ok(fresh):
                pass

        outcome = schedule(fresh)
        if isinstance(outcome, Err):
            return outcome

        match await self._repository.upsert_review_state(self.user_id, entry.key, outcome.state):
            case Err(error):
                log.warning("review_state_write_failed", session_id=self.id, item_key=entry.key, code=error.code.name)
                return Err(error)
        return Ok(outcome)

    async def _finish_item(
        self, entry: DueItem, grade: Grade, outcome: ScheduleOutcome, now: datetime
    ) -> SubmitOutcome:
        streak, streak_error = await self._record_streak(now)

        self._index += 1
        self._card = None
        if self._index >= len(self._items):
            self._status = SessionStatus.COMPLETE
            log.info(
                "session_complete",
                session_id=self.id,
                total=self._stats.total,
                correct=self._stats.correct,
            )

        log.debug("item_reviewed", session_id=self.id, item_key=entry.key, grade=grade.value, passed=outcome.passed)
        return SubmitOutcome(
            item_key=entry.key,
            grade=grade,
            passed=outcome.passed,
            state=outcome.state,
            next_review_at=outcome.next_review_at,
            stats=self._stats,
            status=self._status,
            streak=streak,
            streak_error=streak_error,
        )

    async def _record_streak(self, now: datetime) -> tuple[Streak | None, AppError | None]:
        match await self._repository.get_streak(self.user_id):
            case Err(error):
                return self._streak_failed(now, error)
            case Ok(current):
                pass

        updated = update_streak(current, now)
        match await self._repository.upsert_streak(self.user_id, updated):
            case Err(error):
                return self._streak_failed(now, error)

        self._streak = updated
        self._streak_pending_at = None
        return updated, None

    def _streak_failed(self, now: datetime, error: AppError) -> tuple[None, AppError]:
        log.warning("streak_update_failed", session_id=self.id, code=error.code.name)
        self._streak_pending_at = now
        return None, error
