"""Spaced Repetition Scheduling Core

Two scheduling models live side by side:

- the interval model, an SM-2 variant driven by an ease factor and a day
  interval, graded on the four-point ``Rating`` scale;
- the stage model, six ordinal levels (NEW..STAGE_5) with a fixed spacing
  table, graded correct/incorrect.

Both are pure: identical inputs give identical outputs and nothing is read
from or written to the outside world, so the same call serves an optimistic
UI preview and the authoritative persisted update. ``SchedulingStrategy``
puts the two behind one interface, chosen per item pool.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import ClassVar

from core.config import Settings, settings as default_settings
from core.logging import srs_logger
from engines.types import (
    Grade,
    IntervalState,
    ItemPool,
    Rating,
    ReviewResult,
    ReviewState,
    Stage,
    StageState,
    STAGE_ORDER,
)

log = srs_logger()

# Interval model
MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
LAPSE_EASE_PENALTY = 0.2
LAPSE_STEP = timedelta(minutes=1)
FIRST_INTERVAL_DAYS = 1
FIRST_EASY_INTERVAL_DAYS = 4
SECOND_INTERVAL_DAYS = 6
HARD_MULTIPLIER = 0.8
EASY_MULTIPLIER = 1.3
SM2_QUALITY: dict[Rating, int] = {
    Rating.HARD: 3,
    Rating.GOOD: 4,
    Rating.EASY: 5,
}

# Stage model; spacing strictly increases with the stage
STAGE_INTERVALS: dict[Stage, timedelta] = {
    Stage.NEW: timedelta(0),
    Stage.STAGE_1: timedelta(minutes=10),
    Stage.STAGE_2: timedelta(days=1),
    Stage.STAGE_3: timedelta(days=3),
    Stage.STAGE_4: timedelta(days=7),
    Stage.STAGE_5: timedelta(days=21),
}


# ═══════════════════════════════════════════════════════════════════════════════
# GRADE / STAGE PARSING
# ═══════════════════════════════════════════════════════════════════════════════

def parse_grade(value: str | Grade) -> Grade:
    """Parse a rating or result name. Unknown values grade as incorrect."""
    if isinstance(value, (Rating, ReviewResult)):
        return value
    normalized = str(value).strip().lower()
    for enum_cls in (Rating, ReviewResult):
        try:
            return enum_cls(normalized)
        except ValueError:
            continue
    log.warning("unknown_grade", grade=value)
    return ReviewResult.INCORRECT


def parse_stage(value: str | Stage | None) -> Stage:
    """Parse a stored stage name. Unknown or missing values read as NEW."""
    if isinstance(value, Stage):
        return value
    if value is None:
        return Stage.NEW
    try:
        return Stage(str(value).strip().upper())
    except ValueError:
        log.warning("unknown_stage", stage=value)
        return Stage.NEW


def as_rating(grade: Grade | str) -> Rating:
    """Express any grade on the four-point scale."""
    grade = parse_grade(grade)
    if isinstance(grade, Rating):
        return grade
    return Rating.GOOD if grade is ReviewResult.CORRECT else Rating.AGAIN


def as_result(grade: Grade | str) -> ReviewResult:
    """Express any grade on the correct/incorrect scale."""
    grade = parse_grade(grade)
    if isinstance(grade, ReviewResult):
        return grade
    return ReviewResult.CORRECT if grade.passed else ReviewResult.INCORRECT


# ═══════════════════════════════════════════════════════════════════════════════
# INTERVAL MODEL
# ═══════════════════════════════════════════════════════════════════════════════

def _clamp_ease(value: float) -> float:
    return max(MIN_EASE_FACTOR, round(value, 2))


def interval_transition(
    rating: Rating | str,
    state: IntervalState | None,
    now: datetime,
) -> tuple[IntervalState, datetime]:
    """Advance an interval-model state by one graded review.

    Args:
        rating: again/hard/good/easy; anything unrecognised counts as again
        state: current state, or None for a never-reviewed item
        now: submission time

    Returns:
        (new state, next review time)
    """
    rating = as_rating(rating)
    state = state or IntervalState()

    if not rating.passed:
        next_review_at = now + LAPSE_STEP
        new_state = IntervalState(
            ease_factor=_clamp_ease(state.ease_factor - LAPSE_EASE_PENALTY),
            interval_days=0,
            repetitions=0,
            last_reviewed_at=now,
            next_review_at=next_review_at,
            review_count=state.review_count + 1,
            correct_count=state.correct_count,
        )
        log.debug("interval_lapse", ease_factor=new_state.ease_factor)
        return new_state, next_review_at

    if state.repetitions == 0:
        interval = FIRST_EASY_INTERVAL_DAYS if rating is Rating.EASY else FIRST_INTERVAL_DAYS
    else:
        if state.repetitions == 1:
            base = SECOND_INTERVAL_DAYS
        else:
            base = round(state.interval_days * state.ease_factor)
        if rating is Rating.HARD:
            base *= HARD_MULTIPLIER
        elif rating is Rating.EASY:
            base *= EASY_MULTIPLIER
        interval = max(FIRST_INTERVAL_DAYS, round(base))

    quality = SM2_QUALITY[rating]
    new_ef = state.ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    next_review_at = now + timedelta(days=interval)

    new_state = IntervalState(
        ease_factor=_clamp_ease(new_ef),
        interval_days=interval,
        repetitions=state.repetitions + 1,
        last_reviewed_at=now,
        next_review_at=next_review_at,
        review_count=state.review_count + 1,
        correct_count=state.correct_count + 1,
    )
    log.debug(
        "interval_calculated",
        rating=rating.value,
        new_interval=interval,
        new_ef=new_state.ease_factor,
    )
    return new_state, next_review_at


# ═══════════════════════════════════════════════════════════════════════════════
# STAGE MODEL
# ═══════════════════════════════════════════════════════════════════════════════

def next_stage(stage: Stage) -> Stage:
    """One stage up, STAGE_5 is terminal."""
    return Stage.from_ordinal(stage.ordinal + 1)


def previous_stage(stage: Stage) -> Stage:
    """One stage down, never below STAGE_1. NEW stays NEW."""
    # Flooring NEW at STAGE_1 would promote an item on a miss; only intro
    # completion or a correct answer leaves NEW.
    if stage is Stage.NEW:
        return Stage.NEW
    return Stage.from_ordinal(max(stage.ordinal - 1, Stage.STAGE_1.ordinal))


def stage_transition(
    stage: Stage | str | None,
    result: ReviewResult | str,
    now: datetime,
) -> tuple[Stage, datetime]:
    """Move a stage-model item after a graded attempt.

    correct: up one stage (capped at STAGE_5)
    incorrect: down one stage (floor STAGE_1; NEW stays NEW)
    reset: back to NEW
    """
    stage = parse_stage(stage)
    result = as_result(result)

    if result is ReviewResult.CORRECT:
        new_stage = next_stage(stage)
    elif result is ReviewResult.RESET:
        new_stage = Stage.NEW
    else:
        new_stage = previous_stage(stage)

    return new_stage, now + STAGE_INTERVALS[new_stage]


def advance_stage_state(
    state: StageState | None,
    result: ReviewResult | str,
    now: datetime,
) -> tuple[StageState, datetime]:
    """Full-state wrapper around ``stage_transition``."""
    state = state or StageState()
    result = as_result(result)
    new_stage, next_review_at = stage_transition(state.stage, result, now)
    log.debug("stage_transition", old=state.stage.value, new=new_stage.value, result=result.value)
    return StageState(
        stage=new_stage,
        last_result=result,
        last_reviewed_at=now,
        next_review_at=next_review_at,
        review_count=state.review_count + 1,
        correct_count=state.correct_count + (1 if result.passed else 0),
    ), next_review_at


# ═══════════════════════════════════════════════════════════════════════════════
# MASTERY VIEWS
# ═══════════════════════════════════════════════════════════════════════════════

def mastery_stage(state: ReviewState | None) -> Stage:
    """Stage-equivalent of any state; drives exercise selection."""
    match state:
        case None:
            return Stage.NEW
        case StageState(stage=stage):
            return stage
        case IntervalState(repetitions=repetitions):
            return Stage.from_ordinal(min(repetitions + 1, len(STAGE_ORDER) - 1))
    return Stage.NEW


def mastery_rank(state: ReviewState | None) -> float:
    """Ordering rank among reviewed items: lower means less mastered."""
    match state:
        case StageState(stage=stage):
            return float(stage.ordinal)
        case IntervalState(interval_days=interval_days):
            return float(interval_days)
    return -1.0


def format_interval(days: float) -> str:
    """Short human label for an interval given in days."""
    if days < 1 / 1440:
        return "<1m"
    if days < 1 / 24:
        return f"{round(days * 1440)}m"
    if days < 1:
        return f"{round(days * 24)}h"
    if days < 30:
        return f"{round(days)}d"
    if days < 365:
        return f"{round(days / 30)}mo"
    return f"{round(days / 365, 1):g}y"


# ═══════════════════════════════════════════════════════════════════════════════
# STRATEGIES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class ScheduleOutcome:
    state: ReviewState
    next_review_at: datetime
    passed: bool


class SchedulingStrategy(ABC):
    """One scheduling model behind a uniform grade → state interface."""

    name: ClassVar[str]

    @abstractmethod
    def coerce_state(self, state: ReviewState | None) -> ReviewState | None:
        """Convert a state of the other model into this one, keeping counters."""

    @abstractmethod
    def transition(self, grade: Grade | str, state: ReviewState | None, now: datetime) -> ScheduleOutcome:
        ...

    @abstractmethod
    def introduce(self, state: ReviewState | None, now: datetime) -> ScheduleOutcome:
        """Ungraded intro completion, scheduled as a correct answer."""

    @abstractmethod
    def grades(self) -> tuple[Grade, ...]:
        ...

    def preview(self, state: ReviewState | None, now: datetime) -> dict[str, str]:
        """Interval label each grade would produce; nothing is persisted."""
        labels = {}
        for grade in self.grades():
            outcome = self.transition(grade, state, now)
            days = (outcome.next_review_at - now) / timedelta(days=1)
            labels[grade.value] = format_interval(days)
        return labels


class IntervalStrategy(SchedulingStrategy):
    name = "interval"

    def coerce_state(self, state: ReviewState | None) -> IntervalState | None:
        if state is None or isinstance(state, IntervalState):
            return state
        return IntervalState(
            last_reviewed_at=state.last_reviewed_at,
            next_review_at=state.next_review_at,
            review_count=state.review_count,
            correct_count=state.correct_count,
        )

    def transition(self, grade, state, now) -> ScheduleOutcome:
        rating = as_rating(grade)
        new_state, next_review_at = interval_transition(rating, self.coerce_state(state), now)
        return ScheduleOutcome(new_state, next_review_at, rating.passed)

    def introduce(self, state, now) -> ScheduleOutcome:
        return self.transition(Rating.GOOD, state, now)

    def grades(self) -> tuple[Grade, ...]:
        return tuple(Rating)


class StageStrategy(SchedulingStrategy):
    name = "stage"

    def coerce_state(self, state: ReviewState | None) -> StageState | None:
        if state is None or isinstance(state, StageState):
            return state
        return StageState(
            stage=mastery_stage(state),
            last_reviewed_at=state.last_reviewed_at,
            next_review_at=state.next_review_at,
            review_count=state.review_count,
            correct_count=state.correct_count,
        )

    def transition(self, grade, state, now) -> ScheduleOutcome:
        result = as_result(grade)
        new_state, next_review_at = advance_stage_state(self.coerce_state(state), result, now)
        return ScheduleOutcome(new_state, next_review_at, result.passed)

    def introduce(self, state, now) -> ScheduleOutcome:
        current = self.coerce_state(state) or StageState()
        intro_state, next_review_at = advance_stage_state(
            replace(current, stage=Stage.NEW), ReviewResult.CORRECT, now
        )
        return ScheduleOutcome(intro_state, next_review_at, True)

    def grades(self) -> tuple[Grade, ...]:
        return (ReviewResult.CORRECT, ReviewResult.INCORRECT)


STRATEGIES: dict[str, SchedulingStrategy] = {
    IntervalStrategy.name: IntervalStrategy(),
    StageStrategy.name: StageStrategy(),
}


def strategy_for(pool: ItemPool, config: Settings | None = None) -> SchedulingStrategy:
    """Scheduling model configured for an item pool."""
    config = config or default_settings
    name = config.SCHEDULER_CURRICULUM if pool is ItemPool.CURRICULUM else config.SCHEDULER_PERSONAL
    return STRATEGIES[name]
