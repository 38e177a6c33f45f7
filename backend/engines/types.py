"""Review Engine Domain Types

Items come from two independent pools and are modelled as a tagged union
(CurriculumItem | PersonalItem). Review state is likewise a union of the two
scheduling variants (IntervalState | StageState).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Union


class ItemPool(str, Enum):
    CURRICULUM = "curriculum"
    PERSONAL = "personal"


class Scope(str, Enum):
    """Which pools a due-set query or session draws from."""
    CURRICULUM = "curriculum"
    PERSONAL = "personal"
    BOTH = "both"

    @property
    def pools(self) -> tuple[ItemPool, ...]:
        if self is Scope.BOTH:
            return (ItemPool.CURRICULUM, ItemPool.PERSONAL)
        return (ItemPool(self.value),)


class Stage(str, Enum):
    """Discrete mastery level of the stage model."""
    NEW = "NEW"
    STAGE_1 = "STAGE_1"
    STAGE_2 = "STAGE_2"
    STAGE_3 = "STAGE_3"
    STAGE_4 = "STAGE_4"
    STAGE_5 = "STAGE_5"

    @property
    def ordinal(self) -> int:
        return STAGE_ORDER.index(self)

    @classmethod
    def from_ordinal(cls, ordinal: int) -> Stage:
        return STAGE_ORDER[max(0, min(ordinal, len(STAGE_ORDER) - 1))]


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)


class Rating(str, Enum):
    """Four-point grade used by the interval model."""
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @property
    def passed(self) -> bool:
        return self is not Rating.AGAIN


class ReviewResult(str, Enum):
    """Grade used by the stage model; RESET sends the item back to NEW."""
    CORRECT = "correct"
    INCORRECT = "incorrect"
    RESET = "reset"

    @property
    def passed(self) -> bool:
        return self is ReviewResult.CORRECT


Grade = Union[Rating, ReviewResult]


@dataclass(frozen=True, slots=True)
class _ItemBase:
    id: str
    text: str
    translation: str
    sentence_text: str | None = None
    sentence_translation: str | None = None
    audio_url: str | None = None
    sentence_audio_url: str | None = None

    @property
    def has_sentence_pair(self) -> bool:
        return bool(self.sentence_text and self.sentence_translation)


@dataclass(frozen=True, slots=True)
class CurriculumItem(_ItemBase):
    """Word from the shared, externally authored curriculum."""
    pool: ClassVar[ItemPool] = ItemPool.CURRICULUM
    topic_id: str | None = None

    @property
    def key(self) -> str:
        return item_key(self.pool, self.id)


@dataclass(frozen=True, slots=True)
class PersonalItem(_ItemBase):
    """Word a learner saved to their own list."""
    pool: ClassVar[ItemPool] = ItemPool.PERSONAL
    source: str = "transcription"

    @property
    def topic_id(self) -> None:
        return None

    @property
    def key(self) -> str:
        return item_key(self.pool, self.id)


Item = Union[CurriculumItem, PersonalItem]


def item_key(pool: ItemPool, raw_id: str) -> str:
    """Pool-qualified identifier; ids from different pools never collide."""
    return f"{pool.value}:{raw_id}"


def split_item_key(key: str) -> tuple[ItemPool, str]:
    """Inverse of ``item_key``. Raises ValueError for malformed keys."""
    pool, sep, raw_id = key.partition(":")
    if not sep or not raw_id:
        raise ValueError(f"not a pool-qualified item key: {key!r}")
    return ItemPool(pool), raw_id


@dataclass(frozen=True, slots=True)
class IntervalState:
    """Ease-factor / interval review state (SM-2 family)."""
    ease_factor: float = 2.5
    interval_days: int = 0
    repetitions: int = 0
    last_reviewed_at: datetime | None = None
    next_review_at: datetime | None = None
    review_count: int = 0
    correct_count: int = 0


@dataclass(frozen=True, slots=True)
class StageState:
    """Six-level stage review state."""
    stage: Stage = Stage.NEW
    last_result: ReviewResult | None = None
    last_reviewed_at: datetime | None = None
    next_review_at: datetime | None = None
    review_count: int = 0
    correct_count: int = 0


ReviewState = Union[IntervalState, StageState]


@dataclass(frozen=True, slots=True)
class DueItem:
    """An item paired with the learner's state for it (None if never reviewed)."""
    item: Item
    state: ReviewState | None = None

    @property
    def key(self) -> str:
        return self.item.key


@dataclass(frozen=True, slots=True)
class Streak:
    current_streak: int = 0
    longest_streak: int = 0
    last_review_date: date | None = None
