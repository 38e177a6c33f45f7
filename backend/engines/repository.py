"""Review Repository

Everything the review engine needs from persistence, behind one interface.
Every operation returns a ``Result``; the SQL implementation maps SQLAlchemy
failures to E4xxx errors at this boundary, so callers never see raw
database exceptions.

Each SQL operation runs in its own ``AsyncSession`` and commits on its own:
a review-state write and the streak write that follows it are independent.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import AsyncSessionLocal
from core.errors import AppError, Ok, Result, map_db_errors
from core.logging import db_logger
from engines.due import is_due
from engines.scheduling import parse_stage
from engines.types import (
    CurriculumItem,
    DueItem,
    IntervalState,
    Item,
    ItemPool,
    PersonalItem,
    ReviewResult,
    ReviewState,
    Scope,
    StageState,
    Streak,
)
from models.vocabulary import ReviewStateRecord, ReviewStreak, UserVocabularyWord, VocabularyWord

log = db_logger()


class ReviewRepository(ABC):
    """Persistence port of the review engine."""

    @abstractmethod
    async def get_due_items(
        self, user_id: UUID, pool: ItemPool, now: datetime
    ) -> Result[list[DueItem], AppError]:
        """Items of ``pool`` that are due at ``now``, with their states."""

    @abstractmethod
    async def get_review_state(
        self, user_id: UUID, item_key: str
    ) -> Result[ReviewState | None, AppError]:
        ...

    @abstractmethod
    async def upsert_review_state(
        self, user_id: UUID, item_key: str, state: ReviewState
    ) -> Result[ReviewState, AppError]:
        ...

    @abstractmethod
    async def get_distractor_pool(self, user_id: UUID) -> Result[list[Item], AppError]:
        """Every item the learner can see, used as wrong-answer material."""

    @abstractmethod
    async def get_streak(self, user_id: UUID) -> Result[Streak | None, AppError]:
        ...

    @abstractmethod
    async def upsert_streak(self, user_id: UUID, streak: Streak) -> Result[Streak, AppError]:
        ...

    @abstractmethod
    async def get_tracked_items(
        self, user_id: UUID, scope: Scope
    ) -> Result[list[DueItem], AppError]:
        """Every item in ``scope`` with its state, due or not."""


# ═══════════════════════════════════════════════════════════════════════════════
# ROW MAPPING
# ═══════════════════════════════════════════════════════════════════════════════

def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def curriculum_item_from_row(row: VocabularyWord) -> CurriculumItem:
    return CurriculumItem(
        id=row.id,
        text=row.text,
        translation=row.translation,
        sentence_text=row.sentence_text,
        sentence_translation=row.sentence_translation,
        audio_url=row.audio_url,
        sentence_audio_url=row.sentence_audio_url,
        topic_id=row.topic_id,
    )


def personal_item_from_row(row: UserVocabularyWord) -> PersonalItem:
    return PersonalItem(
        id=str(row.id),
        text=row.text,
        translation=row.translation,
        sentence_text=row.sentence_text,
        sentence_translation=row.sentence_translation,
        audio_url=row.audio_url,
        sentence_audio_url=row.sentence_audio_url,
        source=row.source or "transcription",
    )


def state_from_record(record: ReviewStateRecord) -> ReviewState:
    if record.model == "stage":
        try:
            last_result = ReviewResult(record.last_result) if record.last_result else None
        except ValueError:
            last_result = None
        return StageState(
            stage=parse_stage(record.stage),
            last_result=last_result,
            last_reviewed_at=as_utc(record.last_reviewed_at),
            next_review_at=as_utc(record.next_review_at),
            review_count=record.review_count or 0,
            correct_count=record.correct_count or 0,
        )
    return IntervalState(
        ease_factor=record.ease_factor if record.ease_factor is not None else 2.5,
        interval_days=record.interval_days or 0,
        repetitions=record.repetitions or 0,
        last_reviewed_at=as_utc(record.last_reviewed_at),
        next_review_at=as_utc(record.next_review_at),
        review_count=record.review_count or 0,
        correct_count=record.correct_count or 0,
    )


def apply_state(record: ReviewStateRecord, state: ReviewState) -> None:
    record.last_reviewed_at = as_utc(state.last_reviewed_at)
    record.next_review_at = as_utc(state.next_review_at)
    record.review_count = state.review_count
    record.correct_count = state.correct_count
    match state:
        case StageState():
            record.model = "stage"
            record.stage = state.stage.value
            record.last_result = state.last_result.value if state.last_result else None
        case IntervalState():
            record.model = "interval"
            record.ease_factor = state.ease_factor
            record.interval_days = state.interval_days
            record.repetitions = state.repetitions


# ═══════════════════════════════════════════════════════════════════════════════
# SQL IMPLEMENTATION
# ═══════════════════════════════════════════════════════════════════════════════

class SqlReviewRepository(ReviewRepository):
    """ReviewRepository over the SQLAlchemy async models."""

    __slots__ = ("_session_factory",)

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory or AsyncSessionLocal

    async def _load_items(self, session: AsyncSession, user_id: UUID, pool: ItemPool) -> list[Item]:
        if pool is ItemPool.CURRICULUM:
            result = await session.execute(
                select(VocabularyWord).order_by(VocabularyWord.topic_id, VocabularyWord.position)
            )
            return [curriculum_item_from_row(row) for row in result.scalars().all()]

        result = await session.execute(
            select(UserVocabularyWord)
            .where(UserVocabularyWord.user_id == user_id)
            .order_by(UserVocabularyWord.created_at)
        )
        return [personal_item_from_row(row) for row in result.scalars().all()]

    async def _load_states(
        self, session: AsyncSession, user_id: UUID, pool: ItemPool
    ) -> dict[str, ReviewState]:
        result = await session.execute(
            select(ReviewStateRecord).where(
                ReviewStateRecord.user_id == user_id,
                ReviewStateRecord.item_key.startswith(f"{pool.value}:"),
            )
        )
        return {record.item_key: state_from_record(record) for record in result.scalars().all()}

    async def _tracked(self, user_id: UUID, pools: Iterable[ItemPool]) -> list[DueItem]:
        entries: list[DueItem] = []
        async with self._session_factory() as session:
            for pool in pools:
                items = await self._load_items(session, user_id, pool)
                states = await self._load_states(session, user_id, pool)
                entries.extend(DueItem(item=item, state=states.get(item.key)) for item in items)
        return entries

    @map_db_errors("review_repository")
    async def get_due_items(
        self, user_id: UUID, pool: ItemPool, now: datetime
    ) -> Result[list[DueItem], AppError]:
        now = as_utc(now)
        entries = await self._tracked(user_id, (pool,))
        due = [entry for entry in entries if is_due(entry.state, now)]
        log.debug("due_items_loaded", pool=pool.value, candidates=len(entries), due=len(due))
        return Ok(due)

    @map_db_errors("review_repository")
    async def get_tracked_items(
        self, user_id: UUID, scope: Scope
    ) -> Result[list[DueItem], AppError]:
        return Ok(await self._tracked(user_id, scope.pools))

    @map_db_errors("review_repository")
    async def get_review_state(
        self, user_id: UUID, item_key: str
    ) -> Result[ReviewState | None, AppError]:
        async with self._session_factory() as session:
            record = await session.get(ReviewStateRecord, (user_id, item_key))
            return Ok(state_from_record(record) if record else None)

    @map_db_errors("review_repository")
    async def upsert_review_state(
        self, user_id: UUID, item_key: str, state: ReviewState
    ) -> Result[ReviewState, AppError]:
        async with self._session_factory() as session:
            record = await session.get(ReviewStateRecord, (user_id, item_key))
            if record is None:
                record = ReviewStateRecord(user_id=user_id, item_key=item_key)
                session.add(record)
            apply_state(record, state)
            await session.commit()
        log.debug("review_state_saved", item_key=item_key, model=type(state).__name__)
        return Ok(state)

    @map_db_errors("review_repository")
    async def get_distractor_pool(self, user_id: UUID) -> Result[list[Item], AppError]:
        async with self._session_factory() as session:
            items: list[Item] = []
            for pool in ItemPool:
                # options only show text, media stays with the reviewed item
                items.extend(
                    replace(item, audio_url=None, sentence_audio_url=None)
                    for item in await self._load_items(session, user_id, pool)
                )
        return Ok(items)

    @map_db_errors("review_repository")
    async def get_streak(self, user_id: UUID) -> Result[Streak | None, AppError]:
        async with self._session_factory() as session:
            record = await session.get(ReviewStreak, user_id)
            if record is None:
                return Ok(None)
            return Ok(Streak(
                current_streak=record.current_streak or 0,
                longest_streak=record.longest_streak or 0,
                last_review_date=record.last_review_date,
            ))

    @map_db_errors("review_repository")
    async def upsert_streak(self, user_id: UUID, streak: Streak) -> Result[Streak, AppError]:
        async with self._session_factory() as session:
            record = await session.get(ReviewStreak, user_id)
            if record is None:
                record = ReviewStreak(user_id=user_id)
                session.add(record)
            record.current_streak = streak.current_streak
            record.longest_streak = streak.longest_streak
            record.last_review_date = streak.last_review_date
            await session.commit()
        return Ok(streak)


async def sync_curriculum_words(db: AsyncSession, rows: list[dict]) -> int:
    """Insert or update curriculum words from parsed YAML rows. Returns new-row count."""
    count = 0
    for position, row in enumerate(rows):
        word_id = row.get("id")
        if not word_id:
            continue

        existing = await db.get(VocabularyWord, word_id)
        if existing:
            existing.text = row.get("text", existing.text)
            existing.translation = row.get("translation", existing.translation)
            existing.sentence_text = row.get("sentence_text", existing.sentence_text)
            existing.sentence_translation = row.get("sentence_translation", existing.sentence_translation)
            existing.audio_url = row.get("audio_url", existing.audio_url)
            existing.sentence_audio_url = row.get("sentence_audio_url", existing.sentence_audio_url)
            existing.topic_id = row.get("topic_id", existing.topic_id)
            existing.position = row.get("position", position)
        else:
            db.add(VocabularyWord(
                id=word_id,
                text=row.get("text", ""),
                translation=row.get("translation", ""),
                sentence_text=row.get("sentence_text"),
                sentence_translation=row.get("sentence_translation"),
                audio_url=row.get("audio_url"),
                sentence_audio_url=row.get("sentence_audio_url"),
                topic_id=row.get("topic_id"),
                position=row.get("position", position),
            ))
            count += 1

    await db.flush()
    log.info("curriculum_synced", new_items=count, total=len(rows))
    return count

