from datetime import date, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import models  # noqa: F401
from core.database import Base
from core.errors import Err
from engines.repository import SqlReviewRepository, sync_curriculum_words
from engines.types import (
    IntervalState,
    ItemPool,
    ReviewResult,
    Scope,
    Stage,
    StageState,
    Streak,
)
from models.vocabulary import UserVocabularyWord

pytestmark = pytest.mark.integration

WORDS = [
    {"id": "color-red", "text": "أحمر", "translation": "Red", "topic_id": "colors",
     "sentence_text": "السيارة لونها أحمر", "sentence_translation": "The car is red",
     "audio_url": "audio/red.mp3", "sentence_audio_url": "audio/red-sentence.mp3"},
    {"id": "color-blue", "text": "أزرق", "translation": "Blue", "topic_id": "colors"},
    {"id": "greet-hello", "text": "مرحبا", "translation": "Hello", "topic_id": "greetings"},
]


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'review.db'}")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await sync_curriculum_words(session, WORDS)
        await session.commit()
    return factory


@pytest.fixture
def repo(session_factory):
    return SqlReviewRepository(session_factory)


class TestReviewStates:
    @pytest.mark.asyncio
    async def test_missing_state_is_none(self, repo, user_id):
        result = await repo.get_review_state(user_id, "curriculum:color-red")
        assert result.unwrap() is None

    @pytest.mark.asyncio
    async def test_stage_state_round_trips(self, repo, user_id, now):
        state = StageState(
            stage=Stage.STAGE_3,
            last_result=ReviewResult.CORRECT,
            last_reviewed_at=now,
            next_review_at=now + timedelta(days=3),
            review_count=4,
            correct_count=3,
        )

        saved = await repo.upsert_review_state(user_id, "curriculum:color-red", state)
        loaded = await repo.get_review_state(user_id, "curriculum:color-red")

        assert saved.unwrap() == state
        assert loaded.unwrap() == state
        assert loaded.unwrap().next_review_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing_state(self, repo, user_id, now):
        key = "personal:abc"
        await repo.upsert_review_state(user_id, key, IntervalState(repetitions=1, interval_days=1))
        updated = IntervalState(ease_factor=2.36, interval_days=6, repetitions=2, next_review_at=now)

        await repo.upsert_review_state(user_id, key, updated)

        assert (await repo.get_review_state(user_id, key)).unwrap() == updated

    @pytest.mark.asyncio
    async def test_naive_and_offset_datetimes_are_stored_as_utc(self, repo, user_id, now):
        offset = now.astimezone(timezone(timedelta(hours=4)))
        await repo.upsert_review_state(user_id, "curriculum:color-blue", StageState(next_review_at=offset))

        loaded = (await repo.get_review_state(user_id, "curriculum:color-blue")).unwrap()

        assert loaded.next_review_at == now


class TestDueItems:
    @pytest.mark.asyncio
    async def test_unreviewed_curriculum_is_due(self, repo, user_id, now):
        result = await repo.get_due_items(user_id, ItemPool.CURRICULUM, now)

        assert {e.key for e in result.unwrap()} == {
            "curriculum:color-red", "curriculum:color-blue", "curriculum:greet-hello",
        }

    @pytest.mark.asyncio
    async def test_future_items_are_excluded(self, repo, user_id, now):
        await repo.upsert_review_state(
            user_id, "curriculum:color-red", StageState(stage=Stage.STAGE_2, next_review_at=now + timedelta(seconds=1))
        )
        await repo.upsert_review_state(
            user_id, "curriculum:color-blue", StageState(stage=Stage.STAGE_2, next_review_at=now - timedelta(seconds=1))
        )

        due = (await repo.get_due_items(user_id, ItemPool.CURRICULUM, now)).unwrap()

        keys = {e.key for e in due}
        assert "curriculum:color-red" not in keys
        assert "curriculum:color-blue" in keys
        blue = next(e for e in due if e.key == "curriculum:color-blue")
        assert blue.state.stage is Stage.STAGE_2

    @pytest.mark.asyncio
    async def test_states_are_per_user(self, repo, user_id, now):
        await repo.upsert_review_state(
            user_id, "curriculum:color-red", StageState(next_review_at=now + timedelta(days=1))
        )

        other = (await repo.get_due_items(uuid4(), ItemPool.CURRICULUM, now)).unwrap()

        assert "curriculum:color-red" in {e.key for e in other}

    @pytest.mark.asyncio
    async def test_personal_words_belong_to_their_owner(self, repo, session_factory, user_id, now):
        async with session_factory() as session:
            session.add(UserVocabularyWord(user_id=user_id, text="قهوة", translation="Coffee"))
            session.add(UserVocabularyWord(user_id=uuid4(), text="بيت", translation="House"))
            await session.commit()

        mine = (await repo.get_due_items(user_id, ItemPool.PERSONAL, now)).unwrap()

        assert [e.item.text for e in mine] == ["قهوة"]
        assert mine[0].key.startswith("personal:")

    @pytest.mark.asyncio
    async def test_tracked_items_include_future_items(self, repo, user_id, now):
        await repo.upsert_review_state(
            user_id, "curriculum:color-red", StageState(stage=Stage.STAGE_4, next_review_at=now + timedelta(days=7))
        )

        tracked = (await repo.get_tracked_items(user_id, Scope.BOTH)).unwrap()

        assert len(tracked) == len(WORDS)


class TestStreaksAndPool:
    @pytest.mark.asyncio
    async def test_streak_round_trips(self, repo, user_id):
        assert (await repo.get_streak(user_id)).unwrap() is None

        streak = Streak(current_streak=3, longest_streak=5, last_review_date=date(2026, 3, 10))
        await repo.upsert_streak(user_id, streak)

        assert (await repo.get_streak(user_id)).unwrap() == streak

    @pytest.mark.asyncio
    async def test_distractor_pool_has_text_fields(self, repo, user_id):
        pool = (await repo.get_distractor_pool(user_id)).unwrap()

        red = next(i for i in pool if i.id == "color-red")
        assert red.topic_id == "colors"
        assert red.has_sentence_pair
        assert len(pool) == len(WORDS)

    @pytest.mark.asyncio
    async def test_distractor_pool_carries_no_media(self, repo, user_id, now):
        pool = (await repo.get_distractor_pool(user_id)).unwrap()
        due = (await repo.get_due_items(user_id, ItemPool.CURRICULUM, now)).unwrap()

        assert all(i.audio_url is None and i.sentence_audio_url is None for i in pool)
        red = next(e.item for e in due if e.item.id == "color-red")
        assert red.audio_url == "audio/red.mp3"
        assert red.sentence_audio_url == "audio/red-sentence.mp3"


class TestSync:
    @pytest.mark.asyncio
    async def test_sync_updates_existing_rows(self, session_factory, repo, user_id):
        async with session_factory() as session:
            created = await sync_curriculum_words(session, [
                {"id": "color-red", "text": "أحمر", "translation": "Red (colour)"},
                {"id": "color-green", "text": "أخضر", "translation": "Green"},
                {"text": "no id, skipped"},
            ])
            await session.commit()

        assert created == 1
        pool = (await repo.get_distractor_pool(user_id)).unwrap()
        assert next(i for i in pool if i.id == "color-red").translation == "Red (colour)"


class TestFailures:
    @pytest.mark.asyncio
    async def test_database_errors_become_results(self, engine, user_id, now):
        # no tables created
        repo = SqlReviewRepository(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))

        result = await repo.get_due_items(user_id, ItemPool.CURRICULUM, now)

        assert isinstance(result, Err)
        assert result.error.is_persistence_failure
        assert result.error.context.origin == "review_repository"
