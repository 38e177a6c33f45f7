import asyncio
from datetime import timedelta

import pytest

from core.errors import ErrorCode, Err, Ok
from engines.scheduling import STAGE_INTERVALS
from engines.session import ReviewSession, SessionStatus
from engines.types import (
    IntervalState,
    ItemPool,
    Rating,
    ReviewResult,
    Scope,
    Stage,
    StageState,
    Streak,
)


@pytest.fixture
def make_session(repository, user_id, clock, rng):
    def _make(scope=Scope.BOTH, **kwargs):
        return ReviewSession(repository, user_id, scope, rng=rng, clock=clock, **kwargs)
    return _make


class TestStart:
    @pytest.mark.asyncio
    async def test_start_snapshots_due_set(self, make_session, repository):
        session = make_session()

        result = await session.start()

        assert result.is_ok()
        assert session.status is SessionStatus.IN_PROGRESS
        assert len(session.items) == len(repository.items)
        assert isinstance(session.items, tuple)
        assert session.current.item.key == session.items[0].key

    @pytest.mark.asyncio
    async def test_empty_due_set_completes_immediately(self, repository, user_id, clock):
        repository.items = []
        session = ReviewSession(repository, user_id, clock=clock)

        result = await session.start()

        assert result == Ok(None)
        assert session.status is SessionStatus.COMPLETE
        assert "get_distractor_pool" not in repository.calls

    @pytest.mark.asyncio
    async def test_unauthenticated_session_is_empty(self, repository, clock):
        session = ReviewSession(repository, None, clock=clock)

        await session.start()

        assert session.status is SessionStatus.COMPLETE
        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_start_rejected_while_in_progress(self, make_session):
        session = make_session()
        await session.start()

        result = await session.start()

        assert isinstance(result, Err)
        assert result.error.code is ErrorCode.E5002_STATE_CONFLICT

    @pytest.mark.asyncio
    async def test_due_set_failure_leaves_session_not_started(self, make_session, repository):
        repository.fail_on("get_due_items")
        session = make_session()

        result = await session.start()

        assert result.is_err()
        assert session.status is SessionStatus.NOT_STARTED

    @pytest.mark.asyncio
    async def test_distractor_pool_failure_degrades_to_snapshot(self, make_session, repository):
        repository.fail_on("get_distractor_pool")
        session = make_session(scope=Scope.CURRICULUM)

        result = await session.start()

        assert result.is_ok()
        assert session.status is SessionStatus.IN_PROGRESS
        assert session.current is not None

    @pytest.mark.asyncio
    async def test_limit_caps_snapshot(self, make_session):
        session = make_session(limit=2)

        await session.start()

        assert len(session.items) == 2

    @pytest.mark.asyncio
    async def test_snapshot_is_not_affected_by_later_changes(self, make_session, repository):
        session = make_session()
        await session.start()
        before = session.items

        repository.items = repository.items[:1]

        assert session.items == before


class TestSubmit:
    @pytest.mark.asyncio
    async def test_n_items_complete_after_n_submissions(self, make_session, repository):
        session = make_session()
        await session.start()
        total = len(session.items)

        grades = [Rating.GOOD, ReviewResult.INCORRECT, "correct", Rating.AGAIN] * total
        for grade in grades[:total]:
            result = await session.submit(grade)
            assert result.is_ok()

        assert session.status is SessionStatus.COMPLETE
        assert session.stats.total == total
        assert session.stats.correct + session.stats.incorrect == total
        assert session.current is None

    @pytest.mark.asyncio
    async def test_submit_persists_with_pool_strategy(self, make_session, repository, user_id, clock):
        session = make_session()
        await session.start()
        keys = [e.key for e in session.items]

        for _ in keys:
            await session.submit(Rating.GOOD)

        curriculum = repository.states[(user_id, "curriculum:color-red")]
        personal = repository.states[(user_id, "personal:p-1")]
        assert isinstance(curriculum, StageState)
        assert curriculum.stage is Stage.STAGE_1
        assert curriculum.next_review_at == clock.now + STAGE_INTERVALS[Stage.STAGE_1]
        assert isinstance(personal, IntervalState)
        assert personal.interval_days == 1

    @pytest.mark.asyncio
    async def test_submit_reads_fresh_state(self, make_session, repository, user_id):
        session = make_session(scope=Scope.CURRICULUM)
        await session.start()
        key = session.current.item.key
        repository.states[(user_id, key)] = StageState(stage=Stage.STAGE_3)

        result = await session.submit(ReviewResult.CORRECT)

        assert result.unwrap().state.stage is Stage.STAGE_4

    @pytest.mark.asyncio
    async def test_write_failure_does_not_advance(self, make_session, repository):
        session = make_session()
        await session.start()
        first = session.current.item.key
        repository.fail_on("upsert_review_state")

        result = await session.submit(Rating.GOOD)

        assert isinstance(result, Err)
        assert result.error.is_persistence_failure
        assert session.index == 0
        assert session.stats.total == 0
        assert session.current.item.key == first
        assert "get_streak" not in repository.calls

        repository.recover()
        retried = await session.submit(Rating.GOOD)
        assert retried.is_ok()
        assert retried.unwrap().item_key == first
        assert session.index == 1

    @pytest.mark.asyncio
    async def test_read_failure_does_not_advance(self, make_session, repository):
        session = make_session()
        await session.start()
        repository.fail_on("get_review_state")

        result = await session.submit(Rating.GOOD)

        assert result.is_err()
        assert session.index == 0
        assert "upsert_review_state" not in repository.calls

    @pytest.mark.asyncio
    async def test_submit_before_start_is_a_state_conflict(self, make_session):
        result = await make_session().submit(Rating.GOOD)

        assert result.error.code is ErrorCode.E5002_STATE_CONFLICT

    @pytest.mark.asyncio
    async def test_concurrent_submit_is_rejected(self, make_session, repository):
        session = make_session()
        await session.start()
        repository.write_gate = asyncio.Event()

        first = asyncio.create_task(session.submit(Rating.GOOD))
        await asyncio.sleep(0)
        second = await session.submit(Rating.GOOD)

        assert isinstance(second, Err)
        assert second.error.code is ErrorCode.E5001_OPERATION_NOT_ALLOWED

        repository.write_gate.set()
        assert (await first).is_ok()
        assert session.index == 1
        assert session.stats.total == 1

    @pytest.mark.asyncio
    async def test_stats_track_outcomes(self, make_session):
        session = make_session()
        await session.start()

        await session.submit(Rating.GOOD)
        await session.submit(Rating.AGAIN)
        outcome = (await session.submit(ReviewResult.CORRECT)).unwrap()

        assert (outcome.stats.total, outcome.stats.correct, outcome.stats.incorrect) == (3, 2, 1)
        assert outcome.stats.accuracy == 67

    @pytest.mark.asyncio
    async def test_restart_after_completion(self, make_session):
        session = make_session(limit=1)
        await session.start()
        await session.submit(Rating.GOOD)
        assert session.status is SessionStatus.COMPLETE

        result = await session.start()

        assert result.is_ok()
        assert session.status is SessionStatus.IN_PROGRESS
        assert session.stats.total == 0


class TestStreak:
    @pytest.mark.asyncio
    async def test_submit_updates_streak(self, make_session, repository, user_id, clock):
        session = make_session()
        await session.start()

        outcome = (await session.submit(Rating.GOOD)).unwrap()

        assert outcome.streak == Streak(1, 1, clock.now.date())
        assert repository.streaks[user_id] == outcome.streak

    @pytest.mark.asyncio
    async def test_streak_failure_does_not_block_review(self, make_session, repository, user_id):
        session = make_session()
        await session.start()
        first = session.current.item.key
        repository.fail_on("upsert_streak")

        result = await session.submit(Rating.GOOD)

        assert result.is_ok()
        outcome = result.unwrap()
        assert outcome.streak is None
        assert outcome.streak_error is not None
        assert (user_id, first) in repository.states
        assert session.index == 1
        assert session.streak_pending

        repository.recover()
        retried = await session.retry_streak()

        assert retried.is_ok()
        assert retried.unwrap().current_streak == 1
        assert not session.streak_pending

    @pytest.mark.asyncio
    async def test_retry_without_pending_update_is_a_noop(self, make_session, repository):
        session = make_session()
        await session.start()

        result = await session.retry_streak()

        assert result == Ok(None)
        assert "upsert_streak" not in repository.calls

    @pytest.mark.asyncio
    async def test_retry_keeps_pending_on_repeated_failure(self, make_session, repository):
        session = make_session()
        await session.start()
        repository.fail_on("get_streak")
        await session.submit(Rating.GOOD)

        result = await session.retry_streak()

        assert result.is_err()
        assert session.streak_pending


class TestIntro:
    @pytest.mark.asyncio
    async def test_intro_moves_new_item_to_stage_one_without_stats(self, make_session, repository, user_id):
        session = make_session(scope=Scope.CURRICULUM)
        await session.start()
        assert session.current.stage is Stage.NEW
        key = session.current.item.key

        result = await session.complete_intro()

        outcome = result.unwrap()
        assert outcome.passed
        assert repository.states[(user_id, key)].stage is Stage.STAGE_1
        assert session.stats.total == 0
        assert session.index == 1
        assert outcome.streak is not None

    @pytest.mark.asyncio
    async def test_intro_rejected_for_introduced_item(self, make_session, repository, user_id):
        session = make_session(scope=Scope.CURRICULUM)
        await session.start()
        key = session.current.item.key
        repository.states[(user_id, key)] = StageState(stage=Stage.STAGE_2)

        result = await session.complete_intro()

        assert result.error.code is ErrorCode.E5003_PRECONDITION_FAILED
        assert session.index == 0
        assert "upsert_review_state" not in repository.calls

    @pytest.mark.asyncio
    async def test_intro_for_interval_item(self, make_session, repository, user_id):
        session = make_session(scope=Scope.PERSONAL)
        await session.start()
        key = session.current.item.key
        assert session.current.item.pool is ItemPool.PERSONAL

        await session.complete_intro()

        state = repository.states[(user_id, key)]
        assert isinstance(state, IntervalState)
        assert state.repetitions == 1


class TestCards:
    @pytest.mark.asyncio
    async def test_current_card_is_stable_between_reads(self, make_session):
        session = make_session()
        await session.start()

        assert session.current is session.current

    @pytest.mark.asyncio
    async def test_card_exercise_matches_stage(self, make_session, repository, user_id, clock):
        repository.states[(user_id, "curriculum:color-blue")] = StageState(
            stage=Stage.STAGE_1, next_review_at=clock.now - timedelta(minutes=5)
        )
        session = make_session(scope=Scope.CURRICULUM)
        await session.start()

        cards = []
        for _ in session.items:
            cards.append(session.current)
            await session.submit(Rating.GOOD)

        reviewed = [c for c in cards if c.item.id == "color-blue"][0]
        assert reviewed.stage is Stage.STAGE_1
        assert reviewed.exercise.type.value == "audio_to_target"
        assert all(c.exercise.type.value == "intro" for c in cards if c.item.id != "color-blue")
