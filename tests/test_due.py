from datetime import timedelta

import pytest

from core.errors import Err, Ok
from engines.due import fetch_due_set, is_due, select_due
from engines.types import (
    CurriculumItem,
    DueItem,
    IntervalState,
    PersonalItem,
    Scope,
    Stage,
    StageState,
)


def _curriculum(id):
    return CurriculumItem(id=id, text=id, translation=id)


class TestIsDue:
    def test_boundaries(self, now):
        assert is_due(None, now)
        assert is_due(StageState(next_review_at=now - timedelta(seconds=1)), now)
        assert is_due(StageState(next_review_at=now), now)
        assert not is_due(StageState(next_review_at=now + timedelta(seconds=1)), now)


class TestSelectDue:
    def test_excludes_future_items(self, now):
        past = DueItem(_curriculum("a"), StageState(stage=Stage.STAGE_2, next_review_at=now - timedelta(seconds=1)))
        future = DueItem(_curriculum("b"), StageState(stage=Stage.STAGE_2, next_review_at=now + timedelta(seconds=1)))

        assert select_due([[past, future]], now) == [past]

    def test_never_reviewed_first_then_least_mastered(self, now):
        due_at = now - timedelta(hours=1)
        new = DueItem(_curriculum("z-new"))
        stage_3 = DueItem(_curriculum("a-s3"), StageState(stage=Stage.STAGE_3, next_review_at=due_at))
        stage_1 = DueItem(_curriculum("b-s1"), StageState(stage=Stage.STAGE_1, next_review_at=due_at))
        personal = DueItem(
            PersonalItem(id="p1", text="x", translation="x"),
            IntervalState(interval_days=2, repetitions=2, next_review_at=due_at),
        )

        ordered = select_due([[stage_3, new, stage_1], [personal]], now)

        assert [e.key for e in ordered] == [
            "curriculum:z-new",
            "curriculum:b-s1",
            "personal:p1",
            "curriculum:a-s3",
        ]

    def test_ties_break_on_item_key(self, now):
        entries = [DueItem(_curriculum(id)) for id in ("c", "a", "b")]
        personal = DueItem(PersonalItem(id="a", text="a", translation="a"))

        ordered = select_due([entries, [personal]], now)

        assert [e.key for e in ordered] == ["curriculum:a", "curriculum:b", "curriculum:c", "personal:a"]

    def test_duplicate_keys_are_dropped(self, now):
        first = DueItem(_curriculum("a"))
        duplicate = DueItem(_curriculum("a"), StageState(stage=Stage.STAGE_4, next_review_at=now))

        ordered = select_due([[first], [duplicate]], now)

        assert ordered == [first]

    def test_same_id_in_both_pools_is_not_a_duplicate(self, now):
        ordered = select_due(
            [[DueItem(_curriculum("x"))], [DueItem(PersonalItem(id="x", text="x", translation="x"))]],
            now,
        )
        assert len(ordered) == 2

    def test_limit_truncates_after_ordering(self, now):
        entries = [DueItem(_curriculum(id)) for id in ("d", "c", "b", "a")]

        assert [e.item.id for e in select_due([entries], now, limit=2)] == ["a", "b"]

    def test_empty(self, now):
        assert select_due([], now) == []


class TestFetchDueSet:
    @pytest.mark.asyncio
    async def test_unauthenticated_gets_empty_set(self, repository, now):
        result = await fetch_due_set(repository, None, Scope.BOTH, now)

        assert result == Ok([])
        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_one_call_per_pool(self, repository, user_id, now):
        result = await fetch_due_set(repository, user_id, Scope.BOTH, now)

        assert result.is_ok()
        assert repository.calls == ["get_due_items", "get_due_items"]
        assert len(result.unwrap()) == len(repository.items)

    @pytest.mark.asyncio
    async def test_scope_restricts_pools(self, repository, user_id, now, personal_items):
        result = await fetch_due_set(repository, user_id, Scope.PERSONAL, now)

        assert {e.key for e in result.unwrap()} == {i.key for i in personal_items}

    @pytest.mark.asyncio
    async def test_persistence_failure_is_surfaced(self, repository, user_id, now):
        repository.fail_on("get_due_items")

        result = await fetch_due_set(repository, user_id, Scope.BOTH, now)

        assert isinstance(result, Err)
        assert result.error.is_persistence_failure
