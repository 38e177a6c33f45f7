"""
Pytest Configuration and Fixtures.

Shared fixtures: a fixed clock, a seeded RNG, sample vocabulary and an
in-memory ReviewRepository whose operations can be made to fail on demand.
"""
import asyncio
import random
from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest

from core.errors import AppError, Err, Ok, Result, transaction_failed
from engines.repository import ReviewRepository
from engines.due import is_due
from engines.types import (
    CurriculumItem,
    DueItem,
    Item,
    ItemPool,
    PersonalItem,
    ReviewState,
    Scope,
    Streak,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "integration: Tests that touch a real SQLite database")


class FakeRepository(ReviewRepository):
    """In-memory ReviewRepository with per-operation failure injection."""

    def __init__(self, items: list[Item] | None = None):
        self.items: list[Item] = list(items or [])
        self.states: dict[tuple[UUID, str], ReviewState] = {}
        self.streaks: dict[UUID, Streak] = {}
        self.failures: dict[str, AppError] = {}
        self.calls: list[str] = []
        self.write_gate: asyncio.Event | None = None

    def fail_on(self, operation: str, error: AppError | None = None) -> None:
        self.failures[operation] = error or transaction_failed(
            "injected failure", origin="tests.fake_repository"
        ).error

    def recover(self, operation: str | None = None) -> None:
        if operation is None:
            self.failures.clear()
        else:
            self.failures.pop(operation, None)

    def _enter(self, operation: str) -> Err[AppError] | None:
        self.calls.append(operation)
        if operation in self.failures:
            return Err(self.failures[operation])
        return None

    def _pool_entries(self, user_id: UUID, pool: ItemPool) -> list[DueItem]:
        return [
            DueItem(item=item, state=self.states.get((user_id, item.key)))
            for item in self.items
            if item.pool is pool
        ]

    async def get_due_items(self, user_id, pool, now) -> Result[list[DueItem], AppError]:
        if failed := self._enter("get_due_items"):
            return failed
        return Ok([e for e in self._pool_entries(user_id, pool) if is_due(e.state, now)])

    async def get_tracked_items(self, user_id, scope: Scope) -> Result[list[DueItem], AppError]:
        if failed := self._enter("get_tracked_items"):
            return failed
        entries: list[DueItem] = []
        for pool in scope.pools:
            entries.extend(self._pool_entries(user_id, pool))
        return Ok(entries)

    async def get_review_state(self, user_id, item_key) -> Result[ReviewState | None, AppError]:
        if failed := self._enter("get_review_state"):
            return failed
        return Ok(self.states.get((user_id, item_key)))

    async def upsert_review_state(self, user_id, item_key, state) -> Result[ReviewState, AppError]:
        if self.write_gate is not None:
            await self.write_gate.wait()
        if failed := self._enter("upsert_review_state"):
            return failed
        self.states[(user_id, item_key)] = state
        return Ok(state)

    async def get_distractor_pool(self, user_id) -> Result[list[Item], AppError]:
        if failed := self._enter("get_distractor_pool"):
            return failed
        return Ok(list(self.items))

    async def get_streak(self, user_id) -> Result[Streak | None, AppError]:
        if failed := self._enter("get_streak"):
            return failed
        return Ok(self.streaks.get(user_id))

    async def upsert_streak(self, user_id, streak) -> Result[Streak, AppError]:
        if failed := self._enter("upsert_streak"):
            return failed
        self.streaks[user_id] = streak
        return Ok(streak)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    """Mutable clock: tests move time with ``clock.now = ...``."""
    class Clock:
        def __init__(self):
            self.now = NOW

        def __call__(self) -> datetime:
            return self.now

    return Clock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def curriculum_items() -> list[CurriculumItem]:
    return [
        CurriculumItem(
            id="color-red", text="أحمر", translation="Red", topic_id="colors",
            sentence_text="السيارة لونها أحمر", sentence_translation="The car is red",
        ),
        CurriculumItem(id="color-blue", text="أزرق", translation="Blue", topic_id="colors"),
        CurriculumItem(id="color-yellow", text="أصفر", translation="Yellow", topic_id="colors"),
        CurriculumItem(id="color-green", text="أخضر", translation="Green", topic_id="colors"),
        CurriculumItem(id="greet-hello", text="مرحبا", translation="Hello", topic_id="greetings"),
        CurriculumItem(id="greet-thanks", text="شكرا", translation="Thank you", topic_id="greetings"),
    ]


@pytest.fixture
def personal_items() -> list[PersonalItem]:
    return [
        PersonalItem(id="p-1", text="قهوة", translation="Coffee"),
        PersonalItem(id="p-2", text="بيت", translation="House"),
    ]


@pytest.fixture
def repository(curriculum_items, personal_items) -> FakeRepository:
    return FakeRepository([*curriculum_items, *personal_items])
