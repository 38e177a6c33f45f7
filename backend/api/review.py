"""Review API with Monadic Error Handling

Due-set queries, review sessions, interval previews, progress and streaks.
Sessions are held in-process and belong to the learner who started them.
"""
from datetime import date, datetime, timezone
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from core.errors import (
    AppError,
    Err,
    Ok,
    Result,
    invalid_format,
    not_found,
    raise_error,
    raise_result,
    resource_forbidden,
    token_missing,
)
from core.logging import api_logger
from core.security import get_current_user_id
from engines.due import fetch_due_set
from engines.exercises import Exercise
from engines.progress import summarize_progress
from engines.repository import ReviewRepository, SqlReviewRepository
from engines.scheduling import mastery_stage, strategy_for
from engines.session import ReviewCard, ReviewSession, SessionStats, SubmitOutcome
from engines.types import (
    DueItem,
    IntervalState,
    Item,
    ReviewState,
    Scope,
    Streak,
    split_item_key,
)

router = APIRouter()
log = api_logger()

ORIGIN = "api.review"


# ═══════════════════════════════════════════════════════════════════════════════
# SCHEMAS
# ═══════════════════════════════════════════════════════════════════════════════

class ItemResponse(BaseModel):
    key: str
    pool: str
    id: str
    text: str
    translation: str
    sentence_text: str | None = None
    sentence_translation: str | None = None
    audio_url: str | None = None
    sentence_audio_url: str | None = None
    topic_id: str | None = None

    @classmethod
    def from_item(cls, item: Item) -> "ItemResponse":
        return cls(
            key=item.key,
            pool=item.pool.value,
            id=item.id,
            text=item.text,
            translation=item.translation,
            sentence_text=item.sentence_text,
            sentence_translation=item.sentence_translation,
            audio_url=item.audio_url,
            sentence_audio_url=item.sentence_audio_url,
            topic_id=item.topic_id,
        )


class StateResponse(BaseModel):
    model: Literal["interval", "stage"]
    stage: str
    ease_factor: float | None = None
    interval_days: int | None = None
    repetitions: int | None = None
    last_result: str | None = None
    last_reviewed_at: datetime | None = None
    next_review_at: datetime | None = None
    review_count: int = 0
    correct_count: int = 0

    @classmethod
    def from_state(cls, state: ReviewState | None) -> "StateResponse | None":
        if state is None:
            return None
        common = {
            "stage": mastery_stage(state).value,
            "last_reviewed_at": state.last_reviewed_at,
            "next_review_at": state.next_review_at,
            "review_count": state.review_count,
            "correct_count": state.correct_count,
        }
        if isinstance(state, IntervalState):
            return cls(
                model="interval",
                ease_factor=state.ease_factor,
                interval_days=state.interval_days,
                repetitions=state.repetitions,
                **common,
            )
        return cls(
            model="stage",
            last_result=state.last_result.value if state.last_result else None,
            **common,
        )


class DueItemResponse(BaseModel):
    item: ItemResponse
    state: StateResponse | None
    stage: str

    @classmethod
    def from_due(cls, entry: DueItem) -> "DueItemResponse":
        return cls(
            item=ItemResponse.from_item(entry.item),
            state=StateResponse.from_state(entry.state),
            stage=mastery_stage(entry.state).value,
        )


class ExerciseResponse(BaseModel):
    type: str
    prompt: str
    answer: str
    options: list[str]
    audio_url: str | None = None

    @classmethod
    def from_exercise(cls, exercise: Exercise) -> "ExerciseResponse":
        return cls(
            type=exercise.type.value,
            prompt=exercise.prompt,
            answer=exercise.answer,
            options=list(exercise.options),
            audio_url=exercise.audio_url,
        )


class CardResponse(BaseModel):
    item: ItemResponse
    stage: str
    exercise: ExerciseResponse
    position: int
    total: int

    @classmethod
    def from_card(cls, card: ReviewCard | None) -> "CardResponse | None":
        if card is None:
            return None
        return cls(
            item=ItemResponse.from_item(card.item),
            stage=card.stage.value,
            exercise=ExerciseResponse.from_exercise(card.exercise),
            position=card.position,
            total=card.total,
        )


class StatsResponse(BaseModel):
    total: int
    correct: int
    incorrect: int
    accuracy: int

    @classmethod
    def from_stats(cls, stats: SessionStats) -> "StatsResponse":
        return cls(
            total=stats.total,
            correct=stats.correct,
            incorrect=stats.incorrect,
            accuracy=stats.accuracy,
        )


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_review_date: date | None = None

    @classmethod
    def from_streak(cls, streak: Streak | None) -> "StreakResponse":
        streak = streak or Streak()
        return cls(
            current_streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            last_review_date=streak.last_review_date,
        )


class SessionResponse(BaseModel):
    id: str
    status: str
    scope: str
    index: int
    total: int
    remaining: int
    stats: StatsResponse
    current: CardResponse | None
    streak_pending: bool

    @classmethod
    def from_session(cls, session: ReviewSession) -> "SessionResponse":
        return cls(
            id=session.id,
            status=session.status.value,
            scope=session.scope.value,
            index=session.index,
            total=len(session.items),
            remaining=session.remaining,
            stats=StatsResponse.from_stats(session.stats),
            current=CardResponse.from_card(session.current),
            streak_pending=session.streak_pending,
        )


class SessionCreate(BaseModel):
    scope: Scope = Scope.BOTH
    limit: int | None = None


class SubmitRequest(BaseModel):
    grade: str  # again/hard/good/easy or correct/incorrect/reset


class SubmitResponse(BaseModel):
    item_key: str
    grade: str
    passed: bool
    next_review_at: datetime
    state: StateResponse
    stats: StatsResponse
    status: str
    streak: StreakResponse | None = None
    streak_error: dict | None = None
    next: CardResponse | None = None

    @classmethod
    def from_outcome(cls, outcome: SubmitOutcome, session: ReviewSession) -> "SubmitResponse":
        return cls(
            item_key=outcome.item_key,
            grade=outcome.grade.value,
            passed=outcome.passed,
            next_review_at=outcome.next_review_at,
            state=StateResponse.from_state(outcome.state),
            stats=StatsResponse.from_stats(outcome.stats),
            status=outcome.status.value,
            streak=StreakResponse.from_streak(outcome.streak) if outcome.streak else None,
            streak_error=outcome.streak_error.to_dict()["error"] if outcome.streak_error else None,
            next=CardResponse.from_card(session.current),
        )


class PreviewResponse(BaseModel):
    item_key: str
    scheduler: str
    labels: dict[str, str]


class ProgressResponse(BaseModel):
    stage_counts: dict[str, int]
    total_items: int
    due: int
    learned: int
    mastered: int
    total_reviews: int
    total_correct: int
    accuracy: int
    current_streak: int
    longest_streak: int


# ═══════════════════════════════════════════════════════════════════════════════
# SESSION REGISTRY & DEPENDENCIES
# ═══════════════════════════════════════════════════════════════════════════════

class SessionRegistry:
    """In-process review sessions keyed by id, each owned by one learner.

    A learner holds at most one live session: starting a new one drops the
    previous, since a client that navigates away never abandons it explicitly.
    """

    __slots__ = ("_sessions", "_by_user")

    def __init__(self):
        self._sessions: dict[str, ReviewSession] = {}
        self._by_user: dict[UUID, str] = {}

    def add(self, session: ReviewSession) -> None:
        previous = self._by_user.get(session.user_id)
        if previous is not None and previous != session.id:
            self._sessions.pop(previous, None)
            log.info("session_replaced", session_id=previous, replaced_by=session.id)
        self._sessions[session.id] = session
        self._by_user[session.user_id] = session.id

    def get(self, session_id: str, user_id: UUID) -> Result[ReviewSession, AppError]:
        session = self._sessions.get(session_id)
        if session is None:
            return not_found("ReviewSession", session_id, origin=ORIGIN)
        if session.user_id != user_id:
            return resource_forbidden(f"ReviewSession {session_id}", origin=ORIGIN)
        return Ok(session)

    def discard(self, session_id: str, user_id: UUID) -> Result[ReviewSession, AppError]:
        result = self.get(session_id, user_id)
        if result.is_ok():
            del self._sessions[session_id]
            if self._by_user.get(user_id) == session_id:
                del self._by_user[user_id]
        return result

    def __len__(self) -> int:
        return len(self._sessions)


_repository = SqlReviewRepository()
_registry = SessionRegistry()


def get_review_repository() -> ReviewRepository:
    return _repository


def get_session_registry() -> SessionRegistry:
    return _registry


def require_user(user_id: UUID | None = Depends(get_current_user_id)) -> UUID:
    if user_id is None:
        raise_error(token_missing(origin=ORIGIN).error)
    return user_id


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _unwrap(result: Result):
    raise_result(result)
    return result.unwrap()


# ═══════════════════════════════════════════════════════════════════════════════
# ROUTES
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/due", response_model=list[DueItemResponse])
async def get_due_items(
    scope: Scope = Query(Scope.BOTH),
    limit: int | None = Query(None, ge=1, le=500),
    user_id: UUID | None = Depends(get_current_user_id),
    repository: ReviewRepository = Depends(get_review_repository),
):
    """Ordered due set; empty for unauthenticated callers."""
    due = _unwrap(await fetch_due_set(repository, user_id, scope, _now(), limit))
    return [DueItemResponse.from_due(entry) for entry in due]


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def start_session(
    body: SessionCreate | None = None,
    user_id: UUID = Depends(require_user),
    repository: ReviewRepository = Depends(get_review_repository),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Snapshot the due set and start a review session."""
    body = body or SessionCreate()
    session = ReviewSession(repository, user_id, body.scope, limit=body.limit)
    _unwrap(await session.start())
    registry.add(session)
    return SessionResponse.from_session(session)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    user_id: UUID = Depends(require_user),
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = _unwrap(registry.get(session_id, user_id))
    return SessionResponse.from_session(session)


@router.post("/sessions/{session_id}/submit", response_model=SubmitResponse)
async def submit_answer(
    session_id: str,
    body: SubmitRequest,
    user_id: UUID = Depends(require_user),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Grade the current card; the session only advances once the grade is saved."""
    session = _unwrap(registry.get(session_id, user_id))
    outcome = _unwrap(await session.submit(body.grade))
    return SubmitResponse.from_outcome(outcome, session)


@router.post("/sessions/{session_id}/intro", response_model=SubmitResponse)
async def complete_intro(
    session_id: str,
    user_id: UUID = Depends(require_user),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Mark the current NEW item's introduction as seen."""
    session = _unwrap(registry.get(session_id, user_id))
    outcome = _unwrap(await session.complete_intro())
    return SubmitResponse.from_outcome(outcome, session)


@router.post("/sessions/{session_id}/restart", response_model=SessionResponse)
async def restart_session(
    session_id: str,
    user_id: UUID = Depends(require_user),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Run a completed session again over a fresh due set."""
    session = _unwrap(registry.get(session_id, user_id))
    _unwrap(await session.start())
    return SessionResponse.from_session(session)


@router.post("/sessions/{session_id}/streak/retry", response_model=StreakResponse)
async def retry_streak(
    session_id: str,
    user_id: UUID = Depends(require_user),
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = _unwrap(registry.get(session_id, user_id))
    streak = _unwrap(await session.retry_streak())
    return StreakResponse.from_streak(streak)


@router.delete("/sessions/{session_id}")
async def abandon_session(
    session_id: str,
    user_id: UUID = Depends(require_user),
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = _unwrap(registry.discard(session_id, user_id))
    log.info("session_abandoned", session_id=session.id, reviewed=session.index, total=len(session.items))
    return {"status": "abandoned", "id": session.id}


@router.get("/preview", response_model=PreviewResponse)
async def preview_intervals(
    item_key: str = Query(..., description="Pool-qualified key, e.g. curriculum:marhaba"),
    user_id: UUID = Depends(require_user),
    repository: ReviewRepository = Depends(get_review_repository),
):
    """Interval label per grade for an item; nothing is saved."""
    try:
        pool, _ = split_item_key(item_key)
    except ValueError:
        raise_error(invalid_format("item_key", "<pool>:<id>", item_key, origin=ORIGIN).error)

    state = _unwrap(await repository.get_review_state(user_id, item_key))
    strategy = strategy_for(pool)
    return PreviewResponse(
        item_key=item_key,
        scheduler=strategy.name,
        labels=strategy.preview(state, _now()),
    )


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(
    scope: Scope = Query(Scope.BOTH),
    user_id: UUID = Depends(require_user),
    repository: ReviewRepository = Depends(get_review_repository),
):
    entries = _unwrap(await repository.get_tracked_items(user_id, scope))
    streak = await repository.get_streak(user_id)
    match streak:
        case Ok(value):
            current = value
        case Err(error):
            log.warning("progress_streak_unavailable", code=error.code.name)
            current = None

    summary = summarize_progress(entries, current, _now())
    return ProgressResponse(
        stage_counts={stage.value: count for stage, count in summary.stage_counts.items()},
        total_items=summary.total_items,
        due=summary.due,
        learned=summary.learned,
        mastered=summary.mastered,
        total_reviews=summary.total_reviews,
        total_correct=summary.total_correct,
        accuracy=summary.accuracy,
        current_streak=summary.current_streak,
        longest_streak=summary.longest_streak,
    )


@router.get("/streak", response_model=StreakResponse)
async def get_streak(
    user_id: UUID = Depends(require_user),
    repository: ReviewRepository = Depends(get_review_repository),
):
    streak = _unwrap(await repository.get_streak(user_id))
    return StreakResponse.from_streak(streak)
