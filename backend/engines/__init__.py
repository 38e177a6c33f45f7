from engines.scheduling import (
    SchedulingStrategy,
    IntervalStrategy,
    StageStrategy,
    ScheduleOutcome,
    interval_transition,
    stage_transition,
    strategy_for,
    mastery_stage,
    format_interval,
)
from engines.distractors import pick_distractors, shuffle_options, split_by_topic
from engines.exercises import ExerciseType, Exercise, eligible_exercises, pick_exercise, build_exercise
from engines.due import is_due, select_due, fetch_due_set
from engines.streak import update_streak
from engines.progress import ProgressSummary, summarize_progress
from engines.repository import ReviewRepository, SqlReviewRepository, sync_curriculum_words
from engines.session import ReviewSession, SessionStatus, SessionStats, SubmitOutcome, ReviewCard

__all__ = [
    "SchedulingStrategy",
    "IntervalStrategy",
    "StageStrategy",
    "ScheduleOutcome",
    "interval_transition",
    "stage_transition",
    "strategy_for",
    "mastery_stage",
    "format_interval",
    "pick_distractors",
    "shuffle_options",
    "split_by_topic",
    "ExerciseType",
    "Exercise",
    "eligible_exercises",
    "pick_exercise",
    "build_exercise",
    "is_due",
    "select_due",
    "fetch_due_set",
    "update_streak",
    "ProgressSummary",
    "summarize_progress",
    "ReviewRepository",
    "SqlReviewRepository",
    "sync_curriculum_words",
    "ReviewSession",
    "SessionStatus",
    "SessionStats",
    "SubmitOutcome",
    "ReviewCard",
]
