"""Progress summary for the learner dashboard."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from engines.due import is_due
from engines.scheduling import mastery_stage
from engines.types import DueItem, Stage, Streak, STAGE_ORDER


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    stage_counts: dict[Stage, int] = field(default_factory=dict)
    total_items: int = 0
    due: int = 0
    learned: int = 0
    mastered: int = 0
    total_reviews: int = 0
    total_correct: int = 0
    accuracy: int = 0
    current_streak: int = 0
    longest_streak: int = 0


def summarize_progress(
    entries: Iterable[DueItem],
    streak: Streak | None,
    now: datetime,
) -> ProgressSummary:
    """Aggregate tracked items into stage counts and review totals.

    Never-reviewed items count as NEW.
    """
    counts = {stage: 0 for stage in STAGE_ORDER}
    total = due = learned = reviews = correct = 0

    for entry in entries:
        total += 1
        stage = mastery_stage(entry.state)
        counts[stage] += 1
        if is_due(entry.state, now):
            due += 1
        if entry.state is None:
            continue
        if stage is not Stage.NEW:
            learned += 1
        reviews += entry.state.review_count
        correct += entry.state.correct_count

    streak = streak or Streak()
    return ProgressSummary(
        stage_counts=counts,
        total_items=total,
        due=due,
        learned=learned,
        mastered=counts[Stage.STAGE_5],
        total_reviews=reviews,
        total_correct=correct,
        accuracy=round(correct / reviews * 100) if reviews else 0,
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
    )
