"""Streak Tracker

Consecutive-day practice streak. A day counts once, however many reviews
happen in it; missing a calendar day resets the streak to 1.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from core.logging import streak_logger
from engines.types import Streak

log = streak_logger()


def update_streak(streak: Streak | None, now: datetime) -> Streak:
    """Record practice at ``now``; the calendar day is ``now.date()``."""
    streak = streak or Streak()
    today = now.date()
    last = streak.last_review_date

    if last == today:
        current = streak.current_streak
    elif last == today - timedelta(days=1):
        current = streak.current_streak + 1
    else:
        current = 1

    updated = Streak(
        current_streak=current,
        longest_streak=max(streak.longest_streak, current),
        last_review_date=today,
    )
    if updated.current_streak != streak.current_streak:
        log.debug("streak_updated", current=updated.current_streak, longest=updated.longest_streak)
    return updated
