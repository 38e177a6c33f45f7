from datetime import date, datetime, timedelta, timezone

from engines.streak import update_streak
from engines.types import Streak

TODAY = date(2026, 3, 10)
NOON = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_first_review_starts_streak():
    assert update_streak(None, NOON) == Streak(current_streak=1, longest_streak=1, last_review_date=TODAY)


def test_review_after_yesterday_extends_streak():
    streak = Streak(current_streak=4, longest_streak=4, last_review_date=TODAY - timedelta(days=1))

    updated = update_streak(streak, NOON)

    assert updated.current_streak == 5
    assert updated.longest_streak == 5
    assert updated.last_review_date == TODAY


def test_second_review_same_day_is_unchanged():
    streak = Streak(current_streak=3, longest_streak=7, last_review_date=TODAY)

    assert update_streak(streak, NOON) == streak


def test_gap_resets_to_one_but_keeps_longest():
    streak = Streak(current_streak=6, longest_streak=9, last_review_date=TODAY - timedelta(days=2))

    updated = update_streak(streak, NOON)

    assert updated.current_streak == 1
    assert updated.longest_streak == 9


def test_longest_never_decreases():
    streak = None
    longest = 0
    at = NOON
    for gap in [1, 1, 0, 3, 1, 1, 1, 1, 5, 1]:
        at += timedelta(days=gap)
        streak = update_streak(streak, at)
        assert streak.longest_streak >= longest
        assert streak.longest_streak >= streak.current_streak
        longest = streak.longest_streak
    assert longest == 5


def test_day_boundary_uses_calendar_date():
    late = datetime(2026, 3, 9, 23, 59, tzinfo=timezone.utc)
    early = datetime(2026, 3, 10, 0, 1, tzinfo=timezone.utc)

    streak = update_streak(update_streak(None, late), early)

    assert streak.current_streak == 2
