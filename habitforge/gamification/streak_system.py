"""
Habit Streak & Consistency Calculation

Streaks are computed from the set of local calendar days on which a habit
has a completion (forgiveness completions included).

Rules:
- current streak: run of consecutive completion days ending today, or ending
  yesterday if today has not been completed yet; otherwise 0
- longest streak: longest run of consecutive days ever recorded
- consistency: completions in the trailing window (today included) as a
  percentage of the window length, capped at 100

Milestones: 7, 30 and 100 days.
"""

from typing import Dict, Iterable, Optional, Set
from datetime import date, timedelta
import logging
import math

from habitforge.config import CONSISTENCY_WINDOW_DAYS

logger = logging.getLogger(__name__)

STREAK_MILESTONES = (7, 30, 100)


def _normalize(dates: Iterable[date]) -> Set[date]:
    return {d for d in dates if d is not None}


def calculate_current_streak(completion_dates: Iterable[date], today: date) -> int:
    """
    Length of the streak that is still alive on `today`

    Args:
        completion_dates: Local dates with a completion (duplicates ignored)
        today: Today's date in the user's timezone

    Returns:
        Number of consecutive days, 0 if the streak is broken
    """
    days = _normalize(completion_dates)

    if today in days:
        cursor = today
    elif today - timedelta(days=1) in days:
        cursor = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)

    return streak


def calculate_longest_streak(completion_dates: Iterable[date]) -> int:
    """
    Longest run of consecutive completion days

    Args:
        completion_dates: Local dates with a completion

    Returns:
        Longest run length (0 for no completions)
    """
    days = sorted(_normalize(completion_dates))
    if not days:
        return 0

    longest = 1
    run = 1
    for previous, current in zip(days, days[1:]):
        if current - previous == timedelta(days=1):
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    return longest


def calculate_streaks(completion_dates: Iterable[date], today: date) -> Dict[str, int]:
    """
    Current and longest streak in one pass over the dates

    Returns:
        {'current_streak': int, 'longest_streak': int}
    """
    days = _normalize(completion_dates)
    current = calculate_current_streak(days, today)
    longest = max(calculate_longest_streak(days), current)

    return {
        "current_streak": current,
        "longest_streak": longest,
    }


def calculate_consistency_rate(
    completion_dates: Iterable[date],
    today: date,
    window_days: int = CONSISTENCY_WINDOW_DAYS
) -> int:
    """
    Percentage of days in the trailing window that have a completion

    Args:
        completion_dates: Local dates with a completion
        today: Today's date in the user's timezone
        window_days: Window length, today included

    Returns:
        Integer percentage 0-100 (rounded half up)
    """
    if window_days <= 0:
        return 0

    window_start = today - timedelta(days=window_days - 1)
    in_window = [d for d in _normalize(completion_dates) if window_start <= d <= today]

    rate = math.floor(len(in_window) / window_days * 100 + 0.5)
    return min(rate, 100)


def streak_milestone(old_streak: int, new_streak: int) -> Optional[int]:
    """
    Milestone crossed when a streak moves from old_streak to new_streak

    Returns:
        The highest milestone reached by this change, or None
    """
    reached = [m for m in STREAK_MILESTONES if old_streak < m <= new_streak]
    return reached[-1] if reached else None


def count_distinct_days(completion_dates: Iterable[date]) -> int:
    """Number of distinct days with at least one completion"""
    return len(_normalize(completion_dates))

