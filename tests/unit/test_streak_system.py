"""Unit tests for habit streak and consistency calculation"""
from datetime import date, timedelta

from habitforge.gamification.streak_system import (
    calculate_consistency_rate,
    calculate_current_streak,
    calculate_longest_streak,
    calculate_streaks,
    count_distinct_days,
    streak_milestone,
)

TODAY = date(2024, 3, 15)


def days_back(*offsets):
    """Dates `offset` days before TODAY"""
    return [TODAY - timedelta(days=o) for o in offsets]


# ============================================================================
# Current Streak Tests
# ============================================================================

def test_current_streak_no_completions():
    assert calculate_current_streak([], TODAY) == 0


def test_current_streak_ending_today():
    assert calculate_current_streak(days_back(0, 1, 2), TODAY) == 3


def test_current_streak_alive_when_today_not_done_yet():
    """A streak ending yesterday is still current"""
    assert calculate_current_streak(days_back(1, 2, 3, 4), TODAY) == 4


def test_current_streak_broken_after_missed_day():
    assert calculate_current_streak(days_back(2, 3, 4), TODAY) == 0


def test_current_streak_stops_at_gap():
    assert calculate_current_streak(days_back(0, 1, 3, 4, 5), TODAY) == 2


def test_current_streak_ignores_duplicates_and_none():
    dates = days_back(0, 0, 1) + [None]
    assert calculate_current_streak(dates, TODAY) == 2


# ============================================================================
# Longest Streak Tests
# ============================================================================

def test_longest_streak_empty():
    assert calculate_longest_streak([]) == 0


def test_longest_streak_single_day():
    assert calculate_longest_streak(days_back(10)) == 1


def test_longest_streak_finds_best_run():
    dates = days_back(0, 1) + days_back(10, 11, 12, 13, 14) + days_back(20)
    assert calculate_longest_streak(dates) == 5


def test_longest_streak_unsorted_input():
    dates = days_back(3, 1, 2, 0)
    assert calculate_longest_streak(dates) == 4


def test_calculate_streaks_combined():
    dates = days_back(0, 1, 2) + days_back(5, 6, 7, 8, 9, 10)

    assert calculate_streaks(dates, TODAY) == {
        "current_streak": 3,
        "longest_streak": 6,
    }


# ============================================================================
# Consistency Tests
# ============================================================================

def test_consistency_rate_half_window():
    dates = days_back(*range(0, 30, 2))  # 15 of 30 days
    assert calculate_consistency_rate(dates, TODAY) == 50


def test_consistency_rate_ignores_days_outside_window():
    dates = days_back(0, 30, 45)
    # Only today is inside the 30-day window: 1/30 = 3.33%
    assert calculate_consistency_rate(dates, TODAY) == 3


def test_consistency_rate_full_window_capped():
    dates = days_back(*range(30))
    assert calculate_consistency_rate(dates, TODAY) == 100


def test_consistency_rate_custom_window():
    assert calculate_consistency_rate(days_back(0, 1, 2), TODAY, window_days=7) == 43


def test_consistency_rate_zero_window():
    assert calculate_consistency_rate(days_back(0), TODAY, window_days=0) == 0


# ============================================================================
# Milestone Tests
# ============================================================================

def test_streak_milestone_reached():
    assert streak_milestone(6, 7) == 7
    assert streak_milestone(29, 30) == 30
    assert streak_milestone(99, 100) == 100


def test_streak_milestone_not_reached():
    assert streak_milestone(7, 8) is None
    assert streak_milestone(0, 1) is None


def test_streak_milestone_highest_when_jumping():
    """Recalculation after a forgiveness can jump several milestones"""
    assert streak_milestone(5, 31) == 30


def test_count_distinct_days():
    assert count_distinct_days(days_back(0, 0, 1, 5)) == 3
