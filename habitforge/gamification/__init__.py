"""
Gamification engine for HabitForge

- XP and leveling (level from total XP, completion XP, level-up rewards)
- Habit streaks and 30-day consistency
"""

from habitforge.gamification.xp_system import (
    award_xp,
    calculate_completion_xp,
    calculate_level,
    get_level_info,
    plan_xp_award,
)
from habitforge.gamification.streak_system import (
    calculate_consistency_rate,
    calculate_streaks,
    streak_milestone,
)

__all__ = [
    "award_xp",
    "calculate_completion_xp",
    "calculate_level",
    "get_level_info",
    "plan_xp_award",
    "calculate_consistency_rate",
    "calculate_streaks",
    "streak_milestone",
]
