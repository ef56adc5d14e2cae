"""
XP and Leveling System

Manages XP awards, level calculations, and level-up rewards.

Leveling Curve:
- level = floor(sqrt(total_xp / 100)) + 1
- Level 2 at 100 XP, level 3 at 400 XP, level 4 at 900 XP, ...
  (threshold for level L is 100 * (L - 1)^2)

XP Award Rules (habit completion):
- Base: 10 XP
- Streak bonus: +5 at 7 days, +10 more at 30 days, +20 more at 100 days
- First completion of a habit: x1.5
- Difficulty 1-5: multiplier scaled by difficulty / 3
- Level up: bonus of new_level * 10 XP, logged as its own transaction

Level-up rewards:
- Every 5th level: Special Badge
- Every 10th level: Forgiveness Token (held tokens capped at 2)
"""

from typing import Any, Dict, List, Optional
import logging
import math

from habitforge.config import MAX_FORGIVENESS_TOKENS
from habitforge.db import queries

logger = logging.getLogger(__name__)

BASE_COMPLETION_XP = 10
FIRST_COMPLETION_MULTIPLIER = 1.5
LEVEL_MILESTONES = (5, 10, 25, 50, 75, 100)


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves away from zero for positives"""
    return int(math.floor(value + 0.5))


def calculate_level(total_xp: int) -> int:
    """
    Calculate level from total XP

    Negative XP is treated as 0 (level 1).
    """
    total_xp = max(total_xp, 0)
    level = math.isqrt(total_xp // 100) + 1
    return level


def xp_for_level(level: int) -> int:
    """Total XP required to reach `level`"""
    if level <= 1:
        return 0
    return 100 * (level - 1) ** 2


def get_level_title(level: int) -> str:
    """Display title for a level"""
    if level >= 100:
        return "Grandmaster"
    if level >= 75:
        return "Master"
    if level >= 50:
        return "Expert"
    if level >= 25:
        return "Advanced"
    if level >= 10:
        return "Intermediate"
    if level >= 5:
        return "Novice"
    return "Beginner"


def get_next_milestone(level: int) -> Dict[str, Any]:
    """Next titled level milestone above `level`"""
    next_level = next((m for m in LEVEL_MILESTONES if m > level), level + 25)
    return {
        "level": next_level,
        "title": get_level_title(next_level),
    }


def get_level_info(total_xp: int) -> Dict[str, Any]:
    """
    Calculate level progress from total XP

    Returns:
        {
            'current_level': int,
            'current_xp': int,
            'xp_for_current_level': int,
            'xp_for_next_level': int,
            'xp_progress': int,
            'xp_to_next_level': int,
            'progress_percentage': float,
            'title': str
        }
    """
    total_xp = max(total_xp, 0)
    level = calculate_level(total_xp)
    current_threshold = xp_for_level(level)
    next_threshold = xp_for_level(level + 1)
    xp_progress = total_xp - current_threshold
    xp_needed = next_threshold - current_threshold

    return {
        "current_level": level,
        "current_xp": total_xp,
        "xp_for_current_level": current_threshold,
        "xp_for_next_level": next_threshold,
        "xp_progress": xp_progress,
        "xp_to_next_level": next_threshold - total_xp,
        "progress_percentage": round(xp_progress / xp_needed * 100, 1),
        "title": get_level_title(level),
    }


def calculate_streak_bonus(current_streak: int) -> int:
    """Cumulative streak bonus for the streak length after this completion"""
    bonus = 0
    if current_streak >= 7:
        bonus += 5
    if current_streak >= 30:
        bonus += 10
    if current_streak >= 100:
        bonus += 20
    return bonus


def calculate_completion_xp(
    current_streak: int,
    is_first_completion: bool = False,
    difficulty: Optional[int] = None
) -> Dict[str, Any]:
    """
    XP for a habit completion

    Args:
        current_streak: Habit streak including this completion
        is_first_completion: True if the habit had no completions before
        difficulty: Optional self-rated difficulty 1-5

    Returns:
        {
            'base_xp': int,
            'streak_bonus': int,
            'multiplier': float,
            'total_xp': int
        }
    """
    streak_bonus = calculate_streak_bonus(current_streak)
    multiplier = 1.0

    if is_first_completion:
        multiplier = FIRST_COMPLETION_MULTIPLIER

    if difficulty:
        multiplier *= difficulty / 3

    total_xp = round_half_up((BASE_COMPLETION_XP + streak_bonus) * multiplier)

    return {
        "base_xp": BASE_COMPLETION_XP,
        "streak_bonus": streak_bonus,
        "multiplier": round(multiplier, 4),
        "total_xp": total_xp,
    }


def calculate_level_up_bonus(new_level: int) -> int:
    """Bonus XP granted when reaching new_level"""
    return new_level * 10


def level_up_rewards(old_level: int, new_level: int) -> List[str]:
    """
    Rewards unlocked for every level crossed from old_level to new_level

    Returns:
        Reward names in the order they were reached
    """
    rewards = []
    for level in range(old_level + 1, new_level + 1):
        if level % 5 == 0:
            rewards.append("Special Badge")
        if level % 10 == 0:
            rewards.append("Forgiveness Token")
    return rewards


def plan_xp_award(
    total_xp: int,
    forgiveness_tokens: int,
    amount: int,
    allow_level_bonus: bool = True
) -> Dict[str, Any]:
    """
    Pure calculation of a user's state after crediting `amount` XP

    The level-up bonus is granted once, based on the level reached by the
    award itself; the final level is recomputed after the bonus so the stored
    level always matches the stored XP.

    Returns:
        {
            'old_total_xp', 'new_total_xp', 'old_level', 'new_level',
            'leveled_up', 'level_up_bonus', 'rewards',
            'forgiveness_tokens', 'tokens_granted'
        }
    """
    old_level = calculate_level(total_xp)
    after_award = total_xp + amount
    level_after_award = calculate_level(after_award)

    level_up_bonus = 0
    if allow_level_bonus and level_after_award > old_level:
        level_up_bonus = calculate_level_up_bonus(level_after_award)

    new_total_xp = after_award + level_up_bonus
    new_level = calculate_level(new_total_xp)
    rewards = level_up_rewards(old_level, new_level)

    tokens_earned = rewards.count("Forgiveness Token")
    new_tokens = min(forgiveness_tokens + tokens_earned, MAX_FORGIVENESS_TOKENS)
    new_tokens = max(new_tokens, forgiveness_tokens)

    return {
        "old_total_xp": total_xp,
        "new_total_xp": new_total_xp,
        "old_level": old_level,
        "new_level": new_level,
        "leveled_up": new_level > old_level,
        "level_up_bonus": level_up_bonus,
        "rewards": rewards,
        "forgiveness_tokens": new_tokens,
        "tokens_granted": new_tokens - forgiveness_tokens,
    }


async def award_xp(
    conn,
    user: Dict[str, Any],
    amount: int,
    source: str,
    description: str,
    habit_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    allow_level_bonus: bool = True
) -> Dict[str, Any]:
    """
    Credit XP to a user inside an open transaction

    Appends the ledger entry, the level bonus entry when earned, and writes
    the user's new XP, level and forgiveness tokens.

    Args:
        conn: Connection with an open transaction (user row already locked)
        user: Locked user row (needs id, total_xp, forgiveness_tokens)
        amount: XP to credit
        source: Ledger source (habit_completion, forgiveness, challenge, manual)
        description: Human-readable description
        habit_id: Related habit, if any
        metadata: Extra ledger metadata
        allow_level_bonus: Whether a level-up grants the level bonus

    Returns:
        plan_xp_award() result plus 'xp_awarded' and 'transaction_id'
    """
    user_id = str(user["id"])
    plan = plan_xp_award(
        total_xp=user["total_xp"],
        forgiveness_tokens=user["forgiveness_tokens"],
        amount=amount,
        allow_level_bonus=allow_level_bonus,
    )

    transaction_id = await queries.add_xp_transaction(
        conn,
        user_id=user_id,
        amount=amount,
        source=source,
        description=description,
        habit_id=habit_id,
        metadata=metadata or {},
    )

    if plan["level_up_bonus"]:
        level_reached = calculate_level(plan["old_total_xp"] + amount)
        await queries.add_xp_transaction(
            conn,
            user_id=user_id,
            amount=plan["level_up_bonus"],
            source="level_bonus",
            description=f"Level {level_reached} bonus",
            metadata={"new_level": level_reached, "old_level": plan["old_level"]},
        )

    await queries.update_user_progress(
        conn,
        user_id=user_id,
        total_xp=plan["new_total_xp"],
        level=plan["new_level"],
        forgiveness_tokens=plan["forgiveness_tokens"],
    )

    logger.info(
        f"Awarded {amount} XP to user {user_id} for {source}. "
        f"Total: {plan['new_total_xp']} XP, Level: {plan['new_level']}"
    )

    if plan["leveled_up"]:
        logger.info(
            f"User {user_id} leveled up from {plan['old_level']} to {plan['new_level']}! "
            f"Bonus: {plan['level_up_bonus']} XP"
        )

    return {
        **plan,
        "xp_awarded": amount,
        "transaction_id": transaction_id,
    }
