"""Analytics aggregation queries"""
import logging
from datetime import date
from typing import Optional

from habitforge.db.connection import db

logger = logging.getLogger(__name__)


async def get_habit_summary(user_id: str) -> dict:
    """
    Aggregate streak figures over a user's active habits

    Returns:
        {'active_habits': int, 'longest_streak': int, 'current_streaks_total': int}
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT COUNT(*) AS active_habits,
                       COALESCE(MAX(longest_streak), 0) AS longest_streak,
                       COALESCE(SUM(current_streak), 0) AS current_streaks_total
                FROM habits
                WHERE user_id = %s AND active = true AND archived = false
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            return {
                "active_habits": row["active_habits"],
                "longest_streak": row["longest_streak"],
                "current_streaks_total": int(row["current_streaks_total"]),
            }


async def get_daily_completion_counts(user_id: str, start_date: date, end_date: date) -> list[dict]:
    """
    Completions and XP per local day, only days that have completions

    Args:
        user_id: User ID
        start_date: First local day (inclusive)
        end_date: Last local day (inclusive)

    Returns:
        [{'day': date, 'completions': int, 'xp': int}, ...] oldest first
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT completion_date AS day,
                       COUNT(*) AS completions,
                       COALESCE(SUM(xp_earned), 0) AS xp
                FROM completions
                WHERE user_id = %s AND completion_date BETWEEN %s AND %s
                GROUP BY completion_date
                ORDER BY completion_date
                """,
                (user_id, start_date, end_date)
            )
            rows = await cur.fetchall()
            return [
                {"day": row["day"], "completions": row["completions"], "xp": int(row["xp"])}
                for row in rows
            ]


async def get_habit_performance(user_id: str, start_date: date) -> list[dict]:
    """
    Per active habit: completions and XP since start_date (local day)

    Returns:
        Rows with id, name, category, current_streak, longest_streak,
        completions, xp
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT h.id, h.name, h.category, h.color, h.current_streak, h.longest_streak,
                       COUNT(c.id) AS completions,
                       COALESCE(SUM(c.xp_earned), 0) AS xp
                FROM habits h
                LEFT JOIN completions c
                  ON c.habit_id = h.id AND c.completion_date >= %s
                WHERE h.user_id = %s AND h.active = true AND h.archived = false
                GROUP BY h.id
                ORDER BY h.created_at
                """,
                (start_date, user_id)
            )
            return await cur.fetchall()


async def get_export_rows(user_id: str, start_date: Optional[date] = None) -> list[dict]:
    """
    Completion records joined with their habit, oldest first

    Args:
        user_id: User ID
        start_date: Only completions on or after this local day (None = all)
    """
    conditions = ["c.user_id = %s"]
    params: list = [user_id]
    if start_date is not None:
        conditions.append("c.completion_date >= %s")
        params.append(start_date)

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT c.completion_date, c.completed_at, c.device_timezone,
                       h.name AS habit_name, h.category AS habit_category,
                       c.xp_earned, c.mood, c.difficulty, c.duration, c.notes,
                       c.forgiveness_used
                FROM completions c
                JOIN habits h ON h.id = c.habit_id
                WHERE {' AND '.join(conditions)}
                ORDER BY c.completed_at
                """,
                params
            )
            return await cur.fetchall()
