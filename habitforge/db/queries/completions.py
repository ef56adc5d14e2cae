"""Habit completion database queries"""
import logging
from datetime import date

from habitforge.db.connection import db

logger = logging.getLogger(__name__)

COMPLETION_COLUMNS = """
    id, habit_id, user_id, completed_at, completion_date, device_timezone,
    xp_earned, notes, mood, difficulty, duration, forgiveness_used,
    edited_flag, created_at
"""


# ==========================================
# Transactional (caller owns the connection)
# ==========================================

async def completion_exists(conn, habit_id: str, completion_date: date) -> bool:
    """Check for an existing completion of habit_id on a local day"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT 1 FROM completions
            WHERE habit_id = %s AND completion_date = %s
            """,
            (habit_id, completion_date)
        )
        return await cur.fetchone() is not None


async def has_any_completion(conn, habit_id: str) -> bool:
    """Whether a habit has ever been completed"""
    async with conn.cursor() as cur:
        await cur.execute(
            "SELECT EXISTS (SELECT 1 FROM completions WHERE habit_id = %s) AS found",
            (habit_id,)
        )
        row = await cur.fetchone()
        return bool(row["found"])


async def insert_completion(conn, completion: dict) -> dict:
    """
    Insert a completion record

    Raises:
        psycopg.errors.UniqueViolation: If the habit already has a completion
            on completion['completion_date']
    """
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            INSERT INTO completions (
                id, habit_id, user_id, completed_at, completion_date, device_timezone,
                xp_earned, notes, mood, difficulty, duration, forgiveness_used, edited_flag
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {COMPLETION_COLUMNS}
            """,
            (
                str(completion["id"]),
                str(completion["habit_id"]),
                str(completion["user_id"]),
                completion["completed_at"],
                completion["completion_date"],
                completion["device_timezone"],
                completion.get("xp_earned", 0),
                completion.get("notes"),
                completion.get("mood"),
                completion.get("difficulty"),
                completion.get("duration"),
                completion.get("forgiveness_used", False),
                completion.get("edited_flag", False),
            )
        )
        return await cur.fetchone()


async def set_completion_xp(conn, completion_id: str, xp_earned: int) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            "UPDATE completions SET xp_earned = %s WHERE id = %s",
            (xp_earned, completion_id)
        )


async def get_completion_dates(conn, habit_id: str) -> list[date]:
    """All local completion days of a habit, oldest first"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT completion_date
            FROM completions
            WHERE habit_id = %s
            ORDER BY completion_date
            """,
            (habit_id,)
        )
        rows = await cur.fetchall()
        return [row["completion_date"] for row in rows]


# ==========================================
# Read queries
# ==========================================

async def get_habit_completions(habit_id: str, limit: int = 100) -> list[dict]:
    """Most recent completions of a habit, newest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {COMPLETION_COLUMNS}
                FROM completions
                WHERE habit_id = %s
                ORDER BY completed_at DESC
                LIMIT %s
                """,
                (habit_id, limit)
            )
            return await cur.fetchall()


async def get_recent_completions_by_habit(habit_ids: list[str], per_habit: int = 30) -> dict[str, list[dict]]:
    """
    Latest `per_habit` completions for each habit in one round trip

    Returns:
        habit_id (str) -> completions newest first; habits without
        completions map to an empty list
    """
    grouped: dict[str, list[dict]] = {str(habit_id): [] for habit_id in habit_ids}
    if not habit_ids:
        return grouped

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {COMPLETION_COLUMNS}
                FROM (
                    SELECT *, ROW_NUMBER() OVER (
                        PARTITION BY habit_id ORDER BY completed_at DESC
                    ) AS rn
                    FROM completions
                    WHERE habit_id = ANY(%s::uuid[])
                ) ranked
                WHERE rn <= %s
                ORDER BY habit_id, completed_at DESC
                """,
                ([str(h) for h in habit_ids], per_habit)
            )
            for row in await cur.fetchall():
                grouped.setdefault(str(row["habit_id"]), []).append(row)

    return grouped


async def get_completions_page(
    habit_id: str,
    since: date,
    limit: int,
    offset: int
) -> tuple[list[dict], int]:
    """
    One page of a habit's completions on or after a local day, newest first

    Returns:
        (rows, total matching rows)
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT COUNT(*) AS total
                FROM completions
                WHERE habit_id = %s AND completion_date >= %s
                """,
                (habit_id, since)
            )
            total = (await cur.fetchone())["total"]

            await cur.execute(
                f"""
                SELECT {COMPLETION_COLUMNS}
                FROM completions
                WHERE habit_id = %s AND completion_date >= %s
                ORDER BY completed_at DESC
                LIMIT %s OFFSET %s
                """,
                (habit_id, since, limit, offset)
            )
            rows = await cur.fetchall()

    return rows, total


async def get_period_stats(habit_id: str, since: date) -> dict:
    """
    Completion count and XP for a habit on or after a local day

    Returns:
        {'completions': int, 'total_xp': int}
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT COUNT(*) AS completions, COALESCE(SUM(xp_earned), 0) AS total_xp
                FROM completions
                WHERE habit_id = %s AND completion_date >= %s
                """,
                (habit_id, since)
            )
            row = await cur.fetchone()
            return {"completions": row["completions"], "total_xp": int(row["total_xp"])}


async def get_completed_habit_ids_on(user_id: str, completion_date: date) -> list[str]:
    """IDs of the user's habits completed on a local day"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT DISTINCT habit_id
                FROM completions
                WHERE user_id = %s AND completion_date = %s
                """,
                (user_id, completion_date)
            )
            rows = await cur.fetchall()
            return [str(row["habit_id"]) for row in rows]
