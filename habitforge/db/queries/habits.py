"""Habit database queries"""
import logging
from typing import Any, Optional

from psycopg import sql

from habitforge.db.connection import db

logger = logging.getLogger(__name__)

HABIT_COLUMNS = """
    id, user_id, name, description, category, frequency, reminder_time,
    reminder_enabled, color, icon, active, archived, current_streak,
    longest_streak, total_completions, consistency_rate, created_at, updated_at
"""

# Columns a client update may write
UPDATABLE_COLUMNS = {
    "name", "description", "category", "frequency", "reminder_time",
    "reminder_enabled", "color", "icon", "active", "archived",
}


async def list_habits(
    user_id: str,
    category: Optional[str] = None,
    active: Optional[bool] = None,
    archived: Optional[bool] = None
) -> list[dict]:
    """
    List a user's habits, newest first

    Args:
        user_id: Owner
        category: Only this category
        active: Only habits with this active flag
        archived: Only habits with this archived flag
    """
    conditions = ["user_id = %s"]
    params: list[Any] = [user_id]

    if category is not None:
        conditions.append("category = %s")
        params.append(category)
    if active is not None:
        conditions.append("active = %s")
        params.append(active)
    if archived is not None:
        conditions.append("archived = %s")
        params.append(archived)

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {HABIT_COLUMNS}
                FROM habits
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at DESC
                """,
                params
            )
            return await cur.fetchall()


async def get_habit(user_id: str, habit_id: str) -> Optional[dict]:
    """Get a habit owned by user_id"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {HABIT_COLUMNS}
                FROM habits
                WHERE id = %s AND user_id = %s
                """,
                (habit_id, user_id)
            )
            return await cur.fetchone()


async def lock_habit(conn, user_id: str, habit_id: str) -> Optional[dict]:
    """Select a habit owned by user_id FOR UPDATE inside the caller's transaction"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {HABIT_COLUMNS}
            FROM habits
            WHERE id = %s AND user_id = %s
            FOR UPDATE
            """,
            (habit_id, user_id)
        )
        return await cur.fetchone()


async def lock_user_habits(conn, user_id: str) -> list[dict]:
    """All of a user's habits, locked FOR UPDATE"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {HABIT_COLUMNS}
            FROM habits
            WHERE user_id = %s
            ORDER BY created_at
            FOR UPDATE
            """,
            (user_id,)
        )
        return await cur.fetchall()


async def create_habit(user_id: str, habit: dict[str, Any]) -> dict:
    """
    Insert a habit

    Args:
        user_id: Owner
        habit: Values for UPDATABLE_COLUMNS (missing keys use column defaults)
    """
    values = {k: v for k, v in habit.items() if k in UPDATABLE_COLUMNS}
    columns = ["user_id", *values]

    query = sql.SQL("INSERT INTO habits ({columns}) VALUES ({placeholders}) RETURNING " + HABIT_COLUMNS).format(
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        placeholders=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
    )

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, (user_id, *values.values()))
            row = await cur.fetchone()
            await conn.commit()
            logger.info(f"Created habit {row['id']} for user {user_id}")
            return row


async def update_habit(user_id: str, habit_id: str, changes: dict[str, Any]) -> Optional[dict]:
    """
    Update client-editable habit fields

    Keys outside UPDATABLE_COLUMNS are ignored, so stats and ownership can
    never be written through this path.

    Returns:
        Updated habit dict or None if not found
    """
    changes = {k: v for k, v in changes.items() if k in UPDATABLE_COLUMNS}
    if not changes:
        return await get_habit(user_id, habit_id)

    assignments = sql.SQL(", ").join(
        sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
    )
    query = sql.SQL(
        "UPDATE habits SET {assignments}, updated_at = CURRENT_TIMESTAMP "
        "WHERE id = %s AND user_id = %s RETURNING " + HABIT_COLUMNS
    ).format(assignments=assignments)

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, (*changes.values(), habit_id, user_id))
            row = await cur.fetchone()
            await conn.commit()
            return row


async def update_habit_stats(
    conn,
    habit_id: str,
    current_streak: int,
    longest_streak: int,
    total_completions: int,
    consistency_rate: int
) -> None:
    """Write derived habit statistics inside the caller's transaction"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE habits
            SET current_streak = %s,
                longest_streak = %s,
                total_completions = %s,
                consistency_rate = %s,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = %s
            """,
            (current_streak, longest_streak, total_completions, consistency_rate, habit_id)
        )


async def delete_habit(user_id: str, habit_id: str) -> bool:
    """
    Delete a habit and its completions in one transaction

    XP ledger entries are kept (habit_id is nulled by the foreign key) so
    total_xp still matches the ledger.

    Returns:
        False if the habit was not found
    """
    async with db.transaction() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM completions WHERE habit_id = %s AND user_id = %s",
                (habit_id, user_id)
            )
            removed = cur.rowcount
            await cur.execute(
                "DELETE FROM habits WHERE id = %s AND user_id = %s",
                (habit_id, user_id)
            )
            deleted = cur.rowcount > 0

    if deleted:
        logger.info(f"Deleted habit {habit_id} ({removed} completions) for user {user_id}")
    return deleted
