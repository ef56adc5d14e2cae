"""User-related database queries"""
import json
import logging
from typing import Any, Optional

from psycopg import sql

from habitforge.db.connection import db

logger = logging.getLogger(__name__)

USER_COLUMNS = """
    id, name, email, timezone, level, total_xp, forgiveness_tokens, ai_opt_out,
    theme, notification_preferences, privacy_settings, is_active, soft_deleted,
    created_at, updated_at
"""

# Columns a settings update may write; JSONB ones are serialized first
SETTINGS_COLUMNS = {"name", "timezone", "theme", "ai_opt_out", "notification_preferences", "privacy_settings"}
JSON_COLUMNS = {"notification_preferences", "privacy_settings"}


async def create_user(name: str, email: str, timezone: str = "UTC") -> dict:
    """
    Insert a new user

    Raises:
        psycopg.errors.UniqueViolation: If the email is already registered
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                INSERT INTO users (name, email, timezone)
                VALUES (%s, %s, %s)
                RETURNING {USER_COLUMNS}
                """,
                (name, email, timezone)
            )
            row = await cur.fetchone()
            await conn.commit()
            logger.info(f"Created user {row['id']}")
            return row


async def get_user(user_id: str) -> Optional[dict]:
    """Get an active (not soft-deleted) user by ID"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE id = %s AND soft_deleted = false
                """,
                (user_id,)
            )
            return await cur.fetchone()


async def lock_user(conn, user_id: str) -> Optional[dict]:
    """
    Select a user row FOR UPDATE inside the caller's transaction

    Serializes concurrent XP and token updates for the same user.
    """
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {USER_COLUMNS}
            FROM users
            WHERE id = %s AND soft_deleted = false
            FOR UPDATE
            """,
            (user_id,)
        )
        return await cur.fetchone()


async def update_user_settings(user_id: str, changes: dict[str, Any]) -> Optional[dict]:
    """
    Update user settings

    Args:
        user_id: User ID
        changes: Column -> value; keys outside SETTINGS_COLUMNS are ignored

    Returns:
        Updated user dict or None if not found
    """
    changes = {k: v for k, v in changes.items() if k in SETTINGS_COLUMNS}
    if not changes:
        return await get_user(user_id)

    assignments = sql.SQL(", ").join(
        sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
    )
    values = [json.dumps(v) if k in JSON_COLUMNS else v for k, v in changes.items()]

    query = sql.SQL(
        "UPDATE users SET {assignments}, updated_at = CURRENT_TIMESTAMP "
        "WHERE id = %s AND soft_deleted = false RETURNING " + USER_COLUMNS
    ).format(assignments=assignments)

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, (*values, user_id))
            row = await cur.fetchone()
            await conn.commit()
            return row


async def update_user_status(user_id: str, is_active: bool, soft_deleted: bool) -> bool:
    """Write the account status flags of a live user; returns False if not found"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE users
                SET is_active = %s, soft_deleted = %s, updated_at = CURRENT_TIMESTAMP
                WHERE id = %s AND soft_deleted = false
                """,
                (is_active, soft_deleted, user_id)
            )
            await conn.commit()
            return cur.rowcount > 0


async def update_user_progress(
    conn,
    user_id: str,
    total_xp: int,
    level: int,
    forgiveness_tokens: int
) -> None:
    """Write XP, level and forgiveness tokens inside the caller's transaction"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE users
            SET total_xp = %s,
                level = %s,
                forgiveness_tokens = %s,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = %s
            """,
            (total_xp, level, forgiveness_tokens, user_id)
        )
