"""XP ledger database queries"""
import json
import logging
from datetime import datetime
from typing import Optional

from habitforge.db.connection import db

logger = logging.getLogger(__name__)


async def add_xp_transaction(
    conn,
    user_id: str,
    amount: int,
    source: str,
    description: str,
    habit_id: Optional[str] = None,
    metadata: Optional[dict] = None
) -> str:
    """
    Append an XP ledger entry inside the caller's transaction

    Args:
        conn: Open connection (transaction owned by caller)
        user_id: User receiving the XP
        amount: XP amount
        source: 'habit_completion', 'level_bonus', 'forgiveness', 'challenge', 'manual'
        description: Human-readable description
        habit_id: Related habit, if any
        metadata: JSON-serializable details (streak length, multiplier, ...)

    Returns:
        Transaction ID (UUID string)
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO xp_transactions (user_id, habit_id, amount, source, description, metadata)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (user_id, habit_id, amount, source, description, json.dumps(metadata or {}))
        )
        result = await cur.fetchone()
        return str(result["id"])


async def get_xp_transactions(
    user_id: str,
    since: Optional[datetime] = None,
    limit: int = 50
) -> list[dict]:
    """
    XP ledger entries for a user, newest first

    Args:
        user_id: User ID
        since: Only entries created at or after this instant
        limit: Maximum number of entries
    """
    conditions = ["user_id = %s"]
    params: list = [user_id]
    if since is not None:
        conditions.append("created_at >= %s")
        params.append(since)
    params.append(limit)

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT id, user_id, habit_id, amount, source, description, metadata, created_at
                FROM xp_transactions
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at DESC, id
                LIMIT %s
                """,
                params
            )
            return await cur.fetchall()
