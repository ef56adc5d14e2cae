"""Community circle database queries"""
import logging
from datetime import datetime
from typing import Optional

from habitforge.db.connection import db

logger = logging.getLogger(__name__)

CIRCLE_COLUMNS = """
    c.id, c.name, c.description, c.created_by, c.max_members, c.is_private,
    c.invite_code, c.max_messages_per_day, c.leaderboard_update_day,
    c.created_at, c.updated_at
"""


# ==========================================
# Circles
# ==========================================

async def invite_code_exists(conn, invite_code: str) -> bool:
    async with conn.cursor() as cur:
        await cur.execute("SELECT 1 FROM circles WHERE invite_code = %s", (invite_code,))
        return await cur.fetchone() is not None


async def insert_circle(
    conn,
    name: str,
    description: str,
    created_by: str,
    max_members: int,
    is_private: bool,
    invite_code: Optional[str]
) -> dict:
    """Insert a circle and its creator as admin inside the caller's transaction"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO circles (name, description, created_by, max_members, is_private, invite_code)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (name, description, created_by, max_members, is_private, invite_code)
        )
        circle_id = (await cur.fetchone())["id"]

        await cur.execute(
            """
            INSERT INTO circle_members (circle_id, user_id, role)
            VALUES (%s, %s, 'admin')
            """,
            (circle_id, created_by)
        )

    logger.info(f"Created circle {circle_id} by user {created_by}")
    return {"id": circle_id}


async def lock_circle(conn, circle_id: str) -> Optional[dict]:
    """Select a circle row FOR UPDATE (serializes joins against max_members)"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"SELECT {CIRCLE_COLUMNS} FROM circles c WHERE c.id = %s FOR UPDATE",
            (circle_id,)
        )
        return await cur.fetchone()


async def load_circle(
    conn,
    circle_id: str,
    messages_since: Optional[datetime] = None,
    message_limit: int = 50
) -> Optional[dict]:
    """
    Load a circle with members, messages, events and challenges

    Args:
        conn: Open connection
        circle_id: Circle ID
        messages_since: Load every message at or after this instant instead
            of the latest `message_limit`
        message_limit: Number of recent messages when messages_since is None

    Returns:
        Circle dict shaped like the CommunityCircle model, or None
    """
    async with conn.cursor() as cur:
        await cur.execute(f"SELECT {CIRCLE_COLUMNS} FROM circles c WHERE c.id = %s", (circle_id,))
        circle = await cur.fetchone()
        if not circle:
            return None

        await cur.execute(
            """
            SELECT user_id, role, joined_at, opt_out_of_leaderboard, community_points
            FROM circle_members
            WHERE circle_id = %s
            ORDER BY joined_at
            """,
            (circle_id,)
        )
        members = await cur.fetchall()

        if messages_since is not None:
            await cur.execute(
                """
                SELECT id, circle_id, user_id, content, created_at
                FROM circle_messages
                WHERE circle_id = %s AND created_at >= %s
                ORDER BY created_at
                """,
                (circle_id, messages_since)
            )
            messages = await cur.fetchall()
        else:
            await cur.execute(
                """
                SELECT id, circle_id, user_id, content, created_at
                FROM circle_messages
                WHERE circle_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (circle_id, message_limit)
            )
            messages = list(reversed(await cur.fetchall()))

        await cur.execute(
            """
            SELECT id, title, description, start_date, end_date, created_by, created_at
            FROM circle_events
            WHERE circle_id = %s
            ORDER BY start_date
            """,
            (circle_id,)
        )
        events = await cur.fetchall()

        await cur.execute(
            """
            SELECT id, title, description, type, target, points_reward,
                   start_date, end_date, created_by, created_at
            FROM circle_challenges
            WHERE circle_id = %s
            ORDER BY start_date
            """,
            (circle_id,)
        )
        challenges = await cur.fetchall()

        participants_by_challenge: dict = {c["id"]: [] for c in challenges}
        if challenges:
            await cur.execute(
                """
                SELECT challenge_id, user_id, progress, completed, completed_at
                FROM challenge_participants
                WHERE challenge_id = ANY(%s::uuid[])
                """,
                ([str(c["id"]) for c in challenges],)
            )
            for row in await cur.fetchall():
                participants_by_challenge[row.pop("challenge_id")].append(row)

    return {
        **{k: v for k, v in circle.items() if k != "max_messages_per_day"},
        "moderation_settings": {"max_messages_per_day": circle["max_messages_per_day"]},
        "members": members,
        "messages": messages,
        "events": events,
        "challenges": [
            {**c, "participants": participants_by_challenge[c["id"]]} for c in challenges
        ],
    }


async def get_circle(circle_id: str, messages_since: Optional[datetime] = None) -> Optional[dict]:
    """Stand-alone load_circle"""
    async with db.connection() as conn:
        return await load_circle(conn, circle_id, messages_since=messages_since)


async def list_circles(
    user_id: str,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0
) -> tuple[list[dict], int]:
    """
    Public circles plus the caller's own, with member counts

    Returns:
        (rows newest first, total matching rows)
    """
    conditions = ["(c.is_private = false OR EXISTS ("
                  "SELECT 1 FROM circle_members m WHERE m.circle_id = c.id AND m.user_id = %s))"]
    params: list = [user_id]
    if search:
        conditions.append("c.name ILIKE %s")
        params.append(f"%{search}%")
    where = " AND ".join(conditions)

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(f"SELECT COUNT(*) AS total FROM circles c WHERE {where}", params)
            total = (await cur.fetchone())["total"]

            await cur.execute(
                f"""
                SELECT {CIRCLE_COLUMNS},
                       (SELECT COUNT(*) FROM circle_members m WHERE m.circle_id = c.id) AS member_count,
                       EXISTS (
                           SELECT 1 FROM circle_members m
                           WHERE m.circle_id = c.id AND m.user_id = %s
                       ) AS is_member
                FROM circles c
                WHERE {where}
                ORDER BY c.created_at DESC
                LIMIT %s OFFSET %s
                """,
                [user_id, *params, limit, offset]
            )
            rows = await cur.fetchall()

    return rows, total


async def delete_circle(conn, circle_id: str) -> None:
    async with conn.cursor() as cur:
        await cur.execute("DELETE FROM circles WHERE id = %s", (circle_id,))
    logger.info(f"Deleted empty circle {circle_id}")


# ==========================================
# Members
# ==========================================

async def add_member(conn, circle_id: str, user_id: str, role: str = "member") -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO circle_members (circle_id, user_id, role)
            VALUES (%s, %s, %s)
            """,
            (circle_id, user_id, role)
        )
        await cur.execute(
            "UPDATE circles SET updated_at = CURRENT_TIMESTAMP WHERE id = %s",
            (circle_id,)
        )


async def remove_member(conn, circle_id: str, user_id: str) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            "DELETE FROM circle_members WHERE circle_id = %s AND user_id = %s",
            (circle_id, user_id)
        )
        await cur.execute(
            "DELETE FROM challenge_participants WHERE user_id = %s AND challenge_id IN "
            "(SELECT id FROM circle_challenges WHERE circle_id = %s)",
            (user_id, circle_id)
        )


async def set_leaderboard_opt_out(circle_id: str, user_id: str, opt_out: bool) -> None:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE circle_members
                SET opt_out_of_leaderboard = %s
                WHERE circle_id = %s AND user_id = %s
                """,
                (opt_out, circle_id, user_id)
            )
            await conn.commit()


async def add_community_points(conn, circle_id: str, user_id: str, points: int) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE circle_members
            SET community_points = community_points + %s
            WHERE circle_id = %s AND user_id = %s
            """,
            (points, circle_id, user_id)
        )


async def get_leaderboard(circle_id: str) -> list[dict]:
    """
    Ranked members of a circle

    Excludes members who opted out in the circle or whose privacy settings
    hide them from leaderboards.
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT m.user_id, u.name, u.level, u.total_xp, m.community_points, m.role
                FROM circle_members m
                JOIN users u ON u.id = m.user_id
                WHERE m.circle_id = %s
                  AND m.opt_out_of_leaderboard = false
                  AND u.soft_deleted = false
                  AND COALESCE((u.privacy_settings->>'show_on_leaderboard')::boolean, true)
                ORDER BY m.community_points DESC, u.total_xp DESC, m.joined_at
                """,
                (circle_id,)
            )
            return await cur.fetchall()


# ==========================================
# Messages, events, challenges
# ==========================================

async def insert_message(conn, circle_id: str, user_id: str, content: str) -> dict:
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO circle_messages (circle_id, user_id, content)
            VALUES (%s, %s, %s)
            RETURNING id, circle_id, user_id, content, created_at
            """,
            (circle_id, user_id, content)
        )
        return await cur.fetchone()


async def count_messages_since(circle_id: str, user_id: str, since: datetime) -> int:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT COUNT(*) AS count
                FROM circle_messages
                WHERE circle_id = %s AND user_id = %s AND created_at >= %s
                """,
                (circle_id, user_id, since)
            )
            return (await cur.fetchone())["count"]


async def insert_event(conn, circle_id: str, event: dict) -> dict:
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO circle_events (id, circle_id, title, description, start_date, end_date, created_by)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id, title, description, start_date, end_date, created_by, created_at
            """,
            (
                str(event["id"]), circle_id, event["title"], event["description"],
                event["start_date"], event["end_date"], str(event["created_by"]),
            )
        )
        return await cur.fetchone()


async def insert_challenge(conn, circle_id: str, challenge: dict) -> dict:
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO circle_challenges (
                id, circle_id, title, description, type, target, points_reward,
                start_date, end_date, created_by
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, title, description, type, target, points_reward,
                      start_date, end_date, created_by, created_at
            """,
            (
                str(challenge["id"]), circle_id, challenge["title"], challenge["description"],
                challenge["type"], challenge["target"], challenge["points_reward"],
                challenge["start_date"], challenge["end_date"], str(challenge["created_by"]),
            )
        )
        return await cur.fetchone()


async def add_challenge_participant(conn, challenge_id: str, user_id: str) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO challenge_participants (challenge_id, user_id)
            VALUES (%s, %s)
            """,
            (challenge_id, user_id)
        )


async def update_challenge_participant(
    conn,
    challenge_id: str,
    user_id: str,
    progress: int,
    completed: bool,
    completed_at: Optional[datetime]
) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE challenge_participants
            SET progress = %s, completed = %s, completed_at = %s
            WHERE challenge_id = %s AND user_id = %s
            """,
            (progress, completed, completed_at, challenge_id, user_id)
        )
