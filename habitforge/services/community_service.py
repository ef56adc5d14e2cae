"""
CommunityService - Community Circles Business Logic

Circles are small accountability groups with chat, events, challenges and
a points leaderboard. Membership rules live on the CommunityCircle model;
this service loads the aggregate, checks the rule, and persists the change.
"""

import logging
import math
from typing import Any, Dict, List, Optional
from uuid import UUID

from habitforge.db import queries
from habitforge.exceptions import AuthorizationError, RecordNotFoundError
from habitforge.models.community import (
    ChallengeCreate,
    CircleChallenge,
    CircleCreate,
    CircleEvent,
    CommunityCircle,
    EventCreate,
    generate_invite_code,
)
from habitforge.utils.datetime_helpers import get_day_start_utc, today_in_timezone

logger = logging.getLogger(__name__)

INVITE_CODE_ATTEMPTS = 5


class CommunityService:
    """
    Service for community circles.

    Responsibilities:
    - Circle lifecycle (create, list, join, leave)
    - Messages with a per-member daily limit
    - Leaderboard by community points (respecting opt-outs)
    - Admin-created events and challenges, challenge progress
    """

    def __init__(self, db_connection):
        self.db = db_connection

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, conn, circle_id: str, lock: bool = False, messages_since=None) -> CommunityCircle:
        if lock and not await queries.lock_circle(conn, circle_id):
            raise self._circle_not_found(circle_id)

        data = await queries.load_circle(conn, circle_id, messages_since=messages_since)
        if not data:
            raise self._circle_not_found(circle_id)
        return CommunityCircle.model_validate(data)

    async def _fetch(self, circle_id: str) -> CommunityCircle:
        data = await queries.get_circle(circle_id)
        if not data:
            raise self._circle_not_found(circle_id)
        return CommunityCircle.model_validate(data)

    @staticmethod
    def _ensure_visible(circle: CommunityCircle, user_id: str) -> None:
        if circle.is_private and not circle.is_member(UUID(user_id)):
            raise AuthorizationError(
                message="Private circle is visible to members only",
                resource=f"circle {circle.id}",
                user_id=user_id,
            )

    @staticmethod
    def _circle_not_found(circle_id: str) -> RecordNotFoundError:
        return RecordNotFoundError(
            message=f"Circle {circle_id} not found",
            record_type="Circle",
            record_id=circle_id,
        )

    async def _user(self, user_id: str) -> Dict[str, Any]:
        user = await queries.get_user(user_id)
        if not user:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )
        return user

    @staticmethod
    def serialize(circle: CommunityCircle, viewer_id: UUID) -> Dict[str, Any]:
        """Circle as returned to a viewer; the invite code is shown to admins only"""
        data = circle.model_dump(mode="json")
        data["member_count"] = circle.member_count
        data["available_spots"] = circle.available_spots
        data["is_member"] = circle.is_member(viewer_id)
        if not circle.is_admin(viewer_id):
            data["invite_code"] = None
        return data

    # ------------------------------------------------------------------
    # Circles
    # ------------------------------------------------------------------

    async def create_circle(self, user_id: str, request: CircleCreate) -> Dict[str, Any]:
        """Create a circle; the creator becomes its admin"""
        await self._user(user_id)

        async with self.db.transaction() as conn:
            invite_code = None
            if request.is_private:
                for _ in range(INVITE_CODE_ATTEMPTS):
                    candidate = generate_invite_code()
                    if not await queries.invite_code_exists(conn, candidate):
                        invite_code = candidate
                        break
                else:
                    raise RuntimeError("Could not generate a unique invite code")

            created = await queries.insert_circle(
                conn,
                name=request.name,
                description=request.description,
                created_by=user_id,
                max_members=request.max_members,
                is_private=request.is_private,
                invite_code=invite_code,
            )
            circle = await self._load(conn, str(created["id"]))

        logger.info(f"User {user_id} created circle {circle.id} (private={circle.is_private})")
        return self.serialize(circle, UUID(user_id))

    async def list_circles(
        self,
        user_id: str,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Dict[str, Any]:
        """Public circles plus the caller's private ones, newest first"""
        rows, total = await queries.list_circles(
            user_id, search=search, limit=limit, offset=(page - 1) * limit
        )

        circles = []
        for row in rows:
            circle = dict(row)
            circle["available_spots"] = max(circle["max_members"] - circle["member_count"], 0)
            circle.pop("invite_code", None)
            circles.append(circle)

        return {
            "circles": circles,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def get_circle(self, user_id: str, circle_id: str) -> Dict[str, Any]:
        """Circle details; private circles are visible to members only"""
        circle = await self._fetch(circle_id)
        self._ensure_visible(circle, user_id)
        return self.serialize(circle, UUID(user_id))

    async def join_circle(self, user_id: str, circle_id: str, invite_code: Optional[str] = None) -> Dict[str, Any]:
        await self._user(user_id)

        async with self.db.transaction() as conn:
            circle = await self._load(conn, circle_id, lock=True)
            circle.ensure_can_join(UUID(user_id), invite_code)
            await queries.add_member(conn, circle_id, user_id)
            circle = await self._load(conn, circle_id)

        logger.info(f"User {user_id} joined circle {circle_id}")
        return self.serialize(circle, UUID(user_id))

    async def leave_circle(self, user_id: str, circle_id: str) -> Dict[str, Any]:
        """
        Leave a circle.

        The creator can only leave as the last member, which deletes the circle.

        Returns:
            {'circle_deleted': bool}
        """
        async with self.db.transaction() as conn:
            circle = await self._load(conn, circle_id, lock=True)
            circle.ensure_can_leave(UUID(user_id))
            await queries.remove_member(conn, circle_id, user_id)

            circle_deleted = circle.member_count == 1
            if circle_deleted:
                await queries.delete_circle(conn, circle_id)

        logger.info(f"User {user_id} left circle {circle_id}")
        return {"circle_deleted": circle_deleted}

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def _today_start(self, user_id: str):
        user = await self._user(user_id)
        tz_name = user["timezone"]
        return get_day_start_utc(today_in_timezone(tz_name), tz_name)

    async def post_message(self, user_id: str, circle_id: str, content: str) -> Dict[str, Any]:
        """Post a message, enforcing the circle's daily per-member limit"""
        today_start = await self._today_start(user_id)

        async with self.db.transaction() as conn:
            circle = await self._load(conn, circle_id, lock=True, messages_since=today_start)
            circle.ensure_can_post(UUID(user_id), today_start)
            message = await queries.insert_message(conn, circle_id, user_id, content)

        logger.info(f"User {user_id} posted in circle {circle_id}")
        return message

    async def get_message_stats(self, user_id: str, circle_id: str) -> Dict[str, Any]:
        """
        Today's message count for the caller.

        Returns:
            {'messages_today': int, 'daily_limit': int, 'remaining': int}
        """
        today_start = await self._today_start(user_id)
        circle = await self._fetch(circle_id)
        circle.ensure_member(UUID(user_id))

        sent = await queries.count_messages_since(circle_id, user_id, today_start)
        limit = circle.moderation_settings.max_messages_per_day

        return {
            "messages_today": sent,
            "daily_limit": limit,
            "remaining": max(limit - sent, 0),
        }

    # ------------------------------------------------------------------
    # Leaderboard
    # ------------------------------------------------------------------

    async def get_leaderboard(self, user_id: str, circle_id: str) -> List[Dict[str, Any]]:
        """Visible members ranked by community points (rank starts at 1)"""
        circle = await self._fetch(circle_id)
        self._ensure_visible(circle, user_id)

        rows = await queries.get_leaderboard(circle_id)
        return [{"rank": rank, **row} for rank, row in enumerate(rows, start=1)]

    async def toggle_leaderboard_opt_out(self, user_id: str, circle_id: str) -> Dict[str, Any]:
        """Flip the caller's leaderboard visibility in this circle"""
        circle = await self._fetch(circle_id)
        member = circle.ensure_member(UUID(user_id))
        opt_out = not member.opt_out_of_leaderboard
        await queries.set_leaderboard_opt_out(circle_id, user_id, opt_out)

        logger.info(f"User {user_id} set leaderboard opt-out={opt_out} in circle {circle_id}")
        return {"opt_out_of_leaderboard": opt_out}

    # ------------------------------------------------------------------
    # Events & challenges
    # ------------------------------------------------------------------

    async def create_event(self, user_id: str, circle_id: str, request: EventCreate) -> Dict[str, Any]:
        async with self.db.transaction() as conn:
            circle = await self._load(conn, circle_id, lock=True)
            circle.ensure_admin(UUID(user_id), "create events")

            event = CircleEvent(created_by=UUID(user_id), **request.model_dump())
            row = await queries.insert_event(conn, circle_id, event.model_dump())

        logger.info(f"User {user_id} created event {event.id} in circle {circle_id}")
        return row

    async def create_challenge(self, user_id: str, circle_id: str, request: ChallengeCreate) -> Dict[str, Any]:
        async with self.db.transaction() as conn:
            circle = await self._load(conn, circle_id, lock=True)
            circle.ensure_admin(UUID(user_id), "create challenges")

            challenge = CircleChallenge(created_by=UUID(user_id), **request.model_dump())
            row = await queries.insert_challenge(conn, circle_id, challenge.model_dump(mode="json"))

        logger.info(f"User {user_id} created challenge {challenge.id} in circle {circle_id}")
        return {**row, "participants": []}

    async def join_challenge(self, user_id: str, circle_id: str, challenge_id: str) -> Dict[str, Any]:
        async with self.db.transaction() as conn:
            circle = await self._load(conn, circle_id, lock=True)
            circle.ensure_can_join_challenge(UUID(user_id), UUID(challenge_id))
            await queries.add_challenge_participant(conn, challenge_id, user_id)

        logger.info(f"User {user_id} joined challenge {challenge_id}")
        return {"challenge_id": challenge_id, "progress": 0, "completed": False}

    async def update_challenge_progress(
        self,
        user_id: str,
        circle_id: str,
        challenge_id: str,
        progress: int
    ) -> Dict[str, Any]:
        """
        Record progress on a challenge.

        Reaching the target for the first time credits the challenge's
        points_reward to the member's community points.

        Returns:
            {'challenge_id', 'progress', 'completed', 'completed_at', 'points_awarded'}
        """
        async with self.db.transaction() as conn:
            circle = await self._load(conn, circle_id, lock=True)
            points = circle.apply_challenge_progress(UUID(user_id), UUID(challenge_id), progress)
            participant = circle.get_challenge(UUID(challenge_id)).get_participant(UUID(user_id))

            await queries.update_challenge_participant(
                conn,
                challenge_id,
                user_id,
                progress=participant.progress,
                completed=participant.completed,
                completed_at=participant.completed_at,
            )
            if points:
                await queries.add_community_points(conn, circle_id, user_id, points)

        if points:
            logger.info(f"User {user_id} completed challenge {challenge_id} (+{points} points)")

        return {
            "challenge_id": challenge_id,
            "progress": participant.progress,
            "completed": participant.completed,
            "completed_at": participant.completed_at,
            "points_awarded": points,
        }
