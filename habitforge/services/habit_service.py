"""
HabitService - Habit Management Business Logic

CRUD for habits plus per-habit statistics and completion history.
Completing a habit lives in GamificationService because it moves XP.
"""

import logging
import math
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from habitforge.db import queries
from habitforge.exceptions import RecordNotFoundError, ValidationError
from habitforge.gamification.streak_system import count_distinct_days
from habitforge.models.habit import Habit, HabitCreate, HabitUpdate
from habitforge.utils.datetime_helpers import today_in_timezone

logger = logging.getLogger(__name__)

STATS_PERIODS = {"week": 7, "month": 30, "year": 365}
DEFAULT_STATS_DAYS = 30
LIST_COMPLETIONS_PER_HABIT = 30
DETAIL_COMPLETIONS = 100


class HabitService:
    """
    Service for habit management.

    Responsibilities:
    - Listing, creating, updating, archiving and deleting habits
    - Habit statistics for a period
    - Paginated completion history
    """

    def __init__(self, db_connection):
        self.db = db_connection

    @staticmethod
    def _not_found(user_id: str, habit_id: str) -> RecordNotFoundError:
        return RecordNotFoundError(
            message=f"Habit {habit_id} not found for user {user_id}",
            record_type="Habit",
            record_id=habit_id,
            user_id=user_id,
        )

    async def _require_habit(self, user_id: str, habit_id: str) -> Dict[str, Any]:
        habit = await queries.get_habit(user_id, habit_id)
        if not habit:
            raise self._not_found(user_id, habit_id)
        return habit

    async def _window_start(self, user_id: str, days: int) -> date:
        """First local day of a window of `days` days ending today (user's timezone)"""
        user = await queries.get_user(user_id)
        today = today_in_timezone(user["timezone"] if user else None)
        return today - timedelta(days=days - 1)

    async def list_habits(
        self,
        user_id: str,
        category: Optional[str] = None,
        active: Optional[bool] = None,
        archived: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """
        List habits newest first, each with its latest completions.

        Returns:
            Habit dicts with a 'completions' list (newest first, up to 30)
        """
        habits = await queries.list_habits(user_id, category=category, active=active, archived=archived)
        completions = await queries.get_recent_completions_by_habit(
            [h["id"] for h in habits],
            per_habit=LIST_COMPLETIONS_PER_HABIT,
        )
        return [{**h, "completions": completions.get(str(h["id"]), [])} for h in habits]

    async def get_habit(self, user_id: str, habit_id: str) -> Dict[str, Any]:
        """Habit with its latest 100 completions"""
        habit = await self._require_habit(user_id, habit_id)
        completions = await queries.get_habit_completions(habit_id, limit=DETAIL_COMPLETIONS)
        return {**habit, "completions": completions}

    async def create_habit(self, user_id: str, request: HabitCreate) -> Dict[str, Any]:
        if not await queries.get_user(user_id):
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )

        habit = await queries.create_habit(user_id, request.model_dump(mode="json"))
        logger.info(f"User {user_id} created habit {habit['id']} ({habit['name']})")
        return habit

    async def update_habit(self, user_id: str, habit_id: str, update: HabitUpdate) -> Dict[str, Any]:
        """Apply client-editable changes; statistics and ownership are never written"""
        changes = update.changes()
        habit = await queries.update_habit(user_id, habit_id, changes)
        if not habit:
            raise self._not_found(user_id, habit_id)

        logger.info(f"Updated habit {habit_id}: {sorted(changes)}")
        return habit

    async def delete_habit(self, user_id: str, habit_id: str) -> None:
        """Delete a habit and all of its completions"""
        if not await queries.delete_habit(user_id, habit_id):
            raise self._not_found(user_id, habit_id)

    async def archive_habit(self, user_id: str, habit_id: str) -> Dict[str, Any]:
        habit = Habit.model_validate(await self._require_habit(user_id, habit_id))
        habit.archive()

        row = await queries.update_habit(
            user_id, habit_id, {"archived": habit.archived, "active": habit.active}
        )
        if not row:
            raise self._not_found(user_id, habit_id)

        logger.info(f"Archived habit {habit_id}")
        return row

    async def get_habit_stats(self, user_id: str, habit_id: str, period: Optional[str] = None) -> Dict[str, Any]:
        """
        Statistics for a habit over a period.

        Args:
            period: 'week' (7 days), 'month' (30) or 'year' (365); default 30 days

        Returns:
            {
                'habit_id', 'name', 'total_completions', 'current_streak',
                'longest_streak', 'consistency_rate',
                'period_stats': {'completions', 'total_xp', 'average_xp_per_day', 'days'},
                'total_active_days'
            }
        """
        if period is not None and period not in STATS_PERIODS:
            raise ValidationError(
                message=f"Period must be one of: {', '.join(STATS_PERIODS)}",
                field="period",
                value=period,
            )
        days = STATS_PERIODS.get(period, DEFAULT_STATS_DAYS)

        habit = await self._require_habit(user_id, habit_id)
        since = await self._window_start(user_id, days)
        period_stats = await queries.get_period_stats(habit_id, since)
        async with self.db.connection() as conn:
            completion_dates = await queries.get_completion_dates(conn, habit_id)

        return {
            "habit_id": str(habit["id"]),
            "name": habit["name"],
            "total_completions": habit["total_completions"],
            "current_streak": habit["current_streak"],
            "longest_streak": habit["longest_streak"],
            "consistency_rate": habit["consistency_rate"],
            "period_stats": {
                "completions": period_stats["completions"],
                "total_xp": period_stats["total_xp"],
                "average_xp_per_day": round(period_stats["total_xp"] / days, 2),
                "days": days,
            },
            "total_active_days": count_distinct_days(completion_dates),
        }

    async def get_completions(
        self,
        user_id: str,
        habit_id: str,
        days: int = 30,
        page: int = 1,
        limit: int = 50
    ) -> Dict[str, Any]:
        """
        Paginated completion history for the last `days` local days, today included.

        Returns:
            {'completions': list, 'pagination': {'page', 'limit', 'total', 'pages'}}
        """
        await self._require_habit(user_id, habit_id)

        since = await self._window_start(user_id, days)
        rows, total = await queries.get_completions_page(
            habit_id, since, limit=limit, offset=(page - 1) * limit
        )

        return {
            "completions": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def get_today_completions(self, user_id: str) -> List[str]:
        """IDs of habits completed today in the user's timezone"""
        user = await queries.get_user(user_id)
        if not user:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )
        today = today_in_timezone(user["timezone"])
        return await queries.get_completed_habit_ids_on(user_id, today)
