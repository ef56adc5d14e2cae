"""
GamificationService - Gamification Business Logic

Handles habit completion (the XP/streak/level transaction), forgiveness
tokens, manual XP credits and XP history.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

import psycopg

from habitforge.config import FORGIVENESS_XP
from habitforge.db import queries
from habitforge.exceptions import ConflictError, RecordNotFoundError, ValidationError
from habitforge.gamification.streak_system import streak_milestone
from habitforge.gamification.xp_system import (
    award_xp,
    calculate_completion_xp,
    get_level_info,
    get_next_milestone,
)
from habitforge.models.completion import Completion
from habitforge.models.habit import Habit
from habitforge.monitoring.prometheus_metrics import record_completion, record_xp
from habitforge.utils.datetime_helpers import (
    is_valid_timezone,
    local_date,
    now_utc,
    parse_completion_datetime,
    today_in_timezone,
)

logger = logging.getLogger(__name__)

MAX_MANUAL_XP = 1000


class GamificationService:
    """
    Service for gamification features.

    Responsibilities:
    - Marking habits complete (completion record, habit stats, XP ledger,
      user level) in one database transaction
    - Forgiveness tokens for missed days
    - Manual and challenge XP credits
    - Level/XP summaries and history
    """

    def __init__(self, db_connection):
        """
        Initialize GamificationService.

        Args:
            db_connection: Database instance (provides transaction())
        """
        self.db = db_connection
        logger.debug("GamificationService initialized")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_timezone(requested: Optional[str], user: Dict[str, Any]) -> str:
        """Request timezone, else the user's, else UTC"""
        if requested:
            if not is_valid_timezone(requested):
                raise ValidationError(
                    message=f"Unknown timezone '{requested}'",
                    field="timezone",
                    value=requested,
                )
            return requested
        return user.get("timezone") or "UTC"

    @staticmethod
    def _resolve_instant(value: Optional[str], tz_name: str) -> datetime:
        """
        Completion instant for a client-supplied date

        A bare date for the current local day means "now", so the stored
        instant never lies in the future.
        """
        try:
            completed_at = parse_completion_datetime(value, tz_name)
        except ValueError as e:
            raise ValidationError(message=str(e), field="date", value=value)

        if value and len(value) == 10 and local_date(completed_at, tz_name) == today_in_timezone(tz_name):
            return now_utc()
        return completed_at

    @staticmethod
    def _ensure_not_future(completion_day: date, today: date, value: Optional[str]) -> None:
        if completion_day > today:
            raise ValidationError(
                message="Cannot record a completion for a future date",
                field="date",
                value=value,
            )

    async def _lock_habit_and_user(self, conn, user_id: str, habit_id: str):
        # Habit first, then user: every transaction takes the locks in this order
        habit_row = await queries.lock_habit(conn, user_id, habit_id)
        user = await queries.lock_user(conn, user_id)
        if not user:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )
        return habit_row, user

    @staticmethod
    def _habit_not_found(user_id: str, habit_id: str) -> RecordNotFoundError:
        return RecordNotFoundError(
            message=f"Habit {habit_id} not found for user {user_id}",
            record_type="Habit",
            record_id=habit_id,
            user_id=user_id,
        )

    async def _insert_completion(self, conn, completion: Completion, user_id: str) -> Dict[str, Any]:
        try:
            return await queries.insert_completion(conn, completion.model_dump())
        except psycopg.errors.UniqueViolation as e:
            # Lost a race with a concurrent completion for the same day
            raise ConflictError(
                message="Habit already completed for this date",
                user_id=user_id,
                operation="complete_habit",
                context={"habit_id": str(completion.habit_id), "date": completion.completion_date.isoformat()},
                cause=e,
            )

    async def _refresh_habit_stats(self, conn, habit: Habit, today: date) -> None:
        dates = await queries.get_completion_dates(conn, str(habit.id))
        habit.apply_stats(dates, today)
        await queries.update_habit_stats(
            conn,
            habit_id=str(habit.id),
            current_streak=habit.current_streak,
            longest_streak=habit.longest_streak,
            total_completions=habit.total_completions,
            consistency_rate=habit.consistency_rate,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def complete_habit(
        self,
        user_id: str,
        habit_id: str,
        date: Optional[str] = None,
        timezone: Optional[str] = None,
        notes: Optional[str] = None,
        mood: Optional[int] = None,
        difficulty: Optional[int] = None,
        duration: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Mark a habit complete for a day.

        Everything (completion, habit stats, XP ledger, user level) is
        written in one transaction; any failure rolls all of it back.

        Args:
            user_id: Owner of the habit
            habit_id: Habit to complete
            date: YYYY-MM-DD or ISO datetime (default: now)
            timezone: IANA timezone of the device (default: the user's)
            notes, mood, difficulty, duration: Optional completion details

        Returns:
            {
                'completion': dict,
                'xp_earned': int,
                'level_up_bonus': int,
                'old_level': int,
                'new_level': int,
                'leveled_up': bool,
                'new_total_xp': int,
                'current_streak': int,
                'longest_streak': int,
                'consistency_rate': int,
                'milestone': int | None,
                'rewards': list[str]
            }

        Raises:
            RecordNotFoundError: Habit or user missing
            ValidationError: Bad date/timezone or a future date
            ConflictError: Habit already completed on that local day
        """
        async with self.db.transaction() as conn:
            habit_row, user = await self._lock_habit_and_user(conn, user_id, habit_id)
            if not habit_row:
                raise self._habit_not_found(user_id, habit_id)

            tz_name = self._resolve_timezone(timezone, user)
            completed_at = self._resolve_instant(date, tz_name)
            completion_day = local_date(completed_at, tz_name)
            today = today_in_timezone(tz_name)
            self._ensure_not_future(completion_day, today, date)

            if await queries.completion_exists(conn, habit_id, completion_day):
                raise ConflictError(
                    message="Habit already completed for this date",
                    user_id=user_id,
                    operation="complete_habit",
                    context={"habit_id": habit_id, "date": completion_day.isoformat()},
                )

            # Checked before the insert, so the bonus applies to the first completion only
            is_first_completion = not await queries.has_any_completion(conn, habit_id)

            completion = Completion.at(
                habit_id=UUID(habit_id),
                user_id=UUID(user_id),
                completed_at=completed_at,
                timezone=tz_name,
                notes=notes,
                mood=mood,
                difficulty=difficulty,
                duration=duration,
            )
            completion_row = await self._insert_completion(conn, completion, user_id)

            habit = Habit.model_validate(habit_row)
            old_streak = habit.current_streak
            await self._refresh_habit_stats(conn, habit, today)

            xp = calculate_completion_xp(
                current_streak=habit.current_streak,
                is_first_completion=is_first_completion,
                difficulty=difficulty,
            )
            await queries.set_completion_xp(conn, str(completion_row["id"]), xp["total_xp"])
            completion_row = {**completion_row, "xp_earned": xp["total_xp"]}

            award = await award_xp(
                conn,
                user,
                amount=xp["total_xp"],
                source="habit_completion",
                description=f"Completed {habit.name}",
                habit_id=habit_id,
                metadata={
                    "streak_length": habit.current_streak,
                    "multiplier": xp["multiplier"],
                    "base_xp": xp["base_xp"],
                    "streak_bonus": xp["streak_bonus"],
                },
            )

        milestone = streak_milestone(old_streak, habit.current_streak)
        record_completion(
            {"habit_completion": xp["total_xp"], "level_bonus": award["level_up_bonus"]},
            award["leveled_up"],
        )

        logger.info(
            f"User {user_id} completed habit {habit_id} on {completion_day} "
            f"(+{xp['total_xp']} XP, streak {habit.current_streak})"
        )
        if milestone:
            logger.info(f"User {user_id} reached a {milestone}-day streak on habit {habit_id}")

        return {
            "completion": completion_row,
            "xp_earned": xp["total_xp"],
            "level_up_bonus": award["level_up_bonus"],
            "old_level": award["old_level"],
            "new_level": award["new_level"],
            "leveled_up": award["leveled_up"],
            "new_total_xp": award["new_total_xp"],
            "current_streak": habit.current_streak,
            "longest_streak": habit.longest_streak,
            "consistency_rate": habit.consistency_rate,
            "milestone": milestone,
            "rewards": award["rewards"],
        }

    async def use_forgiveness(
        self,
        user_id: str,
        habit_id: str,
        date: str,
        timezone: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Spend a forgiveness token to fill a missed day.

        The forgiven day counts as a completion for streaks. The user gets
        FORGIVENESS_XP through a 'forgiveness' ledger entry (no level bonus).

        Returns:
            {'completion': dict, 'forgiveness_tokens': int, 'xp_earned': int,
             'current_streak': int, 'longest_streak': int, 'new_level': int,
             'new_total_xp': int}

        Raises:
            ValidationError: No tokens left, bad date or future date
            RecordNotFoundError: Habit or user missing
            ConflictError: The day is already completed or forgiven
        """
        async with self.db.transaction() as conn:
            habit_row, user = await self._lock_habit_and_user(conn, user_id, habit_id)

            if user["forgiveness_tokens"] <= 0:
                raise ValidationError(
                    message="No forgiveness tokens remaining",
                    field="forgiveness_tokens",
                    value=0,
                    user_id=user_id,
                )
            if not habit_row:
                raise self._habit_not_found(user_id, habit_id)

            tz_name = self._resolve_timezone(timezone, user)
            completed_at = self._resolve_instant(date, tz_name)
            completion_day = local_date(completed_at, tz_name)
            today = today_in_timezone(tz_name)
            self._ensure_not_future(completion_day, today, date)

            if await queries.completion_exists(conn, habit_id, completion_day):
                raise ConflictError(
                    message="Habit already completed for this date",
                    user_id=user_id,
                    operation="use_forgiveness",
                    context={"habit_id": habit_id, "date": completion_day.isoformat()},
                )

            completion = Completion.at(
                habit_id=UUID(habit_id),
                user_id=UUID(user_id),
                completed_at=completed_at,
                timezone=tz_name,
                xp_earned=FORGIVENESS_XP,
                forgiveness_used=True,
                edited_flag=True,
            )
            completion_row = await self._insert_completion(conn, completion, user_id)

            habit = Habit.model_validate(habit_row)
            await self._refresh_habit_stats(conn, habit, today)

            spent = {**user, "forgiveness_tokens": user["forgiveness_tokens"] - 1}
            award = await award_xp(
                conn,
                spent,
                amount=FORGIVENESS_XP,
                source="forgiveness",
                description=f"Forgiveness token used for {habit.name} on {completion_day.isoformat()}",
                habit_id=habit_id,
                metadata={"date": completion_day.isoformat()},
                allow_level_bonus=False,
            )

        record_completion({"forgiveness": FORGIVENESS_XP}, award["leveled_up"], forgiveness=True)
        logger.info(
            f"User {user_id} used a forgiveness token on habit {habit_id} for {completion_day} "
            f"({award['forgiveness_tokens']} left)"
        )

        return {
            "completion": completion_row,
            "forgiveness_tokens": award["forgiveness_tokens"],
            "xp_earned": FORGIVENESS_XP,
            "current_streak": habit.current_streak,
            "longest_streak": habit.longest_streak,
            "new_level": award["new_level"],
            "new_total_xp": award["new_total_xp"],
        }

    async def get_gamification_data(self, user_id: str, recent_limit: int = 10) -> Dict[str, Any]:
        """
        Level, XP and token summary for a user.

        Returns:
            {
                'level_info': dict (see get_level_info),
                'total_xp': int,
                'level': int,
                'title': str,
                'forgiveness_tokens': int,
                'next_milestone': {'level': int, 'title': str},
                'recent_transactions': list
            }
        """
        user = await queries.get_user(user_id)
        if not user:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )

        level_info = get_level_info(user["total_xp"])
        recent = await queries.get_xp_transactions(user_id, limit=recent_limit)

        return {
            "level_info": level_info,
            "total_xp": user["total_xp"],
            "level": level_info["current_level"],
            "title": level_info["title"],
            "forgiveness_tokens": user["forgiveness_tokens"],
            "next_milestone": get_next_milestone(level_info["current_level"]),
            "recent_transactions": recent,
        }

    async def add_xp(
        self,
        user_id: str,
        amount: int,
        source: str = "manual",
        description: str = "Manual XP award"
    ) -> Dict[str, Any]:
        """
        Credit XP outside of a habit completion (manual or challenge).

        Level-up rules are the same as for completions.

        Raises:
            ValidationError: amount outside 1..1000
            RecordNotFoundError: User missing
        """
        if not 1 <= amount <= MAX_MANUAL_XP:
            raise ValidationError(
                message=f"XP amount must be between 1 and {MAX_MANUAL_XP}",
                field="amount",
                value=amount,
            )

        async with self.db.transaction() as conn:
            user = await queries.lock_user(conn, user_id)
            if not user:
                raise RecordNotFoundError(
                    message=f"User {user_id} not found",
                    record_type="User",
                    record_id=user_id,
                )
            award = await award_xp(conn, user, amount=amount, source=source, description=description)

        record_xp({source: amount, "level_bonus": award["level_up_bonus"]}, award["leveled_up"])
        return award

    async def get_xp_history(self, user_id: str, days: int = 30, limit: int = 50) -> List[Dict[str, Any]]:
        """XP ledger entries from the last `days` days, newest first"""
        since = now_utc() - timedelta(days=days)
        return await queries.get_xp_transactions(user_id, since=since, limit=limit)

    async def recalculate_habit_stats(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Rebuild streaks, totals and consistency for every habit of a user
        from the stored completions.

        Returns:
            [{'habit_id', 'name', 'current_streak', 'longest_streak',
              'total_completions', 'consistency_rate'}, ...]
        """
        results = []
        async with self.db.transaction() as conn:
            habit_rows = await queries.lock_user_habits(conn, user_id)
            user = await queries.lock_user(conn, user_id)
            if not user:
                raise RecordNotFoundError(
                    message=f"User {user_id} not found",
                    record_type="User",
                    record_id=user_id,
                )
            today = today_in_timezone(user.get("timezone"))

            for row in habit_rows:
                habit = Habit.model_validate(row)
                # Rebuild from scratch rather than keeping the stored maximum
                habit.longest_streak = 0
                await self._refresh_habit_stats(conn, habit, today)
                results.append({
                    "habit_id": str(habit.id),
                    "name": habit.name,
                    "current_streak": habit.current_streak,
                    "longest_streak": habit.longest_streak,
                    "total_completions": habit.total_completions,
                    "consistency_rate": habit.consistency_rate,
                })

        logger.info(f"Recalculated stats for {len(results)} habits of user {user_id}")
        return results
