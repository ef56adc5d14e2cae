"""
AnalyticsService - Dashboard Aggregations

All day-based figures use the completion's local calendar day
(completion_date), and "today" is evaluated in the user's timezone.
"""

import csv
import logging
from datetime import date, timedelta
from io import StringIO
from typing import Any, Dict, List, Optional

from habitforge.db import queries
from habitforge.exceptions import RecordNotFoundError, ValidationError
from habitforge.utils.datetime_helpers import parse_month, today_in_timezone

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "date",
    "completed_at",
    "timezone",
    "habit",
    "category",
    "xp_earned",
    "mood",
    "difficulty",
    "duration",
    "notes",
    "forgiveness_used",
]


def heat_level(count: int) -> int:
    """Calendar heat level 0-4 for a day's completion count"""
    if count >= 5:
        return 4
    if count >= 3:
        return 3
    if count >= 2:
        return 2
    if count >= 1:
        return 1
    return 0


def _percent(numerator: float, denominator: float) -> int:
    if denominator <= 0:
        return 0
    return round(numerator / denominator * 100)


class AnalyticsService:
    """
    Service for analytics dashboards.

    Responsibilities:
    - Overview, trends and weekly summary
    - Per-habit performance
    - Monthly consistency calendar
    - CSV export of completion records
    """

    def __init__(self, db_connection):
        self.db = db_connection

    @staticmethod
    def _validate_days(days: int, field: str = "days") -> None:
        if days < 1 or days > 365:
            raise ValidationError(
                message=f"{field} must be between 1 and 365",
                field=field,
                value=days,
            )

    async def _today(self, user_id: str) -> date:
        user = await queries.get_user(user_id)
        if not user:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )
        return today_in_timezone(user["timezone"])

    async def _daily_series(self, user_id: str, today: date, days: int) -> List[Dict[str, Any]]:
        """Zero-filled per-day completions and XP for the last `days` days, oldest first"""
        start = today - timedelta(days=days - 1)
        rows = await queries.get_daily_completion_counts(user_id, start, today)
        by_day = {row["day"]: row for row in rows}

        series = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            row = by_day.get(day)
            series.append({
                "date": day.isoformat(),
                "completions": row["completions"] if row else 0,
                "xp_earned": row["xp"] if row else 0,
            })
        return series

    async def get_overview(self, user_id: str, days: int = 30) -> Dict[str, Any]:
        """
        Summary of the last `days` days.

        consistency_rate = completions / (active habits * days) * 100;
        completion_rate is today's completions over active habits.
        """
        self._validate_days(days)
        today = await self._today(user_id)
        summary = await queries.get_habit_summary(user_id)
        series = await self._daily_series(user_id, today, days)

        total_habits = summary["active_habits"]
        total_completions = sum(d["completions"] for d in series)
        today_completions = series[-1]["completions"]

        return {
            "total_habits": total_habits,
            "total_completions": total_completions,
            "today_completions": today_completions,
            "consistency_rate": _percent(total_completions, total_habits * days),
            "unique_days_with_completions": sum(1 for d in series if d["completions"]),
            "longest_streak": summary["longest_streak"],
            "current_streaks": summary["current_streaks_total"],
            "completion_rate": _percent(today_completions, total_habits),
        }

    async def get_trends(self, user_id: str, days: int = 30) -> List[Dict[str, Any]]:
        """One row per day, oldest first, days without completions included"""
        self._validate_days(days)
        today = await self._today(user_id)
        return await self._daily_series(user_id, today, days)

    async def get_weekly_summary(self, user_id: str) -> Dict[str, Any]:
        """
        Last 7 local days (today included).

        best_day / worst_day are weekday names of the days with the most and
        fewest completions; both are None when the week has no completions.
        """
        today = await self._today(user_id)
        summary = await queries.get_habit_summary(user_id)
        series = await self._daily_series(user_id, today, 7)

        total_habits = summary["active_habits"]
        total_completions = sum(d["completions"] for d in series)

        best_day = worst_day = None
        if total_completions:
            best = max(series, key=lambda d: d["completions"])
            worst = min(series, key=lambda d: d["completions"])
            best_day = date.fromisoformat(best["date"]).strftime("%A")
            worst_day = date.fromisoformat(worst["date"]).strftime("%A")

        return {
            "days": series,
            "total_habits": total_habits,
            "weekly_stats": {
                "total_completions": total_completions,
                "average_completion_rate": _percent(total_completions, total_habits * 7),
                "best_day": best_day,
                "worst_day": worst_day,
            },
        }

    async def get_habit_performance(self, user_id: str, time_range: int = 30) -> List[Dict[str, Any]]:
        """Per active habit figures for the last `time_range` days, best completion rate first"""
        self._validate_days(time_range, field="time_range")
        today = await self._today(user_id)
        start = today - timedelta(days=time_range - 1)
        rows = await queries.get_habit_performance(user_id, start)

        performance = [
            {
                "habit_id": str(row["id"]),
                "name": row["name"],
                "category": row["category"],
                "color": row["color"],
                "completions": row["completions"],
                "completion_rate": _percent(row["completions"], time_range),
                "total_xp": int(row["xp"]),
                "current_streak": row["current_streak"],
                "longest_streak": row["longest_streak"],
            }
            for row in rows
        ]
        performance.sort(key=lambda p: p["completion_rate"], reverse=True)
        return performance

    async def get_consistency(self, user_id: str, month: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Calendar heat map for a month (YYYY-MM, default: current month).

        Returns:
            [{'date': 'YYYY-MM-DD', 'value': count, 'level': 0-4}, ...] for
            days with at least one completion
        """
        today = await self._today(user_id)
        if month is None:
            month = today.strftime("%Y-%m")

        try:
            first_day, next_month = parse_month(month)
        except ValueError as e:
            raise ValidationError(message=str(e), field="month", value=month)

        rows = await queries.get_daily_completion_counts(
            user_id, first_day, next_month - timedelta(days=1)
        )
        return [
            {
                "date": row["day"].isoformat(),
                "value": row["completions"],
                "level": heat_level(row["completions"]),
            }
            for row in rows
        ]

    async def export_csv(self, user_id: str, days: Optional[int] = None) -> str:
        """
        Completion records as CSV.

        Args:
            days: Only the last `days` local days; None exports everything
        """
        start = None
        if days is not None:
            self._validate_days(days)
            today = await self._today(user_id)
            start = today - timedelta(days=days - 1)

        rows = await queries.get_export_rows(user_id, start)

        out = StringIO()
        writer = csv.DictWriter(out, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow({
                "date": row["completion_date"].isoformat(),
                "completed_at": row["completed_at"].isoformat(),
                "timezone": row["device_timezone"],
                "habit": row["habit_name"],
                "category": row["habit_category"],
                "xp_earned": row["xp_earned"],
                "mood": row["mood"] if row["mood"] is not None else "",
                "difficulty": row["difficulty"] if row["difficulty"] is not None else "",
                "duration": row["duration"] if row["duration"] is not None else "",
                "notes": row["notes"] or "",
                "forgiveness_used": "yes" if row["forgiveness_used"] else "no",
            })

        logger.info(f"Exported {len(rows)} completions for user {user_id}")
        return out.getvalue()
