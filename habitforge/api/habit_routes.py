"""API routes for habits, completions and forgiveness tokens"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from habitforge.api.auth import path_user_id, verify_api_key
from habitforge.api.middleware import limiter
from habitforge.api.responses import success
from habitforge.config import RATE_LIMIT_DEFAULT
from habitforge.models.habit import (
    CompletionRequest,
    ForgivenessRequest,
    HabitCategory,
    HabitCreate,
    HabitUpdate,
)
from habitforge.services.container import ServiceContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users/{user_id}/habits")


@router.get("")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def list_habits(
    request: Request,
    category: Optional[HabitCategory] = None,
    active: Optional[bool] = None,
    archived: Optional[bool] = None,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """List habits, newest first, each with its last 30 completions"""
    habits = await container.habit_service.list_habits(
        user_id,
        category=category.value if category else None,
        active=active,
        archived=archived,
    )
    return success(habits)


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def create_habit(
    request: Request,
    body: HabitCreate,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    habit = await container.habit_service.create_habit(user_id, body)
    return success(habit, "Habit created")


@router.get("/completions/today")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_today_completions(
    request: Request,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """IDs of habits completed today in the user's timezone"""
    return success(await container.habit_service.get_today_completions(user_id))


@router.post("/recalculate")
@limiter.limit("5/minute")
async def recalculate_stats(
    request: Request,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Rebuild streaks, totals and consistency from stored completions (Rate limit: 5/minute)"""
    habits = await container.gamification_service.recalculate_habit_stats(user_id)
    return success(habits, f"Recalculated stats for {len(habits)} habits")


@router.get("/{habit_id}")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_habit(
    request: Request,
    habit_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return success(await container.habit_service.get_habit(user_id, str(habit_id)))


@router.patch("/{habit_id}")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def update_habit(
    request: Request,
    habit_id: UUID,
    body: HabitUpdate,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Update a habit; statistics and ownership fields are ignored"""
    habit = await container.habit_service.update_habit(user_id, str(habit_id), body)
    return success(habit, "Habit updated")


@router.delete("/{habit_id}")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def delete_habit(
    request: Request,
    habit_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    await container.habit_service.delete_habit(user_id, str(habit_id))
    return success(message="Habit deleted")


@router.post("/{habit_id}/archive")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def archive_habit(
    request: Request,
    habit_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    habit = await container.habit_service.archive_habit(user_id, str(habit_id))
    return success(habit, "Habit archived")


@router.post("/{habit_id}/complete", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def complete_habit(
    request: Request,
    habit_id: UUID,
    body: Optional[CompletionRequest] = None,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """
    Mark a habit complete (Rate limit: 30/minute)

    The body is optional; without a date the habit is completed now.
    """
    body = body or CompletionRequest()
    result = await container.gamification_service.complete_habit(
        user_id,
        str(habit_id),
        date=body.date,
        timezone=body.timezone,
        notes=body.notes,
        mood=body.mood,
        difficulty=body.difficulty,
        duration=body.duration,
    )

    message = "Habit completed"
    if result["leveled_up"]:
        message = f"Habit completed - level up to {result['new_level']}!"
    return success(result, message)


@router.post("/{habit_id}/forgiveness")
@limiter.limit("10/minute")
async def use_forgiveness(
    request: Request,
    habit_id: UUID,
    body: ForgivenessRequest,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Spend a forgiveness token on a missed day (Rate limit: 10/minute)"""
    result = await container.gamification_service.use_forgiveness(
        user_id, str(habit_id), body.date, timezone=body.timezone
    )
    return success(result, "Forgiveness token used")


@router.get("/{habit_id}/stats")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_habit_stats(
    request: Request,
    habit_id: UUID,
    period: Optional[str] = None,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Statistics for period week, month or year (default: last 30 days)"""
    stats = await container.habit_service.get_habit_stats(user_id, str(habit_id), period)
    return success(stats)


@router.get("/{habit_id}/completions")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_habit_completions(
    request: Request,
    habit_id: UUID,
    days: int = Query(30, ge=1, le=365),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    result = await container.habit_service.get_completions(
        user_id, str(habit_id), days=days, page=page, limit=limit
    )
    return success(result)
