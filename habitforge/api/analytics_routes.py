"""API routes for analytics dashboards and data export"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from habitforge.api.auth import path_user_id, verify_api_key
from habitforge.api.middleware import limiter
from habitforge.api.responses import success
from habitforge.config import RATE_LIMIT_DEFAULT
from habitforge.services.container import ServiceContainer, get_container
from habitforge.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users/{user_id}/analytics")


# Range checks (1-365) happen in AnalyticsService so they share the 400 envelope

@router.get("/overview")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_overview(
    request: Request,
    days: int = 30,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return success(await container.analytics_service.get_overview(user_id, days=days))


@router.get("/trends")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_trends(
    request: Request,
    days: int = 30,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return success(await container.analytics_service.get_trends(user_id, days=days))


@router.get("/weekly-summary")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_weekly_summary(
    request: Request,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return success(await container.analytics_service.get_weekly_summary(user_id))


@router.get("/habit-performance")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_habit_performance(
    request: Request,
    time_range: int = 30,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    performance = await container.analytics_service.get_habit_performance(user_id, time_range=time_range)
    return success(performance)


@router.get("/consistency")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_consistency(
    request: Request,
    month: Optional[str] = None,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Calendar heat map for month YYYY-MM (default: current month)"""
    return success(await container.analytics_service.get_consistency(user_id, month=month))


@router.get("/export")
@limiter.limit("5/minute")
async def export_completions(
    request: Request,
    days: Optional[int] = None,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Completion records as a CSV download (Rate limit: 5/minute)"""
    content = await container.analytics_service.export_csv(user_id, days=days)
    filename = f"habitforge-export-{now_utc().strftime('%Y%m%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
