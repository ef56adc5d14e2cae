"""API routes for health checks and users"""
import logging

from fastapi import APIRouter, Depends, Request, status

from habitforge.api.auth import path_user_id, verify_api_key
from habitforge.api.middleware import limiter
from habitforge.api.responses import success
from habitforge.config import RATE_LIMIT_DEFAULT
from habitforge.db.connection import db
from habitforge.models.user import UserCreate, UserSettingsUpdate
from habitforge.services.container import ServiceContainer, get_container
from habitforge.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
@limiter.limit("60/minute")
async def health_check(request: Request):
    """Health check endpoint (Rate limit: 60/minute for monitoring systems)"""
    try:
        await db.ping()
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "disconnected"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
        "timestamp": now_utc().isoformat(),
    }


@router.post("/api/v1/users", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_user(
    request: Request,
    body: UserCreate,
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Create a new user (Rate limit: 20/minute)"""
    user = await container.user_service.create_user(body)
    return success(user, "User created")


@router.get("/api/v1/users/{user_id}")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_user(
    request: Request,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return success(await container.user_service.get_user(user_id))


@router.patch("/api/v1/users/{user_id}")
@limiter.limit("20/minute")
async def update_user_settings(
    request: Request,
    body: UserSettingsUpdate,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Update profile, theme, notification, privacy and AI settings"""
    user = await container.user_service.update_settings(user_id, body)
    return success(user, "Settings updated")


@router.delete("/api/v1/users/{user_id}")
@limiter.limit("20/minute")
async def delete_user(
    request: Request,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Soft-delete a user; completion and XP history are kept"""
    await container.user_service.delete_user(user_id)
    return success(message="User deleted")
