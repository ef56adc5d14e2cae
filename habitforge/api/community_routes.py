"""API routes for community circles"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from habitforge.api.auth import path_user_id, verify_api_key
from habitforge.api.middleware import limiter
from habitforge.api.responses import success
from habitforge.config import RATE_LIMIT_DEFAULT
from habitforge.models.community import (
    ChallengeCreate,
    ChallengeProgressUpdate,
    CircleCreate,
    EventCreate,
    JoinCircleRequest,
    MessageCreate,
)
from habitforge.services.container import ServiceContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users/{user_id}/circles")


@router.get("")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def list_circles(
    request: Request,
    search: Optional[str] = Query(None, max_length=50),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Public circles plus the caller's private ones"""
    result = await container.community_service.list_circles(user_id, search=search, page=page, limit=limit)
    return success(result)


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_circle(
    request: Request,
    body: CircleCreate,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    circle = await container.community_service.create_circle(user_id, body)
    return success(circle, "Circle created")


@router.get("/{circle_id}")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_circle(
    request: Request,
    circle_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return success(await container.community_service.get_circle(user_id, str(circle_id)))


@router.post("/{circle_id}/join")
@limiter.limit("10/minute")
async def join_circle(
    request: Request,
    circle_id: UUID,
    body: Optional[JoinCircleRequest] = None,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Join a circle; private circles need their invite code"""
    invite_code = body.invite_code if body else None
    circle = await container.community_service.join_circle(user_id, str(circle_id), invite_code)
    return success(circle, "Joined circle")


@router.post("/{circle_id}/leave")
@limiter.limit("10/minute")
async def leave_circle(
    request: Request,
    circle_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    result = await container.community_service.leave_circle(user_id, str(circle_id))
    message = "Left circle and deleted it" if result["circle_deleted"] else "Left circle"
    return success(result, message)


@router.post("/{circle_id}/messages", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def post_message(
    request: Request,
    circle_id: UUID,
    body: MessageCreate,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    message = await container.community_service.post_message(user_id, str(circle_id), body.content)
    return success(message, "Message posted")


@router.get("/{circle_id}/messages/stats")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_message_stats(
    request: Request,
    circle_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Messages sent today, the daily limit and how many remain"""
    return success(await container.community_service.get_message_stats(user_id, str(circle_id)))


@router.get("/{circle_id}/leaderboard")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_leaderboard(
    request: Request,
    circle_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return success(await container.community_service.get_leaderboard(user_id, str(circle_id)))


@router.post("/{circle_id}/leaderboard/opt-out")
@limiter.limit("10/minute")
async def toggle_leaderboard_opt_out(
    request: Request,
    circle_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Toggle whether the caller appears on this circle's leaderboard"""
    result = await container.community_service.toggle_leaderboard_opt_out(user_id, str(circle_id))
    return success(result)


@router.post("/{circle_id}/events", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_event(
    request: Request,
    circle_id: UUID,
    body: EventCreate,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Create a circle event (admins only)"""
    event = await container.community_service.create_event(user_id, str(circle_id), body)
    return success(event, "Event created")


@router.post("/{circle_id}/challenges", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_challenge(
    request: Request,
    circle_id: UUID,
    body: ChallengeCreate,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Create a circle challenge (admins only)"""
    challenge = await container.community_service.create_challenge(user_id, str(circle_id), body)
    return success(challenge, "Challenge created")


@router.post("/{circle_id}/challenges/{challenge_id}/join")
@limiter.limit("10/minute")
async def join_challenge(
    request: Request,
    circle_id: UUID,
    challenge_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    result = await container.community_service.join_challenge(user_id, str(circle_id), str(challenge_id))
    return success(result, "Joined challenge")


@router.patch("/{circle_id}/challenges/{challenge_id}/progress")
@limiter.limit("30/minute")
async def update_challenge_progress(
    request: Request,
    circle_id: UUID,
    challenge_id: UUID,
    body: ChallengeProgressUpdate,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Record challenge progress; reaching the target awards community points once"""
    result = await container.community_service.update_challenge_progress(
        user_id, str(circle_id), str(challenge_id), body.progress
    )
    message = "Challenge completed" if result["points_awarded"] else "Progress updated"
    return success(result, message)
