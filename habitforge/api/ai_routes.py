"""API routes for AI coaching"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from habitforge.api.auth import path_user_id, verify_api_key
from habitforge.api.middleware import limiter
from habitforge.api.models import CoachingRequest, SuggestionsRequest
from habitforge.api.responses import success
from habitforge.config import RATE_LIMIT_AI
from habitforge.services.container import ServiceContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users/{user_id}/ai")


def _generated(result: dict) -> dict:
    return success(result["data"], generated_at=result["generated_at"])


@router.get("/insights")
@limiter.limit(RATE_LIMIT_AI)
async def get_insights(
    request: Request,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """
    Comprehensive habit insights

    Rate limit: RATE_LIMIT_AI (AI calls are expensive)
    """
    return _generated(await container.ai_service.get_insights(user_id))


@router.post("/suggestions")
@limiter.limit(RATE_LIMIT_AI)
async def get_suggestions(
    request: Request,
    body: SuggestionsRequest,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    result = await container.ai_service.get_suggestions(user_id, body.goals, body.preferences)
    return _generated(result)


@router.get("/patterns/{habit_id}")
@limiter.limit(RATE_LIMIT_AI)
async def analyze_patterns(
    request: Request,
    habit_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return _generated(await container.ai_service.analyze_patterns(user_id, str(habit_id)))


@router.get("/motivation")
@limiter.limit(RATE_LIMIT_AI)
async def get_motivation(
    request: Request,
    context: str = "daily",
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    return _generated(await container.ai_service.get_motivation(user_id, context))


@router.post("/coaching")
@limiter.limit(RATE_LIMIT_AI)
async def get_coaching(
    request: Request,
    body: CoachingRequest,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    result = await container.ai_service.get_coaching(user_id, body.challenge, body.context)
    return _generated(result)


@router.get("/optimize/{habit_id}")
@limiter.limit(RATE_LIMIT_AI)
async def get_optimization(
    request: Request,
    habit_id: UUID,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Pattern analysis and insights merged into recommendations for one habit"""
    return _generated(await container.ai_service.get_optimization(user_id, str(habit_id)))


@router.get("/status")
async def get_ai_status(
    request: Request,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Whether the AI provider is configured and its circuit breaker state"""
    return success(container.ai_service.get_status())
