"""API routes for XP, levels and the XP ledger"""
import logging

from fastapi import APIRouter, Depends, Query, Request

from habitforge.api.auth import path_user_id, verify_api_key
from habitforge.api.middleware import limiter
from habitforge.api.responses import success
from habitforge.config import RATE_LIMIT_DEFAULT
from habitforge.models.xp import AddXPRequest
from habitforge.services.container import ServiceContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users/{user_id}/gamification")


@router.get("")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_gamification(
    request: Request,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Level info, total XP, forgiveness tokens and recent XP transactions"""
    return success(await container.gamification_service.get_gamification_data(user_id))


@router.post("/xp")
@limiter.limit("10/minute")
async def add_xp(
    request: Request,
    body: AddXPRequest,
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    """Manual or challenge XP credit, 1-1000 XP (Rate limit: 10/minute)"""
    award = await container.gamification_service.add_xp(
        user_id, body.amount, source=body.source.value, description=body.description
    )
    return success(award, f"Awarded {body.amount} XP")


@router.get("/xp/history")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_xp_history(
    request: Request,
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(path_user_id),
    api_key: str = Depends(verify_api_key),
    container: ServiceContainer = Depends(get_container)
):
    history = await container.gamification_service.get_xp_history(user_id, days=days, limit=limit)
    return success(history)
