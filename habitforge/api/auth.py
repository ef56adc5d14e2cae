"""Bearer API key authentication and the {user_id} path dependency"""
import logging
import secrets
from uuid import UUID

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from habitforge import config
from habitforge.monitoring import set_user_context

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer()


def _key_matches(candidate: str, keys: list[str]) -> bool:
    return any(secrets.compare_digest(candidate.encode(), key.encode()) for key in keys)


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)
) -> str:
    """
    Accept the request only if its bearer token is one of config.API_KEYS

    503 when the server has no keys configured at all, 401 for an unknown key.
    """
    api_key = credentials.credentials

    if not config.API_KEYS:
        logger.error("API_KEYS is empty, rejecting all API requests")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API authentication not configured"
        )

    if not _key_matches(api_key, config.API_KEYS):
        # Log only a prefix of what was sent
        logger.warning(f"Rejected API key {api_key[:4]}...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )

    return api_key


async def path_user_id(user_id: UUID) -> str:
    """The {user_id} path parameter as a string, tagged on Sentry events"""
    user_id_str = str(user_id)
    set_user_context(user_id_str)
    return user_id_str
