"""API middleware for rate limiting, CORS and request metrics"""
import logging
import time
from typing import Callable
from uuid import UUID

from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from habitforge.config import CORS_ORIGINS, RATE_LIMIT_DEFAULT
from habitforge.monitoring import record_request

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)


def setup_cors(app):
    """Configure CORS middleware"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(f"CORS configured for origins: {CORS_ORIGINS}")


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": f"Rate limit exceeded: {exc.detail}"}
    )


def setup_rate_limiting(app):
    """Configure rate limiting"""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    logger.info(f"Rate limiting configured: {RATE_LIMIT_DEFAULT} per IP")


def normalize_path(path: str) -> str:
    """
    Collapse IDs in a request path to keep metric cardinality low.

    /api/v1/users/6f1c.../habits -> /api/v1/users/{uuid}/habits
    """
    parts = []
    for part in path.strip("/").split("/"):
        if part.isdigit():
            parts.append("{id}")
            continue
        try:
            UUID(part)
            parts.append("{uuid}")
        except ValueError:
            parts.append(part)
    return "/" + "/".join(parts)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Record request count and latency for every HTTP request"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        path = normalize_path(request.url.path)
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            record_request(method, path, status_code, time.time() - start_time)


def setup_metrics(app):
    app.add_middleware(PrometheusMiddleware)
