"""FastAPI application setup"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from habitforge import __version__
from habitforge.api import (
    ai_routes,
    analytics_routes,
    community_routes,
    gamification_routes,
    habit_routes,
    metrics_routes,
    routes,
)
from habitforge.api.errors import register_exception_handlers
from habitforge.api.middleware import setup_cors, setup_metrics, setup_rate_limiting
from habitforge.config import ENABLE_PROMETHEUS, LOG_LEVEL, validate_config
from habitforge.db.connection import db
from habitforge.monitoring import init_sentry
from habitforge.services.container import init_container

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO)
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application"""
    # Startup
    logger.info("Starting API server...")
    validate_config()
    init_sentry()

    await db.init_pool()
    init_container(db)
    logger.info("HabitForge API ready")

    yield

    # Shutdown
    logger.info("Shutting down API server...")
    await db.close_pool()


def create_api_application() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="HabitForge API",
        description="REST API for habit tracking, gamification, community circles and AI coaching",
        version=__version__,
        lifespan=lifespan
    )

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)
    if ENABLE_PROMETHEUS:
        setup_metrics(app)

    register_exception_handlers(app)

    # Include routes
    app.include_router(routes.router)
    app.include_router(habit_routes.router)
    app.include_router(gamification_routes.router)
    app.include_router(analytics_routes.router)
    app.include_router(community_routes.router)
    app.include_router(ai_routes.router)
    app.include_router(metrics_routes.router)

    logger.info("FastAPI application created")

    return app
