"""Global test fixtures and utilities for habitforge tests"""
import pytest
import httpx
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4


# ============================================================================
# Database Fixtures
# ============================================================================

class FakeDatabase:
    """Stands in for habitforge.db.connection.Database; queries are patched per test"""

    def __init__(self):
        self.conn = MagicMock()
        self.transactions = 0

    @asynccontextmanager
    async def connection(self):
        yield self.conn

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield self.conn


@pytest.fixture
def mock_db():
    """Database double whose transaction() yields a MagicMock connection"""
    return FakeDatabase()


# ============================================================================
# Record Fixtures
# ============================================================================

@pytest.fixture
def user_id():
    return str(uuid4())


@pytest.fixture
def habit_id():
    return str(uuid4())


@pytest.fixture
def user_row(user_id):
    """User row as returned by habitforge.db.queries.get_user"""
    created = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    return {
        "id": user_id,
        "name": "Test User",
        "email": "test@example.com",
        "timezone": "UTC",
        "level": 1,
        "total_xp": 0,
        "forgiveness_tokens": 2,
        "ai_opt_out": False,
        "theme": "system",
        "notification_preferences": {
            "push": True,
            "email": True,
            "in_app": True,
            "reminder_time": "09:00",
        },
        "privacy_settings": {
            "share_with_community": True,
            "allow_ai_personalization": True,
            "show_on_leaderboard": True,
        },
        "is_active": True,
        "soft_deleted": False,
        "created_at": created,
        "updated_at": created,
    }


@pytest.fixture
def habit_row(user_id, habit_id):
    """Habit row as returned by habitforge.db.queries.get_habit"""
    created = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    return {
        "id": habit_id,
        "user_id": user_id,
        "name": "Morning Run",
        "description": "Run 5km before breakfast",
        "category": "fitness",
        "frequency": "daily",
        "reminder_time": "07:00",
        "reminder_enabled": True,
        "color": "#3B82F6",
        "icon": "run",
        "active": True,
        "archived": False,
        "current_streak": 0,
        "longest_streak": 0,
        "total_completions": 0,
        "consistency_rate": 0,
        "created_at": created,
        "updated_at": created,
    }


# ============================================================================
# API Fixtures
# ============================================================================

@pytest.fixture
def container():
    """Service container whose services are AsyncMocks"""
    container = MagicMock()
    container.user_service = AsyncMock()
    container.habit_service = AsyncMock()
    container.gamification_service = AsyncMock()
    container.analytics_service = AsyncMock()
    container.community_service = AsyncMock()
    container.ai_service = AsyncMock()
    container.ai_service.get_status = MagicMock(return_value={
        "configured": True,
        "model": "gpt-4o-mini",
        "circuit_state": "closed",
        "available": True,
    })
    return container


@pytest.fixture
def app(container):
    """FastAPI app with auth and the service container overridden"""
    from habitforge.api.auth import verify_api_key
    from habitforge.api.server import create_api_application
    from habitforge.services.container import get_container

    app = create_api_application()
    app.dependency_overrides[get_container] = lambda: container
    app.dependency_overrides[verify_api_key] = lambda: "test_key_123"
    return app


@pytest.fixture
async def client(app):
    """httpx client talking to the app in-process (rate limiting off)"""
    from habitforge.api.middleware import limiter

    limiter.enabled = False
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    limiter.enabled = True
