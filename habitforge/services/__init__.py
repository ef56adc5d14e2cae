"""
Service Layer Package

This package contains business logic services that separate concerns between
the presentation layer (FastAPI routes) and the data access layer (database queries).

Core Services:
- UserService: User accounts and settings
- HabitService: Habit CRUD, statistics, completion history
- GamificationService: Completions, XP, levels, streaks, forgiveness tokens
- AnalyticsService: Dashboards, consistency calendar, CSV export
- CommunityService: Circles, messages, leaderboards, challenges

External Integration Services:
- AIService: AI habit coaching via OpenAI
"""

from habitforge.services.container import ServiceContainer, get_container, init_container

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
]
