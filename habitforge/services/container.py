"""
Service container

Holds the shared Database (and optionally an AsyncOpenAI client) and builds
each service the first time a route asks for it. Routes receive the
container through the `get_container` FastAPI dependency, which tests
override with a container of mocks.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional
import logging

if TYPE_CHECKING:
    from openai import AsyncOpenAI

    from habitforge.db.connection import Database
    from habitforge.services.ai_service import AIService
    from habitforge.services.analytics_service import AnalyticsService
    from habitforge.services.community_service import CommunityService
    from habitforge.services.gamification_service import GamificationService
    from habitforge.services.habit_service import HabitService
    from habitforge.services.user_service import UserService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    db: "Database"
    ai_client: Optional["AsyncOpenAI"] = None  # built from config by AIService when None

    _services: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def _lazy(self, name: str, build: Callable[[], Any]) -> Any:
        if name not in self._services:
            self._services[name] = build()
            logger.debug(f"{type(self._services[name]).__name__} instantiated")
        return self._services[name]

    # Imports are deferred so importing the container does not pull in
    # every service (and the openai SDK) at module load.

    @property
    def user_service(self) -> "UserService":
        from habitforge.services.user_service import UserService
        return self._lazy("user", lambda: UserService(self.db))

    @property
    def habit_service(self) -> "HabitService":
        from habitforge.services.habit_service import HabitService
        return self._lazy("habit", lambda: HabitService(self.db))

    @property
    def gamification_service(self) -> "GamificationService":
        from habitforge.services.gamification_service import GamificationService
        return self._lazy("gamification", lambda: GamificationService(self.db))

    @property
    def analytics_service(self) -> "AnalyticsService":
        from habitforge.services.analytics_service import AnalyticsService
        return self._lazy("analytics", lambda: AnalyticsService(self.db))

    @property
    def community_service(self) -> "CommunityService":
        from habitforge.services.community_service import CommunityService
        return self._lazy("community", lambda: CommunityService(self.db))

    @property
    def ai_service(self) -> "AIService":
        from habitforge.services.ai_service import AIService
        return self._lazy("ai", lambda: AIService(self.db, client=self.ai_client))


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """FastAPI dependency returning the process-wide container"""
    if _container is None:
        raise RuntimeError("Service container not initialized; init_container() runs in the API lifespan")
    return _container


def init_container(db: "Database", ai_client: Optional["AsyncOpenAI"] = None) -> ServiceContainer:
    """Create the process-wide container once the database pool is open"""
    global _container

    _container = ServiceContainer(db=db, ai_client=ai_client)
    logger.info("Service container initialized")
    return _container
