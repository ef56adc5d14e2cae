"""Circuit breaker guarding the AI coaching provider

After AI_BREAKER.fail_max consecutive provider failures the breaker opens
and AI endpoints fail immediately (502) instead of waiting on timeouts.
After reset_timeout seconds one trial call is let through (half-open); its
outcome closes or re-opens the breaker.
"""

import logging
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

import pybreaker

from habitforge.resilience.metrics import record_api_failure, record_circuit_breaker_state

logger = logging.getLogger(__name__)

T = TypeVar('T')

AI_FAIL_MAX = 5
AI_RESET_TIMEOUT = 60


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Logs breaker transitions and failures and mirrors them into Prometheus"""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        previous = old_state.name if old_state else "none"
        logger.warning(f"[CIRCUIT_BREAKER] {cb.name} went {previous} -> {new_state.name}")
        record_circuit_breaker_state(cb.name, new_state.name.lower())

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        logger.error(
            f"[CIRCUIT_BREAKER] {cb.name} failure {cb.fail_counter}/{cb.fail_max}: "
            f"{type(exc).__name__}: {exc}"
        )
        record_api_failure(cb.name, type(exc).__name__)

    def success(self, cb: pybreaker.CircuitBreaker) -> None:
        logger.debug(f"[CIRCUIT_BREAKER] {cb.name} call ok")


AI_BREAKER = pybreaker.CircuitBreaker(
    fail_max=AI_FAIL_MAX,
    reset_timeout=AI_RESET_TIMEOUT,
    name="ai_provider",
    listeners=[CircuitBreakerListener()]
)


def breaker_state(breaker: pybreaker.CircuitBreaker) -> str:
    """'closed', 'open' or 'half-open' (pybreaker's spelling)"""
    return breaker.current_state


def with_circuit_breaker(breaker: pybreaker.CircuitBreaker) -> Callable:
    """
    Route an async function through `breaker`

    While the breaker is open the wrapped function is not called and
    pybreaker.CircuitBreakerError is raised instead.
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def guarded(*args: Any, **kwargs: Any) -> T:
            try:
                return await breaker.call_async(func, *args, **kwargs)
            except pybreaker.CircuitBreakerError:
                logger.warning(f"[CIRCUIT_BREAKER] {breaker.name} open, rejecting {getattr(func, '__name__', 'call')}")
                raise
        return guarded
    return decorator
