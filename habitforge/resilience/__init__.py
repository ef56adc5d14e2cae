"""Resilience patterns for external API calls

This module provides a circuit breaker, retry logic and metrics
collection for protecting the API against AI provider failures.
"""

from habitforge.resilience.circuit_breaker import (
    AI_BREAKER,
    breaker_state,
    with_circuit_breaker,
)
from habitforge.resilience.retry import retry_with_backoff, with_retry
from habitforge.resilience.metrics import (
    record_circuit_breaker_state,
    record_api_call,
    record_api_failure,
    record_retry,
)

__all__ = [
    # Circuit Breakers
    "AI_BREAKER",
    "breaker_state",
    "with_circuit_breaker",
    # Retry
    "retry_with_backoff",
    "with_retry",
    # Metrics
    "record_circuit_breaker_state",
    "record_api_call",
    "record_api_failure",
    "record_retry",
]
