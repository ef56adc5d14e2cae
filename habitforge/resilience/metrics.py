"""Prometheus metrics for outbound provider calls

Every series is labelled with the provider ("openai") or breaker name
("ai_provider") so a second external dependency can share them.
"""

import logging
from prometheus_client import Counter, Enum, Histogram

logger = logging.getLogger(__name__)

BREAKER_STATES = ['closed', 'open', 'half_open']

provider_breaker_state = Enum(
    'provider_breaker_state',
    'Circuit breaker state per protected provider',
    ['breaker'],
    states=BREAKER_STATES
)

provider_calls_total = Counter(
    'provider_calls_total',
    'Outbound provider calls by outcome',
    ['provider', 'outcome']
)

provider_call_seconds = Histogram(
    'provider_call_seconds',
    'Outbound provider call latency, retries included',
    ['provider'],
    buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0)
)

provider_errors_total = Counter(
    'provider_errors_total',
    'Failures seen by a circuit breaker, by exception class',
    ['breaker', 'error_type']
)

provider_retries_total = Counter(
    'provider_retries_total',
    'Backoff retries scheduled per provider',
    ['provider']
)


def record_circuit_breaker_state(breaker: str, state: str) -> None:
    """Mirror a breaker transition; pybreaker spells half-open with a dash"""
    state = state.replace('-', '_')
    if state not in BREAKER_STATES:
        logger.warning(f"Unknown breaker state '{state}' for {breaker}")
        return
    provider_breaker_state.labels(breaker=breaker).state(state)


def record_api_call(provider: str, success: bool, duration: float) -> None:
    provider_calls_total.labels(provider=provider, outcome='ok' if success else 'error').inc()
    provider_call_seconds.labels(provider=provider).observe(duration)


def record_api_failure(breaker: str, error_type: str) -> None:
    provider_errors_total.labels(breaker=breaker, error_type=error_type).inc()


def record_retry(provider: str) -> None:
    provider_retries_total.labels(provider=provider).inc()
