"""Prometheus metrics definitions and helpers"""
import logging
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram

from habitforge.config import ENABLE_PROMETHEUS

logger = logging.getLogger(__name__)


class PrometheusMetrics:
    """Container for application Prometheus metrics"""

    def __init__(self):
        self._enabled = ENABLE_PROMETHEUS
        if not self._enabled:
            logger.info("Prometheus metrics disabled")
            return

        # HTTP Request Metrics
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status']
        )

        self.http_request_duration_seconds = Histogram(
            'http_request_duration_seconds',
            'HTTP request latency',
            ['method', 'endpoint'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0]
        )

        # Gamification Metrics
        self.habit_completions_total = Counter(
            'habit_completions_total',
            'Habit completions recorded',
            ['kind']  # regular, forgiveness
        )

        self.xp_awarded_total = Counter(
            'xp_awarded_total',
            'XP credited to users',
            ['source']
        )

        self.level_ups_total = Counter(
            'level_ups_total',
            'Level-up events'
        )

        # AI Metrics
        self.ai_requests_total = Counter(
            'ai_requests_total',
            'AI coaching requests',
            ['feature', 'status']
        )

        self.ai_request_duration_seconds = Histogram(
            'ai_request_duration_seconds',
            'AI coaching request latency',
            ['feature'],
            buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0]
        )

        self.ai_tokens_used = Counter(
            'ai_tokens_used_total',
            'Total tokens used by AI requests',
            ['token_type']
        )

        logger.info("Prometheus metrics initialized")

    @property
    def enabled(self) -> bool:
        """Check if metrics are enabled"""
        return self._enabled


# Global metrics instance
metrics = PrometheusMetrics()


def record_request(method: str, endpoint: str, status: int, duration: float) -> None:
    """Record one HTTP request"""
    if not metrics.enabled:
        return

    metrics.http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)
    metrics.http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()


def record_completion(xp_awards: dict[str, int], leveled_up: bool, forgiveness: bool = False) -> None:
    """
    Record a habit completion and the XP it produced

    Args:
        xp_awards: ledger source -> XP credited
        leveled_up: Whether the user gained a level
        forgiveness: Whether a forgiveness token was spent
    """
    if not metrics.enabled:
        return

    metrics.habit_completions_total.labels(kind="forgiveness" if forgiveness else "regular").inc()
    record_xp(xp_awards, leveled_up)


def record_xp(xp_awards: dict[str, int], leveled_up: bool) -> None:
    if not metrics.enabled:
        return

    for source, amount in xp_awards.items():
        if amount:
            metrics.xp_awarded_total.labels(source=source).inc(amount)
    if leveled_up:
        metrics.level_ups_total.inc()


@contextmanager
def track_ai_request(feature: str):
    """Track AI request count and latency"""
    if not metrics.enabled:
        yield
        return

    start_time = time.time()
    status = "error"

    try:
        yield
        status = "success"
    finally:
        duration = time.time() - start_time
        metrics.ai_request_duration_seconds.labels(feature=feature).observe(duration)
        metrics.ai_requests_total.labels(feature=feature, status=status).inc()


def track_ai_tokens(input_tokens: int, output_tokens: int) -> None:
    """Track AI token usage"""
    if not metrics.enabled:
        return

    metrics.ai_tokens_used.labels(token_type="input").inc(input_tokens)
    metrics.ai_tokens_used.labels(token_type="output").inc(output_tokens)
