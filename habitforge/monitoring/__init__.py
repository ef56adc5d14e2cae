"""Monitoring infrastructure for HabitForge"""
from habitforge.monitoring.sentry_config import init_sentry, capture_exception, set_user_context
from habitforge.monitoring.prometheus_metrics import (
    metrics,
    record_request,
    record_completion,
    record_xp,
    track_ai_request,
    track_ai_tokens,
)

__all__ = [
    "init_sentry",
    "capture_exception",
    "set_user_context",
    "metrics",
    "record_request",
    "record_completion",
    "record_xp",
    "track_ai_request",
    "track_ai_tokens",
]
