"""Optional Sentry error reporting

Sentry is active only when ENABLE_SENTRY is true and SENTRY_DSN is set;
otherwise every helper here is a no-op, so callers never check first.
"""
import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from habitforge.config import ENABLE_SENTRY, SENTRY_DSN, SENTRY_ENVIRONMENT, SENTRY_TRACES_SAMPLE_RATE

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry() -> bool:
    """Start the SDK once; returns whether events will be sent"""
    global _initialized

    if _initialized:
        return True
    if not ENABLE_SENTRY:
        logger.info("Sentry disabled (ENABLE_SENTRY=false)")
        return False
    if not SENTRY_DSN:
        logger.warning("ENABLE_SENTRY is set but SENTRY_DSN is empty, not reporting errors")
        return False

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            # Breadcrumbs from INFO, events from ERROR
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
    )
    _initialized = True
    logger.info(f"Sentry reporting to environment '{SENTRY_ENVIRONMENT}'")
    return True


def set_user_context(user_id: str) -> None:
    """Tag events from this request with the HabitForge user id (no email/name)"""
    if _initialized:
        sentry_sdk.set_user({"id": user_id})


def capture_exception(exception: BaseException, **tags: Any) -> None:
    """Report an exception with extra tags (request_id, operation, path...)"""
    if not _initialized:
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in tags.items():
            if value is not None:
                scope.set_tag(key, str(value))
        sentry_sdk.capture_exception(exception)
