"""
Sentry Error Tracking
=====================

Error tracking for the reporting API.

Store failures are not retried by the reporting core; they reach the API
layer as 500s and are reported here when a DSN is configured.

Related files:
- leadreport/main.py: Initializes Sentry on app startup and reports unhandled errors

Environment Variables:
- SENTRY_DSN: Sentry project DSN (required for Sentry to work)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)


def init_sentry(dsn: Optional[str] = None, environment: Optional[str] = None) -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Returns:
        True if Sentry was initialized, False when no DSN is configured or
        initialization failed.

    Example:
        settings = get_settings()
        init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)
    """
    dsn = dsn or os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    environment = environment or os.environ.get("ENVIRONMENT", "development")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,        # INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,  # Identity profiles are PII
            release=os.environ.get("RELEASE_VERSION"),
        )
    except Exception as e:
        logger.error(f"[SENTRY] Failed to initialize: {e}")
        return False

    logger.debug(f"[SENTRY] Initialized for {environment} environment")
    return True


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Report an exception with optional extra context.

    Without an initialized client, sentry_sdk drops the event.

    Example:
        capture_exception(exc, extra={"path": request.url.path})
    """
    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
