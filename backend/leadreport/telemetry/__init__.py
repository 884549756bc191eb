"""
Telemetry Module
================

Error tracking for the reporting API (Sentry).

Usage:
    from leadreport.telemetry import init_sentry

    init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)
"""

from leadreport.telemetry.sentry import capture_exception, init_sentry

__all__ = [
    "init_sentry",
    "capture_exception",
]
