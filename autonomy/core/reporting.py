"""
reporting.py — Central error reporter (Sentry).

Disabled unless SENTRY_DSN is set; while disabled report_exception()
is a cheap no-op. Loops call it for every unexpected activity failure;
invariant skips (invalid location, too-frequent updates) are not reported.
"""

import logging

import sentry_sdk

from autonomy.core.config import settings

logger = logging.getLogger(__name__)


class _ReporterState:
    enabled: bool = False


reporter = _ReporterState()


def init_error_reporter() -> None:
    if not settings.sentry_dsn:
        logger.info("SENTRY_DSN not set — error reporting disabled")
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"autonomy@{settings.app_version}",
    )
    reporter.enabled = True
    logger.info("Sentry error reporting enabled (env: %s)", settings.environment)


def report_exception(exc: BaseException) -> None:
    if reporter.enabled:
        sentry_sdk.capture_exception(exc)
