# Standard library imports
import logging

# Third-party imports
import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

# Local application imports
from civicsync.settings import settings


def _setup_sentry_logging() -> None:
    """
    Sets up the Sentry logging integration when running in production with a DSN.

    Warnings (rollbacks, channel drops) become breadcrumbs; errors such as a
    resync that exhausted its retries are sent as events.
    """
    if settings.ENVIRONMENT == "production" and settings.SENTRY_DSN:
        sentry_logging = LoggingIntegration(
            level=logging.WARNING,  # Capture warnings and above as breadcrumbs
            event_level=logging.ERROR,  # Send errors as events
        )

        if not sentry_sdk.is_initialized():
            sentry_sdk.init(
                dsn=settings.SENTRY_DSN,
                integrations=[sentry_logging],
                environment=settings.ENVIRONMENT,
                traces_sample_rate=1.0,
            )


# Call setup once at module import time
_setup_sentry_logging()
