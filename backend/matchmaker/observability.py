"""Logging setup and Logfire cloud observability."""

import logging
from typing import Any

import logfire

from matchmaker import __version__
from matchmaker.config import Settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(debug: bool = False) -> None:
    """Configure stdlib logging for CLI and server processes."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def initialize_logfire(settings: Settings, app: Any | None = None) -> None:
    """
    Initialize Logfire and bridge Python logging into it.

    Call once at startup, before the scheduler starts. Without a token this
    only logs a warning; observability never stops the matchmaker.

    Args:
        settings: Application settings containing the Logfire token
        app: Optional FastAPI app to instrument
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="matchmaker",
            service_version=__version__,
        )

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        if app is not None:
            logfire.instrument_fastapi(app)

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
