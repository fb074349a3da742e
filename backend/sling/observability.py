"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire
from sqlalchemy.ext.asyncio import AsyncEngine

from sling import __version__
from sling.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, engine: AsyncEngine | None = None) -> bool:
    """
    Initialize Logfire and bridge stdlib logging into it.

    Must be called once at startup, before the first ledger operation.

    Instruments:
    - Python logging (root logger gets a LogfireLoggingHandler)
    - SQLAlchemy engine, when one is supplied

    Returns:
        True if Logfire was configured, False if disabled.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="sling-ledger",
            service_version=__version__,
            environment=settings.environment,
        )

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        if engine is not None:
            logfire.instrument_sqlalchemy(engine=engine.sync_engine)

        logger.info("Logfire cloud tracking initialized")
        return True

    except Exception as e:
        # Observability is optional; the ledger keeps running without it
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False
