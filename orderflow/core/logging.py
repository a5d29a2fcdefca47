"""Observability setup: Pydantic Logfire on top of the standard logging module.

Modules log through `logging.getLogger(__name__)` with structured `extra`
fields; once `configure_logfire()` has run, those records are forwarded to
Logfire (or only to the console when no token is configured).
"""

import logging

import logfire
from fastapi import FastAPI

from orderflow.core.config import settings


logger = logging.getLogger(__name__)


def configure_logfire() -> None:
    """Configure Logfire and route standard logging records through it."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="orderflow",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )
    logging.basicConfig(handlers=[logfire.LogfireLoggingHandler()], level=logging.INFO)
    logger.info("Logfire configured", extra={"environment": settings.environment})


def instrument_fastapi(app: FastAPI) -> None:
    logfire.instrument_fastapi(app)
    logger.info("FastAPI request tracing enabled")


def span(name: str, **attributes: object) -> logfire.LogfireSpan:
    """Open a Logfire span around an engine or dispatcher operation.

    Usage:
        with span("assignment_engine.offer", work_item_id=work_item_id):
            ...
    """
    return logfire.span(name, **attributes)
