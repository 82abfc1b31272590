"""
Structured Logging

Every multi-step ledger operation (split, settle, pay EMI) logs each step
and each compensation under one correlation ID, so a partially applied
operation can be traced from the logs alone.

The logger:
- Renders JSON lines through the standard library logging machinery
- Never raises from a log call
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output to stderr at the given level."""
    logging.basicConfig(format="%(message)s", level=level.upper())


def get_logger(name: str, correlation_id: Optional[UUID] = None):
    """
    Get a bound logger for a component.

    If a correlation ID is given it is attached to every event
    the returned logger emits.
    """
    logger = structlog.get_logger(name)
    if correlation_id is not None:
        logger = logger.bind(correlation_id=str(correlation_id))
    return logger


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step operation (e.g., settling a debt).
    Pass it through all subsequent steps.
    """
    return uuid4()
