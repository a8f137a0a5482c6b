"""Structured logging infrastructure with structlog."""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor

from ..exceptions import ConfigurationError
from .settings import settings


def add_service_name(logger: object, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every event with the service identifier."""
    event_dict.setdefault("service", settings.market_data_gateway_service_name)
    return event_dict


def _log_level() -> int:
    level = logging.getLevelName(settings.market_data_gateway_log_level.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Invalid log level: {settings.market_data_gateway_log_level}")
    return level


def setup_logging() -> None:
    """Configure structured logging with structlog."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=_log_level(),
    )

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if settings.market_data_gateway_log_level.upper() == "DEBUG"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # trace_id, connection_id, user_id
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_service_name,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_log_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
