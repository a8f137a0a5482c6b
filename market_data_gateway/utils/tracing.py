"""Trace ID helpers for correlating log lines of one client connection or request.

Every WebSocket client connection and every HTTP request gets its own trace ID.
The ID lives in a context variable, so it follows the asyncio task that serves
the connection and is merged into every structlog event emitted from it.
"""

import contextvars
import uuid
from typing import Optional

import structlog

_trace_id_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "trace_id", default=None
)


def generate_trace_id() -> str:
    """Generate a new unique trace ID."""
    return str(uuid.uuid4())


def set_trace_id(trace_id: Optional[str]) -> None:
    """Set trace ID in the current async context and bind it for logging.

    Args:
        trace_id: Trace ID to set, or None to clear it.
    """
    _trace_id_context.set(trace_id)
    if trace_id:
        structlog.contextvars.bind_contextvars(trace_id=trace_id)
    else:
        structlog.contextvars.unbind_contextvars("trace_id")


def get_trace_id() -> Optional[str]:
    """Get current trace ID from the async context."""
    return _trace_id_context.get(None)


def bind_connection_context(connection_id: str, user_id: Optional[str] = None) -> str:
    """Start a fresh trace for a client connection.

    Binds ``connection_id`` (and ``user_id`` once known) so that every log event
    emitted while serving the socket carries them.

    Returns:
        The trace ID generated for the connection.
    """
    trace_id = generate_trace_id()
    set_trace_id(trace_id)
    structlog.contextvars.bind_contextvars(connection_id=connection_id)
    if user_id:
        structlog.contextvars.bind_contextvars(user_id=user_id)
    return trace_id


def clear_trace_id() -> None:
    """Clear trace ID and any bound connection context."""
    _trace_id_context.set(None)
    structlog.contextvars.clear_contextvars()
