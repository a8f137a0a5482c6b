"""Request/response logging middleware with trace IDs."""

from __future__ import annotations

import time
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ...config.logging import get_logger
from ...utils.tracing import clear_trace_id, generate_trace_id, set_trace_id

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each HTTP request and response under a fresh trace ID."""

    async def dispatch(self, request: Request, call_next: Callable):
        trace_id = generate_trace_id()
        set_trace_id(trace_id)

        start_time = time.time()
        logger.debug(
            "http_request_received",
            method=request.method,
            path=request.url.path,
            client_host=str(request.client.host if request.client else "unknown"),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "http_request_error",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.time() - start_time) * 1000, 2),
                exc_info=True,
            )
            clear_trace_id()
            raise

        logger.info(
            "http_request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        clear_trace_id()

        response.headers["X-Trace-Id"] = trace_id
        return response
