"""API middleware package."""

from .auth import APIKeyAuthMiddleware
from .logging import RequestLoggingMiddleware

__all__ = ["APIKeyAuthMiddleware", "RequestLoggingMiddleware"]
