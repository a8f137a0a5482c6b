"""Resolve the identity of a connecting browser client from its session."""

from __future__ import annotations

from typing import Optional, Protocol

import httpx
from starlette.websockets import WebSocket

from ...config.logging import get_logger
from ...config.settings import settings
from ...exceptions import AuthenticationError
from ...models.client_connection import Identity

logger = get_logger(__name__)


class IdentityResolver(Protocol):
    async def resolve(self, websocket: WebSocket) -> Identity:
        """Return the identity behind the connection or raise AuthenticationError."""
        ...


class SessionIdentityResolver:
    """Asks the web application who owns the session cookie of the handshake.

    The session endpoint answers ``{"user": {"id": ..., "role": ...}}`` for a
    logged-in user and an empty object otherwise.
    """

    def __init__(
        self,
        session_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_url = session_url or settings.session_url
        self.timeout = timeout if timeout is not None else settings.session_timeout_seconds
        self._transport = transport

    async def resolve(self, websocket: WebSocket) -> Identity:
        cookie = websocket.headers.get("cookie")
        if not cookie:
            raise AuthenticationError("Authentication required")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.session_url, headers={"Cookie": cookie})
                response.raise_for_status()
                session = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "session_lookup_rejected",
                status_code=e.response.status_code,
                session_url=self.session_url,
            )
            raise AuthenticationError("Authentication failed") from e
        except httpx.TimeoutException as e:
            logger.warning("session_lookup_timeout", timeout=self.timeout, session_url=self.session_url)
            raise AuthenticationError("Authentication failed") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "session_lookup_failed",
                error=str(e),
                error_type=type(e).__name__,
                session_url=self.session_url,
            )
            raise AuthenticationError("Authentication failed") from e

        user = (session or {}).get("user") or {}
        if not user.get("id"):
            raise AuthenticationError("Authentication required")
        return Identity(id=str(user["id"]), role=user.get("role"))
