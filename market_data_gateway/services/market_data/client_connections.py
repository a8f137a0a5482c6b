"""Browser client connections and the handle -> connection map used for delivery."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from ...config.logging import get_logger
from ...models.client_connection import ClientConnectionState, Identity

logger = get_logger(__name__)


class ClientConnection:
    """One browser WebSocket connection served by the gateway."""

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None):
        self.connection_id = connection_id or str(uuid4())
        self.websocket = websocket
        self.identity: Optional[Identity] = None
        self.state = ClientConnectionState.CONNECTING
        self.connected_at = datetime.now(timezone.utc)
        self.trace_id: Optional[str] = None
        self._send_lock = asyncio.Lock()

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None

    @property
    def is_authenticated(self) -> bool:
        return self.state == ClientConnectionState.AUTHENTICATED

    @property
    def is_live(self) -> bool:
        """Authenticated and the socket is still open in both directions."""
        return (
            self.is_authenticated
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def authenticate(self, identity: Identity) -> None:
        self.identity = identity
        self.state = ClientConnectionState.AUTHENTICATED

    def mark_disconnected(self) -> None:
        self.state = ClientConnectionState.DISCONNECTED

    async def send_event(self, event: str, data: Dict[str, Any]) -> None:
        """Send one ``{"event", "data"}`` frame; concurrent senders are serialized."""
        async with self._send_lock:
            await self.websocket.send_json({"event": event, "data": data})

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except (RuntimeError, WebSocketDisconnect):
            # Socket already closed by the peer
            pass


class ClientConnectionRegistry:
    """Maps connection handles to live client connections."""

    def __init__(self) -> None:
        self._connections: Dict[str, ClientConnection] = {}

    def register(self, connection: ClientConnection) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> Optional[ClientConnection]:
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[ClientConnection]:
        return self._connections.get(connection_id)

    def get_live(self, connection_id: str) -> Optional[ClientConnection]:
        """Return the connection only if it can still receive frames."""
        connection = self._connections.get(connection_id)
        if connection is None or not connection.is_live:
            return None
        return connection

    def all(self) -> List[ClientConnection]:
        return list(self._connections.values())

    def clear(self) -> None:
        self._connections.clear()

    def __len__(self) -> int:
        return len(self._connections)
