"""Client connection lifecycle: authenticate, subscribe, unsubscribe, disconnect, shutdown."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError
from starlette.websockets import WebSocket

from ...config.logging import get_logger
from ...config.settings import settings
from ...exceptions import AuthenticationError, MarketDataGatewayError, ValidationError
from ...models.protocol import (
    CONNECTED_EVENT,
    ERROR_EVENT,
    SUBSCRIBE_EVENT,
    SUBSCRIBED_EVENT,
    UNSUBSCRIBE_EVENT,
    UNSUBSCRIBED_EVENT,
    ClientEnvelope,
    SubscribeMarketDataRequest,
    UnsubscribeMarketDataRequest,
)
from ...models.subscription import ConnectionKey, Subscription
from ...utils.tracing import bind_connection_context
from ..auth.authorization import AuthorizationGate
from ..auth.identity import IdentityResolver, SessionIdentityResolver
from ..exchange.factory import AdapterFactory, get_adapter_factory
from .broadcaster import Broadcaster
from .client_connections import ClientConnection, ClientConnectionRegistry
from .multiplexer import ConnectionMultiplexer
from .registry import SubscriptionRegistry

logger = get_logger(__name__)

POLICY_VIOLATION = 1008
GOING_AWAY = 1001


def _first_validation_message(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"Invalid request: {location}: {error.get('msg')}" if location else f"Invalid request: {error.get('msg')}"


class MarketDataGateway:
    """Multiplexes client market data subscriptions onto upstream exchange connections."""

    def __init__(
        self,
        identity_resolver: Optional[IdentityResolver] = None,
        authorization_gate: Optional[AuthorizationGate] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        self.registry = SubscriptionRegistry()
        self.client_connections = ClientConnectionRegistry()
        self.broadcaster = Broadcaster(self.registry, self.client_connections)
        self.multiplexer = ConnectionMultiplexer(
            adapter_factory or get_adapter_factory(), self.broadcaster
        )
        self._identity_resolver = identity_resolver or SessionIdentityResolver()
        self._authorization = authorization_gate or AuthorizationGate()

    async def start(self) -> None:
        self.multiplexer.open()
        await self.broadcaster.start()
        logger.info("market_data_gateway_started")

    #
    # Connection lifecycle
    #
    async def connect(self, websocket: WebSocket) -> ClientConnection:
        """
        Authenticate and accept a client socket.

        Raises:
            AuthenticationError: If no identity can be resolved; the socket is
                closed before it is accepted
        """
        connection = ClientConnection(websocket)
        connection.trace_id = bind_connection_context(connection.connection_id)

        try:
            self._check_origin(websocket)
            identity = await self._identity_resolver.resolve(websocket)
        except AuthenticationError as e:
            connection.mark_disconnected()
            logger.warning("client_authentication_failed", error=e.message)
            await websocket.close(code=POLICY_VIOLATION, reason=e.message)
            raise

        await websocket.accept()
        connection.authenticate(identity)
        structlog.contextvars.bind_contextvars(user_id=identity.id)
        self.client_connections.register(connection)
        logger.info(
            "client_connected",
            connection_id=connection.connection_id,
            user_id=identity.id,
            clients=len(self.client_connections),
        )
        await connection.send_event(CONNECTED_EVENT, {"message": "Connected to market data stream"})
        return connection

    async def disconnect(self, connection: ClientConnection) -> None:
        """Drop every subscription of a closed connection and tear down drained keys."""
        if self.client_connections.get(connection.connection_id) is None:
            connection.mark_disconnected()
            return
        connection.mark_disconnected()
        self.client_connections.unregister(connection.connection_id)

        drained = self.registry.remove_all_for_connection(connection.connection_id)
        logger.info(
            "client_disconnected",
            connection_id=connection.connection_id,
            user_id=connection.user_id,
            drained_keys=[str(key) for key in drained],
        )
        if drained:
            await asyncio.gather(*(self._teardown_if_idle(key) for key in drained))

    async def shutdown(self) -> None:
        """Close every upstream connection and client socket, then clear all state."""
        logger.info(
            "market_data_gateway_shutting_down",
            upstream_connections=self.multiplexer.connection_count,
            subscriptions=len(self.registry),
            clients=len(self.client_connections),
        )
        await self.multiplexer.close_all()
        self.registry.clear()

        for connection in self.client_connections.all():
            connection.mark_disconnected()
            await connection.close(code=GOING_AWAY, reason="Server shutting down")
        self.client_connections.clear()

        await self.broadcaster.stop()
        logger.info("market_data_gateway_shutdown_complete")

    #
    # Client requests
    #
    async def handle_message(
        self, connection: ClientConnection, raw: Union[str, bytes, Dict[str, Any], None]
    ) -> None:
        """Dispatch one client frame; every failure becomes an ``error`` event."""
        if not connection.is_authenticated:
            await self._send_error(connection, "Authentication required")
            return

        try:
            payload = raw
            if isinstance(raw, (bytes, bytearray)):
                raise ValidationError("Malformed message: expected text frame")
            if isinstance(raw, str):
                try:
                    payload = json.loads(raw)
                except ValueError:
                    raise ValidationError("Malformed message: expected JSON") from None
            envelope = ClientEnvelope.model_validate(payload)

            if envelope.event == SUBSCRIBE_EVENT:
                await self.subscribe(connection, SubscribeMarketDataRequest.model_validate(envelope.data))
            elif envelope.event == UNSUBSCRIBE_EVENT:
                await self.unsubscribe(connection, UnsubscribeMarketDataRequest.model_validate(envelope.data))
            else:
                raise ValidationError(f"Unknown event: {envelope.event}")
        except PydanticValidationError as e:
            await self._send_error(connection, _first_validation_message(e))
        except MarketDataGatewayError as e:
            await self._send_error(connection, e.message)
        except Exception as e:
            logger.error(
                "client_request_failed",
                connection_id=connection.connection_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            await self._send_error(connection, "Internal server error")

    async def subscribe(self, connection: ClientConnection, request: SubscribeMarketDataRequest) -> Subscription:
        """
        Register a subscription and make sure its upstream connection carries the channels.

        Raises:
            AuthorizationError: If the identity does not own the exchange account
            AdapterEstablishmentError: If the upstream connection cannot be established
        """
        identity = connection.identity
        await self._authorization.require(identity, request.exchange_account_id)

        subscription = Subscription.create(
            user_id=identity.id,
            exchange_account_id=request.exchange_account_id,
            symbol=request.symbol,
            channels=request.channels,
            connection_id=connection.connection_id,
        )
        key = subscription.key
        count = self.registry.add(subscription)

        try:
            await self.multiplexer.ensure_connection(key, subscription.channels)
        except Exception:
            # No partial subscription survives a failed establishment
            if self.registry.remove_subscription(subscription) == 0:
                await self._teardown_if_idle(key)
            raise

        logger.info(
            "market_data_subscription_added",
            key=str(key),
            user_id=identity.id,
            channels=sorted(subscription.channels),
            subscribers=count,
        )
        await connection.send_event(
            SUBSCRIBED_EVENT,
            {
                "exchangeAccountId": request.exchange_account_id,
                "symbol": request.symbol,
                "channels": list(request.channels),
                "message": "Successfully subscribed to market data",
            },
        )
        return subscription

    async def unsubscribe(self, connection: ClientConnection, request: UnsubscribeMarketDataRequest) -> None:
        """Remove this connection's subscriptions for a key, or only some of their channels."""
        key = ConnectionKey(request.exchange_account_id, request.symbol)
        removed = self.registry.get_for_connection(connection.connection_id, key)
        removed = [s for s in removed if s.user_id == connection.user_id]
        remaining = self.registry.remove(connection.user_id, connection.connection_id, key)

        dropped_channels = set(request.channels) if request.channels is not None else None
        if dropped_channels is not None:
            # Subscriptions are immutable: keep leftover channels as new subscriptions
            for subscription in removed:
                kept = subscription.channels - dropped_channels
                if kept:
                    remaining = self.registry.add(
                        Subscription.create(
                            user_id=subscription.user_id,
                            exchange_account_id=subscription.exchange_account_id,
                            symbol=subscription.symbol,
                            channels=kept,
                            connection_id=subscription.connection_id,
                        )
                    )

        if remaining == 0:
            await self._teardown_if_idle(key)

        channels: List[str] = (
            list(request.channels)
            if request.channels is not None
            else sorted({c for s in removed for c in s.channels})
        )
        logger.info(
            "market_data_subscription_removed",
            key=str(key),
            user_id=connection.user_id,
            channels=channels,
            subscribers=remaining,
        )
        await connection.send_event(
            UNSUBSCRIBED_EVENT,
            {
                "exchangeAccountId": request.exchange_account_id,
                "symbol": request.symbol,
                "channels": channels,
                "message": "Successfully unsubscribed from market data",
            },
        )

    #
    # Observability
    #
    def get_active_subscriptions(self) -> List[Subscription]:
        return self.registry.list_all()

    def get_exchange_connection_count(self) -> int:
        return self.multiplexer.connection_count

    @staticmethod
    def _check_origin(websocket: WebSocket) -> None:
        origin = websocket.headers.get("origin")
        allowed = settings.cors_allowed_origins
        if origin and allowed and "*" not in allowed and origin not in allowed:
            raise AuthenticationError(f"Origin not allowed: {origin}")

    async def _teardown_if_idle(self, key: ConnectionKey) -> bool:
        return await self.multiplexer.teardown(key, should_close=lambda: self.registry.count(key) == 0)

    async def _send_error(self, connection: ClientConnection, message: str) -> None:
        logger.info("client_request_rejected", connection_id=connection.connection_id, error=message)
        try:
            await connection.send_event(ERROR_EVENT, {"message": message})
        except Exception as e:
            logger.debug("client_error_send_failed", error_type=type(e).__name__)


# Global gateway instance
_gateway: Optional[MarketDataGateway] = None


def get_gateway() -> MarketDataGateway:
    """Get or create global gateway instance."""
    global _gateway
    if _gateway is None:
        _gateway = MarketDataGateway()
    return _gateway


def set_gateway(gateway: Optional[MarketDataGateway]) -> None:
    """Replace the global gateway instance (used at startup and in tests)."""
    global _gateway
    _gateway = gateway
