"""
Pytest configuration and fixtures.

Collaborators of the gateway (session lookup, account ownership, exchange
adapters) are replaced by in-memory fakes.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

import pytest
from starlette.websockets import WebSocketState

from market_data_gateway.exceptions import AuthenticationError
from market_data_gateway.models.client_connection import Identity
from market_data_gateway.models.exchange_account import ExchangeAccount
from market_data_gateway.services.auth.authorization import AuthorizationGate
from market_data_gateway.services.exchange.adapter import ExchangeAdapter
from market_data_gateway.services.market_data.gateway import MarketDataGateway


class FakeAdapter(ExchangeAdapter):
    """Records push callbacks so tests can emit exchange updates."""

    def __init__(self, fail_channels=(), candles: Any = None):
        super().__init__(credentials=None)
        self.fail_channels = set(fail_channels)
        self.candles = candles if candles is not None else [{"open": "100", "close": "101"}]
        self.candle_errors: List[Exception] = []
        self.candle_requests: List[tuple] = []
        self.candle_gate: Optional[asyncio.Event] = None
        self.callbacks: Dict[str, Callable[[Any], None]] = {}
        self.close_count = 0

    async def _register(self, channel: str, callback: Callable[[Any], None]) -> None:
        if channel in self.fail_channels:
            raise RuntimeError(f"{channel} stream unavailable")
        self.callbacks[channel] = callback

    async def subscribe_ticker(self, symbol, callback):
        await self._register("ticker", callback)

    async def subscribe_order_book(self, symbol, callback):
        await self._register("orderbook", callback)

    async def subscribe_trades(self, symbol, callback):
        await self._register("trades", callback)

    async def get_candlesticks(self, symbol, interval, limit):
        self.candle_requests.append((symbol, interval, limit))
        if self.candle_gate is not None:
            await self.candle_gate.wait()
        if self.candle_errors:
            raise self.candle_errors.pop(0)
        return self.candles

    async def close(self):
        self.close_count += 1

    def emit(self, channel: str, data: Any) -> None:
        self.callbacks[channel](data)


class FakeAdapterFactory:
    """Counts establishments; ``delay`` widens the window for concurrent subscribers."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls = 0
        self.error: Optional[Exception] = None
        self.fail_channels: set = set()
        self.adapters: List[FakeAdapter] = []

    async def get_adapter(self, exchange_account_id: str) -> FakeAdapter:
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        adapter = FakeAdapter(fail_channels=self.fail_channels)
        self.adapters.append(adapter)
        return adapter

    @property
    def last(self) -> FakeAdapter:
        return self.adapters[-1]


class FakeAccountLookup:
    def __init__(self, owners: Dict[str, str]):
        self.owners = owners

    async def find_exchange_account(self, account_id: str, user_id: str) -> Optional[ExchangeAccount]:
        owner = self.owners.get(account_id)
        if owner is None or owner != user_id:
            return None
        return ExchangeAccount(id=account_id, user_id=owner, exchange_name="binance")


class HeaderIdentityResolver:
    """Takes the user id from the ``x-test-user`` handshake header."""

    async def resolve(self, websocket) -> Identity:
        user_id = websocket.headers.get("x-test-user")
        if not user_id:
            raise AuthenticationError("Authentication required")
        return Identity(id=user_id, role="USER")


class FakeWebSocket:
    """Minimal stand-in for a Starlette WebSocket."""

    def __init__(self, headers: Optional[Dict[str, str]] = None):
        self.headers = headers or {}
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent: List[dict] = []
        self.close_code: Optional[int] = None

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data):
        if self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("Cannot send once the socket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.close_code = code
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def drop(self):
        """Simulate the peer going away without a close handshake."""
        self.client_state = WebSocketState.DISCONNECTED

    def events(self, name: str) -> List[dict]:
        return [frame["data"] for frame in self.sent if frame["event"] == name]


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll ``predicate`` from a test thread until it holds or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


OWNERS = {"acc1": "user-a", "acc2": "user-c", "acc-other": "user-z"}


@pytest.fixture
def adapter_factory():
    return FakeAdapterFactory()


@pytest.fixture
def account_lookup():
    return FakeAccountLookup(dict(OWNERS))


@pytest.fixture
def identity_resolver():
    return HeaderIdentityResolver()


@pytest.fixture
def gateway(adapter_factory, account_lookup, identity_resolver):
    """Gateway wired to fakes; tests start it on their own loop."""
    return MarketDataGateway(
        identity_resolver=identity_resolver,
        authorization_gate=AuthorizationGate(account_lookup),
        adapter_factory=adapter_factory,
    )


@pytest.fixture
def make_websocket():
    def factory(user_id: Optional[str] = None, **headers: str) -> FakeWebSocket:
        if user_id:
            headers["x-test-user"] = user_id
        return FakeWebSocket(headers=headers)

    return factory


@pytest.fixture
def waiter():
    return wait_for
