"""Capability interface every exchange integration implements for the gateway."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from ...models.exchange_account import ExchangeCredentials

PushCallback = Callable[[Any], None]


class ExchangeAdapter(ABC):
    """Live and polled market data access for one exchange account.

    Push callbacks may be invoked from any thread; the gateway hands them
    straight to a thread-safe queue.
    """

    def __init__(self, credentials: ExchangeCredentials):
        self.credentials = credentials

    async def initialize(self) -> None:
        """Prepare the adapter (open sessions, load markets). Optional."""
        return None

    @abstractmethod
    async def subscribe_ticker(self, symbol: str, callback: PushCallback) -> None:
        ...

    @abstractmethod
    async def subscribe_order_book(self, symbol: str, callback: PushCallback) -> None:
        ...

    @abstractmethod
    async def subscribe_trades(self, symbol: str, callback: PushCallback) -> None:
        """Callback receives either a single trade or a batch, as the exchange sends it."""

    @abstractmethod
    async def get_candlesticks(self, symbol: str, interval: str, limit: int) -> Any:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close every stream opened through this adapter."""
