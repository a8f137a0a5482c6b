"""Subscription model for client market data interest."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, Literal, NamedTuple
from uuid import UUID, uuid4


Channel = Literal["ticker", "orderbook", "trades", "candlesticks"]

CHANNELS: FrozenSet[str] = frozenset({"ticker", "orderbook", "trades", "candlesticks"})


class ConnectionKey(NamedTuple):
    """Identifies one upstream data stream shared by every interested client."""

    exchange_account_id: str
    symbol: str

    def __str__(self) -> str:
        return f"{self.exchange_account_id}-{self.symbol}"


@dataclass(frozen=True)
class Subscription:
    """One client's registered interest in a connection key's channels.

    Subscriptions are never mutated: a channel change is an unsubscribe
    followed by a new subscription. Identical subscriptions are not merged.
    """

    user_id: str
    exchange_account_id: str
    symbol: str
    channels: FrozenSet[str]
    connection_id: str
    subscription_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> ConnectionKey:
        return ConnectionKey(self.exchange_account_id, self.symbol)

    def wants(self, channel: str) -> bool:
        return channel in self.channels

    @classmethod
    def create(
        cls,
        user_id: str,
        exchange_account_id: str,
        symbol: str,
        channels: Iterable[str],
        connection_id: str,
    ) -> "Subscription":
        """Factory for a new subscription instance."""
        return cls(
            user_id=user_id,
            exchange_account_id=exchange_account_id,
            symbol=symbol,
            channels=frozenset(channels),
            connection_id=connection_id,
        )
