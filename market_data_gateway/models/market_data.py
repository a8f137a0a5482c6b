"""Normalized market data message pushed to subscribed clients."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict

from .subscription import Channel, ConnectionKey


def now_ms() -> int:
    """Milliseconds since epoch."""
    return int(time.time() * 1000)


@dataclass
class MarketDataMessage:
    """Represents one normalized update for a connection key and channel.

    ``timestamp`` is taken when the gateway normalizes the adapter payload,
    not when the exchange produced it. ``data`` is forwarded as received.
    """

    type: Channel
    symbol: str
    exchange_account_id: str
    data: Any
    timestamp: int

    @classmethod
    def create(cls, channel: Channel, key: ConnectionKey, data: Any) -> "MarketDataMessage":
        return cls(
            type=channel,
            symbol=key.symbol,
            exchange_account_id=key.exchange_account_id,
            data=data,
            timestamp=now_ms(),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Render the ``market-data`` event payload."""
        return {
            "type": self.type,
            "symbol": self.symbol,
            "exchangeAccountId": self.exchange_account_id,
            "data": self.data,
            "timestamp": self.timestamp,
        }
