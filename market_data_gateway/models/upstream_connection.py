"""Live upstream link to an exchange adapter for one connection key."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from .subscription import ConnectionKey

if TYPE_CHECKING:
    from ..services.exchange.adapter import ExchangeAdapter


@dataclass
class UpstreamConnection:
    """Owned exclusively by the connection multiplexer."""

    key: ConnectionKey
    adapter: "ExchangeAdapter"
    channels: Set[str] = field(default_factory=set)
    established_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    candlesticks_task: Optional[asyncio.Task] = None

    def describe(self) -> Dict[str, Any]:
        return {
            "exchange_account_id": self.key.exchange_account_id,
            "symbol": self.key.symbol,
            "channels": sorted(self.channels),
            "established_at": self.established_at.isoformat(),
            "candlesticks_polling": self.candlesticks_task is not None
            and not self.candlesticks_task.done(),
        }
