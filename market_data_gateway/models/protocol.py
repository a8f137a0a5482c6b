"""Client <-> gateway WebSocket protocol models.

Frames in both directions are JSON objects ``{"event": <name>, "data": {...}}``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


ChannelType = Literal["ticker", "orderbook", "trades", "candlesticks"]

# Client -> server
SUBSCRIBE_EVENT = "subscribe-market-data"
UNSUBSCRIBE_EVENT = "unsubscribe-market-data"

# Server -> client
CONNECTED_EVENT = "connected"
SUBSCRIBED_EVENT = "subscribed"
UNSUBSCRIBED_EVENT = "unsubscribed"
MARKET_DATA_EVENT = "market-data"
ERROR_EVENT = "error"


class ClientEnvelope(BaseModel):
    """Frame sent by a client."""

    event: str = Field(..., min_length=1, description="Client event name")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event payload")


class SubscribeMarketDataRequest(BaseModel):
    """Payload of ``subscribe-market-data``."""

    model_config = ConfigDict(populate_by_name=True)

    exchange_account_id: str = Field(..., alias="exchangeAccountId", min_length=1)
    symbol: str = Field(..., min_length=1, description="Trading pair symbol, e.g. 'BTCUSDT'")
    channels: List[ChannelType] = Field(..., min_length=1, description="Channels to receive")

    @field_validator("channels")
    @classmethod
    def _dedupe_channels(cls, channels: List[str]) -> List[str]:
        return list(dict.fromkeys(channels))


class UnsubscribeMarketDataRequest(BaseModel):
    """Payload of ``unsubscribe-market-data``; omitted channels means all of them."""

    model_config = ConfigDict(populate_by_name=True)

    exchange_account_id: str = Field(..., alias="exchangeAccountId", min_length=1)
    symbol: str = Field(..., min_length=1)
    channels: Optional[List[ChannelType]] = Field(default=None)
