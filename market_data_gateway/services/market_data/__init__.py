"""Real-time market data distribution: registry, multiplexer, streams, broadcaster."""

from .broadcaster import Broadcaster
from .client_connections import ClientConnection, ClientConnectionRegistry
from .gateway import MarketDataGateway, get_gateway, set_gateway
from .multiplexer import ConnectionMultiplexer
from .registry import SubscriptionRegistry
from .streams import STREAM_SETTERS, CandlestickPoller

__all__ = [
    "Broadcaster",
    "CandlestickPoller",
    "ClientConnection",
    "ClientConnectionRegistry",
    "ConnectionMultiplexer",
    "MarketDataGateway",
    "STREAM_SETTERS",
    "SubscriptionRegistry",
    "get_gateway",
    "set_gateway",
]
