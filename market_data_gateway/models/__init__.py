"""Data models."""

from .client_connection import ClientConnectionState, Identity
from .exchange_account import ExchangeAccount, ExchangeCredentials
from .market_data import MarketDataMessage
from .subscription import CHANNELS, Channel, ConnectionKey, Subscription
from .upstream_connection import UpstreamConnection

__all__ = [
    "CHANNELS",
    "Channel",
    "ClientConnectionState",
    "ConnectionKey",
    "ExchangeAccount",
    "ExchangeCredentials",
    "Identity",
    "MarketDataMessage",
    "Subscription",
    "UpstreamConnection",
]
