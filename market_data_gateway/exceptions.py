"""Error handling and exception classes."""

from typing import Optional


class MarketDataGatewayError(Exception):
    """Base exception for the market data gateway."""

    def __init__(self, message: str, trace_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.trace_id = trace_id


class ConfigurationError(MarketDataGatewayError):
    """Raised when configuration is invalid or missing."""

    pass


class DatabaseError(MarketDataGatewayError):
    """Raised when database operations fail."""

    pass


class AuthenticationError(MarketDataGatewayError):
    """Raised when a client identity cannot be resolved at connection time."""

    pass


class AuthorizationError(MarketDataGatewayError):
    """Raised when a client does not own the requested exchange account."""

    pass


class AdapterEstablishmentError(MarketDataGatewayError):
    """Raised when an upstream exchange connection cannot be established."""

    pass


class ValidationError(MarketDataGatewayError):
    """Raised when a client request is malformed."""

    pass


class TransientStreamError(MarketDataGatewayError):
    """Raised by a single stream cycle (e.g. one candlestick poll) that may succeed on retry."""

    pass
