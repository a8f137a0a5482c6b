"""Exchange account record as stored by the web application."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class ExchangeCredentials:
    """API credentials used to build an exchange adapter."""

    api_key: str
    api_secret: str
    passphrase: Optional[str] = None

    def __repr__(self) -> str:
        return "ExchangeCredentials(api_key=***, api_secret=***)"


@dataclass
class ExchangeAccount:
    """A user's linked account on one exchange."""

    id: str
    user_id: str
    exchange_name: str
    credentials: Optional[ExchangeCredentials] = None
