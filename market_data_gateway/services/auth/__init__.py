"""Client authentication and exchange account authorization."""

from .authorization import AuthorizationGate, ExchangeAccountLookup
from .identity import IdentityResolver, SessionIdentityResolver

__all__ = [
    "AuthorizationGate",
    "ExchangeAccountLookup",
    "IdentityResolver",
    "SessionIdentityResolver",
]
