"""Exchange account ownership checks for subscribe requests."""

from __future__ import annotations

from typing import Optional, Protocol

from ...config.logging import get_logger
from ...exceptions import AuthorizationError
from ...models.client_connection import Identity
from ...models.exchange_account import ExchangeAccount
from ..database.exchange_account_repository import ExchangeAccountRepository

logger = get_logger(__name__)


class ExchangeAccountLookup(Protocol):
    async def find_exchange_account(self, account_id: str, user_id: str) -> Optional[ExchangeAccount]:
        ...


class AuthorizationGate:
    """Allows a subscription only for exchange accounts the identity owns."""

    def __init__(self, account_lookup: Optional[ExchangeAccountLookup] = None):
        self._account_lookup = account_lookup or ExchangeAccountRepository

    async def authorize(self, identity: Identity, exchange_account_id: str) -> bool:
        account = await self._account_lookup.find_exchange_account(exchange_account_id, identity.id)
        return account is not None and account.user_id == identity.id

    async def require(self, identity: Identity, exchange_account_id: str) -> None:
        """
        Raises:
            AuthorizationError: If the account is missing or owned by someone else
        """
        if not await self.authorize(identity, exchange_account_id):
            logger.warning(
                "market_data_authorization_denied",
                user_id=identity.id,
                exchange_account_id=exchange_account_id,
            )
            raise AuthorizationError("Exchange account not found or access denied")
