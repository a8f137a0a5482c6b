"""Database operations for exchange accounts."""

from __future__ import annotations

from typing import Optional

import asyncpg

from ...config.logging import get_logger
from ...models.exchange_account import ExchangeAccount, ExchangeCredentials
from .connection import DatabaseConnection

logger = get_logger(__name__)

# Tables are owned by the web application; names follow its schema.
_ACCOUNT_COLUMNS = """
    a.id, a."userId" AS user_id, e.name AS exchange_name,
    a."apiKey" AS api_key, a."apiSecret" AS api_secret, a.passphrase
"""


def _to_account(row: asyncpg.Record, include_credentials: bool) -> ExchangeAccount:
    credentials = None
    if include_credentials:
        credentials = ExchangeCredentials(
            api_key=row["api_key"],
            api_secret=row["api_secret"],
            passphrase=row["passphrase"],
        )
    return ExchangeAccount(
        id=row["id"],
        user_id=row["user_id"],
        exchange_name=row["exchange_name"],
        credentials=credentials,
    )


class ExchangeAccountRepository:
    """Read-only access to the ``ExchangeAccount`` table."""

    @staticmethod
    async def find_exchange_account(account_id: str, user_id: str) -> Optional[ExchangeAccount]:
        """Return the account only if it is owned by ``user_id``."""
        query = f"""
            SELECT {_ACCOUNT_COLUMNS}
            FROM "ExchangeAccount" a
            JOIN "Exchange" e ON e.id = a."exchangeId"
            WHERE a.id = $1 AND a."userId" = $2
            LIMIT 1
        """
        row = await DatabaseConnection.fetchrow(query, account_id, user_id)
        if not row:
            logger.debug("exchange_account_not_found", account_id=account_id, user_id=user_id)
            return None
        return _to_account(row, include_credentials=False)

    @staticmethod
    async def get_exchange_account(account_id: str) -> Optional[ExchangeAccount]:
        """Return the account with credentials, regardless of owner."""
        query = f"""
            SELECT {_ACCOUNT_COLUMNS}
            FROM "ExchangeAccount" a
            JOIN "Exchange" e ON e.id = a."exchangeId"
            WHERE a.id = $1
            LIMIT 1
        """
        row = await DatabaseConnection.fetchrow(query, account_id)
        if not row:
            return None
        return _to_account(row, include_credentials=True)
