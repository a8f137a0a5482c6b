"""Builds exchange adapters for exchange accounts."""

from __future__ import annotations

from typing import Awaitable, Callable, Dict, Optional, Protocol, Type

from ...config.logging import get_logger
from ...exceptions import AdapterEstablishmentError
from ...models.exchange_account import ExchangeAccount
from ..database.exchange_account_repository import ExchangeAccountRepository
from .adapter import ExchangeAdapter

logger = get_logger(__name__)


class AdapterFactory(Protocol):
    async def get_adapter(self, exchange_account_id: str) -> ExchangeAdapter:
        ...


class ExchangeAdapterFactory:
    """Creates a fresh, initialized adapter per call.

    Adapters are not cached: each upstream connection owns its adapter and
    closes it on teardown.
    """

    def __init__(
        self,
        account_loader: Optional[Callable[[str], Awaitable[Optional[ExchangeAccount]]]] = None,
    ):
        self._account_loader = account_loader or ExchangeAccountRepository.get_exchange_account
        self._adapter_classes: Dict[str, Type[ExchangeAdapter]] = {}

    def register(self, exchange_name: str, adapter_cls: Type[ExchangeAdapter]) -> None:
        self._adapter_classes[exchange_name.lower()] = adapter_cls
        logger.info("exchange_adapter_registered", exchange=exchange_name.lower())

    @property
    def supported_exchanges(self) -> list:
        return sorted(self._adapter_classes)

    async def get_adapter(self, exchange_account_id: str) -> ExchangeAdapter:
        """
        Build and initialize the adapter for an exchange account.

        Raises:
            AdapterEstablishmentError: If the account is unknown, the exchange is
                unsupported, or adapter initialization fails
        """
        account = await self._account_loader(exchange_account_id)
        if account is None:
            raise AdapterEstablishmentError(f"Exchange account not found: {exchange_account_id}")

        adapter_cls = self._adapter_classes.get(account.exchange_name.lower())
        if adapter_cls is None:
            raise AdapterEstablishmentError(f"Unsupported exchange: {account.exchange_name}")

        adapter = adapter_cls(account.credentials)
        try:
            await adapter.initialize()
        except Exception as e:
            logger.error(
                "exchange_adapter_initialize_failed",
                exchange=account.exchange_name,
                exchange_account_id=exchange_account_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise AdapterEstablishmentError(
                f"Failed to initialize {account.exchange_name} adapter: {e}"
            ) from e

        logger.info(
            "exchange_adapter_created",
            exchange=account.exchange_name,
            exchange_account_id=exchange_account_id,
        )
        return adapter


# Global factory instance; concrete adapters register themselves on it
_adapter_factory: Optional[ExchangeAdapterFactory] = None


def get_adapter_factory() -> ExchangeAdapterFactory:
    """Get or create global adapter factory instance."""
    global _adapter_factory
    if _adapter_factory is None:
        _adapter_factory = ExchangeAdapterFactory()
    return _adapter_factory
