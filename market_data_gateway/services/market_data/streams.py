"""Per-channel strategies bridging adapter callbacks and polling into messages.

Each setter is wired once per connection key and channel. Push channels
register a callback with the adapter; candlesticks are polled because not
every exchange streams them.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from ...config.logging import get_logger
from ...config.settings import settings
from ...exceptions import TransientStreamError
from ...models.market_data import MarketDataMessage
from ...models.subscription import ConnectionKey
from ..exchange.adapter import ExchangeAdapter, PushCallback
from .broadcaster import Broadcaster

logger = get_logger(__name__)

# Returns the poller task for candlesticks, None for push channels
StreamSetter = Callable[[ExchangeAdapter, ConnectionKey, Broadcaster], Awaitable[Optional[asyncio.Task]]]


def _push_callback(channel: str, key: ConnectionKey, broadcaster: Broadcaster) -> PushCallback:
    def on_update(data: Any) -> None:
        broadcaster.publish(key, channel, MarketDataMessage.create(channel, key, data))

    return on_update


async def setup_ticker_stream(
    adapter: ExchangeAdapter, key: ConnectionKey, broadcaster: Broadcaster
) -> None:
    await adapter.subscribe_ticker(key.symbol, _push_callback("ticker", key, broadcaster))


async def setup_orderbook_stream(
    adapter: ExchangeAdapter, key: ConnectionKey, broadcaster: Broadcaster
) -> None:
    await adapter.subscribe_order_book(key.symbol, _push_callback("orderbook", key, broadcaster))


async def setup_trades_stream(
    adapter: ExchangeAdapter, key: ConnectionKey, broadcaster: Broadcaster
) -> None:
    # Batches and single trades are forwarded as the adapter delivers them
    await adapter.subscribe_trades(key.symbol, _push_callback("trades", key, broadcaster))


class CandlestickPoller:
    """Polls candlesticks for one connection key on a fixed interval.

    The first poll runs during setup so subscribers get data immediately.
    A failed poll is logged and the next tick retries; there is no backoff.
    """

    def __init__(
        self,
        adapter: ExchangeAdapter,
        key: ConnectionKey,
        broadcaster: Broadcaster,
        poll_interval_seconds: Optional[float] = None,
        interval: Optional[str] = None,
        limit: Optional[int] = None,
    ):
        self._adapter = adapter
        self._key = key
        self._broadcaster = broadcaster
        self.poll_interval_seconds = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.candlesticks_poll_interval_seconds
        )
        self.interval = interval or settings.candlesticks_interval
        self.limit = limit or settings.candlesticks_limit
        self.consecutive_failures = 0

    async def poll_once(self) -> None:
        """
        Fetch candlesticks and publish them.

        Raises:
            TransientStreamError: If the adapter call fails
        """
        try:
            # Teardown does not abort an in-flight request; its result is dropped
            candlesticks = await asyncio.shield(
                self._adapter.get_candlesticks(self._key.symbol, self.interval, self.limit)
            )
        except Exception as e:
            raise TransientStreamError(
                f"Error polling candlesticks for {self._key.symbol}: {e}"
            ) from e
        self._broadcaster.publish(
            self._key,
            "candlesticks",
            MarketDataMessage.create("candlesticks", self._key, candlesticks),
        )

    async def poll(self) -> None:
        """Run one poll, logging instead of raising on failure."""
        try:
            await self.poll_once()
            self.consecutive_failures = 0
        except TransientStreamError as e:
            self.consecutive_failures += 1
            logger.warning(
                "candlesticks_poll_failed",
                key=str(self._key),
                error=e.message,
                consecutive_failures=self.consecutive_failures,
            )

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_seconds)
            await self.poll()


async def setup_candlesticks_stream(
    adapter: ExchangeAdapter, key: ConnectionKey, broadcaster: Broadcaster
) -> asyncio.Task:
    poller = CandlestickPoller(adapter, key, broadcaster)
    await poller.poll()
    task = asyncio.create_task(poller.run(), name=f"candlesticks:{key}")
    logger.debug(
        "candlesticks_polling_started",
        key=str(key),
        poll_interval_seconds=poller.poll_interval_seconds,
    )
    return task


STREAM_SETTERS: Dict[str, StreamSetter] = {
    "ticker": setup_ticker_stream,
    "orderbook": setup_orderbook_stream,
    "trades": setup_trades_stream,
    "candlesticks": setup_candlesticks_stream,
}
