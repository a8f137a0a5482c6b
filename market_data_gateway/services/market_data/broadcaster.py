"""Fan-out of normalized market data messages to subscribed client connections."""

from __future__ import annotations

import asyncio
from typing import Optional, Tuple

from ...config.logging import get_logger
from ...models.market_data import MarketDataMessage
from ...models.protocol import MARKET_DATA_EVENT
from ...models.subscription import ConnectionKey
from .client_connections import ClientConnectionRegistry
from .registry import SubscriptionRegistry

logger = get_logger(__name__)

_QueueItem = Tuple[ConnectionKey, str, MarketDataMessage]


class Broadcaster:
    """Delivers messages to every subscription of a key that wants the channel.

    Adapter callbacks and pollers call :meth:`publish`, which only enqueues.
    A single consumer task drains the queue in FIFO order, so messages of one
    key and channel reach clients in the order they were produced. The queue
    is unbounded; a slow client relies on the transport's own buffering.
    """

    def __init__(self, registry: SubscriptionRegistry, client_connections: ClientConnectionRegistry):
        self._registry = registry
        self._client_connections = client_connections
        self._queue: "asyncio.Queue[_QueueItem]" = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self.delivered_count = 0

    @property
    def is_running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the consumer task on the running loop."""
        if self.is_running:
            logger.warning("broadcaster_already_running")
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._consumer_task = asyncio.create_task(self._consume())
        logger.info("broadcaster_started")

    async def stop(self) -> None:
        """Stop the consumer task; undelivered messages are dropped."""
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        self._loop = None
        logger.info("broadcaster_stopped", dropped_messages=dropped)

    def publish(self, key: ConnectionKey, channel: str, message: MarketDataMessage) -> None:
        """Enqueue a message for delivery. Safe to call from any thread."""
        item = (key, channel, message)
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("broadcaster_not_running_message_dropped", key=str(key), channel=channel)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._queue.put_nowait(item)
        else:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)

    async def join(self) -> None:
        """Wait until every queued message has been delivered."""
        await self._queue.join()

    async def broadcast(self, key: ConnectionKey, channel: str, message: MarketDataMessage) -> int:
        """Push ``message`` to each live subscriber of ``key`` that wants ``channel``.

        Returns:
            Number of client connections the message was sent to.
        """
        delivered = 0
        payload = message.to_payload()
        for subscription in self._registry.get(key):
            if not subscription.wants(channel):
                continue
            connection = self._client_connections.get_live(subscription.connection_id)
            if connection is None:
                # Disconnect cleanup will remove the subscription
                continue
            try:
                await connection.send_event(MARKET_DATA_EVENT, payload)
            except Exception as e:
                logger.debug(
                    "market_data_send_skipped",
                    key=str(key),
                    channel=channel,
                    connection_id=subscription.connection_id,
                    error_type=type(e).__name__,
                )
                continue
            delivered += 1
        self.delivered_count += delivered
        return delivered

    async def _consume(self) -> None:
        while True:
            key, channel, message = await self._queue.get()
            try:
                await self.broadcast(key, channel, message)
            except Exception as e:
                logger.error(
                    "broadcast_failed",
                    key=str(key),
                    channel=channel,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            finally:
                self._queue.task_done()
