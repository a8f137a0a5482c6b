"""One upstream exchange connection per (exchange account, symbol)."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional

from ...config.logging import get_logger
from ...exceptions import AdapterEstablishmentError
from ...models.subscription import ConnectionKey
from ...models.upstream_connection import UpstreamConnection
from ..exchange.factory import AdapterFactory
from .broadcaster import Broadcaster
from .streams import STREAM_SETTERS, StreamSetter

logger = get_logger(__name__)


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ConnectionMultiplexer:
    """Owns every upstream connection and the adapter behind it.

    Establishment, channel wiring and teardown for a key run under that key's
    lock, so concurrent subscribers wait for the in-flight establishment
    instead of opening a second upstream connection.
    """

    def __init__(
        self,
        adapter_factory: AdapterFactory,
        broadcaster: Broadcaster,
        stream_setters: Optional[Mapping[str, StreamSetter]] = None,
    ):
        self._adapter_factory = adapter_factory
        self._broadcaster = broadcaster
        self._stream_setters = dict(stream_setters or STREAM_SETTERS)
        self._connections: Dict[ConnectionKey, UpstreamConnection] = {}
        self._locks: Dict[ConnectionKey, _KeyLock] = {}
        self.establishment_count = 0
        self.teardown_count = 0
        self._closing = False

    @asynccontextmanager
    async def _locked(self, key: ConnectionKey) -> AsyncIterator[None]:
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def open(self) -> None:
        """Accept new establishments again after :meth:`close_all`."""
        self._closing = False

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def get(self, key: ConnectionKey) -> Optional[UpstreamConnection]:
        return self._connections.get(key)

    def keys(self) -> List[ConnectionKey]:
        return list(self._connections)

    def describe(self) -> List[dict]:
        return [upstream.describe() for upstream in self._connections.values()]

    async def ensure_connection(self, key: ConnectionKey, channels: Iterable[str]) -> UpstreamConnection:
        """
        Make sure an upstream connection for ``key`` carries ``channels``.

        Opens the connection if none exists, otherwise wires only the channels
        not yet wired.

        Raises:
            AdapterEstablishmentError: If the adapter cannot be acquired or a
                channel cannot be wired
        """
        requested = set(channels)
        self._raise_if_closing(key)
        async with self._locked(key):
            self._raise_if_closing(key)
            upstream = self._connections.get(key)
            if upstream is None:
                upstream = await self._establish(key, requested)
                if self._closing:
                    # Shutdown began while the adapter was being set up
                    await self._close_upstream(upstream)
                    self._raise_if_closing(key)
                self._connections[key] = upstream
                self.establishment_count += 1
                logger.info(
                    "upstream_connection_established",
                    key=str(key),
                    channels=sorted(upstream.channels),
                    live_connections=len(self._connections),
                )
                return upstream

            missing = requested - upstream.channels
            if missing:
                await self._wire(upstream, missing)
                logger.info(
                    "upstream_connection_channels_added",
                    key=str(key),
                    added=sorted(missing),
                    channels=sorted(upstream.channels),
                )
            return upstream

    async def teardown(self, key: ConnectionKey, should_close: Optional[Callable[[], bool]] = None) -> bool:
        """
        Close the upstream connection for ``key``.

        A missing connection is a no-op. ``should_close`` is re-checked under
        the key lock so a subscriber that arrived meanwhile keeps the stream.

        Returns:
            True if a connection was closed.
        """
        async with self._locked(key):
            upstream = self._connections.get(key)
            if upstream is None:
                return False
            if should_close is not None and not should_close():
                logger.debug("upstream_teardown_skipped_resubscribed", key=str(key))
                return False
            del self._connections[key]
            await self._close_upstream(upstream)
            self.teardown_count += 1
            logger.info(
                "upstream_connection_closed",
                key=str(key),
                live_connections=len(self._connections),
            )
            return True

    async def close_all(self) -> None:
        """Tear down every upstream connection regardless of subscribers.

        New establishments are refused from here on. Keys with an establishment
        in flight are included; their teardown waits for the key lock.
        """
        self._closing = True
        keys = set(self._connections) | set(self._locks)
        await asyncio.gather(*(self.teardown(key) for key in keys))
        logger.info("upstream_connections_all_closed", closed=len(keys))

    def _raise_if_closing(self, key: ConnectionKey) -> None:
        if self._closing:
            logger.info("upstream_establishment_refused_shutting_down", key=str(key))
            raise AdapterEstablishmentError("Market data gateway is shutting down")

    async def _establish(self, key: ConnectionKey, channels: Iterable[str]) -> UpstreamConnection:
        try:
            adapter = await self._adapter_factory.get_adapter(key.exchange_account_id)
        except AdapterEstablishmentError:
            raise
        except Exception as e:
            logger.error(
                "exchange_adapter_acquire_failed",
                key=str(key),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise AdapterEstablishmentError(f"Failed to establish exchange connection: {e}") from e

        upstream = UpstreamConnection(key=key, adapter=adapter)
        try:
            await self._wire(upstream, channels)
        except Exception:
            # Unwind whatever was opened for this attempt
            await self._close_upstream(upstream)
            raise
        return upstream

    async def _wire(self, upstream: UpstreamConnection, channels: Iterable[str]) -> None:
        ordered = sorted(channels)
        unknown = [c for c in ordered if c not in self._stream_setters]
        if unknown:
            raise AdapterEstablishmentError(f"Unsupported channels: {', '.join(unknown)}")

        results = await asyncio.gather(
            *(self._stream_setters[c](upstream.adapter, upstream.key, self._broadcaster) for c in ordered),
            return_exceptions=True,
        )

        failures = []
        for channel, result in zip(ordered, results):
            if isinstance(result, BaseException):
                failures.append((channel, result))
                continue
            upstream.channels.add(channel)
            if isinstance(result, asyncio.Task):
                upstream.candlesticks_task = result

        if failures:
            channel, error = failures[0]
            logger.error(
                "upstream_channel_wiring_failed",
                key=str(upstream.key),
                failed_channels=[c for c, _ in failures],
                error=str(error),
                error_type=type(error).__name__,
            )
            raise AdapterEstablishmentError(
                f"Failed to subscribe to {channel} for {upstream.key.symbol}: {error}"
            ) from error

    async def _close_upstream(self, upstream: UpstreamConnection) -> None:
        task = upstream.candlesticks_task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            upstream.candlesticks_task = None
        try:
            await upstream.adapter.close()
        except Exception as e:
            logger.error(
                "upstream_adapter_close_failed",
                key=str(upstream.key),
                error=str(e),
                error_type=type(e).__name__,
            )
