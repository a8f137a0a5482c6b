"""In-memory registry of client subscriptions grouped by connection key."""

from __future__ import annotations

from typing import Dict, List

from ...config.logging import get_logger
from ...models.subscription import ConnectionKey, Subscription

logger = get_logger(__name__)


class SubscriptionRegistry:
    """Maps each connection key to the subscriptions interested in it.

    A key is present exactly while its list is non-empty; the transition to
    empty is what tells the caller to tear the upstream connection down.

    All methods are synchronous and never await, so each call is atomic on
    the event loop.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[ConnectionKey, List[Subscription]] = {}

    def add(self, subscription: Subscription) -> int:
        """Append a subscription and return the resulting count for its key."""
        subscriptions = self._subscriptions.setdefault(subscription.key, [])
        subscriptions.append(subscription)
        return len(subscriptions)

    def remove(self, user_id: str, connection_id: str, key: ConnectionKey) -> int:
        """Drop the subscriptions of one user connection for ``key``.

        Returns:
            Number of subscriptions left for ``key``.
        """
        subscriptions = self._subscriptions.get(key)
        if not subscriptions:
            return 0
        remaining = [
            s
            for s in subscriptions
            if not (s.user_id == user_id and s.connection_id == connection_id)
        ]
        return self._store(key, remaining)

    def remove_subscription(self, subscription: Subscription) -> int:
        """Drop exactly one subscription instance, leaving duplicates untouched."""
        subscriptions = self._subscriptions.get(subscription.key)
        if not subscriptions:
            return 0
        remaining = [s for s in subscriptions if s.subscription_id != subscription.subscription_id]
        return self._store(subscription.key, remaining)

    def remove_all_for_connection(self, connection_id: str) -> List[ConnectionKey]:
        """Drop every subscription held by a connection.

        Returns:
            Keys whose subscription list became empty as a result.
        """
        drained: List[ConnectionKey] = []
        for key in list(self._subscriptions):
            subscriptions = self._subscriptions[key]
            remaining = [s for s in subscriptions if s.connection_id != connection_id]
            if len(remaining) == len(subscriptions):
                continue
            if self._store(key, remaining) == 0:
                drained.append(key)
        return drained

    def get(self, key: ConnectionKey) -> List[Subscription]:
        return list(self._subscriptions.get(key, ()))

    def get_for_connection(self, connection_id: str, key: ConnectionKey) -> List[Subscription]:
        return [s for s in self._subscriptions.get(key, ()) if s.connection_id == connection_id]

    def count(self, key: ConnectionKey) -> int:
        return len(self._subscriptions.get(key, ()))

    def keys(self) -> List[ConnectionKey]:
        return list(self._subscriptions)

    def list_all(self) -> List[Subscription]:
        return [s for subscriptions in self._subscriptions.values() for s in subscriptions]

    def clear(self) -> None:
        self._subscriptions.clear()

    def __len__(self) -> int:
        return sum(len(s) for s in self._subscriptions.values())

    def _store(self, key: ConnectionKey, remaining: List[Subscription]) -> int:
        if remaining:
            self._subscriptions[key] = remaining
        else:
            del self._subscriptions[key]
            logger.debug("market_data_key_drained", key=str(key))
        return len(remaining)
