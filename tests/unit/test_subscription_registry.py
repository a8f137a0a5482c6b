"""Unit tests for SubscriptionRegistry."""

from market_data_gateway.models.subscription import ConnectionKey, Subscription
from market_data_gateway.services.market_data.registry import SubscriptionRegistry

KEY = ConnectionKey("acc1", "BTCUSDT")


def _sub(user_id="user-a", connection_id="conn-1", channels=("ticker",), account="acc1", symbol="BTCUSDT"):
    return Subscription.create(
        user_id=user_id,
        exchange_account_id=account,
        symbol=symbol,
        channels=channels,
        connection_id=connection_id,
    )


def test_add_returns_resulting_count_per_key():
    registry = SubscriptionRegistry()

    assert registry.add(_sub(connection_id="conn-1")) == 1
    assert registry.add(_sub(connection_id="conn-2")) == 2
    assert registry.add(_sub(symbol="ETHUSDT")) == 1
    assert registry.count(KEY) == 2
    assert len(registry) == 3


def test_identical_subscriptions_are_not_deduplicated():
    registry = SubscriptionRegistry()
    registry.add(_sub())
    registry.add(_sub())

    assert registry.count(KEY) == 2


def test_remove_only_drops_matching_user_and_connection():
    registry = SubscriptionRegistry()
    registry.add(_sub(user_id="user-a", connection_id="conn-1"))
    registry.add(_sub(user_id="user-a", connection_id="conn-2"))

    remaining = registry.remove("user-a", "conn-1", KEY)

    assert remaining == 1
    assert [s.connection_id for s in registry.get(KEY)] == ["conn-2"]


def test_remove_last_subscription_deletes_key():
    registry = SubscriptionRegistry()
    registry.add(_sub())

    assert registry.remove("user-a", "conn-1", KEY) == 0
    assert KEY not in registry.keys()


def test_remove_unknown_key_returns_zero():
    registry = SubscriptionRegistry()

    assert registry.remove("user-a", "conn-1", KEY) == 0


def test_remove_subscription_keeps_duplicates():
    registry = SubscriptionRegistry()
    first = _sub()
    registry.add(first)
    registry.add(_sub())

    assert registry.remove_subscription(first) == 1
    assert registry.get(KEY)[0].subscription_id != first.subscription_id


def test_remove_all_for_connection_reports_drained_keys():
    registry = SubscriptionRegistry()
    eth = ConnectionKey("acc1", "ETHUSDT")
    registry.add(_sub(connection_id="conn-1"))
    registry.add(_sub(connection_id="conn-1", symbol="ETHUSDT"))
    registry.add(_sub(connection_id="conn-2", symbol="ETHUSDT"))

    drained = registry.remove_all_for_connection("conn-1")

    assert drained == [KEY]
    assert registry.count(eth) == 1
    assert all(s.connection_id != "conn-1" for s in registry.list_all())


def test_list_all_and_clear():
    registry = SubscriptionRegistry()
    registry.add(_sub())
    registry.add(_sub(symbol="ETHUSDT"))

    assert len(registry.list_all()) == 2

    registry.clear()

    assert registry.list_all() == []
    assert registry.keys() == []


def test_get_returns_copy():
    registry = SubscriptionRegistry()
    registry.add(_sub())

    registry.get(KEY).clear()

    assert registry.count(KEY) == 1
