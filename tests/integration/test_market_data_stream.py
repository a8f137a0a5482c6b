"""
End-to-end tests of the market data WebSocket protocol.

The application runs in-process through Starlette's TestClient; the session
lookup, account ownership and exchange adapters are replaced by fakes.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from market_data_gateway.config.settings import settings
from market_data_gateway.main import create_app
from market_data_gateway.services.market_data.gateway import set_gateway

pytestmark = pytest.mark.integration

API_KEY = "test-api-key"


@pytest.fixture
def client(gateway, monkeypatch):
    monkeypatch.setattr(settings, "market_data_gateway_api_key", API_KEY)
    app = create_app(gateway=gateway, init_database=False)
    with TestClient(app) as test_client:
        yield test_client
    set_gateway(None)


def _connect(client, user_id):
    return client.websocket_connect("/ws/market-data", headers={"x-test-user": user_id})


def _subscribe(ws, channels, account="acc1", symbol="BTCUSDT"):
    ws.send_json(
        {
            "event": "subscribe-market-data",
            "data": {"exchangeAccountId": account, "symbol": symbol, "channels": channels},
        }
    )


def _receive_until(ws, event):
    """Read frames until one named ``event`` arrives; returns every frame read."""
    frames = []
    while True:
        frame = ws.receive_json()
        frames.append(frame)
        if frame["event"] == event:
            return frames


def _next_market_data(ws):
    return _receive_until(ws, "market-data")[-1]["data"]


def test_unauthenticated_client_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/market-data"):
            pass

    assert exc_info.value.code == 1008


def test_subscribe_and_receive_ticker(client, gateway, adapter_factory):
    with _connect(client, "user-a") as ws:
        assert ws.receive_json() == {
            "event": "connected",
            "data": {"message": "Connected to market data stream"},
        }

        _subscribe(ws, ["ticker"])
        ack = _receive_until(ws, "subscribed")[-1]["data"]
        assert ack["exchangeAccountId"] == "acc1"
        assert ack["symbol"] == "BTCUSDT"
        assert ack["channels"] == ["ticker"]

        adapter_factory.last.emit("ticker", {"last": "65000.1"})

        data = _next_market_data(ws)
        assert data["type"] == "ticker"
        assert data["symbol"] == "BTCUSDT"
        assert data["exchangeAccountId"] == "acc1"
        assert data["data"] == {"last": "65000.1"}
        assert isinstance(data["timestamp"], int)


def test_second_client_shares_upstream_connection(client, gateway, adapter_factory):
    with _connect(client, "user-a") as first, _connect(client, "user-a") as second:
        for ws in (first, second):
            ws.receive_json()
            _subscribe(ws, ["ticker"])
            _receive_until(ws, "subscribed")

        assert adapter_factory.calls == 1
        assert gateway.get_exchange_connection_count() == 1

        adapter_factory.last.emit("ticker", {"last": "1"})

        assert _next_market_data(first)["data"] == {"last": "1"}
        assert _next_market_data(second)["data"] == {"last": "1"}


def test_unsubscribe_keeps_stream_for_remaining_client(client, gateway, adapter_factory):
    with _connect(client, "user-a") as first, _connect(client, "user-a") as second:
        for ws in (first, second):
            ws.receive_json()
            _subscribe(ws, ["ticker"])
            _receive_until(ws, "subscribed")

        first.send_json(
            {
                "event": "unsubscribe-market-data",
                "data": {"exchangeAccountId": "acc1", "symbol": "BTCUSDT"},
            }
        )
        ack = _receive_until(first, "unsubscribed")[-1]["data"]
        assert ack["channels"] == ["ticker"]

        adapter_factory.last.emit("ticker", {"last": "3"})

        assert _next_market_data(second)["data"] == {"last": "3"}
        assert gateway.get_exchange_connection_count() == 1
        assert adapter_factory.last.close_count == 0
        assert len(gateway.get_active_subscriptions()) == 1


def test_partial_unsubscribe_stops_only_dropped_channel(client, gateway, adapter_factory):
    with _connect(client, "user-a") as ws:
        ws.receive_json()
        _subscribe(ws, ["ticker", "trades"])
        _receive_until(ws, "subscribed")

        ws.send_json(
            {
                "event": "unsubscribe-market-data",
                "data": {"exchangeAccountId": "acc1", "symbol": "BTCUSDT", "channels": ["trades"]},
            }
        )
        ack = _receive_until(ws, "unsubscribed")[-1]["data"]
        assert ack["channels"] == ["trades"]

        adapter_factory.last.emit("trades", [{"price": "1"}])
        adapter_factory.last.emit("ticker", {"last": "2"})

        assert _next_market_data(ws)["type"] == "ticker"
        assert gateway.get_exchange_connection_count() == 1


def test_foreign_account_is_denied(client, gateway, adapter_factory):
    with _connect(client, "user-d") as ws:
        ws.receive_json()
        _subscribe(ws, ["ticker"])

        frame = ws.receive_json()

        assert frame == {
            "event": "error",
            "data": {"message": "Exchange account not found or access denied"},
        }
        assert adapter_factory.calls == 0
        assert gateway.get_active_subscriptions() == []


def test_candlesticks_delivered_immediately_and_polled(client, adapter_factory, monkeypatch):
    monkeypatch.setattr(settings, "candlesticks_poll_interval_seconds", 0.05)

    with _connect(client, "user-c") as ws:
        ws.receive_json()
        _subscribe(ws, ["candlesticks"], account="acc2", symbol="ETHUSDT")

        first = _next_market_data(ws)
        second = _next_market_data(ws)

        assert first["type"] == "candlesticks"
        assert first["symbol"] == "ETHUSDT"
        assert first["exchangeAccountId"] == "acc2"
        assert first["data"] == adapter_factory.last.candles
        assert second["type"] == "candlesticks"
        assert len(adapter_factory.last.candle_requests) >= 2


def test_disconnect_tears_down_upstream(client, gateway, adapter_factory, waiter):
    with _connect(client, "user-a") as ws:
        ws.receive_json()
        _subscribe(ws, ["ticker", "orderbook"])
        _receive_until(ws, "subscribed")
        adapter = adapter_factory.last

    assert waiter(lambda: gateway.get_exchange_connection_count() == 0)
    assert waiter(lambda: adapter.close_count == 1)
    assert gateway.get_active_subscriptions() == []
    assert len(gateway.client_connections) == 0


def test_invalid_frame_keeps_connection_open(client):
    with _connect(client, "user-a") as ws:
        ws.receive_json()

        ws.send_text("not json")
        assert ws.receive_json() == {
            "event": "error",
            "data": {"message": "Malformed message: expected JSON"},
        }

        _subscribe(ws, ["ticker"])
        assert _receive_until(ws, "subscribed")[-1]["event"] == "subscribed"


def test_health_reports_gateway_state(client):
    with _connect(client, "user-a") as ws:
        ws.receive_json()
        _subscribe(ws, ["ticker"])
        _receive_until(ws, "subscribed")

        response = client.get("/health")

    assert response.status_code == 200
    assert response.headers["X-Trace-Id"]
    body = response.json()
    assert body["status"] == "healthy"
    assert body["broadcaster_running"] is True
    assert body["client_connections"] == 1
    assert body["active_subscriptions"] == 1
    assert body["upstream_connections"] == 1


def test_rest_endpoints_require_api_key(client):
    response = client.get("/api/v1/market-data/subscriptions")

    assert response.status_code == 401
    assert response.json()["code"] == "AUTHENTICATION_FAILED"

    response = client.get("/api/v1/market-data/subscriptions", headers={"X-API-Key": "wrong"})

    assert response.status_code == 401


def test_rest_endpoints_list_subscriptions_and_connections(client):
    headers = {"X-API-Key": API_KEY}
    with _connect(client, "user-a") as ws:
        ws.receive_json()
        _subscribe(ws, ["trades", "ticker"])
        _receive_until(ws, "subscribed")

        subscriptions = client.get("/api/v1/market-data/subscriptions", headers=headers).json()
        filtered = client.get(
            "/api/v1/market-data/subscriptions", params={"symbol": "ETHUSDT"}, headers=headers
        ).json()
        connections = client.get("/api/v1/market-data/connections", headers=headers).json()

    assert subscriptions["total"] == 1
    [subscription] = subscriptions["subscriptions"]
    assert subscription["user_id"] == "user-a"
    assert subscription["exchange_account_id"] == "acc1"
    assert subscription["channels"] == ["ticker", "trades"]
    assert filtered["total"] == 0
    assert connections["total"] == 1
    assert connections["connections"][0]["symbol"] == "BTCUSDT"
    assert connections["connections"][0]["channels"] == ["ticker", "trades"]


def test_binary_frame_keeps_connection_open(client, adapter_factory):
    with _connect(client, "user-a") as ws:
        ws.receive_json()

        ws.send_bytes(b'{"event": "subscribe-market-data"}')
        assert ws.receive_json() == {
            "event": "error",
            "data": {"message": "Malformed message: expected text frame"},
        }
        assert adapter_factory.calls == 0

        _subscribe(ws, ["ticker"])
        assert _receive_until(ws, "subscribed")[-1]["event"] == "subscribed"
