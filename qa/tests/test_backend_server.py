"""
HTTP-level tests for backend_server.py using the Flask test client and a fake Binance client.
"""
from unittest.mock import MagicMock

import pytest
import requests

from api_key_gate import INVALID_KEY_MESSAGE, KEY_REQUIRED_MESSAGE
from backend_server import create_app
from client_resolver import ClientResolver
from exchange_client import ExchangeAPIError


# ---------- health / banner ----------
@pytest.mark.integration
def test_health(http):
    resp = http.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}


@pytest.mark.integration
def test_health_bypasses_enforcing_gate(secured_http):
    resp = secured_http.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}


@pytest.mark.integration
def test_api_banner(http):
    body = http.get("/api").get_json()
    assert body["status"] == "running"
    assert body["version"]


# ---------- gate ----------
@pytest.mark.integration
def test_disabled_gate_allows_without_header(http):
    assert http.get("/portfolio").status_code == 200


@pytest.mark.integration
def test_gate_missing_key(secured_http, client_factory):
    resp = secured_http.get("/portfolio")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Unauthorized", "message": KEY_REQUIRED_MESSAGE}
    client_factory.assert_not_called()


@pytest.mark.integration
def test_gate_invalid_key(secured_http):
    resp = secured_http.get("/portfolio", headers={"x-api-key": "nope"})
    assert resp.status_code == 401
    assert resp.get_json()["message"] == INVALID_KEY_MESSAGE


@pytest.mark.integration
def test_gate_valid_key(secured_http):
    resp = secured_http.get("/api/binance/portfolio", headers={"X-API-Key": "gateway-secret"})
    assert resp.status_code == 200


# ---------- status ----------
@pytest.mark.integration
def test_status(http):
    body = http.get("/api/binance/status").get_json()
    assert body["status"] == "connected"
    assert body["testnet"] is True
    assert body["serverTime"] == 1700000000000
    assert body["timestamp"] == "2023-11-14T22:13:20.000Z"


@pytest.mark.integration
def test_status_upstream_failure(http, fake_client):
    fake_client.time.side_effect = requests.ConnectionError("connection refused")
    resp = http.get("/api/binance/status")
    assert resp.status_code == 500
    body = resp.get_json()
    assert body["status"] == "error"
    assert body["message"] == "Failed to connect to Binance"
    assert "connection refused" in body["error"]


@pytest.mark.integration
def test_missing_credentials_is_500_and_process_survives():
    app = create_app(resolver=ClientResolver("", "", None), api_key="")
    http = app.test_client()
    resp = http.get("/portfolio")
    assert resp.status_code == 500
    assert "BINANCE_API_KEY and BINANCE_API_SECRET are required" in resp.get_json()["error"]
    assert http.get("/health").status_code == 200


# ---------- account / prices / exchange info ----------
@pytest.mark.integration
@pytest.mark.parametrize("path", ["/account", "/api/binance/account"])
def test_account_active_balances_only(http, path):
    body = http.get(path).get_json()
    assert body["status"] == "success"
    assert body["account"]["canTrade"] is True
    assert body["balanceCount"] == 2
    assert body["balances"] == [
        {"asset": "USDT", "free": 100.0, "locked": 0.0, "total": 100.0},
        {"asset": "BTC", "free": 1.0, "locked": 0.0, "total": 1.0},
    ]


@pytest.mark.integration
def test_prices_popular_pairs(http):
    body = http.get("/api/binance/prices").get_json()
    assert body["prices"] == {"BTCUSDT": "50000", "ETHUSDT": "3000"}
    assert body["totalSymbols"] == 3


@pytest.mark.integration
def test_exchange_info(http):
    body = http.get("/api/binance/exchange-info").get_json()
    assert body["exchange"] == {
        "timezone": "UTC",
        "serverTime": 1700000000000,
        "symbolsCount": 2,
        "rateLimitsCount": 1,
    }


# ---------- portfolio ----------
@pytest.mark.integration
def test_portfolio(http):
    body = http.get("/portfolio").get_json()
    assert body["status"] == "success"
    assert body["totalUSDT"] == 50100.0
    assert body["positionCount"] == 2
    assert [p["asset"] for p in body["positions"]] == ["BTC", "USDT"]
    assert body["positions"][0]["pct"] == pytest.approx(99.80, abs=0.01)
    assert body["positions"][1]["pct"] == pytest.approx(0.20, abs=0.01)
    assert body["unpricedAssets"] == []


@pytest.mark.integration
def test_portfolio_empty_skips_price_fetch(http, fake_client):
    fake_client.account_info.return_value = {"balances": [{"asset": "BTC", "free": "0", "locked": "0"}]}
    body = http.get("/portfolio").get_json()
    assert body["totalUSDT"] == 0
    assert body["positions"] == []
    assert body["positionCount"] == 0
    fake_client.prices.assert_not_called()


@pytest.mark.integration
def test_portfolio_price_failure_fails_whole_request(http, fake_client):
    fake_client.prices.side_effect = ExchangeAPIError(503, {"msg": "Service unavailable"})
    resp = http.get("/portfolio")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Binance error 503: Service unavailable"}


@pytest.mark.integration
def test_client_resolved_once_across_requests(http, client_factory):
    http.get("/portfolio")
    http.get("/account")
    http.get("/api/binance/status")
    client_factory.assert_called_once()


# ---------- trades ----------
@pytest.mark.integration
def test_trades_requires_symbol(http):
    resp = http.get("/trades")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Symbol parameter is required"}


@pytest.mark.integration
@pytest.mark.parametrize("limit", ["abc", "0", "-3"])
def test_trades_bad_limit(http, limit):
    assert http.get(f"/trades?symbol=BTCUSDT&limit={limit}").status_code == 400


@pytest.mark.integration
def test_trades(http, fake_client):
    fake_client.my_trades.return_value = [
        {
            "id": 1,
            "symbol": "BTCUSDT",
            "price": "50000",
            "qty": "0.01",
            "quoteQty": "500",
            "commission": "0.00001",
            "commissionAsset": "BTC",
            "time": 1700000000000,
            "isBuyer": False,
            "isMaker": True,
        }
    ]
    body = http.get("/trades?symbol=btcusdt").get_json()
    fake_client.my_trades.assert_called_once_with("BTCUSDT", limit=20)
    assert body["symbol"] == "BTCUSDT"
    assert body["tradeCount"] == 1
    trade = body["trades"][0]
    assert trade["side"] == "SELL"
    assert trade["quantity"] == 0.01
    assert trade["timestamp"] == "2023-11-14T22:13:20.000Z"


# ---------- market data ----------
@pytest.mark.integration
def test_market_data_requires_symbol(http):
    assert http.get("/market-data?interval=1h").status_code == 400


@pytest.mark.integration
def test_market_data(http, fake_client):
    fake_client.candles.return_value = [
        {"openTime": 0, "open": "1", "high": "2", "low": "0.5", "close": "1.5", "volume": "10", "closeTime": 3599999},
        {"openTime": 3600000, "open": "1.5", "high": "3", "low": "1", "close": "2", "volume": "5", "closeTime": 7199999},
    ]
    body = http.get("/market-data?symbol=ethusdt&interval=1h&limit=2").get_json()
    fake_client.candles.assert_called_once_with("ETHUSDT", interval="1h", limit=2)
    assert body["interval"] == "1h"
    assert body["candleCount"] == 2
    assert body["candlesticks"][1]["close"] == 2.0
    assert body["timeframe"] == {"start": "1970-01-01T00:00:00.000Z", "end": "1970-01-01T01:59:59.999Z"}


@pytest.mark.integration
def test_market_data_defaults_and_empty(http, fake_client):
    body = http.get("/api/binance/market-data?symbol=BTCUSDT").get_json()
    fake_client.candles.assert_called_once_with("BTCUSDT", interval="1h", limit=100)
    assert body["candlesticks"] == []
    assert body["timeframe"] == {"start": None, "end": None}


# ---------- fallbacks ----------
@pytest.mark.integration
def test_unknown_route_404(http):
    resp = http.get("/nope?x=1")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Route not found", "path": "/nope?x=1"}


@pytest.mark.integration
def test_method_not_allowed_json(http):
    resp = http.post("/portfolio")
    assert resp.status_code == 405
    assert "error" in resp.get_json()


def _broken_app(production):
    resolver = MagicMock(spec=ClientResolver)
    resolver.testnet = False
    resolver.resolve.side_effect = KeyError("unexpected")
    app = create_app(resolver=resolver, api_key="", production=production)
    return app.test_client()


@pytest.mark.integration
def test_unhandled_error_detail_outside_production():
    resp = _broken_app(production=False).get("/portfolio")
    assert resp.status_code == 500
    body = resp.get_json()
    assert body["error"] == "Something went wrong!"
    assert "unexpected" in body["message"]


@pytest.mark.integration
def test_unhandled_error_generic_in_production():
    resp = _broken_app(production=True).get("/portfolio")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Something went wrong!", "message": "Internal server error"}
