"""
Pytest fixtures for QA tests.
Mocks the Binance client so tests do not hit live services.
Demo tests (marker: demo) hit the Binance spot testnet when credentials are set.
"""
import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Project root and modules under test
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
SRC = PROJECT_ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from backend_server import create_app
from client_resolver import ClientResolver


def _has_demo_credentials():
    return bool(os.environ.get("BINANCE_API_KEY") and os.environ.get("BINANCE_API_SECRET"))


@pytest.fixture
def require_demo_credentials():
    """Skip demo tests when BINANCE_API_KEY / BINANCE_API_SECRET are not set."""
    if not _has_demo_credentials():
        pytest.skip(
            "BINANCE_API_KEY and BINANCE_API_SECRET not set; "
            "skip testnet integration tests. Use testnet keys only."
        )
    yield


@pytest.fixture
def fake_client():
    """Stand-in for BinanceSpotClient with canned responses."""
    client = MagicMock(name="BinanceSpotClient")
    client.time.return_value = {"serverTime": 1700000000000}
    client.account_info.return_value = {
        "canTrade": True,
        "canWithdraw": False,
        "canDeposit": True,
        "updateTime": 1700000000000,
        "balances": [
            {"asset": "USDT", "free": "100.00000000", "locked": "0.00000000"},
            {"asset": "BTC", "free": "1.00000000", "locked": "0.00000000"},
            {"asset": "ETH", "free": "0.00000000", "locked": "0.00000000"},
        ],
    }
    client.prices.return_value = {"BTCUSDT": "50000", "ETHUSDT": "3000", "LTCBTC": "0.002"}
    client.exchange_info.return_value = {
        "timezone": "UTC",
        "serverTime": 1700000000000,
        "symbols": [{"symbol": "BTCUSDT"}, {"symbol": "ETHUSDT"}],
        "rateLimits": [{"rateLimitType": "REQUEST_WEIGHT"}],
    }
    client.my_trades.return_value = []
    client.candles.return_value = []
    return client


@pytest.fixture
def client_factory(fake_client):
    """Factory that records its calls and returns fake_client."""
    return MagicMock(name="client_factory", return_value=fake_client)


@pytest.fixture
def resolver(client_factory):
    return ClientResolver("fake_key_1234", "fake_secret_5678", "true", client_factory=client_factory)


@pytest.fixture
def app(resolver):
    """Gateway with the gate disabled."""
    app = create_app(resolver=resolver, api_key="", production=False)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def secured_app(resolver):
    """Gateway with the gate enforcing API key 'gateway-secret'."""
    app = create_app(resolver=resolver, api_key="gateway-secret", production=False)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def secured_http(secured_app):
    return secured_app.test_client()
