#!/usr/bin/env python3
"""
Backend gateway for the trading frontend.

- Holds one Binance spot client (see client_resolver) and serves point-in-time views over it:
  server status, balances, prices, exchange info, USDT portfolio valuation, own trades, candles.
- Every route except /health sits behind the x-api-key gate when API_KEY is set.
- Read-only: nothing here places orders.

Run (from project root, with venv activated):

    python src/backend_server.py

Routes under the Binance blueprint are served both at the root (/portfolio) and under /api/binance
(/api/binance/portfolio).
"""

from __future__ import annotations

import logging
import sys
from functools import wraps
from typing import Optional

import requests
from flask import Blueprint, Flask, current_app, request
from werkzeug.exceptions import HTTPException

import env_manager
from api_key_gate import HEALTH_PATH, ApiKeyGate
from client_resolver import ClientResolver, ExchangeConfigError
from exchange_client import ExchangeAPIError
from formatters import candle_timeframe, format_balance, format_candle, format_trade, iso_timestamp
from portfolio import active_balances, compute_portfolio

logger = logging.getLogger("backend_server")

SERVICE_NAME = "Binance Spot Gateway API"
SERVICE_VERSION = "1.0.0"
RESOLVER_EXTENSION = "exchange_client_resolver"
POPULAR_PAIRS = ["BTCUSDT", "ETHUSDT", "BNBUSDT", "ADAUSDT", "DOTUSDT"]
DEFAULT_TRADES_LIMIT = 20
DEFAULT_CANDLES_LIMIT = 100
DEFAULT_CANDLES_INTERVAL = "1h"

# Failures that stay inside one request: bad config, Binance error status, network trouble
UPSTREAM_ERRORS = (ExchangeConfigError, ExchangeAPIError, requests.RequestException)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(level=level or env_manager.LOG_LEVEL, format=LOG_FORMAT, stream=sys.stderr)


# --- Helpers ---------------------------------------------------------


def _resolver() -> ClientResolver:
    return current_app.extensions[RESOLVER_EXTENSION]


def _client():
    return _resolver().resolve()


def _success(**fields) -> dict:
    return {"status": "success", "testnet": _resolver().testnet, **fields, "timestamp": iso_timestamp()}


def _symbol_arg() -> str:
    return (request.args.get("symbol") or "").strip().upper()


def _positive_int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = int(raw)
    if value < 1:
        raise ValueError(f"{name} must be a positive integer")
    return value


def _upstream_route(label: str):
    """Turn upstream failures into a 500 with the upstream message."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except UPSTREAM_ERRORS as e:
                logger.error("%s error: %s", label, e)
                return {"error": str(e)}, 500

        return wrapper

    return decorator


# --- Binance routes --------------------------------------------------

binance_bp = Blueprint("binance", __name__)


@binance_bp.get("/status")
def get_status() -> tuple[dict, int]:
    """Probe connectivity via server time."""
    try:
        server_time = _client().time()
    except UPSTREAM_ERRORS as e:
        logger.error("Binance connection error: %s", e)
        return {"status": "error", "message": "Failed to connect to Binance", "error": str(e)}, 500
    ms = int(server_time["serverTime"])
    return {
        "status": "connected",
        "testnet": _resolver().testnet,
        "serverTime": ms,
        "timestamp": iso_timestamp(ms),
    }, 200


@binance_bp.get("/account")
@_upstream_route("Account")
def get_account() -> tuple[dict, int]:
    """Account flags plus non-zero balances only."""
    info = _client().account_info()
    balances = [format_balance(b) for b in active_balances(info.get("balances"))]
    return _success(
        account={
            "canTrade": info.get("canTrade"),
            "canWithdraw": info.get("canWithdraw"),
            "canDeposit": info.get("canDeposit"),
            "updateTime": info.get("updateTime"),
        },
        balances=balances,
        balanceCount=len(balances),
    ), 200


@binance_bp.get("/prices")
@_upstream_route("Prices")
def get_prices() -> tuple[dict, int]:
    prices = _client().prices()
    popular = {s: prices[s] for s in POPULAR_PAIRS if s in prices}
    return _success(prices=popular, totalSymbols=len(prices)), 200


@binance_bp.get("/exchange-info")
@_upstream_route("Exchange info")
def get_exchange_info() -> tuple[dict, int]:
    info = _client().exchange_info()
    return _success(
        exchange={
            "timezone": info.get("timezone"),
            "serverTime": info.get("serverTime"),
            "symbolsCount": len(info.get("symbols") or []),
            "rateLimitsCount": len(info.get("rateLimits") or []),
        }
    ), 200


@binance_bp.get("/portfolio")
@_upstream_route("Portfolio calculation")
def get_portfolio() -> tuple[dict, int]:
    """Portfolio valued in USDT, largest position first."""
    client = _client()
    balances = active_balances(client.account_info().get("balances"))
    if not balances:
        return _success(**compute_portfolio([], {}).to_dict()), 200
    report = compute_portfolio(balances, client.prices())
    return _success(**report.to_dict()), 200


@binance_bp.get("/trades")
@_upstream_route("Trades")
def get_trades() -> tuple[dict, int]:
    """Own trades for ?symbol= (required), newest limit (default 20)."""
    symbol = _symbol_arg()
    if not symbol:
        return {"error": "Symbol parameter is required"}, 400
    try:
        limit = _positive_int_arg("limit", DEFAULT_TRADES_LIMIT)
    except ValueError:
        return {"error": "limit must be a positive integer"}, 400
    trades = [format_trade(t) for t in _client().my_trades(symbol, limit=limit)]
    return _success(symbol=symbol, trades=trades, tradeCount=len(trades)), 200


@binance_bp.get("/market-data")
@_upstream_route("Market data")
def get_market_data() -> tuple[dict, int]:
    """OHLCV candles for ?symbol= (required), ?interval= (default 1h), ?limit= (default 100)."""
    symbol = _symbol_arg()
    if not symbol:
        return {"error": "Symbol parameter is required"}, 400
    interval = (request.args.get("interval") or DEFAULT_CANDLES_INTERVAL).strip()
    try:
        limit = _positive_int_arg("limit", DEFAULT_CANDLES_LIMIT)
    except ValueError:
        return {"error": "limit must be a positive integer"}, 400
    candles = [format_candle(k) for k in _client().candles(symbol, interval=interval, limit=limit)]
    return _success(
        symbol=symbol,
        interval=interval,
        candlesticks=candles,
        candleCount=len(candles),
        timeframe=candle_timeframe(candles),
    ), 200


# --- App -------------------------------------------------------------


def create_app(
    resolver: Optional[ClientResolver] = None,
    api_key: Optional[str] = None,
    production: Optional[bool] = None,
) -> Flask:
    """Composition root. Arguments default to env_manager values; tests pass their own."""
    app = Flask(__name__)
    if resolver is None:
        resolver = ClientResolver(
            env_manager.BINANCE_API_KEY,
            env_manager.BINANCE_API_SECRET,
            env_manager.BINANCE_TESTNET,
            timeout=env_manager.UPSTREAM_TIMEOUT_SECONDS,
        )
    app.extensions[RESOLVER_EXTENSION] = resolver
    app.config["IS_PRODUCTION"] = env_manager.IS_PRODUCTION if production is None else production
    gate = ApiKeyGate(env_manager.API_KEY if api_key is None else api_key)
    app.extensions["api_key_gate"] = gate

    @app.before_request
    def _log_request() -> None:
        logger.info("%s %s", request.method, request.path)

    gate.install(app)

    @app.get(HEALTH_PATH)
    def health() -> tuple[dict, int]:
        return {"ok": True}, 200

    @app.get("/api")
    def api_info() -> tuple[dict, int]:
        return {
            "message": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "status": "running",
            "timestamp": iso_timestamp(),
        }, 200

    app.register_blueprint(binance_bp, url_prefix="/api/binance", name="binance_api")
    app.register_blueprint(binance_bp)

    @app.errorhandler(404)
    def not_found(e) -> tuple[dict, int]:
        logger.info("[404] %s %s", request.method, request.full_path.rstrip("?"))
        return {"error": "Route not found", "path": request.full_path.rstrip("?")}, 404

    @app.errorhandler(Exception)
    def unhandled(e: Exception) -> tuple[dict, int]:
        if isinstance(e, HTTPException):
            if e.code is not None and e.code < 400:
                # Routing redirects (e.g. trailing slash) carry their own response
                return e
            return {"error": e.name, "message": e.description}, e.code or 500
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        message = "Internal server error" if current_app.config["IS_PRODUCTION"] else str(e)
        return {"error": "Something went wrong!", "message": message}, 500

    return app


def main() -> None:
    """Entry point for console script (run server)."""
    configure_logging()
    app = create_app()
    gate = app.extensions["api_key_gate"]
    logger.info("Binance spot gateway on port %s", env_manager.BACKEND_PORT)
    logger.info("Health check: http://localhost:%s%s", env_manager.BACKEND_PORT, HEALTH_PATH)
    logger.info("API key protection: %s", "ENABLED" if gate.enabled else "DISABLED")
    logger.info("Environment: %s", env_manager.APP_ENV)
    # Bind to 0.0.0.0 so platforms like Railway can reach the container.
    app.run(host="0.0.0.0", port=env_manager.BACKEND_PORT, debug=False, threaded=True)


if __name__ == "__main__":
    main()
