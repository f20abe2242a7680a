"""
Minimal Binance spot REST client.

Read-only: server time, account info, ticker prices, exchange info, own trades and klines.
Signed endpoints use HMAC-SHA256 over the query string (X-MBX-APIKEY header), same as the
USD-M futures helpers this project started from.

Defaults point at production. Pass http_base / ws_base to target another deployment
(client_resolver does this for the testnet).
"""
import hashlib
import hmac
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

DEFAULT_HTTP_BASE = "https://api.binance.com"
DEFAULT_WS_BASE = "wss://stream.binance.com:9443/ws"
DEFAULT_TIMEOUT_SECONDS = 15.0

# Column order of /api/v3/klines rows
KLINE_FIELDS = [
    "openTime",
    "open",
    "high",
    "low",
    "close",
    "volume",
    "closeTime",
    "quoteVolume",
    "trades",
    "baseAssetVolume",
    "quoteAssetVolume",
]


class ExchangeAPIError(RuntimeError):
    """Binance answered with an HTTP error status."""

    def __init__(self, status_code: int, payload: Any, path: str = ""):
        self.status_code = status_code
        self.payload = payload
        self.path = path
        msg = payload.get("msg") if isinstance(payload, dict) else None
        super().__init__(f"Binance error {status_code}: {msg or payload}")


class BinanceSpotClient:
    def __init__(
        self,
        api_key: str,
        api_secret: str,
        http_base: Optional[str] = None,
        ws_base: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self._api_key = api_key
        self._api_secret = api_secret
        self.http_base = (http_base or DEFAULT_HTTP_BASE).rstrip("/")
        self.ws_base = (ws_base or DEFAULT_WS_BASE).rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def __repr__(self) -> str:
        return f"BinanceSpotClient(http_base={self.http_base!r}, ws_base={self.ws_base!r})"

    # --- Transport -------------------------------------------------------

    def _request(self, path: str, params: Optional[Dict[str, Any]] = None, headers: Optional[dict] = None) -> Any:
        url = f"{self.http_base}{path}"
        r = self._session.get(url, params=params, headers=headers, timeout=self.timeout)
        status = r.status_code
        try:
            data = r.json()
        except ValueError:
            data = {"raw": r.text}
        if status >= 400:
            raise ExchangeAPIError(status, data, path)
        return data

    def _public_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        logger.debug("GET %s params=%s", path, params)
        return self._request(path, params)

    def _signed_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a USER_DATA endpoint. Signature covers the exact query string sent."""
        params = dict(params or {})
        params["timestamp"] = str(int(time.time() * 1000))
        qs = urlencode(sorted(params.items()))
        sig = hmac.new(self._api_secret.encode("utf-8"), qs.encode("utf-8"), hashlib.sha256).hexdigest()
        # Log params only; the key travels in a header and the secret never leaves this object
        logger.debug("GET %s (signed) params=%s", path, params)
        return self._request(f"{path}?{qs}&signature={sig}", headers={"X-MBX-APIKEY": self._api_key})

    # --- Endpoints -------------------------------------------------------

    def time(self) -> dict:
        """{"serverTime": <ms>}"""
        return self._public_get("/api/v3/time")

    def account_info(self) -> dict:
        return self._signed_get("/api/v3/account")

    def prices(self) -> Dict[str, str]:
        """Latest price for every symbol, as {symbol: price string}."""
        data = self._public_get("/api/v3/ticker/price")
        return {str(row["symbol"]): str(row["price"]) for row in data if row.get("symbol")}

    def exchange_info(self) -> dict:
        return self._public_get("/api/v3/exchangeInfo")

    def my_trades(self, symbol: str, limit: Optional[int] = None) -> List[dict]:
        params: Dict[str, Any] = {"symbol": symbol}
        if limit is not None:
            params["limit"] = str(int(limit))
        return self._signed_get("/api/v3/myTrades", params)

    def candles(self, symbol: str, interval: str = "1h", limit: Optional[int] = None) -> List[dict]:
        """Klines as dicts keyed by KLINE_FIELDS (values as Binance sends them)."""
        params: Dict[str, Any] = {"symbol": symbol, "interval": interval}
        if limit is not None:
            params["limit"] = str(int(limit))
        rows = self._public_get("/api/v3/klines", params)
        return [dict(zip(KLINE_FIELDS, row)) for row in rows]
