"""
Resolve the one Binance client the gateway talks through.

- BINANCE_TESTNET may arrive as a native bool, "true", '"true"', "1", or not at all; parse_network_mode
  maps all of them to a NetworkMode. Anything unrecognised is MAINNET.
- Credentials are checked before construction; a missing key or secret never reaches the network.
- TESTNET overrides both HTTP and WebSocket bases. MAINNET leaves the client's own defaults alone.
- The client is built once and shared. A failed build is not cached, so the next request tries again.
"""
import enum
import logging
import threading
from typing import Any, Callable, Optional

from exchange_client import BinanceSpotClient

logger = logging.getLogger(__name__)

TESTNET_HTTP_BASE = "https://testnet.binance.vision"
TESTNET_WS_BASE = "wss://testnet.binance.vision/ws"

_TRUTHY = ("true", "1")


class ExchangeConfigError(RuntimeError):
    """Credentials missing or empty."""


class NetworkMode(enum.Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"

    @property
    def is_testnet(self) -> bool:
        return self is NetworkMode.TESTNET


def parse_network_mode(raw: Any) -> NetworkMode:
    if raw is None:
        logger.info("BINANCE_TESTNET not set; defaulting to MAINNET")
        return NetworkMode.MAINNET
    normalized = str(raw).lower().strip().strip("\"'")
    if raw is True or normalized in _TRUTHY:
        return NetworkMode.TESTNET
    return NetworkMode.MAINNET


ClientFactory = Callable[..., Any]


class ClientResolver:
    def __init__(
        self,
        api_key: Optional[str],
        api_secret: Optional[str],
        testnet_flag: Any = None,
        timeout: Optional[float] = None,
        client_factory: ClientFactory = BinanceSpotClient,
    ):
        self._api_key = api_key or ""
        self._api_secret = api_secret or ""
        self.network_mode = parse_network_mode(testnet_flag)
        self._timeout = timeout
        self._client_factory = client_factory
        self._client: Any = None
        self._lock = threading.Lock()

    @property
    def testnet(self) -> bool:
        return self.network_mode.is_testnet

    @property
    def is_resolved(self) -> bool:
        return self._client is not None

    def _endpoint_overrides(self) -> dict:
        if self.network_mode.is_testnet:
            return {"http_base": TESTNET_HTTP_BASE, "ws_base": TESTNET_WS_BASE}
        return {}

    def _build(self) -> Any:
        if not self._api_key or not self._api_secret:
            raise ExchangeConfigError("BINANCE_API_KEY and BINANCE_API_SECRET are required")
        kwargs = self._endpoint_overrides()
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        logger.info("Binance network mode: %s", self.network_mode.name)
        if kwargs.get("http_base"):
            logger.info("Binance endpoints: http=%s ws=%s", kwargs["http_base"], kwargs["ws_base"])
        else:
            logger.info("Binance endpoints: client defaults (production)")
        try:
            client = self._client_factory(self._api_key, self._api_secret, **kwargs)
        except Exception as e:
            logger.error("Failed to initialize Binance client: %s", e)
            raise
        logger.info("Binance client initialized")
        return client

    def resolve(self) -> Any:
        """Return the shared client, building it on first use."""
        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                self._client = self._build()
            return self._client
