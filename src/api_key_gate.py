"""
Shared-secret gate in front of every route except the liveness probe.

If API_KEY is empty the gate is disabled (dev mode) and every request passes.
Otherwise callers must send the secret in the x-api-key header.
"""
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from flask import Flask, request

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
HEALTH_PATH = "/health"

KEY_REQUIRED_MESSAGE = f"API key required. Provide {API_KEY_HEADER} header."
INVALID_KEY_MESSAGE = "Invalid API key."


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    status: int = 200
    error: str = ""
    message: str = ""

    def to_response(self) -> tuple[dict, int]:
        return {"error": self.error, "message": self.message}, self.status


ALLOW = GateDecision(allowed=True)


def _deny(message: str) -> GateDecision:
    return GateDecision(allowed=False, status=401, error="Unauthorized", message=message)


class ApiKeyGate:
    def __init__(self, secret: Optional[str], health_path: str = HEALTH_PATH):
        self._secret = secret or ""
        self.health_path = health_path

    @property
    def enabled(self) -> bool:
        return bool(self._secret)

    def authenticate(self, path: str, provided_key: Optional[str]) -> GateDecision:
        if not self.enabled:
            logger.info("API_KEY not set - authentication disabled (dev mode)")
            return ALLOW
        if path == self.health_path:
            return ALLOW
        if not provided_key:
            return _deny(KEY_REQUIRED_MESSAGE)
        if not hmac.compare_digest(provided_key.encode("utf-8"), self._secret.encode("utf-8")):
            logger.warning("Rejected request to %s: invalid API key", path)
            return _deny(INVALID_KEY_MESSAGE)
        logger.info("API key authenticated successfully")
        return ALLOW

    def install(self, app: Flask) -> None:
        """Run the gate before every request on app."""

        @app.before_request
        def _check_api_key():
            decision = self.authenticate(request.path, request.headers.get(API_KEY_HEADER))
            if not decision.allowed:
                return decision.to_response()
            return None
