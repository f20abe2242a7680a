"""
Central env manager for the gateway. Loads .env once into local variables; other code imports from here.

Uses python-dotenv with override=False so that already-set env vars (e.g. BINANCE_TESTNET=true in the shell)
take precedence over .env. Load order: .env then .env.local (if present); .env.local overrides .env for
keys not already set. Keep local-only values (API keys, the gateway secret) in .env.local and add it to .gitignore.
"""
from pathlib import Path

from dotenv import load_dotenv

_ROOT = Path(__file__).resolve().parent.parent


def _load_env() -> None:
    # override=False: shell / process env wins
    load_dotenv(_ROOT / ".env", override=False)
    local_env = _ROOT / ".env.local"
    if local_env.is_file():
        load_dotenv(local_env, override=False)


_load_env()

# Path used for .env.local (for debug)
_ENV_LOCAL_PATH = _ROOT / ".env.local"

# Must import after _load_env so .env is applied
import os

ROOT = _ROOT

# --- Binance ---
BINANCE_API_KEY = os.getenv("BINANCE_API_KEY", "")
BINANCE_API_SECRET = os.getenv("BINANCE_API_SECRET", "")
# Kept raw (None when unset); client_resolver.parse_network_mode decides what it means.
BINANCE_TESTNET = os.getenv("BINANCE_TESTNET")
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "15"))

# --- Gateway ---
# Shared secret for the x-api-key header. Empty means authentication is disabled.
API_KEY = os.getenv("API_KEY", "")
APP_ENV = (os.getenv("APP_ENV") or os.getenv("FLASK_ENV") or os.getenv("NODE_ENV") or "development").strip().lower()
IS_PRODUCTION = APP_ENV == "production"
# Prefer generic hosting env var PORT (e.g. Railway, Render, Heroku) with BACKEND_PORT as an override.
_port_env = os.getenv("PORT") or os.getenv("BACKEND_PORT") or "4000"
BACKEND_PORT = int(_port_env)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

# --- Debug: list of all exported names (for print_env_for_debug) ---
_ENV_MANAGER_VARS = [
    "ROOT",
    "BINANCE_API_KEY", "BINANCE_API_SECRET", "BINANCE_TESTNET", "UPSTREAM_TIMEOUT_SECONDS",
    "API_KEY", "APP_ENV", "IS_PRODUCTION", "BACKEND_PORT", "LOG_LEVEL",
]
_MASK_KEYS = frozenset(("BINANCE_API_KEY", "BINANCE_API_SECRET", "API_KEY"))


def _mask(s: str, max_visible: int = 4) -> str:
    if not s or len(s) <= max_visible * 2:
        return "***" if s else ""
    return f"{s[:max_visible]}***{s[-max_visible:]}"


def print_env_for_debug() -> None:
    """Print all env_manager variables for debugging; API keys/secrets are masked."""
    import sys
    mod = sys.modules.get("env_manager") or sys.modules.get("__main__")
    if mod is None:
        return
    for name in _ENV_MANAGER_VARS:
        val = getattr(mod, name, None)
        if name in _MASK_KEYS and isinstance(val, str) and val:
            val = _mask(val)
        print(f"  {name}={val!r}")
    local_path = _ENV_LOCAL_PATH
    print(f"  ---")
    print(f"  .env.local path: {local_path}")
    print(f"  .env.local exists: {local_path.is_file()}")
    raw = os.getenv("BINANCE_TESTNET")
    print(f"  os.getenv('BINANCE_TESTNET'): {raw!r}")


if __name__ == "__main__":
    print("env_manager variables (secrets masked):")
    print_env_for_debug()
