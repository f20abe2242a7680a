"""Shape Binance records for the frontend: numbers as numbers, times as ISO-8601 UTC."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from portfolio import Balance


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def iso_timestamp(ms: Optional[int] = None) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-01T00:00:00.000Z. Defaults to now."""
    if ms is None:
        dt = datetime.now(timezone.utc)
    else:
        ms = int(ms)
        dt = datetime.fromtimestamp(ms // 1000, tz=timezone.utc) + timedelta(milliseconds=ms % 1000)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def format_balance(balance: Balance) -> dict:
    return {
        "asset": balance.asset,
        "free": float(balance.free),
        "locked": float(balance.locked),
        "total": float(balance.total),
    }


def format_trade(trade: dict) -> dict:
    t_ms = _int(trade.get("time"))
    is_buyer = bool(trade.get("isBuyer"))
    return {
        "id": trade.get("id"),
        "symbol": trade.get("symbol"),
        "side": "BUY" if is_buyer else "SELL",
        "quantity": _float(trade.get("qty")),
        "price": _float(trade.get("price")),
        "quoteQty": _float(trade.get("quoteQty")),
        "commission": _float(trade.get("commission")),
        "commissionAsset": trade.get("commissionAsset"),
        "time": t_ms,
        "timestamp": iso_timestamp(t_ms) if t_ms else None,
        "isBuyer": is_buyer,
        "isMaker": bool(trade.get("isMaker")),
    }


def format_candle(kline: dict) -> dict:
    close_time = _int(kline.get("closeTime"))
    return {
        "openTime": _int(kline.get("openTime")),
        "open": _float(kline.get("open")),
        "high": _float(kline.get("high")),
        "low": _float(kline.get("low")),
        "close": _float(kline.get("close")),
        "volume": _float(kline.get("volume")),
        "closeTime": close_time,
        "timestamp": iso_timestamp(close_time),
    }


def candle_timeframe(candles: List[dict]) -> dict:
    """Start of the first candle to end of the last one; both None when there are no candles."""
    if not candles:
        return {"start": None, "end": None}
    return {
        "start": iso_timestamp(candles[0]["openTime"]),
        "end": iso_timestamp(candles[-1]["closeTime"]),
    }
