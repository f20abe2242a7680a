"""
Portfolio valuation in USDT.

compute_portfolio() is pure: the caller fetches balances and prices, this module values them.

- USDT is the valuation currency and is never looked up (price 1).
- Every other asset is priced through its <ASSET>USDT pair. Assets without that pair are
  left out of the report (listed in unpriced_assets) instead of failing the whole view.
- pct needs the final total, so it is filled in a second pass.
- Currency figures are rounded to 2 dp only when they go into the report.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Mapping

logger = logging.getLogger(__name__)

QUOTE_ASSET = "USDT"
_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


def _dec(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def round2(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def quote_pair(asset: str) -> str:
    return f"{asset}{QUOTE_ASSET}"


@dataclass(frozen=True)
class Balance:
    asset: str
    free: Decimal
    locked: Decimal

    @property
    def total(self) -> Decimal:
        return self.free + self.locked

    @property
    def is_active(self) -> bool:
        return self.total > 0

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "Balance":
        """Build from a Binance balance entry ({"asset", "free", "locked"} as strings)."""
        return cls(asset=str(raw.get("asset") or ""), free=_dec(raw.get("free")), locked=_dec(raw.get("locked")))


@dataclass
class Position:
    asset: str
    free: Decimal
    locked: Decimal
    total: Decimal
    price_usdt: Decimal
    value_usdt: Decimal
    pct: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "asset": self.asset,
            "free": float(self.free),
            "locked": float(self.locked),
            "total": float(self.total),
            "priceUSDT": float(self.price_usdt),
            "valueUSDT": float(self.value_usdt),
            "pct": float(self.pct),
        }


@dataclass
class PortfolioReport:
    total_usdt: Decimal = Decimal("0")
    positions: List[Position] = field(default_factory=list)
    unpriced_assets: List[str] = field(default_factory=list)

    @property
    def position_count(self) -> int:
        return len(self.positions)

    def to_dict(self) -> dict:
        return {
            "totalUSDT": float(self.total_usdt),
            "positions": [p.to_dict() for p in self.positions],
            "positionCount": self.position_count,
            "unpricedAssets": list(self.unpriced_assets),
        }


def active_balances(raw_balances: Iterable[Mapping[str, Any]] | None) -> List[Balance]:
    """Parse Binance balance entries and keep the ones with free + locked > 0."""
    out = []
    for raw in raw_balances or []:
        balance = Balance.from_raw(raw)
        if balance.is_active:
            out.append(balance)
    return out


def compute_portfolio(balances: Iterable[Balance], prices: Mapping[str, Any] | None) -> PortfolioReport:
    prices = prices or {}
    active = [b for b in balances if b.is_active]
    if not active:
        return PortfolioReport()

    valued: List[tuple[Position, Decimal]] = []
    unpriced: List[str] = []
    total = Decimal("0")
    for balance in active:
        if balance.asset == QUOTE_ASSET:
            price = Decimal("1")
        else:
            symbol = quote_pair(balance.asset)
            raw_price = prices.get(symbol)
            if raw_price is None:
                logger.warning("No %s pair found for %s; excluded from portfolio", QUOTE_ASSET, balance.asset)
                unpriced.append(balance.asset)
                continue
            price = _dec(raw_price)
        value = balance.total * price
        total += value
        position = Position(
            asset=balance.asset,
            free=balance.free,
            locked=balance.locked,
            total=balance.total,
            price_usdt=price,
            value_usdt=round2(value),
        )
        valued.append((position, value))

    # Second pass: total is final now
    for position, value in valued:
        position.pct = round2(_HUNDRED * value / total) if total > 0 else Decimal("0")

    # sorted() is stable with reverse=True, so equal values keep encounter order
    positions = sorted((p for p, _ in valued), key=lambda p: p.value_usdt, reverse=True)
    return PortfolioReport(total_usdt=round2(total), positions=positions, unpriced_assets=unpriced)
