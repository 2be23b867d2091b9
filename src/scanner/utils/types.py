from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, TypedDict

# ---- market-data primitives ----

@dataclass(slots=True)
class TickerSnapshot:
    symbol: str          # base asset, upper-case ("BTC")
    pair: str            # raw pair id from the listing ("btc_idr")
    last_price: float
    volume_quote: float  # 24h volume in quote currency

@dataclass(slots=True)
class TechnicalReading:
    """
    Last RSI / SMA values computed over closes + the live price.
    Either value may be None when the series is too short for it.
    """
    price: float
    rsi: Optional[float]
    sma25: Optional[float]

    @property
    def sma_diff_pct(self) -> Optional[float]:
        if self.sma25 is None or self.sma25 == 0.0:
            return None
        return (self.price - self.sma25) / self.sma25 * 100.0

@dataclass(slots=True)
class InsufficientData:
    reason: str
    points: int = 0

    def __bool__(self) -> bool:
        return False

# ---- alerting domain ----

DecisionReason = Literal[
    "first_alert",
    "cooldown_elapsed",
    "cooldown_break_price",
    "cooldown_break_rsi",
    "cooldown",
]

@dataclass(slots=True, frozen=True)
class AlertDecision:
    emit: bool
    reason: DecisionReason

class AlertEvent(TypedDict, total=False):
    symbol: str
    pair: str
    rsi: float
    price: float
    sma25: float
    sma_diff_pct: float
    volume_quote: float
    count: int
    ts: float
    reason: str
    message: str
    delivered: bool
