# src/scanner/alerts/rules.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from scanner.utils.types import TechnicalReading


def evaluate(
    price: Optional[float],
    sma25: Optional[float],
    rsi: Optional[float],
    lower_rsi_bound: float = 50.0,
    upper_rsi_bound: float = 100.0,
) -> bool:
    """
    Bullish momentum: price strictly above SMA25 and RSI inside the band
    (both bounds inclusive). Missing or NaN inputs never pass.
    """
    for v in (price, sma25, rsi):
        if v is None or (isinstance(v, float) and math.isnan(v)):
            return False
    return price > sma25 and lower_rsi_bound <= rsi <= upper_rsi_bound


@dataclass(slots=True)
class MomentumRule:
    """
    Signal knobs for the scanner.
    - min_volume:        pairs with 24h quote volume <= this are never evaluated
    - rsi_lower/upper:   inclusive RSI band
    Cooldown and its break thresholds belong to AlertStateStore.
    """
    name: str = "rsi_sma25_momentum"
    min_volume: float = 10_000_000_000.0
    rsi_lower: float = 50.0
    rsi_upper: float = 100.0

    def volume_ok(self, volume_quote: float) -> bool:
        return volume_quote > self.min_volume

    def passes(self, reading: TechnicalReading) -> bool:
        return evaluate(reading.price, reading.sma25, reading.rsi, self.rsi_lower, self.rsi_upper)
