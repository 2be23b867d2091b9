# src/scanner/indicators/basic_indicators.py
from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from scanner.utils.types import InsufficientData, TechnicalReading

# ----------------------------
# Parameter presets for 1h candles
# ----------------------------
DEFAULT_RSI    = 14      # Wilder RSI(14)
DEFAULT_SMA    = 25      # trend baseline
MIN_HISTORY    = 30      # closed candles required before the live price is appended


# ============================================================
# Series helpers (aligned with the input, NaN before warm-up)
# ============================================================

def compute_sma_series(c: np.ndarray, periods: int) -> np.ndarray:
    out = np.full(c.size, np.nan, dtype=np.float64)
    if periods <= 0 or c.size < periods:
        return out
    csum = np.cumsum(np.insert(c.astype(np.float64), 0, 0.0))
    out[periods - 1:] = (csum[periods:] - csum[:-periods]) / periods
    return out


def _rsi_from_avgs(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0.0:
        return 100.0
    if avg_gain == 0.0:
        return 0.0
    rs = avg_gain / avg_loss
    return min(100.0, max(0.0, 100.0 - 100.0 / (1.0 + rs)))


def compute_rsi_series(c: np.ndarray, periods: int) -> np.ndarray:
    """
    Wilder RSI. The first average gain/loss is the simple mean of the first
    `periods` deltas; later values use (prev * (n-1) + x) / n.
    out[i] is defined from i == periods onward (needs periods + 1 prices).
    """
    out = np.full(c.size, np.nan, dtype=np.float64)
    if periods <= 0 or c.size < periods + 1:
        return out
    delta = np.diff(c.astype(np.float64))
    gain = np.maximum(delta, 0.0)
    loss = np.maximum(-delta, 0.0)

    avg_gain = float(gain[:periods].mean())
    avg_loss = float(loss[:periods].mean())
    out[periods] = _rsi_from_avgs(avg_gain, avg_loss)
    for i in range(periods, delta.size):
        avg_gain = (avg_gain * (periods - 1) + gain[i]) / periods
        avg_loss = (avg_loss * (periods - 1) + loss[i]) / periods
        out[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)
    return out


def _last_defined(series: np.ndarray) -> float | None:
    if series.size == 0 or np.isnan(series[-1]):
        return None
    return float(series[-1])


# ============================================================
# Reading for one symbol
# ============================================================

def compute_indicators(
    closes: Sequence[float],
    current_price: float,
    *,
    rsi_period: int = DEFAULT_RSI,
    sma_period: int = DEFAULT_SMA,
    min_history: int = MIN_HISTORY,
) -> TechnicalReading | InsufficientData:
    """
    RSI / SMA over closed candles with the live quote appended as the final
    point, so the reading reflects the current price rather than the last
    closed candle.

    Returns InsufficientData (never raises) when there is not enough clean
    history to compute both indicators.
    """
    n_hist = len(closes)
    if n_hist < min_history:
        return InsufficientData(reason="short_history", points=n_hist)

    c = np.asarray(list(closes) + [current_price], dtype=np.float64)
    if not np.all(np.isfinite(c)):
        return InsufficientData(reason="non_finite_close", points=n_hist)
    if c.size < rsi_period + 1 or c.size < sma_period:
        return InsufficientData(reason="short_window", points=n_hist)

    rsi = _last_defined(compute_rsi_series(c, rsi_period))
    sma = _last_defined(compute_sma_series(c, sma_period))
    if rsi is None or sma is None or math.isnan(rsi):
        return InsufficientData(reason="undefined_indicator", points=n_hist)

    return TechnicalReading(price=float(current_price), rsi=rsi, sma25=sma)
