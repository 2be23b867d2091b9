from __future__ import annotations

from typing import Optional


class MarketDataError(RuntimeError):
    """Ticker listing failed (network, timeout, non-2xx, bad payload). Aborts the cycle."""


class RateLimited(MarketDataError):
    """Listing endpoint answered 429. The scheduler enters its cool-off."""

    def __init__(self, message: str = "rate limited", retry_after_s: Optional[float] = None):
        super().__init__(message)
        self.retry_after_s = retry_after_s


class DataUnavailable(RuntimeError):
    """Candle data for one symbol could not be used. The symbol is skipped this cycle."""

    def __init__(self, symbol: str, reason: str):
        super().__init__(f"{symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason
