from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

import aiohttp
import structlog

from scanner.ingest import parser
from scanner.ingest.errors import DataUnavailable, MarketDataError, RateLimited
from scanner.utils.time import utc_now_s
from scanner.utils.types import TickerSnapshot


@dataclass(slots=True)
class IndodaxConfig:
    base_url: str = "https://indodax.com"
    quote_asset: str = "idr"
    # candles
    timeframe: str = "60"               # minutes per candle (TradingView tf)
    lookback_s: int = 48 * 3600         # 48 x 1h candles
    # timeouts
    timeout_s: float = 15.0
    user_agent: str = "Mozilla/5.0 (momentum-scanner)"


class IndodaxClient:
    """
    Public market-data endpoints used by the scanner.

      fetch_tickers()        GET /api/summaries           -> list[TickerSnapshot]
      fetch_closes(snap)     GET /tradingview/history_v2  -> list[float] (oldest first)

    Listing errors raise RateLimited (429) or MarketDataError (anything else);
    candle errors raise DataUnavailable so one symbol never aborts a cycle.
    """

    def __init__(
        self,
        cfg: Optional[IndodaxConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = utc_now_s,
    ):
        self.cfg = cfg or IndodaxConfig()
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._log = structlog.get_logger("indodax")

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(
                timeout=timeout, headers={"User-Agent": self.cfg.user_agent}
            )

    async def stop(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "IndodaxClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ---------------------------- listing ---------------------------- #

    async def fetch_tickers(self) -> list[TickerSnapshot]:
        assert self._session is not None, "call start() first"
        url = f"{self.cfg.base_url}/api/summaries"
        try:
            async with self._session.get(url) as resp:
                if resp.status == 429:
                    raise RateLimited("summaries 429", retry_after_s=_retry_after_header(resp))
                if resp.status != 200:
                    raise MarketDataError(f"summaries http {resp.status}")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise MarketDataError(f"summaries request failed: {e!r}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("tickers"), dict):
            raise MarketDataError("summaries payload without 'tickers'")
        snaps = parser.parse_summaries(payload, quote=self.cfg.quote_asset)
        self._log.debug("tickers_fetched", pairs=len(snaps))
        return snaps

    # ---------------------------- candles ---------------------------- #

    def _history_params(self, symbol: str) -> dict[str, str]:
        to = int(self._clock())
        return {
            "from": str(to - self.cfg.lookback_s),
            "to": str(to),
            "symbol": f"{symbol.upper()}{self.cfg.quote_asset.upper()}",
            "tf": self.cfg.timeframe,
        }

    async def fetch_closes(self, snap: TickerSnapshot) -> list[float]:
        assert self._session is not None, "call start() first"
        url = f"{self.cfg.base_url}/tradingview/history_v2"
        try:
            async with self._session.get(url, params=self._history_params(snap.symbol)) as resp:
                if resp.status != 200:
                    raise DataUnavailable(snap.symbol, f"history http {resp.status}")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DataUnavailable(snap.symbol, f"history request failed: {e!r}") from e

        closes = parser.parse_candle_closes(payload)
        if closes is None:
            raise DataUnavailable(snap.symbol, "malformed candle payload")
        return closes


def _retry_after_header(resp: aiohttp.ClientResponse) -> Optional[float]:
    raw = resp.headers.get("Retry-After") if resp.headers else None
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None
