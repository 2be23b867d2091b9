# src/scanner/scan/orchestrator.py
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional, Protocol, Sequence

import structlog

from scanner.alerts.formatting import format_alert_pretty
from scanner.alerts.notifiers import Notifier
from scanner.alerts.rules import MomentumRule
from scanner.alerts.store import AlertStateStore
from scanner.indicators.basic_indicators import compute_indicators
from scanner.ingest.errors import DataUnavailable
from scanner.utils.time import utc_now_s
from scanner.utils.types import AlertEvent, InsufficientData, TechnicalReading, TickerSnapshot

CandleFetcher = Callable[[TickerSnapshot], Awaitable[Sequence[float]]]


class MarketSource(Protocol):
    async def fetch_tickers(self) -> list[TickerSnapshot]: ...
    async def fetch_closes(self, snap: TickerSnapshot) -> list[float]: ...


@dataclass(slots=True)
class CycleStats:
    pairs: int = 0
    volume_ok: int = 0
    fetched: int = 0
    fetch_failed: int = 0
    insufficient: int = 0
    signals: int = 0
    suppressed: int = 0
    alerts: int = 0
    notify_failed: int = 0
    pair_errors: int = 0


class ScanOrchestrator:
    """
    One scan cycle over a ticker listing, strictly sequential:

      volume pre-filter → (paced) candle fetch → indicators → signal → store decision
      → render + notify → record_alert

    Pacing: fetch_delay_s is awaited before every candle fetch after the first in
    a cycle; sequential iteration is what keeps request volume under the
    provider's limits, so pairs are never fetched concurrently.

    Per-pair failures (fetch errors, bad data, unexpected exceptions) are logged
    and skipped. Notifier failures are logged and the alert is still recorded.
    """

    def __init__(
        self,
        rule: MomentumRule,
        store: AlertStateStore,
        notifier: Notifier,
        *,
        fetch_delay_s: float = 1.5,
        tz_name: str = "Asia/Jakarta",
        quote_label: str = "IDR",
        format_fn: Optional[Callable[[AlertEvent], str]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = utc_now_s,
    ):
        self.rule = rule
        self.store = store
        self.notifier = notifier
        self.fetch_delay_s = float(fetch_delay_s)
        self.tz_name = tz_name
        self._format_fn = format_fn or (lambda e: format_alert_pretty(e, tz_name, quote_label))
        self._sleep = sleep
        self._clock = clock
        self._log = structlog.get_logger("orchestrator")
        self.last_stats = CycleStats()

    # ---------------------------- entry points ---------------------------- #

    async def scan_once(self, market: MarketSource, now: Optional[float] = None) -> list[AlertEvent]:
        """
        Pull the listing and run a cycle over it. Listing failures (RateLimited,
        MarketDataError, ...) propagate to the scheduler.
        """
        snaps = await market.fetch_tickers()
        return await self.run_cycle(snaps, market.fetch_closes, now=now)

    async def run_cycle(
        self,
        snapshots: Sequence[TickerSnapshot],
        candle_fetcher: CandleFetcher,
        now: Optional[float] = None,
    ) -> list[AlertEvent]:
        stats = CycleStats(pairs=len(snapshots))
        self.last_stats = stats
        cycle_now = self._clock() if now is None else now
        self.store.roll_day(cycle_now)

        emitted: list[AlertEvent] = []
        fetches = 0
        for snap in snapshots:
            try:
                if not self.rule.volume_ok(snap.volume_quote):
                    continue
                stats.volume_ok += 1

                if fetches > 0 and self.fetch_delay_s > 0:
                    await self._sleep(self.fetch_delay_s)
                fetches += 1

                reading = await self._reading_for(snap, candle_fetcher, stats)
                if reading is None:
                    continue

                evt = await self._decide_and_notify(snap, reading, now, stats)
                if evt is not None:
                    emitted.append(evt)
            except asyncio.CancelledError:
                raise
            except Exception:
                stats.pair_errors += 1
                self._log.exception("pair_error", pair=snap.pair)
                continue

        self._log.info("cycle_done", **asdict(stats))
        return emitted

    # ---------------------------- per pair ---------------------------- #

    async def _reading_for(
        self, snap: TickerSnapshot, candle_fetcher: CandleFetcher, stats: CycleStats
    ) -> Optional[TechnicalReading]:
        try:
            closes = await candle_fetcher(snap)
        except DataUnavailable as e:
            stats.fetch_failed += 1
            self._log.warning("candles_unavailable", symbol=snap.symbol, reason=e.reason)
            return None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            stats.fetch_failed += 1
            self._log.warning("candles_fetch_error", symbol=snap.symbol, err=repr(e))
            return None
        stats.fetched += 1

        reading = compute_indicators(closes, snap.last_price)
        if isinstance(reading, InsufficientData):
            stats.insufficient += 1
            self._log.debug("insufficient_data", symbol=snap.symbol, reason=reading.reason,
                            points=reading.points)
            return None
        return reading

    async def _decide_and_notify(
        self,
        snap: TickerSnapshot,
        reading: TechnicalReading,
        now: Optional[float],
        stats: CycleStats,
    ) -> Optional[AlertEvent]:
        if not self.rule.passes(reading):
            return None
        stats.signals += 1

        # per-pair time: pacing makes the cycle span minutes
        ts = self._clock() if now is None else now
        decision = self.store.should_alert(snap.symbol, ts, reading.price, reading.rsi)
        if not decision.emit:
            stats.suppressed += 1
            self._log.debug("alert_suppressed", symbol=snap.symbol, reason=decision.reason)
            return None

        evt: AlertEvent = {
            "symbol": snap.symbol,
            "pair": snap.pair,
            "rsi": float(reading.rsi),
            "price": float(reading.price),
            "sma25": float(reading.sma25),
            "sma_diff_pct": float(reading.sma_diff_pct or 0.0),
            "volume_quote": float(snap.volume_quote),
            "count": self.store.next_count(snap.symbol, ts),
            "ts": float(ts),
            "reason": decision.reason,
        }
        evt["message"] = self._format_fn(evt)
        evt["delivered"] = await self._notify(evt)

        st = self.store.record_alert(snap.symbol, ts, reading.price, reading.rsi,
                                     volume=snap.volume_quote)
        if not evt["delivered"]:
            stats.notify_failed += 1
        stats.alerts += 1
        self._log.info("alert_emitted", symbol=snap.symbol, count=st.alert_count,
                       rsi=round(evt["rsi"], 2), price=evt["price"], reason=decision.reason,
                       delivered=evt["delivered"])
        return evt

    async def _notify(self, evt: AlertEvent) -> bool:
        try:
            ok = bool(await self.notifier.send(evt["message"]))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.error("notify_failed", symbol=evt["symbol"], err=repr(e))
            return False
        if not ok:
            self._log.error("notify_failed", symbol=evt["symbol"], err="rejected")
        return ok
