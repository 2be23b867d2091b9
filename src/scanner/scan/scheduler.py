from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable, Optional

import structlog

from scanner.ingest.errors import RateLimited
from scanner.utils.backoff import CooloffPolicy
from scanner.utils.time import monotonic_s


class CycleScheduler:
    """
    Fixed-interval driver for the scan job. Cycles never overlap: the loop awaits
    each cycle, and ticks that fall inside an overrunning cycle are skipped.

    Failure policy per cycle:
      - RateLimited        -> pause for the cool-off policy delay, then resume cadence
      - any other Exception -> log, next tick proceeds normally
    """

    def __init__(
        self,
        job: Callable[[], Awaitable[object]],
        *,
        interval_s: float = 300.0,
        cooloff: Optional[CooloffPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = monotonic_s,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.job = job
        self.interval_s = float(interval_s)
        self.cooloff = cooloff or CooloffPolicy()
        self._sleep = sleep
        self._clock = clock
        self._stop = asyncio.Event()
        self._log = structlog.get_logger("scheduler")

        self.cycles_ok = 0
        self.cycles_failed = 0
        self.rate_limited = 0
        self.ticks_skipped = 0

    async def run_once(self) -> float:
        """
        Run one guarded cycle. Returns seconds to wait before the next one.
        """
        started = self._clock()
        try:
            await self.job()
        except asyncio.CancelledError:
            raise
        except RateLimited as e:
            self.rate_limited += 1
            delay = self.cooloff.next_delay(e.retry_after_s)
            self._log.warning("rate_limited_cooloff", cooloff_s=round(delay, 1),
                              strikes=self.cooloff.strikes, retry_after_s=e.retry_after_s)
            return delay
        except Exception:
            self.cycles_failed += 1
            self._log.exception("cycle_failed")
        else:
            self.cycles_ok += 1
            self.cooloff.reset()
        return self._until_next_tick(self._clock() - started)

    def _until_next_tick(self, elapsed: float) -> float:
        if elapsed <= self.interval_s:
            return self.interval_s - elapsed
        # overran: drop the ticks that fired mid-cycle, align to the next one
        missed = int(math.floor(elapsed / self.interval_s))
        self.ticks_skipped += missed
        self._log.warning("ticks_skipped", missed=missed, elapsed_s=round(elapsed, 1))
        return (missed + 1) * self.interval_s - elapsed

    async def start(self) -> None:
        self._stop.clear()
        self._log.info("scheduler_start", interval_s=self.interval_s)
        while not self._stop.is_set():
            delay = await self.run_once()
            if self._stop.is_set():
                break
            await self._wait(delay)
        self._log.info("scheduler_exit", ok=self.cycles_ok, failed=self.cycles_failed,
                       rate_limited=self.rate_limited)

    async def _wait(self, delay: float) -> None:
        # stop() should not wait out a long cool-off
        sleeper = asyncio.ensure_future(self._sleep(max(0.0, delay)))
        stopper = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in (sleeper, stopper):
                if not t.done():
                    t.cancel()

    def stop(self) -> None:
        self._stop.set()
