from __future__ import annotations

from datetime import date
from typing import Callable, Iterator, Optional

import structlog

from scanner.alerts.state import SymbolAlertState
from scanner.utils.time import local_date, utc_now_s
from scanner.utils.types import AlertDecision

log = structlog.get_logger("alert_store")


class AlertStateStore:
    """
    Owns every piece of per-symbol alert state for the process lifetime.

    Decision and mutation are separate calls:
      - should_alert(...)  pure read, returns an AlertDecision
      - record_alert(...)  the only writer; call it once the alert was dispatched

    Cooldown rule: suppress while now - last_alert_at < cooldown_seconds, unless
    the price is up >= break_price_pct or RSI is up >= break_rsi_points since the
    last alert (a fresh move makes the old cooldown stale).

    Daily reset: the first roll_day()/record_alert() whose local date differs
    from the stored marker zeroes alert_count on every symbol. Cooldown fields
    are left alone.
    """

    def __init__(
        self,
        *,
        cooldown_seconds: float = 600.0,
        break_price_pct: float = 0.02,
        break_rsi_points: float = 5.0,
        tz_name: str = "Asia/Jakarta",
        clock: Callable[[], float] = utc_now_s,
    ):
        self.cooldown_seconds = float(cooldown_seconds)
        self.break_price_pct = float(break_price_pct)
        self.break_rsi_points = float(break_rsi_points)
        self.tz_name = tz_name
        self._clock = clock
        self._states: dict[str, SymbolAlertState] = {}
        self._day: date = local_date(self._clock(), tz_name)

    # ---------- read side ----------

    def get(self, symbol: str) -> Optional[SymbolAlertState]:
        return self._states.get(symbol)

    def symbols(self) -> Iterator[str]:
        return iter(list(self._states))

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._states

    def __len__(self) -> int:
        return len(self._states)

    @property
    def current_day(self) -> date:
        return self._day

    def next_count(self, symbol: str, now: Optional[float] = None) -> int:
        """Sequence number the next alert for `symbol` will carry."""
        st = self._states.get(symbol)
        if st is None:
            return 1
        now = self._clock() if now is None else now
        if local_date(now, self.tz_name) != self._day:
            return 1  # the pending rollover zeroes it first
        return st.alert_count + 1

    def should_alert(
        self,
        symbol: str,
        now: Optional[float],
        price: float,
        rsi: float,
    ) -> AlertDecision:
        now = self._clock() if now is None else now
        st = self._states.get(symbol)
        if st is None or st.last_alert_at is None:
            return AlertDecision(True, "first_alert")
        if not st.in_cooldown(now, self.cooldown_seconds):
            return AlertDecision(True, "cooldown_elapsed")

        if st.last_alert_price is not None and st.last_alert_rsi is not None:
            if st.last_alert_price > 0.0:
                move = (price - st.last_alert_price) / st.last_alert_price
                if move >= self.break_price_pct:
                    return AlertDecision(True, "cooldown_break_price")
            if (rsi - st.last_alert_rsi) >= self.break_rsi_points:
                return AlertDecision(True, "cooldown_break_rsi")

        return AlertDecision(False, "cooldown")

    # ---------- write side ----------

    def roll_day(self, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        today = local_date(now, self.tz_name)
        if today == self._day:
            return False
        for st in self._states.values():
            st.alert_count = 0
        prev, self._day = self._day, today
        log.info("daily_counter_reset", prev_day=prev.isoformat(), day=today.isoformat(),
                 symbols=len(self._states))
        return True

    def record_alert(
        self,
        symbol: str,
        now: Optional[float],
        price: float,
        rsi: float,
        volume: Optional[float] = None,
    ) -> SymbolAlertState:
        now = self._clock() if now is None else now
        self.roll_day(now)
        st = self._states.get(symbol)
        if st is None:
            st = SymbolAlertState()
            self._states[symbol] = st
        st.alert_count += 1
        st.last_alert_at = float(now)
        st.last_alert_price = float(price)
        st.last_alert_rsi = float(rsi)
        if volume is not None:
            st.last_known_volume = float(volume)
        return st
