from __future__ import annotations
from dataclasses import dataclass

# one per symbol, created on its first emitted alert
@dataclass(slots=True)
class SymbolAlertState:
    alert_count: int = 0                  # display counter, zeroed at local midnight
    last_alert_at: float | None = None    # epoch seconds
    last_alert_price: float | None = None
    last_alert_rsi: float | None = None
    last_known_volume: float | None = None

    def in_cooldown(self, now: float, cooldown_seconds: float) -> bool:
        if self.last_alert_at is None:
            return False
        return (now - self.last_alert_at) < cooldown_seconds
