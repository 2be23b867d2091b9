from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Literal, Optional

def next_backoff(prev: float, cap: float) -> float:
    """Exponential backoff progression with cap (no jitter)."""
    return min(prev * 2.0, cap)

def jitter(v: float, *, ratio: float = 0.2) -> float:
    """
    Add ±ratio jitter. ratio=0.2 -> multiply by [0.8, 1.2].
    """
    lo = 1.0 - ratio
    hi = 1.0 + ratio
    return v * (lo + (hi - lo) * random.random())


CooloffMode = Literal["fixed", "exponential"]

@dataclass(slots=True)
class CooloffPolicy:
    """
    Extended pause after the provider rate-limits the ticker listing.

    - mode="fixed":        every 429 pauses base_s
    - mode="exponential":  base_s, 2*base_s, ... capped at max_s while 429s keep coming
    A successful cycle calls reset() and the next 429 starts again at base_s.
    """
    base_s: float = 600.0
    max_s: float = 3600.0
    mode: CooloffMode = "exponential"
    _strikes: int = field(default=0, init=False)

    @property
    def strikes(self) -> int:
        return self._strikes

    def next_delay(self, retry_after_s: Optional[float] = None) -> float:
        if self.mode == "fixed" or self._strikes == 0:
            delay = self.base_s
        else:
            delay = self.base_s
            for _ in range(self._strikes):
                delay = next_backoff(delay, self.max_s)
        self._strikes += 1
        delay = min(delay, self.max_s)
        if retry_after_s is not None and retry_after_s > delay:
            delay = float(retry_after_s)
        return delay

    def reset(self) -> None:
        self._strikes = 0
