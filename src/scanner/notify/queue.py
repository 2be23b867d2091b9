from __future__ import annotations
import asyncio
from dataclasses import dataclass

@dataclass(slots=True)
class QueueStats:
    enq_ok: int = 0
    enq_drop: int = 0
    deq_ok: int = 0

class NotifyQueue:
    """
    Bounded, non-blocking queue of rendered alert texts.
    - try_put(text) drops on full and increments a counter
    - get() awaits like a normal queue
    """
    def __init__(self, maxsize: int = 200):
        self._q: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self.stats = QueueStats()

    def try_put(self, text: str) -> bool:
        try:
            self._q.put_nowait(text)
            self.stats.enq_ok += 1
            return True
        except asyncio.QueueFull:
            self.stats.enq_drop += 1
            return False

    async def get(self) -> str:
        item = await self._q.get()
        self.stats.deq_ok += 1
        return item
