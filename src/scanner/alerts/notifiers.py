# src/scanner/alerts/notifiers.py
from __future__ import annotations
import structlog
from typing import Protocol, Sequence

log = structlog.get_logger("notifier")

class Notifier(Protocol):
    async def send(self, text: str) -> bool: ...

class ConsoleNotifier:
    def __init__(self, stream=None):
        self._stream = stream

    async def send(self, text: str) -> bool:
        print(text, file=self._stream, flush=True)
        return True

class MultiNotifier:
    """Fan out one rendered message; succeeds if any child delivered/accepted it."""
    def __init__(self, notifiers: Sequence[Notifier]):
        self._notifiers = list(notifiers)

    async def send(self, text: str) -> bool:
        ok = False
        for n in self._notifiers:
            try:
                ok = bool(await n.send(text)) or ok
            except Exception as e:
                log.warning("notifier_child_failed", notifier=type(n).__name__, err=str(e))
        return ok
