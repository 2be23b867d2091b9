from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

from scanner.notify.queue import NotifyQueue
from scanner.utils.backoff import jitter, next_backoff

log = structlog.get_logger("telegram")

# --------- small rate limiter (token bucket) ----------

class RateLimiter:
    def __init__(self, rate_per_sec: float, burst: int = 1):
        self.rate = float(rate_per_sec)
        self.capacity = int(burst)
        self.tokens = float(burst)
        self.updated = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self):
        async with self._lock:
            now = time.monotonic()
            # refill
            self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
            self.updated = now
            # wait if no token
            if self.tokens < 1.0:
                needed = 1.0 - self.tokens
                await asyncio.sleep(needed / self.rate)
                self.updated = time.monotonic()
                self.tokens = 1.0
            self.tokens -= 1.0

# --------- config & client ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_id: str                # personal chat id or group id
    parse_mode: Optional[str] = None  # "HTML" or "MarkdownV2" or None
    timeout_s: float = 8.0
    per_chat_rate_per_sec: float = 1.0
    per_chat_burst: int = 3
    max_retries: int = 3
    initial_backoff_s: float = 0.5
    max_backoff_s: float = 8.0
    queue_maxsize: int = 200
    api_base: str = "https://api.telegram.org"

def config_from_env() -> TelegramConfig:
    """Raises KeyError when TELEGRAM_TOKEN / TELEGRAM_CHAT_ID are missing."""
    token = os.environ["TELEGRAM_TOKEN"].strip()
    chat_id = os.environ["TELEGRAM_CHAT_ID"].strip()
    if not token or not chat_id:
        raise KeyError("TELEGRAM_TOKEN/TELEGRAM_CHAT_ID empty")
    return TelegramConfig(
        bot_token=token,
        chat_id=chat_id,
        parse_mode=os.getenv("TELEGRAM_PARSE_MODE") or None,
        timeout_s=float(os.getenv("TELEGRAM_TIMEOUT_SECONDS", "8")),
    )

class TelegramNotifier:
    """
    send(text) only enqueues (never blocks the scan cycle). A background worker
    drains the queue and posts to Telegram with rate limiting and bounded
    retry w/ backoff. Retry lives here, not in the scanner core.
    """
    def __init__(self, cfg: TelegramConfig, queue: Optional[NotifyQueue] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self.q = queue or NotifyQueue(maxsize=cfg.queue_maxsize)
        self._session = session
        self._owns_session = session is None
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._rl = RateLimiter(rate_per_sec=cfg.per_chat_rate_per_sec, burst=cfg.per_chat_burst)
        self.sent_ok = 0
        self.sent_failed = 0

    async def start(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="telegram-notifier")

    async def stop(self):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    async def send(self, text: str) -> bool:
        ok = self.q.try_put(text)
        if not ok:
            log.warning("telegram_queue_full", dropped=self.q.stats.enq_drop)
        return ok

    async def _loop(self):
        try:
            while not self._stop.is_set():
                text = await self.q.get()
                try:
                    await self._rl.acquire()
                    await self.deliver(text)
                except Exception:
                    # a single bad message must not end the worker
                    self.sent_failed += 1
                    log.exception("telegram_worker_error")
        except asyncio.CancelledError:
            return

    async def deliver(self, text: str) -> bool:
        assert self._session is not None
        url = f"{self.cfg.api_base}/bot{self.cfg.bot_token}/sendMessage"
        payload = {"chat_id": self.cfg.chat_id, "text": text}
        if self.cfg.parse_mode:
            payload["parse_mode"] = self.cfg.parse_mode

        backoff = self.cfg.initial_backoff_s
        for attempt in range(1, self.cfg.max_retries + 1):
            try:
                async with self._session.post(url, data=payload) as resp:
                    if resp.status == 200:
                        self.sent_ok += 1
                        return True
                    # 429 or 5xx → retry with backoff
                    detail = await _maybe_text(resp)
                    log.warning("telegram_send_failed", status=resp.status, body=detail[:300], attempt=attempt)
                    if resp.status == 429:
                        ra = await _retry_after(resp)
                        if ra:
                            # Telegram rejects anything sent before retry_after has passed
                            await asyncio.sleep(ra)
                            continue
                    if 500 <= resp.status < 600 or resp.status == 429:
                        await asyncio.sleep(jitter(backoff))
                        backoff = next_backoff(backoff, self.cfg.max_backoff_s)
                        continue
                    # other 4xx: don't retry
                    break
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.warning("telegram_network_error", err=str(e), attempt=attempt)
                await asyncio.sleep(jitter(backoff))
                backoff = next_backoff(backoff, self.cfg.max_backoff_s)
        self.sent_failed += 1
        log.error("telegram_give_up", attempts=self.cfg.max_retries)
        return False

async def _retry_after(resp: aiohttp.ClientResponse) -> Optional[float]:
    # Telegram puts retry_after (seconds) in the JSON body
    try:
        data = await resp.json(content_type=None)
    except (aiohttp.ClientError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    params = data.get("parameters")
    if not isinstance(params, dict):
        return None
    try:
        ra = float(params.get("retry_after") or 0)
    except (TypeError, ValueError):
        return None
    return ra if ra > 0 else None

async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return "<no body>"
