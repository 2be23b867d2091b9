from __future__ import annotations

import time
from datetime import date, datetime
from zoneinfo import ZoneInfo

# --- clock helpers ---

def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()

def monotonic_s() -> float:
    """Monotonic seconds, for interval scheduling only."""
    return time.monotonic()

def local_dt(ts: float | int, tz_name: str) -> datetime:
    """Epoch seconds -> aware datetime in tz_name."""
    return datetime.fromtimestamp(float(ts), ZoneInfo(tz_name))

def local_date(ts: float | int, tz_name: str) -> date:
    """Calendar date of ts in tz_name (used for the daily counter reset)."""
    return local_dt(ts, tz_name).date()

def fmt_local_time(ts: float | int, tz_name: str) -> str:
    """e.g. 14:05:09 WIB"""
    return local_dt(ts, tz_name).strftime("%H:%M:%S %Z")
