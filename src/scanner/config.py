from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from scanner.alerts.rules import MomentumRule
from scanner.alerts.store import AlertStateStore
from scanner.indicators.basic_indicators import MIN_HISTORY
from scanner.ingest.indodax import IndodaxConfig
from scanner.utils.backoff import CooloffPolicy
from scanner.utils.time import utc_now_s

T = TypeVar("T")


class ConfigError(ValueError):
    """Bad or missing setting. Only raised at startup."""


# Indodax chart resolutions that are not plain minute counts
_TF_UNITS = {"D": 1440, "W": 10080}


def timeframe_minutes(tf: str) -> int:
    """Minutes per candle: "60" -> 60, "1D" -> 1440, "1W" -> 10080. Raises ConfigError otherwise."""
    tf = tf.strip().upper()
    try:
        if tf and tf[-1] in _TF_UNITS:
            minutes = int(tf[:-1] or "1") * _TF_UNITS[tf[-1]]
        else:
            minutes = int(tf)
    except ValueError as e:
        raise ConfigError(f"unknown CANDLE_TIMEFRAME {tf!r}") from e
    if minutes <= 0:
        raise ConfigError(f"CANDLE_TIMEFRAME must be positive (got {tf!r})")
    return minutes


@dataclass(slots=True)
class ScannerConfig:
    # strategy
    min_volume: float = 10_000_000_000.0
    rsi_lower: float = 50.0
    rsi_upper: float = 100.0
    cooldown_seconds: int = 600
    break_price_pct: float = 0.02
    break_rsi_points: float = 5.0
    # cadence / flow control
    scan_interval_s: float = 300.0
    candle_fetch_delay_s: float = 1.5
    http_timeout_s: float = 15.0
    cooloff_s: float = 600.0
    cooloff_max_s: float = 3600.0
    # provider
    base_url: str = "https://indodax.com"
    quote_asset: str = "idr"
    candle_timeframe: str = "60"
    candle_lookback_s: int = 48 * 3600
    # presentation / ops
    tz_name: str = "Asia/Jakarta"
    log_level: str = "INFO"

    def validate(self) -> "ScannerConfig":
        if not (0.0 <= self.rsi_lower <= self.rsi_upper <= 100.0):
            raise ConfigError(f"RSI band must satisfy 0 <= lower <= upper <= 100 (got {self.rsi_lower}..{self.rsi_upper})")
        for name in ("scan_interval_s", "http_timeout_s", "cooloff_s", "cooloff_max_s"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")
        for name in ("min_volume", "cooldown_seconds", "candle_fetch_delay_s",
                     "break_price_pct", "break_rsi_points"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")
        if self.cooloff_max_s < self.cooloff_s:
            raise ConfigError("cooloff_max_s must be >= cooloff_s")
        # the history window must hold enough closed candles for the indicators
        need_s = MIN_HISTORY * timeframe_minutes(self.candle_timeframe) * 60
        if self.candle_lookback_s < need_s:
            raise ConfigError(
                f"candle_lookback_s={self.candle_lookback_s} holds fewer than {MIN_HISTORY} "
                f"candles of timeframe {self.candle_timeframe!r} (need >= {need_s})"
            )
        if self.log_level not in logging.getLevelNamesMapping():
            raise ConfigError(f"unknown LOG_LEVEL {self.log_level!r}")
        try:
            ZoneInfo(self.tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"unknown TZ_NAME {self.tz_name!r}") from e
        return self

    # ---- builders for the components ----

    def rule(self) -> MomentumRule:
        return MomentumRule(
            min_volume=self.min_volume,
            rsi_lower=self.rsi_lower,
            rsi_upper=self.rsi_upper,
        )

    def store(self, clock: Callable[[], float] = utc_now_s) -> AlertStateStore:
        return AlertStateStore(
            cooldown_seconds=self.cooldown_seconds,
            break_price_pct=self.break_price_pct,
            break_rsi_points=self.break_rsi_points,
            tz_name=self.tz_name,
            clock=clock,
        )

    def indodax(self) -> IndodaxConfig:
        return IndodaxConfig(
            base_url=self.base_url.rstrip("/"),
            quote_asset=self.quote_asset,
            timeframe=self.candle_timeframe,
            lookback_s=self.candle_lookback_s,
            timeout_s=self.http_timeout_s,
        )

    def cooloff(self) -> CooloffPolicy:
        return CooloffPolicy(base_s=self.cooloff_s, max_s=self.cooloff_max_s)


def _get(env: Mapping[str, str], key: str, cast: Callable[[str], T], default: T) -> T:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigError(f"{key}={raw!r}: {e}") from e


def config_from_env(env: Optional[Mapping[str, str]] = None) -> ScannerConfig:
    """Build ScannerConfig from env (call load_dotenv() first). Raises ConfigError."""
    env = os.environ if env is None else env
    d = ScannerConfig()
    cfg = ScannerConfig(
        min_volume=_get(env, "MIN_VOLUME", float, d.min_volume),
        rsi_lower=_get(env, "RSI_LOWER", float, d.rsi_lower),
        rsi_upper=_get(env, "RSI_UPPER", float, d.rsi_upper),
        cooldown_seconds=_get(env, "COOLDOWN_SECONDS", int, d.cooldown_seconds),
        break_price_pct=_get(env, "BREAK_PRICE_PCT", float, d.break_price_pct),
        break_rsi_points=_get(env, "BREAK_RSI_POINTS", float, d.break_rsi_points),
        scan_interval_s=_get(env, "SCAN_INTERVAL_SECONDS", float, d.scan_interval_s),
        candle_fetch_delay_s=_get(env, "CANDLE_FETCH_DELAY_SECONDS", float, d.candle_fetch_delay_s),
        http_timeout_s=_get(env, "HTTP_TIMEOUT_SECONDS", float, d.http_timeout_s),
        cooloff_s=_get(env, "COOLOFF_SECONDS", float, d.cooloff_s),
        cooloff_max_s=_get(env, "COOLOFF_MAX_SECONDS", float, d.cooloff_max_s),
        base_url=_get(env, "INDODAX_BASE_URL", str, d.base_url),
        quote_asset=_get(env, "QUOTE_ASSET", str.lower, d.quote_asset),
        candle_timeframe=_get(env, "CANDLE_TIMEFRAME", str, d.candle_timeframe),
        candle_lookback_s=_get(env, "CANDLE_LOOKBACK_SECONDS", int, d.candle_lookback_s),
        tz_name=_get(env, "TZ_NAME", str, d.tz_name),
        log_level=_get(env, "LOG_LEVEL", str.upper, d.log_level),
    )
    return cfg.validate()
