# src/scanner/main.py
import asyncio
import logging
import sys

import structlog
from dotenv import load_dotenv

from scanner.config import ConfigError, ScannerConfig, config_from_env
from scanner.alerts.notifiers import ConsoleNotifier, MultiNotifier
from scanner.ingest.indodax import IndodaxClient
from scanner.notify.telegram import TelegramNotifier, config_from_env as telegram_config_from_env
from scanner.scan.orchestrator import ScanOrchestrator
from scanner.scan.scheduler import CycleScheduler

log = structlog.get_logger()


# ---------------------------
# Logging
# ---------------------------

def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        cache_logger_on_first_use=True,
    )


# ---------------------------
# Telegram startup ping helper
# ---------------------------

async def telegram_startup_ping(tg_notifier: TelegramNotifier):
    await tg_notifier.send("✅ Momentum scanner started and Telegram is live.")


# ---------------------------
# Main
# ---------------------------

async def main(cfg: ScannerConfig):
    store = cfg.store()

    # ----- Notifications -----
    console_notifier = ConsoleNotifier()
    tg_notifier = None
    try:
        tg_notifier = TelegramNotifier(cfg=telegram_config_from_env())  # raises if env missing
        log.info("telegram_enabled")
    except KeyError:
        log.info("telegram_disabled_missing_env")
    notifier = MultiNotifier([console_notifier, tg_notifier] if tg_notifier else [console_notifier])

    market = IndodaxClient(cfg.indodax())
    orchestrator = ScanOrchestrator(
        cfg.rule(),
        store,
        notifier,
        fetch_delay_s=cfg.candle_fetch_delay_s,
        tz_name=cfg.tz_name,
        quote_label=cfg.quote_asset.upper(),
    )

    async def scan_job():
        log.info("scan_start", tracked=len(store))
        await orchestrator.scan_once(market)

    scheduler = CycleScheduler(scan_job, interval_s=cfg.scan_interval_s, cooloff=cfg.cooloff())

    await market.start()
    if tg_notifier is not None:
        await tg_notifier.start()
        await telegram_startup_ping(tg_notifier)
    log.info("scanner_started", min_volume=cfg.min_volume, rsi_band=(cfg.rsi_lower, cfg.rsi_upper),
             cooldown_s=cfg.cooldown_seconds, interval_s=cfg.scan_interval_s)
    try:
        await scheduler.start()
    finally:
        # graceful shutdown to avoid unclosed sessions
        scheduler.stop()
        await market.stop()
        if tg_notifier is not None:
            await tg_notifier.stop()


def run() -> None:
    load_dotenv()
    try:
        cfg = config_from_env()
    except ConfigError as e:
        configure_logging()
        log.error("config_invalid", err=str(e))
        sys.exit(2)
    configure_logging(cfg.log_level)
    try:
        asyncio.run(main(cfg))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
