from __future__ import annotations

from scanner.utils.time import fmt_local_time

RULE_LINE = "━━━━━━━━━━━━━━━━"

def _fmt_price(px: float) -> str:
    # IDR quotes are mostly whole numbers; keep decimals for sub-1 prices
    if px >= 1000:
        return f"{px:,.0f}"
    if px >= 1:
        return f"{px:,.2f}"
    return f"{px:.8f}".rstrip("0").rstrip(".")

def format_alert_pretty(evt: dict, tz_name: str = "Asia/Jakarta", quote: str = "IDR") -> str:
    sym    = evt.get("symbol", "?")
    rsi    = float(evt.get("rsi", 0.0))
    count  = int(evt.get("count", 1))
    price  = float(evt.get("price", 0.0))
    diff   = float(evt.get("sma_diff_pct", 0.0))
    vol    = float(evt.get("volume_quote", 0.0))
    ts     = float(evt.get("ts", 0.0))
    sign   = "+" if diff >= 0 else "-"

    return (
        f"🚀 #{sym} RSI: {rsi:.2f} | #{count} 🚀\n"
        f"{RULE_LINE}\n"
        f"vs SMA25: {sign}{abs(diff):.2f}%\n"
        f"Price: {_fmt_price(price)} {quote}\n"
        f"Vol 24h: {vol / 1e9:.2f}B {quote}\n"
        f"{RULE_LINE}\n"
        f"Status: uptrend detected\n"
        f"⏰ {fmt_local_time(ts, tz_name)}"
    )
