from __future__ import annotations
import math
from typing import Any, Optional
from scanner.utils.types import TickerSnapshot

def _to_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None

def base_symbol(pair: str) -> str:
    """'btc_idr' -> 'BTC'"""
    return pair.split("_", 1)[0].upper()

def parse_ticker_msg(pair: str, m: dict, quote: str = "idr") -> Optional[TickerSnapshot]:
    """
    Return TickerSnapshot for one entry of the summaries listing; else None.

    Indodax summaries entry:
      - "last":    "500000000"   (last trade price, string)
      - "vol_idr": "2000000000"  (24h volume in quote currency)
      - "vol_btc": "4.1"         (24h volume in base currency, ignored)
    Some feeds use "vol_quote" instead of "vol_<quote>".
    """
    if not isinstance(m, dict) or "_" not in pair:
        return None
    if not pair.lower().endswith(f"_{quote.lower()}"):
        return None

    px = _to_float(m.get("last"))
    vol = _to_float(m.get(f"vol_{quote.lower()}", m.get("vol_quote")))
    if px is None or vol is None or px <= 0.0:
        return None
    return TickerSnapshot(symbol=base_symbol(pair), pair=pair, last_price=px, volume_quote=vol)

def parse_summaries(payload: Any, quote: str = "idr") -> list[TickerSnapshot]:
    """Listing order is preserved; malformed entries are dropped."""
    if not isinstance(payload, dict):
        return []
    tickers = payload.get("tickers", payload)
    if not isinstance(tickers, dict):
        return []
    out: list[TickerSnapshot] = []
    for pair, m in tickers.items():
        snap = parse_ticker_msg(str(pair), m, quote)
        if snap is not None:
            out.append(snap)
    return out

def parse_candle_closes(payload: Any) -> Optional[list[float]]:
    """
    TradingView history payload -> closes oldest-first, or None when the payload
    is not a list or any Close is missing/non-numeric.
    Accepts both [{"Time":..,"Close":..}, ...] rows and the {"s":"ok","c":[..]} shape.
    """
    if isinstance(payload, dict) and isinstance(payload.get("c"), list):
        rows = [{"Close": c} for c in payload["c"]]
    elif isinstance(payload, list):
        rows = payload
    else:
        return None

    closes: list[float] = []
    for r in rows:
        c = _to_float(r.get("Close", r.get("close"))) if isinstance(r, dict) else None
        if c is None:
            return None
        closes.append(c)
    return closes
