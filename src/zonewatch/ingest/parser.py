from __future__ import annotations
from typing import Optional
from zonewatch.utils.types import PriceTick
from zonewatch.utils.time import utc_now_s

_QUOTES = ("USDT", "USDC", "FDUSD", "BUSD", "BTC", "ETH", "EUR")

def market_id(symbol: str) -> str:
    """'BTC/USDT' or 'btc-usdt' -> 'BTCUSDT' (exchange wire form)."""
    return symbol.replace("/", "").replace("-", "").upper()

def unified_symbol(mid: str) -> str:
    """'BTCUSDT' -> 'BTC/USDT' for the common quote assets; unknown quotes pass through."""
    mid = mid.upper()
    for q in _QUOTES:
        if mid.endswith(q) and len(mid) > len(q):
            return f"{mid[:-len(q)]}/{q}"
    return mid

def parse_ticker_msg(m: dict, symbol: Optional[str] = None) -> Optional[PriceTick]:
    """
    Return PriceTick if `m` carries a last-trade price; else None.

    Binance ticker payloads:
      - /api/v3/ticker/price  {"symbol": "BTCUSDT", "price": "65000.10"}
      - /api/v3/ticker/24hr   {"symbol": "BTCUSDT", "lastPrice": "65000.10", "closeTime": 1700000000000, ...}
    """
    if not isinstance(m, dict):
        return None
    px = m.get("price")
    if px is None:
        px = m.get("lastPrice")
    sym = symbol or (unified_symbol(m["symbol"]) if m.get("symbol") else None)
    if sym is None or px is None:
        return None
    try:
        price = float(px)
    except (TypeError, ValueError):
        return None
    if price <= 0.0:
        return None

    ts = m.get("closeTime") or m.get("time")
    if isinstance(ts, (int, float)):
        if ts > 1e12:  # ns or ms → s
            ts = ts / 1e9 if ts > 1e15 else ts / 1e3
    else:
        ts = utc_now_s()

    return PriceTick(symbol=sym, price=price, ts=float(ts))
