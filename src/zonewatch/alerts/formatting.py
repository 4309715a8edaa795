from __future__ import annotations
from datetime import datetime
from html import escape
from typing import Literal, Sequence
from zoneinfo import ZoneInfo

from zonewatch.utils.types import CrossingEvent, TriggerEvent

StatusKind = Literal["info", "warning", "error"]

_SIDE_ICON = {"BUY": "💚", "SELL": "🔴"}
_SIDE_TEXT = {"BUY": "BUY signal", "SELL": "SELL signal"}
_CROSSING_ICON = {"ENTER": "🎯", "EXIT": "⬅️", "THROUGH": "⏩"}
_CROSSING_TEXT = {"ENTER": "entered", "EXIT": "left", "THROUGH": "jumped through"}
_STATUS_ICON = {"info": "ℹ️", "warning": "⚠️", "error": "❌"}

def _fmt_ts(ts_s: float, tz_name: str) -> str:
    tz = ZoneInfo(tz_name)
    return datetime.fromtimestamp(ts_s, tz).strftime("%Y-%m-%d %H:%M:%S %Z")  # e.g., 2025-07-20 08:15:00 UTC

def _tag(symbol: str) -> str:
    return symbol.replace("/", "").replace("-", "")

def deviation_pct(current: float, target: float) -> float:
    if target == 0:
        return 0.0
    return (current - target) / target * 100.0

def tolerance_pct(tolerance: float, target: float) -> float:
    if target == 0:
        return 0.0
    return tolerance / target * 100.0

def format_trigger(evt: TriggerEvent, tz_name: str = "UTC") -> str:
    sym = escape(evt.symbol)
    return (
        f"🎯 <b>{_SIDE_TEXT[evt.side]}</b> {_SIDE_ICON[evt.side]}\n"
        f"\n"
        f"📊 <b>Symbol:</b> {sym}\n"
        f"💰 <b>Price:</b> ${evt.current_price:.6f}\n"
        f"🎯 <b>Zone:</b> ${evt.target_price:.6f}\n"
        f"📈 <b>Deviation:</b> {deviation_pct(evt.current_price, evt.target_price):+.2f}%\n"
        f"⚡ <b>Tolerance:</b> ±{tolerance_pct(evt.tolerance, evt.target_price):.2f}%\n"
        f"🎯 <b>Confidence:</b> {evt.confidence * 100:.1f}%\n"
        f"\n"
        f"⏰ <b>Time:</b> {_fmt_ts(evt.timestamp, tz_name)}\n"
        f"\n"
        f"#PriceTrigger #{_tag(sym)} #{evt.side}"
    )

def format_multi_zone(events: Sequence[TriggerEvent], tz_name: str = "UTC") -> str:
    """One message itemizing every trigger of a batch. Events share symbol and side."""
    if not events:
        raise ValueError("format_multi_zone needs at least one event")
    first = events[0]
    sym = escape(first.symbol)
    lines = [
        "🚨 <b>Multi-zone trigger</b> 🚨",
        "",
        f"📊 <b>Symbol:</b> {sym}",
        f"💰 <b>Price:</b> ${events[-1].current_price:.6f}",
        f"⏰ <b>Time:</b> {_fmt_ts(first.timestamp, tz_name)}",
        "",
        f"{_SIDE_ICON[first.side]} <b>{_SIDE_TEXT[first.side]}s ({len(events)}):</b>",
    ]
    for i, e in enumerate(events, start=1):
        lines.append(
            f"{i}. Zone: ${e.target_price:.6f} | "
            f"Deviation: {deviation_pct(e.current_price, e.target_price):+.2f}% | "
            f"Confidence: {e.confidence * 100:.1f}%"
        )
    lines += ["", f"#MultiZoneTrigger #{_tag(sym)} #{first.side}"]
    return "\n".join(lines)

def format_crossing(evt: CrossingEvent, tz_name: str = "UTC") -> str:
    sym = escape(evt.symbol)
    zone_text = "buy zone" if evt.side == "BUY" else "sell zone"
    return (
        f"{_CROSSING_ICON[evt.kind]} <b>Zone crossing</b> {_SIDE_ICON[evt.side]}\n"
        f"\n"
        f"📊 <b>Symbol:</b> {sym}\n"
        f"🎯 <b>Event:</b> {_CROSSING_TEXT[evt.kind]} {zone_text}\n"
        f"💰 <b>Price:</b> ${evt.previous_price:.6f} → ${evt.current_price:.6f}\n"
        f"🎯 <b>Zone center:</b> ${evt.target_price:.6f}\n"
        f"📈 <b>Deviation:</b> {deviation_pct(evt.current_price, evt.target_price):+.2f}%\n"
        f"⚡ <b>Tolerance:</b> ±{tolerance_pct(evt.tolerance, evt.target_price):.2f}%\n"
        f"🎯 <b>Confidence:</b> {evt.confidence * 100:.1f}%\n"
        f"\n"
        f"⏰ <b>Time:</b> {_fmt_ts(evt.timestamp, tz_name)}\n"
        f"\n"
        f"#ZoneCrossing #{_tag(sym)} #{evt.side} #{evt.kind}"
    )

def format_status(kind: StatusKind, title: str, message: str, ts: float, tz_name: str = "UTC") -> str:
    return (
        f"{_STATUS_ICON[kind]} <b>System {kind}</b>\n"
        f"\n"
        f"📋 <b>Title:</b> {escape(title)}\n"
        f"📝 <b>Details:</b> {escape(message)}\n"
        f"⏰ <b>Time:</b> {_fmt_ts(ts, tz_name)}\n"
        f"\n"
        f"#System #{kind}"
    )

def format_test_message(ts: float, tz_name: str = "UTC") -> str:
    return (
        f"🧪 <b>Notification test</b>\n"
        f"\n"
        f"✅ Message delivery works\n"
        f"⏰ Sent at: {_fmt_ts(ts, tz_name)}\n"
        f"\n"
        f"#Test"
    )
