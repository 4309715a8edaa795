# src/zonewatch/alerts/zones.py
from __future__ import annotations

import json
import math
from typing import Any, Iterable, Optional, Protocol

from zonewatch.utils.types import Side, TradingZone, ZoneSnapshot

# (side, price, tolerance) rounded; stable across snapshots with float noise
ZoneKey = tuple[str, float, float]


class ZoneDataError(ValueError):
    """Zone snapshot could not be parsed into TradingZone objects."""


def zone_key(side: Side, zone: TradingZone, precision: int = 6) -> ZoneKey:
    return (side, round(zone.price, precision), round(zone.tolerance, precision))


def in_band(price: float, zone: TradingZone) -> bool:
    """Inclusive membership in [price - tolerance, price + tolerance]."""
    return zone.lower <= price <= zone.upper


# ---------- parsing ----------

def _num(item: dict, name: str, idx: int) -> float:
    raw = item.get(name)
    if isinstance(raw, bool) or raw is None:
        raise ZoneDataError(f"zone #{idx}: missing or invalid '{name}'")
    try:
        v = float(raw)
    except (TypeError, ValueError):
        raise ZoneDataError(f"zone #{idx}: '{name}' is not a number: {raw!r}") from None
    if not math.isfinite(v):
        raise ZoneDataError(f"zone #{idx}: '{name}' is not finite")
    return v


def parse_zones(raw: Any) -> tuple[TradingZone, ...]:
    """
    Accepts a JSON string/bytes or an already-decoded list of
    {"price", "tolerance", "confidence"} objects. Raises ZoneDataError on anything else.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ZoneDataError(f"zones are not valid UTF-8: {e}") from e
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ZoneDataError(f"zones are not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise ZoneDataError(f"zones must be a list, got {type(raw).__name__}")

    out: list[TradingZone] = []
    for idx, item in enumerate(raw):
        if isinstance(item, TradingZone):
            out.append(item)
            continue
        if not isinstance(item, dict):
            raise ZoneDataError(f"zone #{idx}: expected object, got {type(item).__name__}")
        price = _num(item, "price", idx)
        tolerance = _num(item, "tolerance", idx)
        confidence = _num(item, "confidence", idx)
        if tolerance < 0:
            raise ZoneDataError(f"zone #{idx}: negative tolerance {tolerance}")
        if not 0.0 <= confidence <= 1.0:
            raise ZoneDataError(f"zone #{idx}: confidence {confidence} outside [0, 1]")
        out.append(TradingZone(price=price, tolerance=tolerance, confidence=confidence))
    return tuple(out)


def zones_to_json(zones: Iterable[TradingZone]) -> str:
    return json.dumps(
        [{"price": z.price, "tolerance": z.tolerance, "confidence": z.confidence} for z in zones]
    )


# ---------- sources ----------

class ZoneSource(Protocol):
    async def get_latest_zones(self, symbol: str) -> Optional[ZoneSnapshot]:
        """Latest zones for symbol, None when no analysis exists. May raise ZoneDataError."""
        ...


class StaticZoneSource:
    """
    In-memory zone source. Used for manual runs and tests; the analysis step
    (or a test) calls publish() whenever it has new zones.
    """
    def __init__(self):
        self._snapshots: dict[str, ZoneSnapshot] = {}

    def publish(self, symbol: str, buy_zones: Iterable[Any] = (), sell_zones: Iterable[Any] = ()) -> ZoneSnapshot:
        snap = ZoneSnapshot(
            buy_zones=parse_zones(list(buy_zones)),
            sell_zones=parse_zones(list(sell_zones)),
        )
        self._snapshots[symbol] = snap
        return snap

    def remove(self, symbol: str) -> None:
        self._snapshots.pop(symbol, None)

    async def get_latest_zones(self, symbol: str) -> Optional[ZoneSnapshot]:
        return self._snapshots.get(symbol)
