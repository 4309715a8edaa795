from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from zonewatch.alerts.zones import ZoneKey, in_band, zone_key
from zonewatch.utils.types import Side, TradingZone


@dataclass(slots=True)
class ZoneDwellState:
    in_zone: bool = False
    fired: bool = False   # already fired during the current dwell; cleared on exit


@dataclass(frozen=True, slots=True)
class Transition:
    was_in_zone: bool
    is_in_zone: bool

    @property
    def entered(self) -> bool:
        return not self.was_in_zone and self.is_in_zone

    @property
    def exited(self) -> bool:
        return self.was_in_zone and not self.is_in_zone

    @property
    def dwelling(self) -> bool:
        return self.was_in_zone and self.is_in_zone


# per-symbol container, zones keyed by ZoneKey
@dataclass(slots=True)
class SymbolZoneState:
    zones: dict[ZoneKey, ZoneDwellState] = field(default_factory=dict)

    def ensure_zone(self, key: ZoneKey) -> ZoneDwellState:
        st = self.zones.get(key)
        if st is None:
            st = ZoneDwellState()
            self.zones[key] = st
        return st


class ZoneStateTracker:
    """
    Tracks, per (symbol, zone), whether the last observed price was inside the
    zone's band and whether the zone already fired during the current dwell.
    """
    def __init__(self, precision: int = 6):
        self.precision = precision
        self._symbols: dict[str, SymbolZoneState] = {}

    def _state_for(self, symbol: str) -> SymbolZoneState:
        st = self._symbols.get(symbol)
        if st is None:
            st = SymbolZoneState()
            self._symbols[symbol] = st
        return st

    def _key(self, side: Side, zone: TradingZone) -> ZoneKey:
        return zone_key(side, zone, self.precision)

    def update_and_classify(self, symbol: str, zone: TradingZone, side: Side, price: float) -> Transition:
        st = self._state_for(symbol).ensure_zone(self._key(side, zone))
        was = st.in_zone
        st.in_zone = in_band(price, zone)
        return Transition(was_in_zone=was, is_in_zone=st.in_zone)

    def release_exited(self, symbol: str, side: Side, zones: Iterable[TradingZone], price: float) -> int:
        """Clear the fired flag of every zone the price no longer occupies. Returns how many."""
        sym = self._symbols.get(symbol)
        if sym is None:
            return 0
        released = 0
        for zone in zones:
            st = sym.zones.get(self._key(side, zone))
            if st is not None and st.fired and not in_band(price, zone):
                st.fired = False
                released += 1
        return released

    def has_fired(self, symbol: str, side: Side, zone: TradingZone) -> bool:
        sym = self._symbols.get(symbol)
        if sym is None:
            return False
        st = sym.zones.get(self._key(side, zone))
        return st is not None and st.fired

    def mark_fired(self, symbol: str, side: Side, zone: TradingZone) -> None:
        self._state_for(symbol).ensure_zone(self._key(side, zone)).fired = True

    def rearm(self, symbol: str, side: Side, zone: TradingZone) -> None:
        sym = self._symbols.get(symbol)
        if sym is None:
            return
        st = sym.zones.get(self._key(side, zone))
        if st is not None:
            st.fired = False

    def is_in_zone(self, symbol: str, side: Side, zone: TradingZone) -> bool:
        sym = self._symbols.get(symbol)
        if sym is None:
            return False
        st = sym.zones.get(self._key(side, zone))
        return st is not None and st.in_zone

    def clear_symbol(self, symbol: str) -> None:
        self._symbols.pop(symbol, None)

    def fired_count(self) -> int:
        return sum(1 for sym in self._symbols.values() for st in sym.zones.values() if st.fired)
