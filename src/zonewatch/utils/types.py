from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

# ---- zone domain ----

Side = Literal["BUY", "SELL"]
CrossingKind = Literal["ENTER", "EXIT", "THROUGH"]

SIDES: tuple[Side, Side] = ("BUY", "SELL")


@dataclass(frozen=True, slots=True)
class TradingZone:
    price: float
    tolerance: float      # absolute price distance, band is [price - tol, price + tol]
    confidence: float     # 0..1

    @property
    def lower(self) -> float:
        return self.price - self.tolerance

    @property
    def upper(self) -> float:
        return self.price + self.tolerance


@dataclass(frozen=True, slots=True)
class ZoneSnapshot:
    """Latest zone analysis for one symbol, in the order the source produced it."""
    buy_zones: tuple[TradingZone, ...] = ()
    sell_zones: tuple[TradingZone, ...] = ()

    def zones_for(self, side: Side) -> tuple[TradingZone, ...]:
        return self.buy_zones if side == "BUY" else self.sell_zones


# ---- events ----

@dataclass(frozen=True, slots=True)
class TriggerEvent:
    symbol: str
    side: Side
    current_price: float
    target_price: float
    tolerance: float
    confidence: float
    timestamp: float  # epoch seconds


@dataclass(frozen=True, slots=True)
class CrossingEvent(TriggerEvent):
    kind: CrossingKind = "ENTER"
    previous_price: float = 0.0


# ---- introspection ----

@dataclass(slots=True)
class TriggerStatistics:
    total_triggers: int = 0          # all ledger entries (zone + crossing)
    active_cooldowns: int = 0        # entries still inside their cooldown window
    triggered_zone_flags: int = 0    # zones currently marked as fired while dwelling
    global_cooldowns: int = 0        # symbols inside the global cooldown
    pending_notifications: int = 0   # events waiting in the batching queue


@dataclass(slots=True)
class TriggerTestResult:
    test_price: float
    timestamp: float
    buy_triggered: bool = False
    sell_triggered: bool = False
    notifications: list[TriggerEvent] = field(default_factory=list)


# ---- feed-level primitive ----

@dataclass(slots=True)
class PriceTick:
    symbol: str   # unified form, e.g. "BTC/USDT"
    price: float
    ts: float     # epoch seconds
