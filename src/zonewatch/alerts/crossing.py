from __future__ import annotations

from typing import Literal, Optional

from zonewatch.alerts.zones import in_band
from zonewatch.utils.types import TradingZone

GapCrossing = Literal["ENTER", "THROUGH"]


def classify_gap(previous_price: float, current_price: float, zone: TradingZone) -> Optional[GapCrossing]:
    """
    Infer from two polls whether the zone band was reached in between.
      - "ENTER":   previous outside the band, current inside
      - "THROUGH": the whole band lies strictly between previous and current
    Exits are not reported here; they carry no trigger.
    """
    lo, hi = zone.lower, zone.upper
    if not in_band(previous_price, zone) and in_band(current_price, zone):
        return "ENTER"
    if (previous_price < lo and current_price > hi) or (previous_price > hi and current_price < lo):
        return "THROUGH"
    return None


def is_jump(previous_price: float, current_price: float, threshold_pct: float) -> bool:
    """Relative move between two polls at or above threshold_pct (fraction)."""
    if previous_price <= 0.0:
        return False
    return abs(current_price - previous_price) / previous_price >= threshold_pct
