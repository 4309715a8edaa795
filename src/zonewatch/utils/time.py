from __future__ import annotations

import time


def utc_now_s() -> float:
    """Unix epoch seconds (float). Default engine clock."""
    return time.time()

def seconds_since(ts_past: float, now: float | None = None) -> float:
    """Age of ts_past in seconds, clamped at 0 for clock skew."""
    if now is None:
        now = utc_now_s()
    return max(0.0, now - ts_past)
