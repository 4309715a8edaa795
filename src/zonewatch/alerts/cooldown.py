from __future__ import annotations

from typing import Callable, Hashable, Optional

from zonewatch.utils.time import utc_now_s

# First element of every key is the symbol, so a symbol's entries can be wiped together.
LedgerKey = tuple[Hashable, ...]


class CooldownLedger:
    """
    key -> last fired timestamp. A key is in cooldown for window_s after mark().
    Entries are only removed by clear_symbol(); expiry is computed on read.
    """
    def __init__(self, window_s: float, clock: Optional[Callable[[], float]] = None):
        self.window_s = float(window_s)
        self._clock = clock or utc_now_s
        self._store: dict[LedgerKey, float] = {}

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    def last_fired(self, key: LedgerKey) -> Optional[float]:
        return self._store.get(key)

    def in_cooldown(self, key: LedgerKey, now: Optional[float] = None) -> bool:
        last = self._store.get(key)
        if last is None:
            return False
        return (self._now(now) - last) < self.window_s

    def elapsed(self, key: LedgerKey, now: Optional[float] = None) -> bool:
        """True if the key never fired or its window has passed."""
        return not self.in_cooldown(key, now)

    def mark(self, key: LedgerKey, now: Optional[float] = None) -> None:
        self._store[key] = self._now(now)

    def clear_symbol(self, symbol: str) -> int:
        stale = [k for k in self._store if k and k[0] == symbol]
        for k in stale:
            del self._store[k]
        return len(stale)

    def active_count(self, now: Optional[float] = None) -> int:
        t = self._now(now)
        return sum(1 for last in self._store.values() if (t - last) < self.window_s)

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return key in self._store
