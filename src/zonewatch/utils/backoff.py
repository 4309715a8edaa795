from __future__ import annotations

import random

def next_backoff(prev: float, cap: float) -> float:
    """Exponential backoff progression with cap (no jitter)."""
    return min(prev * 2.0, cap)

def jitter(v: float, *, ratio: float = 0.2) -> float:
    """
    Add ±ratio jitter. ratio=0.2 -> multiply by [0.8, 1.2].
    """
    lo = 1.0 - ratio
    hi = 1.0 + ratio
    return v * (lo + (hi - lo) * random.random())


class Backoff:
    """
    Per-loop retry delay: initial, 2x, 4x, ... capped, with optional jitter.
    Call reset() after a successful attempt.
    """
    def __init__(self, initial: float = 1.0, cap: float = 60.0, ratio: float = 0.0):
        self.initial = float(initial)
        self.cap = float(cap)
        self.ratio = float(ratio)
        self.attempts = 0
        self._current = self.initial

    def next_delay(self) -> float:
        base = self._current
        self._current = next_backoff(self._current, self.cap)
        self.attempts += 1
        return jitter(base, ratio=self.ratio) if self.ratio > 0 else base

    def reset(self) -> None:
        self.attempts = 0
        self._current = self.initial
