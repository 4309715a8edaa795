from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(slots=True)
class EngineConfig:
    global_cooldown_s: float = 900.0      # any trigger for a symbol mutes the symbol for 15 min
    retrigger_cooldown_s: float = 900.0   # same zone, sustained dwell
    crossing_cooldown_s: float = 300.0    # same zone boundary, same direction
    batch_window_s: float = 5.0           # triggers for (symbol, side) merged within this window
    zone_key_precision: int = 6           # decimals used for zone identity
    # sustained dwell past retrigger_cooldown_s re-arms the zone's fired flag
    rearm_on_retrigger: bool = True
    tz_name: str = "UTC"                  # timestamps in outgoing messages


@dataclass(slots=True)
class PollerConfig:
    symbols: list[str] = field(default_factory=lambda: ["BTC/USDT", "ETH/USDT"])
    poll_interval_s: float = 5.0
    # relative move between two polls that also runs the missed-crossing check
    jump_threshold_pct: float = 0.01
    initial_backoff_s: float = 10.0
    max_backoff_s: float = 120.0


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_symbols(raw: str) -> list[str]:
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


def engine_config_from_env() -> EngineConfig:
    d = EngineConfig()
    return EngineConfig(
        global_cooldown_s=_env_float("ZONEWATCH_GLOBAL_COOLDOWN_S", d.global_cooldown_s),
        retrigger_cooldown_s=_env_float("ZONEWATCH_RETRIGGER_COOLDOWN_S", d.retrigger_cooldown_s),
        crossing_cooldown_s=_env_float("ZONEWATCH_CROSSING_COOLDOWN_S", d.crossing_cooldown_s),
        batch_window_s=_env_float("ZONEWATCH_BATCH_WINDOW_S", d.batch_window_s),
        zone_key_precision=int(_env_float("ZONEWATCH_ZONE_KEY_PRECISION", d.zone_key_precision)),
        rearm_on_retrigger=_env_bool("ZONEWATCH_REARM_ON_RETRIGGER", d.rearm_on_retrigger),
        tz_name=os.getenv("ZONEWATCH_TZ", d.tz_name),
    )


def poller_config_from_env() -> PollerConfig:
    d = PollerConfig()
    symbols_env = os.getenv("SYMBOLS")
    return PollerConfig(
        symbols=parse_symbols(symbols_env) if symbols_env else d.symbols,
        poll_interval_s=_env_float("POLL_INTERVAL_S", d.poll_interval_s),
        jump_threshold_pct=_env_float("JUMP_THRESHOLD_PCT", d.jump_threshold_pct),
        initial_backoff_s=_env_float("POLL_INITIAL_BACKOFF_S", d.initial_backoff_s),
        max_backoff_s=_env_float("POLL_MAX_BACKOFF_S", d.max_backoff_s),
    )
