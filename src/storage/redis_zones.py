# src/storage/redis_zones.py
from __future__ import annotations
import time
from typing import Callable, Iterable, Optional

import structlog
from redis.asyncio import Redis

from zonewatch.alerts.zones import parse_zones, zones_to_json
from zonewatch.utils.types import TradingZone, ZoneSnapshot

log = structlog.get_logger("redis_zones")

KEY_PREFIX = "zones"

def key(symbol: str, prefix: str = KEY_PREFIX) -> str:
    # zones:{SYM}  (hash: buy, sell, updated_at)
    return f"{prefix}:{symbol.upper()}"

def _field(data: dict, name: str):
    # decode_responses=False clients hand back bytes keys
    if name in data:
        return data[name]
    return data.get(name.encode())


class RedisZoneSource:
    """
    Reads the latest zone analysis per symbol from a Redis hash written by
    publish_zones(). Missing hash or missing side -> None (no analysis yet).
    Unparsable JSON -> ZoneDataError from parse_zones().
    """
    def __init__(self, redis: Redis, prefix: str = KEY_PREFIX):
        self.redis = redis
        self.prefix = prefix

    async def get_latest_zones(self, symbol: str) -> Optional[ZoneSnapshot]:
        data = await self.redis.hgetall(key(symbol, self.prefix))
        if not data:
            return None
        buy_raw = _field(data, "buy")
        sell_raw = _field(data, "sell")
        if buy_raw is None or sell_raw is None:
            return None
        return ZoneSnapshot(buy_zones=parse_zones(buy_raw), sell_zones=parse_zones(sell_raw))


async def publish_zones(
    r: Redis,
    symbol: str,
    buy_zones: Iterable[TradingZone],
    sell_zones: Iterable[TradingZone],
    *,
    on_refresh: Optional[Callable[[str], None]] = None,
    prefix: str = KEY_PREFIX,
) -> None:
    """
    Store a fresh zone analysis and fire the refresh hook (normally
    ZoneTriggerEngine.clear_expired_triggers) so old trigger state is dropped.
    """
    buy = list(buy_zones)
    sell = list(sell_zones)
    await r.hset(
        key(symbol, prefix),
        mapping={
            "buy": zones_to_json(buy),
            "sell": zones_to_json(sell),
            "updated_at": str(time.time()),
        },
    )
    log.info("zones_published", symbol=symbol, buy=len(buy), sell=len(sell))
    if on_refresh is not None:
        on_refresh(symbol)
