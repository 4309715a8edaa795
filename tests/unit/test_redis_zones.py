import json

import pytest

from storage.redis_zones import RedisZoneSource, key, publish_zones
from zonewatch.alerts.zones import ZoneDataError
from zonewatch.utils.types import TradingZone


class _FakeRedis:
    def __init__(self):
        self.hashes = {}

    async def hgetall(self, k):
        return dict(self.hashes.get(k, {}))

    async def hset(self, k, mapping=None):
        self.hashes.setdefault(k, {}).update(mapping or {})
        return len(mapping or {})


def test_key_is_uppercased():
    assert key("btc/usdt") == "zones:BTC/USDT"
    assert key("ETH/USDT", prefix="z") == "z:ETH/USDT"


@pytest.mark.asyncio
async def test_publish_then_read_back():
    r = _FakeRedis()
    refreshed = []
    buy = [TradingZone(100.0, 1.0, 0.8)]
    sell = [TradingZone(120.0, 2.0, 0.6), TradingZone(125.0, 2.0, 0.5)]
    await publish_zones(r, "BTC/USDT", buy, sell, on_refresh=refreshed.append)

    assert refreshed == ["BTC/USDT"]
    stored = r.hashes["zones:BTC/USDT"]
    assert json.loads(stored["buy"]) == [{"price": 100.0, "tolerance": 1.0, "confidence": 0.8}]
    assert "updated_at" in stored

    snap = await RedisZoneSource(r).get_latest_zones("BTC/USDT")
    assert snap.buy_zones == tuple(buy)
    assert snap.sell_zones == tuple(sell)


@pytest.mark.asyncio
async def test_missing_hash_or_side_is_none():
    r = _FakeRedis()
    src = RedisZoneSource(r)
    assert await src.get_latest_zones("BTC/USDT") is None
    r.hashes["zones:BTC/USDT"] = {"buy": "[]"}
    assert await src.get_latest_zones("BTC/USDT") is None


@pytest.mark.asyncio
async def test_bytes_fields_and_bad_json():
    r = _FakeRedis()
    r.hashes["zones:ETH/USDT"] = {b"buy": b"[]", b"sell": b'[{"price": 1, "tolerance": 0.1, "confidence": 1}]'}
    snap = await RedisZoneSource(r).get_latest_zones("ETH/USDT")
    assert snap.buy_zones == () and len(snap.sell_zones) == 1

    r.hashes["zones:ETH/USDT"] = {"buy": "{oops", "sell": "[]"}
    with pytest.raises(ZoneDataError):
        await RedisZoneSource(r).get_latest_zones("ETH/USDT")
