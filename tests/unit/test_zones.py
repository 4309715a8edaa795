import json

import pytest

from zonewatch.alerts.zones import (
    StaticZoneSource,
    ZoneDataError,
    in_band,
    parse_zones,
    zone_key,
    zones_to_json,
)
from zonewatch.utils.types import TradingZone


def test_parse_json_string_and_list():
    raw = [{"price": 100, "tolerance": 1.5, "confidence": 0.8}, {"price": "99.5", "tolerance": 0.5, "confidence": 0.6}]
    from_str = parse_zones(json.dumps(raw))
    from_list = parse_zones(raw)
    assert from_str == from_list
    assert from_str[1] == TradingZone(price=99.5, tolerance=0.5, confidence=0.6)


def test_parse_bytes_and_empty():
    assert parse_zones(b"[]") == ()


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"price": 1}',
        "[1, 2]",
        [{"price": 1, "tolerance": 1}],
        [{"price": "abc", "tolerance": 1, "confidence": 0.5}],
        [{"price": 1, "tolerance": -1, "confidence": 0.5}],
        [{"price": float("nan"), "tolerance": 1, "confidence": 0.5}],
        [{"price": True, "tolerance": 1, "confidence": 0.5}],
        [{"price": 1, "tolerance": 1, "confidence": 80}],
        [{"price": 1, "tolerance": 1, "confidence": -0.1}],
        b"\xff\xfe[]",
    ],
)
def test_parse_rejects_malformed(raw):
    with pytest.raises(ZoneDataError):
        parse_zones(raw)


def test_json_roundtrip_keeps_order():
    zones = (TradingZone(3.0, 0.1, 0.2), TradingZone(1.0, 0.1, 0.9))
    assert parse_zones(zones_to_json(zones)) == zones


def test_in_band_and_key():
    z = TradingZone(price=10.0, tolerance=0.25, confidence=1.0)
    assert in_band(9.75, z) and in_band(10.25, z)
    assert not in_band(10.2500001, z)
    assert zone_key("SELL", z) == ("SELL", 10.0, 0.25)
    assert zone_key("BUY", TradingZone(1.23456789, 0.1, 0.5), precision=4) == ("BUY", 1.2346, 0.1)


@pytest.mark.asyncio
async def test_static_source_publish_and_remove():
    src = StaticZoneSource()
    assert await src.get_latest_zones("BTC/USDT") is None
    src.publish("BTC/USDT", buy_zones=[{"price": 1, "tolerance": 0.1, "confidence": 0.5}])
    snap = await src.get_latest_zones("BTC/USDT")
    assert len(snap.buy_zones) == 1 and snap.sell_zones == ()
    assert snap.zones_for("BUY") is snap.buy_zones
    src.remove("BTC/USDT")
    assert await src.get_latest_zones("BTC/USDT") is None
