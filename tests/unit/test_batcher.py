import pytest

from zonewatch.notify.batcher import NotificationBatcher
from zonewatch.utils.types import TriggerEvent

from tests.helpers.fake_clock import FakeClock
from tests.helpers.fake_sink import RecordingSink


def evt(price, side="BUY", symbol="ETH/USDT", ts=1_700_000_000.0):
    return TriggerEvent(
        symbol=symbol, side=side, current_price=price + 0.1, target_price=price,
        tolerance=1.0, confidence=0.9, timestamp=ts,
    )


def make(sink=None, window=5.0):
    clock = FakeClock()
    sink = sink or RecordingSink()
    return NotificationBatcher(sink, window, sleep=clock.sleep), sink, clock


@pytest.mark.asyncio
async def test_single_event_flushes_once_after_window():
    b, sink, clock = make()
    assert b.enqueue(evt(100)) is True
    await clock.advance(4.5)
    assert sink.messages == []
    assert b.pending_count() == 1
    await clock.advance(0.5)
    assert len(sink.triggers()) == 1
    assert b.pending_count() == 0
    await clock.advance(60)
    assert len(sink.messages) == 1
    assert b.stats.flushed_single == 1


@pytest.mark.asyncio
async def test_window_does_not_slide():
    b, sink, clock = make()
    b.enqueue(evt(100))
    await clock.advance(3)
    assert b.enqueue(evt(101)) is False
    await clock.advance(1.5)
    assert b.enqueue(evt(102)) is False
    await clock.advance(0.5)       # 5s after the first event
    assert len(sink.multi()) == 1
    assert "(3)" in sink.multi()[0]
    assert sink.triggers() == []
    assert b.stats.batches_started == 1
    assert b.stats.flushed_multi == 1


@pytest.mark.asyncio
async def test_keys_are_independent():
    b, sink, clock = make()
    b.enqueue(evt(100, side="BUY"))
    b.enqueue(evt(120, side="SELL"))
    b.enqueue(evt(100, symbol="BTC/USDT"))
    assert sorted(b.pending_keys()) == [("BTC/USDT", "BUY"), ("ETH/USDT", "BUY"), ("ETH/USDT", "SELL")]
    await clock.advance(5)
    assert len(sink.triggers()) == 3


@pytest.mark.asyncio
async def test_event_after_flush_opens_new_batch():
    b, sink, clock = make()
    b.enqueue(evt(100))
    await clock.advance(5)
    assert b.enqueue(evt(101)) is True
    await clock.advance(5)
    assert len(sink.triggers()) == 2
    assert b.stats.batches_started == 2


@pytest.mark.asyncio
async def test_failed_send_is_counted_and_dropped():
    b, sink, clock = make(sink=RecordingSink(ok=False))
    b.enqueue(evt(100))
    await clock.advance(5)
    assert b.stats.send_failed == 1
    assert b.pending_count() == 0

    b2, sink2, clock2 = make(sink=RecordingSink(raises=RuntimeError("down")))
    b2.enqueue(evt(100))
    b2.enqueue(evt(101))
    await clock2.advance(5)
    assert b2.stats.send_failed == 1
    assert len(sink2.messages) == 1


@pytest.mark.asyncio
async def test_drain_waits_for_scheduled_flushes():
    sink = RecordingSink()
    b = NotificationBatcher(sink, window_s=0.01)
    b.enqueue(evt(100))
    b.enqueue(evt(120, side="SELL"))
    await b.drain()
    assert len(sink.messages) == 2
    assert b.pending_keys() == []
