from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

import structlog

from zonewatch.alerts.formatting import format_multi_zone, format_trigger
from zonewatch.alerts.notifiers import NotificationSink
from zonewatch.utils.types import TriggerEvent

log = structlog.get_logger("batcher")

BatchKey = tuple[str, str]  # (symbol, side)
SleepFn = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class BatchStats:
    enq_ok: int = 0
    batches_started: int = 0
    flushed_single: int = 0
    flushed_multi: int = 0
    send_failed: int = 0


@dataclass(slots=True)
class PendingBatch:
    events: list[TriggerEvent] = field(default_factory=list)
    task: Optional[asyncio.Task] = None


class NotificationBatcher:
    """
    Groups trigger events per (symbol, side) for a fixed window.
    - the first event of a key schedules one flush, window_s later
    - later events for the same key only append; the window does not slide
    - a flush sends a single-trigger message for 1 event, a multi-zone message otherwise
    Flush tasks are not cancellable by callers; drain() waits for them.
    """
    def __init__(
        self,
        sink: NotificationSink,
        window_s: float = 5.0,
        *,
        tz_name: str = "UTC",
        sleep: Optional[SleepFn] = None,
    ):
        self.sink = sink
        self.window_s = float(window_s)
        self.tz_name = tz_name
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._pending: dict[BatchKey, PendingBatch] = {}
        self._tasks: set[asyncio.Task] = set()
        self.stats = BatchStats()

    def enqueue(self, evt: TriggerEvent) -> bool:
        """Add evt to its batch. Returns True when this event opened a new batch."""
        key: BatchKey = (evt.symbol, evt.side)
        self.stats.enq_ok += 1
        batch = self._pending.get(key)
        if batch is not None:
            batch.events.append(evt)
            return False

        batch = PendingBatch(events=[evt])
        self._pending[key] = batch
        task = asyncio.create_task(self._flush_later(key), name=f"batch-flush-{evt.symbol}-{evt.side}")
        batch.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.stats.batches_started += 1
        return True

    async def _flush_later(self, key: BatchKey) -> None:
        await self._sleep(self.window_s)
        await self.flush(key)

    async def flush(self, key: BatchKey) -> None:
        # pop first: events enqueued while sending open a fresh batch
        batch = self._pending.pop(key, None)
        if batch is None or not batch.events:
            return
        await self._deliver(batch.events)

    async def _deliver(self, events: Sequence[TriggerEvent]) -> None:
        symbol, side = events[0].symbol, events[0].side
        try:
            if len(events) == 1:
                text = format_trigger(events[0], self.tz_name)
                self.stats.flushed_single += 1
            else:
                text = format_multi_zone(events, self.tz_name)
                self.stats.flushed_multi += 1
            ok = await self.sink.send(text)
        except Exception:
            self.stats.send_failed += 1
            log.exception("batch_send_error", symbol=symbol, side=side, events=len(events))
            return
        if ok:
            log.info("batch_sent", symbol=symbol, side=side, events=len(events))
        else:
            self.stats.send_failed += 1
            log.warning("batch_send_failed", symbol=symbol, side=side, events=len(events))

    async def drain(self) -> None:
        """Wait until every scheduled flush has run."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def pending_count(self) -> int:
        return sum(len(b.events) for b in self._pending.values())

    def pending_keys(self) -> list[BatchKey]:
        return list(self._pending)
