from __future__ import annotations

from dataclasses import asdict
from typing import Any, Callable, Optional

import structlog

from zonewatch.alerts.cooldown import CooldownLedger
from zonewatch.alerts.crossing import classify_gap
from zonewatch.alerts.formatting import format_crossing, format_test_message, format_trigger
from zonewatch.alerts.notifiers import NotificationSink
from zonewatch.alerts.state import ZoneStateTracker
from zonewatch.alerts.zones import ZoneDataError, ZoneSource, in_band
from zonewatch.config import EngineConfig
from zonewatch.notify.batcher import NotificationBatcher, SleepFn
from zonewatch.utils.time import utc_now_s
from zonewatch.utils.types import (
    SIDES,
    CrossingEvent,
    CrossingKind,
    Side,
    TradingZone,
    TriggerEvent,
    TriggerStatistics,
    TriggerTestResult,
    ZoneSnapshot,
)

log = structlog.get_logger("zone_engine")


class ZoneTriggerEngine:
    """
    Decides when a price sample should notify, for every zone of a symbol.

    Per sample (check_price_triggers):
      1) skip the symbol while its global cooldown runs
      2) load the latest BUY/SELL zones (none -> skip, malformed -> log and skip)
      3) clear the fired flag of zones the price has left
      4) scan BUY zones in list order, stop at the first trigger
      5) scan SELL zones only when no BUY trigger fired

    Triggers go through the batching queue; crossings (ENTER/EXIT/THROUGH) are sent
    straight to the sink under their own cooldown.

    Cooldown ledgers (separate key spaces):
      - global:   (symbol,)                         global_cooldown_s
      - zone:     (symbol, side, zone_price)        retrigger_cooldown_s
      - crossing: (symbol, side, zone_price, kind)  crossing_cooldown_s
    """
    def __init__(
        self,
        zone_source: ZoneSource,
        sink: NotificationSink,
        cfg: Optional[EngineConfig] = None,
        *,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[SleepFn] = None,
    ):
        self.zone_source = zone_source
        self.sink = sink
        self.cfg = cfg or EngineConfig()
        self._clock = clock or utc_now_s

        self._states = ZoneStateTracker(precision=self.cfg.zone_key_precision)
        self._global = CooldownLedger(self.cfg.global_cooldown_s, self._clock)
        self._zone_ledger = CooldownLedger(self.cfg.retrigger_cooldown_s, self._clock)
        self._crossing_ledger = CooldownLedger(self.cfg.crossing_cooldown_s, self._clock)
        self.batcher = NotificationBatcher(
            sink, self.cfg.batch_window_s, tz_name=self.cfg.tz_name, sleep=sleep
        )
        self._last_price: dict[str, float] = {}

    # ---------- keys ----------

    def _price_key(self, price: float) -> float:
        return round(price, self.cfg.zone_key_precision)

    def _zone_ledger_key(self, symbol: str, side: Side, zone: TradingZone) -> tuple:
        return (symbol, side, self._price_key(zone.price))

    def _crossing_key(self, symbol: str, side: Side, zone: TradingZone, kind: CrossingKind) -> tuple:
        return (symbol, side, self._price_key(zone.price), kind)

    # ---------- public API ----------

    async def check_price_triggers(self, symbol: str, current_price: float) -> bool:
        """Evaluate one price sample. Returns True if a trigger fired. Never raises."""
        previous = self._last_price.get(symbol)
        try:
            price = float(current_price)
            self._last_price[symbol] = price
            return await self._check_price_triggers(symbol, price, price if previous is None else previous)
        except Exception:
            log.exception("check_price_triggers_failed", symbol=symbol, price=current_price)
            return False

    async def check_possible_missed_triggers(
        self, symbol: str, previous_price: float, current_price: float
    ) -> int:
        """
        Best-effort compensation for zones skipped between two polls.
        Returns the number of triggers fired. Never raises.
        """
        try:
            return await self._check_missed(symbol, float(previous_price), float(current_price))
        except Exception:
            log.exception(
                "check_missed_triggers_failed", symbol=symbol, prev=previous_price, price=current_price
            )
            return 0

    def clear_expired_triggers(self, symbol: str) -> None:
        """Refresh hook: forget all dwell, zone-state and cooldown entries of a symbol."""
        self._states.clear_symbol(symbol)
        removed = (
            self._global.clear_symbol(symbol)
            + self._zone_ledger.clear_symbol(symbol)
            + self._crossing_ledger.clear_symbol(symbol)
        )
        log.info("triggers_cleared", symbol=symbol, ledger_entries=removed)

    def get_trigger_statistics(self) -> TriggerStatistics:
        now = self._clock()
        return TriggerStatistics(
            total_triggers=len(self._zone_ledger) + len(self._crossing_ledger),
            active_cooldowns=self._zone_ledger.active_count(now) + self._crossing_ledger.active_count(now),
            triggered_zone_flags=self._states.fired_count(),
            global_cooldowns=self._global.active_count(now),
            pending_notifications=self.batcher.pending_count(),
        )

    async def test_price_trigger(
        self, symbol: str, test_price: float, force_notification: bool = False
    ) -> TriggerTestResult:
        """Dry run: which zones contain test_price. Touches no dwell or cooldown state. Never raises."""
        result = TriggerTestResult(test_price=float(test_price), timestamp=self._clock())
        try:
            await self._run_price_test(symbol, result, force_notification)
        except Exception:
            log.exception("test_trigger_failed", symbol=symbol, price=result.test_price)
        return result

    async def _run_price_test(self, symbol: str, result: TriggerTestResult, force_notification: bool) -> None:
        now = result.timestamp
        snapshot = await self._load_zones(symbol)
        if snapshot is None:
            log.warning("test_trigger_no_zones", symbol=symbol)
            return

        for side in SIDES:
            for zone in snapshot.zones_for(side):
                if not in_band(result.test_price, zone):
                    continue
                evt = self._make_event(symbol, side, result.test_price, zone, now)
                result.notifications.append(evt)
                if side == "BUY":
                    result.buy_triggered = True
                else:
                    result.sell_triggered = True
                if force_notification:
                    await self._deliver(format_trigger(evt, self.cfg.tz_name), symbol=symbol, what="test_trigger")

        log.info(
            "test_trigger_result",
            symbol=symbol,
            price=result.test_price,
            buy=result.buy_triggered,
            sell=result.sell_triggered,
        )

    async def test_notification_system(self, symbol: str, test_price: float) -> dict[str, Any]:
        sent = await self._deliver(format_test_message(self._clock(), self.cfg.tz_name), symbol=symbol, what="test")
        trigger_test = await self.test_price_trigger(symbol, test_price, force_notification=True)
        return {"test_notification_sent": sent, "price_trigger_test": trigger_test}

    async def debug_zone_data(self, symbol: str) -> dict[str, Any]:
        try:
            snapshot = await self.zone_source.get_latest_zones(symbol)
        except ZoneDataError as e:
            return {"has_data": True, "symbol": symbol, "parse_error": str(e)}
        except Exception as e:
            log.exception("debug_zone_data_failed", symbol=symbol)
            return {"has_data": False, "symbol": symbol, "error": f"{type(e).__name__}: {e}"}
        if snapshot is None:
            return {"has_data": False, "symbol": symbol, "message": f"no zone analysis for {symbol}"}
        return {
            "has_data": True,
            "symbol": symbol,
            "buy_zones": {
                "count": len(snapshot.buy_zones),
                "sample": [asdict(z) for z in snapshot.buy_zones[:3]],
            },
            "sell_zones": {
                "count": len(snapshot.sell_zones),
                "sample": [asdict(z) for z in snapshot.sell_zones[:3]],
            },
        }

    def in_global_cooldown(self, symbol: str) -> bool:
        return self._global.in_cooldown((symbol,))

    # ---------- core evaluation ----------

    async def _load_zones(self, symbol: str) -> Optional[ZoneSnapshot]:
        try:
            snapshot = await self.zone_source.get_latest_zones(symbol)
        except ZoneDataError as e:
            log.error("zone_data_invalid", symbol=symbol, err=str(e))
            return None
        if snapshot is None:
            log.debug("no_zones", symbol=symbol)
        return snapshot

    async def _check_price_triggers(self, symbol: str, price: float, previous: float) -> bool:
        now = self._clock()
        if self._global.in_cooldown((symbol,), now):
            return False

        snapshot = await self._load_zones(symbol)
        if snapshot is None:
            return False

        # must run before classification so a stale flag never survives this sample
        for side in SIDES:
            self._states.release_exited(symbol, side, snapshot.zones_for(side), price)

        # BUY first; a sample never yields both a BUY and a SELL trigger
        for side in SIDES:
            if await self._scan_side(symbol, side, snapshot.zones_for(side), price, previous, now):
                return True
        return False

    async def _scan_side(
        self,
        symbol: str,
        side: Side,
        zones: tuple[TradingZone, ...],
        price: float,
        previous: float,
        now: float,
    ) -> bool:
        for zone in zones:
            tr = self._states.update_and_classify(symbol, zone, side, price)

            if tr.entered:
                log.info("zone_enter", symbol=symbol, side=side, price=price, zone=zone.price, tol=zone.tolerance)
                fired = self._fire_trigger(symbol, side, price, zone, now)
                await self._fire_crossing(symbol, side, price, previous, zone, "ENTER", now)
                if fired:
                    return True

            elif tr.exited:
                log.info("zone_exit", symbol=symbol, side=side, price=price, zone=zone.price, tol=zone.tolerance)
                await self._fire_crossing(symbol, side, price, previous, zone, "EXIT", now)

            elif tr.dwelling:
                if not self._zone_ledger.elapsed(self._zone_ledger_key(symbol, side, zone), now):
                    continue
                if self.cfg.rearm_on_retrigger:
                    self._states.rearm(symbol, side, zone)
                log.info("zone_retrigger", symbol=symbol, side=side, price=price, zone=zone.price)
                if self._fire_trigger(symbol, side, price, zone, now):
                    return True
        return False

    async def _check_missed(self, symbol: str, previous: float, price: float) -> int:
        now = self._clock()
        if self._global.in_cooldown((symbol,), now):
            return 0

        snapshot = await self._load_zones(symbol)
        if snapshot is None:
            return 0

        for side in SIDES:
            self._states.release_exited(symbol, side, snapshot.zones_for(side), price)

        fired = 0
        for side in SIDES:
            for zone in snapshot.zones_for(side):
                kind = classify_gap(previous, price, zone)
                if kind is None:
                    continue
                log.warning(
                    "missed_crossing_detected",
                    symbol=symbol, side=side, prev=previous, price=price, zone=zone.price, tol=zone.tolerance, kind=kind,
                )
                if kind == "ENTER":
                    # price is inside now; the next sample must see a dwell, not a fresh entry
                    self._states.update_and_classify(symbol, zone, side, price)
                # the real crossing price is unknown; the zone center stands in for it
                if self._fire_trigger(symbol, side, zone.price, zone, now):
                    fired += 1
                if kind == "THROUGH":
                    await self._fire_crossing(symbol, side, price, previous, zone, "THROUGH", now)
        return fired

    # ---------- firing ----------

    def _make_event(self, symbol: str, side: Side, price: float, zone: TradingZone, now: float) -> TriggerEvent:
        return TriggerEvent(
            symbol=symbol,
            side=side,
            current_price=price,
            target_price=zone.price,
            tolerance=zone.tolerance,
            confidence=zone.confidence,
            timestamp=now,
        )

    def _fire_trigger(self, symbol: str, side: Side, price: float, zone: TradingZone, now: float) -> bool:
        if self._states.has_fired(symbol, side, zone):
            log.debug("trigger_skip_dwelling", symbol=symbol, side=side, zone=zone.price)
            return False

        evt = self._make_event(symbol, side, price, zone, now)
        self._states.mark_fired(symbol, side, zone)
        self._global.mark((symbol,), now)
        self._zone_ledger.mark(self._zone_ledger_key(symbol, side, zone), now)
        self.batcher.enqueue(evt)
        log.info("trigger_fired", symbol=symbol, side=side, price=price, zone=zone.price, conf=zone.confidence)
        return True

    async def _fire_crossing(
        self,
        symbol: str,
        side: Side,
        price: float,
        previous: float,
        zone: TradingZone,
        kind: CrossingKind,
        now: float,
    ) -> bool:
        key = self._crossing_key(symbol, side, zone, kind)
        if self._crossing_ledger.in_cooldown(key, now):
            log.debug("crossing_skip_cooldown", symbol=symbol, side=side, zone=zone.price, kind=kind)
            return False

        evt = CrossingEvent(
            symbol=symbol,
            side=side,
            current_price=price,
            target_price=zone.price,
            tolerance=zone.tolerance,
            confidence=zone.confidence,
            timestamp=now,
            kind=kind,
            previous_price=previous,
        )
        self._crossing_ledger.mark(key, now)
        return await self._deliver(format_crossing(evt, self.cfg.tz_name), symbol=symbol, what=f"crossing_{kind.lower()}")

    async def _deliver(self, text: str, *, symbol: str, what: str) -> bool:
        try:
            ok = await self.sink.send(text)
        except Exception:
            log.exception("notification_send_error", symbol=symbol, what=what)
            return False
        if not ok:
            log.warning("notification_send_failed", symbol=symbol, what=what)
        return bool(ok)
