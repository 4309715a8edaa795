from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

import structlog

from zonewatch.alerts.crossing import is_jump
from zonewatch.alerts.engine import ZoneTriggerEngine
from zonewatch.config import PollerConfig
from zonewatch.ingest.binance import PriceFetchError
from zonewatch.utils.backoff import Backoff
from zonewatch.utils.time import seconds_since, utc_now_s

log = structlog.get_logger("price_poller")

PriceListener = Callable[[float], None]


class PriceFetcher(Protocol):
    async def fetch_last_price(self, symbol: str) -> float: ...


class PricePoller:
    """
    Drives the engine: one task per symbol polls the last price every
    poll_interval_s and awaits the trigger check before polling again.

    Per tick:
      1) engine.check_price_triggers(symbol, price)
      2) if |price - prev| / prev >= jump_threshold_pct: engine.check_possible_missed_triggers
      3) price listeners

    Fetch errors are logged and retried after a growing backoff; the task keeps running.
    """
    def __init__(
        self,
        engine: ZoneTriggerEngine,
        fetcher: PriceFetcher,
        cfg: Optional[PollerConfig] = None,
        *,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.engine = engine
        self.fetcher = fetcher
        self.cfg = cfg or PollerConfig()
        self._sleep = sleep or asyncio.sleep

        self._monitored: set[str] = set()
        self._tasks: dict[str, asyncio.Task] = {}
        self._latest: dict[str, float] = {}
        self._last_tick_ts: dict[str, float] = {}
        self._listeners: dict[str, list[PriceListener]] = {}
        self.errors = 0
        self.running = False

    # ---------- lifecycle ----------

    async def start(self) -> None:
        self.running = True
        for symbol in self.cfg.symbols:
            self.add_symbol(symbol)
        log.info("poller_started", symbols=sorted(self._monitored))

    async def stop(self) -> None:
        self.running = False
        tasks = list(self._tasks.values())
        self._monitored.clear()
        self._tasks.clear()
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.info("poller_stopped")

    # ---------- symbol management ----------

    def add_symbol(self, symbol: str) -> bool:
        if symbol in self._monitored:
            log.debug("symbol_already_monitored", symbol=symbol)
            return False
        self._monitored.add(symbol)
        self._tasks[symbol] = asyncio.create_task(self._watch(symbol), name=f"poll-{symbol}")
        log.info("symbol_added", symbol=symbol)
        return True

    def remove_symbol(self, symbol: str) -> bool:
        if symbol not in self._monitored:
            return False
        self._monitored.discard(symbol)
        task = self._tasks.pop(symbol, None)
        if task is not None:
            task.cancel()
        self._latest.pop(symbol, None)
        self._last_tick_ts.pop(symbol, None)
        self._listeners.pop(symbol, None)
        log.info("symbol_removed", symbol=symbol)
        return True

    def refresh_symbols(self, symbols: list[str]) -> None:
        wanted = set(symbols)
        for s in list(self._monitored - wanted):
            self.remove_symbol(s)
        for s in symbols:
            if s not in self._monitored:
                self.add_symbol(s)
        log.info("symbols_refreshed", count=len(self._monitored))

    def add_price_listener(self, symbol: str, listener: PriceListener) -> None:
        self._listeners.setdefault(symbol, []).append(listener)

    # ---------- per-tick handling ----------

    async def handle_price(self, symbol: str, price: float) -> None:
        prev = self._latest.get(symbol)
        self._latest[symbol] = price
        self._last_tick_ts[symbol] = utc_now_s()

        await self.engine.check_price_triggers(symbol, price)
        if prev is not None and is_jump(prev, price, self.cfg.jump_threshold_pct):
            log.info("price_jump", symbol=symbol, prev=prev, price=price)
            await self.engine.check_possible_missed_triggers(symbol, prev, price)

        for listener in self._listeners.get(symbol, []):
            try:
                listener(price)
            except Exception as e:
                log.warning("price_listener_failed", symbol=symbol, err=str(e))

    async def poll_once(self, symbol: str) -> float:
        price = await self.fetcher.fetch_last_price(symbol)
        await self.handle_price(symbol, price)
        return price

    async def _watch(self, symbol: str) -> None:
        backoff = Backoff(self.cfg.initial_backoff_s, self.cfg.max_backoff_s, ratio=0.2)
        log.info("watch_start", symbol=symbol)
        try:
            while symbol in self._monitored:
                try:
                    await self.poll_once(symbol)
                    backoff.reset()
                    await self._sleep(self.cfg.poll_interval_s)
                except PriceFetchError as e:
                    self.errors += 1
                    delay = backoff.next_delay()
                    log.warning("price_fetch_failed", symbol=symbol, err=str(e), retry_in_s=round(delay, 2))
                    await self._sleep(delay)
                except Exception:
                    self.errors += 1
                    delay = backoff.next_delay()
                    log.exception("poll_tick_failed", symbol=symbol, retry_in_s=round(delay, 2))
                    await self._sleep(delay)
        except asyncio.CancelledError:
            pass
        log.info("watch_stop", symbol=symbol)

    # ---------- introspection ----------

    def get_latest_price(self, symbol: str) -> Optional[float]:
        return self._latest.get(symbol)

    def get_all_latest_prices(self) -> dict[str, float]:
        return dict(self._latest)

    def status(self) -> dict:
        return {
            "running": self.running,
            "monitored_symbols": sorted(self._monitored),
            "monitored_symbols_count": len(self._monitored),
            "fetch_errors": self.errors,
            "last_tick_age_s": {s: round(seconds_since(ts), 3) for s, ts in self._last_tick_ts.items()},
        }
