import pytest

from zonewatch.config import PollerConfig
from zonewatch.ingest.binance import PriceFetchError
from zonewatch.ingest.poller import PricePoller


class _Engine:
    def __init__(self):
        self.checks = []
        self.missed = []

    async def check_price_triggers(self, symbol, price):
        self.checks.append((symbol, price))
        return False

    async def check_possible_missed_triggers(self, symbol, prev, cur):
        self.missed.append((symbol, prev, cur))
        return 0


class _Fetcher:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def fetch_last_price(self, symbol):
        self.calls += 1
        r = self.results.pop(0)
        if isinstance(r, Exception):
            raise r
        return r


@pytest.mark.asyncio
async def test_handle_price_runs_missed_check_only_on_jump():
    engine = _Engine()
    poller = PricePoller(engine, _Fetcher(), PollerConfig(jump_threshold_pct=0.01))
    seen = []
    poller.add_price_listener("BTC/USDT", seen.append)

    await poller.handle_price("BTC/USDT", 100.0)
    await poller.handle_price("BTC/USDT", 100.5)
    await poller.handle_price("BTC/USDT", 102.0)

    assert engine.checks == [("BTC/USDT", 100.0), ("BTC/USDT", 100.5), ("BTC/USDT", 102.0)]
    assert engine.missed == [("BTC/USDT", 100.5, 102.0)]
    assert seen == [100.0, 100.5, 102.0]
    assert poller.get_latest_price("BTC/USDT") == 102.0
    assert poller.get_all_latest_prices() == {"BTC/USDT": 102.0}


@pytest.mark.asyncio
async def test_failing_listener_does_not_stop_tick():
    engine = _Engine()
    poller = PricePoller(engine, _Fetcher())

    def broken(_):
        raise ValueError("nope")

    poller.add_price_listener("ETH/USDT", broken)
    await poller.handle_price("ETH/USDT", 2000.0)
    assert engine.checks == [("ETH/USDT", 2000.0)]


@pytest.mark.asyncio
async def test_watch_backs_off_on_fetch_errors():
    engine = _Engine()
    fetcher = _Fetcher(PriceFetchError("HTTP 500"), PriceFetchError("HTTP 500"), 101.0)
    cfg = PollerConfig(poll_interval_s=5, initial_backoff_s=10, max_backoff_s=120)
    sleeps = []

    async def fake_sleep(s):
        sleeps.append(s)
        if fetcher.calls >= 3:
            poller._monitored.discard("BTC/USDT")

    poller = PricePoller(engine, fetcher, cfg, sleep=fake_sleep)
    poller._monitored.add("BTC/USDT")
    await poller._watch("BTC/USDT")

    assert poller.errors == 2
    assert 8.0 <= sleeps[0] <= 12.0          # 10s ± 20% jitter
    assert 16.0 <= sleeps[1] <= 24.0
    assert sleeps[2] == 5
    assert engine.checks == [("BTC/USDT", 101.0)]


@pytest.mark.asyncio
async def test_symbol_management_and_status():
    poller = PricePoller(_Engine(), _Fetcher(*[1.0] * 50), PollerConfig(symbols=["BTC/USDT"], poll_interval_s=3600))
    await poller.start()
    assert poller.add_symbol("BTC/USDT") is False
    assert poller.add_symbol("ETH/USDT") is True
    poller.refresh_symbols(["ETH/USDT", "SOL/USDT"])
    st = poller.status()
    assert st["running"] is True
    assert st["monitored_symbols"] == ["ETH/USDT", "SOL/USDT"]
    assert poller.remove_symbol("BTC/USDT") is False
    await poller.stop()
    assert poller.status()["monitored_symbols_count"] == 0


@pytest.mark.asyncio
async def test_watch_survives_unexpected_errors():
    engine = _Engine()
    fetcher = _Fetcher(ValueError("Expecting value: line 1 column 1 (char 0)"), 101.0)
    sleeps = []

    async def fake_sleep(s):
        sleeps.append(s)
        if fetcher.calls >= 2:
            poller._monitored.discard("BTC/USDT")

    poller = PricePoller(engine, fetcher, PollerConfig(poll_interval_s=5, initial_backoff_s=10), sleep=fake_sleep)
    poller._monitored.add("BTC/USDT")
    await poller._watch("BTC/USDT")

    assert poller.errors == 1
    assert 8.0 <= sleeps[0] <= 12.0
    assert sleeps[1] == 5
    assert engine.checks == [("BTC/USDT", 101.0)]
