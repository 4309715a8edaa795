# src/zonewatch/main.py
import asyncio
import logging
import os

import structlog
from dotenv import load_dotenv
from redis.asyncio import Redis

from zonewatch.config import engine_config_from_env, poller_config_from_env
from zonewatch.alerts.engine import ZoneTriggerEngine
from zonewatch.alerts.formatting import format_status
from zonewatch.alerts.notifiers import ConsoleSink, FanoutSink
from zonewatch.ingest.binance import BinancePriceClient, binance_config_from_env
from zonewatch.ingest.poller import PricePoller
from zonewatch.notify.telegram import TelegramSink, config_from_env
from zonewatch.utils.time import utc_now_s

# Zone analysis is written to Redis by the analysis job (see storage.redis_zones.publish_zones)
from storage.redis_zones import RedisZoneSource

load_dotenv()
log = structlog.get_logger()


def configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


# ---------------------------
# Telegram startup ping helper
# ---------------------------

async def startup_ping(sink, symbols: list[str], tz_name: str):
    text = format_status(
        "info",
        "zonewatch started",
        f"Watching {len(symbols)} symbols: {', '.join(symbols)}",
        utc_now_s(),
        tz_name,
    )
    try:
        await sink.send(text)
    except Exception as e:
        log.warning("startup_ping_failed", err=str(e))


# ---------------------------
# Main
# ---------------------------

async def main():
    engine_cfg = engine_config_from_env()
    poller_cfg = poller_config_from_env()

    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    redis_client = Redis.from_url(REDIS_URL, decode_responses=True)
    zone_source = RedisZoneSource(redis_client)

    # ----- Notifications -----
    sinks = [ConsoleSink()]
    tg_sink = None
    try:
        tg_cfg = config_from_env()  # raises if env missing
        tg_sink = TelegramSink(cfg=tg_cfg)
        await tg_sink.start()
        sinks.append(tg_sink)
        log.info("telegram_enabled")
    except RuntimeError:
        log.info("telegram_disabled_missing_env")
    sink = FanoutSink(*sinks)

    engine = ZoneTriggerEngine(zone_source, sink, engine_cfg)

    price_client = BinancePriceClient(binance_config_from_env())
    await price_client.start()
    poller = PricePoller(engine, price_client, poller_cfg)

    await startup_ping(sink, poller_cfg.symbols, engine_cfg.tz_name)
    await poller.start()

    try:
        # poll tasks run until cancelled
        await asyncio.Event().wait()
    finally:
        # graceful shutdown to avoid unclosed sessions
        await poller.stop()
        await engine.batcher.drain()
        await price_client.stop()
        if tg_sink is not None:
            await tg_sink.stop()
        await redis_client.aclose()
        log.info("zonewatch_stopped", stats=engine.get_trigger_statistics())


def run():
    configure_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
