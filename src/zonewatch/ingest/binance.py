from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

from zonewatch.ingest import parser
from zonewatch.utils.types import PriceTick

log = structlog.get_logger("binance")


class PriceFetchError(RuntimeError):
    """Last price could not be obtained (HTTP error or unusable payload)."""


@dataclass(slots=True)
class BinanceConfig:
    api_url: str = "https://api.binance.com"
    timeout_s: float = 8.0


def binance_config_from_env() -> BinanceConfig:
    d = BinanceConfig()
    return BinanceConfig(api_url=os.getenv("BINANCE_API_URL", d.api_url).rstrip("/"))


class BinancePriceClient:
    """
    Public REST last-price lookup (no auth). One GET per call:
        GET {api_url}/api/v3/ticker/price?symbol=BTCUSDT
    """
    def __init__(self, cfg: Optional[BinanceConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg or BinanceConfig()
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def fetch_ticker(self, symbol: str) -> PriceTick:
        if self._session is None:
            await self.start()
        assert self._session is not None
        url = f"{self.cfg.api_url}/api/v3/ticker/price"
        params = {"symbol": parser.market_id(symbol)}
        try:
            async with self._session.get(url, params=params) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise PriceFetchError(f"{symbol}: HTTP {resp.status}: {body[:200]}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PriceFetchError(f"{symbol}: {type(e).__name__}: {e}") from e
        except ValueError as e:
            # 200 with a non-JSON body (maintenance or proxy page)
            raise PriceFetchError(f"{symbol}: body is not JSON: {e}") from e

        tick = parser.parse_ticker_msg(data, symbol=symbol)
        if tick is None:
            raise PriceFetchError(f"{symbol}: unusable ticker payload {str(data)[:200]}")
        return tick

    async def fetch_last_price(self, symbol: str) -> float:
        return (await self.fetch_ticker(symbol)).price
