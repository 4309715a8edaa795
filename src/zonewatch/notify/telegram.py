from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

log = structlog.get_logger("telegram")

# ---------- per-chat send budget ----------

class ChatThrottle:
    """
    Token bucket: `burst` messages back to back, then one every 1/rate seconds.
    """
    def __init__(self, rate_per_sec: float, burst: int = 1, clock=time.monotonic):
        self.rate = float(rate_per_sec)
        self.burst = max(1, int(burst))
        self._clock = clock
        self._budget = float(self.burst)
        self._stamp = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self._budget = min(float(self.burst), self._budget + (now - self._stamp) * self.rate)
        self._stamp = now

    def wait_s(self) -> float:
        """Seconds until a message may go out (0 when the budget allows it now)."""
        self._refill()
        return 0.0 if self._budget >= 1.0 else (1.0 - self._budget) / self.rate

    async def take(self) -> None:
        async with self._lock:
            delay = self.wait_s()
            if delay > 0:
                await asyncio.sleep(delay)
                self._refill()
            self._budget = max(0.0, self._budget - 1.0)

# ---------- config & sink ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_id: str                # personal chat id or group id
    parse_mode: Optional[str] = "HTML"
    disable_web_page_preview: bool = True
    timeout_s: float = 8.0
    per_chat_rate_per_sec: float = 1.0
    per_chat_burst: int = 3
    # 429 is the only case re-sent: Telegram refused it, so nothing was delivered
    max_rate_limit_retries: int = 2
    max_retry_after_s: float = 30.0
    api_base: str = "https://api.telegram.org"


def config_from_env() -> TelegramConfig:
    """Raises RuntimeError when TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID are missing."""
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = os.getenv("TELEGRAM_CHAT_ID")
    if not token or not chat_id:
        raise RuntimeError("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set")
    parse_mode = os.getenv("TELEGRAM_PARSE_MODE", "HTML") or None
    return TelegramConfig(bot_token=token, chat_id=chat_id, parse_mode=parse_mode)


class TelegramSink:
    """
    Sends one message per call to the Bot API. At-most-once: network errors and
    non-200 responses are logged and reported as False, never re-sent.
    """
    def __init__(self, cfg: TelegramConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None
        self._throttle = ChatThrottle(cfg.per_chat_rate_per_sec, cfg.per_chat_burst)
        self.sent_ok = 0
        self.sent_failed = 0

    async def start(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self):
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    @property
    def url(self) -> str:
        return f"{self.cfg.api_base}/bot{self.cfg.bot_token}/sendMessage"

    def _payload(self, text: str) -> dict:
        payload = {"chat_id": self.cfg.chat_id, "text": text}
        if self.cfg.parse_mode:
            payload["parse_mode"] = self.cfg.parse_mode
        if self.cfg.disable_web_page_preview:
            payload["disable_web_page_preview"] = "true"
        return payload

    async def send(self, text: str) -> bool:
        if self._session is None:
            await self.start()
        assert self._session is not None
        payload = self._payload(text)

        for attempt in range(1, self.cfg.max_rate_limit_retries + 2):
            await self._throttle.take()
            try:
                async with self._session.post(self.url, data=payload) as resp:
                    if resp.status == 200:
                        self.sent_ok += 1
                        return True
                    detail = await _maybe_text(resp)
                    log.warning("telegram_send_failed", status=resp.status, body=detail[:300], attempt=attempt)
                    if resp.status != 429:
                        break
                    retry_after = await _retry_after(resp)
                    if retry_after is None or retry_after > self.cfg.max_retry_after_s:
                        break
                    await asyncio.sleep(retry_after)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.warning("telegram_network_error", err=str(e), attempt=attempt)
                break
        self.sent_failed += 1
        return False


async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"


async def _retry_after(resp: aiohttp.ClientResponse) -> Optional[float]:
    try:
        data = await resp.json(content_type=None)
        ra = data.get("parameters", {}).get("retry_after")
        return float(ra) if ra is not None else None
    except Exception:
        return None
