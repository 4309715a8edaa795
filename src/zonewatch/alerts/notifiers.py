# src/zonewatch/alerts/notifiers.py
from __future__ import annotations
import re
import structlog
from typing import Protocol

log = structlog.get_logger("notifier")

_TAGS = re.compile(r"</?b>")


class NotificationSink(Protocol):
    async def send(self, text: str) -> bool:
        """Deliver one message. True on success; never retried by the caller."""
        ...


class ConsoleSink:
    """Prints messages to stdout, with the HTML bold tags stripped."""
    def __init__(self, strip_html: bool = True):
        self._strip_html = strip_html

    async def send(self, text: str) -> bool:
        out = _TAGS.sub("", text) if self._strip_html else text
        print(out, flush=True)
        return True


class FanoutSink:
    """
    Sends each message to every child sink. Succeeds if at least one child did;
    a failing child does not stop the others.
    """
    def __init__(self, *sinks: NotificationSink):
        self.sinks = list(sinks)

    async def send(self, text: str) -> bool:
        ok_any = False
        for sink in self.sinks:
            try:
                ok = await sink.send(text)
            except Exception as e:
                log.warning("fanout_child_failed", sink=type(sink).__name__, err=str(e))
                continue
            ok_any = ok_any or bool(ok)
        return ok_any
