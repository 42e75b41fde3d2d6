from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .events import Hub


logger = logging.getLogger(__name__)


def format_tick(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"Current Time: {now:%Y-%m-%d %H:%M:%S}"


class Ticker:
    """Publishes the current time to a hub every ``interval`` seconds."""

    def __init__(self, hub: Hub, interval: float = 2.0) -> None:
        self.hub = hub
        self.interval = interval
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._loop(), name="sse-hub-ticker")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.hub.publish(format_tick())
            except Exception:
                logger.exception("Tick failed")
