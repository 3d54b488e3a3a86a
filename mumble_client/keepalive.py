from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Awaitable, Callable, List, Optional

from mumble_shared.log import get_logger
from mumble_shared.messages import Ping
from mumble_shared.utils import now_ms

logger = get_logger(__name__)


class Keepalive:
    """
    Periodic Ping sender.

    One Ping per tick. When the previous send is still pending the tick is
    skipped instead of queued, so at most one heartbeat is ever in flight.
    ``stop`` cancels the loop and any in-flight send.
    """

    def __init__(self, send: Callable[[Ping], Awaitable[None]], interval: float = 5.0) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._send = send
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._cancelled: List[asyncio.Task] = []
        self.sent = 0
        self.skipped = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def busy(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="mumble-keepalive")
        logger.debug("Keepalive started (interval %.2fs)", self.interval)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.busy:
                self.skipped += 1
                logger.debug("Previous ping still in flight, skipping tick")
                continue
            self._in_flight = asyncio.create_task(self._ping())

    async def _ping(self) -> None:
        try:
            await self._send(Ping(timestamp=now_ms()))
            self.sent += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed += 1
            logger.warning("Ping failed: %s", e)

    def cancel(self) -> None:
        """Cancel synchronously; no Ping is sent after this returns."""
        for task in (self._task, self._in_flight):
            if task is not None and not task.done():
                task.cancel()
                self._cancelled.append(task)
        self._task = None
        self._in_flight = None

    async def stop(self) -> None:
        self.cancel()
        tasks, self._cancelled = self._cancelled, []
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.debug("Keepalive stopped after %d ping(s), %d skipped", self.sent, self.skipped)
