"""Countdown clock for continuation decisions."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ContinuationTimer:
    """A single owned countdown driven by the running event loop.

    Every ``start()`` issues a fresh token; ``cancel()`` drops it. The countdown
    task checks its token after each sleep, so a cancel processed before a tick
    wakes up always wins over an expiry that was already scheduled.
    """

    def __init__(
        self,
        on_expire: Callable[[], Awaitable[None]],
        on_tick: Optional[Callable[[int], None]] = None,
        interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._on_expire = on_expire
        self._on_tick = on_tick
        self.interval = interval
        self._sleep = sleep
        self._token: Optional[object] = None
        self._task: Optional[asyncio.Task] = None
        self.remaining: Optional[int] = None

    @property
    def active(self) -> bool:
        return self._token is not None

    def start(self, seconds: int):
        """Start counting down from ``seconds``, replacing any running countdown."""
        if seconds < 0:
            raise ValueError("seconds must be non-negative")
        self.cancel()
        token = object()
        self._token = token
        self.remaining = seconds
        self._task = asyncio.get_running_loop().create_task(self._run(token, seconds))
        logger.debug(f"Countdown started at {seconds}s")

    def cancel(self):
        """Stop the clock. Safe to call when idle."""
        if self._token is not None and self._task is not None and not self._task.done():
            self._task.cancel()
        if self._token is not None:
            logger.debug("Countdown cancelled")
        self._token = None
        self.remaining = None

    async def wait(self):
        """Wait for the current countdown, including its expiry callback, to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self, token, seconds: int):
        remaining = seconds
        while remaining > 0:
            await self._sleep(self.interval)
            if token is not self._token:
                return
            remaining -= 1
            self.remaining = remaining
            if self._on_tick:
                self._on_tick(remaining)
            if token is not self._token:
                return

        # Released first: the expiry callback may restart or cancel the timer
        self._token = None
        self.remaining = None
        await self._on_expire()
