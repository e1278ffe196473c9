"""Background health-check scheduler.

Runs one probe per tick on a fixed interval. A tick that arrives while the
previous probe is still running is skipped, so probes never overlap and a
slow network cannot pile up probe tasks.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from contextlib import suppress

from ...logger import get_logger

logger = get_logger(__name__)

type HealthCheck = Callable[[], Awaitable[object]]


class HealthMonitor:
    """Periodic, non-overlapping runner for a health check coroutine.

    Examples
    --------
    >>> monitor = HealthMonitor(router.acheck_health, interval=30.0, jitter=2.0)
    >>> monitor.start()
    >>> ...
    >>> await monitor.stop()
    """

    __slots__ = ("_check", "_inflight", "_interval", "_jitter", "_loop_task", "_skipped_ticks")

    def __init__(self, check: HealthCheck, interval: float, jitter: float = 0.0) -> None:
        if interval <= 0:
            msg = f"interval must be positive, got {interval}"
            raise ValueError(msg)
        self._check = check
        self._interval = interval
        self._jitter = max(jitter, 0.0)
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    def start(self) -> None:
        """Start the loop on the running event loop. Idempotent."""
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run_loop(), name="dbrouter-health-monitor")
        logger.info("Started background database health monitoring", interval=self._interval, jitter=self._jitter)

    async def stop(self) -> None:
        """Cancel the loop and any in-flight probe, and wait for both to finish."""
        for task in (self._loop_task, self._inflight):
            if task is not None and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        was_running = self._loop_task is not None
        self._loop_task = None
        self._inflight = None
        if was_running:
            logger.info("Stopped background database health monitoring")

    def _next_delay(self) -> float:
        if self._jitter == 0:
            return self._interval
        return self._interval + random.uniform(0.0, self._jitter)  # noqa: S311

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._next_delay())
            if self._inflight is not None and not self._inflight.done():
                self._skipped_ticks += 1
                logger.warning("Previous health probe still running, skipping tick", skipped_ticks=self._skipped_ticks)
                continue
            self._inflight = asyncio.create_task(self._run_check(), name="dbrouter-health-probe")

    async def _run_check(self) -> None:
        try:
            await self._check()
        except Exception:
            logger.exception("Background health check failed")
