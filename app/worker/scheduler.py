"""Fixed-period accrual scheduler with an explicit start/stop lifecycle."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable

from app.core.clock import utcnow
from app.core.config import get_settings
from app.core.logging import get_logger
from app.services.accrual import TickResult, run_accrual_tick
from app.services.prices import PriceFeed

log = get_logger(__name__)

TickFn = Callable[[datetime], Awaitable[Any]]


class AccrualScheduler:
    """
    Fires the accrual tick every `period_seconds`.

    Ticks never overlap: if the previous tick is still running when the next one is
    due, the new one is skipped (the following tick credits the elapsed time anyway).
    `clock` and `sleep` are injectable so tests can drive ticks deterministically.
    """

    def __init__(
        self,
        tick: TickFn | None = None,
        period_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        price_feed: PriceFeed | None = None,
    ):
        self.period_seconds = period_seconds or get_settings().accrual_period_seconds
        self._clock = clock
        self._sleep = sleep
        self._feed = price_feed
        self._tick = tick or self._default_tick
        self._lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None
        self._current: asyncio.Task | None = None
        self._running = False
        self.ticks_run = 0
        self.ticks_skipped = 0

    async def _default_tick(self, now: datetime) -> TickResult:
        if self._feed is None:
            self._feed = PriceFeed()
        return await run_accrual_tick(now, self.period_seconds, self._feed)

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> Any:
        """Run one tick now unless one is already in progress. Returns the tick result or None if skipped."""
        if self._lock.locked():
            self.ticks_skipped += 1
            log.warning("accrual_tick_skipped", reason="previous tick still running")
            return None
        async with self._lock:
            result = await self._tick(self._clock())
            self.ticks_run += 1
            return result

    async def run_ticks(self, n: int) -> list[Any]:
        """Run `n` ticks back to back, advancing time only through the injected clock."""
        return [await self.run_once() for _ in range(n)]

    def _fire(self) -> None:
        if self._current is not None and not self._current.done():
            self.ticks_skipped += 1
            log.warning("accrual_tick_skipped", reason="previous tick still running")
            return
        self._current = asyncio.create_task(self._guarded_tick())

    async def _guarded_tick(self) -> None:
        try:
            await self.run_once()
        except Exception as e:
            # Selection or connection failure; the next tick retries.
            log.exception("accrual_tick_failed", error=str(e))

    async def _loop(self) -> None:
        while self._running:
            self._fire()
            await self._sleep(self.period_seconds)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._loop())
        log.info("accrual_scheduler_started", period_seconds=self.period_seconds)

    async def stop(self) -> None:
        """Stop firing; wait for an in-flight tick to finish rather than cancelling it mid-write."""
        if not self._running:
            return
        self._running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._current is not None:
            await self._current
            self._current = None
        log.info("accrual_scheduler_stopped", ticks_run=self.ticks_run, ticks_skipped=self.ticks_skipped)
