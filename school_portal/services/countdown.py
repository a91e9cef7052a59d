"""
Countdown timers for timed attempts.

A CountdownTimer ticks on a fixed interval while an attempt is in progress,
reports the remaining whole seconds (floored at zero) and fires its expiry
callback exactly once when the countdown reaches zero. TimerRegistry keeps
at most one timer per submission and runs them on the application's event
loop, so sync request handlers can arm and cancel timers from worker
threads.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import Callable, Dict, Optional

from school_portal.core.config import settings
from school_portal.utils.time_utils import now_utc, seconds_until

logger = logging.getLogger(__name__)


class CountdownTimer:
    def __init__(
        self,
        deadline: datetime,
        on_expire: Callable[[], None],
        on_tick: Optional[Callable[[int], None]] = None,
        tick_seconds: float = 1.0,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.deadline = deadline
        self.on_expire = on_expire
        self.on_tick = on_tick
        self.tick_seconds = tick_seconds
        self.clock = clock
        self.expired = False

    def remaining_seconds(self, now: Optional[datetime] = None) -> int:
        return seconds_until(self.deadline, now or self.clock())

    async def run(self) -> None:
        while True:
            remaining = self.remaining_seconds()
            if self.on_tick is not None:
                self.on_tick(remaining)
            if remaining == 0:
                break
            await asyncio.sleep(min(self.tick_seconds, remaining))

        self.expired = True
        # Expiry does blocking database work
        await asyncio.to_thread(self.on_expire)


class TimerRegistry:
    def __init__(self, tick_seconds: float = 1.0):
        self.tick_seconds = tick_seconds
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def is_bound(self) -> bool:
        return self._loop is not None and not self._loop.is_closed()

    def arm(self, submission_id: str, deadline: datetime, on_expire: Callable[[], None]) -> bool:
        """Start (or restart) the countdown for a submission"""
        if not self.is_bound:
            logger.debug("No event loop bound, countdown for %s relies on lazy expiry", submission_id)
            return False

        timer = CountdownTimer(deadline, on_expire, tick_seconds=self.tick_seconds)
        self.cancel(submission_id)
        future = asyncio.run_coroutine_threadsafe(timer.run(), self._loop)
        with self._lock:
            self._futures[submission_id] = future
        future.add_done_callback(lambda f: self._forget(submission_id, f))
        logger.info("Countdown armed for submission %s until %s", submission_id, deadline.isoformat())
        return True

    def cancel(self, submission_id: str) -> bool:
        with self._lock:
            future = self._futures.pop(submission_id, None)
        if future is None:
            return False
        future.cancel()
        return True

    def cancel_all(self) -> int:
        with self._lock:
            futures = list(self._futures.values())
            self._futures.clear()
        for future in futures:
            future.cancel()
        return len(futures)

    def active_count(self) -> int:
        with self._lock:
            return len(self._futures)

    def _forget(self, submission_id: str, future: Future) -> None:
        with self._lock:
            if self._futures.get(submission_id) is future:
                del self._futures[submission_id]
        if not future.cancelled() and future.exception() is not None:
            logger.error(
                "Countdown expiry for submission %s failed: %s",
                submission_id, future.exception()
            )


timer_registry = TimerRegistry(tick_seconds=settings.countdown_tick_seconds)
