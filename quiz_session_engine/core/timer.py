from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable, Union

from .session import QuizSession

logger = logging.getLogger(__name__)

TIMER_IDLE = "idle"
TIMER_RUNNING = "running"
TIMER_EXPIRED = "expired"
TIMER_STOPPED = "stopped"

TickListener = Callable[[int], None]


class QuizTimer:
    """Countdown for a timed session.

    The timer is tied to its session only through ``session.complete()``,
    which it calls once when the countdown reaches zero. It stops on its own
    as soon as the session completes for any other reason. Untimed sessions
    (``time_limit_minutes`` of ``None``) leave the timer idle for good.
    """

    def __init__(
        self,
        session: QuizSession,
        *,
        tick_seconds: float = 1.0,
        on_tick: Union[TickListener, None] = None,
    ) -> None:
        self.session = session
        self.tick_seconds = tick_seconds
        self._tick_listeners: list[TickListener] = [on_tick] if on_tick else []
        self._state = TIMER_IDLE
        self._remaining: Union[int, None] = None
        self._task: Union[asyncio.Task, None] = None
        session.add_complete_listener(lambda _record: self.stop())

    @property
    def state(self) -> str:
        return self._state

    @property
    def remaining_seconds(self) -> Union[int, None]:
        return self._remaining

    def add_tick_listener(self, callback: TickListener) -> None:
        self._tick_listeners.append(callback)

    def start(self) -> None:
        """Arm the countdown; a zero or negative limit expires immediately."""
        limit = self.session.config.time_limit_minutes
        if limit is None or self._state != TIMER_IDLE or self.session.is_completed:
            return
        if not math.isfinite(limit):
            logger.warning("Ignoring non-finite time limit %r", limit)
            return
        self._remaining = max(0, int(round(limit * 60)))
        self._state = TIMER_RUNNING
        logger.debug("Timer started with %d seconds", self._remaining)
        if self._remaining == 0:
            self._expire()

    def tick(self) -> None:
        """Advance the countdown by one second."""
        if self._state != TIMER_RUNNING:
            return
        if self.session.is_completed:
            self.stop()
            return

        self._remaining -= 1
        for callback in list(self._tick_listeners):
            try:
                callback(self._remaining)
            except Exception:
                logger.exception("Tick listener failed")
        if self._remaining <= 0:
            self._expire()

    def _expire(self) -> None:
        self._state = TIMER_EXPIRED
        self._remaining = 0
        logger.info("Time limit reached; completing session")
        self.session.complete()

    def stop(self) -> None:
        if self._state == TIMER_RUNNING:
            self._state = TIMER_STOPPED

    async def run(self) -> None:
        """Tick once per ``tick_seconds`` until expiry or session completion."""
        self.start()
        while self._state == TIMER_RUNNING:
            await asyncio.sleep(self.tick_seconds)
            self.tick()

    def start_task(self) -> asyncio.Task:
        """Schedule ``run()`` on the running event loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    def cancel(self) -> None:
        """Abandon the countdown without completing the session."""
        self.stop()
        if self._task is not None and not self._task.done():
            self._task.cancel()
