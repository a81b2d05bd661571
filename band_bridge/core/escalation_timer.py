"""
Fall escalation countdown.

EscalationTimer holds the countdown state and knows nothing about time: the
caller advances it with tick(). CountdownRunner drives it on the event loop,
one tick per second, and hands the triggering frame to the dispatcher when
the countdown reaches zero.

Everything runs on one asyncio loop and tick()/cancel() never await, so an
expiry and a cancel can't interleave: whichever runs first wins.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from band_bridge.schemas.telemetry import TelemetryRecord

logger = logging.getLogger(__name__)

DEFAULT_COUNTDOWN_TICKS = 7


class EscalationTimer:
    """Single-flight countdown. At most one triggering frame is held at a time."""

    def __init__(self, ticks: int = DEFAULT_COUNTDOWN_TICKS) -> None:
        if ticks < 1:
            raise ValueError("countdown needs at least one tick")
        self.ticks = ticks
        self.remaining_ticks = 0
        self.triggering_record: Optional[TelemetryRecord] = None

    @property
    def is_armed(self) -> bool:
        return self.triggering_record is not None

    def arm(self, record: TelemetryRecord) -> bool:
        """Start counting down for `record`. Returns False if already armed."""
        if self.is_armed:
            return False
        self.remaining_ticks = self.ticks
        self.triggering_record = record
        return True

    def tick(self) -> Optional[TelemetryRecord]:
        """
        Advance by one second.
        Returns the triggering record on the tick that reaches zero (the timer
        disarms itself first), otherwise None.
        """
        if not self.is_armed:
            return None
        self.remaining_ticks -= 1
        if self.remaining_ticks > 0:
            return None
        record = self.triggering_record
        self.triggering_record = None
        self.remaining_ticks = 0
        return record

    def cancel(self) -> bool:
        """Disarm without dispatching. Returns False if nothing was armed."""
        if not self.is_armed:
            return False
        self.triggering_record = None
        self.remaining_ticks = 0
        return True


class CountdownRunner:
    """
    Runs an EscalationTimer on the event loop.

    on_tick(remaining) is called with the starting value and after every tick,
    and with None once the countdown is over (expired or cancelled).
    dispatch(record) is awaited once per expiry.
    """

    def __init__(
        self,
        timer: EscalationTimer,
        dispatch: Callable[[TelemetryRecord], Awaitable[object]],
        on_tick: Optional[Callable[[Optional[int]], None]] = None,
        interval: float = 1.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.timer = timer
        self._dispatch = dispatch
        self._on_tick = on_tick or (lambda remaining: None)
        self.interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        # every countdown task still running, including ones already dispatching
        self._tasks: set[asyncio.Task] = set()
        self._generation = 0

    @property
    def is_armed(self) -> bool:
        return self.timer.is_armed

    def start(self, record: TelemetryRecord) -> bool:
        """Arm and start ticking. A second start while armed is ignored."""
        if not self.timer.arm(record):
            logger.debug("Fall signal ignored, countdown already running (%ss left)",
                         self.timer.remaining_ticks)
            return False
        self._generation += 1
        logger.warning("Fall detected, escalating in %ss unless cancelled", self.timer.remaining_ticks)
        self._on_tick(self.timer.remaining_ticks)
        task = asyncio.get_running_loop().create_task(self._run(self._generation))
        self._task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    def cancel(self) -> bool:
        """Stop the countdown before it expires. Safe to call at any time."""
        if not self.timer.cancel():
            return False
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.info("Fall alert cancelled")
        self._on_tick(None)
        return True

    async def _run(self, generation: int) -> None:
        try:
            while True:
                await self._sleep(self.interval)
                # cancelled, or cancelled and re-armed, while asleep
                if generation != self._generation:
                    return
                expired = self.timer.tick()
                self._on_tick(self.timer.remaining_ticks)
                if expired is not None:
                    self._on_tick(None)
                    await self._dispatch(expired)
                    return
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    async def wait_closed(self) -> None:
        """
        Wait for every started countdown to finish, including dispatches still
        in flight from countdowns that expired before a re-arm.
        """
        tasks = list(self._tasks)
        if not tasks:
            return
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Fall alert dispatch failed: %s", result)

    async def close(self) -> None:
        """Stop the armed countdown, then let in-flight dispatches complete."""
        armed = self.timer.cancel()
        self._generation += 1
        task, self._task = self._task, None
        if armed and task is not None:
            task.cancel()
        await self.wait_closed()
