"""
Clock - Auction expiry tracking and the once-per-second ticker.

`AuctionClock` is pure bookkeeping over an injectable time source:
arm, remaining, force_expire, and a `poll()` that reports expiry exactly
once. `ClockTicker` is the cancellable asyncio task that drives ticks while
the clock is armed.
"""

import asyncio
import math
import time
from typing import Awaitable, Callable, Optional, Tuple

from upa.utils.logger import get_logger

logger = get_logger("clock")


# Default tick period in seconds
DEFAULT_TICK_INTERVAL = 1.0


class AuctionClock:
    """
    Tracks the absolute end time of the running auction.

    Attributes:
        duration_seconds: Configured duration for the next arm()
        end_time: Absolute expiry (epoch seconds), None when disarmed
        armed: True between arm() and expiry/disarm
    """

    def __init__(
        self,
        duration_seconds: int,
        time_source: Callable[[], float] = time.time,
    ):
        self.duration_seconds = duration_seconds
        self.end_time: Optional[float] = None
        self.armed = False
        self._now = time_source

    def arm(self, duration_seconds: Optional[int] = None) -> float:
        """
        Arm the clock.

        Args:
            duration_seconds: Overrides the configured duration

        Returns:
            Absolute end time
        """
        if self.armed:
            raise RuntimeError("Clock already armed")

        if duration_seconds is not None:
            self.duration_seconds = duration_seconds

        self.end_time = self._now() + self.duration_seconds
        self.armed = True
        logger.debug(f"Clock armed for {self.duration_seconds}s, ends at {self.end_time:.0f}")
        return self.end_time

    def resume(self, end_time: float) -> None:
        """Re-arm at a previously saved absolute end time."""
        self.end_time = end_time
        self.armed = True
        logger.info(f"Clock resumed, {self.remaining()}s remaining")

    def remaining(self) -> int:
        """Whole seconds left, rounded up; the full duration when not armed."""
        if not self.armed or self.end_time is None:
            return self.duration_seconds
        return max(0, math.ceil(self.end_time - self._now()))

    def force_expire(self) -> None:
        """Move expiry into the past so the next poll fires."""
        if self.armed:
            self.end_time = self._now() - 1

    def poll(self) -> Tuple[int, bool]:
        """
        Sample the clock.

        Returns:
            (seconds_remaining, expired_now). `expired_now` is True exactly
            once per arm; the armed flag is cleared in the same step.
        """
        if not self.armed:
            return self.remaining(), False

        left = self.remaining()
        if left <= 0:
            self.armed = False
            return 0, True
        return left, False

    def disarm(self) -> None:
        """Stop tracking without firing expiry."""
        self.armed = False

    def reset(self) -> None:
        self.armed = False
        self.end_time = None


class ClockTicker:
    """
    Asyncio task calling `on_tick` every `interval` seconds while the clock
    is armed.

    The task exits on its own once the clock disarms. `cancel()` tears it
    down and clears the handle, so a stale ticker can never fire after the
    auction has been resolved.
    """

    def __init__(
        self,
        clock: AuctionClock,
        on_tick: Callable[[], Awaitable[None]],
        interval: float = DEFAULT_TICK_INTERVAL,
    ):
        self.clock = clock
        self.interval = interval
        self._on_tick = on_tick
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start ticking. Returns False if a ticker is already running."""
        if self.running:
            return False
        self._task = asyncio.create_task(self._run())
        return True

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        try:
            while self.clock.armed:
                await asyncio.sleep(self.interval)
                if not self.clock.armed:
                    break
                await self._on_tick()
        except asyncio.CancelledError:
            logger.debug("Ticker cancelled")
            raise
