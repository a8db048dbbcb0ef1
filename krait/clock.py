"""Fixed-period frame clock on a single-threaded asyncio event loop.

Each running clock is an independent ``ClockHandle``; all handles share the
same loop, so their callbacks are serialised and never run concurrently.
Deadlines are anchored to the start time (``start + n * period``) rather
than chained off the previous callback.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from krait.models import DEFAULT_FRAME_RATE_MS


logger = logging.getLogger(__name__)


class ClockHandle:
    """A repeating timer that can be cancelled before its next tick."""

    def __init__(self, loop, period: float, callback: Callable[[], None],
                 name: str = "clock"):
        self._loop = loop
        self._period = period
        self._callback = callback
        self._name = name
        self._start = loop.time()
        self._ticks = 0
        self._timer = None
        self._cancelled = False
        self._schedule()

    def _schedule(self):
        deadline = self._start + (self._ticks + 1) * self._period
        self._timer = self._loop.call_at(deadline, self._fire)

    def _fire(self):
        if self._cancelled:
            return
        self._ticks += 1
        self._schedule()
        try:
            self._callback()
        except Exception:
            logger.exception("[%s] tick %d failed", self._name, self._ticks)

    def cancel(self):
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def active(self) -> bool:
        return not self._cancelled

    @property
    def ticks(self) -> int:
        return self._ticks


class FrameClock:
    """Factory for frame-rate clock handles bound to one event loop."""

    def __init__(self, period_ms: int = DEFAULT_FRAME_RATE_MS,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        if period_ms <= 0:
            raise ValueError("frame period must be positive")
        self.period_ms = period_ms
        self._loop = loop

    @property
    def period(self) -> float:
        return self.period_ms / 1000.0

    @property
    def loop(self):
        if self._loop is None:
            raise RuntimeError("frame clock is not bound to an event loop")
        return self._loop

    def bind(self, loop):
        self._loop = loop

    def start(self, callback: Callable[[], None], name: str = "clock") -> ClockHandle:
        return ClockHandle(self.loop, self.period, callback, name)
