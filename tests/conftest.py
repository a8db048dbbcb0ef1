"""Shared fixtures: a hand-driven event loop so clock ticks are deterministic."""

from __future__ import annotations

import heapq
import itertools

import pytest

from krait.engine import LoopEngine

FRAME = 0.025
EPSILON = 1e-9


class _Timer:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualLoop:
    """The subset of ``asyncio`` loop API the frame clock uses, advanced by hand."""

    def __init__(self):
        self._now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def time(self):
        return self._now

    def call_at(self, when, callback, *args):
        timer = _Timer(when, callback, args)
        heapq.heappush(self._queue, (when, next(self._seq), timer))
        return timer

    def call_soon(self, callback, *args):
        return self.call_at(self._now, callback, *args)

    call_soon_threadsafe = call_soon

    def advance(self, seconds):
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target + EPSILON:
            when, _, timer = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            if not timer.cancelled:
                timer.callback(*timer.args)
        self._now = target

    def run_ticks(self, count, period=FRAME):
        for _ in range(count):
            self.advance(period)

    @property
    def pending(self):
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)


@pytest.fixture
def loop():
    return ManualLoop()


@pytest.fixture
def sent():
    return []


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def engine(loop, sent, statuses):
    return LoopEngine(loop=loop, output=sent.append, status=statuses.append)


@pytest.fixture
def record_pass(engine, loop):
    """Record a first pass: ``events`` maps tick offsets to messages."""

    def _record(slot_id, ticks, events=None):
        events = events or {0: [[144, 60, 100]]}
        engine.arm(slot_id)
        elapsed = 0
        for tick in sorted(events):
            loop.run_ticks(tick - elapsed)
            elapsed = tick
            for message in events[tick]:
                engine.handle_midi(message)
        loop.run_ticks(ticks - elapsed)
        engine.disarm()
        return engine.slot(slot_id)

    return _record
