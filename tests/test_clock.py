import logging

import pytest

from krait.clock import FrameClock


def test_rejects_non_positive_period():
    with pytest.raises(ValueError):
        FrameClock(0)


def test_unbound_clock_has_no_loop():
    clock = FrameClock(25)
    with pytest.raises(RuntimeError):
        clock.start(lambda: None)


def test_ticks_once_per_period(loop):
    hits = []
    handle = FrameClock(25, loop).start(lambda: hits.append(loop.time()))

    loop.run_ticks(10)

    assert len(hits) == 10
    assert handle.ticks == 10
    assert hits[-1] == pytest.approx(0.25)


def test_deadlines_are_anchored_to_start(loop):
    hits = []
    FrameClock(10, loop).start(lambda: hits.append(loop.time()))

    loop.advance(1.0)

    assert len(hits) == 100
    assert hits[57] == pytest.approx(0.58)


def test_cancel_stops_ticking(loop):
    hits = []
    handle = FrameClock(25, loop).start(lambda: hits.append(1))
    loop.run_ticks(3)
    handle.cancel()
    loop.run_ticks(3)

    assert len(hits) == 3
    assert not handle.active
    assert loop.pending == 0


def test_failing_callback_keeps_clock_running(loop, caplog):
    calls = []

    def boom():
        calls.append(1)
        raise RuntimeError("bad tick")

    FrameClock(25, loop).start(boom, name="boom")
    with caplog.at_level(logging.ERROR, logger="krait.clock"):
        loop.run_ticks(3)

    assert len(calls) == 3
    assert "tick 1 failed" in caplog.text
