import pytest


def _notes(sent):
    return [event[1] for event in sent]


@pytest.fixture
def four_step(engine):
    """A four-frame loop in slot 1 with one note per frame, not playing."""
    slot = engine.slot(0)
    slot.loop_length = 4
    slot.locked = True
    slot.data = {f: [[144, 60 + f, 100]] for f in range(4)}
    return slot


def test_playback_is_periodic(engine, loop, sent, four_step):
    engine.start_playback(0)
    loop.run_ticks(12)

    assert _notes(sent) == [60, 61, 62, 63] * 3
    assert four_step.frame == 0


def test_events_in_one_frame_keep_order(engine, loop, sent, four_step):
    four_step.data[0] = [[144, 1, 1], [144, 2, 1], [128, 1, 0]]
    engine.start_playback(0)
    loop.run_ticks(1)

    assert sent == [[144, 1, 1], [144, 2, 1], [128, 1, 0]]


def test_start_without_length_is_reported(engine, statuses):
    assert engine.start_playback(3) is False
    assert statuses == ["loop 4: loop has no length"]
    assert not engine.slot(3).playing
    assert not engine.slots.has_clock(3)


def test_restart_keeps_a_single_clock(engine, loop, sent, four_step):
    engine.start_playback(0)
    loop.run_ticks(2)
    engine.start_playback(0)
    loop.run_ticks(4)

    assert _notes(sent) == [60, 61, 60, 61, 62, 63]
    assert loop.pending == 1


def test_stop_silences_slot(engine, loop, sent, four_step):
    engine.start_playback(0)
    loop.run_ticks(2)
    engine.stop_playback(0)
    loop.run_ticks(4)

    assert _notes(sent) == [60, 61]
    assert not four_step.playing
    assert four_step.frame == 2


def test_stale_tick_is_ignored(engine, sent, four_step):
    engine.start_playback(0)
    engine.stop_playback(0)
    engine.playback._tick(0)

    assert sent == []
    assert four_step.frame == 0


def test_toggle_playback(engine, four_step):
    engine.toggle_playback(0)
    assert four_step.playing
    engine.toggle_playback(0)
    assert not four_step.playing


def test_consumes_overdub_flag_once(engine, loop, four_step):
    engine.start_playback(0)
    loop.run_ticks(3)
    engine.stop_playback(0)

    engine.state.overdub = True
    engine.start_playback(0)
    assert four_step.frame == 3
    assert not engine.state.overdub

    engine.start_playback(0)
    assert four_step.frame == 0


def test_frame_wraps_after_length_shrinks(engine, loop, sent, four_step):
    engine.start_playback(0)
    loop.run_ticks(3)
    four_step.loop_length = 2
    loop.run_ticks(3)

    assert _notes(sent) == [60, 61, 62, 61, 60, 61]


def test_missing_output_does_not_break_playback(loop, four_step, engine):
    engine.set_output(None)
    engine.start_playback(0)
    loop.run_ticks(5)

    assert four_step.frame == 1


def test_output_failure_is_logged(engine, loop, four_step, caplog):
    def broken(event):
        raise OSError("port gone")

    engine.set_output(broken)
    engine.start_playback(0)
    loop.run_ticks(2)

    assert four_step.frame == 2
    assert "message not dispatched" in caplog.text


def test_toggle_all(engine, loop, record_pass, statuses):
    record_pass(0, 4)
    record_pass(1, 6)
    statuses.clear()

    engine.toggle_all()
    assert not any(slot.playing for slot in engine.slots)

    engine.toggle_all()
    assert engine.slot(0).playing and engine.slot(1).playing
    assert not engine.slot(2).playing
    assert statuses == ["Stopped 2 loops", "Started 2 loops"]


def test_toggle_all_with_nothing_recorded(engine, statuses):
    engine.toggle_all()
    assert statuses == ["No loops to start"]


def test_reset_clears_slot_and_clock(engine, loop, record_pass, statuses):
    record_pass(6, 4)
    engine.reset_slot(6)

    slot = engine.slot(6)
    assert slot.empty
    assert not slot.playing
    assert not engine.slots.has_clock(6)
    assert statuses[-1] == "loop 7 reset"


def test_reset_armed_slot_disarms(engine, loop):
    engine.arm(2)
    engine.handle_midi([144, 60, 1])
    loop.run_ticks(2)
    engine.reset_slot(2)

    assert engine.armed is None
    assert not engine.recording
    assert engine.slot(2).empty
    assert loop.pending == 0
