from krait.recorder import fold_frames
from krait.models import LoopSlot

NOTE_ON = [144, 60, 127]
NOTE_OFF = [128, 60, 0]


def test_arming_does_not_start_recording(engine, loop):
    engine.arm(1)
    loop.run_ticks(5)

    assert engine.armed == 1
    assert not engine.recording
    assert engine.slot(1).frame == 0
    assert not engine.slots.has_clock(1)


def test_first_message_starts_take_at_frame_zero(engine, loop):
    engine.arm(0)
    loop.run_ticks(3)
    assert engine.handle_midi(NOTE_ON)

    assert engine.recording
    assert engine.slot(0).data == {0: [NOTE_ON]}


def test_capture_keeps_arrival_order_per_frame(engine, loop):
    engine.arm(0)
    engine.handle_midi([144, 60, 100])
    engine.handle_midi([144, 64, 100])
    loop.run_ticks(2)
    engine.handle_midi([176, 1, 20])
    loop.run_ticks(3)
    engine.handle_midi([128, 60, 0])
    engine.handle_midi([128, 64, 0])

    assert engine.slot(0).data == {
        0: [[144, 60, 100], [144, 64, 100]],
        2: [[176, 1, 20]],
        5: [[128, 60, 0], [128, 64, 0]],
    }
    assert engine.slot(0).channels == {0}


def test_channels_are_recorded(engine):
    engine.arm(0)
    engine.handle_midi([0x92, 60, 1])
    engine.handle_midi([0xB9, 7, 100])

    assert engine.slot(0).channels == {2, 9}


def test_first_pass_length_is_tick_count(engine, loop):
    engine.arm(4)
    engine.handle_midi(NOTE_ON)
    loop.run_ticks(13)
    engine.disarm()

    slot = engine.slot(4)
    assert slot.loop_length == 13
    assert slot.locked


def test_record_scenario(engine, loop, statuses):
    engine.arm(2)
    engine.handle_midi(NOTE_ON)
    loop.run_ticks(4)
    engine.handle_midi(NOTE_OFF)
    loop.run_ticks(4)
    engine.toggle_arm(2)

    slot = engine.slot(2)
    assert slot.loop_length == 8
    assert slot.data == {0: [NOTE_ON], 4: [NOTE_OFF]}
    assert slot.playing
    assert slot.frame == 0
    assert engine.armed is None
    assert "loop 3: 2 events" in statuses


def test_stop_before_first_tick_gives_length_one(engine):
    engine.arm(0)
    engine.handle_midi(NOTE_ON)
    engine.disarm()

    assert engine.slot(0).loop_length == 1


def test_overdub_adds_after_existing_events(engine, loop, record_pass):
    first = [144, 62, 90]
    record_pass(0, 8, {0: [NOTE_ON], 3: [first]})
    assert engine.slot(0).frame == 0

    engine.arm(0)
    loop.run_ticks(3)
    second = [144, 67, 90]
    engine.handle_midi(second)
    engine.disarm()

    slot = engine.slot(0)
    assert slot.loop_length == 8
    assert slot.data[3] == [first, second]
    assert slot.playing


def test_overdub_resumes_at_current_frame(engine, loop, record_pass):
    record_pass(0, 8)
    engine.arm(0)
    loop.run_ticks(2)
    engine.handle_midi(NOTE_OFF)
    loop.run_ticks(3)
    engine.disarm()

    slot = engine.slot(0)
    assert slot.frame == 5
    assert not engine.state.overdub
    assert slot.data[2] == [NOTE_OFF]


def test_overdub_wraps_into_loop_length(engine, loop, record_pass):
    record_pass(0, 4)
    engine.arm(0)
    loop.run_ticks(1)
    engine.handle_midi(NOTE_OFF)
    loop.run_ticks(6)
    engine.handle_midi([144, 70, 1])
    engine.disarm()

    slot = engine.slot(0)
    assert slot.loop_length == 4
    assert set(slot.data) <= {0, 1, 2, 3}
    assert slot.data[3] == [[144, 70, 1]]


def test_overdub_on_stopped_loop_starts_playback(engine, loop, record_pass):
    record_pass(0, 8)
    loop.run_ticks(3)
    engine.stop_playback(0)

    engine.arm(0)
    engine.handle_midi(NOTE_OFF)

    slot = engine.slot(0)
    assert slot.playing
    assert slot.data[3] == [NOTE_OFF]


def test_arming_other_slot_finishes_take(engine, loop, statuses):
    engine.arm(0)
    engine.handle_midi(NOTE_ON)
    loop.run_ticks(6)
    engine.toggle_arm(5)

    assert engine.armed == 5
    assert engine.slot(0).loop_length == 6
    assert engine.slot(0).playing
    assert not engine.recording


def test_arm_same_slot_is_noop(engine, loop):
    engine.arm(0)
    engine.handle_midi(NOTE_ON)
    loop.run_ticks(2)
    engine.arm(0)

    assert engine.armed == 0
    assert engine.recording


def test_disarm_while_waiting(engine):
    engine.arm(3)
    assert engine.disarm()
    assert engine.armed is None
    assert engine.slot(3).loop_length is None


def test_disarm_with_nothing_armed(engine):
    assert engine.disarm() is False


def test_unarmed_input_is_ignored(engine):
    assert not engine.handle_midi(NOTE_ON)
    assert all(slot.empty for slot in engine.slots)


def test_unknown_messages_are_not_recorded(engine):
    engine.arm(0)
    assert not engine.handle_midi([0x42, 0])
    assert not engine.handle_midi([])

    assert not engine.recording
    assert engine.slot(0).data == {}


def test_system_messages_are_recorded_without_channel(engine, loop):
    engine.arm(0)
    assert engine.handle_midi([0xFA])
    loop.run_ticks(2)
    assert engine.handle_midi([0xF2, 0, 8])
    assert not engine.handle_midi([0x42])
    engine.handle_midi([0x91, 60, 100])

    slot = engine.slot(0)
    assert engine.recording
    assert slot.data == {0: [[0xFA]], 2: [[0xF2, 0, 8], [0x91, 60, 100]]}
    assert slot.channels == {1}


def test_fold_frames_moves_overflow_after_existing_events():
    slot = LoopSlot(id=0, loop_length=4)
    slot.data = {1: [[1]], 5: [[5]], 9: [[9]], 2: [[2]]}
    fold_frames(slot)

    assert slot.data == {1: [[1], [5], [9]], 2: [[2]]}


def test_invalid_slot_reports_status(engine, statuses):
    assert engine.arm(9) is False
    assert engine.toggle_arm("2") is False
    assert statuses == ["invalid loop slot: 9", "invalid loop slot: '2'"]


def test_new_first_pass_discards_leftover_events(engine):
    engine.import_slot(0, {"loop_length": None, "channels": [5],
                           "data": [[0, [[144, 60, 100]]], [3, [[144, 61, 100]]]]})
    engine.arm(0)
    engine.handle_midi([144, 70, 100])
    engine.disarm()

    slot = engine.slot(0)
    assert slot.data == {0: [[144, 70, 100]]}
    assert slot.channels == {0}
