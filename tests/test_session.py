import json

import pytest

from krait import session
from krait.engine import LoopEngine, parse_slot_data
from krait.errors import SessionError

NOTE_ON = [144, 60, 127]
NOTE_OFF = [128, 60, 0]


def test_export_structure(engine, record_pass):
    record_pass(1, 8, {0: [NOTE_ON], 4: [NOTE_OFF]})

    assert engine.export_slot(1) == {
        "id": 1,
        "loop_length": 8,
        "locked": True,
        "channels": [0],
        "data": [[0, [NOTE_ON]], [4, [NOTE_OFF]]],
    }


def test_import_replaces_slot(engine, loop, record_pass):
    record_pass(0, 8, {0: [NOTE_ON], 4: [NOTE_OFF]})
    exported = engine.export_slot(0)
    record_pass(3, 5)

    assert engine.import_slot(3, exported)

    slot = engine.slot(3)
    assert slot.loop_length == 8
    assert slot.data == {0: [NOTE_ON], 4: [NOTE_OFF]}
    assert slot.channels == {0}
    assert slot.locked
    assert not slot.playing
    assert slot.frame == 0
    assert not engine.slots.has_clock(3)


def test_import_keeps_frames_past_trimmed_length(engine, record_pass):
    record_pass(0, 8, {0: [NOTE_ON], 6: [NOTE_OFF]})
    engine.trim(0, 2)
    engine.import_slot(1, engine.export_slot(0))

    assert engine.slot(1).loop_length == 4
    assert engine.slot(1).data[6] == [NOTE_OFF]


def test_import_disarms_target(engine, loop):
    engine.arm(2)
    engine.handle_midi(NOTE_ON)
    loop.run_ticks(3)

    engine.import_slot(2, {"loop_length": 4, "data": [[1, [NOTE_OFF]]]})

    assert engine.armed is None
    assert not engine.recording
    assert engine.slot(2).data == {1: [NOTE_OFF]}
    assert loop.pending == 0


@pytest.mark.parametrize("data", [
    {"loop_length": 0},
    {"loop_length": "eight"},
    {"data": [[-1, [NOTE_ON]]]},
    {"data": [[0]]},
    {"channels": 5},
    [],
])
def test_malformed_slot_data(data):
    with pytest.raises(SessionError):
        parse_slot_data(data)


def test_malformed_import_reports_status(engine, statuses):
    assert engine.import_slot(0, {"loop_length": -3}) is False
    assert statuses[-1].startswith("malformed loop data")
    assert engine.slot(0).empty


def test_save_and_load_loop_file(engine, record_pass, tmp_path):
    record_pass(0, 8, {0: [NOTE_ON], 4: [NOTE_OFF]})
    path = session.save_loop(engine, 0, "groove", tmp_path)

    assert path == tmp_path / "groove.json"
    saved = json.loads(path.read_text())
    assert saved["loop_length"] == 8
    assert saved["metadata"]["version"] == session.FILE_VERSION
    assert saved["metadata"]["frame_rate_ms"] == 25
    assert session.list_saved_loops(tmp_path) == ["groove"]

    session.load_loop(engine, 6, "groove", tmp_path)
    assert engine.slot(6).data == engine.slot(0).data
    assert engine.slot(6).loop_length == 8


def test_save_empty_loop_fails(engine, tmp_path):
    with pytest.raises(SessionError, match="no length"):
        session.save_loop(engine, 0, "nothing", tmp_path)
    assert session.list_saved_loops(tmp_path) == []


@pytest.mark.parametrize("name", ["", "  ", "../escape", ".hidden", "a/b"])
def test_bad_loop_names(name, tmp_path):
    with pytest.raises(SessionError):
        session.loop_path(name, tmp_path)


def test_load_missing_file(engine, tmp_path):
    with pytest.raises(SessionError, match="File not found"):
        session.load_loop(engine, 0, "absent", tmp_path)


def test_load_unknown_version(engine, tmp_path):
    (tmp_path / "future.json").write_text(json.dumps(
        {"loop_length": 4, "data": [], "metadata": {"version": 99}}))
    with pytest.raises(SessionError, match="unknown file version"):
        session.load_loop(engine, 0, "future", tmp_path)


def test_list_saved_loops_without_directory(tmp_path):
    assert session.list_saved_loops(tmp_path / "missing") == []


def test_session_round_trip(engine, loop, record_pass, tmp_path):
    record_pass(0, 8, {0: [NOTE_ON], 4: [NOTE_OFF]})
    record_pass(4, 3, {0: [[0x95, 40, 90]]})
    engine.duplicate(0, 7)
    path = tmp_path / "session.json"
    session.save(engine, path)

    fresh = LoopEngine(loop=loop)
    assert session.restore(fresh, path) == 3

    for slot_id in (0, 4, 7):
        assert fresh.export_slot(slot_id) == engine.export_slot(slot_id)
    assert fresh.slot(2).empty
    assert not any(slot.playing for slot in fresh.slots)


def test_restore_missing_session(engine, tmp_path):
    assert session.restore(engine, tmp_path / "none.json") == 0


def test_restore_garbage_session(engine, tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")
    with pytest.raises(SessionError):
        session.restore(engine, path)


def test_restore_skips_bad_slots(engine, tmp_path, caplog):
    path = tmp_path / "session.json"
    path.write_text(json.dumps({"slots": [
        {"loop_length": 4, "data": [[0, [NOTE_ON]]]},
        {"loop_length": "bad"},
        None,
    ]}))

    assert session.restore(engine, path) == 1
    assert engine.slot(0).loop_length == 4
    assert engine.slot(1).empty
    assert "slot 2" in caplog.text


def test_unfinished_take_is_not_saved(engine, loop, tmp_path):
    engine.arm(0)
    engine.handle_midi([144, 60, 100])
    loop.run_ticks(3)
    engine.handle_midi([144, 61, 100])
    path = tmp_path / "session.json"
    session.save(engine, path)
    engine.close()

    fresh = LoopEngine(loop=loop)
    assert session.restore(fresh, path) == 0
    assert fresh.slot(0).empty
