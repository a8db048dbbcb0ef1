"""Loop engine - the command surface over slots, clocks, recording and playback.

Every public command runs to completion on the event loop thread.  Errors
raised inside a command are turned into a status line and a ``False``
return value; they never propagate into the event loop.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, Optional

from krait.clock import FrameClock
from krait.errors import LooperError, SessionError
from krait.midimap import classify
from krait.models import DEFAULT_FRAME_RATE_MS, EngineState, LoopSlot
from krait.playback import OutputSink, PlaybackEngine
from krait.recorder import Recorder
from krait.slots import SlotStore
from krait.transforms import LoopTransforms


logger = logging.getLogger(__name__)


def command(fn):
    """Catch errors at the operation boundary and report them as status."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except LooperError as exc:
            logger.warning("%s failed: %s", fn.__name__, exc)
            self.status(str(exc))
        except Exception as exc:
            logger.exception("%s failed", fn.__name__)
            self.status(f"{fn.__name__} failed: {exc}")
        return False
    return wrapper


class LoopEngine:
    def __init__(self, frame_rate_ms: int = DEFAULT_FRAME_RATE_MS, loop=None,
                 output: Optional[OutputSink] = None,
                 status: Optional[Callable[[str], None]] = None,
                 observer: Optional[Callable[[str, LoopSlot], None]] = None):
        self.state = EngineState(frame_rate_ms=frame_rate_ms)
        self.clock = FrameClock(frame_rate_ms, loop)
        self.slots = SlotStore()
        self._status_sink = status
        self._observer = observer

        self.playback = PlaybackEngine(self.slots, self.clock, self.state, output,
                                       self.status, self._observe)
        self.recorder = Recorder(self.slots, self.clock, self.state, self.playback,
                                 self.status, self._observe)
        self.transforms = LoopTransforms(self.slots, self.playback, self.state,
                                         self.status, self._observe)

    # -- sinks ---------------------------------------------------------------

    def status(self, message: str):
        if self._status_sink is None:
            logger.info("%s", message)
            return
        self._status_sink(message)

    def _observe(self, event: str, slot: LoopSlot):
        if self._observer is None:
            return
        try:
            self._observer(event, slot)
        except Exception:
            logger.exception("observer failed on %s for loop %d", event, slot.id + 1)

    def set_output(self, output: Optional[OutputSink]):
        self.playback.set_output(output)

    def bind_loop(self, loop):
        self.clock.bind(loop)

    # -- read-only helpers ---------------------------------------------------

    def slot(self, slot_id: int) -> LoopSlot:
        return self.slots.get(slot_id)

    @property
    def armed(self) -> Optional[int]:
        return self.state.armed

    @property
    def recording(self) -> bool:
        return self.state.recording

    # -- MIDI input ----------------------------------------------------------

    def handle_midi(self, message, timestamp: Optional[float] = None) -> bool:
        """Feed one incoming message; returns True if it was recorded."""
        del timestamp
        info = classify(message)
        if info is None:
            logger.debug("unrecognized MIDI %s ignored", list(message or ()))
            return False
        try:
            return self.recorder.capture(message, info.channel)
        except Exception as exc:
            logger.warning("MIDI processing error: %s", exc)
            return False

    # -- arming --------------------------------------------------------------

    @command
    def arm(self, slot_id: int):
        return self.recorder.arm(slot_id)

    @command
    def toggle_arm(self, slot_id: int):
        self.recorder.toggle_arm(slot_id)
        return True

    @command
    def disarm(self):
        return self.recorder.disarm() is not None

    # -- playback ------------------------------------------------------------

    @command
    def start_playback(self, slot_id: int):
        return self.playback.start(slot_id)

    @command
    def stop_playback(self, slot_id: int):
        return self.playback.stop(slot_id)

    @command
    def toggle_playback(self, slot_id: int):
        return self.playback.toggle(slot_id)

    @command
    def toggle_all(self):
        self.playback.toggle_all()
        return True

    # -- slot lifecycle ------------------------------------------------------

    @command
    def reset_slot(self, slot_id: int):
        self.slots.validate(slot_id)
        self.recorder.drop(slot_id)
        self.playback.forget(slot_id)
        slot = self.slots.reset(slot_id)
        self.status(f"loop {slot_id + 1} reset")
        self._observe("reset", slot)
        return slot

    # -- transforms ----------------------------------------------------------

    @command
    def duplicate(self, source_id: int, dest_id: int):
        return self.transforms.duplicate(source_id, dest_id)

    @command
    def multiply(self, slot_id: int, factor: int):
        return self.transforms.multiply(slot_id, factor)

    @command
    def trim(self, slot_id: int, factor: int):
        return self.transforms.trim(slot_id, factor)

    @command
    def clean(self, slot_id: int):
        return self.transforms.clean(slot_id)

    # -- persistence ---------------------------------------------------------

    def export_slot(self, slot_id: int) -> dict:
        """Plain serializable snapshot of one slot."""
        slot = self.slots.get(slot_id)
        return {
            "id": slot.id,
            "loop_length": slot.loop_length,
            "locked": slot.locked,
            "channels": sorted(slot.channels),
            "data": [[frame, [list(event) for event in slot.data[frame]]]
                     for frame in sorted(slot.data)],
        }

    @command
    def import_slot(self, slot_id: int, data: dict):
        """Replace a slot's contents with an exported structure."""
        self.slots.validate(slot_id)
        loop_length, channels, frames = parse_slot_data(data)

        self.recorder.drop(slot_id)
        self.playback.forget(slot_id)
        self.slots.stop_clock(slot_id)
        slot = self.slots.get(slot_id)
        slot.playing = False
        slot.frame = 0
        slot.loop_length = loop_length
        slot.locked = loop_length is not None
        slot.channels = channels
        slot.data = frames
        self._observe("load", slot)
        return slot

    # -- shutdown ------------------------------------------------------------

    def close(self):
        """Cancel every clock. Slot data is left intact."""
        self.recorder.drop(self.state.armed)
        self.slots.stop_all()
        for slot in self.slots:
            slot.playing = False


def parse_slot_data(data) -> tuple[Optional[int], set[int], dict[int, list[list[int]]]]:
    """Validate an exported slot structure; raises SessionError."""
    try:
        loop_length = data.get("loop_length")
        if loop_length is not None:
            loop_length = int(loop_length)
            if loop_length < 1:
                raise ValueError(f"loop_length must be >= 1, got {loop_length}")
        channels = {int(ch) for ch in data.get("channels") or []}
        frames: dict[int, list[list[int]]] = {}
        for frame, events in data.get("data") or []:
            frame = int(frame)
            if frame < 0:
                raise ValueError(f"negative frame {frame}")
            frames.setdefault(frame, []).extend(
                [int(b) for b in event] for event in events)
    except (AttributeError, TypeError, ValueError) as exc:
        raise SessionError(f"malformed loop data: {exc}") from exc
    return loop_length, channels, frames
