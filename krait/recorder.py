"""Arming and recording state machine.

    Idle --arm--> Armed-Waiting --first MIDI message--> Recording
    Recording --toggle same slot / arm another / disarm--> Playing

Only one slot can be armed.  A first recording pass defines the loop length;
recording into a slot that already has a length overdubs onto it.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from krait.clock import FrameClock
from krait.models import EngineState, LoopSlot
from krait.playback import PlaybackEngine
from krait.slots import SlotStore


logger = logging.getLogger(__name__)


def _ignore(*args):
    pass


class Recorder:
    """Owns the ``EngineState`` and every transition of the armed pointer."""

    def __init__(self, store: SlotStore, clock: FrameClock, state: EngineState,
                 playback: PlaybackEngine,
                 status: Callable[[str], None] = _ignore,
                 observer: Callable[[str, LoopSlot], None] = _ignore):
        self._store = store
        self._clock = clock
        self.state = state
        self._playback = playback
        self._status = status
        self._observer = observer

    @property
    def armed_slot(self) -> Optional[LoopSlot]:
        if self.state.armed is None:
            return None
        return self._store.get(self.state.armed)

    @property
    def recording(self) -> bool:
        return self.state.recording

    # -- arming --------------------------------------------------------------

    def arm(self, slot_id: int) -> LoopSlot:
        slot = self._store.get(slot_id)
        if self.state.armed == slot_id:
            return slot
        if self.state.armed is not None:
            self.disarm()
        self.state.armed = slot_id
        logger.info("loop %d armed", slot_id + 1)
        self._observer("armed", slot)
        return slot

    def toggle_arm(self, slot_id: int) -> Optional[LoopSlot]:
        """Arm ``slot_id``, or disarm it if it is already the armed slot."""
        self._store.validate(slot_id)
        if self.state.armed == slot_id:
            self.disarm()
            return None
        return self.arm(slot_id)

    def disarm(self) -> Optional[LoopSlot]:
        slot = self.armed_slot
        if slot is None:
            return None
        try:
            if self.state.recording:
                self.stop_record()
                self._status(f"loop {slot.id + 1}: {slot.event_count} events")
        finally:
            self.state.armed = None
            self.state.recording = False
        logger.info("loop %d disarmed", slot.id + 1)
        self._observer("disarmed", slot)
        return slot

    def drop(self, slot_id: int):
        """Forget the armed pointer for ``slot_id`` without finishing a take."""
        if self.state.armed == slot_id:
            self.state.armed = None
            self.state.recording = False

    # -- recording -----------------------------------------------------------

    def capture(self, message, channel: Optional[int] = None) -> bool:
        """Record one message into the armed slot, starting the take if needed."""
        slot = self.armed_slot
        if slot is None:
            return False
        if not self.state.recording:
            self.record()

        frame = slot.frame % slot.loop_length if slot.loop_length else slot.frame
        slot.add_event(frame, message)
        if channel is not None:
            slot.channels.add(channel)
        return True

    def record(self):
        """Armed-Waiting -> Recording."""
        slot = self.armed_slot
        if slot is None:
            return
        self.state.recording = True
        self._playback.cancel_follower(slot.id)
        if not slot.locked:
            # leftovers of an unfinished take never carry into a new first pass
            slot.data = {}
            slot.channels = set()
            slot.playing = False
            slot.frame = 0
            handle = self._clock.start(lambda: self._advance(slot.id),
                                       name=f"record {slot.id + 1}")
            self._store.attach_clock(slot.id, handle)
        elif not slot.playing:
            # Overdub onto a stopped loop: its playback clock drives the frame.
            self._playback.start(slot.id, resume=True)
        logger.info("loop %d recording%s", slot.id + 1,
                    " (overdub)" if slot.locked else "")
        self._observer("recording", slot)

    def _advance(self, slot_id: int):
        if self.state.armed != slot_id or not self.state.recording:
            return
        self._store.get(slot_id).frame += 1

    def stop_record(self):
        """Recording -> Playing: fix the length on a first pass, else flag overdub."""
        slot = self.armed_slot
        if slot is None or not self.state.recording:
            return
        self.state.recording = False
        if slot.loop_length is None:
            slot.loop_length = max(slot.frame, 1)
            slot.locked = True
            fold_frames(slot)
        else:
            self.state.overdub = True
        self._store.stop_clock(slot.id)
        self._observer("recorded", slot)
        self._playback.start(slot.id)


def fold_frames(slot: LoopSlot):
    """Move events at or past the loop end onto ``frame % loop_length``."""
    overflow = sorted(frame for frame in slot.data if frame >= slot.loop_length)
    for frame in overflow:
        for event in slot.data.pop(frame):
            slot.add_event(frame % slot.loop_length, event)
