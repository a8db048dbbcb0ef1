"""Loop playback: one frame clock per playing slot."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from krait.clock import FrameClock
from krait.errors import MissingLoopLength
from krait.models import EngineState, LoopSlot
from krait.slots import SlotStore


logger = logging.getLogger(__name__)

OutputSink = Callable[[list], None]


def _ignore(*args):
    pass


class PlaybackEngine:
    """
    Replays each playing slot's events on its own clock.

    Per tick:
      1. Wrap ``frame`` into the current loop length
      2. Dispatch every event stored at that frame, in recording order
      3. Advance ``frame`` modulo the loop length
      4. On the wrap to frame 0, start any slots waiting on this downbeat
    """

    def __init__(self, store: SlotStore, clock: FrameClock, state: EngineState,
                 output: Optional[OutputSink] = None,
                 status: Callable[[str], None] = _ignore,
                 observer: Callable[[str, LoopSlot], None] = _ignore):
        self._store = store
        self._clock = clock
        self._state = state
        self._output = output
        self._status = status
        self._observer = observer
        # source slot -> slots that start on its next downbeat
        self._followers: dict[int, list[int]] = {}

    def set_output(self, output: Optional[OutputSink]):
        self._output = output

    # -- start / stop --------------------------------------------------------

    def start(self, slot_id: int, resume: bool = False) -> LoopSlot:
        """Start playback; resume at the current frame if overdubbing."""
        slot = self._store.get(slot_id)
        # The one-shot flag is consumed by every start attempt.
        resume = self._state.consume_overdub() or resume
        if not slot.loop_length:
            raise MissingLoopLength(slot_id)

        slot.frame = slot.frame % slot.loop_length if resume else 0
        slot.playing = True
        handle = self._clock.start(lambda: self._tick(slot_id),
                                   name=f"play {slot_id + 1}")
        self._store.attach_clock(slot_id, handle)
        logger.debug("slot %d playing from frame %d (length %d)",
                     slot_id + 1, slot.frame, slot.loop_length)
        self._observer("playing", slot)
        return slot

    def stop(self, slot_id: int) -> LoopSlot:
        slot = self._store.get(slot_id)
        # A first-pass recording clock is not ours to cancel.
        if slot.playing:
            self._store.stop_clock(slot_id)
        slot.playing = False
        self._observer("stopped", slot)
        return slot

    def toggle(self, slot_id: int) -> LoopSlot:
        slot = self._store.get(slot_id)
        if slot.playing:
            return self.stop(slot_id)
        return self.start(slot_id)

    def toggle_all(self) -> int:
        """Stop everything if anything plays, else start every slot with a length.

        Returns the number of slots started (0 when stopping).
        """
        playing = [slot.id for slot in self._store if slot.playing]
        if playing:
            for slot_id in playing:
                self.stop(slot_id)
            self._status(f"Stopped {len(playing)} loops")
            return 0

        started = 0
        for slot in self._store:
            if slot.loop_length:
                self.start(slot.id)
                started += 1
        if started:
            self._status(f"Started {started} loops")
        else:
            self._status("No loops to start")
        return started

    # -- downbeat followers --------------------------------------------------

    def start_on_downbeat(self, source_id: int, slot_id: int):
        """Start ``slot_id`` when ``source_id`` next wraps to frame 0."""
        source = self._store.get(source_id)
        self._store.get(slot_id)
        self.cancel_follower(slot_id)
        if not source.playing:
            self.start(slot_id)
            return
        self._followers.setdefault(source_id, []).append(slot_id)

    def cancel_follower(self, slot_id: int):
        """Stop ``slot_id`` from waiting on any downbeat."""
        for source_id in list(self._followers):
            waiting = self._followers[source_id]
            if slot_id in waiting:
                waiting.remove(slot_id)
            if not waiting:
                del self._followers[source_id]

    def forget(self, slot_id: int):
        """Drop every downbeat link that involves ``slot_id``."""
        self._followers.pop(slot_id, None)
        self.cancel_follower(slot_id)

    def pending_followers(self, source_id: int) -> list[int]:
        return list(self._followers.get(source_id, []))

    def _release_followers(self, source_id: int):
        for slot_id in self._followers.pop(source_id, []):
            slot = self._store.get(slot_id)
            if not slot.loop_length:
                logger.debug("follower %d lost its length, not starting", slot_id + 1)
                continue
            self.start(slot_id)
            self._status(f"loop {slot_id + 1} started on loop {source_id + 1} downbeat")

    # -- clock tick ----------------------------------------------------------

    def _tick(self, slot_id: int):
        slot = self._store.get(slot_id)
        # A tick queued before cancellation may still arrive.
        if not slot.playing or not slot.loop_length:
            return

        frame = slot.frame % slot.loop_length
        for event in slot.data.get(frame, ()):
            self._send(event)

        slot.frame = (frame + 1) % slot.loop_length
        if slot.frame == 0 and self._followers.get(slot_id):
            self._release_followers(slot_id)

    def _send(self, event):
        if self._output is None:
            logger.debug("no MIDI output, message not dispatched: %s", event)
            return
        try:
            self._output(event)
        except Exception as exc:
            logger.warning("message not dispatched %s: %s", event, exc)

