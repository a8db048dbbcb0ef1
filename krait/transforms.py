"""Loop length and content transforms: duplicate, multiply, trim, clean.

None of these touch the slot's clock or rescale ``frame``; a playing slot
picks up the new length when its next tick wraps the frame.
"""

from __future__ import annotations

import logging
from typing import Callable

from krait.errors import InvalidFactor, LoopBusy, MissingLoopLength
from krait.models import EngineState, LoopSlot
from krait.playback import PlaybackEngine
from krait.slots import SlotStore


logger = logging.getLogger(__name__)


def _ignore(*args):
    pass


def _check_factor(factor) -> int:
    if isinstance(factor, bool) or not isinstance(factor, int):
        raise InvalidFactor(f"factor must be an integer, got {factor!r}")
    if factor < 1:
        raise InvalidFactor(f"factor must be >= 1, got {factor}")
    return factor


def describe(slot: LoopSlot) -> dict:
    """Summary of a slot's shape used in transform log lines."""
    return {
        "id": slot.id,
        "frame": slot.frame,
        "loop_length": slot.loop_length,
        "locked": slot.locked,
        "data": len(slot.data),
    }


class LoopTransforms:
    def __init__(self, store: SlotStore, playback: PlaybackEngine, state: EngineState,
                 status: Callable[[str], None] = _ignore,
                 observer: Callable[[str, LoopSlot], None] = _ignore):
        self._store = store
        self._playback = playback
        self._state = state
        self._status = status
        self._observer = observer

    def _require_length(self, slot: LoopSlot) -> int:
        if not slot.loop_length:
            raise MissingLoopLength(slot.id)
        return slot.loop_length

    def duplicate(self, source_id: int, dest_id: int) -> LoopSlot:
        """Give ``dest`` the source's length with no events, starting on its downbeat."""
        source = self._store.get(source_id)
        dest = self._store.get(dest_id)
        length = self._require_length(source)
        if source_id == dest_id:
            raise LoopBusy(f"loop {source_id + 1} cannot be duplicated onto itself")
        if self._state.armed == dest_id and self._state.recording:
            raise LoopBusy(f"loop {dest_id + 1} is recording")

        self._playback.cancel_follower(dest_id)
        self._store.stop_clock(dest_id)
        dest.playing = False
        dest.loop_length = length
        dest.frame = 0
        dest.locked = True
        dest.data = {}
        self._status(f"loop {source_id + 1} → loop {dest_id + 1}")
        logger.info("duplicate %s", describe(dest))
        self._observer("duplicate", dest)

        self._playback.start_on_downbeat(source_id, dest_id)
        return dest

    def multiply(self, slot_id: int, factor: int) -> LoopSlot:
        """Lengthen the loop; existing events keep their frames."""
        slot = self._store.get(slot_id)
        length = self._require_length(slot)
        factor = _check_factor(factor)
        slot.loop_length = length * factor
        self._status(f"loop {slot_id + 1} x {factor}")
        logger.info("multiply %s", describe(slot))
        self._observer("multiply", slot)
        return slot

    def trim(self, slot_id: int, factor: int) -> LoopSlot:
        """Shorten the loop by floor division; events past the end go silent."""
        slot = self._store.get(slot_id)
        length = self._require_length(slot)
        factor = _check_factor(factor)
        new_length = length // factor
        if new_length < 1:
            raise InvalidFactor(
                f"loop {slot_id + 1}: cannot trim {length} frames by {factor}")
        slot.loop_length = new_length
        self._status(f"loop {slot_id + 1} / {factor}")
        logger.info("trim %s", describe(slot))
        self._observer("trim", slot)
        return slot

    def clean(self, slot_id: int) -> LoopSlot:
        slot = self._store.get(slot_id)
        slot.data = {}
        self._status(f"loop {slot_id + 1} cleaned")
        self._observer("clean", slot)
        return slot
