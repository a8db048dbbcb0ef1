"""The nine loop slots and their clock handles."""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from krait.clock import ClockHandle
from krait.errors import InvalidSlotReference
from krait.models import LoopSlot, NUM_SLOTS


logger = logging.getLogger(__name__)


class SlotStore:
    """Owns every ``LoopSlot`` and the single running clock of each slot."""

    def __init__(self, num_slots: int = NUM_SLOTS):
        self._slots: list[LoopSlot] = [LoopSlot(id=i) for i in range(num_slots)]
        self._clocks: dict[int, ClockHandle] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[LoopSlot]:
        return iter(self._slots)

    def __getitem__(self, slot_id: int) -> LoopSlot:
        return self.get(slot_id)

    def validate(self, slot_id) -> int:
        if isinstance(slot_id, bool) or not isinstance(slot_id, int):
            raise InvalidSlotReference(slot_id)
        if not 0 <= slot_id < len(self._slots):
            raise InvalidSlotReference(slot_id)
        return slot_id

    def get(self, slot_id: int) -> LoopSlot:
        return self._slots[self.validate(slot_id)]

    # -- clocks --------------------------------------------------------------

    def attach_clock(self, slot_id: int, handle: ClockHandle):
        """Install ``handle`` as the slot's clock, cancelling any previous one."""
        self.stop_clock(slot_id)
        self._clocks[slot_id] = handle

    def stop_clock(self, slot_id: int) -> bool:
        handle = self._clocks.pop(slot_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def has_clock(self, slot_id: int) -> bool:
        return slot_id in self._clocks

    def clock(self, slot_id: int) -> Optional[ClockHandle]:
        return self._clocks.get(slot_id)

    # -- reset ---------------------------------------------------------------

    def reset(self, slot_id: int) -> LoopSlot:
        """Stop the slot's clock and replace it with a fresh empty slot."""
        self.validate(slot_id)
        self.stop_clock(slot_id)
        slot = LoopSlot(id=slot_id)
        self._slots[slot_id] = slot
        logger.debug("slot %d reset", slot_id + 1)
        return slot

    def stop_all(self):
        for slot_id in list(self._clocks):
            self.stop_clock(slot_id)
