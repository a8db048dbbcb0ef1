"""Looper error taxonomy.

Every error raised inside an engine operation derives from ``LooperError`` so
the command boundary can turn it into a status line instead of crashing.
"""

from __future__ import annotations


class LooperError(Exception):
    """Base class for recoverable looper errors."""


class InvalidSlotReference(LooperError, ValueError):
    def __init__(self, slot_id):
        super().__init__(f"invalid loop slot: {slot_id!r}")
        self.slot_id = slot_id


class MissingLoopLength(LooperError):
    def __init__(self, slot_id: int):
        super().__init__(f"loop {slot_id + 1}: loop has no length")
        self.slot_id = slot_id


class InvalidFactor(LooperError, ValueError):
    pass


class LoopBusy(LooperError):
    pass


class SessionError(LooperError):
    pass
