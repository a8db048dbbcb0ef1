"""Shared data models and constants."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

NUM_SLOTS = 9  # one per number key 1-9
DEFAULT_FRAME_RATE_MS = 25


@dataclass
class LoopSlot:
    """State of one loop slot. Frames map to the raw MIDI events recorded there."""

    id: int
    frame: int = 0
    loop_length: Optional[int] = None
    locked: bool = False
    playing: bool = False
    data: dict[int, list[list[int]]] = field(default_factory=dict)
    channels: set[int] = field(default_factory=set)  # observed MIDI channels (0-15)

    def add_event(self, frame: int, message) -> None:
        self.data.setdefault(frame, []).append(list(message))

    @property
    def event_count(self) -> int:
        return sum(len(events) for events in self.data.values())

    @property
    def empty(self) -> bool:
        return self.loop_length is None and not self.data


@dataclass
class EngineState:
    """Global arming state. Only the arming state machine mutates it."""

    armed: Optional[int] = None
    recording: bool = False
    overdub: bool = False
    frame_rate_ms: int = DEFAULT_FRAME_RATE_MS

    def consume_overdub(self) -> bool:
        """Return the one-shot overdub flag and clear it."""
        flag = self.overdub
        self.overdub = False
        return flag
