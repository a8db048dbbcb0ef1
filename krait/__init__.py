"""krait - nine-slot real-time MIDI loop recorder."""

from krait.models import LoopSlot, NUM_SLOTS
from krait.engine import LoopEngine
from krait.host import KraitCore

__all__ = ["KraitCore", "LoopEngine", "LoopSlot", "NUM_SLOTS"]
