"""MIDI status byte classification.

Channel voice messages occupy 0x80-0xEF (high nibble = type, low nibble =
channel); 0xF0-0xFF are single-code system messages.  Any status byte in
the table can be recorded; only channel voice messages carry a channel.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

CHANNEL_VOICE_TYPES = [
    (0x80, "Note Off"),
    (0x90, "Note On"),
    (0xA0, "Polyphonic Aftertouch"),
    (0xB0, "Control Change"),
    (0xC0, "Program Change"),
    (0xD0, "Channel Aftertouch"),
    (0xE0, "Pitch Wheel"),
]

SYSTEM_TYPES = {
    0xF0: "System Exclusive",
    0xF1: "MIDI Time Code Quarter Frame",
    0xF2: "Song Position Pointer",
    0xF3: "Song Select",
    0xF4: "Undefined (System Common)",
    0xF5: "Undefined (System Common)",
    0xF6: "Tune Request",
    0xF7: "End of SysEx",
    0xF8: "Timing Clock",
    0xF9: "Undefined (System Real-Time)",
    0xFA: "Start",
    0xFB: "Continue",
    0xFC: "Stop",
    0xFD: "Undefined (System Real-Time)",
    0xFE: "Active Sensing",
    0xFF: "System Reset",
}


class StatusInfo(NamedTuple):
    type: str
    channel: Optional[int] = None


def build_status_map() -> dict[int, StatusInfo]:
    """Return the full status byte -> StatusInfo lookup."""
    table: dict[int, StatusInfo] = {}
    for base, name in CHANNEL_VOICE_TYPES:
        for channel in range(16):
            table[base + channel] = StatusInfo(name, channel)
    for code, name in SYSTEM_TYPES.items():
        table[code] = StatusInfo(name)
    return table


STATUS_MAP = build_status_map()


def classify(message) -> Optional[StatusInfo]:
    """Classify a raw message by its leading status byte, or None if unknown."""
    if not message:
        return None
    return STATUS_MAP.get(message[0])
