"""Low-level MIDI port wrappers (python-rtmidi)."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from krait.deps import HAS_MIDO, HAS_RTMIDI, mido, rtmidi
from krait.midimap import classify


logger = logging.getLogger(__name__)

# CC numbers sent on every channel by panic()
ALL_SOUND_OFF = 120
RESET_ALL_CONTROLLERS = 121
ALL_NOTES_OFF = 123
SUSTAIN = 64


class _Port:
    """Shared open/close handling for rtmidi input and output ports."""

    _factory_name = ""

    def __init__(self):
        self._port = None
        self._name: Optional[str] = None

    # -- class helpers -------------------------------------------------------

    @classmethod
    def list_ports(cls) -> list[str]:
        if not HAS_RTMIDI:
            return []
        m = getattr(rtmidi, cls._factory_name)()
        ports = [m.get_port_name(i) for i in range(m.get_port_count())]
        m.delete()
        return ports

    def _new(self):
        self.close()
        if not HAS_RTMIDI:
            raise RuntimeError("python-rtmidi not installed")
        return getattr(rtmidi, self._factory_name)()

    def close(self):
        if self._port:
            self._port.close_port()
            self._port.delete()
            self._port = None
            self._name = None

    @property
    def is_open(self) -> bool:
        return self._port is not None

    @property
    def name(self) -> Optional[str]:
        return self._name


class MidiPort(_Port):
    """Opens a single hardware or virtual MIDI input port with a callback."""

    _factory_name = "MidiIn"

    def open(self, port_index: int, callback: Callable) -> str:
        port = self._new()
        port.open_port(port_index)
        self._port = port
        self._name = port.get_port_name(port_index)
        port.set_callback(callback)
        return self._name

    def open_virtual(self, name: str, callback: Callable) -> str:
        port = self._new()
        port.open_virtual_port(name)
        self._port = port
        self._name = name
        port.set_callback(callback)
        return name


class MidiOutPort(_Port):
    """A MIDI output port; ``send`` is the loop engine's output sink."""

    _factory_name = "MidiOut"

    def __init__(self):
        super().__init__()
        # held for the whole of a panic; playback never waits on it
        self._send_lock = threading.Lock()

    def open(self, port_index: int) -> str:
        port = self._new()
        port.open_port(port_index)
        self._port = port
        self._name = port.get_port_name(port_index)
        return self._name

    def open_virtual(self, name: str) -> str:
        port = self._new()
        port.open_virtual_port(name)
        self._port = port
        self._name = name
        return name

    def send(self, message):
        if self._port is None:
            raise RuntimeError("MIDI output is not open")
        if not self._send_lock.acquire(blocking=False):
            raise RuntimeError("panic in progress")
        try:
            self._port.send_message(list(message))
        finally:
            self._send_lock.release()

    def panic(self) -> int:
        """Silence every channel: note-offs plus all-off / reset CCs.

        Call from outside the event loop thread.  Loop messages that arrive
        while the panic is being sent are dropped, not queued.
        """
        if self._port is None:
            raise RuntimeError("MIDI output is not open")
        messages = panic_messages()
        sent = 0
        with self._send_lock:
            for message in messages:
                self._port.send_message(message)
                sent += 1
        logger.info("[MIDI] panic: %d messages sent", sent)
        return sent


def panic_messages() -> list[list[int]]:
    """Byte lists that stop all sound on all 16 channels."""
    if not HAS_MIDO:
        raise RuntimeError("mido not installed")
    messages = []
    for channel in range(16):
        for note in range(128):
            messages.append(mido.Message("note_off", note=note, channel=channel))
        for control in (ALL_NOTES_OFF, ALL_SOUND_OFF, RESET_ALL_CONTROLLERS, SUSTAIN):
            messages.append(mido.Message("control_change", control=control,
                                         value=0, channel=channel))
    return [msg.bytes() for msg in messages]


def describe_message(raw) -> str:
    """Human-readable one-liner for the input monitor: ``bytes | type``."""
    info = classify(raw)
    kind = info.type if info else "Unknown"
    text = ",".join(str(b) for b in raw)
    if HAS_MIDO and info is not None:
        try:
            text = str(mido.Message.from_bytes(list(raw)))
        except (ValueError, TypeError) as exc:
            logger.debug("mido cannot parse %s: %s", text, exc)
    return f"{text} | {kind}"
