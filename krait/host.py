"""krait core - the central coordinator for all subsystems.

The loop engine lives on one asyncio event loop running in its own thread.
MIDI input (rtmidi callback thread) and CLI commands (server threads) are
marshalled onto that loop, so slot state is only ever touched from one
thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Optional

from krait import session
from krait.engine import LoopEngine
from krait.midi import MidiOutPort, MidiPort, describe_message
from krait.midimap import classify
from krait.models import DEFAULT_FRAME_RATE_MS


logger = logging.getLogger(__name__)

VIRTUAL_IN_NAME = "krait-in"
VIRTUAL_OUT_NAME = "krait-out"
CALL_TIMEOUT = 5.0
STATUS_HISTORY = 200


class KraitCore:
    def __init__(self, frame_rate_ms: int = DEFAULT_FRAME_RATE_MS,
                 session_path: Optional[str] = None,
                 save_dir: Optional[str] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.frame_rate_ms = frame_rate_ms
        self.session_path = Path(session_path) if session_path else session.DEFAULT_SESSION_PATH
        self.save_dir = Path(save_dir) if save_dir else session.DEFAULT_SAVE_DIR

        self._status_lock = threading.Lock()
        self._status_log: deque[tuple[int, str]] = deque(maxlen=STATUS_HISTORY)
        self._status_seq = 0
        self._status_listeners: list[Callable[[str], None]] = []

        self.engine = LoopEngine(frame_rate_ms, loop=loop, status=self._on_status)
        self.midi_in = MidiPort()
        self.midi_out = MidiOutPort()
        self.monitor = False

        # An injected loop is driven by the caller; otherwise start() spawns one.
        self._loop = loop
        self._thread: Optional[threading.Thread] = None

    # -- event loop ----------------------------------------------------------

    def start(self):
        """Run the engine's event loop in a background thread."""
        if self._loop is not None:
            return
        self._loop = asyncio.new_event_loop()
        self.engine.bind_loop(self._loop)
        self._thread = threading.Thread(target=self._run_loop, name="krait-loop",
                                        daemon=True)
        self._thread.start()
        logger.info("[Host] event loop started (%d ms frames)", self.frame_rate_ms)

    def _run_loop(self):
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def call(self, fn: Callable, *args, **kwargs):
        """Run ``fn`` on the event loop thread and return its result."""
        if self._thread is None or threading.current_thread() is self._thread:
            return fn(*args, **kwargs)

        future: concurrent.futures.Future = concurrent.futures.Future()

        def _run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as exc:
                future.set_exception(exc)

        self._loop.call_soon_threadsafe(_run)
        return future.result(timeout=CALL_TIMEOUT)

    # -- status log ----------------------------------------------------------

    def _on_status(self, message: str):
        with self._status_lock:
            self._status_seq += 1
            self._status_log.append((self._status_seq, message))
            listeners = list(self._status_listeners)
        logger.info("%s", message)
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                logger.exception("status listener failed")

    def add_status_listener(self, listener: Callable[[str], None]):
        """Receive every status line as it is emitted, from any thread."""
        with self._status_lock:
            self._status_listeners.append(listener)

    def remove_status_listener(self, listener: Callable[[str], None]):
        with self._status_lock:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

    def status_mark(self) -> int:
        with self._status_lock:
            return self._status_seq

    def status_since(self, mark: int) -> list[str]:
        with self._status_lock:
            return [msg for seq, msg in self._status_log if seq > mark]

    def recent_status(self, count: int = 20) -> list[str]:
        with self._status_lock:
            entries = list(self._status_log)[-count:] if count > 0 else []
        return [msg for _seq, msg in entries]

    # -- MIDI ----------------------------------------------------------------

    def _on_midi(self, event, data=None):
        """rtmidi callback; hands the message to the engine on the loop thread."""
        del data

        raw, delta = event
        if not raw:
            return
        if self.monitor and classify(raw) is not None:
            self._on_status(describe_message(raw))

        if self._thread is None:
            self.engine.handle_midi(list(raw), delta)
            return
        try:
            self._loop.call_soon_threadsafe(self.engine.handle_midi, list(raw), delta)
        except RuntimeError as exc:
            logger.debug("MIDI dropped, loop closed: %s", exc)

    def open_midi_in(self, port_index: Optional[int] = None) -> str:
        if port_index is None:
            name = self.midi_in.open_virtual(VIRTUAL_IN_NAME, self._on_midi)
        else:
            name = self.midi_in.open(port_index, self._on_midi)
        logger.info("[MIDI in] Opened: %s", name)
        return name

    def open_midi_out(self, port_index: Optional[int] = None) -> str:
        self.call(self.engine.set_output, None)
        if port_index is None:
            name = self.midi_out.open_virtual(VIRTUAL_OUT_NAME)
        else:
            name = self.midi_out.open(port_index)
        self.call(self.engine.set_output, self.midi_out.send)
        logger.info("[MIDI out] Opened: %s", name)
        return name

    def panic(self) -> int:
        if not self.midi_out.is_open:
            raise RuntimeError("MIDI output is not open")
        # never on the loop thread; playback sends are dropped meanwhile
        sent = self.midi_out.panic()
        self._on_status("Sending MIDI - stopping all sounds")
        return sent

    # -- session persistence -------------------------------------------------

    def save_loop(self, slot_index: int, name: str) -> Path:
        return self.call(session.save_loop, self.engine, slot_index, name, self.save_dir)

    def load_loop(self, slot_index: int, name: str) -> Path:
        path = self.call(session.load_loop, self.engine, slot_index, name, self.save_dir)
        self._on_status(f"Loop {slot_index + 1} loaded from \"{path.name}\"")
        return path

    def saved_loops(self) -> list[str]:
        return session.list_saved_loops(self.save_dir)

    def save_session(self, path: Optional[str] = None):
        """Save all loops to a JSON session file."""
        p = Path(path) if path else self.session_path
        self.call(session.save, self.engine, p)

    def restore_session(self, path: Optional[str] = None) -> int:
        """Restore loops from a JSON session file."""
        p = Path(path) if path else self.session_path
        return self.call(session.restore, self.engine, p)

    # -- shutdown ------------------------------------------------------------

    def shutdown(self):
        self.call(self.engine.disarm)
        try:
            self.save_session()
        except Exception as e:
            logger.warning("session save failed: %s", e)
        self.call(self.engine.close)
        self.midi_in.close()
        self.midi_out.close()
        if self._thread is not None:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=CALL_TIMEOUT)
            self._loop.close()
            self._thread = None
            self._loop = None
        logger.info("[Host] Shutdown complete")


def slot_summary(engine: LoopEngine) -> list[dict]:
    """One row per slot for status displays; call on the loop thread."""
    rows = []
    for slot in engine.slots:
        rows.append({
            "id": slot.id,
            "armed": engine.armed == slot.id,
            "recording": engine.armed == slot.id and engine.recording,
            "playing": slot.playing,
            "locked": slot.locked,
            "frame": slot.frame,
            "loop_length": slot.loop_length,
            "events": slot.event_count,
            "channels": sorted(slot.channels),
        })
    return rows
