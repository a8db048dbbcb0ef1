"""Interactive command-line interface for krait.

All loop numbers are presented 1-based to the user (loops 1-9) and converted
to 0-based internally.
"""

from __future__ import annotations

import cmd

from krait.deps import HAS_MIDO, HAS_RTMIDI
from krait.host import KraitCore, slot_summary
from krait.midi import MidiOutPort, MidiPort
from krait.models import NUM_SLOTS

# action letter -> number of single-digit arguments that follow it
SEQUENCE_ARITY = {"c": 1, "d": 2, "m": 2, "t": 2, "s": 1, "l": 1}


def _slot_to_internal(user_slot: int) -> int:
    """Convert 1-based user loop number to 0-based index, with validation."""
    if not 1 <= user_slot <= NUM_SLOTS:
        raise ValueError(f"loop must be 1-{NUM_SLOTS}")
    return user_slot - 1


def _parse_slot(text: str) -> int:
    try:
        return _slot_to_internal(int(text))
    except ValueError:
        raise ValueError(f"loop must be 1-{NUM_SLOTS}") from None


def _parse_factor(text: str) -> int:
    try:
        factor = int(text)
    except ValueError:
        raise ValueError("factor must be a positive integer") from None
    if factor < 1:
        raise ValueError("factor must be a positive integer")
    return factor


def parse_sequence(text: str) -> tuple[str, list[int], str]:
    """Split a compact action sequence like ``d25`` or ``s1 name``.

    Returns (action, digits, rest).  Digits are 1-based as typed.
    """
    head, _, rest = text.strip().partition(" ")
    head = head.lower()
    if not head or head[0] not in SEQUENCE_ARITY:
        raise ValueError(f"unknown action '{head[:1]}' (use c, d, m, t, s or l)")
    action, digits = head[0], head[1:]
    arity = SEQUENCE_ARITY[action]
    if len(digits) != arity or not digits.isdigit():
        raise ValueError(f"'{action}' takes {arity} digit(s), got '{digits}'")
    return action, [int(d) for d in digits], rest.strip()


class LooperCLI(cmd.Cmd):
    intro = r"""
============================================================
  krait  -  MIDI loop recorder
  9 loops  |  arm, play, record, overdub, transform
============================================================
Type 'help' for available commands.
Loops are numbered 1-9.
"""
    prompt = "krait> "

    def __init__(self, host: KraitCore, stdout=None, owns_host: bool = True):
        super().__init__(stdout=stdout)
        self.host = host
        # When True, quit/exit will call host.shutdown().
        # Set to False when running behind the socket server (the server
        # manages the host lifecycle).
        self._owns_host = owns_host

    # -- helpers for redirectable output --------------------------------------

    def _print(self, *args, **kwargs):
        """Print to self.stdout so output is captured in server mode."""
        kwargs.setdefault("file", self.stdout)
        print(*args, **kwargs)

    def _run(self, fn, *args):
        """Run an engine command on the loop thread and echo its status lines."""
        mark = self.host.status_mark()
        try:
            result = self.host.call(fn, *args)
        except Exception as e:
            self._print(f"Error: {e}")
            return None
        for line in self.host.status_since(mark):
            self._print(f"  {line}")
        return result

    def _slot_arg(self, arg: str, usage: str):
        parts = arg.strip().split()
        if len(parts) != 1:
            self._print(f"Usage: {usage}")
            return None
        try:
            return _parse_slot(parts[0])
        except ValueError as e:
            self._print(f"Error: {e}")
            return None

    def _pair_args(self, arg: str, usage: str, second=_parse_slot):
        parts = arg.strip().split()
        if len(parts) != 2:
            self._print(f"Usage: {usage}")
            return None
        try:
            return _parse_slot(parts[0]), second(parts[1])
        except ValueError as e:
            self._print(f"Error: {e}")
            return None

    # -- arming / playback ---------------------------------------------------

    def do_arm(self, arg):
        """Toggle arming: arm <loop 1-9>  (arming another loop stops the current take)"""
        idx = self._slot_arg(arg, "arm <loop 1-9>")
        if idx is None:
            return
        if self._run(self.host.engine.toggle_arm, idx):
            armed = self.host.engine.armed
            if armed is None:
                self._print("  disarmed")
            else:
                self._print(f"  loop {armed + 1} armed - recording starts on first MIDI")

    def do_disarm(self, arg):
        """Disarm the armed loop (stops recording if active)."""
        if not self._run(self.host.engine.disarm):
            self._print("  Nothing armed.")

    def do_play(self, arg):
        """Start playback: play <loop 1-9>"""
        idx = self._slot_arg(arg, "play <loop 1-9>")
        if idx is not None and self._run(self.host.engine.start_playback, idx):
            self._print(f"  loop {idx + 1} playing")

    def do_stop(self, arg):
        """Stop playback: stop <loop 1-9>"""
        idx = self._slot_arg(arg, "stop <loop 1-9>")
        if idx is not None and self._run(self.host.engine.stop_playback, idx):
            self._print(f"  loop {idx + 1} stopped")

    def do_all(self, arg):
        """Stop all loops if any is playing, otherwise start every recorded loop."""
        self._run(self.host.engine.toggle_all)

    def do_reset(self, arg):
        """Erase a loop: reset <loop 1-9>"""
        idx = self._slot_arg(arg, "reset <loop 1-9>")
        if idx is not None:
            self._run(self.host.engine.reset_slot, idx)

    # -- transforms ----------------------------------------------------------

    def do_dup(self, arg):
        """Copy length (not events): dup <source 1-9> <dest 1-9>"""
        args = self._pair_args(arg, "dup <source 1-9> <dest 1-9>")
        if args is not None:
            self._run(self.host.engine.duplicate, *args)

    def do_mul(self, arg):
        """Multiply loop length: mul <loop 1-9> <factor>"""
        args = self._pair_args(arg, "mul <loop 1-9> <factor>", _parse_factor)
        if args is not None:
            self._run(self.host.engine.multiply, *args)

    def do_trim(self, arg):
        """Divide loop length: trim <loop 1-9> <factor>"""
        args = self._pair_args(arg, "trim <loop 1-9> <factor>", _parse_factor)
        if args is not None:
            self._run(self.host.engine.trim, *args)

    def do_clean(self, arg):
        """Remove all events, keep the length: clean <loop 1-9>"""
        idx = self._slot_arg(arg, "clean <loop 1-9>")
        if idx is not None:
            self._run(self.host.engine.clean, idx)

    def do_seq(self, arg):
        """Run a key sequence: seq c<a> | d<a><b> | m<a><f> | t<a><f> | s<a> <name> | l<a> <name>"""
        try:
            action, digits, rest = parse_sequence(arg)
        except ValueError as e:
            self._print(f"Error: {e}")
            return
        handler = {
            "c": self.do_clean,
            "d": self.do_dup,
            "m": self.do_mul,
            "t": self.do_trim,
            "s": self.do_save_loop,
            "l": self.do_load_loop,
        }[action]
        handler(" ".join([str(d) for d in digits] + ([rest] if rest else [])))

    # -- display -------------------------------------------------------------

    def do_loops(self, arg):
        """Show all 9 loops."""
        try:
            rows = self.host.call(slot_summary, self.host.engine)
        except Exception as e:
            self._print(f"Error: {e}")
            return
        for row in rows:
            flags = []
            if row["recording"]:
                flags.append("REC")
            elif row["armed"]:
                flags.append("ARM")
            if row["playing"]:
                flags.append("PLAY")
            if row["locked"]:
                flags.append("L")
            chs = ",".join(str(c + 1) for c in row["channels"]) or "-"
            if row["loop_length"] is None:
                length = "-"
                pos = f"{row['frame']}" if row["recording"] else "-"
            else:
                length = str(row["loop_length"])
                pos = f"{row['frame']}"
            self._print(f"  [{row['id'] + 1}] len={length:<6} pos={pos:<6} "
                        f"events={row['events']:<5} ch={chs:<8} {' '.join(flags)}")

    def do_log(self, arg):
        """Show recent status messages: log [count]"""
        try:
            count = int(arg.strip()) if arg.strip() else 20
        except ValueError:
            self._print("Error: count must be an integer")
            return
        lines = self.host.recent_status(count)
        if not lines:
            self._print("  (empty)")
        for line in lines:
            self._print(f"  {line}")

    def do_monitor(self, arg):
        """Toggle the MIDI input monitor: monitor [on|off]"""
        a = arg.strip().lower()
        if a in ("on", "off"):
            self.host.monitor = a == "on"
        elif a:
            self._print("Usage: monitor [on|off]")
            return
        else:
            self.host.monitor = not self.host.monitor
        self._print(f"  monitor {'on' if self.host.monitor else 'off'}")

    # -- MIDI ports ----------------------------------------------------------

    def do_midi_ports(self, arg):
        """List MIDI input and output ports."""
        for label, ports in (("in", MidiPort.list_ports()), ("out", MidiOutPort.list_ports())):
            if not ports:
                self._print(f"  No MIDI {label} ports found.")
                continue
            self._print(f"  MIDI {label}:")
            for i, name in enumerate(ports):
                self._print(f"    [{i}] {name}")

    def do_midi_in(self, arg):
        """Open MIDI input: midi_in [port_index]  (no index = virtual port)"""
        a = arg.strip()
        try:
            name = self.host.open_midi_in(int(a) if a else None)
            self._print(f"  MIDI in: {name}")
        except Exception as e:
            self._print(f"Error: {e}")

    def do_midi_out(self, arg):
        """Open MIDI output: midi_out [port_index]  (no index = virtual port)"""
        a = arg.strip()
        try:
            name = self.host.open_midi_out(int(a) if a else None)
            self._print(f"  MIDI out: {name}")
        except Exception as e:
            self._print(f"Error: {e}")

    def do_panic(self, arg):
        """Send note-off and all-sound-off on every channel."""
        try:
            sent = self.host.panic()
            self._print(f"  {sent} messages sent")
        except Exception as e:
            self._print(f"Error: {e}")

    # -- loop files ----------------------------------------------------------

    def do_save_loop(self, arg):
        """Save a loop to disk: save_loop <loop 1-9> <name>"""
        parts = arg.strip().split(maxsplit=1)
        if len(parts) < 2:
            self._print("Usage: save_loop <loop 1-9> <name>")
            return
        try:
            idx = _parse_slot(parts[0])
            path = self.host.save_loop(idx, parts[1])
            self._print(f"  loop {idx + 1} saved as \"{path.name}\"")
            self._print(f"  Location: {path}")
        except Exception as e:
            self._print(f"Error: {e}")

    def do_load_loop(self, arg):
        """Load a saved loop: load_loop <loop 1-9> <name>"""
        parts = arg.strip().split(maxsplit=1)
        if len(parts) < 2:
            self._print("Usage: load_loop <loop 1-9> <name>")
            return
        mark = self.host.status_mark()
        try:
            idx = _parse_slot(parts[0])
            self.host.load_loop(idx, parts[1])
        except Exception as e:
            self._print(f"Error: {e}")
            return
        for line in self.host.status_since(mark):
            self._print(f"  {line}")

    def do_saved(self, arg):
        """List saved loop files."""
        names = self.host.saved_loops()
        if not names:
            self._print("  No saved loops found")
            return
        for name in names:
            self._print(f"  {name}")

    # -- session -------------------------------------------------------------

    def do_save(self, arg):
        """Save session: save [path]"""
        path = arg.strip() or None
        try:
            self.host.save_session(path)
        except Exception as e:
            self._print(f"Error: {e}")

    def do_restore(self, arg):
        """Restore session: restore [path]"""
        path = arg.strip() or None
        try:
            count = self.host.restore_session(path)
            self._print(f"  {count} loops restored")
        except Exception as e:
            self._print(f"Error: {e}")

    # -- status --------------------------------------------------------------

    def do_status(self, arg):
        """Overall status."""
        engine = self.host.engine
        self._print("=== krait Status ===")
        self._print(f"  Clock  : {engine.state.frame_rate_ms} ms frames"
                    f"  ({'RUNNING' if self.host.running else 'STOPPED'})")
        self._print(f"  MIDI in: {self.host.midi_in.name or 'closed'}")
        self._print(f"  MIDIout: {self.host.midi_out.name or 'closed'}")
        armed = engine.armed
        if armed is None:
            self._print("  Armed  : -")
        else:
            self._print(f"  Armed  : loop {armed + 1}"
                        f"{' (recording)' if engine.recording else ''}")
        self._print(f"  Session: {self.host.session_path}")
        self._print(f"  Loops  : {self.host.save_dir}")
        self._print()
        self.do_loops("")

    def do_deps(self, arg):
        """Check dependencies."""
        for name, ok in [("python-rtmidi", HAS_RTMIDI), ("mido", HAS_MIDO)]:
            self._print(f"  {name}: {'OK' if ok else 'MISSING'}")

    def do_quit(self, arg):
        """Exit the current CLI session."""
        if self._owns_host:
            self.host.shutdown()
        return True

    do_exit = do_quit
    do_EOF = do_quit
