"""Terminal client for a running ``krait serve``.

Commands typed at the prompt go to the server; looper events pushed by the
server (finished takes, downbeat starts, monitor lines) are printed as they
arrive, above the line being edited.

Default socket path:
  $XDG_RUNTIME_DIR/krait/krait.sock
  fallback: /tmp/krait-<uid>/krait.sock
  root fallback: /run/krait/krait.sock
"""

from __future__ import annotations

import readline
import socket
import sys
import threading
from pathlib import Path
from typing import Optional, Union

from krait.paths import DEFAULT_SOCK_PATH
from krait.server import END_OF_RESPONSE, STATUS_PREFIX

PROMPT = "krait> "


class Receiver(threading.Thread):
    """Reads server lines: responses, their end marker, and pushed status."""

    def __init__(self, rfile, out=None):
        super().__init__(name="krait-receiver", daemon=True)
        self._rfile = rfile
        self._out = out or sys.stdout
        self.at_prompt = False
        self.response_done = threading.Event()
        self.closed = threading.Event()

    def run(self):
        try:
            for raw in self._rfile:
                line = raw.rstrip("\n")
                if line == END_OF_RESPONSE:
                    self.response_done.set()
                elif line.startswith(STATUS_PREFIX):
                    self._show_status(line[len(STATUS_PREFIX):])
                else:
                    print(line, file=self._out)
        except OSError as exc:
            print(f"[connection lost: {exc}]", file=self._out)
        finally:
            self.closed.set()
            self.response_done.set()

    def _show_status(self, line: str):
        if not self.at_prompt:
            print(f"* {line}", file=self._out)
            return
        # clear the prompt line, print the event, then redraw what was typed
        print(f"\r\033[K* {line}", file=self._out)
        print(PROMPT + readline.get_line_buffer(), end="", file=self._out, flush=True)

    def wait_response(self) -> bool:
        """Block until the current response ends; False once disconnected."""
        self.response_done.wait()
        self.response_done.clear()
        return not self.closed.is_set()


def connect(sock_path: Optional[Union[str, Path]] = None):
    """Connect to the krait server and run an interactive prompt."""
    path = Path(sock_path) if sock_path else DEFAULT_SOCK_PATH
    if not path.exists():
        print(f"Error: socket {path} not found. Is the server running?",
              file=sys.stderr)
        sys.exit(1)

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(str(path))
    except OSError as e:
        print(f"Error: cannot connect to {path}: {e}", file=sys.stderr)
        sys.exit(1)

    rfile = sock.makefile("r", encoding="utf-8", errors="replace")
    wfile = sock.makefile("w", encoding="utf-8")
    receiver = Receiver(rfile)
    receiver.start()

    try:
        if not receiver.wait_response():
            return
        while True:
            receiver.at_prompt = True
            try:
                line = input(PROMPT)
            except (EOFError, KeyboardInterrupt):
                print()
                break
            finally:
                receiver.at_prompt = False

            try:
                wfile.write(line + "\n")
                wfile.flush()
            except OSError:
                break
            if not receiver.wait_response():
                break
            if line.strip().lower() in {"quit", "exit"}:
                break
    finally:
        for f in (wfile, rfile, sock):
            try:
                f.close()
            except OSError:
                pass
