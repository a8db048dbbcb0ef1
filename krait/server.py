"""Unix socket control server for krait.

Runs the looper headless.  Every connection gets a ``ClientSession`` that runs
LooperCLI commands against the shared KraitCore and is told about looper
events as they happen.

Wire format, UTF-8 lines in both directions:

  client -> server   one command per line
  server -> client   the command's output, closed by END_OF_RESPONSE alone
                     on a line
  server -> client   STATUS_PREFIX + a status line, pushed between responses
                     ("loop 3: 12 events", downbeat starts, monitor lines)

A client's own command output already lists the status lines the command
produced, so nothing is pushed to a client while its command runs.
"""

from __future__ import annotations

import io
import logging
import os
import queue
import signal
import socket
import sys
import threading
from pathlib import Path
from typing import Optional

from krait.cli import LooperCLI
from krait.host import KraitCore
from krait.paths import APP_NAME, DEFAULT_SOCK_PATH

END_OF_RESPONSE = "\x00"
STATUS_PREFIX = "\x01"


logger = logging.getLogger(__name__)


class ClientSession:
    """One connected client: command responses plus pushed status lines."""

    def __init__(self, server: KraitServer, conn: socket.socket):
        self._server = server
        self._conn = conn
        self._rfile = conn.makefile("r", encoding="utf-8", errors="replace")
        self._wfile = conn.makefile("w", encoding="utf-8")
        self._write_lock = threading.Lock()
        self._pending: queue.Queue = queue.Queue()
        self._busy = threading.Event()
        self._pusher = threading.Thread(target=self._push_status,
                                        name="krait-push", daemon=True)

    # -- status push ---------------------------------------------------------

    def on_status(self, line: str):
        """Host status listener; called on the loop thread, so never blocks."""
        if not self._busy.is_set():
            self._pending.put(line)

    def _push_status(self):
        while True:
            line = self._pending.get()
            if line is None:
                return
            try:
                self._write(f"{STATUS_PREFIX}{line}\n")
            except (OSError, ValueError) as exc:
                logger.debug("status push stopped: %s", exc)
                return

    # -- responses -----------------------------------------------------------

    def _write(self, text: str):
        with self._write_lock:
            self._wfile.write(text)
            self._wfile.flush()

    def _respond(self, output: str):
        if output and not output.endswith("\n"):
            output += "\n"
        self._write(output + END_OF_RESPONSE + "\n")

    def serve(self):
        host = self._server.host
        host.add_status_listener(self.on_status)
        self._pusher.start()
        try:
            self._respond((LooperCLI.intro or "").lstrip("\n"))
            for line in self._rfile:
                line = line.rstrip("\n")
                if not line.strip():
                    self._respond("")
                    continue

                self._busy.set()
                try:
                    output = self._server.run_command(line)
                finally:
                    self._busy.clear()

                if output is None:
                    self._respond("[Host] Disconnected.")
                    break
                self._respond(output)
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.debug("client went away: %s", exc)
        finally:
            host.remove_status_listener(self.on_status)
            self._pending.put(None)
            self._pusher.join(timeout=1.0)
            self._close()

    def _close(self):
        for f in (self._wfile, self._rfile, self._conn):
            try:
                f.close()
            except OSError as exc:
                logger.debug("close failed: %s", exc)


class KraitServer:
    """Headless KraitCore daemon with a Unix socket control interface."""

    def __init__(self, host: KraitCore, sock_path: Path = DEFAULT_SOCK_PATH):
        self.host = host
        self.sock_path = Path(sock_path)
        self._command_lock = threading.Lock()
        self._server_sock: Optional[socket.socket] = None
        self._running = False

    def start(self):
        """Bind the socket and serve clients until stopped."""
        if self.sock_path.exists():
            self.sock_path.unlink()
        try:
            self.sock_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError as exc:
            fallback = Path("/tmp") / f"{APP_NAME}-{os.getuid()}" / f"{APP_NAME}.sock"
            raise PermissionError(
                f"cannot create socket directory '{self.sock_path.parent}'. "
                f"Use --sock with a writable path (for example: {fallback})"
            ) from exc

        self._server_sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self._server_sock.bind(str(self.sock_path))
        self._server_sock.listen(4)
        os.chmod(str(self.sock_path), 0o770)
        self._running = True
        print(f"[Server] Listening on {self.sock_path}")

        try:
            while self._running:
                try:
                    conn, _ = self._server_sock.accept()
                except OSError:
                    break
                self.attach(conn)
        finally:
            self.stop()

    def attach(self, conn: socket.socket) -> threading.Thread:
        """Serve one already connected socket on its own thread."""
        session = ClientSession(self, conn)
        t = threading.Thread(target=session.serve, name="krait-client", daemon=True)
        t.start()
        return t

    def stop(self):
        self._running = False
        if self._server_sock:
            try:
                self._server_sock.close()
            except OSError as exc:
                logger.debug("socket close failed: %s", exc)
            self._server_sock = None
        if self.sock_path.exists():
            try:
                self.sock_path.unlink()
            except OSError as exc:
                logger.debug("socket unlink failed: %s", exc)

    def run_command(self, line: str) -> Optional[str]:
        """Run one CLI command and return its output, or None to disconnect.

        quit/exit only end the client's session; the host lives as long as
        the daemon.
        """
        with self._command_lock:
            buf = io.StringIO()
            cli = LooperCLI(self.host, stdout=buf, owns_host=False)
            cli.use_rawinput = False
            stop = cli.onecmd(line)
        if stop:
            return None
        return buf.getvalue()


def run_server(host: KraitCore, sock_path: Optional[str] = None):
    """Serve ``host`` until SIGINT/SIGTERM, then shut it down."""
    server = KraitServer(host, Path(sock_path) if sock_path else DEFAULT_SOCK_PATH)

    def _shutdown(signum, frame):
        print("\n[Server] Shutting down...")
        server.stop()
        host.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    server.start()
