"""Entry point and argument parsing for krait.

Subcommands
-----------
run     Start the looper and an interactive session in this terminal.
serve   Run the looper as a headless daemon with a Unix socket interface.
cli     Connect to a running server and open an interactive session.
"""

from __future__ import annotations

import argparse
import logging

from krait.host import KraitCore
from krait.logging_setup import configure_logging
from krait.models import DEFAULT_FRAME_RATE_MS
from krait.paths import DEFAULT_LOG_PATH, DEFAULT_SOCK_PATH


logger = logging.getLogger(__name__)


# -- shared helpers ----------------------------------------------------------

def _add_host_args(parser: argparse.ArgumentParser):
    """Add arguments used when starting a host instance."""
    parser.add_argument("--rate", type=int, default=DEFAULT_FRAME_RATE_MS,
                        help="Frame period in milliseconds")
    parser.add_argument("--midi-in", type=int, default=None,
                        help="MIDI input port index (default: virtual port)")
    parser.add_argument("--midi-out", type=int, default=None,
                        help="MIDI output port index (default: virtual port)")
    parser.add_argument("--session", default=None,
                        help="Session file path "
                             "(default: ~/.config/krait/session.json)")
    parser.add_argument("--save-dir", default=None,
                        help="Directory for saved loops "
                             "(default: ~/.config/krait/loops)")
    parser.add_argument("--no-restore", action="store_true",
                        help="Skip restoring the previous session on startup")
    parser.add_argument("--log-file", default=None,
                        help=f"Also write the log to a file (e.g. {DEFAULT_LOG_PATH})")


def _boot_host(args) -> KraitCore:
    """Create a KraitCore from parsed arguments and optionally restore state."""
    host = KraitCore(frame_rate_ms=args.rate, session_path=args.session,
                     save_dir=args.save_dir)
    host.start()

    if not args.no_restore:
        try:
            host.restore_session()
        except Exception as e:
            logger.warning("session restore failed: %s", e)

    try:
        host.open_midi_in(args.midi_in)
    except Exception as e:
        logger.warning("MIDI input startup failed: %s", e)

    try:
        host.open_midi_out(args.midi_out)
    except Exception as e:
        logger.warning("MIDI output startup failed: %s", e)

    return host


# -- subcommand handlers -----------------------------------------------------

def _cmd_run(args):
    """Run the looper with a local interactive session."""
    from krait.cli import LooperCLI

    configure_logging(default_level="WARNING", log_file=args.log_file)
    host = _boot_host(args)
    cli = LooperCLI(host)
    try:
        cli.cmdloop()
    except KeyboardInterrupt:
        print()
        host.shutdown()


def _cmd_serve(args):
    """Run the looper as a headless server."""
    from krait.server import run_server

    level = configure_logging(default_level="WARNING", log_file=args.log_file)
    logger.info("krait server starting (log level: %s)", logging.getLevelName(level))

    host = _boot_host(args)
    run_server(host, args.sock)


def _cmd_cli(args):
    """Connect to a running server."""
    from krait.client import connect

    connect(args.sock)

# -- main --------------------------------------------------------------------

def main():
    ap = argparse.ArgumentParser(
        description="krait - nine-slot MIDI loop recorder")
    sub = ap.add_subparsers(dest="command")

    # -- run -----------------------------------------------------------------
    sp_run = sub.add_parser(
        "run",
        help="Start the looper with an interactive session in this terminal")
    _add_host_args(sp_run)
    sp_run.set_defaults(func=_cmd_run)

    # -- serve ---------------------------------------------------------------
    sp_serve = sub.add_parser(
        "serve",
        help="Run headless with a Unix socket control interface")
    _add_host_args(sp_serve)
    sp_serve.add_argument(
        "--sock", default=None,
        help=f"Unix socket path (default: {DEFAULT_SOCK_PATH})")
    sp_serve.set_defaults(func=_cmd_serve)

    # -- cli -----------------------------------------------------------------
    sp_cli = sub.add_parser(
        "cli",
        help="Connect to a running krait server")
    sp_cli.add_argument(
        "--sock", default=None,
        help=f"Unix socket path (default: {DEFAULT_SOCK_PATH})")
    sp_cli.set_defaults(func=_cmd_cli)

    args = ap.parse_args()
    if args.command is None:
        ap.error("a command is required: run, serve or cli")
    args.func(args)


if __name__ == "__main__":
    main()
