"""Session persistence -- loops saved to and restored from JSON files.

Two file kinds:
  - Loop files: one slot per ``<save_dir>/<name>.json``, saved and loaded
    explicitly by the user into any slot
  - Session file: all nine slots, written on shutdown and restored on boot

Both are human-readable JSON so they can be hand-edited if needed.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from krait.errors import SessionError
from krait.models import NUM_SLOTS
from krait.paths import config_dir

if TYPE_CHECKING:
    from krait.engine import LoopEngine

DEFAULT_SESSION_PATH = config_dir() / "session.json"
DEFAULT_SAVE_DIR = config_dir() / "loops"
FILE_VERSION = 1


logger = logging.getLogger(__name__)


def _metadata(engine: LoopEngine) -> dict:
    return {
        "saved_at": datetime.now(timezone.utc).isoformat(),
        "version": FILE_VERSION,
        "frame_rate_ms": engine.state.frame_rate_ms,
    }


def _read_json(path: Path) -> dict:
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as exc:
        raise SessionError(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SessionError(f"{path} does not contain a JSON object")
    version = data.get("metadata", {}).get("version", FILE_VERSION)
    if version != FILE_VERSION:
        raise SessionError(f"{path}: unknown file version {version}")
    return data


def _check_rate(engine: LoopEngine, data: dict, path: Path):
    rate = data.get("metadata", {}).get("frame_rate_ms")
    if rate is not None and rate != engine.state.frame_rate_ms:
        logger.warning("[Session] %s was recorded at %s ms frames, engine runs at %s ms",
                       path, rate, engine.state.frame_rate_ms)


# ===========================================================================
# Single loop files
# ===========================================================================

def loop_path(name: str, directory: Optional[Path] = None) -> Path:
    name = name.strip()
    if not name:
        raise SessionError("a loop name is required")
    if "/" in name or name.startswith("."):
        raise SessionError(f"invalid loop name '{name}'")
    directory = Path(directory) if directory else DEFAULT_SAVE_DIR
    return directory / f"{name}.json"


def save_loop(engine: LoopEngine, slot_id: int, name: str,
              directory: Optional[Path] = None) -> Path:
    """Write one slot to ``<directory>/<name>.json``."""
    slot = engine.slot(slot_id)
    if not slot.loop_length:
        raise SessionError(f"Loop {slot_id + 1} is empty or has no length")
    path = loop_path(name, directory)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = engine.export_slot(slot_id)
    data["metadata"] = _metadata(engine)
    path.write_text(json.dumps(data, indent=2) + "\n")
    logger.info("[Session] loop %d saved to %s", slot_id + 1, path)
    return path


def list_saved_loops(directory: Optional[Path] = None) -> list[str]:
    """Names of saved loop files (without ``.json``), sorted."""
    directory = Path(directory) if directory else DEFAULT_SAVE_DIR
    if not directory.is_dir():
        return []
    return sorted(p.stem for p in directory.glob("*.json"))


def load_loop(engine: LoopEngine, slot_id: int, name: str,
              directory: Optional[Path] = None) -> Path:
    """Replace a slot's contents with a saved loop file."""
    engine.slots.validate(slot_id)
    path = loop_path(name, directory)
    if not path.exists():
        raise SessionError(f"File not found: {path.name}")
    data = _read_json(path)
    _check_rate(engine, data, path)
    if not engine.import_slot(slot_id, data):
        raise SessionError(f"could not load {path.name} into loop {slot_id + 1}")
    slot = engine.slot(slot_id)
    logger.info("[Session] loop %d loaded from %s (%d frames, length %s)",
                slot_id + 1, path, len(slot.data), slot.loop_length)
    return path


# ===========================================================================
# Whole session
# ===========================================================================

def snapshot(engine: LoopEngine) -> dict:
    """Capture every slot that has a loop length as a plain dict."""
    slots = []
    for slot in engine.slots:
        slots.append(engine.export_slot(slot.id) if slot.loop_length else None)
    return {"metadata": _metadata(engine), "slots": slots}


def save(engine: LoopEngine, path: Optional[Path] = None):
    """Save all slots to a JSON session file."""
    path = Path(path) if path else DEFAULT_SESSION_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(snapshot(engine), indent=2) + "\n")
    logger.info("[Session] Saved to %s", path)


def restore(engine: LoopEngine, path: Optional[Path] = None) -> int:
    """Restore slots from a JSON session file; returns how many were loaded."""
    path = Path(path) if path else DEFAULT_SESSION_PATH
    if not path.exists():
        logger.info("[Session] No session file at %s", path)
        return 0

    data = _read_json(path)
    _check_rate(engine, data, path)

    errors = []
    restored = 0
    for idx, slot_data in enumerate(data.get("slots", [])):
        if idx >= NUM_SLOTS:
            break
        if slot_data is None:
            continue
        if engine.import_slot(idx, slot_data):
            restored += 1
        else:
            errors.append(f"slot {idx + 1}")

    if errors:
        logger.warning("[Session] Restored with %d error(s):", len(errors))
        for err in errors:
            logger.warning("  - %s", err)
    else:
        logger.info("[Session] Restored %d loops from %s", restored, path)
    return restored
