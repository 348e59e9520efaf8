from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from .errors import PersistedStateInvalid

STATE_FILE_SUFFIX = "-audit-tracker.json"


def get_state_dir(workspace_root: Path, override: Optional[str] = None) -> Path:
    """Return the directory holding the state snapshot.

    Defaults to `<workspace_root>/.vscode`, where existing audit tracker state
    files live. `AUDIT_TRACKER_STATE_DIR` (or `override`) replaces it; relative
    values resolve against the workspace root.
    """

    raw = (os.environ.get("AUDIT_TRACKER_STATE_DIR") or override or "").strip()
    if raw:
        p = Path(raw)
        return p if p.is_absolute() else (workspace_root / p).absolute()
    return workspace_root / ".vscode"


def state_file_path(workspace_root: Path, override_dir: Optional[str] = None) -> Path:
    return get_state_dir(workspace_root, override_dir) / f"{workspace_root.name}{STATE_FILE_SUFFIX}"


def read_snapshot(path: Path) -> dict[str, Any]:
    """Read and parse a snapshot. Any failure is reported as `PersistedStateInvalid`."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise PersistedStateInvalid(f"State file not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise PersistedStateInvalid(f"State file unreadable: {path}: {e}") from e

    try:
        data = json.loads(text)
    except ValueError as e:
        raise PersistedStateInvalid(f"State file is not valid JSON: {path}: {e}") from e
    if not isinstance(data, dict):
        raise PersistedStateInvalid(f"State file is not a JSON object: {path}")
    return data


def write_bytes_atomic(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_bytes(payload)
    tmp_path.replace(path)
