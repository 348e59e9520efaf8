"""Configuration for the audit tracker.

Settings come from a YAML file (`$AUDIT_TRACKER_CONFIG`, else
`<workspace>/.audittracker.yaml`). Unknown keys are ignored and an unusable
file falls back to defaults. A few environment variables override the file.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .extract.languages import EXTENSION_TO_LANG

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".audittracker.yaml"

DEFAULT_SCOPE_FILES: tuple[str, ...] = ("SCOPE.txt", "SCOPE.md")

DEFAULT_IGNORE_DIRS: tuple[str, ...] = (
    ".git",
    ".vscode",
    "node_modules",
    "lib",
    "out",
    "cache",
    "artifacts",
    "build",
    "dist",
    "target",
    "__pycache__",
    ".venv",
    "venv",
)


@dataclass
class AuditTrackerConfig:
    state_dir: Optional[str] = None  # None = <workspace>/.vscode
    scope_files: List[str] = field(default_factory=lambda: list(DEFAULT_SCOPE_FILES))
    extensions: List[str] = field(default_factory=lambda: sorted(EXTENSION_TO_LANG))
    ignore_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_DIRS))
    language_servers: Dict[str, List[str]] = field(default_factory=dict)  # ".sol" -> cmd
    lsp_request_timeout: float = 30.0
    lsp_retry_attempts: int = 3
    log_level: str = "WARNING"


def config_path(workspace_root: Path) -> Path:
    env = os.environ.get("AUDIT_TRACKER_CONFIG", "").strip()
    if env:
        return Path(env).expanduser()
    return workspace_root / CONFIG_FILENAME


def _coerce_str_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    return [str(v) for v in value if isinstance(v, (str, int, float)) and str(v)]


def _coerce(data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep known keys whose values have a usable shape."""
    known = {f.name for f in fields(AuditTrackerConfig)}
    out: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in known or value is None:
            continue
        if key in ("scope_files", "extensions", "ignore_dirs"):
            items = _coerce_str_list(value)
            if items is None:
                logger.warning("Config %s must be a list; ignoring", key)
                continue
            if key == "extensions":
                items = [e if e.startswith(".") else f".{e}" for e in items]
            out[key] = items
        elif key == "language_servers":
            if not isinstance(value, dict):
                logger.warning("Config language_servers must be a mapping; ignoring")
                continue
            servers: Dict[str, List[str]] = {}
            for ext, cmd in value.items():
                ext = str(ext)
                cmd_list = [cmd] if isinstance(cmd, str) else _coerce_str_list(cmd)
                if cmd_list:
                    servers[ext if ext.startswith(".") else f".{ext}"] = cmd_list
            out[key] = servers
        elif key == "lsp_request_timeout":
            try:
                timeout = float(value)
            except (TypeError, ValueError):
                timeout = math.nan
            if not math.isfinite(timeout) or timeout <= 0:
                logger.warning("Config lsp_request_timeout must be a positive number; ignoring")
                continue
            out[key] = timeout
        elif key == "lsp_retry_attempts":
            try:
                out[key] = max(1, int(value))
            except (TypeError, ValueError):
                logger.warning("Config lsp_retry_attempts must be an integer; ignoring")
        else:
            out[key] = str(value)
    return out


def load_config(workspace_root: Path) -> AuditTrackerConfig:
    """Load config for a workspace, then apply environment overrides."""
    path = config_path(workspace_root)
    cfg = AuditTrackerConfig()
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not read config %s, using defaults: %s", path, e)
            data = {}
        if isinstance(data, dict):
            cfg = AuditTrackerConfig(**_coerce(data))
        else:
            logger.warning("Config %s is not a mapping, using defaults", path)

    env_state_dir = os.environ.get("AUDIT_TRACKER_STATE_DIR", "").strip()
    if env_state_dir:
        cfg.state_dir = env_state_dir
    env_level = os.environ.get("AUDIT_TRACKER_LOG_LEVEL", "").strip()
    if env_level:
        cfg.log_level = env_level
    return cfg

