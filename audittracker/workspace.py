"""Workspace root detection and path containment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional

from .core.errors import PathNotFound, PathOutsideWorkspace

_DEFAULT_MARKERS: tuple[str, ...] = (
    ".git",
    ".audittracker.yaml",
    "SCOPE.txt",
    "SCOPE.md",
    "foundry.toml",
    "hardhat.config.js",
    "hardhat.config.ts",
    "pyproject.toml",
    "package.json",
    "go.mod",
    "Cargo.toml",
    "pom.xml",
)


def find_workspace_root(
    start: str | Path | None = None, *, max_up: int = 30, markers: Iterable[str] = _DEFAULT_MARKERS
) -> Path:
    """Find the workspace root for a file or folder.

    Resolution order:
    1) `AUDIT_TRACKER_ROOT`, if set.
    2) Walk upwards from `start` (default: cwd) looking for project markers.
    3) Fallback to the starting directory.
    """
    env_root = os.environ.get("AUDIT_TRACKER_ROOT", "").strip()
    if env_root:
        return Path(env_root).expanduser().absolute()

    p = Path(start) if start is not None else Path.cwd()
    if p.is_file():
        p = p.parent
    p = p.absolute()

    marker_list = tuple(markers)
    cur = p
    for _ in range(max_up):
        if any((cur / m).exists() for m in marker_list):
            return cur
        if cur.parent == cur:
            break
        cur = cur.parent
    return p


def resolve_in_workspace(path: str | Path, root: Path, *, must_exist: bool = True) -> Path:
    """Absolute, normalized form of `path` (relative paths resolve against `root`).

    Raises `PathOutsideWorkspace` when the result escapes `root`, and
    `PathNotFound` when `must_exist` and nothing is there.
    """
    root = Path(os.path.normpath(root.absolute()))
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = root / p
    p = Path(os.path.normpath(p))
    if not p.is_relative_to(root):
        raise PathOutsideWorkspace(str(p), str(root))
    if must_exist and not p.exists():
        raise PathNotFound(str(p))
    return p


def relative_display_path(path: str | Path, root: Optional[Path]) -> str:
    p = Path(path)
    if root is not None and p.is_relative_to(root):
        return p.relative_to(root).as_posix()
    return p.name
