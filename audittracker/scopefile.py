"""Scope definition files (SCOPE.txt / SCOPE.md).

One path per line. Blank lines, `#` and `//` comments, and `-` / `*`
bullet lines are skipped. Each remaining line is added to scope on its own;
a bad line is reported and the rest still load.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

from .core.errors import AuditTrackerError

logger = logging.getLogger(__name__)

_SKIP_PREFIXES = ("#", "//", "-", "*")


@dataclass
class ScopeLineError:
    line_no: int
    line: str
    reason: str


@dataclass
class ScopeFileResult:
    source: Optional[Path] = None
    added_files: List[str] = field(default_factory=list)
    errors: List[ScopeLineError] = field(default_factory=list)


def find_scope_file(workspace_root: Path, names: Iterable[str]) -> Optional[Path]:
    """First existing scope file among `names`, looked up at the workspace root."""
    for name in names:
        candidate = workspace_root / name
        if candidate.is_file():
            return candidate
    return None


def parse_scope_lines(text: str) -> List[Tuple[int, str]]:
    """(1-based line number, path) for every line that names a path."""
    out: List[Tuple[int, str]] = []
    for idx, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith(_SKIP_PREFIXES):
            continue
        out.append((idx, line))
    return out


async def apply_scope_file(
    path: Path,
    add_to_scope: Callable[[str], Awaitable[Sequence[str]]],
) -> ScopeFileResult:
    """Feed each path line of `path` to `add_to_scope`, collecting per-line failures."""
    result = ScopeFileResult(source=path)
    text = path.read_text(encoding="utf-8", errors="replace")
    for line_no, line in parse_scope_lines(text):
        try:
            added = await add_to_scope(line)
        except AuditTrackerError as e:
            logger.warning("%s:%d: %s", path.name, line_no, e.reason)
            result.errors.append(ScopeLineError(line_no=line_no, line=line, reason=e.reason))
            continue
        result.added_files.extend(added)
    return result
