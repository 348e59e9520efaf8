"""Entity model for the audit tracker.

Python attributes are snake_case; `to_dict()` produces the camelCase JSON
document that is persisted to disk. Loading goes through
`audittracker.core.normalize`, never through a direct constructor call on
parsed input.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

STATE_VERSION = 1


class FunctionStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    REVIEWED = "reviewed"


class FunctionTag(str, Enum):
    ENTRYPOINT = "entrypoint"
    ADMIN = "admin"


class ProgressActionType(str, Enum):
    FUNCTION_READ = "functionRead"
    FUNCTION_REVIEWED = "functionReviewed"
    FILE_READ = "fileRead"
    FILE_REVIEWED = "fileReviewed"


DEFAULT_STATUSES: tuple[FunctionStatus, ...] = (
    FunctionStatus.UNREAD,
    FunctionStatus.READ,
    FunctionStatus.REVIEWED,
)


def make_function_id(file_path: str, name: str, start_line: int) -> str:
    """Derived function id. Not stable across edits that shift lines."""
    return f"{file_path}#{name}#{start_line}"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class FunctionRecord:
    id: str
    name: str
    file_path: str
    start_line: int
    end_line: int
    read_count: int = 0
    is_reviewed: bool = False
    is_entrypoint: bool = False
    is_admin: bool = False
    is_hidden: bool = False

    @classmethod
    def candidate(cls, file_path: str, name: str, start_line: int, end_line: int) -> "FunctionRecord":
        """Build a freshly extracted record with all review flags at their defaults."""
        return cls(
            id=make_function_id(file_path, name, start_line),
            name=name,
            file_path=file_path,
            start_line=start_line,
            end_line=max(end_line, start_line),
        )

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def is_read(self) -> bool:
        return self.read_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "filePath": self.file_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "readCount": self.read_count,
            "isReviewed": self.is_reviewed,
            "isEntrypoint": self.is_entrypoint,
            "isAdmin": self.is_admin,
            "isHidden": self.is_hidden,
        }


@dataclass
class TrackedFile:
    file_path: str
    relative_path: str
    functions: List[FunctionRecord] = field(default_factory=list)

    def visible_functions(self) -> List[FunctionRecord]:
        """Functions that count towards progress (hidden ones excluded)."""
        return [fn for fn in self.functions if not fn.is_hidden]

    def is_fully_read(self) -> bool:
        visible = self.visible_functions()
        return bool(visible) and all(fn.is_read for fn in visible)

    def is_fully_reviewed(self) -> bool:
        visible = self.visible_functions()
        return bool(visible) and all(fn.is_reviewed for fn in visible)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "relativePath": self.relative_path,
            "functions": [fn.to_dict() for fn in self.functions],
        }


@dataclass
class FunctionFilters:
    statuses: List[FunctionStatus] = field(default_factory=lambda: list(DEFAULT_STATUSES))
    tags: List[FunctionTag] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statuses": [s.value for s in self.statuses],
            "tags": [t.value for t in self.tags],
        }


@dataclass
class ProgressAction:
    type: ProgressActionType
    file_path: str
    function_name: Optional[str] = None
    line_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type.value, "filePath": self.file_path}
        if self.function_name is not None:
            out["functionName"] = self.function_name
        if self.line_count is not None:
            out["lineCount"] = self.line_count
        return out


@dataclass
class DailyProgressEntry:
    date: str
    functions_read: int = 0
    functions_reviewed: int = 0
    lines_read: int = 0
    lines_reviewed: int = 0
    files_read: int = 0
    files_reviewed: int = 0
    actions: List[ProgressAction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "functionsRead": self.functions_read,
            "functionsReviewed": self.functions_reviewed,
            "linesRead": self.lines_read,
            "linesReviewed": self.lines_reviewed,
            "filesRead": self.files_read,
            "filesReviewed": self.files_reviewed,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class RootState:
    """The full persisted snapshot."""

    version: int = STATE_VERSION
    scope_paths: List[str] = field(default_factory=list)
    excluded_paths: List[str] = field(default_factory=list)
    function_filters: FunctionFilters = field(default_factory=FunctionFilters)
    files: Dict[str, TrackedFile] = field(default_factory=dict)
    progress_history: List[DailyProgressEntry] = field(default_factory=list)
    last_modified: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "scopePaths": list(self.scope_paths),
            "excludedPaths": list(self.excluded_paths),
            "functionFilters": self.function_filters.to_dict(),
            "files": {path: f.to_dict() for path, f in self.files.items()},
            "progressHistory": [entry.to_dict() for entry in self.progress_history],
            "lastModified": self.last_modified,
        }


def create_default_state() -> RootState:
    return RootState()
