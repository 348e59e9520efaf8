"""Exceptions raised by the audit tracker core."""

from __future__ import annotations


class AuditTrackerError(Exception):
    """Base class for audit tracker errors."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PersistedStateInvalid(AuditTrackerError):
    """The snapshot file is missing, unreadable or not a JSON object."""


class PathOutsideWorkspace(AuditTrackerError):
    def __init__(self, path: str, root: str) -> None:
        super().__init__(f"Path is outside the workspace root {root}: {path}")
        self.path = path
        self.root = root


class PathNotFound(AuditTrackerError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Path does not exist: {path}")
        self.path = path


class FunctionNotFound(AuditTrackerError):
    def __init__(self, selector: str) -> None:
        super().__init__(f"No tracked function matches: {selector}")
        self.selector = selector


class AmbiguousSelector(AuditTrackerError):
    def __init__(self, selector: str, candidates: list[str]) -> None:
        super().__init__(f"{selector} matches {len(candidates)} functions; use one of the ids: {', '.join(candidates)}")
        self.selector = selector
        self.candidates = candidates


class InvalidTransition(AuditTrackerError):
    """A review-state change that the state machine does not allow."""

    def __init__(self, function_id: str, reason: str) -> None:
        super().__init__(reason)
        self.function_id = function_id


class PersistenceWriteFailure(AuditTrackerError):
    """Writing the snapshot failed; in-memory state is unchanged."""

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"Failed to write state file {path}: {cause}")
        self.path = path
        self.cause = cause
