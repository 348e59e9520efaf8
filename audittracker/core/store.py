"""Authoritative in-memory audit state and its persistence.

One `StateStore` per session owns the `RootState`. Loading normalizes the
snapshot field by field; saving is serialized through a chain of asyncio
tasks so that two writes never interleave, even when callers do not await.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from . import progress
from .errors import FunctionNotFound, InvalidTransition, PersistedStateInvalid, PersistenceWriteFailure
from .filters import visible_files, visible_functions
from .models import (
    DailyProgressEntry,
    FunctionFilters,
    FunctionRecord,
    FunctionStatus,
    FunctionTag,
    ProgressAction,
    RootState,
    TrackedFile,
    create_default_state,
    now_ms,
)
from .normalize import normalize_filters, normalize_state
from .paths import read_snapshot, state_file_path, write_bytes_atomic
from .reconcile import reconcile_functions
from .scope import ScopeSet

logger = logging.getLogger(__name__)


class StateStore:
    def __init__(
        self,
        workspace_root: Optional[str | Path],
        *,
        state_dir: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.workspace_root = Path(workspace_root).absolute() if workspace_root else None
        self.state_path: Optional[Path] = (
            state_file_path(self.workspace_root, state_dir) if self.workspace_root is not None else None
        )
        self.state: RootState = create_default_state()
        self._today = today
        self._save_chain: Optional[asyncio.Task] = None
        # function id -> file path, so flag edits only touch the owning file
        self._function_index: Dict[str, str] = {}

    # --- persistence ---

    async def load(self) -> RootState:
        """Load the snapshot, falling back to a fresh default state on any failure."""
        if self.state_path is None:
            self._replace_state(create_default_state())
            return self.state

        try:
            raw = await asyncio.to_thread(read_snapshot, self.state_path)
        except PersistedStateInvalid as e:
            if self.state_path.exists():
                logger.warning("Ignoring unusable state file, starting fresh: %s", e.reason)
            else:
                logger.debug("No state file at %s, starting fresh", self.state_path)
            self._replace_state(create_default_state())
        else:
            self._replace_state(normalize_state(raw))
        return self.state

    def save(self) -> "asyncio.Task[None]":
        """Queue a write of the whole state after any pending write.

        Returns the task for this write; awaiting it raises
        `PersistenceWriteFailure` if this particular write failed. Must be
        called with a running event loop.
        """
        previous = self._save_chain
        task = asyncio.get_running_loop().create_task(self._write_after(previous))
        self._save_chain = task
        return task

    async def flush(self) -> None:
        """Wait until every queued write has finished (failures are not raised)."""
        if self._save_chain is not None:
            await asyncio.gather(self._save_chain, return_exceptions=True)

    async def _write_after(self, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            await asyncio.gather(previous, return_exceptions=True)
        if self.state_path is None:
            return

        self.state.last_modified = now_ms()
        payload = json.dumps(self.state.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
        try:
            await asyncio.to_thread(write_bytes_atomic, self.state_path, payload)
        except OSError as e:
            logger.error("Failed to persist audit state to %s: %s", self.state_path, e)
            raise PersistenceWriteFailure(str(self.state_path), e) from e

    def _replace_state(self, state: RootState) -> None:
        self.state = state
        self._rebuild_index()

    def _rebuild_index(self) -> None:
        self._function_index = {}
        for path, tracked in self.state.files.items():
            for fn in tracked.functions:
                self._function_index[fn.id] = path

    # --- scope ---

    @property
    def scope(self) -> ScopeSet:
        return ScopeSet(self.state)

    def get_scope_paths(self) -> List[str]:
        return self.state.scope_paths

    def get_excluded_paths(self) -> List[str]:
        return self.state.excluded_paths

    def add_scope_path(self, path: str) -> bool:
        return self.scope.add(path)

    def remove_scope_path(self, path: str) -> List[str]:
        """Remove a scope entry and drop every tracked file no longer in scope.

        Returns the dropped file paths.
        """
        scope = self.scope
        scope.remove(path)
        dropped = [key for key in self.state.files if not scope.is_in_scope(key)]
        for key in dropped:
            self.remove_file(key)
        return dropped

    def add_excluded_path(self, path: str) -> bool:
        added = self.scope.exclude(path)
        self.remove_file(path)
        return added

    def remove_excluded_path(self, path: str) -> bool:
        return self.scope.include(path)

    def is_path_excluded(self, path: str) -> bool:
        return self.scope.is_excluded(path)

    def is_in_scope(self, path: str) -> bool:
        return self.scope.is_in_scope(path)

    # --- files ---

    def set_file_functions(
        self, file_path: str, relative_path: str, functions: Sequence[FunctionRecord]
    ) -> TrackedFile:
        """Replace a file's function list, reconciled against what was stored."""
        existing = self.state.files.get(file_path)
        merged = reconcile_functions(existing.functions if existing else None, functions)

        if existing is not None:
            for fn in existing.functions:
                if self._function_index.get(fn.id) == file_path:
                    del self._function_index[fn.id]
        tracked = TrackedFile(file_path=file_path, relative_path=relative_path, functions=merged)
        self.state.files[file_path] = tracked
        for fn in merged:
            self._function_index[fn.id] = file_path
        return tracked

    def remove_file(self, file_path: str) -> bool:
        tracked = self.state.files.pop(file_path, None)
        if tracked is None:
            return False
        for fn in tracked.functions:
            if self._function_index.get(fn.id) == file_path:
                del self._function_index[fn.id]
        return True

    def get_file(self, file_path: str) -> Optional[TrackedFile]:
        return self.state.files.get(file_path)

    def get_all_files(self) -> List[TrackedFile]:
        return list(self.state.files.values())

    # --- functions ---

    def file_for_function(self, function_id: str) -> TrackedFile:
        path = self._function_index.get(function_id)
        tracked = self.state.files.get(path) if path is not None else None
        if tracked is None:
            raise FunctionNotFound(function_id)
        return tracked

    def get_function(self, function_id: str) -> FunctionRecord:
        for fn in self.file_for_function(function_id).functions:
            if fn.id == function_id:
                return fn
        raise FunctionNotFound(function_id)

    def set_read(self, function_id: str, read: bool) -> bool:
        """Mark or unmark read. Returns True if the function's state changed."""
        fn = self.get_function(function_id)
        if read:
            if fn.read_count > 0:
                return False
            fn.read_count = 1
            return True
        if fn.read_count == 0:
            return False
        if fn.is_reviewed:
            raise InvalidTransition(function_id, f"{fn.name} is reviewed; unmark reviewed before unmarking read")
        fn.read_count = 0
        return True

    def set_reviewed(self, function_id: str, reviewed: bool) -> bool:
        """Mark or unmark reviewed. Reviewing requires the function to be read first."""
        fn = self.get_function(function_id)
        if fn.is_reviewed == reviewed:
            return False
        if reviewed and fn.read_count == 0:
            raise InvalidTransition(function_id, f"{fn.name} must be marked read before it can be reviewed")
        fn.is_reviewed = reviewed
        return True

    def set_entrypoint(self, function_id: str, is_entrypoint: bool) -> bool:
        return self._set_flag(function_id, "is_entrypoint", is_entrypoint)

    def set_admin(self, function_id: str, is_admin: bool) -> bool:
        return self._set_flag(function_id, "is_admin", is_admin)

    def set_hidden(self, function_id: str, is_hidden: bool) -> bool:
        return self._set_flag(function_id, "is_hidden", is_hidden)

    def _set_flag(self, function_id: str, attr: str, value: bool) -> bool:
        fn = self.get_function(function_id)
        if getattr(fn, attr) == value:
            return False
        setattr(fn, attr, value)
        return True

    # --- filters ---

    def get_function_filters(self) -> FunctionFilters:
        return self.state.function_filters

    def set_function_filters(self, statuses: Sequence[str], tags: Sequence[str]) -> FunctionFilters:
        """Apply a user edit; unknown values are dropped and no statuses means the default set."""
        self.state.function_filters = normalize_filters({"statuses": list(statuses), "tags": list(tags)})
        return self.state.function_filters

    def clear_function_filters(self) -> FunctionFilters:
        self.state.function_filters = FunctionFilters()
        return self.state.function_filters

    def list_visible_files(self, filters: Optional[FunctionFilters] = None) -> List[TrackedFile]:
        return visible_files(self.state.files.values(), filters or self.state.function_filters)

    def list_visible_functions(
        self, file: TrackedFile, filters: Optional[FunctionFilters] = None
    ) -> List[FunctionRecord]:
        return visible_functions(file, filters or self.state.function_filters)

    # --- progress ---

    def record_function_read(self, file_path: str, function_name: str, line_count: int) -> ProgressAction:
        return progress.record_function_read(self.state, file_path, function_name, line_count, day=self._today())

    def record_function_reviewed(self, file_path: str, function_name: str, line_count: int) -> ProgressAction:
        return progress.record_function_reviewed(self.state, file_path, function_name, line_count, day=self._today())

    def record_file_read(self, file_path: str) -> ProgressAction:
        return progress.record_file_read(self.state, file_path, day=self._today())

    def record_file_reviewed(self, file_path: str) -> ProgressAction:
        return progress.record_file_reviewed(self.state, file_path, day=self._today())

    def get_progress_history(self) -> List[DailyProgressEntry]:
        return self.state.progress_history

    def get_progress_report(self) -> progress.ProgressReport:
        return progress.build_progress_report(self.state)

    # --- reset ---

    def clear_all_state(self) -> None:
        self._replace_state(create_default_state())


__all__ = ["StateStore", "FunctionStatus", "FunctionTag"]
