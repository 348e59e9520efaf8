"""One audit session: a workspace, its state store and a symbol extractor.

This is where the pieces meet. Scope changes resolve and check paths,
extraction results go through reconciliation, review transitions log
progress (including whole-file completion), and every mutation persists.
"""

from __future__ import annotations

import logging
import os
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .config import AuditTrackerConfig, load_config
from .core.errors import AmbiguousSelector, FunctionNotFound
from .core.models import FunctionFilters, FunctionRecord, TrackedFile
from .core.progress import ProgressReport, current_totals
from .core.scope import is_descendant_or_equal
from .core.store import StateStore
from .extract import Extractor, LSPConfig, SymbolExtractor
from .report import status_dict
from .scopefile import ScopeFileResult, apply_scope_file, find_scope_file
from .workspace import relative_display_path, resolve_in_workspace

logger = logging.getLogger(__name__)

SELECTOR_SEPARATOR = "::"


class AuditSession:
    def __init__(
        self,
        workspace_root: str | Path,
        *,
        config: Optional[AuditTrackerConfig] = None,
        extractor: Optional[Extractor] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.root = Path(os.path.normpath(Path(workspace_root).absolute()))
        self.config = config or load_config(self.root)
        self.store = StateStore(self.root, state_dir=self.config.state_dir, today=today)
        self.extractor: Extractor = extractor or SymbolExtractor(
            str(self.root),
            servers=self.config.language_servers,
            config=LSPConfig(
                request_timeout=self.config.lsp_request_timeout,
                retry_attempts=self.config.lsp_retry_attempts,
            ),
        )

    @classmethod
    async def open(
        cls,
        workspace_root: str | Path,
        *,
        config: Optional[AuditTrackerConfig] = None,
        extractor: Optional[Extractor] = None,
    ) -> "AuditSession":
        session = cls(workspace_root, config=config, extractor=extractor)
        await session.store.load()
        return session

    async def close(self) -> None:
        try:
            await self.store.flush()
        finally:
            await self.extractor.close()

    # --- paths ---

    def resolve(self, path: str | Path, *, must_exist: bool = True) -> Path:
        return resolve_in_workspace(path, self.root, must_exist=must_exist)

    def relative_path(self, path: str | Path) -> str:
        return relative_display_path(path, self.root)

    def _is_trackable(self, path: Path) -> bool:
        return path.suffix in self.config.extensions

    def _walk(self, folder: Path) -> Iterator[Path]:
        ignore = set(self.config.ignore_dirs)
        for dirpath, dirnames, filenames in os.walk(folder):
            dirnames[:] = sorted(d for d in dirnames if d not in ignore)
            for name in sorted(filenames):
                p = Path(dirpath) / name
                if self._is_trackable(p):
                    yield p

    # --- scope ---

    async def add_to_scope(self, path: str | Path) -> List[str]:
        """Add a file or folder to scope, extract its functions and persist.

        Returns the files now tracked because of this call.
        """
        files = await self._add_to_scope(path)
        await self.store.save()
        return files

    async def _add_to_scope(self, path: str | Path) -> List[str]:
        p = self.resolve(path)
        key = str(p)

        if p.is_dir():
            self.store.add_scope_path(key)
            cleared = self.store.scope.clear_exclusions_under(key)
            if cleared:
                logger.info("Re-included %d excluded file(s) under %s", len(cleared), key)
            files = [str(f) for f in self._walk(p)]
        else:
            if self.store.is_path_excluded(key):
                self.store.remove_excluded_path(key)
            if not self.store.is_in_scope(key):
                self.store.add_scope_path(key)
            files = [key]

        for f in files:
            await self.refresh_file(f)
        logger.info("Added %s to scope (%d file(s))", self.relative_path(key), len(files))
        return files

    async def remove_from_scope(self, path: str | Path) -> List[str]:
        """Take a path out of scope and drop its tracked files.

        Scope entries at or below `path` are removed. Anything still covered
        by an ancestor scope entry is excluded file by file instead.
        """
        key = str(self.resolve(path, must_exist=False))
        dropped: List[str] = []

        for scope_path in [s for s in self.store.get_scope_paths() if is_descendant_or_equal(s, key)]:
            dropped.extend(self.store.remove_scope_path(scope_path))

        still_covered = [
            f for f in list(self.store.state.files) if is_descendant_or_equal(f, key) and self.store.is_in_scope(f)
        ]
        if not still_covered and not Path(key).is_dir() and self.store.is_in_scope(key):
            still_covered = [key]
        for f in still_covered:
            self.store.add_excluded_path(f)
            dropped.append(f)

        logger.info("Removed %s from scope (%d file(s) dropped)", self.relative_path(key), len(dropped))
        await self.store.save()
        return dropped

    async def exclude(self, path: str | Path) -> List[str]:
        """Exclude a file, or every tracked file under a folder."""
        p = self.resolve(path, must_exist=False)
        key = str(p)
        if p.is_dir():
            targets = [f for f in list(self.store.state.files) if is_descendant_or_equal(f, key)]
        else:
            targets = [key]
        for f in targets:
            self.store.add_excluded_path(f)
        await self.store.save()
        return targets

    async def include(self, path: str | Path) -> bool:
        """Lift an exclusion; the file is re-extracted if it is back in scope."""
        key = str(self.resolve(path, must_exist=False))
        if not self.store.remove_excluded_path(key):
            return False
        if self.store.is_in_scope(key) and Path(key).is_file():
            await self.refresh_file(key)
        await self.store.save()
        return True

    def is_in_scope(self, path: str | Path) -> bool:
        p = Path(path)
        if not p.is_absolute():
            p = self.root / p
        return self.store.is_in_scope(os.path.normpath(p))

    async def load_scope_file(self, *, force: bool = False) -> Optional[ScopeFileResult]:
        """Seed scope from SCOPE.txt / SCOPE.md.

        Only runs while no scope paths exist, unless `force` is set. Returns
        None when skipped or when no scope file is present.
        """
        if self.store.get_scope_paths() and not force:
            return None
        source = find_scope_file(self.root, self.config.scope_files)
        if source is None:
            return None
        result = await apply_scope_file(source, self._add_to_scope)
        await self.store.save()
        logger.info(
            "Loaded %s: %d file(s), %d rejected line(s)", source.name, len(result.added_files), len(result.errors)
        )
        return result

    # --- extraction ---

    async def refresh_file(self, file_path: str) -> Optional[TrackedFile]:
        """Re-extract one in-scope file and reconcile it with stored flags."""
        if not self.store.is_in_scope(file_path):
            return None
        candidates = await self.extractor.extract(file_path)
        return self.store.set_file_functions(file_path, self.relative_path(file_path), candidates)

    def _scoped_files(self) -> List[str]:
        seen: dict[str, None] = {}
        for scope_path in self.store.get_scope_paths():
            p = Path(scope_path)
            if p.is_dir():
                for f in self._walk(p):
                    seen.setdefault(str(f), None)
            elif p.is_file():
                seen.setdefault(scope_path, None)
        return [f for f in seen if self.store.is_in_scope(f)]

    async def refresh_all(self) -> int:
        """Re-extract every in-scope file; drop tracked files that are out of scope or deleted.

        Tracked files the folder walk skips (ignored dirs, other extensions)
        are kept while they are in scope and on disk.
        """
        files = self._scoped_files()
        present = set(files)
        for tracked in list(self.store.state.files):
            if tracked in present:
                continue
            if self.store.is_in_scope(tracked) and Path(tracked).is_file():
                files.append(tracked)
                present.add(tracked)
            else:
                self.store.remove_file(tracked)
        for f in files:
            await self.refresh_file(f)
        await self.store.save()
        return len(files)

    async def on_file_changed(self, path: str | Path) -> Optional[TrackedFile]:
        key = str(self.resolve(path, must_exist=False))
        if not self.store.is_in_scope(key):
            return None
        if key not in self.store.state.files and not self._is_trackable(Path(key)):
            return None
        tracked = await self.refresh_file(key)
        await self.store.save()
        return tracked

    async def on_file_deleted(self, path: str | Path) -> bool:
        key = str(self.resolve(path, must_exist=False))
        if not self.store.remove_file(key):
            return False
        await self.store.save()
        return True

    # --- functions ---

    def find_function(self, selector: str) -> Tuple[FunctionRecord, TrackedFile]:
        """Look a function up by id, or by `path::name` (path relative to the root or absolute)."""
        try:
            return self.store.get_function(selector), self.store.file_for_function(selector)
        except FunctionNotFound:
            if SELECTOR_SEPARATOR not in selector:
                raise

        path, name = selector.rsplit(SELECTOR_SEPARATOR, 1)
        tracked = self.store.get_file(str(self.resolve(path, must_exist=False)))
        if tracked is None:
            raise FunctionNotFound(selector)
        found = sorted((fn for fn in tracked.functions if fn.name == name), key=lambda fn: fn.start_line)
        if not found:
            raise FunctionNotFound(selector)
        if len(found) > 1:
            raise AmbiguousSelector(selector, [fn.id for fn in found])
        return found[0], tracked

    async def mark_read(self, selector: str) -> bool:
        fn, tracked = self.find_function(selector)
        was_complete = tracked.is_fully_read()
        if not self.store.set_read(fn.id, True):
            return False
        self.store.record_function_read(tracked.relative_path, fn.name, fn.line_count)
        if not was_complete and tracked.is_fully_read():
            self.store.record_file_read(tracked.relative_path)
        await self.store.save()
        return True

    async def unmark_read(self, selector: str) -> bool:
        fn, _ = self.find_function(selector)
        return await self._save_if(self.store.set_read(fn.id, False))

    async def mark_reviewed(self, selector: str) -> bool:
        fn, tracked = self.find_function(selector)
        was_complete = tracked.is_fully_reviewed()
        if not self.store.set_reviewed(fn.id, True):
            return False
        self.store.record_function_reviewed(tracked.relative_path, fn.name, fn.line_count)
        if not was_complete and tracked.is_fully_reviewed():
            self.store.record_file_reviewed(tracked.relative_path)
        await self.store.save()
        return True

    async def unmark_reviewed(self, selector: str) -> bool:
        fn, _ = self.find_function(selector)
        return await self._save_if(self.store.set_reviewed(fn.id, False))

    async def set_entrypoint(self, selector: str, value: bool) -> bool:
        fn, _ = self.find_function(selector)
        return await self._save_if(self.store.set_entrypoint(fn.id, value))

    async def set_admin(self, selector: str, value: bool) -> bool:
        fn, _ = self.find_function(selector)
        return await self._save_if(self.store.set_admin(fn.id, value))

    async def set_hidden(self, selector: str, value: bool) -> bool:
        fn, _ = self.find_function(selector)
        return await self._save_if(self.store.set_hidden(fn.id, value))

    async def _save_if(self, changed: bool) -> bool:
        if changed:
            await self.store.save()
        return changed

    # --- filters ---

    async def set_filters(self, statuses: Sequence[str], tags: Sequence[str]) -> FunctionFilters:
        filters = self.store.set_function_filters(statuses, tags)
        await self.store.save()
        return filters

    async def clear_filters(self) -> FunctionFilters:
        filters = self.store.clear_function_filters()
        await self.store.save()
        return filters

    # --- queries ---

    def list_visible_files(self, filters: Optional[FunctionFilters] = None) -> List[TrackedFile]:
        return self.store.list_visible_files(filters)

    def list_visible_functions(self, file: TrackedFile, filters: Optional[FunctionFilters] = None) -> List[FunctionRecord]:
        return self.store.list_visible_functions(file, filters)

    def get_progress_report(self) -> ProgressReport:
        return self.store.get_progress_report()

    def status(self) -> Dict[str, Any]:
        return status_dict(
            root=str(self.root),
            state_path=str(self.store.state_path) if self.store.state_path else None,
            scope_paths=self.store.get_scope_paths(),
            excluded_paths=self.store.get_excluded_paths(),
            totals=current_totals(self.store.state),
        )

    async def clear_all(self) -> None:
        self.store.clear_all_state()
        await self.store.save()
