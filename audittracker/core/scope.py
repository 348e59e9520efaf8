"""Scope inclusion/exclusion algebra.

A path is in scope iff it is not an excluded path and it equals, or is a
separator-bounded descendant of, some scope path. Exclusion is file-grained
and always wins over inclusion inherited from any number of ancestors.
"""

from __future__ import annotations

import os
from typing import Iterable, List

from .models import RootState

_SEPARATORS = tuple(s for s in (os.sep, os.altsep) if s)


def is_descendant_or_equal(path: str, ancestor: str) -> bool:
    if path == ancestor:
        return True
    base = ancestor.rstrip("".join(_SEPARATORS))
    return any(path.startswith(base + sep) for sep in _SEPARATORS)


class ScopeSet:
    """View over the scope and exclusion lists of a `RootState`.

    Mutations edit the state's lists in place, so a `ScopeSet` never goes
    stale while the state it wraps stays the same object.
    """

    def __init__(self, state: RootState) -> None:
        self._state = state

    @property
    def scope_paths(self) -> List[str]:
        return self._state.scope_paths

    @property
    def excluded_paths(self) -> List[str]:
        return self._state.excluded_paths

    def is_excluded(self, path: str) -> bool:
        return path in self._state.excluded_paths

    def is_in_scope(self, path: str) -> bool:
        if self.is_excluded(path):
            return False
        return any(is_descendant_or_equal(path, scope) for scope in self._state.scope_paths)

    def covering_scope_paths(self, path: str) -> List[str]:
        """Scope entries that include `path`, ignoring exclusions."""
        return [scope for scope in self._state.scope_paths if is_descendant_or_equal(path, scope)]

    def add(self, path: str) -> bool:
        if path in self._state.scope_paths:
            return False
        self._state.scope_paths.append(path)
        return True

    def remove(self, path: str) -> bool:
        if path not in self._state.scope_paths:
            return False
        self._state.scope_paths = [p for p in self._state.scope_paths if p != path]
        return True

    def exclude(self, path: str) -> bool:
        """Exclude a single file.

        An exact scope-path entry for the same file is dropped: a file cannot be
        both a scope root and excluded.
        """
        self.remove(path)
        if path in self._state.excluded_paths:
            return False
        self._state.excluded_paths.append(path)
        return True

    def include(self, path: str) -> bool:
        if path not in self._state.excluded_paths:
            return False
        self._state.excluded_paths = [p for p in self._state.excluded_paths if p != path]
        return True

    def clear_exclusions_under(self, folder: str) -> List[str]:
        """Drop every exclusion at or beneath `folder`; returns what was dropped."""
        dropped = [p for p in self._state.excluded_paths if is_descendant_or_equal(p, folder)]
        if dropped:
            self._state.excluded_paths = [p for p in self._state.excluded_paths if p not in dropped]
        return dropped

    def filter_in_scope(self, paths: Iterable[str]) -> List[str]:
        return [p for p in paths if self.is_in_scope(p)]
