"""Merge freshly extracted function spans with previously recorded review state.

Extraction re-runs on every file change, and derived ids embed the start line,
so matching on id alone would reset progress whenever code above a function
moves. Matching therefore falls back to the function name.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Set

from .models import FunctionRecord

# The only fields carried from a stored record onto a new candidate. Name and
# span always come from the candidate.
CARRIED_FLAGS: tuple[str, ...] = (
    "read_count",
    "is_reviewed",
    "is_entrypoint",
    "is_admin",
    "is_hidden",
)


def _dedupe_by_id(candidates: Sequence[FunctionRecord]) -> List[FunctionRecord]:
    seen: Set[str] = set()
    out: List[FunctionRecord] = []
    for fn in candidates:
        if fn.id in seen:
            continue
        seen.add(fn.id)
        out.append(fn)
    return out


def _unreviewed(candidate: FunctionRecord) -> FunctionRecord:
    return FunctionRecord(
        id=candidate.id,
        name=candidate.name,
        file_path=candidate.file_path,
        start_line=candidate.start_line,
        end_line=candidate.end_line,
    )


def carry_flags(candidate: FunctionRecord, previous: FunctionRecord) -> FunctionRecord:
    return replace(candidate, **{name: getattr(previous, name) for name in CARRIED_FLAGS})


def reconcile_functions(
    previous: Optional[Sequence[FunctionRecord]],
    candidates: Sequence[FunctionRecord],
) -> List[FunctionRecord]:
    """Return the new authoritative function list for a file.

    For each candidate: exact id match first, then name match, else the
    candidate is new and keeps default flags. Stored records with no
    corresponding candidate are dropped.

    When several stored records share a name, the name index holds the last
    one; same-named functions in one file may therefore swap flags.
    """
    fresh = _dedupe_by_id(candidates)
    if not previous:
        return [_unreviewed(fn) for fn in fresh]

    by_id: Dict[str, FunctionRecord] = {}
    by_name: Dict[str, FunctionRecord] = {}
    for fn in previous:
        by_id[fn.id] = fn
        by_name[fn.name] = fn

    merged: List[FunctionRecord] = []
    for fn in fresh:
        match = by_id.get(fn.id)
        if match is None:
            match = by_name.get(fn.name)
        merged.append(carry_flags(fn, match) if match is not None else _unreviewed(fn))
    return merged
