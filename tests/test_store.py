from __future__ import annotations

import asyncio
import json
import time
from datetime import date
from pathlib import Path

import pytest

from audittracker.core import paths as state_paths
from audittracker.core.errors import FunctionNotFound, InvalidTransition, PersistenceWriteFailure
from audittracker.core.models import FunctionRecord, FunctionStatus, FunctionTag
from audittracker.core.store import StateStore


@pytest.fixture(autouse=True)
def _no_env_state_dir(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AUDIT_TRACKER_STATE_DIR", raising=False)


def _store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "proj", today=lambda: date(2024, 5, 1))


def _candidates(path: str, *spans: tuple[str, int, int]) -> list[FunctionRecord]:
    return [FunctionRecord.candidate(path, name, start, end) for name, start, end in spans]


def test_default_state_path_matches_editor_extension_layout(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.state_path == tmp_path / "proj" / ".vscode" / "proj-audit-tracker.json"


def test_state_dir_override_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUDIT_TRACKER_STATE_DIR", "state")
    store = _store(tmp_path)
    assert store.state_path == tmp_path / "proj" / "state" / "proj-audit-tracker.json"


def test_load_missing_or_corrupt_file_gives_defaults(tmp_path: Path) -> None:
    store = _store(tmp_path)
    state = asyncio.run(store.load())
    assert state.files == {}

    store.state_path.parent.mkdir(parents=True)
    for payload in ("{not json", "[1, 2, 3]", "\"text\""):
        store.state_path.write_text(payload, encoding="utf-8")
        state = asyncio.run(store.load())
        assert state.scope_paths == []
        assert state.files == {}


def test_save_then_load_round_trip(tmp_path: Path) -> None:
    store = _store(tmp_path)
    path = str(tmp_path / "proj" / "src" / "A.sol")
    store.add_scope_path(str(tmp_path / "proj" / "src"))
    store.set_file_functions(path, "src/A.sol", _candidates(path, ("A.f", 1, 5), ("A.g", 7, 9)))
    fn_id = store.get_all_files()[0].functions[0].id
    store.set_read(fn_id, True)
    store.record_function_read("src/A.sol", "A.f", 5)

    async def save() -> None:
        await store.save()

    asyncio.run(save())

    raw = json.loads(store.state_path.read_text(encoding="utf-8"))
    assert raw["files"][path]["functions"][0]["readCount"] == 1
    assert raw["progressHistory"][0]["date"] == "2024-05-01"
    assert isinstance(raw["lastModified"], int)

    reloaded = StateStore(tmp_path / "proj")
    asyncio.run(reloaded.load())
    assert reloaded.state.to_dict() == store.state.to_dict()
    assert reloaded.get_function(fn_id).is_read


def test_saves_never_overlap(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    events: list[str] = []
    real_write = state_paths.write_bytes_atomic

    def slow_write(path: Path, payload: bytes) -> None:
        n = sum(1 for e in events if e.startswith("start"))
        events.append(f"start{n}")
        if n == 0:
            time.sleep(0.05)
        real_write(path, payload)
        events.append(f"end{n}")

    monkeypatch.setattr("audittracker.core.store.write_bytes_atomic", slow_write)

    async def scenario() -> None:
        store.add_scope_path("/a")
        first = store.save()
        store.add_scope_path("/b")
        second = store.save()
        await asyncio.gather(first, second)

    asyncio.run(scenario())

    assert events == ["start0", "end0", "start1", "end1"]
    raw = json.loads(store.state_path.read_text(encoding="utf-8"))
    assert raw["scopePaths"] == ["/a", "/b"]


def test_failed_write_raises_and_keeps_memory_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)

    def broken_write(path: Path, payload: bytes) -> None:
        raise PermissionError("read-only")

    monkeypatch.setattr("audittracker.core.store.write_bytes_atomic", broken_write)

    async def scenario() -> None:
        store.add_scope_path("/a")
        await store.save()

    with pytest.raises(PersistenceWriteFailure):
        asyncio.run(scenario())
    assert store.get_scope_paths() == ["/a"]


def test_later_save_runs_after_earlier_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    calls: list[str] = []
    real_write = state_paths.write_bytes_atomic

    def write_once_broken(path: Path, payload: bytes) -> None:
        calls.append("write")
        if len(calls) == 1:
            raise OSError("transient")
        real_write(path, payload)

    monkeypatch.setattr("audittracker.core.store.write_bytes_atomic", write_once_broken)

    async def scenario() -> tuple[object, object]:
        store.add_scope_path("/a")
        first = store.save()
        second = store.save()
        return tuple(await asyncio.gather(first, second, return_exceptions=True))

    first, second = asyncio.run(scenario())
    assert isinstance(first, PersistenceWriteFailure)
    assert second is None
    assert calls == ["write", "write"]
    assert store.state_path.exists()


def test_set_file_functions_reconciles_and_indexes(tmp_path: Path) -> None:
    store = _store(tmp_path)
    path = "/ws/src/A.sol"
    store.set_file_functions(path, "src/A.sol", _candidates(path, ("A.f", 1, 5)))
    old_id = f"{path}#A.f#1"
    store.set_read(old_id, True)

    store.set_file_functions(path, "src/A.sol", _candidates(path, ("A.f", 11, 15), ("A.g", 20, 22)))

    with pytest.raises(FunctionNotFound):
        store.get_function(old_id)
    moved = store.get_function(f"{path}#A.f#11")
    assert moved.is_read
    assert store.file_for_function(f"{path}#A.g#20").relative_path == "src/A.sol"


def test_read_before_review_and_unmark_order(tmp_path: Path) -> None:
    store = _store(tmp_path)
    path = "/ws/A.sol"
    store.set_file_functions(path, "A.sol", _candidates(path, ("f", 0, 3)))
    fid = f"{path}#f#0"

    with pytest.raises(InvalidTransition):
        store.set_reviewed(fid, True)
    assert not store.get_function(fid).is_reviewed

    assert store.set_read(fid, True)
    assert not store.set_read(fid, True)
    assert store.set_reviewed(fid, True)

    with pytest.raises(InvalidTransition):
        store.set_read(fid, False)
    assert store.get_function(fid).is_read

    assert store.set_reviewed(fid, False)
    assert store.set_read(fid, False)
    assert not store.set_read(fid, False)


def test_tag_and_hidden_flags(tmp_path: Path) -> None:
    store = _store(tmp_path)
    path = "/ws/A.sol"
    store.set_file_functions(path, "A.sol", _candidates(path, ("f", 0, 3)))
    fid = f"{path}#f#0"

    assert store.set_entrypoint(fid, True)
    assert not store.set_entrypoint(fid, True)
    assert store.set_admin(fid, True)
    assert store.set_hidden(fid, True)
    fn = store.get_function(fid)
    assert (fn.is_entrypoint, fn.is_admin, fn.is_hidden) == (True, True, True)


def test_remove_scope_path_drops_files_out_of_scope(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.add_scope_path("/ws/src")
    store.add_scope_path("/ws/lib/Math.sol")
    for p in ("/ws/src/A.sol", "/ws/lib/Math.sol"):
        store.set_file_functions(p, p, _candidates(p, ("f", 0, 1)))

    dropped = store.remove_scope_path("/ws/src")

    assert dropped == ["/ws/src/A.sol"]
    assert store.get_file("/ws/src/A.sol") is None
    assert store.get_file("/ws/lib/Math.sol") is not None
    with pytest.raises(FunctionNotFound):
        store.get_function("/ws/src/A.sol#f#0")


def test_add_excluded_path_drops_tracked_file(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.add_scope_path("/ws/src")
    store.set_file_functions("/ws/src/A.sol", "src/A.sol", _candidates("/ws/src/A.sol", ("f", 0, 1)))

    assert store.add_excluded_path("/ws/src/A.sol")
    assert store.get_file("/ws/src/A.sol") is None
    assert store.is_path_excluded("/ws/src/A.sol")
    assert not store.is_in_scope("/ws/src/A.sol")
    assert store.remove_excluded_path("/ws/src/A.sol")
    assert store.is_in_scope("/ws/src/A.sol")


def test_filters_edit_and_clear(tmp_path: Path) -> None:
    store = _store(tmp_path)
    filters = store.set_function_filters(["read", "bogus"], ["admin"])
    assert filters.statuses == [FunctionStatus.READ]
    assert filters.tags == [FunctionTag.ADMIN]

    filters = store.set_function_filters([], [])
    assert filters.statuses == [FunctionStatus.UNREAD, FunctionStatus.READ, FunctionStatus.REVIEWED]

    store.set_function_filters(["unread"], ["entrypoint"])
    cleared = store.clear_function_filters()
    assert cleared.tags == []
    assert len(cleared.statuses) == 3


def test_clear_all_state(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.add_scope_path("/ws/src")
    store.set_file_functions("/ws/src/A.sol", "src/A.sol", _candidates("/ws/src/A.sol", ("f", 0, 1)))
    store.record_file_read("src/A.sol")

    store.clear_all_state()

    assert store.get_scope_paths() == []
    assert store.get_all_files() == []
    assert store.get_progress_history() == []
    with pytest.raises(FunctionNotFound):
        store.get_function("/ws/src/A.sol#f#0")
