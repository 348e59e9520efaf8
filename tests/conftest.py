from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from audittracker.config import AuditTrackerConfig
from audittracker.core.models import FunctionRecord
from audittracker.session import AuditSession

Span = Tuple[str, int, int]  # (name, start_line, end_line)


class FakeExtractor:
    """Stands in for a language server: returns whatever spans a test registered."""

    def __init__(self) -> None:
        self.spans: Dict[str, List[Span]] = {}
        self.calls: List[str] = []
        self.closed = False

    def set(self, path: Path | str, spans: List[Span]) -> None:
        self.spans[str(path)] = list(spans)

    async def extract(self, file_path: str) -> List[FunctionRecord]:
        self.calls.append(file_path)
        return [FunctionRecord.candidate(file_path, name, start, end) for name, start, end in self.spans.get(file_path, [])]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for var in ("AUDIT_TRACKER_STATE_DIR", "AUDIT_TRACKER_CONFIG", "AUDIT_TRACKER_ROOT", "AUDIT_TRACKER_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    root = tmp_path / "vault-audit"
    src = root / "src"
    src.mkdir(parents=True)
    (src / "Vault.sol").write_text("contract Vault {}\n", encoding="utf-8")
    (src / "Token.sol").write_text("contract Token {}\n", encoding="utf-8")
    (src / "notes.txt").write_text("not code\n", encoding="utf-8")
    (root / "test").mkdir()
    (root / "test" / "Vault.t.sol").write_text("contract VaultTest {}\n", encoding="utf-8")
    return root


def make_session(root: Path, extractor: FakeExtractor, day: date = date(2024, 5, 1)) -> AuditSession:
    return AuditSession(root, config=AuditTrackerConfig(), extractor=extractor, today=lambda: day)
