from __future__ import annotations

import json
from pathlib import Path

import pytest

from audittracker.cli import main

from conftest import FakeExtractor


@pytest.fixture
def cli_extractor(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> FakeExtractor:
    fake = FakeExtractor()
    fake.set(workspace / "src" / "Vault.sol", [("Vault.deposit", 2, 10), ("Vault.withdraw", 12, 20)])
    fake.set(workspace / "src" / "Token.sol", [("Token.transfer", 1, 5)])
    monkeypatch.setattr("audittracker.session.SymbolExtractor", lambda *args, **kwargs: fake)
    return fake


def _run(workspace: Path, *argv: str) -> int:
    return main(["--root", str(workspace), *argv])


def test_add_mark_and_report(workspace: Path, cli_extractor: FakeExtractor, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "add", "src") == 0
    assert "Added 2 file(s) to scope (3 functions tracked)" in capsys.readouterr().out

    assert _run(workspace, "mark", "read", "src/Vault.sol::Vault.deposit", "src/Vault.sol::Vault.withdraw") == 0
    assert _run(workspace, "mark", "reviewed", "src/Vault.sol::Vault.deposit") == 0
    capsys.readouterr()

    assert _run(workspace, "progress", "--json") == 0
    report = json.loads(capsys.readouterr().out)
    assert report["allTime"]["functionsRead"] == 2
    assert report["allTime"]["filesRead"] == 1
    assert report["allTime"]["functionsReviewed"] == 1

    assert _run(workspace, "status", "--json") == 0
    status = json.loads(capsys.readouterr().out)
    assert status["scopePaths"] == [str(workspace / "src")]
    assert status["totals"]["totalFunctions"] == 3


def test_filters_shape_listings(workspace: Path, cli_extractor: FakeExtractor, capsys: pytest.CaptureFixture[str]) -> None:
    _run(workspace, "add", "src")
    _run(workspace, "mark", "read", "src/Token.sol::Token.transfer")
    assert _run(workspace, "filter", "set", "--status", "unread") == 0
    capsys.readouterr()

    assert _run(workspace, "files", "--json") == 0
    files = json.loads(capsys.readouterr().out)
    assert [f["relativePath"] for f in files] == ["src/Vault.sol"]

    assert _run(workspace, "filter", "clear") == 0
    capsys.readouterr()
    _run(workspace, "files", "--json")
    files = json.loads(capsys.readouterr().out)
    assert [f["relativePath"] for f in files] == ["src/Token.sol", "src/Vault.sol"]


def test_errors_go_to_stderr(workspace: Path, cli_extractor: FakeExtractor, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "add", "src/Missing.sol") == 1
    assert "Error: Path does not exist" in capsys.readouterr().err

    _run(workspace, "add", "src/Vault.sol")
    capsys.readouterr()
    assert _run(workspace, "mark", "reviewed", "src/Vault.sol::Vault.deposit") == 1
    assert "Error:" in capsys.readouterr().err


@pytest.mark.parametrize("command", ["remove", "exclude", "include"])
def test_bad_path_does_not_stop_the_batch(
    workspace: Path, cli_extractor: FakeExtractor, capsys: pytest.CaptureFixture[str], command: str
) -> None:
    _run(workspace, "add", "src")
    if command == "include":
        _run(workspace, "exclude", "src/Vault.sol")
    capsys.readouterr()

    assert _run(workspace, command, "../outside", "src/Vault.sol") == 1

    captured = capsys.readouterr()
    assert "Error: Path is outside the workspace root" in captured.err
    assert captured.out.strip()
    in_scope = json.loads((workspace / ".vscode" / "vault-audit-audit-tracker.json").read_text(encoding="utf-8"))
    vault = str(workspace / "src" / "Vault.sol")
    if command == "include":
        assert vault not in in_scope["excludedPaths"]
        assert vault in in_scope["files"]
    else:
        assert vault in in_scope["excludedPaths"]
        assert vault not in in_scope["files"]


def test_clear_requires_confirmation(workspace: Path, cli_extractor: FakeExtractor, monkeypatch: pytest.MonkeyPatch) -> None:
    _run(workspace, "add", "src")
    monkeypatch.setattr("builtins.input", lambda prompt: "n")
    assert _run(workspace, "clear") == 1
    assert _run(workspace, "clear", "--yes") == 0

    state = json.loads((workspace / ".vscode" / "vault-audit-audit-tracker.json").read_text(encoding="utf-8"))
    assert state["scopePaths"] == []


def test_no_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert main([]) == 1
    assert "usage:" in capsys.readouterr().out
