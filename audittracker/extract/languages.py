"""Language server configuration for symbol extraction.

Maps file extensions to a language key and each language key to the
language server command used to answer `textDocument/documentSymbol`.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

# Language key -> server command. Overridable per extension from config.
LANGUAGE_SERVERS: Dict[str, List[str]] = {
    "sol": ["nomicfoundation-solidity-language-server", "--stdio"],
    "py": ["pyright-langserver", "--stdio"],
    "ts": ["typescript-language-server", "--stdio"],
    "go": ["gopls"],
    "rs": ["rust-analyzer"],
    "c": ["clangd"],
    "java": ["jdtls"],
}

EXTENSION_TO_LANG: Dict[str, str] = {
    # Solidity
    ".sol": "sol",
    # Python
    ".py": "py",
    # TypeScript/JavaScript (consolidated under 'ts')
    ".ts": "ts",
    ".tsx": "ts",
    ".js": "ts",
    ".jsx": "ts",
    # Go
    ".go": "go",
    # Rust
    ".rs": "rs",
    # C/C++ (consolidated under 'c')
    ".c": "c",
    ".h": "c",
    ".cpp": "c",
    ".hpp": "c",
    ".cc": "c",
    # Java
    ".java": "java",
}

# LSP languageId sent with textDocument/didOpen
LANGUAGE_IDS: Dict[str, str] = {
    ".sol": "solidity",
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".java": "java",
}


def detect_language(path: str) -> Optional[str]:
    """Language key for a file path, or None when the extension is unknown."""
    return EXTENSION_TO_LANG.get(Path(path).suffix)


def guess_language_id(path: str) -> str:
    return LANGUAGE_IDS.get(Path(path).suffix.lower(), "plaintext")


def resolve_server_command(
    path: str, overrides: Optional[Mapping[str, Sequence[str]]] = None
) -> Optional[tuple[str, List[str]]]:
    """Return `(session_key, command)` for a file, or None if nothing serves it.

    `overrides` maps extensions (".sol") to a command and wins over the
    built-in table.
    """
    ext = Path(path).suffix
    if overrides and ext in overrides and overrides[ext]:
        return ext, list(overrides[ext])
    lang = detect_language(path)
    if lang is None:
        return None
    cmd = LANGUAGE_SERVERS.get(lang)
    if not cmd:
        return None
    return lang, list(cmd)


def has_server_binary(cmd: Sequence[str]) -> bool:
    return bool(cmd) and shutil.which(cmd[0]) is not None
