"""Function-like symbol extraction for a single file."""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Protocol, Sequence

from lsprotocol import types as lsp

from ..core.models import FunctionRecord
from .languages import resolve_server_command
from .lsp import LSPConfig, LSPError, LspSessionManager, Symbol

logger = logging.getLogger(__name__)

FUNCTION_KINDS = frozenset({lsp.SymbolKind.Function, lsp.SymbolKind.Method, lsp.SymbolKind.Constructor})

CONTAINER_KINDS = frozenset(
    {
        lsp.SymbolKind.Class,
        lsp.SymbolKind.Interface,
        lsp.SymbolKind.Module,
        lsp.SymbolKind.Namespace,
        lsp.SymbolKind.Struct,
        lsp.SymbolKind.Enum,
        lsp.SymbolKind.Object,
    }
)


class Extractor(Protocol):
    async def extract(self, file_path: str) -> List[FunctionRecord]: ...

    async def close(self) -> None: ...


def flatten_document_symbols(
    symbols: Sequence[lsp.DocumentSymbol], file_path: str, parent: Optional[str] = None
) -> List[FunctionRecord]:
    """Depth-first walk keeping function-like symbols.

    Names are qualified by the nearest enclosing container (`Class.method`);
    functions nested in functions keep the outer container's prefix.
    """
    out: List[FunctionRecord] = []
    for sym in symbols:
        name = f"{parent}.{sym.name}" if parent else sym.name
        if sym.kind in FUNCTION_KINDS:
            out.append(FunctionRecord.candidate(file_path, name, sym.range.start.line, sym.range.end.line))
        if sym.children:
            child_parent = name if sym.kind in CONTAINER_KINDS else parent
            out.extend(flatten_document_symbols(sym.children, file_path, child_parent))
    return out


def flatten_symbol_information(symbols: Sequence[lsp.SymbolInformation], file_path: str) -> List[FunctionRecord]:
    out: List[FunctionRecord] = []
    for sym in symbols:
        if sym.kind not in FUNCTION_KINDS:
            continue
        name = f"{sym.container_name}.{sym.name}" if sym.container_name else sym.name
        rng = sym.location.range
        out.append(FunctionRecord.candidate(file_path, name, rng.start.line, rng.end.line))
    return out


def symbols_to_functions(symbols: Sequence[Symbol], file_path: str) -> List[FunctionRecord]:
    tree = [s for s in symbols if isinstance(s, lsp.DocumentSymbol)]
    flat = [s for s in symbols if isinstance(s, lsp.SymbolInformation)]
    return flatten_document_symbols(tree, file_path) + flatten_symbol_information(flat, file_path)


class SymbolExtractor:
    """Language-server-backed extractor. Any failure yields an empty list."""

    def __init__(
        self,
        workspace_root: str,
        *,
        servers: Optional[Mapping[str, Sequence[str]]] = None,
        config: Optional[LSPConfig] = None,
        manager: Optional[LspSessionManager] = None,
    ) -> None:
        self.workspace_root = workspace_root
        self.servers = dict(servers or {})
        self.config = config or LSPConfig()
        self._manager = manager or LspSessionManager()

    async def extract(self, file_path: str) -> List[FunctionRecord]:
        resolved = resolve_server_command(file_path, self.servers)
        if resolved is None:
            logger.debug("No language server configured for %s", file_path)
            return []
        lang, cmd = resolved

        try:
            session = await self._manager.get(
                lang=lang, workspace_root=self.workspace_root, cmd=cmd, config=self.config
            )
            symbols = await session.document_symbols(file_path)
        except LSPError as e:
            logger.warning("Symbol extraction failed for %s: %s", file_path, e)
            return []
        except Exception as e:
            logger.warning("Symbol extraction failed for %s: %s: %s", file_path, type(e).__name__, e)
            return []
        return symbols_to_functions(symbols, file_path)

    async def close(self) -> None:
        await self._manager.shutdown_all()
