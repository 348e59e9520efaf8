"""Minimal LSP client for document symbol queries.

Starts a language server as a subprocess, speaks JSON-RPC over stdio and
keeps one warm server per (language, workspace root).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from lsprotocol import types as lsp
from lsprotocol.converters import get_converter

from .languages import guess_language_id, has_server_binary

logger = logging.getLogger(__name__)

FileSig = Tuple[int, int]  # (mtime_ns, size)
Symbol = Union[lsp.DocumentSymbol, lsp.SymbolInformation]


class LSPError(Exception):
    """LSP communication or protocol error."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


def path_to_uri(path: str) -> str:
    return Path(os.path.abspath(path)).as_uri()


def _parse_range(data: Dict[str, Any]) -> lsp.Range:
    return lsp.Range(
        start=lsp.Position(line=data["start"]["line"], character=data["start"]["character"]),
        end=lsp.Position(line=data["end"]["line"], character=data["end"]["character"]),
    )


def _parse_kind(raw: Any) -> Optional[lsp.SymbolKind]:
    try:
        return lsp.SymbolKind(raw)
    except ValueError:
        return None


def _parse_document_symbol(data: Dict[str, Any]) -> Optional[lsp.DocumentSymbol]:
    kind = _parse_kind(data.get("kind"))
    if kind is None:
        return None
    children = [c for c in (_parse_document_symbol(c) for c in data.get("children") or []) if c is not None]
    rng = _parse_range(data["range"])
    return lsp.DocumentSymbol(
        name=data["name"],
        kind=kind,
        range=rng,
        selection_range=_parse_range(data["selectionRange"]) if "selectionRange" in data else rng,
        detail=data.get("detail"),
        children=children or None,
    )


def _parse_symbol_information(data: Dict[str, Any]) -> Optional[lsp.SymbolInformation]:
    kind = _parse_kind(data.get("kind"))
    if kind is None:
        return None
    loc = data["location"]
    return lsp.SymbolInformation(
        name=data["name"],
        kind=kind,
        location=lsp.Location(uri=loc["uri"], range=_parse_range(loc["range"])),
        container_name=data.get("containerName"),
    )


def parse_document_symbol_result(result: Any) -> List[Symbol]:
    """Parse a documentSymbol response.

    Servers answer either with hierarchical `DocumentSymbol` trees or with a
    flat `SymbolInformation` list; entries that do not parse are skipped.
    """
    if not isinstance(result, list):
        return []
    out: List[Symbol] = []
    for item in result:
        if not isinstance(item, dict):
            continue
        try:
            sym = _parse_symbol_information(item) if "location" in item else _parse_document_symbol(item)
        except (KeyError, TypeError) as e:
            logger.debug("Skipping malformed symbol %r: %s", item.get("name"), e)
            continue
        if sym is not None:
            out.append(sym)
    return out


_LSP_CONVERTER = get_converter()
_LSP_CONVERTER.register_unstructure_hook(Path, lambda p: str(p))
_LSP_CONVERTER.register_unstructure_hook(Enum, lambda e: e.value)


def _to_dict(obj: Any) -> Dict[str, Any]:
    """Convert lsprotocol attrs types to JSON-serializable dicts."""
    return _json_clean(_LSP_CONVERTER.unstructure(obj))


def _json_clean(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {str(k): _json_clean(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, (list, tuple)):
        return [_json_clean(v) for v in obj if v is not None]
    return obj


@dataclass
class LSPConfig:
    retry_attempts: int = 3
    retry_delay_ms: int = 100
    request_timeout: float = 30.0


class LSPClient:
    """Async LSP client with subprocess-based JSON-RPC communication."""

    def __init__(self, cmd: List[str], workspace: str, config: Optional[LSPConfig] = None):
        self.cmd = cmd
        self.workspace = os.path.abspath(workspace)
        self.config = config or LSPConfig()

        self._process: Optional[asyncio.subprocess.Process] = None
        self._request_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()
        self._initialized = False
        self._open_documents: Dict[str, int] = {}

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        self._process = await asyncio.create_subprocess_exec(
            *self.cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._reader_task = asyncio.create_task(self._read_responses())
        self._stderr_task = asyncio.create_task(self._drain_stderr())
        await self._initialize()

    async def stop(self) -> None:
        if self._initialized and self.running:
            try:
                await self._request("shutdown", {})
                await self._notify("exit", {})
            except (LSPError, OSError) as e:
                logger.debug("Language server did not shut down cleanly: %s", e)

        for task in (self._reader_task, self._stderr_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._process and self._process.returncode is None:
            self._process.terminate()
            try:
                await asyncio.wait_for(self._process.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                self._process.kill()

    async def _initialize(self) -> None:
        workspace_uri = path_to_uri(self.workspace)
        init_params = lsp.InitializeParams(
            process_id=os.getpid(),
            root_uri=workspace_uri,
            capabilities=lsp.ClientCapabilities(
                text_document=lsp.TextDocumentClientCapabilities(
                    document_symbol=lsp.DocumentSymbolClientCapabilities(
                        hierarchical_document_symbol_support=True,
                    ),
                ),
            ),
            workspace_folders=[lsp.WorkspaceFolder(uri=workspace_uri, name=Path(self.workspace).name)],
        )
        await self._request("initialize", _to_dict(init_params))
        await self._notify("initialized", {})
        self._initialized = True

    async def document_symbols(self, file_path: str) -> List[Symbol]:
        """textDocument/documentSymbol for one file."""
        uri = path_to_uri(file_path)
        await self._ensure_document_open(uri, file_path)
        result = await self._request_with_retry("textDocument/documentSymbol", {"textDocument": {"uri": uri}})
        return parse_document_symbol_result(result)

    async def _ensure_document_open(self, uri: str, file_path: str) -> None:
        text = Path(file_path).read_text(encoding="utf-8", errors="replace")
        version = self._open_documents.get(uri)
        if version is None:
            params = lsp.DidOpenTextDocumentParams(
                text_document=lsp.TextDocumentItem(
                    uri=uri, language_id=guess_language_id(file_path), version=1, text=text
                )
            )
            await self._notify("textDocument/didOpen", _to_dict(params))
            self._open_documents[uri] = 1
            return
        # Already open: push the current contents so symbols reflect the edit.
        version += 1
        params = {
            "textDocument": {"uri": uri, "version": version},
            "contentChanges": [{"text": text}],
        }
        await self._notify("textDocument/didChange", params)
        self._open_documents[uri] = version

    async def _request(self, method: str, params: Dict[str, Any]) -> Any:
        self._request_id += 1
        req_id = self._request_id
        message = {"jsonrpc": "2.0", "id": req_id, "method": method, "params": params}

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future
        await self._send(message)

        try:
            return await asyncio.wait_for(future, timeout=self.config.request_timeout)
        except asyncio.TimeoutError:
            self._pending.pop(req_id, None)
            await self._cancel(req_id)
            raise LSPError(f"Request {method} timed out")
        except asyncio.CancelledError:
            self._pending.pop(req_id, None)
            await self._cancel(req_id)
            raise

    async def _cancel(self, req_id: int) -> None:
        try:
            await self._notify("$/cancelRequest", {"id": req_id})
        except (LSPError, OSError):
            pass

    async def _request_with_retry(self, method: str, params: Dict[str, Any]) -> Any:
        """Send request with retry logic for flaky servers."""
        last_error = None
        for attempt in range(max(1, self.config.retry_attempts)):
            try:
                return await self._request(method, params)
            except LSPError as e:
                last_error = e
                if attempt < self.config.retry_attempts - 1:
                    await asyncio.sleep(self.config.retry_delay_ms / 1000.0)
        raise last_error or LSPError(f"Request {method} failed after retries")

    async def _notify(self, method: str, params: Dict[str, Any]) -> None:
        await self._send({"jsonrpc": "2.0", "method": method, "params": params})

    async def _send(self, message: Dict[str, Any]) -> None:
        if not self._process or not self._process.stdin:
            raise LSPError("LSP process not running")
        async with self._send_lock:
            content = json.dumps(message).encode("utf-8")
            self._process.stdin.write(f"Content-Length: {len(content)}\r\n\r\n".encode("utf-8"))
            self._process.stdin.write(content)
            await self._process.stdin.drain()

    async def _read_responses(self) -> None:
        """Background task to read and dispatch responses."""
        if not self._process or not self._process.stdout:
            return
        while True:
            try:
                headers: Dict[str, str] = {}
                while True:
                    line = await self._process.stdout.readline()
                    if not line:
                        self._fail_pending(LSPError("Language server exited"))
                        return
                    line_str = line.decode("utf-8").strip()
                    if not line_str:
                        break
                    if ":" in line_str:
                        key, value = line_str.split(":", 1)
                        headers[key.strip().lower()] = value.strip()

                content_length = int(headers.get("content-length", 0))
                if content_length == 0:
                    continue

                content = await self._process.stdout.readexactly(content_length)
                message = json.loads(content.decode("utf-8"))
            except asyncio.CancelledError:
                break
            except asyncio.IncompleteReadError:
                self._fail_pending(LSPError("Language server exited mid-message"))
                return
            except ValueError as e:
                logger.debug("Dropping unreadable LSP message: %s", e)
                continue

            if isinstance(message, dict) and message.get("id") in self._pending:
                future = self._pending.pop(message["id"])
                if future.done():
                    continue
                if "error" in message:
                    err = message["error"] or {}
                    future.set_exception(LSPError(err.get("message", "Unknown error"), err.get("code")))
                else:
                    future.set_result(message.get("result"))

    def _fail_pending(self, error: LSPError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _drain_stderr(self) -> None:
        """Continuously drain stderr to avoid subprocess backpressure/deadlocks."""
        if not self._process or not self._process.stderr:
            return
        try:
            while await self._process.stderr.readline():
                pass
        except asyncio.CancelledError:
            return


@dataclass
class _CachedSymbols:
    sig: FileSig
    symbols: List[Symbol]


class LspSession:
    """A persistent language server session for a single (lang, workspace_root)."""

    def __init__(self, *, lang: str, workspace_root: str, cmd: List[str], config: Optional[LSPConfig] = None):
        self.lang = lang
        self.workspace_root = os.path.abspath(workspace_root)
        self.cmd = cmd
        self.config = config or LSPConfig()

        self._client: Optional[LSPClient] = None
        self._lock = asyncio.Lock()
        self._disabled_reason: str | None = None
        self._doc_symbol_cache: Dict[str, _CachedSymbols] = {}
        self._last_used = time.monotonic()

    @property
    def last_used(self) -> float:
        return self._last_used

    async def ensure_started(self) -> LSPClient:
        self._last_used = time.monotonic()

        if self._disabled_reason is not None:
            raise LSPError(self._disabled_reason)
        if not has_server_binary(self.cmd):
            self._disabled_reason = f"Missing language server: {self.cmd[0] if self.cmd else '<none>'}"
            raise LSPError(self._disabled_reason)

        if self._client is not None:
            if self._client.running:
                return self._client
            await self._client.stop()
            self._client = None

        client = LSPClient(self.cmd, workspace=self.workspace_root, config=self.config)
        try:
            await client.start()
        except (OSError, LSPError) as e:
            await client.stop()
            self._disabled_reason = f"Language server failed to start: {type(e).__name__}: {e}"
            raise LSPError(self._disabled_reason) from e
        self._client = client
        return client

    async def shutdown(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.stop()
        finally:
            self._client = None
            self._doc_symbol_cache.clear()

    def _file_sig(self, path: str) -> Optional[FileSig]:
        try:
            st = os.stat(path)
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)

    async def document_symbols(self, file_path: str) -> List[Symbol]:
        """Document symbols with caching keyed by file (mtime, size)."""
        self._last_used = time.monotonic()
        sig = self._file_sig(file_path)
        if sig is not None:
            cached = self._doc_symbol_cache.get(file_path)
            if cached is not None and cached.sig == sig:
                return cached.symbols

        # One request at a time per server; didOpen/didChange must precede the query.
        async with self._lock:
            client = await self.ensure_started()
            symbols = await client.document_symbols(file_path)

        if sig is not None:
            self._doc_symbol_cache[file_path] = _CachedSymbols(sig=sig, symbols=symbols)
        return symbols


class LspSessionManager:
    """Owns multiple persistent LSP sessions and evicts idle ones."""

    def __init__(self, *, max_sessions: int = 8, idle_ttl_s: float = 300.0):
        self.max_sessions = max_sessions
        self.idle_ttl_s = idle_ttl_s
        self._sessions: Dict[tuple[str, str], LspSession] = {}
        self._lock = asyncio.Lock()

    async def get(
        self, *, lang: str, workspace_root: str, cmd: List[str], config: Optional[LSPConfig] = None
    ) -> LspSession:
        async with self._lock:
            key = (lang, os.path.abspath(workspace_root))
            sess = self._sessions.get(key)
            if sess is None:
                sess = LspSession(lang=lang, workspace_root=key[1], cmd=cmd, config=config)
                self._sessions[key] = sess
            await self._evict_if_needed_locked(keep=key)
            return sess

    async def shutdown_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for sess in sessions:
            await sess.shutdown()

    async def _evict_if_needed_locked(self, *, keep: tuple[str, str]) -> None:
        now = time.monotonic()
        idle_keys = [k for k, s in self._sessions.items() if k != keep and now - s.last_used > self.idle_ttl_s]
        for k in idle_keys:
            await self._sessions.pop(k).shutdown()

        # LRU until under cap.
        for k, _ in sorted(self._sessions.items(), key=lambda kv: kv[1].last_used):
            if len(self._sessions) <= self.max_sessions:
                return
            if k != keep:
                await self._sessions.pop(k).shutdown()
