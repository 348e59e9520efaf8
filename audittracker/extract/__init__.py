from .lsp import LSPClient, LSPConfig, LSPError, LspSession, LspSessionManager
from .symbols import Extractor, SymbolExtractor, symbols_to_functions

__all__ = [
    "Extractor",
    "LSPClient",
    "LSPConfig",
    "LSPError",
    "LspSession",
    "LspSessionManager",
    "SymbolExtractor",
    "symbols_to_functions",
]
