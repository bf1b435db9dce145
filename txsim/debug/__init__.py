"""Debug-symbol extraction from compiled WASM modules."""

from txsim.debug.symbols import DebugSymbolMapper, DebugSymbolTable, SymbolRange, build_symbol_table

__all__ = [
    "DebugSymbolMapper",
    "DebugSymbolTable",
    "SymbolRange",
    "build_symbol_table",
]
