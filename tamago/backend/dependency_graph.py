"""Dependency graph builder for symbol resolution.

This module builds a dependency graph showing which symbols reference which
other symbols. Executable links use it to keep only what is reachable from
the entry point and to find the undefined symbols that matter.
"""
from __future__ import annotations
import re
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tamago.backend.symbol_table import SymbolInfo, SymbolTable


# Matches @symbol_name, @.symbol_name, or @"quoted name" patterns
_SYMBOL_REFERENCE_RE = re.compile(r'@(\.?[a-zA-Z_$][a-zA-Z0-9_\.$]*|"[^"]+")')


class DependencyGraph:
    """Tracks which symbols depend on which other symbols."""

    def __init__(self):
        self.edges: dict[str, set[str]] = {}  # symbol_name -> set of referenced symbols

    def add_dependency(self, from_symbol: str, to_symbol: str) -> None:
        self.edges.setdefault(from_symbol, set()).add(to_symbol)

    def get_dependencies(self, symbol: str) -> set[str]:
        return self.edges.get(symbol, set())

    def get_transitive_closure(self, root_symbols: set[str]) -> set[str]:
        """All symbols reachable from root_symbols (breadth-first)."""
        reachable = set(root_symbols)
        worklist = deque(sorted(root_symbols))

        while worklist:
            current = worklist.popleft()
            for dep in sorted(self.get_dependencies(current)):
                if dep not in reachable:
                    reachable.add(dep)
                    worklist.append(dep)

        return reachable

    def __repr__(self) -> str:
        total_edges = sum(len(deps) for deps in self.edges.values())
        return f"DependencyGraph({len(self.edges)} symbols, {total_edges} edges)"


def extract_symbol_references(ir_text: str) -> set[str]:
    """Extract all symbol references (without the @ prefix) from LLVM IR text."""
    references = set()
    for match in _SYMBOL_REFERENCE_RE.findall(ir_text):
        if match.startswith('"') and match.endswith('"'):
            references.add(match[1:-1])
        elif not match.startswith("llvm."):
            references.add(match)
    return references


def build_dependency_graph(symbol_tables: list['SymbolTable']) -> DependencyGraph:
    """Build dependency graph from symbol tables.

    Every definition contributes edges to the known symbols its IR text
    mentions. A name defined by several units gets the union of their edges,
    so whichever definition the resolver keeps has its references covered.
    """
    graph = DependencyGraph()

    known: set[str] = set()
    for table in symbol_tables:
        known.update(table.symbols)

    for table in symbol_tables:
        for symbol in table.get_definitions():
            if symbol.ir_text is None:
                continue
            for ref in extract_symbol_references(symbol.ir_text):
                if ref in known and ref != symbol.name:
                    graph.add_dependency(symbol.name, ref)

    return graph
