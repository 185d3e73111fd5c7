"""Symbol resolution and deduplication for linking.

This module decides which definition to keep when several units define the
same symbol. A real definition beats a tentative (common) one; otherwise
the first unit in link order wins. Executable links reject duplicate real
definitions of exported symbols before resolution runs.
"""
from __future__ import annotations
import sys
from typing import TYPE_CHECKING

from tamago.internals.errors import LinkError

if TYPE_CHECKING:
    from tamago.backend.symbol_table import SymbolInfo, SymbolTable


def find_duplicate_definitions(symbol_tables: list['SymbolTable']) -> None:
    """Reject a second real definition of an exported symbol.

    Raises:
        LinkError: TL0002 naming both defining units.
    """
    strong: dict[str, 'SymbolInfo'] = {}
    for table in symbol_tables:
        for symbol in table.get_definitions():
            if not symbol.is_external_linkage() or symbol.is_tentative():
                continue
            first = strong.get(symbol.name)
            if first is not None:
                raise LinkError("TL0002", name=symbol.name,
                                first=first.module_name, second=symbol.module_name)
            strong[symbol.name] = symbol


class SymbolResolver:
    """Resolves symbol conflicts and selects which definitions to use."""

    def __init__(self, symbol_tables: list['SymbolTable'], verbose: bool = False):
        """Initialize resolver with all symbol tables.

        Args:
            symbol_tables: Tables in link order.
            verbose: If True, print conflict resolution messages.
        """
        self.symbol_tables = symbol_tables
        self.verbose = verbose
        self.resolution_map: dict[str, 'SymbolInfo'] = {}
        self.conflicts: list[tuple[str, list['SymbolInfo']]] = []

    def resolve(self, wanted: set[str] | None = None) -> dict[str, 'SymbolInfo']:
        """Resolve symbols, handling duplicates.

        Args:
            wanted: Names to resolve; None resolves every symbol.

        Returns:
            Mapping of symbol_name -> chosen SymbolInfo, in first-seen order.
        """
        definitions: dict[str, list['SymbolInfo']] = {}
        declarations: dict[str, list['SymbolInfo']] = {}
        order: list[str] = []

        for table in self.symbol_tables:
            for name, symbol in table.symbols.items():
                if wanted is not None and name not in wanted:
                    continue
                if name not in definitions and name not in declarations:
                    order.append(name)
                bucket = definitions if symbol.is_definition() else declarations
                bucket.setdefault(name, []).append(symbol)

        for symbol_name in order:
            defs = definitions.get(symbol_name, [])

            if not defs:
                # Undefined everywhere: keep one declaration
                self.resolution_map[symbol_name] = declarations[symbol_name][0]
            elif len(defs) == 1:
                self.resolution_map[symbol_name] = defs[0]
            else:
                self.resolution_map[symbol_name] = self._choose_definition(symbol_name, defs)
                self.conflicts.append((symbol_name, defs))

        return self.resolution_map

    def undefined(self) -> list[str]:
        """Names resolved to a declaration only."""
        return [name for name, s in self.resolution_map.items() if s.is_declaration]

    def _choose_definition(self, symbol_name: str, candidates: list['SymbolInfo']) -> 'SymbolInfo':
        """Choose which definition to use when multiple exist.

        Real definitions take precedence over tentative ones; among equals
        the first in link order wins.
        """
        real = [s for s in candidates if not s.is_tentative()]
        chosen = real[0] if real else candidates[0]

        if self.verbose:
            others = [f"{s.module_name}#{s.unit_index}" for s in candidates if s is not chosen]
            print(f"  Symbol conflict '{symbol_name}': "
                  f"chose {chosen.module_name}#{chosen.unit_index} over {', '.join(others)}",
                  file=sys.stderr)

        return chosen

    def get_conflicts(self) -> list[tuple[str, list['SymbolInfo']]]:
        return self.conflicts
