"""Object linking.

`link_main` and `link_lib` combine an ordered list of object units into
exactly one unit:

Phase 1: Extract symbol tables from every unit's module
         (local symbols that clash with an earlier unit are renamed)
Phase 2: Build the dependency graph (executables only keep what the entry
         point reaches)
Phase 3: Resolve duplicate definitions
Phase 4: Merge the chosen symbols into a fresh module
"""
from __future__ import annotations

import sys
from dataclasses import replace

import llvmlite.binding as llvm

from tamago.backend.dependency_graph import build_dependency_graph
from tamago.backend.module_merger import ModuleMerger
from tamago.backend.objects import Declaration, ObjectUnit
from tamago.backend.symbol_resolver import SymbolResolver, find_duplicate_definitions
from tamago.backend.symbol_table import SymbolInfo, SymbolTable, extract_symbol_table, linkage_name
from tamago.compiler.constants import BUILTIN_PREFIX, ENTRY_POINT
from tamago.internals.errors import LinkError

_LOCAL_LINKAGES = ("internal", "private")


class Linker:
    """Links object units under an executable or a library policy."""

    def __init__(self, units: list[ObjectUnit], verbose: bool = False):
        self.units = units
        self.verbose = verbose
        self.modules: list[llvm.ModuleRef] = []
        self.tables: list[SymbolTable] = []
        self.renames: list[dict[str, str]] = []

    def _log(self, msg: str) -> None:
        if self.verbose:
            print(msg, file=sys.stderr)

    def extract(self) -> None:
        """Phase 1: parse every unit and collect its symbol table."""
        self._log("Linking: Extracting symbol tables...")
        claimed: set[str] = set()
        for index, unit in enumerate(self.units):
            try:
                module = unit.parse()
            except RuntimeError as e:
                raise LinkError("TL0005", reason=f"{unit.name}: {str(e).strip()}") from e
            self.renames.append(self._separate_locals(module, index, claimed))
            table = extract_symbol_table(module, unit.name, index)
            claimed.update(table.symbols)
            self.modules.append(module)
            self.tables.append(table)
            self._log(f"  {table}")

    def _separate_locals(self, module: llvm.ModuleRef, index: int, claimed: set[str]) -> dict[str, str]:
        """Rename local symbols of module whose names an earlier unit already uses.

        Internal definitions are never unified across units, even when two
        units carry the same unit tag.
        """
        renames: dict[str, str] = {}
        for value in list(module.functions) + list(module.global_variables):
            if linkage_name(value.linkage) not in _LOCAL_LINKAGES or value.name not in claimed:
                continue
            old = value.name
            value.name = f"{old}.u{index}"
            renames[old] = value.name
            self._log(f"  Renamed local '{old}' of unit #{index} to '{value.name}'")
        return renames

    def _target(self) -> tuple[str, str]:
        for module in self.modules:
            if module.triple:
                return module.triple, module.data_layout
        return "", ""

    def _merge(self, resolved: dict[str, SymbolInfo], name: str) -> ObjectUnit:
        self._log("Linking: Merging symbols into final module...")
        triple, layout = self._target()
        merged = ModuleMerger(triple, layout).merge(resolved, self.tables, name)

        by_symbol = [{d.symbol: d for d in unit.declarations} for unit in self.units]
        declarations: list[Declaration] = []
        for symbol in resolved.values():
            if symbol.is_declaration:
                continue
            decl = by_symbol[symbol.unit_index].get(symbol.name)
            if decl is None:
                original = next((old for old, new in self.renames[symbol.unit_index].items()
                                 if new == symbol.name), None)
                decl = by_symbol[symbol.unit_index].get(original)
                if decl is not None:
                    decl = replace(decl, symbol=symbol.name)
            if decl is not None:
                declarations.append(decl)

        self._log(f"Linking: Complete. Final module has {len(list(merged.functions))} functions, "
                  f"{len(list(merged.global_variables))} globals")
        return ObjectUnit(name=name, declarations=tuple(declarations), bitcode=merged.as_bitcode())

    def link_main(self) -> ObjectUnit:
        """Link an executable rooted at the entry point.

        Raises:
            LinkError: duplicate exported definitions (TL0002), a missing
                entry point (TL0003) or a reachable undefined symbol that is
                not loader-provided (TL0004).
        """
        self.extract()
        find_duplicate_definitions(self.tables)

        if not any(t.has_definition(ENTRY_POINT) for t in self.tables):
            raise LinkError("TL0003", name=ENTRY_POINT)

        self._log("Linking: Building dependency graph...")
        graph = build_dependency_graph(self.tables)
        self._log(f"  {graph}")
        reachable = graph.get_transitive_closure({ENTRY_POINT})
        self._log(f"  Found {len(reachable)} symbols reachable from {ENTRY_POINT}")

        resolver = SymbolResolver(self.tables, verbose=self.verbose)
        resolved = resolver.resolve(reachable)
        for name in resolver.undefined():
            if not name.startswith(BUILTIN_PREFIX):
                raise LinkError("TL0004", name=name)

        return self._merge(resolved, "main")

    def link_lib(self) -> ObjectUnit:
        """Merge every definition of every unit into one library unit."""
        self.extract()
        self._log("Linking: Resolving library symbols...")
        resolver = SymbolResolver(self.tables, verbose=self.verbose)
        resolved = resolver.resolve()
        conflicts = resolver.get_conflicts()
        if conflicts:
            self._log(f"  Resolved {len(conflicts)} symbol conflict(s)")
        return self._merge(resolved, "lib")


def link_main(units: list[ObjectUnit], verbose: bool = False) -> ObjectUnit:
    return Linker(units, verbose).link_main()


def link_lib(units: list[ObjectUnit], verbose: bool = False) -> ObjectUnit:
    return Linker(units, verbose).link_lib()
