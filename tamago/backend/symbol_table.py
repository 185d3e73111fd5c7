"""Symbol tables for linking.

This module extracts symbol information from the LLVM modules of object
units. It's the first phase of linking: every later phase (dependency
graph, resolution, merge) works on these tables rather than on modules.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum

import llvmlite.binding as llvm


class SymbolType(Enum):
    """Type of symbol in LLVM module."""
    FUNCTION = "function"
    GLOBAL_VARIABLE = "global"


@dataclass
class SymbolInfo:
    """Metadata about a single symbol in a module."""
    name: str
    symbol_type: SymbolType
    is_declaration: bool  # True for external declarations (no body)
    linkage: str          # LLVM linkage type name
    module_name: str      # Which unit this symbol came from
    unit_index: int       # Position of that unit in the link input
    ir_text: str | None   # Full IR text for this symbol

    def is_definition(self) -> bool:
        """Check if this is a definition (has body) vs declaration."""
        return not self.is_declaration

    def is_tentative(self) -> bool:
        """Common data: a C tentative definition that yields to a real one."""
        return self.linkage == "common"

    def is_external_linkage(self) -> bool:
        """Check if this symbol has external linkage (exported)."""
        return self.linkage in ("external", "common", "linkonce_odr", "weak_odr")


class SymbolTable:
    """Symbol table for a single LLVM module."""

    def __init__(self, module_name: str, unit_index: int, type_definitions: list[str] | None = None):
        """Initialize symbol table.

        Args:
            module_name: Name of the unit (usually its first source file).
            unit_index: Position of the unit in the link input.
            type_definitions: Named type definition lines of the module.
        """
        self.module_name = module_name
        self.unit_index = unit_index
        self.type_definitions = type_definitions or []
        self.symbols: dict[str, SymbolInfo] = {}  # symbol_name -> SymbolInfo

    def add_symbol(self, symbol: SymbolInfo) -> None:
        self.symbols[symbol.name] = symbol

    def has_definition(self, name: str) -> bool:
        symbol = self.symbols.get(name)
        return symbol is not None and symbol.is_definition()

    def get_definitions(self) -> list[SymbolInfo]:
        return [s for s in self.symbols.values() if s.is_definition()]

    def get_declarations(self) -> list[SymbolInfo]:
        return [s for s in self.symbols.values() if s.is_declaration]

    def __repr__(self) -> str:
        defs = len(self.get_definitions())
        decls = len(self.get_declarations())
        return f"SymbolTable({self.module_name}#{self.unit_index}, {defs} defs, {decls} decls)"


_LINKAGE_NAMES = {
    0: "external",
    1: "available_externally",
    2: "linkonce_any",
    3: "linkonce_odr",
    4: "linkonce_odr_auto_hide",
    5: "weak_any",
    6: "weak_odr",
    7: "appending",
    8: "internal",
    9: "private",
    10: "dllimport",
    11: "dllexport",
    12: "external_weak",
    13: "ghost",
    14: "common",
    15: "linker_private",
    16: "linker_private_weak",
}


def linkage_name(linkage_value: int) -> str:
    """Convert an LLVM linkage enum value (llvm-c/Core.h order) to its name."""
    return _LINKAGE_NAMES.get(int(linkage_value), f"unknown({int(linkage_value)})")


def extract_type_definitions(module: llvm.ModuleRef) -> list[str]:
    """Named struct type lines (``%name = type ...``) of a module."""
    return [line.strip() for line in str(module).splitlines()
            if line.startswith('%') and ' = type ' in line]


def extract_symbol_table(module: llvm.ModuleRef, module_name: str, unit_index: int) -> SymbolTable:
    """Extract symbol table from an LLVM module.

    Args:
        module: Parsed LLVM bitcode module.
        module_name: Name for this unit.
        unit_index: Position of the unit in the link input.

    Returns:
        SymbolTable with all symbols from the module.
    """
    table = SymbolTable(module_name, unit_index, extract_type_definitions(module))

    for func in module.functions:
        # LLVM intrinsics are declared wherever they are used
        if func.name.startswith("llvm."):
            continue

        table.add_symbol(SymbolInfo(
            name=func.name,
            symbol_type=SymbolType.FUNCTION,
            is_declaration=func.is_declaration,
            linkage=linkage_name(func.linkage),
            module_name=module_name,
            unit_index=unit_index,
            ir_text=str(func),
        ))

    for gvar in module.global_variables:
        if gvar.name.startswith("llvm."):
            continue

        table.add_symbol(SymbolInfo(
            name=gvar.name,
            symbol_type=SymbolType.GLOBAL_VARIABLE,
            is_declaration=gvar.is_declaration,
            linkage=linkage_name(gvar.linkage),
            module_name=module_name,
            unit_index=unit_index,
            ir_text=str(gvar),
        ))

    return table
