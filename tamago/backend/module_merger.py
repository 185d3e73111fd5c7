"""Module merger for linking.

This module builds a new LLVM module containing only the resolved symbols.
It reconstructs valid LLVM IR text from the symbol definitions collected
during resolution and parses it back into one module.
"""
from __future__ import annotations
from typing import TYPE_CHECKING

import llvmlite.binding as llvm

from tamago.internals.errors import LinkError

if TYPE_CHECKING:
    from tamago.backend.symbol_table import SymbolInfo, SymbolTable


class ModuleMerger:
    """Builds a new LLVM module from resolved symbols."""

    def __init__(self, target_triple: str = "", data_layout: str = ""):
        """Initialize merger.

        Args:
            target_triple: LLVM target triple (e.g., "x86_64-unknown-linux-gnu").
            data_layout: LLVM data layout string.
        """
        self.target_triple = target_triple
        self.data_layout = data_layout

    def merge(
        self,
        resolved_symbols: dict[str, 'SymbolInfo'],
        symbol_tables: list['SymbolTable'],
        module_name: str = "merged",
    ) -> llvm.ModuleRef:
        """Build new module from resolved symbols.

        Strategy: concatenate the IR text of all chosen symbols, preceded by
        the named type definitions of the contributing units, and parse the
        result as one module.

        Raises:
            LinkError: TL0005 if the merged IR fails to parse.
        """
        contributing = {s.unit_index for s in resolved_symbols.values()}
        type_defs: list[str] = []
        for table in symbol_tables:
            if table.unit_index not in contributing:
                continue
            for line in table.type_definitions:
                if line not in type_defs:
                    type_defs.append(line)

        ir_parts = [
            f'; ModuleID = "{module_name}"',
            f'source_filename = "{module_name}"',
        ]
        if self.target_triple:
            ir_parts.append(f'target triple = "{self.target_triple}"')
        if self.data_layout:
            ir_parts.append(f'target datalayout = "{self.data_layout}"')
        ir_parts.append('')

        if type_defs:
            ir_parts.extend(type_defs)
            ir_parts.append('')

        declarations = []
        definitions = []
        for symbol in resolved_symbols.values():
            if symbol.ir_text is None:
                continue
            if symbol.is_declaration:
                declarations.append(symbol.ir_text.strip())
            else:
                definitions.append(symbol.ir_text.strip())

        ir_parts.extend(declarations)
        if declarations and definitions:
            ir_parts.append('')
        ir_parts.extend(definitions)

        full_ir = '\n'.join(ir_parts) + '\n'
        try:
            return llvm.parse_assembly(full_ir)
        except RuntimeError as e:
            raise LinkError("TL0005", reason=str(e).strip()) from e
