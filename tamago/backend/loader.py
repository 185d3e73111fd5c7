"""Loader: turns one linked unit into a binary image."""
from __future__ import annotations

from tamago.backend.objects import Binary, ObjectUnit
from tamago.backend.symbol_table import linkage_name
from tamago.compiler.constants import ENTRY_POINT
from tamago.internals.errors import LinkError


def load_main(unit: ObjectUnit) -> Binary:
    """Lay out the code of a linked executable unit.

    Functions are placed with the entry point first and the rest in module
    order. A function's load address is the number of instructions placed
    before it. Exported functions make up the symbol table.

    Raises:
        LinkError: TL0006 if the unit does not verify or has no entry point.
    """
    try:
        module = unit.parse()
        module.verify()
    except RuntimeError as e:
        raise LinkError("TL0006", reason=str(e).strip()) from e

    functions = [f for f in module.functions if not f.is_declaration]
    entry = [f for f in functions if f.name == ENTRY_POINT]
    if not entry:
        raise LinkError("TL0006", reason=f"no definition of '{ENTRY_POINT}'")
    layout = entry + [f for f in functions if f.name != ENTRY_POINT]

    symbols: dict[str, int] = {}
    address = 0
    for func in layout:
        if linkage_name(func.linkage) == "external":
            symbols[func.name] = address
        address += sum(1 for block in func.blocks for _ in block.instructions)

    return Binary(entry=symbols.get(ENTRY_POINT, 0), triple=module.triple,
                  symbols=symbols, bitcode=unit.bitcode)
