"""Lexical scopes for ordinary identifiers and tags."""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from llvmlite import ir

from tamago.frontend import ctypes_model as ct


class SymbolKind(Enum):
    VARIABLE = "variable"
    FUNCTION = "function"
    ENUM_CONSTANT = "enum constant"
    TYPEDEF = "typedef"


@dataclass
class Symbol:
    name: str
    kind: SymbolKind
    ctype: ct.CType
    value: Union[ir.Value, int, None] = None   # address, function or enumerator value


class Scope:
    def __init__(self, parent: Optional[Scope] = None) -> None:
        self.parent = parent
        self.names: dict[str, Symbol] = {}
        self.tags: dict[str, ct.CType] = {}

    def child(self) -> Scope:
        return Scope(self)

    def lookup(self, name: str) -> Optional[Symbol]:
        scope: Optional[Scope] = self
        while scope is not None:
            sym = scope.names.get(name)
            if sym is not None:
                return sym
            scope = scope.parent
        return None

    def lookup_tag(self, tag: str) -> Optional[ct.CType]:
        scope: Optional[Scope] = self
        while scope is not None:
            t = scope.tags.get(tag)
            if t is not None:
                return t
            scope = scope.parent
        return None

    def define(self, sym: Symbol) -> Symbol:
        self.names[sym.name] = sym
        return sym

    def define_tag(self, tag: str, t: ct.CType) -> None:
        self.tags[tag] = t
