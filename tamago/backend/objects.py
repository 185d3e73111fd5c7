"""Relocatable objects and loaded binaries.

An `ObjectUnit` is one lowered translation unit: LLVM bitcode plus the
table of entities it defines. An object file holds an ordered `Objects`
collection of units. A `Binary` is the image the loader produces from one
linked unit.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

import llvmlite.binding as llvm

from tamago.backend.symbol_table import linkage_name
from tamago.internals.errors import VerifyError


class DeclKind(str, Enum):
    DATA = "data"
    FUNCTION = "function"


class Linkage(str, Enum):
    EXTERNAL = "external"
    INTERNAL = "internal"


# LLVM linkage names acceptable for each declared linkage
_LLVM_LINKAGES = {
    Linkage.EXTERNAL: {"external", "common"},
    Linkage.INTERNAL: {"internal", "private"},
}


@dataclass(frozen=True)
class Declaration:
    """One entity defined by a unit."""
    name: str              # C name, as reported by tamago-nm
    symbol: str            # LLVM symbol name (internal names carry a unit tag)
    kind: DeclKind
    linkage: Linkage
    type: str              # type or signature descriptor
    tentative: bool = False

    @property
    def is_exported(self) -> bool:
        return self.linkage == Linkage.EXTERNAL

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "kind": self.kind.value,
            "linkage": self.linkage.value,
            "type": self.type,
            "tentative": self.tentative,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Declaration:
        return cls(
            name=d["name"],
            symbol=d["symbol"],
            kind=DeclKind(d["kind"]),
            linkage=Linkage(d["linkage"]),
            type=d["type"],
            tentative=bool(d.get("tentative", False)),
        )


@dataclass(frozen=True)
class ObjectUnit:
    """A relocatable object: declarations plus LLVM bitcode."""
    name: str
    declarations: tuple[Declaration, ...]
    bitcode: bytes

    def parse(self) -> llvm.ModuleRef:
        return llvm.parse_bitcode(self.bitcode)

    def exported(self) -> list[Declaration]:
        return [d for d in self.declarations if d.is_exported]

    def verify(self) -> None:
        """Check the bitcode and that the declaration table matches it.

        Raises:
            VerifyError: TL0001 naming the first inconsistency.
        """
        try:
            module = self.parse()
            module.verify()
        except RuntimeError as e:
            raise VerifyError("TL0001", unit=self.name, reason=str(e).strip()) from e

        functions = {f.name: f for f in module.functions}
        data = {g.name: g for g in module.global_variables}
        seen: set[str] = set()
        for decl in self.declarations:
            if decl.is_exported:
                if decl.name in seen:
                    raise VerifyError("TL0001", unit=self.name,
                                      reason=f"'{decl.name}' is declared twice")
                seen.add(decl.name)

            # getNamedGlobal skips local linkage, so look values up by name
            value = (functions if decl.kind == DeclKind.FUNCTION else data).get(decl.symbol)
            if value is None:
                raise VerifyError("TL0001", unit=self.name,
                                  reason=f"no {decl.kind.value} symbol '{decl.symbol}' for '{decl.name}'")

            if value.is_declaration:
                raise VerifyError("TL0001", unit=self.name,
                                  reason=f"'{decl.name}' is declared but not defined")
            if linkage_name(value.linkage) not in _LLVM_LINKAGES[decl.linkage]:
                raise VerifyError("TL0001", unit=self.name,
                                  reason=f"'{decl.name}' has linkage {linkage_name(value.linkage)}, "
                                         f"expected {decl.linkage.value}")


@dataclass
class Objects:
    """Ordered collection of object units (the content of an object file)."""
    units: list[ObjectUnit] = field(default_factory=list)

    def extend(self, other: Objects) -> None:
        self.units.extend(other.units)

    def __len__(self) -> int:
        return len(self.units)

    def __iter__(self):
        return iter(self.units)


@dataclass(frozen=True)
class Binary:
    """A loaded executable image."""
    entry: int
    triple: str
    symbols: dict[str, int]   # exported name -> load address
    bitcode: bytes
