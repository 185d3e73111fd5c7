"""C type model.

Types produced by the front-end from pycparser declarators. Sizes and
alignment follow the LP64 data model. `descriptor()` renders the compact
type notation stored in object metadata and printed by tamago-nm::

    int32  uint8  float64  *int8  [4]int32  struct{int32,*struct{}}
    func(int32,*int8...)int32   (variadic)   func()   (void return)
"""
from __future__ import annotations
from dataclasses import dataclass, field
from itertools import count
from typing import Optional


class CType:
    """Base class for all C types."""

    def size(self) -> int:
        raise NotImplementedError

    def align(self) -> int:
        return self.size()

    def descriptor(self, seen: frozenset = frozenset()) -> str:
        raise NotImplementedError

    @property
    def is_void(self) -> bool:
        return False

    @property
    def is_integer(self) -> bool:
        return False

    @property
    def is_float(self) -> bool:
        return False

    @property
    def is_arithmetic(self) -> bool:
        return self.is_integer or self.is_float

    @property
    def is_pointer(self) -> bool:
        return False

    @property
    def is_scalar(self) -> bool:
        return self.is_arithmetic or self.is_pointer

    @property
    def is_complete(self) -> bool:
        return True

    def __str__(self) -> str:
        return self.descriptor()


@dataclass(frozen=True)
class VoidType(CType):
    def size(self) -> int:
        return 1  # GNU arithmetic on void *

    def descriptor(self, seen: frozenset = frozenset()) -> str:
        return "struct{}"

    @property
    def is_void(self) -> bool:
        return True

    @property
    def is_complete(self) -> bool:
        return False


@dataclass(frozen=True)
class IntType(CType):
    bits: int
    signed: bool
    boolean: bool = False

    def size(self) -> int:
        return self.bits // 8

    def descriptor(self, seen: frozenset = frozenset()) -> str:
        return f"{'int' if self.signed else 'uint'}{self.bits}"

    @property
    def is_integer(self) -> bool:
        return True

    @property
    def max_value(self) -> int:
        return (1 << (self.bits - 1)) - 1 if self.signed else (1 << self.bits) - 1

    def wrap(self, value: int) -> int:
        """Reduce an integer to this type's range (two's complement)."""
        if self.boolean:
            return 1 if value else 0
        value &= (1 << self.bits) - 1
        if self.signed and value >= (1 << (self.bits - 1)):
            value -= 1 << self.bits
        return value


@dataclass(frozen=True)
class FloatType(CType):
    bits: int

    def size(self) -> int:
        return self.bits // 8

    def descriptor(self, seen: frozenset = frozenset()) -> str:
        return f"float{self.bits}"

    @property
    def is_float(self) -> bool:
        return True


@dataclass(frozen=True)
class PointerType(CType):
    pointee: CType

    def size(self) -> int:
        return 8

    def descriptor(self, seen: frozenset = frozenset()) -> str:
        return "*" + self.pointee.descriptor(seen)

    @property
    def is_pointer(self) -> bool:
        return True


@dataclass(frozen=True)
class ArrayType(CType):
    element: CType
    length: Optional[int]

    def size(self) -> int:
        return self.element.size() * (self.length or 0)

    def align(self) -> int:
        return self.element.align()

    def descriptor(self, seen: frozenset = frozenset()) -> str:
        n = "" if self.length is None else str(self.length)
        return f"[{n}]{self.element.descriptor(seen)}"

    @property
    def is_complete(self) -> bool:
        return self.length is not None


@dataclass
class Field:
    name: Optional[str]
    ctype: CType
    offset: int = 0


_record_ids = count(1)


@dataclass(eq=False)
class RecordType(CType):
    """A struct or union. Identity matters: two declarations are two types."""
    tag: Optional[str]
    is_union: bool = False
    fields: Optional[list[Field]] = None
    uid: int = field(default_factory=lambda: next(_record_ids))
    _size: int = 0
    _align: int = 1

    @property
    def is_complete(self) -> bool:
        return self.fields is not None

    def complete(self, members: list[tuple[Optional[str], CType]]) -> None:
        """Lay out the members and mark the record complete."""
        fields: list[Field] = []
        offset = 0
        align = 1
        size = 0
        for name, ctype in members:
            a = ctype.align()
            align = max(align, a)
            if self.is_union:
                fields.append(Field(name, ctype, 0))
                size = max(size, ctype.size())
            else:
                offset = _round_up(offset, a)
                fields.append(Field(name, ctype, offset))
                offset += ctype.size()
                size = offset
        self._align = align
        self._size = _round_up(size, align)
        self.fields = fields

    def size(self) -> int:
        return self._size

    def align(self) -> int:
        return self._align

    def field_index(self, name: str) -> Optional[int]:
        for i, f in enumerate(self.fields or ()):
            if f.name == name:
                return i
        return None

    @property
    def display_name(self) -> str:
        kind = "union" if self.is_union else "struct"
        return f"{kind} {self.tag}" if self.tag else f"{kind} <anonymous>"

    def descriptor(self, seen: frozenset = frozenset()) -> str:
        kind = "union" if self.is_union else "struct"
        if self.uid in seen or self.fields is None:
            return "struct{}"
        inner = seen | {self.uid}
        return f"{kind}{{{','.join(f.ctype.descriptor(inner) for f in self.fields)}}}"


@dataclass(frozen=True)
class FunctionType(CType):
    ret: CType
    params: tuple[CType, ...] = ()
    variadic: bool = False
    prototyped: bool = True

    def size(self) -> int:
        return 1

    def descriptor(self, seen: frozenset = frozenset()) -> str:
        params = ",".join(p.descriptor(seen) for p in self.params)
        if self.variadic and self.prototyped:
            params += "..."
        ret = "" if self.ret.is_void else self.ret.descriptor(seen)
        return f"func({params}){ret}"


def _round_up(n: int, a: int) -> int:
    return (n + a - 1) // a * a


VOID = VoidType()
BOOL = IntType(8, False, boolean=True)
INT8 = IntType(8, True)
UINT8 = IntType(8, False)
INT16 = IntType(16, True)
UINT16 = IntType(16, False)
INT32 = IntType(32, True)
UINT32 = IntType(32, False)
INT64 = IntType(64, True)
UINT64 = IntType(64, False)
FLOAT32 = FloatType(32)
FLOAT64 = FloatType(64)

CHAR = INT8
SIZE_T = UINT64
PTRDIFF_T = INT64


_SPECIFIERS = {"void", "char", "short", "int", "long", "float", "double",
               "signed", "unsigned", "_Bool", "_Complex"}


def is_base_specifier(name: str) -> bool:
    return name in _SPECIFIERS


def type_from_specifiers(names: list[str]) -> Optional[CType]:
    """Arithmetic/void type for a list of type specifier keywords.

    Returns None for combinations that do not name a supported type.
    """
    words = list(names)
    longs = words.count("long")
    unsigned = "unsigned" in words
    rest = [w for w in words if w not in ("long", "signed", "unsigned", "int")]

    if rest == ["void"] and len(words) == 1:
        return VOID
    if rest == ["_Bool"]:
        return BOOL
    if rest == ["char"]:
        return UINT8 if unsigned else INT8
    if rest == ["short"]:
        return UINT16 if unsigned else INT16
    if rest == ["float"] and len(words) == 1:
        return FLOAT32
    if rest == ["double"]:
        return FLOAT64  # long double is lowered as double
    if rest:
        return None
    if longs:
        return UINT64 if unsigned else INT64
    return UINT32 if unsigned else INT32


def integer_promote(t: CType) -> CType:
    """C integer promotion (LP64)."""
    if isinstance(t, IntType) and t.bits < 32:
        return INT32
    return t


def common_arithmetic_type(a: CType, b: CType) -> CType:
    """The usual arithmetic conversions."""
    if a.is_float or b.is_float:
        return FLOAT64 if FLOAT64 in (a, b) else FLOAT32
    a = integer_promote(a)
    b = integer_promote(b)
    assert isinstance(a, IntType) and isinstance(b, IntType)
    if a == b:
        return a
    if a.signed == b.signed:
        return a if a.bits >= b.bits else b
    unsigned, signed = (a, b) if not a.signed else (b, a)
    if unsigned.bits >= signed.bits:
        return unsigned
    return signed


def decay(t: CType) -> CType:
    """Array-to-pointer and function-to-pointer conversion."""
    if isinstance(t, ArrayType):
        return PointerType(t.element)
    if isinstance(t, FunctionType):
        return PointerType(t)
    return t


def pointee_size(t: PointerType) -> int:
    """Element size for pointer arithmetic (void and functions count as 1)."""
    p = t.pointee
    if p.is_void or isinstance(p, FunctionType):
        return 1
    return p.size()
