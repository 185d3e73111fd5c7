"""
LLVM type mapping for the C type model.

Records become identified struct types named after their tag and the unit
tag, so the named types of different units never collide when objects are
merged. A union is laid out as its first member followed by padding and a
zero-length array that carries the union's alignment.
"""
from __future__ import annotations
from typing import TYPE_CHECKING

from llvmlite import ir

from tamago.frontend import ctypes_model as ct
from tamago.internals.errors import raise_internal_error

if TYPE_CHECKING:
    from tamago.backend.codegen_llvm import LLVMCodegen


class LLVMTypes:
    """Lowers C types to llvmlite IR types."""

    def __init__(self, codegen: 'LLVMCodegen') -> None:
        self.codegen = codegen
        self.i1 = ir.IntType(1)
        self.i8 = ir.IntType(8)
        self.i32 = ir.IntType(32)
        self.i64 = ir.IntType(64)
        self.i8p = self.i8.as_pointer()
        self._records: dict[int, ir.IdentifiedStructType] = {}
        self._in_progress: set[int] = set()

    def lower(self, t: ct.CType) -> ir.Type:
        """Map a C type to its IR type."""
        if isinstance(t, ct.IntType):
            return ir.IntType(t.bits)
        if isinstance(t, ct.FloatType):
            return ir.FloatType() if t.bits == 32 else ir.DoubleType()
        if isinstance(t, ct.VoidType):
            return ir.VoidType()
        if isinstance(t, ct.PointerType):
            return self.pointer_to(t.pointee)
        if isinstance(t, ct.ArrayType):
            return ir.ArrayType(self.lower(t.element), t.length or 0)
        if isinstance(t, ct.RecordType):
            return self._record(t)
        if isinstance(t, ct.FunctionType):
            return self.function(t)
        raise_internal_error("IE0003", node=type(t).__name__)

    def pointer_to(self, pointee: ct.CType) -> ir.PointerType:
        if pointee.is_void:
            return self.i8p
        return self.lower(pointee).as_pointer()

    def function(self, t: ct.FunctionType) -> ir.FunctionType:
        """Unprototyped declarations take any arguments."""
        ret = self.lower(t.ret)
        params = [self.lower(p) for p in t.params]
        return ir.FunctionType(ret, params, var_arg=t.variadic or not t.prototyped)

    def zero(self, t: ct.CType) -> ir.Constant:
        return ir.Constant(self.lower(t), None)

    def _record(self, t: ct.RecordType) -> ir.IdentifiedStructType:
        ident = self._records.get(t.uid)
        if ident is None:
            kind = "union" if t.is_union else "struct"
            name = f"{kind}.{t.tag or 'anon'}.{t.uid}.{self.codegen.tag}"
            ident = self.codegen.context.get_identified_type(name)
            self._records[t.uid] = ident
        if t.is_complete and ident.is_opaque and t.uid not in self._in_progress:
            self._in_progress.add(t.uid)
            try:
                ident.set_body(*self._record_body(t))
            finally:
                self._in_progress.discard(t.uid)
        return ident

    def _record_body(self, t: ct.RecordType) -> list[ir.Type]:
        if not t.is_union:
            return [self.lower(f.ctype) for f in t.fields]
        if not t.fields:
            return []
        first = t.fields[0].ctype
        body = [self.lower(first)]
        pad = t.size() - first.size()
        if pad > 0:
            body.append(ir.ArrayType(self.i8, pad))
        body.append(ir.ArrayType(ir.IntType(8 * t.align()), 0))
        return body

    def union_constant(self, t: ct.RecordType, first: ir.Constant) -> ir.Constant:
        """Constant of union type t whose first member is `first`."""
        ident = self._record(t)
        rest = [ir.Constant(elem, None) for elem in ident.elements[1:]]
        return ir.Constant(ident, [first] + rest)
