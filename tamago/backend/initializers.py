"""
Initializer lowering.

An initializer is first laid out against the declared type: braces are
matched to aggregates (with brace elision), designators are resolved and
string literals are attached to char arrays. The layout is then lowered
either to an `ir.Constant` (objects with static storage) or to a sequence
of stores (automatic objects).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Union

from llvmlite import ir
from pycparser import c_ast

from tamago.backend.constants_eval import NotConstant, convert_number, string_literal_bytes
from tamago.backend.scope import SymbolKind
from tamago.frontend import ctypes_model as ct

if TYPE_CHECKING:
    from tamago.backend.codegen_llvm import LLVMCodegen


@dataclass
class StringInit:
    data: bytes


@dataclass
class Aggregate:
    ctype: ct.CType
    items: dict[int, 'Layout'] = field(default_factory=dict)


Layout = Union[Aggregate, StringInit, c_ast.Node, None]


def _is_aggregate(t: ct.CType) -> bool:
    return isinstance(t, (ct.ArrayType, ct.RecordType))


def _is_char_array(t: ct.CType) -> bool:
    return isinstance(t, ct.ArrayType) and isinstance(t.element, ct.IntType) and t.element.bits == 8


def _is_string(node: Optional[c_ast.Node]) -> bool:
    return isinstance(node, c_ast.Constant) and node.type == "string"


def complete_array_type(codegen: 'LLVMCodegen', t: ct.ArrayType, init: c_ast.Node) -> ct.ArrayType:
    """Size an array declared with `[]` from its initializer."""
    layout = codegen.inits.layout(t, init)
    if isinstance(layout, StringInit):
        return ct.ArrayType(t.element, len(layout.data) + 1)
    if isinstance(layout, Aggregate):
        return ct.ArrayType(t.element, max(layout.items) + 1 if layout.items else 0)
    codegen.fail("TF0005", init, op="=", left=t, right="expression")


class InitializerLowering:
    def __init__(self, codegen: 'LLVMCodegen') -> None:
        self.codegen = codegen

    # ------------------------------------------------------------------
    # Layout

    def layout(self, t: ct.CType, init: Optional[c_ast.Node]) -> Layout:
        if init is None:
            return None
        if _is_char_array(t):
            if _is_string(init):
                return StringInit(string_literal_bytes(init.value))
            if isinstance(init, c_ast.InitList) and len(init.exprs) == 1 and _is_string(init.exprs[0]):
                return StringInit(string_literal_bytes(init.exprs[0].value))
        if _is_aggregate(t):
            if isinstance(init, c_ast.InitList):
                agg, pos = self._braced(t, init.exprs, 0, elided=False)
                return agg
            return init
        if isinstance(init, c_ast.InitList):
            if not init.exprs:
                return None
            if len(init.exprs) > 1:
                self.codegen.fail("TF0017", init.exprs[1], type=t)
            return self.layout(t, init.exprs[0])
        return init

    def _member_count(self, t: ct.CType) -> Optional[int]:
        if isinstance(t, ct.ArrayType):
            return t.length
        if not t.is_complete:
            self.codegen.fail("TF0011", None, type=t)
        return len(t.fields)

    @staticmethod
    def _member_type(t: ct.CType, index: int) -> ct.CType:
        if isinstance(t, ct.ArrayType):
            return t.element
        return t.fields[index].ctype

    def _braced(self, t: ct.CType, items: list[c_ast.Node], pos: int, elided: bool) -> tuple[Aggregate, int]:
        """Consume items into an aggregate of type t, starting at pos."""
        agg = Aggregate(t)
        limit = self._member_count(t)
        union = isinstance(t, ct.RecordType) and t.is_union
        current = 0
        while pos < len(items):
            item = items[pos]
            if isinstance(item, c_ast.NamedInitializer):
                if elided:
                    break
                current = self._designated(agg, item.name, item.expr, item) + 1
                pos += 1
                if union:
                    current = limit
                continue
            if limit is not None and current >= limit:
                if elided:
                    break
                self.codegen.fail("TF0017", item, type=t)
            member = self._member_type(t, current)
            if self._needs_elision(member, item):
                start = pos
                agg.items[current], pos = self._braced(member, items, pos, elided=True)
                if pos == start:
                    self.codegen.fail("TF0017", item, type=t)
            else:
                agg.items[current] = self.layout(member, item)
                pos += 1
            current = limit if union else current + 1
        return agg, pos

    def _needs_elision(self, member: ct.CType, item: c_ast.Node) -> bool:
        if not _is_aggregate(member) or isinstance(item, c_ast.InitList):
            return False
        if _is_char_array(member) and _is_string(item):
            return False
        if isinstance(member, ct.RecordType) and self.codegen.builder is not None:
            return self.codegen.exprs.type_of(item) is not member
        return True

    def _designated(self, agg: Aggregate, names: list[c_ast.Node], expr: c_ast.Node,
                    node: c_ast.Node) -> int:
        t = agg.ctype
        designator = names[0]
        if isinstance(t, ct.ArrayType):
            if isinstance(designator, c_ast.ID):
                self.codegen.fail("TF0008", node, field=designator.name, type=t)
            index = self.codegen.const_eval.integer(designator)
            if index < 0 or (t.length is not None and index >= t.length):
                self.codegen.fail("TF0017", node, type=t)
        else:
            if not isinstance(designator, c_ast.ID):
                self.codegen.fail("TF0003", node, what="array designator for a record")
            index = t.field_index(designator.name)
            if index is None:
                self.codegen.fail("TF0008", node, field=designator.name, type=t.display_name)
        member = self._member_type(t, index)
        if len(names) == 1:
            agg.items[index] = self.layout(member, expr)
            return index
        sub = agg.items.get(index)
        if not isinstance(sub, Aggregate):
            if not _is_aggregate(member):
                self.codegen.fail("TF0003", node, what="designator into a scalar")
            sub = Aggregate(member)
            agg.items[index] = sub
        self._designated(sub, names[1:], expr, node)
        return index

    # ------------------------------------------------------------------
    # Static storage

    def constant(self, t: ct.CType, init: c_ast.Node) -> ir.Constant:
        """Constant initializer for an object with static storage."""
        return self._constant(t, self.layout(t, init), init)

    def _constant(self, t: ct.CType, layout: Layout, node: c_ast.Node) -> ir.Constant:
        types = self.codegen.types
        if layout is None:
            return types.zero(t)
        if isinstance(layout, StringInit):
            return self._string_array(t, layout, node)
        if isinstance(layout, Aggregate):
            if isinstance(t, ct.ArrayType):
                values = [self._constant(t.element, layout.items.get(i), node) for i in range(t.length or 0)]
                return ir.Constant(types.lower(t), values)
            if t.is_union:
                if not layout.items:
                    return types.zero(t)
                if set(layout.items) != {0}:
                    self.codegen.fail("TF0003", node, what="static initializer for a union member other than the first")
                first = self._constant(t.fields[0].ctype, layout.items[0], node)
                return types.union_constant(t, first)
            values = [self._constant(f.ctype, layout.items.get(i), node) for i, f in enumerate(t.fields)]
            return ir.Constant(types.lower(t), values)
        if _is_aggregate(t):
            self.codegen.fail("TF0007", layout)
        return self.scalar_constant(t, layout)

    def _string_array(self, t: ct.CType, layout: StringInit, node: c_ast.Node) -> ir.Constant:
        length = t.length or 0
        if len(layout.data) > length:
            self.codegen.fail("TF0017", node, type=t)
        payload = bytearray(layout.data) + bytearray(length - len(layout.data))
        return ir.Constant(self.codegen.types.lower(t), payload)

    def scalar_constant(self, t: ct.CType, node: c_ast.Node) -> ir.Constant:
        types = self.codegen.types
        try:
            value, vt = self.codegen.const_eval.evaluate(node, self.codegen.scope)
        except NotConstant:
            value, vt = None, None
        if vt is not None and vt.is_arithmetic:
            if t.is_arithmetic:
                value = convert_number(value, t)
                if isinstance(t, ct.IntType):
                    value = ct.IntType(t.bits, True).wrap(value)
                return ir.Constant(types.lower(t), value)
            if t.is_pointer and isinstance(value, int):
                if value == 0:
                    return ir.Constant(types.lower(t), None)
                return ir.Constant(types.i64, value).inttoptr(types.lower(t))
            self.codegen.fail("TF0007", node)
        if not t.is_pointer:
            self.codegen.fail("TF0007", node)
        address, _ = self.address(node)
        target = types.lower(t)
        return address if address.type == target else address.bitcast(target)

    def address(self, node: c_ast.Node) -> tuple[ir.Constant, ct.CType]:
        """Address constant for a pointer-valued constant expression."""
        types = self.codegen.types
        if _is_string(node):
            return self.codegen.string_literal(string_literal_bytes(node.value)), ct.PointerType(ct.CHAR)
        if isinstance(node, c_ast.ID):
            base, t = self.object_address(node)
            if isinstance(t, ct.ArrayType):
                zero = ir.Constant(types.i32, 0)
                return base.gep([zero, zero]), ct.PointerType(t.element)
            if isinstance(t, ct.FunctionType):
                return base, ct.PointerType(t)
            self.codegen.fail("TF0007", node)
        if isinstance(node, c_ast.UnaryOp) and node.op == "&":
            base, t = self.object_address(node.expr)
            return base, ct.PointerType(t)
        if isinstance(node, c_ast.Cast):
            target = self.codegen.type_builder.resolve(node.to_type, self.codegen.scope)
            if not target.is_pointer:
                self.codegen.fail("TF0007", node)
            lowered = types.lower(target)
            integer = self._integer_value(node.expr)
            if integer is not None:
                if integer == 0:
                    return ir.Constant(lowered, None), target
                return ir.Constant(types.i64, integer).inttoptr(lowered), target
            base, _ = self.address(node.expr)
            return (base if base.type == lowered else base.bitcast(lowered)), target
        if isinstance(node, c_ast.BinaryOp) and node.op in ("+", "-"):
            base, t = self.address(node.left)
            offset = self.codegen.const_eval.integer(node.right)
            if node.op == "-":
                offset = -offset
            offset_c = ir.Constant(types.i64, offset)
            if isinstance(t.pointee, ct.FunctionType) or t.pointee.is_void:
                raw = base.bitcast(types.i8p).gep([offset_c])
                return raw.bitcast(base.type), t
            return base.gep([offset_c]), t
        self.codegen.fail("TF0007", node)

    def _integer_value(self, node: c_ast.Node) -> Optional[int]:
        try:
            value, t = self.codegen.const_eval.evaluate(node, self.codegen.scope)
        except NotConstant:
            return None
        return value if t.is_integer else None

    def object_address(self, node: c_ast.Node) -> tuple[ir.Constant, ct.CType]:
        """Constant address of an object designated by node, and its type."""
        types = self.codegen.types
        i32 = types.i32
        if _is_string(node):
            data = string_literal_bytes(node.value)
            return self.codegen.string_global(data), ct.ArrayType(ct.CHAR, len(data) + 1)
        if isinstance(node, c_ast.ID):
            sym = self.codegen.scope.lookup(node.name)
            if sym is None:
                self.codegen.fail("TF0004", node, name=node.name)
            if sym.kind not in (SymbolKind.VARIABLE, SymbolKind.FUNCTION) or not isinstance(sym.value, ir.GlobalValue):
                self.codegen.fail("TF0007", node)
            return sym.value, sym.ctype
        if isinstance(node, c_ast.ArrayRef):
            base, t = self.object_address(node.name)
            if not isinstance(t, ct.ArrayType):
                self.codegen.fail("TF0007", node)
            index = self.codegen.const_eval.integer(node.subscript)
            return base.gep([ir.Constant(i32, 0), ir.Constant(types.i64, index)]), t.element
        if isinstance(node, c_ast.StructRef):
            if node.type == "->":
                pointer, pt = self.address(node.name)
                base, t = pointer, pt.pointee
                lead = ir.Constant(types.i64, 0)
            else:
                base, t = self.object_address(node.name)
                lead = ir.Constant(i32, 0)
            if not isinstance(t, ct.RecordType) or not t.is_complete:
                self.codegen.fail("TF0008", node, field=node.field.name, type=t)
            index = t.field_index(node.field.name)
            if index is None:
                self.codegen.fail("TF0008", node, field=node.field.name, type=t.display_name)
            member = t.fields[index].ctype
            if t.is_union:
                return base.bitcast(types.pointer_to(member)), member
            return base.gep([lead, ir.Constant(i32, index)]), member
        if isinstance(node, c_ast.UnaryOp) and node.op == "*":
            pointer, pt = self.address(node.expr)
            return pointer, pt.pointee
        self.codegen.fail("TF0007", node)

    # ------------------------------------------------------------------
    # Automatic storage

    def local(self, lv, init: c_ast.Node) -> None:
        """Store the initializer of an automatic object into its slot."""
        t = lv.ctype
        layout = self.layout(t, init)
        exprs = self.codegen.exprs
        if isinstance(layout, (Aggregate, StringInit)) or layout is None:
            exprs.store(self.codegen.types.zero(t), lv)
        self._store(lv.address, t, layout, init)

    def _store(self, address: ir.Value, t: ct.CType, layout: Layout, node: c_ast.Node) -> None:
        exprs = self.codegen.exprs
        builder = self.codegen.builder
        types = self.codegen.types
        i32 = types.i32
        if layout is None:
            return
        if isinstance(layout, StringInit):
            inst = builder.store(self._string_array(t, layout, node), address)
            inst.align = max(t.align(), 1)
            return
        if isinstance(layout, Aggregate):
            for index, sub in sorted(layout.items.items()):
                member = self._member_type(t, index)
                if isinstance(t, ct.RecordType) and t.is_union:
                    slot = builder.bitcast(address, types.pointer_to(member))
                else:
                    slot = builder.gep(address, [ir.Constant(i32, 0), ir.Constant(i32, index)])
                self._store(slot, member, sub, node)
            return
        tv = exprs.emit(layout)
        if _is_aggregate(t) and tv.ctype is not t:
            self.codegen.fail("TF0005", layout, op="=", left=t, right=tv.ctype)
        value = exprs.convert(tv, t, layout)
        inst = builder.store(value, address)
        inst.align = max(t.align(), 1)
