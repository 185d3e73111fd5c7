"""
Expression emission for the C front-end.

Every emitted expression is a `TypedValue`: the LLVM value together with its
C type. Lvalues are addresses (`LValue`) that are loaded on demand; arrays
and functions decay to pointers when loaded.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from llvmlite import ir
from pycparser import c_ast

from tamago.backend.constants_eval import NotConstant, constant_literal, string_literal_bytes
from tamago.backend.initializers import complete_array_type
from tamago.backend.scope import SymbolKind
from tamago.frontend import ctypes_model as ct

if TYPE_CHECKING:
    from tamago.backend.codegen_llvm import LLVMCodegen


@dataclass
class TypedValue:
    value: Optional[ir.Value]
    ctype: ct.CType


@dataclass
class LValue:
    address: ir.Value
    ctype: ct.CType


_COMPARISONS = ("==", "!=", "<", ">", "<=", ">=")


def default_promote(t: ct.CType) -> ct.CType:
    """Argument promotion for variadic and unprototyped calls."""
    if isinstance(t, ct.FloatType):
        return ct.FLOAT64
    return ct.integer_promote(t)


class ExpressionEmitter:
    """Lowers pycparser expression nodes to LLVM IR."""

    def __init__(self, codegen: 'LLVMCodegen') -> None:
        self.codegen = codegen

    @property
    def builder(self) -> ir.IRBuilder:
        return self.codegen.builder

    @property
    def types(self):
        return self.codegen.types

    # ------------------------------------------------------------------
    # Entry points

    def emit(self, node: c_ast.Node) -> TypedValue:
        """Emit node as an rvalue."""
        if self.codegen.builder is None:
            self.codegen.fail("TF0007", node)
        method = getattr(self, f"_emit_{type(node).__name__}", None)
        if method is None:
            self.codegen.fail("TF0003", node, what=type(node).__name__)
        return method(node)

    def condition(self, node: c_ast.Node) -> ir.Value:
        """Emit node as an i1 truth value."""
        return self.truth(self.emit(node), node)

    def truth(self, tv: TypedValue, node: c_ast.Node) -> ir.Value:
        t = tv.ctype
        if t.is_integer:
            return self.builder.icmp_unsigned("!=", tv.value, ir.Constant(tv.value.type, 0))
        if t.is_float:
            return self.builder.fcmp_unordered("!=", tv.value, ir.Constant(tv.value.type, 0.0))
        if t.is_pointer:
            return self.builder.icmp_unsigned("!=", tv.value, ir.Constant(tv.value.type, None))
        self.codegen.fail("TF0005", node, op="condition", left=t, right=t)

    def load(self, lv: LValue) -> TypedValue:
        t = lv.ctype
        if isinstance(t, ct.ArrayType):
            zero = ir.Constant(self.types.i32, 0)
            return TypedValue(self.builder.gep(lv.address, [zero, zero]), ct.PointerType(t.element))
        if isinstance(t, ct.FunctionType):
            return TypedValue(lv.address, ct.PointerType(t))
        inst = self.builder.load(lv.address)
        inst.align = max(t.align(), 1)
        return TypedValue(inst, t)

    def store(self, value: ir.Value, lv: LValue) -> None:
        inst = self.builder.store(value, lv.address)
        inst.align = max(lv.ctype.align(), 1)

    def const(self, value, t: ct.CType) -> ir.Constant:
        if isinstance(t, ct.IntType):
            return ir.Constant(self.types.lower(t), ct.IntType(t.bits, True).wrap(int(value)))
        return ir.Constant(self.types.lower(t), float(value))

    # ------------------------------------------------------------------
    # Conversions

    def convert(self, tv: TypedValue, target: ct.CType, node: Optional[c_ast.Node] = None) -> Optional[ir.Value]:
        """Convert a value to target type (C conversion as if by assignment or cast)."""
        src = tv.ctype
        v = tv.value
        b = self.builder
        if target.is_void:
            return None
        if isinstance(target, ct.IntType) and target.boolean:
            if isinstance(src, ct.IntType) and src.boolean:
                return v
            return b.zext(self.truth(tv, node), self.types.i8)

        dst = self.types.lower(target)
        if isinstance(src, ct.IntType) and isinstance(target, ct.IntType):
            if src.bits == target.bits:
                return v
            if src.bits > target.bits:
                return b.trunc(v, dst)
            return b.sext(v, dst) if src.signed else b.zext(v, dst)
        if isinstance(src, ct.IntType) and isinstance(target, ct.FloatType):
            return b.sitofp(v, dst) if src.signed else b.uitofp(v, dst)
        if isinstance(src, ct.FloatType) and isinstance(target, ct.IntType):
            return b.fptosi(v, dst) if target.signed else b.fptoui(v, dst)
        if isinstance(src, ct.FloatType) and isinstance(target, ct.FloatType):
            if src.bits == target.bits:
                return v
            return b.fptrunc(v, dst) if src.bits > target.bits else b.fpext(v, dst)
        if src.is_pointer and target.is_pointer:
            return v if v.type == dst else b.bitcast(v, dst)
        if src.is_integer and target.is_pointer:
            if isinstance(v, ir.Constant) and v.constant == 0:
                return ir.Constant(dst, None)
            return b.inttoptr(v, dst)
        if src.is_pointer and target.is_integer:
            return b.ptrtoint(v, dst)
        if isinstance(src, ct.RecordType) and src is target:
            return v
        self.codegen.fail("TF0005", node, op="conversion", left=src, right=target)

    def _to(self, tv: TypedValue, target: ct.CType, node: c_ast.Node) -> TypedValue:
        return TypedValue(self.convert(tv, target, node), target)

    def _promote(self, tv: TypedValue, node: c_ast.Node) -> TypedValue:
        return self._to(tv, ct.integer_promote(tv.ctype), node)

    # ------------------------------------------------------------------
    # Lvalues

    def lvalue(self, node: c_ast.Node) -> LValue:
        if isinstance(node, c_ast.ID):
            sym = self.codegen.scope.lookup(node.name)
            if sym is None:
                if node.name == "__func__" and self.codegen.func is not None:
                    return self._string_lvalue(self.codegen.func_name.encode("utf-8"))
                self.codegen.fail("TF0004", node, name=node.name)
            if sym.kind not in (SymbolKind.VARIABLE, SymbolKind.FUNCTION) or sym.value is None:
                self.codegen.fail("TF0014", node)
            return LValue(sym.value, sym.ctype)

        if isinstance(node, c_ast.UnaryOp) and node.op == "*":
            p = self.emit(node.expr)
            if not p.ctype.is_pointer:
                self.codegen.fail("TF0005", node, op="unary *", left=p.ctype, right=p.ctype)
            return LValue(p.value, p.ctype.pointee)

        if isinstance(node, c_ast.ArrayRef):
            base = self.emit(node.name)
            index = self.emit(node.subscript)
            if index.ctype.is_pointer and base.ctype.is_integer:
                base, index = index, base
            if not base.ctype.is_pointer or not index.ctype.is_integer:
                self.codegen.fail("TF0005", node, op="[]", left=base.ctype, right=index.ctype)
            p = self.pointer_add(base, index, node)
            return LValue(p.value, base.ctype.pointee)

        if isinstance(node, c_ast.StructRef):
            return self._member(node)

        if isinstance(node, c_ast.CompoundLiteral):
            t = self.codegen.type_builder.resolve(node.type, self.codegen.scope)
            if isinstance(t, ct.ArrayType) and t.length is None:
                t = complete_array_type(self.codegen, t, node.init)
            slot = self.codegen.alloca(t, "compound")
            self.codegen.inits.local(LValue(slot, t), node.init)
            return LValue(slot, t)

        if isinstance(node, c_ast.Constant) and node.type == "string":
            return self._string_lvalue(string_literal_bytes(node.value))

        self.codegen.fail("TF0014", node)

    def _string_lvalue(self, data: bytes) -> LValue:
        gv = self.codegen.string_global(data)
        return LValue(gv, ct.ArrayType(ct.CHAR, len(data) + 1))

    def _member(self, node: c_ast.StructRef) -> LValue:
        if node.type == "->":
            p = self.emit(node.name)
            if not p.ctype.is_pointer:
                self.codegen.fail("TF0005", node, op="->", left=p.ctype, right=p.ctype)
            record, address = p.ctype.pointee, p.value
        else:
            base = self._addressable(node.name)
            record, address = base.ctype, base.address

        if not isinstance(record, ct.RecordType):
            self.codegen.fail("TF0008", node, field=node.field.name, type=record)
        if not record.is_complete:
            self.codegen.fail("TF0011", node, type=record.display_name)
        index = record.field_index(node.field.name)
        if index is None:
            self.codegen.fail("TF0008", node, field=node.field.name, type=record.display_name)
        field = record.fields[index]
        if record.is_union:
            ptr = self.builder.bitcast(address, self.types.pointer_to(field.ctype))
        else:
            i32 = self.types.i32
            ptr = self.builder.gep(address, [ir.Constant(i32, 0), ir.Constant(i32, index)])
        return LValue(ptr, field.ctype)

    def _addressable(self, node: c_ast.Node) -> LValue:
        """Lvalue for node, spilling rvalues (such as call results) to a temporary."""
        if isinstance(node, (c_ast.ID, c_ast.ArrayRef, c_ast.StructRef, c_ast.CompoundLiteral)):
            return self.lvalue(node)
        if isinstance(node, c_ast.UnaryOp) and node.op == "*":
            return self.lvalue(node)
        tv = self.emit(node)
        slot = self.codegen.alloca(tv.ctype, "tmp")
        lv = LValue(slot, tv.ctype)
        self.store(tv.value, lv)
        return lv

    # ------------------------------------------------------------------
    # Node emitters

    def _emit_Constant(self, node: c_ast.Constant) -> TypedValue:
        if node.type == "string":
            ptr = self.codegen.string_literal(string_literal_bytes(node.value))
            return TypedValue(ptr, ct.PointerType(ct.CHAR))
        value, t = constant_literal(node)
        return TypedValue(self.const(value, t), t)

    def _emit_ID(self, node: c_ast.ID) -> TypedValue:
        sym = self.codegen.scope.lookup(node.name)
        if sym is not None and sym.kind == SymbolKind.ENUM_CONSTANT:
            return TypedValue(self.const(sym.value, ct.INT32), ct.INT32)
        if sym is not None and sym.kind == SymbolKind.TYPEDEF:
            self.codegen.fail("TF0004", node, name=node.name)
        return self.load(self.lvalue(node))

    def _emit_ArrayRef(self, node: c_ast.ArrayRef) -> TypedValue:
        return self.load(self.lvalue(node))

    def _emit_StructRef(self, node: c_ast.StructRef) -> TypedValue:
        return self.load(self.lvalue(node))

    def _emit_CompoundLiteral(self, node: c_ast.CompoundLiteral) -> TypedValue:
        return self.load(self.lvalue(node))

    def _emit_ExprList(self, node: c_ast.ExprList) -> TypedValue:
        result = TypedValue(None, ct.VOID)
        for expr in node.exprs:
            result = self.emit(expr)
        return result

    def _emit_Cast(self, node: c_ast.Cast) -> TypedValue:
        target = self.codegen.type_builder.resolve(node.to_type, self.codegen.scope)
        tv = self.emit(node.expr)
        if target.is_void:
            return TypedValue(None, ct.VOID)
        if not (target.is_scalar or (isinstance(target, ct.RecordType) and target is tv.ctype)):
            self.codegen.fail("TF0005", node, op="cast", left=tv.ctype, right=target)
        return self._to(tv, target, node)

    def _emit_UnaryOp(self, node: c_ast.UnaryOp) -> TypedValue:
        op = node.op
        b = self.builder
        if op == "&":
            lv = self.lvalue(node.expr)
            return TypedValue(lv.address, ct.PointerType(lv.ctype))
        if op == "*":
            return self.load(self.lvalue(node))
        if op in ("sizeof", "_Alignof"):
            try:
                value, t = self.codegen.const_eval.evaluate(node)
            except NotConstant:
                self.codegen.fail("TF0003", node, what="variably sized operand")
            return TypedValue(self.const(value, t), t)
        if op in ("++", "--", "p++", "p--"):
            return self._increment(node)

        tv = self.emit(node.expr)
        if op == "!":
            inverted = b.not_(self.truth(tv, node))
            return TypedValue(b.zext(inverted, self.types.i32), ct.INT32)
        if not tv.ctype.is_arithmetic or (op == "~" and not tv.ctype.is_integer):
            self.codegen.fail("TF0005", node, op=op, left=tv.ctype, right=tv.ctype)
        tv = self._promote(tv, node)
        if op == "+":
            return tv
        if op == "-":
            value = b.fneg(tv.value) if tv.ctype.is_float else b.neg(tv.value)
            return TypedValue(value, tv.ctype)
        if op == "~":
            return TypedValue(b.not_(tv.value), tv.ctype)
        self.codegen.fail("TF0003", node, what=f"operator {op}")

    def _increment(self, node: c_ast.UnaryOp) -> TypedValue:
        lv = self.lvalue(node.expr)
        if not lv.ctype.is_scalar:
            self.codegen.fail("TF0014", node)
        old = self.load(lv)
        one = TypedValue(self.const(1, ct.INT32), ct.INT32)
        arith = "+" if node.op.endswith("++") else "-"
        new = self.binary(arith, old, one, node)
        value = self.convert(new, lv.ctype, node)
        self.store(value, lv)
        if node.op.startswith("p"):
            return old
        return TypedValue(value, lv.ctype)

    def _emit_BinaryOp(self, node: c_ast.BinaryOp) -> TypedValue:
        if node.op in ("&&", "||"):
            return self._logical(node)
        left = self.emit(node.left)
        right = self.emit(node.right)
        return self.binary(node.op, left, right, node)

    def _logical(self, node: c_ast.BinaryOp) -> TypedValue:
        b = self.builder
        i1 = self.types.i1
        lhs = self.condition(node.left)
        lhs_block = b.block
        rhs_block = self.codegen.func.append_basic_block("logic.rhs")
        end_block = self.codegen.func.append_basic_block("logic.end")
        if node.op == "&&":
            b.cbranch(lhs, rhs_block, end_block)
        else:
            b.cbranch(lhs, end_block, rhs_block)
        b.position_at_end(rhs_block)
        rhs = self.condition(node.right)
        rhs_end = b.block
        b.branch(end_block)
        b.position_at_end(end_block)
        phi = b.phi(i1)
        phi.add_incoming(ir.Constant(i1, 0 if node.op == "&&" else 1), lhs_block)
        phi.add_incoming(rhs, rhs_end)
        return TypedValue(b.zext(phi, self.types.i32), ct.INT32)

    def binary(self, op: str, left: TypedValue, right: TypedValue, node: c_ast.Node) -> TypedValue:
        """Apply a binary operator to two emitted operands."""
        lt, rt = left.ctype, right.ctype
        if op in _COMPARISONS:
            return self._compare(op, left, right, node)
        if op == "+" and lt.is_pointer and rt.is_integer:
            return self.pointer_add(left, right, node)
        if op == "+" and lt.is_integer and rt.is_pointer:
            return self.pointer_add(right, left, node)
        if op == "-" and lt.is_pointer and rt.is_integer:
            return self.pointer_add(left, right, node, negate=True)
        if op == "-" and lt.is_pointer and rt.is_pointer:
            return self._pointer_difference(left, right, node)
        if not (lt.is_arithmetic and rt.is_arithmetic):
            self.codegen.fail("TF0005", node, op=op, left=lt, right=rt)

        b = self.builder
        if op in ("<<", ">>"):
            if not (lt.is_integer and rt.is_integer):
                self.codegen.fail("TF0005", node, op=op, left=lt, right=rt)
            left = self._promote(left, node)
            amount = self.convert(right, left.ctype, node)
            if op == "<<":
                return TypedValue(b.shl(left.value, amount), left.ctype)
            shift = b.ashr if left.ctype.signed else b.lshr
            return TypedValue(shift(left.value, amount), left.ctype)

        common = ct.common_arithmetic_type(lt, rt)
        a = self.convert(left, common, node)
        c = self.convert(right, common, node)
        if common.is_float:
            ops = {"+": b.fadd, "-": b.fsub, "*": b.fmul, "/": b.fdiv}
            if op not in ops:
                self.codegen.fail("TF0005", node, op=op, left=lt, right=rt)
            return TypedValue(ops[op](a, c), common)
        signed = common.signed
        ops = {
            "+": b.add, "-": b.sub, "*": b.mul,
            "/": b.sdiv if signed else b.udiv,
            "%": b.srem if signed else b.urem,
            "&": b.and_, "|": b.or_, "^": b.xor,
        }
        if op not in ops:
            self.codegen.fail("TF0003", node, what=f"operator {op}")
        return TypedValue(ops[op](a, c), common)

    def _compare(self, op: str, left: TypedValue, right: TypedValue, node: c_ast.Node) -> TypedValue:
        b = self.builder
        lt, rt = left.ctype, right.ctype
        if lt.is_pointer or rt.is_pointer:
            if lt.is_pointer and rt.is_pointer:
                a, c = left.value, self.convert(right, lt, node)
            elif lt.is_pointer and rt.is_integer:
                a, c = left.value, self.convert(right, lt, node)
            elif rt.is_pointer and lt.is_integer:
                a, c = self.convert(left, rt, node), right.value
            else:
                self.codegen.fail("TF0005", node, op=op, left=lt, right=rt)
            result = b.icmp_unsigned(op, a, c)
        elif lt.is_arithmetic and rt.is_arithmetic:
            common = ct.common_arithmetic_type(lt, rt)
            a = self.convert(left, common, node)
            c = self.convert(right, common, node)
            if common.is_float:
                if op == "!=":
                    result = b.fcmp_unordered(op, a, c)
                else:
                    result = b.fcmp_ordered(op, a, c)
            elif common.signed:
                result = b.icmp_signed(op, a, c)
            else:
                result = b.icmp_unsigned(op, a, c)
        else:
            self.codegen.fail("TF0005", node, op=op, left=lt, right=rt)
        return TypedValue(b.zext(result, self.types.i32), ct.INT32)

    def pointer_add(self, ptr: TypedValue, index: TypedValue, node: c_ast.Node,
                    negate: bool = False) -> TypedValue:
        """Pointer plus (or minus) an integer, scaled by the pointee size."""
        b = self.builder
        pointee = ptr.ctype.pointee
        if isinstance(pointee, ct.RecordType) and not pointee.is_complete:
            self.codegen.fail("TF0011", node, type=pointee.display_name)
        offset = self.convert(index, ct.INT64, node)
        if negate:
            offset = b.neg(offset)
        if isinstance(pointee, ct.FunctionType):
            raw = b.bitcast(ptr.value, self.types.i8p)
            moved = b.gep(raw, [offset])
            return TypedValue(b.bitcast(moved, ptr.value.type), ptr.ctype)
        return TypedValue(b.gep(ptr.value, [offset]), ptr.ctype)

    def _pointer_difference(self, left: TypedValue, right: TypedValue, node: c_ast.Node) -> TypedValue:
        b = self.builder
        i64 = self.types.i64
        a = b.ptrtoint(left.value, i64)
        c = b.ptrtoint(right.value, i64)
        diff = b.sub(a, c)
        size = ct.pointee_size(left.ctype)
        if size != 1:
            diff = b.sdiv(diff, ir.Constant(i64, size))
        return TypedValue(diff, ct.PTRDIFF_T)

    def _emit_Assignment(self, node: c_ast.Assignment) -> TypedValue:
        lv = self.lvalue(node.lvalue)
        if isinstance(lv.ctype, (ct.ArrayType, ct.FunctionType)):
            self.codegen.fail("TF0014", node)
        right = self.emit(node.rvalue)
        if node.op == "=":
            if isinstance(lv.ctype, ct.RecordType) and right.ctype is not lv.ctype:
                self.codegen.fail("TF0005", node, op="=", left=lv.ctype, right=right.ctype)
            value = self.convert(right, lv.ctype, node)
        else:
            current = self.load(lv)
            result = self.binary(node.op[:-1], current, right, node)
            value = self.convert(result, lv.ctype, node)
        self.store(value, lv)
        return TypedValue(value, lv.ctype)

    def _emit_TernaryOp(self, node: c_ast.TernaryOp) -> TypedValue:
        b = self.builder
        func = self.codegen.func
        cond = self.condition(node.cond)
        then_block = func.append_basic_block("cond.true")
        else_block = func.append_basic_block("cond.false")
        end_block = func.append_basic_block("cond.end")
        b.cbranch(cond, then_block, else_block)

        b.position_at_end(then_block)
        a = self.emit(node.iftrue)
        then_end = b.block
        b.position_at_end(else_block)
        c = self.emit(node.iffalse)
        else_end = b.block

        result_type = self._conditional_type(a, c, node)
        values = []
        for tv, block in ((a, then_end), (c, else_end)):
            b.position_at_end(block)
            values.append(self.convert(tv, result_type, node))
            b.branch(end_block)

        b.position_at_end(end_block)
        if result_type.is_void:
            return TypedValue(None, ct.VOID)
        phi = b.phi(self.types.lower(result_type))
        phi.add_incoming(values[0], then_end)
        phi.add_incoming(values[1], else_end)
        return TypedValue(phi, result_type)

    def _conditional_type(self, a: TypedValue, c: TypedValue, node: c_ast.Node) -> ct.CType:
        at, bt = a.ctype, c.ctype
        if at.is_arithmetic and bt.is_arithmetic:
            return ct.common_arithmetic_type(at, bt)
        if at.is_void or bt.is_void:
            return ct.VOID
        if at.is_pointer:
            return at
        if bt.is_pointer:
            return bt
        if at is bt:
            return at
        self.codegen.fail("TF0005", node, op="?:", left=at, right=bt)

    def _emit_FuncCall(self, node: c_ast.FuncCall) -> TypedValue:
        callee = node.name
        args = node.args.exprs if node.args is not None else []
        if isinstance(callee, c_ast.ID) and self.codegen.scope.lookup(callee.name) is None:
            entry = self.codegen.declare_implicit(callee.name, node)
            fn = TypedValue(entry.value, ct.PointerType(entry.ctype))
        else:
            fn = self.emit(callee)
        if not (fn.ctype.is_pointer and isinstance(fn.ctype.pointee, ct.FunctionType)):
            self.codegen.fail("TF0012", node, type=fn.ctype)
        ftype = fn.ctype.pointee

        values = []
        for i, arg in enumerate(args):
            tv = self.emit(arg)
            if i < len(ftype.params):
                values.append(self.convert(tv, ftype.params[i], arg))
            elif ftype.variadic or not ftype.prototyped:
                if isinstance(tv.ctype, ct.RecordType):
                    values.append(tv.value)
                else:
                    values.append(self.convert(tv, default_promote(tv.ctype), arg))
        for param in ftype.params[len(args):]:
            values.append(self.types.zero(param))

        target = fn.value
        expected = self.types.function(ftype)
        if target.type != expected.as_pointer():
            target = self.builder.bitcast(target, expected.as_pointer())
        call = self.builder.call(target, values)
        if ftype.ret.is_void:
            return TypedValue(None, ct.VOID)
        return TypedValue(call, ftype.ret)

    def _emit_InitList(self, node: c_ast.InitList) -> TypedValue:
        self.codegen.fail("TF0003", node, what="initializer list outside a declaration")

    # ------------------------------------------------------------------
    # Static typing (no code is emitted)

    def type_of(self, node: c_ast.Node) -> ct.CType:
        """C type of an expression, as used by sizeof."""
        scope = self.codegen.scope
        if isinstance(node, c_ast.Constant):
            if node.type == "string":
                return ct.ArrayType(ct.CHAR, len(string_literal_bytes(node.value)) + 1)
            return constant_literal(node)[1]
        if isinstance(node, c_ast.ID):
            sym = scope.lookup(node.name)
            if sym is None:
                if node.name == "__func__" and self.codegen.func is not None:
                    return ct.ArrayType(ct.CHAR, len(self.codegen.func_name) + 1)
                self.codegen.fail("TF0004", node, name=node.name)
            return ct.INT32 if sym.kind == SymbolKind.ENUM_CONSTANT else sym.ctype
        if isinstance(node, c_ast.UnaryOp):
            op = node.op
            if op in ("sizeof", "_Alignof"):
                return ct.SIZE_T
            if op == "&":
                return ct.PointerType(self.type_of(node.expr))
            if op == "*":
                t = ct.decay(self.type_of(node.expr))
                if not t.is_pointer:
                    self.codegen.fail("TF0005", node, op="unary *", left=t, right=t)
                return t.pointee
            if op == "!":
                return ct.INT32
            if op in ("++", "--", "p++", "p--"):
                return self.type_of(node.expr)
            return ct.integer_promote(self.type_of(node.expr))
        if isinstance(node, c_ast.BinaryOp):
            op = node.op
            if op in _COMPARISONS or op in ("&&", "||"):
                return ct.INT32
            lt = ct.decay(self.type_of(node.left))
            rt = ct.decay(self.type_of(node.right))
            if op in ("+", "-") and lt.is_pointer and rt.is_pointer:
                return ct.PTRDIFF_T
            if lt.is_pointer:
                return lt
            if rt.is_pointer:
                return rt
            if op in ("<<", ">>"):
                return ct.integer_promote(lt)
            if lt.is_arithmetic and rt.is_arithmetic:
                return ct.common_arithmetic_type(lt, rt)
            self.codegen.fail("TF0005", node, op=op, left=lt, right=rt)
        if isinstance(node, c_ast.Assignment):
            return self.type_of(node.lvalue)
        if isinstance(node, c_ast.TernaryOp):
            at = ct.decay(self.type_of(node.iftrue))
            bt = ct.decay(self.type_of(node.iffalse))
            if at.is_arithmetic and bt.is_arithmetic:
                return ct.common_arithmetic_type(at, bt)
            return bt if at.is_integer else at
        if isinstance(node, c_ast.Cast):
            return self.codegen.type_builder.resolve(node.to_type, scope)
        if isinstance(node, c_ast.FuncCall):
            if isinstance(node.name, c_ast.ID) and scope.lookup(node.name.name) is None:
                return ct.INT32
            t = ct.decay(self.type_of(node.name))
            if not (t.is_pointer and isinstance(t.pointee, ct.FunctionType)):
                self.codegen.fail("TF0012", node, type=t)
            return t.pointee.ret
        if isinstance(node, c_ast.ArrayRef):
            base = ct.decay(self.type_of(node.name))
            if not base.is_pointer:
                base = ct.decay(self.type_of(node.subscript))
            if not base.is_pointer:
                self.codegen.fail("TF0005", node, op="[]", left=base, right=base)
            return base.pointee
        if isinstance(node, c_ast.StructRef):
            base = self.type_of(node.name)
            if node.type == "->":
                base = ct.decay(base)
                base = base.pointee if base.is_pointer else base
            if not isinstance(base, ct.RecordType) or not base.is_complete:
                self.codegen.fail("TF0008", node, field=node.field.name, type=base)
            index = base.field_index(node.field.name)
            if index is None:
                self.codegen.fail("TF0008", node, field=node.field.name, type=base.display_name)
            return base.fields[index].ctype
        if isinstance(node, c_ast.ExprList):
            return self.type_of(node.exprs[-1])
        if isinstance(node, c_ast.CompoundLiteral):
            t = self.codegen.type_builder.resolve(node.type, scope)
            if isinstance(t, ct.ArrayType) and t.length is None:
                t = complete_array_type(self.codegen, t, node.init)
            return t
        self.codegen.fail("TF0003", node, what=type(node).__name__)
