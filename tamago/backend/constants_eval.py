"""
Literal decoding and integer constant expression evaluation.

Constant folding here is used wherever C requires a constant: array
dimensions, enumerator values, case labels and arithmetic initializers of
objects with static storage. Address constants are handled by the
initializer lowering, not here.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Optional, Union

from pycparser import c_ast

from tamago.backend.scope import Scope, SymbolKind
from tamago.frontend import ctypes_model as ct

if TYPE_CHECKING:
    from tamago.backend.codegen_llvm import LLVMCodegen

Number = Union[int, float]

_SIMPLE_ESCAPES = {
    "n": 10, "t": 9, "r": 13, "a": 7, "b": 8, "f": 12, "v": 11,
    "\\": 92, "'": 39, '"': 34, "?": 63, "e": 27,
}


class NotConstant(Exception):
    """The expression cannot be folded at compile time."""

    def __init__(self, node: c_ast.Node):
        self.node = node
        super().__init__(type(node).__name__)


def decode_escapes(body: str) -> bytes:
    """Decode the body of a character or string literal into bytes."""
    out = bytearray()
    i = 0
    n = len(body)
    while i < n:
        ch = body[i]
        if ch != "\\":
            out.extend(ch.encode("utf-8"))
            i += 1
            continue
        i += 1
        if i >= n:
            out.append(92)
            break
        esc = body[i]
        if esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
            i += 1
        elif esc == "x":
            j = i + 1
            while j < n and body[j] in "0123456789abcdefABCDEF":
                j += 1
            out.append(int(body[i + 1:j] or "0", 16) & 0xFF)
            i = j
        elif esc in "01234567":
            j = i
            while j < n and j < i + 3 and body[j] in "01234567":
                j += 1
            out.append(int(body[i:j], 8) & 0xFF)
            i = j
        else:
            out.extend(esc.encode("utf-8"))
            i += 1
    return bytes(out)


def _strip_prefix(text: str) -> str:
    for prefix in ("u8", "L", "u", "U"):
        if text.startswith(prefix) and len(text) > len(prefix) and text[len(prefix)] in "'\"":
            return text[len(prefix):]
    return text


def string_literal_bytes(text: str) -> bytes:
    """Bytes of a (possibly prefixed) string literal, without the terminator."""
    text = _strip_prefix(text)
    return decode_escapes(text[1:-1])


def char_literal_value(text: str) -> int:
    text = _strip_prefix(text)
    data = decode_escapes(text[1:-1])
    if not data:
        return 0
    return ct.INT8.wrap(data[0])


def int_literal(text: str) -> tuple[int, ct.IntType]:
    """Value and type of an integer literal."""
    body = text.rstrip("uUlL")
    suffix = text[len(body):].lower()
    if body.lower().startswith("0x"):
        value = int(body[2:], 16)
        radix = 16
    elif body.lower().startswith("0b"):
        value = int(body[2:], 2)
        radix = 2
    elif len(body) > 1 and body.startswith("0"):
        value = int(body[1:], 8)
        radix = 8
    else:
        value = int(body)
        radix = 10

    unsigned = "u" in suffix
    long = "l" in suffix
    if not long:
        if not unsigned and value <= ct.INT32.max_value:
            return value, ct.INT32
        if (unsigned or radix != 10) and value <= ct.UINT32.max_value:
            return value, ct.UINT32
    if not unsigned and value <= ct.INT64.max_value:
        return value, ct.INT64
    return ct.UINT64.wrap(value), ct.UINT64


def float_literal(text: str) -> tuple[float, ct.FloatType]:
    body = text.rstrip("fFlL")
    suffix = text[len(body):].lower()
    if body.lower().startswith("0x"):
        value = float.fromhex(body)
    else:
        value = float(body)
    return value, ct.FLOAT32 if suffix == "f" else ct.FLOAT64


def constant_literal(node: c_ast.Constant) -> tuple[Number, ct.CType]:
    """Value and type of a non-string pycparser Constant."""
    kind = node.type
    if "char" in kind:
        return char_literal_value(node.value), ct.INT32
    if "float" in kind or "double" in kind:
        return float_literal(node.value)
    return int_literal(node.value)


def _c_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def convert_number(value: Number, t: ct.CType) -> Number:
    """Convert a folded value to arithmetic type t."""
    if isinstance(t, ct.IntType):
        if isinstance(value, float):
            if t.boolean:
                return 1 if value else 0
            value = int(value)
        return t.wrap(value)
    if isinstance(t, ct.FloatType):
        return float(value)
    return value


class ConstEval:
    """Folds constant expressions over the pycparser AST."""

    def __init__(self, codegen: Optional['LLVMCodegen']) -> None:
        # without a code generator only literals and operators fold
        self.codegen = codegen

    def integer(self, node: c_ast.Node, scope: Optional[Scope] = None) -> int:
        """Evaluate an integer constant expression or report TF0007."""
        try:
            value, t = self.evaluate(node, scope)
        except NotConstant:
            self.codegen.fail("TF0007", node)
        if not isinstance(value, int):
            self.codegen.fail("TF0007", node)
        return value

    def evaluate(self, node: c_ast.Node, scope: Optional[Scope] = None) -> tuple[Number, ct.CType]:
        scope = scope or self.codegen.scope
        if isinstance(node, c_ast.Constant):
            if node.type == "string":
                raise NotConstant(node)
            return constant_literal(node)

        if isinstance(node, c_ast.ID):
            sym = scope.lookup(node.name)
            if sym is not None and sym.kind == SymbolKind.ENUM_CONSTANT:
                return sym.value, ct.INT32
            raise NotConstant(node)

        if isinstance(node, c_ast.UnaryOp):
            return self._unary(node, scope)

        if isinstance(node, c_ast.BinaryOp):
            return self._binary(node, scope)

        if isinstance(node, c_ast.TernaryOp):
            cond, _ = self.evaluate(node.cond, scope)
            branch = node.iftrue if cond else node.iffalse
            a, at = self.evaluate(node.iftrue, scope)
            b, bt = self.evaluate(node.iffalse, scope)
            if not (at.is_arithmetic and bt.is_arithmetic):
                raise NotConstant(node)
            common = ct.common_arithmetic_type(at, bt)
            return convert_number(a if branch is node.iftrue else b, common), common

        if isinstance(node, c_ast.Cast):
            if self.codegen is None:
                raise NotConstant(node)
            target = self.codegen.type_builder.resolve(node.to_type, scope)
            value, _ = self.evaluate(node.expr, scope)
            if not target.is_arithmetic:
                raise NotConstant(node)
            return convert_number(value, target), target

        raise NotConstant(node)

    def _unary(self, node: c_ast.UnaryOp, scope: Scope) -> tuple[Number, ct.CType]:
        op = node.op
        if op in ("sizeof", "_Alignof"):
            if self.codegen is None:
                raise NotConstant(node)
            if isinstance(node.expr, c_ast.Typename):
                t = self.codegen.type_builder.resolve(node.expr, scope)
            else:
                t = self.codegen.exprs.type_of(node.expr)
            if isinstance(t, ct.FunctionType) or (not t.is_complete and not t.is_void):
                self.codegen.fail("TF0011", node, type=t)
            return (t.size() if op == "sizeof" else t.align()), ct.SIZE_T

        value, t = self.evaluate(node.expr, scope)
        if not t.is_arithmetic:
            raise NotConstant(node)
        if op == "!":
            return (0 if value else 1), ct.INT32
        pt = ct.integer_promote(t)
        if op == "+":
            return convert_number(value, pt), pt
        if op == "-":
            return convert_number(-value, pt), pt
        if op == "~" and isinstance(value, int):
            return convert_number(~value, pt), pt
        raise NotConstant(node)

    def _binary(self, node: c_ast.BinaryOp, scope: Scope) -> tuple[Number, ct.CType]:
        op = node.op
        a, at = self.evaluate(node.left, scope)
        if op == "&&" and not a:
            return 0, ct.INT32
        if op == "||" and a:
            return 1, ct.INT32
        b, bt = self.evaluate(node.right, scope)
        if op in ("&&", "||"):
            return (1 if b else 0), ct.INT32
        if not (at.is_arithmetic and bt.is_arithmetic):
            raise NotConstant(node)

        if op in ("<<", ">>"):
            if not (isinstance(a, int) and isinstance(b, int)) or b < 0:
                raise NotConstant(node)
            lt = ct.integer_promote(at)
            if op == "<<":
                return lt.wrap(a << b), lt
            return lt.wrap(a >> b), lt

        common = ct.common_arithmetic_type(at, bt)
        a = convert_number(a, common)
        b = convert_number(b, common)

        if op in ("==", "!=", "<", ">", "<=", ">="):
            result = {
                "==": a == b, "!=": a != b, "<": a < b,
                ">": a > b, "<=": a <= b, ">=": a >= b,
            }[op]
            return (1 if result else 0), ct.INT32

        if op == "+":
            value = a + b
        elif op == "-":
            value = a - b
        elif op == "*":
            value = a * b
        elif op in ("/", "%"):
            if b == 0:
                raise NotConstant(node)
            if isinstance(a, float) or isinstance(b, float):
                if op == "%":
                    raise NotConstant(node)
                value = a / b
            elif op == "/":
                value = _c_div(a, b)
            else:
                value = a - b * _c_div(a, b)
        elif op in ("&", "|", "^") and isinstance(a, int) and isinstance(b, int):
            value = {"&": a & b, "|": a | b, "^": a ^ b}[op]
        else:
            raise NotConstant(node)
        return convert_number(value, common), common
