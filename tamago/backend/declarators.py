"""Resolution of pycparser declarators into C types."""
from __future__ import annotations
from typing import TYPE_CHECKING, Optional

from pycparser import c_ast

from tamago.backend.scope import Scope, Symbol, SymbolKind
from tamago.frontend import ctypes_model as ct

if TYPE_CHECKING:
    from tamago.backend.codegen_llvm import LLVMCodegen


class TypeBuilder:
    """Turns declarator chains into `CType`s, defining tags and enumerators on the way."""

    def __init__(self, codegen: 'LLVMCodegen') -> None:
        self.codegen = codegen

    def resolve(self, node: c_ast.Node, scope: Scope) -> ct.CType:
        if isinstance(node, (c_ast.TypeDecl, c_ast.Typename)):
            return self.resolve(node.type, scope)
        if isinstance(node, c_ast.IdentifierType):
            return self._named(node, scope)
        if isinstance(node, c_ast.PtrDecl):
            return ct.PointerType(self.resolve(node.type, scope))
        if isinstance(node, c_ast.ArrayDecl):
            element = self.resolve(node.type, scope)
            if not element.is_complete:
                self.codegen.fail("TF0011", node, type=element)
            length = None
            if node.dim is not None:
                length = self.codegen.const_eval.integer(node.dim, scope)
            return ct.ArrayType(element, length)
        if isinstance(node, c_ast.FuncDecl):
            ftype, _ = self.function(node, scope)
            return ftype
        if isinstance(node, (c_ast.Struct, c_ast.Union)):
            return self.record(node, scope)
        if isinstance(node, c_ast.Enum):
            return self.enum(node, scope)
        self.codegen.fail("TF0003", node, what=type(node).__name__)

    def _named(self, node: c_ast.IdentifierType, scope: Scope) -> ct.CType:
        names = [n for n in node.names if n != "_Complex"]
        if len(names) == 1 and not ct.is_base_specifier(names[0]):
            sym = scope.lookup(names[0])
            if sym is None or sym.kind != SymbolKind.TYPEDEF:
                self.codegen.fail("TF0013", node, name=names[0])
            return sym.ctype
        t = ct.type_from_specifiers(names)
        if t is None:
            self.codegen.fail("TF0003", node, what=" ".join(node.names))
        return t

    def function(self, node: c_ast.FuncDecl, scope: Scope,
                 param_decls: Optional[list[c_ast.Decl]] = None) -> tuple[ct.FunctionType, list[Optional[str]]]:
        """Function type plus parameter names.

        `param_decls` are the declarations that follow an old-style
        identifier list in a function definition.
        """
        ret = self.resolve(node.type, scope)
        if node.args is None:
            return ct.FunctionType(ret, (), variadic=False, prototyped=False), []

        params: list[ct.CType] = []
        names: list[Optional[str]] = []
        variadic = False
        old_style = {d.name: d for d in (param_decls or [])}
        prototyped = True

        for p in node.args.params:
            if isinstance(p, c_ast.EllipsisParam):
                variadic = True
                continue
            if isinstance(p, c_ast.ID):
                prototyped = False
                decl = old_style.get(p.name)
                t = self.resolve(decl.type, scope) if decl is not None else ct.INT32
                params.append(self._adjust_param(t))
                names.append(p.name)
                continue
            t = self.resolve(p.type, scope)
            if t.is_void and len(node.args.params) == 1:
                break
            params.append(self._adjust_param(t))
            names.append(p.name if isinstance(p, c_ast.Decl) else None)

        return ct.FunctionType(ret, tuple(params), variadic=variadic, prototyped=prototyped), names

    @staticmethod
    def _adjust_param(t: ct.CType) -> ct.CType:
        return ct.decay(t)

    def record(self, node: c_ast.Struct | c_ast.Union, scope: Scope) -> ct.RecordType:
        is_union = isinstance(node, c_ast.Union)
        rec: Optional[ct.RecordType] = None

        if node.decls is None:
            if node.name:
                found = scope.lookup_tag(node.name)
                if isinstance(found, ct.RecordType):
                    return found
            rec = ct.RecordType(node.name, is_union)
            if node.name:
                scope.define_tag(node.name, rec)
            return rec

        if node.name:
            found = scope.tags.get(node.name)
            if isinstance(found, ct.RecordType) and not found.is_complete and found.is_union == is_union:
                rec = found
            elif found is not None:
                self.codegen.fail("TF0006", node, name=f"{'union' if is_union else 'struct'} {node.name}")
        if rec is None:
            rec = ct.RecordType(node.name, is_union)
            if node.name:
                scope.define_tag(node.name, rec)

        members: list[tuple[Optional[str], ct.CType]] = []
        for decl in node.decls:
            if decl.bitsize is not None:
                self.codegen.fail("TF0003", decl, what="bit-field")
            if decl.name is None:
                self.codegen.fail("TF0003", decl, what="anonymous member")
            t = self.resolve(decl.type, scope)
            if not t.is_complete and not (isinstance(t, ct.ArrayType) and decl is node.decls[-1]):
                self.codegen.fail("TF0011", decl, type=t)
            members.append((decl.name, t))
        rec.complete(members)
        return rec

    def enum(self, node: c_ast.Enum, scope: Scope) -> ct.CType:
        if node.values is not None:
            value = -1
            for e in node.values.enumerators:
                if e.value is not None:
                    value = self.codegen.const_eval.integer(e.value, scope)
                else:
                    value += 1
                scope.define(Symbol(e.name, SymbolKind.ENUM_CONSTANT, ct.INT32, value))
            if node.name:
                scope.define_tag(node.name, ct.INT32)
        return ct.INT32
