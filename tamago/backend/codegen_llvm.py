"""
LLVM backend orchestrator for the C front-end.

Lowers one parsed translation unit to an `ObjectUnit`: verified bitcode plus
the table of entities the unit defines.

Compilation runs in two passes over the external declarations:

1. Declaration pass: typedefs, tags, enumerators and the types of every
   file-scope function and object are resolved in source order. A function
   definition's type replaces the types of earlier prototypes, so calls
   through an old-style declaration still see the real parameter list.
2. Emission pass: global initializers and function bodies are lowered.

Entities with internal linkage are emitted under ``name.<unit tag>`` so that
merging units never makes two of them collide.

API:
    from tamago.backend.codegen_llvm import compile_translation_unit
    unit = compile_translation_unit(tu, triple)
"""
from __future__ import annotations
import hashlib
import os
from dataclasses import dataclass, field
from typing import NoReturn, Optional

from llvmlite import ir, binding as llvm
from pycparser import c_ast

from tamago.backend.constants_eval import ConstEval
from tamago.backend.declarators import TypeBuilder
from tamago.backend.expressions import ExpressionEmitter
from tamago.backend.initializers import InitializerLowering, complete_array_type
from tamago.backend.llvm_types import LLVMTypes
from tamago.backend.objects import Declaration, DeclKind, Linkage, ObjectUnit
from tamago.backend.scope import Scope, Symbol, SymbolKind
from tamago.backend.statements import emit_compound
from tamago.frontend import ctypes_model as ct
from tamago.frontend.parser import TranslationUnit
from tamago.internals import errors as er
from tamago.internals.errors import FrontendError, raise_internal_error
from tamago.internals.report import Reporter, file_of, span_of


class CodegenAbort(Exception):
    """A diagnostic was recorded; abandon the current external declaration."""


def unit_tag(sources: tuple[str, ...] | list[str]) -> str:
    """Short stable tag derived from the absolute source paths of a unit."""
    joined = "\0".join(os.path.abspath(s) for s in sources)
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()[:8]


@dataclass
class GlobalEntry:
    """A file-scope function or object."""
    name: str
    ctype: ct.CType
    internal: bool
    defined: bool = False       # has a body or an initializer
    tentative: bool = False     # declared without initializer or extern
    value: Optional[ir.GlobalValue] = None
    init: Optional[c_ast.Node] = None
    node: Optional[c_ast.Node] = None     # first declaration
    symbols: list[Symbol] = field(default_factory=list)

    @property
    def is_function(self) -> bool:
        return isinstance(self.ctype, ct.FunctionType)

    def symbol_name(self, tag: str) -> str:
        return f"{self.name}.{tag}" if self.internal else self.name


class LLVMCodegen:
    """Main LLVM backend orchestrator for one C translation unit."""

    def __init__(self, unit_name: str, sources: tuple[str, ...], triple: str,
                 extras: tuple[str, ...] = ()) -> None:
        self.unit_name = unit_name
        self.tag = unit_tag(sources or (unit_name,))
        self.context = ir.Context()
        self.module: ir.Module = ir.Module(name=unit_name, context=self.context)
        self.module.triple = triple
        self.reporter = Reporter(filename=unit_name)
        self.implicit_functions = "ImplicitFuncDef" in extras

        self.types = LLVMTypes(self)
        self.type_builder = TypeBuilder(self)
        self.const_eval = ConstEval(self)
        self.exprs = ExpressionEmitter(self)
        self.inits = InitializerLowering(self)

        self.file_scope = Scope()
        self.scope = self.file_scope
        self.globals: dict[str, GlobalEntry] = {}
        self._signatures: dict[int, list[Optional[str]]] = {}
        self._strings: dict[bytes, ir.GlobalVariable] = {}
        self._local_statics = 0

        # Per-function compilation state
        self.builder: Optional[ir.IRBuilder] = None
        self.alloca_builder: Optional[ir.IRBuilder] = None
        self.func: Optional[ir.Function] = None
        self.func_name: str = ""
        self.func_type: Optional[ct.FunctionType] = None

        # Targets for break/continue statements
        self.break_stack: list[ir.Block] = []
        self.continue_stack: list[ir.Block] = []
        self.switch_stack: list = []
        self.labels: dict[str, ir.Block] = {}
        self.placed_labels: set[str] = set()
        self.pending_gotos: list[tuple[str, c_ast.Node]] = []

    # ------------------------------------------------------------------
    # Diagnostics

    def report(self, code: str, node: Optional[c_ast.Node], **kwargs) -> None:
        coord = getattr(node, "coord", None)
        er.emit(self.reporter, er.ERR[code], span_of(coord), filename=file_of(coord), **kwargs)

    def fail(self, code: str, node: Optional[c_ast.Node], **kwargs) -> NoReturn:
        """Record a diagnostic for node and abandon the current declaration."""
        self.report(code, node, **kwargs)
        raise CodegenAbort(code)

    # ------------------------------------------------------------------
    # Driver

    def compile(self, ast: c_ast.FileAST) -> ObjectUnit:
        """Lower a FileAST and return the verified object unit.

        Raises:
            FrontendError: when any diagnostic was recorded.
        """
        for ext in ast.ext:
            try:
                self._declare_external(ext)
            except CodegenAbort:
                pass

        self._materialize()

        for ext in ast.ext:
            try:
                self._emit_external(ext)
            except CodegenAbort:
                self._reset_function_state()

        if self.reporter.has_errors:
            raise FrontendError(self.reporter)

        self._finish_globals()
        return self._build_object()

    def _build_object(self) -> ObjectUnit:
        try:
            module = llvm.parse_assembly(str(self.module))
            module.verify()
        except RuntimeError as e:
            raise_internal_error("IE0004", reason=str(e).strip())
        return ObjectUnit(self.unit_name, tuple(self.declarations()), module.as_bitcode())

    def declarations(self) -> list[Declaration]:
        """Declaration table entries for everything this unit defines."""
        decls = []
        for entry in self.globals.values():
            if not (entry.defined or entry.tentative) or entry.value is None:
                continue
            decls.append(Declaration(
                name=entry.name,
                symbol=entry.symbol_name(self.tag),
                kind=DeclKind.FUNCTION if entry.is_function else DeclKind.DATA,
                linkage=Linkage.INTERNAL if entry.internal else Linkage.EXTERNAL,
                type=entry.ctype.descriptor(),
                tentative=entry.tentative and not entry.defined and not entry.internal,
            ))
        return decls

    # ------------------------------------------------------------------
    # Pass 1: declarations

    def _declare_external(self, node: c_ast.Node) -> None:
        if isinstance(node, c_ast.FuncDef):
            decl = node.decl
            if not isinstance(decl.type, c_ast.FuncDecl):
                raise_internal_error("IE0002", message="function definition without a function declarator")
            ftype, names = self.type_builder.function(decl.type, self.file_scope, node.param_decls)
            if not ftype.ret.is_void and not ftype.ret.is_complete:
                self.fail("TF0011", decl, type=ftype.ret)
            entry = self.declare_global(decl.name, ftype, decl.storage, decl)
            if entry.defined:
                self.fail("TF0006", decl, name=decl.name)
            entry.defined = True
            # only the first body of a name is lowered
            self._signatures[id(node)] = names
            return
        if isinstance(node, (c_ast.Decl, c_ast.Typedef)):
            self.declare(node, self.file_scope, file_scope=True)
            return
        if isinstance(node, c_ast.Pragma):
            return
        self.fail("TF0003", node, what=type(node).__name__)

    def declare(self, decl: c_ast.Decl | c_ast.Typedef, scope: Scope,
                file_scope: bool = False) -> tuple[Optional[ct.CType], Optional[GlobalEntry]]:
        """Resolve a declaration and enter it into scope.

        Returns the resolved type (None for typedefs) and the global entry
        for file-scope, function and `extern` declarations. Block-scope
        objects are left to the caller.
        """
        t = self.type_builder.resolve(decl.type, scope)
        if isinstance(decl, c_ast.Typedef) or "typedef" in decl.storage:
            scope.define(Symbol(decl.name, SymbolKind.TYPEDEF, t))
            return None, None
        if decl.name is None:
            return t, None

        if isinstance(t, ct.FunctionType):
            return t, self.declare_global(decl.name, t, decl.storage, decl, scope)

        if file_scope or "extern" in decl.storage:
            if isinstance(t, ct.ArrayType) and t.length is None and decl.init is not None:
                t = complete_array_type(self, t, decl.init)
            entry = self.declare_global(decl.name, t, decl.storage, decl, scope)
            if file_scope:
                if decl.init is not None:
                    if entry.defined:
                        self.fail("TF0006", decl, name=decl.name)
                    entry.defined = True
                    entry.init = decl.init
                elif "extern" not in decl.storage:
                    entry.tentative = True
            return entry.ctype, entry
        return t, None

    def declare_global(self, name: str, t: ct.CType, storage: list[str], node: c_ast.Node,
                       scope: Optional[Scope] = None) -> GlobalEntry:
        """Create or update the file-scope entry for name."""
        entry = self.globals.get(name)
        kind = SymbolKind.FUNCTION if isinstance(t, ct.FunctionType) else SymbolKind.VARIABLE
        if entry is None:
            entry = GlobalEntry(name, t, internal="static" in storage, node=node)
            self.globals[name] = entry
            sym = self.file_scope.define(Symbol(name, kind, t))
            entry.symbols.append(sym)
        else:
            if entry.is_function != isinstance(t, ct.FunctionType):
                self.fail("TF0006", node, name=name)
            if "static" in storage:
                entry.internal = True
            entry.ctype = self._merge_types(entry, t)
            for sym in entry.symbols:
                sym.ctype = entry.ctype
            if entry.value is not None and isinstance(t, ct.FunctionType):
                self._check_redeclared_value(entry, node)

        if scope is not None and scope is not self.file_scope:
            sym = scope.define(Symbol(name, kind, entry.ctype, entry.value))
            entry.symbols.append(sym)
            if entry.value is None and self.func is not None:
                self._materialize_entry(entry)
        return entry

    def _merge_types(self, entry: GlobalEntry, new: ct.CType) -> ct.CType:
        old = entry.ctype
        if isinstance(new, ct.FunctionType) and isinstance(old, ct.FunctionType):
            if not new.prototyped and old.prototyped:
                return old
            return new
        if isinstance(old, ct.ArrayType) and old.length is not None:
            if isinstance(new, ct.ArrayType) and new.length is None:
                return old
        return new

    def _check_redeclared_value(self, entry: GlobalEntry, node: c_ast.Node) -> None:
        if entry.value is not None and entry.value.function_type != self.types.lower(entry.ctype):
            self.fail("TF0006", node, name=entry.name)

    # ------------------------------------------------------------------
    # IR values for file-scope entities

    def _materialize(self) -> None:
        for entry in self.globals.values():
            self._materialize_entry(entry)

    def _materialize_entry(self, entry: GlobalEntry) -> None:
        symbol = entry.symbol_name(self.tag)
        if entry.is_function:
            fn = ir.Function(self.module, self.types.lower(entry.ctype), name=symbol)
            if entry.internal and entry.defined:
                fn.linkage = "internal"
            entry.value = fn
        else:
            t = entry.ctype
            if isinstance(t, ct.ArrayType) and t.length is None and (entry.defined or entry.tentative):
                t = ct.ArrayType(t.element, 1)
                entry.ctype = t
            if (entry.defined or entry.tentative) and not t.is_complete:
                self.report("TF0011", entry.node, type=t)
                return
            gv = ir.GlobalVariable(self.module, self.types.lower(t), name=symbol)
            if entry.defined or entry.tentative:
                gv.align = max(t.align(), 1)
                if entry.internal:
                    gv.linkage = "internal"
                elif not entry.defined:
                    gv.linkage = "common"
            entry.value = gv
        for sym in entry.symbols:
            sym.value = entry.value
            sym.ctype = entry.ctype

    def declare_implicit(self, name: str, node: c_ast.Node) -> GlobalEntry:
        """Declare `int name()` for a call to an undeclared function."""
        if not self.implicit_functions:
            self.fail("TF0016", node, name=name)
        entry = self.declare_global(name, ct.FunctionType(ct.INT32, (), prototyped=False), [], node)
        if entry.value is None:
            self._materialize_entry(entry)
        return entry

    def _finish_globals(self) -> None:
        for entry in self.globals.values():
            gv = entry.value
            if entry.is_function or gv is None:
                continue
            if entry.defined or entry.tentative:
                if gv.initializer is None:
                    gv.initializer = self.types.zero(entry.ctype)

    def string_global(self, data: bytes) -> ir.GlobalVariable:
        """The constant char array holding data and its terminator (shared per unit)."""
        gv = self._strings.get(data)
        if gv is None:
            payload = bytearray(data) + b"\0"
            arr = ir.ArrayType(self.types.i8, len(payload))
            gv = ir.GlobalVariable(self.module, arr, name=f".str.{self.tag}.{len(self._strings)}")
            gv.linkage = "internal"
            gv.global_constant = True
            gv.unnamed_addr = True
            gv.initializer = ir.Constant(arr, payload)
            self._strings[data] = gv
        return gv

    def string_literal(self, data: bytes) -> ir.Value:
        """Pointer to the first byte of a NUL-terminated constant string."""
        zero = ir.Constant(self.types.i32, 0)
        return self.string_global(data).gep([zero, zero])

    def local_static(self, name: str, t: ct.CType) -> ir.GlobalVariable:
        """Internal global backing a block-scope static object."""
        self._local_statics += 1
        symbol = f"{self.func_name}.{name}.{self._local_statics}.{self.tag}"
        gv = ir.GlobalVariable(self.module, self.types.lower(t), name=symbol)
        gv.linkage = "internal"
        gv.align = max(t.align(), 1)
        return gv

    # ------------------------------------------------------------------
    # Pass 2: emission

    def _emit_external(self, node: c_ast.Node) -> None:
        if isinstance(node, c_ast.FuncDef):
            self._emit_function(node)
            return
        if isinstance(node, c_ast.Decl) and node.init is not None and node.name is not None:
            entry = self.globals.get(node.name)
            if entry is None or entry.init is not node.init or entry.value is None:
                return
            entry.value.initializer = self.inits.constant(entry.ctype, node.init)

    def _emit_function(self, node: c_ast.FuncDef) -> None:
        name = node.decl.name
        entry = self.globals[name]
        fn = entry.value
        if fn is None or id(node) not in self._signatures:
            return
        ftype = entry.ctype
        assert isinstance(ftype, ct.FunctionType)
        names = self._signatures[id(node)]

        self.func = fn
        self.func_name = name
        self.func_type = ftype
        entry_block = fn.append_basic_block("entry")
        body_block = fn.append_basic_block("body")
        self.alloca_builder = ir.IRBuilder(entry_block)
        self.builder = ir.IRBuilder(body_block)
        self.labels = {}
        self.placed_labels = set()
        self.pending_gotos = []
        self.scope = self.file_scope.child()
        try:
            for arg, pname, ptype in zip(fn.args, names, ftype.params):
                slot = self.alloca(ptype, pname or "")
                self.builder.store(arg, slot)
                if pname:
                    self.scope.define(Symbol(pname, SymbolKind.VARIABLE, ptype, slot))
            emit_compound(self, node.body, new_scope=False)

            for label, goto in self.pending_gotos:
                if label not in self.placed_labels:
                    self.fail("TF0010", goto, name=label)

            self.alloca_builder.branch(body_block)
            for block in fn.blocks[1:]:
                if not block.is_terminated:
                    self.builder.position_at_end(block)
                    self.emit_default_return()
        finally:
            self._reset_function_state()

    def _reset_function_state(self) -> None:
        self.builder = None
        self.alloca_builder = None
        self.func = None
        self.func_type = None
        self.func_name = ""
        self.scope = self.file_scope
        self.break_stack = []
        self.continue_stack = []
        self.switch_stack = []

    def emit_default_return(self) -> None:
        ret = self.func_type.ret
        if ret.is_void:
            self.builder.ret_void()
        else:
            self.builder.ret(self.types.zero(ret))

    def alloca(self, t: ct.CType, name: str = "") -> ir.AllocaInstr:
        """Stack slot for t in the entry block of the current function."""
        if self.alloca_builder is None:
            raise_internal_error("IE0005")
        slot = self.alloca_builder.alloca(self.types.lower(t), name=name)
        slot.align = max(t.align(), 1)
        return slot

    def open_block(self) -> None:
        """Continue in a fresh block when the current one is already terminated."""
        if self.builder.block.is_terminated:
            self.builder.position_at_end(self.func.append_basic_block("dead"))

    def label_block(self, name: str) -> ir.Block:
        block = self.labels.get(name)
        if block is None:
            block = self.func.append_basic_block(f"label.{name}")
            self.labels[name] = block
        return block


def compile_translation_unit(tu: TranslationUnit, triple: str, extras: tuple[str, ...] = ()) -> ObjectUnit:
    """Lower a parsed translation unit to an object unit.

    Raises:
        FrontendError: when the unit has semantic errors.
    """
    codegen = LLVMCodegen(tu.name, tu.sources, triple, extras)
    return codegen.compile(tu.ast)
