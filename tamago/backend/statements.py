"""
Statement emission for the C front-end.

Each statement kind has an `emit_*` function taking the code generator and
the pycparser node. Code that follows a terminator (after `return`, `break`
or `goto`) is emitted into a fresh unreachable block.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from llvmlite import ir
from pycparser import c_ast

from tamago.backend.expressions import LValue
from tamago.backend.initializers import complete_array_type
from tamago.backend.scope import Symbol, SymbolKind
from tamago.frontend import ctypes_model as ct

if TYPE_CHECKING:
    from tamago.backend.codegen_llvm import LLVMCodegen


@dataclass
class SwitchContext:
    instr: ir.SwitchInstr
    ctype: ct.IntType
    default_block: ir.Block
    has_default: bool = False
    values: set[int] = field(default_factory=set)


def emit_compound(codegen: 'LLVMCodegen', node: c_ast.Compound, new_scope: bool = True) -> None:
    """Emit a brace-enclosed block.

    Args:
        codegen: The main LLVMCodegen instance.
        node: The compound statement.
        new_scope: Open a block scope (function bodies share the parameter scope).
    """
    outer = codegen.scope
    if new_scope:
        codegen.scope = outer.child()
    try:
        for item in node.block_items or ():
            codegen.open_block()
            emit_statement(codegen, item)
    finally:
        codegen.scope = outer


def emit_statement(codegen: 'LLVMCodegen', node: c_ast.Node) -> None:
    handler = _HANDLERS.get(type(node))
    if handler is not None:
        handler(codegen, node)
    else:
        codegen.exprs.emit(node)


def _emit_nothing(codegen: 'LLVMCodegen', node: c_ast.Node) -> None:
    pass


def emit_declaration(codegen: 'LLVMCodegen', decl: c_ast.Decl | c_ast.Typedef) -> None:
    """Declare a block-scope name, allocating and initializing objects."""
    t, entry = codegen.declare(decl, codegen.scope)
    if t is None or entry is not None or decl.name is None:
        return
    if isinstance(t, ct.ArrayType) and t.length is None and decl.init is not None:
        t = complete_array_type(codegen, t, decl.init)
    if not t.is_complete:
        codegen.fail("TF0011", decl, type=t)

    if "static" in decl.storage:
        gv = codegen.local_static(decl.name, t)
        codegen.scope.define(Symbol(decl.name, SymbolKind.VARIABLE, t, gv))
        if decl.init is not None:
            gv.initializer = codegen.inits.constant(t, decl.init)
        else:
            gv.initializer = codegen.types.zero(t)
        return

    slot = codegen.alloca(t, decl.name)
    codegen.scope.define(Symbol(decl.name, SymbolKind.VARIABLE, t, slot))
    if decl.init is not None:
        codegen.inits.local(LValue(slot, t), decl.init)


def _emit_decl_list(codegen: 'LLVMCodegen', node: c_ast.DeclList) -> None:
    for decl in node.decls:
        emit_declaration(codegen, decl)


def emit_if(codegen: 'LLVMCodegen', node: c_ast.If) -> None:
    func = codegen.func
    cond = codegen.exprs.condition(node.cond)
    then_bb = func.append_basic_block("if.then")
    end_bb = func.append_basic_block("if.end")
    else_bb = func.append_basic_block("if.else") if node.iffalse is not None else end_bb
    codegen.builder.cbranch(cond, then_bb, else_bb)

    codegen.builder.position_at_end(then_bb)
    _emit_body(codegen, node.iftrue)
    if not codegen.builder.block.is_terminated:
        codegen.builder.branch(end_bb)

    if node.iffalse is not None:
        codegen.builder.position_at_end(else_bb)
        _emit_body(codegen, node.iffalse)
        if not codegen.builder.block.is_terminated:
            codegen.builder.branch(end_bb)

    codegen.builder.position_at_end(end_bb)


def emit_while(codegen: 'LLVMCodegen', node: c_ast.While) -> None:
    """Emit a while loop: condition, body and end blocks."""
    func = codegen.func
    cond_bb = func.append_basic_block("while.cond")
    body_bb = func.append_basic_block("while.body")
    end_bb = func.append_basic_block("while.end")
    codegen.builder.branch(cond_bb)

    codegen.builder.position_at_end(cond_bb)
    codegen.builder.cbranch(codegen.exprs.condition(node.cond), body_bb, end_bb)

    codegen.builder.position_at_end(body_bb)
    _emit_loop_body(codegen, node.stmt, end_bb, cond_bb)
    if not codegen.builder.block.is_terminated:
        codegen.builder.branch(cond_bb)

    codegen.builder.position_at_end(end_bb)


def emit_do_while(codegen: 'LLVMCodegen', node: c_ast.DoWhile) -> None:
    func = codegen.func
    body_bb = func.append_basic_block("do.body")
    cond_bb = func.append_basic_block("do.cond")
    end_bb = func.append_basic_block("do.end")
    codegen.builder.branch(body_bb)

    codegen.builder.position_at_end(body_bb)
    _emit_loop_body(codegen, node.stmt, end_bb, cond_bb)
    if not codegen.builder.block.is_terminated:
        codegen.builder.branch(cond_bb)

    codegen.builder.position_at_end(cond_bb)
    codegen.builder.cbranch(codegen.exprs.condition(node.cond), body_bb, end_bb)

    codegen.builder.position_at_end(end_bb)


def emit_for(codegen: 'LLVMCodegen', node: c_ast.For) -> None:
    """Emit a for loop. `continue` jumps to the step expression."""
    func = codegen.func
    outer = codegen.scope
    codegen.scope = outer.child()
    try:
        if isinstance(node.init, c_ast.DeclList):
            _emit_decl_list(codegen, node.init)
        elif node.init is not None:
            codegen.exprs.emit(node.init)

        cond_bb = func.append_basic_block("for.cond")
        body_bb = func.append_basic_block("for.body")
        step_bb = func.append_basic_block("for.step")
        end_bb = func.append_basic_block("for.end")
        codegen.builder.branch(cond_bb)

        codegen.builder.position_at_end(cond_bb)
        if node.cond is not None:
            codegen.builder.cbranch(codegen.exprs.condition(node.cond), body_bb, end_bb)
        else:
            codegen.builder.branch(body_bb)

        codegen.builder.position_at_end(body_bb)
        _emit_loop_body(codegen, node.stmt, end_bb, step_bb)
        if not codegen.builder.block.is_terminated:
            codegen.builder.branch(step_bb)

        codegen.builder.position_at_end(step_bb)
        if node.next is not None:
            codegen.exprs.emit(node.next)
        codegen.builder.branch(cond_bb)

        codegen.builder.position_at_end(end_bb)
    finally:
        codegen.scope = outer


def emit_switch(codegen: 'LLVMCodegen', node: c_ast.Switch) -> None:
    """Emit a switch statement.

    Case labels may appear anywhere inside the body; each one opens a block
    that the preceding code falls through into.
    """
    func = codegen.func
    tv = codegen.exprs.emit(node.cond)
    if not tv.ctype.is_integer:
        codegen.fail("TF0005", node.cond, op="switch", left=tv.ctype, right=tv.ctype)
    ctype = ct.integer_promote(tv.ctype)
    value = codegen.exprs.convert(tv, ctype, node.cond)

    default_bb = func.append_basic_block("switch.default")
    end_bb = func.append_basic_block("switch.end")
    instr = codegen.builder.switch(value, default_bb)
    context = SwitchContext(instr, ctype, default_bb)

    codegen.builder.position_at_end(func.append_basic_block("switch.body"))
    codegen.switch_stack.append(context)
    codegen.break_stack.append(end_bb)
    try:
        _emit_body(codegen, node.stmt)
    finally:
        codegen.switch_stack.pop()
        codegen.break_stack.pop()
    if not codegen.builder.block.is_terminated:
        codegen.builder.branch(end_bb)

    if not context.has_default:
        codegen.builder.position_at_end(default_bb)
        codegen.builder.branch(end_bb)

    codegen.builder.position_at_end(end_bb)


def emit_case(codegen: 'LLVMCodegen', node: c_ast.Case) -> None:
    if not codegen.switch_stack:
        codegen.fail("TF0009", node, what="case")
    context = codegen.switch_stack[-1]
    value = context.ctype.wrap(codegen.const_eval.integer(node.expr))
    if value in context.values:
        codegen.fail("TF0015", node, value=value)
    context.values.add(value)

    block = codegen.func.append_basic_block("switch.case")
    if not codegen.builder.block.is_terminated:
        codegen.builder.branch(block)
    context.instr.add_case(ir.Constant(codegen.types.lower(context.ctype), value), block)
    codegen.builder.position_at_end(block)
    _emit_labelled(codegen, node.stmts)


def emit_default(codegen: 'LLVMCodegen', node: c_ast.Default) -> None:
    if not codegen.switch_stack:
        codegen.fail("TF0009", node, what="default")
    context = codegen.switch_stack[-1]
    if context.has_default:
        codegen.fail("TF0015", node, value="default")
    context.has_default = True
    if not codegen.builder.block.is_terminated:
        codegen.builder.branch(context.default_block)
    codegen.builder.position_at_end(context.default_block)
    _emit_labelled(codegen, node.stmts)


def emit_break(codegen: 'LLVMCodegen', node: c_ast.Break) -> None:
    if not codegen.break_stack:
        codegen.fail("TF0009", node, what="break")
    codegen.builder.branch(codegen.break_stack[-1])


def emit_continue(codegen: 'LLVMCodegen', node: c_ast.Continue) -> None:
    if not codegen.continue_stack:
        codegen.fail("TF0009", node, what="continue")
    codegen.builder.branch(codegen.continue_stack[-1])


def emit_return(codegen: 'LLVMCodegen', node: c_ast.Return) -> None:
    ret = codegen.func_type.ret
    if node.expr is None:
        codegen.emit_default_return()
        return
    tv = codegen.exprs.emit(node.expr)
    if ret.is_void:
        codegen.builder.ret_void()
        return
    codegen.builder.ret(codegen.exprs.convert(tv, ret, node.expr))


def emit_goto(codegen: 'LLVMCodegen', node: c_ast.Goto) -> None:
    codegen.pending_gotos.append((node.name, node))
    codegen.builder.branch(codegen.label_block(node.name))


def emit_label(codegen: 'LLVMCodegen', node: c_ast.Label) -> None:
    if node.name in codegen.placed_labels:
        codegen.fail("TF0006", node, name=node.name)
    codegen.placed_labels.add(node.name)
    block = codegen.label_block(node.name)
    if not codegen.builder.block.is_terminated:
        codegen.builder.branch(block)
    codegen.builder.position_at_end(block)
    _emit_body(codegen, node.stmt)


def _emit_body(codegen: 'LLVMCodegen', node: c_ast.Node) -> None:
    """Statement that forms the body of a control construct."""
    if isinstance(node, c_ast.Compound):
        emit_compound(codegen, node)
        return
    # a declaration as a bare body still gets its own scope
    outer = codegen.scope
    codegen.scope = outer.child()
    try:
        codegen.open_block()
        emit_statement(codegen, node)
    finally:
        codegen.scope = outer


def _emit_loop_body(codegen: 'LLVMCodegen', node: c_ast.Node, break_bb: ir.Block,
                    continue_bb: ir.Block) -> None:
    codegen.break_stack.append(break_bb)
    codegen.continue_stack.append(continue_bb)
    try:
        _emit_body(codegen, node)
    finally:
        codegen.break_stack.pop()
        codegen.continue_stack.pop()


def _emit_labelled(codegen: 'LLVMCodegen', stmts) -> None:
    for stmt in stmts or ():
        codegen.open_block()
        emit_statement(codegen, stmt)


_HANDLERS = {
    c_ast.Compound: emit_compound,
    c_ast.Decl: emit_declaration,
    c_ast.Typedef: emit_declaration,
    c_ast.DeclList: _emit_decl_list,
    c_ast.If: emit_if,
    c_ast.While: emit_while,
    c_ast.DoWhile: emit_do_while,
    c_ast.For: emit_for,
    c_ast.Switch: emit_switch,
    c_ast.Case: emit_case,
    c_ast.Default: emit_default,
    c_ast.Break: emit_break,
    c_ast.Continue: emit_continue,
    c_ast.Return: emit_return,
    c_ast.Goto: emit_goto,
    c_ast.Label: emit_label,
    c_ast.EmptyStatement: _emit_nothing,
    c_ast.Pragma: _emit_nothing,
}
