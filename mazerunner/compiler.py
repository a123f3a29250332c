"""
Lowering from the shared AST to a flat, typed instruction list.

Each top-level function and the main body become one ``CodeObject``. The
instruction set is a small stack machine; jumps hold absolute instruction
indexes. Nothing is turned back into host source: the engine interprets the
instructions directly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from . import braced, indented
from .errors import ParseError
from .syntax import (
    BRACED,
    CAPABILITIES,
    INDENTED,
    Assign,
    Attribute,
    Binary,
    Break,
    Call,
    Continue,
    DictLiteral,
    Expr,
    ExprStmt,
    FnDecl,
    ForEach,
    ForLoop,
    If,
    Index,
    ListLiteral,
    Literal,
    MethodCall,
    Program,
    Raise,
    ReturnStmt,
    SetLiteral,
    Stmt,
    Unary,
    Var,
    WhileLoop,
    resolve_syntax,
)

logger = logging.getLogger(__name__)

MAIN = "<main>"

NESTED_TOO_DEEPLY = "program is nested too deeply"


class Op(Enum):
    CONST = "const"
    LOAD_FAST = "load_fast"
    STORE_FAST = "store_fast"
    LOAD_NAME = "load_name"
    STORE_NAME = "store_name"
    POP = "pop"
    DUP = "dup"
    DUP_TWO = "dup_two"
    UNARY = "unary"
    BINARY = "binary"
    JUMP = "jump"
    POP_JUMP_IF_FALSE = "pop_jump_if_false"
    JUMP_IF_FALSE_OR_POP = "jump_if_false_or_pop"
    JUMP_IF_TRUE_OR_POP = "jump_if_true_or_pop"
    BUILD_LIST = "build_list"
    BUILD_SET = "build_set"
    BUILD_DICT = "build_dict"
    GET_ITEM = "get_item"
    SET_ITEM = "set_item"
    GET_ATTR = "get_attr"
    SET_ATTR = "set_attr"
    CALL = "call"
    CALL_METHOD = "call_method"
    GET_ITER = "get_iter"
    FOR_ITER = "for_iter"
    RETURN = "return"
    RAISE = "raise"


@dataclass
class Instr:
    op: Op
    arg: Any = None
    line: int = 0

    def __str__(self) -> str:
        return f"{self.line:>4} {self.op.name:<22}{'' if self.arg is None else repr(self.arg)}"


@dataclass
class CodeObject:
    name: str
    params: List[str]
    instrs: List[Instr] = field(default_factory=list)
    local_names: Set[str] = field(default_factory=set)

    def disassemble(self) -> str:
        return "\n".join(f"{i:>5} {instr}" for i, instr in enumerate(self.instrs))


@dataclass
class CompiledUnit:
    """Everything one run needs: the main body, its functions and capability names."""

    syntax: str
    main: CodeObject
    functions: Dict[str, CodeObject]
    capabilities: Tuple[str, ...]


@dataclass
class _Loop:
    break_jumps: List[int] = field(default_factory=list)
    continue_jumps: List[int] = field(default_factory=list)
    holds_iterator: bool = False


def _local_names(syntax: str, fn: FnDecl) -> Set[str]:
    # Indented: any assigned name is local. Braced: only declared ones.
    names: Set[str] = set(fn.params)

    def visit(body: List[Stmt]) -> None:
        for s in body:
            if isinstance(s, Assign) and isinstance(s.target, Var):
                if syntax == INDENTED or s.declare:
                    names.add(s.target.name)
            elif isinstance(s, ForEach):
                names.add(s.var_name)
                visit(s.body)
            elif isinstance(s, If):
                visit(s.then_body)
                visit(s.else_body)
            elif isinstance(s, WhileLoop):
                visit(s.body)
            elif isinstance(s, ForLoop):
                visit([x for x in (s.init, s.update) if x is not None])
                visit(s.body)

    visit(fn.body)
    return names


class CodeBuilder:
    def __init__(self, code: CodeObject):
        self.code = code
        self.line = 0
        self.loops: List[_Loop] = []

    def emit(self, op: Op, arg: Any = None) -> int:
        self.code.instrs.append(Instr(op, arg, self.line))
        return len(self.code.instrs) - 1

    def here(self) -> int:
        return len(self.code.instrs)

    def patch(self, index: int, target: Optional[int] = None) -> None:
        self.code.instrs[index].arg = self.here() if target is None else target

    # statements

    def body(self, stmts: List[Stmt]) -> None:
        for s in stmts:
            self.stmt(s)

    def stmt(self, s: Stmt) -> None:
        self.line = s.line or self.line
        if isinstance(s, FnDecl):
            return
        if isinstance(s, Assign):
            self.assign(s)
        elif isinstance(s, ExprStmt):
            self.expr(s.expr)
            self.emit(Op.POP)
        elif isinstance(s, If):
            self.expr(s.cond)
            skip_then = self.emit(Op.POP_JUMP_IF_FALSE)
            self.body(s.then_body)
            if s.else_body:
                skip_else = self.emit(Op.JUMP)
                self.patch(skip_then)
                self.body(s.else_body)
                self.patch(skip_else)
            else:
                self.patch(skip_then)
        elif isinstance(s, WhileLoop):
            top = self.here()
            self.expr(s.cond)
            exit_jump = self.emit(Op.POP_JUMP_IF_FALSE)
            self.loop_body(s.body, top)
            self.patch(exit_jump)
            self.close_loop(continue_to=top)
        elif isinstance(s, ForEach):
            self.expr(s.iterable)
            self.emit(Op.GET_ITER)
            top = self.emit(Op.FOR_ITER)
            self.store(s.var_name)
            self.loop_body(s.body, top, holds_iterator=True)
            self.patch(top)
            self.close_loop(continue_to=top)
        elif isinstance(s, ForLoop):
            if s.init is not None:
                self.stmt(s.init)
            top = self.here()
            exit_jump = None
            if s.cond is not None:
                self.expr(s.cond)
                exit_jump = self.emit(Op.POP_JUMP_IF_FALSE)
            self.loops.append(_Loop())
            self.body(s.body)
            update = self.here()
            if s.update is not None:
                self.stmt(s.update)
            self.emit(Op.JUMP, top)
            if exit_jump is not None:
                self.patch(exit_jump)
            self.close_loop(continue_to=update)
        elif isinstance(s, ReturnStmt):
            if self.code.name == MAIN:
                raise ParseError("'return' outside function", s.line)
            if s.expr is None:
                self.emit(Op.CONST, None)
            else:
                self.expr(s.expr)
            self.emit(Op.RETURN)
        elif isinstance(s, Break):
            if not self.loops:
                raise ParseError("'break' outside loop", s.line)
            loop = self.loops[-1]
            if loop.holds_iterator:
                self.emit(Op.POP)
            loop.break_jumps.append(self.emit(Op.JUMP))
        elif isinstance(s, Continue):
            if not self.loops:
                raise ParseError("'continue' not properly in loop", s.line)
            self.loops[-1].continue_jumps.append(self.emit(Op.JUMP))
        elif isinstance(s, Raise):
            self.expr(s.expr)
            self.emit(Op.RAISE)
        else:
            raise TypeError(s)

    def loop_body(self, body: List[Stmt], top: int, holds_iterator: bool = False) -> None:
        self.loops.append(_Loop(holds_iterator=holds_iterator))
        self.body(body)
        self.emit(Op.JUMP, top)

    def close_loop(self, continue_to: int) -> None:
        loop = self.loops.pop()
        for j in loop.break_jumps:
            self.patch(j)
        for j in loop.continue_jumps:
            self.patch(j, continue_to)

    def load(self, name: str) -> None:
        self.emit(Op.LOAD_FAST if name in self.code.local_names else Op.LOAD_NAME, name)

    def store(self, name: str) -> None:
        self.emit(Op.STORE_FAST if name in self.code.local_names else Op.STORE_NAME, name)

    def assign(self, s: Assign) -> None:
        op = s.op[:-1] if s.op != "=" else None
        target = s.target
        if isinstance(target, Var):
            if op:
                self.load(target.name)
                self.expr(s.expr)
                self.emit(Op.BINARY, op)
            else:
                self.expr(s.expr)
            self.store(target.name)
        elif isinstance(target, Index):
            self.expr(target.obj)
            self.expr(target.index)
            if op:
                self.emit(Op.DUP_TWO)
                self.emit(Op.GET_ITEM)
                self.expr(s.expr)
                self.emit(Op.BINARY, op)
            else:
                self.expr(s.expr)
            self.emit(Op.SET_ITEM)
        elif isinstance(target, Attribute):
            self.expr(target.obj)
            if op:
                self.emit(Op.DUP)
                self.emit(Op.GET_ATTR, target.name)
                self.expr(s.expr)
                self.emit(Op.BINARY, op)
            else:
                self.expr(s.expr)
            self.emit(Op.SET_ATTR, target.name)
        else:
            raise TypeError(target)

    # expressions

    def expr(self, e: Expr) -> None:
        if isinstance(e, Literal):
            self.emit(Op.CONST, e.value)
        elif isinstance(e, Var):
            self.load(e.name)
        elif isinstance(e, Unary):
            self.expr(e.expr)
            self.emit(Op.UNARY, e.op)
        elif isinstance(e, Binary) and e.op in {"and", "or"}:
            self.expr(e.left)
            jump = self.emit(Op.JUMP_IF_FALSE_OR_POP if e.op == "and" else Op.JUMP_IF_TRUE_OR_POP)
            self.expr(e.right)
            self.patch(jump)
        elif isinstance(e, Binary):
            self.expr(e.left)
            self.expr(e.right)
            self.emit(Op.BINARY, e.op)
        elif isinstance(e, Call):
            for a in e.args:
                self.expr(a)
            self.emit(Op.CALL, (e.name, len(e.args)))
        elif isinstance(e, MethodCall):
            self.expr(e.obj)
            for a in e.args:
                self.expr(a)
            self.emit(Op.CALL_METHOD, (e.name, len(e.args)))
        elif isinstance(e, Attribute):
            self.expr(e.obj)
            self.emit(Op.GET_ATTR, e.name)
        elif isinstance(e, Index):
            self.expr(e.obj)
            self.expr(e.index)
            self.emit(Op.GET_ITEM)
        elif isinstance(e, ListLiteral):
            for item in e.items:
                self.expr(item)
            self.emit(Op.BUILD_LIST, len(e.items))
        elif isinstance(e, SetLiteral):
            for item in e.items:
                self.expr(item)
            self.emit(Op.BUILD_SET, len(e.items))
        elif isinstance(e, DictLiteral):
            for k, v in e.items:
                self.expr(k)
                self.expr(v)
            self.emit(Op.BUILD_DICT, len(e.items))
        else:
            raise TypeError(e)


def _compile_code(name: str, params: List[str], body: List[Stmt], local_names: Set[str], line: int) -> CodeObject:
    code = CodeObject(name, list(params), local_names=local_names)
    builder = CodeBuilder(code)
    builder.line = line
    builder.body(body)
    builder.emit(Op.CONST, None)
    builder.emit(Op.RETURN)
    return code


def compile_ast(program: Program) -> CompiledUnit:
    functions: Dict[str, CodeObject] = {}
    for fn in program.functions:
        functions[fn.name] = _compile_code(fn.name, fn.params, fn.body, _local_names(program.syntax, fn), fn.line)
    main = _compile_code(MAIN, [], program.body, set(), 1)
    return CompiledUnit(
        syntax=program.syntax,
        main=main,
        functions=functions,
        capabilities=tuple(CAPABILITIES[program.syntax]),
    )


def parse_program(source: str, syntax: str) -> Program:
    syntax = resolve_syntax(syntax)
    try:
        if syntax == BRACED:
            return braced.parse_source(source)
        return indented.parse_source(source)
    except RecursionError:
        raise ParseError(NESTED_TOO_DEEPLY) from None


def compile_program(source: str, syntax: str) -> CompiledUnit:
    """Parse ``source`` in the given syntax and lower it. Raises ``ParseError``."""
    program = parse_program(source, syntax)
    try:
        unit = compile_ast(program)
    except RecursionError:
        raise ParseError(NESTED_TOO_DEEPLY) from None
    total = len(unit.main.instrs) + sum(len(c.instrs) for c in unit.functions.values())
    logger.debug(f"Compiled {unit.syntax} program: {len(unit.functions)} functions, {total} instructions")
    return unit
