"""
Indentation syntax -> primitive-call syntax.

``normalize`` parses the source with the indentation parser and prints the
tree back out in braced form. Block structure therefore comes from the
tokenizer's INDENT/DEDENT tokens rather than from guessing at line shapes,
and every construct the parser accepts has a printed form.

Names keep their spelling except the capabilities, which become camelCase,
and names that are reserved words in the braced syntax (``new``, ``var``,
``default`` ...), which get a trailing underscore. Calls that may move the
cursor (the four moves and user functions) are printed with ``await``. The
first assignment to a name in each function (and at top level) is printed
with ``let``. Full-line ``#`` comments are carried over as ``//`` comments
ahead of the statement that follows them; trailing comments are dropped.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import fields, is_dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .braced import KEYWORDS as BRACED_KEYWORDS
from .braced import UNSUPPORTED as BRACED_UNSUPPORTED
from .compiler import NESTED_TOO_DEEPLY
from .errors import ParseError
from .indented import parse_source
from .syntax import (
    BRACED,
    CAPABILITIES,
    INDENTED,
    MOVE_ROLES,
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
)

logger = logging.getLogger(__name__)

INDENT = "    "

# Binding strength of printed braced expressions, loosest first.
OR, AND, EQUALITY, RELATIONAL, ADDITIVE, MULTIPLICATIVE, UNARY, POSTFIX, PRIMARY = range(1, 10)

BINARY_FORMS = {
    "or": ("||", OR),
    "and": ("&&", AND),
    "==": ("===", EQUALITY),
    "is": ("===", EQUALITY),
    "!=": ("!==", EQUALITY),
    "is not": ("!==", EQUALITY),
    "<": ("<", RELATIONAL),
    ">": (">", RELATIONAL),
    "<=": ("<=", RELATIONAL),
    ">=": (">=", RELATIONAL),
    "+": ("+", ADDITIVE),
    "-": ("-", ADDITIVE),
    "*": ("*", MULTIPLICATIVE),
    "/": ("/", MULTIPLICATIVE),
    "%": ("%", MULTIPLICATIVE),
}

_BRACED_BY_ROLE = {role: name for name, role in CAPABILITIES[BRACED].items()}
CAPABILITY_NAMES = {name: _BRACED_BY_ROLE[role] for name, role in CAPABILITIES[INDENTED].items()}
MOVE_NAMES = {name for name, role in CAPABILITIES[INDENTED].items() if role in MOVE_ROLES}

RENAMED_BUILTINS = {
    "str": "String",
    "float": "Number",
    "abs": "Math.abs",
    "min": "Math.min",
    "max": "Math.max",
    "int": "Math.trunc",
    "print": "console.log",
}

ERROR_BUILTINS = {"Exception", "ValueError", "RuntimeError"}

_IDENTIFIER_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*\Z")

RESERVED = BRACED_KEYWORDS | BRACED_UNSUPPORTED

Comment = Tuple[int, str]


def _identifiers(node: Any) -> Iterator[str]:
    if isinstance(node, (list, tuple)):
        for item in node:
            yield from _identifiers(item)
        return
    if not is_dataclass(node):
        return
    for f in fields(node):
        value = getattr(node, f.name)
        if f.name in ("name", "var_name") and isinstance(value, str):
            yield value
        elif f.name == "params":
            yield from value
        else:
            yield from _identifiers(value)


def reserved_renames(program: Program) -> Dict[str, str]:
    """Map names that are braced reserved words to fresh spellings."""
    used = set(_identifiers(program.body))
    renames: Dict[str, str] = {}
    for name in sorted(used & RESERVED):
        fresh = name + "_"
        while fresh in used:
            fresh += "_"
        used.add(fresh)
        renames[name] = fresh
    return renames


def comment_lines(source: str) -> List[Comment]:
    out: List[Comment] = []
    for lineno, line in enumerate(source.splitlines(), 1):
        text = line.strip()
        if text.startswith("#"):
            out.append((lineno, "//" + text[1:]))
    return out


class Printer:
    def __init__(self, program: Program, comments: Sequence[Comment] = ()):
        self.program = program
        self.functions = {f.name for f in program.functions}
        self.renames = reserved_renames(program)
        self.comments = sorted(comments)
        self.next_comment = 0
        self.lines: List[str] = []
        self.level = 0
        self.declared: Set[str] = set()

    def render(self) -> str:
        for stmt in self.program.body:
            self.stmt(stmt)
        self.flush_comments()
        while self.lines and not self.lines[-1]:
            self.lines.pop()
        return "\n".join(self.lines) + "\n"

    def emit(self, text: str) -> None:
        self.lines.append(INDENT * self.level + text if text else "")

    def ident(self, name: str) -> str:
        return self.renames.get(name, name)

    def flush_comments(self, before: Optional[int] = None) -> None:
        while self.next_comment < len(self.comments):
            line, text = self.comments[self.next_comment]
            if before is not None and line >= before:
                return
            self.emit(text)
            self.next_comment += 1

    def block(self, body: List[Stmt]) -> None:
        self.level += 1
        for stmt in body:
            self.stmt(stmt)
        self.level -= 1

    # statements

    def stmt(self, s: Stmt) -> None:
        if s.line:
            self.flush_comments(s.line)
        if isinstance(s, Assign):
            self.assign(s)
        elif isinstance(s, If):
            self.if_chain(s, "if")
        elif isinstance(s, WhileLoop):
            self.emit(f"while ({self.expr(s.cond)}) {{")
            self.block(s.body)
            self.emit("}")
        elif isinstance(s, ForEach):
            # An already-bound name is reused; otherwise the loop gets its own binding.
            var = self.ident(s.var_name)
            head = var if s.var_name in self.declared else f"const {var}"
            self.emit(f"for ({head} of {self.expr(s.iterable)}) {{")
            self.block(s.body)
            self.emit("}")
        elif isinstance(s, ExprStmt):
            self.emit(f"{self.expr(s.expr)};")
        elif isinstance(s, ReturnStmt):
            self.emit("return;" if s.expr is None else f"return {self.expr(s.expr)};")
        elif isinstance(s, Break):
            self.emit("break;")
        elif isinstance(s, Continue):
            self.emit("continue;")
        elif isinstance(s, Raise):
            self.emit(f"throw {self.expr(s.expr)};")
        elif isinstance(s, FnDecl):
            self.function(s)
        else:
            raise TypeError(s)

    def assign(self, s: Assign) -> None:
        target = self.expr(s.target)
        if s.op == "//=":
            self.emit(f"{target} = Math.floor({target} / {self.expr(s.expr, MULTIPLICATIVE + 1)});")
            return
        if s.op != "=":
            self.emit(f"{target} {s.op} {self.expr(s.expr)};")
            return
        if isinstance(s.target, Var) and s.target.name not in self.declared:
            self.declared.add(s.target.name)
            self.emit(f"let {target} = {self.expr(s.expr)};")
            return
        self.emit(f"{target} = {self.expr(s.expr)};")

    def if_chain(self, s: If, head: str) -> None:
        self.emit(f"{head} ({self.expr(s.cond)}) {{")
        self.block(s.then_body)
        if len(s.else_body) == 1 and isinstance(s.else_body[0], If):
            self.if_chain(s.else_body[0], "} else if")
            return
        if s.else_body:
            self.emit("} else {")
            self.block(s.else_body)
        self.emit("}")

    def function(self, s: FnDecl) -> None:
        outer = self.declared
        self.declared = set(s.params)
        params = ", ".join(self.ident(p) for p in s.params)
        self.emit(f"async function {self.ident(s.name)}({params}) {{")
        self.block(s.body)
        self.emit("}")
        self.emit("")
        self.declared = outer

    # expressions

    def expr(self, e: Expr, min_prec: int = 0) -> str:
        text, prec = self.form(e)
        return f"({text})" if prec < min_prec else text

    def args(self, args: List[Expr]) -> str:
        return ", ".join(self.expr(a) for a in args)

    def form(self, e: Expr) -> Tuple[str, int]:
        if isinstance(e, Literal):
            return literal(e.value), PRIMARY
        if isinstance(e, Var):
            return self.ident(e.name), PRIMARY
        if isinstance(e, Unary):
            operand = self.expr(e.expr, UNARY)
            if e.op == "not":
                return f"!{operand}", UNARY
            if operand.startswith("-"):
                operand = f"({operand})"
            return f"-{operand}", UNARY
        if isinstance(e, Binary):
            return self.binary(e)
        if isinstance(e, Call):
            return self.call(e)
        if isinstance(e, MethodCall):
            return self.method(e)
        if isinstance(e, Attribute):
            return f"{self.expr(e.obj, POSTFIX)}.{e.name}", POSTFIX
        if isinstance(e, Index):
            return f"{self.expr(e.obj, POSTFIX)}[{self.expr(e.index)}]", POSTFIX
        if isinstance(e, ListLiteral):
            return f"[{self.args(e.items)}]", PRIMARY
        if isinstance(e, SetLiteral):
            return f"new Set([{self.args(e.items)}])", POSTFIX
        if isinstance(e, DictLiteral):
            if not e.items:
                return "{}", PRIMARY
            entries = ", ".join(f"{self.key(k)}: {self.expr(v)}" for k, v in e.items)
            return f"{{ {entries} }}", PRIMARY
        raise TypeError(e)

    def key(self, k: Expr) -> str:
        if isinstance(k, Literal) and isinstance(k.value, str) and _IDENTIFIER_RE.match(k.value):
            return k.value
        if isinstance(k, Literal) and not isinstance(k.value, bool) and isinstance(k.value, (str, int, float)):
            return literal(k.value)
        return f"[{self.expr(k)}]"

    def binary(self, e: Binary) -> Tuple[str, int]:
        if e.op == "in":
            return f"{self.expr(e.right, POSTFIX)}.has({self.expr(e.left)})", POSTFIX
        if e.op == "not in":
            return f"!{self.expr(e.right, POSTFIX)}.has({self.expr(e.left)})", UNARY
        if e.op == "//":
            left = self.expr(e.left, MULTIPLICATIVE)
            right = self.expr(e.right, MULTIPLICATIVE + 1)
            return f"Math.floor({left} / {right})", POSTFIX
        op, prec = BINARY_FORMS[e.op]
        return f"{self.expr(e.left, prec)} {op} {self.expr(e.right, prec + 1)}", prec

    def call(self, e: Call) -> Tuple[str, int]:
        name, args = e.name, self.args(e.args)
        if name in self.functions:
            return f"await {self.ident(name)}({args})", UNARY
        if name in CAPABILITY_NAMES:
            text = f"{CAPABILITY_NAMES[name]}({args})"
            return (f"await {text}", UNARY) if name in MOVE_NAMES else (text, POSTFIX)
        if name == "len" and len(e.args) == 1:
            return f"{self.expr(e.args[0], POSTFIX)}.length", POSTFIX
        if name == "set":
            return f"new Set({args})", POSTFIX
        if name == "dict":
            return "new Map()", POSTFIX
        if name == "list":
            return (f"Array.from({args})", POSTFIX) if e.args else ("[]", PRIMARY)
        if name == "sorted":
            return f"Array.from({args}).sort()", POSTFIX
        if name == "bool" and len(e.args) == 1:
            return f"!!{self.expr(e.args[0], UNARY)}", UNARY
        if name in ERROR_BUILTINS:
            return f"new Error({args})", POSTFIX
        return f"{RENAMED_BUILTINS.get(name, self.ident(name))}({args})", POSTFIX

    def method(self, e: MethodCall) -> Tuple[str, int]:
        obj = self.expr(e.obj, POSTFIX)
        name, args = e.name, e.args
        first_is_zero = bool(args) and isinstance(args[0], Literal) and args[0].value == 0
        if name == "append":
            name = "push"
        elif name == "insert" and len(args) == 2 and first_is_zero:
            name, args = "unshift", args[1:]
        elif name == "pop" and len(args) == 1 and first_is_zero:
            name, args = "shift", []
        elif name == "items":
            name = "entries"
        return f"{obj}.{name}({self.args(args)})", POSTFIX


def literal(value) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    if isinstance(value, str):
        return json.dumps(value)
    return repr(value)


def normalize(source: str) -> str:
    """Rewrite indentation-syntax ``source`` as primitive-call source."""
    try:
        program = parse_source(source)
        out = Printer(program, comment_lines(source)).render()
    except RecursionError:
        raise ParseError(NESTED_TOO_DEEPLY) from None
    logger.debug(f"Normalized {len(program.body)} top-level statements into {len(out.splitlines())} lines")
    return out
