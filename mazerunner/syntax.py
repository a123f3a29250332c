from __future__ import annotations

import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .config import MAX_NESTING
from .errors import MazeRunnerError, ParseError

INDENTED = "indented"
BRACED = "braced"

SYNTAX_ALIASES = {
    INDENTED: INDENTED,
    "python": INDENTED,
    "py": INDENTED,
    BRACED: BRACED,
    "javascript": BRACED,
    "js": BRACED,
}

# Names authored code uses to reach the world, keyed by syntax, in parameter order.
CAPABILITIES: Dict[str, Dict[str, str]] = {
    INDENTED: {
        "move_up": "up",
        "move_down": "down",
        "move_left": "left",
        "move_right": "right",
        "get_position": "position",
        "is_wall": "wall",
        "is_end": "end",
    },
    BRACED: {
        "moveUp": "up",
        "moveDown": "down",
        "moveLeft": "left",
        "moveRight": "right",
        "getPosition": "position",
        "isWall": "wall",
        "isEnd": "end",
    },
}

MOVE_ROLES = ("up", "down", "left", "right")


def resolve_syntax(tag: str) -> str:
    try:
        return SYNTAX_ALIASES[tag.strip().lower()]
    except KeyError:
        known = ", ".join(sorted(SYNTAX_ALIASES))
        raise MazeRunnerError(f"Unknown syntax {tag!r} (expected one of: {known})") from None


@dataclass
class Token:
    kind: str
    value: str
    line: int
    col: int


_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|.)", re.DOTALL)
_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "b": "\b", "f": "\f", "\n": ""}


def unescape_string(raw: str) -> str:
    """Strip the quotes off a string token and resolve its escapes."""

    def sub(m: re.Match) -> str:
        esc = m.group(1)
        if esc[0] in "ux" and len(esc) > 1:
            return chr(int(esc[1:], 16))
        return _SIMPLE_ESCAPES.get(esc, esc)

    return _ESCAPE_RE.sub(sub, raw[1:-1])


@dataclass
class Expr:
    pass


@dataclass
class Literal(Expr):
    value: Any


@dataclass
class Var(Expr):
    name: str


@dataclass
class Unary(Expr):
    op: str
    expr: Expr


@dataclass
class Binary(Expr):
    left: Expr
    op: str
    right: Expr


@dataclass
class Call(Expr):
    name: str
    args: List[Expr]


@dataclass
class MethodCall(Expr):
    obj: Expr
    name: str
    args: List[Expr]


@dataclass
class Attribute(Expr):
    obj: Expr
    name: str


@dataclass
class Index(Expr):
    obj: Expr
    index: Expr


@dataclass
class ListLiteral(Expr):
    items: List[Expr]


@dataclass
class DictLiteral(Expr):
    items: List[tuple[Expr, Expr]]


@dataclass
class SetLiteral(Expr):
    items: List[Expr]


@dataclass
class Stmt:
    line: int = field(default=0, kw_only=True)


@dataclass
class Assign(Stmt):
    target: Expr
    op: str
    expr: Expr
    declare: bool = False


@dataclass
class If(Stmt):
    cond: Expr
    then_body: List[Stmt]
    else_body: List[Stmt] = field(default_factory=list)


@dataclass
class WhileLoop(Stmt):
    cond: Expr
    body: List[Stmt]


@dataclass
class ForEach(Stmt):
    var_name: str
    iterable: Expr
    body: List[Stmt]


@dataclass
class ForLoop(Stmt):
    init: Optional[Stmt]
    cond: Optional[Expr]
    update: Optional[Stmt]
    body: List[Stmt]


@dataclass
class ExprStmt(Stmt):
    expr: Expr


@dataclass
class ReturnStmt(Stmt):
    expr: Optional[Expr]


@dataclass
class Break(Stmt):
    pass


@dataclass
class Continue(Stmt):
    pass


@dataclass
class Raise(Stmt):
    expr: Expr


@dataclass
class FnDecl(Stmt):
    name: str
    params: List[str]
    body: List[Stmt]


@dataclass
class Program:
    syntax: str
    body: List[Stmt]

    @property
    def functions(self) -> List[FnDecl]:
        return [s for s in self.body if isinstance(s, FnDecl)]


class ParserBase:
    """Token cursor shared by both syntaxes' recursive-descent parsers."""

    def __init__(self, tokens: Sequence[Token]):
        self.tokens = list(tokens)
        self.i = 0
        self.nesting = 0

    def cur(self) -> Token:
        return self.tokens[self.i]

    def peek(self, offset: int = 1) -> Token:
        j = min(self.i + offset, len(self.tokens) - 1)
        return self.tokens[j]

    def at(self, kind: str, value: Optional[str] = None) -> bool:
        t = self.cur()
        return t.kind == kind and (value is None or t.value == value)

    def at_op(self, *values: str) -> bool:
        t = self.cur()
        return t.kind == "OP" and t.value in values

    def match(self, kind: str, value: Optional[str] = None) -> Optional[Token]:
        if not self.at(kind, value):
            return None
        t = self.cur()
        self.i += 1
        return t

    def match_kw(self, value: str) -> Optional[Token]:
        return self.match("KW", value)

    def expect(self, kind: str, value: Optional[str] = None) -> Token:
        t = self.cur()
        if t.kind != kind or (value is not None and t.value != value):
            want = repr(value) if value else kind
            got = "end of input" if t.kind == "EOF" else f"{t.value!r}" if t.value.strip() else t.kind
            raise ParseError(f"expected {want}, got {got}", t.line, t.col)
        self.i += 1
        return t

    def expect_kw(self, value: str) -> Token:
        return self.expect("KW", value)

    def error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        t = tok or self.cur()
        return ParseError(message, t.line, t.col)

    @contextmanager
    def nested(self) -> Iterator[None]:
        """Count one level of expression or block nesting."""
        if self.nesting >= MAX_NESTING:
            raise self.error(f"nested more than {MAX_NESTING} levels deep")
        self.nesting += 1
        try:
            yield
        finally:
            self.nesting -= 1


def expr_to_json(expr: Expr) -> Any:
    if isinstance(expr, Literal):
        return {"type": "literal", "value": expr.value}
    if isinstance(expr, Var):
        return {"type": "var", "name": expr.name}
    if isinstance(expr, Unary):
        return {"type": "unary", "op": expr.op, "expr": expr_to_json(expr.expr)}
    if isinstance(expr, Binary):
        return {"type": "binary", "op": expr.op, "left": expr_to_json(expr.left), "right": expr_to_json(expr.right)}
    if isinstance(expr, Call):
        return {"type": "call", "name": expr.name, "args": [expr_to_json(a) for a in expr.args]}
    if isinstance(expr, MethodCall):
        return {
            "type": "method",
            "obj": expr_to_json(expr.obj),
            "name": expr.name,
            "args": [expr_to_json(a) for a in expr.args],
        }
    if isinstance(expr, Attribute):
        return {"type": "attr", "obj": expr_to_json(expr.obj), "name": expr.name}
    if isinstance(expr, Index):
        return {"type": "index", "obj": expr_to_json(expr.obj), "index": expr_to_json(expr.index)}
    if isinstance(expr, ListLiteral):
        return {"type": "list", "items": [expr_to_json(i) for i in expr.items]}
    if isinstance(expr, SetLiteral):
        return {"type": "set", "items": [expr_to_json(i) for i in expr.items]}
    if isinstance(expr, DictLiteral):
        return {"type": "dict", "items": [{"key": expr_to_json(k), "value": expr_to_json(v)} for k, v in expr.items]}
    raise TypeError(expr)


def stmt_to_json(stmt: Stmt) -> Any:
    if isinstance(stmt, Assign):
        return {
            "type": "assign",
            "line": stmt.line,
            "target": expr_to_json(stmt.target),
            "op": stmt.op,
            "expr": expr_to_json(stmt.expr),
        }
    if isinstance(stmt, If):
        return {
            "type": "if",
            "line": stmt.line,
            "cond": expr_to_json(stmt.cond),
            "then": [stmt_to_json(s) for s in stmt.then_body],
            "else": [stmt_to_json(s) for s in stmt.else_body],
        }
    if isinstance(stmt, WhileLoop):
        return {"type": "while", "line": stmt.line, "cond": expr_to_json(stmt.cond), "body": [stmt_to_json(s) for s in stmt.body]}
    if isinstance(stmt, ForEach):
        return {
            "type": "for_each",
            "line": stmt.line,
            "var": stmt.var_name,
            "iterable": expr_to_json(stmt.iterable),
            "body": [stmt_to_json(s) for s in stmt.body],
        }
    if isinstance(stmt, ForLoop):
        return {
            "type": "for",
            "line": stmt.line,
            "init": stmt_to_json(stmt.init) if stmt.init else None,
            "cond": expr_to_json(stmt.cond) if stmt.cond else None,
            "update": stmt_to_json(stmt.update) if stmt.update else None,
            "body": [stmt_to_json(s) for s in stmt.body],
        }
    if isinstance(stmt, ExprStmt):
        return {"type": "expr", "line": stmt.line, "expr": expr_to_json(stmt.expr)}
    if isinstance(stmt, ReturnStmt):
        return {"type": "return", "line": stmt.line, "expr": expr_to_json(stmt.expr) if stmt.expr else None}
    if isinstance(stmt, Break):
        return {"type": "break", "line": stmt.line}
    if isinstance(stmt, Continue):
        return {"type": "continue", "line": stmt.line}
    if isinstance(stmt, Raise):
        return {"type": "raise", "line": stmt.line, "expr": expr_to_json(stmt.expr)}
    if isinstance(stmt, FnDecl):
        return {
            "type": "function",
            "line": stmt.line,
            "name": stmt.name,
            "params": list(stmt.params),
            "body": [stmt_to_json(s) for s in stmt.body],
        }
    raise TypeError(stmt)


def program_to_json(program: Program) -> Dict[str, Any]:
    return {
        "syntax": program.syntax,
        "functions": [f.name for f in program.functions],
        "body": [stmt_to_json(s) for s in program.body],
    }
