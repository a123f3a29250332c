"""
Indentation syntax: tokenizer and recursive-descent parser.

The tokenizer is line oriented. It keeps a stack of indentation widths
(starting at ``[0]``) and turns changes in leading whitespace into
``INDENT``/``DEDENT`` tokens, so the parser sees explicit block delimiters.
Lines inside open brackets are joined, blank and comment-only lines are
skipped, and every remaining indentation level is closed at end of input.
"""
from __future__ import annotations

import re
from typing import List, Optional

from .errors import ParseError
from .syntax import (
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
    If,
    Index,
    ListLiteral,
    Literal,
    MethodCall,
    ParserBase,
    Program,
    Raise,
    ReturnStmt,
    SetLiteral,
    Stmt,
    Token,
    Unary,
    Var,
    WhileLoop,
    unescape_string,
)

KEYWORDS = {
    "def",
    "if",
    "elif",
    "else",
    "while",
    "for",
    "in",
    "not",
    "and",
    "or",
    "is",
    "return",
    "pass",
    "break",
    "continue",
    "raise",
    "True",
    "False",
    "None",
}

# Python keywords the sandbox language refuses outright.
UNSUPPORTED = {
    "lambda",
    "class",
    "import",
    "from",
    "global",
    "nonlocal",
    "try",
    "except",
    "finally",
    "with",
    "yield",
    "del",
    "assert",
    "async",
    "await",
}

TOKEN_RE = re.compile(
    r"""
    (?P<COMMENT>\#.*)
  | (?P<NUMBER>\d+(?:\.\d+)?)
  | (?P<STRING>"(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*')
  | (?P<OP>//=|//|\+=|-=|\*=|/=|%=|==|!=|<=|>=|[+\-*/%<>=,:.()\[\]{}])
  | (?P<ID>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<SKIP>[ \t\r\f]+)
  | (?P<MISMATCH>.)
    """,
    re.VERBOSE,
)

OPENERS = {"(": ")", "[": "]", "{": "}"}
CLOSERS = {")", "]", "}"}

ASSIGN_OPS = {"=", "+=", "-=", "*=", "/=", "//=", "%="}
COMPARE_OPS = {"==", "!=", "<", ">", "<=", ">="}


def _indent_width(line: str) -> int:
    expanded = line.expandtabs(8)
    return len(expanded) - len(expanded.lstrip())


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    indents = [0]
    brackets: List[Token] = []
    lineno = 0
    for lineno, line in enumerate(source.splitlines(), start=1):
        if not brackets:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            width = _indent_width(line)
            if width > indents[-1]:
                indents.append(width)
                tokens.append(Token("INDENT", "", lineno, 1))
            else:
                while width < indents[-1]:
                    indents.pop()
                    tokens.append(Token("DEDENT", "", lineno, 1))
                if width != indents[-1]:
                    raise ParseError("unindent does not match any outer indentation level", lineno, 1)

        pos = len(line) - len(line.lstrip())
        while pos < len(line):
            m = TOKEN_RE.match(line, pos)
            if not m:
                raise ParseError("tokenizer stalled", lineno, pos + 1)
            kind = m.lastgroup or "MISMATCH"
            value = m.group(0)
            col = pos + 1
            pos = m.end()
            if kind in {"SKIP", "COMMENT"}:
                continue
            if kind == "MISMATCH":
                if value in "\"'":
                    raise ParseError("unterminated string", lineno, col)
                raise ParseError(f"unexpected character {value!r}", lineno, col)
            if kind == "ID" and (value in KEYWORDS or value in UNSUPPORTED):
                kind = "KW"
            tok = Token(kind, value, lineno, col)
            if kind == "OP" and value in OPENERS:
                brackets.append(tok)
            elif kind == "OP" and value in CLOSERS:
                if not brackets or OPENERS[brackets[-1].value] != value:
                    raise ParseError(f"unmatched {value!r}", lineno, col)
                brackets.pop()
            tokens.append(tok)

        if not brackets and tokens and tokens[-1].kind not in {"NEWLINE", "INDENT", "DEDENT"}:
            tokens.append(Token("NEWLINE", "\n", lineno, len(line) + 1))

    if brackets:
        opener = brackets[-1]
        raise ParseError(f"{opener.value!r} was never closed", opener.line, opener.col)
    end_line = lineno + 1
    while len(indents) > 1:
        indents.pop()
        tokens.append(Token("DEDENT", "", end_line, 1))
    tokens.append(Token("EOF", "", end_line, 1))
    return tokens


class Parser(ParserBase):
    def __init__(self, tokens):
        super().__init__(tokens)
        self.depth = 0

    def parse(self) -> Program:
        body: List[Stmt] = []
        while not self.at("EOF"):
            stmt = self.parse_statement()
            if stmt is not None:
                body.append(stmt)
        return Program(INDENTED, body)

    def unsupported(self, tok: Token) -> ParseError:
        return self.error(f"'{tok.value}' is not supported", tok)

    def expect_newline(self) -> None:
        if not self.match("NEWLINE"):
            t = self.cur()
            raise self.error(f"expected end of line, got {t.value!r}" if t.value.strip() else "expected end of line")

    def parse_statement(self) -> Optional[Stmt]:
        t = self.cur()
        if t.kind == "INDENT":
            raise self.error("unexpected indent")
        if t.kind == "KW":
            if t.value == "def":
                return self.parse_def()
            if t.value == "if":
                return self.parse_if("if")
            if t.value == "while":
                return self.parse_while()
            if t.value == "for":
                return self.parse_for()
            if t.value in {"elif", "else"}:
                raise self.error(f"'{t.value}' without a matching 'if'")
        stmt = self.parse_simple()
        self.expect_newline()
        return stmt

    def parse_block(self) -> List[Stmt]:
        self.depth += 1
        try:
            with self.nested():
                return self._parse_block_body()
        finally:
            self.depth -= 1

    def _parse_block_body(self) -> List[Stmt]:
        if not self.match("NEWLINE"):
            stmt = self.parse_simple()
            self.expect_newline()
            return [stmt] if stmt is not None else []
        if not self.match("INDENT"):
            raise self.error("expected an indented block")
        body: List[Stmt] = []
        while not self.match("DEDENT"):
            stmt = self.parse_statement()
            if stmt is not None:
                body.append(stmt)
        return body

    def parse_def(self) -> FnDecl:
        tok = self.expect_kw("def")
        if self.depth:
            raise self.error("functions can only be defined at the top level", tok)
        name = self.expect("ID").value
        self.expect("OP", "(")
        params: List[str] = []
        if not self.match("OP", ")"):
            while True:
                p = self.expect("ID")
                if p.value in params:
                    raise self.error(f"duplicate parameter '{p.value}'", p)
                params.append(p.value)
                if self.match("OP", ")"):
                    break
                self.expect("OP", ",")
                if self.match("OP", ")"):
                    break
        self.expect("OP", ":")
        body = self.parse_block()
        return FnDecl(name, params, body, line=tok.line)

    def parse_if(self, keyword: str) -> If:
        tok = self.expect_kw(keyword)
        cond = self.parse_expr()
        self.expect("OP", ":")
        then_body = self.parse_block()
        else_body: List[Stmt] = []
        if self.at("KW", "elif"):
            else_body = [self.parse_if("elif")]
        elif self.match_kw("else"):
            self.expect("OP", ":")
            else_body = self.parse_block()
        return If(cond, then_body, else_body, line=tok.line)

    def parse_while(self) -> WhileLoop:
        tok = self.expect_kw("while")
        cond = self.parse_expr()
        self.expect("OP", ":")
        return WhileLoop(cond, self.parse_block(), line=tok.line)

    def parse_for(self) -> ForEach:
        tok = self.expect_kw("for")
        var_name = self.expect("ID").value
        if self.at_op(","):
            raise self.error("tuple unpacking is not supported")
        self.expect_kw("in")
        iterable = self.parse_expr()
        self.expect("OP", ":")
        return ForEach(var_name, iterable, self.parse_block(), line=tok.line)

    def parse_simple(self) -> Optional[Stmt]:
        t = self.cur()
        if self.match_kw("pass"):
            return None
        if self.match_kw("break"):
            return Break(line=t.line)
        if self.match_kw("continue"):
            return Continue(line=t.line)
        if self.match_kw("return"):
            if self.at("NEWLINE"):
                return ReturnStmt(None, line=t.line)
            return ReturnStmt(self.parse_expr(), line=t.line)
        if self.match_kw("raise"):
            return Raise(self.parse_expr(), line=t.line)
        if t.kind == "KW" and t.value in UNSUPPORTED:
            raise self.unsupported(t)

        expr = self.parse_expr()
        if self.at_op(*ASSIGN_OPS):
            op_tok = self.cur()
            if not isinstance(expr, (Var, Index, Attribute)):
                raise self.error("cannot assign to expression", op_tok)
            self.i += 1
            value = self.parse_expr()
            if self.at_op("="):
                raise self.error("chained assignment is not supported")
            return Assign(expr, op_tok.value, value, line=t.line)
        if self.at_op(","):
            raise self.error("tuples are not supported")
        return ExprStmt(expr, line=t.line)

    def parse_expr(self) -> Expr:
        return self.parse_or()

    def parse_or(self) -> Expr:
        expr = self.parse_and()
        while self.match_kw("or"):
            expr = Binary(expr, "or", self.parse_and())
        return expr

    def parse_and(self) -> Expr:
        expr = self.parse_not()
        while self.match_kw("and"):
            expr = Binary(expr, "and", self.parse_not())
        return expr

    def parse_not(self) -> Expr:
        if self.match_kw("not"):
            with self.nested():
                return Unary("not", self.parse_not())
        return self.parse_comparison()

    def at_comparison(self) -> bool:
        t = self.cur()
        if t.kind == "OP":
            return t.value in COMPARE_OPS
        if t.kind == "KW":
            return t.value in {"in", "is"} or (t.value == "not" and self.peek().kind == "KW" and self.peek().value == "in")
        return False

    def parse_comparison_op(self) -> str:
        t = self.cur()
        self.i += 1
        if t.kind == "OP":
            return t.value
        if t.value == "not":
            self.expect_kw("in")
            return "not in"
        if t.value == "is":
            return "is not" if self.match_kw("not") else "is"
        return t.value

    def parse_comparison(self) -> Expr:
        expr = self.parse_sum()
        if not self.at_comparison():
            return expr
        op = self.parse_comparison_op()
        expr = Binary(expr, op, self.parse_sum())
        if self.at_comparison():
            raise self.error("chained comparisons are not supported; combine them with 'and'")
        return expr

    def parse_sum(self) -> Expr:
        expr = self.parse_term()
        while self.at_op("+", "-"):
            op = self.expect("OP").value
            expr = Binary(expr, op, self.parse_term())
        return expr

    def parse_term(self) -> Expr:
        expr = self.parse_unary()
        while self.at_op("*", "/", "//", "%"):
            op = self.expect("OP").value
            expr = Binary(expr, op, self.parse_unary())
        return expr

    def parse_unary(self) -> Expr:
        with self.nested():
            if self.match("OP", "-"):
                return Unary("-", self.parse_unary())
            if self.match("OP", "+"):
                return self.parse_unary()
            return self.parse_postfix()

    def parse_args(self) -> List[Expr]:
        self.expect("OP", "(")
        args: List[Expr] = []
        while not self.match("OP", ")"):
            if self.at("ID") and self.peek().kind == "OP" and self.peek().value == "=":
                raise self.error("keyword arguments are not supported")
            args.append(self.parse_expr())
            if self.match("OP", ")"):
                break
            self.expect("OP", ",")
        return args

    def parse_postfix(self) -> Expr:
        expr = self.parse_primary()
        while True:
            if self.at_op("("):
                if not isinstance(expr, Var):
                    raise self.error("only named functions can be called")
                expr = Call(expr.name, self.parse_args())
            elif self.match("OP", "["):
                index = self.parse_expr()
                if self.at_op(":"):
                    raise self.error("slices are not supported")
                self.expect("OP", "]")
                expr = Index(expr, index)
            elif self.match("OP", "."):
                name = self.expect("ID").value
                if self.at_op("("):
                    expr = MethodCall(expr, name, self.parse_args())
                else:
                    expr = Attribute(expr, name)
            else:
                return expr

    def parse_items(self, closer: str, first: Optional[Expr] = None) -> List[Expr]:
        items: List[Expr] = [] if first is None else [first]
        if first is not None and not self.match("OP", ","):
            self.expect("OP", closer)
            return items
        while not self.match("OP", closer):
            items.append(self.parse_expr())
            if self.at("KW", "for"):
                raise self.error("comprehensions are not supported")
            if self.match("OP", closer):
                break
            self.expect("OP", ",")
        return items

    def parse_primary(self) -> Expr:
        t = self.cur()
        if self.match("NUMBER"):
            return Literal(float(t.value) if "." in t.value else int(t.value))
        if self.match("STRING"):
            return Literal(unescape_string(t.value))
        if self.match_kw("True"):
            return Literal(True)
        if self.match_kw("False"):
            return Literal(False)
        if self.match_kw("None"):
            return Literal(None)
        if self.match("ID"):
            return Var(t.value)
        if self.match("OP", "("):
            expr = self.parse_expr()
            if self.at_op(","):
                raise self.error("tuples are not supported")
            self.expect("OP", ")")
            return expr
        if self.match("OP", "["):
            return ListLiteral(self.parse_items("]"))
        if self.match("OP", "{"):
            return self.parse_braces()
        if t.kind == "KW" and t.value in UNSUPPORTED:
            raise self.unsupported(t)
        if t.kind == "EOF":
            raise self.error("unexpected end of input")
        if t.kind in {"NEWLINE", "INDENT", "DEDENT"}:
            raise self.error("expected an expression")
        raise self.error(f"unexpected {t.value!r}")

    def parse_braces(self) -> Expr:
        if self.match("OP", "}"):
            return DictLiteral([])
        first = self.parse_expr()
        if not self.match("OP", ":"):
            if self.at("KW", "for"):
                raise self.error("comprehensions are not supported")
            return SetLiteral(self.parse_items("}", first))
        items = [(first, self.parse_expr())]
        while not self.match("OP", "}"):
            self.expect("OP", ",")
            if self.match("OP", "}"):
                break
            key = self.parse_expr()
            self.expect("OP", ":")
            items.append((key, self.parse_expr()))
        return DictLiteral(items)


def parse_source(source: str) -> Program:
    return Parser(tokenize(source)).parse()
