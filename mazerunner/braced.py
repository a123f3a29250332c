"""
Primitive-call (JavaScript-flavoured) syntax: tokenizer and parser.

Produces the same AST as the indentation syntax. Operators are mapped to
their canonical spelling on the way in (``&&`` -> ``and``, ``===`` -> ``==``,
``!`` -> ``not``), ``await`` is accepted and dropped, ``x++`` becomes
``x += 1`` and ``new Name(...)`` is an ordinary call.
"""
from __future__ import annotations

import re
from typing import List, Optional

from .errors import ParseError
from .syntax import (
    BRACED,
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
    ParserBase,
    Program,
    Raise,
    ReturnStmt,
    Stmt,
    Token,
    Unary,
    Var,
    WhileLoop,
    unescape_string,
)

KEYWORDS = {
    "let",
    "const",
    "var",
    "function",
    "async",
    "await",
    "if",
    "else",
    "while",
    "for",
    "of",
    "in",
    "return",
    "break",
    "continue",
    "throw",
    "new",
    "true",
    "false",
    "null",
    "undefined",
}

UNSUPPORTED = {
    "class",
    "switch",
    "case",
    "default",
    "do",
    "try",
    "catch",
    "finally",
    "typeof",
    "instanceof",
    "delete",
    "yield",
    "import",
    "export",
    "this",
}

TOKEN_RE = re.compile(
    r"""
    (?P<COMMENT>//[^\n]*|/\*(?:[\s\S]*?\*/)?)
  | (?P<NUMBER>\d+(?:\.\d+)?)
  | (?P<STRING>"(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*')
  | (?P<OP>===|!==|==|!=|<=|>=|&&|\|\||\+\+|--|\+=|-=|\*=|/=|%=|=>|[+\-*/%<>=!?,:;.()\[\]{}])
  | (?P<ID>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<NEWLINE>\n)
  | (?P<SKIP>[ \t\r\f]+)
  | (?P<MISMATCH>.)
    """,
    re.VERBOSE,
)

ASSIGN_OPS = {"=", "+=", "-=", "*=", "/=", "%="}
EQUALITY_OPS = {"===": "==", "==": "==", "!==": "!=", "!=": "!="}
RELATIONAL_OPS = {"<", ">", "<=", ">="}


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    line = 1
    line_start = 0
    pos = 0
    while pos < len(source):
        m = TOKEN_RE.match(source, pos)
        if not m:
            raise ParseError("tokenizer stalled", line, pos - line_start + 1)
        kind = m.lastgroup or "MISMATCH"
        value = m.group(0)
        col = pos - line_start + 1
        tok_line = line
        pos = m.end()
        if "\n" in value:
            line += value.count("\n")
            line_start = m.start() + value.rfind("\n") + 1
        if kind in {"SKIP", "NEWLINE"}:
            continue
        if kind == "COMMENT":
            if value.startswith("/*") and not value.endswith("*/"):
                raise ParseError("unterminated comment", tok_line, col)
            continue
        if kind == "MISMATCH":
            if value in "\"'":
                raise ParseError("unterminated string", tok_line, col)
            if value == "`":
                raise ParseError("template literals are not supported", tok_line, col)
            raise ParseError(f"unexpected character {value!r}", tok_line, col)
        if kind == "ID" and (value in KEYWORDS or value in UNSUPPORTED):
            kind = "KW"
        tokens.append(Token(kind, value, tok_line, col))
    tokens.append(Token("EOF", "", line, pos - line_start + 1))
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
        return Program(BRACED, body)

    def expect_name(self) -> Token:
        # Property names may be reserved words (``map.delete``, ``{ new: 1 }``).
        t = self.cur()
        if t.kind in {"ID", "KW"}:
            self.i += 1
            return t
        return self.expect("ID")

    def expect_semicolon(self) -> None:
        if not self.match("OP", ";"):
            t = self.cur()
            got = "end of input" if t.kind == "EOF" else repr(t.value)
            raise self.error(f"expected ';', got {got}")

    # statements

    def parse_statement(self) -> Optional[Stmt]:
        t = self.cur()
        if self.match("OP", ";"):
            return None
        if t.kind == "OP" and t.value == "{":
            raise self.error("standalone blocks are not supported")
        if t.kind == "KW":
            if t.value in {"async", "function"}:
                return self.parse_function()
            if t.value in {"let", "const", "var"}:
                stmt = self.parse_declaration()
                self.expect_semicolon()
                return stmt
            if t.value == "if":
                return self.parse_if()
            if t.value == "while":
                return self.parse_while()
            if t.value == "for":
                return self.parse_for()
            if t.value == "else":
                raise self.error("'else' without a matching 'if'")
            if t.value == "return":
                self.i += 1
                if self.match("OP", ";"):
                    return ReturnStmt(None, line=t.line)
                expr = self.parse_expr()
                self.expect_semicolon()
                return ReturnStmt(expr, line=t.line)
            if t.value in {"break", "continue"}:
                self.i += 1
                self.expect_semicolon()
                return Break(line=t.line) if t.value == "break" else Continue(line=t.line)
            if t.value == "throw":
                self.i += 1
                expr = self.parse_expr()
                self.expect_semicolon()
                return Raise(expr, line=t.line)
            if t.value in UNSUPPORTED:
                raise self.error(f"'{t.value}' is not supported")
        stmt = self.parse_simple()
        self.expect_semicolon()
        return stmt

    def parse_block(self) -> List[Stmt]:
        self.expect("OP", "{")
        self.depth += 1
        try:
            with self.nested():
                body: List[Stmt] = []
                while not self.match("OP", "}"):
                    if self.at("EOF"):
                        raise self.error("expected '}', got end of input")
                    stmt = self.parse_statement()
                    if stmt is not None:
                        body.append(stmt)
                return body
        finally:
            self.depth -= 1

    def parse_body(self) -> List[Stmt]:
        if self.at_op("{"):
            return self.parse_block()
        self.depth += 1
        try:
            with self.nested():
                stmt = self.parse_statement()
        finally:
            self.depth -= 1
        return [stmt] if stmt is not None else []

    def parse_function(self) -> FnDecl:
        tok = self.cur()
        self.match_kw("async")
        self.expect_kw("function")
        if self.depth:
            raise self.error("functions can only be declared at the top level", tok)
        name = self.expect("ID").value
        self.expect("OP", "(")
        params: List[str] = []
        while not self.match("OP", ")"):
            p = self.expect("ID")
            if p.value in params:
                raise self.error(f"duplicate parameter '{p.value}'", p)
            params.append(p.value)
            if self.match("OP", ")"):
                break
            self.expect("OP", ",")
        body = self.parse_block()
        return FnDecl(name, params, body, line=tok.line)

    def parse_declaration(self) -> Assign:
        tok = self.cur()
        self.i += 1
        if self.at_op("[", "{"):
            raise self.error("destructuring is not supported")
        name = self.expect("ID").value
        expr: Expr = Literal(None)
        if self.match("OP", "="):
            expr = self.parse_expr()
        elif tok.value == "const":
            raise self.error(f"missing initializer in const declaration of '{name}'")
        if self.at_op(","):
            raise self.error("declare one variable per statement")
        return Assign(Var(name), "=", expr, declare=True, line=tok.line)

    def parse_if(self) -> If:
        tok = self.expect_kw("if")
        self.expect("OP", "(")
        cond = self.parse_expr()
        self.expect("OP", ")")
        then_body = self.parse_body()
        else_body: List[Stmt] = []
        if self.match_kw("else"):
            if self.at("KW", "if"):
                else_body = [self.parse_if()]
            else:
                else_body = self.parse_body()
        return If(cond, then_body, else_body, line=tok.line)

    def parse_while(self) -> WhileLoop:
        tok = self.expect_kw("while")
        self.expect("OP", "(")
        cond = self.parse_expr()
        self.expect("OP", ")")
        return WhileLoop(cond, self.parse_body(), line=tok.line)

    def parse_for(self) -> Stmt:
        tok = self.expect_kw("for")
        self.expect("OP", "(")

        decl = self.at("KW", "let") or self.at("KW", "const") or self.at("KW", "var")
        name_at = 1 if decl else 0
        head = self.peek(name_at)
        after = self.peek(name_at + 1)
        if head.kind == "ID" and after.kind == "KW" and after.value in {"of", "in"}:
            if after.value == "in":
                raise self.error("for...in is not supported; use for...of", after)
            self.i += name_at + 2
            iterable = self.parse_expr()
            self.expect("OP", ")")
            return ForEach(head.value, iterable, self.parse_body(), line=tok.line)

        init: Optional[Stmt] = None
        if not self.at_op(";"):
            init = self.parse_declaration() if decl else self.parse_simple()
        self.expect("OP", ";")
        cond = None if self.at_op(";") else self.parse_expr()
        self.expect("OP", ";")
        update = None if self.at_op(")") else self.parse_simple()
        self.expect("OP", ")")
        return ForLoop(init, cond, update, self.parse_body(), line=tok.line)

    def parse_simple(self) -> Stmt:
        t = self.cur()
        if self.at_op("++", "--"):
            self.i += 1
            target = self.parse_postfix()
            self.check_target(target, t)
            return Assign(target, "+=" if t.value == "++" else "-=", Literal(1), line=t.line)

        expr = self.parse_expr()
        if self.at_op(*ASSIGN_OPS):
            op_tok = self.cur()
            self.check_target(expr, op_tok)
            self.i += 1
            value = self.parse_expr()
            if self.at_op("="):
                raise self.error("chained assignment is not supported")
            return Assign(expr, op_tok.value, value, line=t.line)
        if self.at_op("++", "--"):
            op_tok = self.cur()
            self.check_target(expr, op_tok)
            self.i += 1
            return Assign(expr, "+=" if op_tok.value == "++" else "-=", Literal(1), line=t.line)
        return ExprStmt(expr, line=t.line)

    def check_target(self, expr: Expr, tok: Token) -> None:
        if not isinstance(expr, (Var, Index, Attribute)):
            raise self.error("invalid assignment target", tok)

    # expressions

    def parse_expr(self) -> Expr:
        expr = self.parse_or()
        if self.at_op("?"):
            raise self.error("the conditional operator '?:' is not supported")
        if self.at_op("=>"):
            raise self.error("arrow functions are not supported")
        return expr

    def parse_or(self) -> Expr:
        expr = self.parse_and()
        while self.match("OP", "||"):
            expr = Binary(expr, "or", self.parse_and())
        return expr

    def parse_and(self) -> Expr:
        expr = self.parse_equality()
        while self.match("OP", "&&"):
            expr = Binary(expr, "and", self.parse_equality())
        return expr

    def parse_equality(self) -> Expr:
        expr = self.parse_relational()
        while self.at_op(*EQUALITY_OPS):
            op = EQUALITY_OPS[self.expect("OP").value]
            expr = Binary(expr, op, self.parse_relational())
        return expr

    def parse_relational(self) -> Expr:
        expr = self.parse_additive()
        while self.at_op(*RELATIONAL_OPS) or self.at("KW", "in"):
            op = self.cur().value
            self.i += 1
            expr = Binary(expr, op, self.parse_additive())
        return expr

    def parse_additive(self) -> Expr:
        expr = self.parse_multiplicative()
        while self.at_op("+", "-"):
            op = self.expect("OP").value
            expr = Binary(expr, op, self.parse_multiplicative())
        return expr

    def parse_multiplicative(self) -> Expr:
        expr = self.parse_unary()
        while self.at_op("*", "/", "%"):
            op = self.expect("OP").value
            expr = Binary(expr, op, self.parse_unary())
        return expr

    def parse_unary(self) -> Expr:
        with self.nested():
            if self.match("OP", "!"):
                return Unary("not", self.parse_unary())
            if self.match("OP", "-"):
                return Unary("-", self.parse_unary())
            if self.match("OP", "+"):
                return self.parse_unary()
            if self.match_kw("await"):
                return self.parse_unary()
            if self.at_op("++", "--"):
                raise self.error("'++' and '--' are only supported as statements")
            return self.parse_postfix()

    def parse_args(self) -> List[Expr]:
        self.expect("OP", "(")
        args: List[Expr] = []
        while not self.match("OP", ")"):
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
                self.expect("OP", "]")
                expr = Index(expr, index)
            elif self.match("OP", "."):
                name = self.expect_name().value
                if self.at_op("("):
                    expr = MethodCall(expr, name, self.parse_args())
                else:
                    expr = Attribute(expr, name)
            else:
                return expr

    def parse_primary(self) -> Expr:
        t = self.cur()
        if self.match("NUMBER"):
            return Literal(float(t.value) if "." in t.value else int(t.value))
        if self.match("STRING"):
            return Literal(unescape_string(t.value))
        if self.match_kw("true"):
            return Literal(True)
        if self.match_kw("false"):
            return Literal(False)
        if self.match_kw("null") or self.match_kw("undefined"):
            return Literal(None)
        if self.match("ID"):
            return Var(t.value)
        if self.match_kw("new"):
            name = self.expect("ID").value
            args = self.parse_args() if self.at_op("(") else []
            return Call(name, args)
        if self.match("OP", "("):
            expr = self.parse_expr()
            self.expect("OP", ")")
            if self.at_op("=>"):
                raise self.error("arrow functions are not supported")
            return expr
        if self.match("OP", "["):
            items: List[Expr] = []
            while not self.match("OP", "]"):
                items.append(self.parse_expr())
                if self.match("OP", "]"):
                    break
                self.expect("OP", ",")
            return ListLiteral(items)
        if self.match("OP", "{"):
            return self.parse_object()
        if t.kind == "KW" and t.value in {"function", "async"}:
            raise self.error("function expressions are not supported")
        if t.kind == "KW" and t.value in UNSUPPORTED:
            raise self.error(f"'{t.value}' is not supported")
        if t.kind == "EOF":
            raise self.error("unexpected end of input")
        raise self.error(f"unexpected {t.value!r}")

    def parse_object(self) -> DictLiteral:
        items: List[tuple[Expr, Expr]] = []
        while not self.match("OP", "}"):
            t = self.cur()
            if self.match("OP", "["):
                key: Expr = self.parse_expr()
                self.expect("OP", "]")
            elif self.match("STRING"):
                key = Literal(unescape_string(t.value))
            elif self.match("NUMBER"):
                key = Literal(float(t.value) if "." in t.value else int(t.value))
            else:
                name = self.expect_name()
                key = Literal(name.value)
                if name.kind == "ID" and self.at_op(",", "}"):
                    items.append((key, Var(name.value)))
                    if not self.match("OP", ","):
                        self.expect("OP", "}")
                        break
                    continue
            self.expect("OP", ":")
            items.append((key, self.parse_expr()))
            if self.match("OP", "}"):
                break
            self.expect("OP", ",")
        return DictLiteral(items)


def parse_source(source: str) -> Program:
    return Parser(tokenize(source)).parse()
