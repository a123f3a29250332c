import unittest

from mazerunner.errors import ParseError
from mazerunner.indented import parse_source, tokenize
from mazerunner.syntax import (
    Assign,
    Binary,
    Call,
    DictLiteral,
    FnDecl,
    ForEach,
    If,
    ListLiteral,
    SetLiteral,
    Unary,
    WhileLoop,
    program_to_json,
)
from mazerunner.templates import INDENTED_BFS, INDENTED_WALL_FOLLOWER


ELIF_PROGRAM = r'''
if a == 1:
    move_up()
elif a == 2:
    move_down()
else:
    move_left()
'''


class TokenizerTests(unittest.TestCase):
    def test_indent_and_dedent_tokens(self) -> None:
        kinds = [t.kind for t in tokenize("if x:\n    y = 1\n    if y:\n        z = 2\nw = 3\n")]
        self.assertEqual(kinds.count("INDENT"), 2)
        self.assertEqual(kinds.count("DEDENT"), 2)
        self.assertEqual(kinds[-1], "EOF")

    def test_remaining_levels_closed_at_end(self) -> None:
        kinds = [t.kind for t in tokenize("while x:\n    while y:\n        z = 1")]
        self.assertEqual(kinds[-3:], ["DEDENT", "DEDENT", "EOF"])

    def test_blank_and_comment_lines_are_skipped(self) -> None:
        kinds = [t.kind for t in tokenize("# header\n\nx = 1  # trailing\n\n   # indented comment\ny = 2\n")]
        self.assertNotIn("INDENT", kinds)
        self.assertEqual(kinds.count("NEWLINE"), 2)

    def test_brackets_join_lines(self) -> None:
        program = parse_source("moves = [\n    1,\n        2,\n]\nx = 3\n")
        self.assertEqual(len(program.body), 2)
        self.assertIsInstance(program.body[0].expr, ListLiteral)
        self.assertEqual(program.body[1].line, 5)

    def test_bad_dedent_reports_line(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            tokenize("if x:\n        y = 1\n    z = 2\n")
        self.assertEqual(ctx.exception.line, 3)

    def test_unclosed_bracket(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            tokenize("x = [1,\ny = 2\n")
        self.assertEqual(ctx.exception.line, 1)

    def test_unterminated_string(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            tokenize('x = 1\ny = "abc\n')
        self.assertEqual(ctx.exception.line, 2)


class ParserTests(unittest.TestCase):
    def test_elif_chain_nests_in_else(self) -> None:
        program = parse_source(ELIF_PROGRAM)
        top = program.body[0]
        self.assertIsInstance(top, If)
        self.assertEqual(top.line, 2)
        inner = top.else_body[0]
        self.assertIsInstance(inner, If)
        self.assertEqual(inner.line, 4)
        self.assertIsInstance(inner.else_body[0].expr, Call)
        self.assertEqual(inner.else_body[0].expr.name, "move_left")

    def test_operator_precedence(self) -> None:
        expr = parse_source("x = not a or b and c + 1 * 2 > 3\n").body[0].expr
        self.assertIsInstance(expr, Binary)
        self.assertEqual(expr.op, "or")
        self.assertIsInstance(expr.left, Unary)
        self.assertEqual(expr.right.op, "and")
        self.assertEqual(expr.right.right.op, ">")
        self.assertEqual(expr.right.right.left.op, "+")
        self.assertEqual(expr.right.right.left.right.op, "*")

    def test_membership_and_identity_operators(self) -> None:
        body = parse_source("a = x not in y\nb = x is not None\nc = x in y\n").body
        self.assertEqual([s.expr.op for s in body], ["not in", "is not", "in"])

    def test_literals(self) -> None:
        body = parse_source('a = {"x": 1, "y": 2}\nb = {1, 2}\nc = {}\nd = 1.5\n').body
        self.assertIsInstance(body[0].expr, DictLiteral)
        self.assertIsInstance(body[1].expr, SetLiteral)
        self.assertIsInstance(body[2].expr, DictLiteral)
        self.assertEqual(body[3].expr.value, 1.5)

    def test_compound_assignment_and_same_line_blocks(self) -> None:
        body = parse_source("while i < 3: i += 1\nfor x in xs: total //= 2\n").body
        self.assertIsInstance(body[0], WhileLoop)
        self.assertEqual(body[0].body[0].op, "+=")
        self.assertIsInstance(body[1], ForEach)
        self.assertEqual(body[1].body[0].op, "//=")

    def test_pass_produces_empty_body(self) -> None:
        fn = parse_source("def f():\n    pass\n").body[0]
        self.assertIsInstance(fn, FnDecl)
        self.assertEqual(fn.body, [])

    def test_templates_parse(self) -> None:
        bfs = parse_source(INDENTED_BFS)
        self.assertEqual([f.name for f in bfs.functions], ["solve"])
        follower = parse_source(INDENTED_WALL_FOLLOWER)
        self.assertEqual([f.name for f in follower.functions], ["step_towards", "open_towards"])
        self.assertIsInstance(follower.body[0], Assign)

    def test_ir_dump(self) -> None:
        ir = program_to_json(parse_source(ELIF_PROGRAM))
        self.assertEqual(ir["syntax"], "indented")
        self.assertEqual(ir["body"][0]["type"], "if")
        self.assertEqual(ir["body"][0]["else"][0]["type"], "if")

    def assertParseErrorAt(self, source: str, line: int) -> ParseError:
        with self.assertRaises(ParseError) as ctx:
            parse_source(source)
        self.assertEqual(ctx.exception.line, line, str(ctx.exception))
        return ctx.exception

    def test_unexpected_indent(self) -> None:
        err = self.assertParseErrorAt("x = 1\n    y = 2\n", 2)
        self.assertIn("unexpected indent", err.message)

    def test_missing_colon(self) -> None:
        self.assertParseErrorAt("x = 1\nif x\n    y = 2\n", 2)

    def test_missing_block(self) -> None:
        self.assertParseErrorAt("if x:\ny = 2\n", 2)

    def test_chained_comparison_rejected(self) -> None:
        err = self.assertParseErrorAt("x = 0\nok = 1 < x < 3\n", 2)
        self.assertIn("chained", err.message)

    def test_unsupported_constructs_rejected(self) -> None:
        self.assertParseErrorAt("f = lambda: 1\n", 1)
        self.assertParseErrorAt("x = 1\nimport os\n", 2)
        self.assertParseErrorAt("class A:\n    pass\n", 1)
        self.assertParseErrorAt("a, b = 1, 2\n", 1)
        self.assertParseErrorAt("xs = [x for x in ys]\n", 1)
        self.assertParseErrorAt("x = y[1:2]\n", 1)
        self.assertParseErrorAt("f(x=1)\n", 1)

    def test_nested_function_rejected(self) -> None:
        self.assertParseErrorAt("def f():\n    def g():\n        pass\n", 2)
        self.assertParseErrorAt("if x:\n    def g():\n        pass\n", 2)

    def test_else_without_if(self) -> None:
        self.assertParseErrorAt("x = 1\nelse:\n    x = 2\n", 2)

    def test_nesting_limit(self) -> None:
        parse_source("x = " + "(" * 30 + "1" + ")" * 30 + "\n")
        err = self.assertParseErrorAt("x = " + "(" * 200 + "1" + ")" * 200 + "\n", 1)
        self.assertIn("nested more than", err.message)
        self.assertParseErrorAt("x = " + "not " * 200 + "y\n", 1)
        self.assertParseErrorAt("x = " + "[" * 200 + "]" * 200 + "\n", 1)
        blocks = "".join(" " * i + "if x:\n" for i in range(60)) + " " * 60 + "pass\n"
        with self.assertRaises(ParseError) as ctx:
            parse_source(blocks)
        self.assertIn("nested more than", ctx.exception.message)


if __name__ == "__main__":
    unittest.main()
