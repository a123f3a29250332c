import random
import unittest

from mazerunner.braced import parse_source as parse_braced
from mazerunner.engine import run_program
from mazerunner.errors import ParseError
from mazerunner.maze import generate_maze
from mazerunner.normalize import normalize
from mazerunner.syntax import BRACED, INDENTED
from mazerunner.templates import BRACED_BFS, BRACED_WALL_FOLLOWER, INDENTED_BFS, INDENTED_WALL_FOLLOWER
from mazerunner.world import World

from support import CORRIDOR, grid_from_rows


REASSIGN_PROGRAM = r'''
x = 1
x = x + 1
def f(a):
    a = a * 2
    y = a
    y = y - 1
    return y
'''

ELIF_PROGRAM = r'''
if a == 1:
    move_up()
elif a == 2:
    move_down()
elif a == 3:
    move_left()
else:
    move_right()
'''


RESERVED_NAMES_PROGRAM = r'''
new = 2
of = "down"
function = 0
this = ["right", "right"]
new_ = "up"

def step(default):
    if default == "down":
        move_down()
    elif default == "up":
        move_up()
    else:
        move_right()

while function < new:
    step(of)
    function += 1
for var in this:
    step(var)
for last in [new_, new_]:
    step(last)
'''


class NormalizerTests(unittest.TestCase):
    def test_only_first_assignment_declares(self) -> None:
        out = normalize(REASSIGN_PROGRAM)
        self.assertIn("let x = 1;", out)
        self.assertIn("\nx = x + 1;", out)
        self.assertIn("async function f(a) {", out)
        # parameters are already bound
        self.assertIn("    a = a * 2;", out)
        self.assertIn("    let y = a;", out)
        self.assertIn("    y = y - 1;", out)
        self.assertEqual(out.count("let y"), 1)

    def test_else_if_chain(self) -> None:
        out = normalize(ELIF_PROGRAM)
        expected = (
            "if (a === 1) {\n"
            "    await moveUp();\n"
            "} else if (a === 2) {\n"
            "    await moveDown();\n"
            "} else if (a === 3) {\n"
            "    await moveLeft();\n"
            "} else {\n"
            "    await moveRight();\n"
            "}\n"
        )
        self.assertEqual(out, expected)

    def test_nested_blocks_close_in_order(self) -> None:
        source = "while x:\n    if y:\n        for z in zs:\n            move_up()\n    move_down()\nmove_left()\n"
        out = normalize(source)
        expected = (
            "while (x) {\n"
            "    if (y) {\n"
            "        for (const z of zs) {\n"
            "            await moveUp();\n"
            "        }\n"
            "    }\n"
            "    await moveDown();\n"
            "}\n"
            "await moveLeft();\n"
        )
        self.assertEqual(out, expected)

    def test_builtin_and_method_rewrites(self) -> None:
        source = (
            "s = str(n)\n"
            "k = len(queue)\n"
            "seen = {key}\n"
            "empty = set()\n"
            "m = dict()\n"
            "xs = list(seen)\n"
            "q = abs(a) + max(a, b) + int(c)\n"
            "h = a // 2\n"
            "queue.append(1)\n"
            "queue.insert(0, 2)\n"
            "first = queue.pop(0)\n"
            "print(s)\n"
        )
        out = normalize(source)
        for fragment in (
            "let s = String(n);",
            "let k = queue.length;",
            "let seen = new Set([key]);",
            "let empty = new Set();",
            "let m = new Map();",
            "let xs = Array.from(seen);",
            "let q = Math.abs(a) + Math.max(a, b) + Math.trunc(c);",
            "let h = Math.floor(a / 2);",
            "queue.push(1);",
            "queue.unshift(2);",
            "let first = queue.shift();",
            "console.log(s);",
        ):
            self.assertIn(fragment, out)

    def test_logic_literals_and_membership(self) -> None:
        source = (
            "a = True and not False or None is None\n"
            "b = key not in visited\n"
            "c = key in visited\n"
            "d = x != y\n"
            "raise ValueError('bad')\n"
        )
        out = normalize(source)
        self.assertIn("let a = true && !false || null === null;", out)
        self.assertIn("let b = !visited.has(key);", out)
        self.assertIn("let c = visited.has(key);", out)
        self.assertIn("let d = x !== y;", out)
        self.assertIn('throw new Error("bad");', out)

    def test_capabilities_and_user_calls(self) -> None:
        source = "def go():\n    move_up()\npos = get_position()\nw = is_wall(1, 2)\ne = is_end(1, 2)\ngo()\n"
        out = normalize(source)
        self.assertIn("async function go() {", out)
        self.assertIn("let pos = getPosition();", out)
        self.assertIn("let w = isWall(1, 2);", out)
        self.assertIn("let e = isEnd(1, 2);", out)
        self.assertIn("\nawait go();", out)

    def test_precedence_is_preserved(self) -> None:
        out = normalize("x = (a + b) * c\ny = -(-a)\nz = not (a and b)\nw = (a or b) and c\n")
        self.assertIn("let x = (a + b) * c;", out)
        self.assertIn("let y = -(-a);", out)
        self.assertIn("let z = !(a && b);", out)
        self.assertIn("let w = (a || b) && c;", out)

    def test_comments_carried_over_and_output_parses(self) -> None:
        for source in (INDENTED_BFS, INDENTED_WALL_FOLLOWER, REASSIGN_PROGRAM, ELIF_PROGRAM):
            out = normalize(source)
            self.assertNotIn("#", out)
            parse_braced(out)
        self.assertTrue(normalize(INDENTED_BFS).startswith("// Breadth-first search from the start"))
        self.assertIn("// Keep a hand on the right-hand wall", normalize(INDENTED_WALL_FOLLOWER))

    def test_comment_placement(self) -> None:
        out = normalize("x = 1  # trailing\nif x:\n    # inside\n    move_up()\n# last\n")
        self.assertEqual(
            out,
            "let x = 1;\n"
            "if (x) {\n"
            "    // inside\n"
            "    await moveUp();\n"
            "}\n"
            "// last\n",
        )

    def test_reserved_names_are_renamed(self) -> None:
        out = normalize(RESERVED_NAMES_PROGRAM)
        self.assertIn("let new__ = 2;", out)
        self.assertIn("let new_ = \"up\";", out)
        self.assertIn("async function step(default_) {", out)
        self.assertIn("for (const var_ of this_) {", out)
        self.assertIn("while (function_ < new__) {", out)
        parse_braced(out)

    def test_invalid_source_raises(self) -> None:
        with self.assertRaises(ParseError):
            normalize("if x:\nmove_up()\n")

    def test_deeply_nested_source_raises(self) -> None:
        for source in (
            "x = " + "(" * 2000 + "1" + ")" * 2000 + "\n",
            "x = " + " + ".join(["1"] * 5000) + "\n",
        ):
            with self.subTest(head=source[:8]):
                with self.assertRaises(ParseError):
                    normalize(source)


class NormalizedRunTests(unittest.TestCase):
    def run_on(self, grid, source, syntax):
        return run_program(source, syntax, World(grid))

    def test_templates_match_hand_written_counterparts(self) -> None:
        rng = random.Random(2024)
        pairs = ((INDENTED_BFS, BRACED_BFS), (INDENTED_WALL_FOLLOWER, BRACED_WALL_FOLLOWER))
        for size in (5, 11, 12, 25):
            for _ in range(3):
                grid = generate_maze(size, rng)
                for indented_src, braced_src in pairs:
                    direct = self.run_on(grid, indented_src, INDENTED)
                    normalized = self.run_on(grid, normalize(indented_src), BRACED)
                    hand = self.run_on(grid, braced_src, BRACED)
                    self.assertTrue(direct.won, direct)
                    self.assertEqual(direct, normalized)
                    self.assertEqual(normalized, hand)
                    self.assertEqual(direct.trail, hand.trail)
                    self.assertEqual(direct.message, hand.message)

    def test_reserved_names_run_the_same(self) -> None:
        grid = grid_from_rows(CORRIDOR)
        direct = self.run_on(grid, RESERVED_NAMES_PROGRAM, INDENTED)
        normalized = self.run_on(grid, normalize(RESERVED_NAMES_PROGRAM), BRACED)
        self.assertTrue(direct.won, direct)
        self.assertEqual(direct, normalized)
        self.assertEqual(direct.trail, normalized.trail)


if __name__ == "__main__":
    unittest.main()
