import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path

from mazerunner.cli import main
from mazerunner.templates import get_template


def run_cli(*argv: str):
    out, err = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        code = main(list(argv))
    return code, out.getvalue(), err.getvalue()


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def write(self, name: str, text: str) -> str:
        path = self.dir / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    def test_generate_json(self) -> None:
        code, out, _ = run_cli("generate", "--size", "9", "--seed", "3", "--json")
        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(data["size"], 9)
        self.assertEqual(data["start"], [1, 1])
        self.assertEqual(len(data["grid"]), 9)
        _, again, _ = run_cli("generate", "--size", "9", "--seed", "3", "--json")
        self.assertEqual(out, again)

    def test_generate_text_uses_level_size(self) -> None:
        code, out, _ = run_cli("generate", "--level", "2", "--seed", "1")
        self.assertEqual(code, 0)
        self.assertEqual(len(out.splitlines()), 14)

    def test_template_prints_program(self) -> None:
        code, out, _ = run_cli("template", "bfs", "--syntax", "braced")
        self.assertEqual(code, 0)
        self.assertEqual(out, get_template("bfs", "braced"))

    def test_run_template_wins(self) -> None:
        code, out, _ = run_cli("run", "--template", "bfs", "--size", "11", "--seed", "5", "-q")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["outcome"], "win")

    def test_run_file_that_does_not_finish(self) -> None:
        path = self.write("idle.py", "x = 1\n")
        code, out, _ = run_cli("run", path, "--seed", "5", "-q")
        self.assertEqual(code, 1)
        self.assertEqual(json.loads(out)["outcome"], "failed")

    def test_lint(self) -> None:
        good = self.write("good.js", "await moveDown();\n")
        code, out, _ = run_cli("lint", good)
        self.assertEqual(code, 0)
        self.assertIn("braced", out)

        bad = self.write("bad.py", "x = 1\nif x\n    move_up()\n")
        code, _, err = run_cli("lint", bad)
        self.assertEqual(code, 1)
        self.assertIn(f"{bad}:2:", err)

    def test_deeply_nested_source_is_reported(self) -> None:
        chain = self.write("chain.py", "x = " + " + ".join(["1"] * 5000) + "\n")
        parens = self.write("parens.py", "x = " + "(" * 2000 + "1" + ")" * 2000 + "\n")
        for argv in (("lint", chain), ("dump", chain), ("normalize", chain), ("lint", parens)):
            with self.subTest(argv=argv):
                code, _, err = run_cli(*argv)
                self.assertEqual(code, 1)
                self.assertIn("nested", err)
                self.assertNotIn("Traceback", err)

    def test_lint_needs_known_suffix(self) -> None:
        path = self.write("prog.txt", "x = 1\n")
        code, _, err = run_cli("lint", path)
        self.assertEqual(code, 2)
        self.assertIn("--syntax", err)
        self.assertEqual(run_cli("lint", path, "--syntax", "indented")[0], 0)

    def test_dump_instructions(self) -> None:
        path = self.write("prog.py", "def f(a):\n    return a\nf(1)\n")
        code, out, _ = run_cli("dump", path, "--instructions")
        self.assertEqual(code, 0)
        self.assertIn("== <main>()", out)
        self.assertIn("== f(a)", out)

    def test_normalize(self) -> None:
        path = self.write("prog.py", "x = 1\nmove_up()\n")
        code, out, _ = run_cli("normalize", path)
        self.assertEqual(code, 0)
        self.assertEqual(out, "let x = 1;\nawait moveUp();\n")

    def test_level_reset(self) -> None:
        level_file = self.dir / "state" / "level"
        level_file.parent.mkdir()
        level_file.write_text("4\n", encoding="utf-8")
        code, out, _ = run_cli("level", "--level-file", str(level_file))
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["level"], 4)
        self.assertEqual(json.loads(out)["size"], 18)
        code, out, _ = run_cli("level", "--level-file", str(level_file), "--reset")
        self.assertEqual(json.loads(out)["level"], 1)
        self.assertEqual(level_file.read_text(encoding="utf-8").strip(), "1")


if __name__ == "__main__":
    unittest.main()
