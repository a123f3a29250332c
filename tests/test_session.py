import asyncio
import random
import tempfile
import unittest
from pathlib import Path

from mazerunner.config import MOVE_DELAY_SECONDS, STEP_BUDGET, Settings, load_settings
from mazerunner.engine import RunStatus
from mazerunner.errors import SessionError
from mazerunner.session import Controller, FileLevelStore, MemoryLevelStore, Session, load_session
from mazerunner.syntax import BRACED, INDENTED
from mazerunner.templates import BRACED_BFS, INDENTED_BFS


class SessionTests(unittest.TestCase):
    def test_size_grows_with_level_and_caps(self) -> None:
        self.assertEqual(Session(1).size, 12)
        self.assertEqual(Session(2).size, 14)
        self.assertEqual(Session(7).size, 24)
        self.assertEqual(Session(8).size, 25)
        self.assertEqual(Session(100).size, 25)

    def test_advanced_is_a_new_value(self) -> None:
        s = Session(3)
        nxt = s.advanced()
        self.assertEqual(s.level, 3)
        self.assertEqual(nxt.level, 4)

    def test_invalid_level(self) -> None:
        with self.assertRaises(ValueError):
            Session(0)


class LevelStoreTests(unittest.TestCase):
    def test_file_store_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            store = FileLevelStore(Path(td) / "nested" / "level")
            self.assertIsNone(store.read())
            store.write(4)
            self.assertEqual(store.path.read_text(encoding="utf-8").strip(), "4")
            self.assertEqual(FileLevelStore(store.path).read(), 4)

    def test_file_store_ignores_garbage(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "level"
            path.write_text("not a number", encoding="utf-8")
            with self.assertLogs("mazerunner.session", level="WARNING"):
                self.assertIsNone(FileLevelStore(path).read())
            self.assertEqual(load_session(FileLevelStore(path)), Session(1))

    def test_file_store_ignores_binary_content(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "level"
            path.write_bytes(b"\xff\xfe\x00")
            with self.assertLogs("mazerunner.session", level="WARNING"):
                self.assertIsNone(FileLevelStore(path).read())
                self.assertEqual(load_session(FileLevelStore(path)), Session(1))

    def test_file_store_ignores_directory_at_path(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "level"
            path.mkdir()
            with self.assertLogs("mazerunner.session", level="WARNING"):
                self.assertIsNone(FileLevelStore(path).read())
                self.assertEqual(load_session(FileLevelStore(path)), Session(1))

    def test_negative_level_falls_back(self) -> None:
        with self.assertLogs("mazerunner.session", level="WARNING"):
            self.assertEqual(load_session(MemoryLevelStore(-3)), Session(1))


class ControllerTests(unittest.TestCase):
    def make(self, level=None) -> Controller:
        return Controller(MemoryLevelStore(level), settings=Settings(move_delay=0), rng=random.Random(8))

    def test_initial_state(self) -> None:
        c = self.make(3)
        self.assertEqual(c.level, 3)
        self.assertEqual(c.grid.size, 16)
        self.assertEqual(c.status, RunStatus.IDLE)
        self.assertIsNone(c.result)

    def test_win_then_advance(self) -> None:
        c = self.make()
        result = c.run(INDENTED_BFS, INDENTED)
        self.assertTrue(result.won)
        self.assertEqual(c.status, RunStatus.WIN)
        c.advance_level()
        self.assertEqual(c.level, 2)
        self.assertEqual(c.grid.size, 14)
        self.assertEqual(c.store.read(), 2)
        self.assertEqual(c.status, RunStatus.IDLE)
        self.assertEqual(len(c.world.trail), 1)

    def test_advance_requires_win(self) -> None:
        c = self.make()
        with self.assertRaises(SessionError):
            c.advance_level()
        c.run("move_right()\n", INDENTED)
        self.assertEqual(c.status, RunStatus.FAILED)
        with self.assertRaises(SessionError):
            c.advance_level()
        self.assertEqual(c.level, 1)

    def test_regenerate_keeps_level(self) -> None:
        c = self.make(2)
        before = c.grid.cells.tobytes()
        layouts = {before}
        for _ in range(5):
            c.regenerate()
            layouts.add(c.grid.cells.tobytes())
        self.assertEqual(c.level, 2)
        self.assertGreater(len(layouts), 1)

    def test_reset_run_clears_trail_but_keeps_maze(self) -> None:
        c = self.make()
        c.run(INDENTED_BFS, INDENTED)
        grid = c.grid
        self.assertGreater(len(c.world.trail), 1)
        c.reset_run()
        self.assertIs(c.grid, grid)
        self.assertEqual(len(c.world.trail), 1)
        self.assertEqual(c.world.cursor, grid.start)
        self.assertEqual(c.status, RunStatus.IDLE)

    def test_errored_run_is_recorded(self) -> None:
        c = self.make()
        result = c.run("raise Exception('nope')\n", INDENTED)
        self.assertEqual(result.outcome, RunStatus.ERRORED)
        snap = c.snapshot()
        self.assertEqual(snap["status"], "errored")
        self.assertEqual(snap["message"], "nope")

    def test_snapshot(self) -> None:
        c = self.make()
        c.run(BRACED_BFS, BRACED)
        snap = c.snapshot()
        self.assertEqual(snap["level"], 1)
        self.assertEqual(snap["size"], 12)
        self.assertEqual(len(snap["grid"]), 12)
        self.assertEqual(snap["cursor"], list(c.grid.end))
        self.assertEqual(snap["trail"][0], [1, 1])
        self.assertEqual(snap["moves"], len(snap["trail"]) - 1)
        self.assertEqual(snap["status"], "win")

    def test_reset_progress(self) -> None:
        c = self.make(5)
        c.reset_progress()
        self.assertEqual(c.level, 1)
        self.assertEqual(c.store.read(), 1)

    def test_async_run_and_superseding(self) -> None:
        c = self.make()

        async def scenario():
            slow = asyncio.create_task(c.run_async("while True:\n    move_down()\n    move_up()\n", INDENTED, move_delay=0.01))
            await asyncio.sleep(0.03)
            winner = await c.run_async(INDENTED_BFS, INDENTED, move_delay=0)
            return await slow, winner

        old, winner = asyncio.run(scenario())
        self.assertEqual(old.outcome, RunStatus.CANCELLED)
        self.assertTrue(winner.won)
        self.assertEqual(c.status, RunStatus.WIN)
        self.assertIs(c.result, winner)


class SettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        s = load_settings({})
        self.assertEqual(s.move_delay, MOVE_DELAY_SECONDS)
        self.assertEqual(s.step_budget, STEP_BUDGET)

    def test_environment_overrides(self) -> None:
        s = load_settings({
            "MAZERUNNER_MOVE_DELAY": "0",
            "MAZERUNNER_STEP_BUDGET": "1000",
            "MAZERUNNER_MAX_CALL_DEPTH": "10",
            "MAZERUNNER_LEVEL_FILE": "/tmp/mr-level",
        })
        self.assertEqual(s.move_delay, 0.0)
        self.assertEqual(s.step_budget, 1000)
        self.assertEqual(s.max_call_depth, 10)
        self.assertEqual(s.level_file, Path("/tmp/mr-level"))

    def test_bad_values_fall_back(self) -> None:
        with self.assertLogs("mazerunner.config", level="WARNING"):
            s = load_settings({"MAZERUNNER_STEP_BUDGET": "lots", "MAZERUNNER_MOVE_DELAY": "-1"})
        self.assertEqual(s.step_budget, STEP_BUDGET)
        self.assertEqual(s.move_delay, MOVE_DELAY_SECONDS)


if __name__ == "__main__":
    unittest.main()
