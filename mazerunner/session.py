"""
Session and progress control.

``Session`` is an immutable value (level, derived size); every transition
produces a new one. The ``Controller`` holds the current session, the grid
and world built from it and the status of the latest run, and persists the
level through an injected ``LevelStore``.
"""
from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .config import BASE_SIZE, MAX_SIZE, SIZE_STEP, Settings, load_settings
from .engine import RunResult, RunStatus, run_program, run_program_async
from .errors import SessionError
from .maze import Grid, generate_maze
from .world import World

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    level: int = 1

    def __post_init__(self) -> None:
        if self.level < 1:
            raise ValueError(f"level must be >= 1, got {self.level}")

    @property
    def size(self) -> int:
        return min(BASE_SIZE + self.level * SIZE_STEP, MAX_SIZE)

    def advanced(self) -> "Session":
        return replace(self, level=self.level + 1)


class LevelStore(ABC):
    """A single integer slot holding the player's level."""

    @abstractmethod
    def read(self) -> Optional[int]:
        raise NotImplementedError

    @abstractmethod
    def write(self, level: int) -> None:
        raise NotImplementedError


class MemoryLevelStore(LevelStore):
    def __init__(self, level: Optional[int] = None):
        self.level = level

    def read(self) -> Optional[int]:
        return self.level

    def write(self, level: int) -> None:
        self.level = level


class FileLevelStore(LevelStore):
    """Stores the level as the only content of a text file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> Optional[int]:
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(f"Ignoring unreadable level file {self.path}: {exc}")
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Ignoring unreadable level {raw!r} in {self.path}")
            return None

    def write(self, level: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(f"{level}\n", encoding="utf-8")


def load_session(store: LevelStore) -> Session:
    level = store.read()
    if level is None:
        return Session()
    if level < 1:
        logger.warning(f"Stored level {level} is invalid; starting at level 1")
        return Session()
    return Session(level)


class Controller:
    def __init__(
        self,
        store: Optional[LevelStore] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store or MemoryLevelStore()
        self.settings = settings or load_settings()
        self.rng = rng or random.Random()
        self.session = load_session(self.store)
        self.grid: Grid
        self.world: World
        self.status = RunStatus.IDLE
        self.result: Optional[RunResult] = None
        self._ticket = 0
        self.regenerate()

    @property
    def level(self) -> int:
        return self.session.level

    @property
    def size(self) -> int:
        return self.session.size

    def regenerate(self) -> Grid:
        """New layout at the current level. Any active run is cancelled."""
        old = getattr(self, "world", None)
        if old is not None:
            old.revoke()
        self.grid = generate_maze(self.session.size, self.rng)
        self.world = World(self.grid)
        self._idle()
        logger.info(f"Level {self.session.level}: new {self.session.size}x{self.session.size} maze")
        return self.grid

    def advance_level(self) -> Session:
        if self.status is not RunStatus.WIN:
            raise SessionError(f"Cannot advance from level {self.session.level} without a win (status: {self.status.value})")
        self.session = self.session.advanced()
        self.store.write(self.session.level)
        logger.info(f"Advanced to level {self.session.level}")
        self.regenerate()
        return self.session

    def reset_progress(self) -> Session:
        self.session = Session()
        self.store.write(self.session.level)
        logger.info("Progress reset to level 1")
        self.regenerate()
        return self.session

    def reset_run(self) -> None:
        """Clear cursor, trail and status; the maze stays."""
        self.world.revoke()
        self._idle()

    def _idle(self) -> None:
        self._ticket += 1
        self.status = RunStatus.IDLE
        self.result = None

    def _begin(self) -> int:
        self._ticket += 1
        self.status = RunStatus.RUNNING
        self.result = None
        return self._ticket

    def _settle(self, ticket: int, result: RunResult) -> RunResult:
        # A superseded run must not overwrite the state of the run that replaced it.
        if ticket == self._ticket:
            self.status = result.outcome
            self.result = result
        return result

    def run(self, source: str, syntax: str) -> RunResult:
        ticket = self._begin()
        result = run_program(
            source,
            syntax,
            self.world,
            budget=self.settings.step_budget,
            max_depth=self.settings.max_call_depth,
        )
        return self._settle(ticket, result)

    async def run_async(self, source: str, syntax: str, move_delay: Optional[float] = None) -> RunResult:
        ticket = self._begin()
        result = await run_program_async(
            source,
            syntax,
            self.world,
            move_delay=self.settings.move_delay if move_delay is None else move_delay,
            budget=self.settings.step_budget,
            max_depth=self.settings.max_call_depth,
        )
        return self._settle(ticket, result)

    def snapshot(self) -> Dict[str, Any]:
        cursor = self.world.cursor
        return {
            "level": self.session.level,
            "size": self.session.size,
            "grid": self.grid.to_rows(),
            "start": list(self.grid.start),
            "end": list(self.grid.end),
            "cursor": [cursor.x, cursor.y],
            "trail": [[p.x, p.y] for p in self.world.trail],
            "moves": self.world.moves,
            "status": self.status.value,
            "message": self.result.message if self.result else "",
        }
