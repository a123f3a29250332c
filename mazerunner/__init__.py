from .compiler import CompiledUnit, compile_program
from .config import Settings, load_settings
from .engine import Run, RunResult, RunStatus, run_program, run_program_async
from .errors import MazeRunnerError, ParseError, ProgramError, SessionError
from .maze import CellKind, Grid, generate_maze
from .normalize import normalize
from .session import Controller, FileLevelStore, LevelStore, MemoryLevelStore, Session
from .syntax import BRACED, INDENTED
from .templates import get_template
from .world import Direction, Position, World

__version__ = "0.1.0"

__all__ = [
    "BRACED",
    "CellKind",
    "CompiledUnit",
    "Controller",
    "Direction",
    "FileLevelStore",
    "Grid",
    "INDENTED",
    "LevelStore",
    "MazeRunnerError",
    "MemoryLevelStore",
    "ParseError",
    "Position",
    "ProgramError",
    "Run",
    "RunResult",
    "RunStatus",
    "Session",
    "SessionError",
    "Settings",
    "World",
    "compile_program",
    "generate_maze",
    "get_template",
    "load_settings",
    "normalize",
    "run_program",
    "run_program_async",
]
