"""
Constants and runtime settings.

Every tunable has a module-level default. ``load_settings`` builds a
``Settings`` value from ``MAZERUNNER_*`` environment variables on top of
those defaults; the CLI overrides individual fields from its flags.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

MIN_SIZE = 5
BASE_SIZE = 10
SIZE_STEP = 2
MAX_SIZE = 25

MOVE_DELAY_SECONDS = 0.15
STEP_BUDGET = 2_000_000
MAX_CALL_DEPTH = 200

# Deepest bracket/unary/block nesting the parsers accept.
MAX_NESTING = 40

# Largest list, string or range a single operation may build, and the total
# a run may build across all operations.
MAX_SEQUENCE_LENGTH = 1_000_000
ALLOCATION_BUDGET = 50_000_000
MAX_INT_BITS = 4096

DEFAULT_LEVEL_FILE = Path.home() / ".mazerunner" / "level"

ENV_PREFIX = "MAZERUNNER_"


@dataclass(frozen=True)
class Settings:
    move_delay: float = MOVE_DELAY_SECONDS
    step_budget: int = STEP_BUDGET
    max_call_depth: int = MAX_CALL_DEPTH
    level_file: Path = DEFAULT_LEVEL_FILE


def _env_number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning(f"Ignoring {ENV_PREFIX}{name}={raw!r}: not a valid {cast.__name__}")
        return default
    if value < 0:
        logger.warning(f"Ignoring {ENV_PREFIX}{name}={raw!r}: must not be negative")
        return default
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    level_file = env.get(ENV_PREFIX + "LEVEL_FILE")
    return Settings(
        move_delay=_env_number(env, "MOVE_DELAY", MOVE_DELAY_SECONDS, float),
        step_budget=_env_number(env, "STEP_BUDGET", STEP_BUDGET, int),
        max_call_depth=_env_number(env, "MAX_CALL_DEPTH", MAX_CALL_DEPTH, int),
        level_file=Path(level_file).expanduser() if level_file else DEFAULT_LEVEL_FILE,
    )
