"""
Execution engine: a stepping interpreter for ``CompiledUnit`` instruction lists.

A ``Run`` executes one instruction per ``step()``. The host decides when to
step, which is what gives the drivers their shape:

* ``run_program`` steps until termination with no delay.
* ``run_program_async`` sleeps ``move_delay`` after every legal move, so each
  move is observable (listeners have fired, the trail has grown) before the
  next instruction runs.

Runs end in exactly one terminal status. Reaching the end cell is ``WIN``,
finishing anywhere else is ``FAILED``, a fault in authored code is
``ERRORED``, running out of instructions is ``EXHAUSTED`` and losing the
world to another run is ``CANCELLED``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .compiler import CodeObject, CompiledUnit, Op, compile_program
from .config import MAX_CALL_DEPTH, MOVE_DELAY_SECONDS, STEP_BUDGET
from .errors import ParseError, ProgramError
from .runtime import Builtin, Runtime, check_arity
from .syntax import BRACED, CAPABILITIES, MOVE_ROLES
from .world import Direction, Position, World

logger = logging.getLogger(__name__)

FAILED_MESSAGE = "Did not reach the exit!"

# Async driver hands control back to the event loop this often when no move happens.
YIELD_INTERVAL = 1000

# Host exceptions that authored code can trigger through operators and methods.
HOST_ERRORS = (ArithmeticError, TypeError, ValueError, LookupError, RuntimeError, AttributeError, MemoryError)


class RunStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    WIN = "win"
    FAILED = "failed"
    ERRORED = "errored"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self not in (RunStatus.IDLE, RunStatus.RUNNING)


@dataclass(frozen=True)
class RunResult:
    outcome: RunStatus
    message: str
    moves: int
    trail: Tuple[Position, ...]
    steps: int = field(default=0, compare=False)
    line: Optional[int] = None

    @property
    def won(self) -> bool:
        return self.outcome is RunStatus.WIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "moves": self.moves,
            "trail": [[p.x, p.y] for p in self.trail],
            "steps": self.steps,
            "line": self.line,
        }


@dataclass
class Frame:
    code: CodeObject
    locals: Dict[str, Any]
    ip: int = 0
    stack: List[Any] = field(default_factory=list)


class Run:
    """One execution of a compiled unit against a world."""

    def __init__(
        self,
        unit: CompiledUnit,
        world: World,
        budget: int = STEP_BUDGET,
        max_depth: int = MAX_CALL_DEPTH,
    ):
        self.unit = unit
        self.world = world
        self.budget = budget
        self.max_depth = max_depth
        self.runtime = Runtime(unit.syntax)
        self.capabilities = CAPABILITIES[unit.syntax]
        self.globals: Dict[str, Any] = {}
        self.frames: List[Frame] = []
        self.status = RunStatus.IDLE
        self.steps = 0
        self.line: Optional[int] = None
        self.trail: List[Position] = []
        self.result: Optional[RunResult] = None

    @property
    def running(self) -> bool:
        return self.status is RunStatus.RUNNING

    @property
    def output(self) -> List[str]:
        return self.runtime.output

    def start(self) -> None:
        if self.status is not RunStatus.IDLE:
            raise RuntimeError(f"run already {self.status.value}")
        self.world.claim(self)
        self.trail = [self.world.cursor]
        self.frames = [Frame(self.unit.main, {})]
        self.status = RunStatus.RUNNING

    def cancel(self) -> None:
        if self.running:
            self._finish(RunStatus.CANCELLED, "Run cancelled")

    def step(self) -> Optional[Position]:
        """Execute one instruction. Returns the new cursor if it completed a legal move."""
        if not self.running:
            return None
        if not self.world.owned_by(self):
            self._finish(RunStatus.CANCELLED, "Run superseded by a newer run")
            return None
        if self.steps >= self.budget:
            self._finish(RunStatus.EXHAUSTED, f"Step budget of {self.budget} instructions exhausted", self.line)
            return None

        self.steps += 1
        frame = self.frames[-1]
        instr = frame.code.instrs[frame.ip]
        frame.ip += 1
        self.line = instr.line
        try:
            return self._execute(frame, instr.op, instr.arg)
        except ProgramError as exc:
            self._finish(RunStatus.ERRORED, exc.message, exc.line or instr.line)
        except RecursionError:
            self._finish(RunStatus.ERRORED, "maximum recursion depth exceeded", instr.line)
        except HOST_ERRORS as exc:
            self._finish(RunStatus.ERRORED, f"{type(exc).__name__}: {exc}", instr.line)
        return None

    def advance(self) -> Optional[Position]:
        """Step until the next legal move or termination."""
        while self.running:
            moved = self.step()
            if moved is not None:
                return moved
        return None

    def run_to_end(self) -> RunResult:
        if self.status is RunStatus.IDLE:
            self.start()
        while self.running:
            self.step()
        assert self.result is not None
        return self.result

    def _finish(self, status: RunStatus, message: str = "", line: Optional[int] = None) -> None:
        self.status = status
        self.frames = []
        self.world.release(self)
        self.result = RunResult(
            outcome=status,
            message=message,
            moves=len(self.trail) - 1,
            trail=tuple(self.trail),
            steps=self.steps,
            line=line,
        )
        if status is RunStatus.ERRORED:
            logger.info(f"Run errored at line {line}: {message}")
        else:
            logger.info(f"Run finished: {status.value} after {len(self.trail) - 1} moves, {self.steps} steps")

    def _complete(self) -> None:
        if self.world.at_end():
            self._finish(RunStatus.WIN, "Reached the exit!")
        else:
            self._finish(RunStatus.FAILED, FAILED_MESSAGE)

    # instruction dispatch

    def _not_defined(self, name: str) -> ProgramError:
        if self.unit.syntax == BRACED:
            return ProgramError(f"{name} is not defined")
        return ProgramError(f"name '{name}' is not defined")

    def _execute(self, frame: Frame, op: Op, arg: Any) -> Optional[Position]:
        stack = frame.stack
        if op is Op.CONST:
            stack.append(arg)
        elif op is Op.LOAD_FAST:
            if arg not in frame.locals:
                if self.unit.syntax == BRACED:
                    raise ProgramError(f"Cannot access '{arg}' before initialization")
                raise ProgramError(f"local variable '{arg}' referenced before assignment")
            stack.append(frame.locals[arg])
        elif op is Op.STORE_FAST:
            frame.locals[arg] = stack.pop()
        elif op is Op.LOAD_NAME:
            if arg in self.globals:
                stack.append(self.globals[arg])
            else:
                builtin = self.runtime.lookup_builtin(arg)
                if builtin is None:
                    raise self._not_defined(arg)
                stack.append(builtin)
        elif op is Op.STORE_NAME:
            self.globals[arg] = stack.pop()
        elif op is Op.POP:
            stack.pop()
        elif op is Op.DUP:
            stack.append(stack[-1])
        elif op is Op.DUP_TWO:
            stack.extend(stack[-2:])
        elif op is Op.UNARY:
            stack.append(self.runtime.unary(arg, stack.pop()))
        elif op is Op.BINARY:
            right = stack.pop()
            left = stack.pop()
            stack.append(self.runtime.binary(arg, left, right))
        elif op is Op.JUMP:
            frame.ip = arg
        elif op is Op.POP_JUMP_IF_FALSE:
            if not stack.pop():
                frame.ip = arg
        elif op is Op.JUMP_IF_FALSE_OR_POP:
            if not stack[-1]:
                frame.ip = arg
            else:
                stack.pop()
        elif op is Op.JUMP_IF_TRUE_OR_POP:
            if stack[-1]:
                frame.ip = arg
            else:
                stack.pop()
        elif op is Op.BUILD_LIST:
            stack.append(self._pop_n(stack, arg))
        elif op is Op.BUILD_SET:
            stack.append(set(self._pop_n(stack, arg)))
        elif op is Op.BUILD_DICT:
            flat = self._pop_n(stack, arg * 2)
            stack.append({flat[i]: flat[i + 1] for i in range(0, len(flat), 2)})
        elif op is Op.GET_ITEM:
            key = stack.pop()
            obj = stack.pop()
            stack.append(self.runtime.get_item(obj, key))
        elif op is Op.SET_ITEM:
            value = stack.pop()
            key = stack.pop()
            obj = stack.pop()
            self.runtime.set_item(obj, key, value)
        elif op is Op.GET_ATTR:
            stack.append(self.runtime.get_attr(stack.pop(), arg))
        elif op is Op.SET_ATTR:
            value = stack.pop()
            self.runtime.set_attr(stack.pop(), arg, value)
        elif op is Op.CALL:
            name, argc = arg
            return self._call(stack, name, self._pop_n(stack, argc))
        elif op is Op.CALL_METHOD:
            name, argc = arg
            args = self._pop_n(stack, argc)
            stack.append(self.runtime.call_method(stack.pop(), name, args))
        elif op is Op.GET_ITER:
            stack.append(self.runtime.iterate(stack.pop()))
        elif op is Op.FOR_ITER:
            try:
                stack.append(next(stack[-1]))
            except StopIteration:
                stack.pop()
                frame.ip = arg
        elif op is Op.RETURN:
            value = stack.pop()
            self.frames.pop()
            if not self.frames:
                self._complete()
            else:
                self.frames[-1].stack.append(value)
        elif op is Op.RAISE:
            raise ProgramError(self.runtime.error_message(stack.pop()))
        else:
            raise ProgramError(f"unknown instruction {op}")
        return None

    @staticmethod
    def _pop_n(stack: List[Any], n: int) -> List[Any]:
        if n == 0:
            return []
        values = stack[-n:]
        del stack[-n:]
        return values

    def _call(self, stack: List[Any], name: str, args: List[Any]) -> Optional[Position]:
        code = self.unit.functions.get(name)
        if code is not None:
            check_arity(name, args, len(code.params), len(code.params))
            if len(self.frames) >= self.max_depth:
                raise ProgramError("maximum recursion depth exceeded")
            self.frames.append(Frame(code, dict(zip(code.params, args))))
            return None

        role = self.capabilities.get(name)
        if role is not None:
            return self._capability(stack, name, role, args)

        builtin = self.globals.get(name, self.runtime.lookup_builtin(name))
        if isinstance(builtin, Builtin):
            stack.append(builtin(args))
            return None
        if builtin is None:
            raise self._not_defined(name)
        raise ProgramError(f"{name} is not a function")

    def _capability(self, stack: List[Any], name: str, role: str, args: List[Any]) -> Optional[Position]:
        if role in MOVE_ROLES:
            check_arity(name, args, 0, 0)
            stack.append(None)
            if self.world.move(Direction[role.upper()]):
                self.trail.append(self.world.cursor)
                return self.world.cursor
            return None
        if role == "position":
            check_arity(name, args, 0, 0)
            pos = self.world.position()
            stack.append({"x": pos.x, "y": pos.y})
            return None
        check_arity(name, args, 2, 2)
        x, y = (_coordinate(name, v) for v in args)
        stack.append(self.world.is_wall(x, y) if role == "wall" else self.world.is_end(x, y))
        return None


def _coordinate(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProgramError(f"{name}() expects numeric coordinates")
    if isinstance(value, float):
        if value != int(value):
            raise ProgramError(f"{name}() expects whole-number coordinates, got {value}")
        return int(value)
    return value


# drivers


def _parse_failure(world: World, exc: ParseError) -> RunResult:
    world.revoke()
    logger.info(f"Run errored before start, line {exc.line}: {exc.message}")
    return RunResult(
        outcome=RunStatus.ERRORED,
        message=exc.message,
        moves=world.moves,
        trail=tuple(world.trail),
        line=exc.line or None,
    )


def start_run(
    source: str,
    syntax: str,
    world: World,
    budget: int = STEP_BUDGET,
    max_depth: int = MAX_CALL_DEPTH,
) -> Run:
    """Compile ``source`` and start a run on ``world``. Raises ``ParseError``."""
    run = Run(compile_program(source, syntax), world, budget=budget, max_depth=max_depth)
    run.start()
    return run


def run_program(
    source: str,
    syntax: str,
    world: World,
    budget: int = STEP_BUDGET,
    max_depth: int = MAX_CALL_DEPTH,
) -> RunResult:
    try:
        run = start_run(source, syntax, world, budget=budget, max_depth=max_depth)
    except ParseError as exc:
        return _parse_failure(world, exc)
    return run.run_to_end()


async def run_program_async(
    source: str,
    syntax: str,
    world: World,
    move_delay: float = MOVE_DELAY_SECONDS,
    budget: int = STEP_BUDGET,
    max_depth: int = MAX_CALL_DEPTH,
) -> RunResult:
    try:
        run = start_run(source, syntax, world, budget=budget, max_depth=max_depth)
    except ParseError as exc:
        return _parse_failure(world, exc)
    while run.running:
        if run.step() is not None:
            await asyncio.sleep(move_delay)
        elif run.steps % YIELD_INTERVAL == 0:
            await asyncio.sleep(0)
    assert run.result is not None
    return run.result
