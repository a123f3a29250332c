from __future__ import annotations

from enum import Enum
from typing import Any, Callable, List, NamedTuple, Optional

from .maze import Grid


class Position(NamedTuple):
    x: int
    y: int


class Direction(Enum):
    UP = (0, -1)
    DOWN = (0, 1)
    LEFT = (-1, 0)
    RIGHT = (1, 0)

    @property
    def delta(self) -> tuple[int, int]:
        return self.value


MoveListener = Callable[[Position], None]


class World:
    """Movement API bound to one grid and one cursor.

    Blocked moves are silently absorbed so authored code can probe walls by
    bumping into them. A run must ``claim`` the world before driving it;
    claiming resets the cursor and revokes the previous owner.
    """

    def __init__(self, grid: Grid):
        self.grid = grid
        self.cursor = Position(*grid.start)
        self.trail: List[Position] = [self.cursor]
        self.moves = 0
        self._owner: Optional[Any] = None
        self._listeners: List[MoveListener] = []

    @property
    def end(self) -> Position:
        return Position(*self.grid.end)

    def reset(self) -> None:
        self.cursor = Position(*self.grid.start)
        self.trail = [self.cursor]
        self.moves = 0

    def claim(self, owner: Any) -> None:
        self._owner = owner
        self.reset()

    def release(self, owner: Any) -> None:
        if self._owner is owner:
            self._owner = None

    def revoke(self) -> None:
        """Drop whichever run owns the world and reset it."""
        self._owner = None
        self.reset()

    def owned_by(self, owner: Any) -> bool:
        return self._owner is owner

    def add_listener(self, listener: MoveListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: MoveListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # queries

    def position(self) -> Position:
        return self.cursor

    def is_wall(self, x: int, y: int) -> bool:
        return self.grid.is_wall(x, y)

    def is_end(self, x: int, y: int) -> bool:
        return (x, y) == self.grid.end

    def at_end(self) -> bool:
        return self.is_end(*self.cursor)

    # commands

    def move(self, direction: Direction) -> bool:
        dx, dy = direction.delta
        nx, ny = self.cursor.x + dx, self.cursor.y + dy
        if self.grid.is_wall(nx, ny):
            return False
        self.cursor = Position(nx, ny)
        self.trail.append(self.cursor)
        self.moves += 1
        for listener in list(self._listeners):
            listener(self.cursor)
        return True

    def move_up(self) -> bool:
        return self.move(Direction.UP)

    def move_down(self) -> bool:
        return self.move(Direction.DOWN)

    def move_left(self) -> bool:
        return self.move(Direction.LEFT)

    def move_right(self) -> bool:
        return self.move(Direction.RIGHT)
