from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Optional, Tuple

import numpy as np

from .config import MIN_SIZE

logger = logging.getLogger(__name__)


class CellKind(IntEnum):
    EMPTY = 0
    WALL = 1
    START = 2
    END = 3


# Carving jumps two cells so corridors stay on the odd-coordinate sublattice.
_JUMPS = ((0, -2), (0, 2), (-2, 0), (2, 0))

_GLYPHS = {
    CellKind.EMPTY: " ",
    CellKind.WALL: "#",
    CellKind.START: "S",
    CellKind.END: "E",
}


@dataclass(frozen=True, eq=False)
class Grid:
    """A square maze. ``cells`` is indexed ``[y, x]`` and is read-only."""

    cells: np.ndarray
    start: Tuple[int, int]
    end: Tuple[int, int]

    @property
    def size(self) -> int:
        return int(self.cells.shape[0])

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.size and 0 <= y < self.size

    def kind(self, x: int, y: int) -> CellKind:
        if not self.in_bounds(x, y):
            return CellKind.WALL
        return CellKind(int(self.cells[y, x]))

    def is_wall(self, x: int, y: int) -> bool:
        return self.kind(x, y) == CellKind.WALL

    def count(self, kind: CellKind) -> int:
        return int(np.count_nonzero(self.cells == kind))

    def to_rows(self) -> List[List[str]]:
        return [[CellKind(int(v)).name.lower() for v in row] for row in self.cells]

    def render(self, cursor: Optional[Tuple[int, int]] = None, trail: Iterable[Tuple[int, int]] = ()) -> str:
        visited = {tuple(p) for p in trail}
        lines = []
        for y in range(self.size):
            chars = []
            for x in range(self.size):
                kind = self.kind(x, y)
                if cursor is not None and (x, y) == tuple(cursor):
                    chars.append("@")
                elif kind == CellKind.EMPTY and (x, y) in visited:
                    chars.append(".")
                else:
                    chars.append(_GLYPHS[kind])
            lines.append("".join(chars))
        return "\n".join(lines)


def generate_maze(size: int, rng: Optional[random.Random] = None) -> Grid:
    if size < MIN_SIZE:
        raise ValueError(f"maze size must be >= {MIN_SIZE}, got {size}")
    rng = rng or random.Random()

    cells = np.full((size, size), CellKind.WALL, dtype=np.uint8)
    start = (1, 1)
    end = (size - 2, size - 2)

    cells[start[1], start[0]] = CellKind.EMPTY
    stack = [start]
    while stack:
        cx, cy = stack[-1]
        candidates = []
        for dx, dy in _JUMPS:
            nx, ny = cx + dx, cy + dy
            if 0 < nx < size - 1 and 0 < ny < size - 1 and cells[ny, nx] == CellKind.WALL:
                candidates.append((nx, ny, dx // 2, dy // 2))
        if not candidates:
            stack.pop()
            continue
        nx, ny, hx, hy = rng.choice(candidates)
        cells[ny, nx] = CellKind.EMPTY
        cells[cy + hy, cx + hx] = CellKind.EMPTY
        stack.append((nx, ny))

    # Even sizes put the end off the carved lattice; open it and link it upward.
    ex, ey = end
    cells[ey, ex] = CellKind.EMPTY
    if cells[ey - 1, ex] == CellKind.WALL and cells[ey, ex - 1] == CellKind.WALL:
        cells[ey - 1, ex] = CellKind.EMPTY

    cells[start[1], start[0]] = CellKind.START
    cells[ey, ex] = CellKind.END
    cells.flags.writeable = False

    logger.debug(f"Generated {size}x{size} maze with {int(np.count_nonzero(cells != CellKind.WALL))} open cells")
    return Grid(cells=cells, start=start, end=end)
