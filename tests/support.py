"""Maze fixtures and independent graph checks used across the test modules."""
from collections import deque

import numpy as np

from mazerunner.maze import CellKind, Grid

_KINDS = {"#": CellKind.WALL, "S": CellKind.START, "E": CellKind.END}


def grid_from_rows(rows):
    """Build a ``Grid`` from text art: ``#`` wall, ``S`` start, ``E`` end, anything else empty."""
    size = len(rows)
    cells = np.zeros((size, size), dtype=np.uint8)
    start = end = None
    for y, row in enumerate(rows):
        for x, ch in enumerate(row):
            cells[y, x] = _KINDS.get(ch, CellKind.EMPTY)
            if ch == "S":
                start = (x, y)
            elif ch == "E":
                end = (x, y)
    cells.flags.writeable = False
    return Grid(cells=cells, start=start, end=end)


def open_neighbours(grid, x, y):
    for dx, dy in ((0, -1), (0, 1), (-1, 0), (1, 0)):
        nx, ny = x + dx, y + dy
        if 0 <= nx < grid.size and 0 <= ny < grid.size and grid.cells[ny, nx] != CellKind.WALL:
            yield nx, ny


def flood_fill(grid):
    seen = {grid.start}
    stack = [grid.start]
    while stack:
        x, y = stack.pop()
        for n in open_neighbours(grid, x, y):
            if n not in seen:
                seen.add(n)
                stack.append(n)
    return seen


def shortest_path_length(grid):
    dist = {grid.start: 0}
    queue = deque([grid.start])
    while queue:
        cell = queue.popleft()
        if cell == grid.end:
            return dist[cell]
        for n in open_neighbours(grid, *cell):
            if n not in dist:
                dist[n] = dist[cell] + 1
                queue.append(n)
    return None


# Start at (1,1); moving right from the start runs into a wall.
CORRIDOR = [
    "#####",
    "#S#E#",
    "# # #",
    "#   #",
    "#####",
]
