"""
Reference programs shipped with the sandbox.

Each algorithm comes in both syntaxes. The pairs make the same capability
calls in the same order, so on a given maze they leave identical trails.
"""
from __future__ import annotations

from typing import Dict, Tuple

from .errors import MazeRunnerError
from .syntax import BRACED, INDENTED, resolve_syntax

INDENTED_BFS = r'''
# Breadth-first search from the start, then replay the path.
def solve():
    start = get_position()
    start_key = str(start["x"]) + "," + str(start["y"])
    queue = [start]
    visited = {start_key}
    parent = {}
    moves = [[0, -1, "up"], [0, 1, "down"], [-1, 0, "left"], [1, 0, "right"]]
    goal = None

    while len(queue) > 0:
        current = queue.pop(0)
        if is_end(current["x"], current["y"]):
            goal = current
            break
        for move in moves:
            nx = current["x"] + move[0]
            ny = current["y"] + move[1]
            key = str(nx) + "," + str(ny)
            if not is_wall(nx, ny) and key not in visited:
                visited.add(key)
                parent[key] = [current, move[2]]
                queue.append({"x": nx, "y": ny})

    if goal is None:
        return

    path = []
    cell_key = str(goal["x"]) + "," + str(goal["y"])
    while cell_key != start_key:
        link = parent[cell_key]
        path.insert(0, link[1])
        prev = link[0]
        cell_key = str(prev["x"]) + "," + str(prev["y"])

    for direction in path:
        if direction == "up":
            move_up()
        elif direction == "down":
            move_down()
        elif direction == "left":
            move_left()
        else:
            move_right()

solve()
'''

BRACED_BFS = r'''
// Breadth-first search from the start, then replay the path.
async function solve() {
    const start = getPosition();
    const startKey = start.x + ',' + start.y;
    const queue = [start];
    const visited = new Set([startKey]);
    const parent = new Map();
    const moves = [
        { dx: 0, dy: -1, dir: 'up' },
        { dx: 0, dy: 1, dir: 'down' },
        { dx: -1, dy: 0, dir: 'left' },
        { dx: 1, dy: 0, dir: 'right' },
    ];
    let goal = null;

    while (queue.length > 0) {
        const current = queue.shift();
        if (isEnd(current.x, current.y)) {
            goal = current;
            break;
        }
        for (const move of moves) {
            const nx = current.x + move.dx;
            const ny = current.y + move.dy;
            const key = nx + ',' + ny;
            if (!isWall(nx, ny) && !visited.has(key)) {
                visited.add(key);
                parent.set(key, { from: current, dir: move.dir });
                queue.push({ x: nx, y: ny });
            }
        }
    }

    if (goal === null) return;

    const path = [];
    let cellKey = goal.x + ',' + goal.y;
    while (cellKey !== startKey) {
        const link = parent.get(cellKey);
        path.unshift(link.dir);
        cellKey = link.from.x + ',' + link.from.y;
    }

    for (const dir of path) {
        if (dir === 'up') await moveUp();
        else if (dir === 'down') await moveDown();
        else if (dir === 'left') await moveLeft();
        else await moveRight();
    }
}

await solve();
'''

INDENTED_WALL_FOLLOWER = r'''
# Keep a hand on the right-hand wall until the exit turns up.
DIRS = [[0, -1], [1, 0], [0, 1], [-1, 0]]

def step_towards(heading):
    if heading == 0:
        move_up()
    elif heading == 1:
        move_right()
    elif heading == 2:
        move_down()
    else:
        move_left()

def open_towards(pos, heading):
    d = DIRS[heading]
    return not is_wall(pos["x"] + d[0], pos["y"] + d[1])

heading = 1
steps = 0
while steps < 5000:
    pos = get_position()
    if is_end(pos["x"], pos["y"]):
        break
    right = (heading + 1) % 4
    if open_towards(pos, right):
        heading = right
    elif not open_towards(pos, heading):
        heading = (heading + 3) % 4
        continue
    step_towards(heading)
    steps += 1
'''

BRACED_WALL_FOLLOWER = r'''
/* Keep a hand on the right-hand wall until the exit turns up. */
const DIRS = [[0, -1], [1, 0], [0, 1], [-1, 0]];

async function stepTowards(heading) {
    if (heading === 0) {
        await moveUp();
    } else if (heading === 1) {
        await moveRight();
    } else if (heading === 2) {
        await moveDown();
    } else {
        await moveLeft();
    }
}

function openTowards(pos, heading) {
    const d = DIRS[heading];
    return !isWall(pos.x + d[0], pos.y + d[1]);
}

let heading = 1;
let steps = 0;
while (steps < 5000) {
    const pos = getPosition();
    if (isEnd(pos.x, pos.y)) break;
    const right = (heading + 1) % 4;
    if (openTowards(pos, right)) {
        heading = right;
    } else if (!openTowards(pos, heading)) {
        heading = (heading + 3) % 4;
        continue;
    }
    await stepTowards(heading);
    steps++;
}
'''

TEMPLATES: Dict[Tuple[str, str], str] = {
    ("bfs", INDENTED): INDENTED_BFS,
    ("bfs", BRACED): BRACED_BFS,
    ("wall-follower", INDENTED): INDENTED_WALL_FOLLOWER,
    ("wall-follower", BRACED): BRACED_WALL_FOLLOWER,
}

TEMPLATE_NAMES = ("bfs", "wall-follower")


def get_template(name: str, syntax: str) -> str:
    key = (name, resolve_syntax(syntax))
    if key not in TEMPLATES:
        raise MazeRunnerError(f"Unknown template {name!r} (expected one of: {', '.join(TEMPLATE_NAMES)})")
    return TEMPLATES[key].lstrip("\n")
