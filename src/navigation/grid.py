"""Occupancy and exploration grids over world coordinates.

Cells are addressed as ``(column, row)`` integer tuples. A cell covers a
``resolution`` x ``resolution`` square of world space. Cell indices are
fixed by the first anchor; the grid is a ``width`` x ``height`` window over
them that slides to stay centered on the agent, so visited and learned cells
keep their meaning when the window moves.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator

from src.models.world import Position

Cell = tuple[int, int]

_SQRT2 = math.sqrt(2.0)

# Orthogonal moves first, then diagonals; order is part of determinism.
_ORTHOGONAL: tuple[Cell, ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))
_DIAGONAL: tuple[Cell, ...] = ((1, 1), (1, -1), (-1, 1), (-1, -1))


class OccupancyGrid:
    """Fixed-size walkability window over an unbounded cell space.

    Two kinds of blocked cells are kept apart: obstacles reported by the
    world (replaced every tick) and learned obstacles (cells the agent
    failed to get through, kept until cleared).
    """

    def __init__(self, width: int, height: int, resolution: float) -> None:
        if width < 1 or height < 1:
            raise ValueError("Grid dimensions must be positive")
        if resolution <= 0:
            raise ValueError("Grid resolution must be positive")
        self.width = width
        self.height = height
        self.resolution = resolution
        self._origin_x = 0.0
        self._origin_y = 0.0
        self._col0 = 0
        self._row0 = 0
        self._anchored = False
        self._world_blocked: set[Cell] = set()
        self._learned_blocked: set[Cell] = set()
        self.anchor(Position(x=0.0, y=0.0))
        self._anchored = False

    @property
    def anchored(self) -> bool:
        """Whether the grid has been centered on a real position."""
        return self._anchored

    @property
    def total_cells(self) -> int:
        return self.width * self.height

    def anchor(self, position: Position) -> None:
        """Center the grid so that position is the middle cell's center."""
        self._origin_x = position.x - (self.width // 2 + 0.5) * self.resolution
        self._origin_y = position.y - (self.height // 2 + 0.5) * self.resolution
        self._col0 = 0
        self._row0 = 0
        self._anchored = True

    @property
    def window(self) -> tuple[int, int, int, int]:
        """In-bounds cell range as (min column, min row, max column, max row)."""
        return (
            self._col0,
            self._row0,
            self._col0 + self.width - 1,
            self._row0 + self.height - 1,
        )

    def recenter(self, position: Position, margin: int) -> bool:
        """Slide the window when position is within margin cells of its edge.

        The window is moved by whole cells so that position lands in the
        middle cell; cell indices, learned obstacles and anything keyed by
        cell stay valid.

        Returns:
            True if the window moved.
        """
        col, row = self.world_to_cell(position)
        min_col, min_row, max_col, max_row = self.window
        if (
            min_col + margin <= col <= max_col - margin
            and min_row + margin <= row <= max_row - margin
        ):
            return False
        self._col0 = col - self.width // 2
        self._row0 = row - self.height // 2
        return True

    def world_to_cell(self, position: Position) -> Cell:
        return (
            math.floor((position.x - self._origin_x) / self.resolution),
            math.floor((position.y - self._origin_y) / self.resolution),
        )

    def cell_center(self, cell: Cell) -> Position:
        return Position(
            x=self._origin_x + (cell[0] + 0.5) * self.resolution,
            y=self._origin_y + (cell[1] + 0.5) * self.resolution,
        )

    def in_bounds(self, cell: Cell) -> bool:
        return (
            self._col0 <= cell[0] < self._col0 + self.width
            and self._row0 <= cell[1] < self._row0 + self.height
        )

    def is_blocked(self, cell: Cell) -> bool:
        return cell in self._world_blocked or cell in self._learned_blocked

    def is_walkable(self, cell: Cell) -> bool:
        return self.in_bounds(cell) and not self.is_blocked(cell)

    def set_world_obstacles(self, positions: Iterable[Position]) -> None:
        """Replace the world-reported obstacles."""
        self._world_blocked = {self.world_to_cell(p) for p in positions}

    def block(self, cell: Cell) -> None:
        """Learn that a cell cannot be traversed."""
        self._learned_blocked.add(cell)

    def unblock(self, cell: Cell) -> None:
        self._learned_blocked.discard(cell)

    def clear_learned(self) -> None:
        self._learned_blocked.clear()

    def neighbors(self, cell: Cell) -> Iterator[tuple[Cell, float]]:
        """Walkable 8-connected neighbours with their step cost.

        A diagonal step is only allowed when both orthogonal cells it
        passes between are walkable.
        """
        cx, cy = cell
        for dx, dy in _ORTHOGONAL:
            n = (cx + dx, cy + dy)
            if self.is_walkable(n):
                yield n, 1.0
        for dx, dy in _DIAGONAL:
            n = (cx + dx, cy + dy)
            if (
                self.is_walkable(n)
                and self.is_walkable((cx + dx, cy))
                and self.is_walkable((cx, cy + dy))
            ):
                yield n, _SQRT2


class ExplorationMap:
    """Visited-cell record over an occupancy grid.

    Cells are only ever added, so ``progress`` never decreases. Cells that
    leave the window when it slides stay visited.
    """

    def __init__(self, grid: OccupancyGrid) -> None:
        self._grid = grid
        self._visited: set[Cell] = set()

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    @property
    def progress(self) -> float:
        """Visited cells over window cells, capped at 1.0."""
        return min(1.0, len(self._visited) / self._grid.total_cells)

    def is_visited(self, cell: Cell) -> bool:
        return cell in self._visited

    def mark_visited(self, position: Position, radius: float) -> int:
        """Mark every in-bounds cell whose center lies within radius.

        Returns:
            Number of newly visited cells.
        """
        grid = self._grid
        span = math.ceil(radius / grid.resolution) + 1
        cx, cy = grid.world_to_cell(position)
        added = 0
        for x in range(cx - span, cx + span + 1):
            for y in range(cy - span, cy + span + 1):
                cell = (x, y)
                if cell in self._visited or not grid.in_bounds(cell):
                    continue
                if grid.cell_center(cell).distance_to(position) <= radius:
                    self._visited.add(cell)
                    added += 1
        return added

    def frontier(self) -> list[Cell]:
        """Unvisited walkable cells 4-adjacent to a visited cell, sorted."""
        grid = self._grid
        found: set[Cell] = set()
        for vx, vy in self._visited:
            for dx, dy in _ORTHOGONAL:
                cell = (vx + dx, vy + dy)
                if cell not in self._visited and grid.is_walkable(cell):
                    found.add(cell)
        return sorted(found, key=lambda c: (c[1], c[0]))

    def next_target(self, position: Position, exclude: Iterable[Cell] = ()) -> Cell | None:
        """Nearest frontier cell to position.

        Ties are broken by row then column so the choice is stable.
        """
        excluded = set(exclude)
        best: tuple[float, int, int] | None = None
        for cell in self.frontier():
            if cell in excluded:
                continue
            # Rounded so mirror-image cells compare equal despite float noise.
            distance = round(self._grid.cell_center(cell).distance_to(position), 6)
            key = (distance, cell[1], cell[0])
            if best is None or key < best:
                best = key
        if best is None:
            return None
        return (best[2], best[1])
