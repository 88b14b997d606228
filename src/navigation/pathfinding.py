"""Bounded A* path planning over an occupancy grid.

Usage:
    planner = AStarPlanner(max_expanded_nodes=5000, max_planning_ms=20)
    result = planner.plan(grid, start_cell, goal_cell)
    if result.status in (PlanStatus.FOUND, PlanStatus.PARTIAL):
        follow(result.cells)

The heuristic is the straight-line distance between cell coordinates. On an
8-connected grid with unit orthogonal and sqrt(2) diagonal steps it never
exceeds the true remaining cost, so FOUND paths are optimal.
"""

from __future__ import annotations

import heapq
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from src.navigation.grid import Cell, OccupancyGrid

logger = logging.getLogger(__name__)


class PlanStatus(StrEnum):
    """Outcome of a planning request."""

    FOUND = "found"
    PARTIAL = "partial"
    BUDGET_EXCEEDED = "budget_exceeded"
    UNREACHABLE = "unreachable"


@dataclass
class PlanResult:
    """Result of a planning request.

    Attributes:
        status: Outcome of the search.
        cells: Path cells, excluding the start and (for FOUND) ending at the goal.
        cost: Total step cost of ``cells``.
        expanded: Number of nodes expanded by the search.
    """

    status: PlanStatus
    cells: list[Cell] = field(default_factory=list)
    cost: float = 0.0
    expanded: int = 0

    @property
    def usable(self) -> bool:
        """Whether the result carries a path worth following."""
        return self.status in (PlanStatus.FOUND, PlanStatus.PARTIAL) and bool(self.cells)


def heuristic(a: Cell, b: Cell) -> float:
    """Euclidean distance between two cells."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


class AStarPlanner:
    """A* planner with node and wall-clock budgets.

    When a budget runs out before the goal is reached the planner returns
    a PARTIAL path towards the expanded node nearest the goal, provided it
    gets closer than the start; otherwise BUDGET_EXCEEDED.
    """

    def __init__(
        self,
        max_expanded_nodes: int = 20000,
        max_planning_ms: float = 20.0,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._max_expanded = max_expanded_nodes
        self._max_seconds = max_planning_ms / 1000.0
        self._clock = clock

    def plan(self, grid: OccupancyGrid, start: Cell, goal: Cell) -> PlanResult:
        """Plan a path from start to goal.

        Args:
            grid: Walkability grid.
            start: Start cell (need not be walkable; the agent may stand on
                a cell just learned as blocked).
            goal: Goal cell.

        Returns:
            The planning result.
        """
        if start == goal:
            return PlanResult(PlanStatus.FOUND)
        if not grid.is_walkable(goal):
            return PlanResult(PlanStatus.UNREACHABLE)

        deadline = self._clock() + self._max_seconds
        counter = 0
        h_start = heuristic(start, goal)
        open_heap: list[tuple[float, float, int, Cell]] = [(h_start, h_start, counter, start)]
        g_score: dict[Cell, float] = {start: 0.0}
        came_from: dict[Cell, Cell] = {}
        closed: set[Cell] = set()
        best_cell = start
        best_key = (h_start, 0.0)
        expanded = 0

        while open_heap:
            if expanded >= self._max_expanded or self._clock() > deadline:
                return self._fallback(came_from, g_score, start, best_cell, expanded)

            _, h_current, _, current = heapq.heappop(open_heap)
            if current in closed:
                continue

            if current == goal:
                cells = self._reconstruct(came_from, current)
                return PlanResult(PlanStatus.FOUND, cells, g_score[current], expanded)

            closed.add(current)
            expanded += 1

            current_g = g_score[current]
            if (h_current, current_g) < best_key:
                best_key = (h_current, current_g)
                best_cell = current

            for neighbor, step_cost in grid.neighbors(current):
                if neighbor in closed:
                    continue
                tentative_g = current_g + step_cost
                if tentative_g < g_score.get(neighbor, math.inf):
                    g_score[neighbor] = tentative_g
                    came_from[neighbor] = current
                    h = heuristic(neighbor, goal)
                    counter += 1
                    heapq.heappush(open_heap, (tentative_g + h, h, counter, neighbor))

        return PlanResult(PlanStatus.UNREACHABLE, expanded=expanded)

    def _fallback(
        self,
        came_from: dict[Cell, Cell],
        g_score: dict[Cell, float],
        start: Cell,
        best_cell: Cell,
        expanded: int,
    ) -> PlanResult:
        if best_cell == start:
            logger.debug(f"Planning budget exceeded after {expanded} nodes with no progress")
            return PlanResult(PlanStatus.BUDGET_EXCEEDED, expanded=expanded)
        cells = self._reconstruct(came_from, best_cell)
        logger.debug(
            f"Planning budget exceeded after {expanded} nodes, "
            f"partial path of {len(cells)} cells"
        )
        return PlanResult(PlanStatus.PARTIAL, cells, g_score[best_cell], expanded)

    @staticmethod
    def _reconstruct(came_from: dict[Cell, Cell], current: Cell) -> list[Cell]:
        """Walk back through came_from to build the path (start excluded)."""
        path: list[Cell] = []
        while current in came_from:
            path.append(current)
            current = came_from[current]
        path.reverse()
        return path


def path_cost(cells: list[Cell], start: Cell) -> float:
    """Total step cost of walking ``cells`` from ``start``."""
    total = 0.0
    previous = start
    for cell in cells:
        total += heuristic(previous, cell)
        previous = cell
    return total
