"""Navigation: occupancy grid, bounded A*, exploration and stuck recovery."""

from src.navigation.engine import (
    MovementOwner,
    NavigationEngine,
    NavigationStatistics,
    NavState,
    NavStatus,
    Path,
)
from src.navigation.grid import Cell, ExplorationMap, OccupancyGrid
from src.navigation.pathfinding import AStarPlanner, PlanResult, PlanStatus
from src.navigation.stuck import StuckDetector

__all__ = [
    "AStarPlanner",
    "Cell",
    "ExplorationMap",
    "MovementOwner",
    "NavState",
    "NavStatus",
    "NavigationEngine",
    "NavigationStatistics",
    "OccupancyGrid",
    "Path",
    "PlanResult",
    "PlanStatus",
    "StuckDetector",
]
