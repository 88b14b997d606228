"""Navigation engine: path execution, exploration and stuck recovery.

The engine owns at most one path at a time. Every tick the current owner
(the orchestrator for plain travel and exploration, the combat engine for
engage/kite/retreat movement) calls ``update`` once; the engine marks
exploration progress, follows waypoints, and recovers from motion failure.

Example:
    >>> nav = NavigationEngine(executor, config.navigation)
    >>> nav.navigate_to(Position(x=40, y=12), owner=MovementOwner.ORCHESTRATOR)
    >>> status = nav.update(world, owner=MovementOwner.ORCHESTRATOR)
"""

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from src.config.loader import NavigationConfig
from src.models.world import Position
from src.navigation.grid import Cell, ExplorationMap, OccupancyGrid
from src.navigation.pathfinding import AStarPlanner, PlanResult, PlanStatus
from src.navigation.stuck import StuckDetector

if TYPE_CHECKING:
    from src.interfaces.actions import ActionExecutor
    from src.interfaces.world import WorldView

logger = logging.getLogger(__name__)


class NavState(StrEnum):
    """Navigation engine states."""

    IDLE = "idle"
    PATHFINDING = "pathfinding"
    MOVING = "moving"
    EXPLORING = "exploring"
    STUCK = "stuck"
    GOAL_REACHED = "goal_reached"


class NavStatus(StrEnum):
    """Per-tick result reported to the caller."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    ARRIVED = "arrived"
    STUCK = "stuck"
    UNREACHABLE = "unreachable"
    EXHAUSTED = "exhausted"


class MovementOwner(StrEnum):
    """Who is allowed to drive movement."""

    ORCHESTRATOR = "orchestrator"
    COMBAT = "combat"


@dataclass
class Path:
    """Waypoint sequence with a cursor.

    Attributes:
        goal: Final goal position.
        cells: Grid cells of the waypoints.
        waypoints: World positions to walk through, in order.
        partial: True when the path stops short of the goal.
        cursor: Index of the waypoint being approached.
    """

    goal: Position
    cells: list[Cell]
    waypoints: list[Position]
    partial: bool = False
    cursor: int = 0

    @property
    def current(self) -> Position | None:
        if self.cursor >= len(self.waypoints):
            return None
        return self.waypoints[self.cursor]

    @property
    def is_complete(self) -> bool:
        return self.cursor >= len(self.waypoints)

    def advance(self, position: Position, tolerance: float) -> bool:
        """Move the cursor past the farthest waypoint within tolerance.

        Returns:
            True if the cursor moved.
        """
        for index in range(len(self.waypoints) - 1, self.cursor - 1, -1):
            if position.distance_to(self.waypoints[index]) <= tolerance:
                self.cursor = index + 1
                return True
        return False

    def upcoming_cells(self) -> list[Cell]:
        return self.cells[self.cursor:]


@dataclass
class NavigationStatistics:
    """Counters kept by the navigation engine."""

    plans: int = 0
    plan_failures: int = 0
    budget_overruns: int = 0
    stuck_events: int = 0
    nudges: int = 0
    goals_reached: int = 0
    learned_obstacles: list[Cell] = field(default_factory=list)


class NavigationEngine:
    """Plans and executes movement on a coarse grid."""

    def __init__(
        self,
        executor: ActionExecutor,
        config: NavigationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the navigation engine.

        Args:
            executor: Action executor receiving move commands.
            config: Navigation settings. Uses defaults if None.
            clock: Monotonic clock in seconds.
            rng: Random source for stuck nudges. Seeded from config if None.
        """
        self._executor = executor
        self._clock = clock
        self._config = config or NavigationConfig()
        self._rng = rng or random.Random(self._config.seed)
        self._build(self._config)

        self._state = NavState.IDLE
        self._owner: MovementOwner | None = None
        self._goal: Position | None = None
        self._path: Path | None = None
        self._exploring = False
        self._explore_target: Cell | None = None
        self._unreachable_targets: set[Cell] = set()
        self._goal_failures = 0
        self._nudges = 0
        self._nudge: Position | None = None
        self._nudge_until = 0.0
        self._last_issued: Position | None = None
        self._last_issue_time = 0.0
        self._last_update_tick: int | None = None
        self._last_status = NavStatus.IDLE
        self._last_plan: PlanResult | None = None
        self.stats = NavigationStatistics()

    def _build(self, config: NavigationConfig) -> None:
        self._grid = OccupancyGrid(config.grid_width, config.grid_height, config.grid_resolution)
        self._exploration = ExplorationMap(self._grid)
        self._planner = AStarPlanner(
            max_expanded_nodes=config.max_expanded_nodes,
            max_planning_ms=config.max_planning_ms,
        )
        self._stuck = StuckDetector(config.stuck_threshold, config.stuck_seconds)

    def apply_config(self, config: NavigationConfig) -> None:
        """Apply new settings.

        Planner and stuck thresholds change in place. A change of grid
        geometry discards the grid, the exploration record and the path.
        """
        old = self._config
        self._config = config
        if (old.grid_width, old.grid_height, old.grid_resolution) != (
            config.grid_width,
            config.grid_height,
            config.grid_resolution,
        ):
            logger.info("Grid geometry changed, resetting navigation state")
            self.stop()
            self._unreachable_targets.clear()
            self._build(config)
            return
        self._planner = AStarPlanner(
            max_expanded_nodes=config.max_expanded_nodes,
            max_planning_ms=config.max_planning_ms,
        )
        self._stuck = StuckDetector(config.stuck_threshold, config.stuck_seconds)

    @property
    def state(self) -> NavState:
        return self._state

    @property
    def owner(self) -> MovementOwner | None:
        return self._owner

    @property
    def goal(self) -> Position | None:
        return self._goal

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def grid(self) -> OccupancyGrid:
        return self._grid

    @property
    def exploration(self) -> ExplorationMap:
        return self._exploration

    @property
    def exploration_progress(self) -> float:
        return self._exploration.progress

    @property
    def last_plan(self) -> PlanResult | None:
        return self._last_plan

    @property
    def has_goal(self) -> bool:
        """Whether there is an active goal (or a pending exploration goal)."""
        return self._goal is not None or self._exploring

    @property
    def is_navigating(self) -> bool:
        return self._state in (
            NavState.PATHFINDING,
            NavState.MOVING,
            NavState.EXPLORING,
            NavState.STUCK,
        )

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def navigate_to(self, goal: Position, owner: MovementOwner = MovementOwner.ORCHESTRATOR) -> None:
        """Set a goal; replans unless the goal is effectively unchanged."""
        self._claim(owner)
        if (
            self._goal is not None
            and not self._exploring
            and self._goal.distance_to(goal) < self._grid.resolution / 2
        ):
            return

        self._goal = goal
        self._exploring = False
        self._explore_target = None
        self._reset_attempts()
        self._state = NavState.PATHFINDING
        logger.debug(f"Navigation goal set to {goal} by {owner.value}")

    def start_exploration(self, owner: MovementOwner = MovementOwner.ORCHESTRATOR) -> None:
        """Head for the nearest unexplored frontier cell."""
        self._claim(owner)
        self._goal = None
        self._exploring = True
        self._explore_target = None
        self._reset_attempts()
        self._state = NavState.EXPLORING
        logger.debug("Map exploration started")

    def flee_from(
        self,
        threat: Position,
        agent: Position,
        distance: float,
        owner: MovementOwner = MovementOwner.COMBAT,
    ) -> Position:
        """Move away from a threat.

        The flee goal lies ``distance`` away from the agent along the
        threat-to-agent direction. If that cell is not walkable, directions
        rotated by 45 and 90 degrees either way are tried in turn. An
        existing flee goal is kept while it is still farther from the threat
        than the agent.

        Returns:
            The flee goal in use.
        """
        if (
            self._owner == owner
            and self._goal is not None
            and not self._exploring
            and self._goal.distance_to(threat) > agent.distance_to(threat) + 0.5 * distance
        ):
            return self._goal

        dx = agent.x - threat.x
        dy = agent.y - threat.y
        norm = math.hypot(dx, dy)
        if norm < 1e-6:
            dx, dy, norm = 1.0, 0.0, 1.0
        base = math.atan2(dy, dx)

        goal = agent.offset(math.cos(base) * distance, math.sin(base) * distance)
        if self._grid.anchored:
            for rotation in (0.0, 45.0, -45.0, 90.0, -90.0):
                angle = base + math.radians(rotation)
                candidate = agent.offset(math.cos(angle) * distance, math.sin(angle) * distance)
                if self._grid.is_walkable(self._grid.world_to_cell(candidate)):
                    goal = candidate
                    break

        self.navigate_to(goal, owner)
        return goal

    def stop(self) -> None:
        """Drop the goal and path and release ownership."""
        if self._goal is not None or self._path is not None or self._exploring:
            logger.debug("Navigation stopped")
        self._goal = None
        self._path = None
        self._exploring = False
        self._explore_target = None
        self._owner = None
        self._last_issued = None
        self._reset_attempts()
        self._state = NavState.IDLE

    def _claim(self, owner: MovementOwner) -> None:
        if self._owner is not None and self._owner != owner and self.has_goal:
            logger.info(f"Movement handed from {self._owner.value} to {owner.value}")
            self.stop()
        self._owner = owner

    def _reset_attempts(self) -> None:
        self._path = None
        self._goal_failures = 0
        self._nudges = 0
        self._nudge = None
        self._last_issued = None

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update(self, world: WorldView, owner: MovementOwner = MovementOwner.ORCHESTRATOR) -> NavStatus:
        """Advance navigation by one tick.

        Only the current owner may drive the engine, and only once per world
        tick. An update from another owner cancels the in-flight goal.
        """
        tick = world.tick
        if self._last_update_tick == tick:
            logger.warning(f"Navigation already updated in tick {tick}; ignoring {owner.value}")
            return self._last_status
        self._last_update_tick = tick

        if self._owner is not None and owner != self._owner:
            logger.info(f"{owner.value} does not own movement ({self._owner.value}); cancelling")
            self.stop()
            self._last_status = NavStatus.IDLE
            return NavStatus.IDLE

        status = self._step(world)
        self._last_status = status
        return status

    def _step(self, world: WorldView) -> NavStatus:
        config = self._config
        position = world.agent().position
        now = self._clock()

        if not self._grid.anchored:
            self._grid.anchor(position)
        elif self._grid.recenter(position, self._recenter_margin()):
            logger.debug(f"Grid window moved to {self._grid.window} around {position}")
            self._path = None
        self._grid.set_world_obstacles(world.obstacles())
        self._exploration.mark_visited(position, config.explore_mark_radius)

        if self._exploring and self._goal is None:
            if not self._pick_exploration_goal(position):
                logger.info(
                    f"Exploration exhausted at {self._exploration.progress:.1%} of the grid"
                )
                self._exploring = False
                self._owner = None
                self._state = NavState.IDLE
                return NavStatus.EXHAUSTED

        if self._goal is None:
            if self._state != NavState.GOAL_REACHED:
                self._state = NavState.IDLE
            return NavStatus.IDLE

        if self._path is not None and self._path_blocked(self._path):
            logger.debug("Obstacle on upcoming waypoint, replanning")
            self._path = None

        if self._path is None:
            result = self._plan(position, now)
            if not result.usable and result.status != PlanStatus.FOUND:
                return self._planning_failed(result)

        path = self._path
        assert path is not None

        if path.advance(position, config.waypoint_tolerance):
            self._last_issued = None

        if path.is_complete:
            if path.partial:
                # Reached the end of a partial path; plan the next leg.
                self._path = None
                return NavStatus.IN_PROGRESS
            return self._arrive()

        if self._nudge is not None:
            if self._nudge_pending(position, now):
                self._state = NavState.STUCK
                return NavStatus.STUCK
            self._last_issued = None

        if self._stuck.sample(position, now):
            return self._recover_stuck(position, now)

        self._state = NavState.EXPLORING if self._exploring else NavState.MOVING
        self._issue_move(path.current, now)
        return NavStatus.IN_PROGRESS

    def _pick_exploration_goal(self, position: Position) -> bool:
        cell = self._exploration.next_target(position, exclude=self._unreachable_targets)
        if cell is None:
            return False
        self._explore_target = cell
        self._goal = self._grid.cell_center(cell)
        logger.debug(f"Next exploration target {cell} at {self._goal}")
        return True

    def _plan(self, position: Position, now: float) -> PlanResult:
        assert self._goal is not None
        self._state = NavState.PATHFINDING
        start = self._grid.world_to_cell(position)
        goal_cell = self._grid.world_to_cell(self._goal)
        result = self._planner.plan(self._grid, start, goal_cell)
        self._last_plan = result
        self.stats.plans += 1

        if result.status == PlanStatus.FOUND:
            waypoints = [self._grid.cell_center(c) for c in result.cells]
            if waypoints:
                waypoints[-1] = self._goal
            else:
                waypoints = [self._goal]
            self._path = Path(self._goal, list(result.cells) or [goal_cell], waypoints)
        elif result.status == PlanStatus.PARTIAL:
            self.stats.budget_overruns += 1
            waypoints = [self._grid.cell_center(c) for c in result.cells]
            self._path = Path(self._goal, list(result.cells), waypoints, partial=True)
        else:
            return result

        logger.debug(
            f"Planned {result.status.value} path: {len(result.cells)} cells, "
            f"cost {result.cost:.1f}, {result.expanded} expanded"
        )
        self._stuck.reset(position, now)
        self._last_issued = None
        return result

    def _planning_failed(self, result: PlanResult) -> NavStatus:
        self.stats.plan_failures += 1
        if result.status == PlanStatus.BUDGET_EXCEEDED:
            self.stats.budget_overruns += 1
            logger.warning(
                f"Planning budget exceeded without progress towards {self._goal} "
                f"({result.expanded} nodes)"
            )
        else:
            logger.info(f"Goal {self._goal} is unreachable")
        self._abandon_goal()
        return NavStatus.UNREACHABLE

    def _abandon_goal(self) -> None:
        if self._explore_target is not None:
            self._unreachable_targets.add(self._explore_target)
        self._goal = None
        self._path = None
        self._exploring = False
        self._explore_target = None
        self._owner = None
        self._reset_attempts()
        self._state = NavState.IDLE

    def _arrive(self) -> NavStatus:
        logger.debug(f"Reached goal {self._goal}")
        self.stats.goals_reached += 1
        self._goal = None
        self._path = None
        self._exploring = False
        self._explore_target = None
        self._owner = None
        self._reset_attempts()
        self._state = NavState.GOAL_REACHED
        return NavStatus.ARRIVED

    def _path_blocked(self, path: Path) -> bool:
        return any(self._grid.is_blocked(cell) for cell in path.upcoming_cells())

    def _issue_move(self, target: Position | None, now: float) -> None:
        if target is None:
            return
        if target == self._last_issued and now - self._last_issue_time < self._config.reissue_seconds:
            return
        if self._executor.move_to(target):
            self._last_issued = target
            self._last_issue_time = now
        else:
            logger.debug(f"Move to {target} rejected; will retry next tick")
            self._last_issued = None

    def _nudge_pending(self, position: Position, now: float) -> bool:
        """Whether the last nudge is still being walked out."""
        assert self._nudge is not None
        if position.distance_to(self._nudge) <= self._config.waypoint_tolerance:
            logger.debug(f"Nudge to {self._nudge} done, resuming path")
        elif now >= self._nudge_until:
            logger.debug(f"Nudge to {self._nudge} timed out, resuming path")
        else:
            return True
        self._nudge = None
        return False

    def _recenter_margin(self) -> int:
        return max(1, min(self._grid.width, self._grid.height) // 4)

    def _recover_stuck(self, position: Position, now: float) -> NavStatus:
        config = self._config
        path = self._path
        assert path is not None and path.current is not None
        self._state = NavState.STUCK
        self.stats.stuck_events += 1

        if self._nudges < config.max_nudges:
            self._nudges += 1
            self.stats.nudges += 1
            nudge = self._nudge_point(position, path.current)
            logger.info(f"Stuck at {position}, nudge {self._nudges}/{config.max_nudges} to {nudge}")
            if self._executor.move_to(nudge):
                self._nudge = nudge
                self._nudge_until = now + config.nudge_hold_seconds
            else:
                logger.debug("Nudge rejected")
            self._last_issued = None
            self._stuck.reset(position, now)
            return NavStatus.STUCK

        blocked = path.cells[path.cursor] if path.cursor < len(path.cells) else None
        goal_cell = self._grid.world_to_cell(path.goal)
        self._goal_failures += 1
        self._nudges = 0
        self._path = None
        self._stuck.reset(position, now)

        if blocked is not None and blocked != goal_cell:
            self._grid.block(blocked)
            self.stats.learned_obstacles.append(blocked)
            logger.info(f"Learned obstacle at cell {blocked}, replanning")

        if blocked == goal_cell or self._goal_failures >= config.max_goal_failures:
            logger.warning(
                f"Giving up on goal {self._goal} after {self._goal_failures} failed attempts"
            )
            self._abandon_goal()
            return NavStatus.UNREACHABLE
        return NavStatus.STUCK

    def _nudge_point(self, position: Position, toward: Position) -> Position:
        dx = toward.x - position.x
        dy = toward.y - position.y
        norm = math.hypot(dx, dy)
        if norm < 1e-6:
            dx, dy, norm = 1.0, 0.0, 1.0
        side = self._rng.choice((-1.0, 1.0))
        magnitude = self._config.nudge_distance * self._rng.uniform(0.5, 1.0)
        return position.offset(-dy / norm * side * magnitude, dx / norm * side * magnitude)
