"""Tests for the navigation engine."""

from __future__ import annotations

import logging

import pytest

from src.config.loader import NavigationConfig
from src.navigation.engine import MovementOwner, NavigationEngine, NavState, NavStatus
from src.world.memory import InMemoryWorldSource
from src.world.view import TrackedWorldView
from tests.fakes import FakeClock, RecordingExecutor, agent, make_world, pos

ORCH = MovementOwner.ORCHESTRATOR
COMBAT = MovementOwner.COMBAT


def nav_config(**overrides: object) -> NavigationConfig:
    values: dict[str, object] = {
        "grid_width": 41,
        "grid_height": 41,
        "grid_resolution": 1.0,
        "max_planning_ms": 1000.0,
        "stuck_seconds": 2.0,
        "max_nudges": 2,
        "max_goal_failures": 2,
        "explore_mark_radius": 2.0,
        "seed": 7,
    }
    values.update(overrides)
    return NavigationConfig.model_validate(values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def world() -> tuple[InMemoryWorldSource, TrackedWorldView]:
    return make_world(agent(0, 0))


def tick(
    nav: NavigationEngine,
    world: tuple[InMemoryWorldSource, TrackedWorldView],
    owner: MovementOwner = ORCH,
) -> NavStatus:
    world[1].refresh()
    return nav.update(world[1], owner)


class TestNavigateTo:
    def test_plans_and_issues_first_waypoint(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(5, 0), ORCH)

        status = tick(nav, world)

        assert status == NavStatus.IN_PROGRESS
        assert nav.state == NavState.MOVING
        assert nav.owner == ORCH
        assert executor.moves == [pos(2, 0)]
        assert nav.path is not None
        assert nav.path.waypoints[-1] == pos(5, 0)

    def test_arrives_and_releases_ownership(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(5, 0), ORCH)
        tick(nav, world)

        world[0].move_agent(5, 0)
        clock.advance(0.5)
        status = tick(nav, world)

        assert status == NavStatus.ARRIVED
        assert nav.state == NavState.GOAL_REACHED
        assert nav.owner is None
        assert nav.goal is None
        assert nav.stats.goals_reached == 1

    def test_walks_waypoints_in_order(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(waypoint_tolerance=0.5), clock=clock)
        nav.navigate_to(pos(4, 0), ORCH)
        tick(nav, world)

        for x in (1, 2, 3):
            world[0].move_agent(x, 0)
            clock.advance(0.3)
            tick(nav, world)

        assert executor.moves == [pos(1, 0), pos(2, 0), pos(3, 0), pos(4, 0)]

    def test_skips_waypoints_already_passed(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(waypoint_tolerance=0.5), clock=clock)
        nav.navigate_to(pos(6, 0), ORCH)
        tick(nav, world)

        world[0].move_agent(3, 0)
        clock.advance(0.3)
        tick(nav, world)

        assert executor.moves == [pos(1, 0), pos(4, 0)]

    def test_move_reissued_only_after_interval(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(reissue_seconds=1.0), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)
        tick(nav, world)

        clock.advance(0.5)
        tick(nav, world)
        assert len(executor.moves) == 1

        clock.advance(0.6)
        tick(nav, world)
        assert len(executor.moves) == 2

    def test_rejected_move_retried_next_tick(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)
        executor.accept = False
        tick(nav, world)

        executor.accept = True
        clock.advance(0.1)
        tick(nav, world)

        assert executor.moves == [pos(2, 0)]

    def test_same_goal_keeps_path(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)
        tick(nav, world)
        path = nav.path

        nav.navigate_to(pos(8.2, 0), ORCH)

        assert nav.path is path

    def test_blocked_goal_is_unreachable(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        world[0].block(pos(6, 0))
        nav.navigate_to(pos(6, 0), ORCH)

        status = tick(nav, world)

        assert status == NavStatus.UNREACHABLE
        assert nav.goal is None
        assert nav.owner is None
        assert nav.stats.plan_failures == 1

    def test_partial_path_when_budget_runs_out(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(max_expanded_nodes=10), clock=clock)
        nav.navigate_to(pos(18, 0), ORCH)

        status = tick(nav, world)

        assert status == NavStatus.IN_PROGRESS
        assert nav.path is not None and nav.path.partial
        assert nav.stats.budget_overruns == 1


class TestOwnership:
    def test_update_from_non_owner_cancels(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)

        status = tick(nav, world, COMBAT)

        assert status == NavStatus.IDLE
        assert nav.goal is None
        assert nav.owner is None
        assert executor.moves == []

    def test_new_owner_takes_over(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)
        tick(nav, world)

        nav.navigate_to(pos(0, 8), COMBAT)

        assert nav.owner == COMBAT
        assert nav.goal == pos(0, 8)
        assert nav.path is None

    def test_second_update_in_same_tick_ignored(
        self, executor, clock, world, caplog: pytest.LogCaptureFixture
    ) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)
        first = tick(nav, world)
        clock.advance(5.0)

        with caplog.at_level(logging.WARNING, logger="src.navigation.engine"):
            second = nav.update(world[1], ORCH)

        assert second == first
        assert len(executor.moves) == 1
        assert "already updated" in caplog.text

    def test_stop_releases_everything(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)
        tick(nav, world)

        nav.stop()

        assert nav.state == NavState.IDLE
        assert nav.owner is None
        assert not nav.has_goal
        assert not nav.is_navigating


class TestStuckRecovery:
    def test_nudges_then_learns_obstacles_then_gives_up(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(10, 0), ORCH)
        statuses = [tick(nav, world)]

        while statuses[-1] != NavStatus.UNREACHABLE and len(statuses) < 30:
            clock.advance(2.0)
            statuses.append(tick(nav, world))

        assert statuses[-1] == NavStatus.UNREACHABLE
        assert NavStatus.STUCK in statuses
        assert nav.stats.nudges == 4
        assert len(nav.stats.learned_obstacles) == 2
        for cell in nav.stats.learned_obstacles:
            assert nav.grid.is_blocked(cell)
        assert nav.goal is None

    def test_nudge_is_perpendicular_to_heading(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(nudge_distance=4.0), clock=clock)
        nav.navigate_to(pos(10, 0), ORCH)
        tick(nav, world)

        clock.advance(2.0)
        status = tick(nav, world)

        assert status == NavStatus.STUCK
        assert nav.state == NavState.STUCK
        nudge = executor.moves[-1]
        assert nudge.x == pytest.approx(0.0, abs=1e-9)
        assert 2.0 <= abs(nudge.y) <= 4.0

    def test_nudge_is_walked_before_path_resumes(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(10, 0), ORCH)
        tick(nav, world)
        clock.advance(2.0)
        assert tick(nav, world) == NavStatus.STUCK
        nudge = executor.moves[-1]
        issued = len(executor.moves)

        clock.advance(0.05)
        assert tick(nav, world) == NavStatus.STUCK
        assert len(executor.moves) == issued

        world[0].move_agent(nudge.x, nudge.y)
        clock.advance(0.05)
        assert tick(nav, world) == NavStatus.IN_PROGRESS
        assert nav.path is not None
        assert executor.moves[-1] == nav.path.current

    def test_nudge_hold_times_out(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(nudge_hold_seconds=1.0), clock=clock)
        nav.navigate_to(pos(10, 0), ORCH)
        tick(nav, world)
        clock.advance(2.0)
        assert tick(nav, world) == NavStatus.STUCK

        clock.advance(1.5)

        assert tick(nav, world) == NavStatus.IN_PROGRESS
        assert nav.path is not None
        assert executor.moves[-1] == nav.path.current

    def test_moving_agent_is_not_stuck(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(10, 0), ORCH)
        tick(nav, world)

        for x in (1.5, 3.0, 4.5, 6.0):
            clock.advance(1.5)
            world[0].move_agent(x, 0)
            assert tick(nav, world) == NavStatus.IN_PROGRESS

        assert nav.stats.stuck_events == 0


class TestExploration:
    def test_exploration_heads_for_frontier(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.start_exploration(ORCH)

        status = tick(nav, world)

        assert status == NavStatus.IN_PROGRESS
        assert nav.state == NavState.EXPLORING
        assert nav.goal is not None
        assert not nav.exploration.is_visited(nav.grid.world_to_cell(nav.goal))
        assert len(executor.moves) == 1
        assert nav.exploration_progress > 0

    def test_exhausted_when_no_frontier(self, executor, clock, world) -> None:
        config = nav_config(grid_width=8, grid_height=8, explore_mark_radius=20.0)
        nav = NavigationEngine(executor, config, clock=clock)
        nav.start_exploration(ORCH)

        status = tick(nav, world)

        assert status == NavStatus.EXHAUSTED
        assert nav.exploration_progress == 1.0
        assert nav.owner is None
        assert not nav.has_goal


class TestGridWindow:
    def test_plans_after_walking_past_half_extent(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(2, 0), ORCH)
        tick(nav, world)

        world[0].move_agent(30, 0)
        nav.navigate_to(pos(34, 0), ORCH)

        assert tick(nav, world) == NavStatus.IN_PROGRESS
        assert nav.grid.in_bounds(nav.grid.world_to_cell(pos(34, 0)))
        assert nav.exploration.is_visited(nav.grid.world_to_cell(pos(0, 0)))


class TestFlee:
    def test_flee_goal_points_away_from_threat(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)

        goal = nav.flee_from(pos(5, 0), pos(0, 0), distance=10.0)

        assert goal.x == pytest.approx(-10.0)
        assert goal.y == pytest.approx(0.0, abs=1e-9)
        assert nav.goal == goal
        assert nav.owner == COMBAT

    def test_flee_rotates_around_blocked_direction(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(1, 0), COMBAT)
        tick(nav, world, COMBAT)
        nav.grid.block(nav.grid.world_to_cell(pos(-10, 0)))

        goal = nav.flee_from(pos(5, 0), pos(0, 0), distance=10.0)

        assert goal.x < 0
        assert goal != pos(-10, 0)
        assert nav.grid.is_walkable(nav.grid.world_to_cell(goal))

    def test_existing_flee_goal_kept(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        first = nav.flee_from(pos(5, 0), pos(0, 0), distance=10.0)

        second = nav.flee_from(pos(5, 1), pos(0, 0), distance=10.0)

        assert second == first


class TestApplyConfig:
    def test_geometry_change_resets_state(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)
        tick(nav, world)

        nav.apply_config(nav_config(grid_width=60))

        assert nav.goal is None
        assert nav.grid.width == 60
        assert nav.exploration_progress == 0.0

    def test_threshold_change_keeps_goal(self, executor, clock, world) -> None:
        nav = NavigationEngine(executor, nav_config(), clock=clock)
        nav.navigate_to(pos(8, 0), ORCH)

        nav.apply_config(nav_config(stuck_seconds=5.0))

        assert nav.goal == pos(8, 0)
