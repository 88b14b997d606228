"""Tests for the activity orchestrator.

These tests verify:
- Guard priority (combat, looting, seasonal objects, exploration)
- Error state entry, backoff and recovery
- Pickup tracking and giving up on items
- Lifecycle and statistics
"""

from __future__ import annotations

from dataclasses import dataclass
from unittest.mock import MagicMock

import pytest

from src.combat.engine import CombatEngine
from src.config.loader import Config, NavigationConfig, OrchestratorConfig
from src.core.orchestrator import Activity, Orchestrator
from src.loot.filter import RuleLootFilter
from src.models.world import EntityView, ItemRarity
from src.navigation.engine import MovementOwner, NavigationEngine
from src.world.memory import InMemoryWorldSource
from src.world.view import TrackedWorldView
from tests.fakes import (
    FakeClock,
    RecordingExecutor,
    agent,
    boss,
    enemy,
    item,
    make_world,
    pos,
    seasonal,
)


@dataclass
class Rig:
    orchestrator: Orchestrator
    combat: CombatEngine
    navigation: NavigationEngine
    executor: RecordingExecutor
    source: InMemoryWorldSource
    world: TrackedWorldView
    clock: FakeClock

    def tick(self, seconds: float = 0.05) -> Activity:
        self.clock.advance(seconds)
        return self.orchestrator.tick()


def build(*entities: EntityView, config: Config | None = None, start: bool = True) -> Rig:
    config = config or Config(
        navigation=NavigationConfig(
            grid_width=61, grid_height=61, grid_resolution=1.0, max_planning_ms=1000.0, seed=3
        )
    )
    clock = FakeClock()
    executor = RecordingExecutor()
    navigation = NavigationEngine(executor, config.navigation, clock=clock)
    combat = CombatEngine(executor, navigation, config.combat, clock=clock)
    source, world = make_world(agent(), *entities)
    orchestrator = Orchestrator(
        world, executor, combat, navigation, RuleLootFilter(), config, clock=clock
    )
    if start:
        orchestrator.start()
    return Rig(orchestrator, combat, navigation, executor, source, world, clock)


class TestLifecycle:
    def test_idle_until_started(self) -> None:
        rig = build(start=False)

        assert rig.tick() == Activity.IDLE
        assert rig.executor.commands == []

    def test_paused_orchestrator_does_nothing(self) -> None:
        rig = build()
        rig.tick()
        rig.orchestrator.pause()
        rig.executor.clear()

        assert rig.tick() == Activity.IDLE
        assert rig.executor.commands == []
        assert not rig.navigation.has_goal

        rig.orchestrator.resume()
        assert rig.tick() == Activity.NAVIGATING

    def test_stop_halts_engines(self) -> None:
        rig = build(enemy(1, 5, 0))
        rig.tick()
        assert rig.combat.is_active

        rig.orchestrator.stop()

        assert not rig.combat.is_active
        assert rig.navigation.owner is None
        assert rig.tick() == Activity.IDLE


class TestGuardPriority:
    def test_explores_empty_world(self) -> None:
        rig = build()

        assert rig.tick() == Activity.NAVIGATING
        assert rig.navigation.owner == MovementOwner.ORCHESTRATOR
        assert rig.executor.moves
        assert rig.orchestrator.statistics().explorations_started == 1

    def test_combat_beats_looting(self) -> None:
        rig = build(enemy(1, 5, 0), item(2, 1, 0))

        assert rig.tick() == Activity.COMBAT
        assert rig.combat.is_active
        assert rig.orchestrator.statistics().items_looted == 0

    def test_boss_target_is_boss_fight(self) -> None:
        rig = build(boss(1, 10, 0))

        assert rig.tick() == Activity.BOSS_FIGHT

    def test_looting_beats_seasonal(self) -> None:
        rig = build(item(1, 1, 0), seasonal(2, 0, 1))

        assert rig.tick() == Activity.LOOTING
        assert rig.executor.interactions == [pos(1, 0)]

    def test_enemy_takes_movement_from_exploration(self) -> None:
        rig = build()
        assert rig.tick() == Activity.NAVIGATING

        rig.source.put(enemy(1, 5, 0))

        assert rig.tick() == Activity.COMBAT
        assert rig.navigation.owner != MovementOwner.ORCHESTRATOR


class TestLooting:
    def test_picks_up_item_in_range(self) -> None:
        rig = build(item(1, 1, 0))

        assert rig.tick() == Activity.LOOTING
        assert rig.executor.interactions == [pos(1, 0)]

    def test_walks_to_distant_item(self) -> None:
        rig = build(item(1, 6, 0))

        assert rig.tick() == Activity.LOOTING
        assert rig.navigation.owner == MovementOwner.ORCHESTRATOR
        assert rig.navigation.goal == pos(6, 0)
        assert rig.executor.interactions == []
        assert rig.executor.moves

    def test_ignores_items_the_filter_rejects(self) -> None:
        rig = build(item(1, 1, 0, rarity=ItemRarity.NORMAL))

        assert rig.tick() == Activity.NAVIGATING
        assert rig.executor.interactions == []

    def test_disappearing_item_counts_as_looted(self) -> None:
        rig = build(item(1, 1, 0))
        rig.tick()

        rig.source.remove(1)

        assert rig.tick(1.0) == Activity.NAVIGATING
        assert rig.orchestrator.statistics().items_looted == 1

    def test_item_left_behind_is_not_counted(self) -> None:
        rig = build(item(1, 1, 0))
        assert rig.tick() == Activity.LOOTING

        rig.source.set_agent(agent(25, 0))
        rig.source.remove(1)

        assert rig.tick(1.0) == Activity.NAVIGATING
        assert rig.orchestrator.statistics().items_looted == 0

    def test_pickup_attempts_spaced_by_interval(self) -> None:
        rig = build(item(1, 1, 0))

        rig.tick()
        rig.tick(0.1)

        assert len(rig.executor.interactions) == 1

    def test_gives_up_after_failed_attempts(self) -> None:
        rig = build(item(1, 1, 0))

        for _ in range(4):
            assert rig.tick(0.6) == Activity.LOOTING

        assert len(rig.executor.interactions) == 3
        assert rig.orchestrator.statistics().items_skipped == 1
        assert rig.tick(0.6) == Activity.NAVIGATING


class TestSeasonal:
    def test_interacts_once_with_seasonal_object(self) -> None:
        rig = build(seasonal(1, 1, 0))

        assert rig.tick() == Activity.SEASONAL_ACTIVITY
        assert rig.executor.interactions == [pos(1, 0)]
        assert rig.orchestrator.statistics().seasonal_interactions == 1

        assert rig.tick() == Activity.NAVIGATING

    def test_seasonal_can_be_disabled(self) -> None:
        config = Config(
            navigation=NavigationConfig(grid_width=61, grid_height=61, grid_resolution=1.0),
            orchestrator=OrchestratorConfig(seasonal_enabled=False),
        )
        rig = build(seasonal(1, 1, 0), config=config)

        assert rig.tick() == Activity.NAVIGATING
        assert rig.executor.interactions == []


class TestErrorState:
    def test_detached_world_enters_error(self) -> None:
        rig = build(enemy(1, 5, 0))
        rig.tick()

        rig.source.detach()

        assert rig.tick() == Activity.ERROR
        assert not rig.combat.is_active
        assert rig.navigation.owner is None
        assert rig.orchestrator.statistics().error_entries == 1

    def test_waits_for_backoff_before_reattaching(self) -> None:
        rig = build()
        rig.source.detach()
        rig.tick()

        assert rig.tick(1.0) == Activity.ERROR
        assert rig.source.attach_calls == 0

        assert rig.tick(4.5) == Activity.NAVIGATING
        assert rig.source.attach_calls == 1
        assert not rig.orchestrator.backoff.active

    def test_failed_reattach_retries_each_interval(self) -> None:
        rig = build()
        rig.source.detach()
        rig.source.fail_attach = True
        rig.tick()

        assert rig.tick(5.5) == Activity.ERROR
        assert rig.tick(1.0) == Activity.ERROR
        assert rig.source.attach_calls == 1

        assert rig.tick(4.5) == Activity.ERROR
        assert rig.source.attach_calls == 2
        assert rig.orchestrator.statistics().error_entries == 1

    def test_death_enters_error_and_counts_once(self) -> None:
        rig = build()
        rig.source.set_agent(agent(health=0, alive=False))

        assert rig.tick() == Activity.ERROR
        assert rig.tick(5.5) == Activity.ERROR
        assert rig.combat.stats.deaths == 1

        rig.source.set_agent(agent())
        assert rig.tick(5.5) != Activity.ERROR

    def test_engine_failure_enters_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        rig = build(enemy(1, 5, 0))
        monkeypatch.setattr(rig.combat, "update", MagicMock(side_effect=ValueError("boom")))

        assert rig.tick() == Activity.ERROR

    def test_busy_engine_failure_also_enters_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        rig = build(enemy(1, 5, 0))
        monkeypatch.setattr(
            rig.combat, "update", MagicMock(side_effect=RuntimeError("backend busy"))
        )

        assert rig.tick() == Activity.ERROR
        assert not rig.combat.is_active
        assert rig.orchestrator.statistics().error_entries == 1
        assert rig.orchestrator.recovery.by_type["RuntimeError"] == 1


class TestStatistics:
    def test_counts_ticks_and_runtime(self) -> None:
        rig = build()

        for _ in range(3):
            rig.tick(0.5)

        stats = rig.orchestrator.statistics()
        assert stats.ticks == 3
        assert stats.ticks_by_activity == {"navigating": 3}
        assert stats.runtime_seconds == pytest.approx(1.5)
        assert stats.exploration_progress > 0
