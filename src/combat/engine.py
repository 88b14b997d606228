"""Combat engine: targeting, ability use and tactical posture.

The engine runs while the orchestrator holds it engaged. Each ``update``
re-validates the held target against the current snapshot, then decides in
order: heal, retreat, kite, fight, engage, idle. Movement for retreat, kiting
and approach goes through the navigation engine under the combat owner.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING

from src.combat.abilities import AbilityBook, AbilityRole
from src.combat.targeting import TacticsMode, Target, TargetSelector, TargetWeights
from src.config.loader import BossTacticsConfig, CombatConfig
from src.models.world import AgentSnapshot, EntityView, Position
from src.navigation.engine import MovementOwner, NavigationEngine, NavStatus

if TYPE_CHECKING:
    from src.interfaces.actions import ActionExecutor
    from src.interfaces.world import WorldView

logger = logging.getLogger(__name__)

# Kiting starts once the target is closer than this share of the kite distance.
KITE_TRIGGER_RATIO = 0.6

# Tactics adjustments.
DEFENSIVE_THRESHOLD_BONUS = 0.1
DEFENSIVE_RANGE_FACTOR = 0.75


class CombatState(StrEnum):
    """Combat engine states."""

    IDLE = "idle"
    ENGAGING = "engaging"
    FIGHTING = "fighting"
    RETREATING = "retreating"
    HEALING = "healing"
    KITING = "kiting"
    BOSS_FIGHT = "boss_fight"


_FIGHTING_STATES = (CombatState.FIGHTING, CombatState.BOSS_FIGHT)


@dataclass(frozen=True)
class CombatParameters:
    """Effective thresholds for a tick."""

    engagement_range: float = 25.0
    heal_threshold: float = 0.5
    retreat_threshold: float = 0.3
    near_death_threshold: float = 0.1
    kite_distance: float = 15.0
    retreat_distance: float = 12.0
    melee_range: float = 3.0
    max_combat_seconds: float = 30.0
    ignore_seconds: float = 10.0

    @classmethod
    def from_config(cls, config: CombatConfig) -> CombatParameters:
        return cls(
            engagement_range=config.engagement_range,
            heal_threshold=config.heal_threshold,
            retreat_threshold=config.retreat_threshold,
            near_death_threshold=config.near_death_threshold,
            kite_distance=config.kite_distance,
            retreat_distance=config.retreat_distance,
            melee_range=config.melee_range,
            max_combat_seconds=config.max_combat_seconds,
            ignore_seconds=config.ignore_seconds,
        )

    def for_tactics(self, tactics: TacticsMode) -> CombatParameters:
        """Apply the tactics-mode adjustments."""
        if tactics == TacticsMode.AGGRESSIVE:
            return replace(self, retreat_threshold=self.near_death_threshold)
        if tactics == TacticsMode.DEFENSIVE:
            return replace(
                self,
                heal_threshold=min(1.0, self.heal_threshold + DEFENSIVE_THRESHOLD_BONUS),
                retreat_threshold=min(1.0, self.retreat_threshold + DEFENSIVE_THRESHOLD_BONUS),
                engagement_range=self.engagement_range * DEFENSIVE_RANGE_FACTOR,
            )
        return self

    def with_boss_override(self, boss: BossTacticsConfig) -> CombatParameters:
        """Wider engagement range and a more conservative retreat threshold."""
        return replace(
            self,
            engagement_range=self.engagement_range * boss.engagement_range_multiplier,
            retreat_threshold=max(self.retreat_threshold, boss.retreat_threshold),
        )


@dataclass
class CombatStatistics:
    """Monotonic combat counters."""

    monsters_killed: int = 0
    bosses_killed: int = 0
    deaths: int = 0
    engagements: int = 0
    retreats: int = 0
    heals: int = 0
    abilities_used: int = 0
    targets_ignored: int = 0
    combat_seconds: float = 0.0
    kill_seconds: float = 0.0

    @property
    def average_kill_seconds(self) -> float:
        kills = self.monsters_killed
        return self.kill_seconds / kills if kills else 0.0


class CombatEngine:
    """Fights whatever the orchestrator hands it.

    Example:
        >>> combat = CombatEngine(executor, navigation, config.combat)
        >>> combat.engage()
        >>> while combat.update(world) != CombatState.IDLE:
        ...     world.refresh()
    """

    def __init__(
        self,
        executor: ActionExecutor,
        navigation: NavigationEngine,
        config: CombatConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        abilities: AbilityBook | None = None,
    ) -> None:
        """Initialize the combat engine.

        Args:
            executor: Action executor for ability presses and basic attacks.
            navigation: Navigation engine used for approach, kite and retreat.
            config: Combat settings. Uses defaults if None.
            clock: Monotonic clock in seconds.
            abilities: Ability book. Built from config if None.
        """
        self._executor = executor
        self._navigation = navigation
        self._clock = clock
        self._config = config or CombatConfig()
        if abilities is None:
            abilities = AbilityBook.from_config(self._config.abilities)
        self._abilities = abilities
        self._selector = TargetSelector()
        self._configure(self._config)

        self._state = CombatState.IDLE
        self._active = False
        self._boss_tactics = True
        self._emergency = False
        self._ignored: dict[int, float] = {}
        self._target_is_boss = False
        self._fight_started: float | None = None
        self.stats = CombatStatistics()

    def _configure(self, config: CombatConfig) -> None:
        self._tactics = TacticsMode(config.tactics)
        self._base = CombatParameters.from_config(config)
        self._selector.weights = TargetWeights.from_config(config.weights)
        self._selector.switch_margin = config.switch_margin
        self._selector.min_hold_seconds = config.min_target_hold_seconds

    def apply_config(self, config: CombatConfig) -> None:
        """Apply new settings; ability cooldown state is kept."""
        self._config = config
        self._configure(config)
        existing = {a.name: a.last_used for a in self._abilities}
        book = AbilityBook.from_config(config.abilities)
        for ability in book:
            ability.last_used = existing.get(ability.name)
        self._abilities = book
        logger.info(f"Combat settings applied (tactics={self._tactics.value})")

    @property
    def state(self) -> CombatState:
        return self._state

    @property
    def tactics(self) -> TacticsMode:
        return self._tactics

    @property
    def target(self) -> Target | None:
        return self._selector.current

    @property
    def abilities(self) -> AbilityBook:
        return self._abilities

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_fighting_boss(self) -> bool:
        """Whether the primary target is a boss."""
        return self._active and self._target_is_boss

    def parameters(self, boss: bool = False) -> CombatParameters:
        """Effective parameters for the current tactics mode."""
        params = self._base.for_tactics(self._tactics)
        if boss and self._boss_tactics:
            params = params.with_boss_override(self._config.boss)
        return params

    def set_tactics(self, tactics: TacticsMode | str) -> None:
        self._tactics = TacticsMode(tactics)
        logger.info(f"Combat tactics set to {self._tactics.value}")

    def set_boss_tactics(self, enabled: bool) -> None:
        """Enable or disable the boss parameter override."""
        self._boss_tactics = enabled

    def emergency_retreat(self) -> None:
        """Retreat on the next update regardless of health thresholds."""
        logger.warning("Emergency retreat requested")
        self._emergency = True

    def has_candidates(self, world: WorldView) -> bool:
        """Whether any target would be engaged from the current position."""
        agent = world.agent()
        self._prune_ignored(self._clock())
        return bool(self._candidates(world, agent))

    def engage(self) -> None:
        """Start (or continue) fighting."""
        if self._active:
            return
        self._active = True
        self.stats.engagements += 1
        self._state = CombatState.ENGAGING
        logger.debug("Combat engaged")

    def disengage(self) -> None:
        """Stop fighting and release movement."""
        if not self._active and self._state == CombatState.IDLE:
            return
        self._leave_fight(self._clock())
        self._selector.clear()
        self._active = False
        self._emergency = False
        self._target_is_boss = False
        self._state = CombatState.IDLE
        if self._navigation.owner == MovementOwner.COMBAT:
            self._navigation.stop()
        logger.debug("Combat disengaged")

    stop = disengage

    def notify_death(self) -> None:
        """Record an agent death and drop out of combat."""
        self.stats.deaths += 1
        logger.warning(f"Agent died in combat (deaths={self.stats.deaths})")
        self.disengage()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update(self, world: WorldView) -> CombatState:
        """Run one combat decision against the current snapshot."""
        if not self._active:
            return CombatState.IDLE

        now = self._clock()
        agent = world.agent()
        if not agent.alive:
            self.notify_death()
            return CombatState.IDLE

        self._prune_ignored(now)
        self._revalidate_target(world, now)

        candidates = self._candidates(world, agent)
        target = self._selector.select(candidates, agent, self._tactics, now)
        entity = world.get_entity(target.entity_id) if target is not None else None

        # Bosses are fought until they die or are lost; the time cap is for trash.
        if target is not None and entity is not None and not entity.is_boss:
            if now - target.acquired_at > self.parameters().max_combat_seconds:
                self._ignore(target, now)
                target, entity = None, None

        if target is None or entity is None:
            if self._emergency and candidates:
                entity = candidates[0]
            else:
                logger.debug("No targets left, leaving combat")
                self.disengage()
                return CombatState.IDLE

        if self._target_is_boss != entity.is_boss:
            logger.info(
                "Boss tactics " + ("applied" if entity.is_boss else "reverted")
                + f" for target {entity.id}"
            )
        self._target_is_boss = entity.is_boss
        params = self.parameters(entity.is_boss)

        state = self._decide(world, agent, target, entity, params, now)
        if state == CombatState.IDLE:
            self.disengage()
            return state
        self._transition(state, now)
        return state

    def _decide(
        self,
        world: WorldView,
        agent: AgentSnapshot,
        target: Target | None,
        entity: EntityView,
        params: CombatParameters,
        now: float,
    ) -> CombatState:
        health = agent.health_percent
        distance = agent.position.distance_to(entity.position)

        if health < params.heal_threshold:
            heal = self._abilities.select(AbilityRole.DEFENSIVE, agent, None, now)
            if heal is not None and self._use(heal.name, heal.binding, None, now):
                self.stats.heals += 1
                return CombatState.HEALING

        if self._emergency or health < params.retreat_threshold:
            self._emergency = False
            threat = self._nearest_threat(world, agent) or entity
            self._navigation.flee_from(
                threat.position, agent.position, params.retreat_distance, MovementOwner.COMBAT
            )
            self._navigation.update(world, MovementOwner.COMBAT)
            self.stats.retreats += 1
            return CombatState.RETREATING

        if target is None:
            return CombatState.IDLE

        if self._tactics == TacticsMode.KITING and distance < params.kite_distance * KITE_TRIGGER_RATIO:
            ability = self._abilities.select(AbilityRole.OFFENSIVE, agent, entity, now)
            if ability is not None and ability.range > params.melee_range:
                self._use(ability.name, ability.binding, entity.position, now)
            else:
                self._navigation.flee_from(
                    entity.position, agent.position, params.kite_distance, MovementOwner.COMBAT
                )
                self._navigation.update(world, MovementOwner.COMBAT)
            return CombatState.KITING

        attack_range = max(params.melee_range, self._abilities.max_range(AbilityRole.OFFENSIVE))
        if distance <= attack_range:
            if self._navigation.owner == MovementOwner.COMBAT:
                self._navigation.stop()
            ability = self._abilities.select(AbilityRole.OFFENSIVE, agent, entity, now)
            if ability is not None:
                self._use(ability.name, ability.binding, entity.position, now)
                target.engaged = True
                return CombatState.BOSS_FIGHT if entity.is_boss else CombatState.FIGHTING
            if distance <= params.melee_range:
                if not self._executor.interact(entity.position):
                    logger.debug("Basic attack rejected")
                target.engaged = True
                return CombatState.BOSS_FIGHT if entity.is_boss else CombatState.FIGHTING

        self._navigation.navigate_to(entity.position, MovementOwner.COMBAT)
        status = self._navigation.update(world, MovementOwner.COMBAT)
        if status == NavStatus.UNREACHABLE:
            logger.info(f"Target {entity.id} unreachable")
            self._ignore(target, now)
        return CombatState.ENGAGING

    def _use(self, name: str, binding: str, point: Position | None, now: float) -> bool:
        if not self._executor.use_ability(binding, point):
            logger.debug(f"Ability '{name}' rejected by executor")
            return False
        self._abilities.mark_used(name, now)
        self.stats.abilities_used += 1
        return True

    def _candidates(self, world: WorldView, agent: AgentSnapshot) -> list[EntityView]:
        base = self.parameters(boss=False)
        wide = self.parameters(boss=True)
        found = self._selector.candidates(
            world, agent, wide.engagement_range, self._tactics, set(self._ignored)
        )
        return [
            e
            for e in found
            if e.is_boss or agent.position.distance_to(e.position) <= base.engagement_range
        ]

    def _nearest_threat(self, world: WorldView, agent: AgentSnapshot) -> EntityView | None:
        params = self.parameters(boss=True)
        for entity in world.nearby_entities(agent.position, params.engagement_range):
            if entity.is_hostile and entity.alive:
                return entity
        return None

    def _revalidate_target(self, world: WorldView, now: float) -> None:
        target = self._selector.current
        if target is None:
            return
        entity = world.get_entity(target.entity_id)
        if entity is None:
            logger.debug(f"Target {target.entity_id} lost")
            self._selector.clear()
            return
        if not entity.alive:
            if target.engaged:
                self.stats.monsters_killed += 1
                self.stats.kill_seconds += now - target.acquired_at
                if entity.is_boss:
                    self.stats.bosses_killed += 1
                    logger.info(f"Boss {entity.id} killed")
                else:
                    logger.debug(f"Target {entity.id} killed")
            self._selector.clear()

    def _ignore(self, target: Target, now: float) -> None:
        params = self.parameters(self._target_is_boss)
        logger.info(
            f"Ignoring target {target.entity_id} for {params.ignore_seconds:.0f}s "
            f"after {now - target.acquired_at:.1f}s"
        )
        self._ignored[target.entity_id] = now + params.ignore_seconds
        self.stats.targets_ignored += 1
        self._selector.clear()

    def _prune_ignored(self, now: float) -> None:
        expired = [i for i, until in self._ignored.items() if until <= now]
        for entity_id in expired:
            del self._ignored[entity_id]

    def _transition(self, state: CombatState, now: float) -> None:
        if state == self._state:
            return
        if state in _FIGHTING_STATES and self._state not in _FIGHTING_STATES:
            self._fight_started = now
        elif state not in _FIGHTING_STATES:
            self._leave_fight(now)
        logger.debug(f"Combat {self._state.value} -> {state.value}")
        self._state = state

    def _leave_fight(self, now: float) -> None:
        if self._fight_started is not None:
            self.stats.combat_seconds += now - self._fight_started
            self._fight_started = None
