"""Top-level activity state machine.

Each tick the orchestrator refreshes the world once, checks that the world
is attached and the agent alive, and then evaluates its guards in priority
order: combat, looting, seasonal objects, exploration. The chosen activity
delegates to the combat or navigation engine; only one of them drives
movement in a tick.

Example:
    >>> orchestrator = Orchestrator(world, executor, combat, navigation, loot_filter, config)
    >>> orchestrator.start()
    >>> activity = orchestrator.tick()
"""

from __future__ import annotations

import logging
import queue
import time
from collections import Counter
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel, Field

from src.combat.engine import CombatEngine, CombatState
from src.config.loader import Config
from src.interfaces.actions import ActionExecutor
from src.interfaces.loot import LootDecision, LootFilter
from src.interfaces.world import WorldUnavailableError, WorldView
from src.models.world import AgentSnapshot, EntityKind, EntityView, Position
from src.navigation.engine import MovementOwner, NavigationEngine, NavStatus
from src.runtime.recovery import (
    AttachmentBackoff,
    RecoveryPolicy,
    RuntimeRecoveryCoordinator,
)

logger = logging.getLogger(__name__)


class Activity(StrEnum):
    """Top-level activities."""

    IDLE = "idle"
    FARMING = "farming"
    COMBAT = "combat"
    LOOTING = "looting"
    NAVIGATING = "navigating"
    BOSS_FIGHT = "boss_fight"
    SEASONAL_ACTIVITY = "seasonal_activity"
    ERROR = "error"


# Activities whose movement belongs to the orchestrator.
_ORCHESTRATOR_MOVEMENT = (Activity.LOOTING, Activity.NAVIGATING, Activity.SEASONAL_ACTIVITY)


class BotStatistics(BaseModel):
    """Snapshot of bot-level counters."""

    runtime_seconds: float = Field(default=0.0, ge=0)
    ticks: int = Field(default=0, ge=0)
    ticks_by_activity: dict[str, int] = Field(default_factory=dict)
    items_looted: int = Field(default=0, ge=0)
    items_skipped: int = Field(default=0, ge=0)
    seasonal_interactions: int = Field(default=0, ge=0)
    explorations_started: int = Field(default=0, ge=0)
    error_entries: int = Field(default=0, ge=0)
    exploration_progress: float = Field(default=0.0, ge=0, le=1)
    monsters_killed: int = Field(default=0, ge=0)
    bosses_killed: int = Field(default=0, ge=0)
    deaths: int = Field(default=0, ge=0)
    combat_seconds: float = Field(default=0.0, ge=0)
    average_kill_seconds: float = Field(default=0.0, ge=0)

    model_config = {"frozen": True}


class Orchestrator:
    """Chooses one activity per tick and delegates to the engines."""

    def __init__(
        self,
        world: WorldView,
        executor: ActionExecutor,
        combat: CombatEngine,
        navigation: NavigationEngine,
        loot_filter: LootFilter,
        config: Config | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            world: World snapshot provider, refreshed once per tick here.
            executor: Action executor for pickups and seasonal interactions.
            combat: Combat engine.
            navigation: Navigation engine.
            loot_filter: Item classifier.
            config: Full configuration. Uses defaults if None.
            clock: Monotonic clock in seconds.
        """
        self._world = world
        self._executor = executor
        self._combat = combat
        self._navigation = navigation
        self._loot_filter = loot_filter
        self._clock = clock
        self._config = config or Config()

        policy = RecoveryPolicy.for_profile(self._config.agent.recovery_profile)
        policy = RecoveryPolicy(
            attach_backoff_seconds=self._config.agent.attach_retry_seconds or policy.attach_backoff_seconds,
            error_log_interval_seconds=self._config.agent.error_log_interval_seconds,
        )
        self._recovery = RuntimeRecoveryCoordinator(policy, clock)
        self._backoff = AttachmentBackoff(policy.attach_backoff_seconds, clock)

        self._activity = Activity.IDLE
        self._running = False
        self._paused = False
        self._started_at: float | None = None
        self._exploration_exhausted_at: int | None = None

        self._loot_attempts: dict[int, int] = {}
        self._last_interact: dict[int, float] = {}
        self._loot_positions: dict[int, Position] = {}
        self._skipped_items: set[int] = set()
        self._seasonal_done: set[int] = set()

        self._ticks = 0
        self._ticks_by_activity: Counter[Activity] = Counter()
        self._items_looted = 0
        self._items_skipped = 0
        self._seasonal_interactions = 0
        self._explorations_started = 0
        self._error_entries = 0
        self._pending_configs: queue.SimpleQueue[Config] = queue.SimpleQueue()

    @property
    def activity(self) -> Activity:
        return self._activity

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def recovery(self) -> RuntimeRecoveryCoordinator:
        return self._recovery

    @property
    def backoff(self) -> AttachmentBackoff:
        return self._backoff

    def submit_config(self, config: Config) -> None:
        """Hand a new configuration to the tick.

        Safe to call from any thread. The newest submitted configuration is
        applied to the orchestrator and both engines at the start of the next
        tick, so no engine is reconfigured while it is deciding.
        """
        self._pending_configs.put(config)

    def _apply_pending_config(self) -> None:
        config: Config | None = None
        while True:
            try:
                config = self._pending_configs.get_nowait()
            except queue.Empty:
                break
        if config is None:
            return
        self._config = config
        self._navigation.apply_config(config.navigation)
        self._combat.apply_config(config.combat)
        logger.info("Configuration update applied")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._paused = False
        if self._started_at is None:
            self._started_at = self._clock()
        logger.info("Orchestrator started")

    def pause(self) -> None:
        if not self._running or self._paused:
            return
        self._paused = True
        self._halt_engines()
        self._activity = Activity.IDLE
        logger.info("Orchestrator paused")

    def resume(self) -> None:
        if not self._running or not self._paused:
            return
        self._paused = False
        logger.info("Orchestrator resumed")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._paused = False
        self._halt_engines()
        self._backoff.reset()
        self._activity = Activity.IDLE
        logger.info("Orchestrator stopped")

    def _halt_engines(self) -> None:
        self._combat.disengage()
        self._navigation.stop()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> Activity:
        """Run one decision cycle.

        Returns:
            The activity chosen for this tick.
        """
        self._apply_pending_config()
        if not self._running or self._paused:
            self._activity = Activity.IDLE
            return self._activity

        self._ticks += 1
        if self._activity == Activity.ERROR:
            activity = self._tick_error()
        else:
            activity = self._tick_normal()
        self._ticks_by_activity[activity] += 1
        return activity

    def _tick_normal(self) -> Activity:
        try:
            self._world.refresh()
        except WorldUnavailableError as e:
            return self._enter_error(e, "world refresh")

        agent = self._world.agent()
        failure = self._precondition_failure(agent)
        if failure is not None:
            return self._enter_error(
                WorldUnavailableError(failure), "precondition", agent_died=not agent.alive
            )
        return self._decide_safely(agent)

    def _tick_error(self) -> Activity:
        if not self._backoff.due():
            return Activity.ERROR

        self._backoff.record_attempt()
        if not self._world.is_attached() and not self._world.attach():
            self._log_error_state(f"reattach attempt {self._backoff.attempts} failed")
            return Activity.ERROR

        try:
            self._world.refresh()
        except WorldUnavailableError as e:
            self._log_error_state(f"world still unavailable: {e}")
            return Activity.ERROR

        agent = self._world.agent()
        failure = self._precondition_failure(agent)
        if failure is not None:
            self._log_error_state(failure)
            return Activity.ERROR

        logger.info(f"Recovered after {self._backoff.attempts} attempt(s)")
        self._backoff.reset()
        self._recovery.throttle.reset()
        self._activity = Activity.FARMING
        return self._decide_safely(agent)

    def _precondition_failure(self, agent: AgentSnapshot) -> str | None:
        if not self._world.is_attached():
            return "world detached"
        if not agent.alive:
            return "agent is dead"
        return None

    def _enter_error(self, error: BaseException, context: str, agent_died: bool = False) -> Activity:
        severity = self._recovery.handle(error, context)
        if self._activity != Activity.ERROR:
            self._error_entries += 1
            if agent_died:
                self._combat.notify_death()
            self._halt_engines()
            self._backoff.start()
            logger.warning(
                f"Entering error state ({severity.value}): {error}; "
                f"retrying every {self._backoff.interval:.1f}s"
            )
        self._activity = Activity.ERROR
        return self._activity

    def _log_error_state(self, message: str) -> None:
        if self._recovery.throttle.allow("error-state"):
            suppressed = self._recovery.throttle.suppressed("error-state")
            extra = f" ({suppressed} similar suppressed)" if suppressed else ""
            logger.warning(f"Still in error state: {message}{extra}")

    def _decide_safely(self, agent: AgentSnapshot) -> Activity:
        try:
            return self._decide(agent)
        except Exception as e:
            logger.exception(f"Unexpected failure during {self._activity.value}")
            return self._enter_error(e, f"activity {self._activity.value}")

    def _switch(self, activity: Activity) -> None:
        if activity == self._activity:
            return
        if (
            self._activity in _ORCHESTRATOR_MOVEMENT
            and self._navigation.owner == MovementOwner.ORCHESTRATOR
        ):
            self._navigation.stop()
        logger.debug(f"Activity {self._activity.value} -> {activity.value}")
        self._activity = activity

    def _decide(self, agent: AgentSnapshot) -> Activity:
        world = self._world

        # 1. Combat
        if self._combat.is_active or self._combat.has_candidates(world):
            if self._activity not in (Activity.COMBAT, Activity.BOSS_FIGHT):
                self._switch(Activity.COMBAT)
            self._combat.engage()
            state = self._combat.update(world)
            if state == CombatState.IDLE:
                self._switch(Activity.FARMING)
                return self._activity
            self._switch(Activity.BOSS_FIGHT if self._combat.is_fighting_boss else Activity.COMBAT)
            return self._activity

        self._track_pickups(agent)

        # 2. Looting
        loot = self._keepable_items(agent)
        if loot:
            self._switch(Activity.LOOTING)
            self._loot(agent, loot)
            return self._activity

        # 3. Seasonal objects
        if self._config.orchestrator.seasonal_enabled and not agent.in_combat:
            seasonal = self._next_seasonal(agent)
            if seasonal is not None:
                self._switch(Activity.SEASONAL_ACTIVITY)
                self._seasonal(agent, seasonal)
                return self._activity

        # 4. Exploration
        if self._activity != Activity.NAVIGATING:
            # Drops any goal left over from looting or a seasonal approach.
            self._switch(Activity.FARMING)
        if not self._navigation.has_goal:
            if self._exploration_exhausted_at == self._navigation.exploration.visited_count:
                return self._activity
            self._navigation.start_exploration(MovementOwner.ORCHESTRATOR)
            self._explorations_started += 1
        self._switch(Activity.NAVIGATING)
        status = self._navigation.update(world, MovementOwner.ORCHESTRATOR)
        if status == NavStatus.EXHAUSTED:
            self._exploration_exhausted_at = self._navigation.exploration.visited_count
        if status in (NavStatus.ARRIVED, NavStatus.UNREACHABLE, NavStatus.EXHAUSTED, NavStatus.IDLE):
            self._switch(Activity.FARMING)
        return self._activity

    # ------------------------------------------------------------------
    # Looting
    # ------------------------------------------------------------------

    def _track_pickups(self, agent: AgentSnapshot) -> None:
        """Items we tried to pick up that vanished while we stood by them were looted.

        An item that dropped out of the scan after the agent was pulled away
        (combat, flee) is forgotten instead; it gets classified afresh if seen again.
        """
        tick = self._world.tick
        pickup_range = self._config.orchestrator.pickup_range
        for item_id in list(self._loot_attempts):
            entity = self._world.get_entity(item_id)
            if entity is not None and entity.last_seen_tick >= tick:
                continue
            where = self._loot_positions.pop(item_id)
            del self._loot_attempts[item_id]
            self._last_interact.pop(item_id, None)
            if agent.position.distance_to(where) <= pickup_range:
                self._items_looted += 1
                logger.debug(f"Item {item_id} picked up")
            else:
                logger.debug(f"Lost sight of item {item_id} away from it, not counted")

    def _keepable_items(self, agent: AgentSnapshot) -> list[tuple[EntityView, LootDecision]]:
        radius = self._config.orchestrator.loot_radius
        tick = self._world.tick
        found = []
        for entity in self._world.nearby_entities(agent.position, radius):
            if entity.kind != EntityKind.ITEM or entity.last_seen_tick < tick:
                continue
            if entity.id in self._skipped_items:
                continue
            decision = self._loot_filter.classify(entity)
            if decision.keep:
                found.append((entity, decision))
        found.sort(
            key=lambda pair: (
                -pair[1].priority,
                agent.position.distance_to(pair[0].position),
                pair[0].id,
            )
        )
        return found

    def _loot(self, agent: AgentSnapshot, loot: list[tuple[EntityView, LootDecision]]) -> None:
        config = self._config.orchestrator
        item, decision = loot[0]
        distance = agent.position.distance_to(item.position)

        if distance > config.pickup_range:
            self._navigation.navigate_to(item.position, MovementOwner.ORCHESTRATOR)
            status = self._navigation.update(self._world, MovementOwner.ORCHESTRATOR)
            if status == NavStatus.UNREACHABLE:
                self._skip_item(item.id, "unreachable")
            return

        if self._navigation.owner == MovementOwner.ORCHESTRATOR:
            self._navigation.stop()

        now = self._clock()
        last = self._last_interact.get(item.id)
        if last is not None and now - last < config.interact_interval_seconds:
            return

        attempts = self._loot_attempts.get(item.id, 0)
        if attempts >= config.loot_attempts:
            self._skip_item(item.id, f"{attempts} failed pickups")
            return

        self._loot_attempts[item.id] = attempts + 1
        self._last_interact[item.id] = now
        self._loot_positions[item.id] = item.position
        if self._executor.interact(item.position):
            logger.debug(f"Picking up item {item.id} ({decision.reason}, priority {decision.priority})")
        else:
            logger.debug(f"Pickup of item {item.id} rejected")

    def _skip_item(self, item_id: int, reason: str) -> None:
        logger.info(f"Giving up on item {item_id}: {reason}")
        self._skipped_items.add(item_id)
        self._loot_attempts.pop(item_id, None)
        self._last_interact.pop(item_id, None)
        self._loot_positions.pop(item_id, None)
        self._items_skipped += 1

    # ------------------------------------------------------------------
    # Seasonal activity
    # ------------------------------------------------------------------

    def _next_seasonal(self, agent: AgentSnapshot) -> EntityView | None:
        radius = self._config.world.scan_radius
        tick = self._world.tick
        for entity in self._world.nearby_entities(agent.position, radius):
            if (
                entity.is_seasonal
                and entity.last_seen_tick == tick
                and entity.id not in self._seasonal_done
            ):
                return entity
        return None

    def _seasonal(self, agent: AgentSnapshot, target: EntityView) -> None:
        interact_range = target.interactable.interaction_range
        if agent.position.distance_to(target.position) > interact_range:
            self._navigation.navigate_to(target.position, MovementOwner.ORCHESTRATOR)
            status = self._navigation.update(self._world, MovementOwner.ORCHESTRATOR)
            if status == NavStatus.UNREACHABLE:
                logger.info(f"Seasonal object {target.id} unreachable, skipping")
                self._seasonal_done.add(target.id)
            return

        if self._navigation.owner == MovementOwner.ORCHESTRATOR:
            self._navigation.stop()
        if self._executor.interact(target.position):
            self._seasonal_done.add(target.id)
            self._seasonal_interactions += 1
            logger.info(
                f"Interacted with seasonal object {target.id} "
                f"({target.interactable.event_type})"
            )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def statistics(self) -> BotStatistics:
        """Snapshot of bot and combat counters."""
        combat = self._combat.stats
        runtime = 0.0 if self._started_at is None else self._clock() - self._started_at
        return BotStatistics(
            runtime_seconds=max(0.0, runtime),
            ticks=self._ticks,
            ticks_by_activity={a.value: n for a, n in self._ticks_by_activity.items()},
            items_looted=self._items_looted,
            items_skipped=self._items_skipped,
            seasonal_interactions=self._seasonal_interactions,
            explorations_started=self._explorations_started,
            error_entries=self._error_entries,
            exploration_progress=self._navigation.exploration_progress,
            monsters_killed=combat.monsters_killed,
            bosses_killed=combat.bosses_killed,
            deaths=combat.deaths,
            combat_seconds=combat.combat_seconds,
            average_kill_seconds=combat.average_kill_seconds,
        )
