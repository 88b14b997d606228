"""Wiring of the decision core from a configuration.

Example:
    >>> runtime = build_runtime(InMemoryWorldSource(), load_config())
    >>> runtime.start()
    >>> runtime.config_manager.update({"combat": {"tactics": "defensive"}})  # applied next tick
    >>> runtime.stop()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from src.actions.backend import InputBackend
from src.actions.executor import QueuedActionExecutor
from src.combat.engine import CombatEngine
from src.config.loader import Config, ConfigManager
from src.core.loop import ControlLoop
from src.core.metrics import MetricsCollector
from src.core.orchestrator import Orchestrator
from src.interfaces.actions import ActionExecutor
from src.interfaces.loot import LootFilter
from src.loot.filter import RuleLootFilter
from src.navigation.engine import NavigationEngine
from src.runtime.logs import configure_logging, shutdown_logging
from src.world.view import TrackedWorldView, WorldSource

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Every wired component, for callers that need to reach in."""

    config_manager: ConfigManager
    world: TrackedWorldView
    executor: ActionExecutor
    navigation: NavigationEngine
    combat: CombatEngine
    loot_filter: LootFilter
    orchestrator: Orchestrator
    metrics: MetricsCollector
    loop: ControlLoop
    owns_logging: bool = False

    def start(self, blocking: bool = False) -> None:
        """Start the executor worker (if any) and then the loop."""
        if isinstance(self.executor, QueuedActionExecutor):
            self.executor.start()
        self.loop.start(blocking=blocking)

    def stop(self) -> None:
        """Stop the loop and the executor worker, then flush logging."""
        self.loop.stop()
        if isinstance(self.executor, QueuedActionExecutor):
            self.executor.stop()
        if self.owns_logging:
            shutdown_logging()


def build_runtime(
    source: WorldSource,
    config: Config | None = None,
    backend: InputBackend | None = None,
    executor: ActionExecutor | None = None,
    loot_filter: LootFilter | None = None,
    clock: Callable[[], float] = time.monotonic,
    configure_logs: bool = True,
) -> Runtime:
    """Build the decision core around a world source.

    Args:
        source: Raw world source.
        config: Configuration. Uses defaults if None.
        backend: Input backend for the default executor.
        executor: Executor to use instead of a QueuedActionExecutor.
        loot_filter: Loot filter to use instead of a RuleLootFilter.
        clock: Monotonic clock shared by every component.
        configure_logs: Install the queued logging setup from ``config.logging``.
            Leave False when the host application owns logging.

    Returns:
        The wired runtime, not yet started.
    """
    config = config or Config()
    if configure_logs:
        configure_logging(config.logging)
    manager = ConfigManager(config)

    world = TrackedWorldView(source, stale_ticks=config.world.stale_ticks)
    if executor is None:
        executor = QueuedActionExecutor(backend, config.actions, clock=clock)
    navigation = NavigationEngine(executor, config.navigation, clock=clock)
    combat = CombatEngine(executor, navigation, config.combat, clock=clock)
    if loot_filter is None:
        loot_filter = RuleLootFilter.from_config(config.loot)
    orchestrator = Orchestrator(world, executor, combat, navigation, loot_filter, config, clock=clock)
    metrics = MetricsCollector(tick_budget_ms=config.agent.tick_ms, clock=clock)
    loop = ControlLoop(orchestrator, world, executor, config.agent, metrics, clock=clock)

    # Updates reach the engines on the tick thread, at the start of the next tick.
    manager.subscribe(orchestrator.submit_config)

    logger.debug("Runtime assembled")
    return Runtime(
        config_manager=manager,
        world=world,
        executor=executor,
        navigation=navigation,
        combat=combat,
        loot_filter=loot_filter,
        orchestrator=orchestrator,
        metrics=metrics,
        loop=loop,
        owns_logging=configure_logs,
    )
