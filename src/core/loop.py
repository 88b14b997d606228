"""Fixed-rate control loop.

This module provides the ControlLoop class that drives the orchestrator
once per tick on a single thread:

- Fixed tick period (``agent.tick_ms``)
- Startup precondition checks (world attachable, action channel ready)
- Pause/resume/stop support
- Per-tick timing and budget overrun tracking
- Graceful shutdown on signals

Exceptions escaping a tick are logged and counted, never fatal: the
orchestrator's own Error state handles degraded collaborators.

Example:
    >>> loop = ControlLoop(orchestrator, world, executor, config.agent)
    >>> loop.start()  # raises InitializationError if the world is missing
    >>> # ... later ...
    >>> loop.stop()
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING

from src.config.loader import AgentConfig
from src.core.metrics import MetricsCollector
from src.runtime.logs import LogThrottle
from src.runtime.recovery import InitializationError

if TYPE_CHECKING:
    from src.core.orchestrator import Activity, Orchestrator
    from src.interfaces.actions import ActionExecutor
    from src.interfaces.world import WorldView

logger = logging.getLogger(__name__)

__all__ = ["ControlLoop", "InitializationError", "LoopState"]


class LoopState(StrEnum):
    """Possible states of the control loop."""

    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"


class ControlLoop:
    """Runs the orchestrator at a fixed tick rate.

    Attributes:
        state: Current loop state.
        metrics: Metrics collector instance.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        world: WorldView,
        executor: ActionExecutor,
        config: AgentConfig | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the control loop.

        Args:
            orchestrator: Orchestrator ticked once per period.
            world: World view checked at startup.
            executor: Action executor checked at startup.
            config: Loop settings. Uses defaults if None.
            metrics: Metrics collector. Creates new one if None.
            clock: Monotonic clock in seconds.
            sleep: Sleep function.
        """
        self._orchestrator = orchestrator
        self._world = world
        self._executor = executor
        self._config = config or AgentConfig()
        self._metrics = metrics or MetricsCollector(tick_budget_ms=self._config.tick_ms)
        self._clock = clock
        self._sleep = sleep
        self._overrun_log = LogThrottle(self._config.error_log_interval_seconds, clock)

        self._state = LoopState.STOPPED
        self._state_lock = threading.Lock()
        self._loop_thread: threading.Thread | None = None
        self._last_activity: Activity | None = None

        logger.debug(f"ControlLoop initialized: tick={self._config.tick_ms}ms")

    @property
    def state(self) -> LoopState:
        """Get the current loop state."""
        with self._state_lock:
            return self._state

    @property
    def metrics(self) -> MetricsCollector:
        """Get the metrics collector."""
        return self._metrics

    @property
    def period_seconds(self) -> float:
        return self._config.tick_ms / 1000.0

    @property
    def last_activity(self) -> Activity | None:
        """Activity returned by the most recent tick."""
        return self._last_activity

    def _set_state(self, new_state: LoopState) -> None:
        """Set the loop state (thread-safe)."""
        with self._state_lock:
            old_state = self._state
            self._state = new_state
        if old_state != new_state:
            logger.info(f"Loop state: {old_state.value} -> {new_state.value}")

    def check_preconditions(self) -> None:
        """Verify the collaborators the loop cannot run without.

        Raises:
            InitializationError: If the world cannot be attached or the
                action channel is missing.
        """
        if not self._world.is_attached() and not self._world.attach():
            raise InitializationError("World is not attached and attaching failed")
        if not self._executor.is_ready():
            raise InitializationError("Action executor is not ready")

    def start(self, blocking: bool = False) -> None:
        """Start the control loop.

        Args:
            blocking: If True, runs in current thread (blocks).
                     If False, runs in background thread.

        Raises:
            RuntimeError: If loop is already running.
            InitializationError: If a startup precondition fails.
        """
        if self.state in (LoopState.RUNNING, LoopState.PAUSED):
            raise RuntimeError(f"Loop is already {self.state.value}")

        self.check_preconditions()

        if self._config.enable_signal_handlers:
            self._install_signal_handlers()

        self._metrics.start()
        self._orchestrator.start()
        self._set_state(LoopState.RUNNING)

        if blocking:
            self._run_loop()
        else:
            self._loop_thread = threading.Thread(
                target=self._run_loop,
                name="ControlLoop",
                daemon=True,
            )
            self._loop_thread.start()
            logger.info("Control loop started in background thread")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the control loop gracefully.

        Args:
            timeout: Maximum time to wait for the loop thread.
        """
        if self.state == LoopState.STOPPED:
            return

        self._set_state(LoopState.STOPPING)

        thread = self._loop_thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Loop thread did not stop within timeout")

        self._orchestrator.stop()
        self._set_state(LoopState.STOPPED)
        logger.info("Control loop stopped")

    def pause(self) -> None:
        """Pause ticking; the orchestrator drops to Idle."""
        if self.state == LoopState.RUNNING:
            self._orchestrator.pause()
            self._set_state(LoopState.PAUSED)

    def resume(self) -> None:
        """Resume ticking from paused state."""
        if self.state == LoopState.PAUSED:
            self._orchestrator.resume()
            self._set_state(LoopState.RUNNING)

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        def signal_handler(signum: int, _frame: object) -> None:
            sig_name = signal.Signals(signum).name
            logger.info(f"Received {sig_name}, stopping loop...")
            self.stop()

        try:
            signal.signal(signal.SIGINT, signal_handler)
            signal.signal(signal.SIGTERM, signal_handler)
            logger.debug("Signal handlers installed")
        except ValueError:
            # Can only set handlers in main thread
            logger.debug("Could not install signal handlers (not main thread)")

    def _run_loop(self) -> None:
        """Main loop execution."""
        logger.info("Control loop running")
        period = self.period_seconds

        while self.state in (LoopState.RUNNING, LoopState.PAUSED):
            tick_start = self._clock()

            if self.state == LoopState.RUNNING:
                self._run_tick()

            remaining = period - (self._clock() - tick_start)
            if remaining > 0:
                self._sleep(remaining)

        logger.info("Control loop exited")

    def _run_tick(self) -> Activity | None:
        """Run one orchestrator tick and record its timing."""
        tick_start = self._clock()
        activity: Activity | None = None
        try:
            activity = self._orchestrator.tick()
        except Exception as e:
            logger.exception(f"Unexpected error in tick: {e}")
            self._metrics.record_error(type(e).__name__)

        duration_ms = (self._clock() - tick_start) * 1000
        overrun = self._metrics.record_tick(
            duration_ms, activity.value if activity is not None else None
        )
        if overrun and self._overrun_log.allow("overrun"):
            suppressed = self._overrun_log.suppressed("overrun")
            logger.warning(
                f"Tick took {duration_ms:.1f}ms (budget {self._config.tick_ms}ms)"
                + (f", {suppressed} more overruns since last report" if suppressed else "")
            )

        self._last_activity = activity
        return activity

    def run_once(self) -> Activity | None:
        """Run a single tick manually.

        Useful for testing or step-by-step execution.

        Returns:
            The activity chosen, or None if the tick raised.

        Raises:
            RuntimeError: If loop is currently running.
        """
        if self.state == LoopState.RUNNING:
            raise RuntimeError("Cannot run_once while loop is running")

        if not self._orchestrator.is_running:
            self._orchestrator.start()
        return self._run_tick()
