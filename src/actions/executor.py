"""Queued action executor.

This module provides the reference ActionExecutor that:
- Validates commands before accepting them
- Enqueues accepted commands on a bounded queue and returns immediately
- Delivers them from a worker thread with humanized delays
- Enforces a minimum interval between delivered commands

Example:
    >>> executor = QueuedActionExecutor(NullInputBackend(), config.actions)
    >>> executor.start()
    >>> executor.move_to(Position(x=10, y=4))
    True
    >>> executor.stop()
"""

from __future__ import annotations

import logging
import math
import queue
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from src.actions.backend import InputBackend, NullInputBackend
from src.config.loader import ActionsConfig
from src.interfaces.actions import ActionCommand, ActionExecutor, ActionType
from src.models.world import Position

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass
class ExecutorStatistics:
    """Command counters."""

    accepted: int = 0
    rejected: int = 0
    delivered: int = 0
    failed: int = 0


class QueuedActionExecutor(ActionExecutor):
    """Fire-and-forget executor backed by a worker thread.

    Attributes:
        stats: Accepted, rejected, delivered and failed command counts.
    """

    def __init__(
        self,
        backend: InputBackend | None = None,
        config: ActionsConfig | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the executor.

        Args:
            backend: Input backend. Defaults to NullInputBackend.
            config: Delay and queue settings. Uses defaults if None.
            rng: Random source for humanized delays.
            sleep: Sleep function used by the worker.
            clock: Monotonic clock in seconds.
        """
        self._backend = backend if backend is not None else NullInputBackend()
        self._config = config or ActionsConfig()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._queue: queue.Queue[object] = queue.Queue(maxsize=self._config.queue_size)
        self._thread: threading.Thread | None = None
        self._running = False
        self._last_delivery: float | None = None
        self.stats = ExecutorStatistics()

        logger.debug(f"QueuedActionExecutor initialized with {type(self._backend).__name__}")

    @property
    def pending(self) -> int:
        """Commands waiting in the queue."""
        return self._queue.qsize()

    def is_ready(self) -> bool:
        return self._running and self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the delivery worker."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name="action-executor", daemon=True)
        self._thread.start()
        logger.info("Action executor started")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the worker; commands still queued are dropped."""
        if not self._running:
            return
        self._running = False
        while True:
            try:
                self._queue.get_nowait()
                self._queue.task_done()
            except queue.Empty:
                break
        self._queue.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Action executor stopped")

    def drain(self) -> None:
        """Block until every accepted command has been delivered."""
        self._queue.join()

    def validate(self, command: ActionCommand) -> tuple[bool, str | None]:
        """Validate a command before accepting it.

        Returns:
            Tuple of (is_valid, error_message).
        """
        target = command.target
        if target is not None and not all(
            math.isfinite(v) for v in (target.x, target.y, target.z)
        ):
            return False, f"Non-finite target {target!r}"

        if command.action_type in (ActionType.MOVE, ActionType.INTERACT) and target is None:
            return False, f"{command.action_type.value} requires a target"

        if command.action_type == ActionType.ABILITY and not (command.binding or "").strip():
            return False, "Ability press requires a binding"

        return True, None

    def move_to(self, point: Position) -> bool:
        return self._submit(ActionCommand(ActionType.MOVE, target=point))

    def use_ability(self, binding: str, target_point: Position | None = None) -> bool:
        return self._submit(ActionCommand(ActionType.ABILITY, target=target_point, binding=binding))

    def interact(self, point: Position) -> bool:
        return self._submit(ActionCommand(ActionType.INTERACT, target=point))

    def _submit(self, command: ActionCommand) -> bool:
        if not self._running:
            self.stats.rejected += 1
            logger.debug(f"Rejected {command}: executor not running")
            return False

        is_valid, error = self.validate(command)
        if not is_valid:
            self.stats.rejected += 1
            logger.warning(f"Action validation failed: {error}")
            return False

        try:
            self._queue.put_nowait(command)
        except queue.Full:
            self.stats.rejected += 1
            logger.debug(f"Rejected {command}: queue full")
            return False

        self.stats.accepted += 1
        return True

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                assert isinstance(item, ActionCommand)
                self._deliver(item)
            finally:
                self._queue.task_done()

    def _deliver(self, command: ActionCommand) -> None:
        config = self._config
        delay = self._rng.uniform(config.min_delay_ms, config.max_delay_ms) / 1000.0
        if self._last_delivery is not None:
            since = self._clock() - self._last_delivery
            delay = max(delay, config.min_interval_ms / 1000.0 - since)
        if delay > 0:
            self._sleep(delay)

        try:
            if command.action_type == ActionType.MOVE:
                assert command.target is not None
                self._backend.move(command.target)
            elif command.action_type == ActionType.ABILITY:
                assert command.binding is not None
                self._backend.press(command.binding, command.target)
            else:
                assert command.target is not None
                self._backend.interact(command.target)
        except Exception as e:
            # The worker must survive backend faults; the world shows the outcome.
            self.stats.failed += 1
            logger.error(f"Action delivery failed for {command}: {e}")
            return
        finally:
            self._last_delivery = self._clock()

        self.stats.delivered += 1
        logger.debug(f"Delivered {command.action_type.value} after {delay * 1000:.0f}ms")
