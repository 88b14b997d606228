"""Metrics collection for the control loop.

This module provides metrics tracking for:
- Tick timing, rate and budget overruns
- Activity distribution
- Error tracking

Example:
    >>> from src.core.metrics import MetricsCollector
    >>>
    >>> metrics = MetricsCollector(tick_budget_ms=50)
    >>> metrics.start()
    >>> metrics.record_tick(12.5, "farming")
    >>>
    >>> stats = metrics.get_metrics()
    >>> print(f"Tick rate: {stats.tick_rate_hz:.2f} Hz")
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_RATE_WINDOW = 100


class AgentMetrics(BaseModel):
    """Snapshot of control loop metrics.

    It is immutable and can be safely shared/serialized.

    Attributes:
        tick_count: Total number of ticks run.
        tick_rate_hz: Rate over the most recent ticks.
        avg_tick_time_ms: Average tick duration.
        max_tick_time_ms: Longest tick duration.
        tick_overruns: Ticks that took longer than the tick budget.
        activity_counts: Ticks per activity.
        errors_total: Exceptions that escaped a tick.
        errors_by_type: Count of errors by type.
        started_at: When collection started.
        uptime_seconds: Time since collection started.
    """

    # Timing
    tick_count: int = Field(default=0, ge=0)
    tick_rate_hz: float = Field(default=0.0, ge=0.0)
    avg_tick_time_ms: float = Field(default=0.0, ge=0.0)
    max_tick_time_ms: float = Field(default=0.0, ge=0.0)
    tick_overruns: int = Field(default=0, ge=0)

    # Activities
    activity_counts: dict[str, int] = Field(default_factory=dict)

    # Errors
    errors_total: int = Field(default=0, ge=0)
    errors_by_type: dict[str, int] = Field(default_factory=dict)

    # Uptime
    started_at: datetime | None = Field(default=None)
    uptime_seconds: float = Field(default=0.0, ge=0.0)

    model_config = {"frozen": True}

    @property
    def overrun_rate(self) -> float:
        """Share of ticks over budget (0.0 to 1.0)."""
        if self.tick_count == 0:
            return 0.0
        return self.tick_overruns / self.tick_count


@dataclass
class _TimingStats:
    """Internal helper for tracking timing statistics."""

    total_ms: float = 0.0
    max_ms: float = 0.0
    count: int = 0

    def record(self, duration_ms: float) -> None:
        """Record a timing measurement."""
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)
        self.count += 1

    @property
    def average_ms(self) -> float:
        """Get average duration in milliseconds."""
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count


class MetricsCollector:
    """Collects metrics during control loop execution.

    This class is thread-safe: the loop thread records while monitoring
    code reads snapshots.
    """

    def __init__(
        self,
        tick_budget_ms: float = 50.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the metrics collector.

        Args:
            tick_budget_ms: Tick duration above which a tick counts as an overrun.
            clock: Monotonic clock in seconds.
        """
        self._lock = threading.Lock()
        self._tick_budget_ms = tick_budget_ms
        self._clock = clock

        self._tick_timing = _TimingStats()
        self._overruns = 0
        self._activity_counts: dict[str, int] = {}
        self._errors_by_type: dict[str, int] = {}

        self._started_at: datetime | None = None
        self._started_clock: float | None = None
        self._tick_times: deque[float] = deque(maxlen=_RATE_WINDOW)

        logger.debug("MetricsCollector initialized")

    @property
    def tick_budget_ms(self) -> float:
        return self._tick_budget_ms

    def start(self) -> None:
        """Mark the start of metrics collection."""
        with self._lock:
            self._started_at = datetime.now()
            self._started_clock = self._clock()
            logger.debug("Metrics collection started")

    def reset(self) -> None:
        """Reset all metrics to initial state."""
        with self._lock:
            self._tick_timing = _TimingStats()
            self._overruns = 0
            self._activity_counts.clear()
            self._errors_by_type.clear()
            self._started_at = None
            self._started_clock = None
            self._tick_times.clear()
            logger.debug("Metrics reset")

    def record_tick(self, duration_ms: float, activity: str | None = None) -> bool:
        """Record a completed tick.

        Args:
            duration_ms: Duration of the tick in milliseconds.
            activity: Activity chosen in the tick, if any.

        Returns:
            True if the tick overran its budget.
        """
        with self._lock:
            self._tick_timing.record(duration_ms)
            self._tick_times.append(self._clock())
            if activity is not None:
                self._activity_counts[activity] = self._activity_counts.get(activity, 0) + 1
            overrun = duration_ms > self._tick_budget_ms
            if overrun:
                self._overruns += 1
            return overrun

    def record_error(self, error_type: str) -> None:
        """Record an error.

        Args:
            error_type: Type/class name of the error.
        """
        with self._lock:
            self._errors_by_type[error_type] = self._errors_by_type.get(error_type, 0) + 1

    def _calculate_tick_rate(self) -> float:
        """Calculate current tick rate in Hz."""
        if len(self._tick_times) < 2:
            return 0.0
        duration = self._tick_times[-1] - self._tick_times[0]
        if duration <= 0:
            return 0.0
        return (len(self._tick_times) - 1) / duration

    def get_metrics(self) -> AgentMetrics:
        """Get a snapshot of all current metrics."""
        with self._lock:
            uptime = 0.0
            if self._started_clock is not None:
                uptime = max(0.0, self._clock() - self._started_clock)

            return AgentMetrics(
                tick_count=self._tick_timing.count,
                tick_rate_hz=self._calculate_tick_rate(),
                avg_tick_time_ms=self._tick_timing.average_ms,
                max_tick_time_ms=self._tick_timing.max_ms,
                tick_overruns=self._overruns,
                activity_counts=dict(self._activity_counts),
                errors_total=sum(self._errors_by_type.values()),
                errors_by_type=dict(self._errors_by_type),
                started_at=self._started_at,
                uptime_seconds=uptime,
            )
