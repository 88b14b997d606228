"""Runtime error classification and attachment backoff."""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from src.interfaces.actions import ActionError
from src.interfaces.world import WorldUnavailableError
from src.runtime.logs import LogThrottle

logger = logging.getLogger(__name__)


class InitializationError(Exception):
    """Fatal startup failure: the world or the action channel is missing."""

    pass


class ErrorSeverity(StrEnum):
    """How far a failure propagates.

    TRANSIENT failures are handled inside the engine that saw them.
    DEGRADED failures move the orchestrator to Error with backoff.
    FATAL failures stop startup and reach the caller.
    """

    TRANSIENT = "transient"
    DEGRADED = "degraded"
    FATAL = "fatal"


_TRANSIENT_TOKENS = ("timeout", "timed out", "temporarily", "busy")


def classify(error: BaseException) -> ErrorSeverity:
    """Classify an exception by severity."""
    if isinstance(error, InitializationError):
        return ErrorSeverity.FATAL
    if isinstance(error, (WorldUnavailableError, ActionError)):
        return ErrorSeverity.DEGRADED
    if isinstance(error, TimeoutError):
        return ErrorSeverity.TRANSIENT

    message = str(error).lower()
    if any(token in message for token in _TRANSIENT_TOKENS):
        return ErrorSeverity.TRANSIENT
    return ErrorSeverity.DEGRADED


@dataclass(frozen=True)
class RecoveryPolicy:
    """Reattachment timing."""

    attach_backoff_seconds: float = 5.0
    error_log_interval_seconds: float = 10.0

    @classmethod
    def for_profile(cls, profile: str) -> RecoveryPolicy:
        """Resolve a named recovery profile."""
        normalized = profile.strip().lower()
        if normalized == "conservative":
            return cls(attach_backoff_seconds=10.0, error_log_interval_seconds=30.0)
        if normalized == "aggressive":
            return cls(attach_backoff_seconds=2.0, error_log_interval_seconds=5.0)
        # Default "balanced"
        return cls()


class AttachmentBackoff:
    """Fixed-interval schedule for reattachment attempts."""

    def __init__(
        self,
        interval_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._interval = interval_seconds
        self._clock = clock
        self._next_attempt: float | None = None
        self.attempts = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def active(self) -> bool:
        return self._next_attempt is not None

    def start(self) -> None:
        """Begin backing off; the first attempt is one interval away."""
        if self._next_attempt is None:
            self._next_attempt = self._clock() + self._interval
            self.attempts = 0

    def due(self) -> bool:
        """Whether an attempt may be made now."""
        return self._next_attempt is not None and self._clock() >= self._next_attempt

    def record_attempt(self) -> None:
        self.attempts += 1
        self._next_attempt = self._clock() + self._interval

    def seconds_until_next(self) -> float:
        if self._next_attempt is None:
            return 0.0
        return max(0.0, self._next_attempt - self._clock())

    def reset(self) -> None:
        self._next_attempt = None
        self.attempts = 0


class RuntimeRecoveryCoordinator:
    """Counts runtime failures and logs them at a bounded rate."""

    def __init__(
        self,
        policy: RecoveryPolicy,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policy = policy
        self._throttle = LogThrottle(policy.error_log_interval_seconds, clock)
        self.by_severity: Counter[ErrorSeverity] = Counter()
        self.by_type: Counter[str] = Counter()

    @property
    def policy(self) -> RecoveryPolicy:
        return self._policy

    @property
    def throttle(self) -> LogThrottle:
        return self._throttle

    def handle(self, error: BaseException, context: str) -> ErrorSeverity:
        """Record a failure and log it unless the same kind was just logged.

        Returns:
            The error's severity.
        """
        severity = classify(error)
        name = type(error).__name__
        self.by_severity[severity] += 1
        self.by_type[name] += 1

        key = f"{context}:{name}"
        if self._throttle.allow(key):
            suppressed = self._throttle.suppressed(key)
            extra = f" ({suppressed} similar suppressed)" if suppressed else ""
            if severity == ErrorSeverity.TRANSIENT:
                logger.info(f"[RECOVERY] Transient failure in {context}: {error}{extra}")
            else:
                logger.error(f"[RECOVERY] {severity.value} failure in {context}: {error}{extra}")
        return severity
