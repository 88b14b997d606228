"""Tests for runtime error classification and attachment backoff."""

from __future__ import annotations

import logging

import pytest

from src.interfaces.actions import ActionError
from src.interfaces.world import WorldUnavailableError
from src.runtime.recovery import (
    AttachmentBackoff,
    ErrorSeverity,
    InitializationError,
    RecoveryPolicy,
    RuntimeRecoveryCoordinator,
    classify,
)
from tests.fakes import FakeClock


class TestClassification:
    """Error classification should map failures to deterministic severities."""

    def test_initialization_is_fatal(self) -> None:
        assert classify(InitializationError("no world")) == ErrorSeverity.FATAL

    def test_world_and_action_failures_degrade(self) -> None:
        assert classify(WorldUnavailableError("detached")) == ErrorSeverity.DEGRADED
        assert classify(ActionError("input device gone")) == ErrorSeverity.DEGRADED

    def test_timeouts_are_transient(self) -> None:
        assert classify(TimeoutError()) == ErrorSeverity.TRANSIENT
        assert classify(RuntimeError("Read timed out")) == ErrorSeverity.TRANSIENT
        assert classify(OSError("resource temporarily unavailable")) == ErrorSeverity.TRANSIENT

    def test_unknown_errors_degrade(self) -> None:
        assert classify(ValueError("bad state")) == ErrorSeverity.DEGRADED


class TestRecoveryPolicy:
    def test_profiles(self) -> None:
        assert RecoveryPolicy.for_profile("conservative").attach_backoff_seconds == 10.0
        assert RecoveryPolicy.for_profile("Aggressive").attach_backoff_seconds == 2.0
        assert RecoveryPolicy.for_profile("balanced") == RecoveryPolicy()


class TestAttachmentBackoff:
    def test_first_attempt_one_interval_after_start(self) -> None:
        clock = FakeClock()
        backoff = AttachmentBackoff(5.0, clock)
        assert not backoff.due()

        backoff.start()
        assert backoff.active
        assert not backoff.due()
        assert backoff.seconds_until_next() == pytest.approx(5.0)

        clock.advance(5.0)
        assert backoff.due()

    def test_attempts_spaced_by_interval(self) -> None:
        clock = FakeClock()
        backoff = AttachmentBackoff(5.0, clock)
        backoff.start()
        clock.advance(5.0)

        backoff.record_attempt()

        assert backoff.attempts == 1
        assert not backoff.due()
        clock.advance(4.9)
        assert not backoff.due()
        clock.advance(0.1)
        assert backoff.due()

    def test_start_is_idempotent_while_active(self) -> None:
        clock = FakeClock()
        backoff = AttachmentBackoff(5.0, clock)
        backoff.start()
        clock.advance(3.0)

        backoff.start()

        assert backoff.seconds_until_next() == pytest.approx(2.0)

    def test_reset(self) -> None:
        clock = FakeClock()
        backoff = AttachmentBackoff(5.0, clock)
        backoff.start()
        backoff.record_attempt()

        backoff.reset()

        assert not backoff.active
        assert backoff.attempts == 0

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            AttachmentBackoff(0.0)


class TestRecoveryCoordinator:
    def test_counts_by_severity_and_type(self) -> None:
        coordinator = RuntimeRecoveryCoordinator(RecoveryPolicy(), FakeClock())

        coordinator.handle(WorldUnavailableError("detached"), "refresh")
        coordinator.handle(TimeoutError("slow"), "combat")

        assert coordinator.by_severity[ErrorSeverity.DEGRADED] == 1
        assert coordinator.by_severity[ErrorSeverity.TRANSIENT] == 1
        assert coordinator.by_type["WorldUnavailableError"] == 1

    def test_repeated_failures_logged_at_bounded_rate(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        clock = FakeClock()
        coordinator = RuntimeRecoveryCoordinator(
            RecoveryPolicy(error_log_interval_seconds=10.0), clock
        )

        with caplog.at_level(logging.ERROR, logger="src.runtime.recovery"):
            for _ in range(50):
                coordinator.handle(WorldUnavailableError("detached"), "refresh")
                clock.advance(0.05)
            clock.advance(10.0)
            coordinator.handle(WorldUnavailableError("detached"), "refresh")

        messages = [r.getMessage() for r in caplog.records if r.name == "src.runtime.recovery"]
        assert len(messages) == 2
        assert "49 similar suppressed" in messages[1]
        assert coordinator.by_type["WorldUnavailableError"] == 51
