"""Tests for control loop metrics collection."""

from __future__ import annotations

import pytest

from src.core.metrics import AgentMetrics, MetricsCollector
from tests.fakes import FakeClock


class TestAgentMetrics:
    def test_overrun_rate(self) -> None:
        assert AgentMetrics(tick_count=10, tick_overruns=2).overrun_rate == pytest.approx(0.2)
        assert AgentMetrics().overrun_rate == 0.0


class TestMetricsCollector:
    def test_records_tick_timing(self) -> None:
        metrics = MetricsCollector(tick_budget_ms=50, clock=FakeClock())

        metrics.record_tick(10.0, "farming")
        metrics.record_tick(30.0, "combat")

        snapshot = metrics.get_metrics()
        assert snapshot.tick_count == 2
        assert snapshot.avg_tick_time_ms == pytest.approx(20.0)
        assert snapshot.max_tick_time_ms == pytest.approx(30.0)
        assert snapshot.activity_counts == {"farming": 1, "combat": 1}

    def test_overruns_reported(self) -> None:
        metrics = MetricsCollector(tick_budget_ms=50, clock=FakeClock())

        assert metrics.record_tick(49.0) is False
        assert metrics.record_tick(51.0) is True
        assert metrics.get_metrics().tick_overruns == 1

    def test_tick_rate(self) -> None:
        clock = FakeClock()
        metrics = MetricsCollector(clock=clock)
        for _ in range(11):
            metrics.record_tick(1.0)
            clock.advance(0.05)

        assert metrics.get_metrics().tick_rate_hz == pytest.approx(20.0)

    def test_errors_by_type(self) -> None:
        metrics = MetricsCollector(clock=FakeClock())

        metrics.record_error("ValueError")
        metrics.record_error("ValueError")
        metrics.record_error("KeyError")

        snapshot = metrics.get_metrics()
        assert snapshot.errors_total == 3
        assert snapshot.errors_by_type == {"ValueError": 2, "KeyError": 1}

    def test_uptime(self) -> None:
        clock = FakeClock()
        metrics = MetricsCollector(clock=clock)
        assert metrics.get_metrics().uptime_seconds == 0.0

        metrics.start()
        clock.advance(12.5)

        snapshot = metrics.get_metrics()
        assert snapshot.uptime_seconds == pytest.approx(12.5)
        assert snapshot.started_at is not None

    def test_reset(self) -> None:
        metrics = MetricsCollector(clock=FakeClock())
        metrics.start()
        metrics.record_tick(100.0, "combat")
        metrics.record_error("ValueError")

        metrics.reset()

        snapshot = metrics.get_metrics()
        assert snapshot.tick_count == 0
        assert snapshot.errors_total == 0
        assert snapshot.activity_counts == {}
        assert snapshot.started_at is None
