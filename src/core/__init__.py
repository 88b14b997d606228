"""Core decision logic package.

This package provides:
- Orchestrator: Top-level activity state machine
- Activity: Activity enumeration
- BotStatistics: Snapshot of bot-level counters
- ControlLoop: Fixed-rate tick loop
- LoopState: Loop state enumeration
- InitializationError: Fatal startup failure
- AgentMetrics: Snapshot of collected metrics
- MetricsCollector: Metrics collection for monitoring
- build_runtime: Wires every component from a configuration
"""

from src.core.assembly import Runtime, build_runtime
from src.core.loop import ControlLoop, InitializationError, LoopState
from src.core.metrics import AgentMetrics, MetricsCollector
from src.core.orchestrator import Activity, BotStatistics, Orchestrator

__all__ = [
    "Activity",
    "AgentMetrics",
    "BotStatistics",
    "ControlLoop",
    "InitializationError",
    "LoopState",
    "MetricsCollector",
    "Orchestrator",
    "Runtime",
    "build_runtime",
]
