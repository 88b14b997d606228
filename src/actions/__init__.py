"""Actions package: reference command delivery.

This package provides:
- InputBackend: Interface for actual input mechanisms
- NullInputBackend: No-op backend for testing
- QueuedActionExecutor: Validating, fire-and-forget executor with a worker thread
"""

from src.actions.backend import InputBackend, NullInputBackend
from src.actions.executor import ExecutorStatistics, QueuedActionExecutor

__all__ = [
    "ExecutorStatistics",
    "InputBackend",
    "NullInputBackend",
    "QueuedActionExecutor",
]
