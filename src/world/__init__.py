"""World snapshot support: entity tracking and reference WorldView.

This package provides:
- EntityTracker: entity set with stale eviction and per-tick threat scoring
- WorldSource: raw world access interface
- TrackedWorldView: WorldView over a WorldSource
- InMemoryWorldSource: scripted source for tests and simulations
"""

from src.world.memory import InMemoryWorldSource
from src.world.tracker import EntityTracker, compute_threat
from src.world.view import TrackedWorldView, WorldSource

__all__ = [
    "EntityTracker",
    "InMemoryWorldSource",
    "TrackedWorldView",
    "WorldSource",
    "compute_threat",
]
