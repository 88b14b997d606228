"""Interface definitions for the farmbot decision core.

The engines only talk to the world, the action channel and the loot filter
through these interfaces, so every collaborator can be swapped for a
scripted one in tests.
"""

from src.interfaces.actions import ActionCommand, ActionError, ActionExecutor, ActionType
from src.interfaces.loot import LootDecision, LootFilter
from src.interfaces.world import WorldUnavailableError, WorldView

__all__ = [
    "ActionCommand",
    "ActionError",
    "ActionExecutor",
    "ActionType",
    "LootDecision",
    "LootFilter",
    "WorldUnavailableError",
    "WorldView",
]
