"""Shared data models for farmbot.

All models use Pydantic for validation and are frozen: a snapshot is
replaced every tick, never patched.
"""

from src.models.world import (
    AgentSnapshot,
    EntityKind,
    EntityKindError,
    EntityView,
    InteractableData,
    ItemData,
    ItemRarity,
    ItemType,
    MonsterData,
    Position,
)

__all__ = [
    "AgentSnapshot",
    "EntityKind",
    "EntityKindError",
    "EntityView",
    "InteractableData",
    "ItemData",
    "ItemRarity",
    "ItemType",
    "MonsterData",
    "Position",
]
