"""Loot filter interface used by the looting activity."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from src.models.world import EntityView


@dataclass(frozen=True)
class LootDecision:
    """Keep/discard verdict for a dropped item.

    Attributes:
        keep: Whether the item should be picked up.
        priority: Pickup priority, higher first.
        reason: Name of the rule that decided.
    """

    keep: bool
    priority: int = 0
    reason: str = ""


class LootFilter(ABC):
    """Abstract interface for item classification."""

    @abstractmethod
    def classify(self, item: EntityView) -> LootDecision:
        """Classify an item entity.

        Args:
            item: An entity of kind ``item``.

        Returns:
            The keep/discard decision with its priority.
        """
        ...
