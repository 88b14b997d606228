"""World view interface: the read-only per-tick snapshot consumed by the engines."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from src.models.world import AgentSnapshot, EntityView, Position


class WorldUnavailableError(Exception):
    """Raised when the world cannot be read this tick."""

    pass


class WorldView(ABC):
    """Abstract interface for the world snapshot provider.

    The view is refreshed exactly once per tick, before any engine reads it.
    Between refreshes it is immutable: the agent snapshot and the entity set
    are replaced wholesale, never patched, so every engine in a tick sees the
    same data.
    """

    @property
    @abstractmethod
    def tick(self) -> int:
        """Number of successful refreshes so far."""
        ...

    @abstractmethod
    def refresh(self) -> None:
        """Replace the agent snapshot and entity set from the world.

        Raises:
            WorldUnavailableError: If the world cannot be read.
        """
        ...

    @abstractmethod
    def agent(self) -> AgentSnapshot:
        """Get the agent snapshot for the current tick."""
        ...

    @abstractmethod
    def entities(self) -> list[EntityView]:
        """Get every tracked entity for the current tick."""
        ...

    @abstractmethod
    def get_entity(self, entity_id: int) -> EntityView | None:
        """Look up a tracked entity; None once it has been evicted."""
        ...

    @abstractmethod
    def nearby_entities(self, point: Position, radius: float) -> list[EntityView]:
        """Get tracked entities within radius of a point, nearest first."""
        ...

    @abstractmethod
    def is_attached(self) -> bool:
        """Whether the underlying world connection is alive."""
        ...

    @abstractmethod
    def attach(self) -> bool:
        """Try to (re)establish the world connection.

        Returns:
            True if the view is attached afterwards.
        """
        ...

    def obstacles(self) -> Iterable[Position]:
        """World positions currently known to be blocked."""
        return ()
