"""Reference WorldView built on a raw world source and an entity tracker."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from src.interfaces.world import WorldUnavailableError, WorldView
from src.models.world import AgentSnapshot, EntityView, Position
from src.world.tracker import EntityTracker

logger = logging.getLogger(__name__)


class WorldSource(ABC):
    """Raw access to the game world.

    Implementations read whatever the world exposes (shared memory, a game
    API, a simulator). Failures may surface as any exception; the view
    converts them to ``WorldUnavailableError``.
    """

    @abstractmethod
    def read_agent(self) -> AgentSnapshot:
        """Read the agent's current state."""
        ...

    @abstractmethod
    def scan_entities(self) -> list[EntityView]:
        """Read every entity currently visible."""
        ...

    @abstractmethod
    def is_attached(self) -> bool:
        """Whether the source is connected to a running world."""
        ...

    @abstractmethod
    def attach(self) -> bool:
        """Try to connect; returns True on success."""
        ...

    def obstacles(self) -> list[Position]:
        """Blocked world positions the source knows about."""
        return []


class TrackedWorldView(WorldView):
    """WorldView whose entity set is maintained by an EntityTracker.

    Example:
        >>> view = TrackedWorldView(InMemoryWorldSource(), stale_ticks=5)
        >>> view.refresh()
        >>> enemies = [e for e in view.nearby_entities(view.agent().position, 25) if e.is_hostile]
    """

    def __init__(self, source: WorldSource, stale_ticks: int = 5) -> None:
        self._source = source
        self._tracker = EntityTracker(stale_ticks=stale_ticks)
        self._tick = 0
        self._agent: AgentSnapshot | None = None
        self._obstacles: tuple[Position, ...] = ()

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def tracker(self) -> EntityTracker:
        return self._tracker

    def refresh(self) -> None:
        """Read the source and replace the snapshot.

        Raises:
            WorldUnavailableError: If the source is detached or fails.
        """
        if not self._source.is_attached():
            raise WorldUnavailableError("World source is not attached")

        try:
            agent = self._source.read_agent()
            scan = self._source.scan_entities()
            obstacles = tuple(self._source.obstacles())
        except WorldUnavailableError:
            raise
        except Exception as e:
            raise WorldUnavailableError(f"World read failed: {e}") from e

        tick = self._tick + 1
        self._tracker.ingest(scan, tick, agent)
        self._agent = agent
        self._obstacles = obstacles
        self._tick = tick

    def agent(self) -> AgentSnapshot:
        if self._agent is None:
            raise WorldUnavailableError("World has not been refreshed yet")
        return self._agent

    def entities(self) -> list[EntityView]:
        return self._tracker.entities()

    def get_entity(self, entity_id: int) -> EntityView | None:
        return self._tracker.get(entity_id)

    def nearby_entities(self, point: Position, radius: float) -> list[EntityView]:
        return self._tracker.nearby(point, radius)

    def is_attached(self) -> bool:
        return self._source.is_attached()

    def attach(self) -> bool:
        try:
            attached = self._source.attach()
        except Exception as e:
            logger.warning(f"World attach failed: {e}")
            return False
        if attached:
            logger.info("World source attached")
        return attached

    def obstacles(self) -> Iterable[Position]:
        return self._obstacles
