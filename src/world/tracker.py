"""Entity tracking across world scans.

The tracker is the only place where the entity set is mutated. Entities
missing from a scan stay visible for a grace window of ``stale_ticks``
refreshes and are evicted afterwards; callers holding an entity id must look
it up again before acting on it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from src.models.world import AgentSnapshot, EntityView, Position

logger = logging.getLogger(__name__)

# Threat model constants (per level of difference, boss and elite factors).
THREAT_PER_LEVEL = 0.1
THREAT_BOSS_FACTOR = 3.0
THREAT_ELITE_FACTOR = 2.0
MIN_THREAT = 0.1


def compute_threat(entity: EntityView, agent: AgentSnapshot) -> float:
    """Threat score of a hostile entity relative to the agent.

    Non-hostile entities have no threat.
    """
    if not entity.is_hostile:
        return 0.0

    monster = entity.monster
    threat = 1.0 + (monster.level - agent.level) * THREAT_PER_LEVEL
    if entity.is_boss:
        threat *= THREAT_BOSS_FACTOR
    if monster.is_elite:
        threat *= THREAT_ELITE_FACTOR
    return max(MIN_THREAT, threat)


class EntityTracker:
    """Keeps the current entity set with stale-entry eviction."""

    def __init__(self, stale_ticks: int = 5) -> None:
        if stale_ticks < 1:
            raise ValueError("stale_ticks must be >= 1")
        self._stale_ticks = stale_ticks
        self._entities: dict[int, EntityView] = {}
        self._evicted: list[int] = []

    @property
    def stale_ticks(self) -> int:
        return self._stale_ticks

    @property
    def evicted_last_refresh(self) -> list[int]:
        """Ids evicted by the most recent ingest."""
        return list(self._evicted)

    def ingest(
        self,
        scan: Iterable[EntityView],
        tick: int,
        agent: AgentSnapshot,
    ) -> None:
        """Merge a scan into the tracked set.

        Args:
            scan: Entities visible this tick.
            tick: Tick number of the scan.
            agent: Agent snapshot used for threat scoring.
        """
        entities = dict(self._entities)
        for entity in scan:
            entities[entity.id] = entity.with_updates(last_seen_tick=tick)

        evicted = [
            entity_id
            for entity_id, entity in entities.items()
            if tick - entity.last_seen_tick > self._stale_ticks
        ]
        for entity_id in evicted:
            del entities[entity_id]
        if evicted:
            logger.debug(f"Evicted {len(evicted)} stale entities: {sorted(evicted)}")

        # Threat is always recomputed from this tick's agent snapshot.
        for entity_id, entity in entities.items():
            if entity.is_hostile:
                entities[entity_id] = entity.with_updates(threat=compute_threat(entity, agent))

        self._entities = entities
        self._evicted = evicted

    def clear(self) -> None:
        """Forget every tracked entity."""
        self._entities = {}
        self._evicted = []

    def get(self, entity_id: int) -> EntityView | None:
        return self._entities.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def entities(self) -> list[EntityView]:
        """All tracked entities ordered by id."""
        return [self._entities[k] for k in sorted(self._entities)]

    def nearby(self, point: Position, radius: float) -> list[EntityView]:
        """Tracked entities within radius, ordered by (distance, id)."""
        found = [
            (entity.position.distance_to(point), entity.id, entity)
            for entity in self._entities.values()
            if entity.position.distance_to(point) <= radius
        ]
        found.sort(key=lambda item: (item[0], item[1]))
        return [entity for _, _, entity in found]
