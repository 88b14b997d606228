"""In-memory world source for tests and local simulations."""

from __future__ import annotations

from src.models.world import AgentSnapshot, EntityView, Position
from src.world.view import WorldSource


class InMemoryWorldSource(WorldSource):
    """Scripted world source.

    Tests place the agent and entities directly; ``detach`` simulates the
    game going away and ``fail_attach`` keeps reattachment failing.
    """

    def __init__(self, agent: AgentSnapshot | None = None) -> None:
        self._agent = agent or AgentSnapshot(
            position=Position(x=0.0, y=0.0), health=100.0, max_health=100.0
        )
        self._entities: dict[int, EntityView] = {}
        self._obstacles: list[Position] = []
        self._attached = True
        self.fail_attach = False
        self.attach_calls = 0

    def set_agent(self, agent: AgentSnapshot) -> None:
        self._agent = agent

    def move_agent(self, x: float, y: float) -> None:
        self._agent = self._agent.model_copy(update={"position": Position(x=x, y=y)})

    def put(self, *entities: EntityView) -> None:
        for entity in entities:
            self._entities[entity.id] = entity

    def remove(self, entity_id: int) -> None:
        self._entities.pop(entity_id, None)

    def clear_entities(self) -> None:
        self._entities.clear()

    def block(self, *positions: Position) -> None:
        self._obstacles.extend(positions)

    def detach(self) -> None:
        self._attached = False

    def read_agent(self) -> AgentSnapshot:
        return self._agent

    def scan_entities(self) -> list[EntityView]:
        return list(self._entities.values())

    def obstacles(self) -> list[Position]:
        return list(self._obstacles)

    def is_attached(self) -> bool:
        return self._attached

    def attach(self) -> bool:
        self.attach_calls += 1
        if not self.fail_attach:
            self._attached = True
        return self._attached
