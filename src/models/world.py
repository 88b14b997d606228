"""World snapshot models: agent state, positions and tracked entities.

Entities carry a tagged per-kind payload. The ``kind`` field is the
discriminator and a validator keeps kind and payload consistent, so reading
monster fields off an item (or vice versa) fails loudly instead of returning
garbage.
"""

from __future__ import annotations

import math
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class EntityKindError(TypeError):
    """Raised when a per-kind payload is accessed on the wrong entity kind."""

    pass


class Position(BaseModel):
    """A point in world coordinates."""

    x: float
    y: float
    z: float = 0.0

    model_config = {"frozen": True}

    def distance_to(self, other: Position) -> float:
        """Planar (x, y) distance to another position."""
        return math.hypot(self.x - other.x, self.y - other.y)

    def offset(self, dx: float, dy: float) -> Position:
        """Return a copy moved by (dx, dy) on the ground plane."""
        return Position(x=self.x + dx, y=self.y + dy, z=self.z)

    def __repr__(self) -> str:
        return f"Position({self.x:.1f}, {self.y:.1f})"


class AgentSnapshot(BaseModel):
    """Agent state for a single tick."""

    position: Position
    health: float = Field(..., ge=0)
    max_health: float = Field(..., gt=0)
    mana: float = Field(default=0.0, ge=0)
    max_mana: float = Field(default=0.0, ge=0)
    level: int = Field(default=1, ge=1)
    alive: bool = True
    in_combat: bool = False

    model_config = {"frozen": True}

    @property
    def health_percent(self) -> float:
        """Health as a fraction of maximum (0.0 to 1.0)."""
        return min(1.0, self.health / self.max_health)

    @property
    def mana_percent(self) -> float:
        """Mana as a fraction of maximum (0.0 when the agent has no mana pool)."""
        if self.max_mana <= 0:
            return 0.0
        return min(1.0, self.mana / self.max_mana)


class EntityKind(StrEnum):
    """Discriminator for tracked entities."""

    ENEMY = "enemy"
    BOSS = "boss"
    ITEM = "item"
    INTERACTABLE = "interactable"
    UNKNOWN = "unknown"


class ItemRarity(IntEnum):
    """Item rarity tiers, ordered."""

    NORMAL = 0
    MAGIC = 1
    RARE = 2
    LEGENDARY = 3
    MYTHIC = 4
    UNIQUE = 5

    @classmethod
    def parse(cls, value: str | int) -> ItemRarity:
        """Parse a rarity from its name or numeric tier."""
        if isinstance(value, int):
            return cls(value)
        return cls[value.strip().upper()]


class ItemType(StrEnum):
    """Broad item categories."""

    UNKNOWN = "unknown"
    WEAPON = "weapon"
    ARMOR = "armor"
    ACCESSORY = "accessory"
    CONSUMABLE = "consumable"
    CURRENCY = "currency"
    GEM = "gem"
    MATERIAL = "material"
    QUEST_ITEM = "quest_item"
    SEASONAL_ITEM = "seasonal_item"


class MonsterData(BaseModel):
    """Payload for enemy and boss entities."""

    level: int = Field(default=1, ge=1)
    is_elite: bool = False
    attack_range: float = Field(default=2.0, ge=0)

    model_config = {"frozen": True}


class ItemData(BaseModel):
    """Payload for dropped items."""

    name: str = Field(..., min_length=1)
    item_type: ItemType = ItemType.UNKNOWN
    rarity: ItemRarity = ItemRarity.NORMAL
    level: int = Field(default=1, ge=0)
    value: int = Field(default=0, ge=0)
    identified: bool = True
    affixes: tuple[str, ...] = ()

    model_config = {"frozen": True}


class InteractableData(BaseModel):
    """Payload for chests, shrines, portals and seasonal event objects."""

    name: str = Field(..., min_length=1)
    event_type: str | None = Field(default=None, description="Set for seasonal/event objects")
    interaction_range: float = Field(default=3.0, gt=0)

    model_config = {"frozen": True}

    @property
    def is_seasonal(self) -> bool:
        """Whether this object belongs to a seasonal event."""
        return self.event_type is not None


_PAYLOAD_TYPES: dict[EntityKind, type[BaseModel] | None] = {
    EntityKind.ENEMY: MonsterData,
    EntityKind.BOSS: MonsterData,
    EntityKind.ITEM: ItemData,
    EntityKind.INTERACTABLE: InteractableData,
    EntityKind.UNKNOWN: None,
}


class EntityView(BaseModel):
    """A tracked entity as seen in the current tick."""

    id: int = Field(..., ge=0)
    kind: EntityKind
    position: Position
    health: float = Field(default=0.0, ge=0)
    max_health: float = Field(default=0.0, ge=0)
    alive: bool = True
    targetable: bool = True
    threat: float = Field(default=0.0, ge=0)
    last_seen_tick: int = Field(default=0, ge=0)
    payload: MonsterData | ItemData | InteractableData | None = None

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _default_monster_payload(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("payload") is None:
            kind = data.get("kind")
            if kind in (EntityKind.ENEMY, EntityKind.BOSS, "enemy", "boss"):
                data = {**data, "payload": MonsterData()}
        return data

    @model_validator(mode="after")
    def _check_payload(self) -> EntityView:
        expected = _PAYLOAD_TYPES[self.kind]
        if expected is None:
            if self.payload is not None:
                raise ValueError(f"{self.kind.value} entities carry no payload")
        elif not isinstance(self.payload, expected):
            raise ValueError(
                f"{self.kind.value} entity requires {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )
        return self

    @property
    def is_hostile(self) -> bool:
        """Enemies and bosses."""
        return self.kind in (EntityKind.ENEMY, EntityKind.BOSS)

    @property
    def is_boss(self) -> bool:
        return self.kind == EntityKind.BOSS

    @property
    def monster(self) -> MonsterData:
        """Monster payload; raises EntityKindError for non-hostile kinds."""
        if not self.is_hostile:
            raise EntityKindError(f"Entity {self.id} is {self.kind.value}, not a monster")
        assert isinstance(self.payload, MonsterData)
        return self.payload

    @property
    def item(self) -> ItemData:
        """Item payload; raises EntityKindError for non-item kinds."""
        if self.kind != EntityKind.ITEM:
            raise EntityKindError(f"Entity {self.id} is {self.kind.value}, not an item")
        assert isinstance(self.payload, ItemData)
        return self.payload

    @property
    def interactable(self) -> InteractableData:
        """Interactable payload; raises EntityKindError for other kinds."""
        if self.kind != EntityKind.INTERACTABLE:
            raise EntityKindError(f"Entity {self.id} is {self.kind.value}, not interactable")
        assert isinstance(self.payload, InteractableData)
        return self.payload

    @property
    def is_elite(self) -> bool:
        return self.is_hostile and self.monster.is_elite

    @property
    def is_seasonal(self) -> bool:
        return self.kind == EntityKind.INTERACTABLE and self.interactable.is_seasonal

    def with_updates(self, **fields: Any) -> EntityView:
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=fields)
