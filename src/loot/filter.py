"""Rule-based loot filter.

An item is kept when it is not blacklisted, passes the level gate, and
matches at least one enabled rule. Its pickup priority combines rarity,
value and the best matching rule; a per-name priority replaces the
computed one.

Usage:
    loot_filter = RuleLootFilter.from_config(config.loot)
    decision = loot_filter.classify(entity)
    if decision.keep:
        pick_up(entity, decision.priority)
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field

from src.config.loader import LootConfig
from src.interfaces.loot import LootDecision, LootFilter
from src.models.world import EntityView, ItemData, ItemRarity, ItemType

logger = logging.getLogger(__name__)

# Rarity and value contributions to the pickup priority.
RARITY_PRIORITY = 10
VALUE_PRIORITY_UNIT = 100
VALUABLE_AFFIX_COUNT = 3


@dataclass
class FilterRule:
    """A named keep condition.

    Attributes:
        name: Unique rule name, reported as the decision reason.
        condition: Predicate over the item payload.
        priority: Added to the item's base priority when this rule decides.
        enabled: Disabled rules never match.
        description: Human-readable summary.
    """

    name: str
    condition: Callable[[ItemData], bool]
    priority: int = 0
    enabled: bool = True
    description: str = ""


@dataclass
class LootStatistics:
    """Counters kept by the filter."""

    evaluated: int = 0
    kept: int = 0
    kept_by_rarity: Counter = field(default_factory=Counter)


@dataclass(frozen=True)
class _Preset:
    minimum_rarity: ItemRarity
    minimum_level: int
    minimum_value: int
    disabled: frozenset[str] = frozenset()
    priority_bonus: tuple[tuple[str, int], ...] = ()


PRESETS: dict[str, _Preset] = {
    # Everything with some worth.
    "aggressive": _Preset(ItemRarity.NORMAL, 0, 0),
    # High-value items only.
    "safe": _Preset(ItemRarity.RARE, 1, 500, disabled=frozenset({"valuable_affixes"})),
    "balanced": _Preset(ItemRarity.MAGIC, 1, 100),
    "seasonal": _Preset(
        ItemRarity.MAGIC, 1, 100, priority_bonus=(("seasonal_item", 50),)
    ),
    "boss": _Preset(
        ItemRarity.RARE, 1, 200, priority_bonus=(("valuable_affixes", 20),)
    ),
}


class RuleLootFilter(LootFilter):
    """LootFilter driven by named rules, a blacklist and name priorities."""

    def __init__(
        self,
        preset: str = "balanced",
        seasonal_items: bool = True,
        blacklist: list[str] | None = None,
        priorities: dict[str, int] | None = None,
    ) -> None:
        self.minimum_rarity = ItemRarity.MAGIC
        self.minimum_level = 1
        self.minimum_value = 100
        self.seasonal_items = seasonal_items
        self._blacklist = {name.lower() for name in blacklist or []}
        self._priorities = {name.lower(): p for name, p in (priorities or {}).items()}
        self._rules: list[FilterRule] = []
        self.stats = LootStatistics()
        self.load_preset(preset)

    @classmethod
    def from_config(cls, config: LootConfig) -> RuleLootFilter:
        loot_filter = cls(
            preset=config.preset,
            seasonal_items=config.seasonal_items,
            blacklist=config.blacklist,
            priorities=config.priorities,
        )
        if config.minimum_rarity is not None:
            loot_filter.minimum_rarity = ItemRarity.parse(config.minimum_rarity)
        if config.minimum_level is not None:
            loot_filter.minimum_level = config.minimum_level
        if config.minimum_value is not None:
            loot_filter.minimum_value = config.minimum_value
        return loot_filter

    def _default_rules(self) -> list[FilterRule]:
        return [
            FilterRule(
                "quest_item",
                lambda item: item.item_type == ItemType.QUEST_ITEM,
                priority=80,
                description="Quest items are always kept",
            ),
            FilterRule(
                "seasonal_item",
                lambda item: self.seasonal_items and item.item_type == ItemType.SEASONAL_ITEM,
                priority=60,
                description="Seasonal event rewards",
            ),
            FilterRule(
                "currency",
                lambda item: item.item_type == ItemType.CURRENCY,
                priority=50,
                description="Currency of any value",
            ),
            FilterRule(
                "valuable_affixes",
                lambda item: len(item.affixes) >= VALUABLE_AFFIX_COUNT,
                priority=30,
                description=f"Items with {VALUABLE_AFFIX_COUNT} or more affixes",
            ),
            FilterRule(
                "minimum_rarity",
                lambda item: item.rarity >= self.minimum_rarity,
                priority=20,
                description="Rarity at or above the configured minimum",
            ),
            FilterRule(
                "minimum_value",
                lambda item: item.value >= self.minimum_value,
                priority=10,
                description="Estimated value at or above the configured minimum",
            ),
        ]

    def load_preset(self, name: str) -> None:
        """Reset rules and minimums to a named preset."""
        preset = PRESETS.get(name)
        if preset is None:
            raise ValueError(f"Unknown loot preset '{name}'")
        self.minimum_rarity = preset.minimum_rarity
        self.minimum_level = preset.minimum_level
        self.minimum_value = preset.minimum_value
        self._rules = self._default_rules()
        bonus = dict(preset.priority_bonus)
        for rule in self._rules:
            rule.enabled = rule.name not in preset.disabled
            rule.priority += bonus.get(rule.name, 0)
        self.preset = name
        logger.debug(f"Loot preset '{name}' loaded")

    @property
    def rules(self) -> list[FilterRule]:
        return list(self._rules)

    def add_rule(self, rule: FilterRule) -> None:
        if any(r.name == rule.name for r in self._rules):
            raise ValueError(f"Rule '{rule.name}' already exists")
        self._rules.append(rule)

    def remove_rule(self, name: str) -> None:
        self._rules = [r for r in self._rules if r.name != name]

    def enable_rule(self, name: str, enabled: bool = True) -> None:
        for rule in self._rules:
            if rule.name == name:
                rule.enabled = enabled
                return
        raise KeyError(name)

    def add_to_blacklist(self, name: str) -> None:
        self._blacklist.add(name.lower())

    def remove_from_blacklist(self, name: str) -> None:
        self._blacklist.discard(name.lower())

    def is_blacklisted(self, name: str) -> bool:
        return name.lower() in self._blacklist

    def set_item_priority(self, name: str, priority: int) -> None:
        self._priorities[name.lower()] = priority

    def base_priority(self, item: ItemData) -> int:
        return int(item.rarity) * RARITY_PRIORITY + item.value // VALUE_PRIORITY_UNIT

    def classify(self, item: EntityView) -> LootDecision:
        """Classify an item entity.

        Raises:
            EntityKindError: If the entity is not an item.
        """
        data = item.item
        self.stats.evaluated += 1

        if self.is_blacklisted(data.name):
            return LootDecision(keep=False, reason="blacklist")

        gated = data.item_type not in (ItemType.QUEST_ITEM, ItemType.CURRENCY)
        if gated and data.level < self.minimum_level:
            return LootDecision(keep=False, reason="minimum_level")

        matched = [r for r in self._rules if r.enabled and r.condition(data)]
        if not matched:
            return LootDecision(keep=False, reason="no_rule")

        best = max(matched, key=lambda r: (r.priority, r.name))
        priority = self._priorities.get(
            data.name.lower(), self.base_priority(data) + best.priority
        )

        self.stats.kept += 1
        self.stats.kept_by_rarity[data.rarity] += 1
        return LootDecision(keep=True, priority=priority, reason=best.name)
