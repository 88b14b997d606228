"""Reference loot filter."""

from src.loot.filter import PRESETS, FilterRule, LootStatistics, RuleLootFilter

__all__ = ["PRESETS", "FilterRule", "LootStatistics", "RuleLootFilter"]
