"""Tests for the rule-based loot filter."""

from __future__ import annotations

import pytest

from src.config.loader import LootConfig
from src.loot.filter import PRESETS, FilterRule, RuleLootFilter
from src.models.world import EntityKindError, ItemRarity, ItemType
from tests.fakes import enemy, item


class TestPresets:
    def test_all_presets_load(self) -> None:
        for name in PRESETS:
            loot_filter = RuleLootFilter(preset=name)
            assert loot_filter.preset == name

    def test_unknown_preset(self) -> None:
        with pytest.raises(ValueError):
            RuleLootFilter(preset="hoarder")

    def test_balanced_keeps_magic_and_up(self) -> None:
        loot_filter = RuleLootFilter("balanced")

        assert loot_filter.classify(item(1, 0, 0, rarity=ItemRarity.MAGIC)).keep
        assert not loot_filter.classify(item(2, 0, 0, rarity=ItemRarity.NORMAL)).keep

    def test_aggressive_keeps_everything(self) -> None:
        loot_filter = RuleLootFilter("aggressive")

        decision = loot_filter.classify(item(1, 0, 0, rarity=ItemRarity.NORMAL, level=0))

        assert decision.keep

    def test_safe_ignores_affix_count(self) -> None:
        loot_filter = RuleLootFilter("safe")
        affixed = item(1, 0, 0, rarity=ItemRarity.MAGIC, affixes=("a", "b", "c"))

        assert not loot_filter.classify(affixed).keep
        assert RuleLootFilter("balanced").classify(affixed).reason == "valuable_affixes"

    def test_seasonal_preset_boosts_seasonal_items(self) -> None:
        seasonal_item = item(1, 0, 0, item_type=ItemType.SEASONAL_ITEM, rarity=ItemRarity.NORMAL)

        boosted = RuleLootFilter("seasonal").classify(seasonal_item)
        plain = RuleLootFilter("balanced").classify(seasonal_item)

        assert boosted.priority == plain.priority + 50


class TestClassify:
    def test_blacklist_wins(self) -> None:
        loot_filter = RuleLootFilter(blacklist=["Cursed Ring"])

        decision = loot_filter.classify(
            item(1, 0, 0, name="cursed ring", rarity=ItemRarity.UNIQUE)
        )

        assert not decision.keep
        assert decision.reason == "blacklist"

    def test_level_gate_spares_quest_items_and_currency(self) -> None:
        loot_filter = RuleLootFilter()

        assert loot_filter.classify(item(1, 0, 0, level=0)).reason == "minimum_level"
        assert loot_filter.classify(
            item(2, 0, 0, item_type=ItemType.QUEST_ITEM, rarity=ItemRarity.NORMAL, level=0)
        ).keep
        assert loot_filter.classify(
            item(3, 0, 0, item_type=ItemType.CURRENCY, rarity=ItemRarity.NORMAL, level=0)
        ).keep

    def test_no_rule_matches(self) -> None:
        decision = RuleLootFilter().classify(item(1, 0, 0, rarity=ItemRarity.NORMAL, value=5))

        assert not decision.keep
        assert decision.reason == "no_rule"

    def test_best_rule_decides_priority(self) -> None:
        loot_filter = RuleLootFilter()

        decision = loot_filter.classify(item(1, 0, 0, rarity=ItemRarity.RARE, value=250))

        # rarity 2 * 10 + 250 // 100 + minimum_rarity rule 20
        assert decision.keep
        assert decision.reason == "minimum_rarity"
        assert decision.priority == 20 + 2 + 20

    def test_quest_item_outranks_rarity(self) -> None:
        decision = RuleLootFilter().classify(
            item(1, 0, 0, item_type=ItemType.QUEST_ITEM, rarity=ItemRarity.RARE)
        )

        assert decision.reason == "quest_item"

    def test_seasonal_items_can_be_disabled(self) -> None:
        loot_filter = RuleLootFilter(seasonal_items=False)

        decision = loot_filter.classify(
            item(1, 0, 0, item_type=ItemType.SEASONAL_ITEM, rarity=ItemRarity.NORMAL)
        )

        assert not decision.keep

    def test_name_priority_overrides(self) -> None:
        loot_filter = RuleLootFilter(priorities={"Soul Gem": 999})

        decision = loot_filter.classify(item(1, 0, 0, name="soul gem"))

        assert decision.priority == 999

    def test_rejects_non_items(self) -> None:
        with pytest.raises(EntityKindError):
            RuleLootFilter().classify(enemy(1, 0, 0))

    def test_statistics(self) -> None:
        loot_filter = RuleLootFilter()
        loot_filter.classify(item(1, 0, 0, rarity=ItemRarity.RARE))
        loot_filter.classify(item(2, 0, 0, rarity=ItemRarity.RARE))
        loot_filter.classify(item(3, 0, 0, rarity=ItemRarity.NORMAL))

        assert loot_filter.stats.evaluated == 3
        assert loot_filter.stats.kept == 2
        assert loot_filter.stats.kept_by_rarity[ItemRarity.RARE] == 2


class TestRuleManagement:
    def test_custom_rule(self) -> None:
        loot_filter = RuleLootFilter()
        loot_filter.add_rule(
            FilterRule("gems", lambda data: data.item_type == ItemType.GEM, priority=70)
        )

        decision = loot_filter.classify(
            item(1, 0, 0, item_type=ItemType.GEM, rarity=ItemRarity.NORMAL)
        )

        assert decision.reason == "gems"

    def test_duplicate_rule_rejected(self) -> None:
        with pytest.raises(ValueError):
            RuleLootFilter().add_rule(FilterRule("currency", lambda data: True))

    def test_disable_and_remove(self) -> None:
        loot_filter = RuleLootFilter()
        rare = item(1, 0, 0, rarity=ItemRarity.RARE)

        loot_filter.enable_rule("minimum_rarity", False)
        assert not loot_filter.classify(rare).keep

        loot_filter.enable_rule("minimum_rarity")
        loot_filter.remove_rule("minimum_rarity")
        assert not loot_filter.classify(rare).keep

    def test_enable_unknown_rule(self) -> None:
        with pytest.raises(KeyError):
            RuleLootFilter().enable_rule("shiny")

    def test_blacklist_management(self) -> None:
        loot_filter = RuleLootFilter()
        loot_filter.add_to_blacklist("Junk")

        assert loot_filter.is_blacklisted("JUNK")
        loot_filter.remove_from_blacklist("junk")
        assert not loot_filter.is_blacklisted("Junk")


class TestFromConfig:
    def test_preset_minimums_kept_when_unset(self) -> None:
        loot_filter = RuleLootFilter.from_config(LootConfig(preset="safe"))

        assert loot_filter.minimum_rarity == ItemRarity.RARE
        assert loot_filter.minimum_value == 500

    def test_configured_minimums_override_preset(self) -> None:
        config = LootConfig(
            preset="safe", minimum_rarity="legendary", minimum_level=20, minimum_value=1000
        )

        loot_filter = RuleLootFilter.from_config(config)

        assert loot_filter.minimum_rarity == ItemRarity.LEGENDARY
        assert loot_filter.minimum_level == 20
        assert loot_filter.minimum_value == 1000
        assert not loot_filter.classify(item(1, 0, 0, rarity=ItemRarity.RARE, level=30)).keep

    def test_blacklist_and_priorities_from_config(self) -> None:
        config = LootConfig(blacklist=["Junk"], priorities={"Relic": 400})

        loot_filter = RuleLootFilter.from_config(config)

        assert loot_filter.is_blacklisted("junk")
        assert loot_filter.classify(item(1, 0, 0, name="Relic")).priority == 400
