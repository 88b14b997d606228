"""Target scoring and selection with hysteresis."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import NamedTuple

from src.config.loader import TargetWeightsConfig
from src.interfaces.world import WorldView
from src.models.world import AgentSnapshot, EntityView

logger = logging.getLogger(__name__)

MIN_SCORE = 0.1


class TacticsMode(StrEnum):
    """Combat posture."""

    AGGRESSIVE = "aggressive"
    DEFENSIVE = "defensive"
    BALANCED = "balanced"
    BOSS_ONLY = "boss_only"
    KITING = "kiting"


@dataclass(frozen=True)
class TargetWeights:
    """Weights of the target priority score."""

    level_delta_factor: float = 0.1
    boss_multiplier: float = 3.0
    elite_multiplier: float = 2.0
    distance_weight: float = 0.05

    @classmethod
    def from_config(cls, config: TargetWeightsConfig) -> TargetWeights:
        return cls(
            level_delta_factor=config.level_delta_factor,
            boss_multiplier=config.boss_multiplier,
            elite_multiplier=config.elite_multiplier,
            distance_weight=config.distance_weight,
        )


@dataclass
class Target:
    """The combat engine's current target.

    Only the id is held across ticks; the entity itself is looked up again
    every tick and the target is dropped once the lookup fails.
    """

    entity_id: int
    priority: float
    time_to_kill: float
    engaged: bool = False
    acquired_at: float = 0.0


class RankedCandidate(NamedTuple):
    score: float
    distance: float
    entity: EntityView


class TargetSelector:
    """Scores candidates and picks a target without flip-flopping."""

    def __init__(
        self,
        weights: TargetWeights | None = None,
        switch_margin: float = 0.25,
        min_hold_seconds: float = 2.0,
        assumed_dps: float = 25.0,
    ) -> None:
        self.weights = weights or TargetWeights()
        self.switch_margin = switch_margin
        self.min_hold_seconds = min_hold_seconds
        self.assumed_dps = assumed_dps
        self._current: Target | None = None
        self.last_target_id: int | None = None

    @property
    def current(self) -> Target | None:
        return self._current

    def clear(self) -> None:
        if self._current is not None:
            self.last_target_id = self._current.entity_id
        self._current = None

    def candidates(
        self,
        world: WorldView,
        agent: AgentSnapshot,
        engagement_range: float,
        tactics: TacticsMode,
        ignored: set[int] | frozenset[int] = frozenset(),
    ) -> list[EntityView]:
        """Alive, targetable hostiles within engagement range."""
        found = []
        for entity in world.nearby_entities(agent.position, engagement_range):
            if not entity.is_hostile or not entity.alive or not entity.targetable:
                continue
            if entity.id in ignored:
                continue
            if tactics == TacticsMode.BOSS_ONLY and not (entity.is_boss or entity.is_elite):
                continue
            found.append(entity)
        return found

    def score(self, entity: EntityView, agent: AgentSnapshot, tactics: TacticsMode) -> float:
        """Priority score of a hostile entity, floored at MIN_SCORE."""
        w = self.weights
        delta = entity.monster.level - agent.level
        if tactics in (TacticsMode.DEFENSIVE, TacticsMode.KITING):
            level_factor = 1.0 + delta * w.level_delta_factor
        elif tactics == TacticsMode.AGGRESSIVE:
            level_factor = 1.0 - delta * w.level_delta_factor
        else:
            level_factor = 1.0

        score = level_factor
        if entity.is_boss:
            score *= w.boss_multiplier
        if entity.is_elite:
            score *= w.elite_multiplier

        distance = agent.position.distance_to(entity.position)
        score /= 1.0 + distance * w.distance_weight
        return max(MIN_SCORE, score)

    def rank(
        self,
        candidates: list[EntityView],
        agent: AgentSnapshot,
        tactics: TacticsMode,
    ) -> list[RankedCandidate]:
        """Candidates ordered by (score desc, distance, id)."""
        ranked = [
            RankedCandidate(
                self.score(e, agent, tactics),
                agent.position.distance_to(e.position),
                e,
            )
            for e in candidates
        ]
        ranked.sort(key=lambda r: (-r.score, r.distance, r.entity.id))
        return ranked

    def estimate_time_to_kill(self, entity: EntityView) -> float:
        return entity.health / self.assumed_dps if self.assumed_dps > 0 else 0.0

    def select(
        self,
        candidates: list[EntityView],
        agent: AgentSnapshot,
        tactics: TacticsMode,
        now: float,
    ) -> Target | None:
        """Pick the target for this tick.

        The current target is kept while it is still a candidate, unless the
        best candidate beats it by the switch margin, or the hold time has
        passed and the best candidate scores strictly higher.
        """
        ranked = self.rank(candidates, agent, tactics)
        if not ranked:
            self.clear()
            return None

        best = ranked[0]
        current = self._current
        if current is not None:
            held = next((r for r in ranked if r.entity.id == current.entity_id), None)
            if held is not None:
                switch = best.entity.id != current.entity_id and (
                    best.score > held.score * (1.0 + self.switch_margin)
                    or (
                        now - current.acquired_at >= self.min_hold_seconds
                        and best.score > held.score
                    )
                )
                if not switch:
                    current.priority = held.score
                    current.time_to_kill = self.estimate_time_to_kill(held.entity)
                    return current
                logger.debug(
                    f"Switching target {current.entity_id} ({held.score:.2f}) -> "
                    f"{best.entity.id} ({best.score:.2f})"
                )
            self.last_target_id = current.entity_id

        self._current = Target(
            entity_id=best.entity.id,
            priority=best.score,
            time_to_kill=self.estimate_time_to_kill(best.entity),
            acquired_at=now,
        )
        return self._current
