"""Ability catalogue, cooldown bookkeeping and selection.

Cooldowns are derived from elapsed time since last use
(``now - last_used >= cooldown``) rather than counted down by the tick, so
an ability is never reported ready early regardless of tick jitter.

Extra usability conditions are named predicates over an immutable
``DecisionContext``; abilities reference them by name so they can be
declared in YAML.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from src.config.loader import AbilityConfig
from src.models.world import AgentSnapshot, EntityView

logger = logging.getLogger(__name__)


class AbilityRole(StrEnum):
    """What an ability is used for."""

    OFFENSIVE = "offensive"
    DEFENSIVE = "defensive"
    MOVEMENT = "movement"


@dataclass(frozen=True)
class DecisionContext:
    """Inputs available to an ability's recheck predicate."""

    agent: AgentSnapshot
    target: EntityView | None
    ability: Ability
    now: float


Recheck = Callable[[DecisionContext], bool]


def _always(ctx: DecisionContext) -> bool:
    return True


def _target_in_range(ctx: DecisionContext) -> bool:
    if ctx.target is None:
        return False
    return ctx.ability.in_range(ctx.agent, ctx.target)


def _target_is_boss(ctx: DecisionContext) -> bool:
    return ctx.target is not None and ctx.target.is_boss


def _health_below_half(ctx: DecisionContext) -> bool:
    return ctx.agent.health_percent < 0.5


def _mana_above_third(ctx: DecisionContext) -> bool:
    return ctx.agent.mana_percent > 1.0 / 3.0


RECHECKS: dict[str, Recheck] = {
    "always": _always,
    "target_in_range": _target_in_range,
    "target_is_boss": _target_is_boss,
    "health_below_half": _health_below_half,
    "mana_above_third": _mana_above_third,
}


@dataclass
class Ability:
    """A bound ability with cooldown state.

    Attributes:
        name: Unique ability name.
        binding: Input binding passed to the executor.
        cooldown: Seconds between uses.
        range: Maximum target distance; 0 means self-cast or unlimited.
        cost: Mana cost.
        roles: Roles the ability can fill.
        priority: Higher is preferred.
        recheck: Name of the extra usability predicate.
        last_used: Clock time of the last use, None if never used.
    """

    name: str
    binding: str
    cooldown: float = 0.0
    range: float = 0.0
    cost: float = 0.0
    roles: frozenset[AbilityRole] = field(default_factory=lambda: frozenset({AbilityRole.OFFENSIVE}))
    priority: int = 0
    recheck: str = "always"
    last_used: float | None = None

    def __post_init__(self) -> None:
        if self.recheck not in RECHECKS:
            raise ValueError(f"Unknown recheck '{self.recheck}' for ability '{self.name}'")
        self.roles = frozenset(AbilityRole(r) for r in self.roles)

    def is_ready(self, now: float) -> bool:
        """Whether the cooldown has elapsed."""
        return self.last_used is None or now - self.last_used >= self.cooldown

    def remaining(self, now: float) -> float:
        """Seconds until ready (0.0 when ready)."""
        if self.last_used is None:
            return 0.0
        return max(0.0, self.cooldown - (now - self.last_used))

    def in_range(self, agent: AgentSnapshot, target: EntityView | None) -> bool:
        if self.range <= 0 or target is None:
            return True
        return agent.position.distance_to(target.position) <= self.range

    @classmethod
    def from_config(cls, config: AbilityConfig) -> Ability:
        return cls(
            name=config.name,
            binding=config.binding,
            cooldown=config.cooldown,
            range=config.range,
            cost=config.cost,
            roles=frozenset(AbilityRole(r) for r in config.roles),
            priority=config.priority,
            recheck=config.recheck,
        )


class AbilityBook:
    """Registered abilities and the selection policy over them."""

    def __init__(self, abilities: Iterable[Ability] = ()) -> None:
        self._abilities: dict[str, Ability] = {}
        for ability in abilities:
            self.register(ability)

    @classmethod
    def from_config(cls, configs: Iterable[AbilityConfig]) -> AbilityBook:
        return cls(Ability.from_config(c) for c in configs)

    def register(self, ability: Ability) -> None:
        if ability.name in self._abilities:
            raise ValueError(f"Ability '{ability.name}' already registered")
        self._abilities[ability.name] = ability

    def get(self, name: str) -> Ability | None:
        return self._abilities.get(name)

    def __len__(self) -> int:
        return len(self._abilities)

    def __iter__(self):
        return iter(self._abilities.values())

    def with_role(self, role: AbilityRole) -> list[Ability]:
        return [a for a in self._abilities.values() if role in a.roles]

    def max_range(self, role: AbilityRole) -> float:
        """Largest declared range among abilities of a role (0.0 if none)."""
        return max((a.range for a in self.with_role(role)), default=0.0)

    def is_usable(
        self,
        ability: Ability,
        agent: AgentSnapshot,
        target: EntityView | None,
        now: float,
    ) -> bool:
        """Cooldown, mana, range and recheck all pass."""
        if not ability.is_ready(now):
            return False
        if ability.cost > agent.mana:
            return False
        if not ability.in_range(agent, target):
            return False
        return RECHECKS[ability.recheck](DecisionContext(agent, target, ability, now))

    def select(
        self,
        role: AbilityRole,
        agent: AgentSnapshot,
        target: EntityView | None,
        now: float,
    ) -> Ability | None:
        """Pick the best usable ability for a role.

        Highest priority wins; ties go to the shorter cooldown, then the name.
        """
        usable = [
            a for a in self.with_role(role) if self.is_usable(a, agent, target, now)
        ]
        if not usable:
            return None
        usable.sort(key=lambda a: (-a.priority, a.cooldown, a.name))
        return usable[0]

    def mark_used(self, name: str, now: float) -> None:
        ability = self._abilities.get(name)
        if ability is None:
            raise KeyError(name)
        ability.last_used = now
        logger.debug(f"Ability '{name}' used, ready again in {ability.cooldown:.1f}s")

    def reset_cooldowns(self) -> None:
        for ability in self._abilities.values():
            ability.last_used = None
