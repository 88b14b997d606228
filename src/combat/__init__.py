"""Combat: target selection, abilities and the tactical state machine."""

from src.combat.abilities import (
    RECHECKS,
    Ability,
    AbilityBook,
    AbilityRole,
    DecisionContext,
)
from src.combat.engine import (
    CombatEngine,
    CombatParameters,
    CombatState,
    CombatStatistics,
)
from src.combat.targeting import TacticsMode, Target, TargetSelector, TargetWeights

__all__ = [
    "RECHECKS",
    "Ability",
    "AbilityBook",
    "AbilityRole",
    "CombatEngine",
    "CombatParameters",
    "CombatState",
    "CombatStatistics",
    "DecisionContext",
    "TacticsMode",
    "Target",
    "TargetSelector",
    "TargetWeights",
]
