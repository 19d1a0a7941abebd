"""Declarative rule configuration for the rules engine.

Everything errata tends to touch (dice counts, caps, the modifier precedence
order) lives here as frozen data so a FAQ change is a configuration edit.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from .enums import Orientation, PrecedenceClass, RuleScope

DEFAULT_FACT_ORIENTATION: Mapping[str, Orientation] = MappingProxyType(
    {
        # close combat / shooting
        "attacker_ws": Orientation.HIGHER,
        "defender_ws": Orientation.LOWER,
        "ballistic_skill": Orientation.HIGHER,
        "hit_shift": Orientation.LOWER,
        "attacks": Orientation.HIGHER,
        "shots": Orientation.HIGHER,
        "strength": Orientation.HIGHER,
        "toughness": Orientation.LOWER,
        "wound_shift": Orientation.LOWER,
        # saves are rolled by the target: a higher save value is worse for it
        "armour": Orientation.HIGHER,
        "armour_penetration": Orientation.HIGHER,
        "ward": Orientation.HIGHER,
        # movement
        "movement": Orientation.HIGHER,
        "charge_bonus": Orientation.HIGHER,
        # psychology (the testing unit is the actor)
        "leadership": Orientation.HIGHER,
        "leadership_shift": Orientation.HIGHER,
        "unbreakable": Orientation.HIGHER,
        "stubborn": Orientation.HIGHER,
        "immune_to_psychology": Orientation.HIGHER,
        # magic
        "casting_bonus": Orientation.HIGHER,
        "max_power_dice": Orientation.HIGHER,
        "dispel_bonus": Orientation.HIGHER,
        "max_dispel_dice": Orientation.HIGHER,
        # combat result
        "combat_result_bonus": Orientation.HIGHER,
        "max_rank_bonus": Orientation.HIGHER,
    }
)


@dataclass(frozen=True, slots=True)
class PrecedencePolicy:
    """Inspectable ordering used when modifiers compete for the same fact.

    ``scope_order`` lists rule scopes from most to least specific.  Exclusive
    modifiers (two ``SET`` contributions in one precedence class, or members
    of one ``exclusive_group``) are resolved by specificity first, then by the
    value most favourable to the acting side when ``favour_acting_side`` is
    set, then by rule id.  Ties that survive specificity are reported as
    conflicts for review.
    """

    scope_order: tuple[RuleScope, ...] = (
        RuleScope.CHARACTER,
        RuleScope.WEAPON,
        RuleScope.UNIT,
        RuleScope.SPELL,
        RuleScope.TERRAIN,
        RuleScope.GLOBAL,
    )
    class_order: tuple[PrecedenceClass, ...] = (
        PrecedenceClass.CHARACTERISTIC,
        PrecedenceClass.EQUIPMENT,
        PrecedenceClass.RULE,
        PrecedenceClass.SITUATIONAL,
        PrecedenceClass.ERRATA,
    )
    favour_acting_side: bool = True
    orientation: Mapping[str, Orientation] = field(
        default_factory=lambda: DEFAULT_FACT_ORIENTATION
    )

    def specificity(self, scope: RuleScope) -> int:
        """Lower is more specific; unknown scopes sort last."""

        try:
            return self.scope_order.index(scope)
        except ValueError:
            return len(self.scope_order)

    def orientation_of(self, fact: str) -> Orientation:
        return self.orientation.get(fact, Orientation.HIGHER)


@dataclass(frozen=True, slots=True)
class DiceRules:
    """Target-number bounds shared by every roll-to-beat test."""

    sides: int = 6
    best_target: int = 2
    impossible_target: int = 7
    natural_six_always_hits: bool = True


@dataclass(frozen=True, slots=True)
class CombatRules:
    """Close combat and combat-result constants."""

    max_rank_bonus: int = 3
    standard_bonus: int = 1
    outnumber_bonus: int = 1
    charge_bonus: int = 1
    min_models_for_rank: int = 5
    supporting_ranks: int = 1


@dataclass(frozen=True, slots=True)
class MovementRules:
    """Charge and flee distances."""

    charge_dice: int = 2
    flee_dice: int = 2
    march_multiplier: int = 2
    board_width: float = 72.0
    board_depth: float = 48.0


@dataclass(frozen=True, slots=True)
class PsychologyRules:
    """Leadership test constants."""

    test_dice: int = 2
    insane_courage: bool = True
    panic_radius: float = 6.0
    max_leadership: int = 10
    min_leadership: int = 0


@dataclass(frozen=True, slots=True)
class ShootingRules:
    """Missile fire modifiers."""

    long_range_shift: int = 1
    moved_and_shot_shift: int = 1
    stand_and_shoot_shift: int = 1


@dataclass(frozen=True, slots=True)
class MagicRules:
    """Winds of magic, casting and dispelling constants."""

    winds_dice: int = 2
    base_dispel_dice: int = 0
    max_power_dice: int = 6
    max_dispel_dice: int = 6
    miscast_dice: int = 2
    pool_cap: int = 12


@dataclass(frozen=True, slots=True)
class RulesConfig:
    """Top-level configuration container for all subsystems."""

    dice: DiceRules = DiceRules()
    combat: CombatRules = CombatRules()
    movement: MovementRules = MovementRules()
    psychology: PsychologyRules = PsychologyRules()
    shooting: ShootingRules = ShootingRules()
    magic: MagicRules = MagicRules()
    precedence: PrecedencePolicy = PrecedencePolicy()

    def with_precedence(self, policy: PrecedencePolicy) -> RulesConfig:
        return replace(self, precedence=policy)


DEFAULT_RULES = RulesConfig()
