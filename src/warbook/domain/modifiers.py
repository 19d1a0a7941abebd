"""Modifier resolution pipeline.

Given a :class:`TestContext`, the pipeline derives the base facts of the
test from the entities involved, collects every special-rule contribution in
scope whose trigger matches, and folds them into a :class:`FactVector` that
the decision tables consume.

Folding is deterministic: modifiers are put into a canonical order before
anything is applied, precedence classes are applied in the order the
:class:`~warbook.domain.rules_config.PrecedencePolicy` declares, and every
exclusive choice is made by that same policy.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .enums import (
    EffectRole,
    ModifierOperation,
    Orientation,
    PlayerSide,
    PrecedenceClass,
    RuleScope,
    TestCategory,
)
from .errors import InvalidFact, InvalidTarget
from .explain import traced
from .models import (
    Character,
    CharacterID,
    Citation,
    GameState,
    ModifierEffect,
    Profile,
    SpecialRule,
    Unit,
    UnitID,
    Weapon,
)
from .rules_config import DEFAULT_RULES, PrecedencePolicy, RulesConfig

FactValue = int | bool

_EMPTY: Mapping[str, FactValue] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class TestContext:
    """Everything the pipeline needs to know about one pending test."""

    __test__ = False

    category: TestCategory
    actor_unit_id: UnitID | None = None
    target_unit_id: UnitID | None = None
    actor_character_id: CharacterID | None = None
    target_character_id: CharacterID | None = None
    weapon: Weapon | None = None
    flags: frozenset[str] = frozenset()
    extra_facts: Mapping[str, FactValue] = field(default_factory=lambda: _EMPTY)


@dataclass(frozen=True, slots=True)
class Modifier:
    """A :class:`ModifierEffect` resolved against its originating rule."""

    rule_id: str
    scope: RuleScope
    owner: EffectRole
    fact: str
    operation: ModifierOperation
    value: FactValue
    precedence: PrecedenceClass
    citation: Citation
    exclusive_group: str | None = None


@dataclass(frozen=True, slots=True)
class Conflict:
    """Exclusive modifiers that specificity alone could not separate."""

    fact: str
    rule_ids: tuple[str, ...]
    chosen: str
    reason: str


@dataclass(frozen=True, slots=True)
class FactVector:
    """Normalised facts for one test plus the modifiers that shaped them."""

    category: TestCategory
    values: Mapping[str, FactValue]
    base: Mapping[str, FactValue]
    applied: tuple[Modifier, ...] = ()
    suppressed: tuple[Modifier, ...] = ()
    conflicts: tuple[Conflict, ...] = ()

    def __getitem__(self, key: str) -> FactValue:
        return self.values[key]

    def get(self, key: str, default: FactValue | None = None) -> FactValue | None:
        return self.values.get(key, default)

    def as_int(self, key: str) -> int:
        return int(self.values[key])

    def flag(self, key: str) -> bool:
        return bool(self.values.get(key, False))

    def citations(self) -> list[Citation]:
        return [modifier.citation for modifier in self.applied]


# --- Base facts -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Side:
    unit: Unit | None
    character: Character | None

    @property
    def profile(self) -> Profile | None:
        if self.character is not None:
            return self.character.profile
        if self.unit is not None:
            return self.unit.profile
        return None

    @property
    def player(self) -> PlayerSide | None:
        if self.character is not None:
            return self.character.player
        if self.unit is not None:
            return self.unit.player
        return None


def _side(state: GameState, unit_id: UnitID | None, character_id: CharacterID | None) -> _Side:
    unit = None
    character = None
    if unit_id is not None:
        unit = state.units.get(unit_id)
        if unit is None:
            raise InvalidTarget(f"unknown unit {unit_id}")
    if character_id is not None:
        character = state.characters.get(character_id)
        if character is None:
            raise InvalidTarget(f"unknown character {character_id}")
        if unit is None and character.unit_id is not None:
            unit = state.units.get(character.unit_id)
    return _Side(unit, character)


def _require_profile(side: _Side, role: str) -> Profile:
    profile = side.profile
    if profile is None:
        raise InvalidTarget(f"test needs a {role}")
    return profile


def _save_of(side: _Side, attribute: str) -> int:
    source = side.character if side.character is not None else side.unit
    if source is None:
        raise InvalidTarget("save test needs a target")
    return int(getattr(source, attribute))


def base_facts(
    context: TestContext, state: GameState, rules: RulesConfig = DEFAULT_RULES
) -> dict[str, FactValue]:
    """Derive the unmodified facts of a test from the entities involved."""

    actor = _side(state, context.actor_unit_id, context.actor_character_id)
    target = _side(state, context.target_unit_id, context.target_character_id)
    category = context.category
    facts: dict[str, FactValue]

    if category == TestCategory.TO_HIT:
        attacker = _require_profile(actor, "attacker")
        defender = _require_profile(target, "defender")
        facts = {
            "attacker_ws": attacker.weapon_skill,
            "defender_ws": defender.weapon_skill,
            "attacks": attacker.attacks,
            "hit_shift": 0,
        }
    elif category == TestCategory.RANGED_TO_HIT:
        shooter = _require_profile(actor, "shooter")
        shots = context.weapon.shots if context.weapon is not None else 1
        facts = {"ballistic_skill": shooter.ballistic_skill, "shots": shots, "hit_shift": 0}
    elif category == TestCategory.TO_WOUND:
        attacker = _require_profile(actor, "attacker")
        defender = _require_profile(target, "defender")
        strength = attacker.strength
        if context.weapon is not None:
            strength = context.weapon.effective_strength(attacker.strength)
        facts = {"strength": strength, "toughness": defender.toughness, "wound_shift": 0}
    elif category == TestCategory.ARMOUR_SAVE:
        facts = {
            "armour": _save_of(target, "armour_save"),
            "ward": _save_of(target, "ward_save"),
            "armour_penetration": (
                context.weapon.armour_penetration if context.weapon is not None else 0
            ),
        }
    elif category == TestCategory.CHARGE_RANGE:
        charger = _require_profile(actor, "charger")
        facts = {"movement": charger.movement, "charge_bonus": 0}
    elif category == TestCategory.PSYCHOLOGY:
        tester = _require_profile(actor, "testing unit")
        facts = {
            "leadership": _leadership(state, actor, tester),
            "leadership_shift": 0,
            "unbreakable": False,
            "stubborn": False,
            "immune_to_psychology": False,
        }
    elif category == TestCategory.CASTING:
        level = actor.character.wizard_level if actor.character is not None else 0
        facts = {"casting_bonus": level, "max_power_dice": rules.magic.max_power_dice}
    elif category == TestCategory.DISPEL:
        level = actor.character.wizard_level if actor.character is not None else 0
        facts = {"dispel_bonus": level, "max_dispel_dice": rules.magic.max_dispel_dice}
    elif category == TestCategory.COMBAT_RESULT:
        facts = {"combat_result_bonus": 0, "max_rank_bonus": rules.combat.max_rank_bonus}
    else:  # pragma: no cover - exhaustive over TestCategory
        raise ValueError(f"unsupported test category {category}")

    facts.update(context.extra_facts)
    return facts


def _leadership(state: GameState, side: _Side, profile: Profile) -> int:
    """Units test on the best leadership among themselves and attached characters."""

    best = profile.leadership
    if side.unit is not None:
        for character in state.characters.values():
            if character.unit_id == side.unit.id and not character.slain:
                best = max(best, character.profile.leadership)
    return best


# --- Collection -----------------------------------------------------------------


def _rules_of(state: GameState, side: _Side, weapon: Weapon | None) -> Iterator[SpecialRule]:
    if side.character is not None:
        yield from side.character.magic_items
        yield from side.character.special_rules
        if side.character.weapon is not None and weapon is None:
            yield from side.character.weapon.special_rules
    if weapon is not None:
        yield from weapon.special_rules
    unit = side.unit
    if unit is not None:
        yield from unit.special_rules
        for feature in state.terrain.values():
            if feature.contains(unit.position):
                yield from feature.special_rules
    player = side.player
    if player is not None:
        yield from state.army_rules.get(player, ())


def _spell_rules(state: GameState, side: _Side) -> Iterator[SpecialRule]:
    if side.unit is None:
        return
    for effect in state.active_effects.values():
        if effect.target_unit_id != side.unit.id:
            continue
        spell = state.spells.get(effect.spell_id)
        if spell is None or not spell.effects:
            continue
        yield SpecialRule(
            id=f"spell.{spell.id}",
            name=spell.name,
            scope=RuleScope.SPELL,
            effects=spell.effects,
            citation=spell.citation,
        )


def _triggered(
    effect: ModifierEffect,
    owner: EffectRole,
    context: TestContext,
    opponent: Unit | None,
) -> bool:
    trigger = effect.trigger
    if trigger.role != EffectRole.ANY and trigger.role != owner:
        return False
    if trigger.categories and context.category not in trigger.categories:
        return False
    if any(flag not in context.flags for flag in trigger.requires):
        return False
    if any(flag in context.flags for flag in trigger.forbids):
        return False
    if trigger.against:
        if opponent is None or opponent.troop_type not in trigger.against:
            return False
    return True


def collect_modifiers(context: TestContext, state: GameState) -> list[Modifier]:
    """Every contribution whose trigger matches ``context``, in canonical order."""

    actor = _side(state, context.actor_unit_id, context.actor_character_id)
    target = _side(state, context.target_unit_id, context.target_character_id)
    collected: set[Modifier] = set()
    for owner, side, opponent, weapon in (
        (EffectRole.ACTOR, actor, target.unit, context.weapon),
        (EffectRole.TARGET, target, actor.unit, None),
    ):
        if side.unit is None and side.character is None:
            continue
        for rule in (*_rules_of(state, side, weapon), *_spell_rules(state, side)):
            for effect in rule.effects:
                if not _triggered(effect, owner, context, opponent):
                    continue
                collected.add(
                    Modifier(
                        rule_id=rule.id,
                        scope=rule.scope,
                        owner=owner,
                        fact=effect.fact,
                        operation=effect.operation,
                        value=effect.value,
                        precedence=effect.precedence,
                        citation=rule.citation,
                        exclusive_group=effect.exclusive_group,
                    )
                )
    return sorted(collected, key=_canonical_key)


def _canonical_key(modifier: Modifier) -> tuple:
    return (
        modifier.fact,
        modifier.precedence.value,
        modifier.operation.value,
        modifier.scope.value,
        modifier.rule_id,
        modifier.owner.value,
        type(modifier.value).__name__,
        int(modifier.value),
        modifier.exclusive_group or "",
    )


# --- Folding --------------------------------------------------------------------


def _favourability(policy: PrecedencePolicy, modifier: Modifier) -> int:
    value = int(modifier.value)
    if policy.orientation_of(modifier.fact) == Orientation.LOWER:
        value = -value
    return value


def _choose(
    candidates: list[Modifier], policy: PrecedencePolicy, label: str
) -> tuple[Modifier, list[Modifier], Conflict | None]:
    """Pick one of several mutually exclusive modifiers.

    Specificity first, then (optionally) favourability to the acting side,
    then rule id.  A tie that survives specificity with differing values is
    reported as a conflict.
    """

    best = min(policy.specificity(modifier.scope) for modifier in candidates)
    tied = [modifier for modifier in candidates if policy.specificity(modifier.scope) == best]
    if policy.favour_acting_side:
        ordered = sorted(tied, key=lambda m: (-_favourability(policy, m), m.rule_id))
    else:
        ordered = sorted(tied, key=lambda m: m.rule_id)
    winner = ordered[0]
    losers = [modifier for modifier in candidates if modifier is not winner]

    conflict = None
    if len({(type(m.value), m.value) for m in tied}) > 1:
        reason = "favourability" if policy.favour_acting_side else "rule id"
        conflict = Conflict(
            fact=label,
            rule_ids=tuple(sorted({m.rule_id for m in tied})),
            chosen=winner.rule_id,
            reason=f"equal specificity, resolved by {reason}",
        )
    return winner, losers, conflict


def _check_kind(fact: str, base: FactValue, modifier: Modifier) -> None:
    if isinstance(base, bool):
        if modifier.operation != ModifierOperation.SET or not isinstance(modifier.value, bool):
            raise InvalidFact("modifiers", fact, f"{modifier.rule_id} must SET a bool")
    elif isinstance(modifier.value, bool):
        raise InvalidFact("modifiers", fact, f"{modifier.rule_id} supplies a bool to an int fact")


def fold_modifiers(
    base: Mapping[str, FactValue],
    modifiers: Iterable[Modifier],
    policy: PrecedencePolicy,
) -> tuple[dict[str, FactValue], list[Modifier], list[Modifier], list[Conflict]]:
    """Apply ``modifiers`` to ``base`` under ``policy``.

    Returns ``(values, applied, suppressed, conflicts)``.  Contributions to
    facts that are not part of ``base`` are ignored.
    """

    relevant = sorted((m for m in set(modifiers) if m.fact in base), key=_canonical_key)
    for modifier in relevant:
        _check_kind(modifier.fact, base[modifier.fact], modifier)

    suppressed: list[Modifier] = []
    conflicts: list[Conflict] = []

    groups: dict[str, list[Modifier]] = defaultdict(list)
    for modifier in relevant:
        if modifier.exclusive_group is not None:
            groups[modifier.exclusive_group].append(modifier)
    for name in sorted(groups):
        members = groups[name]
        if len(members) < 2:
            continue
        _winner, losers, conflict = _choose(members, policy, name)
        suppressed.extend(losers)
        if conflict is not None:
            conflicts.append(conflict)
    live = [m for m in relevant if m not in suppressed]

    values: dict[str, FactValue] = dict(base)
    applied: list[Modifier] = []
    class_rank = {cls: index for index, cls in enumerate(policy.class_order)}
    for fact in sorted({m.fact for m in live}):
        value = values[fact]
        classes = {m.precedence for m in live if m.fact == fact}
        for cls in sorted(classes, key=lambda c: class_rank.get(c, len(class_rank))):
            stage = [m for m in live if m.fact == fact and m.precedence == cls]
            sets = [m for m in stage if m.operation == ModifierOperation.SET]
            if sets:
                winner, losers, conflict = _choose(sets, policy, fact)
                suppressed.extend(losers)
                if conflict is not None:
                    conflicts.append(conflict)
                value = winner.value
                applied.append(winner)
            adds = [m for m in stage if m.operation == ModifierOperation.ADD]
            if adds:
                value = int(value) + sum(int(m.value) for m in adds)
                applied.extend(adds)
            floors = [m for m in stage if m.operation == ModifierOperation.MINIMUM]
            if floors:
                value = max(int(value), max(int(m.value) for m in floors))
                applied.extend(floors)
            ceilings = [m for m in stage if m.operation == ModifierOperation.MAXIMUM]
            if ceilings:
                value = min(int(value), min(int(m.value) for m in ceilings))
                applied.extend(ceilings)
        values[fact] = value
    return values, applied, suppressed, conflicts


def _describe_resolution(result: FactVector, context: TestContext, *_args, **_kwargs):
    for modifier in result.applied:
        yield (
            f"{context.category}: {modifier.fact} {modifier.operation} {modifier.value}"
            f" from {modifier.rule_id}",
            modifier.citation,
            (),
        )
    for conflict in result.conflicts:
        yield (
            f"{context.category}: conflict on {conflict.fact} between"
            f" {', '.join(conflict.rule_ids)} -> {conflict.chosen}",
            None,
            (),
        )


@traced("modifiers", _describe_resolution)
def resolve_modifiers(
    context: TestContext, state: GameState, rules: RulesConfig = DEFAULT_RULES
) -> FactVector:
    """Resolve the normalised fact vector for ``context``.

    Pure: the state is only read, and calling twice with an unchanged state
    yields equal vectors.
    """

    base = base_facts(context, state, rules)
    values, applied, suppressed, conflicts = fold_modifiers(
        base, collect_modifiers(context, state), rules.precedence
    )
    return FactVector(
        category=context.category,
        values=MappingProxyType(values),
        base=MappingProxyType(dict(base)),
        applied=tuple(applied),
        suppressed=tuple(suppressed),
        conflicts=tuple(conflicts),
    )
