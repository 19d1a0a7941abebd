"""Combat and test resolution.

Every resolution follows the same steps: build a :class:`TestContext`,
resolve its modifiers, evaluate the matching decision table and draw the
dice the table calls for from the injected :class:`DiceSource`.  Nothing in
this module mutates game state; callers apply casualties and status changes
through :mod:`warbook.domain.state` and :mod:`warbook.domain.lifecycle`.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from warbook.utils.rng import DiceSource

from . import standard_tables as st
from .enums import LeadershipTest, PlayerSide, TestCategory, UnitStatus
from .errors import InvalidAction, InvalidTarget
from .explain import traced
from .models import Character, CharacterID, Citation, Combat, GameState, Unit, UnitID, Weapon
from .modifiers import FactVector, TestContext, resolve_modifiers
from .rules_config import DEFAULT_RULES, RulesConfig
from .tables import Outcome, TableRegistry, require_outcome

if TYPE_CHECKING:
    from .lifecycle import MilestoneBus


@dataclass(slots=True)
class RulesContext:
    """State and collaborators shared by every resolution step of one action."""

    state: GameState
    dice: DiceSource
    tables: TableRegistry
    rules: RulesConfig = DEFAULT_RULES
    bus: MilestoneBus | None = None


# --- Dice -----------------------------------------------------------------------


def _describe_draw(result: tuple[int, ...], _dice, count, purpose, *_args, **_kwargs):
    yield f"{purpose}: rolled {count} -> {list(result)}", None, result


@traced("dice", _describe_draw)
def draw(dice: DiceSource, count: int, purpose: str, sides: int = 6) -> tuple[int, ...]:
    """Draw ``count`` dice; every value drawn lands in the trace."""

    if count <= 0:
        return ()
    values = tuple(dice.roll(count, sides))
    if len(values) != count:
        raise InvalidAction(f"dice source returned {len(values)} values for {count} dice")
    return values


@dataclass(frozen=True, slots=True)
class RollResult:
    """Dice rolled against one target number."""

    purpose: str
    target: int
    rolls: tuple[int, ...]
    successes: int
    citation: Citation | None = None

    @property
    def failures(self) -> int:
        return len(self.rolls) - self.successes


def final_target(base: int, shift: int, rules: RulesConfig = DEFAULT_RULES) -> int:
    """Apply a target-number shift, honouring the best and worst possible rolls."""

    dice = rules.dice
    if base >= dice.impossible_target:
        return dice.impossible_target
    target = max(dice.best_target, base + shift)
    if target > dice.sides:
        return dice.sides if dice.natural_six_always_hits else dice.impossible_target
    return target


def roll_to_beat(
    ctx: RulesContext, count: int, target: int, purpose: str, citation: Citation | None = None
) -> RollResult:
    """Roll ``count`` dice and count those scoring ``target`` or more."""

    if count <= 0 or target > ctx.rules.dice.sides:
        return RollResult(purpose, target, (), 0, citation)
    rolls = draw(ctx.dice, count, purpose, ctx.rules.dice.sides)
    successes = sum(1 for value in rolls if value >= target)
    return RollResult(purpose, target, rolls, successes, citation)


# --- Targets --------------------------------------------------------------------


def _acting_unit(state: GameState, unit_id: UnitID) -> Unit:
    unit = state.units.get(unit_id)
    if unit is None:
        raise InvalidAction(f"unknown unit {unit_id}")
    if unit.status == UnitStatus.DESTROYED:
        raise InvalidAction(f"unit {unit_id} has been destroyed")
    return unit


def valid_target(state: GameState, target_id: UnitID, attacker: PlayerSide) -> Unit:
    """Return the target unit, or raise :class:`InvalidTarget`."""

    target = state.units.get(target_id)
    if target is None:
        raise InvalidTarget(f"unknown unit {target_id}")
    if target.status == UnitStatus.DESTROYED:
        raise InvalidTarget(f"unit {target_id} has been destroyed")
    if target.player == attacker:
        raise InvalidTarget(f"unit {target_id} is friendly")
    return target


def _character(state: GameState, character_id: CharacterID | None, unit: Unit) -> Character | None:
    if character_id is None:
        return None
    character = state.characters.get(character_id)
    if character is None or character.slain or character.unit_id != unit.id:
        raise InvalidAction(f"character {character_id} cannot fight with unit {unit.id}")
    return character


def fighting_models(unit: Unit, rules: RulesConfig = DEFAULT_RULES) -> int:
    """Models in the front rank plus supporting ranks."""

    width = max(1, unit.files)
    return min(unit.model_count, width * (1 + rules.combat.supporting_ranks))


# --- Attack sequences -----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SaveResult:
    """Armour and ward saves taken against a batch of wounds."""

    wounds: int
    armour: RollResult | None
    ward: RollResult | None
    unsaved: int


@dataclass(frozen=True, slots=True)
class AttackResult:
    """Aggregate of one unit's (or character's) attacks against one target."""

    kind: str
    attacker_id: UnitID
    defender_id: UnitID
    attacks: int
    hits: int = 0
    wounds: int = 0
    unsaved: int = 0
    steps: tuple[RollResult, ...] = ()
    character_id: CharacterID | None = None

    def citations(self) -> list[Citation]:
        return [step.citation for step in self.steps if step.citation is not None]


def _describe_attack(result: AttackResult, *_args, **_kwargs):
    who = f"unit {result.attacker_id}"
    if result.character_id is not None:
        who = f"character {result.character_id}"
    yield (
        f"{result.kind}: {who} vs unit {result.defender_id}: {result.attacks} attacks,"
        f" {result.hits} hits, {result.wounds} wounds, {result.unsaved} unsaved",
        None,
        (),
    )


def _to_hit(ctx: RulesContext, vector: FactVector) -> Outcome:
    table = ctx.tables[st.TO_HIT]
    difference = vector.as_int("attacker_ws") - vector.as_int("defender_ws")
    return require_outcome(
        table, {"ws_difference": table.input("ws_difference").clamp(difference)}
    )


def _to_wound(ctx: RulesContext, vector: FactVector) -> Outcome:
    table = ctx.tables[st.TO_WOUND]
    difference = vector.as_int("strength") - vector.as_int("toughness")
    return require_outcome(
        table, {"strength_difference": table.input("strength_difference").clamp(difference)}
    )


def _save_target(ctx: RulesContext, value: int) -> Outcome:
    table = ctx.tables[st.SAVE]
    return require_outcome(table, {"save_value": table.input("save_value").clamp(value)})


def resolve_saves(
    ctx: RulesContext,
    defender_id: UnitID,
    wounds: int,
    *,
    weapon: Weapon | None = None,
    attacker_unit_id: UnitID | None = None,
    attacker_character_id: CharacterID | None = None,
    flags: frozenset[str] = frozenset(),
) -> SaveResult:
    """Armour save (modified by armour penetration), then ward save."""

    if wounds <= 0:
        return SaveResult(0, None, None, 0)
    vector = resolve_modifiers(
        TestContext(
            TestCategory.ARMOUR_SAVE,
            actor_unit_id=attacker_unit_id,
            target_unit_id=defender_id,
            actor_character_id=attacker_character_id,
            weapon=weapon,
            flags=flags,
        ),
        ctx.state,
        ctx.rules,
    )
    remaining = wounds
    armour = None
    armour_value = vector.as_int("armour") + vector.as_int("armour_penetration")
    outcome = _save_target(ctx, armour_value)
    if outcome["target"] <= ctx.rules.dice.sides:
        armour = roll_to_beat(
            ctx, remaining, int(outcome["target"]), "armour save", outcome.citation
        )
        remaining -= armour.successes
    ward = None
    if remaining > 0 and vector.as_int("ward") < ctx.rules.dice.impossible_target:
        outcome = _save_target(ctx, vector.as_int("ward"))
        ward = roll_to_beat(ctx, remaining, int(outcome["target"]), "ward save", outcome.citation)
        remaining -= ward.successes
    return SaveResult(wounds, armour, ward, remaining)


def _wound_and_save(
    ctx: RulesContext,
    kind: str,
    attacker: Unit,
    defender: Unit,
    attacks: int,
    hits: RollResult,
    weapon: Weapon | None,
    character_id: CharacterID | None,
    flags: frozenset[str],
) -> AttackResult:
    steps = [hits]
    if hits.successes == 0:
        return AttackResult(
            kind, attacker.id, defender.id, attacks, steps=tuple(steps), character_id=character_id
        )

    wound_vector = resolve_modifiers(
        TestContext(
            TestCategory.TO_WOUND,
            actor_unit_id=attacker.id,
            target_unit_id=defender.id,
            actor_character_id=character_id,
            weapon=weapon,
            flags=flags,
        ),
        ctx.state,
        ctx.rules,
    )
    outcome = _to_wound(ctx, wound_vector)
    target = final_target(int(outcome["target"]), wound_vector.as_int("wound_shift"), ctx.rules)
    wounds = roll_to_beat(ctx, hits.successes, target, "to wound", outcome.citation)
    steps.append(wounds)

    saves = resolve_saves(
        ctx,
        defender.id,
        wounds.successes,
        weapon=weapon,
        attacker_unit_id=attacker.id,
        attacker_character_id=character_id,
        flags=flags,
    )
    steps.extend(step for step in (saves.armour, saves.ward) if step is not None)
    return AttackResult(
        kind,
        attacker.id,
        defender.id,
        attacks,
        hits.successes,
        wounds.successes,
        saves.unsaved,
        tuple(steps),
        character_id,
    )


@traced("resolution", _describe_attack)
def resolve_close_combat(
    ctx: RulesContext,
    attacker_id: UnitID,
    defender_id: UnitID,
    *,
    character_id: CharacterID | None = None,
    flags: frozenset[str] = frozenset(),
    attacks: int | None = None,
) -> AttackResult:
    """To hit, to wound and saves for one unit (or character) attacking in melee."""

    attacker = _acting_unit(ctx.state, attacker_id)
    defender = valid_target(ctx.state, defender_id, attacker.player)
    character = _character(ctx.state, character_id, attacker)
    weapon = character.weapon if character is not None else attacker.weapon

    hit_vector = resolve_modifiers(
        TestContext(
            TestCategory.TO_HIT,
            actor_unit_id=attacker.id,
            target_unit_id=defender.id,
            actor_character_id=character_id,
            weapon=weapon,
            flags=flags,
        ),
        ctx.state,
        ctx.rules,
    )
    if attacks is None:
        models = 1 if character is not None else fighting_models(attacker, ctx.rules)
        attacks = max(0, hit_vector.as_int("attacks")) * models
    if attacks <= 0:
        return AttackResult("close_combat", attacker.id, defender.id, 0, character_id=character_id)

    outcome = _to_hit(ctx, hit_vector)
    target = final_target(int(outcome["target"]), hit_vector.as_int("hit_shift"), ctx.rules)
    hits = roll_to_beat(ctx, attacks, target, "to hit", outcome.citation)
    return _wound_and_save(
        ctx, "close_combat", attacker, defender, attacks, hits, weapon, character_id, flags
    )


def shooting_flags(shooter: Unit, target: Unit, weapon: Weapon) -> frozenset[str]:
    """Situational flags derived from the positions of shooter and target."""

    flags = set()
    if shooter.position.distance_to(target.position) > weapon.range / 2:
        flags.add("long_range")
    if shooter.moved_this_turn:
        flags.add("moved")
    return frozenset(flags)


@traced("resolution", _describe_attack)
def resolve_shooting(
    ctx: RulesContext,
    shooter_id: UnitID,
    target_id: UnitID,
    *,
    flags: frozenset[str] = frozenset(),
    shots: int | None = None,
) -> AttackResult:
    """Range check, ranged to hit, to wound and saves for one shooting unit."""

    shooter = _acting_unit(ctx.state, shooter_id)
    weapon = shooter.ranged_weapon
    if weapon is None or not weapon.is_ranged:
        raise InvalidAction(f"unit {shooter_id} has no missile weapon")
    target = valid_target(ctx.state, target_id, shooter.player)
    distance = shooter.position.distance_to(target.position)
    if distance > weapon.range:
        raise InvalidTarget(f"unit {target_id} is {distance:.1f}\" away, beyond {weapon.range}\"")

    flags = flags | shooting_flags(shooter, target, weapon)
    vector = resolve_modifiers(
        TestContext(
            TestCategory.RANGED_TO_HIT,
            actor_unit_id=shooter.id,
            target_unit_id=target.id,
            weapon=weapon,
            flags=flags,
        ),
        ctx.state,
        ctx.rules,
    )
    if shots is None:
        shots = max(0, vector.as_int("shots")) * min(shooter.model_count, max(1, shooter.files))
    if shots <= 0:
        return AttackResult("shooting", shooter.id, target.id, 0)

    table = ctx.tables[st.RANGED_TO_HIT]
    outcome = require_outcome(
        table,
        {"ballistic_skill": table.input("ballistic_skill").clamp(vector.as_int("ballistic_skill"))},
    )
    shift = vector.as_int("hit_shift")
    shooting = ctx.rules.shooting
    if "long_range" in flags:
        shift += shooting.long_range_shift
    if "moved" in flags:
        shift += shooting.moved_and_shot_shift
    if "stand_and_shoot" in flags:
        shift += shooting.stand_and_shoot_shift
    target_number = final_target(int(outcome["target"]), shift, ctx.rules)
    hits = roll_to_beat(ctx, shots, target_number, "ranged to hit", outcome.citation)
    return _wound_and_save(ctx, "shooting", shooter, target, shots, hits, weapon, None, flags)


def resolve_magic_hits(
    ctx: RulesContext,
    target_id: UnitID,
    hits: int,
    strength: int,
    armour_penetration: int,
    purpose: str,
) -> AttackResult:
    """Wound and save rolls for automatic hits (direct-damage spells, miscasts)."""

    target = ctx.state.units.get(target_id)
    if target is None or target.status == UnitStatus.DESTROYED:
        raise InvalidTarget(f"unit {target_id} cannot be hit")
    table = ctx.tables[st.TO_WOUND]
    difference = table.input("strength_difference").clamp(strength - target.profile.toughness)
    outcome = require_outcome(table, {"strength_difference": difference})
    target_number = final_target(int(outcome["target"]), 0, ctx.rules)
    wounds = roll_to_beat(ctx, hits, target_number, f"{purpose} to wound", outcome.citation)
    weapon = Weapon(name=purpose, strength=strength, armour_penetration=armour_penetration)
    saves = resolve_saves(ctx, target_id, wounds.successes, weapon=weapon)
    steps = [wounds]
    steps.extend(step for step in (saves.armour, saves.ward) if step is not None)
    return AttackResult(
        "magic", target_id, target_id, hits, hits, wounds.successes, saves.unsaved, tuple(steps)
    )


# --- Psychology -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LeadershipResult:
    """Outcome of a leadership test."""

    unit_id: UnitID
    test: LeadershipTest
    target: int
    rolls: tuple[int, ...]
    passed: bool
    automatic: bool
    citations: tuple[Citation, ...] = ()

    @property
    def total(self) -> int:
        return sum(self.rolls)


def _describe_leadership(result: LeadershipResult, *_args, **_kwargs):
    verdict = "passed" if result.passed else "failed"
    how = "automatically" if result.automatic else f"rolling {result.total} against {result.target}"
    yield f"{result.test} test for unit {result.unit_id} {verdict} {how}", None, ()


@traced("resolution", _describe_leadership)
def leadership_test(
    ctx: RulesContext,
    unit_id: UnitID,
    test: LeadershipTest,
    *,
    shift: int = 0,
    flags: frozenset[str] = frozenset(),
) -> LeadershipResult:
    """2D6 against leadership; passes on a total equal to or below the target."""

    unit = _acting_unit(ctx.state, unit_id)
    vector = resolve_modifiers(
        TestContext(TestCategory.PSYCHOLOGY, actor_unit_id=unit.id, flags=flags | {test.value}),
        ctx.state,
        ctx.rules,
    )
    psychology = ctx.rules.psychology
    leadership = vector.as_int("leadership") + vector.as_int("leadership_shift") + shift
    leadership = max(psychology.min_leadership, min(psychology.max_leadership, leadership))

    table = ctx.tables[st.LEADERSHIP]
    outcome = require_outcome(
        table,
        {
            "test": test.value,
            "leadership": table.input("leadership").clamp(leadership),
            "unbreakable": vector.flag("unbreakable"),
            "immune": vector.flag("immune_to_psychology"),
        },
    )
    target = int(outcome["target"])
    if outcome["automatic"]:
        return LeadershipResult(unit.id, test, target, (), True, True, (outcome.citation,))

    rolls = draw(ctx.dice, psychology.test_dice, f"{test} test")
    result_table = ctx.tables[st.LEADERSHIP_RESULT]
    double_one = psychology.insane_courage and len(rolls) == 2 and all(v == 1 for v in rolls)
    verdict = require_outcome(
        result_table,
        {
            "margin": result_table.input("margin").clamp(sum(rolls) - target),
            "double_one": double_one,
        },
    )
    return LeadershipResult(
        unit.id,
        test,
        target,
        rolls,
        bool(verdict["passed"]),
        False,
        (outcome.citation, verdict.citation),
    )


def is_steadfast(state: GameState, combat: Combat, unit: Unit) -> bool:
    """A unit with more full ranks than every engaged enemy unit holds its ground."""

    enemy_ranks = [
        state.units[enemy_id].full_ranks
        for enemy_id in combat.engaged.get(unit.player.opponent(), [])
        if enemy_id in state.units and not state.units[enemy_id].is_destroyed
    ]
    return bool(enemy_ranks) and unit.full_ranks > max(enemy_ranks)


def break_test(
    ctx: RulesContext, unit_id: UnitID, difference: int, *, steadfast: bool = False
) -> LeadershipResult:
    """Leadership test taken by a unit that lost a combat by ``difference``."""

    vector = resolve_modifiers(
        TestContext(TestCategory.PSYCHOLOGY, actor_unit_id=unit_id, flags=frozenset({"break"})),
        ctx.state,
        ctx.rules,
    )
    outcome = require_outcome(
        ctx.tables[st.BREAK_TEST],
        {"stubborn": vector.flag("stubborn"), "steadfast": steadfast},
    )
    shift = -abs(difference) if outcome["apply_difference"] else 0
    return leadership_test(ctx, unit_id, LeadershipTest.BREAK, shift=shift)


# --- Movement -------------------------------------------------------------------


def charge_range(
    movement: int, bonus: int = 0, rules: RulesConfig = DEFAULT_RULES
) -> tuple[int, int]:
    """Shortest and longest possible charge.

    The shortest is movement plus the lowest charge roll; a charge bonus only
    raises the longest.
    """

    dice = rules.movement.charge_dice
    return movement + dice, movement + dice * rules.dice.sides + bonus


def unit_charge_range(
    state: GameState,
    unit_id: UnitID,
    rules: RulesConfig = DEFAULT_RULES,
    flags: frozenset[str] = frozenset(),
) -> tuple[int, int]:
    vector = resolve_modifiers(
        TestContext(TestCategory.CHARGE_RANGE, actor_unit_id=unit_id, flags=flags), state, rules
    )
    return charge_range(vector.as_int("movement"), vector.as_int("charge_bonus"), rules)


@dataclass(frozen=True, slots=True)
class ChargeRoll:
    """Charge dice and what they achieved."""

    charger_id: UnitID
    target_id: UnitID
    distance: float
    rolls: tuple[int, ...]
    reach: int
    result: str
    citation: Citation

    @property
    def engaged(self) -> bool:
        return self.result == "charged"


def _describe_charge(result: ChargeRoll, *_args, **_kwargs):
    yield (
        f"charge by unit {result.charger_id} on unit {result.target_id}: reach {result.reach}"
        f" vs {result.distance:.1f}\" -> {result.result}",
        None,
        (),
    )


@traced("resolution", _describe_charge)
def roll_charge(
    ctx: RulesContext,
    charger_id: UnitID,
    target_id: UnitID,
    distance: float,
    *,
    target_fled: bool = False,
) -> ChargeRoll:
    """Roll the charge dice; the charge lands when movement + roll + bonus covers the gap."""

    charger = _acting_unit(ctx.state, charger_id)
    vector = resolve_modifiers(
        TestContext(
            TestCategory.CHARGE_RANGE,
            actor_unit_id=charger.id,
            target_unit_id=target_id,
            flags=frozenset({"charging"}),
        ),
        ctx.state,
        ctx.rules,
    )
    rolls = draw(ctx.dice, ctx.rules.movement.charge_dice, "charge roll")
    reach = vector.as_int("movement") + sum(rolls) + vector.as_int("charge_bonus")
    table = ctx.tables[st.CHARGE_OUTCOME]
    margin = table.input("margin").clamp(math.floor(reach - distance))
    outcome = require_outcome(table, {"margin": margin, "target_fled": target_fled})
    return ChargeRoll(
        charger.id, target_id, distance, rolls, reach, str(outcome["result"]), outcome.citation
    )


@dataclass(frozen=True, slots=True)
class FleeRoll:
    unit_id: UnitID
    rolls: tuple[int, ...]

    @property
    def distance(self) -> int:
        return sum(self.rolls)


def roll_flee(ctx: RulesContext, unit_id: UnitID) -> FleeRoll:
    rolls = draw(ctx.dice, ctx.rules.movement.flee_dice, f"flee roll unit {unit_id}")
    return FleeRoll(unit_id, rolls)


# --- Combat result --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CombatScore:
    """Combat result points earned by one side in one round."""

    side: PlayerSide
    wounds: int = 0
    rank_bonus: int = 0
    standard: int = 0
    outnumber: int = 0
    charge: int = 0
    bonus: int = 0
    musician: bool = False

    @property
    def total(self) -> int:
        return (
            self.wounds
            + self.rank_bonus
            + self.standard
            + self.outnumber
            + self.charge
            + self.bonus
        )


@dataclass(frozen=True, slots=True)
class CombatResult:
    """Both sides' scores for one round and who won it."""

    scores: dict[PlayerSide, CombatScore] = field(default_factory=dict)

    @property
    def winner(self) -> PlayerSide | None:
        a, b = self.scores[PlayerSide.A], self.scores[PlayerSide.B]
        if a.total == b.total:
            # a lone musician wins a drawn round
            if a.musician != b.musician:
                return PlayerSide.A if a.musician else PlayerSide.B
            return None
        return PlayerSide.A if a.total > b.total else PlayerSide.B

    @property
    def difference(self) -> int:
        difference = abs(self.scores[PlayerSide.A].total - self.scores[PlayerSide.B].total)
        if difference == 0 and self.winner is not None:
            return 1
        return difference


def _live_units(state: GameState, unit_ids: Iterable[UnitID]) -> list[Unit]:
    return [
        state.units[unit_id]
        for unit_id in unit_ids
        if unit_id in state.units and state.units[unit_id].status == UnitStatus.ACTIVE
    ]


def _describe_combat_result(result: CombatResult, *_args, **_kwargs):
    a, b = result.scores[PlayerSide.A], result.scores[PlayerSide.B]
    winner = result.winner or "draw"
    yield f"combat result {a.total} - {b.total}, winner {winner}", None, ()


@traced("resolution", _describe_combat_result)
def score_combat(
    ctx: RulesContext,
    combat: Combat,
    wounds_caused: dict[PlayerSide, int],
    *,
    first_round: bool,
) -> CombatResult:
    """Wounds plus rank, standard, outnumber and charge bonuses for each side."""

    rules = ctx.rules.combat
    models = {
        side: sum(unit.model_count for unit in _live_units(ctx.state, combat.engaged.get(side, [])))
        for side in PlayerSide
    }
    scores: dict[PlayerSide, CombatScore] = {}
    for side in PlayerSide:
        units = _live_units(ctx.state, combat.engaged.get(side, []))
        rank_bonus = 0
        bonus = 0
        for unit in units:
            vector = resolve_modifiers(
                TestContext(TestCategory.COMBAT_RESULT, actor_unit_id=unit.id),
                ctx.state,
                ctx.rules,
            )
            bonus = max(bonus, vector.as_int("combat_result_bonus"))
            if unit.files >= rules.min_models_for_rank:
                ranks = min(vector.as_int("max_rank_bonus"), max(0, unit.full_ranks - 1))
                rank_bonus = max(rank_bonus, ranks)
        charged = first_round and any(unit.id in combat.chargers for unit in units)
        scores[side] = CombatScore(
            side=side,
            wounds=wounds_caused.get(side, 0),
            rank_bonus=rank_bonus,
            standard=rules.standard_bonus if any(unit.has_standard for unit in units) else 0,
            outnumber=rules.outnumber_bonus if models[side] > models[side.opponent()] else 0,
            charge=rules.charge_bonus if charged else 0,
            bonus=bonus,
            musician=any(unit.has_musician for unit in units),
        )
    return CombatResult(scores)
