"""Unit tests for combat, psychology and movement resolution."""

from __future__ import annotations

import pytest

from warbook.domain import models as dm
from warbook.domain import resolution
from warbook.domain.enums import (
    LeadershipTest,
    ModifierOperation,
    PlayerSide,
    RuleScope,
    TestCategory,
    TroopType,
    UnitStatus,
)
from warbook.domain.errors import DiceExhausted, InvalidAction, InvalidTarget
from warbook.domain.explain import ExplanationRecorder
from warbook.domain.resolution import RulesContext
from warbook.domain.standard_tables import standard_registry
from warbook.utils.rng import ScriptedDice

TABLES = standard_registry()


def _profile(**overrides) -> dm.Profile:
    values = dict(
        movement=4,
        weapon_skill=3,
        ballistic_skill=3,
        strength=3,
        toughness=3,
        wounds=1,
        initiative=3,
        attacks=1,
        leadership=7,
    )
    values.update(overrides)
    return dm.Profile(**values)


def _unit(unit_id: int, player: PlayerSide, *, x: float = 10, y: float = 10, **kwargs) -> dm.Unit:
    values = dict(
        id=dm.UnitID(unit_id),
        name=f"Unit {unit_id}",
        player=player,
        troop_type=TroopType.INFANTRY,
        profile=_profile(),
        model_count=20,
        position=dm.Position(x, y),
        status=UnitStatus.ACTIVE,
    )
    values.update(kwargs)
    return dm.Unit(**values)


def _context(*units: dm.Unit, draws=()) -> RulesContext:
    state = dm.GameState(id=dm.GameID(5), units={unit.id: unit for unit in units})
    return RulesContext(state, ScriptedDice(draws), TABLES)


def _psych_rule(rule_id: str, fact: str) -> dm.SpecialRule:
    return dm.SpecialRule(
        id=rule_id,
        name=rule_id,
        scope=RuleScope.UNIT,
        effects=(
            dm.ModifierEffect(
                fact,
                ModifierOperation.SET,
                True,
                trigger=dm.Trigger(categories=(TestCategory.PSYCHOLOGY,)),
            ),
        ),
        citation=dm.Citation(rule_id, "Special Rules"),
    )


class TestDice:
    def test_charge_range_from_movement(self):
        assert resolution.charge_range(4) == (6, 16)
        assert resolution.charge_range(4, 3) == (6, 19)

    def test_impossible_roll_draws_no_dice(self):
        ctx = _context()
        result = resolution.roll_to_beat(ctx, 5, 7, "hopeless")
        assert result.rolls == ()
        assert result.successes == 0

    @pytest.mark.parametrize(
        ("base", "shift", "expected"),
        [(3, 0, 3), (2, -1, 2), (4, 1, 5), (5, 2, 6), (7, -2, 7)],
    )
    def test_final_target(self, base, shift, expected):
        assert resolution.final_target(base, shift) == expected

    def test_draws_are_traced(self):
        recorder = ExplanationRecorder()
        ctx = _context(draws=[2, 5])
        with recorder.recording("draw"):
            resolution.draw(ctx.dice, 2, "charge roll")
        assert recorder.trace("draw").draws() == [2, 5]

    def test_exhausted_script_raises(self):
        ctx = _context(draws=[1])
        with pytest.raises(DiceExhausted):
            resolution.draw(ctx.dice, 2, "charge roll")


class TestLeadership:
    @pytest.mark.parametrize(("rolls", "passed"), [((3, 4), True), ((4, 4), False)])
    def test_passes_on_leadership_or_less(self, rolls, passed):
        unit = _unit(1, PlayerSide.A)
        ctx = _context(unit, draws=rolls)

        result = resolution.leadership_test(ctx, unit.id, LeadershipTest.PANIC)

        assert result.passed is passed
        assert result.target == 7
        assert result.rolls == rolls

    def test_attached_character_lends_leadership(self):
        unit = _unit(1, PlayerSide.A)
        ctx = _context(unit, draws=(4, 5))
        ctx.state.characters[dm.CharacterID(1)] = dm.Character(
            id=dm.CharacterID(1),
            name="General",
            player=PlayerSide.A,
            profile=_profile(leadership=9),
            unit_id=unit.id,
        )
        assert resolution.leadership_test(ctx, unit.id, LeadershipTest.RALLY).passed

    def test_double_one_always_passes(self):
        unit = _unit(1, PlayerSide.A)
        ctx = _context(unit, draws=(1, 1))
        result = resolution.leadership_test(ctx, unit.id, LeadershipTest.BREAK, shift=-10)
        assert result.target == 0
        assert result.passed

    def test_unbreakable_passes_break_tests_without_rolling(self):
        unit = _unit(1, PlayerSide.A, special_rules=[_psych_rule("unbreakable", "unbreakable")])
        ctx = _context(unit)

        result = resolution.break_test(ctx, unit.id, 6)

        assert result.passed and result.automatic
        assert result.rolls == ()

    def test_break_test_subtracts_the_combat_difference(self):
        unit = _unit(1, PlayerSide.A)
        ctx = _context(unit, draws=(3, 2))
        result = resolution.break_test(ctx, unit.id, 3)
        assert result.target == 4
        assert not result.passed

    @pytest.mark.parametrize("steadfast", [True, False])
    def test_steadfast_or_stubborn_ignore_the_difference(self, steadfast):
        rules = [] if steadfast else [_psych_rule("stubborn", "stubborn")]
        unit = _unit(1, PlayerSide.A, special_rules=rules)
        ctx = _context(unit, draws=(3, 2))
        result = resolution.break_test(ctx, unit.id, 3, steadfast=steadfast)
        assert result.target == 7
        assert result.passed

    def test_steadfast_needs_more_ranks_than_every_enemy(self):
        deep = _unit(1, PlayerSide.A)
        shallow = _unit(2, PlayerSide.B, model_count=5)
        ctx = _context(deep, shallow)
        combat = dm.Combat(
            id=dm.CombatID(1), engaged={PlayerSide.A: [deep.id], PlayerSide.B: [shallow.id]}
        )
        assert resolution.is_steadfast(ctx.state, combat, deep)
        assert not resolution.is_steadfast(ctx.state, combat, shallow)


class TestAttacks:
    def test_close_combat_sequence(self):
        attacker = _unit(1, PlayerSide.A)
        defender = _unit(2, PlayerSide.B, x=10, y=11)
        # to hit on 3+, to wound on 4+, no saves
        ctx = _context(attacker, defender, draws=(3, 2, 6, 4, 1))

        result = resolution.resolve_close_combat(ctx, attacker.id, defender.id, attacks=3)

        assert (result.attacks, result.hits, result.wounds, result.unsaved) == (3, 2, 1, 1)
        assert [step.purpose for step in result.steps] == ["to hit", "to wound"]
        assert [c.rule_id for c in result.citations()] == [
            "core.to_hit.equal",
            "core.wound.equal",
        ]

    def test_armour_saves_reduce_wounds(self):
        attacker = _unit(1, PlayerSide.A)
        defender = _unit(2, PlayerSide.B, x=10, y=11, armour_save=5)
        ctx = _context(attacker, defender, draws=(6, 6, 4, 4, 5, 2))

        result = resolution.resolve_close_combat(ctx, attacker.id, defender.id, attacks=2)

        assert result.wounds == 2
        assert result.unsaved == 1
        assert result.steps[-1].purpose == "armour save"

    def test_fighting_models_are_front_and_supporting_ranks(self):
        assert resolution.fighting_models(_unit(1, PlayerSide.A)) == 10
        assert resolution.fighting_models(_unit(1, PlayerSide.A, model_count=7)) == 7

    def test_friendly_units_are_invalid_targets(self):
        first = _unit(1, PlayerSide.A)
        second = _unit(2, PlayerSide.A)
        ctx = _context(first, second)
        with pytest.raises(InvalidTarget):
            resolution.resolve_close_combat(ctx, first.id, second.id)

    def test_shooting_at_short_range(self):
        bow = dm.Weapon(name="Bow", range=24)
        shooter = _unit(1, PlayerSide.A, ranged_weapon=bow)
        target = _unit(2, PlayerSide.B, x=10, y=20)
        # BS3 hits on 4+, S3 vs T3 wounds on 4+
        ctx = _context(shooter, target, draws=(4, 3, 5))

        result = resolution.resolve_shooting(ctx, shooter.id, target.id, shots=2)

        assert (result.hits, result.wounds, result.unsaved) == (1, 1, 1)
        assert result.steps[0].target == 4

    def test_long_range_worsens_the_target(self):
        bow = dm.Weapon(name="Bow", range=24)
        shooter = _unit(1, PlayerSide.A, ranged_weapon=bow)
        target = _unit(2, PlayerSide.B, x=10, y=30)
        ctx = _context(shooter, target, draws=(4, 4))

        result = resolution.resolve_shooting(ctx, shooter.id, target.id, shots=2)

        assert result.steps[0].target == 5
        assert result.hits == 0

    def test_shooting_out_of_range(self):
        shooter = _unit(1, PlayerSide.A, ranged_weapon=dm.Weapon(name="Bow", range=24))
        target = _unit(2, PlayerSide.B, x=10, y=40)
        with pytest.raises(InvalidTarget, match="beyond"):
            resolution.resolve_shooting(_context(shooter, target), shooter.id, target.id)

    def test_shooting_needs_a_missile_weapon(self):
        shooter = _unit(1, PlayerSide.A)
        target = _unit(2, PlayerSide.B, x=10, y=20)
        with pytest.raises(InvalidAction):
            resolution.resolve_shooting(_context(shooter, target), shooter.id, target.id)


class TestCharges:
    @pytest.mark.parametrize(
        ("rolls", "expected"), [((3, 4), "charged"), ((1, 2), "failed")]
    )
    def test_charge_lands_when_reach_covers_distance(self, rolls, expected):
        charger = _unit(1, PlayerSide.A)
        target = _unit(2, PlayerSide.B, x=10, y=20)
        ctx = _context(charger, target, draws=rolls)

        result = resolution.roll_charge(ctx, charger.id, target.id, 10.0)

        assert result.reach == 4 + sum(rolls)
        assert result.result == expected

    def test_fleeing_target_is_caught(self):
        charger = _unit(1, PlayerSide.A)
        target = _unit(2, PlayerSide.B, x=10, y=20)
        ctx = _context(charger, target, draws=(6, 6))
        result = resolution.roll_charge(ctx, charger.id, target.id, 12.0, target_fled=True)
        assert result.result == "caught"
        assert not result.engaged


class TestCombatResult:
    def test_scores_include_ranks_standard_outnumber_and_charge(self):
        infantry = _unit(1, PlayerSide.A, has_standard=True)
        knights = _unit(2, PlayerSide.B, model_count=5, troop_type=TroopType.CAVALRY)
        ctx = _context(infantry, knights)
        combat = dm.Combat(
            id=dm.CombatID(1),
            engaged={PlayerSide.A: [infantry.id], PlayerSide.B: [knights.id]},
            chargers=[knights.id],
        )

        result = resolution.score_combat(
            ctx, combat, {PlayerSide.A: 1, PlayerSide.B: 2}, first_round=True
        )

        a, b = result.scores[PlayerSide.A], result.scores[PlayerSide.B]
        assert (a.wounds, a.rank_bonus, a.standard, a.outnumber, a.charge) == (1, 3, 1, 1, 0)
        assert (b.wounds, b.rank_bonus, b.charge) == (2, 0, 1)
        assert result.winner == PlayerSide.A
        assert result.difference == 3

    def test_charge_bonus_only_in_the_first_round(self):
        left = _unit(1, PlayerSide.A, files=4, model_count=4)
        right = _unit(2, PlayerSide.B, files=4, model_count=4)
        ctx = _context(left, right)
        combat = dm.Combat(
            id=dm.CombatID(1),
            engaged={PlayerSide.A: [left.id], PlayerSide.B: [right.id]},
            chargers=[left.id],
        )
        result = resolution.score_combat(ctx, combat, {}, first_round=False)
        assert result.winner is None

    def test_musician_wins_a_drawn_round(self):
        left = _unit(1, PlayerSide.A, files=4, model_count=4, has_musician=True)
        right = _unit(2, PlayerSide.B, files=4, model_count=4)
        ctx = _context(left, right)
        combat = dm.Combat(
            id=dm.CombatID(1),
            engaged={PlayerSide.A: [left.id], PlayerSide.B: [right.id]},
        )

        result = resolution.score_combat(ctx, combat, {}, first_round=False)

        assert result.scores[PlayerSide.A].total == result.scores[PlayerSide.B].total
        assert result.winner == PlayerSide.A
        assert result.difference == 1
