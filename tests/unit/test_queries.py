"""Unit tests for read-only game queries."""

from __future__ import annotations

import copy

import pytest

from warbook.domain import actions as act
from warbook.domain import models as dm
from warbook.domain import queries
from warbook.domain.enums import (
    ActionType,
    ChargeReaction,
    DurationClass,
    ModifierOperation,
    Phase,
    PlayerSide,
    RuleScope,
    SpellCategory,
    TestCategory,
    TroopType,
    UnitStatus,
)
from warbook.domain.errors import InvalidAction
from warbook.domain.modifiers import TestContext

ARCHERS = dm.UnitID(1)
NEAR = dm.UnitID(2)
FAR = dm.UnitID(3)
WIZARD = dm.CharacterID(1)


def _unit(unit_id: dm.UnitID, player: PlayerSide, y: float, **kwargs) -> dm.Unit:
    values = dict(
        id=unit_id,
        name=f"Unit {unit_id}",
        player=player,
        troop_type=TroopType.INFANTRY,
        profile=dm.Profile(
            movement=4,
            weapon_skill=3,
            ballistic_skill=3,
            strength=3,
            toughness=3,
            wounds=1,
            initiative=3,
            attacks=1,
            leadership=7,
        ),
        model_count=10,
        position=dm.Position(20, y),
        status=UnitStatus.ACTIVE,
    )
    values.update(kwargs)
    return dm.Unit(**values)


def _state(phase: Phase = Phase.MOVEMENT) -> dm.GameState:
    units = [
        _unit(ARCHERS, PlayerSide.A, 10, ranged_weapon=dm.Weapon(name="Bow", range=24)),
        _unit(NEAR, PlayerSide.B, 20),
        _unit(FAR, PlayerSide.B, 40),
    ]
    spell = dm.Spell(
        id=dm.SpellID("ward"),
        name="Ward",
        lore="light",
        casting_value=5,
        category=SpellCategory.AUGMENT,
        duration=DurationClass.ONE_SHOT,
        citation=dm.Citation("lore.light.ward", "Lore of Light"),
    )
    wizard = dm.Character(
        id=WIZARD,
        name="Wizard",
        player=PlayerSide.A,
        profile=units[0].profile,
        unit_id=ARCHERS,
        wizard_level=2,
        spells=[spell.id],
    )
    return dm.GameState(
        id=dm.GameID(3),
        round=1,
        phase=phase,
        units={unit.id: unit for unit in units},
        characters={wizard.id: wizard},
        spells={spell.id: spell},
    )


class TestLegalActions:
    def test_deployment_is_open_to_both_players(self):
        state = dm.GameState(id=dm.GameID(3))
        expected = [ActionType.DEPLOY_UNIT, ActionType.END_DEPLOYMENT]
        assert queries.legal_actions(state, PlayerSide.A) == expected
        assert queries.legal_actions(state, PlayerSide.B) == expected

    def test_movement_phase_splits_between_players(self):
        state = _state()
        assert queries.legal_actions(state, PlayerSide.A) == [
            ActionType.ADVANCE_PHASE,
            ActionType.DECLARE_CHARGE,
            ActionType.MOVE_UNIT,
            ActionType.RESOLVE_CHARGE,
            ActionType.WITHDRAW_CHARGE,
        ]
        assert queries.legal_actions(state, PlayerSide.B) == [ActionType.CHARGE_REACTION]

    def test_pending_cast_leaves_only_the_dispel_decision(self):
        state = _state(Phase.STRATEGY)
        state.pending_cast = dm.PendingCast(WIZARD, dm.SpellID("ward"), ARCHERS, PlayerSide.A, 7)

        assert queries.legal_actions(state, PlayerSide.A) == []
        assert queries.legal_actions(state, PlayerSide.B) == [
            ActionType.DECLINE_DISPEL,
            ActionType.DISPEL_CAST,
        ]


class TestCheckAction:
    def test_legal_charge_leaves_the_state_alone(self):
        state = _state()
        snapshot = copy.deepcopy(state)

        check = queries.check_action(state, act.DeclareCharge(PlayerSide.A, ARCHERS, NEAR))

        assert check == queries.ActionCheck(True)
        assert state == snapshot

    def test_action_that_rolls_dice_is_reported_legal_without_rolling(self):
        state = _state()
        state.pending_charges[ARCHERS] = dm.PendingCharge(
            ARCHERS, NEAR, 10.0, reaction=ChargeReaction.HOLD
        )

        check = queries.check_action(state, act.ResolveCharge(PlayerSide.A, ARCHERS))

        assert check.legal
        assert ARCHERS in state.pending_charges

    def test_wrong_phase_reports_the_error_code(self):
        check = queries.check_action(_state(), act.Shoot(PlayerSide.A, ARCHERS, NEAR))
        assert not check.legal
        assert check.reason_code == "IllegalPhaseAction"

    def test_deploying_a_taken_unit_id(self):
        state = dm.GameState(id=dm.GameID(3), units={ARCHERS: _unit(ARCHERS, PlayerSide.A, 10)})
        again = _unit(ARCHERS, PlayerSide.A, 5, status=UnitStatus.DEPLOYED)

        check = queries.check_action(state, act.DeployUnit(PlayerSide.A, again, dm.Position(30, 5)))

        assert check.reason_code == "InvalidAction"
        assert "already exists" in check.detail

    def test_unreachable_charge_target(self):
        check = queries.check_action(_state(), act.DeclareCharge(PlayerSide.A, ARCHERS, FAR))
        assert check.reason_code == "InvalidTarget"
        assert "beyond" in check.detail


class TestTargets:
    def test_shooting_targets_are_enemies_in_range(self):
        state = _state(Phase.SHOOTING)
        assert queries.available_targets(state, ActionType.SHOOT, ARCHERS) == [NEAR]

    def test_engaged_enemies_cannot_be_shot(self):
        state = _state(Phase.SHOOTING)
        state.combats[dm.CombatID(1)] = dm.Combat(
            id=dm.CombatID(1), engaged={PlayerSide.A: [], PlayerSide.B: [NEAR]}
        )
        assert queries.available_targets(state, ActionType.SHOOT, ARCHERS) == []

    def test_charge_targets_are_within_the_longest_charge(self):
        state = _state()
        assert queries.available_targets(state, ActionType.DECLARE_CHARGE, ARCHERS) == [NEAR]

    def test_spell_targets_follow_the_spell_category(self):
        state = _state(Phase.STRATEGY)
        targets = queries.available_targets(
            state, ActionType.CAST_SPELL, WIZARD, spell_id=dm.SpellID("ward")
        )
        assert targets == [ARCHERS]

    def test_unknown_spell_has_no_targets(self):
        state = _state(Phase.STRATEGY)
        targets = queries.available_targets(
            state, ActionType.CAST_SPELL, WIZARD, spell_id=dm.SpellID("nothing")
        )
        assert targets == []

    def test_actions_without_targets_raise(self):
        with pytest.raises(InvalidAction):
            queries.available_targets(_state(), ActionType.MOVE_UNIT, ARCHERS)


class TestPreview:
    def _swift(self) -> dm.SpecialRule:
        return dm.SpecialRule(
            id="swift",
            name="Swift",
            scope=RuleScope.UNIT,
            effects=(
                dm.ModifierEffect(
                    "charge_bonus",
                    ModifierOperation.ADD,
                    1,
                    trigger=dm.Trigger(
                        categories=(TestCategory.CHARGE_RANGE,), requires=("charging",)
                    ),
                ),
            ),
            citation=dm.Citation("swift", "Special Rules"),
        )

    def test_charge_range(self):
        state = _state()
        assert queries.charge_range(state, ARCHERS) == (6, 16)
        state.units[ARCHERS].special_rules.append(self._swift())
        assert queries.charge_range(state, ARCHERS) == (6, 17)

    def test_preview_lists_applied_modifiers(self):
        state = _state()
        state.units[ARCHERS].special_rules.append(self._swift())
        context = TestContext(
            TestCategory.CHARGE_RANGE, actor_unit_id=ARCHERS, flags=frozenset({"charging"})
        )

        vector = queries.preview_modifiers(state, context)

        assert vector["charge_bonus"] == 1
        assert [modifier.rule_id for modifier in vector.applied] == ["swift"]
