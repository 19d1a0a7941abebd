"""Unit tests for state primitives and the unit lifecycle table."""

from __future__ import annotations

import pytest

from warbook.domain import models as dm
from warbook.domain import state as ops
from warbook.domain.enums import Phase, PlayerSide, TroopType, UnitStatus
from warbook.domain.errors import (
    IllegalPhaseAction,
    IllegalStateTransition,
    InvalidAction,
    InvalidTarget,
)


def _unit(unit_id: int = 1, *, models: int = 10, wounds: int = 1) -> dm.Unit:
    return dm.Unit(
        id=dm.UnitID(unit_id),
        name=f"Unit {unit_id}",
        player=PlayerSide.A,
        troop_type=TroopType.INFANTRY,
        profile=dm.Profile(
            movement=4,
            weapon_skill=3,
            ballistic_skill=3,
            strength=3,
            toughness=3,
            wounds=wounds,
            initiative=3,
            attacks=1,
            leadership=7,
        ),
        model_count=models,
    )


def _state(*units: dm.Unit) -> dm.GameState:
    return dm.GameState(id=dm.GameID(3), units={unit.id: unit for unit in units})


ALLOWED = [
    (UnitStatus.DEPLOYED, UnitStatus.ACTIVE),
    (UnitStatus.DEPLOYED, UnitStatus.DESTROYED),
    (UnitStatus.ACTIVE, UnitStatus.FLEEING),
    (UnitStatus.ACTIVE, UnitStatus.DESTROYED),
    (UnitStatus.FLEEING, UnitStatus.RALLIED),
    (UnitStatus.FLEEING, UnitStatus.DESTROYED),
    (UnitStatus.RALLIED, UnitStatus.ACTIVE),
    (UnitStatus.RALLIED, UnitStatus.DESTROYED),
]


@pytest.mark.parametrize(
    ("current", "requested"),
    [(current, requested) for current in UnitStatus for requested in UnitStatus],
)
def test_transition_table(current, requested):
    assert ops.can_transition(current, requested) == ((current, requested) in ALLOWED)


def test_destroyed_is_terminal():
    unit = _unit()
    state = _state(unit)
    ops.set_status(state, unit.id, UnitStatus.DESTROYED)

    for status in UnitStatus:
        with pytest.raises(IllegalStateTransition):
            ops.set_status(state, unit.id, status)
    assert unit.status == UnitStatus.DESTROYED


def test_illegal_transition_reports_both_states():
    unit = _unit()
    state = _state(unit)
    with pytest.raises(IllegalStateTransition) as excinfo:
        ops.set_status(state, unit.id, UnitStatus.FLEEING)
    assert excinfo.value.current == "deployed"
    assert excinfo.value.requested == "fleeing"


def test_destroyed_units_are_hidden_unless_requested():
    unit = _unit()
    unit.status = UnitStatus.DESTROYED
    state = _state(unit)

    with pytest.raises(InvalidTarget):
        ops.get_unit(state, unit.id)
    assert ops.get_unit(state, unit.id, include_destroyed=True) is unit
    assert ops.live_units(state) == []


def test_add_casualties_removes_whole_models_first():
    unit = _unit(models=5, wounds=3)
    state = _state(unit)

    assert ops.add_casualties(state, unit.id, 4) == 1
    assert unit.model_count == 4
    assert unit.wounds_remaining == 2
    assert unit.total_wounds == 11

    assert ops.add_casualties(state, unit.id, 2) == 1
    assert unit.model_count == 3
    assert unit.wounds_remaining == 3


def test_add_casualties_stops_at_zero_models():
    unit = _unit(models=3)
    state = _state(unit)

    assert ops.add_casualties(state, unit.id, 10) == 3
    assert unit.model_count == 0
    assert unit.wounds_remaining == 0
    assert unit.status == UnitStatus.DEPLOYED


def test_negative_casualties_are_rejected():
    unit = _unit()
    with pytest.raises(InvalidAction):
        ops.add_casualties(_state(unit), unit.id, -1)


def test_set_unit_position_carries_attached_characters():
    unit = _unit()
    state = _state(unit)
    hero = dm.Character(
        id=dm.CharacterID(1),
        name="Hero",
        player=PlayerSide.A,
        profile=unit.profile,
        unit_id=unit.id,
    )
    ops.add_character(state, hero)

    ops.set_unit_position(state, unit.id, dm.Position(5, 6), facing=90.0)

    assert unit.position == dm.Position(5, 6)
    assert unit.facing == 90.0
    assert hero.position == dm.Position(5, 6)


def test_add_character_requires_known_unit():
    state = _state()
    hero = dm.Character(
        id=dm.CharacterID(1),
        name="Hero",
        player=PlayerSide.A,
        profile=_unit().profile,
        unit_id=dm.UnitID(42),
    )
    with pytest.raises(InvalidAction):
        ops.add_character(state, hero)


def test_spell_effects_need_a_known_spell_and_target():
    unit = _unit()
    state = _state(unit)
    effect = dm.ActiveSpellEffect(
        id=dm.EffectID(4),
        spell_id=dm.SpellID("missing"),
        caster_id=dm.CharacterID(1),
        caster_player=PlayerSide.B,
        target_unit_id=unit.id,
        casting_total=8,
        duration=dm.DurationClass.ONE_SHOT,
        cast_round=1,
    )
    with pytest.raises(InvalidAction):
        ops.apply_spell_effect(state, effect)
    with pytest.raises(InvalidTarget):
        ops.remove_spell_effect(state, dm.EffectID(4))


def test_clock_only_moves_forward():
    state = _state(_unit())
    ops.advance_clock(state, 1, PlayerSide.A, Phase.STRATEGY)
    ops.advance_clock(state, 1, PlayerSide.A, Phase.SHOOTING)

    with pytest.raises(IllegalPhaseAction):
        ops.advance_clock(state, 1, PlayerSide.A, Phase.MOVEMENT)
    with pytest.raises(IllegalPhaseAction):
        ops.advance_clock(state, 1, PlayerSide.A, Phase.SHOOTING)

    ops.advance_clock(state, 1, PlayerSide.B, Phase.STRATEGY)
    assert ops.clock(state) == (1, 1, 0)


def test_game_never_returns_to_deployment():
    state = _state(_unit())
    with pytest.raises(IllegalPhaseAction):
        ops.advance_clock(state, 1, PlayerSide.A, Phase.DEPLOYMENT)
