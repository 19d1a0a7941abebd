"""State primitives.

Low-level inspection and mutation helpers over a :class:`GameState`.  Action
handlers use them on the proposed copy of the state; the persistence layer
uses them when assembling a game.  They never roll dice and never emit
milestones (see :mod:`warbook.domain.lifecycle` for that).
"""

from __future__ import annotations

from collections.abc import Mapping

from .enums import Phase, PlayerSide, UnitStatus
from .errors import IllegalPhaseAction, IllegalStateTransition, InvalidAction, InvalidTarget
from .models import (
    ActiveSpellEffect,
    Character,
    EffectID,
    GameState,
    Position,
    Unit,
    UnitID,
)

UNIT_TRANSITIONS: Mapping[UnitStatus, frozenset[UnitStatus]] = {
    UnitStatus.DEPLOYED: frozenset({UnitStatus.ACTIVE, UnitStatus.DESTROYED}),
    UnitStatus.ACTIVE: frozenset({UnitStatus.FLEEING, UnitStatus.DESTROYED}),
    UnitStatus.FLEEING: frozenset({UnitStatus.RALLIED, UnitStatus.DESTROYED}),
    UnitStatus.RALLIED: frozenset({UnitStatus.ACTIVE, UnitStatus.DESTROYED}),
    UnitStatus.DESTROYED: frozenset(),
}
"""Allowed unit status changes; Destroyed is terminal."""

PHASE_ORDER: tuple[Phase, ...] = (
    Phase.STRATEGY,
    Phase.MOVEMENT,
    Phase.SHOOTING,
    Phase.COMBAT,
)


def can_transition(current: UnitStatus, requested: UnitStatus) -> bool:
    return requested in UNIT_TRANSITIONS.get(current, frozenset())


def check_transition(unit: Unit, requested: UnitStatus) -> None:
    if not can_transition(unit.status, requested):
        raise IllegalStateTransition(f"unit {unit.id}", unit.status.value, requested.value)


# --- Units ----------------------------------------------------------------------


def get_unit(state: GameState, unit_id: UnitID, *, include_destroyed: bool = False) -> Unit:
    """Return a unit; destroyed units are only visible on request."""

    unit = state.units.get(unit_id)
    if unit is None or (unit.is_destroyed and not include_destroyed):
        raise InvalidTarget(f"unknown unit {unit_id}")
    return unit


def live_units(state: GameState, player: PlayerSide | None = None) -> list[Unit]:
    return [
        unit
        for unit in state.units.values()
        if not unit.is_destroyed and (player is None or unit.player == player)
    ]


def add_unit(state: GameState, unit: Unit) -> Unit:
    if unit.id in state.units:
        raise InvalidAction(f"unit {unit.id} already exists")
    state.units[unit.id] = unit
    return unit


def add_character(state: GameState, character: Character) -> Character:
    if character.id in state.characters:
        raise InvalidAction(f"character {character.id} already exists")
    if character.unit_id is not None and character.unit_id not in state.units:
        raise InvalidAction(f"character {character.id} joins unknown unit {character.unit_id}")
    state.characters[character.id] = character
    return character


def set_unit_position(
    state: GameState, unit_id: UnitID, position: Position, facing: float | None = None
) -> Unit:
    unit = get_unit(state, unit_id)
    unit.position = position
    if facing is not None:
        unit.facing = facing
    for character in state.characters.values():
        if character.unit_id == unit_id:
            character.position = position
    return unit


def set_status(state: GameState, unit_id: UnitID, status: UnitStatus) -> Unit:
    """Change a unit's status along the lifecycle table (no milestones)."""

    unit = state.units.get(unit_id)
    if unit is None:
        raise InvalidTarget(f"unknown unit {unit_id}")
    check_transition(unit, status)
    unit.status = status
    return unit


def add_casualties(state: GameState, unit_id: UnitID, wounds: int) -> int:
    """Apply ``wounds`` to a unit, front model first; return models removed.

    A unit reduced to zero models keeps its status; the case manager decides
    what that means.
    """

    if wounds < 0:
        raise InvalidAction("wounds must be non-negative")
    unit = get_unit(state, unit_id)
    removed = 0
    remaining = unit.wounds_remaining or unit.profile.wounds
    while wounds > 0 and unit.model_count > 0:
        if wounds >= remaining:
            wounds -= remaining
            unit.model_count -= 1
            removed += 1
            remaining = unit.profile.wounds
        else:
            remaining -= wounds
            wounds = 0
    unit.wounds_remaining = remaining if unit.model_count > 0 else 0
    return removed


def wound_character(state: GameState, character: Character, wounds: int) -> bool:
    """Apply wounds to a character; return True when it is slain."""

    current = character.wounds_remaining if character.wounds_remaining is not None else 0
    character.wounds_remaining = max(0, current - max(0, wounds))
    if character.wounds_remaining == 0:
        character.slain = True
    return character.slain


# --- Spell effects --------------------------------------------------------------


def apply_spell_effect(state: GameState, effect: ActiveSpellEffect) -> ActiveSpellEffect:
    if effect.id in state.active_effects:
        raise InvalidAction(f"effect {effect.id} already exists")
    if effect.spell_id not in state.spells:
        raise InvalidAction(f"unknown spell {effect.spell_id}")
    get_unit(state, effect.target_unit_id)
    state.active_effects[effect.id] = effect
    state.next_effect_id = max(state.next_effect_id, int(effect.id) + 1)
    return effect


def remove_spell_effect(state: GameState, effect_id: EffectID) -> ActiveSpellEffect:
    try:
        return state.active_effects.pop(effect_id)
    except KeyError:
        raise InvalidTarget(f"no active effect {effect_id}") from None


def new_effect_id(state: GameState) -> EffectID:
    effect_id = EffectID(state.next_effect_id)
    state.next_effect_id += 1
    return effect_id


# --- Clock ----------------------------------------------------------------------


def turn_index(state: GameState, player: PlayerSide) -> int:
    return 0 if player == state.first_player else 1


def clock(state: GameState) -> tuple[int, int, int]:
    """Position of the game in time; only ever increases."""

    if state.phase == Phase.DEPLOYMENT:
        return (state.round, -1, -1)
    return (state.round, turn_index(state, state.active_player), PHASE_ORDER.index(state.phase))


def advance_clock(state: GameState, round: int, player: PlayerSide, phase: Phase) -> None:
    """Move to ``(round, player, phase)``; moving backwards is refused."""

    if phase == Phase.DEPLOYMENT:
        raise IllegalPhaseAction("the game cannot return to deployment")
    target = (round, turn_index(state, player), PHASE_ORDER.index(phase))
    if target <= clock(state):
        raise IllegalPhaseAction(
            f"cannot move from round {state.round} {state.phase} to round {round} {phase}"
        )
    state.round = round
    state.active_player = player
    state.phase = phase
