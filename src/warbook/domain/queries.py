"""Read-only questions about a game state.

Queries never mutate the state they are given and never consume dice.
:func:`check_action` dry-runs the action handler on a throwaway copy with a
dice source that stops the handler at its first roll, so every validation a
handler performs before rolling is reported exactly as :meth:`perform`
would report it.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass

from .actions import ActionRequest
from .enums import ActionType, PlayerSide, UnitStatus
from .errors import InvalidAction, WarbookError
from .lifecycle import combat_of
from .magic import check_caster, check_spell_target
from .models import CharacterID, GameState, SpellID, UnitID
from .modifiers import FactVector, TestContext, resolve_modifiers
from .resolution import RulesContext, unit_charge_range
from .rules_config import DEFAULT_RULES, RulesConfig
from .sequencer import (
    DISPEL_ACTIONS,
    PHASE_ACTIONS,
    acting_player,
    check_phase,
    handler_for,
    new_bus,
)
from .standard_tables import standard_registry
from .tables import TableRegistry


class _ReachedDice(Exception):
    """Raised by the probe dice once a handler has passed its checks."""


class _ProbeDice:
    def roll(self, count: int, sides: int = 6) -> list[int]:
        raise _ReachedDice


@dataclass(frozen=True, slots=True)
class ActionCheck:
    """Whether an action would be accepted, and if not, why."""

    legal: bool
    reason_code: str | None = None
    detail: str | None = None


def legal_actions(state: GameState, player: PlayerSide) -> list[ActionType]:
    """Action types ``player`` may submit in the current phase."""

    if state.pending_cast is not None:
        candidates = DISPEL_ACTIONS
    else:
        candidates = PHASE_ACTIONS[state.phase]
    allowed = []
    for action in sorted(candidates):
        owner = acting_player(state, action)
        if owner is None or owner == player:
            allowed.append(action)
    return allowed


def check_action(
    state: GameState,
    request: ActionRequest,
    *,
    tables: TableRegistry | None = None,
    rules: RulesConfig = DEFAULT_RULES,
) -> ActionCheck:
    """Report whether ``request`` is legal right now, with the error code it would raise."""

    probe = copy.deepcopy(state)
    if tables is None:
        tables = standard_registry()
    ctx = RulesContext(probe, _ProbeDice(), tables, rules, new_bus())
    try:
        check_phase(probe, request)
        handler_for(request.action_type)(ctx, request)
    except _ReachedDice:
        return ActionCheck(True)
    except WarbookError as exc:
        return ActionCheck(False, exc.code, str(exc))
    return ActionCheck(True)


def available_targets(
    state: GameState,
    action: ActionType,
    actor_id: UnitID | CharacterID,
    *,
    spell_id: SpellID | None = None,
    rules: RulesConfig = DEFAULT_RULES,
) -> list[UnitID]:
    """Units the actor could legally target with ``action``.

    ``actor_id`` is a unit for shooting and charges and a character for
    spells (which also need ``spell_id``).
    """

    if action == ActionType.CAST_SPELL:
        return _spell_targets(state, CharacterID(actor_id), spell_id, rules)

    unit = state.units.get(UnitID(actor_id))
    if unit is None or unit.status != UnitStatus.ACTIVE:
        return []
    enemies = [
        enemy
        for enemy in state.units.values()
        if enemy.player != unit.player and not enemy.is_destroyed
    ]
    if action == ActionType.SHOOT:
        weapon = unit.ranged_weapon
        if weapon is None or not weapon.is_ranged:
            return []
        return [
            enemy.id
            for enemy in enemies
            if unit.position.distance_to(enemy.position) <= weapon.range
            and combat_of(state, enemy.id) is None
        ]
    if action == ActionType.DECLARE_CHARGE:
        _, longest = unit_charge_range(state, unit.id, rules, frozenset({"charging"}))
        return [
            enemy.id for enemy in enemies if unit.position.distance_to(enemy.position) <= longest
        ]
    raise InvalidAction(f"{action} does not take a target")


def _spell_targets(
    state: GameState, caster_id: CharacterID, spell_id: SpellID | None, rules: RulesConfig
) -> list[UnitID]:
    character = state.characters.get(caster_id)
    spell = state.spells.get(spell_id) if spell_id is not None else None
    if character is None or spell is None:
        return []
    ctx = RulesContext(state, _ProbeDice(), standard_registry(), rules)
    try:
        caster = check_caster(ctx, caster_id, character.player)
    except WarbookError:
        return []
    targets = []
    for unit in state.units.values():
        try:
            check_spell_target(ctx, caster, spell, unit.id)
        except WarbookError:
            continue
        targets.append(unit.id)
    return targets


def charge_range(
    state: GameState, unit_id: UnitID, rules: RulesConfig = DEFAULT_RULES
) -> tuple[int, int]:
    """Shortest and longest distance the unit could charge this turn."""

    return unit_charge_range(state, unit_id, rules, frozenset({"charging"}))


def preview_modifiers(
    state: GameState, context: TestContext, rules: RulesConfig = DEFAULT_RULES
) -> FactVector:
    """The fact vector a test would use, with applied and suppressed modifiers."""

    return resolve_modifiers(context, state, rules)
