"""Unit and combat case management.

Applies status transitions decided by the resolution engine and emits the
milestones other components react to.  No dice are rolled here.

Milestones are delivered synchronously: :func:`emit` calls every subscriber
of the milestone's type in subscription order, and a subscriber that emits a
milestone of its own has it delivered before ``emit`` returns (depth first),
so a whole cascade resolves inside the action that started it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from warbook.utils.geometry import move_away, on_board

from . import state as ops
from .enums import CombatStatus, MilestoneType, PendingKind, PlayerSide, UnitStatus
from .errors import InvalidAction
from .explain import traced
from .models import (
    Combat,
    CombatID,
    CombatRoundResult,
    EffectID,
    GameState,
    Position,
    Unit,
    UnitID,
)

if TYPE_CHECKING:
    from .resolution import RulesContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Milestone:
    """Lifecycle event."""

    type: MilestoneType
    unit_id: UnitID | None = None
    player: PlayerSide | None = None
    combat_id: CombatID | None = None
    effect_id: EffectID | None = None
    cause: str = ""


MilestoneHandler = Callable[[Milestone, "RulesContext"], None]


class MilestoneBus:
    """Ordered, synchronous subscriber registry."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[MilestoneType, MilestoneHandler]] = []

    def subscribe(self, kind: MilestoneType, handler: MilestoneHandler) -> None:
        self._subscribers.append((kind, handler))

    def subscribers(self, kind: MilestoneType) -> list[MilestoneHandler]:
        return [handler for subscribed, handler in self._subscribers if subscribed == kind]

    def deliver(self, milestone: Milestone, ctx: RulesContext) -> None:
        # snapshot: handlers subscribed during delivery wait for the next milestone
        for handler in self.subscribers(milestone.type):
            handler(milestone, ctx)


def _describe_milestone(_result, _ctx, milestone: Milestone, *_args, **_kwargs):
    subject = f" unit {milestone.unit_id}" if milestone.unit_id is not None else ""
    if milestone.combat_id is not None:
        subject += f" combat {milestone.combat_id}"
    if milestone.effect_id is not None:
        subject += f" effect {milestone.effect_id}"
    cause = f" ({milestone.cause})" if milestone.cause else ""
    yield f"milestone {milestone.type}{subject}{cause}", None, ()


@traced("milestone", _describe_milestone)
def emit(ctx: RulesContext, milestone: Milestone) -> None:
    logger.debug(
        "milestone %s unit=%s cause=%s", milestone.type, milestone.unit_id, milestone.cause
    )
    if ctx.bus is not None:
        ctx.bus.deliver(milestone, ctx)


# --- Units ----------------------------------------------------------------------

_STATUS_MILESTONES = {
    UnitStatus.FLEEING: MilestoneType.BROKEN,
    UnitStatus.RALLIED: MilestoneType.RALLIED,
    UnitStatus.DESTROYED: MilestoneType.DESTROYED,
}


def _describe_transition(result: Unit, _ctx, _unit_id, requested, *_args, **kwargs):
    cause = kwargs.get("cause", "")
    suffix = f" ({cause})" if cause else ""
    yield f"unit {result.id} -> {requested}{suffix}", None, ()


@traced("transition", _describe_transition)
def transition(
    ctx: RulesContext, unit_id: UnitID, requested: UnitStatus, *, cause: str = ""
) -> Unit:
    """Move a unit along the lifecycle table and emit the matching milestone.

    Illegal transitions raise :class:`IllegalStateTransition` and leave the
    unit unchanged.
    """

    unit = ops.set_status(ctx.state, unit_id, requested)
    if requested == UnitStatus.DESTROYED:
        _on_destroyed(ctx.state, unit)
    milestone = _STATUS_MILESTONES.get(requested)
    if milestone is not None:
        emit(ctx, Milestone(milestone, unit.id, unit.player, cause=cause))
    return unit


def _on_destroyed(state: GameState, unit: Unit) -> None:
    unit.model_count = 0
    unit.wounds_remaining = 0
    for character in state.characters.values():
        if character.unit_id == unit.id and not character.slain:
            character.slain = True
            character.wounds_remaining = 0
    state.pending_charges.pop(unit.id, None)
    for charger_id in [c for c, p in state.pending_charges.items() if p.target_id == unit.id]:
        del state.pending_charges[charger_id]
    state.pending_tests = [
        test
        for test in state.pending_tests
        if test.kind == PendingKind.COMBAT or test.subject_id != unit.id
    ]


def deploy(ctx: RulesContext, unit: Unit, position: Position, facing: float = 0.0) -> Unit:
    """Place a new unit on the table in the Deployed state."""

    if unit.status != UnitStatus.DEPLOYED:
        raise InvalidAction(f"unit {unit.id} must be deployed fresh, not {unit.status}")
    unit.position = position
    unit.facing = facing
    ops.add_unit(ctx.state, unit)
    emit(ctx, Milestone(MilestoneType.UNIT_DEPLOYED, unit.id, unit.player))
    return unit


def activate_deployed(ctx: RulesContext) -> list[UnitID]:
    """Deployed units become Active when the first round begins."""

    activated = []
    for unit in list(ctx.state.units.values()):
        if unit.status == UnitStatus.DEPLOYED:
            transition(ctx, unit.id, UnitStatus.ACTIVE, cause="battle begins")
            activated.append(unit.id)
    return activated


def apply_casualties(ctx: RulesContext, unit_id: UnitID, wounds: int, *, cause: str = "") -> int:
    """Remove models for ``wounds`` and destroy the unit if none are left."""

    removed = ops.add_casualties(ctx.state, unit_id, wounds)
    unit = ctx.state.units[unit_id]
    if unit.model_count == 0 and unit.status != UnitStatus.DESTROYED:
        transition(ctx, unit_id, UnitStatus.DESTROYED, cause=cause or "no models left")
    return removed


def flee(
    ctx: RulesContext, unit_id: UnitID, away_from: Position, inches: int, *, cause: str
) -> Unit:
    """Break a unit and move it ``inches`` away; off the board it is destroyed."""

    unit = ctx.state.units[unit_id]
    if unit.status != UnitStatus.FLEEING:
        transition(ctx, unit_id, UnitStatus.FLEEING, cause=cause)
    if unit.status == UnitStatus.DESTROYED:
        return unit
    destination = move_away(unit.position, away_from, inches)
    movement = ctx.rules.movement
    if not on_board(destination, movement.board_width, movement.board_depth):
        transition(ctx, unit_id, UnitStatus.DESTROYED, cause="fled off the battlefield")
        return unit
    ops.set_unit_position(ctx.state, unit_id, destination)
    return unit


# --- Combats --------------------------------------------------------------------


def combat_of(state: GameState, unit_id: UnitID) -> Combat | None:
    for combat in state.combats.values():
        if unit_id in combat.all_units():
            return combat
    return None


def engage(ctx: RulesContext, charger_id: UnitID, target_id: UnitID) -> Combat:
    """Bring a successful charger into combat with its target."""

    state = ctx.state
    charger = state.units[charger_id]
    target = state.units[target_id]
    combat = combat_of(state, target_id) or combat_of(state, charger_id)
    fresh = combat is None
    if combat is None:
        combat = Combat(
            id=CombatID(state.next_combat_id),
            engaged={PlayerSide.A: [], PlayerSide.B: []},
        )
        state.next_combat_id += 1
        state.combats[combat.id] = combat
    newcomers = []
    for unit in (charger, target):
        side = combat.engaged.setdefault(unit.player, [])
        if unit.id not in side:
            side.append(unit.id)
            newcomers.append(unit)
    if charger_id not in combat.chargers:
        combat.chargers.append(charger_id)
    combat.status = CombatStatus.ENGAGED
    charger.charged_this_turn = True

    if fresh:
        emit(ctx, Milestone(MilestoneType.FIRST_CHARGE, charger.id, charger.player, combat.id))
    for unit in newcomers:
        emit(ctx, Milestone(MilestoneType.ENGAGED_IN_COMBAT, unit.id, unit.player, combat.id))
    return combat


def record_round(ctx: RulesContext, combat: Combat, result: CombatRoundResult) -> Combat:
    """Close one round of a combat (Engaged -> Resolved for this round).

    The combat may already have been pruned from the state by a cascade during
    the round; its history is still recorded on the object.
    """

    combat.round = result.round
    combat.results.append(result)
    combat.status = CombatStatus.RESOLVED
    return combat


def prune_combat(ctx: RulesContext, combat_id: CombatID) -> Combat | None:
    """Drop units that left the fight; remove the combat once a side is empty."""

    state = ctx.state
    combat = state.combats.get(combat_id)
    if combat is None:
        return None
    for side in PlayerSide:
        combat.engaged[side] = [
            unit_id
            for unit_id in combat.engaged.get(side, [])
            if unit_id in state.units and state.units[unit_id].status == UnitStatus.ACTIVE
        ]
    if all(combat.engaged[side] for side in PlayerSide):
        return combat
    del state.combats[combat_id]
    state.pending_tests = [
        test
        for test in state.pending_tests
        if not (test.kind == PendingKind.COMBAT and test.subject_id == combat_id)
    ]
    emit(ctx, Milestone(MilestoneType.COMBAT_ENDED, combat_id=combat_id, cause="no opposition"))
    return None


def prune_all_combats(ctx: RulesContext) -> None:
    for combat_id in list(ctx.state.combats):
        prune_combat(ctx, combat_id)


def install(bus: MilestoneBus) -> None:
    """Keep combats consistent whenever a unit breaks or dies."""

    def _prune(milestone: Milestone, ctx: RulesContext) -> None:
        if milestone.unit_id is None:
            return
        combat = combat_of(ctx.state, milestone.unit_id)
        if combat is not None:
            prune_combat(ctx, combat.id)

    bus.subscribe(MilestoneType.BROKEN, _prune)
    bus.subscribe(MilestoneType.DESTROYED, _prune)
