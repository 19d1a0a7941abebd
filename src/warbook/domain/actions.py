"""Action requests and their handlers.

Handlers run against the *proposed* copy of the state held by the
sequencer's :class:`~warbook.domain.resolution.RulesContext`; an exception
from a handler discards that copy, so a handler never needs to undo its own
partial work.  Phase legality is checked by the sequencer before a handler
runs.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import ClassVar

from warbook.utils.geometry import facing_towards, move_towards, on_board

from . import magic
from . import state as ops
from .enums import (
    ActionType,
    ChargeReaction,
    CombatStatus,
    LeadershipTest,
    PendingKind,
    PlayerSide,
    TestCategory,
    UnitStatus,
)
from .errors import InvalidAction, InvalidTarget
from .lifecycle import (
    apply_casualties,
    combat_of,
    deploy,
    engage,
    flee,
    prune_combat,
    record_round,
    transition,
)
from .models import (
    Character,
    CharacterID,
    CombatID,
    CombatRoundResult,
    EffectID,
    GameState,
    PendingCharge,
    Position,
    SpellID,
    Unit,
    UnitID,
)
from .modifiers import TestContext, resolve_modifiers
from .resolution import (
    AttackResult,
    FleeRoll,
    RulesContext,
    break_test,
    is_steadfast,
    leadership_test,
    resolve_close_combat,
    resolve_shooting,
    roll_charge,
    roll_flee,
    score_combat,
    unit_charge_range,
    valid_target,
)

# --- Requests -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DeployUnit:
    action_type: ClassVar[ActionType] = ActionType.DEPLOY_UNIT
    player: PlayerSide
    unit: Unit
    position: Position
    facing: float = 0.0
    characters: tuple[Character, ...] = ()


@dataclass(frozen=True, slots=True)
class EndDeployment:
    action_type: ClassVar[ActionType] = ActionType.END_DEPLOYMENT
    player: PlayerSide


@dataclass(frozen=True, slots=True)
class AdvancePhase:
    action_type: ClassVar[ActionType] = ActionType.ADVANCE_PHASE
    player: PlayerSide


@dataclass(frozen=True, slots=True)
class MoveUnit:
    action_type: ClassVar[ActionType] = ActionType.MOVE_UNIT
    player: PlayerSide
    unit_id: UnitID
    position: Position
    facing: float | None = None
    march: bool = False


@dataclass(frozen=True, slots=True)
class DeclareCharge:
    action_type: ClassVar[ActionType] = ActionType.DECLARE_CHARGE
    player: PlayerSide
    unit_id: UnitID
    target_id: UnitID


@dataclass(frozen=True, slots=True)
class ReactToCharge:
    action_type: ClassVar[ActionType] = ActionType.CHARGE_REACTION
    player: PlayerSide
    charger_id: UnitID
    reaction: ChargeReaction


@dataclass(frozen=True, slots=True)
class WithdrawCharge:
    action_type: ClassVar[ActionType] = ActionType.WITHDRAW_CHARGE
    player: PlayerSide
    unit_id: UnitID


@dataclass(frozen=True, slots=True)
class ResolveCharge:
    action_type: ClassVar[ActionType] = ActionType.RESOLVE_CHARGE
    player: PlayerSide
    unit_id: UnitID


@dataclass(frozen=True, slots=True)
class Shoot:
    action_type: ClassVar[ActionType] = ActionType.SHOOT
    player: PlayerSide
    unit_id: UnitID
    target_id: UnitID


@dataclass(frozen=True, slots=True)
class FightCombat:
    action_type: ClassVar[ActionType] = ActionType.FIGHT_COMBAT
    player: PlayerSide
    combat_id: CombatID


@dataclass(frozen=True, slots=True)
class RallyUnit:
    action_type: ClassVar[ActionType] = ActionType.RALLY_UNIT
    player: PlayerSide
    unit_id: UnitID


@dataclass(frozen=True, slots=True)
class CastSpell:
    action_type: ClassVar[ActionType] = ActionType.CAST_SPELL
    player: PlayerSide
    caster_id: CharacterID
    spell_id: SpellID
    target_id: UnitID
    dice: int


@dataclass(frozen=True, slots=True)
class DispelCast:
    action_type: ClassVar[ActionType] = ActionType.DISPEL_CAST
    player: PlayerSide
    dice: int
    dispeller_id: CharacterID | None = None


@dataclass(frozen=True, slots=True)
class DeclineDispel:
    action_type: ClassVar[ActionType] = ActionType.DECLINE_DISPEL
    player: PlayerSide


@dataclass(frozen=True, slots=True)
class DispelEffect:
    action_type: ClassVar[ActionType] = ActionType.DISPEL_EFFECT
    player: PlayerSide
    effect_id: EffectID
    dice: int
    dispeller_id: CharacterID | None = None


ActionRequest = (
    DeployUnit
    | EndDeployment
    | AdvancePhase
    | MoveUnit
    | DeclareCharge
    | ReactToCharge
    | WithdrawCharge
    | ResolveCharge
    | Shoot
    | FightCombat
    | RallyUnit
    | CastSpell
    | DispelCast
    | DeclineDispel
    | DispelEffect
)


# --- Results --------------------------------------------------------------------


@dataclass(slots=True)
class ActionOutcome:
    """What an accepted action did."""

    action: ActionType
    summary: str
    events: list[dict[str, object]] = field(default_factory=list)
    results: tuple[object, ...] = ()


@dataclass(slots=True)
class ActionResult:
    """Answer to every action request.

    ``state`` is the engine's committed state itself, shared with every other
    reader and never copied.  Treat it as read-only; change the game through
    actions or the session's state primitives.
    """

    success: bool
    state: GameState
    outcome: ActionOutcome | None = None
    error_code: str | None = None
    detail: str | None = None
    outcome_id: str | None = None


ActionHandler = Callable[[RulesContext, ActionRequest], ActionOutcome]


# --- Helpers --------------------------------------------------------------------


def owned_unit(state: GameState, unit_id: UnitID, player: PlayerSide) -> Unit:
    unit = state.units.get(unit_id)
    if unit is None or unit.is_destroyed:
        raise InvalidAction(f"unknown unit {unit_id}")
    if unit.player != player:
        raise InvalidAction(f"unit {unit_id} belongs to {unit.player}")
    return unit


def _free_active_unit(state: GameState, unit_id: UnitID, player: PlayerSide) -> Unit:
    unit = owned_unit(state, unit_id, player)
    if unit.status != UnitStatus.ACTIVE:
        raise InvalidAction(f"unit {unit_id} is {unit.status}")
    if combat_of(state, unit_id) is not None:
        raise InvalidAction(f"unit {unit_id} is engaged in combat")
    return unit


def _nearest_enemy(state: GameState, unit: Unit) -> Unit | None:
    enemies = ops.live_units(state, unit.player.opponent())
    if not enemies:
        return None
    return min(enemies, key=lambda enemy: (unit.position.distance_to(enemy.position), enemy.id))


def _casualty_event(unit_id: UnitID, removed: int, state: GameState) -> dict[str, object]:
    unit = state.units[unit_id]
    return {
        "type": "casualties",
        "unit_id": int(unit_id),
        "models_removed": removed,
        "models_left": unit.model_count,
        "status": unit.status.value,
    }


def _resolve_panic_from_casualties(
    ctx: RulesContext, unit_id: UnitID, before: int, removed: int, source: Unit
) -> dict[str, object] | None:
    """A unit losing a quarter of its models in one go tests for panic."""

    unit = ctx.state.units[unit_id]
    if removed == 0 or removed * 4 < before:
        return None
    if unit.status != UnitStatus.ACTIVE or unit.panic_tested:
        return None
    unit.panic_tested = True
    result = leadership_test(ctx, unit_id, LeadershipTest.PANIC)
    if not result.passed:
        distance = roll_flee(ctx, unit_id).distance
        flee(ctx, unit_id, source.position, distance, cause="heavy casualties")
    return {
        "type": "panic_test",
        "unit_id": int(unit_id),
        "passed": result.passed,
        "status": unit.status.value,
    }


# --- Deployment and movement ----------------------------------------------------


def _handle_deploy(ctx: RulesContext, request: DeployUnit) -> ActionOutcome:
    # the request keeps its own copy so it can be replayed
    unit = copy.deepcopy(request.unit)
    if unit.player != request.player:
        raise InvalidAction(f"unit {unit.id} belongs to {unit.player}")
    movement = ctx.rules.movement
    if not on_board(request.position, movement.board_width, movement.board_depth):
        raise InvalidAction("units must be deployed on the battlefield")
    deploy(ctx, unit, request.position, request.facing)
    for character in copy.deepcopy(request.characters):
        if character.player != request.player:
            raise InvalidAction(f"character {character.id} belongs to {character.player}")
        ops.add_character(ctx.state, character)
        if character.unit_id == unit.id:
            character.position = request.position
    return ActionOutcome(
        ActionType.DEPLOY_UNIT,
        f"unit {unit.id} deployed",
        [{"type": "deployed", "unit_id": int(unit.id)}],
    )


def _handle_move(ctx: RulesContext, request: MoveUnit) -> ActionOutcome:
    unit = _free_active_unit(ctx.state, request.unit_id, request.player)
    if unit.moved_this_turn or unit.charged_this_turn:
        raise InvalidAction(f"unit {unit.id} has already moved this turn")
    if unit.id in ctx.state.pending_charges:
        raise InvalidAction(f"unit {unit.id} has declared a charge")
    vector = resolve_modifiers(
        TestContext(TestCategory.CHARGE_RANGE, actor_unit_id=unit.id), ctx.state, ctx.rules
    )
    allowance = vector.as_int("movement")
    if request.march:
        allowance *= ctx.rules.movement.march_multiplier
    distance = unit.position.distance_to(request.position)
    if distance > allowance:
        raise InvalidAction(f"unit {unit.id} can move {allowance}\", not {distance:.1f}\"")
    movement = ctx.rules.movement
    if not on_board(request.position, movement.board_width, movement.board_depth):
        raise InvalidAction("units cannot leave the battlefield voluntarily")
    ops.set_unit_position(ctx.state, unit.id, request.position, request.facing)
    unit.moved_this_turn = True
    return ActionOutcome(
        ActionType.MOVE_UNIT,
        f"unit {unit.id} moved {distance:.1f}\"",
        [{"type": "moved", "unit_id": int(unit.id), "distance": round(distance, 2)}],
    )


# --- Charges --------------------------------------------------------------------


def _handle_declare_charge(ctx: RulesContext, request: DeclareCharge) -> ActionOutcome:
    state = ctx.state
    charger = _free_active_unit(state, request.unit_id, request.player)
    if charger.moved_this_turn or charger.charged_this_turn:
        raise InvalidAction(f"unit {charger.id} has already moved this turn")
    if charger.id in state.pending_charges:
        raise InvalidAction(f"unit {charger.id} has already declared a charge")
    target = valid_target(state, request.target_id, charger.player)
    distance = charger.position.distance_to(target.position)
    shortest, longest = unit_charge_range(state, charger.id, ctx.rules, frozenset({"charging"}))
    if distance > longest:
        raise InvalidTarget(f"unit {target.id} is {distance:.1f}\" away, beyond {longest}\"")
    pending = PendingCharge(charger.id, target.id, distance)
    state.pending_charges[charger.id] = pending
    events: list[dict[str, object]] = [
        {
            "type": "charge_declared",
            "unit_id": int(charger.id),
            "target_id": int(target.id),
            "distance": round(distance, 2),
            "range": [shortest, longest],
            "reaction": None,
        }
    ]
    results: list[object] = []
    if target.status == UnitStatus.FLEEING:
        # fleeing units can only flee again
        pending.reaction = ChargeReaction.FLEE
        events[0]["reaction"] = ChargeReaction.FLEE.value
        roll, fled = _flee_from_charge(ctx, pending, target, charger)
        results.append(roll)
        events.append(fled)
    return ActionOutcome(
        ActionType.DECLARE_CHARGE,
        f"unit {charger.id} declares a charge on unit {target.id}",
        events,
        tuple(results),
    )


def _flee_from_charge(
    ctx: RulesContext, pending: PendingCharge, target: Unit, charger: Unit
) -> tuple[FleeRoll, dict[str, object]]:
    roll = roll_flee(ctx, target.id)
    flee(ctx, target.id, charger.position, roll.distance, cause="fled from a charge")
    if not target.is_destroyed:
        pending.distance = charger.position.distance_to(target.position)
    return roll, {"type": "fled", "unit_id": int(target.id), "distance": roll.distance}


def _handle_charge_reaction(ctx: RulesContext, request: ReactToCharge) -> ActionOutcome:
    state = ctx.state
    pending = state.pending_charges.get(request.charger_id)
    if pending is None:
        raise InvalidAction(f"unit {request.charger_id} has not declared a charge")
    target = owned_unit(state, pending.target_id, request.player)
    if pending.reaction is not None:
        raise InvalidAction(f"unit {target.id} has already reacted to this charge")
    charger = state.units[pending.charger_id]
    events: list[dict[str, object]] = []
    results: list[object] = []

    if request.reaction == ChargeReaction.FLEE:
        if combat_of(state, target.id) is not None:
            raise InvalidAction(f"unit {target.id} is engaged and cannot flee")
        roll, fled = _flee_from_charge(ctx, pending, target, charger)
        results.append(roll)
        events.append(fled)
    elif request.reaction == ChargeReaction.STAND_AND_SHOOT:
        weapon = target.ranged_weapon
        if weapon is None or target.status != UnitStatus.ACTIVE:
            raise InvalidAction(f"unit {target.id} cannot stand and shoot")
        if combat_of(state, target.id) is not None:
            raise InvalidAction(f"unit {target.id} is engaged and cannot shoot")
        before = charger.model_count
        attack = resolve_shooting(
            ctx, target.id, charger.id, flags=frozenset({"stand_and_shoot"})
        )
        removed = apply_casualties(ctx, charger.id, attack.unsaved, cause="stand and shoot")
        results.append(attack)
        events.append(_casualty_event(charger.id, removed, state))
        panic = _resolve_panic_from_casualties(ctx, charger.id, before, removed, target)
        if panic is not None:
            events.append(panic)
        if charger.status != UnitStatus.ACTIVE:
            state.pending_charges.pop(charger.id, None)
    else:
        events.append({"type": "hold", "unit_id": int(target.id)})

    if charger.id in state.pending_charges:
        state.pending_charges[charger.id].reaction = request.reaction
    return ActionOutcome(
        ActionType.CHARGE_REACTION,
        f"unit {target.id} reacts: {request.reaction}",
        events,
        tuple(results),
    )


def _handle_withdraw_charge(ctx: RulesContext, request: WithdrawCharge) -> ActionOutcome:
    owned_unit(ctx.state, request.unit_id, request.player)
    pending = ctx.state.pending_charges.pop(request.unit_id, None)
    if pending is None:
        raise InvalidAction(f"unit {request.unit_id} has no charge to withdraw")
    return ActionOutcome(
        ActionType.WITHDRAW_CHARGE,
        f"unit {request.unit_id} withdraws its charge",
        [{"type": "charge_withdrawn", "unit_id": int(request.unit_id)}],
    )


def _handle_resolve_charge(ctx: RulesContext, request: ResolveCharge) -> ActionOutcome:
    state = ctx.state
    charger = owned_unit(state, request.unit_id, request.player)
    pending = state.pending_charges.get(charger.id)
    if pending is None:
        raise InvalidAction(f"unit {charger.id} has not declared a charge")
    target = state.units.get(pending.target_id)
    if target is None or target.is_destroyed:
        del state.pending_charges[charger.id]
        raise InvalidTarget(f"unit {pending.target_id} is no longer on the table")
    if pending.reaction is None:
        raise InvalidAction(f"unit {target.id} has not reacted to the charge yet")

    fled = pending.reaction == ChargeReaction.FLEE
    roll = roll_charge(ctx, charger.id, target.id, pending.distance, target_fled=fled)
    del state.pending_charges[charger.id]
    charger.charged_this_turn = True
    charger.moved_this_turn = True
    events: list[dict[str, object]] = [
        {
            "type": "charge",
            "unit_id": int(charger.id),
            "target_id": int(target.id),
            "rolls": list(roll.rolls),
            "reach": roll.reach,
            "result": roll.result,
        }
    ]
    if roll.result == "charged":
        facing = facing_towards(charger.position, target.position)
        destination = move_towards(charger.position, target.position, roll.reach)
        ops.set_unit_position(state, charger.id, destination, facing)
        combat = engage(ctx, charger.id, target.id)
        events.append({"type": "engaged", "combat_id": int(combat.id)})
    elif roll.result == "caught":
        ops.set_unit_position(state, charger.id, target.position)
        transition(ctx, target.id, UnitStatus.DESTROYED, cause="caught while fleeing")
        events.append({"type": "destroyed", "unit_id": int(target.id)})
    else:
        # a failed charge still moves the charger its normal movement
        vector = resolve_modifiers(
            TestContext(TestCategory.CHARGE_RANGE, actor_unit_id=charger.id), state, ctx.rules
        )
        ops.set_unit_position(
            state,
            charger.id,
            move_towards(charger.position, target.position, vector.as_int("movement")),
        )
    return ActionOutcome(
        ActionType.RESOLVE_CHARGE,
        f"unit {charger.id} charge {roll.result}",
        events,
        (roll,),
    )


# --- Shooting -------------------------------------------------------------------


def _handle_shoot(ctx: RulesContext, request: Shoot) -> ActionOutcome:
    state = ctx.state
    shooter = _free_active_unit(state, request.unit_id, request.player)
    if shooter.charged_this_turn or shooter.shot_this_turn:
        raise InvalidAction(f"unit {shooter.id} cannot shoot this turn")
    target = valid_target(state, request.target_id, shooter.player)
    if combat_of(state, target.id) is not None:
        raise InvalidTarget(f"unit {target.id} is engaged in combat")
    before = target.model_count
    attack = resolve_shooting(ctx, shooter.id, target.id)
    shooter.shot_this_turn = True
    removed = apply_casualties(ctx, target.id, attack.unsaved, cause=f"shot by unit {shooter.id}")
    events = [_casualty_event(target.id, removed, state)]
    panic = _resolve_panic_from_casualties(ctx, target.id, before, removed, shooter)
    if panic is not None:
        events.append(panic)
    return ActionOutcome(
        ActionType.SHOOT,
        f"unit {shooter.id} shoots unit {target.id}: {removed} models removed",
        events,
        (attack,),
    )


# --- Close combat ---------------------------------------------------------------


def _attacks_for(ctx: RulesContext, unit: Unit, enemies: list[UnitID], first_round: bool):
    state = ctx.state
    defender_id = next(
        (enemy_id for enemy_id in enemies if not state.units[enemy_id].is_destroyed), None
    )
    if defender_id is None:
        return []
    flags = {"first_round"} if first_round else set()
    if first_round and unit.charged_this_turn:
        flags.add("charging")
    frozen = frozenset(flags)
    results = [resolve_close_combat(ctx, unit.id, defender_id, flags=frozen)]
    for character in state.characters.values():
        if character.unit_id == unit.id and not character.slain:
            results.append(
                resolve_close_combat(
                    ctx, unit.id, defender_id, character_id=character.id, flags=frozen
                )
            )
    return results


def _handle_fight_combat(ctx: RulesContext, request: FightCombat) -> ActionOutcome:
    state = ctx.state
    combat = state.combats.get(request.combat_id)
    if combat is None:
        raise InvalidAction(f"unknown combat {request.combat_id}")
    if combat.status != CombatStatus.ENGAGED or not any(
        test.kind == PendingKind.COMBAT and test.subject_id == combat.id
        for test in state.pending_tests
    ):
        raise InvalidAction(f"combat {combat.id} has already been fought this phase")

    first_round = not combat.results
    attacks: list[AttackResult] = []
    engaged = {side: list(combat.engaged.get(side, [])) for side in PlayerSide}
    for side in PlayerSide:
        for unit_id in engaged[side]:
            unit = state.units[unit_id]
            if unit.status == UnitStatus.ACTIVE:
                attacks.extend(_attacks_for(ctx, unit, engaged[side.opponent()], first_round))

    # blows are simultaneous: casualties land after every attack is rolled
    events: list[dict[str, object]] = []
    wounds_caused = {side: 0 for side in PlayerSide}
    for attack in attacks:
        side = state.units[attack.attacker_id].player
        wounds_caused[side] += attack.unsaved
    for defender_id in dict.fromkeys(attack.defender_id for attack in attacks):
        unsaved = sum(a.unsaved for a in attacks if a.defender_id == defender_id)
        if unsaved and not state.units[defender_id].is_destroyed:
            removed = apply_casualties(ctx, defender_id, unsaved, cause=f"combat {combat.id}")
            events.append(_casualty_event(defender_id, removed, state))

    result = score_combat(ctx, combat, wounds_caused, first_round=first_round)
    broken: list[UnitID] = []
    loser = result.winner.opponent() if result.winner is not None else None
    if loser is not None:
        for unit_id in engaged[loser]:
            unit = state.units[unit_id]
            if unit.status != UnitStatus.ACTIVE:
                continue
            test = break_test(
                ctx, unit_id, result.difference, steadfast=is_steadfast(state, combat, unit)
            )
            events.append(
                {"type": "break_test", "unit_id": int(unit_id), "passed": test.passed}
            )
            if not test.passed:
                broken.append(unit_id)
                threat = _nearest_enemy(state, unit)
                away = threat.position if threat is not None else unit.position
                flee(ctx, unit_id, away, roll_flee(ctx, unit_id).distance, cause="broken in combat")

    round_result = CombatRoundResult(
        round=combat.round + 1,
        scores={side: score.total for side, score in result.scores.items()},
        winner=result.winner,
        broken_units=broken,
    )
    record_round(ctx, combat, round_result)
    state.pending_tests = [
        test
        for test in state.pending_tests
        if not (test.kind == PendingKind.COMBAT and test.subject_id == combat.id)
    ]
    prune_combat(ctx, combat.id)
    events.append(
        {
            "type": "combat_result",
            "combat_id": int(combat.id),
            "scores": {side.value: score.total for side, score in result.scores.items()},
            "winner": result.winner.value if result.winner is not None else None,
        }
    )
    return ActionOutcome(
        ActionType.FIGHT_COMBAT,
        f"combat {combat.id} round {round_result.round}: winner {result.winner or 'none'}",
        events,
        (*attacks, result),
    )


# --- Psychology -----------------------------------------------------------------


def _handle_rally(ctx: RulesContext, request: RallyUnit) -> ActionOutcome:
    state = ctx.state
    unit = owned_unit(state, request.unit_id, request.player)
    if unit.status != UnitStatus.FLEEING:
        raise InvalidAction(f"unit {unit.id} is not fleeing")
    pending = [
        test
        for test in state.pending_tests
        if test.kind == PendingKind.RALLY and test.subject_id == unit.id
    ]
    if not pending:
        raise InvalidAction(f"unit {unit.id} has already tested to rally")
    state.pending_tests = [test for test in state.pending_tests if test not in pending]
    result = leadership_test(ctx, unit.id, LeadershipTest.RALLY)
    events: list[dict[str, object]] = [
        {"type": "rally_test", "unit_id": int(unit.id), "passed": result.passed}
    ]
    if result.passed:
        transition(ctx, unit.id, UnitStatus.RALLIED, cause="rally test passed")
    else:
        threat = _nearest_enemy(state, unit)
        away = threat.position if threat is not None else unit.position
        flee(ctx, unit.id, away, roll_flee(ctx, unit.id).distance, cause="failed to rally")
    events[0]["status"] = unit.status.value
    return ActionOutcome(
        ActionType.RALLY_UNIT,
        f"unit {unit.id} {'rallies' if result.passed else 'keeps fleeing'}",
        events,
        (result,),
    )


# --- Magic ----------------------------------------------------------------------


def _handle_cast(ctx: RulesContext, request: CastSpell) -> ActionOutcome:
    result = magic.cast_spell(
        ctx, request.player, request.caster_id, request.spell_id, request.target_id, request.dice
    )
    event: dict[str, object] = {
        "type": "cast",
        "spell_id": str(result.spell_id),
        "rolls": list(result.rolls),
        "total": result.total,
        "result": result.result,
    }
    if result.miscast is not None:
        event["miscast"] = result.miscast.effect
    return ActionOutcome(
        ActionType.CAST_SPELL, f"{result.spell_id}: {result.result}", [event], (result,)
    )


def _spell_event(resolution: magic.SpellResolution) -> dict[str, object]:
    return {
        "type": "spell_resolved",
        "spell_id": str(resolution.spell_id),
        "effect_id": int(resolution.effect_id) if resolution.effect_id is not None else None,
        "models_removed": resolution.models_removed,
    }


def _handle_dispel_cast(ctx: RulesContext, request: DispelCast) -> ActionOutcome:
    result, resolution = magic.dispel_cast(
        ctx, request.player, request.dice, request.dispeller_id
    )
    events: list[dict[str, object]] = [
        {
            "type": "dispel",
            "spell_id": str(result.spell_id),
            "rolls": list(result.rolls),
            "total": result.total,
            "result": result.result,
        }
    ]
    results: tuple[object, ...] = (result,)
    if resolution is not None:
        events.append(_spell_event(resolution))
        results = (result, resolution)
    return ActionOutcome(
        ActionType.DISPEL_CAST, f"dispel {result.result}", events, results
    )


def _handle_decline_dispel(ctx: RulesContext, request: DeclineDispel) -> ActionOutcome:
    resolution = magic.decline_dispel(ctx, request.player)
    return ActionOutcome(
        ActionType.DECLINE_DISPEL,
        f"{resolution.spell_id} resolves undispelled",
        [_spell_event(resolution)],
        (resolution,),
    )


def _handle_dispel_effect(ctx: RulesContext, request: DispelEffect) -> ActionOutcome:
    result = magic.dispel_effect(
        ctx, request.player, request.effect_id, request.dice, request.dispeller_id
    )
    return ActionOutcome(
        ActionType.DISPEL_EFFECT,
        f"dispel of effect {request.effect_id}: {result.result}",
        [
            {
                "type": "dispel_effect",
                "effect_id": int(request.effect_id),
                "rolls": list(result.rolls),
                "result": result.result,
            }
        ],
        (result,),
    )


ACTION_HANDLERS: dict[ActionType, ActionHandler] = {
    ActionType.DEPLOY_UNIT: _handle_deploy,
    ActionType.MOVE_UNIT: _handle_move,
    ActionType.DECLARE_CHARGE: _handle_declare_charge,
    ActionType.CHARGE_REACTION: _handle_charge_reaction,
    ActionType.WITHDRAW_CHARGE: _handle_withdraw_charge,
    ActionType.RESOLVE_CHARGE: _handle_resolve_charge,
    ActionType.SHOOT: _handle_shoot,
    ActionType.FIGHT_COMBAT: _handle_fight_combat,
    ActionType.RALLY_UNIT: _handle_rally,
    ActionType.CAST_SPELL: _handle_cast,
    ActionType.DISPEL_CAST: _handle_dispel_cast,
    ActionType.DECLINE_DISPEL: _handle_decline_dispel,
    ActionType.DISPEL_EFFECT: _handle_dispel_effect,
}
