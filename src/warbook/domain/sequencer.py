"""Phase/turn sequencer.

The :class:`GameEngine` is the only place that commits state.  Every action
runs on a deep copy of the committed :class:`GameState`; when the handler
returns, the copy replaces the committed state, and when it raises, the copy
is dropped and the error becomes a failed :class:`ActionResult`.  Readers
therefore only ever see whole actions.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TypeVar

from warbook.utils.rng import DiceSource, RecordingDice, ScriptedDice

from . import lifecycle, magic, psychology
from . import state as ops
from .actions import (
    ACTION_HANDLERS,
    ActionHandler,
    ActionOutcome,
    ActionRequest,
    ActionResult,
)
from .enums import ActionType, CombatStatus, PendingKind, Phase, PlayerSide, UnitStatus
from .errors import IllegalPhaseAction, InvalidAction, MandatoryTestsOutstanding, WarbookError
from .explain import ExplanationRecorder
from .lifecycle import MilestoneBus, activate_deployed, transition
from .models import GameState, PendingTest
from .resolution import RulesContext
from .rules_config import DEFAULT_RULES, RulesConfig
from .standard_tables import standard_registry
from .tables import TableRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

PHASE_ACTIONS: Mapping[Phase, frozenset[ActionType]] = {
    Phase.DEPLOYMENT: frozenset({ActionType.DEPLOY_UNIT, ActionType.END_DEPLOYMENT}),
    Phase.STRATEGY: frozenset(
        {
            ActionType.RALLY_UNIT,
            ActionType.CAST_SPELL,
            ActionType.DISPEL_EFFECT,
            ActionType.ADVANCE_PHASE,
        }
    ),
    Phase.MOVEMENT: frozenset(
        {
            ActionType.MOVE_UNIT,
            ActionType.DECLARE_CHARGE,
            ActionType.CHARGE_REACTION,
            ActionType.WITHDRAW_CHARGE,
            ActionType.RESOLVE_CHARGE,
            ActionType.ADVANCE_PHASE,
        }
    ),
    Phase.SHOOTING: frozenset(
        {ActionType.SHOOT, ActionType.CAST_SPELL, ActionType.ADVANCE_PHASE}
    ),
    Phase.COMBAT: frozenset({ActionType.FIGHT_COMBAT, ActionType.ADVANCE_PHASE}),
}
"""Action types each phase accepts while no cast awaits a dispel decision."""

DISPEL_ACTIONS = frozenset({ActionType.DISPEL_CAST, ActionType.DECLINE_DISPEL})


# --- Legality -------------------------------------------------------------------


def acting_player(state: GameState, action: ActionType) -> PlayerSide | None:
    """Player entitled to submit ``action`` right now (``None``: either player)."""

    if action in DISPEL_ACTIONS:
        return state.pending_cast.player.opponent() if state.pending_cast else None
    if state.phase == Phase.DEPLOYMENT:
        return None
    if action == ActionType.CHARGE_REACTION:
        return state.active_player.opponent()
    return state.active_player


def check_phase(state: GameState, request: ActionRequest) -> None:
    """Raise :class:`IllegalPhaseAction` unless the request fits the phase and player."""

    action = request.action_type
    if state.pending_cast is not None:
        if action not in DISPEL_ACTIONS:
            raise IllegalPhaseAction(
                f"{state.pending_cast.spell_id} awaits a dispel decision; {action} must wait"
            )
    elif action in DISPEL_ACTIONS:
        raise IllegalPhaseAction("there is no spell awaiting a dispel decision")
    elif action not in PHASE_ACTIONS[state.phase]:
        raise IllegalPhaseAction(f"{action} is not allowed in the {state.phase} phase")
    player = acting_player(state, action)
    if player is not None and request.player != player:
        raise IllegalPhaseAction(f"{action} belongs to player {player}, not {request.player}")


def outstanding_steps(state: GameState) -> list[str]:
    """Mandatory steps blocking phase advancement for the active player."""

    steps = []
    if state.pending_cast is not None:
        steps.append(f"dispel decision on {state.pending_cast.spell_id}")
    for charger_id in state.pending_charges:
        steps.append(f"charge by unit {charger_id}")
    for test in state.pending_tests:
        if test.player == state.active_player:
            subject = "combat" if test.kind == PendingKind.COMBAT else "unit"
            steps.append(f"{test.kind} ({subject} {test.subject_id})")
    return steps


# --- Phase bookkeeping ----------------------------------------------------------


def _enter_round(ctx: RulesContext) -> None:
    magic.start_of_round(ctx)


def _enter_phase(ctx: RulesContext) -> None:
    state = ctx.state
    for unit in state.units.values():
        unit.panic_tested = False
    if state.phase == Phase.STRATEGY:
        magic.roll_winds(ctx, state.active_player)
        for unit in ops.live_units(state, state.active_player):
            if unit.status == UnitStatus.FLEEING:
                state.pending_tests.append(
                    PendingTest(PendingKind.RALLY, int(unit.id), state.active_player)
                )
    elif state.phase == Phase.COMBAT:
        lifecycle.prune_all_combats(ctx)
        for combat in state.combats.values():
            combat.status = CombatStatus.ENGAGED
            state.pending_tests.append(
                PendingTest(PendingKind.COMBAT, int(combat.id), state.active_player)
            )
    logger.debug("round %s: player %s enters %s", state.round, state.active_player, state.phase)


def _end_turn(ctx: RulesContext) -> None:
    state = ctx.state
    player = state.active_player
    magic.end_of_turn(ctx, player)
    for unit in list(state.units.values()):
        if unit.player == player and unit.status == UnitStatus.RALLIED:
            transition(ctx, unit.id, UnitStatus.ACTIVE, cause="rallied last turn")
        unit.moved_this_turn = False
        unit.charged_this_turn = False
        unit.shot_this_turn = False
    for side in PlayerSide:
        pool = magic.pool(ctx, side)
        pool.power_dice = 0
        pool.dispel_dice = 0


def _handle_advance(ctx: RulesContext, request: ActionRequest) -> ActionOutcome:
    state = ctx.state
    steps = outstanding_steps(state)
    if steps:
        raise MandatoryTestsOutstanding("outstanding: " + ", ".join(steps))
    leaving = (state.round, state.active_player, state.phase)
    index = ops.PHASE_ORDER.index(state.phase)
    if index + 1 < len(ops.PHASE_ORDER):
        ops.advance_clock(state, state.round, state.active_player, ops.PHASE_ORDER[index + 1])
        _enter_phase(ctx)
    else:
        _end_turn(ctx)
        if state.active_player == state.first_player:
            ops.advance_clock(state, state.round, state.active_player.opponent(), Phase.STRATEGY)
        else:
            ops.advance_clock(state, state.round + 1, state.first_player, Phase.STRATEGY)
            _enter_round(ctx)
        _enter_phase(ctx)
    return ActionOutcome(
        ActionType.ADVANCE_PHASE,
        f"round {state.round}: player {state.active_player} {state.phase}",
        [
            {
                "type": "phase",
                "from": [leaving[0], leaving[1].value, leaving[2].value],
                "to": [state.round, state.active_player.value, state.phase.value],
            }
        ],
    )


def _handle_end_deployment(ctx: RulesContext, request: ActionRequest) -> ActionOutcome:
    state = ctx.state
    for side in PlayerSide:
        if not ops.live_units(state, side):
            raise InvalidAction(f"player {side} has not deployed any units")
    activated = activate_deployed(ctx)
    ops.advance_clock(state, 1, state.first_player, Phase.STRATEGY)
    _enter_round(ctx)
    _enter_phase(ctx)
    return ActionOutcome(
        ActionType.END_DEPLOYMENT,
        f"battle begins with {len(activated)} units",
        [{"type": "battle_begins", "first_player": state.first_player.value}],
    )


_SEQUENCER_HANDLERS: dict[ActionType, ActionHandler] = {
    ActionType.ADVANCE_PHASE: _handle_advance,
    ActionType.END_DEPLOYMENT: _handle_end_deployment,
}


def handler_for(action: ActionType) -> ActionHandler:
    handler = _SEQUENCER_HANDLERS.get(action) or ACTION_HANDLERS.get(action)
    if handler is None:
        raise InvalidAction(f"unsupported action {action}")
    return handler


# --- Engine ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReplayEntry:
    """A committed action and the dice it consumed."""

    outcome_id: str
    request: ActionRequest
    draws: tuple[int, ...]


def new_bus() -> MilestoneBus:
    """Bus with the standard subscribers: combat pruning, panic, effect checks."""

    bus = MilestoneBus()
    lifecycle.install(bus)
    psychology.install(bus)
    magic.install(bus)
    return bus


class GameEngine:
    """Owns the committed game state and serialises every change to it."""

    def __init__(
        self,
        state: GameState,
        *,
        dice: DiceSource,
        tables: TableRegistry | None = None,
        rules: RulesConfig = DEFAULT_RULES,
        recorder: ExplanationRecorder | None = None,
        bus: MilestoneBus | None = None,
    ) -> None:
        self._state = state
        self._lock = threading.RLock()
        self.dice = RecordingDice(dice)
        self.tables = tables if tables is not None else standard_registry()
        self.rules = rules
        self.recorder = recorder if recorder is not None else ExplanationRecorder()
        self.bus = bus if bus is not None else new_bus()
        self.log: list[ReplayEntry] = []
        self._rejections = 0

    @property
    def state(self) -> GameState:
        """The committed state.

        The engine never modifies it in place; each change replaces it.  The
        object is shared with callers, who must not mutate it either.
        """

        return self._state

    def context(self, state: GameState | None = None) -> RulesContext:
        if state is None:
            state = self._state
        return RulesContext(state, self.dice, self.tables, self.rules, self.bus)

    def perform(self, request: ActionRequest) -> ActionResult:
        """Validate and apply one action; errors leave the committed state untouched."""

        with self._lock:
            committed = self._state
            outcome_id = f"{committed.id}:{committed.action_counter + 1}"
            proposed = copy.deepcopy(committed)
            ctx = self.context(proposed)
            mark = self.dice.mark()
            try:
                with self.recorder.recording(outcome_id):
                    check_phase(proposed, request)
                    outcome = handler_for(request.action_type)(ctx, request)
            except WarbookError as exc:
                self._rejections += 1
                rejected_id = f"{outcome_id}-rejected-{self._rejections}"
                self.recorder.relabel(outcome_id, rejected_id)
                logger.info("rejected %s (%s): %s", request.action_type, exc.code, exc)
                return ActionResult(
                    success=False,
                    state=committed,
                    error_code=exc.code,
                    detail=str(exc),
                    outcome_id=rejected_id,
                )
            proposed.action_counter += 1
            self._state = proposed
            self.log.append(ReplayEntry(outcome_id, request, tuple(self.dice.since(mark))))
            logger.info("committed %s: %s", outcome_id, outcome.summary)
            return ActionResult(True, proposed, outcome, outcome_id=outcome_id)

    def mutate(self, change: Callable[[GameState], T]) -> T:
        """Apply a state primitive copy-on-write, outside the action flow."""

        with self._lock:
            proposed = copy.deepcopy(self._state)
            result = change(proposed)
            self._state = proposed
            return result

    def reset(self, state: GameState) -> None:
        """Replace the committed state (loading a snapshot)."""

        with self._lock:
            self._state = state
            self.log = []


def replay(
    initial: GameState,
    entries: Iterable[ReplayEntry],
    *,
    tables: TableRegistry | None = None,
    rules: RulesConfig = DEFAULT_RULES,
    recorder: ExplanationRecorder | None = None,
) -> GameEngine:
    """Re-run committed actions against ``initial`` using their recorded dice."""

    entries = list(entries)
    dice = ScriptedDice(value for entry in entries for value in entry.draws)
    engine = GameEngine(
        copy.deepcopy(initial), dice=dice, tables=tables, rules=rules, recorder=recorder
    )
    for entry in entries:
        result = engine.perform(entry.request)
        if not result.success or result.outcome_id != entry.outcome_id:
            raise InvalidAction(
                f"replay diverged at {entry.outcome_id}: {result.error_code} {result.detail}"
            )
    return engine
