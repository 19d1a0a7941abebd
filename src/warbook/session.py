"""Game session facade.

A :class:`GameSession` is what an orchestration layer (a UI, a bot, a test)
talks to.  It groups the four operation families: queries over the
committed state, actions through the sequencer, low-level state primitives,
and explanations of past outcomes.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from pathlib import Path

from warbook.config import Settings, configure_logging, get_settings, rules_from_settings
from warbook.domain import queries
from warbook.domain import state as ops
from warbook.domain.actions import ActionRequest, ActionResult
from warbook.domain.enums import ActionType, PlayerSide, UnitStatus
from warbook.domain.explain import ExplanationRecorder, Trace
from warbook.domain.models import (
    ActiveSpellEffect,
    CharacterID,
    Citation,
    EffectID,
    GameID,
    GameState,
    Position,
    SpecialRule,
    Spell,
    SpellID,
    TerrainFeature,
    Unit,
    UnitID,
)
from warbook.domain.modifiers import FactVector, TestContext
from warbook.domain.queries import ActionCheck
from warbook.domain.rules_config import RulesConfig
from warbook.domain.sequencer import GameEngine, ReplayEntry, replay
from warbook.domain.tables import TableRegistry
from warbook.repository import JsonGameRepository, dump_state, load_state
from warbook.utils.rng import DiceSource, SeededDice, generate_seed

logger = logging.getLogger(__name__)


def new_game(
    game_id: GameID,
    *,
    first_player: PlayerSide = PlayerSide.A,
    spells: Iterable[Spell] = (),
    terrain: Iterable[TerrainFeature] = (),
    army_rules: dict[PlayerSide, list[SpecialRule]] | None = None,
) -> GameState:
    """Empty game in the deployment phase with its catalog of spells and terrain."""

    return GameState(
        id=game_id,
        first_player=first_player,
        active_player=first_player,
        spells={spell.id: spell for spell in spells},
        terrain={feature.id: feature for feature in terrain},
        army_rules=dict(army_rules or {}),
    )


class GameSession:
    """Single entry point for one game."""

    def __init__(
        self,
        state: GameState,
        *,
        dice: DiceSource | None = None,
        tables: TableRegistry | None = None,
        rules: RulesConfig | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        configure_logging(self.settings)
        self.rules = rules if rules is not None else rules_from_settings(self.settings)
        if dice is None:
            seed = self.settings.dice_seed or generate_seed(
                int(state.id), state.round, state.phase.value, "session"
            )
            dice = SeededDice(seed)
        self.recorder = ExplanationRecorder(enabled=self.settings.trace_enabled)
        self.engine = GameEngine(
            state, dice=dice, tables=tables, rules=self.rules, recorder=self.recorder
        )

    @property
    def state(self) -> GameState:
        return self.engine.state

    @property
    def tables(self) -> TableRegistry:
        return self.engine.tables

    # --- Query ------------------------------------------------------------------

    def legal_actions(self, player: PlayerSide) -> list[ActionType]:
        return queries.legal_actions(self.state, player)

    def check_action(self, request: ActionRequest) -> ActionCheck:
        return queries.check_action(self.state, request, tables=self.tables, rules=self.rules)

    def available_targets(
        self,
        action: ActionType,
        actor_id: UnitID | CharacterID,
        *,
        spell_id: SpellID | None = None,
    ) -> list[UnitID]:
        return queries.available_targets(
            self.state, action, actor_id, spell_id=spell_id, rules=self.rules
        )

    def charge_range(self, unit_id: UnitID) -> tuple[int, int]:
        return queries.charge_range(self.state, unit_id, self.rules)

    def preview_modifiers(self, context: TestContext) -> FactVector:
        return queries.preview_modifiers(self.state, context, self.rules)

    # --- Action -----------------------------------------------------------------

    def perform(self, request: ActionRequest) -> ActionResult:
        return self.engine.perform(request)

    # --- State primitives -------------------------------------------------------

    def get_unit(self, unit_id: UnitID) -> Unit:
        """A copy of the unit as committed."""

        return copy.deepcopy(ops.get_unit(self.state, unit_id, include_destroyed=True))

    def set_unit_position(
        self, unit_id: UnitID, position: Position, facing: float | None = None
    ) -> None:
        self.engine.mutate(lambda state: ops.set_unit_position(state, unit_id, position, facing))

    def apply_spell_effect(self, effect: ActiveSpellEffect) -> None:
        self.engine.mutate(lambda state: ops.apply_spell_effect(state, copy.deepcopy(effect)))

    def remove_spell_effect(self, effect_id: EffectID) -> None:
        self.engine.mutate(lambda state: ops.remove_spell_effect(state, effect_id))

    def add_casualties(self, unit_id: UnitID, wounds: int) -> int:
        return self.engine.mutate(lambda state: ops.add_casualties(state, unit_id, wounds))

    def set_status(self, unit_id: UnitID, status: UnitStatus) -> None:
        self.engine.mutate(lambda state: ops.set_status(state, unit_id, status))

    # --- Explanation ------------------------------------------------------------

    def explain(self, outcome: ActionResult | str) -> list[Citation]:
        return self.recorder.explain(outcome)

    def trace(self, outcome: ActionResult | str) -> Trace:
        return self.recorder.trace(outcome)

    # --- Persistence ------------------------------------------------------------

    def dump_state(self) -> bytes:
        return dump_state(self.state)

    def load_state(self, data: bytes | str) -> GameState:
        """Replace the committed state with a snapshot."""

        state = load_state(data)
        self.engine.reset(state)
        logger.info("loaded game %s at round %s %s", state.id, state.round, state.phase)
        return state

    def save(self, repository: JsonGameRepository | None = None) -> Path:
        if repository is None:
            repository = JsonGameRepository(self.settings.data_dir)
        return repository.save(self.state)

    def history(self) -> list[ReplayEntry]:
        """Committed actions since the session started (or last load)."""

        return list(self.engine.log)

    def replay(self, initial: GameState, entries: Iterable[ReplayEntry]) -> GameEngine:
        """Re-run ``entries`` from ``initial`` with their recorded dice."""

        return replay(
            initial,
            entries,
            tables=self.tables,
            rules=self.rules,
            recorder=ExplanationRecorder(enabled=self.settings.trace_enabled),
        )
