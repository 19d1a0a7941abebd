"""Dataclasses describing every Warbook game entity.

The rules layer operates purely on these in-memory types.  Persistence and
user-facing layers translate to and from them (``pydantic.TypeAdapter`` is
enough to round-trip a whole :class:`GameState`, see
:mod:`warbook.repository`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import NewType

from .enums import (
    ChargeReaction,
    CombatStatus,
    DurationClass,
    EffectRole,
    ModifierOperation,
    PendingKind,
    Phase,
    PlayerSide,
    PrecedenceClass,
    RuleScope,
    SpellCategory,
    TerrainType,
    TestCategory,
    TroopType,
    UnitStatus,
)

# --- Strongly typed identifiers -------------------------------------------------

GameID = NewType("GameID", int)
UnitID = NewType("UnitID", int)
CharacterID = NewType("CharacterID", int)
SpellID = NewType("SpellID", str)
EffectID = NewType("EffectID", int)
CombatID = NewType("CombatID", int)
TerrainID = NewType("TerrainID", int)

NO_SAVE = 7
"""Save value meaning the model has no save of that kind."""


# --- Rules as data --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Citation:
    """Rule identifier plus the rulebook/FAQ reference it came from."""

    rule_id: str
    source: str

    def __str__(self) -> str:
        return f"{self.rule_id} [{self.source}]"


@dataclass(frozen=True, slots=True)
class Trigger:
    """Conditions under which a modifier contribution applies.

    Empty tuples mean "no restriction".  ``requires``/``forbids`` are matched
    against the situational flags of a test context (``charging``,
    ``long_range``, ``first_round`` ...).
    """

    categories: tuple[TestCategory, ...] = ()
    role: EffectRole = EffectRole.ACTOR
    requires: tuple[str, ...] = ()
    forbids: tuple[str, ...] = ()
    against: tuple[TroopType, ...] = ()


@dataclass(frozen=True, slots=True)
class ModifierEffect:
    """Structured contribution a special rule makes to one fact."""

    fact: str
    operation: ModifierOperation
    value: int | bool
    precedence: PrecedenceClass = PrecedenceClass.RULE
    trigger: Trigger = Trigger()
    exclusive_group: str | None = None


@dataclass(frozen=True, slots=True)
class SpecialRule:
    """Named rule carried by a unit, character, weapon, terrain piece or army."""

    id: str
    name: str
    scope: RuleScope
    effects: tuple[ModifierEffect, ...]
    citation: Citation
    description: str = ""


@dataclass(frozen=True, slots=True)
class Weapon:
    """Close-combat or missile weapon."""

    name: str
    range: int = 0
    strength: int | None = None
    strength_modifier: int = 0
    armour_penetration: int = 0
    shots: int = 1
    special_rules: tuple[SpecialRule, ...] = ()

    @property
    def is_ranged(self) -> bool:
        return self.range > 0

    def effective_strength(self, wielder_strength: int) -> int:
        base = self.strength if self.strength is not None else wielder_strength
        return base + self.strength_modifier


# --- Battlefield ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Position:
    """Point on the table, in inches."""

    x: float
    y: float

    def distance_to(self, other: Position) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(slots=True)
class TerrainFeature:
    """Axis-aligned terrain piece carrying special rules."""

    id: TerrainID
    name: str
    terrain_type: TerrainType
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    special_rules: list[SpecialRule] = field(default_factory=list)

    def contains(self, point: Position) -> bool:
        return self.min_x <= point.x <= self.max_x and self.min_y <= point.y <= self.max_y


# --- Forces ---------------------------------------------------------------------


@dataclass(slots=True)
class Profile:
    """Characteristic profile shared by units and characters."""

    movement: int
    weapon_skill: int
    ballistic_skill: int
    strength: int
    toughness: int
    wounds: int
    initiative: int
    attacks: int
    leadership: int


@dataclass(slots=True)
class Unit:
    """Rank-and-file unit on the table."""

    id: UnitID
    name: str
    player: PlayerSide
    troop_type: TroopType
    profile: Profile
    model_count: int
    files: int = 5
    position: Position = Position(0.0, 0.0)
    facing: float = 0.0
    status: UnitStatus = UnitStatus.DEPLOYED
    wounds_remaining: int | None = None
    armour_save: int = NO_SAVE
    ward_save: int = NO_SAVE
    weapon: Weapon | None = None
    ranged_weapon: Weapon | None = None
    special_rules: list[SpecialRule] = field(default_factory=list)
    has_standard: bool = False
    has_musician: bool = False
    charged_this_turn: bool = False
    moved_this_turn: bool = False
    shot_this_turn: bool = False
    panic_tested: bool = False

    def __post_init__(self) -> None:
        if self.wounds_remaining is None:
            self.wounds_remaining = self.profile.wounds if self.model_count > 0 else 0

    @property
    def full_ranks(self) -> int:
        if self.files <= 0:
            return 0
        return self.model_count // self.files

    @property
    def total_wounds(self) -> int:
        if self.model_count <= 0:
            return 0
        return (self.model_count - 1) * self.profile.wounds + (self.wounds_remaining or 0)

    @property
    def is_destroyed(self) -> bool:
        return self.status == UnitStatus.DESTROYED


@dataclass(slots=True)
class Character:
    """Individual hero or wizard, attached to at most one unit."""

    id: CharacterID
    name: str
    player: PlayerSide
    profile: Profile
    unit_id: UnitID | None = None
    position: Position | None = None
    weapon: Weapon | None = None
    magic_items: list[SpecialRule] = field(default_factory=list)
    special_rules: list[SpecialRule] = field(default_factory=list)
    spells: list[SpellID] = field(default_factory=list)
    wizard_level: int = 0
    armour_save: int = NO_SAVE
    ward_save: int = NO_SAVE
    wounds_remaining: int | None = None
    slain: bool = False

    def __post_init__(self) -> None:
        if self.wounds_remaining is None:
            self.wounds_remaining = self.profile.wounds

    @property
    def is_wizard(self) -> bool:
        return self.wizard_level > 0


# --- Magic ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Spell:
    """Spell definition (catalog entry)."""

    id: SpellID
    name: str
    lore: str
    casting_value: int
    category: SpellCategory
    duration: DurationClass
    citation: Citation
    range: int = 24
    effects: tuple[ModifierEffect, ...] = ()
    hits: int = 0
    strength: int = 0
    armour_penetration: int = 0
    duration_rounds: int | None = None
    targets_friends: bool = False


@dataclass(slots=True)
class ActiveSpellEffect:
    """A spell effect currently in play."""

    id: EffectID
    spell_id: SpellID
    caster_id: CharacterID
    caster_player: PlayerSide
    target_unit_id: UnitID
    casting_total: int
    duration: DurationClass
    cast_round: int
    remaining_rounds: int | None = None


@dataclass(slots=True)
class MagicPool:
    """Power and dispel dice available to one player."""

    power_dice: int = 0
    dispel_dice: int = 0


# --- Combat and pending interactions --------------------------------------------


@dataclass(slots=True)
class CombatRoundResult:
    """Scores and consequences of one round of a combat."""

    round: int
    scores: dict[PlayerSide, int]
    winner: PlayerSide | None
    broken_units: list[UnitID] = field(default_factory=list)


@dataclass(slots=True)
class Combat:
    """A melee between engaged units of both players."""

    id: CombatID
    engaged: dict[PlayerSide, list[UnitID]]
    status: CombatStatus = CombatStatus.ENGAGED
    round: int = 0
    chargers: list[UnitID] = field(default_factory=list)
    results: list[CombatRoundResult] = field(default_factory=list)

    def all_units(self) -> list[UnitID]:
        return [unit_id for side in PlayerSide for unit_id in self.engaged.get(side, [])]


@dataclass(slots=True)
class PendingCharge:
    """Charge declared but not yet rolled."""

    charger_id: UnitID
    target_id: UnitID
    distance: float
    reaction: ChargeReaction | None = None


@dataclass(slots=True)
class PendingCast:
    """Successfully cast spell awaiting the opponent's dispel decision."""

    caster_id: CharacterID
    spell_id: SpellID
    target_unit_id: UnitID
    player: PlayerSide
    casting_total: int
    irresistible: bool = False


@dataclass(slots=True)
class PendingTest:
    """Mandatory test or step that must be resolved before the phase ends."""

    kind: PendingKind
    subject_id: int
    player: PlayerSide


# --- Root aggregate -------------------------------------------------------------


@dataclass(slots=True)
class GameState:
    """Root aggregate representing one game session."""

    id: GameID
    round: int = 0
    phase: Phase = Phase.DEPLOYMENT
    active_player: PlayerSide = PlayerSide.A
    first_player: PlayerSide = PlayerSide.A
    units: dict[UnitID, Unit] = field(default_factory=dict)
    characters: dict[CharacterID, Character] = field(default_factory=dict)
    spells: dict[SpellID, Spell] = field(default_factory=dict)
    active_effects: dict[EffectID, ActiveSpellEffect] = field(default_factory=dict)
    terrain: dict[TerrainID, TerrainFeature] = field(default_factory=dict)
    combats: dict[CombatID, Combat] = field(default_factory=dict)
    army_rules: dict[PlayerSide, list[SpecialRule]] = field(default_factory=dict)
    magic: dict[PlayerSide, MagicPool] = field(default_factory=dict)
    pending_charges: dict[UnitID, PendingCharge] = field(default_factory=dict)
    pending_cast: PendingCast | None = None
    pending_tests: list[PendingTest] = field(default_factory=list)
    action_counter: int = 0
    next_effect_id: int = 1
    next_combat_id: int = 1
