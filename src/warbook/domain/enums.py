"""Enumerations used across the Warbook rules layer."""

from __future__ import annotations

from enum import StrEnum


class PlayerSide(StrEnum):
    """The two sides of a game."""

    A = "A"
    B = "B"

    def opponent(self) -> PlayerSide:
        return PlayerSide.B if self is PlayerSide.A else PlayerSide.A


class Phase(StrEnum):
    """Phases of a player turn (deployment precedes round one)."""

    DEPLOYMENT = "deployment"
    STRATEGY = "strategy"
    MOVEMENT = "movement"
    SHOOTING = "shooting"
    COMBAT = "combat"


class UnitStatus(StrEnum):
    """Lifecycle states of a unit."""

    DEPLOYED = "deployed"
    ACTIVE = "active"
    FLEEING = "fleeing"
    RALLIED = "rallied"
    DESTROYED = "destroyed"


class TroopType(StrEnum):
    """Troop type categories."""

    INFANTRY = "infantry"
    CAVALRY = "cavalry"
    MONSTER = "monster"
    CHARIOT = "chariot"
    WAR_MACHINE = "war_machine"
    SWARM = "swarm"


class TerrainType(StrEnum):
    """Terrain feature classifications."""

    OPEN = "open"
    FOREST = "forest"
    HILL = "hill"
    BUILDING = "building"
    OBSTACLE = "obstacle"
    WATER = "water"


class HitPolicy(StrEnum):
    """How a decision table resolves several matching rows."""

    UNIQUE = "unique"
    FIRST = "first"
    PRIORITY = "priority"


class FactKind(StrEnum):
    """Value kinds accepted by a decision table input field."""

    INT = "int"
    BOOL = "bool"
    ENUM = "enum"


class TestCategory(StrEnum):
    """Kinds of pending test a modifier context can describe."""

    __test__ = False

    TO_HIT = "to_hit"
    RANGED_TO_HIT = "ranged_to_hit"
    TO_WOUND = "to_wound"
    ARMOUR_SAVE = "armour_save"
    CHARGE_RANGE = "charge_range"
    PSYCHOLOGY = "psychology"
    CASTING = "casting"
    DISPEL = "dispel"
    COMBAT_RESULT = "combat_result"


class RuleScope(StrEnum):
    """Where a special rule is carried."""

    CHARACTER = "character"
    WEAPON = "weapon"
    UNIT = "unit"
    SPELL = "spell"
    TERRAIN = "terrain"
    GLOBAL = "global"


class EffectRole(StrEnum):
    """Which side of a test the owner of a rule must be on for it to apply."""

    ACTOR = "actor"
    TARGET = "target"
    ANY = "any"


class ModifierOperation(StrEnum):
    """How a modifier contributes to a fact."""

    ADD = "add"
    SET = "set"
    MINIMUM = "minimum"
    MAXIMUM = "maximum"


class PrecedenceClass(StrEnum):
    """Application stage of a modifier; stages apply in policy order."""

    CHARACTERISTIC = "characteristic"
    EQUIPMENT = "equipment"
    RULE = "rule"
    SITUATIONAL = "situational"
    ERRATA = "errata"


class Orientation(StrEnum):
    """Direction in which a fact favours the acting side."""

    HIGHER = "higher"
    LOWER = "lower"


class SpellCategory(StrEnum):
    """Broad spell categories."""

    DIRECT_DAMAGE = "direct_damage"
    AUGMENT = "augment"
    HEX = "hex"


class DurationClass(StrEnum):
    """How long a spell effect lasts."""

    ONE_SHOT = "one_shot"
    REMAINS_IN_PLAY = "remains_in_play"


class MilestoneType(StrEnum):
    """Lifecycle events emitted by the case manager."""

    UNIT_DEPLOYED = "UnitDeployed"
    FIRST_CHARGE = "FirstCharge"
    ENGAGED_IN_COMBAT = "EngagedInCombat"
    BROKEN = "Broken"
    RALLIED = "Rallied"
    DESTROYED = "Destroyed"
    EFFECT_EXPIRED = "EffectExpired"
    COMBAT_ENDED = "CombatEnded"


class CombatStatus(StrEnum):
    """Per-round lifecycle of a combat."""

    ENGAGED = "engaged"
    RESOLVED = "resolved"


class ChargeReaction(StrEnum):
    """Responses available to the target of a charge."""

    HOLD = "hold"
    FLEE = "flee"
    STAND_AND_SHOOT = "stand_and_shoot"


class LeadershipTest(StrEnum):
    """Reasons a unit takes a leadership test."""

    BREAK = "break"
    PANIC = "panic"
    RALLY = "rally"


class PendingKind(StrEnum):
    """Mandatory steps that gate phase advancement."""

    RALLY = "rally"
    COMBAT = "combat"
    CHARGE = "charge"
    DISPEL = "dispel"


class ActionType(StrEnum):
    """Action requests understood by the sequencer."""

    DEPLOY_UNIT = "deploy_unit"
    END_DEPLOYMENT = "end_deployment"
    ADVANCE_PHASE = "advance_phase"
    MOVE_UNIT = "move_unit"
    DECLARE_CHARGE = "declare_charge"
    CHARGE_REACTION = "charge_reaction"
    WITHDRAW_CHARGE = "withdraw_charge"
    RESOLVE_CHARGE = "resolve_charge"
    SHOOT = "shoot"
    FIGHT_COMBAT = "fight_combat"
    RALLY_UNIT = "rally_unit"
    CAST_SPELL = "cast_spell"
    DISPEL_CAST = "dispel_cast"
    DECLINE_DISPEL = "decline_dispel"
    DISPEL_EFFECT = "dispel_effect"
