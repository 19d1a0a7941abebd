"""Spell casting and dispelling.

A cast goes through three steps: the caster spends power dice and rolls
(miscast trigger, casting result and, when needed, the miscast table); a
successful cast becomes the state's ``pending_cast``; the opponent then
dispels it or declines.  Only an undispelled cast creates an effect, so a
dispelled spell never reaches ``active_effects``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from . import standard_tables as st
from . import state as ops
from .enums import (
    DurationClass,
    MilestoneType,
    PlayerSide,
    SpellCategory,
    TestCategory,
    UnitStatus,
)
from .errors import InvalidAction, InvalidTarget
from .explain import traced
from .lifecycle import Milestone, MilestoneBus, apply_casualties, emit
from .models import (
    ActiveSpellEffect,
    Character,
    CharacterID,
    Citation,
    EffectID,
    MagicPool,
    PendingCast,
    Position,
    Spell,
    SpellID,
    UnitID,
)
from .modifiers import TestContext, resolve_modifiers
from .resolution import AttackResult, RulesContext, draw, resolve_magic_hits
from .tables import require_outcome

logger = logging.getLogger(__name__)


def pool(ctx: RulesContext, player: PlayerSide) -> MagicPool:
    return ctx.state.magic.setdefault(player, MagicPool())


# --- Winds of magic -------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WindsOfMagic:
    player: PlayerSide
    rolls: tuple[int, ...]
    power_dice: int
    dispel_dice: int


def _describe_winds(result: WindsOfMagic, *_args, **_kwargs):
    yield (
        f"winds of magic for {result.player}: {list(result.rolls)} -> {result.power_dice} power,"
        f" {result.dispel_dice} dispel",
        Citation("core.magic.winds", "Core Rules, Magic: Winds of Magic"),
        (),
    )


@traced("spell", _describe_winds)
def roll_winds(ctx: RulesContext, player: PlayerSide) -> WindsOfMagic:
    """Fill the active player's power pool and the opponent's dispel pool."""

    magic = ctx.rules.magic
    rolls = draw(ctx.dice, magic.winds_dice, "winds of magic")
    power = min(magic.pool_cap, sum(rolls))
    dispel = min(magic.pool_cap, max(rolls) + magic.base_dispel_dice)
    pool(ctx, player).power_dice = power
    pool(ctx, player.opponent()).dispel_dice = dispel
    return WindsOfMagic(player, rolls, power, dispel)


# --- Casting --------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MiscastResult:
    rolls: tuple[int, ...]
    effect: str
    caster_wounds: int
    pool_drained: bool
    caster_slain: bool
    citation: Citation


@dataclass(frozen=True, slots=True)
class CastResult:
    """Casting attempt and its immediate consequences."""

    caster_id: CharacterID
    spell_id: SpellID
    target_unit_id: UnitID
    rolls: tuple[int, ...]
    total: int
    casting_value: int
    result: str
    irresistible: bool = False
    miscast: MiscastResult | None = None
    citations: tuple[Citation, ...] = field(default=())

    @property
    def cast(self) -> bool:
        return self.result in ("cast", "irresistible")


def _caster_position(ctx: RulesContext, caster: Character) -> Position:
    if caster.unit_id is not None and caster.unit_id in ctx.state.units:
        return ctx.state.units[caster.unit_id].position
    if caster.position is None:
        raise InvalidAction(f"character {caster.id} is not on the table")
    return caster.position


def check_caster(ctx: RulesContext, caster_id: CharacterID, player: PlayerSide) -> Character:
    caster = ctx.state.characters.get(caster_id)
    if caster is None:
        raise InvalidAction(f"unknown character {caster_id}")
    if caster.player != player:
        raise InvalidAction(f"character {caster_id} belongs to {caster.player}")
    if caster.slain:
        raise InvalidAction(f"character {caster_id} has been slain")
    if not caster.is_wizard:
        raise InvalidAction(f"character {caster_id} is not a wizard")
    if caster.unit_id is not None:
        unit = ctx.state.units.get(caster.unit_id)
        if unit is None or unit.status in (UnitStatus.FLEEING, UnitStatus.DESTROYED):
            raise InvalidAction(f"character {caster_id} is with a fleeing or destroyed unit")
    return caster


def spell_targets_friends(spell: Spell) -> bool:
    return spell.targets_friends or spell.category == SpellCategory.AUGMENT


def check_spell_target(
    ctx: RulesContext, caster: Character, spell: Spell, target_unit_id: UnitID
) -> None:
    target = ctx.state.units.get(target_unit_id)
    if target is None or target.status == UnitStatus.DESTROYED:
        raise InvalidTarget(f"unit {target_unit_id} cannot be targeted")
    friendly = target.player == caster.player
    if friendly != spell_targets_friends(spell):
        side = "friendly" if spell_targets_friends(spell) else "enemy"
        raise InvalidTarget(f"{spell.name} must target a {side} unit")
    reach = _caster_position(ctx, caster).distance_to(target.position)
    if reach > spell.range:
        raise InvalidTarget(
            f"unit {target_unit_id} is beyond {spell.name}'s range of {spell.range}\""
        )


def _describe_cast(result: CastResult, *_args, **_kwargs):
    yield (
        f"character {result.caster_id} casts {result.spell_id}: {list(result.rolls)}"
        f" total {result.total} vs {result.casting_value} -> {result.result}",
        None,
        (),
    )


@traced("spell", _describe_cast)
def cast_spell(
    ctx: RulesContext,
    player: PlayerSide,
    caster_id: CharacterID,
    spell_id: SpellID,
    target_unit_id: UnitID,
    dice: int,
) -> CastResult:
    """Spend power dice on a casting attempt."""

    state = ctx.state
    if state.pending_cast is not None:
        raise InvalidAction("another spell is waiting for a dispel decision")
    caster = check_caster(ctx, caster_id, player)
    spell = state.spells.get(spell_id)
    if spell is None or spell_id not in caster.spells:
        raise InvalidAction(f"character {caster_id} does not know spell {spell_id}")
    check_spell_target(ctx, caster, spell, target_unit_id)

    vector = resolve_modifiers(
        TestContext(
            TestCategory.CASTING,
            actor_unit_id=caster.unit_id,
            actor_character_id=caster.id,
            target_unit_id=target_unit_id,
        ),
        state,
        ctx.rules,
    )
    max_dice = vector.as_int("max_power_dice")
    if not 1 <= dice <= max_dice:
        raise InvalidAction(f"casting dice must be between 1 and {max_dice}, got {dice}")
    power = pool(ctx, player)
    if dice > power.power_dice:
        raise InvalidAction(f"only {power.power_dice} power dice left")
    power.power_dice -= dice

    rolls = draw(ctx.dice, dice, f"casting {spell.id}")
    trigger = require_outcome(
        ctx.tables[st.MISCAST_TRIGGER], {"sixes": rolls.count(6), "ones": rolls.count(1)}
    )
    total = sum(rolls) + vector.as_int("casting_bonus")
    table = ctx.tables[st.CASTING_RESULT]
    outcome = require_outcome(
        table,
        {
            "margin": table.input("margin").clamp(total - spell.casting_value),
            "irresistible": bool(trigger["irresistible"]),
            "fizzle": bool(trigger["fizzle"]),
        },
    )
    citations = [spell.citation, trigger.citation, outcome.citation]

    miscast = None
    if trigger["miscast"]:
        miscast = _miscast(ctx, caster, player)
        citations.append(miscast.citation)

    result = CastResult(
        caster_id=caster.id,
        spell_id=spell.id,
        target_unit_id=target_unit_id,
        rolls=rolls,
        total=total,
        casting_value=spell.casting_value,
        result=str(outcome["result"]),
        irresistible=bool(trigger["irresistible"]),
        miscast=miscast,
        citations=tuple(citations),
    )
    if result.cast:
        state.pending_cast = PendingCast(
            caster_id=caster.id,
            spell_id=spell.id,
            target_unit_id=target_unit_id,
            player=player,
            casting_total=total,
            irresistible=result.irresistible,
        )
        logger.debug("spell %s awaiting dispel decision", spell.id)
    return result


def _miscast(ctx: RulesContext, caster: Character, player: PlayerSide) -> MiscastResult:
    rolls = draw(ctx.dice, ctx.rules.magic.miscast_dice, "miscast")
    table = ctx.tables[st.MISCAST_EFFECTS]
    outcome = require_outcome(table, {"roll": table.input("roll").clamp(sum(rolls))})
    wounds = int(outcome["caster_wounds"])
    slain = ops.wound_character(ctx.state, caster, wounds) if wounds else caster.slain
    if outcome["drain_pool"]:
        pool(ctx, player).power_dice = 0
    if slain:
        revalidate_effects(ctx, cause=f"caster {caster.id} slain")
    return MiscastResult(
        rolls, str(outcome["effect"]), wounds, bool(outcome["drain_pool"]), slain, outcome.citation
    )


# --- Dispelling -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DispelResult:
    """Dispel attempt against a pending cast or an effect in play."""

    player: PlayerSide
    spell_id: SpellID
    rolls: tuple[int, ...]
    total: int
    against: int
    result: str
    citations: tuple[Citation, ...] = ()

    @property
    def dispelled(self) -> bool:
        return self.result == "dispelled"


def _dispel_roll(
    ctx: RulesContext,
    player: PlayerSide,
    spell_id: SpellID,
    dice: int,
    against: int,
    irresistible: bool,
    dispeller_id: CharacterID | None,
) -> DispelResult:
    dispeller = None
    if dispeller_id is not None:
        dispeller = check_caster(ctx, dispeller_id, player)
    table = ctx.tables[st.DISPEL_RESULT]
    if irresistible:
        outcome = require_outcome(
            table, {"margin": 0, "irresistible": True, "double_one": False}
        )
        return DispelResult(
            player, spell_id, (), 0, against, str(outcome["result"]), (outcome.citation,)
        )

    vector = resolve_modifiers(
        TestContext(
            TestCategory.DISPEL,
            actor_unit_id=dispeller.unit_id if dispeller is not None else None,
            actor_character_id=dispeller.id if dispeller is not None else None,
        ),
        ctx.state,
        ctx.rules,
    )
    max_dice = vector.as_int("max_dispel_dice")
    if not 1 <= dice <= max_dice:
        raise InvalidAction(f"dispel dice must be between 1 and {max_dice}, got {dice}")
    available = pool(ctx, player)
    if dice > available.dispel_dice:
        raise InvalidAction(f"only {available.dispel_dice} dispel dice left")
    available.dispel_dice -= dice

    rolls = draw(ctx.dice, dice, f"dispelling {spell_id}")
    total = sum(rolls) + vector.as_int("dispel_bonus")
    outcome = require_outcome(
        table,
        {
            "margin": table.input("margin").clamp(total - against),
            "irresistible": False,
            "double_one": rolls.count(1) >= 2,
        },
    )
    return DispelResult(
        player, spell_id, rolls, total, against, str(outcome["result"]), (outcome.citation,)
    )


def _describe_dispel(result: DispelResult, *_args, **_kwargs):
    yield (
        f"{result.player} dispels {result.spell_id}: {list(result.rolls)} total {result.total}"
        f" vs {result.against} -> {result.result}",
        None,
        (),
    )


@dataclass(frozen=True, slots=True)
class SpellResolution:
    """What an undispelled cast did."""

    spell_id: SpellID
    effect_id: EffectID | None = None
    damage: AttackResult | None = None
    models_removed: int = 0


def _describe_dispel_cast(result, *args, **kwargs):
    yield from _describe_dispel(result[0], *args, **kwargs)


@traced("spell", _describe_dispel_cast)
def dispel_cast(
    ctx: RulesContext, player: PlayerSide, dice: int, dispeller_id: CharacterID | None = None
) -> tuple[DispelResult, SpellResolution | None]:
    """Try to stop the pending cast; an undispelled cast resolves immediately."""

    pending = ctx.state.pending_cast
    if pending is None:
        raise InvalidAction("there is no spell to dispel")
    if player == pending.player:
        raise InvalidAction("a player cannot dispel their own spell")
    result = _dispel_roll(
        ctx,
        player,
        pending.spell_id,
        dice,
        pending.casting_total,
        pending.irresistible,
        dispeller_id,
    )
    ctx.state.pending_cast = None
    if result.dispelled:
        return result, None
    return result, resolve_cast(ctx, pending)


def decline_dispel(ctx: RulesContext, player: PlayerSide) -> SpellResolution:
    pending = ctx.state.pending_cast
    if pending is None:
        raise InvalidAction("there is no spell to dispel")
    if player == pending.player:
        raise InvalidAction("only the opposing player may decline to dispel")
    ctx.state.pending_cast = None
    return resolve_cast(ctx, pending)


def _describe_resolution(result: SpellResolution, _ctx, pending: PendingCast, *_args, **_kwargs):
    if result.effect_id is not None:
        detail = f"effect {result.effect_id} on unit {pending.target_unit_id}"
    elif result.damage is None:
        detail = "no effect"
    else:
        detail = f"{result.models_removed} models removed from unit {pending.target_unit_id}"
    yield f"{pending.spell_id} takes effect: {detail}", None, ()


@traced("spell", _describe_resolution)
def resolve_cast(ctx: RulesContext, pending: PendingCast) -> SpellResolution:
    """Apply an undispelled spell."""

    state = ctx.state
    spell = state.spells[pending.spell_id]
    target = state.units.get(pending.target_unit_id)
    if target is None or target.status == UnitStatus.DESTROYED:
        return SpellResolution(spell.id)

    if spell.category == SpellCategory.DIRECT_DAMAGE:
        damage = resolve_magic_hits(
            ctx, target.id, spell.hits, spell.strength, spell.armour_penetration, spell.name
        )
        removed = apply_casualties(ctx, target.id, damage.unsaved, cause=f"spell {spell.id}")
        return SpellResolution(spell.id, damage=damage, models_removed=removed)

    caster = state.characters.get(pending.caster_id)
    if spell.duration == DurationClass.REMAINS_IN_PLAY and (caster is None or caster.slain):
        # the effect would end with its caster at once
        return SpellResolution(spell.id)

    effect = ActiveSpellEffect(
        id=ops.new_effect_id(state),
        spell_id=spell.id,
        caster_id=pending.caster_id,
        caster_player=pending.player,
        target_unit_id=target.id,
        casting_total=pending.casting_total,
        duration=spell.duration,
        cast_round=state.round,
        remaining_rounds=spell.duration_rounds,
    )
    ops.apply_spell_effect(state, effect)
    return SpellResolution(spell.id, effect_id=effect.id)


@traced("spell", _describe_dispel)
def dispel_effect(
    ctx: RulesContext,
    player: PlayerSide,
    effect_id: EffectID,
    dice: int,
    dispeller_id: CharacterID | None = None,
) -> DispelResult:
    """Dispel a remains-in-play effect against its original casting total."""

    effect = ctx.state.active_effects.get(effect_id)
    if effect is None:
        raise InvalidTarget(f"no active effect {effect_id}")
    if effect.caster_player == player:
        raise InvalidAction("a player cannot dispel their own spell")
    if effect.duration != DurationClass.REMAINS_IN_PLAY:
        raise InvalidTarget(f"effect {effect_id} does not remain in play")
    result = _dispel_roll(
        ctx, player, effect.spell_id, dice, effect.casting_total, False, dispeller_id
    )
    if result.dispelled:
        expire_effect(ctx, effect_id, cause="dispelled")
    return result


# --- Effect lifetime ------------------------------------------------------------


def expire_effect(ctx: RulesContext, effect_id: EffectID, *, cause: str) -> ActiveSpellEffect:
    effect = ops.remove_spell_effect(ctx.state, effect_id)
    emit(
        ctx,
        Milestone(
            MilestoneType.EFFECT_EXPIRED,
            unit_id=effect.target_unit_id,
            player=effect.caster_player,
            effect_id=effect.id,
            cause=cause,
        ),
    )
    return effect


def _invalid_reason(ctx: RulesContext, effect: ActiveSpellEffect) -> str | None:
    caster = ctx.state.characters.get(effect.caster_id)
    if caster is None or caster.slain:
        return "caster slain"
    target = ctx.state.units.get(effect.target_unit_id)
    if target is None or target.status == UnitStatus.DESTROYED:
        return "target destroyed"
    if effect.spell_id not in ctx.state.spells:
        return "unknown spell"
    return None


def revalidate_effects(ctx: RulesContext, *, cause: str = "") -> list[EffectID]:
    """Remove every effect whose caster or target is gone."""

    removed = []
    for effect in list(ctx.state.active_effects.values()):
        reason = _invalid_reason(ctx, effect)
        if reason is not None and effect.id in ctx.state.active_effects:
            expire_effect(ctx, effect.id, cause=f"{reason}{f'; {cause}' if cause else ''}")
            removed.append(effect.id)
    return removed


def start_of_round(ctx: RulesContext) -> list[EffectID]:
    """Tick down timed effects and drop those that lapsed or became invalid."""

    expired = revalidate_effects(ctx, cause="round start")
    for effect in list(ctx.state.active_effects.values()):
        if effect.remaining_rounds is None:
            continue
        effect.remaining_rounds -= 1
        if effect.remaining_rounds <= 0:
            expire_effect(ctx, effect.id, cause="duration lapsed")
            expired.append(effect.id)
    return expired


def end_of_turn(ctx: RulesContext, player: PlayerSide) -> list[EffectID]:
    """One-shot effects last until the end of their caster's turn."""

    expired = []
    for effect in list(ctx.state.active_effects.values()):
        if effect.duration == DurationClass.ONE_SHOT and effect.caster_player == player:
            expire_effect(ctx, effect.id, cause="end of caster's turn")
            expired.append(effect.id)
    return expired


def install(bus: MilestoneBus) -> None:
    def _revalidate(milestone: Milestone, ctx: RulesContext) -> None:
        revalidate_effects(ctx, cause=f"{milestone.type} unit {milestone.unit_id}")

    bus.subscribe(MilestoneType.DESTROYED, _revalidate)
