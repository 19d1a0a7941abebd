"""Unit tests for casting, dispelling and spell effect lifetimes."""

from __future__ import annotations

import pytest

from warbook.domain import lifecycle, magic
from warbook.domain import models as dm
from warbook.domain.enums import (
    DurationClass,
    EffectRole,
    ModifierOperation,
    PlayerSide,
    SpellCategory,
    TroopType,
    UnitStatus,
)
from warbook.domain.errors import InvalidAction, InvalidTarget
from warbook.domain.resolution import RulesContext
from warbook.domain.standard_tables import standard_registry
from warbook.utils.rng import ScriptedDice

WIZARD = dm.CharacterID(1)
FRIENDS = dm.UnitID(1)
ENEMIES = dm.UnitID(2)


def _profile() -> dm.Profile:
    return dm.Profile(
        movement=4,
        weapon_skill=3,
        ballistic_skill=3,
        strength=3,
        toughness=3,
        wounds=1,
        initiative=3,
        attacks=1,
        leadership=7,
    )


def _spells() -> list[dm.Spell]:
    return [
        dm.Spell(
            id=dm.SpellID("fireball"),
            name="Fireball",
            lore="fire",
            casting_value=5,
            category=SpellCategory.DIRECT_DAMAGE,
            duration=DurationClass.ONE_SHOT,
            citation=dm.Citation("lore.fire.fireball", "Lore of Fire"),
            hits=2,
            strength=4,
        ),
        dm.Spell(
            id=dm.SpellID("iron-skin"),
            name="Iron Skin",
            lore="metal",
            casting_value=7,
            category=SpellCategory.AUGMENT,
            duration=DurationClass.REMAINS_IN_PLAY,
            citation=dm.Citation("lore.metal.iron_skin", "Lore of Metal"),
            effects=(
                dm.ModifierEffect(
                    "toughness",
                    ModifierOperation.ADD,
                    1,
                    trigger=dm.Trigger(role=EffectRole.ANY),
                ),
            ),
        ),
        dm.Spell(
            id=dm.SpellID("blind"),
            name="Blind",
            lore="shadow",
            casting_value=6,
            category=SpellCategory.HEX,
            duration=DurationClass.ONE_SHOT,
            citation=dm.Citation("lore.shadow.blind", "Lore of Shadow"),
            range=12,
        ),
    ]


def _context(*draws: int, bus: lifecycle.MilestoneBus | None = None) -> RulesContext:
    units = [
        dm.Unit(
            id=FRIENDS,
            name="Swordsmen",
            player=PlayerSide.A,
            troop_type=TroopType.INFANTRY,
            profile=_profile(),
            model_count=10,
            position=dm.Position(10, 10),
            status=UnitStatus.ACTIVE,
        ),
        dm.Unit(
            id=ENEMIES,
            name="Goblins",
            player=PlayerSide.B,
            troop_type=TroopType.INFANTRY,
            profile=_profile(),
            model_count=10,
            position=dm.Position(10, 30),
            status=UnitStatus.ACTIVE,
        ),
    ]
    wizard = dm.Character(
        id=WIZARD,
        name="Wizard",
        player=PlayerSide.A,
        profile=_profile(),
        unit_id=FRIENDS,
        wizard_level=1,
        spells=[spell.id for spell in _spells()],
    )
    state = dm.GameState(
        id=dm.GameID(9),
        round=1,
        units={unit.id: unit for unit in units},
        characters={wizard.id: wizard},
        spells={spell.id: spell for spell in _spells()},
        magic={
            PlayerSide.A: dm.MagicPool(power_dice=6, dispel_dice=0),
            PlayerSide.B: dm.MagicPool(power_dice=0, dispel_dice=4),
        },
    )
    return RulesContext(state, ScriptedDice(draws), standard_registry(), bus=bus)


def _cast(ctx: RulesContext, spell: str, target: dm.UnitID, dice: int = 2) -> magic.CastResult:
    return magic.cast_spell(ctx, PlayerSide.A, WIZARD, dm.SpellID(spell), target, dice)


def test_winds_fill_power_and_dispel_pools():
    ctx = _context(3, 5)
    winds = magic.roll_winds(ctx, PlayerSide.A)

    assert (winds.power_dice, winds.dispel_dice) == (8, 5)
    assert ctx.state.magic[PlayerSide.A].power_dice == 8
    assert ctx.state.magic[PlayerSide.B].dispel_dice == 5


def test_successful_cast_waits_for_a_dispel_decision():
    ctx = _context(3, 2)
    result = _cast(ctx, "fireball", ENEMIES)

    # 3 + 2 plus the wizard level beats casting value 5
    assert result.total == 6
    assert result.cast
    assert ctx.state.pending_cast.spell_id == "fireball"
    assert ctx.state.magic[PlayerSide.A].power_dice == 4
    assert ctx.state.units[ENEMIES].model_count == 10


def test_failed_cast_leaves_nothing_pending():
    ctx = _context(2, 2)
    result = _cast(ctx, "iron-skin", FRIENDS)
    assert result.result == "failed"
    assert ctx.state.pending_cast is None


def test_double_one_fizzles():
    ctx = _context(1, 1, 6)
    result = _cast(ctx, "fireball", ENEMIES, dice=3)
    assert result.total == 9
    assert result.result == "failed"


def test_dispelled_spell_never_takes_effect():
    ctx = _context(4, 4, 5, 5)
    _cast(ctx, "iron-skin", FRIENDS)

    dispel, resolution = magic.dispel_cast(ctx, PlayerSide.B, 2)

    assert dispel.dispelled
    assert resolution is None
    assert ctx.state.pending_cast is None
    assert ctx.state.active_effects == {}
    assert ctx.state.magic[PlayerSide.B].dispel_dice == 2


def test_failed_dispel_lets_the_spell_resolve():
    ctx = _context(4, 4, 2, 3)
    _cast(ctx, "iron-skin", FRIENDS)

    dispel, resolution = magic.dispel_cast(ctx, PlayerSide.B, 2)

    assert not dispel.dispelled
    assert resolution.effect_id in ctx.state.active_effects


def test_declined_direct_damage_wounds_the_target():
    # cast 3+3, then S4 vs T3 wounds on 3+
    ctx = _context(3, 3, 3, 2)
    _cast(ctx, "fireball", ENEMIES)

    resolution = magic.decline_dispel(ctx, PlayerSide.B)

    assert resolution.damage.wounds == 1
    assert resolution.models_removed == 1
    assert ctx.state.units[ENEMIES].model_count == 9


def test_irresistible_force_cannot_be_dispelled_and_miscasts():
    # two sixes, then a miscast roll of 9 (power drain)
    ctx = _context(6, 6, 4, 5)
    result = _cast(ctx, "iron-skin", FRIENDS)

    assert result.irresistible
    assert result.miscast.effect == "power_drain"
    assert ctx.state.magic[PlayerSide.A].power_dice == 0

    dispel, resolution = magic.dispel_cast(ctx, PlayerSide.B, 2)
    assert dispel.result == "cannot_dispel"
    assert dispel.rolls == ()
    assert ctx.state.magic[PlayerSide.B].dispel_dice == 4
    assert resolution.effect_id is not None


def test_only_the_opponent_may_dispel():
    ctx = _context(4, 4)
    _cast(ctx, "iron-skin", FRIENDS)
    with pytest.raises(InvalidAction):
        magic.dispel_cast(ctx, PlayerSide.A, 1)
    with pytest.raises(InvalidAction):
        magic.decline_dispel(ctx, PlayerSide.A)


def test_a_second_cast_must_wait_for_the_first():
    ctx = _context(4, 4)
    _cast(ctx, "iron-skin", FRIENDS)
    with pytest.raises(InvalidAction, match="waiting"):
        _cast(ctx, "fireball", ENEMIES)


@pytest.mark.parametrize(
    ("spell", "target", "dice", "error"),
    [
        ("fireball", FRIENDS, 2, InvalidTarget),
        ("iron-skin", ENEMIES, 2, InvalidTarget),
        ("blind", ENEMIES, 2, InvalidTarget),
        ("fireball", ENEMIES, 7, InvalidAction),
        ("fireball", ENEMIES, 0, InvalidAction),
        ("unknown", ENEMIES, 2, InvalidAction),
    ],
)
def test_illegal_casts_are_rejected_before_rolling(spell, target, dice, error):
    ctx = _context()
    with pytest.raises(error):
        _cast(ctx, spell, target, dice)
    assert ctx.state.magic[PlayerSide.A].power_dice == 6


def test_cast_needs_enough_power_dice():
    ctx = _context()
    ctx.state.magic[PlayerSide.A].power_dice = 1
    with pytest.raises(InvalidAction, match="power dice"):
        _cast(ctx, "fireball", ENEMIES, dice=2)


def test_only_wizards_cast():
    ctx = _context()
    ctx.state.characters[WIZARD].wizard_level = 0
    with pytest.raises(InvalidAction, match="not a wizard"):
        _cast(ctx, "fireball", ENEMIES)


def _effect_in_play(ctx: RulesContext) -> dm.EffectID:
    _cast(ctx, "iron-skin", FRIENDS)
    return magic.decline_dispel(ctx, PlayerSide.B).effect_id


def test_remains_in_play_effect_can_be_dispelled_later():
    ctx = _context(4, 4, 5, 5)
    effect_id = _effect_in_play(ctx)

    result = magic.dispel_effect(ctx, PlayerSide.B, effect_id, 2)

    assert result.dispelled
    assert result.against == 9
    assert effect_id not in ctx.state.active_effects


def test_caster_cannot_dispel_own_effect():
    ctx = _context(4, 4)
    effect_id = _effect_in_play(ctx)
    with pytest.raises(InvalidAction):
        magic.dispel_effect(ctx, PlayerSide.A, effect_id, 1)


def test_effect_expires_when_its_target_is_destroyed():
    bus = lifecycle.MilestoneBus()
    magic.install(bus)
    ctx = _context(4, 4, bus=bus)
    effect_id = _effect_in_play(ctx)

    lifecycle.transition(ctx, FRIENDS, UnitStatus.DESTROYED, cause="test")

    assert effect_id not in ctx.state.active_effects


def test_effects_of_a_slain_caster_lapse_at_round_start():
    ctx = _context(4, 4)
    effect_id = _effect_in_play(ctx)
    ctx.state.characters[WIZARD].slain = True

    assert magic.start_of_round(ctx) == [effect_id]


def test_timed_effects_count_down():
    ctx = _context(4, 4)
    effect_id = _effect_in_play(ctx)
    ctx.state.active_effects[effect_id].remaining_rounds = 2

    assert magic.start_of_round(ctx) == []
    assert magic.start_of_round(ctx) == [effect_id]


def test_one_shot_effects_end_with_the_casters_turn():
    ctx = _context(3, 3)
    ctx.state.units[ENEMIES].position = dm.Position(10, 20)
    magic.cast_spell(ctx, PlayerSide.A, WIZARD, dm.SpellID("blind"), ENEMIES, 2)
    effect_id = magic.decline_dispel(ctx, PlayerSide.B).effect_id

    assert magic.end_of_turn(ctx, PlayerSide.B) == []
    assert magic.end_of_turn(ctx, PlayerSide.A) == [effect_id]
    assert ctx.state.active_effects == {}


def test_effect_of_a_caster_slain_by_miscast_never_enters_play():
    # irresistible with a backlash miscast of 6 that kills the one-wound wizard
    ctx = _context(6, 6, 3, 3)
    result = _cast(ctx, "iron-skin", FRIENDS)
    assert result.miscast.caster_slain

    dispel, resolution = magic.dispel_cast(ctx, PlayerSide.B, 2)

    assert dispel.result == "cannot_dispel"
    assert resolution.effect_id is None
    assert ctx.state.active_effects == {}
