"""Core rule tables expressed as data.

Only the generic core rules live here; army-specific content is supplied by
the caller as additional tables or special rules.  Each row carries the
citation that a ruling made from it will report.
"""

from __future__ import annotations

from .enums import HitPolicy, LeadershipTest
from .models import Citation
from .tables import (
    DecisionTable,
    TableRegistry,
    at_least,
    at_most,
    between,
    bool_field,
    enum_field,
    equals,
    int_field,
    row,
)

CORE = "Core Rules"

TO_HIT = "close_combat_to_hit"
RANGED_TO_HIT = "ranged_to_hit"
TO_WOUND = "to_wound"
SAVE = "save_roll"
LEADERSHIP = "leadership_test"
LEADERSHIP_RESULT = "leadership_result"
BREAK_TEST = "break_test_modifier"
CHARGE_OUTCOME = "charge_outcome"
MISCAST_TRIGGER = "miscast_trigger"
CASTING_RESULT = "casting_result"
MISCAST_EFFECTS = "miscast_effects"
DISPEL_RESULT = "dispel_result"

IMPOSSIBLE = 7
MARGIN_RANGE = 60


def _cite(rule_id: str, section: str) -> Citation:
    return Citation(rule_id, f"{CORE}, {section}")


def close_combat_to_hit() -> DecisionTable:
    section = "Close Combat: To Hit chart"
    rows = [
        row(_cite("core.to_hit.superior", section), {"target": 2}, ws_difference=at_least(1)),
        row(_cite("core.to_hit.equal", section), {"target": 3}, ws_difference=equals(0)),
        row(_cite("core.to_hit.inferior", section), {"target": 4}, ws_difference=between(-2, -1)),
        row(_cite("core.to_hit.outclassed", section), {"target": 5}, ws_difference=between(-4, -3)),
        row(_cite("core.to_hit.hopeless", section), {"target": 6}, ws_difference=at_most(-5)),
    ]
    return DecisionTable(
        name=TO_HIT,
        inputs=(int_field("ws_difference", -9, 9),),
        outputs=("target",),
        rows=tuple(rows),
        description="Attacker WS minus defender WS to the to-hit target number.",
    )


def ranged_to_hit() -> DecisionTable:
    section = "Shooting: To Hit chart"
    rows = [
        row(_cite("core.shoot.bs5", section), {"target": 2}, ballistic_skill=at_least(5)),
        row(_cite("core.shoot.bs4", section), {"target": 3}, ballistic_skill=equals(4)),
        row(_cite("core.shoot.bs3", section), {"target": 4}, ballistic_skill=equals(3)),
        row(_cite("core.shoot.bs2", section), {"target": 5}, ballistic_skill=equals(2)),
        row(_cite("core.shoot.bs1", section), {"target": 6}, ballistic_skill=equals(1)),
        row(
            _cite("core.shoot.bs0", section),
            {"target": IMPOSSIBLE},
            ballistic_skill=equals(0),
        ),
    ]
    return DecisionTable(
        name=RANGED_TO_HIT,
        inputs=(int_field("ballistic_skill", 0, 10),),
        outputs=("target",),
        rows=tuple(rows),
    )


def to_wound() -> DecisionTable:
    section = "To Wound chart"
    rows = [
        row(
            _cite("core.wound.much_stronger", section),
            {"target": 2},
            strength_difference=at_least(2),
        ),
        row(_cite("core.wound.stronger", section), {"target": 3}, strength_difference=equals(1)),
        row(_cite("core.wound.equal", section), {"target": 4}, strength_difference=equals(0)),
        row(_cite("core.wound.weaker", section), {"target": 5}, strength_difference=equals(-1)),
        row(
            _cite("core.wound.much_weaker", section),
            {"target": 6},
            strength_difference=between(-3, -2),
        ),
        row(
            _cite("core.wound.cannot_wound", section),
            {"target": IMPOSSIBLE},
            strength_difference=at_most(-4),
        ),
    ]
    return DecisionTable(
        name=TO_WOUND,
        inputs=(int_field("strength_difference", -10, 10),),
        outputs=("target",),
        rows=tuple(rows),
    )


def save_roll() -> DecisionTable:
    section = "Saving Throws"
    rows = [
        row(_cite("core.save.natural_one", section), {"target": 2}, save_value=at_most(2)),
    ]
    for value in range(3, 7):
        rows.append(
            row(
                _cite(f"core.save.{value}_plus", section),
                {"target": value},
                save_value=equals(value),
            )
        )
    rows.append(
        row(_cite("core.save.none", section), {"target": IMPOSSIBLE}, save_value=at_least(7))
    )
    return DecisionTable(
        name=SAVE,
        inputs=(int_field("save_value", 1, 13),),
        outputs=("target",),
        rows=tuple(rows),
        description="Modified save value to the number needed on one die.",
    )


def leadership_test() -> DecisionTable:
    """Automatic passes are layered ahead of the plain leadership rows."""

    section = "Psychology: Leadership tests"
    break_test = LeadershipTest.BREAK.value
    panic = LeadershipTest.PANIC.value
    rows = [
        row(
            _cite("core.psychology.unbreakable", "Special Rules: Unbreakable"),
            {"target": 12, "automatic": True},
            test=equals(break_test),
            unbreakable=equals(True),
        ),
        row(
            _cite("core.psychology.unbreakable_panic", "Special Rules: Unbreakable"),
            {"target": 12, "automatic": True},
            test=equals(panic),
            unbreakable=equals(True),
        ),
        row(
            _cite("core.psychology.immune", "Special Rules: Immune to Psychology"),
            {"target": 12, "automatic": True},
            test=equals(panic),
            immune=equals(True),
        ),
    ]
    for value in range(0, 13):
        rows.append(
            row(
                _cite(f"core.psychology.ld{value}", section),
                {"target": value, "automatic": False},
                leadership=equals(value),
            )
        )
    return DecisionTable(
        name=LEADERSHIP,
        inputs=(
            enum_field("test", *(kind.value for kind in LeadershipTest)),
            int_field("leadership", 0, 12),
            bool_field("unbreakable"),
            bool_field("immune"),
        ),
        outputs=("target", "automatic"),
        rows=tuple(rows),
        hit_policy=HitPolicy.FIRST,
    )


def leadership_result() -> DecisionTable:
    section = "Psychology: Leadership tests"
    rows = [
        row(
            _cite("core.psychology.insane_courage", "Psychology: Insane Courage"),
            {"passed": True},
            double_one=equals(True),
        ),
        row(_cite("core.psychology.pass", section), {"passed": True}, margin=at_most(0)),
        row(_cite("core.psychology.fail", section), {"passed": False}, margin=at_least(1)),
    ]
    return DecisionTable(
        name=LEADERSHIP_RESULT,
        inputs=(int_field("margin", -24, 24), bool_field("double_one")),
        outputs=("passed",),
        rows=tuple(rows),
        hit_policy=HitPolicy.FIRST,
    )


def break_test_modifier() -> DecisionTable:
    rows = [
        row(
            _cite("core.break.stubborn", "Special Rules: Stubborn"),
            {"apply_difference": False},
            stubborn=equals(True),
        ),
        row(
            _cite("core.break.steadfast", "Combat Results: Steadfast"),
            {"apply_difference": False},
            steadfast=equals(True),
        ),
        row(
            _cite("core.break.modified", "Combat Results: Break tests"),
            {"apply_difference": True},
        ),
    ]
    return DecisionTable(
        name=BREAK_TEST,
        inputs=(bool_field("stubborn"), bool_field("steadfast")),
        outputs=("apply_difference",),
        rows=tuple(rows),
        hit_policy=HitPolicy.FIRST,
    )


def charge_outcome() -> DecisionTable:
    section = "Movement: Charges"
    rows = [
        row(
            _cite("core.charge.success", section),
            {"result": "charged"},
            target_fled=equals(False),
            margin=at_least(0),
        ),
        row(
            _cite("core.charge.failed", section),
            {"result": "failed"},
            target_fled=equals(False),
            margin=at_most(-1),
        ),
        row(
            _cite("core.charge.caught_fleeing", "Movement: Flee! reactions"),
            {"result": "caught"},
            target_fled=equals(True),
            margin=at_least(0),
        ),
        row(
            _cite("core.charge.fled_clear", "Movement: Flee! reactions"),
            {"result": "failed"},
            target_fled=equals(True),
            margin=at_most(-1),
        ),
    ]
    return DecisionTable(
        name=CHARGE_OUTCOME,
        inputs=(int_field("margin", -MARGIN_RANGE, MARGIN_RANGE), bool_field("target_fled")),
        outputs=("result",),
        rows=tuple(rows),
    )


def miscast_trigger() -> DecisionTable:
    section = "Magic: Irresistible Force and Miscasts"
    rows = [
        row(
            _cite("core.magic.irresistible_force", section),
            {"irresistible": True, "miscast": True, "fizzle": False},
            sixes=at_least(2),
        ),
        row(
            _cite("core.magic.double_one", "Magic: Casting"),
            {"irresistible": False, "miscast": False, "fizzle": True},
            ones=at_least(2),
        ),
        row(
            _cite("core.magic.casting_roll", "Magic: Casting"),
            {"irresistible": False, "miscast": False, "fizzle": False},
        ),
    ]
    return DecisionTable(
        name=MISCAST_TRIGGER,
        inputs=(int_field("sixes", 0, 12), int_field("ones", 0, 12)),
        outputs=("irresistible", "miscast", "fizzle"),
        rows=tuple(rows),
        hit_policy=HitPolicy.FIRST,
    )


def casting_result() -> DecisionTable:
    section = "Magic: Casting"
    rows = [
        row(
            _cite("core.magic.cast_irresistible", section),
            {"result": "irresistible"},
            irresistible=equals(True),
        ),
        row(_cite("core.magic.fizzle", section), {"result": "failed"}, fizzle=equals(True)),
        row(_cite("core.magic.cast", section), {"result": "cast"}, margin=at_least(0)),
        row(_cite("core.magic.not_cast", section), {"result": "failed"}, margin=at_most(-1)),
    ]
    return DecisionTable(
        name=CASTING_RESULT,
        inputs=(
            int_field("margin", -MARGIN_RANGE, MARGIN_RANGE),
            bool_field("irresistible"),
            bool_field("fizzle"),
        ),
        outputs=("result",),
        rows=tuple(rows),
        hit_policy=HitPolicy.FIRST,
    )


def miscast_effects() -> DecisionTable:
    section = "Magic: Miscast table"
    rows = [
        row(
            _cite("core.miscast.detonation", section),
            {"effect": "detonation", "caster_wounds": 2, "drain_pool": True},
            roll=between(2, 4),
        ),
        row(
            _cite("core.miscast.backlash", section),
            {"effect": "backlash", "caster_wounds": 1, "drain_pool": False},
            roll=between(5, 7),
        ),
        row(
            _cite("core.miscast.power_drain", section),
            {"effect": "power_drain", "caster_wounds": 0, "drain_pool": True},
            roll=between(8, 12),
        ),
    ]
    return DecisionTable(
        name=MISCAST_EFFECTS,
        inputs=(int_field("roll", 2, 12),),
        outputs=("effect", "caster_wounds", "drain_pool"),
        rows=tuple(rows),
    )


def dispel_result() -> DecisionTable:
    section = "Magic: Dispelling"
    rows = [
        row(
            _cite("core.dispel.irresistible", "Magic: Irresistible Force"),
            {"result": "cannot_dispel"},
            irresistible=equals(True),
        ),
        row(
            _cite("core.dispel.double_one", section),
            {"result": "failed"},
            double_one=equals(True),
        ),
        row(_cite("core.dispel.success", section), {"result": "dispelled"}, margin=at_least(0)),
        row(_cite("core.dispel.failure", section), {"result": "failed"}, margin=at_most(-1)),
    ]
    return DecisionTable(
        name=DISPEL_RESULT,
        inputs=(
            int_field("margin", -MARGIN_RANGE, MARGIN_RANGE),
            bool_field("irresistible"),
            bool_field("double_one"),
        ),
        outputs=("result",),
        rows=tuple(rows),
        hit_policy=HitPolicy.FIRST,
    )


STANDARD_TABLE_BUILDERS = (
    close_combat_to_hit,
    ranged_to_hit,
    to_wound,
    save_roll,
    leadership_test,
    leadership_result,
    break_test_modifier,
    charge_outcome,
    miscast_trigger,
    casting_result,
    miscast_effects,
    dispel_result,
)


def standard_tables() -> list[DecisionTable]:
    return [build() for build in STANDARD_TABLE_BUILDERS]


def standard_registry() -> TableRegistry:
    """Registry holding every core table; extra tables may be registered on top."""

    return TableRegistry(standard_tables())
