"""Panic reactions.

Friendly units near a unit that breaks or is destroyed must pass a panic
test or flee themselves.  The checks are milestone subscribers, so a failed
panic test (which emits ``Broken`` in turn) cascades through the army within
the same action.
"""

from __future__ import annotations

import logging

from .enums import LeadershipTest, MilestoneType, UnitStatus
from .lifecycle import Milestone, MilestoneBus, combat_of, flee
from .models import Unit
from .resolution import RulesContext, leadership_test, roll_flee

logger = logging.getLogger(__name__)


def panic_candidates(ctx: RulesContext, source: Unit) -> list[Unit]:
    """Friendly active units within the panic radius that have not tested this phase."""

    radius = ctx.rules.psychology.panic_radius
    candidates = []
    for unit in ctx.state.units.values():
        if unit.id == source.id or unit.player != source.player:
            continue
        if unit.status != UnitStatus.ACTIVE or unit.panic_tested:
            continue
        if combat_of(ctx.state, unit.id) is not None:
            continue
        if unit.position.distance_to(source.position) <= radius:
            candidates.append(unit)
    return candidates


def _panic(milestone: Milestone, ctx: RulesContext) -> None:
    if milestone.unit_id is None:
        return
    source = ctx.state.units.get(milestone.unit_id)
    if source is None:
        return
    for unit in panic_candidates(ctx, source):
        # an earlier test in this loop may already have broken this unit
        if unit.status != UnitStatus.ACTIVE or unit.panic_tested:
            continue
        unit.panic_tested = True
        result = leadership_test(ctx, unit.id, LeadershipTest.PANIC)
        if result.passed:
            continue
        logger.debug("unit %s panics after unit %s %s", unit.id, source.id, milestone.type)
        distance = roll_flee(ctx, unit.id).distance
        flee(ctx, unit.id, source.position, distance, cause=f"panic: unit {source.id}")


def install(bus: MilestoneBus) -> None:
    bus.subscribe(MilestoneType.BROKEN, _panic)
    bus.subscribe(MilestoneType.DESTROYED, _panic)
