"""Tabletop geometry helpers (inches, flat board, origin in a corner)."""

from __future__ import annotations

import math

from warbook.domain.models import Position


def distance(a: Position, b: Position) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def move_towards(start: Position, goal: Position, inches: float) -> Position:
    """Move ``inches`` from ``start`` straight at ``goal``, stopping on it."""

    gap = distance(start, goal)
    if gap == 0 or inches >= gap:
        return goal
    ratio = inches / gap
    return Position(start.x + (goal.x - start.x) * ratio, start.y + (goal.y - start.y) * ratio)


def move_away(start: Position, threat: Position, inches: float) -> Position:
    """Move ``inches`` from ``start`` directly away from ``threat``.

    A unit standing on the threat flees towards the nearest short board edge
    (negative x).
    """

    dx = start.x - threat.x
    dy = start.y - threat.y
    length = math.hypot(dx, dy)
    if length == 0:
        return Position(start.x - inches, start.y)
    return Position(start.x + dx / length * inches, start.y + dy / length * inches)


def on_board(point: Position, width: float, depth: float) -> bool:
    return 0.0 <= point.x <= width and 0.0 <= point.y <= depth


def facing_towards(start: Position, goal: Position) -> float:
    """Bearing in degrees from ``start`` to ``goal`` (0 = +y, clockwise)."""

    return math.degrees(math.atan2(goal.x - start.x, goal.y - start.y)) % 360.0
