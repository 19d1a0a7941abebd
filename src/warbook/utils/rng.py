"""Deterministic dice sources for Warbook.

The rules engine never generates randomness itself.  It receives a
:class:`DiceSource` and asks it for a number of dice; every draw it makes is
recorded in the explanation trace.  This module supplies the sources used by
the session and the tests:

- :class:`SeededDice`: deterministic dice seeded from game state, so the same
  seed always produces the same sequence of rolls.
- :class:`ScriptedDice`: replays a fixed list of draws (recorded from an
  earlier action) and raises :class:`~warbook.domain.errors.DiceExhausted`
  when it runs out.
- :class:`RecordingDice`: wraps any source and keeps every value it handed
  out, which is what replay scripts are built from.

Examples:
    >>> seed = generate_seed(game_id=1, round=2, phase="combat", context="break_test")
    >>> result = roll_dice(seed, "2d6")
    >>> result["notation"], len(result["rolls"])
    ('2d6', 2)
"""

from __future__ import annotations

import hashlib
import random
import re
from collections.abc import Iterable
from typing import Any, Protocol

from warbook.domain.errors import DiceExhausted


class DiceSource(Protocol):
    """Contract every dice source honours."""

    def roll(self, count: int, sides: int = 6) -> list[int]:
        """Return ``count`` values in ``1..sides``."""
        ...


def generate_seed(game_id: int, round: int, phase: str, context: str) -> str:
    """Generate deterministic seed from game state.

    Format: "game_id:round:phase:context"

    Args:
        game_id: Game identifier
        round: Current battle round (0 during deployment)
        phase: Current phase name
        context: What the roll is for (e.g., 'break_test_unit_3')

    Returns:
        Seed string for the RNG

    Raises:
        ValueError: If game_id or round is negative
    """
    if game_id < 0:
        raise ValueError(f"game_id must be non-negative, got {game_id}")
    if round < 0:
        raise ValueError(f"round must be non-negative, got {round}")

    return f"{game_id}:{round}:{phase}:{context}"


def _seed_to_int(seed: str) -> int:
    """Convert seed string to a stable 64-bit integer for random.Random()."""
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    # Use first 8 bytes for a 64-bit integer
    return int.from_bytes(digest[:8], "big", signed=False)


def _parse_dice_notation(notation: str) -> tuple[int, int]:
    """Parse dice notation like '2d6' into (num_dice, num_sides).

    Raises:
        ValueError: If notation is invalid or values are non-positive

    Examples:
        >>> _parse_dice_notation("2d6")
        (2, 6)
    """
    match = re.match(r"^(\d+)d(\d+)$", notation.lower())
    if not match:
        raise ValueError(
            f"Invalid dice notation: '{notation}'. Expected format: NdM (e.g., '2d6', '1d3')"
        )

    num_dice = int(match.group(1))
    num_sides = int(match.group(2))

    if num_dice <= 0:
        raise ValueError(f"Number of dice must be positive, got {num_dice}")
    if num_sides <= 0:
        raise ValueError(f"Number of sides must be positive, got {num_sides}")

    return num_dice, num_sides


def roll_dice(seed: str, notation: str = "2d6") -> dict[str, Any]:
    """Roll dice with deterministic seed.

    The same seed and notation always produce the same results.

    Args:
        seed: Deterministic seed string (from generate_seed)
        notation: Dice notation (e.g., "2d6", "1d6", "10d6")

    Returns:
        Dictionary containing:
            - notation: The dice notation used
            - rolls: List of individual die rolls
            - total: Sum of all rolls
            - seed: The seed used

    Raises:
        ValueError: If dice notation is invalid
    """
    num_dice, num_sides = _parse_dice_notation(notation)

    rng = random.Random(_seed_to_int(seed))
    rolls = [rng.randint(1, num_sides) for _ in range(num_dice)]

    return {
        "notation": notation,
        "rolls": rolls,
        "total": sum(rolls),
        "seed": seed,
    }


class SeededDice:
    """Deterministic dice: each request is seeded from ``seed`` and a counter."""

    def __init__(self, seed: str) -> None:
        self.seed = seed
        self.requests = 0

    def roll(self, count: int, sides: int = 6) -> list[int]:
        if count <= 0:
            return []
        self.requests += 1
        result = roll_dice(f"{self.seed}:{self.requests}", f"{count}d{sides}")
        return list(result["rolls"])


class ScriptedDice:
    """Replays a fixed sequence of draws."""

    def __init__(self, draws: Iterable[int]) -> None:
        self._draws = list(draws)
        self._position = 0

    @property
    def remaining(self) -> int:
        return len(self._draws) - self._position

    def roll(self, count: int, sides: int = 6) -> list[int]:
        if count <= 0:
            return []
        if count > self.remaining:
            raise DiceExhausted(
                f"requested {count} dice but only {self.remaining} scripted draws remain"
            )
        values = self._draws[self._position : self._position + count]
        for value in values:
            if not 1 <= value <= sides:
                raise ValueError(f"scripted draw {value} is not a valid d{sides} result")
        self._position += count
        return list(values)


class RecordingDice:
    """Keeps every value handed out by the wrapped source, in draw order."""

    def __init__(self, source: DiceSource) -> None:
        self.source = source
        self.history: list[int] = []

    def roll(self, count: int, sides: int = 6) -> list[int]:
        values = self.source.roll(count, sides)
        self.history.extend(values)
        return values

    def mark(self) -> int:
        """Current position in the history, used to slice one action's draws."""

        return len(self.history)

    def since(self, mark: int) -> list[int]:
        return list(self.history[mark:])
