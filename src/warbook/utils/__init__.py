"""Utility functions for the Warbook rules engine."""

from warbook.utils.rng import (
    DiceSource,
    RecordingDice,
    ScriptedDice,
    SeededDice,
    generate_seed,
    roll_dice,
)

__all__ = [
    "DiceSource",
    "RecordingDice",
    "ScriptedDice",
    "SeededDice",
    "generate_seed",
    "roll_dice",
]
