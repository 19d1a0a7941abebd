"""Tests for the deterministic dice sources.

Tests cover:
- Seed generation and validation
- Determinism of seeded rolls
- Dice notation parsing
- Scripted replay and exhaustion
- Recording of draws
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from warbook.domain.errors import DiceExhausted
from warbook.utils.rng import (
    RecordingDice,
    ScriptedDice,
    SeededDice,
    generate_seed,
    roll_dice,
)


class TestGenerateSeed:
    """Tests for generate_seed function."""

    def test_basic_seed_generation(self):
        seed = generate_seed(1, 3, "combat", "break_test")
        assert seed == "1:3:combat:break_test"

    def test_different_parameters_produce_different_seeds(self):
        seeds = {
            generate_seed(1, 1, "combat", "test"),
            generate_seed(2, 1, "combat", "test"),
            generate_seed(1, 2, "combat", "test"),
            generate_seed(1, 1, "shooting", "test"),
            generate_seed(1, 1, "combat", "other"),
        }
        assert len(seeds) == 5, "All seeds should be unique"

    def test_negative_game_id_raises_error(self):
        with pytest.raises(ValueError, match="game_id must be non-negative"):
            generate_seed(-1, 1, "combat", "test")

    def test_negative_round_raises_error(self):
        with pytest.raises(ValueError, match="round must be non-negative"):
            generate_seed(1, -1, "combat", "test")

    def test_zero_values_allowed(self):
        """Deployment happens in round zero."""
        assert generate_seed(0, 0, "deployment", "test") == "0:0:deployment:test"

    @given(
        game_id=st.integers(min_value=0, max_value=10000),
        round=st.integers(min_value=0, max_value=100),
        phase=st.text(min_size=1),
        context=st.text(min_size=1),
    )
    def test_seed_generation_properties(self, game_id, round, phase, context):
        assert generate_seed(game_id, round, phase, context) == (
            f"{game_id}:{round}:{phase}:{context}"
        )


class TestRollDice:
    """Tests for roll_dice function."""

    def test_determinism_same_seed_same_result(self):
        seed = generate_seed(1, 1, "combat", "test")
        assert roll_dice(seed, "2d6") == roll_dice(seed, "2d6")

    def test_result_structure(self):
        result = roll_dice("seed", "3d6")
        assert result["notation"] == "3d6"
        assert len(result["rolls"]) == 3
        assert result["total"] == sum(result["rolls"])
        assert result["seed"] == "seed"

    def test_different_seeds_vary(self):
        totals = {roll_dice(generate_seed(1, i, "combat", "a"), "2d6")["total"] for i in range(20)}
        assert len(totals) > 1

    @pytest.mark.parametrize("notation", ["d6", "2x6", "0d6", "2d0", "abc", ""])
    def test_invalid_notation_raises(self, notation):
        with pytest.raises(ValueError):
            roll_dice("seed", notation)

    def test_notation_is_case_insensitive(self):
        assert roll_dice("seed", "2D6")["rolls"] == roll_dice("seed", "2d6")["rolls"]

    @given(
        seed=st.text(min_size=1),
        count=st.integers(min_value=1, max_value=20),
        sides=st.sampled_from([3, 6]),
    )
    def test_rolls_stay_in_range(self, seed, count, sides):
        result = roll_dice(seed, f"{count}d{sides}")
        assert all(1 <= value <= sides for value in result["rolls"])


class TestSeededDice:
    def test_same_seed_same_sequence(self):
        first = SeededDice("game-1")
        second = SeededDice("game-1")
        assert [first.roll(2) for _ in range(5)] == [second.roll(2) for _ in range(5)]

    def test_successive_requests_use_fresh_seeds(self):
        dice = SeededDice("game-1")
        dice.roll(2)
        dice.roll(2)
        assert dice.requests == 2

    def test_zero_dice_roll_nothing(self):
        dice = SeededDice("game-1")
        assert dice.roll(0) == []
        assert dice.requests == 0


class TestScriptedDice:
    def test_replays_draws_in_order(self):
        dice = ScriptedDice([1, 2, 3, 4, 5])
        assert dice.roll(2) == [1, 2]
        assert dice.roll(3) == [3, 4, 5]
        assert dice.remaining == 0

    def test_exhaustion_raises(self):
        dice = ScriptedDice([6])
        with pytest.raises(DiceExhausted):
            dice.roll(2)
        assert dice.remaining == 1

    def test_invalid_scripted_value_raises(self):
        with pytest.raises(ValueError, match="not a valid d6"):
            ScriptedDice([7]).roll(1)


class TestRecordingDice:
    def test_records_every_draw(self):
        dice = RecordingDice(ScriptedDice([4, 5, 6, 1]))
        dice.roll(2)
        mark = dice.mark()
        dice.roll(2)

        assert dice.history == [4, 5, 6, 1]
        assert dice.since(mark) == [6, 1]

    def test_recorded_draws_replay_identically(self):
        recording = RecordingDice(SeededDice("replay"))
        original = [recording.roll(2) for _ in range(3)]

        replayed = ScriptedDice(recording.history)
        assert [replayed.roll(2) for _ in range(3)] == original
