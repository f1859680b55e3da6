"""Tests for block intro lines and duration estimates."""

import pytest

from coach.intro import (
    block_subtitle,
    build_block_intro_line,
    estimate_block_duration_sec,
    exercise_targets_line,
    format_clock,
)
from core.context import BlockInfo, Mode, Pattern


def _block(**kwargs):
    defaults = dict(id="b1", pattern=Pattern.SUPERSET, mode=Mode.REPS, exercise_ids=("bench", "lunge", "plank"))
    defaults.update(kwargs)
    return BlockInfo(**defaults)


class TestIntroLine:
    def test_time_block(self, ctx):
        block = _block(pattern=Pattern.CIRCUIT, mode=Mode.TIME, work_sec=30, rest_sec=15)
        assert build_block_intro_line(block, ctx) == "Circuit — 3 exercises • 30s on / 15s off. First up: Bench Press."

    def test_single_exercise_is_singular(self, ctx):
        block = _block(pattern=Pattern.STRAIGHT_SETS, mode=Mode.TIME, exercise_ids=("plank",), work_sec=40, rest_sec=20)
        assert build_block_intro_line(block, ctx).startswith("Straight Sets — 1 exercise •")

    def test_rep_block_uses_default_pace(self, ctx):
        block = _block(sets_per_exercise=4)
        assert build_block_intro_line(block, ctx) == "Superset — 4 rounds • cadence 3:00. First up: Bench Press."

    def test_custom_pattern_is_called_block(self, ctx):
        block = _block(pattern=Pattern.CUSTOM, sets_per_exercise=1)
        assert build_block_intro_line(block, ctx, 95) == "Block — 1 round • cadence 1:35. First up: Bench Press."

    def test_unknown_first_exercise_uses_id(self, ctx):
        block = _block(exercise_ids=("row",))
        assert build_block_intro_line(block, ctx).endswith("First up: row.")

    def test_empty_block(self, ctx):
        assert build_block_intro_line(_block(exercise_ids=()), ctx).endswith("First up: first exercise.")


class TestDurations:
    @pytest.mark.parametrize("seconds, text", [(0, "0:00"), (59, "0:59"), (90, "1:30"), (600, "10:00")])
    def test_format_clock(self, seconds, text):
        assert format_clock(seconds) == text

    def test_explicit_duration_wins(self):
        assert estimate_block_duration_sec(_block(duration_sec=720)) == 720

    def test_circuit_adds_round_rest_between_rounds(self):
        block = _block(pattern=Pattern.CIRCUIT, mode=Mode.TIME, work_sec=30, rest_sec=15, sets_per_exercise=3, round_rest_sec=60)
        # 3 rounds of 3 x 45 s plus two round rests
        assert estimate_block_duration_sec(block) == 3 * 135 + 2 * 60

    def test_straight_sets_time_block(self):
        block = _block(pattern=Pattern.STRAIGHT_SETS, mode=Mode.TIME, work_sec=40, rest_sec=20, sets_per_exercise=2)
        assert estimate_block_duration_sec(block) == 3 * 2 * 60

    @pytest.mark.parametrize("pace, expected", [(None, 3 * 180), (30, 3 * 90), (150, 3 * 150), (1200, 3 * 600)])
    def test_rep_block_pace_is_clamped(self, pace, expected):
        assert estimate_block_duration_sec(_block(sets_per_exercise=3), pace) == expected

    def test_targets_and_subtitle(self):
        time_block = _block(mode=Mode.TIME, work_sec=30, rest_sec=30, sets_per_exercise=3)
        assert exercise_targets_line(time_block, "Plank") == "Plank 30/30 ×3"
        assert exercise_targets_line(_block(target_reps="8-10"), "Bench Press") == "Bench Press 8-10"
        assert block_subtitle(_block(sets_per_exercise=3), 150) == "Superset ×3 rounds • cadence 2:30"
