"""Tests for the command-line interface."""

import argparse
from pathlib import Path

import pytest

from cadence.cli import build_parser, format_offset, main, parse_exercise

SAMPLE_TIMELINE = Path(__file__).parents[2] / "timelines" / "straight_sets.json"


class TestParseExercise:
    def test_name_only(self):
        exercise = parse_exercise("Bench Press")
        assert exercise.id == "bench-press"
        assert exercise.name == "Bench Press"
        assert exercise.estimated_time_sec is None
        assert not exercise.unilateral

    def test_estimate_and_unilateral(self):
        exercise = parse_exercise("Walking Lunge:75:u")
        assert exercise.estimated_time_sec == 75
        assert exercise.unilateral

    @pytest.mark.parametrize("text", ["", ":40", "Row:fast"])
    def test_invalid(self, text):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_exercise(text)


def test_format_offset():
    assert format_offset(0) == "0:00.0"
    assert format_offset(65_500) == "1:05.5"
    assert format_offset(-10) == "0:00.0"


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


class TestPreview:
    @pytest.fixture
    def settings_path(self, tmp_path):
        return str(tmp_path / "missing.toml")

    def test_round_block(self, settings_path, capsys):
        code = main(["preview", "--settings", settings_path, "--rounds", "2", "--round-sec", "60"])

        out = capsys.readouterr().out
        assert code == 0
        assert "[0:05.0] tone    start" in out
        assert "[1:05.0] tone    end" in out
        assert "[2:12.0] event   WorkoutEnd()" in out
        assert " say " in out

    def test_custom_exercises(self, settings_path, capsys):
        main(["preview", "--settings", settings_path, "--rounds", "1", "--exercise", "Row:40", "--exercise", "Squat:60"])

        out = capsys.readouterr().out
        assert "WorkStart(exercise_id='row'" in out

    def test_silent_prints_captions_but_no_speech(self, settings_path, capsys):
        main(["preview", "--settings", settings_path, "--chatter", "silent", "--rounds", "1"])

        out = capsys.readouterr().out
        assert " caption " in out
        assert " say " not in out

    def test_high_chatter_voices_the_clock_without_tones(self, settings_path, capsys):
        main(["preview", "--settings", settings_path, "--chatter", "high", "--rounds", "1"])

        out = capsys.readouterr().out
        assert " tone " not in out
        assert " say " in out

    def test_timeline_file(self, settings_path, capsys):
        code = main(["preview", "--settings", settings_path, "--timeline", str(SAMPLE_TIMELINE)])

        out = capsys.readouterr().out
        assert code == 0
        assert "[0:08.0] event   WorkStart(exercise_id='bench-press'" in out
        assert "event   WorkoutEnd()" in out

    def test_too_many_exercises(self, settings_path, capsys):
        args = ["preview", "--settings", settings_path]
        for name in ("A", "B", "C", "D"):
            args += ["--exercise", name]

        assert main(args) == 1
        assert "at most three" in capsys.readouterr().out
