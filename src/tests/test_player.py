"""Tests for the timeline player."""

import json
from pathlib import Path

import pytest

from core.events import (
    AwaitReady,
    BlockEnd,
    BlockStart,
    Countdown,
    Halfway,
    RestEnd,
    RestStart,
    RoundCountdown,
    RoundRestEnd,
    RoundRestStart,
    WorkEnd,
    WorkoutEnd,
    WorkStart,
)
from runtime.player import RoundBlock, StepKind, TimelinePlayer, TimelineStep, load_timeline, map_step

SAMPLE_TIMELINE = Path(__file__).parents[2] / "timelines" / "straight_sets.json"


def _step(index, kind, start, end=None, **kwargs):
    return TimelineStep(index, kind, start, start if end is None else end, **kwargs)


@pytest.fixture
def player(scheduler, ctx):
    return TimelinePlayer(scheduler, ctx=ctx, block_id="b1")


@pytest.fixture
def timed(player, scheduler):
    """Events emitted by the player, with the time they arrived."""
    events = []
    player.subscribe(lambda event: events.append((scheduler.now_ms(), event)))
    return events


class TestMapStep:
    def test_work_maps_to_start_and_end(self):
        step = _step(0, StepKind.WORK, 0, 45000, exercise_id="bench", set_number=2, round_number=3)
        assert map_step(step, True) == WorkStart("bench", 1, 2)
        assert map_step(step, False) == WorkEnd("bench", 2)

    def test_work_without_exercise(self):
        assert map_step(_step(0, StepKind.WORK, 0, 1000), True) == WorkStart("unknown")

    def test_rest_defaults(self):
        step = _step(0, StepKind.REST, 0, 1000)
        assert map_step(step, True) == RestStart(90, reason="between_sets")
        assert map_step(step, False) == RestEnd()

    def test_round_rest(self):
        step = _step(0, StepKind.ROUND_REST, 0, 1000, duration_sec=45, round_number=1)
        assert map_step(step, True) == RoundRestStart(45, 0)
        assert map_step(step, False) == RoundRestEnd()

    def test_start_only_kinds(self):
        assert map_step(_step(0, StepKind.INSTRUCTION, 0, 5000), True, "b9") == BlockStart("b9")
        assert map_step(_step(0, StepKind.INSTRUCTION, 0, 5000), False) is None
        assert map_step(_step(0, StepKind.COUNTDOWN, 0, 3000), True) == Countdown(3)
        assert map_step(_step(0, StepKind.AWAIT_READY, 0), True, "b9") == AwaitReady("b9")

    @pytest.mark.parametrize("at_start", [True, False])
    def test_transition_is_silent(self, at_start):
        assert map_step(_step(0, StepKind.TRANSITION, 0, 5000), at_start) is None


class TestLoadTimeline:
    def test_sample_file(self):
        steps = load_timeline(SAMPLE_TIMELINE)
        assert len(steps) == 8
        assert steps[0].kind is StepKind.INSTRUCTION
        assert steps[-1].kind is StepKind.ROUND_REST

    def test_list_form_is_sorted(self, tmp_path):
        path = tmp_path / "timeline.json"
        path.write_text(
            json.dumps(
                [
                    {"step_index": 1, "kind": "rest", "start_offset_ms": 30000, "end_offset_ms": 60000},
                    {"step_index": 0, "kind": "work", "start_offset_ms": 0, "end_offset_ms": 30000},
                ]
            )
        )

        steps = load_timeline(path)

        assert [step.step_index for step in steps] == [0, 1]
        assert steps[1].end_offset_ms == 60000

    def test_unknown_kind_raises(self, tmp_path):
        path = tmp_path / "timeline.json"
        path.write_text(json.dumps({"steps": [{"kind": "nap", "start_offset_ms": 0}]}))
        with pytest.raises(ValueError):
            load_timeline(path)


class TestTimelinePlayback:
    def test_sample_timeline_events(self, player, scheduler, timed):
        player.start(load_timeline(SAMPLE_TIMELINE))
        scheduler.run_until_idle()

        assert timed == [
            (0, BlockStart("b1")),
            (5000, AwaitReady("b1")),
            (5000, Countdown(3)),
            (8000, WorkStart("bench-press", 0)),
            (53000, WorkEnd("bench-press")),
            (53000, RestStart(90, reason="between_sets")),
            (143000, RestEnd()),
            (143000, WorkStart("bench-press", 1)),
            (188000, WorkEnd("bench-press")),
            (193000, RoundRestStart(60, 0)),
            (253000, RoundRestEnd()),
            (254000, BlockEnd("b1")),
            (255000, WorkoutEnd()),
        ]

    def test_implicit_block_start(self, player, scheduler, timed):
        player.start([_step(0, StepKind.WORK, 1000, 31000, exercise_id="bench")])
        scheduler.run_until_idle()

        assert timed[0] == (0, BlockStart("b1"))
        assert timed[-2:] == [(32000, BlockEnd("b1")), (33000, WorkoutEnd())]

    def test_empty_timeline(self, player, scheduler, timed):
        player.start([])
        scheduler.run_until_idle()
        assert timed == [(0, BlockStart("b1"))]

    def test_offsets_relative_to_start(self, player, scheduler, timed):
        scheduler.advance(10_000)
        player.start([_step(0, StepKind.WORK, 1000, 2000, exercise_id="bench")])
        scheduler.run_until_idle()

        assert player.started_at_ms == 10_000
        assert timed[1] == (11_000, WorkStart("bench"))

    def test_pause_drops_and_resume_continues(self, player, scheduler, timed):
        player.start(
            [
                _step(0, StepKind.WORK, 0, 30000, exercise_id="bench"),
                _step(1, StepKind.REST, 30000, 60000, duration_sec=30),
            ]
        )
        scheduler.advance(10_000)
        player.pause()
        scheduler.advance(30_000)
        assert player.is_paused
        player.resume()
        scheduler.run_until_idle()

        events = [event for _, event in timed]
        assert WorkEnd("bench") not in events
        assert RestStart(30, reason="between_sets") not in events
        assert RestEnd() in events
        assert events[-1] == WorkoutEnd()

    def test_stop_is_idempotent(self, player, scheduler, timed):
        player.start(load_timeline(SAMPLE_TIMELINE))
        scheduler.advance(6000)
        count = len(timed)

        player.stop()
        player.stop()
        scheduler.run_until_idle()

        assert len(timed) == count
        assert scheduler.pending == 0

    def test_restart_replaces_previous_run(self, player, scheduler, timed):
        player.start([_step(0, StepKind.WORK, 5000, 6000, exercise_id="bench")])
        player.start([_step(0, StepKind.WORK, 5000, 6000, exercise_id="plank")])
        scheduler.run_until_idle()

        starts = [event for _, event in timed if isinstance(event, WorkStart)]
        assert starts == [WorkStart("plank")]


class TestRoundBlocks:
    @pytest.fixture
    def block(self, exercises):
        return RoundBlock("rounds", tuple(exercises), round_sec=60, round_rest_sec=30, total_rounds=2, lead_ms=2000)

    def _track(self, timed, *types):
        return [(t, e) for t, e in timed if isinstance(e, types)]

    def test_round_timing(self, player, scheduler, timed, block):
        player.start_rounds(block)
        scheduler.run_until_idle()

        tracked = self._track(
            timed, BlockStart, WorkStart, WorkEnd, RoundRestStart, RoundCountdown, BlockEnd, WorkoutEnd
        )
        assert tracked == [
            (0, BlockStart("rounds")),
            (5000, WorkStart("bench", 0, 0)),
            (65000, WorkEnd("bench", 0)),
            (65700, RoundRestStart(30, 0)),
            (68000, RoundCountdown(2)),
            (69000, RoundCountdown(1)),
            (70000, RoundCountdown(0)),
            (70000, WorkStart("bench", 1, 1)),
            (130000, WorkEnd("bench", 1)),
            (130700, RoundRestStart(30, 1)),
            (131000, BlockEnd("rounds")),
            (132000, WorkoutEnd()),
        ]

    def test_halfway_each_round(self, player, scheduler, timed, block):
        player.start_rounds(block)
        scheduler.run_until_idle()
        assert [t for t, _ in self._track(timed, Halfway)] == [35000, 100000]

    def test_pause_gates_round_cues(self, player, scheduler, timed, block):
        player.start_rounds(block)
        scheduler.advance(4000)
        player.pause()
        scheduler.advance(62_000)  # t=66000
        player.resume()
        scheduler.run_until_idle()

        tracked = self._track(timed, WorkStart, WorkEnd, RoundRestStart)
        assert tracked == [
            (70000, WorkStart("bench", 1, 1)),
            (130000, WorkEnd("bench", 1)),
            (130700, RoundRestStart(30, 1)),
        ]

    def test_stop_cancels_later_rounds(self, player, scheduler, timed, block):
        player.start_rounds(block)
        scheduler.advance(20_000)
        player.stop()
        scheduler.run_until_idle()

        assert all(t <= 20_000 for t, _ in timed)
        assert scheduler.pending == 0
