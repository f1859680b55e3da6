"""Tests for the round scheduler and the technique hint scheduler."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from audio.tones import ToneEngine, ToneKind
from coach.pacing import PacingWindow
from coach.round_scheduler import RoundPhase, RoundScheduler
from core.context import ChatterLevel
from core.events import (
    Halfway,
    LastSeconds,
    RoundCountdown,
    RoundRestStart,
    TechHint,
    WorkEnd,
    WorkPreview,
    WorkStart,
)


@pytest.fixture
def harness(scheduler, ctx):
    events, tones, captions = [], [], []
    engine = ToneEngine(
        scheduler,
        output_factory=MagicMock,
        on_play=lambda kind: tones.append((scheduler.now_ms(), kind)),
    )
    ctx.caption = captions.append
    rounds = RoundScheduler(scheduler, ctx, lambda event: events.append((scheduler.now_ms(), event)), tones=engine)
    return SimpleNamespace(rounds=rounds, events=events, tones=tones, captions=captions, ctx=ctx)


def _of_type(events, event_type):
    return [(t, e) for t, e in events if isinstance(e, event_type)]


def _windows(exercises, confidence):
    return [
        PacingWindow(exercises[0].id, 0, 60, confidence),
        PacingWindow(exercises[1].id, 60, 60, confidence),
        PacingWindow(exercises[2].id, 120, 60, confidence),
    ]


class TestCanonicalTiming:
    def test_round_offsets(self, scheduler, harness, exercises):
        harness.ctx.chatter_level = ChatterLevel.MINIMAL

        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=2)
        scheduler.run_until_idle()

        assert harness.tones == [
            (0, ToneKind.COUNTDOWN),
            (1000, ToneKind.COUNTDOWN),
            (2000, ToneKind.COUNTDOWN),
            (3000, ToneKind.START),
            (63000, ToneKind.COUNTDOWN),
            (123000, ToneKind.COUNTDOWN),
            (143000, ToneKind.LAST_SECONDS),
            (153000, ToneKind.END),
            (156000, ToneKind.COUNTDOWN),
            (157000, ToneKind.COUNTDOWN),
            (158000, ToneKind.COUNTDOWN),
            (158000, ToneKind.START),
        ]
        assert _of_type(harness.events, WorkStart) == [(3000, WorkStart("bench", 0, 0))]
        assert _of_type(harness.events, WorkEnd) == [(153000, WorkEnd("bench", 0))]
        assert _of_type(harness.events, RoundRestStart) == [(153700, RoundRestStart(60, 0))]
        assert _of_type(harness.events, RoundCountdown) == [
            (156000, RoundCountdown(2)),
            (157000, RoundCountdown(1)),
            (158000, RoundCountdown(0)),
        ]

    def test_final_round_has_no_next_countdown(self, scheduler, harness, exercises):
        harness.rounds.schedule(1, 150, 60, exercises, total_rounds=2)
        scheduler.run_until_idle()

        assert _of_type(harness.events, RoundCountdown) == []
        assert harness.tones[-1] == (153000, ToneKind.END)
        assert harness.rounds.current_phase is RoundPhase.DONE

    def test_lead_time_shifts_the_round_and_enables_preview(self, scheduler, harness, exercises):
        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=3, lead_ms=2000)
        scheduler.run_until_idle()

        assert harness.events[0] == (0, WorkPreview("bench", round_index=0, total_rounds=3))
        assert harness.tones[0] == (2000, ToneKind.COUNTDOWN)
        assert _of_type(harness.events, WorkStart)[0][0] == 5000

    def test_no_preview_without_lead_time(self, scheduler, harness, exercises):
        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=3)
        scheduler.run_until_idle()
        assert _of_type(harness.events, WorkPreview) == []

    def test_round_after_between_countdown_starts_on_the_go(self, scheduler, harness, exercises):
        harness.rounds.schedule(1, 150, 60, exercises, total_rounds=3, countdown=False)
        scheduler.run_until_idle()

        assert _of_type(harness.events, WorkStart) == [(0, WorkStart("bench", 1, 1))]
        assert (0, ToneKind.START) not in harness.tones
        assert _of_type(harness.events, WorkEnd)[0][0] == 150000

    def test_phase_progression(self, scheduler, harness, exercises):
        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=2)
        assert harness.rounds.current_phase is RoundPhase.IDLE

        scheduler.advance_to(1000)
        assert harness.rounds.current_phase is RoundPhase.COUNTDOWN
        scheduler.advance_to(3000)
        assert harness.rounds.current_phase is RoundPhase.WORK
        scheduler.advance_to(143000)
        assert harness.rounds.current_phase is RoundPhase.LAST_SECONDS
        scheduler.advance_to(153700)
        assert harness.rounds.current_phase is RoundPhase.ROUND_REST
        scheduler.advance_to(156000)
        assert harness.rounds.current_phase is RoundPhase.BETWEEN_COUNTDOWN
        scheduler.run_until_idle()
        assert harness.rounds.current_phase is RoundPhase.DONE


class TestChatterLevels:
    def test_high_speaks_last_seconds_instead_of_pip(self, scheduler, harness, exercises):
        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=1)
        scheduler.run_until_idle()

        assert _of_type(harness.events, LastSeconds) == [(143000, LastSeconds(10, 0))]
        assert (143000, ToneKind.LAST_SECONDS) not in harness.tones

    def test_halfway_only_at_high(self, scheduler, harness, exercises):
        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=1)
        scheduler.run_until_idle()
        assert _of_type(harness.events, Halfway) == [(78000, Halfway("bench"))]

    def test_no_halfway_at_minimal(self, scheduler, harness, exercises):
        harness.ctx.chatter_level = ChatterLevel.MINIMAL
        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=1)
        scheduler.run_until_idle()
        assert _of_type(harness.events, Halfway) == []

    def test_minute_marks_caption_time_left(self, scheduler, harness, exercises):
        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=1)
        scheduler.run_until_idle()
        assert harness.captions == ["1:30 left", "0:30 left"]

    def test_silent_has_no_captions(self, scheduler, harness, exercises):
        harness.ctx.chatter_level = ChatterLevel.SILENT
        harness.rounds.schedule(0, 150, 60, exercises, total_rounds=1)
        scheduler.run_until_idle()
        assert harness.captions == []
        assert (63000, ToneKind.COUNTDOWN) in harness.tones


class TestCancellation:
    def test_cancel_before_go_stops_everything(self, scheduler, harness, exercises):
        handle = harness.rounds.schedule(0, 150, 60, exercises, total_rounds=2)

        scheduler.advance(500)
        handle.cancel()
        events_at_cancel = list(harness.events)
        scheduler.run_until_idle()

        assert harness.events == events_at_cancel == []
        assert harness.tones == [(0, ToneKind.COUNTDOWN)]
        assert harness.rounds.current_phase is RoundPhase.CANCELLED

    def test_cancel_is_idempotent_and_safe_after_completion(self, scheduler, harness, exercises):
        handle = harness.rounds.schedule(0, 150, 60, exercises, total_rounds=1)
        scheduler.run_until_idle()
        count = len(harness.events)

        handle.cancel()
        handle.cancel()
        scheduler.run_until_idle()

        assert len(harness.events) == count
        assert harness.rounds.current_phase is RoundPhase.DONE

    def test_cancel_also_stops_pending_hints(self, scheduler, harness, exercises):
        handle = harness.rounds.schedule(2, 180, 60, exercises, total_rounds=4, windows=_windows(exercises, 1.0))
        scheduler.advance(10_000)
        handle.cancel()
        scheduler.run_until_idle()
        assert _of_type(harness.events, TechHint) == []

    def test_closed_gate_drops_cues(self, scheduler, ctx, exercises):
        events = []
        rounds = RoundScheduler(scheduler, ctx, events.append, gate=lambda: False)
        rounds.schedule(2, 180, 60, exercises, total_rounds=3, windows=_windows(exercises, 1.0))
        scheduler.run_until_idle()
        assert events == []


class TestTechHints:
    def test_at_most_one_hint_when_both_slots_eligible(self, scheduler, harness, exercises):
        harness.rounds.schedule(2, 180, 60, exercises, total_rounds=4, windows=_windows(exercises, 1.0))
        scheduler.run_until_idle()

        hints = _of_type(harness.events, TechHint)
        assert len(hints) == 1
        at, hint = hints[0]
        assert hint.exercise_id == "lunge"
        assert at == 3000 + 60_000 + 3000

    def test_alternation_moves_hint_to_third_exercise(self, scheduler, harness, exercises):
        harness.rounds.schedule(1, 180, 60, exercises, total_rounds=4, windows=_windows(exercises, 1.0))
        scheduler.run_until_idle()

        hints = _of_type(harness.events, TechHint)
        assert [hint.exercise_id for _, hint in hints] == ["plank"]
        assert hints[0][1].cue == "Squeeze your glutes"

    @pytest.mark.parametrize("round_index", [1, 2, 3, 4, 5])
    def test_never_more_than_one_hint_per_round(self, scheduler, harness, exercises, round_index):
        harness.rounds.schedule(round_index, 180, 60, exercises, total_rounds=6)
        scheduler.run_until_idle()
        assert len(_of_type(harness.events, TechHint)) <= 1

    def test_no_hint_at_minimal_in_first_round(self, scheduler, harness, exercises):
        harness.ctx.chatter_level = ChatterLevel.MINIMAL
        harness.rounds.schedule(0, 180, 60, exercises, total_rounds=3, windows=_windows(exercises, 1.0))
        scheduler.run_until_idle()
        assert _of_type(harness.events, TechHint) == []

    def test_no_hint_below_confidence(self, scheduler, harness, exercises):
        harness.rounds.schedule(2, 180, 60, exercises, total_rounds=3, windows=_windows(exercises, 0.5))
        scheduler.run_until_idle()
        assert _of_type(harness.events, TechHint) == []

    def test_confidence_threshold_is_configurable(self, scheduler, ctx, exercises):
        events = []
        rounds = RoundScheduler(scheduler, ctx, events.append, confidence_threshold=0.4)
        rounds.schedule(2, 180, 60, exercises, total_rounds=3, windows=_windows(exercises, 0.5))
        scheduler.run_until_idle()
        assert len([e for e in events if isinstance(e, TechHint)]) == 1

    def test_no_hint_without_a_cue(self, scheduler, harness, exercises):
        harness.rounds.schedule(
            2, 180, 60, exercises, total_rounds=3, windows=_windows(exercises, 1.0), get_cue=lambda ex_id: None
        )
        scheduler.run_until_idle()
        assert _of_type(harness.events, TechHint) == []

    def test_no_hint_too_close_to_round_end(self, scheduler, harness, exercises):
        late = [
            PacingWindow("bench", 0, 165, 1.0),
            PacingWindow("lunge", 165, 5, 1.0),
            PacingWindow("plank", 170, 10, 1.0),
        ]
        harness.rounds.schedule(2, 180, 60, exercises, total_rounds=3, windows=late)
        scheduler.run_until_idle()
        assert _of_type(harness.events, TechHint) == []

    def test_single_exercise_round_has_no_hint_slots(self, scheduler, harness, exercises):
        harness.rounds.schedule(2, 180, 60, exercises[:1], total_rounds=3)
        scheduler.run_until_idle()
        assert _of_type(harness.events, TechHint) == []
