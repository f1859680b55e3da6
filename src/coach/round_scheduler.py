"""
Canonical rep-round scheduling.

A round is compiled into a plan of (offset, phase, action) cues and every
cue becomes its own cancellable timer. Offsets are relative to the moment
schedule() is called; T0 is the round's go tone:

    0                      preview (only with enough lead time)
    lead + 0/1000/2000     3-2-1 countdown pips
    T0 = lead + 3000       go tone + WorkStart
    T0 + 60 s, 120 s, ...  minute pips with a "m:ss left" caption
    T0 + round/2           Halfway (high chatter, clear of both boundaries)
    window start + 3 s     at most one technique hint (2nd or 3rd exercise)
    end - 10 s             last-seconds pip, or LastSeconds at high chatter
    end = T0 + round       end tone + WorkEnd
    end + 700 ms           RoundRestStart
    end + 3/4/5 s          RoundCountdown 2/1/0 with a pip each (not after the final round)
    end + 5 s              next go tone, right after the third pip
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum, auto

from loguru import logger

from audio.tones import ToneEngine, ToneKind
from core.clock import CancelHandle, CompositeHandle, Scheduler
from core.context import ChatterLevel, ExerciseMeta, SessionContext
from core.events import (
    Event,
    Halfway,
    HintSource,
    LastSeconds,
    RoundCountdown,
    RoundRestStart,
    TechHint,
    WorkEnd,
    WorkPreview,
    WorkStart,
)

from .cue_policy import (
    ALTERNATE_TECH_HINT,
    CONF_THRESH,
    MIN_REMAINING_SEC,
    TECH_OFFSET_MS,
    allow_halfway,
    allow_preview,
    allow_technical_hint,
    has_time_remaining,
    meets_confidence,
    prefer_second_exercise_this_round,
)
from .intro import format_clock
from .pacing import FLOOR_SEC, MIN_WINDOW_SEC, PacingWindow, compute_windows
from .responses import CueRotator

COUNTDOWN_LEAD_MS = 3000
PIP_INTERVAL_MS = 1000
ROUND_END_TO_SPEECH_MS = 700
ROUND_END_TO_COUNTDOWN_MS = 3000
ROUND_END_TO_NEXT_GO_MS = 5000
LAST_SECONDS = 10
PREVIEW_LEAD_MS = 1000


class RoundPhase(Enum):
    """
    Phases of one scheduled round.

    State diagram:

    IDLE
        │
        ├─[scheduled with lead time]─→ PREVIEW
        │
        └─[scheduled]─→ COUNTDOWN (or WORK when the go tone was already played)

    PREVIEW ─[first pip]─→ COUNTDOWN ─[go tone]─→ WORK

    WORK
        │
        └─[10 s left]─→ LAST_SECONDS ─[end tone]─→ ROUND_REST

    ROUND_REST
        │
        ├─[next round exists]─→ BETWEEN_COUNTDOWN ─[next go tone]─→ DONE
        │
        └─[final round, rest announced]─→ DONE

    any ─[cancel]─→ CANCELLED
    """

    IDLE = auto()
    PREVIEW = auto()
    COUNTDOWN = auto()
    WORK = auto()
    LAST_SECONDS = auto()
    ROUND_REST = auto()
    BETWEEN_COUNTDOWN = auto()
    DONE = auto()
    CANCELLED = auto()


@dataclass(frozen=True)
class PlannedCue:
    """One timed step of a round plan."""

    offset_ms: float
    phase: RoundPhase
    label: str
    action: Callable[[], None]


@dataclass(frozen=True)
class HintSlot:
    exercise_id: str
    at_ms: float
    confidence: float
    label: str


class TechHintScheduler:
    """
    Schedules the technique hint slots of one round.

    The second exercise's slot fires only when alternation prefers it this
    round; the third exercise's slot fires only if nothing has fired yet.
    Every slot re-checks confidence, remaining time and cue availability when
    it comes due. The fired flag caps a round at one hint.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        emit: Callable[[Event], None],
        chatter_level: ChatterLevel,
        round_index: int,
        round_end_ms: float,
        get_cue: Callable[[str], str | None],
        confidence_threshold: float = CONF_THRESH,
        min_remaining_sec: float = MIN_REMAINING_SEC,
        alternate: bool = ALTERNATE_TECH_HINT,
        gate: Callable[[], bool] | None = None,
    ):
        self._scheduler = scheduler
        self._emit = emit
        self._chatter_level = chatter_level
        self._round_index = round_index
        self._round_end_ms = round_end_ms
        self._get_cue = get_cue
        self._confidence_threshold = confidence_threshold
        self._min_remaining_sec = min_remaining_sec
        self._alternate = alternate
        self._gate = gate
        self.fired = False

    def _try_fire(self, slot: HintSlot) -> None:
        if self._gate is not None and not self._gate():
            logger.debug("[tech] {} skip: paused", slot.label)
            return
        if self.fired:
            logger.debug("[tech] {} skip: already fired this round", slot.label)
            return
        if not meets_confidence(slot.confidence, self._confidence_threshold):
            logger.debug(
                "[tech] {} skip: confidence {:.2f} < {:.2f}", slot.label, slot.confidence, self._confidence_threshold
            )
            return
        if not has_time_remaining(self._scheduler.now_ms(), self._round_end_ms, self._min_remaining_sec):
            logger.debug("[tech] {} skip: under {}s remaining", slot.label, self._min_remaining_sec)
            return
        cue = self._get_cue(slot.exercise_id)
        if not cue:
            logger.debug("[tech] {} skip: no cue available", slot.label)
            return

        self.fired = True
        logger.debug("[tech] {} fired: {!r}", slot.label, cue)
        self._emit(TechHint(exercise_id=slot.exercise_id, source=HintSource.PREDICTED, cue=cue))

    def schedule(self, second: HintSlot | None, third: HintSlot | None) -> CancelHandle:
        """
        Schedule both slots.

        Returns:
            Handle cancelling any slot still pending (an empty handle when
            hints are not allowed this round)
        """
        handle = CompositeHandle()
        if not allow_technical_hint(self._chatter_level, self._round_index):
            logger.debug("[tech] skip: chatter below high or first round")
            return handle

        prefer_second = prefer_second_exercise_this_round(self._round_index, self._alternate)
        now = self._scheduler.now_ms()

        if second is not None:

            def second_slot() -> None:
                if prefer_second:
                    self._try_fire(second)
                else:
                    logger.debug("[tech] {} deferred by alternation", second.label)

            handle.add(self._scheduler.call_later(second.at_ms - now, second_slot))

        if third is not None:
            handle.add(self._scheduler.call_later(third.at_ms - now, lambda: self._try_fire(third)))

        return handle


class RoundScheduler:
    """
    Orchestrates the tones and events of rep rounds.

    Tones go through the tone engine, events through emit, and minute-mark
    captions through the session context. An optional gate is consulted
    immediately before every cue; a cue whose gate is closed is dropped.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        ctx: SessionContext,
        emit: Callable[[Event], None],
        tones: ToneEngine | None = None,
        confidence_threshold: float = CONF_THRESH,
        preview_lead_ms: float = PREVIEW_LEAD_MS,
        floor_sec: float = FLOOR_SEC,
        min_window_sec: float = MIN_WINDOW_SEC,
        gate: Callable[[], bool] | None = None,
    ):
        self._scheduler = scheduler
        self._ctx = ctx
        self._emit = emit
        self._tones = tones
        self.confidence_threshold = confidence_threshold
        self.preview_lead_ms = preview_lead_ms
        self.floor_sec = floor_sec
        self.min_window_sec = min_window_sec
        self._gate = gate
        self._rotator = CueRotator()
        self.current_phase = RoundPhase.IDLE

    def _tone(self, kind: ToneKind) -> None:
        if self._tones is not None:
            self._tones.play(kind)

    def default_cue(self, exercise_id: str) -> str | None:
        """Next technique cue for the exercise, rotating through its cues."""
        meta = self._ctx.exercise_meta(exercise_id)
        if meta is None or not meta.cues:
            return None
        return self._rotator.next(meta.cues) or None

    def plan(
        self,
        round_index: int,
        round_sec: int,
        round_rest_sec: int,
        exercises: Sequence[ExerciseMeta],
        total_rounds: int,
        lead_ms: float = 0,
        countdown: bool = True,
    ) -> list[PlannedCue]:
        """
        Compile one round into timed cues, sorted by offset.

        Args:
            round_index: 0-based round number
            round_sec: Work duration of the round
            round_rest_sec: Rest announced after the round
            exercises: Exercises of the round, in order
            total_rounds: Rounds in the block
            lead_ms: Time before the first countdown pip
            countdown: False when the go tone was already played (by the
                previous round's between-round countdown)
        """
        chatter = self._ctx.chatter_level
        first_id = exercises[0].id if exercises else "unknown"
        t0 = lead_ms + (COUNTDOWN_LEAD_MS if countdown else 0)
        end = t0 + round_sec * 1000
        cues: list[PlannedCue] = []

        def add(offset_ms: float, phase: RoundPhase, label: str, action: Callable[[], None]) -> None:
            cues.append(PlannedCue(offset_ms, phase, label, action))

        if allow_preview(chatter, lead_ms, self.preview_lead_ms):
            add(
                0,
                RoundPhase.PREVIEW,
                "preview",
                lambda: self._emit(WorkPreview(first_id, round_index=round_index, total_rounds=total_rounds)),
            )

        if countdown:
            for i in range(3):
                add(lead_ms + i * PIP_INTERVAL_MS, RoundPhase.COUNTDOWN, "pip", lambda: self._tone(ToneKind.COUNTDOWN))
            add(t0, RoundPhase.WORK, "go", lambda: self._tone(ToneKind.START))

        add(
            t0,
            RoundPhase.WORK,
            "work start",
            lambda: self._emit(WorkStart(first_id, set_index=round_index, round_index=round_index)),
        )

        for sec in range(60, round_sec - LAST_SECONDS, 60):
            add(t0 + sec * 1000, RoundPhase.WORK, "minute pip", lambda left=round_sec - sec: self._minute_mark(left))

        halfway_sec = round_sec // 2
        if allow_halfway(chatter, round_sec, halfway_sec):
            add(t0 + halfway_sec * 1000, RoundPhase.WORK, "halfway", lambda: self._emit(Halfway(first_id)))

        if round_sec > LAST_SECONDS:
            def last_seconds() -> None:
                # At high chatter the coach says it instead of the pip
                if chatter is ChatterLevel.HIGH:
                    self._emit(LastSeconds(LAST_SECONDS, round_index))
                else:
                    self._tone(ToneKind.LAST_SECONDS)

            add(end - LAST_SECONDS * 1000, RoundPhase.LAST_SECONDS, "last seconds", last_seconds)

        def work_end() -> None:
            self._tone(ToneKind.END)
            self._emit(WorkEnd(first_id, round_index))

        add(end, RoundPhase.ROUND_REST, "end", work_end)
        add(
            end + ROUND_END_TO_SPEECH_MS,
            RoundPhase.ROUND_REST,
            "round rest",
            lambda: self._emit(RoundRestStart(round_rest_sec, round_index)),
        )

        if round_index < total_rounds - 1:
            for i in range(3):
                offset = end + ROUND_END_TO_COUNTDOWN_MS + i * PIP_INTERVAL_MS
                add(offset, RoundPhase.BETWEEN_COUNTDOWN, "next countdown", lambda sec=2 - i: self._between(sec))
            add(
                end + ROUND_END_TO_NEXT_GO_MS,
                RoundPhase.BETWEEN_COUNTDOWN,
                "next go",
                lambda: self._tone(ToneKind.START),
            )

        cues.sort(key=lambda cue: cue.offset_ms)
        return cues

    def _minute_mark(self, remaining_sec: int) -> None:
        self._tone(ToneKind.COUNTDOWN)
        if self._ctx.chatter_level is not ChatterLevel.SILENT:
            self._ctx.do_caption(f"{format_clock(remaining_sec)} left")

    def _between(self, sec: int) -> None:
        self._tone(ToneKind.COUNTDOWN)
        self._emit(RoundCountdown(sec))

    def schedule(
        self,
        round_index: int,
        round_sec: int,
        round_rest_sec: int,
        exercises: Sequence[ExerciseMeta],
        total_rounds: int,
        lead_ms: float = 0,
        countdown: bool = True,
        windows: list[PacingWindow] | None = None,
        get_cue: Callable[[str], str | None] | None = None,
    ) -> CompositeHandle:
        """
        Schedule one round.

        Args:
            windows: Pacing windows for the round; computed from the
                exercises when omitted
            get_cue: Technique cue source for hints; rotates through the
                exercise's catalog cues when omitted

        Returns:
            One handle cancelling every pending tone, event and hint slot
        """
        handle = CompositeHandle()
        plan = self.plan(round_index, round_sec, round_rest_sec, exercises, total_rounds, lead_ms, countdown)
        remaining = len(plan)

        def run(cue: PlannedCue) -> None:
            nonlocal remaining
            remaining -= 1
            if self._gate is not None and not self._gate():
                logger.debug("Round {} {} dropped while paused", round_index + 1, cue.label)
                return
            self.current_phase = cue.phase
            cue.action()
            if remaining == 0:
                self.current_phase = RoundPhase.DONE

        for cue in plan:
            handle.add(self._scheduler.call_later(cue.offset_ms, lambda cue=cue: run(cue)))

        if len(exercises) >= 2:
            handle.add(self._schedule_hints(round_index, round_sec, lead_ms, countdown, exercises, windows, get_cue))

        def on_cancel() -> None:
            if self.current_phase is not RoundPhase.DONE:
                logger.debug("Cancelling round {}", round_index + 1)
                self.current_phase = RoundPhase.CANCELLED

        handle.add(CancelHandle(on_cancel))
        logger.info("Round {}/{} scheduled: {}s work, {} cues", round_index + 1, total_rounds, round_sec, len(plan))
        return handle

    def _schedule_hints(
        self,
        round_index: int,
        round_sec: int,
        lead_ms: float,
        countdown: bool,
        exercises: Sequence[ExerciseMeta],
        windows: list[PacingWindow] | None,
        get_cue: Callable[[str], str | None] | None,
    ) -> CancelHandle:
        if windows is None:
            windows = compute_windows(round_sec, list(exercises), self.floor_sec, self.min_window_sec)

        now = self._scheduler.now_ms()
        work_start_ms = now + lead_ms + (COUNTDOWN_LEAD_MS if countdown else 0)

        def slot(index: int, label: str) -> HintSlot | None:
            if index >= len(windows) or index >= len(exercises):
                return None
            window = windows[index]
            return HintSlot(
                exercise_id=exercises[index].id,
                at_ms=work_start_ms + window.start_sec * 1000 + TECH_OFFSET_MS,
                confidence=window.confidence,
                label=label,
            )

        hints = TechHintScheduler(
            self._scheduler,
            self._emit,
            self._ctx.chatter_level,
            round_index,
            round_end_ms=work_start_ms + round_sec * 1000,
            get_cue=get_cue or self.default_cue,
            confidence_threshold=self.confidence_threshold,
            gate=self._gate,
        )
        return hints.schedule(slot(1, "second"), slot(2, "third"))
