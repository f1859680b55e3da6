"""
Timeline player: the top-level driver of a workout.

Plays either a precompiled list of timeline steps or a block of rep rounds
(through the round scheduler), emitting workout events on the event bus at
their offsets from start. Pausing drops events that come due while paused;
resuming does not replay them. Stopping cancels everything still pending.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import assert_never

from loguru import logger

from audio.tones import ToneEngine
from coach.pacing import PaceModel
from coach.round_scheduler import COUNTDOWN_LEAD_MS, ROUND_END_TO_NEXT_GO_MS, RoundScheduler
from core.clock import CancelHandle, CompositeHandle, Scheduler
from core.context import ExerciseMeta, SessionContext
from core.events import (
    AwaitReady,
    BlockEnd,
    BlockStart,
    Countdown,
    Event,
    EventBus,
    EventHandler,
    RestEnd,
    RestStart,
    RoundRestEnd,
    RoundRestStart,
    WorkEnd,
    WorkoutEnd,
    WorkStart,
)

BLOCK_END_DELAY_MS = 1000
WORKOUT_END_DELAY_MS = 1000
DEFAULT_REST_SEC = 90
DEFAULT_ROUND_REST_SEC = 60
DEFAULT_COUNTDOWN_SEC = 3


class StepKind(Enum):
    WORK = "work"
    REST = "rest"
    ROUND_REST = "round_rest"
    AWAIT_READY = "await_ready"
    TRANSITION = "transition"
    INSTRUCTION = "instruction"
    COUNTDOWN = "countdown"


@dataclass(frozen=True)
class TimelineStep:
    """One precompiled step; offsets are relative to player start."""

    step_index: int
    kind: StepKind
    start_offset_ms: float
    end_offset_ms: float
    exercise_id: str | None = None
    duration_sec: int | None = None
    set_number: int | None = None
    round_number: int | None = None
    label: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "TimelineStep":
        return cls(
            step_index=int(data.get("step_index", 0)),
            kind=StepKind(data["kind"]),
            start_offset_ms=float(data["start_offset_ms"]),
            end_offset_ms=float(data.get("end_offset_ms", data["start_offset_ms"])),
            exercise_id=data.get("exercise_id"),
            duration_sec=data.get("duration_sec"),
            set_number=data.get("set_number"),
            round_number=data.get("round_number"),
            label=data.get("label"),
        )


@dataclass(frozen=True)
class RoundBlock:
    """A block of identical rep rounds driven by the round scheduler."""

    block_id: str
    exercises: tuple[ExerciseMeta, ...]
    round_sec: int
    round_rest_sec: int
    total_rounds: int
    lead_ms: float = 2000


def _index(number: int | None) -> int | None:
    return number - 1 if number is not None else None


def map_step(step: TimelineStep, at_start: bool, block_id: str = "block-1") -> Event | None:
    """
    The event a step emits at its start or end, if any.

    instruction → BlockStart, countdown → Countdown, work → WorkStart/WorkEnd,
    rest → RestStart/RestEnd, round_rest → RoundRestStart/RoundRestEnd,
    await_ready → AwaitReady, transition → nothing.
    """
    exercise_id = step.exercise_id or "unknown"
    match step.kind:
        case StepKind.INSTRUCTION:
            return BlockStart(block_id) if at_start else None
        case StepKind.COUNTDOWN:
            return Countdown(step.duration_sec or DEFAULT_COUNTDOWN_SEC) if at_start else None
        case StepKind.WORK:
            if at_start:
                return WorkStart(exercise_id, _index(step.set_number), _index(step.round_number))
            return WorkEnd(exercise_id, _index(step.round_number))
        case StepKind.REST:
            if at_start:
                return RestStart(step.duration_sec or DEFAULT_REST_SEC, reason="between_sets")
            return RestEnd()
        case StepKind.ROUND_REST:
            if at_start:
                return RoundRestStart(step.duration_sec or DEFAULT_ROUND_REST_SEC, _index(step.round_number))
            return RoundRestEnd()
        case StepKind.AWAIT_READY:
            return AwaitReady(block_id) if at_start else None
        case StepKind.TRANSITION:
            return None
        case _:
            assert_never(step.kind)


def load_timeline(path: str | Path) -> list[TimelineStep]:
    """
    Load timeline steps from a JSON file.

    The file holds either a list of steps or an object with a "steps" list.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("steps", [])
    steps = [TimelineStep.from_dict(item) for item in data]
    return sorted(steps, key=lambda step: (step.start_offset_ms, step.step_index))


class TimelinePlayer:
    """
    Drives one workout's events.

    Example:
        player = TimelinePlayer(scheduler, bus)
        player.subscribe(observer)
        player.start(steps)
        ...
        player.pause()
        player.resume()
        player.stop()
    """

    def __init__(
        self,
        scheduler: Scheduler,
        bus: EventBus | None = None,
        ctx: SessionContext | None = None,
        tones: ToneEngine | None = None,
        block_id: str = "block-1",
        **round_options,
    ):
        """
        Args:
            scheduler: Clock and timers (asyncio loop or virtual)
            bus: Event bus to emit on (a private bus when omitted)
            ctx: Session context for round blocks
            tones: Tone engine for round blocks
            block_id: Block id reported by precompiled timelines
            **round_options: Passed through to the RoundScheduler
        """
        self._scheduler = scheduler
        self.bus = bus or EventBus()
        self.ctx = ctx or SessionContext(now_ms=scheduler.now_ms)
        self.block_id = block_id
        self._handle = CompositeHandle()
        self._paused = False
        self._started_at_ms: float | None = None
        self.rounds = RoundScheduler(
            scheduler, self.ctx, self.bus.emit, tones=tones, gate=self._is_open, **round_options
        )

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def started_at_ms(self) -> float | None:
        return self._started_at_ms

    def _is_open(self) -> bool:
        return not self._paused

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        return self.bus.subscribe(handler)

    def _emit_at(self, offset_ms: float, event: Event) -> None:
        def fire() -> None:
            if self._paused:
                logger.debug("Dropped {} while paused", type(event).__name__)
                return
            self.bus.emit(event)

        self._handle.add(self._scheduler.call_later(offset_ms, fire))

    def _begin(self) -> None:
        self.stop()
        self._paused = False
        self._started_at_ms = self._scheduler.now_ms()

    def _schedule_block_end(self, last_end_ms: float, block_id: str) -> None:
        self._emit_at(last_end_ms + BLOCK_END_DELAY_MS, BlockEnd(block_id))
        self._emit_at(last_end_ms + BLOCK_END_DELAY_MS + WORKOUT_END_DELAY_MS, WorkoutEnd())

    def start(self, steps: list[TimelineStep]) -> CancelHandle:
        """
        Play precompiled steps. Stops any previous run first.

        Returns:
            Handle equivalent to stop() for this run
        """
        self._begin()
        if not any(step.kind is StepKind.INSTRUCTION for step in steps):
            self._emit_at(0, BlockStart(self.block_id))

        for step in steps:
            start_event = map_step(step, True, self.block_id)
            if start_event is not None:
                self._emit_at(step.start_offset_ms, start_event)
            if step.end_offset_ms > step.start_offset_ms:
                end_event = map_step(step, False, self.block_id)
                if end_event is not None:
                    self._emit_at(step.end_offset_ms, end_event)

        if steps:
            last = steps[-1]
            self._schedule_block_end(max(last.start_offset_ms, last.end_offset_ms), self.block_id)

        logger.info("Timeline started: {} steps", len(steps))
        return self._handle

    def start_rounds(self, block: RoundBlock) -> CancelHandle:
        """
        Play a block of rep rounds.

        The first round gets the lead time and a 3-2-1 countdown; every later
        round starts on the go tone played by the previous round's
        between-round countdown.
        """
        self._begin()
        self._emit_at(0, BlockStart(block.block_id))

        pace = PaceModel(block.round_sec, list(block.exercises), self.rounds.floor_sec, self.rounds.min_window_sec)
        windows = pace.compute_windows()

        offset = 0.0
        end = 0.0
        for round_index in range(block.total_rounds):
            first = round_index == 0
            lead_ms = block.lead_ms if first else 0

            def schedule_round(round_index=round_index, lead_ms=lead_ms, countdown=first) -> None:
                self._handle.add(
                    self.rounds.schedule(
                        round_index,
                        block.round_sec,
                        block.round_rest_sec,
                        block.exercises,
                        block.total_rounds,
                        lead_ms=lead_ms,
                        countdown=countdown,
                        windows=windows,
                    )
                )

            self._handle.add(self._scheduler.call_later(offset, schedule_round))
            work_start = offset + lead_ms + (COUNTDOWN_LEAD_MS if first else 0)
            end = work_start + block.round_sec * 1000
            offset = end + ROUND_END_TO_NEXT_GO_MS

        if block.total_rounds > 0:
            self._schedule_block_end(end, block.block_id)

        logger.info("Round block {} started: {} x {}s", block.block_id, block.total_rounds, block.round_sec)
        return self._handle

    def pause(self) -> None:
        """Drop every event that comes due until resume()."""
        self._paused = True
        logger.info("Timeline paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Timeline resumed")

    def stop(self) -> None:
        """Cancel every pending event. Safe to call at any time."""
        handle, self._handle = self._handle, CompositeHandle()
        if len(handle):
            logger.info("Timeline stopped")
        handle.cancel()
