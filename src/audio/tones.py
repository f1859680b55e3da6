"""
Workout tones for Cadence.

Short synthesized signals mark the workout clock:
- countdown: short 800 Hz pip (3-2-1 and minute marks)
- start: brighter 1000 Hz "go"
- last_seconds: 900 Hz warning before the round ends
- end: two-step 1200 → 800 Hz chime
- confirm: soft 800 Hz acknowledgement

Every tone is rendered with numpy (sine, attack/sustain/release envelope,
gentle one-pole low-pass) and queued on the shared audio output.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, assert_never

import numpy as np
from loguru import logger

from core.clock import CancelHandle, CompositeHandle
from core.context import ChatterLevel

if TYPE_CHECKING:
    from audio.manager import AudioManager
    from audio.voice_bus import VoiceBus
    from core.clock import Scheduler

SAMPLE_RATE = 44100
DEFAULT_CUTOFF_HZ = 4000.0


class ToneKind(Enum):
    COUNTDOWN = "countdown"
    START = "start"
    LAST_SECONDS = "last_seconds"
    END = "end"
    CONFIRM = "confirm"


@dataclass(frozen=True)
class ToneShape:
    """
    Fixed recipe for one tone.

    Attributes:
        steps: (frequency Hz, start time s) pairs; each frequency holds until the next step
        duration: Total length in seconds
        volume: Peak amplitude (0..1)
        attack: Fade-in time in seconds
        release: Fade-out time in seconds
        sustain: Level held between attack and release, relative to peak
        cutoff_hz: Low-pass cutoff that rounds off the edges
    """

    steps: tuple[tuple[float, float], ...]
    duration: float
    volume: float
    attack: float = 0.005
    release: float = 0.06
    sustain: float = 1.0
    cutoff_hz: float = DEFAULT_CUTOFF_HZ

    @property
    def duration_ms(self) -> float:
        return self.duration * 1000.0


def tone_shape(kind: ToneKind) -> ToneShape:
    """The fixed shape for each tone kind."""
    match kind:
        case ToneKind.COUNTDOWN:
            return ToneShape(steps=((800.0, 0.0),), duration=0.10, volume=0.30)
        case ToneKind.START:
            return ToneShape(steps=((1000.0, 0.0),), duration=0.15, volume=0.40)
        case ToneKind.LAST_SECONDS:
            return ToneShape(steps=((900.0, 0.0),), duration=0.20, volume=0.35)
        case ToneKind.END:
            return ToneShape(
                steps=((1200.0, 0.0), (800.0, 0.3)),
                duration=0.60,
                volume=0.30,
                release=0.30,
                sustain=0.5,
            )
        case ToneKind.CONFIRM:
            return ToneShape(steps=((800.0, 0.0),), duration=0.10, volume=0.30, cutoff_hz=3000.0)
        case _:
            assert_never(kind)


def _envelope(shape: ToneShape, samples: int, sample_rate: int) -> np.ndarray:
    """Attack ramp to peak, decay to sustain level, release to silence."""
    envelope = np.full(samples, shape.sustain, dtype=np.float64)

    attack_samples = min(samples, int(shape.attack * sample_rate))
    release_samples = min(samples - attack_samples, int(shape.release * sample_rate))
    body_samples = samples - attack_samples - release_samples

    if attack_samples:
        # Raised cosine fade in avoids clicks
        envelope[:attack_samples] = 0.5 * (1 - np.cos(np.pi * np.linspace(0, 1, attack_samples)))
    if body_samples:
        envelope[attack_samples : attack_samples + body_samples] = np.linspace(1.0, shape.sustain, body_samples)
    if release_samples:
        # Exponential-looking fall from the sustain level to silence
        envelope[samples - release_samples :] = shape.sustain * np.geomspace(1.0, 0.01, release_samples)
        envelope[-1] = 0.0
    return envelope


def _low_pass(signal: np.ndarray, cutoff_hz: float, sample_rate: int) -> np.ndarray:
    """One-pole low-pass filter."""
    if cutoff_hz <= 0 or cutoff_hz >= sample_rate / 2:
        return signal
    alpha = 1.0 - np.exp(-2.0 * np.pi * cutoff_hz / sample_rate)
    out = np.empty_like(signal)
    acc = 0.0
    for i, sample in enumerate(signal):
        acc += alpha * (sample - acc)
        out[i] = acc
    return out


def render_tone(shape: ToneShape, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Render a tone shape to mono float32 samples."""
    samples = int(sample_rate * shape.duration)
    t = np.arange(samples) / sample_rate

    frequency = np.full(samples, shape.steps[0][0])
    for freq, start in shape.steps[1:]:
        frequency[t >= start] = freq
    # Integrate frequency so steps stay phase-continuous
    phase = 2 * np.pi * np.cumsum(frequency) / sample_rate
    tone = np.sin(phase)

    tone = tone * _envelope(shape, samples, sample_rate)
    tone = _low_pass(tone, shape.cutoff_hz, sample_rate)
    return (tone * shape.volume).astype(np.float32)


@dataclass(frozen=True)
class ToneCue:
    """A tone to play offset_ms after a sequence is scheduled."""

    offset_ms: float
    kind: ToneKind


def _default_output() -> AudioManager:
    from audio.manager import AudioManager

    return AudioManager.shared()


class ToneEngine:
    """
    Plays workout tones through the shared audio output.

    The output is created on first use. Playing is fire-and-forget: output
    errors are logged and never reach the caller. Each tone that plays
    notifies the voice bus so speech keeps clear of its transient.

    At high chatter the coach's voice replaces tones, so nothing plays.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        voice_bus: VoiceBus | None = None,
        output_factory: Callable[[], AudioManager] | None = None,
        chatter_level: ChatterLevel = ChatterLevel.MINIMAL,
        volume: float = 1.0,
        muted: bool = False,
        on_play: Callable[[ToneKind], None] | None = None,
    ):
        self._scheduler = scheduler
        self._on_play = on_play
        self._voice_bus = voice_bus
        self._output_factory = output_factory or _default_output
        self._output: AudioManager | None = None
        self._cache: dict[ToneKind, np.ndarray] = {}
        self.chatter_level = chatter_level
        self.volume = volume
        self._muted = muted
        self.played: int = 0

    @property
    def is_muted(self) -> bool:
        return self._muted

    def set_chatter_level(self, level: ChatterLevel) -> None:
        self.chatter_level = level

    def mute(self) -> None:
        """Suppress all tones until unmute()."""
        self._muted = True

    def unmute(self) -> None:
        self._muted = False

    def _ensure_output(self) -> AudioManager:
        if self._output is None:
            self._output = self._output_factory()
        return self._output

    def _samples(self, kind: ToneKind) -> np.ndarray:
        if kind not in self._cache:
            self._cache[kind] = render_tone(tone_shape(kind))
        return self._cache[kind]

    def play(self, kind: ToneKind) -> None:
        """Play one tone. Non-blocking."""
        if self._muted:
            return

        match self.chatter_level:
            case ChatterLevel.HIGH:
                # Voice carries the clock at high chatter
                logger.debug("Skipping {} tone at high chatter", kind.value)
                return
            case ChatterLevel.SILENT | ChatterLevel.MINIMAL:
                pass
            case _:
                assert_never(self.chatter_level)

        shape = tone_shape(kind)
        if self._voice_bus is not None:
            self._voice_bus.notify_tone(shape.duration_ms)

        try:
            audio = self._samples(kind)
            if self.volume != 1.0:
                audio = audio * self.volume
            self._ensure_output().queue_audio(audio, SAMPLE_RATE)
            self.played += 1
        except Exception as e:
            logger.warning("Could not play {} tone: {}", kind.value, e)

        if self._on_play is not None:
            self._on_play(kind)

    def sequence(self, items: list[ToneCue]) -> CancelHandle:
        """
        Schedule tones relative to now.

        Returns:
            One handle that cancels every tone still pending
        """
        handle = CompositeHandle()
        for item in items:
            handle.add(self._scheduler.call_later(item.offset_ms, lambda kind=item.kind: self.play(kind)))
        return handle


def rep_round_tone_cues(round_sec: int, minute_pips: bool = True) -> list[ToneCue]:
    """3-2-1-go, minute pips, last-10 warning and end chime for one rep round."""
    cues = [
        ToneCue(0, ToneKind.COUNTDOWN),
        ToneCue(1000, ToneKind.COUNTDOWN),
        ToneCue(2000, ToneKind.COUNTDOWN),
        ToneCue(3000, ToneKind.START),
    ]
    work_start = 3000
    if minute_pips:
        for sec in range(60, round_sec - 10, 60):
            cues.append(ToneCue(work_start + sec * 1000, ToneKind.COUNTDOWN))
    if round_sec >= 12:
        cues.append(ToneCue(work_start + (round_sec - 10) * 1000, ToneKind.LAST_SECONDS))
    cues.append(ToneCue(work_start + round_sec * 1000, ToneKind.END))
    return cues


def time_block_tone_cues(work_sec: int, rest_sec: int) -> list[ToneCue]:
    """Countdown into work at the end of rest, last-5 warning and end chime."""
    cues = [
        ToneCue(max(0, rest_sec - 2) * 1000, ToneKind.COUNTDOWN),
        ToneCue(max(0, rest_sec - 1) * 1000, ToneKind.COUNTDOWN),
        ToneCue(rest_sec * 1000, ToneKind.START),
    ]
    if work_sec >= 7:
        cues.append(ToneCue((rest_sec + work_sec - 5) * 1000, ToneKind.LAST_SECONDS))
    cues.append(ToneCue((rest_sec + work_sec) * 1000, ToneKind.END))
    return cues
