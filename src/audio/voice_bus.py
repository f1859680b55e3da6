"""
Voice bus: one gain stage for all coach voice audio.

Tones and voice share the same output. The bus keeps them apart in two ways:
- ducking: voice gain dips smoothly while a tone plays
- guard window: speech or captions requested right after a tone are
  deferred until the tone's transient has passed
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger

from core.clock import CancelHandle, CompositeHandle

if TYPE_CHECKING:
    from core.clock import Scheduler

DEFAULT_GUARD_MS = 250.0
DEFAULT_DUCK_MS = 250.0
DEFAULT_DUCK_DEPTH_DB = -6.0
DUCK_RAMP_MS = 20.0


def db_to_gain(db: float) -> float:
    return float(10 ** (db / 20))


class VoiceBus:
    """
    Gain stage and collision guard shared by speech and captions.

    Owns the last-tone timestamp; one bus per session.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        guard_ms: float = DEFAULT_GUARD_MS,
        duck_ms: float = DEFAULT_DUCK_MS,
        duck_depth_db: float = DEFAULT_DUCK_DEPTH_DB,
    ):
        self._scheduler = scheduler
        self.guard_ms = guard_ms
        self.duck_ms = duck_ms
        self.duck_depth_db = duck_depth_db

        self._gain = 1.0
        self._last_tone_ms: float | None = None
        self._duck_start_ms: float | None = None
        self._duck_end_ms: float | None = None
        self._duck_gain = 1.0

    @property
    def last_tone_ms(self) -> float | None:
        return self._last_tone_ms

    # --- Gain stage ---

    @property
    def gain(self) -> float:
        """Current linear voice gain, before ducking."""
        return self._gain

    def set_gain_db(self, db: float) -> None:
        """Set absolute voice gain in dB (0 = unity)."""
        self._gain = db_to_gain(db)

    def duck(self, ms: float | None = None, depth_db: float | None = None) -> None:
        """
        Dip voice gain for ms: 20 ms ramp down, hold, 20 ms ramp up.

        Overlapping ducks extend the current one.
        """
        now = self._scheduler.now_ms()
        ms = self.duck_ms if ms is None else ms
        depth_db = self.duck_depth_db if depth_db is None else depth_db

        end = now + max(ms, 2 * DUCK_RAMP_MS)
        if self._duck_end_ms is not None and self._duck_start_ms is not None and now < self._duck_end_ms:
            # Already ducked: keep the original ramp-down, push the ramp-up out
            self._duck_end_ms = max(self._duck_end_ms, end)
        else:
            self._duck_start_ms = now
            self._duck_end_ms = end
        self._duck_gain = db_to_gain(depth_db)

    def gain_at(self, t_ms: float) -> float:
        """Effective voice gain at time t_ms, including any duck."""
        if self._duck_start_ms is None or self._duck_end_ms is None:
            return self._gain
        if t_ms <= self._duck_start_ms or t_ms >= self._duck_end_ms:
            return self._gain
        points_t = [
            self._duck_start_ms,
            self._duck_start_ms + DUCK_RAMP_MS,
            self._duck_end_ms - DUCK_RAMP_MS,
            self._duck_end_ms,
        ]
        points_g = [1.0, self._duck_gain, self._duck_gain, 1.0]
        return self._gain * float(np.interp(t_ms, points_t, points_g))

    def process(self, chunk: np.ndarray, sample_rate: int, start_ms: float | None = None) -> np.ndarray:
        """Apply the voice gain (and any duck) to a chunk of voice audio."""
        chunk = np.asarray(chunk, dtype=np.float32)
        start_ms = self._scheduler.now_ms() if start_ms is None else start_ms
        if self._duck_end_ms is None or start_ms >= self._duck_end_ms:
            return chunk * self._gain
        times = start_ms + np.arange(len(chunk)) * 1000.0 / sample_rate
        gains = np.array([self.gain_at(t) for t in times], dtype=np.float32)
        return chunk * gains

    # --- Collision guard ---

    def notify_tone(self, duration_ms: float | None = None) -> None:
        """Record that a tone just started and duck voice around it."""
        self._last_tone_ms = self._scheduler.now_ms()
        self.duck(max(self.duck_ms, duration_ms or 0.0))

    def remaining_guard_ms(self) -> float:
        """How long speech must still wait, or 0 if it may start now."""
        if self._last_tone_ms is None:
            return 0.0
        elapsed = self._scheduler.now_ms() - self._last_tone_ms
        return max(0.0, self.guard_ms - elapsed)

    def can_start(self) -> bool:
        return self.remaining_guard_ms() <= 0

    def guard_start(self, fn: Callable[[], None]) -> CancelHandle:
        """
        Run fn now, or once the guard window after the last tone has passed.

        A tone that lands while fn is waiting pushes it out again.

        Returns:
            Handle that drops fn if it has not started yet
        """
        handle = CompositeHandle()

        def attempt() -> None:
            delay = self.remaining_guard_ms()
            if delay <= 0:
                fn()
                return
            logger.debug("Voice start deferred {:.0f} ms after tone", delay)
            handle.add(self._scheduler.call_later(delay, attempt))

        attempt()
        return handle

    def guarded(self, sink: Callable[[str], None]) -> Callable[[str], None]:
        """Wrap a text sink (speech, captions) so it respects the guard window."""

        def guarded_sink(text: str) -> None:
            self.guard_start(lambda: sink(text))

        return guarded_sink
