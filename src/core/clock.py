"""
Cancellable delayed callbacks for workout cue scheduling.

Every scheduling call returns a CancelHandle. Handles are idempotent and
compose: a CompositeHandle cancels everything added to it, including
handles added after it was cancelled.

Two schedulers share one interface:
- LoopScheduler runs callbacks on an asyncio event loop (real time)
- VirtualScheduler runs callbacks on a simulated clock (previews, tests)
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from collections.abc import Callable

from loguru import logger


class CancelHandle:
    """
    Capability to stop a scheduled callback.

    Cancelling twice, or after the callback already ran, is a no-op.
    """

    def __init__(self, on_cancel: Callable[[], None] | None = None):
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()

    def __call__(self) -> None:
        self.cancel()


class CompositeHandle(CancelHandle):
    """A handle that cancels a group of handles together."""

    def __init__(self, handles: list[CancelHandle] | None = None):
        super().__init__()
        self._handles: list[CancelHandle] = list(handles or [])

    def add(self, handle: CancelHandle) -> CancelHandle:
        """Track a handle. If this group is already cancelled, cancel it now."""
        if self.cancelled:
            handle.cancel()
        else:
            self._handles.append(handle)
        return handle

    def __len__(self) -> int:
        return len(self._handles)

    def cancel(self) -> None:
        if self.cancelled:
            return
        super().cancel()
        handles, self._handles = self._handles, []
        for handle in handles:
            handle.cancel()


class Scheduler(ABC):
    """Single-threaded source of time and delayed callbacks."""

    @abstractmethod
    def now_ms(self) -> float:
        """Current time in milliseconds."""

    @abstractmethod
    def _schedule(self, delay_ms: float, callback: Callable[[], None]) -> Callable[[], None]:
        """Arrange for callback to run after delay_ms; return a raw cancel function."""

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> CancelHandle:
        """
        Run callback once after delay_ms (negative delays run as soon as possible).

        The returned handle stops the callback. A cancelled callback never runs,
        even if the underlying timer already fired on this tick.
        """
        handle = CancelHandle()

        def run() -> None:
            if handle.cancelled:
                return
            # The timer has fired; a late cancel only flips the flag
            handle._on_cancel = None
            try:
                callback()
            except Exception:
                # A missed cue must never halt the timeline
                logger.exception("Scheduled callback failed")

        handle._on_cancel = self._schedule(max(0.0, delay_ms), run)
        return handle

    def call_at(self, when_ms: float, callback: Callable[[], None]) -> CancelHandle:
        """Run callback at an absolute time on this scheduler's clock."""
        return self.call_later(when_ms - self.now_ms(), callback)


class LoopScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> float:
        return self.loop.time() * 1000.0

    def _schedule(self, delay_ms: float, callback: Callable[[], None]) -> Callable[[], None]:
        timer = self.loop.call_later(delay_ms / 1000.0, callback)
        return timer.cancel


class VirtualScheduler(Scheduler):
    """
    Deterministic scheduler driven by advance().

    Callbacks due at the same time run in the order they were scheduled.
    Callbacks scheduled while advancing run in the same pass if they fall
    inside the advanced interval.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: list[tuple[float, int, Callable[[], None]]] = []
        self._seq = itertools.count()
        self._cancelled: set[int] = set()

    def now_ms(self) -> float:
        return self._now

    def _schedule(self, delay_ms: float, callback: Callable[[], None]) -> Callable[[], None]:
        seq = next(self._seq)
        heapq.heappush(self._queue, (self._now + delay_ms, seq, callback))

        def cancel() -> None:
            self._cancelled.add(seq)

        return cancel

    @property
    def pending(self) -> int:
        """Number of callbacks still waiting to run."""
        return sum(1 for _, seq, _ in self._queue if seq not in self._cancelled)

    def next_due_ms(self) -> float | None:
        """Time of the next live callback, or None when idle."""
        while self._queue and self._queue[0][1] in self._cancelled:
            _, seq, _ = heapq.heappop(self._queue)
            self._cancelled.discard(seq)
        return self._queue[0][0] if self._queue else None

    def advance(self, ms: float) -> None:
        """Move the clock forward by ms, running every callback due on the way."""
        self.advance_to(self._now + ms)

    def advance_to(self, target_ms: float) -> None:
        """Move the clock to target_ms, running every callback due on the way."""
        while True:
            due = self.next_due_ms()
            if due is None or due > target_ms:
                break
            _, seq, callback = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            callback()
        self._now = max(self._now, target_ms)

    def run_until_idle(self, limit_ms: float | None = None) -> None:
        """Run callbacks until none remain (or the clock passes limit_ms)."""
        while True:
            due = self.next_due_ms()
            if due is None or (limit_ms is not None and due > limit_ms):
                break
            self.advance_to(due)
