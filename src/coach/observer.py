"""
Coach observer: turns workout events into spoken lines and captions.

Subscribed to the event bus. For each event it picks a line (phrase pool
first, then a synthesized line), applies the per-session speak throttle and
sends the line to the session's caption and speech capabilities.
"""

from loguru import logger

from core.context import ChatterLevel, SessionContext
from core.events import Countdown, Event, Halfway, TechHint, WorkEnd, WorkStart

from .responses import ResponseSelector, synthesize_line

SPEAK_MIN_GAP_MS = 5000
COUNTDOWN_VOICE_OFF = True  # tones carry the countdown


class CoachObserver:
    """
    Speaks and captions coaching lines for one session.

    Captions are shown at every chatter level; speech is skipped when
    silent. Lines closer than speak_min_gap_ms to the previous one are
    dropped rather than queued.
    """

    def __init__(
        self,
        ctx: SessionContext,
        selector: ResponseSelector | None = None,
        speak_min_gap_ms: float = SPEAK_MIN_GAP_MS,
        countdown_voice_off: bool = COUNTDOWN_VOICE_OFF,
    ):
        self.ctx = ctx
        self.selector = selector or ResponseSelector()
        self.speak_min_gap_ms = speak_min_gap_ms
        self.countdown_voice_off = countdown_voice_off
        self._last_spoke_ms: float | None = None
        self.lines: list[str] = []

    def can_speak_now(self) -> bool:
        """Claim the next speaking slot if the throttle allows it."""
        now = self.ctx.now_ms()
        if self._last_spoke_ms is not None and now - self._last_spoke_ms < self.speak_min_gap_ms:
            return False
        self._last_spoke_ms = now
        return True

    def line_for(self, event: Event) -> str | None:
        """The line to say for an event, or None to stay quiet."""
        match event:
            case Countdown() if self.countdown_voice_off:
                return None
            case Halfway() if self.ctx.chatter_level is not ChatterLevel.HIGH:
                return None
            case TechHint(cue=cue) if cue:
                # The round scheduler already picked and gated this cue
                return cue if self.ctx.chatter_level is ChatterLevel.HIGH else None

        line = self.selector.select(self.ctx, event)
        if line is None:
            line = synthesize_line(self.ctx, event)
        return line

    def __call__(self, event: Event) -> None:
        if isinstance(event, WorkStart):
            self.ctx.do_haptic("work_start")
        elif isinstance(event, WorkEnd):
            self.ctx.do_haptic("work_end")

        line = self.line_for(event)
        if not line:
            return
        if not self.can_speak_now():
            logger.debug("Throttled {}: {!r}", type(event).__name__, line)
            return

        self.lines.append(line)
        self.ctx.do_caption(line)
        if self.ctx.chatter_level is not ChatterLevel.SILENT:
            self.ctx.do_speak(line)

