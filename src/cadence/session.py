"""
Session wiring for Cadence.

A CoachSession holds every per-workout component. Components receive the
pieces they need from it rather than reaching for globals.
"""

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from audio.tones import ToneEngine, ToneKind
from audio.voice_bus import VoiceBus
from coach.observer import CoachObserver
from coach.pool import InMemoryPhrasePool, SqlitePhrasePool, default_phrases
from coach.responses import ResponseSelector
from core.clock import LoopScheduler, Scheduler
from core.context import BlockInfo, ExerciseMeta, SessionContext, create_session_context
from core.events import EventBus
from runtime.player import RoundBlock, TimelinePlayer

from .settings import Settings, load_settings


@dataclass
class CoachSession:
    """
    Container for one workout's components.

    Attributes:
        settings: Application configuration
        scheduler: Clock and timers for the session
        bus: Event bus the player emits on
        ctx: Session context read by the coaching components
        voice_bus: Gain stage and tone guard for speech and captions
        tones: Tone engine
        selector: Phrase selection for coach lines
        observer: Subscriber that speaks and captions lines
        player: Timeline player driving the workout
    """

    settings: Settings
    scheduler: Scheduler
    bus: EventBus
    ctx: SessionContext
    voice_bus: VoiceBus
    tones: ToneEngine
    selector: ResponseSelector
    observer: CoachObserver
    player: TimelinePlayer

    def round_block(self, block_id: str = "block-1") -> RoundBlock:
        """The rep-round block described by the settings, over the session's exercises."""
        exercises = tuple(meta for meta in (self.ctx.exercise_meta(ex_id) for ex_id in self.ctx.order) if meta)
        rounds = self.settings.round
        return RoundBlock(
            block_id=block_id,
            exercises=exercises,
            round_sec=rounds.round_sec,
            round_rest_sec=rounds.round_rest_sec,
            total_rounds=rounds.total_rounds,
            lead_ms=rounds.lead_ms,
        )

    def close(self) -> None:
        self.player.stop()
        self.bus.clear()


def create_session(
    exercises: list[ExerciseMeta],
    settings: Settings | None = None,
    scheduler: Scheduler | None = None,
    speak: Callable[[str], object] | None = None,
    caption: Callable[[str], None] | None = None,
    haptic: Callable[[str], None] | None = None,
    tone_output: Callable | None = None,
    on_tone: Callable[[ToneKind], None] | None = None,
    block_id: str = "block-1",
) -> CoachSession:
    """
    Factory function to create a fully wired CoachSession.

    Args:
        exercises: Exercise metadata in workout order
        settings: Optional Settings (loaded from settings.toml if not provided)
        scheduler: Optional scheduler (asyncio loop scheduler if not provided)
        speak: Speech capability; a Kokoro speaker is created when the
            voice is enabled in settings and none is given
        caption: Caption capability, routed through the tone guard
        haptic: Haptic capability
        tone_output: Factory for the tone output (shared AudioManager if not provided)
        on_tone: Called with each tone kind as it plays
        block_id: Id of the session's block

    Returns:
        Fully initialized CoachSession
    """
    settings = settings or load_settings()
    scheduler = scheduler or LoopScheduler()
    bus = EventBus()

    voice_bus = VoiceBus(
        scheduler,
        guard_ms=settings.voice.guard_ms,
        duck_ms=settings.voice.duck_ms,
        duck_depth_db=settings.voice.duck_depth_db,
    )
    tones = ToneEngine(
        scheduler,
        voice_bus=voice_bus,
        output_factory=tone_output,
        chatter_level=settings.coach.chatter_level,
        volume=settings.tones.volume,
        muted=settings.tones.muted,
        on_play=on_tone,
    )

    if speak is None and settings.voice.enabled:
        from tts import VoiceSpeaker

        speak = VoiceSpeaker(voice_bus)
    elif speak is not None:
        speak = voice_bus.guarded(speak)

    rounds = settings.round
    block = BlockInfo(
        id=block_id,
        pattern=rounds.pattern,
        mode=rounds.mode,
        exercise_ids=tuple(exercise.id for exercise in exercises),
        sets_per_exercise=rounds.total_rounds,
        round_rest_sec=rounds.round_rest_sec,
    )
    ctx = create_session_context(
        exercises,
        pattern=rounds.pattern,
        mode=rounds.mode,
        chatter_level=settings.coach.chatter_level,
        locale=settings.coach.locale,
        rep_pace_sec=rounds.round_sec,
        blocks=[block],
        now_ms=scheduler.now_ms,
        speak=speak,
        caption=voice_bus.guarded(caption) if caption is not None else None,
        beep=tones.play,
        haptic=haptic,
    )

    store = None
    if settings.coach.phrase_db:
        store = SqlitePhrasePool(settings.coach.phrase_db, clock=scheduler.now_ms)
        seeded = store.seed(default_phrases())
        if seeded:
            logger.info("Seeded phrase pool at {} with {} lines", settings.coach.phrase_db, seeded)
    selector = ResponseSelector(store=store, fallback=InMemoryPhrasePool(default_phrases(), clock=scheduler.now_ms))

    observer = CoachObserver(ctx, selector, speak_min_gap_ms=settings.coach.speak_min_gap_ms)
    bus.subscribe(observer)

    player = TimelinePlayer(
        scheduler,
        bus,
        ctx=ctx,
        tones=tones,
        block_id=block_id,
        confidence_threshold=settings.coach.confidence_threshold,
        floor_sec=settings.pacing.floor_sec,
        min_window_sec=settings.pacing.min_window_sec,
    )

    return CoachSession(
        settings=settings,
        scheduler=scheduler,
        bus=bus,
        ctx=ctx,
        voice_bus=voice_bus,
        tones=tones,
        selector=selector,
        observer=observer,
        player=player,
    )
