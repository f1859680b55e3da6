from .cue_policy import allow_technical_hint, has_time_remaining, prefer_second_exercise_this_round
from .intro import build_block_intro_line, estimate_block_duration_sec
from .observer import CoachObserver
from .pacing import PaceModel, PacingWindow, compute_windows
from .pool import InMemoryPhrasePool, PhrasePoolItem, PoolItem, PoolQuery, SqlitePhrasePool, default_phrases
from .responses import ResponseSelector, render_template, synthesize_line
from .round_scheduler import RoundPhase, RoundScheduler, TechHintScheduler

__all__ = [
    "CoachObserver",
    "InMemoryPhrasePool",
    "PaceModel",
    "PacingWindow",
    "PhrasePoolItem",
    "PoolItem",
    "PoolQuery",
    "ResponseSelector",
    "RoundPhase",
    "RoundScheduler",
    "SqlitePhrasePool",
    "TechHintScheduler",
    "allow_technical_hint",
    "build_block_intro_line",
    "compute_windows",
    "default_phrases",
    "estimate_block_duration_sec",
    "has_time_remaining",
    "prefer_second_exercise_this_round",
    "render_template",
    "synthesize_line",
]
