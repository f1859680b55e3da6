"""
Audio for Cadence: workout tones, the voice bus and the shared output.

Tones and voice share one output; the voice bus keeps speech clear of tones.
The output module (sounddevice) is imported lazily, on first playback.
"""

from .tones import (
    ToneCue,
    ToneEngine,
    ToneKind,
    ToneShape,
    render_tone,
    rep_round_tone_cues,
    time_block_tone_cues,
    tone_shape,
)
from .voice_bus import VoiceBus, db_to_gain

__all__ = [
    "ToneCue",
    "ToneEngine",
    "ToneKind",
    "ToneShape",
    "VoiceBus",
    "db_to_gain",
    "render_tone",
    "rep_round_tone_cues",
    "time_block_tone_cues",
    "tone_shape",
]
