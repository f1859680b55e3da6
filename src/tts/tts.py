"""
Text-to-Speech for coach lines using Kokoro.

Routes all voice audio through the voice bus (gain, ducking) and the
shared AudioManager so speech never races the workout tones.
"""

from __future__ import annotations

import warnings
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Protocol

import numpy as np
from loguru import logger

if TYPE_CHECKING:
    from audio.manager import AudioManager
    from audio.voice_bus import VoiceBus
    from core.clock import CancelHandle


class Voice(Protocol):
    sample_rate: int

    def synthesize(self, text: str) -> Iterator[np.ndarray]: ...


class KokoroVoice:
    def __init__(self, lang_code, voice):
        from kokoro import KPipeline

        self.voice = voice
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=UserWarning, module="torch")
            warnings.filterwarnings("ignore", category=FutureWarning, module="torch")
            self.pipeline = KPipeline(lang_code=lang_code, repo_id="hexgrad/Kokoro-82M")
        self.sample_rate = 24000

    def synthesize(self, text):
        """Generator that yields audio chunks for the given text and voice"""
        for _, _, audio in self.pipeline(text, voice=self.voice):
            yield np.asarray(audio, dtype=np.float32)


def load_voice(lang_code="a", voice="am_fenrir"):
    return KokoroVoice(lang_code, voice)


def speak_text(text: str, voice_obj: Voice, audio_manager: AudioManager, voice_bus: VoiceBus | None = None) -> int:
    """
    Synthesize text and queue it for playback.

    Args:
        text: Text to speak
        voice_obj: Voice that yields audio chunks
        audio_manager: Output to queue the chunks on
        voice_bus: Optional voice bus whose gain stage each chunk passes through

    Returns:
        Number of chunks queued
    """
    queued = 0
    for chunk in voice_obj.synthesize(text):
        if voice_bus is not None:
            chunk = voice_bus.process(chunk, voice_obj.sample_rate)
        audio_manager.queue_audio(chunk, voice_obj.sample_rate)
        queued += 1
    return queued


class VoiceSpeaker:
    """
    Session speech capability: speak(text) with the tone guard applied.

    Synthesis and playback failures are logged and swallowed; a missed
    line never stops the workout.
    """

    def __init__(
        self,
        voice_bus: VoiceBus,
        voice_factory: Callable[[], Voice] = load_voice,
        output_factory: Callable[[], AudioManager] | None = None,
    ):
        self._voice_bus = voice_bus
        self._voice_factory = voice_factory
        self._output_factory = output_factory
        self._voice: Voice | None = None
        self._output: AudioManager | None = None

    def _ensure(self) -> tuple[Voice, AudioManager]:
        if self._voice is None:
            self._voice = self._voice_factory()
        if self._output is None:
            if self._output_factory is None:
                from audio.manager import AudioManager

                self._output = AudioManager.shared()
            else:
                self._output = self._output_factory()
        return self._voice, self._output

    def _speak_now(self, text: str) -> None:
        try:
            voice, output = self._ensure()
            speak_text(text, voice, output, self._voice_bus)
        except Exception as e:
            logger.warning("Speech failed for {!r}: {}", text, e)

    def speak(self, text: str) -> CancelHandle:
        """Speak text once the tone guard allows. Non-blocking."""
        return self._voice_bus.guard_start(lambda: self._speak_now(text))

    __call__ = speak
