"""
Shared audio output for Cadence.

Tones and speech play through one persistent output stream, so they queue
back to back instead of cutting each other off. Anything queued at another
sample rate is resampled to the stream rate first.
"""

import queue

import numpy as np
import sounddevice as sd
from loguru import logger

OUTPUT_SAMPLE_RATE = 44100
BLOCK_SIZE = 1024


def to_output_rate(audio: np.ndarray, sample_rate: int, output_rate: int = OUTPUT_SAMPLE_RATE) -> np.ndarray:
    """
    Convert mono samples to float32 at the output rate.

    Resampling is linear interpolation. Input outside [-1, 1] is taken to be
    int16 range and scaled down.
    """
    audio = np.asarray(audio, dtype=np.float32)
    if sample_rate != output_rate and audio.size:
        length = int(len(audio) * output_rate / sample_rate)
        positions = np.linspace(0, len(audio) - 1, length)
        audio = np.interp(positions, np.arange(len(audio)), audio).astype(np.float32)

    if audio.size and (audio.max() > 1.0 or audio.min() < -1.0):
        audio = audio / 32768.0
    return audio


class AudioManager:
    """
    Output-only mixer over a single sounddevice stream.

    The stream callback runs on sounddevice's thread and drains chunks from
    a queue; the queue is the only state shared with it.
    """

    _shared: "AudioManager | None" = None

    def __init__(self, sample_rate: int = OUTPUT_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._chunks: queue.Queue[np.ndarray] = queue.Queue()
        self._current: np.ndarray | None = None
        self._position = 0

        self._stream = sd.OutputStream(
            samplerate=sample_rate,
            channels=1,
            dtype=np.float32,
            callback=self._fill,
            blocksize=BLOCK_SIZE,
        )
        self._stream.start()

    @classmethod
    def shared(cls) -> "AudioManager":
        """The process-wide output, created on first use and kept for the session."""
        if cls._shared is None:
            cls._shared = cls()
            logger.debug("Audio output stream started at {} Hz", cls._shared.sample_rate)
        return cls._shared

    @classmethod
    def release_shared(cls) -> None:
        """Close the process-wide output if it was created."""
        if cls._shared is not None:
            cls._shared.cleanup()

    def _fill(self, outdata: np.ndarray, frames: int, time, status) -> None:
        """Copy queued chunks into the output buffer, padding with silence."""
        filled = 0
        while filled < frames:
            if self._current is None:
                try:
                    self._current = self._chunks.get_nowait()
                    self._position = 0
                except queue.Empty:
                    outdata[filled:, 0] = 0.0
                    return

            count = min(len(self._current) - self._position, frames - filled)
            outdata[filled : filled + count, 0] = self._current[self._position : self._position + count]
            self._position += count
            filled += count
            if self._position >= len(self._current):
                self._current = None

    def queue_audio(self, audio: np.ndarray, sample_rate: int | None = None) -> None:
        """
        Queue mono audio to play after whatever is already queued.

        Args:
            audio: Mono samples, float in [-1, 1] or int16 range
            sample_rate: Rate of the samples (defaults to the stream rate)
        """
        self._chunks.put(to_output_rate(audio, sample_rate or self.sample_rate, self.sample_rate))

    def cleanup(self) -> None:
        """Drop pending audio and close the stream."""
        while True:
            try:
                self._chunks.get_nowait()
            except queue.Empty:
                break
        self._current = None

        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.warning("Error closing audio output: {}", e)
            self._stream = None
        if AudioManager._shared is self:
            AudioManager._shared = None
