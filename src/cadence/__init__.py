"""Cadence: timed workout cues, tones and coaching lines."""

__version__ = "0.1.0"
