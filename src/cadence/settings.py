"""
Settings management for Cadence.

Loads configuration from settings.toml in the working directory.
"""

import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from loguru import logger

from coach.cue_policy import CONF_THRESH
from coach.observer import SPEAK_MIN_GAP_MS
from coach.pacing import FLOOR_SEC, MIN_WINDOW_SEC
from core.context import ChatterLevel, Mode, Pattern


@dataclass
class CoachSettings:
    """Settings related to spoken coaching."""

    chatter_level: ChatterLevel = ChatterLevel.MINIMAL
    locale: str = "en-US"
    confidence_threshold: float = CONF_THRESH  # Minimum pacing confidence for a technique hint
    speak_min_gap_ms: float = SPEAK_MIN_GAP_MS
    phrase_db: str | None = None  # SQLite phrase pool; in-process pool only when unset


@dataclass
class ToneSettings:
    volume: float = 1.0
    muted: bool = False


@dataclass
class VoiceSettings:
    """Settings related to the voice bus."""

    enabled: bool = False  # Speak lines with Kokoro (needs the voice extra)
    guard_ms: float = 250.0  # Speech never starts closer than this after a tone
    duck_depth_db: float = -6.0
    duck_ms: float = 250.0


@dataclass
class PacingSettings:
    floor_sec: float = FLOOR_SEC
    min_window_sec: float = MIN_WINDOW_SEC


@dataclass
class RoundSettings:
    """Settings for rep-round blocks."""

    pattern: Pattern = Pattern.SUPERSET
    mode: Mode = Mode.REPS
    round_sec: int = 180
    round_rest_sec: int = 60
    total_rounds: int = 3
    lead_ms: float = 2000


@dataclass
class Settings:
    """Application settings loaded from settings.toml."""

    coach: CoachSettings = field(default_factory=CoachSettings)
    tones: ToneSettings = field(default_factory=ToneSettings)
    voice: VoiceSettings = field(default_factory=VoiceSettings)
    pacing: PacingSettings = field(default_factory=PacingSettings)
    round: RoundSettings = field(default_factory=RoundSettings)


def parse_enum(enum_type: type[Enum], value, default: Enum):
    """Enum member for value, or default (with a warning) if it is not a valid label."""
    if value is None:
        return default
    try:
        return enum_type(value)
    except ValueError:
        logger.warning("Unknown {} {!r} in settings, using {!r}", enum_type.__name__, value, default.value)
        return default


def load_settings(settings_path: str | Path = "settings.toml") -> Settings:
    """
    Load settings from settings.toml.

    Args:
        settings_path: Path to the settings file

    Returns:
        Settings object with all configuration values. Missing file,
        sections or keys fall back to defaults.
    """
    settings_path = Path(settings_path)

    if settings_path.exists():
        with open(settings_path, "rb") as f:
            data = tomllib.load(f)
    else:
        data = {}

    coach_data = data.get("coach", {})
    coach_settings = CoachSettings(
        chatter_level=parse_enum(ChatterLevel, coach_data.get("chatter_level"), ChatterLevel.MINIMAL),
        locale=coach_data.get("locale", "en-US"),
        confidence_threshold=coach_data.get("confidence_threshold", CONF_THRESH),
        speak_min_gap_ms=coach_data.get("speak_min_gap_ms", SPEAK_MIN_GAP_MS),
        phrase_db=coach_data.get("phrase_db"),
    )

    tone_data = data.get("tones", {})
    tone_settings = ToneSettings(
        volume=tone_data.get("volume", 1.0),
        muted=tone_data.get("muted", False),
    )

    voice_data = data.get("voice", {})
    voice_settings = VoiceSettings(
        enabled=voice_data.get("enabled", False),
        guard_ms=voice_data.get("guard_ms", 250.0),
        duck_depth_db=voice_data.get("duck_depth_db", -6.0),
        duck_ms=voice_data.get("duck_ms", 250.0),
    )

    pacing_data = data.get("pacing", {})
    pacing_settings = PacingSettings(
        floor_sec=pacing_data.get("floor_sec", FLOOR_SEC),
        min_window_sec=pacing_data.get("min_window_sec", MIN_WINDOW_SEC),
    )

    round_data = data.get("round", {})
    round_settings = RoundSettings(
        pattern=parse_enum(Pattern, round_data.get("pattern"), Pattern.SUPERSET),
        mode=parse_enum(Mode, round_data.get("mode"), Mode.REPS),
        round_sec=round_data.get("round_sec", 180),
        round_rest_sec=round_data.get("round_rest_sec", 60),
        total_rounds=round_data.get("total_rounds", 3),
        lead_ms=round_data.get("lead_ms", 2000),
    )

    return Settings(
        coach=coach_settings,
        tones=tone_settings,
        voice=voice_settings,
        pacing=pacing_settings,
        round=round_settings,
    )
