"""
Guard constants and gating predicates for optional cues.

All functions here are pure: they only look at their arguments.
"""

from core.context import ChatterLevel

CONF_THRESH = 0.70  # minimum pacing confidence to speak a technique hint
MIN_REMAINING_SEC = 20  # a hint needs at least this much round time left
TECH_OFFSET_MS = 3000  # hint fires this long after its window starts
TONE_GUARD_MS = 250  # speech never starts this close after a tone
BOUNDARY_GUARD_SEC = 10  # halfway cue keeps clear of round start and end
ALTERNATE_TECH_HINT = True  # odd rounds hint the 2nd exercise, even rounds the 3rd (1-based)


def allow_technical_hint(chatter: ChatterLevel, round_index: int) -> bool:
    """Technique hints only at high chatter and from the second round on."""
    return chatter is ChatterLevel.HIGH and round_index >= 1


def prefer_second_exercise_this_round(round_index: int, alternate: bool = ALTERNATE_TECH_HINT) -> bool:
    if not alternate:
        return True
    return (round_index + 1) % 2 == 1


def has_time_remaining(now_ms: float, round_end_ms: float, min_sec: float = MIN_REMAINING_SEC) -> bool:
    return (round_end_ms - now_ms) / 1000 >= min_sec


def meets_confidence(confidence: float | None, threshold: float = CONF_THRESH) -> bool:
    return (confidence or 0.0) >= threshold


def allow_halfway(chatter: ChatterLevel, round_sec: float, halfway_sec: float) -> bool:
    """Halfway cue at high chatter only, and never near a round boundary."""
    if chatter is not ChatterLevel.HIGH:
        return False
    return BOUNDARY_GUARD_SEC < halfway_sec < round_sec - BOUNDARY_GUARD_SEC


def allow_preview(chatter: ChatterLevel, lead_ms: float, min_lead_ms: float) -> bool:
    """Pre-round preview needs minimal chatter or more and enough lead time."""
    return chatter.at_least(ChatterLevel.MINIMAL) and lead_ms >= min_lead_ms
