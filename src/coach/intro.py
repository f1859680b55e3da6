"""
Block introduction lines and block duration estimates.
"""

from core.context import BlockInfo, Mode, Pattern, SessionContext

DEFAULT_REP_PACE_SEC = 180
MIN_REP_PACE_SEC = 90
MAX_REP_PACE_SEC = 600


def pattern_label(pattern: Pattern) -> str:
    return {
        Pattern.SUPERSET: "Superset",
        Pattern.STRAIGHT_SETS: "Straight Sets",
        Pattern.CIRCUIT: "Circuit",
    }.get(pattern, "Custom")


def mode_label(mode: Mode) -> str:
    return "Time" if mode is Mode.TIME else "Reps"


def format_clock(total_sec: int) -> str:
    """m:ss"""
    return f"{total_sec // 60}:{total_sec % 60:02d}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" + ("" if count == 1 else "s")


def _clamp_pace(rep_pace_sec: int | None) -> int:
    pace = rep_pace_sec if rep_pace_sec is not None else DEFAULT_REP_PACE_SEC
    return max(MIN_REP_PACE_SEC, min(MAX_REP_PACE_SEC, pace))


def build_block_intro_line(block: BlockInfo, ctx: SessionContext, rep_pace_sec: int | None = None) -> str:
    """
    One spoken line introducing a block.

    Time blocks: "Circuit — 3 exercises • 30s on / 30s off. First up: Push-Ups."
    Rep blocks:  "Superset — 3 rounds • cadence 3:00. First up: Bench Press."
    """
    first_id = block.exercise_ids[0] if block.exercise_ids else None
    first_name = ctx.exercise_name(first_id) if first_id else "first exercise"
    label = pattern_label(block.pattern) if block.pattern is not Pattern.CUSTOM else "Block"

    if block.mode is Mode.TIME:
        count = len(block.exercise_ids)
        return (
            f"{label} — {_plural(count, 'exercise')} • {block.work_sec}s on / {block.rest_sec}s off. "
            f"First up: {first_name}."
        )

    pace = rep_pace_sec if rep_pace_sec is not None else DEFAULT_REP_PACE_SEC
    rounds = block.sets_per_exercise
    return f"{label} — {_plural(rounds, 'round')} • cadence {format_clock(pace)}. First up: {first_name}."


def estimate_block_duration_sec(block: BlockInfo, rep_pace_sec: int | None = None) -> int:
    """Planned block length in seconds."""
    if block.duration_sec:
        return block.duration_sec

    sets = block.sets_per_exercise
    count = len(block.exercise_ids)
    if block.mode is Mode.TIME:
        if block.pattern is Pattern.CIRCUIT:
            per_round = count * (block.work_sec + block.rest_sec)
            return sets * per_round + (sets - 1) * block.round_rest_sec if sets > 1 else per_round
        # Straight sets and supersets finish every set of an exercise before moving on
        return count * sets * (block.work_sec + block.rest_sec)

    return sets * _clamp_pace(rep_pace_sec)


def exercise_targets_line(block: BlockInfo, name: str) -> str:
    if block.mode is Mode.TIME:
        return f"{name} {block.work_sec}/{block.rest_sec} ×{block.sets_per_exercise}"
    return f"{name} {block.target_reps or '×'}"


def block_subtitle(block: BlockInfo, rep_pace_sec: int | None = None) -> str:
    if block.mode is Mode.TIME:
        if block.pattern is Pattern.CIRCUIT:
            return f"{len(block.exercise_ids)} exercises • {block.work_sec}s work / {block.rest_sec}s rest"
        return f"{block.work_sec}s on / {block.rest_sec}s off • all sets per exercise"
    pace = _clamp_pace(rep_pace_sec)
    return f"Superset ×{block.sets_per_exercise} rounds • cadence {format_clock(pace)}"
