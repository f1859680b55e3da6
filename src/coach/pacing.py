"""
Pacing model for rep-based rounds.

Splits a fixed round duration across the round's exercises by weight.
Each exercise weighs its estimated duration (floored), doubled for
single-limb work. The resulting windows tile the round exactly:
the first starts at 0, each starts where the previous ended, and the
last ends at the round duration.
"""

from dataclasses import dataclass

from core.context import ExerciseMeta

DEFAULT_ESTIMATE_SEC = 30.0
FLOOR_SEC = 10.0
MIN_WINDOW_SEC = 15.0
CONFIDENCE_FULL_SEC = 30.0
SPEED_EMA_ALPHA = 0.25


@dataclass(frozen=True)
class PacingWindow:
    exercise_id: str
    start_sec: float
    duration_sec: float
    confidence: float

    @property
    def end_sec(self) -> float:
        return self.start_sec + self.duration_sec


def exercise_weight(exercise: ExerciseMeta, floor_sec: float = FLOOR_SEC) -> float:
    """Estimated duration floored at floor_sec, doubled for unilateral work."""
    estimate = exercise.estimated_time_sec
    if estimate is None:
        estimate = DEFAULT_ESTIMATE_SEC
    return max(estimate, floor_sec) * (2 if exercise.unilateral else 1)


def compute_windows(
    round_sec: float,
    exercises: list[ExerciseMeta],
    floor_sec: float = FLOOR_SEC,
    min_window_sec: float = MIN_WINDOW_SEC,
    scale: float = 1.0,
) -> list[PacingWindow]:
    """
    Allocate a round's duration across its exercises.

    Args:
        round_sec: Round duration in seconds
        exercises: Exercises in round order
        floor_sec: Minimum estimate used for weighting
        min_window_sec: Minimum window length (never above an equal share)
        scale: Speed factor applied before the last window is snapped

    Returns:
        Contiguous windows covering [0, round_sec], or [] for an empty
        exercise list or a non-positive duration.
    """
    if not exercises or round_sec <= 0:
        return []

    count = len(exercises)
    weights = [exercise_weight(exercise, floor_sec) for exercise in exercises]
    total = sum(weights) or 1.0
    min_window = min(min_window_sec, round_sec / count)

    durations = [max(min_window, round(round_sec * scale * weight / total)) for weight in weights]

    windows: list[PacingWindow] = []
    start = 0.0
    for index, (exercise, duration) in enumerate(zip(exercises, durations)):
        remaining = count - index - 1
        if remaining == 0:
            duration = round_sec - start
        else:
            # Leave room for every later window's floor
            duration = min(duration, round_sec - start - remaining * min_window)
        windows.append(
            PacingWindow(
                exercise_id=exercise.id,
                start_sec=start,
                duration_sec=duration,
                confidence=min(1.0, duration / CONFIDENCE_FULL_SEC),
            )
        )
        start += duration

    return windows


class PaceModel:
    """
    Pacing model for one block of rounds.

    Holds the round length and exercises, and learns a speed factor from
    actual round durations with a light exponential moving average.
    """

    def __init__(
        self,
        round_sec: float,
        exercises: list[ExerciseMeta],
        floor_sec: float = FLOOR_SEC,
        min_window_sec: float = MIN_WINDOW_SEC,
    ):
        self.round_sec = round_sec
        self.exercises = list(exercises)
        self.floor_sec = floor_sec
        self.min_window_sec = min_window_sec
        self.speed_k = 1.0

    def compute_windows(self) -> list[PacingWindow]:
        return compute_windows(
            self.round_sec,
            self.exercises,
            floor_sec=self.floor_sec,
            min_window_sec=self.min_window_sec,
            scale=self.speed_k,
        )

    def update_from_round_finish(self, actual_round_sec: float) -> None:
        """Nudge the speed factor toward the observed/planned ratio."""
        if actual_round_sec <= 10 or self.round_sec <= 0:
            return
        ratio = actual_round_sec / self.round_sec
        self.speed_k = self.speed_k * (1 - SPEED_EMA_ALPHA) + ratio * SPEED_EMA_ALPHA

    def set_round_sec(self, round_sec: float) -> None:
        self.round_sec = round_sec
