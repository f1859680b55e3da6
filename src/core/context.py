"""
Session context for a workout.

The SessionContext holds everything the coaching components read during
one workout: the block's pattern and mode, the chatter level, exercise
metadata and the optional output capabilities (speak, caption, beep,
haptic). It is built once per session and passed to components instead of
module-level singletons.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from loguru import logger


class Pattern(Enum):
    SUPERSET = "superset"
    STRAIGHT_SETS = "straight_sets"
    CIRCUIT = "circuit"
    CUSTOM = "custom"


class Mode(Enum):
    TIME = "time"
    REPS = "reps"


class ChatterLevel(Enum):
    """How much the coach talks. Ordered: SILENT < MINIMAL < HIGH."""

    SILENT = "silent"
    MINIMAL = "minimal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _CHATTER_RANK[self]

    def at_least(self, other: "ChatterLevel") -> bool:
        return self.rank >= other.rank


_CHATTER_RANK = {ChatterLevel.SILENT: 0, ChatterLevel.MINIMAL: 1, ChatterLevel.HIGH: 2}


@dataclass(frozen=True)
class ExerciseMeta:
    """Exercise metadata as provided by the exercise catalog."""

    id: str
    name: str
    cues: tuple[str, ...] = ()
    estimated_time_sec: float | None = None
    unilateral: bool = False


@dataclass(frozen=True)
class BlockInfo:
    """Block description used for intro lines and duration estimates."""

    id: str
    pattern: Pattern
    mode: Mode
    exercise_ids: tuple[str, ...] = ()
    name: str | None = None
    sets_per_exercise: int = 1
    work_sec: int = 0
    rest_sec: int = 0
    round_rest_sec: int = 0
    duration_sec: int | None = None
    target_reps: str | None = None
    await_ready: bool = False


class ExerciseLookup(Protocol):
    def get(self, exercise_id: str) -> ExerciseMeta | None: ...


class ExerciseCatalog:
    """In-memory exercise lookup, ordered as the exercises were added."""

    def __init__(self, exercises: list[ExerciseMeta] | None = None):
        self._exercises: dict[str, ExerciseMeta] = {}
        for exercise in exercises or []:
            self.add(exercise)

    def add(self, exercise: ExerciseMeta) -> None:
        self._exercises[exercise.id] = exercise

    def get(self, exercise_id: str) -> ExerciseMeta | None:
        return self._exercises.get(exercise_id)

    def __len__(self) -> int:
        return len(self._exercises)


TextSink = Callable[[str], None]


def _zero_clock() -> float:
    return 0.0


@dataclass
class SessionContext:
    """
    Per-workout context shared by the coaching components.

    Attributes:
        pattern: Block pattern (superset, circuit, ...)
        mode: Time-based or rep-based block
        chatter_level: How much the coach talks
        exercises: Exercise lookup (catalog collaborator)
        order: Exercise ids in workout order, for "next exercise" lookups
        locale: Opaque locale id passed to the phrase pool
        planned_loads: Planned load per exercise id
        rep_pace_sec: Round cadence for rep-based blocks
        blocks: Block descriptions for intro lines
        now_ms: Clock used for cooldowns and guards
        speak, caption, beep, haptic: Optional output capabilities
    """

    pattern: Pattern = Pattern.SUPERSET
    mode: Mode = Mode.REPS
    chatter_level: ChatterLevel = ChatterLevel.MINIMAL
    exercises: ExerciseLookup = field(default_factory=ExerciseCatalog)
    order: list[str] = field(default_factory=list)
    locale: str = "en-US"
    planned_loads: dict[str, float | None] = field(default_factory=dict)
    rep_pace_sec: int | None = None
    blocks: list[BlockInfo] = field(default_factory=list)
    now_ms: Callable[[], float] = _zero_clock

    speak: TextSink | None = None
    caption: TextSink | None = None
    beep: Callable[..., None] | None = None
    haptic: Callable[[str], None] | None = None

    def exercise_meta(self, exercise_id: str | None) -> ExerciseMeta | None:
        if not exercise_id:
            return None
        return self.exercises.get(exercise_id)

    def exercise_name(self, exercise_id: str | None) -> str:
        """Display name for an exercise, falling back to its id."""
        meta = self.exercise_meta(exercise_id)
        if meta is not None:
            return meta.name
        return exercise_id or ""

    def next_exercise_name(self, exercise_id: str | None = None) -> str | None:
        """Name of the exercise after exercise_id in workout order."""
        if not self.order:
            return None
        if exercise_id is None or exercise_id not in self.order:
            return self.exercise_name(self.order[0])
        index = self.order.index(exercise_id) + 1
        if index >= len(self.order):
            return None
        return self.exercise_name(self.order[index])

    def find_block(self, block_id: str) -> BlockInfo | None:
        return next((block for block in self.blocks if block.id == block_id), None)

    # --- Capabilities (no-op when absent; failures never reach the timeline) ---

    def do_speak(self, text: str) -> None:
        self._call_sink("speak", self.speak, text)

    def do_caption(self, text: str) -> None:
        self._call_sink("caption", self.caption, text)

    def do_beep(self, kind) -> None:
        self._call_sink("beep", self.beep, kind)

    def do_haptic(self, kind: str) -> None:
        self._call_sink("haptic", self.haptic, kind)

    @staticmethod
    def _call_sink(name: str, sink, arg) -> None:
        if sink is None:
            return
        try:
            sink(arg)
        except Exception as e:
            logger.warning("Session {} capability failed: {}", name, e)


def create_session_context(
    exercises: list[ExerciseMeta] | None = None,
    pattern: Pattern = Pattern.SUPERSET,
    mode: Mode = Mode.REPS,
    chatter_level: ChatterLevel = ChatterLevel.MINIMAL,
    **kwargs,
) -> SessionContext:
    """
    Factory function to create a SessionContext from a list of exercises.

    The exercises populate both the lookup and the workout order.

    Args:
        exercises: Exercise metadata in workout order
        pattern: Block pattern
        mode: Block mode
        chatter_level: Coaching verbosity
        **kwargs: Any other SessionContext field

    Returns:
        SessionContext ready to hand to the coaching components
    """
    exercises = exercises or []
    catalog = ExerciseCatalog(exercises)
    return SessionContext(
        pattern=pattern,
        mode=mode,
        chatter_level=chatter_level,
        exercises=catalog,
        order=[exercise.id for exercise in exercises],
        **kwargs,
    )
