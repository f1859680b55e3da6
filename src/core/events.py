"""
Event model and event bus for workout cue coordination.

Events are a closed set of frozen dataclasses, one per lifecycle moment of a
workout. Each carries only its own fields. The bus fans every emitted event
out to the current subscribers, synchronously and in subscription order.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from loguru import logger


class EventKind(Enum):
    """Stable event keys. Values double as phrase-pool event types."""

    BLOCK_START = "EV_BLOCK_START"
    AWAIT_READY = "EV_AWAIT_READY"
    COUNTDOWN = "EV_COUNTDOWN"
    ROUND_COUNTDOWN = "EV_ROUND_COUNTDOWN"
    WORK_PREVIEW = "EV_WORK_PREVIEW"
    WORK_START = "EV_WORK_START"
    TECH_HINT = "EV_TECH_HINT"
    HALFWAY = "EV_HALFWAY"
    LAST_SECONDS = "EV_LAST_SECONDS"
    WORK_END = "EV_WORK_END"
    REST_START = "EV_REST_START"
    REST_END = "EV_REST_END"
    ROUND_REST_START = "EV_ROUND_REST_START"
    ROUND_REST_END = "EV_ROUND_REST_END"
    BLOCK_END = "EV_BLOCK_END"
    WORKOUT_END = "EV_WORKOUT_END"


class HintSource(Enum):
    PREDICTED = "predicted"


@dataclass(frozen=True)
class BlockStart:
    block_id: str


@dataclass(frozen=True)
class AwaitReady:
    block_id: str


@dataclass(frozen=True)
class Countdown:
    sec: int


@dataclass(frozen=True)
class RoundCountdown:
    """Between-round countdown. ``sec`` counts down to the next go tone."""

    sec: int


@dataclass(frozen=True)
class WorkPreview:
    exercise_id: str
    set_index: int | None = None
    total_sets: int | None = None
    round_index: int | None = None
    total_rounds: int | None = None


@dataclass(frozen=True)
class WorkStart:
    exercise_id: str
    set_index: int | None = None
    round_index: int | None = None


@dataclass(frozen=True)
class TechHint:
    """A short technique cue for a downstream exercise of the round."""

    exercise_id: str
    source: HintSource = HintSource.PREDICTED
    cue: str | None = None


@dataclass(frozen=True)
class Halfway:
    exercise_id: str | None = None


@dataclass(frozen=True)
class LastSeconds:
    sec: int = 10
    round_index: int | None = None


@dataclass(frozen=True)
class WorkEnd:
    exercise_id: str
    round_index: int | None = None


@dataclass(frozen=True)
class RestStart:
    sec: int
    reason: str | None = None


@dataclass(frozen=True)
class RestEnd:
    pass


@dataclass(frozen=True)
class RoundRestStart:
    sec: int
    round_index: int | None = None


@dataclass(frozen=True)
class RoundRestEnd:
    pass


@dataclass(frozen=True)
class BlockEnd:
    block_id: str


@dataclass(frozen=True)
class WorkoutEnd:
    pass


Event = (
    BlockStart
    | AwaitReady
    | Countdown
    | RoundCountdown
    | WorkPreview
    | WorkStart
    | TechHint
    | Halfway
    | LastSeconds
    | WorkEnd
    | RestStart
    | RestEnd
    | RoundRestStart
    | RoundRestEnd
    | BlockEnd
    | WorkoutEnd
)

EventHandler = Callable[[Event], None]


def event_kind(event: Event) -> EventKind:
    """Return the stable key for an event."""
    match event:
        case BlockStart():
            return EventKind.BLOCK_START
        case AwaitReady():
            return EventKind.AWAIT_READY
        case Countdown():
            return EventKind.COUNTDOWN
        case RoundCountdown():
            return EventKind.ROUND_COUNTDOWN
        case WorkPreview():
            return EventKind.WORK_PREVIEW
        case WorkStart():
            return EventKind.WORK_START
        case TechHint():
            return EventKind.TECH_HINT
        case Halfway():
            return EventKind.HALFWAY
        case LastSeconds():
            return EventKind.LAST_SECONDS
        case WorkEnd():
            return EventKind.WORK_END
        case RestStart():
            return EventKind.REST_START
        case RestEnd():
            return EventKind.REST_END
        case RoundRestStart():
            return EventKind.ROUND_REST_START
        case RoundRestEnd():
            return EventKind.ROUND_REST_END
        case BlockEnd():
            return EventKind.BLOCK_END
        case WorkoutEnd():
            return EventKind.WORKOUT_END
        case _:
            assert_never(event)


class EventBus:
    """
    Simple synchronous event bus for workout events.

    Handlers either receive every event or only events of one variant.
    Not thread-safe: every emit happens on the scheduler's loop.
    """

    def __init__(self):
        self._subscribers: list[tuple[type | None, EventHandler]] = []

    def subscribe(self, handler: EventHandler, event_type: type | None = None) -> Callable[[], None]:
        """
        Subscribe to events.

        Args:
            handler: Callable that receives the event when emitted
            event_type: Optional event class to filter on (None = all events)

        Returns:
            A callable that removes this subscription
        """
        entry = (event_type, handler)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def unsubscribe(self, handler: EventHandler, event_type: type | None = None) -> None:
        """Remove a handler registered with the same event type."""
        entry = (event_type, handler)
        if entry in self._subscribers:
            self._subscribers.remove(entry)

    def emit(self, event: Event) -> None:
        """
        Emit an event to all matching subscribers.

        Handlers are called synchronously in subscription order.
        """
        for event_type, handler in list(self._subscribers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception:
                # Handlers must not throw; one failing handler never blocks the rest
                logger.exception("Error in event handler for {}", type(event).__name__)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def clear(self) -> None:
        """Remove all subscribers."""
        self._subscribers.clear()
