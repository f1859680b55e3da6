"""
Core infrastructure for Cadence workout coaching.

Provides foundational abstractions:
- Event model and event bus for decoupled communication
- Cancellable scheduling on a real or virtual clock
- Session context for dependency injection
"""

from .clock import CancelHandle, CompositeHandle, LoopScheduler, Scheduler, VirtualScheduler
from .context import (
    BlockInfo,
    ChatterLevel,
    ExerciseCatalog,
    ExerciseMeta,
    Mode,
    Pattern,
    SessionContext,
    create_session_context,
)
from .events import Event, EventBus, EventKind, event_kind

__all__ = [
    "Event",
    "EventBus",
    "EventKind",
    "event_kind",
    "CancelHandle",
    "CompositeHandle",
    "Scheduler",
    "LoopScheduler",
    "VirtualScheduler",
    "BlockInfo",
    "ChatterLevel",
    "ExerciseCatalog",
    "ExerciseMeta",
    "Mode",
    "Pattern",
    "SessionContext",
    "create_session_context",
]
