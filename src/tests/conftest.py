"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add src directory to path so tests can import modules
src_path = Path(__file__).parent.parent
sys.path.insert(0, str(src_path))

from core.clock import VirtualScheduler  # noqa: E402
from core.context import ChatterLevel, ExerciseMeta, create_session_context  # noqa: E402
from core.events import EventBus  # noqa: E402


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def exercises():
    """A three-exercise superset: bilateral, unilateral, bilateral."""
    return [
        ExerciseMeta(id="bench", name="Bench Press", cues=("Drive through the floor",), estimated_time_sec=45),
        ExerciseMeta(
            id="lunge",
            name="Walking Lunge",
            cues=("Knee tracks mid-foot", "Steady tempo"),
            estimated_time_sec=75,
            unilateral=True,
        ),
        ExerciseMeta(id="plank", name="Plank", cues=("Squeeze your glutes",), estimated_time_sec=30),
    ]


@pytest.fixture
def ctx(scheduler, exercises):
    return create_session_context(exercises, chatter_level=ChatterLevel.HIGH, now_ms=scheduler.now_ms)


@pytest.fixture
def recorded_events():
    """An event bus with a recorder subscribed; yields (bus, events)."""
    bus = EventBus()
    events = []
    bus.subscribe(events.append)
    return bus, events
