"""
Command-line entry point for Cadence.

    cadence preview   Run a round block (or a timeline file) on a virtual clock
                      and print every tone, event and coach line with its offset
    cadence play      Run it in real time through the audio output
"""

import argparse
import asyncio
import re
import sys

from loguru import logger

from audio.tones import ToneKind
from core.clock import LoopScheduler, VirtualScheduler
from core.context import ChatterLevel, ExerciseMeta
from core.events import Event, WorkoutEnd
from runtime.player import load_timeline

from .session import CoachSession, create_session
from .settings import Settings, load_settings

DEMO_EXERCISES = [
    ExerciseMeta(
        id="bench-press",
        name="Bench Press",
        cues=("Drive through the floor", "Control the descent"),
        estimated_time_sec=45,
    ),
    ExerciseMeta(
        id="walking-lunge",
        name="Walking Lunge",
        cues=("Knee tracks mid-foot", "Torso tall, steady tempo"),
        estimated_time_sec=75,
        unilateral=True,
    ),
    ExerciseMeta(
        id="plank",
        name="Plank",
        cues=("Squeeze your glutes", "Breathe behind the brace"),
        estimated_time_sec=30,
    ),
]


def _setup_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="<level>{level: <8}</level> | <cyan>{name}</cyan> - <level>{message}</level>",
        level="DEBUG" if verbose else "WARNING",
    )


def parse_exercise(text: str) -> ExerciseMeta:
    """
    Parse "Name[:estimated seconds[:u]]", e.g. "Walking Lunge:75:u".

    A trailing "u" marks a unilateral exercise.
    """
    parts = [part.strip() for part in text.split(":")]
    name = parts[0]
    if not name:
        raise argparse.ArgumentTypeError(f"missing exercise name in {text!r}")
    try:
        estimate = float(parts[1]) if len(parts) > 1 and parts[1] else None
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"bad estimated time in {text!r}") from e
    unilateral = len(parts) > 2 and parts[2].lower() in ("u", "unilateral")
    exercise_id = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return ExerciseMeta(id=exercise_id, name=name, estimated_time_sec=estimate, unilateral=unilateral)


def format_offset(ms: float) -> str:
    """m:ss.s"""
    total = max(0.0, ms) / 1000
    return f"{int(total // 60)}:{total % 60:04.1f}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cadence", description="Cadence - workout cue coordination")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("preview", "Print the cues of a workout on a virtual clock"),
        ("play", "Play a workout in real time"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--settings", default="settings.toml", help="Settings file (default: settings.toml)")
        sub.add_argument("--timeline", help="JSON timeline of precompiled steps (default: a round block)")
        sub.add_argument("--chatter", choices=[level.value for level in ChatterLevel], help="Chatter level")
        sub.add_argument("--rounds", type=int, help="Number of rounds")
        sub.add_argument("--round-sec", type=int, help="Round duration in seconds")
        sub.add_argument(
            "--exercise",
            action="append",
            type=parse_exercise,
            help='Exercise as "Name[:est_sec[:u]]"; repeat for 2-3 exercises',
        )
    return parser


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.chatter:
        settings.coach.chatter_level = ChatterLevel(args.chatter)
    if args.rounds is not None:
        settings.round.total_rounds = args.rounds
    if args.round_sec is not None:
        settings.round.round_sec = args.round_sec
    return settings


def _start(session: CoachSession, timeline_path: str | None) -> None:
    if timeline_path:
        session.player.start(load_timeline(timeline_path))
    else:
        session.player.start_rounds(session.round_block())


class _SilentOutput:
    """Tone output for previews: accepts audio and drops it."""

    def queue_audio(self, audio, sample_rate=None) -> None:
        pass


def preview(settings: Settings, exercises: list[ExerciseMeta], timeline_path: str | None = None) -> int:
    """Run the workout on a virtual clock, printing each cue as it happens."""
    scheduler = VirtualScheduler()

    def stamp() -> str:
        return f"[{format_offset(scheduler.now_ms())}]"

    def on_tone(kind: ToneKind) -> None:
        print(f"{stamp()} tone    {kind.value}")

    def on_event(event: Event) -> None:
        print(f"{stamp()} event   {event}")

    session = create_session(
        exercises,
        settings=settings,
        scheduler=scheduler,
        speak=lambda text: print(f"{stamp()} say     {text}"),
        caption=lambda text: print(f"{stamp()} caption {text}"),
        tone_output=_SilentOutput,
        on_tone=on_tone,
    )
    # Print events before the coach reacts to them
    session.bus.clear()
    session.bus.subscribe(on_event)
    session.bus.subscribe(session.observer)

    _start(session, timeline_path)
    scheduler.run_until_idle()
    session.close()
    return 0


async def _play(session: CoachSession, timeline_path: str | None) -> None:
    finished = asyncio.Event()
    session.bus.subscribe(lambda event: finished.set(), WorkoutEnd)
    _start(session, timeline_path)
    try:
        await finished.wait()
        # Let the final line finish
        await asyncio.sleep(2)
    finally:
        session.close()


def play(settings: Settings, exercises: list[ExerciseMeta], timeline_path: str | None = None) -> int:
    """Run the workout in real time through the shared audio output."""
    from audio.manager import AudioManager

    session = create_session(
        exercises,
        settings=settings,
        scheduler=LoopScheduler(),
        caption=lambda text: print(f"💬 {text}"),
    )

    print("🏋️  Starting workout...")
    print("   Press Ctrl+C to stop\n")
    try:
        asyncio.run(_play(session, timeline_path))
    except KeyboardInterrupt:
        print("\n🛑 Stopping workout...")
    finally:
        AudioManager.release_shared()

    print("\nDone! 👋")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    settings = _apply_overrides(load_settings(args.settings), args)
    exercises = args.exercise or DEMO_EXERCISES
    if len(exercises) > 3:
        print("❌ Error: at most three exercises per round")
        return 1

    if args.command == "preview":
        return preview(settings, exercises, args.timeline)
    return play(settings, exercises, args.timeline)


if __name__ == "__main__":
    sys.exit(main())
