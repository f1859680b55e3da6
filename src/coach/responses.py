"""
Response selection for coach lines.

For each event the selector asks the phrase store for candidate lines,
skips any still in cooldown, picks by priority then least-recent use,
renders the template and marks the pick used. A failing or empty store
falls back to the in-process pool with the same rules. When both come up
empty the caller uses synthesize_line() for a fixed generic line.
"""

import re
from typing import assert_never

from loguru import logger

from core.context import ChatterLevel, SessionContext
from core.events import (
    AwaitReady,
    BlockEnd,
    BlockStart,
    Countdown,
    Event,
    Halfway,
    LastSeconds,
    RestEnd,
    RestStart,
    RoundCountdown,
    RoundRestEnd,
    RoundRestStart,
    TechHint,
    WorkEnd,
    WorkoutEnd,
    WorkPreview,
    WorkStart,
    event_kind,
)

from .intro import build_block_intro_line
from .pool import InMemoryPhrasePool, PhrasePoolStore, PoolItem, PoolQuery, pick_candidate

TOKEN_RE = re.compile(r"\{\{(\w+)\}\}")
TEMPO_CUE_RE = re.compile(r"tempo|cadence|pace|breath", re.IGNORECASE)


class CueRotator:
    """Cycles through an exercise's technique cues, one per call."""

    def __init__(self):
        self._index = -1

    def next(self, cues: tuple[str, ...] | list[str] | None, prefer_tempo: bool = False) -> str:
        if not cues:
            return ""
        pool = [cue for cue in cues if TEMPO_CUE_RE.search(cue)] if prefer_tempo else list(cues)
        usable = pool or list(cues)
        self._index = (self._index + 1) % len(usable)
        return usable[self._index]


def _event_field(event: Event, name: str):
    return getattr(event, name, None)


def render_template(template: str, ctx: SessionContext, event: Event, rotator: CueRotator | None = None) -> str:
    """
    Substitute {{token}} placeholders.

    Tokens: exercise, next, cue, tempoCue, load, restSec, sec, remainingSec,
    setNum, roundNum. Unknown tokens, and a load with no plan, render as
    empty strings.
    """
    rotator = rotator or CueRotator()
    exercise_id = _event_field(event, "exercise_id")
    meta = ctx.exercise_meta(exercise_id)
    cues = meta.cues if meta is not None else ()

    set_index = _event_field(event, "set_index")
    round_index = _event_field(event, "round_index")
    sec = _event_field(event, "sec")
    load = ctx.planned_loads.get(exercise_id) if exercise_id else None

    tokens: dict[str, object] = {
        "exercise": ctx.exercise_name(exercise_id) if exercise_id else "",
        "next": ctx.next_exercise_name(exercise_id) or "",
        "load": f"{load:g}" if load is not None else "",
        "restSec": sec if sec is not None else "",
        "sec": sec if sec is not None else "",
        "remainingSec": sec if sec is not None else "",
        "setNum": set_index + 1 if isinstance(set_index, int) else "",
        "roundNum": round_index + 1 if isinstance(round_index, int) else "",
    }

    def replace(match: re.Match) -> str:
        key = match.group(1)
        # Cue tokens rotate, so only draw one when the template asks for it
        if key == "cue":
            return rotator.next(cues)
        if key == "tempoCue":
            return rotator.next(cues, prefer_tempo=True)
        return str(tokens.get(key, ""))

    return TOKEN_RE.sub(replace, template)


class ResponseSelector:
    """
    Picks and renders the best-fit coach line for an event.

    Keeps its own record of when each line was last picked, so cooldowns
    hold even if the store's mark_used lags or fails.
    """

    def __init__(
        self,
        store: PhrasePoolStore | None = None,
        fallback: InMemoryPhrasePool | None = None,
    ):
        self._store = store
        self._fallback = fallback if fallback is not None else InMemoryPhrasePool()
        self._last_used: dict[int, float] = {}
        self._rotator = CueRotator()

    @property
    def fallback(self) -> InMemoryPhrasePool:
        return self._fallback

    @staticmethod
    def build_query(ctx: SessionContext, event: Event) -> PoolQuery:
        return PoolQuery(
            event_type=event_kind(event).value,
            pattern=ctx.pattern.value,
            mode=ctx.mode.value,
            chatter_level=ctx.chatter_level.value,
            locale=ctx.locale,
        )

    def _from_store(self, query: PoolQuery, now_ms: float) -> PoolItem | None:
        if self._store is None:
            return None
        try:
            candidates = self._store.query(query)
        except Exception as e:
            # No retry: a late line is worse than none
            logger.warning("Phrase store query failed, using in-process pool: {}", e)
            return None

        pick = pick_candidate(candidates, now_ms, self._last_used)
        if pick is None:
            return None

        self._last_used[pick.id] = now_ms
        try:
            self._store.mark_used(pick.id)
        except Exception as e:
            logger.warning("Failed to mark response {} as used: {}", pick.id, e)
        return pick

    def select(self, ctx: SessionContext, event: Event) -> str | None:
        """
        Rendered line for the event, or None if no pool has an eligible line.
        """
        now_ms = ctx.now_ms()
        query = self.build_query(ctx, event)

        pick = self._from_store(query, now_ms)
        if pick is None:
            pick = self._fallback.select(query, now_ms)
        if pick is None:
            return None
        return render_template(pick.template, ctx, event, self._rotator)


def synthesize_line(ctx: SessionContext, event: Event) -> str | None:
    """Fixed generic line per event, used when no pool has a line."""
    match event:
        case BlockStart(block_id=block_id):
            block = ctx.find_block(block_id)
            if block is not None:
                return build_block_intro_line(block, ctx, ctx.rep_pace_sec)
            return "Block starting — set up now."
        case WorkPreview(exercise_id=exercise_id, set_index=set_index, round_index=round_index):
            name = ctx.exercise_name(exercise_id)
            if set_index is not None:
                return f"Set {set_index + 1} — {name} coming up."
            if round_index is not None:
                return f"Round {round_index + 1} — {name} next."
            return f"{name} coming up."
        case WorkStart(exercise_id=exercise_id):
            meta = ctx.exercise_meta(exercise_id)
            if meta is not None and meta.cues:
                return meta.cues[0]
            return "Go — tight and controlled."
        case TechHint(exercise_id=exercise_id, cue=cue):
            if ctx.chatter_level is not ChatterLevel.HIGH:
                return None
            if cue:
                return cue
            name = ctx.exercise_name(exercise_id).lower()
            if "lunge" in name:
                return "Keep it crisp — knee tracks mid-foot; torso tall."
            return "Keep it crisp — control the descent; own the range."
        case Halfway():
            return "Halfway — smooth tempo."
        case LastSeconds(sec=sec):
            return f"Last {sec} — finish strong."
        case WorkEnd():
            return "Nice work — breathe."
        case RestStart():
            return "Rest — log your set."
        case RoundRestStart():
            return "Round rest — reset and get set."
        case BlockEnd():
            return "Block complete — next block up."
        case WorkoutEnd():
            return "Workout complete. Great job."
        case AwaitReady() | Countdown() | RoundCountdown() | RestEnd() | RoundRestEnd():
            return None
        case _:
            assert_never(event)
