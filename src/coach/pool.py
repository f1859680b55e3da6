"""
Phrase pools for coach responses.

A phrase pool holds candidate coaching lines keyed by event type, pattern,
mode, chatter level and locale, each with a priority and a cooldown. Two
implementations share one selection rule:
- InMemoryPhrasePool: in-process fallback pool
- SqlitePhrasePool: local store with the query/mark_used contract of the
  external phrase service
"""

import sqlite3
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from core.context import ChatterLevel

ANY = "any"


def wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class PoolQuery:
    event_type: str
    pattern: str
    mode: str
    chatter_level: str
    locale: str = "en-US"


@dataclass(frozen=True)
class PoolItem:
    """A candidate line as returned by a phrase store query."""

    id: int
    template: str
    priority: int
    cooldown_sec: float
    last_used_at_ms: float | None = None
    usage_count: int = 0


@dataclass
class PhrasePoolItem:
    """A full pool row. usage_count and last_used_at_ms change on every pick."""

    id: int
    event_type: str
    template: str
    pattern: str = ANY
    mode: str = ANY
    chatter_level: str = ANY
    locale: str = "en-US"
    priority: int = 3
    cooldown_sec: float = 30
    active: bool = True
    usage_count: int = 0
    last_used_at_ms: float | None = None

    def as_candidate(self) -> PoolItem:
        return PoolItem(
            id=self.id,
            template=self.template,
            priority=self.priority,
            cooldown_sec=self.cooldown_sec,
            last_used_at_ms=self.last_used_at_ms,
            usage_count=self.usage_count,
        )


class PhrasePoolStore(Protocol):
    def query(self, query: PoolQuery) -> list[PoolItem]: ...

    def mark_used(self, item_id: int) -> None: ...


def normalize_chatter_label(label: str) -> str:
    """Map legacy chatter labels onto the current ones."""
    if label == ANY:
        return ANY
    if label == "signals":
        return ChatterLevel.SILENT.value
    if label == "standard":
        return ChatterLevel.HIGH.value
    if label in {level.value for level in ChatterLevel}:
        return label
    return ChatterLevel.MINIMAL.value


def matches(item: PhrasePoolItem, query: PoolQuery) -> bool:
    """True if an active pool row fits the query."""
    if not item.active or item.event_type != query.event_type:
        return False
    if item.pattern not in (ANY, query.pattern):
        return False
    if item.mode not in (ANY, query.mode):
        return False
    if normalize_chatter_label(item.chatter_level) not in (ANY, query.chatter_level):
        return False
    return item.locale in (ANY, query.locale)


def in_cooldown(last_used_at_ms: float | None, cooldown_sec: float, now_ms: float) -> bool:
    if last_used_at_ms is None:
        return False
    return now_ms - last_used_at_ms < (cooldown_sec or 0) * 1000


def pick_candidate(
    candidates: list[PoolItem],
    now_ms: float,
    last_used: dict[int, float] | None = None,
) -> PoolItem | None:
    """
    Choose the best line among candidates.

    Lines still in cooldown are skipped. The rest are ranked by priority
    (highest first), then least recently used (never used first), then
    fewest uses, then id.

    Args:
        candidates: Lines that fit the event and session
        now_ms: Current time
        last_used: Extra last-used times known to the caller, by id

    Returns:
        The chosen line, or None if every candidate is cooling down
    """
    last_used = last_used or {}

    def used_at(item: PoolItem) -> float | None:
        known = [t for t in (item.last_used_at_ms, last_used.get(item.id)) if t is not None]
        return max(known) if known else None

    eligible = [item for item in candidates if not in_cooldown(used_at(item), item.cooldown_sec, now_ms)]
    if not eligible:
        return None

    def rank(item: PoolItem):
        used = used_at(item)
        return (-item.priority, float("-inf") if used is None else used, item.usage_count, item.id)

    return min(eligible, key=rank)


class InMemoryPhrasePool:
    """In-process phrase pool used when the phrase store is unavailable."""

    def __init__(self, items: list[PhrasePoolItem] | None = None, clock: Callable[[], float] = wall_clock_ms):
        self._items: list[PhrasePoolItem] = list(items or [])
        self._clock = clock

    def seed(self, items: list[PhrasePoolItem]) -> None:
        """Replace the pool contents."""
        self._items = list(items)

    @property
    def items(self) -> list[PhrasePoolItem]:
        return list(self._items)

    def query(self, query: PoolQuery) -> list[PoolItem]:
        return [item.as_candidate() for item in self._items if matches(item, query)]

    def select(self, query: PoolQuery, now_ms: float) -> PoolItem | None:
        """Pick a line for the query and mark it used."""
        pick = pick_candidate(self.query(query), now_ms)
        if pick is not None:
            self.mark_used(pick.id, now_ms)
        return pick

    def mark_used(self, item_id: int, now_ms: float | None = None) -> None:
        now_ms = self._clock() if now_ms is None else now_ms
        for item in self._items:
            if item.id == item_id:
                item.usage_count += 1
                item.last_used_at_ms = now_ms
                return

    def __len__(self) -> int:
        return len(self._items)


class SqlitePhrasePool:
    """
    Phrase pool with SQLite persistence.

    Rows are never deleted here; picks only bump usage_count and
    last_used_at, stamped with the pool's clock.
    """

    def __init__(self, db_path: str | Path = "data/coach_responses.db", clock: Callable[[], float] = wall_clock_ms):
        """
        Initialize the phrase pool.

        Args:
            db_path: Path to the SQLite database file
            clock: Callable returning now in ms, used by mark_used (wall
                clock by default; pass the session clock so stamps share the
                selector's time base)
        """
        self._db_lock = threading.Lock()
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        with self._db_lock:
            conn = self._get_connection()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS coach_responses (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        event_type TEXT NOT NULL,
                        pattern TEXT NOT NULL DEFAULT 'any',
                        mode TEXT NOT NULL DEFAULT 'any',
                        chatter_level TEXT NOT NULL DEFAULT 'any',
                        locale TEXT NOT NULL DEFAULT 'en-US',
                        text_template TEXT NOT NULL,
                        priority INTEGER NOT NULL DEFAULT 3,
                        cooldown_sec REAL NOT NULL DEFAULT 30,
                        active INTEGER NOT NULL DEFAULT 1,
                        usage_count INTEGER NOT NULL DEFAULT 0,
                        last_used_at REAL NULL
                    )
                """)
                conn.commit()
            finally:
                conn.close()

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> PhrasePoolItem:
        return PhrasePoolItem(
            id=row["id"],
            event_type=row["event_type"],
            template=row["text_template"],
            pattern=row["pattern"],
            mode=row["mode"],
            chatter_level=row["chatter_level"],
            locale=row["locale"],
            priority=row["priority"],
            cooldown_sec=row["cooldown_sec"],
            active=bool(row["active"]),
            usage_count=row["usage_count"],
            last_used_at_ms=row["last_used_at"],
        )

    def add(self, item: PhrasePoolItem) -> int:
        """Insert a row (its id is assigned by the database)."""
        with self._db_lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO coach_responses
                        (event_type, pattern, mode, chatter_level, locale, text_template,
                         priority, cooldown_sec, active, usage_count, last_used_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item.event_type,
                        item.pattern,
                        item.mode,
                        item.chatter_level,
                        item.locale,
                        item.template,
                        item.priority,
                        item.cooldown_sec,
                        int(item.active),
                        item.usage_count,
                        item.last_used_at_ms,
                    ),
                )
                conn.commit()
                return cursor.lastrowid
            finally:
                conn.close()

    def seed(self, items: list[PhrasePoolItem]) -> int:
        """Insert rows only if the table is empty. Returns rows inserted."""
        if self.count() > 0:
            return 0
        for item in items:
            self.add(item)
        return len(items)

    def count(self) -> int:
        with self._db_lock:
            conn = self._get_connection()
            try:
                return conn.execute("SELECT COUNT(*) FROM coach_responses").fetchone()[0]
            finally:
                conn.close()

    def get(self, item_id: int) -> PhrasePoolItem | None:
        with self._db_lock:
            conn = self._get_connection()
            try:
                row = conn.execute("SELECT * FROM coach_responses WHERE id = ?", (item_id,)).fetchone()
                return self._row_to_item(row) if row else None
            finally:
                conn.close()

    def query(self, query: PoolQuery) -> list[PoolItem]:
        """Active rows for the event that fit the session, as candidates."""
        with self._db_lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    """
                    SELECT * FROM coach_responses
                    WHERE active = 1 AND event_type = ?
                      AND pattern IN ('any', ?)
                      AND mode IN ('any', ?)
                      AND locale IN ('any', ?)
                    ORDER BY priority DESC, id
                    """,
                    (query.event_type, query.pattern, query.mode, query.locale),
                )
                rows = [self._row_to_item(row) for row in cursor.fetchall()]
            finally:
                conn.close()
        # Chatter labels may be legacy names, so match them in Python
        return [item.as_candidate() for item in rows if matches(item, query)]

    def mark_used(self, item_id: int) -> None:
        now_ms = self._clock()
        with self._db_lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    "UPDATE coach_responses SET usage_count = usage_count + 1, last_used_at = ? WHERE id = ?",
                    (now_ms, item_id),
                )
                conn.commit()
            finally:
                conn.close()


def default_phrases() -> list[PhrasePoolItem]:
    """Seed lines for the common events."""
    rows = [
        ("EV_WORK_PREVIEW", ANY, "reps", ChatterLevel.MINIMAL.value, "Set {{setNum}} — {{exercise}} coming up.", 5),
        ("EV_WORK_PREVIEW", ANY, "time", ChatterLevel.MINIMAL.value, "Round {{roundNum}} — {{exercise}} next.", 5),
        ("EV_WORK_START", ANY, ANY, ChatterLevel.MINIMAL.value, "Go — {{cue}}.", 5),
        ("EV_WORK_START", ANY, ANY, ChatterLevel.MINIMAL.value, "Move — {{cue}}.", 4),
        ("EV_WORK_START", ANY, ANY, ChatterLevel.MINIMAL.value, "Drive — {{cue}}.", 4),
        ("EV_WORK_START", ANY, "time", ChatterLevel.MINIMAL.value, "{{exercise}} — {{cue}}", 4),
        ("EV_LAST_SECONDS", ANY, ANY, ANY, "Last {{sec}} — {{tempoCue}}.", 5),
        ("EV_LAST_SECONDS", ANY, "time", ChatterLevel.MINIMAL.value, "Last {{sec}} — finish clean, breathe.", 3),
        ("EV_REST_START", ANY, "reps", ChatterLevel.MINIMAL.value, "Nice set. Log reps and load.", 5),
        ("EV_REST_END", ANY, ANY, ChatterLevel.MINIMAL.value, "Time. Back to work — lock in.", 4),
        ("EV_ROUND_REST_START", ANY, ANY, ANY, "Round {{roundNum}} done — {{restSec}} seconds, breathe.", 4),
        ("EV_HALFWAY", ANY, ANY, ChatterLevel.HIGH.value, "Halfway — hold your tempo.", 4),
    ]
    return [
        PhrasePoolItem(
            id=index,
            event_type=event_type,
            pattern=pattern,
            mode=mode,
            chatter_level=chatter,
            template=template,
            priority=priority,
        )
        for index, (event_type, pattern, mode, chatter, template, priority) in enumerate(rows, start=1)
    ]
