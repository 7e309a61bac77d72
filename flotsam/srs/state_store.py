"""
SQLite State Store for flotsam.

Provides persistence for:
- SM-2 scheduling state per note (one row per note path)
- Cache metadata per context (last sync, corpus directory mtime)

Scheduling state is kept apart from note content; the notes themselves are
never written. Database location is decided by flotsam.srs.paths.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from flotsam.errors import (
    NoteAlreadyExistsError,
    NoteNotFoundError,
    SchemaError,
    StoreIOError,
)
from flotsam.srs.paths import ensure_store_dir

if TYPE_CHECKING:
    from flotsam.config import Settings

SCHEMA_VERSION = 2

DEFAULT_EASINESS = 2.5

# Columns every store must carry; anything else missing is migrated or fatal
REQUIRED_COLUMNS: dict[str, set[str]] = {
    "srs_reviews": {
        "note_path",
        "note_id",
        "context",
        "easiness",
        "consecutive_correct",
        "due_date",
        "total_reviews",
        "created_at",
        "last_reviewed",
    },
    "cache_metadata": {"context", "last_sync", "corpus_dir_mtime"},
}


# =============================================================================
# Time Helpers
# =============================================================================


def now_local() -> datetime:
    """Current local time, timezone-aware, truncated to whole seconds."""
    return datetime.now().astimezone().replace(microsecond=0)


def ensure_aware(value: datetime) -> datetime:
    """Attach the local timezone to naive datetimes."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def to_timestamp(value: datetime) -> int:
    """Convert a datetime to Unix seconds (naive values are taken as local time)."""
    return int(value.timestamp())


def from_timestamp(value: int | None) -> datetime | None:
    """Convert Unix seconds to an aware local datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value).astimezone()


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ReviewState:
    """The mutable scheduling fields of a note."""

    easiness: float = DEFAULT_EASINESS
    consecutive_correct: int = 0
    due_date: datetime = field(default_factory=now_local)
    total_reviews: int = 0


@dataclass
class SchedulingRecord:
    """Scheduling state for a single tracked note."""

    note_path: str
    note_id: str
    context: str
    easiness: float = DEFAULT_EASINESS  # never below 1.3 after a review
    consecutive_correct: int = 0
    due_date: datetime = field(default_factory=now_local)
    total_reviews: int = 0
    created_at: datetime = field(default_factory=now_local)
    last_reviewed: datetime | None = None
    archived: bool = False

    @property
    def state(self) -> ReviewState:
        return ReviewState(
            easiness=self.easiness,
            consecutive_correct=self.consecutive_correct,
            due_date=self.due_date,
            total_reviews=self.total_reviews,
        )

    def is_due(self, as_of: datetime) -> bool:
        return self.due_date <= as_of

    def to_dict(self) -> dict:
        return {
            "note_path": self.note_path,
            "note_id": self.note_id,
            "easiness": round(self.easiness, 2),
            "consecutive_correct": self.consecutive_correct,
            "due_date": self.due_date.isoformat(),
            "total_reviews": self.total_reviews,
            "last_reviewed": self.last_reviewed.isoformat() if self.last_reviewed else None,
            "archived": self.archived,
        }


@dataclass
class CacheMetadata:
    """Last known view of the corpus for one context."""

    context: str
    last_sync: datetime
    corpus_dir_mtime: int  # nanoseconds


@dataclass
class StoreStats:
    """Aggregate numbers for one context."""

    total: int
    due: int
    mean_easiness: float
    mean_reviews: float

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "due": self.due,
            "mean_easiness": round(self.mean_easiness, 2),
            "mean_reviews": round(self.mean_reviews, 2),
        }


# =============================================================================
# State Store
# =============================================================================


class StateStore:
    """
    SQLite-backed scheduling store.

    Handles:
    - One SchedulingRecord per note path (unique across contexts sharing
      a store file; per-note lookups and writes are scoped to this context)
    - Cache metadata per context
    - Schema creation and migration on open

    Every write runs in its own transaction and is committed before the
    method returns.
    """

    def __init__(self, db_path: Path, context: str):
        """
        Initialize the state store.

        Args:
            db_path: Path to the SQLite file (parent must exist)
            context: Context this handle is scoped to
        """
        self.db_path = Path(db_path)
        self.context = context

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info(f"StateStore initialized at {self.db_path}")

    @classmethod
    def open(
        cls,
        context_dir: Path | str,
        context: str,
        settings: Settings | None = None,
    ) -> StateStore:
        """
        Open (and create if needed) the store for a context directory.

        Raises:
            StoreIOError: directory or file cannot be created/opened
            SchemaError: existing file has an unexpected structure
        """
        if settings is None:
            from flotsam.config import get_settings

            settings = get_settings()

        try:
            store_dir = ensure_store_dir(
                context_dir,
                sentinel=settings.sentinel_dir,
                store_dir_name=settings.store_dir_name,
            )
        except OSError as e:
            raise StoreIOError("open", f"cannot create store directory: {e}", context) from e

        return cls(store_dir / settings.store_filename, context)

    def __enter__(self) -> StateStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(str(self.db_path))
            except sqlite3.Error as e:
                raise StoreIOError("open", f"cannot open {self.db_path}: {e}", self.context) from e
            self._conn.row_factory = sqlite3.Row
        return self._conn

    # =========================================================================
    # Schema
    # =========================================================================

    def _init_schema(self) -> None:
        """Create tables and indexes if missing, then verify and migrate."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=FULL")

            version = cursor.execute("PRAGMA user_version").fetchone()[0]
            if version > SCHEMA_VERSION:
                raise SchemaError(
                    "open",
                    f"store schema version {version} is newer than supported {SCHEMA_VERSION}",
                    self.context,
                )

            # Scheduling state per note
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS srs_reviews (
                    note_path TEXT PRIMARY KEY,
                    note_id TEXT NOT NULL,
                    context TEXT NOT NULL,
                    easiness REAL NOT NULL DEFAULT 2.5,
                    consecutive_correct INTEGER NOT NULL DEFAULT 0,
                    due_date INTEGER NOT NULL,
                    total_reviews INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL,
                    last_reviewed INTEGER,
                    archived INTEGER NOT NULL DEFAULT 0
                )
            """)

            # Corpus mtime tracking
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS cache_metadata (
                    context TEXT PRIMARY KEY,
                    last_sync INTEGER NOT NULL,
                    corpus_dir_mtime INTEGER NOT NULL
                )
            """)

            self._verify_schema(cursor)
            self._migrate(cursor)

            # Indexes for fast due-date queries
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_srs_due_date ON srs_reviews(due_date)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_srs_context ON srs_reviews(context)")
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_srs_context_due
                ON srs_reviews(context, due_date)
            """)

            cursor.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            self.conn.commit()
        except SchemaError:
            self.close()
            raise
        except sqlite3.OperationalError as e:
            self.close()
            raise StoreIOError("open", f"{self.db_path}: {e}", self.context) from e
        except sqlite3.DatabaseError as e:
            self.close()
            raise SchemaError("open", f"{self.db_path} is not a valid store: {e}", self.context) from e

    def _columns(self, cursor: sqlite3.Cursor, table: str) -> set[str]:
        return {row["name"] for row in cursor.execute(f"PRAGMA table_info({table})")}

    def _verify_schema(self, cursor: sqlite3.Cursor) -> None:
        """Fail if a table exists without the columns this code relies on."""
        for table, required in REQUIRED_COLUMNS.items():
            missing = required - self._columns(cursor, table)
            if missing:
                raise SchemaError(
                    "open",
                    f"table {table} is missing columns: {', '.join(sorted(missing))}",
                    self.context,
                )

    def _migrate(self, cursor: sqlite3.Cursor) -> None:
        """Bring stores created by older versions up to date."""
        if "archived" not in self._columns(cursor, "srs_reviews"):
            logger.info("Migrating store: adding srs_reviews.archived")
            cursor.execute(
                "ALTER TABLE srs_reviews ADD COLUMN archived INTEGER NOT NULL DEFAULT 0"
            )

    # =========================================================================
    # Record Operations
    # =========================================================================

    def _row_to_record(self, row: sqlite3.Row) -> SchedulingRecord:
        return SchedulingRecord(
            note_path=row["note_path"],
            note_id=row["note_id"],
            context=row["context"],
            easiness=row["easiness"],
            consecutive_correct=row["consecutive_correct"],
            due_date=from_timestamp(row["due_date"]),
            total_reviews=row["total_reviews"],
            created_at=from_timestamp(row["created_at"]),
            last_reviewed=from_timestamp(row["last_reviewed"]),
            archived=bool(row["archived"]),
        )

    def _execute_write(self, operation: str, sql: str, params: tuple) -> sqlite3.Cursor:
        """Run one statement in its own committed transaction."""
        try:
            with self.conn:
                return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StoreIOError(operation, str(e), self.context) from e

    def _query(self, operation: str, sql: str, params: tuple) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreIOError(operation, str(e), self.context) from e

    def get(self, note_path: str, context: str | None = None) -> SchedulingRecord:
        """
        Get the scheduling record for a note.

        Raises:
            NoteNotFoundError: the note is not tracked in this context
        """
        context = context or self.context
        rows = self._query(
            "get",
            "SELECT * FROM srs_reviews WHERE note_path = ? AND context = ?",
            (note_path, context),
        )
        if not rows:
            raise NoteNotFoundError(note_path, "get", context)
        return self._row_to_record(rows[0])

    def exists(self, note_path: str, context: str | None = None) -> bool:
        rows = self._query(
            "exists",
            "SELECT 1 FROM srs_reviews WHERE note_path = ? AND context = ?",
            (note_path, context or self.context),
        )
        return bool(rows)

    def create(
        self,
        note_path: str,
        note_id: str,
        context: str | None = None,
        initial: ReviewState | None = None,
        created_at: datetime | None = None,
    ) -> SchedulingRecord:
        """
        Start tracking a note.

        Args:
            note_path: Stable note key (path relative to the corpus)
            note_id: Identifier supplied by the note tool
            context: Partition (defaults to the store's context)
            initial: Starting state (defaults to easiness 2.5, due now)
            created_at: Audit timestamp (defaults to now)

        Raises:
            NoteAlreadyExistsError: the path is already tracked
        """
        context = context or self.context
        initial = initial or ReviewState()
        created_at = created_at or now_local()

        try:
            with self.conn:
                self.conn.execute(
                    """
                    INSERT INTO srs_reviews (
                        note_path, note_id, context, easiness, consecutive_correct,
                        due_date, total_reviews, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        note_path,
                        note_id,
                        context,
                        initial.easiness,
                        initial.consecutive_correct,
                        to_timestamp(initial.due_date),
                        initial.total_reviews,
                        to_timestamp(created_at),
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise NoteAlreadyExistsError(note_path, context) from e
        except sqlite3.Error as e:
            raise StoreIOError("create", str(e), context) from e

        logger.debug(f"Tracking {note_path} (id={note_id}, context={context})")
        return self.get(note_path, context)

    def apply_review(
        self,
        note_path: str,
        updated: ReviewState | SchedulingRecord,
        reviewed_at: datetime | None = None,
    ) -> None:
        """
        Persist the result of a review in a single UPDATE.

        Overwrites easiness, streak and due date, increments total_reviews by
        one and stamps last_reviewed.

        Raises:
            NoteNotFoundError: the note is not tracked
        """
        reviewed_at = reviewed_at or now_local()
        cursor = self._execute_write(
            "apply_review",
            """
            UPDATE srs_reviews SET
                easiness = ?,
                consecutive_correct = ?,
                due_date = ?,
                total_reviews = total_reviews + 1,
                last_reviewed = ?
            WHERE note_path = ? AND context = ?
            """,
            (
                updated.easiness,
                updated.consecutive_correct,
                to_timestamp(updated.due_date),
                to_timestamp(reviewed_at),
                note_path,
                self.context,
            ),
        )
        if cursor.rowcount == 0:
            raise NoteNotFoundError(note_path, "apply_review", self.context)

    def delete(self, note_path: str) -> None:
        """Stop tracking a note. Deleting an untracked path is a no-op."""
        self._execute_write(
            "delete",
            "DELETE FROM srs_reviews WHERE note_path = ? AND context = ?",
            (note_path, self.context),
        )

    def set_archived(self, note_path: str, archived: bool) -> None:
        """Flag or unflag a record as archived (soft tombstone)."""
        self._execute_write(
            "archive",
            "UPDATE srs_reviews SET archived = ? WHERE note_path = ? AND context = ?",
            (int(archived), note_path, self.context),
        )

    def list_records(self, context: str | None = None) -> list[SchedulingRecord]:
        """All records of a context, archived ones included."""
        rows = self._query(
            "list",
            "SELECT * FROM srs_reviews WHERE context = ? ORDER BY note_path",
            (context or self.context,),
        )
        return [self._row_to_record(row) for row in rows]

    def due_items(self, context: str | None, as_of: datetime) -> list[SchedulingRecord]:
        """
        Get records due at or before as_of.

        Args:
            context: Partition to query (defaults to the store's context)
            as_of: Cut-off time

        Returns:
            Non-archived records ordered by due date, then note path
        """
        rows = self._query(
            "due_items",
            """
            SELECT * FROM srs_reviews
            WHERE context = ? AND archived = 0 AND due_date <= ?
            ORDER BY due_date ASC, note_path ASC
            """,
            (context or self.context, to_timestamp(as_of)),
        )
        return [self._row_to_record(row) for row in rows]

    # =========================================================================
    # Stats
    # =========================================================================

    def stats(self, context: str | None = None, as_of: datetime | None = None) -> StoreStats:
        """
        Get aggregate statistics for a context.

        Returns:
            StoreStats (means are 0.0 for an empty context)
        """
        as_of = as_of or now_local()
        row = self._query(
            "stats",
            """
            SELECT
                COUNT(*) AS total,
                COUNT(CASE WHEN due_date <= ? THEN 1 END) AS due,
                AVG(easiness) AS mean_easiness,
                AVG(total_reviews) AS mean_reviews
            FROM srs_reviews
            WHERE context = ? AND archived = 0
            """,
            (to_timestamp(as_of), context or self.context),
        )[0]

        return StoreStats(
            total=row["total"],
            due=row["due"],
            mean_easiness=row["mean_easiness"] or 0.0,
            mean_reviews=row["mean_reviews"] or 0.0,
        )

    # =========================================================================
    # Cache Metadata
    # =========================================================================

    def get_cache_metadata(self, context: str | None = None) -> CacheMetadata | None:
        rows = self._query(
            "cache_metadata",
            "SELECT * FROM cache_metadata WHERE context = ?",
            (context or self.context,),
        )
        if not rows:
            return None
        row = rows[0]
        return CacheMetadata(
            context=row["context"],
            last_sync=from_timestamp(row["last_sync"]),
            corpus_dir_mtime=row["corpus_dir_mtime"],
        )

    def set_cache_metadata(
        self,
        corpus_dir_mtime: int,
        context: str | None = None,
        last_sync: datetime | None = None,
    ) -> None:
        self._execute_write(
            "cache_metadata",
            """
            INSERT INTO cache_metadata (context, last_sync, corpus_dir_mtime)
            VALUES (?, ?, ?)
            ON CONFLICT(context) DO UPDATE SET
                last_sync = excluded.last_sync,
                corpus_dir_mtime = excluded.corpus_dir_mtime
            """,
            (
                context or self.context,
                to_timestamp(last_sync or now_local()),
                corpus_dir_mtime,
            ),
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
