"""
Scheduling service: the programmatic surface used by the CLI.

Wires one StateStore, its CacheManager and the SM-2 engine for a single
context. A service is built once per context and passed around explicitly.

    with SchedulingService.open(context_dir, "personal") as service:
        service.record_review("0a1b-idea.md", grade=4)
        for item in service.list_due(limit=10):
            ...
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from loguru import logger

from flotsam.config import Settings, get_settings
from flotsam.errors import (
    NoteAlreadyExistsError,
    NoteNotFoundError,
    NoteNotListedError,
    NoteOutsideCorpusError,
    StoreIOError,
)
from flotsam.notes.metadata import read_note_id
from flotsam.notes.source import note_source_from_settings, to_note_path
from flotsam.srs.cache import CacheManager, CacheState, ReconcileResult
from flotsam.srs.due import DueItem, due_today, end_of_day
from flotsam.srs.scheduler import SM2Config, SM2Scheduler, validate_grade
from flotsam.srs.state_store import (
    ReviewState,
    SchedulingRecord,
    StateStore,
    StoreStats,
    ensure_aware,
    now_local,
)


class SchedulingService:
    """Review scheduling for one context."""

    def __init__(
        self,
        store: StateStore,
        cache: CacheManager,
        scheduler: SM2Scheduler | None = None,
    ):
        self.store = store
        self.cache = cache
        self.scheduler = scheduler or SM2Scheduler()

    @classmethod
    def open(
        cls,
        context_dir: Path | str | None = None,
        context: str | None = None,
        settings: Settings | None = None,
    ) -> SchedulingService:
        """
        Open the store for a context and prepare its corpus directory.

        Args:
            context_dir: Context directory (defaults to settings.context_dir)
            context: Context name (defaults to settings.context)
            settings: Settings (defaults to get_settings())

        Raises:
            StoreIOError, SchemaError: the store cannot be used
        """
        settings = settings or get_settings()
        context = context or settings.context
        context_dir = Path(context_dir) if context_dir else settings.data_dir / context
        context_dir = context_dir.expanduser().resolve()

        corpus_dir = settings.corpus_dir_for(context_dir)
        try:
            corpus_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError("open", f"cannot create corpus directory: {e}", context) from e

        store = StateStore.open(context_dir, context, settings)
        config = SM2Config.from_settings(settings)
        cache = CacheManager(
            store,
            corpus_dir,
            note_source=note_source_from_settings(settings, corpus_dir),
            tombstone_policy=settings.tombstone_policy,
            initial_easiness=config.initial_easiness,
        )
        return cls(store, cache, SM2Scheduler(config))

    def __enter__(self) -> SchedulingService:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def context(self) -> str:
        return self.store.context

    @property
    def corpus_dir(self) -> Path:
        return self.cache.corpus_dir

    def note_key(self, note: Path | str) -> str:
        """
        Normalize a note path (absolute, or relative to the corpus) to its key.

        Raises:
            NoteOutsideCorpusError: the path escapes the corpus directory
        """
        try:
            return to_note_path(note, self.corpus_dir)
        except NoteOutsideCorpusError as e:
            raise NoteOutsideCorpusError(e.note_path, str(self.corpus_dir), self.context) from None

    # =========================================================================
    # Operations
    # =========================================================================

    def register_note(
        self,
        note: Path | str,
        note_id: str | None = None,
        exist_ok: bool = False,
    ) -> SchedulingRecord:
        """
        Start scheduling a note that was just created by the note tool.

        Args:
            note: Note file path (absolute, or relative to the corpus)
            note_id: Identifier (read from the note when omitted)
            exist_ok: Return the existing record instead of raising

        Raises:
            NoteNotFoundError: the note file does not exist
            NoteOutsideCorpusError: the path escapes the corpus directory
            NoteNotListedError: the note source would never list the file, so
                the next reconciliation would drop it again
            NoteAlreadyExistsError: already tracked and exist_ok is False
        """
        note_path = self.note_key(note)
        file_path = self.corpus_dir / note_path
        if not file_path.is_file():
            raise NoteNotFoundError(note_path, "register", self.context)

        reason = self.cache.note_source.excludes_reason(file_path)
        if reason:
            raise NoteNotListedError(note_path, reason, self.context)

        initial = ReviewState(easiness=self.scheduler.config.initial_easiness)
        try:
            record = self.store.create(
                note_path,
                note_id or read_note_id(file_path),
                initial=initial,
            )
        except NoteAlreadyExistsError:
            # A path owned by another context sharing the store is never ours
            if not exist_ok or not self.store.exists(note_path):
                raise
            return self.store.get(note_path)

        logger.info(f"Registered {note_path} for review")
        return record

    def record_review(
        self,
        note: Path | str,
        grade: int,
        now: datetime | None = None,
    ) -> SchedulingRecord:
        """
        Grade a review and persist the next schedule.

        Args:
            note: Note path (absolute, or relative to the corpus)
            grade: SM-2 grade (0-5)
            now: Review time (defaults to now)

        Returns:
            The stored record after the update
        """
        grade = validate_grade(grade)
        now = ensure_aware(now or now_local())
        note_path = self.note_key(note)

        self.cache.validate()

        prior = self.store.get(note_path)
        updated = self.scheduler.next_state(prior, grade, now)
        self.store.apply_review(note_path, updated, reviewed_at=now)

        logger.debug(
            f"Recorded review for {note_path}: grade={grade}, "
            f"due={updated.due_date.isoformat()}, easiness={updated.easiness:.2f}"
        )
        return self.store.get(note_path)

    def list_due(
        self,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[DueItem]:
        """Notes due today or overdue, after making sure the store is coherent."""
        self.cache.validate()
        return due_today(self.store, self.context, now=now, limit=limit)

    def list_notes(self, include_archived: bool = False) -> list[SchedulingRecord]:
        """Tracked notes of the context with their scheduling data, ordered by path."""
        self.cache.validate()
        records = self.store.list_records()
        if include_archived:
            return records
        return [record for record in records if not record.archived]

    def validate_and_refresh(self, force: bool = False) -> CacheState:
        """
        Make the store coherent with the corpus.

        Args:
            force: Invalidate first so a full reconciliation always runs

        Returns:
            The cache state observed before reconciliation
        """
        if force:
            self.cache.invalidate()
        return self.cache.validate()

    @property
    def last_reconcile(self) -> ReconcileResult | None:
        return self.cache.last_result

    def stats(self, now: datetime | None = None) -> StoreStats:
        """Totals for the context; the due count uses the same end-of-day cut-off as list_due."""
        now = ensure_aware(now or now_local())
        return self.store.stats(self.context, as_of=end_of_day(now))

    def close(self) -> None:
        self.store.close()
