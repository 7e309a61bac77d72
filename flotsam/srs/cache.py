"""
Directory-mtime cache coherence for the scheduling store.

The corpus directory's mtime changes whenever a note is created, renamed or
deleted, but not when a note's content is edited. Since only a note's
presence matters for scheduling, comparing that one mtime against the value
recorded at the last reconciliation tells us whether the store may have
drifted, without stat-ing every note.

States per context:
    UNKNOWN  no cache metadata row yet
    VALID    cached mtime >= current directory mtime
    STALE    current directory mtime is newer (or the cache was invalidated)

Anything else that wants to detect corpus changes (inotify, FSEvents) should
replace this class; the store and review engine do not depend on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

from loguru import logger

from flotsam.errors import CorpusNotFoundError, NoteAlreadyExistsError
from flotsam.notes.metadata import read_note_id
from flotsam.notes.source import (
    DirectoryNoteSource,
    NoteSource,
    resolve_corpus_dir,
    to_note_path,
)
from flotsam.srs.state_store import (
    DEFAULT_EASINESS,
    ReviewState,
    StateStore,
    now_local,
)

# Older than any real directory mtime
INVALIDATED_MTIME = -1


class CacheState(str, Enum):
    UNKNOWN = "unknown"
    VALID = "valid"
    STALE = "stale"


@dataclass
class ReconcileResult:
    """What a reconciliation pass changed."""

    adopted: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    archived: list[str] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)
    scanned: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.adopted or self.removed or self.archived or self.restored)

    def summary(self) -> str:
        return (
            f"scanned={self.scanned} adopted={len(self.adopted)} "
            f"removed={len(self.removed)} archived={len(self.archived)} "
            f"restored={len(self.restored)}"
        )


class CacheManager:
    """
    Keeps a StateStore coherent with the note corpus of one context.

    validate() is cheap (one stat plus one row lookup) and only falls through
    to refresh() when the corpus directory has changed since the last sync.
    """

    def __init__(
        self,
        store: StateStore,
        corpus_dir: Path | str,
        note_source: NoteSource | None = None,
        tombstone_policy: Literal["delete", "archive"] = "delete",
        initial_easiness: float = DEFAULT_EASINESS,
    ):
        """
        Initialize the cache manager.

        Args:
            store: Open StateStore for the context
            corpus_dir: Directory holding the notes
            note_source: Lister for notes (globs corpus_dir for *.md if None)
            tombstone_policy: "delete" drops records of vanished notes,
                "archive" keeps them hidden until the note returns
            initial_easiness: Easiness given to adopted notes
        """
        self.store = store
        self.corpus_dir = resolve_corpus_dir(corpus_dir)
        self.note_source = note_source or DirectoryNoteSource(self.corpus_dir)
        self.tombstone_policy = tombstone_policy
        self.initial_easiness = initial_easiness
        self.last_result: ReconcileResult | None = None

    @property
    def context(self) -> str:
        return self.store.context

    def current_mtime(self) -> int:
        """Modification time of the corpus directory in nanoseconds."""
        try:
            return self.corpus_dir.stat().st_mtime_ns
        except FileNotFoundError as e:
            raise CorpusNotFoundError(str(self.corpus_dir), self.context) from e

    def state(self) -> CacheState:
        """Report the cache state without reconciling."""
        metadata = self.store.get_cache_metadata()
        if metadata is None:
            return CacheState.UNKNOWN
        try:
            current = self.current_mtime()
        except CorpusNotFoundError:
            return CacheState.STALE
        if current <= metadata.corpus_dir_mtime:
            return CacheState.VALID
        return CacheState.STALE

    def validate(self) -> CacheState:
        """
        Check the cache and reconcile if it is not valid.

        Returns:
            The state observed before any reconciliation. After a normal
            return the cache is valid; on error it stays stale.
        """
        metadata = self.store.get_cache_metadata()
        if metadata is None:
            logger.debug(f"No cache metadata for '{self.context}', reconciling")
            self.refresh()
            return CacheState.UNKNOWN

        current = self.current_mtime()
        if current <= metadata.corpus_dir_mtime:
            return CacheState.VALID

        logger.debug(
            f"Corpus changed for '{self.context}' "
            f"(cached={metadata.corpus_dir_mtime}, current={current})"
        )
        self.refresh()
        return CacheState.STALE

    def refresh(self) -> ReconcileResult:
        """
        Reconcile the store with the notes currently in the corpus.

        Adopts untracked notes with the default state and tombstones records
        whose notes are gone. The new mtime is written only after every
        reconciliation write has succeeded, so a failure leaves the cache stale.
        """
        # Taken before listing so changes made during the scan trigger another pass
        mtime = self.current_mtime()
        now = now_local()
        result = ReconcileResult()

        present: dict[str, Path] = {}
        for path in self.note_source.list_notes():
            try:
                present[to_note_path(path, self.corpus_dir)] = path
            except ValueError as e:
                logger.warning(f"Skipping note outside corpus: {e}")
        result.scanned = len(present)

        records = {record.note_path: record for record in self.store.list_records()}

        for note_path in sorted(present.keys() - records.keys()):
            path = present[note_path]
            if not path.is_absolute():
                path = self.corpus_dir / path
            initial = ReviewState(easiness=self.initial_easiness, due_date=now)
            try:
                self.store.create(note_path, read_note_id(path), initial=initial, created_at=now)
            except NoteAlreadyExistsError:
                logger.warning(f"{note_path} is tracked by another context, not adopting")
                continue
            result.adopted.append(note_path)

        for note_path in sorted(records.keys() - present.keys()):
            if self.tombstone_policy == "archive":
                if not records[note_path].archived:
                    self.store.set_archived(note_path, True)
                    result.archived.append(note_path)
            else:
                self.store.delete(note_path)
                result.removed.append(note_path)

        for note_path in sorted(present.keys() & records.keys()):
            if records[note_path].archived:
                self.store.set_archived(note_path, False)
                result.restored.append(note_path)

        self.store.set_cache_metadata(mtime, last_sync=now)
        self.last_result = result

        logger.info(f"Reconciled '{self.context}': {result.summary()}")
        return result

    def invalidate(self) -> None:
        """Force the next validate() to reconcile. last_sync is left as it was."""
        metadata = self.store.get_cache_metadata()
        if metadata is None:
            # Never synced: validate() already reconciles
            return
        self.store.set_cache_metadata(INVALIDATED_MTIME, last_sync=metadata.last_sync)
        logger.debug(f"Cache invalidated for '{self.context}'")
