"""
Error taxonomy for flotsam scheduling.

NotFound and AlreadyExists are recoverable and left to the caller.
StoreIOError and SchemaError are surfaced as-is; nothing here retries.
"""

from __future__ import annotations


class FlotsamError(Exception):
    """Base error for flotsam operations."""

    def __init__(self, operation: str, message: str, context: str | None = None):
        self.operation = operation
        self.context = context
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.context:
            return f"flotsam error in {self.operation} for context '{self.context}': {self.message}"
        return f"flotsam error in {self.operation}: {self.message}"


class NoteNotFoundError(FlotsamError):
    """Raised when a scheduling record (or note file) does not exist."""

    def __init__(self, note_path: str, operation: str = "get", context: str | None = None):
        self.note_path = note_path
        super().__init__(operation, f"note not found: {note_path}", context)


class CorpusNotFoundError(NoteNotFoundError):
    """Raised when the corpus directory itself is missing."""

    def __init__(self, corpus_dir: str, context: str | None = None):
        super().__init__(corpus_dir, operation="refresh", context=context)
        self.message = f"corpus directory not found: {corpus_dir}"


class NoteAlreadyExistsError(FlotsamError):
    """Raised when registering a note that is already tracked."""

    def __init__(self, note_path: str, context: str | None = None):
        self.note_path = note_path
        super().__init__("create", f"note already tracked: {note_path}", context)


class StoreIOError(FlotsamError):
    """Raised when the store file or the filesystem fails."""


class SchemaError(FlotsamError):
    """Raised when the store has an unexpected structure. Never repaired."""


class InvalidGradeError(FlotsamError, ValueError):
    """Raised for review grades outside 0-5."""

    def __init__(self, grade: object):
        self.grade = grade
        super().__init__("review", f"invalid grade {grade!r}: must be an integer between 0 and 5")


class NoteToolError(FlotsamError):
    """Raised when the external note tool is unavailable or fails."""


class NoteOutsideCorpusError(FlotsamError, ValueError):
    """Raised for note paths that do not lie inside the corpus directory."""

    def __init__(self, note_path: str, corpus_dir: str, context: str | None = None):
        self.note_path = note_path
        super().__init__(
            "resolve", f"path {note_path} is outside corpus directory {corpus_dir}", context
        )


class NoteNotListedError(FlotsamError):
    """Raised when registering a file the note source would never list."""

    def __init__(self, note_path: str, reason: str, context: str | None = None):
        self.note_path = note_path
        super().__init__("register", f"{note_path} cannot be tracked: {reason}", context)
