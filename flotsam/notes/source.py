"""
Note sources: how the corpus is listed during reconciliation.

The scheduler never reads or writes note content; it only needs the set of
note files that currently exist. Two sources are provided:

- DirectoryNoteSource: globs the corpus directory (non-recursive, the same
  entries whose creation/removal bumps the directory mtime)
- ZkNoteSource: asks the zk note tool (``zk list``) for matching notes

A note can only be tracked if its source lists it; anything else would be
dropped again by the next reconciliation.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from fnmatch import fnmatchcase
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, Sequence

from loguru import logger

from flotsam.errors import CorpusNotFoundError, NoteOutsideCorpusError, NoteToolError

if TYPE_CHECKING:
    from flotsam.config import Settings

ZK_INSTALL_HINT = "install from https://github.com/zk-org/zk"


def resolve_corpus_dir(corpus_dir: Path | str) -> Path:
    """Absolute, symlink-free form of a corpus directory."""
    return Path(corpus_dir).expanduser().resolve()


class NoteSource(Protocol):
    """Anything that can list the notes currently present in a corpus."""

    corpus_dir: Path

    def list_notes(self) -> list[Path]:
        """Absolute paths of the trackable notes."""
        ...

    def excludes_reason(self, path: Path) -> str | None:
        """Why list_notes() would never return path, or None if it would."""
        ...


class DirectoryNoteSource:
    """Lists notes by globbing the corpus directory."""

    def __init__(self, corpus_dir: Path | str, pattern: str = "*.md"):
        self.corpus_dir = resolve_corpus_dir(corpus_dir)
        self.pattern = pattern

    def list_notes(self) -> list[Path]:
        if not self.corpus_dir.is_dir():
            raise CorpusNotFoundError(str(self.corpus_dir))

        try:
            notes = sorted(p for p in self.corpus_dir.glob(self.pattern) if p.is_file())
        except OSError as e:
            raise NoteToolError("list", f"cannot scan {self.corpus_dir}: {e}") from e

        logger.debug(f"Found {len(notes)} notes in {self.corpus_dir}")
        return notes

    def excludes_reason(self, path: Path) -> str | None:
        path = self.corpus_dir / path
        if path.parent != self.corpus_dir:
            return "only notes directly inside the corpus directory are scanned"
        if not fnmatchcase(path.name, self.pattern):
            return f"file name does not match '{self.pattern}'"
        return None


class ZkNoteSource:
    """
    Lists notes through the zk command-line tool.

    Runs ``zk list`` against the notebook with a path-only template so the
    output is one absolute path per line.
    """

    def __init__(
        self,
        corpus_dir: Path | str,
        tags: Sequence[str] = ("vice:type:*",),
        executable: str = "zk",
        timeout: float = 30.0,
    ):
        self.corpus_dir = resolve_corpus_dir(corpus_dir)
        self.tags = tuple(tags)
        self.executable = executable
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def build_command(self, paths: Sequence[Path | str] = ()) -> list[str]:
        command = [
            self.executable,
            "list",
            "--notebook-dir",
            str(self.corpus_dir),
            "--quiet",
            "--no-pager",
            "--no-input",
            "--format",
            "{{abs-path}}",
        ]
        for tag in self.tags:
            command.extend(["--tag", tag])
        command.extend(str(p) for p in paths)
        return command

    def _run(self, paths: Sequence[Path | str] = ()) -> list[Path]:
        if not self.corpus_dir.is_dir():
            raise CorpusNotFoundError(str(self.corpus_dir))
        if not self.available:
            raise NoteToolError("list", f"zk not available - {ZK_INSTALL_HINT}")

        command = self.build_command(paths)
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise NoteToolError("list", f"zk list failed: {e}") from e

        if result.returncode != 0:
            raise NoteToolError(
                "list",
                f"zk list failed with exit code {result.returncode}: {result.stderr.strip()}",
            )

        return parse_zk_paths(result.stdout)

    def list_notes(self) -> list[Path]:
        return self._run()

    def excludes_reason(self, path: Path) -> str | None:
        path = self.corpus_dir / path
        listed = {resolve_corpus_dir(p) for p in self._run([path])}
        if path.resolve() not in listed:
            return f"zk does not list it with tags {', '.join(self.tags)}"
        return None


def to_note_path(path: Path | str, corpus_dir: Path | str) -> str:
    """
    Convert a note file path to its stable key: POSIX path relative to the corpus.

    Relative inputs are taken relative to the corpus directory. ``..`` segments
    are collapsed before the containment check.

    Raises:
        NoteOutsideCorpusError: the path lies outside the corpus directory
            (also a ValueError)
    """
    corpus = resolve_corpus_dir(corpus_dir)
    path = Path(path).expanduser()
    if not path.is_absolute():
        path = corpus / path

    # Lexical first so symlinked notes keep their own name; resolved as a fallback
    for candidate in (Path(os.path.normpath(path)), path.resolve()):
        try:
            key = candidate.relative_to(corpus).as_posix()
        except ValueError:
            continue
        if key != ".":
            return key

    raise NoteOutsideCorpusError(str(path), str(corpus))


def parse_zk_paths(output: str) -> list[Path]:
    """Parse path-per-line zk output, skipping blank lines."""
    return sorted(Path(line.strip()) for line in output.splitlines() if line.strip())


def note_source_from_settings(settings: Settings, corpus_dir: Path) -> NoteSource:
    """Build the note source selected in settings."""
    if settings.note_source == "zk":
        return ZkNoteSource(corpus_dir, tags=settings.zk_tags)
    return DirectoryNoteSource(corpus_dir, pattern=settings.note_pattern)
