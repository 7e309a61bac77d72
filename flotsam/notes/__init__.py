"""
Boundary with the external note tool.

The scheduler only learns which notes exist and what they are called.
"""

from .metadata import extract_note_metadata, parse_frontmatter, read_note_id
from .source import (
    DirectoryNoteSource,
    NoteSource,
    ZkNoteSource,
    note_source_from_settings,
    parse_zk_paths,
    resolve_corpus_dir,
    to_note_path,
)

__all__ = [
    "NoteSource",
    "DirectoryNoteSource",
    "ZkNoteSource",
    "note_source_from_settings",
    "parse_zk_paths",
    "resolve_corpus_dir",
    "to_note_path",
    "extract_note_metadata",
    "parse_frontmatter",
    "read_note_id",
]
