"""
Note identifiers and titles.

zk names notes ``<id>-<title>.md`` (or ``<id> <title>.md``) with a short
alphanumeric id and usually repeats the id in YAML frontmatter. Only the
frontmatter block is read; note bodies are never parsed.
"""

from __future__ import annotations

import re
from pathlib import Path

import yaml
from loguru import logger

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(\n|$)", re.DOTALL)
ZK_ID_LENGTH = 4


def parse_frontmatter(content: str) -> dict | None:
    """Extract YAML frontmatter from markdown content."""
    match = FRONTMATTER_RE.match(content)
    if not match:
        return None

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.debug(f"Ignoring malformed frontmatter: {e}")
        return None

    return data if isinstance(data, dict) else None


def extract_note_metadata(note_path: str | Path) -> tuple[str, str]:
    """
    Derive (note_id, title) from a note file name.

    A leading 4-character alphanumeric chunk is taken as the zk id and the
    remainder (minus a ``-``/``_`` separator) as the title. Otherwise the bare
    file name is used for both.
    """
    stem = Path(note_path).name
    if stem.endswith(".md"):
        stem = stem[: -len(".md")]

    if len(stem) >= ZK_ID_LENGTH:
        possible_id = stem[:ZK_ID_LENGTH]
        if possible_id.isascii() and possible_id.isalnum():
            title = stem[ZK_ID_LENGTH:].strip()
            if title.startswith(("-", "_")):
                title = title[1:].strip()
            return possible_id, title or stem

    return stem, stem


def read_note_id(path: Path) -> str:
    """
    Read a note's id from its frontmatter, falling back to the file name.

    Unreadable files fall back to the file name as well; the caller only
    needs an informational id.
    """
    try:
        with open(path, encoding="utf-8") as f:
            head = f.read(4096)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Cannot read {path}: {e}")
        head = ""

    frontmatter = parse_frontmatter(head) or {}
    note_id = frontmatter.get("id")
    if note_id not in (None, ""):
        return str(note_id).strip()

    return extract_note_metadata(path)[0]
