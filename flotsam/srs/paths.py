"""
Store placement for the scheduling database.

The store lives next to the notebook sentinel (``.zk/``) when the context
directory sits inside a zk notebook, so its lifetime follows the notebook.
Otherwise it lives directly under the context directory.

    <notebook_root>/.zk/            (owned by zk)
    <notebook_root>/.vice/flotsam.db

    <context_dir>/.vice/flotsam.db  (no notebook found)
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

DEFAULT_SENTINEL = ".zk"
DEFAULT_STORE_DIR = ".vice"
DEFAULT_STORE_FILENAME = "flotsam.db"


def find_notebook_root(start_dir: Path | str, sentinel: str = DEFAULT_SENTINEL) -> Path | None:
    """
    Walk from start_dir up to the filesystem root looking for a sentinel directory.

    Args:
        start_dir: Directory to start probing from
        sentinel: Name of the marker directory

    Returns:
        The directory containing the sentinel, or None if none was found.
        Filesystem errors while probing count as "not found".
    """
    try:
        current = Path(start_dir).expanduser().resolve()
    except (OSError, RuntimeError) as e:
        logger.warning(f"Cannot resolve {start_dir}: {e}")
        return None

    while True:
        try:
            if (current / sentinel).is_dir():
                return current
        except OSError as e:
            logger.debug(f"Lookup failed at {current}: {e}")
            return None

        parent = current.parent
        if parent == current:
            return None
        current = parent


def resolve_store_dir(
    context_dir: Path | str,
    sentinel: str = DEFAULT_SENTINEL,
    store_dir_name: str = DEFAULT_STORE_DIR,
) -> Path:
    """Return the directory the store should live in (not created)."""
    notebook_root = find_notebook_root(context_dir, sentinel)
    if notebook_root is not None:
        logger.debug(f"Notebook root found at {notebook_root}")
        return notebook_root / store_dir_name
    return Path(context_dir) / store_dir_name


def ensure_store_dir(
    context_dir: Path | str,
    sentinel: str = DEFAULT_SENTINEL,
    store_dir_name: str = DEFAULT_STORE_DIR,
) -> Path:
    """Resolve the store directory and create it if missing."""
    store_dir = resolve_store_dir(context_dir, sentinel, store_dir_name)
    store_dir.mkdir(parents=True, exist_ok=True)
    return store_dir


def resolve_store_path(
    context_dir: Path | str,
    sentinel: str = DEFAULT_SENTINEL,
    store_dir_name: str = DEFAULT_STORE_DIR,
    store_filename: str = DEFAULT_STORE_FILENAME,
) -> Path:
    """Full path of the store file for a context directory."""
    return resolve_store_dir(context_dir, sentinel, store_dir_name) / store_filename
