"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from flotsam.config import Settings  # noqa: E402
from flotsam.srs.state_store import StateStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (real store and corpus)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Helpers
# =============================================================================


def write_note(corpus_dir: Path, name: str, note_id: str | None = None, body: str = "") -> Path:
    """Create a markdown note, optionally with an id in its frontmatter."""
    path = corpus_dir / name
    content = f"---\nid: {note_id}\ntitle: {name}\n---\n" if note_id else ""
    path.write_text(content + (body or f"# {name}\n"), encoding="utf-8")
    return path


def bump_mtime(directory: Path, seconds: int = 2) -> None:
    """Move a directory's mtime forward so it is strictly newer than any cached value."""
    stat = directory.stat()
    later = stat.st_mtime_ns + seconds * 1_000_000_000
    os.utime(directory, ns=(stat.st_atime_ns, later))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def data_dir(tmp_path):
    """Root directory holding the test contexts."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def settings(data_dir):
    """Settings isolated from the user's environment and .env file."""
    return Settings(_env_file=None, data_dir=data_dir, context="test")


@pytest.fixture
def context_dir(data_dir):
    path = data_dir / "test"
    path.mkdir()
    return path


@pytest.fixture
def corpus_dir(context_dir):
    path = context_dir / "flotsam"
    path.mkdir(exist_ok=True)
    return path


@pytest.fixture
def store(context_dir, settings):
    """Open StateStore for the test context."""
    store = StateStore.open(context_dir, "test", settings)
    yield store
    store.close()


@pytest.fixture
def fixed_now():
    """A fixed, timezone-aware review time (midday, so day boundaries are unambiguous)."""
    return datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_note(corpus_dir):
    """Factory writing notes into the test corpus."""

    def _make(name: str, note_id: str | None = None, body: str = "") -> Path:
        return write_note(corpus_dir, name, note_id, body)

    return _make


@pytest.fixture
def touch_dir():
    """Callable that bumps a directory's mtime forward."""
    return bump_mtime
