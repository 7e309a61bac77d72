"""
Unit tests for settings.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from flotsam.config import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("FLOTSAM_CONTEXT", raising=False)
        settings = Settings(_env_file=None)

        assert settings.context == "personal"
        assert settings.corpus_subdir == "flotsam"
        assert settings.sentinel_dir == ".zk"
        assert settings.store_dir_name == ".vice"
        assert settings.store_filename == "flotsam.db"
        assert settings.tombstone_policy == "delete"
        assert settings.note_source == "directory"
        assert settings.due_limit == 0

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FLOTSAM_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("FLOTSAM_CONTEXT", "work")
        monkeypatch.setenv("FLOTSAM_TOMBSTONE_POLICY", "archive")

        settings = Settings(_env_file=None)

        assert settings.data_dir == tmp_path
        assert settings.context_dir == tmp_path / "work"
        assert settings.tombstone_policy == "archive"

    def test_corpus_dir_for(self, settings):
        assert settings.corpus_dir_for(Path("/ctx")) == Path("/ctx/flotsam")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("passing_grade", 6),
            ("due_limit", -1),
            ("tombstone_policy", "shred"),
            ("note_source", "ftp"),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
