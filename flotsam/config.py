"""
Configuration settings for flotsam.

Uses Pydantic Settings for environment variable management with .env file support.
Every field can be overridden with a FLOTSAM_* environment variable.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FLOTSAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Context
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".local" / "share" / "flotsam",
        description="Root directory holding one subdirectory per context",
    )
    context: str = Field(
        default="personal",
        description="Active context (user workspace)",
    )

    # ========================================
    # Corpus & Store Layout
    # ========================================
    corpus_subdir: str = Field(
        default="flotsam",
        description="Directory under the context directory holding the notes",
    )
    sentinel_dir: str = Field(
        default=".zk",
        description="Marker directory identifying a notebook root",
    )
    store_dir_name: str = Field(
        default=".vice",
        description="Directory the scheduling store lives in",
    )
    store_filename: str = Field(
        default="flotsam.db",
        description="SQLite file name of the scheduling store",
    )
    note_pattern: str = Field(
        default="*.md",
        description="Glob matching trackable notes in the corpus directory",
    )

    # ========================================
    # Note Tool
    # ========================================
    note_source: Literal["directory", "zk"] = Field(
        default="directory",
        description="How notes are listed during reconciliation",
    )
    zk_tags: list[str] = Field(
        default_factory=lambda: ["vice:type:*"],
        description="Tag filters passed to 'zk list'",
    )

    # ========================================
    # Reconciliation
    # ========================================
    tombstone_policy: Literal["delete", "archive"] = Field(
        default="delete",
        description="What happens to records of notes removed from the corpus",
    )

    # ========================================
    # SM-2 Settings
    # ========================================
    initial_easiness: float = Field(default=2.5, description="Easiness of a new note")
    minimum_easiness: float = Field(default=1.3, description="Easiness floor")
    first_interval_days: int = Field(default=1, description="Interval after first success")
    second_interval_days: int = Field(default=6, description="Interval after second success")
    passing_grade: int = Field(default=3, ge=0, le=5, description="Lowest grade counted as a success")

    # ========================================
    # Output
    # ========================================
    due_limit: int = Field(
        default=0,
        ge=0,
        description="Default maximum number of due notes listed (0 = no limit)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    @property
    def context_dir(self) -> Path:
        """Directory of the active context."""
        return self.data_dir / self.context

    def corpus_dir_for(self, context_dir: Path) -> Path:
        """Return the note corpus directory inside a context directory."""
        return Path(context_dir) / self.corpus_subdir


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
