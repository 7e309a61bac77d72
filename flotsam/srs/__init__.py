"""
Spaced-repetition scheduling for notes.

Components:
- paths: Store placement next to the notebook root
- StateStore: SQLite persistence of scheduling records and cache metadata
- CacheManager: Directory-mtime coherence with the note corpus
- SM2Scheduler: Review engine
- due_today: Due query and ranking
- SchedulingService: Per-context facade used by the CLI
"""

from .cache import CacheManager, CacheState, ReconcileResult
from .due import DueItem, due_today, end_of_day, rank_due
from .paths import find_notebook_root, resolve_store_dir, resolve_store_path
from .scheduler import SM2Config, SM2Scheduler, validate_grade
from .service import SchedulingService
from .state_store import (
    CacheMetadata,
    ReviewState,
    SchedulingRecord,
    StateStore,
    StoreStats,
)

__all__ = [
    # Placement
    "find_notebook_root",
    "resolve_store_dir",
    "resolve_store_path",
    # Persistence
    "StateStore",
    "SchedulingRecord",
    "ReviewState",
    "CacheMetadata",
    "StoreStats",
    # Coherence
    "CacheManager",
    "CacheState",
    "ReconcileResult",
    # Scheduling
    "SM2Config",
    "SM2Scheduler",
    "validate_grade",
    # Due query
    "DueItem",
    "due_today",
    "end_of_day",
    "rank_due",
    # Facade
    "SchedulingService",
]
