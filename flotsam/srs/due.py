"""
Due-today query and ranking.

A note is due today when its due date falls on or before 23:59:59 of the
query day. Results are ordered oldest due date first, ties broken by note
path, so repeated runs over the same state print the same list.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from flotsam.notes.metadata import extract_note_metadata
from flotsam.srs.state_store import SchedulingRecord, StateStore, ensure_aware, now_local

SECONDS_PER_DAY = 86400


@dataclass
class DueItem:
    """A scheduling record due for review, with display fields."""

    note_path: str
    note_id: str
    title: str
    due_date: datetime
    overdue: bool  # more than a day late
    days_past: int

    @property
    def status(self) -> str:
        if not self.overdue:
            return "Due today"
        if self.days_past == 1:
            return "1 day late"
        return f"{self.days_past} days late"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["due_date"] = self.due_date.isoformat()
        return data


def end_of_day(now: datetime) -> datetime:
    """Last whole second of now's calendar day, in now's timezone."""
    return now.replace(hour=23, minute=59, second=59, microsecond=0)


def to_due_item(record: SchedulingRecord, now: datetime) -> DueItem:
    cutoff = end_of_day(now)
    overdue = record.due_date < cutoff - timedelta(days=1)
    elapsed = (now - record.due_date).total_seconds()
    days_past = max(0, int(elapsed // SECONDS_PER_DAY))

    _, title = extract_note_metadata(record.note_path)
    return DueItem(
        note_path=record.note_path,
        note_id=record.note_id,
        title=title,
        due_date=record.due_date,
        overdue=overdue,
        days_past=days_past,
    )


def rank_due(
    records: list[SchedulingRecord],
    now: datetime,
    limit: int | None = None,
) -> list[DueItem]:
    """
    Filter records to those due by end of today, sort, then truncate.

    Args:
        records: Candidate records (any order)
        now: Query time
        limit: Maximum items (None or 0 = no limit), applied after sorting

    Returns:
        DueItems ordered by (due_date, note_path)
    """
    now = ensure_aware(now)
    cutoff = end_of_day(now)
    due = [r for r in records if r.due_date <= cutoff and not r.archived]
    due.sort(key=lambda r: (r.due_date, r.note_path))

    if limit:
        due = due[:limit]

    return [to_due_item(record, now) for record in due]


def due_today(
    store: StateStore,
    context: str | None = None,
    now: datetime | None = None,
    limit: int | None = None,
) -> list[DueItem]:
    """
    Get the notes due today or overdue for a context.

    Args:
        store: Open StateStore
        context: Partition (defaults to the store's context)
        now: Query time (defaults to the current local time)
        limit: Maximum items, applied after sorting

    Returns:
        Ordered list of DueItems
    """
    now = ensure_aware(now or now_local())
    records = store.due_items(context, end_of_day(now))
    return rank_due(records, now, limit)
