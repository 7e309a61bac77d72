"""
Integration tests for the scheduling service.

Runs real stores over real temporary corpora: notes are created and removed
on disk and the service is expected to keep the store coherent on its own.
"""

from datetime import datetime, timedelta

import pytest

from flotsam.errors import (
    InvalidGradeError,
    NoteAlreadyExistsError,
    NoteNotFoundError,
    NoteNotListedError,
    NoteOutsideCorpusError,
    SchemaError,
)
from flotsam.srs.cache import CacheState
from flotsam.srs.service import SchedulingService

T = datetime(2024, 3, 15, 9, 0, 0).astimezone()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def service(context_dir, settings):
    with SchedulingService.open(context_dir, "test", settings) as service:
        yield service


@pytest.fixture
def archive_settings(settings):
    return settings.model_copy(update={"tombstone_policy": "archive"})


# =============================================================================
# Opening
# =============================================================================


class TestOpen:
    def test_creates_corpus_and_store(self, data_dir, settings):
        context_dir = data_dir / "fresh"

        with SchedulingService.open(context_dir, "fresh", settings) as service:
            assert service.corpus_dir == (context_dir / "flotsam").resolve()
            assert service.corpus_dir.is_dir()
            assert service.store.db_path.exists()
            assert service.context == "fresh"

    def test_defaults_from_settings(self, settings):
        with SchedulingService.open(settings=settings) as service:
            assert service.context == "test"
            assert service.corpus_dir == (settings.data_dir / "test" / "flotsam").resolve()

    def test_corrupt_store_fails_closed(self, context_dir, settings):
        store_dir = context_dir / ".vice"
        store_dir.mkdir()
        (store_dir / "flotsam.db").write_bytes(b"definitely not sqlite" * 200)

        with pytest.raises(SchemaError):
            SchedulingService.open(context_dir, "test", settings)

    def test_relative_context_dir_keeps_registered_notes(self, tmp_path, settings, monkeypatch):
        monkeypatch.chdir(tmp_path)

        with SchedulingService.open("ctx", "test", settings) as service:
            assert service.corpus_dir.is_absolute()
            (service.corpus_dir / "abcd-idea.md").write_text("# Idea\n")

            service.register_note("abcd-idea.md")
            service.validate_and_refresh(force=True)

            assert [r.note_path for r in service.store.list_records()] == ["abcd-idea.md"]
            assert service.last_reconcile.removed == []
            assert service.last_reconcile.adopted == []

            due = service.list_due()
            assert [str(service.corpus_dir / item.note_path) for item in due] == [
                str(tmp_path.resolve() / "ctx" / "flotsam" / "abcd-idea.md")
            ]


# =============================================================================
# Review Flow
# =============================================================================


class TestReviewFlow:
    def test_new_notes_are_due_immediately(self, service, make_note):
        make_note("0a1b-first.md", note_id="0a1b")
        make_note("2c3d-second.md")

        due = service.list_due()

        assert [item.note_path for item in due] == ["0a1b-first.md", "2c3d-second.md"]
        assert due[0].note_id == "0a1b"
        assert due[0].title == "first"

    def test_reviewed_note_leaves_due_list(self, service, make_note):
        make_note("a.md")
        make_note("b.md")
        service.validate_and_refresh()

        service.record_review("a.md", 5)

        assert [item.note_path for item in service.list_due()] == ["b.md"]

    def test_first_and_second_success(self, service, make_note):
        make_note("a.md")
        service.validate_and_refresh()

        first = service.record_review("a.md", 5, now=T)
        assert first.consecutive_correct == 1
        assert first.due_date == T + timedelta(days=1)
        assert first.total_reviews == 1
        assert first.easiness == pytest.approx(2.6)

        later = T + timedelta(days=1)
        second = service.record_review("a.md", 5, now=later)
        assert second.consecutive_correct == 2
        assert second.due_date == later + timedelta(days=6)

    def test_failure_after_streak(self, service, make_note):
        make_note("a.md")
        service.validate_and_refresh()

        now = T
        for _ in range(3):
            record = service.record_review("a.md", 5, now=now)
            now = record.due_date
        assert record.consecutive_correct == 3

        failed = service.record_review("a.md", 1, now=now)

        assert failed.consecutive_correct == 0
        assert failed.due_date == now + timedelta(days=1)

    def test_total_reviews_counts_every_review(self, service, make_note):
        make_note("a.md")
        service.validate_and_refresh()

        grades = [5, 0, 3, 4, 1, 5, 2]
        for i, grade in enumerate(grades):
            record = service.record_review("a.md", grade, now=T + timedelta(days=i))

        assert record.total_reviews == len(grades)

    def test_long_failure_run_keeps_easiness_floor(self, service, make_note):
        make_note("a.md")
        service.validate_and_refresh()

        for i in range(20):
            record = service.record_review("a.md", 0, now=T + timedelta(days=i))

        assert record.easiness == pytest.approx(1.3)

    def test_review_by_absolute_path(self, service, make_note):
        note = make_note("a.md")

        record = service.record_review(note, 4)

        assert record.note_path == "a.md"

    def test_review_untracked_note(self, service):
        with pytest.raises(NoteNotFoundError):
            service.record_review("ghost.md", 4)

    def test_invalid_grade_rejected_before_store(self, service, make_note):
        make_note("a.md")
        service.validate_and_refresh()

        with pytest.raises(InvalidGradeError):
            service.record_review("a.md", 7)

        assert service.store.get("a.md").total_reviews == 0

    def test_due_list_sorted_and_limited(self, service, make_note):
        for name in ["c.md", "a.md", "b.md", "d.md"]:
            make_note(name)
        service.validate_and_refresh()
        service.record_review("d.md", 5, now=T - timedelta(days=10))

        due = service.list_due()
        keys = [(item.due_date, item.note_path) for item in due]
        assert keys == sorted(keys)
        assert due[0].note_path == "d.md"
        assert due[0].overdue is True

        assert len(service.list_due(limit=2)) == 2

    def test_due_list_respects_end_of_day(self, service, make_note):
        make_note("a.md")
        service.validate_and_refresh()
        record = service.record_review("a.md", 5)

        eod = record.last_reviewed.replace(hour=23, minute=59, second=59)
        due = service.list_due(now=record.last_reviewed)

        assert all(item.due_date <= eod for item in due)
        assert "a.md" not in [item.note_path for item in due]


# =============================================================================
# Registration
# =============================================================================


class TestRegisterNote:
    def test_register(self, service, make_note):
        make_note("0a1b-idea.md", note_id="0a1b")
        service.validate_and_refresh()
        make_note("2c3d-new.md", note_id="2c3d")

        record = service.register_note("2c3d-new.md")

        assert record.note_id == "2c3d"
        assert record.easiness == 2.5
        assert record.total_reviews == 0

    def test_register_with_explicit_id(self, service, make_note):
        make_note("a.md")

        assert service.register_note("a.md", note_id="custom").note_id == "custom"

    def test_round_trip(self, service, make_note):
        make_note("a.md")

        created = service.register_note("a.md")

        assert service.store.get("a.md") == created

    def test_register_twice(self, service, make_note):
        make_note("a.md")
        service.register_note("a.md")

        with pytest.raises(NoteAlreadyExistsError):
            service.register_note("a.md")
        assert service.register_note("a.md", exist_ok=True).note_path == "a.md"

    def test_register_missing_file(self, service):
        with pytest.raises(NoteNotFoundError):
            service.register_note("ghost.md")

    def test_register_note_in_subdirectory_rejected(self, service, corpus_dir):
        (corpus_dir / "sub").mkdir()
        (corpus_dir / "sub" / "x.md").write_text("# Nested\n")

        with pytest.raises(NoteNotListedError, match="directly inside"):
            service.register_note("sub/x.md")
        assert service.store.list_records() == []

    def test_register_non_matching_file_rejected(self, service, corpus_dir):
        (corpus_dir / "y.txt").write_text("plain text")

        with pytest.raises(NoteNotListedError):
            service.register_note("y.txt")
        assert not service.store.exists("y.txt")

    def test_register_outside_corpus_rejected(self, service, corpus_dir):
        (corpus_dir.parent / "outside.md").write_text("# Outside\n")

        with pytest.raises(NoteOutsideCorpusError) as exc_info:
            service.register_note("../outside.md")

        assert exc_info.value.context == "test"
        assert service.store.list_records() == []

    def test_review_outside_corpus_rejected(self, service, tmp_path):
        with pytest.raises(NoteOutsideCorpusError):
            service.record_review(tmp_path / "elsewhere.md", 4)

    def test_registered_note_survives_reconcile(self, service, make_note):
        service.validate_and_refresh()
        make_note("a.md")

        service.register_note("a.md")
        service.validate_and_refresh(force=True)

        assert service.store.exists("a.md")
        assert service.last_reconcile.removed == []

    def test_register_path_owned_by_other_context(self, service, make_note):
        make_note("a.md")
        service.store.create("a.md", "a", context="work")

        with pytest.raises(NoteAlreadyExistsError):
            service.register_note("a.md", exist_ok=True)


# =============================================================================
# Listing
# =============================================================================


class TestListNotes:
    def test_lists_tracked_notes_by_path(self, service, make_note):
        make_note("b.md")
        make_note("a.md")
        service.record_review("b.md", 5, now=T)

        records = service.list_notes()

        assert [r.note_path for r in records] == ["a.md", "b.md"]
        assert records[1].total_reviews == 1

    def test_empty_corpus(self, service):
        assert service.list_notes() == []

    def test_archived_hidden_unless_requested(
        self, context_dir, archive_settings, make_note, corpus_dir, touch_dir
    ):
        note = make_note("a.md")
        make_note("b.md")

        with SchedulingService.open(context_dir, "test", archive_settings) as service:
            service.validate_and_refresh()
            note.unlink()
            touch_dir(corpus_dir)

            visible = [r.note_path for r in service.list_notes()]
            everything = [r.note_path for r in service.list_notes(include_archived=True)]

        assert visible == ["b.md"]
        assert everything == ["a.md", "b.md"]


# =============================================================================
# Coherence
# =============================================================================


class TestCoherence:
    def test_validate_twice_reconciles_once(self, service, make_note):
        make_note("a.md")

        assert service.validate_and_refresh() == CacheState.UNKNOWN
        first = service.last_reconcile

        assert service.validate_and_refresh() == CacheState.VALID
        assert service.last_reconcile is first
        assert [r.note_path for r in service.store.list_records()] == ["a.md"]

    def test_external_delete_removes_record(self, service, make_note, corpus_dir, touch_dir):
        note = make_note("a.md")
        make_note("b.md")
        service.validate_and_refresh()

        note.unlink()
        touch_dir(corpus_dir)

        assert service.validate_and_refresh() == CacheState.STALE
        assert not service.store.exists("a.md")
        assert [item.note_path for item in service.list_due()] == ["b.md"]

    def test_review_after_external_create(self, service, make_note, corpus_dir, touch_dir):
        make_note("a.md")
        service.validate_and_refresh()

        make_note("b.md")
        touch_dir(corpus_dir)

        # No explicit sync: the review itself reconciles first
        record = service.record_review("b.md", 4)
        assert record.total_reviews == 1

    def test_force_reconciles(self, service, make_note):
        make_note("a.md")
        service.validate_and_refresh()

        assert service.validate_and_refresh(force=True) == CacheState.STALE

    def test_archive_policy_hides_and_restores(
        self, context_dir, archive_settings, make_note, corpus_dir, touch_dir
    ):
        note = make_note("a.md")

        with SchedulingService.open(context_dir, "test", archive_settings) as service:
            service.validate_and_refresh()
            service.record_review("a.md", 5, now=T - timedelta(days=30))

            hidden = corpus_dir.parent / "a.md"
            note.rename(hidden)
            touch_dir(corpus_dir)
            assert service.list_due() == []
            assert service.store.get("a.md").archived is True

            hidden.rename(note)
            touch_dir(corpus_dir, seconds=4)
            due = service.list_due()

        assert [item.note_path for item in due] == ["a.md"]
        assert due[0].overdue is True

    def test_contexts_are_isolated(self, data_dir, settings):
        for name in ("home", "work"):
            corpus = data_dir / name / "flotsam"
            corpus.mkdir(parents=True)
            (corpus / f"{name}.md").write_text(f"# {name}\n")

        with SchedulingService.open(data_dir / "home", "home", settings) as home:
            home_due = [item.note_path for item in home.list_due()]
        with SchedulingService.open(data_dir / "work", "work", settings) as work:
            work_due = [item.note_path for item in work.list_due()]

        assert home_due == ["home.md"]
        assert work_due == ["work.md"]


class TestStats:
    def test_stats(self, service, make_note):
        make_note("a.md")
        make_note("b.md")
        service.validate_and_refresh()
        service.record_review("a.md", 5)

        stats = service.stats()

        assert stats.total == 2
        assert stats.due == 1
        assert stats.mean_reviews == pytest.approx(0.5)
