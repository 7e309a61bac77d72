"""
SM-2 review engine.

Pure interval-growth calculation: takes the prior SchedulingRecord, a grade
and the review time, returns the next record. Persisting the result is the
caller's job (StateStore.apply_review).

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from flotsam.errors import InvalidGradeError
from flotsam.srs.state_store import SchedulingRecord

if TYPE_CHECKING:
    from flotsam.config import Settings

MIN_GRADE = 0
MAX_GRADE = 5


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    passing_grade: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> SM2Config:
        return cls(
            initial_easiness=settings.initial_easiness,
            minimum_easiness=settings.minimum_easiness,
            first_interval=settings.first_interval_days,
            second_interval=settings.second_interval_days,
            passing_grade=settings.passing_grade,
        )


def validate_grade(grade: object) -> int:
    """Return grade unchanged if it is an int in 0..5, else raise InvalidGradeError."""
    if isinstance(grade, bool) or not isinstance(grade, int):
        raise InvalidGradeError(grade)
    if not MIN_GRADE <= grade <= MAX_GRADE:
        raise InvalidGradeError(grade)
    return grade


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each note has:
    - Easiness Factor (EF): How easy the note is (2.5 default, min 1.3)
    - Consecutive correct: streak of passing grades
    - Due date: when the note should next be surfaced
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def next_easiness(self, easiness: float, grade: int) -> float:
        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        miss = MAX_GRADE - grade
        ef_delta = 0.1 - miss * (0.08 + miss * 0.02)
        return max(self.config.minimum_easiness, easiness + ef_delta)

    def prior_interval(self, record: SchedulingRecord) -> timedelta:
        """Interval the record was last scheduled with (1 day if never reviewed)."""
        if record.last_reviewed is None:
            return timedelta(days=self.config.first_interval)
        interval = record.due_date - record.last_reviewed
        if interval <= timedelta(0):
            return timedelta(days=self.config.first_interval)
        return interval

    def next_state(
        self,
        prior: SchedulingRecord,
        grade: int,
        now: datetime,
    ) -> SchedulingRecord:
        """
        Calculate the record after a review.

        Args:
            prior: Current scheduling record for the note
            grade: User grade (0-5)
            now: Time of the review

        Returns:
            New SchedulingRecord; prior is left untouched

        Raises:
            InvalidGradeError: grade outside 0-5
        """
        grade = validate_grade(grade)
        new_ef = self.next_easiness(prior.easiness, grade)

        if grade < self.config.passing_grade:
            # Failed - reset to beginning
            new_streak = 0
            interval = timedelta(days=self.config.first_interval)
        else:
            new_streak = prior.consecutive_correct + 1

            if new_streak == 1:
                interval = timedelta(days=self.config.first_interval)
            elif new_streak == 2:
                interval = timedelta(days=self.config.second_interval)
            else:
                prior_days = self.prior_interval(prior).total_seconds() / 86400
                interval = timedelta(days=max(1, round(prior_days * new_ef)))

        return replace(
            prior,
            easiness=new_ef,
            consecutive_correct=new_streak,
            due_date=now + interval,
            total_reviews=prior.total_reviews + 1,
            last_reviewed=now,
        )
