"""Aggregate challenge outcomes into session records and statistics."""

import datetime
from dataclasses import dataclass
from typing import List, Optional, Sequence

from stepmaster.core import config, models

logger = config.get_logger()


@dataclass
class SessionSummary:
    """Dataclass to store the outcome counts of a session.

    Attributes:
        total: Number of challenges attempted.
        completed: Number of completed challenges.
        failed: Number of challenges that ran out of time.
        skipped: Number of skipped challenges.
        accuracy: Percentage of completed challenges, rounded to an integer.
    """

    total: int
    completed: int
    failed: int
    skipped: int
    accuracy: int

    @property
    def rating(self) -> str:
        """Verbal rating of the accuracy."""
        if self.accuracy >= 80:
            return "excellent"
        if self.accuracy >= 60:
            return "good"
        if self.accuracy >= 40:
            return "decent"
        return "needs practice"


@dataclass
class HistoryStatistics:
    """Dataclass to store statistics over all stored sessions.

    Attributes:
        sessions: Number of stored sessions.
        total_score: Sum of the session scores.
        best_score: Highest session score, 0 without sessions.
    """

    sessions: int
    total_score: int
    best_score: int


class SessionAggregator:
    """Collects the outcomes of the challenges of one session.

    Outcomes can only be appended. The record built at the end of the session is
    immutable.
    """

    def __init__(self) -> None:
        """Start an empty session."""
        self._outcomes: List[models.ChallengeOutcome] = []
        self.score = 0

    @property
    def outcomes(self) -> tuple[models.ChallengeOutcome, ...]:
        """The outcomes recorded so far."""
        return tuple(self._outcomes)

    def record_completed(
        self,
        challenge: models.ChallengeTemplate,
        performance: float,
        time_left: int,
    ) -> models.ChallengeOutcome:
        """Record a completed challenge, worth `performance * 100` points.

        Args:
            challenge: The completed challenge.
            performance: The performance reported by the detector.
            time_left: Seconds left on the countdown.

        Returns:
            The recorded outcome.
        """
        points = round(performance * 100)
        self.score += points
        return self._append(
            models.ChallengeOutcome(
                challenge=challenge, completed=True, score=points, time_left=time_left
            )
        )

    def record_failed(
        self, challenge: models.ChallengeTemplate
    ) -> models.ChallengeOutcome:
        """Record a challenge that ran out of time."""
        return self._append(
            models.ChallengeOutcome(
                challenge=challenge, completed=False, score=0, time_left=0
            )
        )

    def record_skipped(
        self, challenge: models.ChallengeTemplate, time_left: int
    ) -> models.ChallengeOutcome:
        """Record a challenge the user skipped."""
        return self._append(
            models.ChallengeOutcome(
                challenge=challenge,
                completed=False,
                score=0,
                skipped=True,
                time_left=time_left,
            )
        )

    def build_record(
        self, date: Optional[datetime.datetime] = None
    ) -> Optional[models.SessionRecord]:
        """Build the record handed to the session store.

        Args:
            date: Time the session ended. Defaults to now.

        Returns:
            The session record, or None if no challenge was recorded.
        """
        if not self._outcomes:
            return None
        date = date if date is not None else datetime.datetime.now()
        return models.SessionRecord(
            date=date.isoformat(),
            score=self.score,
            challenges=tuple(self._outcomes),
            total_challenges=len(self._outcomes),
        )

    def _append(self, outcome: models.ChallengeOutcome) -> models.ChallengeOutcome:
        self._outcomes.append(outcome)
        logger.debug(
            "Recorded %s: completed=%s, skipped=%s, score=%d",
            outcome.challenge.instruction,
            outcome.completed,
            outcome.skipped,
            outcome.score,
        )
        return outcome


def summarize(outcomes: Sequence[models.ChallengeOutcome]) -> SessionSummary:
    """Count the completed, failed and skipped challenges of a session.

    Args:
        outcomes: The outcomes of the session.

    Returns:
        The summary of the session.
    """
    total = len(outcomes)
    completed = sum(1 for outcome in outcomes if outcome.completed)
    skipped = sum(1 for outcome in outcomes if outcome.skipped)
    failed = total - completed - skipped
    accuracy = round(completed / total * 100) if total > 0 else 0
    return SessionSummary(
        total=total,
        completed=completed,
        failed=failed,
        skipped=skipped,
        accuracy=accuracy,
    )


def completion_rate(record: models.SessionRecord) -> int:
    """Percentage of the challenges of a record that scored points."""
    if record.total_challenges == 0:
        return 0
    scored = sum(1 for outcome in record.challenges if outcome.score > 0)
    return round(scored / record.total_challenges * 100)


def history_statistics(records: Sequence[models.SessionRecord]) -> HistoryStatistics:
    """Aggregate the stored sessions.

    Args:
        records: The stored session records.

    Returns:
        The number of sessions, their total score and the best session score.
    """
    scores = [record.score for record in records]
    return HistoryStatistics(
        sessions=len(scores),
        total_score=sum(scores),
        best_score=max(scores, default=0),
    )
