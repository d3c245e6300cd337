"""
Telemetry records.

QuestionAttempt and SessionLog are the raw event stream the analysers read;
CognitiveHistorySnapshot is the append-only record of past classifications.
Each record belongs to exactly one user.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


def parse_timestamp(value: datetime | str | None) -> datetime | None:
    """Accept datetimes or ISO-8601 strings (including a trailing Z)."""
    if value is None or isinstance(value, datetime):
        return value
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class QuestionAttempt:
    """One recorded answer (or skip) to one question. Immutable once written."""

    user_id: str
    session_id: str
    question_id: str
    attempted_at: datetime
    topic_id: str | None = None
    difficulty_level: int = 1
    response_time_ms: int = 0
    number_of_retries: int = 0
    time_between_attempts_ms: int | None = None  # Only meaningful when retries > 0
    is_correct: bool = False
    hint_used: bool = False
    abandonment_flag: bool = False
    selected_answer: str | None = None

    def __post_init__(self):
        if not 1 <= self.difficulty_level <= 5:
            raise ValueError(f"difficulty_level must be 1-5, got {self.difficulty_level}")
        if self.number_of_retries < 0:
            raise ValueError("number_of_retries must be >= 0")
        if self.response_time_ms < 0:
            raise ValueError("response_time_ms must be >= 0")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionAttempt:
        """Build from a storage row."""
        return cls(
            user_id=str(data["user_id"]),
            session_id=str(data["session_id"]),
            question_id=str(data["question_id"]),
            attempted_at=parse_timestamp(data["attempted_at"]),
            topic_id=str(data["topic_id"]) if data.get("topic_id") else None,
            difficulty_level=int(data.get("difficulty_level") or 1),
            response_time_ms=int(data.get("response_time_ms") or 0),
            number_of_retries=int(data.get("number_of_retries") or 0),
            time_between_attempts_ms=data.get("time_between_attempts_ms"),
            is_correct=bool(data.get("is_correct", False)),
            hint_used=bool(data.get("hint_used", False)),
            abandonment_flag=bool(data.get("abandonment_flag", False)),
            selected_answer=data.get("selected_answer"),
        )


@dataclass(frozen=True)
class SessionLog:
    """
    One quiz session.

    Created at quiz start; finalized once at quiz end. Counts only grow.
    """

    id: str
    user_id: str
    started_at: datetime
    topic_id: str | None = None
    ended_at: datetime | None = None
    total_questions_attempted: int = 0
    total_correct: int = 0
    total_retries: int = 0
    session_duration_seconds: int = 0

    @property
    def accuracy(self) -> float | None:
        """Session accuracy, or None if nothing was attempted."""
        if self.total_questions_attempted <= 0:
            return None
        return self.total_correct / self.total_questions_attempted

    @property
    def is_finished(self) -> bool:
        return self.ended_at is not None

    def finalize(
        self,
        ended_at: datetime,
        total_questions_attempted: int,
        total_correct: int,
        total_retries: int,
    ) -> SessionLog:
        """
        Return the finished copy of this session.

        Raises:
            ValueError: If already finished or any count would decrease
        """
        if self.is_finished:
            raise ValueError(f"Session {self.id} is already finished")
        if (
            total_questions_attempted < self.total_questions_attempted
            or total_correct < self.total_correct
            or total_retries < self.total_retries
        ):
            raise ValueError("Session counts can only increase")
        if total_correct > total_questions_attempted:
            raise ValueError("total_correct cannot exceed total_questions_attempted")

        duration = max(0, round((ended_at - self.started_at).total_seconds()))
        return replace(
            self,
            ended_at=ended_at,
            total_questions_attempted=total_questions_attempted,
            total_correct=total_correct,
            total_retries=total_retries,
            session_duration_seconds=duration,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionLog:
        return cls(
            id=str(data["id"]),
            user_id=str(data["user_id"]),
            started_at=parse_timestamp(data["started_at"]),
            topic_id=str(data["topic_id"]) if data.get("topic_id") else None,
            ended_at=parse_timestamp(data.get("ended_at")),
            total_questions_attempted=int(data.get("total_questions_attempted") or 0),
            total_correct=int(data.get("total_correct") or 0),
            total_retries=int(data.get("total_retries") or 0),
            session_duration_seconds=int(data.get("session_duration_seconds") or 0),
        )


@dataclass(frozen=True)
class CognitiveHistorySnapshot:
    """A past classification. Append-only, used for drift calculations."""

    cognitive_type: str
    created_at: datetime
    confidence_score: float | None = None
    stability_index: float | None = None
    stability_label: str | None = None
    feature_vector: dict[str, Any] = field(default_factory=dict)

    def summary(self) -> str:
        """Short 'type (date)' form used in the classifier payload."""
        return f"{self.cognitive_type} ({self.created_at.date().isoformat()})"
