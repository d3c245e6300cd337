"""
Event Stream Models.

Append-only tables the analysers read from:
- question_attempts: one row per answer or skip
- session_logs: one row per quiz session (finalized once)
- cognitive_history: one row per classification
- prediction_logs: one row per scored shadow prediction
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, new_id, utcnow


class QuestionAttemptRecord(Base):
    """One recorded answer (or skip). Never updated."""

    __tablename__ = "question_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    topic_id: Mapped[str | None] = mapped_column(String(64))

    difficulty_level: Mapped[int] = mapped_column(Integer, default=1)
    response_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    number_of_retries: Mapped[int] = mapped_column(Integer, default=0)
    time_between_attempts_ms: Mapped[int | None] = mapped_column(Integer)  # Only when retries > 0

    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    hint_used: Mapped[bool] = mapped_column(Boolean, default=False)
    abandonment_flag: Mapped[bool] = mapped_column(Boolean, default=False)
    selected_answer: Mapped[str | None] = mapped_column(Text)

    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_attempts_user_time", "user_id", "attempted_at"),
    )

    def __repr__(self) -> str:
        return f"<QuestionAttemptRecord user={self.user_id} question={self.question_id} correct={self.is_correct}>"


class SessionLogRecord(Base):
    """One quiz session."""

    __tablename__ = "session_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    topic_id: Mapped[str | None] = mapped_column(String(64))

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    total_questions_attempted: Mapped[int] = mapped_column(Integer, default=0)
    total_correct: Mapped[int] = mapped_column(Integer, default=0)
    total_retries: Mapped[int] = mapped_column(Integer, default=0)
    session_duration_seconds: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("idx_sessions_user_time", "user_id", "started_at"),
    )


class CognitiveHistoryRecord(Base):
    """A past classification with the feature snapshot it was based on."""

    __tablename__ = "cognitive_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    cognitive_type: Mapped[str] = mapped_column(String(64), nullable=False)
    confidence_score: Mapped[float | None] = mapped_column(Float)
    stability_index: Mapped[float | None] = mapped_column(Float)
    stability_label: Mapped[str | None] = mapped_column(String(64))
    feature_vector: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    reasoning: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_history_user_time", "user_id", "created_at"),
    )


class PredictionLogRecord(Base):
    """Shadow prediction next to the attempt that followed it."""

    __tablename__ = "prediction_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)

    predicted_response_time_ms: Mapped[int | None] = mapped_column(Integer)
    predicted_retry_probability: Mapped[float | None] = mapped_column(Float)
    predicted_error_probability: Mapped[float | None] = mapped_column(Float)
    predicted_mistake_type: Mapped[str | None] = mapped_column(Text)
    predicted_hesitation_risk: Mapped[float | None] = mapped_column(Float)

    actual_response_time_ms: Mapped[int | None] = mapped_column(Integer)
    actual_retries: Mapped[int | None] = mapped_column(Integer)
    actual_is_correct: Mapped[bool | None] = mapped_column(Boolean)

    deviation_score: Mapped[float | None] = mapped_column(Float)
    event_type: Mapped[str | None] = mapped_column(String(32))  # 'breakthrough' or None
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
