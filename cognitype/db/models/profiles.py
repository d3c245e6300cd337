"""
Per-User Profile Models.

Rows upserted by user_id. Each carries a `version` counter that writers
compare-and-swap on, so a concurrent run cannot silently overwrite a
merge it never saw.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, new_id, utcnow


class CognitiveProfileRecord(Base):
    """Current cognitive type plus the trail of previous types."""

    __tablename__ = "cognitive_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    cognitive_type: Mapped[str | None] = mapped_column(String(64))
    confidence_score: Mapped[float | None] = mapped_column(Float)
    feature_vector: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    reasoning: Mapped[str | None] = mapped_column(Text)
    previous_types: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)  # [{type, changed_at}]
    at_risk: Mapped[bool] = mapped_column(Boolean, default=False)
    last_evaluated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class FingerprintRecord(Base):
    """Behavioral fingerprint. fingerprint_id is written once."""

    __tablename__ = "behavioral_fingerprints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    fingerprint_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    response_rhythm_pattern: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    retry_timing_pattern: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    error_clustering_behavior: Mapped[dict[str, int]] = mapped_column(JSONType, default=dict)
    hesitation_burst_frequency: Mapped[float] = mapped_column(Float, default=0.0)  # normalized
    speed_fluctuation_pattern: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)

    cognitive_predictability_index: Mapped[float | None] = mapped_column(Float)
    cpi_label: Mapped[str | None] = mapped_column(String(32))
    signature_summary: Mapped[str | None] = mapped_column(Text)

    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class EnergyProfileRecord(Base):
    __tablename__ = "energy_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    optimal_time_slots: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    avg_session_fatigue_point_minutes: Mapped[float | None] = mapped_column(Float)
    accuracy_decay_rate: Mapped[float] = mapped_column(Float, default=0.0)
    best_performance_hour: Mapped[int | None] = mapped_column(Integer)
    session_duration_recommendation_minutes: Mapped[int | None] = mapped_column(Integer)
    energy_curve_data: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class GamificationRecord(Base):
    """Points, streaks and badges."""

    __tablename__ = "student_gamification"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_activity_date: Mapped[date | None] = mapped_column(Date)
    badges: Mapped[list[str]] = mapped_column(JSONType, default=list)
    quizzes_completed: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class TopicPerformanceRecord(Base):
    __tablename__ = "topic_performance"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    topic_id: Mapped[str] = mapped_column(String(64), nullable=False)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    total_correct: Mapped[int] = mapped_column(Integer, default=0)
    avg_response_time_ms: Mapped[float | None] = mapped_column(Float)
    avg_retries: Mapped[float | None] = mapped_column(Float)
    accuracy_rate: Mapped[float] = mapped_column(Float, default=0.0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("user_id", "topic_id", name="uq_topic_performance_user_topic"),
    )
