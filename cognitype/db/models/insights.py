"""
Insight Models.

Insert-only outputs of an analysis run (recommendations, misconceptions,
cognitive events) and the admin-settable threshold table.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, new_id, utcnow


class RecommendationRecord(Base):
    """At most one active row per user."""

    __tablename__ = "recommendations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    cognitive_type: Mapped[str] = mapped_column(String(64), nullable=False)
    recommended_difficulty: Mapped[int] = mapped_column(Integer, default=1)
    focus_topics: Mapped[list[str]] = mapped_column(JSONType, default=list)
    practice_type: Mapped[str | None] = mapped_column(Text)
    time_limit_mode: Mapped[str] = mapped_column(String(32), default="untimed")
    learning_strategy_summary: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_recommendations_user_active", "user_id", "is_active"),
    )


class MisconceptionRecord(Base):
    __tablename__ = "misconception_patterns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic_id: Mapped[str | None] = mapped_column(String(64))
    misconception_type: Mapped[str] = mapped_column(Text, nullable=False)
    frequency: Mapped[int] = mapped_column(Integer, default=1)
    confusion_cluster: Mapped[list[str]] = mapped_column(JSONType, default=list)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CognitiveEventRecord(Base):
    """Breakthrough / stress / shift / fatigue events."""

    __tablename__ = "cognitive_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class SystemSetting(Base):
    """Admin-settable key/value (risk_threshold, drift_sensitivity, ...)."""

    __tablename__ = "system_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    setting_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    setting_value: Mapped[Any] = mapped_column(JSONType)
    description: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
