"""
Repositories over a SQLAlchemy Session.

EventStore is read-only: bounded, time-ordered windows of one user's events.

ProfileRepository owns the per-user rows. Upserts are compare-and-swap on
the row's `version`:

    expected_version=None  -> INSERT; a concurrent insert trips the unique
                              user_id constraint
    expected_version=N     -> UPDATE ... WHERE version = N, version = N + 1

Either failure raises PersistenceConflictError. Nothing here retries; the
caller re-reads and tries again.

Neither class commits. Transactions belong to session_scope().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cognitype.analysis.energy import EnergyProfile, HourBucket
from cognitype.analysis.fingerprint import BehavioralFingerprint
from cognitype.analysis.prediction import PredictionLog
from cognitype.core.exceptions import PersistenceConflictError
from cognitype.db.models import (
    CognitiveEventRecord,
    CognitiveHistoryRecord,
    CognitiveProfileRecord,
    EnergyProfileRecord,
    FingerprintRecord,
    GamificationRecord,
    MisconceptionRecord,
    PredictionLogRecord,
    QuestionAttemptRecord,
    RecommendationRecord,
    SessionLogRecord,
    SystemSetting,
    TopicPerformanceRecord,
)
from cognitype.gamification.ledger import GamificationState
from cognitype.telemetry.features import TopicPerformance
from cognitype.telemetry.models import CognitiveHistorySnapshot, QuestionAttempt, SessionLog


@dataclass(frozen=True)
class CognitiveProfile:
    """Current classification of a user."""

    cognitive_type: str | None = None
    confidence_score: float | None = None
    reasoning: str | None = None
    feature_vector: dict[str, Any] = field(default_factory=dict)
    previous_types: list[dict[str, Any]] = field(default_factory=list)
    at_risk: bool = False
    last_evaluated: datetime | None = None


@dataclass(frozen=True)
class Recommendation:
    cognitive_type: str
    recommended_difficulty: int
    focus_topics: list[str]
    practice_type: str | None = None
    time_limit_mode: str = "untimed"
    learning_strategy_summary: str | None = None


# =============================================================================
# Event Store
# =============================================================================


class EventStore:
    """Read-only access to one user's event stream."""

    def __init__(self, session: Session):
        self.session = session

    def recent_attempts(self, user_id: str, limit: int = 300) -> list[QuestionAttempt]:
        """Most recent attempts first."""
        rows = self.session.scalars(
            select(QuestionAttemptRecord)
            .where(QuestionAttemptRecord.user_id == user_id)
            .order_by(QuestionAttemptRecord.attempted_at.desc())
            .limit(limit)
        ).all()
        return [
            QuestionAttempt(
                user_id=r.user_id,
                session_id=r.session_id,
                question_id=r.question_id,
                attempted_at=r.attempted_at,
                topic_id=r.topic_id,
                difficulty_level=r.difficulty_level or 1,
                response_time_ms=r.response_time_ms or 0,
                number_of_retries=r.number_of_retries or 0,
                time_between_attempts_ms=r.time_between_attempts_ms,
                is_correct=bool(r.is_correct),
                hint_used=bool(r.hint_used),
                abandonment_flag=bool(r.abandonment_flag),
                selected_answer=r.selected_answer,
            )
            for r in rows
        ]

    def recent_sessions(self, user_id: str, limit: int = 50) -> list[SessionLog]:
        """Most recent sessions first."""
        rows = self.session.scalars(
            select(SessionLogRecord)
            .where(SessionLogRecord.user_id == user_id)
            .order_by(SessionLogRecord.started_at.desc())
            .limit(limit)
        ).all()
        return [
            SessionLog(
                id=r.id,
                user_id=r.user_id,
                started_at=r.started_at,
                topic_id=r.topic_id,
                ended_at=r.ended_at,
                total_questions_attempted=r.total_questions_attempted or 0,
                total_correct=r.total_correct or 0,
                total_retries=r.total_retries or 0,
                session_duration_seconds=r.session_duration_seconds or 0,
            )
            for r in rows
        ]

    def recent_history(self, user_id: str, limit: int = 20) -> list[CognitiveHistorySnapshot]:
        """The last `limit` classifications, returned oldest first."""
        rows = self.session.scalars(
            select(CognitiveHistoryRecord)
            .where(CognitiveHistoryRecord.user_id == user_id)
            .order_by(CognitiveHistoryRecord.created_at.desc())
            .limit(limit)
        ).all()
        return [
            CognitiveHistorySnapshot(
                cognitive_type=r.cognitive_type,
                created_at=r.created_at,
                confidence_score=r.confidence_score,
                stability_index=r.stability_index,
                stability_label=r.stability_label,
                feature_vector=r.feature_vector or {},
            )
            for r in reversed(rows)
        ]

    def system_settings(self) -> dict[str, Any]:
        """Admin-configured setting_key -> setting_value."""
        rows = self.session.scalars(select(SystemSetting)).all()
        return {r.setting_key: r.setting_value for r in rows}


# =============================================================================
# Profile Repository
# =============================================================================


class ProfileRepository:
    """Versioned per-user rows and insert-only analysis outputs."""

    def __init__(self, session: Session):
        self.session = session

    # ---------------------------------------------------------------------
    # Compare-and-swap core
    # ---------------------------------------------------------------------

    def _save_versioned(
        self,
        model: type,
        user_id: str,
        expected_version: int | None,
        values: dict[str, Any],
        *criteria,
    ) -> int:
        """Insert or CAS-update one row. Returns the new version."""
        table = model.__tablename__
        if expected_version is None:
            self.session.add(model(user_id=user_id, version=1, **values))
            try:
                self.session.flush()
            except IntegrityError as e:
                logger.warning(f"Insert race on {table} for user {user_id}")
                raise PersistenceConflictError(table, user_id) from e
            return 1

        result = self.session.execute(
            update(model)
            .where(model.user_id == user_id, model.version == expected_version, *criteria)
            .values(version=model.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                f"Version conflict on {table} for user {user_id} (expected v{expected_version})"
            )
            raise PersistenceConflictError(table, user_id)
        return expected_version + 1

    # ---------------------------------------------------------------------
    # Cognitive profile
    # ---------------------------------------------------------------------

    def get_cognitive_profile(self, user_id: str) -> tuple[CognitiveProfile | None, int | None]:
        row = self.session.scalar(
            select(CognitiveProfileRecord).where(CognitiveProfileRecord.user_id == user_id)
        )
        if row is None:
            return None, None
        profile = CognitiveProfile(
            cognitive_type=row.cognitive_type,
            confidence_score=row.confidence_score,
            reasoning=row.reasoning,
            feature_vector=row.feature_vector or {},
            previous_types=list(row.previous_types or []),
            at_risk=bool(row.at_risk),
            last_evaluated=row.last_evaluated,
        )
        return profile, row.version

    def save_cognitive_profile(
        self,
        user_id: str,
        profile: CognitiveProfile,
        expected_version: int | None,
    ) -> int:
        return self._save_versioned(
            CognitiveProfileRecord,
            user_id,
            expected_version,
            {
                "cognitive_type": profile.cognitive_type,
                "confidence_score": profile.confidence_score,
                "reasoning": profile.reasoning,
                "feature_vector": profile.feature_vector,
                "previous_types": profile.previous_types,
                "at_risk": profile.at_risk,
                "last_evaluated": profile.last_evaluated,
            },
        )

    # ---------------------------------------------------------------------
    # Fingerprint
    # ---------------------------------------------------------------------

    def get_fingerprint(self, user_id: str) -> tuple[BehavioralFingerprint | None, int | None]:
        row = self.session.scalar(
            select(FingerprintRecord).where(FingerprintRecord.user_id == user_id)
        )
        if row is None:
            return None, None
        fingerprint = BehavioralFingerprint(
            user_id=row.user_id,
            fingerprint_id=row.fingerprint_id,
            response_rhythm_pattern=list(row.response_rhythm_pattern or []),
            retry_timing_pattern=list(row.retry_timing_pattern or []),
            error_clustering_behavior=dict(row.error_clustering_behavior or {}),
            hesitation_burst_frequency=row.hesitation_burst_frequency or 0.0,
            speed_fluctuation_pattern=list(row.speed_fluctuation_pattern or []),
            cognitive_predictability_index=row.cognitive_predictability_index,
            cpi_label=row.cpi_label,
            signature_summary=row.signature_summary,
            last_updated=row.last_updated,
        )
        return fingerprint, row.version

    def save_fingerprint(
        self,
        fingerprint: BehavioralFingerprint,
        expected_version: int | None,
    ) -> int:
        """
        Upsert the fingerprint.

        The UPDATE also matches on fingerprint_id, so a row whose id differs
        from the one the caller read is treated as a conflict, never
        overwritten.
        """
        values = {
            "fingerprint_id": fingerprint.fingerprint_id,
            "response_rhythm_pattern": fingerprint.response_rhythm_pattern,
            "retry_timing_pattern": fingerprint.retry_timing_pattern,
            "error_clustering_behavior": fingerprint.error_clustering_behavior,
            "hesitation_burst_frequency": fingerprint.hesitation_burst_frequency,
            "speed_fluctuation_pattern": fingerprint.speed_fluctuation_pattern,
            "cognitive_predictability_index": fingerprint.cognitive_predictability_index,
            "cpi_label": fingerprint.cpi_label,
            "signature_summary": fingerprint.signature_summary,
            "last_updated": fingerprint.last_updated,
        }
        criteria = []
        if expected_version is not None:
            criteria.append(FingerprintRecord.fingerprint_id == fingerprint.fingerprint_id)
        return self._save_versioned(
            FingerprintRecord, fingerprint.user_id, expected_version, values, *criteria
        )

    # ---------------------------------------------------------------------
    # Energy profile
    # ---------------------------------------------------------------------

    def get_energy_profile(self, user_id: str) -> tuple[EnergyProfile | None, int | None]:
        row = self.session.scalar(
            select(EnergyProfileRecord).where(EnergyProfileRecord.user_id == user_id)
        )
        if row is None:
            return None, None
        profile = EnergyProfile(
            energy_curve=[HourBucket(**b) for b in (row.energy_curve_data or [])],
            best_performance_hour=row.best_performance_hour,
            avg_session_fatigue_point_minutes=row.avg_session_fatigue_point_minutes,
            accuracy_decay_rate=row.accuracy_decay_rate or 0.0,
            optimal_time_slots=list(row.optimal_time_slots or []),
            session_duration_recommendation_minutes=row.session_duration_recommendation_minutes,
        )
        return profile, row.version

    def save_energy_profile(
        self,
        user_id: str,
        profile: EnergyProfile,
        expected_version: int | None,
        now: datetime | None = None,
    ) -> int:
        values = profile.to_dict()
        values["last_updated"] = now
        return self._save_versioned(EnergyProfileRecord, user_id, expected_version, values)

    # ---------------------------------------------------------------------
    # Gamification
    # ---------------------------------------------------------------------

    def get_gamification(self, user_id: str) -> tuple[GamificationState, int | None]:
        """Stored state, or a fresh state with version None for new users."""
        row = self.session.scalar(
            select(GamificationRecord).where(GamificationRecord.user_id == user_id)
        )
        if row is None:
            return GamificationState(), None
        state = GamificationState(
            total_points=row.total_points or 0,
            current_streak=row.current_streak or 0,
            longest_streak=row.longest_streak or 0,
            last_activity_date=row.last_activity_date,
            badges=frozenset(row.badges or ()),
            quizzes_completed=row.quizzes_completed or 0,
        )
        return state, row.version

    def save_gamification(
        self,
        user_id: str,
        state: GamificationState,
        expected_version: int | None,
    ) -> int:
        return self._save_versioned(
            GamificationRecord,
            user_id,
            expected_version,
            {
                "total_points": state.total_points,
                "current_streak": state.current_streak,
                "longest_streak": state.longest_streak,
                "last_activity_date": state.last_activity_date,
                "badges": sorted(state.badges),
                "quizzes_completed": state.quizzes_completed,
            },
        )

    # ---------------------------------------------------------------------
    # Topic performance
    # ---------------------------------------------------------------------

    def topic_performance_versions(self, user_id: str) -> dict[str, int]:
        rows = self.session.execute(
            select(TopicPerformanceRecord.topic_id, TopicPerformanceRecord.version)
            .where(TopicPerformanceRecord.user_id == user_id)
        ).all()
        return {topic_id: version for topic_id, version in rows}

    def save_topic_performance(
        self,
        user_id: str,
        performance: TopicPerformance,
        expected_version: int | None,
        now: datetime | None = None,
    ) -> int:
        values = {
            "topic_id": performance.topic_id,
            "total_attempts": performance.total_attempts,
            "total_correct": performance.total_correct,
            "avg_response_time_ms": performance.avg_response_time_ms,
            "avg_retries": performance.avg_retries,
            "accuracy_rate": performance.accuracy_rate,
        }
        if now is not None:
            values["last_updated"] = now
        return self._save_versioned(
            TopicPerformanceRecord,
            user_id,
            expected_version,
            values,
            TopicPerformanceRecord.topic_id == performance.topic_id,
        )

    # ---------------------------------------------------------------------
    # Insert-only outputs
    # ---------------------------------------------------------------------

    def add_history(
        self,
        user_id: str,
        snapshot: CognitiveHistorySnapshot,
        reasoning: str | None = None,
    ) -> None:
        self.session.add(
            CognitiveHistoryRecord(
                user_id=user_id,
                cognitive_type=snapshot.cognitive_type,
                confidence_score=snapshot.confidence_score,
                stability_index=snapshot.stability_index,
                stability_label=snapshot.stability_label,
                feature_vector=snapshot.feature_vector,
                reasoning=reasoning,
                created_at=snapshot.created_at,
            )
        )

    def add_misconception(
        self,
        user_id: str,
        misconception_type: str,
        description: str,
        frequency: int | None = None,
    ) -> None:
        self.session.add(
            MisconceptionRecord(
                user_id=user_id,
                misconception_type=misconception_type,
                frequency=frequency or 1,
                confusion_cluster=[description],
            )
        )

    def add_event(
        self,
        user_id: str,
        event_type: str,
        description: str | None,
        event_data: dict[str, Any] | None = None,
    ) -> None:
        self.session.add(
            CognitiveEventRecord(
                user_id=user_id,
                event_type=event_type,
                description=description,
                event_data=event_data or {},
            )
        )

    def add_prediction_log(self, log: PredictionLog) -> None:
        self.session.add(PredictionLogRecord(**log.to_dict()))

    def replace_recommendation(self, user_id: str, recommendation: Recommendation) -> None:
        """Deactivate every active recommendation, then insert the new one."""
        self.session.execute(
            update(RecommendationRecord)
            .where(RecommendationRecord.user_id == user_id, RecommendationRecord.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        self.session.add(
            RecommendationRecord(
                user_id=user_id,
                cognitive_type=recommendation.cognitive_type,
                recommended_difficulty=recommendation.recommended_difficulty,
                focus_topics=recommendation.focus_topics,
                practice_type=recommendation.practice_type,
                time_limit_mode=recommendation.time_limit_mode or "untimed",
                learning_strategy_summary=recommendation.learning_strategy_summary,
                is_active=True,
            )
        )

    def active_recommendations(self, user_id: str) -> list[RecommendationRecord]:
        return list(
            self.session.scalars(
                select(RecommendationRecord).where(
                    RecommendationRecord.user_id == user_id,
                    RecommendationRecord.is_active.is_(True),
                )
            ).all()
        )
