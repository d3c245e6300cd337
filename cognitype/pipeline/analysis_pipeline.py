"""
Cognitive Analysis Pipeline.

One run per user:

    read snapshot (one session)
      -> FeatureExtractor
      -> StabilityScorer / FingerprintBuilder / EnergyAnalyzer
      -> classifier (single attempt, outside any transaction)
      -> write everything (one transaction, version-checked upserts)

Runs for the same user are serialised by a per-user asyncio.Lock inside
this process; the lock entry is dropped when the last run for that user
finishes. Database reads and writes run in a worker thread
(asyncio.to_thread) so one user's I/O does not stall the others. Across
processes the version checks turn a lost race into
PersistenceConflictError instead of a lost update.
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.orm import sessionmaker

from cognitype.analysis.energy import EnergyAnalyzer, EnergyProfile
from cognitype.analysis.fingerprint import BehavioralFingerprint, FingerprintBuilder
from cognitype.analysis.prediction import PredictionLog, UpcomingQuestion, evaluate_prediction
from cognitype.analysis.stability import StabilityResult, StabilityScorer
from cognitype.config import get_settings
from cognitype.core.exceptions import (
    ExternalClassifierError,
    InsufficientDataError,
    PersistenceConflictError,
)
from cognitype.core.feature_flags import FeatureFlags, get_flags
from cognitype.core.thresholds import AnalysisThresholds
from cognitype.db.database import session_scope
from cognitype.db.repository import (
    CognitiveProfile,
    EventStore,
    ProfileRepository,
    Recommendation,
)
from cognitype.gamification.ledger import GamificationLedger, LedgerUpdate, QuizCompletion
from cognitype.integrations.classifier_client import Classification, Classifier, ShadowPrediction
from cognitype.telemetry.features import FeatureExtractor, FeatureVector, topic_performance
from cognitype.telemetry.models import CognitiveHistorySnapshot, QuestionAttempt, SessionLog

T = TypeVar("T")

HISTORY_SUMMARY_SIZE = 5


@dataclass
class AnalysisSnapshot:
    """Everything a run reads, fetched once."""

    attempts: list[QuestionAttempt]
    sessions: list[SessionLog]
    history: list[CognitiveHistorySnapshot]
    system_settings: dict[str, Any]
    profile: CognitiveProfile | None = None
    profile_version: int | None = None
    fingerprint: BehavioralFingerprint | None = None
    fingerprint_version: int | None = None
    energy_version: int | None = None
    topic_versions: dict[str, int] = field(default_factory=dict)


@dataclass
class AnalysisOutcome:
    """Result of one pipeline run."""

    user_id: str
    status: str  # "completed" or "insufficient_data"
    message: str = ""
    features: FeatureVector | None = None
    stability: StabilityResult | None = None
    fingerprint: BehavioralFingerprint | None = None
    energy: EnergyProfile | None = None
    classification: Classification | None = None
    at_risk: bool = False

    @classmethod
    def insufficient(cls, user_id: str, error: InsufficientDataError) -> AnalysisOutcome:
        return cls(user_id=user_id, status="insufficient_data", message="Not enough data for analysis")

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> dict[str, Any]:
        if not self.completed:
            return {"user_id": self.user_id, "status": self.status, "message": self.message}
        c = self.classification
        return {
            "user_id": self.user_id,
            "status": self.status,
            "cognitive_type": c.cognitive_type,
            "confidence_score": c.confidence_score,
            "reasoning": c.reasoning,
            "stability_index": self.stability.index,
            "stability_label": self.stability.label.value,
            "cognitive_predictability_index": c.cognitive_predictability_index,
            "cpi_label": c.cpi_label,
            "drift_detected": c.drift_detected or self.stability.drift_detected,
            "drift_description": c.drift_description,
            "fingerprint_id": self.fingerprint.fingerprint_id,
            "at_risk": self.at_risk,
            "misconception_clusters": [m.model_dump() for m in c.misconception_clusters],
            "energy_analysis": c.energy_analysis.model_dump(),
            "behavioral_signature": c.behavioral_signature,
            "detected_events": [e.model_dump() for e in c.detected_events],
        }


def merge_previous_types(
    existing: CognitiveProfile | None,
    new_type: str,
    changed_at: datetime,
) -> list[dict[str, Any]]:
    """Append the outgoing type when the classification changed."""
    previous = list(existing.previous_types) if existing else []
    if existing and existing.cognitive_type and existing.cognitive_type != new_type:
        previous.append({"type": existing.cognitive_type, "changed_at": changed_at.isoformat()})
    return previous


def build_payload(
    features: FeatureVector,
    stability: StabilityResult,
    fingerprint: BehavioralFingerprint,
    energy: EnergyProfile | None,
    history: list[CognitiveHistorySnapshot],
) -> dict[str, Any]:
    """The {featureVector, cognitiveHistorySummary} payload sent to the classifier."""
    vector = features.to_dict()
    vector.update(
        cognitive_stability_index=stability.index,
        stability_label=stability.label.value,
        type_changes_count=stability.type_changes,
        error_clustering=fingerprint.error_clustering_behavior,
    )
    if energy is not None:
        vector.update(
            best_performance_hour=energy.best_performance_hour,
            avg_fatigue_point_minutes=energy.avg_session_fatigue_point_minutes,
            energy_curve=[b.to_dict() for b in energy.energy_curve],
        )
    recent = list(reversed(history))[:HISTORY_SUMMARY_SIZE]
    return {
        "featureVector": vector,
        "cognitiveHistorySummary": [h.summary() for h in recent],
    }


class CognitivePipeline:
    """Runs the full analysis for one user at a time."""

    def __init__(
        self,
        session_factory: sessionmaker,
        classifier: Classifier,
        thresholds: AnalysisThresholds | None = None,
        flags: FeatureFlags | None = None,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
        history_window: int | None = None,
    ):
        """
        Initialize pipeline.

        Args:
            session_factory: SQLAlchemy sessionmaker
            classifier: External classifier (GatewayClassifier in production)
            thresholds: Base thresholds; admin overrides are applied per run
            flags: Optional stage toggles
            tz: Learner timezone for the energy curve
            clock: Source of "now"
            history_window: Classifications read for drift (default from settings)
        """
        self.session_factory = session_factory
        self.classifier = classifier
        self.thresholds = thresholds or AnalysisThresholds()
        self.flags = flags or get_flags()
        self.tz = tz
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.history_window = history_window or get_settings().history_window
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Hold the per-user lock. The entry is dropped once no run holds or awaits it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._waiters[user_id] = self._waiters.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[user_id] -= 1
            if self._waiters[user_id] == 0:
                del self._waiters[user_id]
                del self._locks[user_id]

    def _read_snapshot(self, user_id: str) -> AnalysisSnapshot:
        with session_scope(self.session_factory) as session:
            events = EventStore(session)
            profiles = ProfileRepository(session)
            profile, profile_version = profiles.get_cognitive_profile(user_id)
            fingerprint, fingerprint_version = profiles.get_fingerprint(user_id)
            _, energy_version = profiles.get_energy_profile(user_id)
            return AnalysisSnapshot(
                attempts=events.recent_attempts(user_id, self.thresholds.attempt_window),
                sessions=events.recent_sessions(user_id, self.thresholds.session_window),
                history=events.recent_history(user_id, self.history_window),
                system_settings=events.system_settings(),
                profile=profile,
                profile_version=profile_version,
                fingerprint=fingerprint,
                fingerprint_version=fingerprint_version,
                energy_version=energy_version,
                topic_versions=profiles.topic_performance_versions(user_id),
            )

    async def run(self, user_id: str) -> AnalysisOutcome:
        """
        Analyse one user end to end.

        Returns:
            AnalysisOutcome (status "insufficient_data" below the attempt floor)

        Raises:
            ExternalClassifierError: Classifier failed; nothing was written
            PersistenceConflictError: Another writer changed a profile row
        """
        async with self._user_lock(user_id):
            snapshot = await asyncio.to_thread(self._read_snapshot, user_id)
            thresholds = self.thresholds.with_overrides(snapshot.system_settings)

            try:
                features = FeatureExtractor(thresholds).extract(snapshot.attempts, snapshot.sessions)
            except InsufficientDataError as e:
                logger.info(f"Skipping analysis for {user_id}: {e}")
                return AnalysisOutcome.insufficient(user_id, e)

            now = self.clock()
            stability = StabilityScorer(thresholds).score(features, snapshot.history)
            fingerprint = FingerprintBuilder().build(
                user_id, snapshot.attempts, features, existing=snapshot.fingerprint, now=now
            )
            energy = None
            if self.flags.is_enabled("ENERGY_ANALYSIS"):
                energy = EnergyAnalyzer(thresholds, self.tz).analyze(snapshot.attempts, snapshot.sessions)

            payload = build_payload(features, stability, fingerprint, energy, snapshot.history)
            try:
                classification = await self.classifier.classify(payload)
            except ExternalClassifierError as e:
                logger.error(f"Classification failed for {user_id} ({e.kind}): {e}")
                raise

            outcome = AnalysisOutcome(
                user_id=user_id,
                status="completed",
                features=features,
                stability=stability,
                fingerprint=fingerprint.with_classification(
                    classification.cognitive_predictability_index,
                    classification.cpi_label,
                    classification.behavioral_signature,
                ),
                energy=(
                    energy.with_classifier_extras(
                        classification.energy_analysis.optimal_study_time,
                        classification.energy_analysis.recommended_session_duration_minutes,
                    )
                    if energy is not None
                    else None
                ),
                classification=classification,
                at_risk=features.overall_accuracy < thresholds.risk_threshold,
            )
            await asyncio.to_thread(self._persist, user_id, snapshot, payload, outcome, now)

            logger.info(
                f"Analysed {user_id}: {classification.cognitive_type} "
                f"(CSI={stability.index}, {stability.label.value}, at_risk={outcome.at_risk})"
            )
            return outcome

    def _persist(
        self,
        user_id: str,
        snapshot: AnalysisSnapshot,
        payload: dict[str, Any],
        outcome: AnalysisOutcome,
        now: datetime,
    ) -> None:
        c = outcome.classification
        stability = outcome.stability

        with session_scope(self.session_factory) as session:
            repo = ProfileRepository(session)

            repo.add_history(
                user_id,
                CognitiveHistorySnapshot(
                    cognitive_type=c.cognitive_type,
                    created_at=now,
                    confidence_score=c.confidence_score,
                    stability_index=stability.index,
                    stability_label=stability.label.value,
                    feature_vector=payload["featureVector"],
                ),
                reasoning=c.reasoning,
            )

            repo.save_cognitive_profile(
                user_id,
                CognitiveProfile(
                    cognitive_type=c.cognitive_type,
                    confidence_score=c.confidence_score,
                    reasoning=c.reasoning,
                    feature_vector=payload["featureVector"],
                    previous_types=merge_previous_types(snapshot.profile, c.cognitive_type, now),
                    at_risk=outcome.at_risk,
                    last_evaluated=now,
                ),
                snapshot.profile_version,
            )

            repo.replace_recommendation(
                user_id,
                Recommendation(
                    cognitive_type=c.cognitive_type,
                    recommended_difficulty=c.recommended_difficulty,
                    focus_topics=list(outcome.features.weak_topics),
                    practice_type=c.practice_type,
                    time_limit_mode=c.time_limit_mode,
                    learning_strategy_summary=c.learning_strategy_summary,
                ),
            )

            repo.save_fingerprint(outcome.fingerprint, snapshot.fingerprint_version)

            if outcome.energy is not None:
                repo.save_energy_profile(user_id, outcome.energy, snapshot.energy_version, now)

            for cluster in c.misconception_clusters:
                repo.add_misconception(user_id, cluster.type, cluster.description, cluster.frequency)

            event_data = {
                "stability_index": stability.index,
                "cpi": c.cognitive_predictability_index,
            }
            for event in c.detected_events:
                repo.add_event(user_id, event.event_type, event.description, event_data)

            if self.flags.is_enabled("TOPIC_PERFORMANCE"):
                for performance in topic_performance(snapshot.attempts):
                    repo.save_topic_performance(
                        user_id,
                        performance,
                        snapshot.topic_versions.get(performance.topic_id),
                        now,
                    )

    # =========================================================================
    # Shadow prediction
    # =========================================================================

    def _read_window(self, user_id: str) -> tuple[list[QuestionAttempt], list[SessionLog]]:
        with session_scope(self.session_factory) as session:
            events = EventStore(session)
            return (
                events.recent_attempts(user_id, self.thresholds.attempt_window),
                events.recent_sessions(user_id, self.thresholds.session_window),
            )

    async def shadow_predict(
        self,
        user_id: str,
        question: UpcomingQuestion,
    ) -> ShadowPrediction | None:
        """
        Best-effort forecast for the next question.

        Returns None (and logs a warning) when disabled, below the attempt
        floor, or when the classifier fails. Never raises those errors.
        """
        if not self.flags.is_enabled("SHADOW_PREDICTION"):
            return None

        attempts, sessions = await asyncio.to_thread(self._read_window, user_id)
        try:
            features = FeatureExtractor(self.thresholds).extract(attempts, sessions)
            return await self.classifier.predict(
                {"featureVector": features.to_dict(), "upcomingQuestion": question.to_payload()}
            )
        except (InsufficientDataError, ExternalClassifierError) as e:
            logger.warning(f"Shadow prediction skipped for {user_id}: {e}")
            return None

    def record_prediction_outcome(
        self,
        prediction: ShadowPrediction,
        attempt: QuestionAttempt,
    ) -> PredictionLog:
        """Score a prediction against the attempt, log it, and flag breakthroughs."""
        with session_scope(self.session_factory) as session:
            settings = EventStore(session).system_settings()
            thresholds = self.thresholds.with_overrides(settings)
            log = evaluate_prediction(prediction, attempt, thresholds.breakthrough_threshold)

            repo = ProfileRepository(session)
            repo.add_prediction_log(log)
            if log.event_type == "breakthrough":
                repo.add_event(
                    attempt.user_id,
                    "breakthrough",
                    f"Answered correctly despite predicted error probability "
                    f"{prediction.predicted_error_probability:.2f}",
                    {
                        "question_id": attempt.question_id,
                        "predicted_error_probability": prediction.predicted_error_probability,
                        "deviation_score": log.deviation_score,
                    },
                )
                logger.info(f"Breakthrough for {attempt.user_id} on {attempt.question_id}")
        return log


# =============================================================================
# Gamification
# =============================================================================


class GamificationService:
    """Atomic read-compute-write of a user's gamification row."""

    def __init__(self, session_factory: sessionmaker, ledger: GamificationLedger | None = None):
        self.session_factory = session_factory
        self.ledger = ledger or GamificationLedger()

    def complete_quiz(
        self,
        user_id: str,
        completion: QuizCompletion,
        today: date | None = None,
    ) -> LedgerUpdate:
        """
        Apply one quiz completion.

        Raises:
            PersistenceConflictError: Another completion for this user won the race
        """
        today = today or date.today()
        with session_scope(self.session_factory) as session:
            repo = ProfileRepository(session)
            state, version = repo.get_gamification(user_id)
            update = self.ledger.apply(state, completion, today)
            repo.save_gamification(user_id, update.state, version)

        logger.info(
            f"Quiz complete for {user_id}: +{update.points_awarded} points, "
            f"streak {update.state.current_streak}"
        )
        return update


# =============================================================================
# Conflict retry (caller side)
# =============================================================================


def retry_on_conflict(operation: Callable[[], T], attempts: int = 3) -> T:
    """
    Re-run an operation that re-reads its inputs after a version conflict.

    Raises:
        PersistenceConflictError: If every attempt conflicted
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except PersistenceConflictError as e:
            if attempt == attempts:
                logger.error(f"Giving up after {attempts} conflicting attempts: {e}")
                raise
            logger.warning(f"Conflict on attempt {attempt}/{attempts}, re-reading: {e}")
    raise ValueError("attempts must be >= 1")


async def retry_on_conflict_async(operation: Callable[[], Awaitable[T]], attempts: int = 3) -> T:
    """Async variant of retry_on_conflict."""
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except PersistenceConflictError as e:
            if attempt == attempts:
                logger.error(f"Giving up after {attempts} conflicting attempts: {e}")
                raise
            logger.warning(f"Conflict on attempt {attempt}/{attempts}, re-reading: {e}")
    raise ValueError("attempts must be >= 1")
