"""
Behavioral Fingerprint.

A stable per-user bundle of timing and error signatures:
- response rhythm: the first 20 response times, window order
- retry timing: the first 20 time-between-attempts gaps
- error clustering: incorrect attempts per topic
- hesitation: bursts normalized by total attempts
- speed fluctuation: the first 30 deviations from the window average

The fingerprint_id is assigned once and reused forever. Building is a
read-before-write merge: the stored row (if any) supplies the id and the
classifier-owned fields, the window supplies everything else.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from cognitype.core.numeric import mean, round_ms, to_base36
from cognitype.telemetry.features import FeatureVector, timing_samples
from cognitype.telemetry.models import QuestionAttempt

RHYTHM_SAMPLES = 20
RETRY_SAMPLES = 20
FLUCTUATION_SAMPLES = 30


@dataclass(frozen=True)
class BehavioralFingerprint:
    """One row per user, upserted with id preservation."""

    user_id: str
    fingerprint_id: str
    response_rhythm_pattern: list[dict[str, int]] = field(default_factory=list)
    retry_timing_pattern: list[dict[str, int]] = field(default_factory=list)
    error_clustering_behavior: dict[str, int] = field(default_factory=dict)
    hesitation_burst_frequency: float = 0.0
    speed_fluctuation_pattern: list[dict[str, int]] = field(default_factory=list)
    cognitive_predictability_index: float | None = None
    cpi_label: str | None = None
    signature_summary: str | None = None
    last_updated: datetime | None = None

    def with_classification(
        self,
        cognitive_predictability_index: float,
        cpi_label: str,
        signature_summary: str,
    ) -> BehavioralFingerprint:
        """Fill in the classifier-owned fields."""
        return replace(
            self,
            cognitive_predictability_index=cognitive_predictability_index,
            cpi_label=cpi_label,
            signature_summary=signature_summary,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "fingerprint_id": self.fingerprint_id,
            "response_rhythm_pattern": self.response_rhythm_pattern,
            "retry_timing_pattern": self.retry_timing_pattern,
            "error_clustering_behavior": self.error_clustering_behavior,
            "hesitation_burst_frequency": self.hesitation_burst_frequency,
            "speed_fluctuation_pattern": self.speed_fluctuation_pattern,
            "cognitive_predictability_index": self.cognitive_predictability_index,
            "cpi_label": self.cpi_label,
            "signature_summary": self.signature_summary,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


def generate_fingerprint_id(user_id: str, now: datetime) -> str:
    """CF-{first 8 chars of user id}-{base36 epoch millis}, uppercase."""
    epoch_ms = int(now.timestamp() * 1000)
    return f"CF-{user_id[:8].upper()}-{to_base36(epoch_ms).upper()}"


def resolve_fingerprint_id(
    user_id: str,
    existing: BehavioralFingerprint | None,
    now: datetime,
) -> str:
    """Existing id if there is one, otherwise a freshly generated id."""
    if existing is not None and existing.fingerprint_id:
        return existing.fingerprint_id
    fingerprint_id = generate_fingerprint_id(user_id, now)
    logger.info(f"Assigned fingerprint {fingerprint_id} to user {user_id}")
    return fingerprint_id


class FingerprintBuilder:
    """Derives the behavioral fingerprint draft for one user."""

    def build(
        self,
        user_id: str,
        attempts: Sequence[QuestionAttempt],
        features: FeatureVector,
        existing: BehavioralFingerprint | None = None,
        now: datetime | None = None,
    ) -> BehavioralFingerprint:
        """
        Build the fingerprint from the same window the features came from.

        Args:
            user_id: Owner of the window
            attempts: Attempts, most recent first
            features: Feature vector of that window
            existing: Stored fingerprint, if any
            now: Clock for id generation and last_updated

        Returns:
            BehavioralFingerprint with the preserved (or new) id
        """
        now = now or datetime.now(timezone.utc)
        samples = timing_samples(attempts)
        avg = mean(samples)

        rhythm = [
            {"index": i, "ms": ms} for i, ms in enumerate(samples[:RHYTHM_SAMPLES])
        ]
        gaps = [a.time_between_attempts_ms for a in attempts if a.time_between_attempts_ms is not None]
        retry_timing = [
            {"index": i, "ms": ms} for i, ms in enumerate(gaps[:RETRY_SAMPLES])
        ]
        fluctuation = [
            {"index": i, "deviation": round_ms(abs(ms - avg))}
            for i, ms in enumerate(samples[:FLUCTUATION_SAMPLES])
        ]

        return BehavioralFingerprint(
            user_id=user_id,
            fingerprint_id=resolve_fingerprint_id(user_id, existing, now),
            response_rhythm_pattern=rhythm,
            retry_timing_pattern=retry_timing,
            error_clustering_behavior=error_clusters(attempts),
            hesitation_burst_frequency=features.hesitation_burst_frequency,
            speed_fluctuation_pattern=fluctuation,
            cognitive_predictability_index=existing.cognitive_predictability_index if existing else None,
            cpi_label=existing.cpi_label if existing else None,
            signature_summary=existing.signature_summary if existing else None,
            last_updated=now,
        )


def error_clusters(attempts: Sequence[QuestionAttempt]) -> dict[str, int]:
    """Incorrect attempts per topic, in first-seen order."""
    clusters: dict[str, int] = {}
    for attempt in attempts:
        if not attempt.is_correct and attempt.topic_id:
            clusters[attempt.topic_id] = clusters.get(attempt.topic_id, 0) + 1
    return clusters
