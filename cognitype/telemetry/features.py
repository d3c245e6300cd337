"""
Behavioral Feature Extraction.

Converts a bounded, most-recent-first window of attempts and sessions into
a fixed FeatureVector. Every output is a pure function of the window:
the same snapshot always yields a bit-identical vector.

Feature groups:
1. Timing - average response time, population variance, hesitation bursts
2. Ratios - retries, errors, hints, abandonment, accuracy
3. Topics - grouped correct/total counts, weak topic detection
4. Sessions - improvement rate (recent vs older half), consistency index
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

from loguru import logger

from cognitype.core.exceptions import InsufficientDataError
from cognitype.core.numeric import (
    mean,
    population_std,
    population_variance,
    round_half_up,
    round_ms,
    safe_ratio,
)
from cognitype.core.thresholds import AnalysisThresholds
from cognitype.telemetry.models import QuestionAttempt, SessionLog


@dataclass(frozen=True)
class TopicAccuracy:
    """Grouped correct/total counts for one topic."""

    correct: int = 0
    total: int = 0

    @property
    def accuracy(self) -> float:
        return safe_ratio(self.correct, self.total)


@dataclass(frozen=True)
class TopicPerformance:
    """Per-topic rollup written to the topic_performance table."""

    topic_id: str
    total_attempts: int
    total_correct: int
    avg_response_time_ms: float | None
    avg_retries: float | None
    accuracy_rate: float


@dataclass(frozen=True)
class FeatureVector:
    """
    Derived, ephemeral feature vector for one user.

    Recomputed on every analysis run; only persisted as an audit snapshot.
    hesitation_burst_frequency is normalized by total attempts;
    hesitation_burst_count is the raw count.
    """

    avg_response_time_ms: int
    response_time_variance: int
    retry_ratio: float
    error_frequency: float
    hint_usage_rate: float
    abandonment_rate: float
    overall_accuracy: float
    session_improvement_rate: float
    consistency_index: float
    hesitation_burst_count: int
    hesitation_burst_frequency: float
    total_attempts: int
    total_sessions: int
    topic_accuracy: dict[str, TopicAccuracy] = field(default_factory=dict)
    weak_topics: tuple[str, ...] = ()

    @property
    def weak_topic_count(self) -> int:
        return len(self.weak_topics)

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable snapshot."""
        data = asdict(self)
        data["topic_accuracy"] = {
            topic_id: {"correct": t.correct, "total": t.total}
            for topic_id, t in self.topic_accuracy.items()
        }
        data["weak_topics"] = list(self.weak_topics)
        data["weak_topic_count"] = self.weak_topic_count
        return data


def timing_samples(attempts: Sequence[QuestionAttempt]) -> list[int]:
    """Positive response times, in window order."""
    return [a.response_time_ms for a in attempts if a.response_time_ms > 0]


def session_accuracies(sessions: Sequence[SessionLog]) -> list[float]:
    """Per-session accuracy for sessions with at least one attempt, in window order."""
    return [s.accuracy for s in sessions if s.accuracy is not None]


def count_hesitation_bursts(
    samples: Sequence[int],
    multiplier: float = 2.0,
    min_samples: int = 5,
) -> int:
    """Count response times exceeding multiplier x the window average."""
    if len(samples) < min_samples:
        return 0
    avg = mean(samples)
    return sum(1 for t in samples if t > avg * multiplier)


class FeatureExtractor:
    """
    Builds FeatureVectors from attempt/session windows.

    The window is capped at thresholds.attempt_window attempts and
    thresholds.session_window sessions, both most recent first.
    """

    def __init__(self, thresholds: AnalysisThresholds | None = None):
        self.thresholds = thresholds or AnalysisThresholds()

    def extract(
        self,
        attempts: Sequence[QuestionAttempt],
        sessions: Sequence[SessionLog] = (),
    ) -> FeatureVector:
        """
        Compute the feature vector for one user's window.

        Args:
            attempts: Attempts, most recent first
            sessions: Sessions, most recent first

        Returns:
            FeatureVector

        Raises:
            InsufficientDataError: If fewer than thresholds.min_attempts attempts
        """
        attempts = list(attempts)[: self.thresholds.attempt_window]
        sessions = list(sessions)[: self.thresholds.session_window]

        if len(attempts) < self.thresholds.min_attempts:
            raise InsufficientDataError(len(attempts), self.thresholds.min_attempts)

        n = len(attempts)
        samples = timing_samples(attempts)
        correct = sum(1 for a in attempts if a.is_correct)
        retries = sum(a.number_of_retries for a in attempts)
        hints = sum(1 for a in attempts if a.hint_used)
        abandoned = sum(1 for a in attempts if a.abandonment_flag)

        topic_accuracy = self._topic_accuracy(attempts)
        weak_topics = tuple(
            topic_id
            for topic_id, t in topic_accuracy.items()
            if t.accuracy < self.thresholds.weak_topic_threshold
        )

        bursts = count_hesitation_bursts(
            samples,
            self.thresholds.hesitation_multiplier,
            self.thresholds.min_attempts_for_bursts,
        )

        features = FeatureVector(
            avg_response_time_ms=round_ms(mean(samples)),
            response_time_variance=round_ms(population_variance(samples)),
            retry_ratio=round_half_up(retries / n),
            error_frequency=round_half_up((n - correct) / n),
            hint_usage_rate=round_half_up(hints / n),
            abandonment_rate=round_half_up(abandoned / n),
            overall_accuracy=round_half_up(correct / n),
            session_improvement_rate=round_half_up(self._improvement_rate(sessions)),
            consistency_index=round_half_up(population_std(session_accuracies(sessions))),
            hesitation_burst_count=bursts,
            hesitation_burst_frequency=round_half_up(bursts / n),
            total_attempts=n,
            total_sessions=len(sessions),
            topic_accuracy=topic_accuracy,
            weak_topics=weak_topics,
        )

        logger.debug(
            f"Extracted features: n={n} accuracy={features.overall_accuracy} "
            f"consistency={features.consistency_index} weak_topics={len(weak_topics)}"
        )
        return features

    @staticmethod
    def _topic_accuracy(attempts: Sequence[QuestionAttempt]) -> dict[str, TopicAccuracy]:
        counts: dict[str, list[int]] = {}
        for attempt in attempts:
            if not attempt.topic_id:
                continue
            bucket = counts.setdefault(attempt.topic_id, [0, 0])
            bucket[1] += 1
            if attempt.is_correct:
                bucket[0] += 1
        return {
            topic_id: TopicAccuracy(correct=c, total=t)
            for topic_id, (c, t) in counts.items()
        }

    @staticmethod
    def _improvement_rate(sessions: Sequence[SessionLog]) -> float:
        """
        Mean accuracy of the recent half minus mean of the older half.

        ceil(M/2) most recent sessions form the recent half, so an odd count
        gives the extra session to "recent". 0 if either half is empty.
        """
        accuracies = session_accuracies(sessions)
        half = math.ceil(len(accuracies) / 2)
        recent, older = accuracies[:half], accuracies[half:]
        if not recent or not older:
            return 0.0
        return mean(recent) - mean(older)


def topic_performance(attempts: Sequence[QuestionAttempt]) -> list[TopicPerformance]:
    """
    Per-topic rollup of attempts, in first-seen topic order.

    avg_response_time_ms only averages positive response times.
    """
    grouped: dict[str, list[QuestionAttempt]] = {}
    for attempt in attempts:
        if attempt.topic_id:
            grouped.setdefault(attempt.topic_id, []).append(attempt)

    rollup = []
    for topic_id, topic_attempts in grouped.items():
        samples = timing_samples(topic_attempts)
        total = len(topic_attempts)
        correct = sum(1 for a in topic_attempts if a.is_correct)
        rollup.append(
            TopicPerformance(
                topic_id=topic_id,
                total_attempts=total,
                total_correct=correct,
                avg_response_time_ms=round_half_up(mean(samples), 1) if samples else None,
                avg_retries=round_half_up(sum(a.number_of_retries for a in topic_attempts) / total),
                accuracy_rate=round_half_up(correct / total),
            )
        )
    return rollup
