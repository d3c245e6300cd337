"""
Cognitive Energy Analysis.

Two views of when a learner performs well:

1. Energy curve - attempts bucketed by local hour of day, accuracy per hour.
   The best performance hour is the most accurate bucket (earliest hour wins
   ties).
2. Session fatigue - within each recent session, accuracy of the second half
   of attempts vs the first half. A drop larger than the fatigue threshold
   records the elapsed minutes at the halfway point as a fatigue point.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, tzinfo
from typing import Any

from loguru import logger

from cognitype.core.numeric import mean, round_half_up, round_ms
from cognitype.core.thresholds import AnalysisThresholds
from cognitype.telemetry.models import QuestionAttempt, SessionLog


@dataclass(frozen=True)
class HourBucket:
    """Accuracy for one hour of the day."""

    hour: int
    accuracy: float
    attempts: int

    def to_dict(self) -> dict[str, Any]:
        return {"hour": self.hour, "accuracy": self.accuracy, "attempts": self.attempts}


@dataclass(frozen=True)
class SessionFatigue:
    """First/second half accuracy of one analysed session."""

    session_id: str
    first_half_accuracy: float
    second_half_accuracy: float
    fatigue_point_minutes: int | None = None

    @property
    def accuracy_drop(self) -> float:
        return self.first_half_accuracy - self.second_half_accuracy


@dataclass(frozen=True)
class EnergyProfile:
    """One row per user, upserted."""

    energy_curve: list[HourBucket] = field(default_factory=list)
    best_performance_hour: int | None = None
    avg_session_fatigue_point_minutes: float | None = None
    accuracy_decay_rate: float = 0.0
    fatigue_points: list[int] = field(default_factory=list)
    optimal_time_slots: list[dict[str, str]] = field(default_factory=list)
    session_duration_recommendation_minutes: int | None = None

    def with_classifier_extras(
        self,
        optimal_study_time: str | None,
        recommended_session_duration_minutes: int | None,
    ) -> EnergyProfile:
        """Merge in the classifier's scheduling advice."""
        slots = [{"time": optimal_study_time}] if optimal_study_time else []
        return replace(
            self,
            optimal_time_slots=slots,
            session_duration_recommendation_minutes=recommended_session_duration_minutes,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "energy_curve_data": [b.to_dict() for b in self.energy_curve],
            "best_performance_hour": self.best_performance_hour,
            "avg_session_fatigue_point_minutes": self.avg_session_fatigue_point_minutes,
            "accuracy_decay_rate": self.accuracy_decay_rate,
            "optimal_time_slots": self.optimal_time_slots,
            "session_duration_recommendation_minutes": self.session_duration_recommendation_minutes,
        }


def _accuracy(attempts: Sequence[QuestionAttempt]) -> float:
    return sum(1 for a in attempts if a.is_correct) / len(attempts)


class EnergyAnalyzer:
    """
    Computes the energy curve and session fatigue points.

    Args:
        thresholds: Fatigue threshold and session limits
        tz: Learner's timezone. Aware timestamps are converted before
            taking the hour; naive timestamps are taken as already local.
    """

    def __init__(self, thresholds: AnalysisThresholds | None = None, tz: tzinfo | None = None):
        self.thresholds = thresholds or AnalysisThresholds()
        self.tz = tz

    def local_hour(self, moment: datetime) -> int:
        if self.tz is not None and moment.tzinfo is not None:
            moment = moment.astimezone(self.tz)
        return moment.hour

    def energy_curve(self, attempts: Sequence[QuestionAttempt]) -> list[HourBucket]:
        """Per-hour accuracy, sorted by hour. Only hours with attempts appear."""
        counts: dict[int, list[int]] = {}
        for attempt in attempts:
            bucket = counts.setdefault(self.local_hour(attempt.attempted_at), [0, 0])
            bucket[1] += 1
            if attempt.is_correct:
                bucket[0] += 1
        return [
            HourBucket(hour=hour, accuracy=round_half_up(correct / total), attempts=total)
            for hour, (correct, total) in sorted(counts.items())
        ]

    @staticmethod
    def best_hour(curve: Sequence[HourBucket]) -> int | None:
        best: HourBucket | None = None
        for bucket in curve:
            if best is None or bucket.accuracy > best.accuracy:
                best = bucket
        return best.hour if best else None

    def session_fatigue(
        self,
        attempts: Sequence[QuestionAttempt],
        sessions: Sequence[SessionLog],
    ) -> list[SessionFatigue]:
        """
        Analyse the most recent sessions with enough attempts.

        Args:
            attempts: Attempt window (any order)
            sessions: Sessions, most recent first

        Returns:
            One SessionFatigue per analysed session, session order preserved
        """
        t = self.thresholds
        by_session: dict[str, list[QuestionAttempt]] = {}
        for attempt in attempts:
            by_session.setdefault(attempt.session_id, []).append(attempt)

        results = []
        for session in sessions[: t.fatigue_session_count]:
            session_attempts = sorted(by_session.get(session.id, []), key=lambda a: a.attempted_at)
            if len(session_attempts) < t.fatigue_min_attempts:
                continue

            half = math.ceil(len(session_attempts) / 2)
            first_acc = _accuracy(session_attempts[:half])
            second_acc = _accuracy(session_attempts[half:])

            point = None
            if second_acc < first_acc - t.session_fatigue_threshold:
                elapsed = session_attempts[half].attempted_at - session_attempts[0].attempted_at
                point = round_ms(elapsed.total_seconds() / 60)

            results.append(
                SessionFatigue(
                    session_id=session.id,
                    first_half_accuracy=first_acc,
                    second_half_accuracy=second_acc,
                    fatigue_point_minutes=point,
                )
            )
        return results

    def analyze(
        self,
        attempts: Sequence[QuestionAttempt],
        sessions: Sequence[SessionLog] = (),
    ) -> EnergyProfile:
        """Build the energy profile from one analysis window."""
        curve = self.energy_curve(attempts)
        analysed = self.session_fatigue(attempts, list(sessions))
        points = [s.fatigue_point_minutes for s in analysed if s.fatigue_point_minutes is not None]

        profile = EnergyProfile(
            energy_curve=curve,
            best_performance_hour=self.best_hour(curve),
            avg_session_fatigue_point_minutes=round_half_up(mean(points)) if points else None,
            accuracy_decay_rate=round_half_up(mean([s.accuracy_drop for s in analysed])),
            fatigue_points=points,
        )

        logger.debug(
            f"Energy: best_hour={profile.best_performance_hour} "
            f"fatigue_points={points} decay={profile.accuracy_decay_rate}"
        )
        return profile
