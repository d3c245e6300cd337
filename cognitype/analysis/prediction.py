"""
Shadow prediction scoring.

Compares a pre-question ShadowPrediction with the attempt that followed.
The deviation score is the mean absolute error of three forecasts, each on
a 0-1 scale:

- timing:  |predicted - actual| / max(predicted, actual)
- error:   |predicted_error_probability - (attempt was wrong)|
- retry:   |predicted_retry_probability - (attempt had retries)|

A correct answer the model expected to be wrong (error probability above
the breakthrough threshold) is logged as a breakthrough.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from cognitype.core.numeric import mean, round_half_up, safe_ratio
from cognitype.integrations.classifier_client import ShadowPrediction
from cognitype.telemetry.models import QuestionAttempt


@dataclass(frozen=True)
class UpcomingQuestion:
    """The question a shadow prediction is made for."""

    question_id: str
    session_id: str
    topic_id: str | None = None
    difficulty_level: int = 1
    has_hint: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "difficulty_level": self.difficulty_level,
            "has_hint": self.has_hint,
        }


@dataclass(frozen=True)
class PredictionLog:
    """Row for the prediction_logs table."""

    user_id: str
    session_id: str
    question_id: str
    predicted_response_time_ms: int
    predicted_retry_probability: float
    predicted_error_probability: float
    predicted_mistake_type: str
    predicted_hesitation_risk: float
    actual_response_time_ms: int
    actual_retries: int
    actual_is_correct: bool
    deviation_score: float
    event_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def deviation_score(prediction: ShadowPrediction, attempt: QuestionAttempt) -> float:
    predicted_ms = prediction.predicted_response_time_ms
    actual_ms = attempt.response_time_ms
    timing_error = safe_ratio(abs(predicted_ms - actual_ms), max(predicted_ms, actual_ms))
    error_error = abs(prediction.predicted_error_probability - (0.0 if attempt.is_correct else 1.0))
    retry_error = abs(
        prediction.predicted_retry_probability - (1.0 if attempt.number_of_retries > 0 else 0.0)
    )
    return round_half_up(mean([timing_error, error_error, retry_error]))


def is_breakthrough(
    prediction: ShadowPrediction,
    attempt: QuestionAttempt,
    breakthrough_threshold: float,
) -> bool:
    return attempt.is_correct and prediction.predicted_error_probability > breakthrough_threshold


def evaluate_prediction(
    prediction: ShadowPrediction,
    attempt: QuestionAttempt,
    breakthrough_threshold: float = 0.6,
) -> PredictionLog:
    """Score a prediction against the attempt it forecast."""
    return PredictionLog(
        user_id=attempt.user_id,
        session_id=attempt.session_id,
        question_id=attempt.question_id,
        predicted_response_time_ms=prediction.predicted_response_time_ms,
        predicted_retry_probability=prediction.predicted_retry_probability,
        predicted_error_probability=prediction.predicted_error_probability,
        predicted_mistake_type=prediction.predicted_mistake_type,
        predicted_hesitation_risk=prediction.predicted_hesitation_risk,
        actual_response_time_ms=attempt.response_time_ms,
        actual_retries=attempt.number_of_retries,
        actual_is_correct=attempt.is_correct,
        deviation_score=deviation_score(prediction, attempt),
        event_type="breakthrough" if is_breakthrough(prediction, attempt, breakthrough_threshold) else None,
    )
