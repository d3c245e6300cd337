"""
Telemetry - Raw quiz events and the features derived from them.

Components:
- QuestionAttempt / SessionLog: immutable event records
- CognitiveHistorySnapshot: append-only past classifications
- FeatureExtractor: bounded window -> FeatureVector
"""

from .features import (
    FeatureExtractor,
    FeatureVector,
    TopicAccuracy,
    TopicPerformance,
    topic_performance,
)
from .models import CognitiveHistorySnapshot, QuestionAttempt, SessionLog

__all__ = [
    # Records
    "QuestionAttempt",
    "SessionLog",
    "CognitiveHistorySnapshot",
    # Features
    "FeatureExtractor",
    "FeatureVector",
    "TopicAccuracy",
    "TopicPerformance",
    "topic_performance",
]
