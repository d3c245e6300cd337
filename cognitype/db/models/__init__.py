# SQLAlchemy models
from .base import Base, JSONType
from .insights import (
    CognitiveEventRecord,
    MisconceptionRecord,
    RecommendationRecord,
    SystemSetting,
)
from .profiles import (
    CognitiveProfileRecord,
    EnergyProfileRecord,
    FingerprintRecord,
    GamificationRecord,
    TopicPerformanceRecord,
)
from .telemetry import (
    CognitiveHistoryRecord,
    PredictionLogRecord,
    QuestionAttemptRecord,
    SessionLogRecord,
)

__all__ = [
    # Base
    "Base",
    "JSONType",
    # Event stream
    "QuestionAttemptRecord",
    "SessionLogRecord",
    "CognitiveHistoryRecord",
    "PredictionLogRecord",
    # Profiles (versioned upserts)
    "CognitiveProfileRecord",
    "FingerprintRecord",
    "EnergyProfileRecord",
    "GamificationRecord",
    "TopicPerformanceRecord",
    # Insights
    "RecommendationRecord",
    "MisconceptionRecord",
    "CognitiveEventRecord",
    "SystemSetting",
]
