"""
Core Module - Shared errors, thresholds and flags.

Components:
- exceptions: InsufficientDataError, ExternalClassifierError family, PersistenceConflictError
- thresholds: AnalysisThresholds (injected tunables, admin overrides)
- feature_flags: Environment-overridable toggles for optional pipeline stages
- numeric: Reproducible rounding and safe statistics
"""

from cognitype.core.exceptions import (
    ClassifierQuotaExhaustedError,
    ClassifierRateLimitedError,
    CognitypeError,
    ExternalClassifierError,
    InsufficientDataError,
    MalformedClassifierResponseError,
    PersistenceConflictError,
)
from cognitype.core.feature_flags import FeatureFlags, get_flags
from cognitype.core.thresholds import AnalysisThresholds

__all__ = [
    # Errors
    "CognitypeError",
    "InsufficientDataError",
    "ExternalClassifierError",
    "ClassifierRateLimitedError",
    "ClassifierQuotaExhaustedError",
    "MalformedClassifierResponseError",
    "PersistenceConflictError",
    # Configuration
    "AnalysisThresholds",
    "FeatureFlags",
    "get_flags",
]
