"""
cognitype - behavioral feature engineering for quiz telemetry.

Turns a learner's raw attempt/session stream into a feature vector,
a Cognitive Stability Index, a behavioral fingerprint, an energy curve
and gamification bookkeeping, then hands the merged payload to an
external classifier.
"""

__version__ = "1.0.0"
