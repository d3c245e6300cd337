"""
Analysis - Deterministic scoring over a feature window.

Components:
- StabilityScorer: Cognitive Stability Index and drift flags
- FingerprintBuilder: Behavioral fingerprint with id preservation
- EnergyAnalyzer: Hour-of-day energy curve and session fatigue points
- prediction: Shadow prediction deviation and breakthrough detection
"""

from .energy import EnergyAnalyzer, EnergyProfile, HourBucket, SessionFatigue
from .fingerprint import BehavioralFingerprint, FingerprintBuilder, generate_fingerprint_id
from .prediction import PredictionLog, UpcomingQuestion, evaluate_prediction
from .stability import StabilityLabel, StabilityResult, StabilityScorer

__all__ = [
    # Stability
    "StabilityScorer",
    "StabilityResult",
    "StabilityLabel",
    # Fingerprint
    "FingerprintBuilder",
    "BehavioralFingerprint",
    "generate_fingerprint_id",
    # Energy
    "EnergyAnalyzer",
    "EnergyProfile",
    "HourBucket",
    "SessionFatigue",
    # Prediction
    "UpcomingQuestion",
    "PredictionLog",
    "evaluate_prediction",
]
