"""
Integrations - External collaborators.

Components:
- GatewayClassifier: AI gateway client (classification and shadow prediction)
- Classifier: protocol the pipeline depends on
"""

from .classifier_client import (
    COGNITIVE_TYPES,
    CPI_LABELS,
    Classification,
    Classifier,
    DetectedEvent,
    EnergyAnalysis,
    GatewayClassifier,
    MisconceptionCluster,
    ShadowPrediction,
)

__all__ = [
    "Classifier",
    "GatewayClassifier",
    "Classification",
    "ShadowPrediction",
    "MisconceptionCluster",
    "EnergyAnalysis",
    "DetectedEvent",
    "COGNITIVE_TYPES",
    "CPI_LABELS",
]
