"""
Pipeline - Orchestration over storage and the classifier.
"""

from .analysis_pipeline import (
    AnalysisOutcome,
    CognitivePipeline,
    GamificationService,
    build_payload,
    merge_previous_types,
    retry_on_conflict,
    retry_on_conflict_async,
)

__all__ = [
    "CognitivePipeline",
    "AnalysisOutcome",
    "GamificationService",
    "build_payload",
    "merge_previous_types",
    "retry_on_conflict",
    "retry_on_conflict_async",
]
