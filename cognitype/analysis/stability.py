"""
Cognitive Stability Index (CSI).

Scores how settled a learner's cognitive pattern is, from 0 to 100:

    CSI = max(0, 100
              - drift_sensitivity * type_changes
              - consistency_weight * consistency_index
              - variance_penalty  (only when response_time_variance > variance_limit))

Higher is more stable. Every weight and cut-off comes from AnalysisThresholds
so admins can tune them without code changes.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from cognitype.core.numeric import round_half_up
from cognitype.core.thresholds import AnalysisThresholds
from cognitype.telemetry.features import FeatureVector
from cognitype.telemetry.models import CognitiveHistorySnapshot


class StabilityLabel(str, Enum):
    """Categorical CSI band."""
    STABLE = "Stable Thinker"
    MODERATE = "Moderately Stable"
    UNSTABLE = "Unstable Cognitive Pattern"


@dataclass(frozen=True)
class StabilityResult:
    """
    Attributes:
        index: CSI, 0-100, three decimals
        label: Band for index
        type_changes: Adjacent history pairs with a different cognitive type
        recent_shift: The two most recent snapshots differ in type
        drift_detected: recent_shift, or the pattern is unstable
    """
    index: float
    label: StabilityLabel
    type_changes: int
    recent_shift: bool
    drift_detected: bool

    def to_dict(self) -> dict:
        return {
            "stability_index": self.index,
            "stability_label": self.label.value,
            "type_changes": self.type_changes,
            "recent_shift": self.recent_shift,
            "drift_detected": self.drift_detected,
        }


def count_type_changes(history: Sequence[CognitiveHistorySnapshot]) -> int:
    """Number of adjacent snapshot pairs whose cognitive_type differs."""
    return sum(
        1
        for previous, current in zip(history, history[1:])
        if previous.cognitive_type != current.cognitive_type
    )


class StabilityScorer:
    """Pure CSI calculator. Same (features, history) always gives the same result."""

    def __init__(self, thresholds: AnalysisThresholds | None = None):
        self.thresholds = thresholds or AnalysisThresholds()

    def label_for(self, csi: float) -> StabilityLabel:
        """Band a CSI value. Both cut-offs are inclusive on the high side."""
        if csi >= self.thresholds.stable_cutoff:
            return StabilityLabel.STABLE
        if csi >= self.thresholds.moderate_cutoff:
            return StabilityLabel.MODERATE
        return StabilityLabel.UNSTABLE

    def compute_index(self, features: FeatureVector, type_changes: int) -> float:
        t = self.thresholds
        penalty = (
            t.drift_sensitivity * type_changes
            + t.consistency_weight * features.consistency_index
        )
        if features.response_time_variance > t.variance_limit:
            penalty += t.variance_penalty
        return round_half_up(max(0.0, 100.0 - penalty))

    def score(
        self,
        features: FeatureVector,
        history: Sequence[CognitiveHistorySnapshot] = (),
    ) -> StabilityResult:
        """
        Score stability for one user.

        Args:
            features: Current feature vector
            history: Prior classification snapshots, oldest first

        Returns:
            StabilityResult
        """
        history = list(history)
        type_changes = count_type_changes(history)
        index = self.compute_index(features, type_changes)
        label = self.label_for(index)

        recent_shift = (
            len(history) >= 2
            and history[-1].cognitive_type != history[-2].cognitive_type
        )
        result = StabilityResult(
            index=index,
            label=label,
            type_changes=type_changes,
            recent_shift=recent_shift,
            drift_detected=recent_shift or label == StabilityLabel.UNSTABLE,
        )

        if result.drift_detected:
            logger.info(
                f"Cognitive drift: CSI={index} label='{label.value}' "
                f"type_changes={type_changes} recent_shift={recent_shift}"
            )
        return result
