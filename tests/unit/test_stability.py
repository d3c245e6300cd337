"""
Unit tests for the Cognitive Stability Index.
"""

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from cognitype.analysis.stability import StabilityLabel, StabilityScorer, count_type_changes
from cognitype.core.thresholds import AnalysisThresholds
from cognitype.telemetry.features import FeatureExtractor
from cognitype.telemetry.models import CognitiveHistorySnapshot


def history_of(*types):
    start = datetime(2026, 1, 1)
    return [
        CognitiveHistorySnapshot(cognitive_type=t, created_at=start + timedelta(days=i))
        for i, t in enumerate(types)
    ]


@pytest.fixture
def scorer():
    return StabilityScorer(AnalysisThresholds())


@pytest.fixture
def features(scenario_attempts):
    return FeatureExtractor().extract(scenario_attempts)


class TestLabels:
    """Tests for CSI label boundaries."""

    def test_75_is_stable(self, scorer):
        """The high side is inclusive."""
        assert scorer.label_for(75) == StabilityLabel.STABLE

    def test_45_is_moderate(self, scorer):
        assert scorer.label_for(45) == StabilityLabel.MODERATE

    def test_just_below_45_is_unstable(self, scorer):
        assert scorer.label_for(44.999) == StabilityLabel.UNSTABLE

    def test_label_values(self):
        """Test the stored label strings."""
        assert StabilityLabel.STABLE.value == "Stable Thinker"
        assert StabilityLabel.MODERATE.value == "Moderately Stable"
        assert StabilityLabel.UNSTABLE.value == "Unstable Cognitive Pattern"

    def test_cutoffs_are_tunable(self):
        """Test custom cut-offs move the bands."""
        scorer = StabilityScorer(AnalysisThresholds(stable_cutoff=90, moderate_cutoff=60))

        assert scorer.label_for(80) == StabilityLabel.MODERATE
        assert scorer.label_for(55) == StabilityLabel.UNSTABLE


class TestIndex:
    """Tests for the CSI formula."""

    def test_no_history_no_penalties(self, scorer, features):
        """Perfectly consistent learner with no history scores 100."""
        result = scorer.score(features, [])

        assert result.index == 100.0
        assert result.label == StabilityLabel.STABLE
        assert result.type_changes == 0
        assert result.drift_detected is False

    def test_type_changes_penalised(self, scorer, features):
        """Two flips cost 2 x 15."""
        history = history_of("Concept Gap Learner", "Inconsistent Performer", "Concept Gap Learner")
        result = scorer.score(features, history)

        assert result.type_changes == 2
        assert result.index == 70.0
        assert result.label == StabilityLabel.MODERATE

    def test_consistency_and_variance_penalties(self, scorer, features):
        """50 x consistency, plus 20 when variance exceeds 50000."""
        noisy = replace(features, consistency_index=0.2, response_time_variance=50001)
        result = scorer.score(noisy, [])

        assert result.index == 70.0

    def test_variance_at_limit_not_penalised(self, scorer, features):
        """Test the variance penalty needs strictly more than the limit."""
        result = scorer.score(replace(features, response_time_variance=50000), [])

        assert result.index == 100.0

    def test_clamped_at_zero(self, scorer, features):
        """Test CSI never goes negative."""
        history = history_of(*(["A", "B"] * 5))
        result = scorer.score(replace(features, consistency_index=0.5), history)

        assert result.index == 0.0
        assert result.label == StabilityLabel.UNSTABLE

    def test_drift_sensitivity_override(self, features):
        """Admin drift sensitivity changes the per-flip penalty."""
        thresholds = AnalysisThresholds().with_overrides({"drift_sensitivity": 30})
        result = StabilityScorer(thresholds).score(features, history_of("A", "B"))

        assert result.index == 70.0

    def test_score_is_idempotent(self, scorer, features):
        history = history_of("A", "B", "B")
        assert scorer.score(features, history) == scorer.score(features, history)


class TestDrift:
    """Tests for drift flags."""

    def test_recent_shift(self, scorer, features):
        """The two most recent snapshots differ."""
        result = scorer.score(features, history_of("A", "A", "B"))

        assert result.recent_shift is True
        assert result.drift_detected is True

    def test_old_shift_only(self, scorer, features):
        """An older flip lowers CSI but is not a recent shift."""
        result = scorer.score(features, history_of("A", "B", "B"))

        assert result.recent_shift is False
        assert result.drift_detected is False

    def test_unstable_label_flags_drift(self, scorer, features):
        result = scorer.score(replace(features, consistency_index=1.2), history_of("A"))

        assert result.label == StabilityLabel.UNSTABLE
        assert result.drift_detected is True

    def test_count_type_changes(self):
        assert count_type_changes([]) == 0
        assert count_type_changes(history_of("A")) == 0
        assert count_type_changes(history_of("A", "B", "B", "C")) == 2
