"""
Unit tests for the behavioral fingerprint.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from cognitype.analysis.fingerprint import (
    FingerprintBuilder,
    error_clusters,
    generate_fingerprint_id,
)
from cognitype.telemetry.features import FeatureExtractor

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def builder():
    return FingerprintBuilder()


@pytest.fixture
def window(make_attempt):
    attempts = [
        make_attempt(response_time_ms=1000 * (i + 1), topic_id="topic-a" if i % 2 else "topic-b",
                     is_correct=i % 3 != 0)
        for i in range(40)
    ]
    return attempts, FeatureExtractor().extract(attempts)


class TestFingerprintId:
    """Tests for fingerprint id assignment."""

    def test_generated_format(self, user_id):
        """CF-{first 8 of user id uppercased}-{base36 millis uppercased}."""
        fingerprint_id = generate_fingerprint_id(user_id, NOW)

        assert fingerprint_id.startswith("CF-3F9A2C1E-")
        assert re.fullmatch(r"CF-[0-9A-Z-]{8}-[0-9A-Z]+", fingerprint_id)

    def test_new_user_gets_generated_id(self, builder, window, user_id):
        attempts, features = window
        fingerprint = builder.build(user_id, attempts, features, existing=None, now=NOW)

        assert fingerprint.fingerprint_id == generate_fingerprint_id(user_id, NOW)

    def test_existing_id_preserved_across_runs(self, builder, window, user_id):
        """Running N times keeps the first id."""
        attempts, features = window
        first = builder.build(user_id, attempts, features, existing=None, now=NOW)

        current = first
        for i in range(10):
            later = NOW + timedelta(hours=i + 1)
            current = builder.build(user_id, attempts, features, existing=current, now=later)
            assert current.fingerprint_id == first.fingerprint_id

    def test_classifier_fields_carried_until_replaced(self, builder, window, user_id):
        attempts, features = window
        existing = builder.build(user_id, attempts, features, now=NOW).with_classification(
            72.5, "Predictable", "Steady, methodical"
        )
        rebuilt = builder.build(user_id, attempts, features, existing=existing, now=NOW)

        assert rebuilt.cognitive_predictability_index == 72.5
        assert rebuilt.cpi_label == "Predictable"

        updated = rebuilt.with_classification(40, "Unpredictable", "Erratic")
        assert updated.signature_summary == "Erratic"
        assert updated.fingerprint_id == existing.fingerprint_id


class TestPatterns:
    """Tests for signature patterns."""

    def test_rhythm_keeps_window_order_and_caps_at_20(self, builder, window, user_id):
        attempts, features = window
        fingerprint = builder.build(user_id, attempts, features, now=NOW)

        assert len(fingerprint.response_rhythm_pattern) == 20
        assert fingerprint.response_rhythm_pattern[0] == {"index": 0, "ms": 1000}
        assert fingerprint.response_rhythm_pattern[19] == {"index": 19, "ms": 20000}

    def test_speed_fluctuation_caps_at_30(self, builder, window, user_id):
        """Deviation from the window average (20500 ms)."""
        attempts, features = window
        fingerprint = builder.build(user_id, attempts, features, now=NOW)

        assert len(fingerprint.speed_fluctuation_pattern) == 30
        assert fingerprint.speed_fluctuation_pattern[0] == {"index": 0, "deviation": 19500}

    def test_retry_timing_skips_missing_gaps(self, builder, make_attempt, user_id):
        attempts = [
            make_attempt(number_of_retries=1, time_between_attempts_ms=1500),
            make_attempt(),
            make_attempt(number_of_retries=2, time_between_attempts_ms=800),
        ]
        features = FeatureExtractor().extract(attempts)
        fingerprint = builder.build(user_id, attempts, features, now=NOW)

        assert fingerprint.retry_timing_pattern == [
            {"index": 0, "ms": 1500},
            {"index": 1, "ms": 800},
        ]

    def test_error_clusters_by_topic(self, make_attempt):
        attempts = [
            make_attempt(topic_id="topic-a", is_correct=False),
            make_attempt(topic_id="topic-a", is_correct=False),
            make_attempt(topic_id="topic-b", is_correct=False),
            make_attempt(topic_id="topic-b", is_correct=True),
            make_attempt(topic_id=None, is_correct=False),
        ]
        assert error_clusters(attempts) == {"topic-a": 2, "topic-b": 1}

    def test_hesitation_is_normalized(self, builder, make_attempt, user_id):
        """Fingerprint stores bursts / total attempts."""
        attempts = [make_attempt(response_time_ms=1000) for _ in range(5)]
        attempts.append(make_attempt(response_time_ms=10000))
        features = FeatureExtractor().extract(attempts)
        fingerprint = builder.build(user_id, attempts, features, now=NOW)

        assert features.hesitation_burst_count == 1
        assert fingerprint.hesitation_burst_frequency == 0.167
