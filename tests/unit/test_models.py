"""
Unit tests for telemetry records.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cognitype.telemetry.models import QuestionAttempt, SessionLog, parse_timestamp


class TestQuestionAttempt:
    """Tests for attempt validation and parsing."""

    def test_difficulty_range(self, make_attempt):
        with pytest.raises(ValueError):
            make_attempt(difficulty_level=6)

    def test_negative_retries_rejected(self, make_attempt):
        with pytest.raises(ValueError):
            make_attempt(number_of_retries=-1)

    def test_from_storage_row(self, user_id):
        attempt = QuestionAttempt.from_dict({
            "user_id": user_id,
            "session_id": "s-1",
            "question_id": "q-1",
            "attempted_at": "2026-03-02T09:15:00Z",
            "response_time_ms": None,
            "is_correct": True,
        })

        assert attempt.attempted_at == datetime(2026, 3, 2, 9, 15, tzinfo=timezone.utc)
        assert attempt.response_time_ms == 0
        assert attempt.topic_id is None

    def test_parse_timestamp_passthrough(self):
        moment = datetime(2026, 3, 2, 9, 0)
        assert parse_timestamp(moment) is moment
        assert parse_timestamp(None) is None


class TestSessionLog:
    """Tests for session finalization."""

    def test_finalize_sets_duration(self, make_session):
        session = make_session(0, 0)
        finished = session.finalize(session.started_at + timedelta(minutes=12), 10, 7, 3)

        assert finished.is_finished
        assert finished.session_duration_seconds == 720
        assert finished.accuracy == 0.7
        assert session.is_finished is False

    def test_finalize_only_once(self, make_session):
        session = make_session(0, 0)
        finished = session.finalize(session.started_at + timedelta(minutes=5), 3, 2, 0)

        with pytest.raises(ValueError):
            finished.finalize(session.started_at + timedelta(minutes=6), 4, 2, 0)

    def test_counts_cannot_shrink(self, make_session):
        session = make_session(4, 5)
        with pytest.raises(ValueError):
            session.finalize(session.started_at + timedelta(minutes=5), 3, 3, 0)

    def test_accuracy_none_without_attempts(self, make_session):
        assert make_session(0, 0).accuracy is None
