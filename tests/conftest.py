"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cognitype.db.models import Base  # noqa: E402
from cognitype.telemetry.models import QuestionAttempt, SessionLog  # noqa: E402

USER_ID = "3f9a2c1e-7b44-4d1a-9c0e-5a6b7c8d9e0f"
BASE_TIME = datetime(2026, 3, 2, 9, 0, 0)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def make_attempt():
    """Factory for QuestionAttempt with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = {
            "user_id": USER_ID,
            "session_id": "session-1",
            "question_id": f"q-{counter['n']}",
            "attempted_at": BASE_TIME + timedelta(minutes=counter["n"]),
            "topic_id": "topic-a",
            "difficulty_level": 2,
            "response_time_ms": 4000,
            "number_of_retries": 0,
            "is_correct": True,
        }
        values.update(overrides)
        return QuestionAttempt(**values)

    return _make


@pytest.fixture
def make_session():
    """Factory for SessionLog with given correct/attempted counts."""
    counter = {"n": 0}

    def _make(correct: int, attempted: int, **overrides):
        counter["n"] += 1
        values = {
            "id": f"session-{counter['n']}",
            "user_id": USER_ID,
            "started_at": BASE_TIME - timedelta(days=counter["n"]),
            "total_questions_attempted": attempted,
            "total_correct": correct,
        }
        values.update(overrides)
        return SessionLog(**values)

    return _make


@pytest.fixture
def scenario_attempts(make_attempt):
    """correct, correct, incorrect, correct, incorrect with retries 0, 0, 1, 0, 2."""
    outcomes = [(True, 0), (True, 0), (False, 1), (True, 0), (False, 2)]
    return [make_attempt(is_correct=c, number_of_retries=r) for c, r in outcomes]


@pytest.fixture
def session_factory(tmp_path):
    """SQLite-backed sessionmaker with all tables created."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'cognitype.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture
def classification_payload():
    """A valid analyze_intelligence tool answer."""
    return {
        "cognitive_type": "Trial-and-Error Learner",
        "confidence_score": 0.82,
        "reasoning": "High retry ratio with improving accuracy across sessions.",
        "recommended_difficulty": 2,
        "practice_type": "guided practice",
        "time_limit_mode": "untimed",
        "learning_strategy_summary": "Slow down before the first attempt.",
        "cognitive_predictability_index": 64,
        "cpi_label": "Moderate",
        "drift_detected": False,
        "drift_description": "",
        "misconception_clusters": [
            {"type": "sign error", "description": "Drops negative signs", "frequency": 3},
            {"type": "unit confusion", "description": "Mixes ms and s"},
        ],
        "energy_analysis": {
            "optimal_study_time": "morning",
            "recommended_session_duration_minutes": 25,
        },
        "behavioral_signature": "Retries quickly, settles on the right answer.",
        "detected_events": [
            {"event_type": "stress", "description": "Retry spike in the last session"},
        ],
    }


@pytest.fixture
def prediction_payload():
    """A valid predict_behavior tool answer."""
    return {
        "predicted_response_time_ms": 8000,
        "predicted_retry_probability": 0.4,
        "predicted_error_probability": 0.7,
        "predicted_mistake_type": "careless",
        "predicted_hesitation_risk": 0.3,
        "confidence_instability": 0.2,
    }
