"""
Unit tests for realtime cognitive mode detection.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cognitype.delivery.mode_detector import (
    AttemptEvent,
    CognitiveMode,
    ModeMonitor,
    ModeRules,
    detect_mode,
)

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, minutes):
        self.now += timedelta(minutes=minutes)


class TestDetectMode:
    """Tests for the priority chain."""

    def test_fatigue_beats_struggling(self):
        """25 minutes in at 0.3 accuracy matches both; fatigue wins."""
        mode = detect_mode([5000] * 10, retries=0, correct_count=3, total_count=10, session_minutes=25)
        assert mode == CognitiveMode.FATIGUE

    def test_struggling_low_accuracy(self):
        mode = detect_mode([5000] * 10, retries=0, correct_count=3, total_count=10, session_minutes=10)
        assert mode == CognitiveMode.STRUGGLING

    def test_struggling_retries_exceed_answers(self):
        mode = detect_mode([5000] * 3, retries=4, correct_count=3, total_count=3, session_minutes=5)
        assert mode == CognitiveMode.STRUGGLING

    def test_struggling_needs_two_answers(self):
        """Test one wrong answer is not enough to struggle."""
        mode = detect_mode([5000], retries=0, correct_count=0, total_count=1, session_minutes=1)
        assert mode == CognitiveMode.FOCUSED

    def test_analytical(self):
        """Accurate and averaging over 15 seconds."""
        mode = detect_mode([20000] * 5, retries=0, correct_count=4, total_count=5, session_minutes=8)
        assert mode == CognitiveMode.ANALYTICAL

    def test_focused_default(self):
        mode = detect_mode([4000] * 5, retries=1, correct_count=4, total_count=5, session_minutes=8)
        assert mode == CognitiveMode.FOCUSED

    def test_slowdown_triggers_fatigue(self):
        """Last 3 answers average over 1.5x the session average."""
        times = [5000] * 6 + [20000] * 3
        mode = detect_mode(times, retries=0, correct_count=9, total_count=9, session_minutes=25)
        assert mode == CognitiveMode.FATIGUE

    def test_no_fatigue_before_twenty_minutes(self):
        times = [5000] * 6 + [20000] * 3
        mode = detect_mode(times, retries=0, correct_count=9, total_count=9, session_minutes=20)
        assert mode == CognitiveMode.FOCUSED

    def test_no_answers_yet(self):
        """Test accuracy is 1.0 before the first answer."""
        assert detect_mode([], 0, 0, 0, 0) == CognitiveMode.FOCUSED

    def test_custom_rules(self):
        rules = ModeRules(fatigue_minutes=5)
        mode = detect_mode([5000] * 4, 0, 1, 4, session_minutes=6, rules=rules)
        assert mode == CognitiveMode.FATIGUE


class TestModeMonitor:
    """Tests for the session state machine."""

    def test_listener_called_only_on_change(self):
        clock = FakeClock()
        monitor = ModeMonitor(clock=clock)
        seen = []
        monitor.subscribe(seen.append)

        first = monitor.on_attempt(AttemptEvent(response_time_ms=4000, is_correct=False))
        clock.advance(1)
        second = monitor.on_attempt(AttemptEvent(response_time_ms=4000, is_correct=False))
        clock.advance(1)
        monitor.on_attempt(AttemptEvent(response_time_ms=4000, is_correct=False))

        assert first.mode == CognitiveMode.FOCUSED
        assert second.mode == CognitiveMode.STRUGGLING
        assert len(seen) == 1
        assert seen[0].previous_mode == CognitiveMode.FOCUSED
        assert seen[0].description.label == "Struggling Mode"

    def test_session_minutes_from_injected_clock(self):
        clock = FakeClock()
        monitor = ModeMonitor(clock=clock)
        clock.advance(21)

        state = monitor.on_attempt(AttemptEvent(response_time_ms=4000, is_correct=False))

        assert state.session_minutes == 21
        assert state.mode == CognitiveMode.FATIGUE

    def test_unsubscribe(self):
        monitor = ModeMonitor(clock=FakeClock())
        seen = []
        unsubscribe = monitor.subscribe(seen.append)
        unsubscribe()

        monitor.on_attempt(AttemptEvent(response_time_ms=4000, is_correct=False))
        monitor.on_attempt(AttemptEvent(response_time_ms=4000, is_correct=False))

        assert monitor.mode == CognitiveMode.STRUGGLING
        assert seen == []

    def test_negative_values_rejected(self):
        monitor = ModeMonitor(clock=FakeClock())
        with pytest.raises(ValueError):
            monitor.on_attempt(AttemptEvent(response_time_ms=-1, is_correct=True))

    def test_state_accuracy(self):
        monitor = ModeMonitor(clock=FakeClock())
        monitor.on_attempt(AttemptEvent(response_time_ms=3000, is_correct=True))
        state = monitor.on_attempt(AttemptEvent(response_time_ms=3000, is_correct=False, retries=1))

        assert state.accuracy == 0.5
        assert state.retries == 1
