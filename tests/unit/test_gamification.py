"""
Unit tests for the gamification ledger.
"""

from datetime import date, timedelta

import pytest

from cognitype.gamification.ledger import (
    Badge,
    GamificationLedger,
    GamificationState,
    LedgerEvent,
    QuizCompletion,
    points_for_answer,
)

TODAY = date(2026, 3, 2)
YESTERDAY = TODAY - timedelta(days=1)


@pytest.fixture
def ledger():
    return GamificationLedger()


class TestAnswerPoints:
    """Tests for per-answer points."""

    def test_correct_first_try(self):
        assert points_for_answer(True, 0) == 15

    def test_correct_after_retry(self):
        assert points_for_answer(True, 2) == 10

    def test_incorrect(self):
        assert points_for_answer(False, 0) == 0

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            points_for_answer(True, -1)


class TestQuizCompletion:
    """Tests for completion validation."""

    def test_correct_above_total_rejected(self):
        with pytest.raises(ValueError):
            QuizCompletion(correct=6, total=5, points=60)

    def test_negative_points_rejected(self):
        with pytest.raises(ValueError):
            QuizCompletion(correct=1, total=5, points=-5)

    def test_empty_quiz_is_not_perfect(self):
        assert QuizCompletion(correct=0, total=0, points=0).is_perfect is False


class TestStreaks:
    """Tests for daily streak handling."""

    def test_continues_from_yesterday(self, ledger):
        """Streak 3 yesterday becomes 4 today with a +15 bonus."""
        state = GamificationState(
            total_points=100, current_streak=3, longest_streak=3,
            last_activity_date=YESTERDAY, quizzes_completed=3,
            badges=frozenset({Badge.FIRST_QUIZ.value}),
        )
        update = ledger.apply(state, QuizCompletion(correct=2, total=5, points=20), TODAY)

        assert update.state.current_streak == 4
        assert update.state.longest_streak == 4
        assert update.streak_bonus == 15
        assert update.points_awarded == 35
        assert update.state.total_points == 135

    def test_same_day_no_bonus(self, ledger):
        state = GamificationState(current_streak=2, longest_streak=5, last_activity_date=TODAY)
        update = ledger.apply(state, QuizCompletion(correct=1, total=5, points=10), TODAY)

        assert update.state.current_streak == 2
        assert update.state.longest_streak == 5
        assert update.streak_bonus == 0

    def test_gap_resets_to_one(self, ledger):
        """Test a missed day restarts the streak."""
        state = GamificationState(current_streak=6, longest_streak=6, last_activity_date=TODAY - timedelta(days=3))
        update = ledger.apply(state, QuizCompletion(correct=1, total=5, points=10), TODAY)

        assert update.state.current_streak == 1
        assert update.state.longest_streak == 6
        assert update.streak_bonus == 0

    def test_backdated_completion_counts_as_same_day(self, ledger):
        """A completion dated before the last activity keeps streak and date."""
        state = GamificationState(current_streak=4, longest_streak=4, last_activity_date=TODAY)
        update = ledger.apply(state, QuizCompletion(correct=1, total=5, points=10), YESTERDAY)

        assert update.state.current_streak == 4
        assert update.streak_bonus == 0
        assert update.state.last_activity_date == TODAY
        assert update.state.total_points == 10

    def test_first_activity_starts_streak(self, ledger):
        update = ledger.apply(GamificationState(), QuizCompletion(correct=0, total=3, points=0), TODAY)

        assert update.state.current_streak == 1
        assert update.state.last_activity_date == TODAY


class TestBonusesAndBadges:
    """Tests for perfect quiz bonus and badge awards."""

    def test_perfect_quiz_bonus(self, ledger):
        """5/5 gets +20 on top of the answer points."""
        update = ledger.apply(GamificationState(), QuizCompletion(correct=5, total=5, points=75), TODAY)

        assert update.perfect_bonus == 20
        assert update.state.total_points == 95
        assert Badge.PERFECT_SCORE.value in update.new_badges

    def test_first_quiz_badge_once(self, ledger):
        first = ledger.apply(GamificationState(), QuizCompletion(correct=1, total=2, points=15), TODAY)
        second = ledger.apply(first.state, QuizCompletion(correct=1, total=2, points=15), TODAY)

        assert first.new_badges == (Badge.FIRST_QUIZ.value,)
        assert second.new_badges == ()

    def test_perfect_score_awarded_once(self, ledger):
        perfect = QuizCompletion(correct=3, total=3, points=45)
        state = ledger.apply(GamificationState(), perfect, TODAY).state
        update = ledger.apply(state, perfect, TODAY)

        assert update.perfect_bonus == 20
        assert Badge.PERFECT_SCORE.value not in update.new_badges

    def test_topic_explorer_at_five_quizzes(self, ledger):
        state = GamificationState(quizzes_completed=4, badges=frozenset({Badge.FIRST_QUIZ.value}))
        update = ledger.apply(state, QuizCompletion(correct=1, total=4, points=10), TODAY)

        assert update.new_badges == (Badge.TOPIC_EXPLORER.value,)

    def test_streak_master_at_seven_days(self, ledger):
        state = GamificationState(
            current_streak=6, longest_streak=6, last_activity_date=YESTERDAY,
            quizzes_completed=1, badges=frozenset({Badge.FIRST_QUIZ.value}),
        )
        update = ledger.apply(state, QuizCompletion(correct=1, total=4, points=10), TODAY)

        assert update.state.current_streak == 7
        assert Badge.STREAK_MASTER.value in update.new_badges


class TestReplay:
    """Tests for folding an event log."""

    def test_replay_keeps_invariants(self, ledger):
        """Points never decrease, longest >= current, badges only grow."""
        days = [0, 1, 2, 2, 5, 6, 7, 8, 9, 10, 11, 12, 20]
        start = date(2026, 1, 1)
        events = [
            LedgerEvent(
                QuizCompletion(correct=i % 4, total=3, points=(i % 4) * 10),
                start + timedelta(days=d),
            )
            for i, d in enumerate(days)
        ]

        state = GamificationState()
        for event in events:
            update = ledger.apply(state, event.completion, event.on)
            assert update.state.total_points >= state.total_points
            assert update.state.longest_streak >= update.state.current_streak
            assert state.badges <= update.state.badges
            state = update.state

        assert ledger.replay(events) == state
        assert state.quizzes_completed == len(days)
        assert state.longest_streak == 8

    def test_state_round_trips_through_dict(self):
        state = GamificationState(
            total_points=40, current_streak=2, longest_streak=4,
            last_activity_date=TODAY, badges=frozenset({"First Quiz"}), quizzes_completed=2,
        )
        assert GamificationState.from_dict(state.to_dict()) == state
