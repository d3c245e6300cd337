"""
Gamification Ledger.

A pure reducer over quiz-completion events. Each completion:

1. Adds the quiz's answer points (+10 per correct, +5 more with no retries)
2. Adds +20 for a perfect quiz (every question correct, at least one)
3. Updates the daily streak (+15 when yesterday's streak continues)
4. Awards badges, each at most once

Invariants: total_points never decreases, longest_streak >= current_streak,
badges only grow.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Any

from loguru import logger

POINTS_PER_CORRECT = 10
NO_RETRY_BONUS = 5
PERFECT_QUIZ_BONUS = 20
STREAK_BONUS = 15
STREAK_MASTER_DAYS = 7
TOPIC_EXPLORER_QUIZZES = 5


class Badge(str, Enum):
    FIRST_QUIZ = "First Quiz"
    PERFECT_SCORE = "Perfect Score"
    STREAK_MASTER = "Streak Master"
    TOPIC_EXPLORER = "Topic Explorer"


def points_for_answer(is_correct: bool, retries: int = 0) -> int:
    """Points earned by one answer during a quiz."""
    if retries < 0:
        raise ValueError("retries must be >= 0")
    if not is_correct:
        return 0
    return POINTS_PER_CORRECT + (NO_RETRY_BONUS if retries == 0 else 0)


@dataclass(frozen=True)
class QuizCompletion:
    """Final tallies of one finished quiz."""

    correct: int
    total: int
    points: int

    def __post_init__(self):
        if self.correct < 0 or self.total < 0:
            raise ValueError("Quiz counts must be >= 0")
        if self.correct > self.total:
            raise ValueError(f"correct ({self.correct}) cannot exceed total ({self.total})")
        if self.points < 0:
            raise ValueError("Quiz points must be >= 0")

    @property
    def is_perfect(self) -> bool:
        return self.total > 0 and self.correct == self.total


@dataclass(frozen=True)
class GamificationState:
    """One row per user, upserted."""

    total_points: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
    badges: frozenset[str] = frozenset()
    quizzes_completed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_points": self.total_points,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_activity_date": self.last_activity_date.isoformat() if self.last_activity_date else None,
            "badges": sorted(self.badges),
            "quizzes_completed": self.quizzes_completed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GamificationState:
        last = data.get("last_activity_date")
        if isinstance(last, str):
            last = date.fromisoformat(last)
        return cls(
            total_points=int(data.get("total_points") or 0),
            current_streak=int(data.get("current_streak") or 0),
            longest_streak=int(data.get("longest_streak") or 0),
            last_activity_date=last,
            badges=frozenset(data.get("badges") or ()),
            quizzes_completed=int(data.get("quizzes_completed") or 0),
        )


@dataclass(frozen=True)
class LedgerUpdate:
    """Result of applying one completion."""

    state: GamificationState
    points_awarded: int
    new_badges: tuple[str, ...] = ()
    perfect_bonus: int = 0
    streak_bonus: int = 0


@dataclass(frozen=True)
class LedgerEvent:
    """A completion and the calendar day it happened on."""

    completion: QuizCompletion
    on: date


@dataclass
class GamificationLedger:
    """Applies quiz completions to a GamificationState."""

    streak_master_days: int = STREAK_MASTER_DAYS
    topic_explorer_quizzes: int = TOPIC_EXPLORER_QUIZZES
    _badge_rules: tuple = field(init=False, repr=False)

    def __post_init__(self):
        self._badge_rules = (
            (Badge.FIRST_QUIZ, lambda s, c: s.quizzes_completed == 1),
            (Badge.PERFECT_SCORE, lambda s, c: c.is_perfect),
            (Badge.STREAK_MASTER, lambda s, c: s.current_streak >= self.streak_master_days),
            (Badge.TOPIC_EXPLORER, lambda s, c: s.quizzes_completed >= self.topic_explorer_quizzes),
        )

    @staticmethod
    def next_streak(state: GamificationState, today: date) -> tuple[int, int]:
        """
        Return (new streak, streak bonus) for activity on `today`.

        A completion dated before the last activity (clock or zone skew)
        counts as same-day activity.
        """
        last = state.last_activity_date
        if last is not None and today <= last:
            return state.current_streak, 0
        if last == today - timedelta(days=1):
            streak = state.current_streak + 1
            return streak, STREAK_BONUS if streak > 1 else 0
        return 1, 0

    def apply(
        self,
        state: GamificationState,
        completion: QuizCompletion,
        today: date,
    ) -> LedgerUpdate:
        """
        Apply one quiz completion.

        Args:
            state: Current state (use GamificationState() for a new user)
            completion: Final tallies of the quiz
            today: Calendar day of the completion

        Returns:
            LedgerUpdate with the next state and what was awarded
        """
        perfect_bonus = PERFECT_QUIZ_BONUS if completion.is_perfect else 0
        streak, streak_bonus = self.next_streak(state, today)
        points_awarded = completion.points + perfect_bonus + streak_bonus

        next_state = replace(
            state,
            total_points=state.total_points + points_awarded,
            current_streak=streak,
            longest_streak=max(state.longest_streak, streak),
            last_activity_date=max(today, state.last_activity_date or today),
            quizzes_completed=state.quizzes_completed + 1,
        )

        new_badges = tuple(
            badge.value
            for badge, earned in self._badge_rules
            if badge.value not in state.badges and earned(next_state, completion)
        )
        if new_badges:
            next_state = replace(next_state, badges=state.badges | frozenset(new_badges))
            logger.info(f"Badges earned: {', '.join(new_badges)}")

        return LedgerUpdate(
            state=next_state,
            points_awarded=points_awarded,
            new_badges=new_badges,
            perfect_bonus=perfect_bonus,
            streak_bonus=streak_bonus,
        )

    def replay(
        self,
        events: Iterable[LedgerEvent],
        initial: GamificationState | None = None,
    ) -> GamificationState:
        """Fold an ordered event log into a state."""
        state = initial or GamificationState()
        for event in events:
            state = self.apply(state, event.completion, event.on).state
        return state
