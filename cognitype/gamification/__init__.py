"""
Gamification - Points, streaks and badges.
"""

from .ledger import (
    Badge,
    GamificationLedger,
    GamificationState,
    LedgerEvent,
    LedgerUpdate,
    QuizCompletion,
    points_for_answer,
)

__all__ = [
    "Badge",
    "GamificationLedger",
    "GamificationState",
    "LedgerEvent",
    "LedgerUpdate",
    "QuizCompletion",
    "points_for_answer",
]
