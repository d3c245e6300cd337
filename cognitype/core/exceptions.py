"""
Domain exceptions for the cognitype pipeline.

Three failure families reach callers:
- InsufficientDataError: window below the minimum size (not fatal)
- ExternalClassifierError: the AI gateway failed or answered garbage
- PersistenceConflictError: an optimistic version check lost a race
"""

from __future__ import annotations


class CognitypeError(Exception):
    """Base class for all cognitype errors."""


class InsufficientDataError(CognitypeError):
    """Raised when the attempt window is too small to analyse."""

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(
            f"Not enough data for analysis: {available} attempts, need {required}"
        )


class ExternalClassifierError(CognitypeError):
    """Raised when the external classifier call fails."""

    kind = "generic"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ClassifierRateLimitedError(ExternalClassifierError):
    """Gateway answered 429."""

    kind = "rate_limited"


class ClassifierQuotaExhaustedError(ExternalClassifierError):
    """Gateway answered 402 (credits exhausted)."""

    kind = "quota_exhausted"


class MalformedClassifierResponseError(ExternalClassifierError):
    """Gateway answered 2xx but without a usable tool call payload."""

    kind = "malformed"


class PersistenceConflictError(CognitypeError):
    """Raised when an upserted row changed between read and write."""

    def __init__(self, table: str, user_id: str):
        self.table = table
        self.user_id = user_id
        super().__init__(f"Concurrent update on {table} for user {user_id}")
