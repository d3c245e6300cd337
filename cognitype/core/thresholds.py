"""
Injected analysis thresholds.

Every tunable the analysers use lives on AnalysisThresholds so callers can
pass admin-configured values instead of relying on module constants.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from loguru import logger

from cognitype.config import Settings

# Admin-settable keys (system_settings table) -> AnalysisThresholds field
ADMIN_SETTING_KEYS = {
    "risk_threshold": "risk_threshold",
    "drift_sensitivity": "drift_sensitivity",
    "breakthrough_threshold": "breakthrough_threshold",
    "session_fatigue_threshold": "session_fatigue_threshold",
}

_PROBABILITY_FIELDS = {"risk_threshold", "breakthrough_threshold", "session_fatigue_threshold"}


@dataclass(frozen=True)
class AnalysisThresholds:
    """Tunables for feature extraction, stability scoring and energy analysis."""

    # Windows
    attempt_window: int = 300
    session_window: int = 50
    min_attempts: int = 3
    min_attempts_for_bursts: int = 5

    # Feature extraction
    weak_topic_threshold: float = 0.5
    hesitation_multiplier: float = 2.0

    # Stability index
    drift_sensitivity: float = 15.0
    consistency_weight: float = 50.0
    variance_penalty: float = 20.0
    variance_limit: float = 50000.0
    stable_cutoff: float = 75.0
    moderate_cutoff: float = 45.0

    # Energy / fatigue
    session_fatigue_threshold: float = 0.15
    fatigue_session_count: int = 10
    fatigue_min_attempts: int = 4

    # Alerts
    risk_threshold: float = 0.40
    breakthrough_threshold: float = 0.6

    @classmethod
    def from_settings(cls, settings: Settings) -> AnalysisThresholds:
        """Build thresholds from application settings."""
        return cls(
            attempt_window=settings.attempt_window,
            session_window=settings.session_window,
            weak_topic_threshold=settings.weak_topic_threshold,
            drift_sensitivity=settings.drift_sensitivity,
            consistency_weight=settings.consistency_weight,
            variance_penalty=settings.variance_penalty,
            variance_limit=settings.variance_limit,
            stable_cutoff=settings.stable_cutoff,
            moderate_cutoff=settings.moderate_cutoff,
            session_fatigue_threshold=settings.session_fatigue_threshold,
            risk_threshold=settings.risk_threshold,
            breakthrough_threshold=settings.breakthrough_threshold,
        )

    def with_overrides(self, system_settings: Mapping[str, Any]) -> AnalysisThresholds:
        """
        Apply admin overrides from the system_settings table.

        Args:
            system_settings: setting_key -> setting_value mapping. Unknown keys
                are ignored. risk_threshold may be given in percent (40).

        Returns:
            A new AnalysisThresholds instance

        Raises:
            ValueError: If a known key carries a non-numeric or out-of-range value
        """
        changes: dict[str, float] = {}
        for key, value in system_settings.items():
            field_name = ADMIN_SETTING_KEYS.get(key)
            if field_name is None:
                continue
            if isinstance(value, bool):
                raise ValueError(f"Setting {key} must be numeric, got {value!r}")
            try:
                number = float(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Setting {key} must be numeric, got {value!r}") from e

            if key == "risk_threshold" and number > 1:
                number = number / 100
            if field_name in _PROBABILITY_FIELDS and not 0 <= number <= 1:
                raise ValueError(f"Setting {key} must be within 0-1, got {value!r}")
            if number < 0:
                raise ValueError(f"Setting {key} must be non-negative, got {value!r}")
            changes[field_name] = number

        if changes:
            logger.debug(f"Applying threshold overrides: {changes}")
        return replace(self, **changes)
