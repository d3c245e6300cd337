"""
Feature Flags - Optional pipeline stages.

Each flag can be overridden with COGNITYPE_<FLAG>=1/0 in the environment.
"""
from dataclasses import dataclass, fields
import os

ENV_PREFIX = "COGNITYPE_"


@dataclass
class FeatureFlags:
    SHADOW_PREDICTION: bool = True   # Best-effort pre-question forecast
    ENERGY_ANALYSIS: bool = True     # Hour-of-day curve + fatigue points
    TOPIC_PERFORMANCE: bool = True   # Per-topic rollup upsert

    def __post_init__(self):
        for flag in fields(self):
            env_val = os.environ.get(f"{ENV_PREFIX}{flag.name}")
            if env_val is not None:
                setattr(self, flag.name, env_val.lower() in ("1", "true", "yes", "on"))

    def is_enabled(self, flag_name: str) -> bool:
        return getattr(self, flag_name, False)

    def as_dict(self) -> dict[str, bool]:
        return {flag.name: getattr(self, flag.name) for flag in fields(self)}


_flags = FeatureFlags()


def get_flags() -> FeatureFlags:
    return _flags
