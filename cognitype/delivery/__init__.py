"""
Delivery - Live, in-session feedback.

Components:
- detect_mode: priority-chain classifier of the current cognitive mode
- ModeMonitor: per-session state machine that notifies on mode changes
"""

from .mode_detector import (
    MODE_DESCRIPTIONS,
    AttemptEvent,
    CognitiveMode,
    ModeMonitor,
    ModeRules,
    ModeState,
    detect_mode,
)

__all__ = [
    "CognitiveMode",
    "MODE_DESCRIPTIONS",
    "ModeRules",
    "detect_mode",
    "AttemptEvent",
    "ModeState",
    "ModeMonitor",
]
