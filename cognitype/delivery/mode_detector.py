"""
Realtime Cognitive Mode Detection.

Classifies the learner's current mode on every answer during a quiz:

    fatigue     - over 20 minutes in, and accuracy is low or answers are slowing
    struggling  - at least 2 answers, and accuracy is low or retries pile up
    analytical  - accurate but slow (average over 15s)
    focused     - everything else

The rules form a priority chain: the first match wins. "Accuracy" here is
session-wide (correct / answered so far), 1.0 before the first answer.

ModeMonitor hosts the detector as an explicit state machine: feed it one
AttemptEvent per answer; subscribed listeners are called only when the
mode changes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from loguru import logger

from cognitype.core.numeric import mean, safe_ratio


class CognitiveMode(str, Enum):
    FOCUSED = "focused"
    STRUGGLING = "struggling"
    FATIGUE = "fatigue"
    ANALYTICAL = "analytical"


@dataclass(frozen=True)
class ModeDescription:
    label: str
    description: str


MODE_DESCRIPTIONS: dict[CognitiveMode, ModeDescription] = {
    CognitiveMode.FOCUSED: ModeDescription("Focused Mode", "You're in the zone!"),
    CognitiveMode.STRUGGLING: ModeDescription("Struggling Mode", "Take a breath, you've got this"),
    CognitiveMode.FATIGUE: ModeDescription("Fatigue Mode", "Consider taking a break"),
    CognitiveMode.ANALYTICAL: ModeDescription("Analytical Mode", "Deep thinking detected"),
}


@dataclass(frozen=True)
class ModeRules:
    """Thresholds of the priority chain."""

    fatigue_minutes: float = 20.0
    fatigue_accuracy: float = 0.5
    slowdown_factor: float = 1.5
    recent_window: int = 3
    struggling_min_answers: int = 2
    struggling_accuracy: float = 0.4
    analytical_accuracy: float = 0.7
    analytical_avg_ms: float = 15000.0


DEFAULT_RULES = ModeRules()


def detect_mode(
    response_times_ms: Sequence[int],
    retries: int,
    correct_count: int,
    total_count: int,
    session_minutes: float,
    rules: ModeRules = DEFAULT_RULES,
) -> CognitiveMode:
    """
    Classify the current mode.

    Args:
        response_times_ms: Response times so far, in answer order
        retries: Total retries so far
        correct_count: Correct answers so far
        total_count: Answers so far
        session_minutes: Minutes since the session started

    Returns:
        CognitiveMode
    """
    accuracy = correct_count / total_count if total_count > 0 else 1.0
    avg_ms = mean(response_times_ms)
    recent_avg_ms = mean(response_times_ms[-rules.recent_window:])

    if session_minutes > rules.fatigue_minutes and (
        accuracy < rules.fatigue_accuracy or recent_avg_ms > avg_ms * rules.slowdown_factor
    ):
        return CognitiveMode.FATIGUE

    if total_count >= rules.struggling_min_answers and (
        accuracy < rules.struggling_accuracy or retries > total_count
    ):
        return CognitiveMode.STRUGGLING

    if accuracy >= rules.analytical_accuracy and avg_ms > rules.analytical_avg_ms:
        return CognitiveMode.ANALYTICAL

    return CognitiveMode.FOCUSED


# =============================================================================
# Mode Monitor
# =============================================================================


@dataclass(frozen=True)
class AttemptEvent:
    """One answer during the active session."""

    response_time_ms: int
    is_correct: bool
    retries: int = 0


@dataclass(frozen=True)
class ModeState:
    """Snapshot after an attempt."""

    mode: CognitiveMode
    previous_mode: CognitiveMode
    total_count: int
    correct_count: int
    retries: int
    session_minutes: float

    @property
    def changed(self) -> bool:
        return self.mode != self.previous_mode

    @property
    def accuracy(self) -> float:
        return safe_ratio(self.correct_count, self.total_count) if self.total_count else 1.0

    @property
    def description(self) -> ModeDescription:
        return MODE_DESCRIPTIONS[self.mode]


ModeListener = Callable[[ModeState], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ModeMonitor:
    """
    Rolling state for one active session.

    Synchronous and I/O free. The clock is injectable so sessions can be
    replayed deterministically.
    """

    started_at: datetime | None = None
    clock: Callable[[], datetime] = _utcnow
    rules: ModeRules = DEFAULT_RULES
    mode: CognitiveMode = CognitiveMode.FOCUSED
    response_times_ms: list[int] = field(default_factory=list)
    retries: int = 0
    correct_count: int = 0
    total_count: int = 0
    _listeners: list[ModeListener] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if self.started_at is None:
            self.started_at = self.clock()

    def subscribe(self, listener: ModeListener) -> Callable[[], None]:
        """Register a mode-change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    @property
    def session_minutes(self) -> float:
        return (self.clock() - self.started_at).total_seconds() / 60

    def on_attempt(self, event: AttemptEvent) -> ModeState:
        """Record one answer, re-evaluate, and notify on a mode change."""
        if event.response_time_ms < 0 or event.retries < 0:
            raise ValueError("response_time_ms and retries must be >= 0")

        self.response_times_ms.append(event.response_time_ms)
        self.retries += event.retries
        self.total_count += 1
        if event.is_correct:
            self.correct_count += 1

        minutes = self.session_minutes
        previous = self.mode
        self.mode = detect_mode(
            self.response_times_ms,
            self.retries,
            self.correct_count,
            self.total_count,
            minutes,
            self.rules,
        )

        state = ModeState(
            mode=self.mode,
            previous_mode=previous,
            total_count=self.total_count,
            correct_count=self.correct_count,
            retries=self.retries,
            session_minutes=minutes,
        )
        if state.changed:
            logger.debug(f"Mode change: {previous.value} -> {self.mode.value}")
            for listener in list(self._listeners):
                listener(state)
        return state
