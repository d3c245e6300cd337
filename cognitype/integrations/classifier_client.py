"""
External cognitive classifier client.

The classifier is a black box behind an OpenAI-compatible chat completions
gateway. Each call forces a single tool call so the answer comes back as
structured JSON, which is validated into pydantic models:

- classify(payload) -> Classification     (analyze_intelligence tool)
- predict(payload)  -> ShadowPrediction   (predict_behavior tool)

One HTTP attempt per call. Failures are raised as ExternalClassifierError
subclasses so callers can tell rate limiting from exhausted credits from
everything else.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Protocol, get_args

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cognitype.config import Settings, get_settings
from cognitype.core.exceptions import (
    ClassifierQuotaExhaustedError,
    ClassifierRateLimitedError,
    ExternalClassifierError,
    MalformedClassifierResponseError,
)

CognitiveType = Literal[
    "Fast & Accurate Learner",
    "Fast but Careless Learner",
    "Slow but Accurate Learner",
    "Trial-and-Error Learner",
    "Concept Gap Learner",
    "High Cognitive Load Learner",
    "Inconsistent Performer",
    "Struggling Retention Learner",
]
CpiLabel = Literal["Highly Predictable", "Predictable", "Moderate", "Unpredictable", "Highly Unpredictable"]
EventType = Literal["breakthrough", "stress", "shift", "fatigue"]

COGNITIVE_TYPES: tuple[str, ...] = get_args(CognitiveType)
CPI_LABELS: tuple[str, ...] = get_args(CpiLabel)
EVENT_TYPES: tuple[str, ...] = get_args(EventType)


# ========================================
# Response Models
# ========================================


class MisconceptionCluster(BaseModel):
    """A recurring wrong-answer pattern."""

    model_config = ConfigDict(extra="ignore")

    type: str
    description: str
    frequency: int | None = Field(None, ge=1)


class EnergyAnalysis(BaseModel):
    """Classifier scheduling advice."""

    model_config = ConfigDict(extra="ignore")

    optimal_study_time: str
    recommended_session_duration_minutes: int = Field(..., ge=0)
    fatigue_warning: str | None = None
    accuracy_decay_rate: float | None = None


class DetectedEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_type: EventType
    description: str


class Classification(BaseModel):
    """Full cognitive intelligence result for one user."""

    model_config = ConfigDict(extra="ignore")

    cognitive_type: CognitiveType
    confidence_score: float = Field(..., ge=0, le=1)
    reasoning: str
    recommended_difficulty: int = Field(..., ge=1, le=5)
    practice_type: str
    time_limit_mode: str = "untimed"
    learning_strategy_summary: str
    cognitive_predictability_index: float = Field(..., ge=0, le=100)
    cpi_label: CpiLabel
    drift_detected: bool
    drift_description: str | None = None
    misconception_clusters: list[MisconceptionCluster] = Field(default_factory=list)
    energy_analysis: EnergyAnalysis
    behavioral_signature: str
    detected_events: list[DetectedEvent] = Field(default_factory=list)

    @field_validator("time_limit_mode", mode="before")
    @classmethod
    def _default_time_limit_mode(cls, value: Any) -> Any:
        return value or "untimed"


class ShadowPrediction(BaseModel):
    """Best-effort forecast for the next question."""

    model_config = ConfigDict(extra="ignore")

    predicted_response_time_ms: int = Field(..., ge=0)
    predicted_retry_probability: float = Field(..., ge=0, le=1)
    predicted_error_probability: float = Field(..., ge=0, le=1)
    predicted_mistake_type: str
    predicted_hesitation_risk: float = Field(..., ge=0, le=1)
    confidence_instability: float = Field(..., ge=0, le=1)


# ========================================
# Tool Schemas
# ========================================

ANALYZE_TOOL = {
    "type": "function",
    "function": {
        "name": "analyze_intelligence",
        "description": "Complete cognitive intelligence analysis",
        "parameters": {
            "type": "object",
            "properties": {
                "cognitive_type": {"type": "string", "enum": list(COGNITIVE_TYPES)},
                "confidence_score": {"type": "number"},
                "reasoning": {"type": "string"},
                "recommended_difficulty": {"type": "integer", "minimum": 1, "maximum": 5},
                "practice_type": {"type": "string"},
                "time_limit_mode": {"type": "string"},
                "learning_strategy_summary": {"type": "string"},
                "cognitive_predictability_index": {"type": "number", "description": "0-100 CPI score"},
                "cpi_label": {"type": "string", "enum": list(CPI_LABELS)},
                "drift_detected": {"type": "boolean"},
                "drift_description": {"type": "string"},
                "misconception_clusters": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string"},
                            "description": {"type": "string"},
                            "frequency": {"type": "integer"},
                        },
                        "required": ["type", "description"],
                        "additionalProperties": False,
                    },
                },
                "energy_analysis": {
                    "type": "object",
                    "properties": {
                        "optimal_study_time": {"type": "string"},
                        "recommended_session_duration_minutes": {"type": "integer"},
                        "fatigue_warning": {"type": "string"},
                        "accuracy_decay_rate": {"type": "number"},
                    },
                    "required": ["optimal_study_time", "recommended_session_duration_minutes"],
                    "additionalProperties": False,
                },
                "behavioral_signature": {"type": "string"},
                "detected_events": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "event_type": {"type": "string", "enum": list(EVENT_TYPES)},
                            "description": {"type": "string"},
                        },
                        "required": ["event_type", "description"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": [
                "cognitive_type",
                "confidence_score",
                "reasoning",
                "recommended_difficulty",
                "practice_type",
                "learning_strategy_summary",
                "cognitive_predictability_index",
                "cpi_label",
                "drift_detected",
                "misconception_clusters",
                "energy_analysis",
                "behavioral_signature",
                "detected_events",
            ],
            "additionalProperties": False,
        },
    },
}

PREDICT_TOOL = {
    "type": "function",
    "function": {
        "name": "predict_behavior",
        "description": "Predict student behavior for the upcoming question",
        "parameters": {
            "type": "object",
            "properties": {
                "predicted_response_time_ms": {"type": "integer", "description": "Expected response time in milliseconds"},
                "predicted_retry_probability": {"type": "number", "description": "Probability of retry (0-1)"},
                "predicted_error_probability": {"type": "number", "description": "Probability of error (0-1)"},
                "predicted_mistake_type": {"type": "string", "description": "Most likely type of mistake"},
                "predicted_hesitation_risk": {"type": "number", "description": "Hesitation risk (0-1)"},
                "confidence_instability": {"type": "number", "description": "Confidence instability score (0-1)"},
            },
            "required": [
                "predicted_response_time_ms",
                "predicted_retry_probability",
                "predicted_error_probability",
                "predicted_mistake_type",
                "predicted_hesitation_risk",
                "confidence_instability",
            ],
            "additionalProperties": False,
        },
    },
}

ANALYZE_SYSTEM_PROMPT = (
    "You are a cognitive behavior intelligence engine. Based strictly on the structured "
    "behavioral metrics and historical cognitive profile, classify the cognitive type, "
    "detect drift, score predictability, identify misconception clusters, evaluate the "
    "energy pattern, detect breakthrough or stress events and summarise the behavioral "
    "signature. Return structured JSON only via the analyze_intelligence tool."
)

PREDICT_SYSTEM_PROMPT = (
    "You are a cognitive behavior prediction engine. Based on the student's behavioral "
    "profile, predict how they will perform on the next question. You must respond "
    "using the predict_behavior tool."
)


# ========================================
# Client
# ========================================


class Classifier(Protocol):
    """What the pipeline needs from a classifier."""

    async def classify(self, payload: dict[str, Any]) -> Classification: ...

    async def predict(self, payload: dict[str, Any]) -> ShadowPrediction: ...


class GatewayClassifier:
    """HTTP client for the AI gateway."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        model: str,
        timeout_seconds: float = 60.0,
    ):
        """
        Initialize gateway client.

        Args:
            api_url: Chat completions endpoint
            api_key: Bearer token
            model: Model name sent with each request
            timeout_seconds: Timeout for a single call
        """
        self.api_url = api_url
        self.model = model
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> GatewayClassifier:
        settings = settings or get_settings()
        return cls(
            api_url=settings.ai_gateway_url,
            api_key=settings.ai_gateway_api_key,
            model=settings.ai_model,
            timeout_seconds=settings.ai_timeout_seconds,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> GatewayClassifier:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def classify(self, payload: dict[str, Any]) -> Classification:
        """
        Classify a learner from the feature payload.

        Args:
            payload: {"featureVector": ..., "cognitiveHistorySummary": [...]}

        Returns:
            Validated Classification

        Raises:
            ExternalClassifierError: On any gateway or validation failure
        """
        user_content = (
            "Analyze this student's complete behavioral profile:\n"
            f"{json.dumps(payload.get('featureVector', {}), indent=2)}\n\n"
            "Cognitive history:\n"
            f"{json.dumps(payload.get('cognitiveHistorySummary', []), indent=2)}"
        )
        arguments = await self._call_tool(ANALYZE_SYSTEM_PROMPT, user_content, ANALYZE_TOOL)
        return self._validate(Classification, arguments)

    async def predict(self, payload: dict[str, Any]) -> ShadowPrediction:
        """
        Forecast behavior on an upcoming question.

        Args:
            payload: {"featureVector": ..., "upcomingQuestion": {topic_id, difficulty_level, has_hint}}
        """
        question = payload.get("upcomingQuestion", {})
        user_content = (
            "Student behavioral profile:\n"
            f"{json.dumps(payload.get('featureVector', {}), indent=2)}\n\n"
            "Upcoming question:\n"
            f"Topic: {question.get('topic_id')}\n"
            f"Difficulty: {question.get('difficulty_level')}/5\n"
            f"Has hint: {bool(question.get('has_hint'))}"
        )
        arguments = await self._call_tool(PREDICT_SYSTEM_PROMPT, user_content, PREDICT_TOOL)
        return self._validate(ShadowPrediction, arguments)

    async def _call_tool(
        self,
        system_prompt: str,
        user_content: str,
        tool: dict[str, Any],
    ) -> dict[str, Any]:
        """POST one forced tool call and return its parsed arguments."""
        tool_name = tool["function"]["name"]
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "tools": [tool],
            "tool_choice": {"type": "function", "function": {"name": tool_name}},
        }

        try:
            response = await self.client.post(self.api_url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"AI gateway error on {tool_name}: {status} {e.response.text[:200]}")
            if status == 429:
                raise ClassifierRateLimitedError(
                    "Rate limited, please try again later.", status_code=status
                ) from e
            if status == 402:
                raise ClassifierQuotaExhaustedError("AI credits exhausted.", status_code=status) from e
            raise ExternalClassifierError(f"AI error: {status}", status_code=status) from e
        except httpx.RequestError as e:
            logger.error(f"AI gateway request error on {tool_name}: {e}")
            raise ExternalClassifierError(f"AI gateway unreachable: {e}") from e

        try:
            data = response.json()
            tool_call = data["choices"][0]["message"]["tool_calls"][0]
            arguments = tool_call["function"]["arguments"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedClassifierResponseError(
                "No tool call in AI response", status_code=response.status_code
            ) from e

        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except ValueError as e:
                raise MalformedClassifierResponseError(
                    f"Tool call arguments are not valid JSON: {e}",
                    status_code=response.status_code,
                ) from e
        if not isinstance(arguments, dict):
            raise MalformedClassifierResponseError(
                "Tool call arguments must be a JSON object", status_code=response.status_code
            )

        logger.debug(f"AI gateway answered {tool_name}")
        return arguments

    @staticmethod
    def _validate(model: type[BaseModel], arguments: dict[str, Any]):
        try:
            return model.model_validate(arguments)
        except ValidationError as e:
            logger.error(f"Classifier answer failed validation: {e.error_count()} errors")
            raise MalformedClassifierResponseError(
                f"Classifier answer does not match {model.__name__}: {e}"
            ) from e
