"""
Unit tests for the AI gateway classifier client.

HTTP is mocked at the httpx.AsyncClient.post level.
"""

import json
from typing import get_args

import httpx
import pytest
from httpx import Request, Response

from cognitype.core.exceptions import (
    ClassifierQuotaExhaustedError,
    ClassifierRateLimitedError,
    ExternalClassifierError,
    MalformedClassifierResponseError,
)
from cognitype.integrations.classifier_client import (
    ANALYZE_TOOL,
    COGNITIVE_TYPES,
    Classification,
    CognitiveType,
    CpiLabel,
    EventType,
    GatewayClassifier,
)

API_URL = "https://gateway.test/v1/chat/completions"


def tool_response(arguments, status=200):
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    body = {
        "choices": [
            {"message": {"tool_calls": [{"function": {"name": "tool", "arguments": arguments}}]}}
        ]
    }
    return Response(status, json=body, request=Request("POST", API_URL))


def mock_post_returning(response, captured=None):
    async def mock_post(url, json=None, **kwargs):
        if captured is not None:
            captured.append(json)
        return response

    return mock_post


@pytest.fixture
def client():
    return GatewayClassifier(api_url=API_URL, api_key="test-key", model="test-model")


class TestSchemas:
    """Tests for tool schema enums."""

    def test_enums_match_response_models(self):
        properties = ANALYZE_TOOL["function"]["parameters"]["properties"]
        event_item = properties["detected_events"]["items"]["properties"]

        assert len(COGNITIVE_TYPES) == 8
        assert properties["cognitive_type"]["enum"] == list(get_args(CognitiveType))
        assert properties["cpi_label"]["enum"] == list(get_args(CpiLabel))
        assert event_item["event_type"]["enum"] == list(get_args(EventType))


class TestClassify:
    """Tests for the analyze_intelligence call."""

    @pytest.mark.asyncio
    async def test_success(self, client, monkeypatch, classification_payload):
        """Test a valid tool call is parsed into a Classification."""
        captured = []
        monkeypatch.setattr(client.client, "post", mock_post_returning(tool_response(classification_payload), captured))

        result = await client.classify({"featureVector": {"overall_accuracy": 0.6}, "cognitiveHistorySummary": []})

        assert isinstance(result, Classification)
        assert result.cognitive_type == "Trial-and-Error Learner"
        assert result.misconception_clusters[1].frequency is None
        assert result.energy_analysis.recommended_session_duration_minutes == 25
        assert captured[0]["tool_choice"]["function"]["name"] == "analyze_intelligence"
        assert captured[0]["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_time_limit_mode_defaults_to_untimed(self, client, monkeypatch, classification_payload):
        classification_payload["time_limit_mode"] = ""
        monkeypatch.setattr(client.client, "post", mock_post_returning(tool_response(classification_payload)))

        result = await client.classify({})

        assert result.time_limit_mode == "untimed"

    @pytest.mark.asyncio
    async def test_rate_limited(self, client, monkeypatch):
        response = Response(429, text="slow down", request=Request("POST", API_URL))
        monkeypatch.setattr(client.client, "post", mock_post_returning(response))

        with pytest.raises(ClassifierRateLimitedError) as exc:
            await client.classify({})

        assert exc.value.kind == "rate_limited"
        assert str(exc.value) == "Rate limited, please try again later."

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, client, monkeypatch):
        response = Response(402, text="pay up", request=Request("POST", API_URL))
        monkeypatch.setattr(client.client, "post", mock_post_returning(response))

        with pytest.raises(ClassifierQuotaExhaustedError) as exc:
            await client.classify({})

        assert str(exc.value) == "AI credits exhausted."

    @pytest.mark.asyncio
    async def test_server_error(self, client, monkeypatch):
        response = Response(500, text="boom", request=Request("POST", API_URL))
        monkeypatch.setattr(client.client, "post", mock_post_returning(response))

        with pytest.raises(ExternalClassifierError) as exc:
            await client.classify({})

        assert exc.value.kind == "generic"
        assert exc.value.status_code == 500
        assert str(exc.value) == "AI error: 500"

    @pytest.mark.asyncio
    async def test_unreachable(self, client, monkeypatch):
        async def mock_post(url, json=None, **kwargs):
            raise httpx.ConnectError("connection refused", request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(ExternalClassifierError):
            await client.classify({})

    @pytest.mark.asyncio
    async def test_missing_tool_call(self, client, monkeypatch):
        response = Response(200, json={"choices": [{"message": {"content": "hi"}}]}, request=Request("POST", API_URL))
        monkeypatch.setattr(client.client, "post", mock_post_returning(response))

        with pytest.raises(MalformedClassifierResponseError, match="No tool call"):
            await client.classify({})

    @pytest.mark.asyncio
    async def test_arguments_not_json(self, client, monkeypatch):
        monkeypatch.setattr(client.client, "post", mock_post_returning(tool_response("{not json")))

        with pytest.raises(MalformedClassifierResponseError):
            await client.classify({})

    @pytest.mark.asyncio
    async def test_schema_violation(self, client, monkeypatch, classification_payload):
        """Test an unknown cognitive type is rejected."""
        classification_payload["cognitive_type"] = "Wizard"
        monkeypatch.setattr(client.client, "post", mock_post_returning(tool_response(classification_payload)))

        with pytest.raises(MalformedClassifierResponseError):
            await client.classify({})


class TestPredict:
    """Tests for the predict_behavior call."""

    @pytest.mark.asyncio
    async def test_success(self, client, monkeypatch, prediction_payload):
        captured = []
        monkeypatch.setattr(client.client, "post", mock_post_returning(tool_response(prediction_payload), captured))

        result = await client.predict({
            "featureVector": {},
            "upcomingQuestion": {"topic_id": "topic-a", "difficulty_level": 3, "has_hint": True},
        })

        assert result.predicted_response_time_ms == 8000
        assert result.predicted_mistake_type == "careless"
        assert "Difficulty: 3/5" in captured[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_probability_out_of_range(self, client, monkeypatch, prediction_payload):
        prediction_payload["predicted_error_probability"] = 1.5
        monkeypatch.setattr(client.client, "post", mock_post_returning(tool_response(prediction_payload)))

        with pytest.raises(MalformedClassifierResponseError):
            await client.predict({})
