"""Tests for study duration recommendations.

LLM providers are mocked and Redis is the in-memory FakeRedis from conftest.
No real API calls are made.
"""

import json
import math
from datetime import date

import httpx
import pytest

from spireworks.schemas.recommendation import (
    DEGRADED_INSIGHT,
    RecommendationInput,
    RecommendationResult,
)
from spireworks.services.recommendation_service import (
    AnthropicProvider,
    HttpRecommendationClient,
    LLMProvider,
    LocalRecommendationClient,
    OpenAIProvider,
    _check_rate_limit,
    calculate_recommended_duration,
    create_provider,
    fallback_insight,
    normalize_recommendation,
    recommend_study_duration,
)
from spireworks.services.study_timer import DailyAggregate
from tests.conftest import FakeRedis

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class MockLLMProvider(LLMProvider):
    """Mock provider that returns preset responses in order."""

    def __init__(self, *responses: str):
        self.responses = list(responses)
        self.calls: list[tuple[str, str]] = []

    async def generate(self, system_prompt: str, user_prompt: str, max_tokens: int = 500) -> str:
        self.calls.append((system_prompt, user_prompt))
        return self.responses.pop(0) if self.responses else ""


class FailingProvider(LLMProvider):
    """Provider that always raises an exception."""

    async def generate(self, system_prompt: str, user_prompt: str, max_tokens: int = 500) -> str:
        raise RuntimeError("LLM API error")


def study_data(hours=0.0, sessions=0, hour=14) -> RecommendationInput:
    return RecommendationInput(
        hours_studied_today=hours,
        completed_session_count=sessions,
        hour_of_day=hour,
    )


class _Settings:
    def __init__(self, provider="", openai_key="", anthropic_key="", model=""):
        self.AI_PROVIDER = provider
        self.OPENAI_API_KEY = openai_key
        self.ANTHROPIC_API_KEY = anthropic_key
        self.AI_MODEL = model


# ---------------------------------------------------------------------------
# Input snapshot
# ---------------------------------------------------------------------------


def test_input_from_aggregate():
    aggregate = DailyAggregate(
        total_study_seconds=3 * 3600, completed_session_count=4, current_streak_days=4
    )

    data = RecommendationInput.from_aggregate(aggregate, hour_of_day=16)

    assert data.hours_studied_today == 3.0
    assert data.average_session_minutes == 45.0
    assert data.fatigue is True
    assert data.model_dump(by_alias=True) == {
        "hoursStudiedToday": 3.0,
        "sessionCount": 4,
        "averageSessionLength": 45.0,
        "timeOfDay": 16,
        "fatigueLevel": True,
    }


def test_input_from_empty_aggregate_uses_default_average():
    data = RecommendationInput.from_aggregate(DailyAggregate(), hour_of_day=8)

    assert data.average_session_minutes == 25.0
    assert data.fatigue is False


# ---------------------------------------------------------------------------
# Rule-based algorithm
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "hours,sessions,hour,expected",
    [
        (0.0, 0, 10, 35),  # fresh start in the morning
        (0.0, 0, 22, 25),  # fresh start late evening
        (1.5, 1, 15, 25),
        (2.5, 2, 21, 15),
        (5.0, 3, 14, 15),
        (1.5, 4, 9, 15),  # many sessions
    ],
)
def test_calculate_recommended_duration(hours, sessions, hour, expected):
    assert calculate_recommended_duration(study_data(hours, sessions, hour)) == expected


def test_fallback_insight_texts():
    assert "studied a lot" in fallback_insight(study_data(hours=4.5), 15)
    assert "30 minutes" in fallback_insight(study_data(hours=0.2), 30)
    assert "Morning" in fallback_insight(study_data(hours=1.5, hour=9), 25)
    assert "Evening" in fallback_insight(study_data(hours=1.5, hour=21), 20)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("raw", [-5, 0, math.nan, math.inf, None, "", "abc", [], True])
def test_normalize_invalid_values_fall_back(raw):
    result = normalize_recommendation(raw)

    assert result.minutes == 25
    assert result.degraded is True
    assert result.insight_text == DEGRADED_INSIGHT


@pytest.mark.parametrize(
    "raw,expected",
    [(1, 5), (5, 5), (30, 30), (60, 60), (61, 60), (1000, 60), (12.5, 13), (12.49, 12)],
)
def test_normalize_clamps_and_rounds(raw, expected):
    result = normalize_recommendation(raw)

    assert result.minutes == expected
    assert result.degraded is False


def test_normalize_mapping_keeps_insight_and_method():
    result = normalize_recommendation(
        {"success": True, "recommendedMinutes": 40, "method": "ai", "insights": "Go!"}
    )

    assert result == RecommendationResult(minutes=40, insight_text="Go!", method="ai")


def test_normalize_passes_results_through():
    original = RecommendationResult(minutes=45, method="ai")
    assert normalize_recommendation(original) is original


# ---------------------------------------------------------------------------
# Provider factory and rate limit
# ---------------------------------------------------------------------------


def test_create_provider():
    assert create_provider(_Settings()) is None
    assert create_provider(_Settings(provider="openai")) is None
    assert isinstance(create_provider(_Settings("openai", openai_key="sk")), OpenAIProvider)

    provider = create_provider(_Settings("anthropic", anthropic_key="ak", model="m"))
    assert isinstance(provider, AnthropicProvider)
    assert provider.model == "m"


@pytest.mark.asyncio
async def test_rate_limit_counts_per_day():
    redis_client = FakeRedis()

    assert await _check_rate_limit(redis_client, "user-1", limit=2)
    assert await _check_rate_limit(redis_client, "user-1", limit=2)
    assert not await _check_rate_limit(redis_client, "user-1", limit=2)

    key = f"ai_rate:user-1:{date.today().isoformat()}"
    assert redis_client._ttls[key] == 86400


# ---------------------------------------------------------------------------
# recommend_study_duration
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_recommend_without_provider_uses_algorithm():
    result = await recommend_study_duration(study_data(hours=0.0, hour=10), None)

    assert result.minutes == 35
    assert result.method == "algorithm"
    assert "35 minutes" in result.insight_text


@pytest.mark.asyncio
async def test_recommend_with_llm():
    provider = MockLLMProvider("I suggest 50 minutes", "Great focus today!")

    result = await recommend_study_duration(study_data(hours=1.5), provider)

    assert result.minutes == 50
    assert result.method == "ai"
    assert result.insight_text == "Great focus today!"
    assert len(provider.calls) == 2
    assert "Hours studied today: 1.5" in provider.calls[0][1]
    assert "Recommended duration: 50 minutes" in provider.calls[1][1]


@pytest.mark.asyncio
@pytest.mark.parametrize("answer,expected", [("90", 60), ("10", 15)])
async def test_recommend_clamps_llm_answer(answer, expected):
    result = await recommend_study_duration(study_data(), MockLLMProvider(answer, "ok"))

    assert result.minutes == expected
    assert result.method == "ai"


@pytest.mark.asyncio
async def test_recommend_unparseable_llm_answer_uses_algorithm():
    result = await recommend_study_duration(
        study_data(hours=5.0), MockLLMProvider("a while")
    )

    assert result.minutes == 15
    assert result.method == "algorithm"


@pytest.mark.asyncio
async def test_recommend_llm_failure_uses_algorithm():
    result = await recommend_study_duration(study_data(hours=4.5), FailingProvider())

    assert result.minutes == 15
    assert result.method == "algorithm"
    assert "studied a lot" in result.insight_text


@pytest.mark.asyncio
async def test_recommend_over_rate_limit_skips_llm():
    redis_client = FakeRedis()
    await redis_client.set(f"ai_rate:user-1:{date.today().isoformat()}", "20")
    provider = MockLLMProvider("50")

    result = await recommend_study_duration(
        study_data(), provider, redis_client, user_key="user-1"
    )

    assert result.method == "algorithm"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_local_client_delegates():
    client = LocalRecommendationClient(MockLLMProvider("45", "Nice"), FakeRedis(), "u")

    result = await client.get_recommended_duration(study_data())

    assert result.minutes == 45
    assert result.method == "ai"


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_http_client_posts_study_data():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"success": True, "recommendedMinutes": 30, "method": "ai", "insights": "Hi"},
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = HttpRecommendationClient("http://recommender/", http_client=http_client)
        raw = await client.get_recommended_duration(study_data(hours=1.0, sessions=2))

    assert seen["path"] == "/ai/recommend-study-duration"
    assert seen["body"]["studyData"]["hoursStudiedToday"] == 1.0
    assert seen["body"]["studyData"]["sessionCount"] == 2
    assert normalize_recommendation(raw).minutes == 30


@pytest.mark.asyncio
async def test_http_client_raises_on_unsuccessful_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "nope"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = HttpRecommendationClient("http://recommender", http_client=http_client)
        with pytest.raises(RuntimeError, match="nope"):
            await client.get_recommended_duration(study_data())


@pytest.mark.asyncio
async def test_http_client_raises_on_server_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "boom"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = HttpRecommendationClient("http://recommender", http_client=http_client)
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_recommended_duration(study_data())


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_recommend_endpoint(client):
    response = await client.post(
        "/ai/recommend-study-duration",
        json={"studyData": {"hoursStudiedToday": 0, "sessionCount": 0, "timeOfDay": 10}},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["recommendedMinutes"] == 35
    assert data["method"] == "algorithm"
    assert data["insights"]


@pytest.mark.asyncio
async def test_recommend_endpoint_requires_study_data(client):
    response = await client.post("/ai/recommend-study-duration", json={})
    assert response.status_code == 400
    assert response.json()["detail"] == "Study data is required"
