"""Study duration recommendations with provider-agnostic LLM integration.

Suggests how long the next study session should be from today's study
aggregates. Uses a pluggable LLM provider (OpenAI, Anthropic) when one is
configured and within the daily rate limit, and a rule-based algorithm
otherwise. Whatever a recommender returns is normalized into a single
``RecommendationResult`` by ``normalize_recommendation`` before the timer
sees it.
"""

import logging
import math
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date

import httpx

from spireworks.config import settings
from spireworks.schemas.recommendation import (
    DEFAULT_STUDY_MINUTES,
    MAX_STUDY_MINUTES,
    MIN_STUDY_MINUTES,
    RecommendationInput,
    RecommendationResult,
)

logger = logging.getLogger(__name__)

# LLM answers are held to a narrower band than the timer accepts
AI_MIN_MINUTES = 15
AI_MAX_MINUTES = 60


# ---------------------------------------------------------------------------
# LLM Provider Abstraction
# ---------------------------------------------------------------------------


class LLMProvider(ABC):
    """Abstract base for LLM providers."""

    @abstractmethod
    async def generate(
        self, system_prompt: str, user_prompt: str, max_tokens: int = 500
    ) -> str:
        """Generate a response from the LLM."""
        ...


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible provider (GPT-4o-mini default)."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        self.api_key = api_key
        self.model = model

    async def generate(
        self, system_prompt: str, user_prompt: str, max_tokens: int = 500
    ) -> str:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=self.api_key)
        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens,
            temperature=0.7,
        )
        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProvider):
    """Anthropic-compatible provider (Claude Sonnet default)."""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-6"):
        self.api_key = api_key
        self.model = model

    async def generate(
        self, system_prompt: str, user_prompt: str, max_tokens: int = 500
    ) -> str:
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic(api_key=self.api_key)
        response = await client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        return response.content[0].text


def create_provider(settings) -> LLMProvider | None:
    """Factory: create the configured LLM provider, or None if unconfigured."""
    if settings.AI_PROVIDER == "openai" and settings.OPENAI_API_KEY:
        return OpenAIProvider(
            settings.OPENAI_API_KEY,
            settings.AI_MODEL or "gpt-4o-mini",
        )
    elif settings.AI_PROVIDER == "anthropic" and settings.ANTHROPIC_API_KEY:
        return AnthropicProvider(
            settings.ANTHROPIC_API_KEY,
            settings.AI_MODEL or "claude-sonnet-4-6",
        )
    return None


# ---------------------------------------------------------------------------
# Prompt Templates
# ---------------------------------------------------------------------------

DURATION_PROMPT = (
    "You are a study productivity assistant. Return only a number (minutes) "
    "between 15 and 60."
)

DURATION_USER = (
    "Based on the following study data, recommend an optimal study session "
    "duration in minutes (return only the number):\n"
    "- Hours studied today: {hours:.1f}\n"
    "- Session count: {sessions}\n"
    "- Average session length: {average:.0f} minutes\n"
    "- Time of day: {hour}:00\n"
    "- Fatigue level: {fatigue}\n\n"
    "Consider:\n"
    "- If the user has studied a lot today (>4 hours), recommend shorter sessions (15-20 min)\n"
    "- If just starting (<1 hour), recommend longer sessions (30-45 min)\n"
    "- Morning sessions (6-12) can be longer, evening (20+) should be shorter\n"
    "- After many sessions (4+), recommend shorter sessions"
)

INSIGHT_PROMPT = (
    "You are a study productivity coach. Provide a brief, encouraging "
    "insight (1-2 sentences)."
)

INSIGHT_USER = (
    "Study data:\n"
    "- Hours studied today: {hours:.1f}\n"
    "- Session count: {sessions}\n"
    "- Time of day: {hour}:00\n"
    "- Recommended duration: {minutes} minutes"
)


# ---------------------------------------------------------------------------
# Rate Limiting
# ---------------------------------------------------------------------------


async def _check_rate_limit(redis_client, user_key: str, limit: int = 20) -> bool:
    """Check and increment daily rate limit. Returns True if within limit."""
    key = f"ai_rate:{user_key}:{date.today().isoformat()}"
    count = await redis_client.incr(key)
    if count == 1:
        await redis_client.expire(key, 86400)
    return count <= limit


# ---------------------------------------------------------------------------
# Rule-Based Recommendation
# ---------------------------------------------------------------------------


def calculate_recommended_duration(study_data: RecommendationInput) -> int:
    """Rule-based session length in minutes."""
    hours = study_data.hours_studied_today
    hour = study_data.hour_of_day

    minutes = DEFAULT_STUDY_MINUTES
    if hours >= 4:
        minutes = 15
    elif hours >= 2:
        minutes = 20
    elif hours < 1:
        minutes = 30

    if 6 <= hour < 12:
        minutes = min(minutes + 5, 45)
    elif hour >= 20 or hour < 6:
        minutes = max(minutes - 5, 15)

    if study_data.completed_session_count >= 4:
        minutes = 15

    return minutes


def fallback_insight(study_data: RecommendationInput, minutes: int) -> str:
    """Rule-based insight text when the LLM is unavailable."""
    hours = study_data.hours_studied_today
    hour = study_data.hour_of_day

    if hours >= 4:
        return "You've studied a lot today! Shorter sessions will help maintain focus."
    elif hours < 1:
        return f"Perfect time to start! {minutes} minutes is ideal for a fresh session."
    elif 6 <= hour < 12:
        return "Morning is your peak productivity time! Great choice for focused study."
    elif hour >= 20:
        return "Evening study session! Keep it focused and avoid burnout."
    elif study_data.completed_session_count >= 4:
        return "You're on a roll! Take breaks between sessions to maintain quality."
    return f"Recommended {minutes} minutes based on your study patterns."


def _parse_minutes(raw: str) -> int | None:
    """Extract the first integer from an LLM response."""
    match = re.search(r"\d+", raw or "")
    if match is None:
        return None
    return int(match.group())


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _coerce_minutes(value) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value) or value <= 0:
        return None
    return float(value)


def normalize_recommendation(raw) -> RecommendationResult:
    """Turn any recommender response into a valid ``RecommendationResult``.

    Accepts a ``RecommendationResult``, a mapping (``minutes`` or the wire
    name ``recommendedMinutes``) or a bare number. Missing, non-numeric,
    NaN or non-positive minutes resolve to the 25 minute default; anything
    else is rounded and clamped to [5, 60].
    """
    if isinstance(raw, RecommendationResult):
        return raw

    insight = None
    method = "algorithm"
    if isinstance(raw, Mapping):
        value = raw.get("minutes", raw.get("recommendedMinutes"))
        insight = raw.get("insight_text", raw.get("insights"))
        method = raw.get("method") or "algorithm"
    else:
        value = raw

    minutes = _coerce_minutes(value)
    if minutes is None:
        logger.warning(
            "Invalid recommendation %r, using %d minute default",
            value,
            DEFAULT_STUDY_MINUTES,
        )
        return RecommendationResult.fallback()

    rounded = math.floor(minutes + 0.5)
    return RecommendationResult(
        minutes=max(MIN_STUDY_MINUTES, min(MAX_STUDY_MINUTES, rounded)),
        insight_text=insight if isinstance(insight, str) else None,
        method=str(method),
    )


# ---------------------------------------------------------------------------
# Main Service Function
# ---------------------------------------------------------------------------


async def recommend_study_duration(
    study_data: RecommendationInput,
    provider: LLMProvider | None,
    redis_client=None,
    user_key: str = "anonymous",
) -> RecommendationResult:
    """Recommend a study session length.

    Asks the LLM when a provider is configured and the user is within the
    daily limit; any LLM failure falls back to the rule-based algorithm.
    """
    minutes = calculate_recommended_duration(study_data)
    method = "algorithm"
    insight = None

    use_llm = provider is not None
    if use_llm and redis_client is not None:
        use_llm = await _check_rate_limit(
            redis_client, user_key, settings.AI_DAILY_LIMIT
        )

    if use_llm:
        prompt_data = {
            "hours": study_data.hours_studied_today,
            "sessions": study_data.completed_session_count,
            "average": study_data.average_session_minutes,
            "hour": study_data.hour_of_day,
            "fatigue": int(study_data.fatigue),
        }
        try:
            raw = await provider.generate(
                DURATION_PROMPT, DURATION_USER.format(**prompt_data), max_tokens=10
            )
            parsed = _parse_minutes(raw)
            if parsed is None:
                raise ValueError(f"No duration in LLM response: {raw!r}")
            minutes = max(AI_MIN_MINUTES, min(AI_MAX_MINUTES, parsed))
            method = "ai"
        except Exception:
            logger.exception("LLM generation failed for study duration")

        if method == "ai":
            try:
                text = await provider.generate(
                    INSIGHT_PROMPT,
                    INSIGHT_USER.format(minutes=minutes, **prompt_data),
                    max_tokens=50,
                )
                insight = text.strip() or None
            except Exception:
                logger.exception("LLM generation failed for study insight")

    return RecommendationResult(
        minutes=minutes,
        insight_text=insight or fallback_insight(study_data, minutes),
        method=method,
    )


# ---------------------------------------------------------------------------
# Recommendation Clients
# ---------------------------------------------------------------------------


class RecommendationClient(ABC):
    """Source of study duration recommendations for the timer.

    Implementations may return a ``RecommendationResult``, a mapping or a
    bare number, and may raise; the timer normalizes and absorbs both.
    """

    @abstractmethod
    async def get_recommended_duration(self, study_data: RecommendationInput):
        ...


class LocalRecommendationClient(RecommendationClient):
    """Runs ``recommend_study_duration`` in-process."""

    def __init__(
        self,
        provider: LLMProvider | None,
        redis_client=None,
        user_key: str = "anonymous",
    ):
        self.provider = provider
        self.redis_client = redis_client
        self.user_key = user_key

    async def get_recommended_duration(
        self, study_data: RecommendationInput
    ) -> RecommendationResult:
        return await recommend_study_duration(
            study_data, self.provider, self.redis_client, self.user_key
        )


class HttpRecommendationClient(RecommendationClient):
    """Calls ``POST /ai/recommend-study-duration`` on a remote service."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client
        self.timeout = timeout or settings.RECOMMENDATION_TIMEOUT_SECONDS

    async def get_recommended_duration(self, study_data: RecommendationInput) -> dict:
        payload = {"studyData": study_data.model_dump(by_alias=True)}

        http_client = self.http_client
        should_close = False
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=self.timeout)
            should_close = True

        try:
            response = await http_client.post(
                f"{self.base_url}/ai/recommend-study-duration", json=payload
            )
            response.raise_for_status()
            data = response.json()
        finally:
            if should_close:
                await http_client.aclose()

        if not data.get("success"):
            raise RuntimeError(data.get("message") or "Failed to get recommendation")
        return data
