"""Tests for provider orchestrator fallback."""

import pytest

from adaptive_ai.llm.base import AllProvidersUnavailable, RateLimitError
from adaptive_ai.llm.fallback import ProviderOrchestrator
from adaptive_ai.llm.health import ProviderHealthTracker
from adaptive_ai.llm.router import ModelRouter
from adaptive_ai.models.llm_models import ProviderName


def build_orchestrator(config, providers, request_timeout=5.0):
    names = [p.value for p in ProviderName]
    health = ProviderHealthTracker(
        names,
        cooldown_seconds=config.provider_cooldown,
        configured={name: name in providers for name in names},
    )
    return ProviderOrchestrator(
        providers=providers,
        router=ModelRouter(config, health),
        health=health,
        request_timeout=request_timeout,
        max_retries=2,
        base_delay=0.01,
    )


class TestProviderOrchestrator:
    """Test suite for ProviderOrchestrator."""

    @pytest.mark.asyncio
    async def test_successful_primary_provider(self, ai_config, mock_provider, make_request):
        """Test the primary provider serves the request."""
        openai = mock_provider("openai")
        orchestrator = build_orchestrator(ai_config, {"openai": openai, "gemini": mock_provider("gemini")})

        response = await orchestrator.complete(make_request(), "low")

        assert response.provider == "openai"
        assert response.model == ai_config.openai_models["low"]
        assert response.content == f"Response from openai/{ai_config.openai_models['low']}"
        assert response.fallback_used is False
        assert response.cached is False
        assert orchestrator.health.usage()["openai"] == 1
        assert orchestrator.health.fallbacks == 0

    @pytest.mark.asyncio
    async def test_fallback_to_secondary_provider(self, ai_config, mock_provider, make_request):
        """Test a failing primary escalates to the secondary."""
        orchestrator = build_orchestrator(ai_config, {
            "openai": mock_provider("openai", should_fail=True),
            "gemini": mock_provider("gemini"),
        })

        response = await orchestrator.complete(make_request(), "high")

        assert response.provider == "gemini"
        assert response.model == ai_config.gemini_models["high"]
        assert response.fallback_used is True
        assert orchestrator.health.fallbacks == 1

        openai_health = orchestrator.health.snapshot()["openai"]
        assert openai_health.available is False
        assert openai_health.failure_count == 1
        assert "mock failure" in openai_health.last_error

    @pytest.mark.asyncio
    async def test_fallback_counted_once_per_request(self, ai_config, mock_provider, make_request):
        """Test every request served by the secondary counts one fallback."""
        openai = mock_provider("openai", should_fail=True)
        orchestrator = build_orchestrator(ai_config, {
            "openai": openai,
            "gemini": mock_provider("gemini"),
        })

        for i in range(3):
            response = await orchestrator.complete(make_request(f"question {i}"), "low")
            assert response.provider == "gemini"

        assert orchestrator.health.fallbacks == 3
        # Cooling down after the first failure
        assert openai.attempt_count == 1

    @pytest.mark.asyncio
    async def test_primary_retried_after_cooldown(self, ai_config, mock_provider, make_request):
        """Test a zero cool-down retries the primary on every request."""
        config = ai_config.model_copy(update={"provider_cooldown": 0})
        openai = mock_provider("openai", should_fail=True)
        orchestrator = build_orchestrator(config, {
            "openai": openai,
            "gemini": mock_provider("gemini"),
        })

        await orchestrator.complete(make_request("one"), "low")
        await orchestrator.complete(make_request("two"), "low")

        assert openai.attempt_count == 2
        assert orchestrator.health.fallbacks == 2

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, ai_config, mock_provider, make_request):
        """Test exhaustion raises AllProvidersUnavailable with a retry hint."""
        orchestrator = build_orchestrator(ai_config, {
            "openai": mock_provider("openai", should_fail=True),
            "gemini": mock_provider("gemini", should_fail=True),
        })

        with pytest.raises(AllProvidersUnavailable) as exc_info:
            await orchestrator.complete(make_request(), "low")

        assert exc_info.value.retry_after == 30
        assert "All 2 providers failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_no_configured_providers(self, ai_config, make_request):
        """Test an empty chain fails fast."""
        orchestrator = build_orchestrator(ai_config, {})

        with pytest.raises(AllProvidersUnavailable):
            await orchestrator.complete(make_request(), "low")

    @pytest.mark.asyncio
    async def test_preferred_provider_first(self, ai_config, mock_provider, make_request):
        """Test the preferred provider is attempted first and is not a fallback."""
        openai = mock_provider("openai")
        orchestrator = build_orchestrator(ai_config, {
            "openai": openai,
            "gemini": mock_provider("gemini"),
        })

        response = await orchestrator.complete(
            make_request(preferred_provider="gemini"), "medium"
        )

        assert response.provider == "gemini"
        assert response.fallback_used is False
        assert openai.attempt_count == 0

    @pytest.mark.asyncio
    async def test_retry_on_rate_limit(self, ai_config, mock_provider, make_request):
        """Test rate limits are retried on the same provider."""
        openai = mock_provider(
            "openai",
            should_fail=True,
            fail_count=1,
            error=RateLimitError("slow down", provider="openai"),
        )
        gemini = mock_provider("gemini")
        orchestrator = build_orchestrator(ai_config, {"openai": openai, "gemini": gemini})

        response = await orchestrator.complete(make_request(), "low")

        assert response.provider == "openai"
        assert openai.attempt_count == 2
        assert gemini.attempt_count == 0

    @pytest.mark.asyncio
    async def test_timeout_triggers_fallback(self, ai_config, mock_provider, make_request):
        """Test a slow provider is abandoned after the request timeout."""
        orchestrator = build_orchestrator(
            ai_config,
            {
                "openai": mock_provider("openai", delay=1.0),
                "gemini": mock_provider("gemini"),
            },
            request_timeout=0.05,
        )

        response = await orchestrator.complete(make_request(), "low")

        assert response.provider == "gemini"
        assert "timed out" in orchestrator.health.snapshot()["openai"].last_error

    @pytest.mark.asyncio
    async def test_unexpected_error_triggers_fallback(self, ai_config, mock_provider, make_request):
        """Test unmapped exceptions are treated as provider failures."""
        orchestrator = build_orchestrator(ai_config, {
            "openai": mock_provider("openai", should_fail=True, error=ValueError("bad payload")),
            "gemini": mock_provider("gemini"),
        })

        response = await orchestrator.complete(make_request(), "low")

        assert response.provider == "gemini"

    @pytest.mark.asyncio
    async def test_stats_and_close(self, ai_config, mock_provider, make_request):
        """Test usage counters and provider shutdown."""
        openai = mock_provider("openai")
        gemini = mock_provider("gemini")
        orchestrator = build_orchestrator(ai_config, {"openai": openai, "gemini": gemini})

        await orchestrator.complete(make_request(), "low")
        stats = orchestrator.get_stats()
        await orchestrator.close()

        assert stats["service_usage"] == {"openai": 1, "gemini": 0}
        assert stats["fallbacks"] == 0
        assert stats["services"]["openai"]["usage_count"] == 1
        assert openai.closed and gemini.closed

    @pytest.mark.asyncio
    async def test_token_usage(self, ai_config, mock_provider, make_request):
        """Test prompt and completion tokens are counted per provider."""
        orchestrator = build_orchestrator(ai_config, {
            "openai": mock_provider("openai"),
            "gemini": mock_provider("gemini"),
        })

        response = await orchestrator.complete(make_request("What are some healthy snacks?"), "low")

        # 5 words -> 6 tokens, + 4 message overhead, + 2 reply priming
        assert response.input_tokens == 12
        # "Response from openai/<model>" -> 3 words
        assert response.output_tokens == 3
        assert orchestrator.get_stats()["token_usage"] == {"openai": 15, "gemini": 0}
