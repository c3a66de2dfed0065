"""Tests for the adaptive AI service facade."""

import asyncio
from datetime import datetime, timedelta

import pytest

from adaptive_ai.llm.base import AllProvidersUnavailable, ValidationError
from adaptive_ai.llm.fingerprint import compute_fingerprint
from adaptive_ai.models.llm_models import CompletionResponse, QueuedAcknowledgement
from adaptive_ai.services.completion_service import AdaptiveAIService


class TestAdaptiveAIService:
    """Test suite for AdaptiveAIService."""

    @pytest.fixture(autouse=True)
    def _setup(self, ai_config, mock_provider):
        """Set up test fixtures."""
        self.config = ai_config
        self.openai = mock_provider("openai", delay=0.05)
        self.gemini = mock_provider("gemini")
        self.service = AdaptiveAIService(
            config=ai_config,
            providers={"openai": self.openai, "gemini": self.gemini},
        )

    @pytest.mark.asyncio
    async def test_generate_completion(self, make_request):
        """Test a direct request is classified and answered."""
        response = await self.service.generate_completion(make_request())

        assert isinstance(response, CompletionResponse)
        assert response.provider == "openai"
        assert response.complexity == "low"
        assert response.model == self.config.openai_models["low"]
        assert response.cached is False
        assert response.queued is False

    @pytest.mark.asyncio
    async def test_second_identical_request_is_cached(self, make_request):
        """Test a repeated request is served from cache without a provider call."""
        first = await self.service.generate_completion(make_request())
        second = await self.service.generate_completion(make_request())

        assert first.cached is False
        assert second.cached is True
        assert second.cache_type == "exact"
        assert second.content == first.content
        assert second.processing_time_ms <= first.processing_time_ms
        assert self.openai.attempt_count == 1

    @pytest.mark.asyncio
    async def test_similar_request_is_cached(self, make_request):
        """Test near-duplicate wording reuses the response."""
        await self.service.generate_completion(make_request("What are some healthy snacks for kids?"))
        response = await self.service.generate_completion(make_request("Healthy snacks for kids, please"))

        assert response.cached is True
        assert response.cache_type == "similarity"
        assert response.similarity >= 0.85
        assert self.openai.attempt_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_identical_requests_coalesce(self, make_request):
        """Test identical in-flight requests share one provider call."""
        requests = [make_request(request_id=f"req-{i}") for i in range(3)]

        responses = await asyncio.gather(
            *(self.service.generate_completion(r) for r in requests)
        )

        assert self.openai.attempt_count == 1
        assert len({r.content for r in responses}) == 1
        assert [r.request_id for r in responses] == ["req-0", "req-1", "req-2"]
        assert self.service.cache.get_stats().coalesced == 2

    @pytest.mark.asyncio
    async def test_force_fresh_bypasses_and_refreshes_cache(self, make_request):
        """Test force_fresh calls the provider and overwrites the entry."""
        await self.service.generate_completion(make_request(request_id="original"))
        fresh = await self.service.generate_completion(
            make_request(request_id="fresh", force_fresh=True)
        )

        assert fresh.cached is False
        assert self.openai.attempt_count == 2

        key = compute_fingerprint(make_request()).key
        assert self.service.cache.cache[key].response.request_id == "fresh"

    @pytest.mark.asyncio
    async def test_complexity_override(self, make_request):
        """Test an explicit complexity skips classification."""
        response = await self.service.generate_completion(make_request(complexity="very_high"))

        assert response.complexity == "very_high"
        assert response.model == self.config.openai_models["very_high"]

    @pytest.mark.asyncio
    async def test_low_priority_is_queued(self, make_request):
        """Test batched priorities return an acknowledgement, then a result."""
        ack = await self.service.generate_completion(make_request(priority="low", request_id="batched"))

        assert isinstance(ack, QueuedAcknowledgement)
        assert ack.queue_position == 1
        assert ack.estimated_wait_seconds == self.config.batch_flush_interval
        assert self.service.get_stats()["queue"].queue_sizes["low"] == 1
        assert isinstance(self.service.get_queued_result("batched"), QueuedAcknowledgement)

        self.service.start()
        try:
            response = await self.service.wait_for_result("batched", timeout=2.0)
        finally:
            await self.service.shutdown()

        assert response.request_id == "batched"
        assert response.queued is True
        assert self.service.get_queued_result("batched") == response

    @pytest.mark.asyncio
    async def test_critical_never_queued(self, make_request):
        """Test critical priority is computed directly even if listed as batched."""
        config = self.config.model_copy(update={"batch_priorities": ["critical", "low"]})
        service = AdaptiveAIService(config=config, providers={"openai": self.openai})

        response = await service.generate_completion(make_request(priority="critical"))

        assert isinstance(response, CompletionResponse)
        assert service.get_stats()["queue"].queue_sizes["critical"] == 0

    @pytest.mark.asyncio
    async def test_full_queue_processes_directly(self, make_request):
        """Test a full tier falls back to direct processing."""
        config = self.config.model_copy(update={"queue_limits": {"low": 0}})
        service = AdaptiveAIService(config=config, providers={"openai": self.openai})

        response = await service.generate_completion(make_request(priority="low"))

        assert isinstance(response, CompletionResponse)
        assert response.queued is False

    @pytest.mark.asyncio
    async def test_cancel_queued_request(self, make_request):
        """Test a waiting request can be cancelled."""
        await self.service.generate_completion(make_request(priority="low", request_id="later"))

        assert self.service.cancel("later") is True
        assert self.service.get_queued_result("later") is None
        assert self.service.cancel("later") is False

    @pytest.mark.asyncio
    async def test_fallback_through_service(self, make_request, mock_provider):
        """Test primary failure is recovered by the secondary provider."""
        service = AdaptiveAIService(
            config=self.config,
            providers={"openai": mock_provider("openai", should_fail=True), "gemini": self.gemini},
        )

        for i in range(2):
            response = await service.generate_completion(make_request(f"question number {i}"))
            assert response.provider == "gemini"
            assert response.fallback_used is True

        assert service.get_stats()["orchestrator"]["fallbacks"] == 2

    @pytest.mark.asyncio
    async def test_all_providers_unavailable(self, make_request, mock_provider):
        """Test exhaustion surfaces and nothing is cached."""
        service = AdaptiveAIService(
            config=self.config,
            providers={
                "openai": mock_provider("openai", should_fail=True),
                "gemini": mock_provider("gemini", should_fail=True),
            },
        )

        with pytest.raises(AllProvidersUnavailable):
            await service.generate_completion(make_request())

        assert service.cache.get_stats().size == 0
        assert service.active_prompts == 0

    def test_health(self, ai_config):
        """Test health reports provider availability."""
        health = self.service.get_health()

        assert health["status"] == "healthy"
        assert health["services"] == {"openai": "available", "gemini": "available"}
        assert health["uptime"] >= 0

        degraded = AdaptiveAIService(config=ai_config, providers={}).get_health()
        assert degraded["status"] == "degraded"
        assert degraded["services"] == {"openai": "unavailable", "gemini": "unavailable"}

    def test_providers_built_from_config(self, ai_config):
        """Test providers are only created for configured keys."""
        config = ai_config.model_copy(update={"gemini_api_key": None})

        service = AdaptiveAIService(config=config)

        assert list(service.providers) == ["openai"]
        assert service.get_health()["services"]["gemini"] == "unavailable"

    @pytest.mark.asyncio
    async def test_stats(self, make_request):
        """Test stats aggregate every component."""
        await self.service.generate_completion(make_request())

        stats = self.service.get_stats()

        assert stats["active_prompts"] == 0
        assert stats["cache"].misses == 1
        assert stats["orchestrator"]["service_usage"]["openai"] == 1
        assert set(stats["queue"].queue_sizes) == {"critical", "high", "normal", "low"}

    @pytest.mark.asyncio
    async def test_shutdown_drains_and_is_idempotent(self, make_request):
        """Test shutdown finishes queued work and closes providers once."""
        await self.service.generate_completion(make_request(priority="low", request_id="pending"))

        await self.service.shutdown()
        await self.service.shutdown()

        result = self.service.get_queued_result("pending")
        assert isinstance(result, CompletionResponse)
        assert self.openai.closed is True

    @pytest.mark.asyncio
    async def test_blank_messages_are_rejected(self, make_request):
        """Test requests without any content fail validation before any work."""
        with pytest.raises(ValidationError):
            await self.service.generate_completion(make_request("   "))

        assert self.openai.attempt_count == 0
        assert self.service.cache.misses == 0

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_stall_batch(self, make_request, mock_provider):
        """Test cancelling a direct caller keeps its coalesced batch item and the flush loop alive."""
        slow = mock_provider("openai", delay=0.3)
        service = AdaptiveAIService(config=self.config, providers={"openai": slow})
        service.start()
        try:
            leader = asyncio.create_task(service.generate_completion(
                make_request(priority="critical", request_id="leader")
            ))
            await asyncio.sleep(0.01)

            ack = await service.generate_completion(make_request(priority="low", request_id="follower"))
            assert isinstance(ack, QueuedAcknowledgement)
            while not service.queue.get_item("follower").dispatched:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.01)

            leader.cancel()
            follower = await service.wait_for_result("follower", timeout=2.0)

            await service.generate_completion(
                make_request("Something else entirely", priority="low", request_id="later")
            )
            later = await service.wait_for_result("later", timeout=2.0)
        finally:
            await service.shutdown()

        assert follower.content == "Response from openai/" + self.config.openai_models["low"]
        assert follower.request_id == "follower"
        assert later.request_id == "later"
        assert slow.attempt_count == 2
        assert service.cache.get_stats().coalesced == 1
        with pytest.raises(asyncio.CancelledError):
            await leader

    @pytest.mark.asyncio
    async def test_cache_cleanup_runs_while_started(self, make_request):
        """Test started services sweep expired entries periodically."""
        config = self.config.model_copy(update={"cache_cleanup_interval": 0.02})
        service = AdaptiveAIService(config=config, providers={"openai": self.openai})
        await service.generate_completion(make_request())
        key = compute_fingerprint(make_request()).key
        service.cache.cache[key].created_at = datetime.now() - timedelta(hours=2)

        service.start()
        try:
            await asyncio.sleep(0.1)
            stats = service.get_stats()["cache"]
        finally:
            await service.shutdown()

        assert stats.last_cleanup is not None
        assert stats.size == 0
        assert service._cleanup_task is None
