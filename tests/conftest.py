"""
pytest Configuration and Fixtures

Provides reusable fixtures for adaptive AI service testing:
    - ai_config: AIServiceConfig with fast timings and no durable tier
    - make_request: Factory for CompletionRequest objects
    - mock_provider: MockProvider class (configurable failures and delays)
"""

import asyncio
from typing import Optional

import pytest

from adaptive_ai.config.ai_config import AIServiceConfig
from adaptive_ai.llm.base import BaseLLM, ProviderError
from adaptive_ai.models.llm_models import CompletionRequest, Message


class MockProvider(BaseLLM):
    """Mock upstream provider for testing."""

    def __init__(
        self,
        name: str = "openai",
        should_fail: bool = False,
        fail_count: int = 0,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        """
        Initialize mock provider.

        Args:
            name: Provider name reported in responses
            should_fail: Raise on calls
            fail_count: Fail only the first N calls (0 = always when should_fail)
            delay: Seconds to sleep per call
            error: Exception to raise instead of a ProviderError
        """
        self.name = name
        super().__init__(api_key="test-key")
        self.should_fail = should_fail
        self.fail_count = fail_count
        self.delay = delay
        self.error = error
        self.attempt_count = 0
        self.calls = []
        self.closed = False
        # Word estimates keep token counts deterministic and offline
        self._tokenizer_failed = True

    async def agenerate(
        self,
        messages,
        model,
        max_tokens=None,
        temperature=0.7,
        response_format="text",
    ):
        """Mock generation."""
        self.attempt_count += 1
        self.calls.append({"messages": messages, "model": model})

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.should_fail:
            if self.fail_count == 0 or self.attempt_count <= self.fail_count:
                raise self.error or ProviderError(
                    f"{self.name} mock failure on attempt {self.attempt_count}",
                    provider=self.name,
                )

        return f"Response from {self.name}/{model}"

    async def close(self):
        self.closed = True


@pytest.fixture
def mock_provider():
    """MockProvider class."""
    return MockProvider


@pytest.fixture
def ai_config(tmp_path):
    """
    AIServiceConfig with test settings.

    Every environment-backed field that affects behavior is set explicitly.
    """
    return AIServiceConfig(
        openai_api_key="test-openai-key",
        gemini_api_key="test-gemini-key",
        cache_ttl=3600,
        cache_max_entries=100,
        similarity_threshold=0.85,
        cache_dir=None,
        cache_disk_max_entries=100,
        cache_redis_url=None,
        cache_cleanup_interval=60.0,
        batch_flush_interval=0.05,
        batch_size=5,
        batch_priorities=["low"],
        queue_limits={"high": 10, "normal": 10, "low": 10},
        queue_max_attempts=3,
        request_timeout=5.0,
        max_retries=2,
        retry_base_delay=0.01,
        provider_cooldown=30.0,
        provider_order=["openai", "gemini"],
        log_file=None,
    )


@pytest.fixture
def make_request():
    """Factory building a CompletionRequest from one user message."""

    def _make(content: str = "What are some healthy snacks?", system: Optional[str] = None, **kwargs):
        messages = []
        if system:
            messages.append(Message(role="system", content=system))
        messages.append(Message(role="user", content=content))
        kwargs.setdefault("user_id", "user-1")
        return CompletionRequest(messages=messages, **kwargs)

    return _make
