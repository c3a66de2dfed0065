"""Provider orchestrator executing requests along a fallback chain."""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from .base import (
    AllProvidersUnavailable,
    BaseLLM,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
)
from .health import ProviderHealthTracker
from .router import ModelRouter
from ..models.llm_models import CompletionRequest, CompletionResponse, ModelConfig

logger = logging.getLogger(__name__)


class ProviderOrchestrator:
    """
    Calls upstream providers, escalating to the next one on failure.

    PATTERN: Cascading fallback with exponential backoff on rate limits
    CRITICAL: Every attempt carries a bounded timeout
    CRITICAL: Track which provider succeeded for usage stats
    """

    def __init__(
        self,
        providers: Dict[str, BaseLLM],
        router: ModelRouter,
        health: ProviderHealthTracker,
        request_timeout: float = 30.0,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
    ):
        """
        Initialize provider orchestrator.

        Args:
            providers: Provider instances by name
            router: Model router building the chain
            health: Provider health tracker
            request_timeout: Timeout per upstream call (seconds)
            max_retries: Attempts per provider when rate limited
            base_delay: Base delay for exponential backoff (seconds)
            max_delay: Maximum delay between retries (seconds)
        """
        self.providers = providers
        self.router = router
        self.health = health
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.logger = logging.getLogger(__name__)

        # Prompt + completion tokens per provider
        self.token_usage: Dict[str, int] = {name: 0 for name in providers}

    async def complete(
        self,
        request: CompletionRequest,
        tier: str,
    ) -> CompletionResponse:
        """
        Execute request along the fallback chain.

        PATTERN: Preferred/first provider, then the next on any ProviderError
        CRITICAL: Only exhaustion of every provider surfaces to the caller

        Args:
            request: Completion request
            tier: Complexity tier selecting the model

        Returns:
            Response from the first provider that succeeded

        Raises:
            AllProvidersUnavailable: If every provider failed or is cooling down
        """
        chain = [
            model for model in self.router.build_chain(tier, request.preferred_provider)
            if model.provider in self.providers
        ]
        if not chain:
            raise AllProvidersUnavailable(
                "No AI provider is currently available",
                retry_after=self._retry_after(),
            )

        primary = self.router.primary_provider(request.preferred_provider)
        start_time = datetime.now()
        last_error: Optional[Exception] = None

        for index, model in enumerate(chain):
            self.logger.info(
                f"Attempting provider {index + 1}/{len(chain)}: "
                f"{model.provider}/{model.model_name}"
            )

            try:
                content = await self._call_with_retries(request, model)
            except ProviderError as e:
                self.health.record_failure(model.provider, e)
                last_error = e
                continue

            self.health.record_success(model.provider)
            fallback_used = model.provider != primary
            if fallback_used:
                self.health.record_fallback()
            latency_ms = int((datetime.now() - start_time).total_seconds() * 1000)

            provider = self.providers[model.provider]
            input_tokens = provider.count_message_tokens(request.message_dicts())
            output_tokens = provider.get_num_tokens(content)
            self.token_usage[model.provider] = (
                self.token_usage.get(model.provider, 0) + input_tokens + output_tokens
            )

            self.logger.info(
                f"Success with {model.provider}/{model.model_name} "
                f"(provider {index + 1}, {latency_ms}ms)"
            )

            return CompletionResponse(
                request_id=request.request_id,
                content=content,
                model=model.model_name,
                provider=model.provider,
                complexity=tier,
                cached=False,
                processing_time_ms=latency_ms,
                fallback_used=fallback_used,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        error_msg = (
            f"All {len(chain)} providers failed. "
            f"Last error: {last_error}"
        )
        self.logger.error(error_msg)
        raise AllProvidersUnavailable(error_msg, retry_after=self._retry_after())

    async def _call_with_retries(
        self,
        request: CompletionRequest,
        model: ModelConfig,
    ) -> str:
        """
        Call one provider, retrying only on rate limits.

        Raises:
            ProviderError: When the provider is exhausted
        """
        provider = self.providers[model.provider]

        for retry in range(self.max_retries):
            try:
                return await asyncio.wait_for(
                    provider.agenerate(
                        messages=request.message_dicts(),
                        model=model.model_name,
                        max_tokens=model.max_tokens,
                        response_format=request.response_format,
                    ),
                    timeout=self.request_timeout,
                )

            except RateLimitError as e:
                if retry >= self.max_retries - 1:
                    raise
                wait_time = min(self.base_delay * (2 ** retry), self.max_delay)
                self.logger.warning(
                    f"Rate limited on {model.provider} "
                    f"(retry {retry + 1}/{self.max_retries}), "
                    f"waiting {wait_time}s: {e}"
                )
                await asyncio.sleep(wait_time)

            except asyncio.TimeoutError:
                raise ProviderTimeoutError(
                    f"{model.provider} timed out after {self.request_timeout}s",
                    provider=model.provider,
                )

            except ProviderError:
                raise

            except Exception as e:
                # SDK or transport errors not mapped by the provider
                self.logger.error(
                    f"Unexpected error on {model.provider}: {e}",
                    exc_info=True,
                )
                raise ProviderError(f"Unexpected error: {str(e)}", provider=model.provider)

        raise ProviderError(f"{model.provider} exhausted retries", provider=model.provider)

    def _retry_after(self) -> int:
        return max(1, int(self.health.cooldown_seconds))

    def get_stats(self) -> Dict:
        """
        Usage and fallback counters.

        Returns:
            Dictionary with service_usage, token_usage, fallbacks and
            per-provider health
        """
        return {
            "service_usage": self.health.usage(),
            "token_usage": dict(self.token_usage),
            "fallbacks": self.health.fallbacks,
            "services": {
                name: h.model_dump(mode="json")
                for name, h in self.health.snapshot().items()
            },
        }

    async def close(self) -> None:
        """Close all providers."""
        for name, provider in self.providers.items():
            try:
                await provider.close()
            except Exception as e:
                self.logger.error(f"Error closing provider {name}: {e}")
