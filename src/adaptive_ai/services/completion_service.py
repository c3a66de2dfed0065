"""High-level completion service integrating caching, classification, batching and fallback."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from ..config.ai_config import AIServiceConfig
from ..llm import (
    BaseLLM,
    ComplexityClassifier,
    DiskCacheTier,
    FingerprintCache,
    ModelRouter,
    PriorityBatchQueue,
    ProviderHealthTracker,
    ProviderOrchestrator,
    QueueFullError,
    RedisCacheTier,
    ValidationError,
)
from ..llm.fingerprint import compute_fingerprint
from ..llm.providers import GeminiProvider, OpenAIProvider
from ..models.cache_models import CacheLookup, Fingerprint
from ..models.llm_models import (
    CompletionRequest,
    CompletionResponse,
    PriorityTier,
    ProviderName,
    QueuedAcknowledgement,
)
from ..models.queue_models import QueueItem

logger = logging.getLogger(__name__)

GenerateResult = Union[CompletionResponse, QueuedAcknowledgement]


class AdaptiveAIService:
    """
    Single entry point for completion requests.

    PATTERN: Facade over cache, classifier, batch queue and orchestrator
    CRITICAL: Identical in-flight requests share one upstream call
    GOTCHA: Providers without an API key are never constructed
    """

    def __init__(
        self,
        config: Optional[AIServiceConfig] = None,
        providers: Optional[Dict[str, BaseLLM]] = None,
        cache: Optional[FingerprintCache] = None,
    ):
        """
        Initialize the service.

        Args:
            config: Service configuration (creates default if None)
            providers: Provider instances by name (built from config if None)
            cache: Fingerprint cache (built from config if None)
        """
        self.config = config or AIServiceConfig()
        self.logger = logging.getLogger(__name__)

        self.classifier = ComplexityClassifier()
        self.cache = cache or FingerprintCache(
            max_size=self.config.cache_max_entries,
            default_ttl=self.config.cache_ttl,
            similarity_threshold=self.config.similarity_threshold,
            durable_tier=self._build_durable_tier(),
        )

        self.providers: Dict[str, BaseLLM] = (
            providers if providers is not None else self._initialize_providers()
        )
        all_providers = [p.value for p in ProviderName]
        self.health = ProviderHealthTracker(
            providers=all_providers,
            cooldown_seconds=self.config.provider_cooldown,
            configured={name: name in self.providers for name in all_providers},
        )
        self.router = ModelRouter(config=self.config, health=self.health)
        self.orchestrator = ProviderOrchestrator(
            providers=self.providers,
            router=self.router,
            health=self.health,
            request_timeout=self.config.request_timeout,
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
        )
        self.queue = PriorityBatchQueue(
            processor=self._process_queued,
            flush_interval=self.config.batch_flush_interval,
            batch_size=self.config.batch_size,
            max_attempts=self.config.queue_max_attempts,
            queue_limits=self.config.queue_limits,
        )

        self.active_prompts = 0
        self.started_at = datetime.now()
        self._shut_down = False
        self._cleanup_task: Optional[asyncio.Task] = None

        self.logger.info(
            f"Adaptive AI service initialized with providers: "
            f"{', '.join(self.providers) or 'none'}"
        )

    def _initialize_providers(self) -> Dict[str, BaseLLM]:
        """
        Build providers that have credentials.

        CRITICAL: Handle missing API keys gracefully
        """
        providers: Dict[str, BaseLLM] = {}

        for name in self.config.get_provider_order():
            api_key = self.config.api_key_for(name)
            if not api_key:
                self.logger.warning(f"{name} API key not configured")
                continue

            if name == ProviderName.OPENAI.value:
                providers[name] = OpenAIProvider(api_key=api_key)
            elif name == ProviderName.GEMINI.value:
                providers[name] = GeminiProvider(
                    api_key=api_key,
                    endpoint=self.config.gemini_endpoint,
                )

        return providers

    def _build_durable_tier(self):
        if self.config.cache_redis_url:
            self.logger.info("Using Redis durable cache tier")
            return RedisCacheTier.from_url(
                self.config.cache_redis_url,
                default_ttl=self.config.cache_ttl,
            )
        if self.config.cache_dir:
            self.logger.info(f"Using disk cache tier at {self.config.cache_dir}")
            return DiskCacheTier(
                self.config.cache_dir,
                default_ttl=self.config.cache_ttl,
                max_size=self.config.cache_disk_max_entries,
            )
        return None

    async def generate_completion(self, request: CompletionRequest) -> GenerateResult:
        """
        Generate a completion with caching, batching and fallback.

        PATTERN: Cache -> Classify -> Queue or compute -> Cache result
        CRITICAL: force_fresh skips the lookup but still refreshes the entry

        Args:
            request: Completion request

        Returns:
            CompletionResponse, or QueuedAcknowledgement if batched

        Raises:
            ValidationError: If no message has any content
            AllProvidersUnavailable: If every provider failed
        """
        if not any(m.content.strip() for m in request.messages):
            raise ValidationError("messages must contain non-empty content")

        start_time = datetime.now()
        fingerprint = compute_fingerprint(request)

        if not request.force_fresh:
            hit = await self.cache.lookup(request, fingerprint)
            if hit is not None:
                response = self._from_cache(request, hit, start_time)
                self.logger.info(
                    f"Cache hit ({response.cache_type}) for {request.request_id}"
                )
                return response

        tier = request.complexity or self.classifier.classify(request.messages).value

        if self._should_queue(request.priority):
            item = QueueItem(request=request, priority=request.priority, complexity=tier)
            try:
                result = self.queue.enqueue(item)
            except QueueFullError as e:
                self.logger.warning(f"{e}; processing {request.request_id} directly")
            else:
                if result.queued:
                    return QueuedAcknowledgement(
                        request_id=request.request_id,
                        queue_position=result.position,
                        estimated_wait_seconds=result.estimated_wait_seconds,
                        priority=request.priority,
                    )

        response = await self._compute(request, fingerprint, tier)
        return response.model_copy(update={
            "processing_time_ms": self._elapsed_ms(start_time),
        })

    async def _compute(
        self,
        request: CompletionRequest,
        fingerprint: Fingerprint,
        tier: str,
    ) -> CompletionResponse:
        """
        Compute through the orchestrator, coalescing identical requests.

        GOTCHA: Coalesced callers receive the first caller's response,
        re-stamped with their own request id
        """
        async def compute() -> CompletionResponse:
            response = await self.orchestrator.complete(request, tier)
            await self.cache.store(fingerprint, response)
            return response

        self.active_prompts += 1
        try:
            response = await self.cache.get_or_compute(fingerprint.key, compute)
        finally:
            self.active_prompts -= 1

        if response.request_id != request.request_id:
            response = response.model_copy(update={"request_id": request.request_id})
        return response

    async def _process_queued(self, item: QueueItem) -> CompletionResponse:
        """Batch queue processor."""
        fingerprint = compute_fingerprint(item.request)
        response = await self._compute(item.request, fingerprint, item.complexity)
        return response.model_copy(update={"queued": True})

    def _should_queue(self, priority: str) -> bool:
        if priority == PriorityTier.CRITICAL.value:
            return False
        return priority in self.config.batch_priorities

    def _from_cache(
        self,
        request: CompletionRequest,
        hit: CacheLookup,
        start_time: datetime,
    ) -> CompletionResponse:
        return hit.entry.response.model_copy(update={
            "request_id": request.request_id,
            "cached": True,
            "cache_type": hit.cache_type,
            "similarity": hit.similarity,
            "fallback_used": False,
            "queued": False,
            "processing_time_ms": self._elapsed_ms(start_time),
        })

    @staticmethod
    def _elapsed_ms(start_time: datetime) -> int:
        return int((datetime.now() - start_time).total_seconds() * 1000)

    def get_queued_result(self, request_id: str) -> Optional[GenerateResult]:
        """
        Look up a batched request.

        Args:
            request_id: Request id from the acknowledgement

        Returns:
            The response when finished, an acknowledgement while waiting,
            None if unknown or cancelled

        Raises:
            Exception: The processing error if the request failed
        """
        item = self.queue.get_item(request_id)
        if item is None or item.cancelled:
            return None

        if item.future is not None and item.future.done():
            return item.future.result()

        if item.dispatched:
            position, wait = 1, 0.0
        else:
            position = self.queue.position_of(item)
            wait = self.queue.estimate_wait(position)

        return QueuedAcknowledgement(
            request_id=request_id,
            queue_position=position,
            estimated_wait_seconds=wait,
            priority=item.priority,
        )

    async def wait_for_result(
        self,
        request_id: str,
        timeout: Optional[float] = None,
    ) -> CompletionResponse:
        """Await a batched request's response."""
        return await self.queue.wait_for(request_id, timeout)

    def cancel(self, request_id: str) -> bool:
        """
        Cancel a batched request that has not been dispatched.

        Returns:
            True if it was cancelled
        """
        return self.queue.cancel(request_id)

    def get_health(self) -> Dict[str, Any]:
        """
        Get provider health.

        Returns:
            Dictionary with status, timestamp, services and uptime
        """
        services = {
            name: "available" if self.health.is_available(name) else "unavailable"
            for name in self.health.health
        }
        return {
            "status": "healthy" if self.health.any_available() else "degraded",
            "timestamp": datetime.now().isoformat(),
            "services": services,
            "uptime": (datetime.now() - self.started_at).total_seconds(),
        }

    def get_stats(self) -> Dict[str, Any]:
        """
        Get service statistics.

        Returns:
            Dictionary with active prompts, queue, cache and orchestrator stats
        """
        return {
            "active_prompts": self.active_prompts,
            "queue": self.queue.get_stats(),
            "cache": self.cache.get_stats(),
            "orchestrator": self.orchestrator.get_stats(),
        }

    def start(self) -> None:
        """Start background batch flushing and cache cleanup."""
        self.queue.start()
        if self._cleanup_task is None and not self._shut_down:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        """Sweep expired cache entries every cache_cleanup_interval seconds."""
        while True:
            await asyncio.sleep(self.config.cache_cleanup_interval)
            try:
                await self.cache.run_cleanup()
            except Exception as e:
                self.logger.error(f"Cache cleanup failed: {e}", exc_info=True)

    async def shutdown(self) -> None:
        """
        Drain the queue and release resources.

        Idempotent.
        """
        if self._shut_down:
            return
        self._shut_down = True

        self.logger.info("Shutting down adaptive AI service")
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        await self.queue.stop(drain=True)
        await self.cache.close()
        await self.orchestrator.close()
        self.logger.info("Adaptive AI service shut down")
