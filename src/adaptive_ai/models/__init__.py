"""Models package for the adaptive AI service."""

from .llm_models import (
    ProviderName,
    ComplexityTier,
    PriorityTier,
    ResponseFormat,
    CacheType,
    Message,
    CompletionRequest,
    CompletionResponse,
    QueuedAcknowledgement,
    ModelConfig,
)
from .cache_models import (
    Fingerprint,
    CacheEntry,
    CacheLookup,
    CacheStats,
)
from .queue_models import (
    QueueItem,
    EnqueueResult,
    QueueStats,
)
from .provider_models import ProviderHealth

__all__ = [
    # LLM models
    "ProviderName",
    "ComplexityTier",
    "PriorityTier",
    "ResponseFormat",
    "CacheType",
    "Message",
    "CompletionRequest",
    "CompletionResponse",
    "QueuedAcknowledgement",
    "ModelConfig",
    # Cache models
    "Fingerprint",
    "CacheEntry",
    "CacheLookup",
    "CacheStats",
    # Queue models
    "QueueItem",
    "EnqueueResult",
    "QueueStats",
    # Provider models
    "ProviderHealth",
]
