"""LLM subsystem for adaptive model selection, caching and fallback."""

from .base import (
    BaseLLM,
    AIServiceError,
    ValidationError,
    ProviderError,
    RateLimitError,
    ProviderTimeoutError,
    AllProvidersUnavailable,
    CacheIOError,
    QueueFullError,
)
from .classifier import ComplexityClassifier, ComplexityAnalysis
from .cache import FingerprintCache, DiskCacheTier, RedisCacheTier
from .health import ProviderHealthTracker
from .router import ModelRouter
from .fallback import ProviderOrchestrator
from .queue import PriorityBatchQueue

__all__ = [
    "BaseLLM",
    # Errors
    "AIServiceError",
    "ValidationError",
    "ProviderError",
    "RateLimitError",
    "ProviderTimeoutError",
    "AllProvidersUnavailable",
    "CacheIOError",
    "QueueFullError",
    # Components
    "ComplexityClassifier",
    "ComplexityAnalysis",
    "FingerprintCache",
    "DiskCacheTier",
    "RedisCacheTier",
    "ProviderHealthTracker",
    "ModelRouter",
    "ProviderOrchestrator",
    "PriorityBatchQueue",
]
