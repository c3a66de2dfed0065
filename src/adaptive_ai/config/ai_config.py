"""AI service configuration with environment variable loading."""

import os
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from dotenv import load_dotenv

from ..models.llm_models import ComplexityTier, ModelConfig, ProviderName

# Load environment variables from .env file
load_dotenv()


def _env_list(name: str, default: str) -> List[str]:
    return [
        item.strip().lower()
        for item in os.getenv(name, default).split(",")
        if item.strip()
    ]


class AIServiceConfig(BaseModel):
    """Configuration for the adaptive AI service."""

    # Provider credentials
    openai_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY"),
        description="OpenAI API key",
    )
    gemini_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("GEMINI_API_KEY"),
        description="Gemini API key",
    )
    gemini_endpoint: str = Field(
        default_factory=lambda: os.getenv(
            "GEMINI_ENDPOINT",
            "https://generativelanguage.googleapis.com/v1beta",
        ),
        description="Gemini REST API base URL",
    )

    # Model per complexity tier
    openai_models: Dict[str, str] = Field(
        default_factory=lambda: {
            ComplexityTier.LOW.value: os.getenv("OPENAI_MODEL_LOW", "gpt-4o-mini"),
            ComplexityTier.MEDIUM.value: os.getenv("OPENAI_MODEL_MEDIUM", "gpt-4o-mini"),
            ComplexityTier.HIGH.value: os.getenv("OPENAI_MODEL_HIGH", "gpt-4o"),
            ComplexityTier.VERY_HIGH.value: os.getenv("OPENAI_MODEL_VERY_HIGH", "gpt-4o"),
        },
        description="OpenAI model per complexity tier",
    )
    gemini_models: Dict[str, str] = Field(
        default_factory=lambda: {
            ComplexityTier.LOW.value: os.getenv("GEMINI_MODEL_LOW", "gemini-1.5-flash"),
            ComplexityTier.MEDIUM.value: os.getenv("GEMINI_MODEL_MEDIUM", "gemini-1.5-flash"),
            ComplexityTier.HIGH.value: os.getenv("GEMINI_MODEL_HIGH", "gemini-1.5-pro"),
            ComplexityTier.VERY_HIGH.value: os.getenv("GEMINI_MODEL_VERY_HIGH", "gemini-1.5-pro"),
        },
        description="Gemini model per complexity tier",
    )

    # HTTP service
    host: str = Field(
        default_factory=lambda: os.getenv("AI_SERVICE_HOST", "0.0.0.0"),
        description="Bind address",
    )
    port: int = Field(
        default_factory=lambda: int(os.getenv("AI_SERVICE_PORT", "5200")),
        description="Service port",
    )

    # Cache
    cache_ttl: int = Field(
        default_factory=lambda: int(os.getenv("CACHE_TTL", "3600")),
        description="Cache time-to-live in seconds",
    )
    cache_max_entries: int = Field(
        default_factory=lambda: int(os.getenv("CACHE_MAX_ENTRIES", "1000")),
        description="Maximum in-memory cache entries",
    )
    similarity_threshold: float = Field(
        default_factory=lambda: float(os.getenv("CACHE_SIMILARITY_THRESHOLD", "0.85")),
        ge=0,
        le=1,
        description="Minimum token overlap for a similarity hit",
    )
    cache_dir: Optional[str] = Field(
        default_factory=lambda: os.getenv("CACHE_DIR") or None,
        description="Directory for the disk cache tier (disabled if unset)",
    )
    cache_disk_max_entries: int = Field(
        default_factory=lambda: int(os.getenv("CACHE_DISK_MAX_ENTRIES", "10000")),
        ge=1,
        description="Maximum entry files kept by the disk tier",
    )
    cache_redis_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("CACHE_REDIS_URL") or None,
        description="Redis URL for the durable cache tier (disabled if unset)",
    )
    cache_cleanup_interval: float = Field(
        default_factory=lambda: float(os.getenv("CACHE_CLEANUP_INTERVAL", "60")),
        gt=0,
        description="Seconds between expired-entry sweeps",
    )

    # Batch queue
    batch_flush_interval: float = Field(
        default_factory=lambda: float(os.getenv("BATCH_FLUSH_INTERVAL", "2.0")),
        gt=0,
        description="Seconds between batch flushes",
    )
    batch_size: int = Field(
        default_factory=lambda: int(os.getenv("BATCH_SIZE", "5")),
        ge=1,
        description="Maximum items per flush",
    )
    batch_priorities: List[str] = Field(
        default_factory=lambda: _env_list("BATCH_PRIORITIES", "low"),
        description="Priorities routed through the batch queue",
    )
    queue_limits: Dict[str, int] = Field(
        default_factory=lambda: {
            "high": int(os.getenv("QUEUE_LIMIT_HIGH", "100")),
            "normal": int(os.getenv("QUEUE_LIMIT_NORMAL", "200")),
            "low": int(os.getenv("QUEUE_LIMIT_LOW", "500")),
        },
        description="Per-tier queue size limits",
    )
    queue_max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("QUEUE_MAX_ATTEMPTS", "3")),
        ge=1,
        description="Attempts per queued item before failing it",
    )

    # Provider calls
    request_timeout: float = Field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30")),
        gt=0,
        description="Timeout per upstream call in seconds",
    )
    max_retries: int = Field(
        default_factory=lambda: int(os.getenv("MAX_RETRIES", "2")),
        ge=1,
        description="Attempts per provider on rate limiting",
    )
    retry_base_delay: float = Field(
        default_factory=lambda: float(os.getenv("RETRY_BASE_DELAY", "1.0")),
        ge=0,
        description="Base delay for exponential backoff",
    )
    provider_cooldown: float = Field(
        default_factory=lambda: float(os.getenv("PROVIDER_COOLDOWN", "30")),
        ge=0,
        description="Seconds a failed provider is skipped",
    )
    provider_order: List[str] = Field(
        default_factory=lambda: _env_list("PROVIDER_ORDER", "openai,gemini"),
        description="Fallback order of providers",
    )

    # Logging
    log_level: str = Field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"),
        description="Root log level",
    )
    log_file: Optional[str] = Field(
        default_factory=lambda: os.getenv("LOG_FILE", "logs/ai-service.log") or None,
        description="Log file path (disabled if empty)",
    )

    def api_key_for(self, provider: str) -> Optional[str]:
        """
        Get the API key for a provider.

        Args:
            provider: Provider name

        Returns:
            API key if configured, None otherwise
        """
        if provider == ProviderName.OPENAI.value:
            return self.openai_api_key
        if provider == ProviderName.GEMINI.value:
            return self.gemini_api_key
        return None

    def get_model_config(self, provider: str, tier: str) -> ModelConfig:
        """
        Get the model configured for a provider at a complexity tier.

        Args:
            provider: Provider name
            tier: Complexity tier

        Returns:
            ModelConfig for the pair
        """
        models = (
            self.openai_models
            if provider == ProviderName.OPENAI.value
            else self.gemini_models
        )
        return ModelConfig(
            provider=provider,
            model_name=models[tier],
            tier=tier,
        )

    def get_provider_order(self) -> List[str]:
        """
        Get configured providers in fallback order.

        Unknown names are dropped; providers missing from the
        configured order are appended in enum order.
        """
        known = [p.value for p in ProviderName]
        order = [p for p in self.provider_order if p in known]
        for provider in known:
            if provider not in order:
                order.append(provider)
        return order
