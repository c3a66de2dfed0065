"""Request/response models for the adaptive AI service."""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ProviderName(str, Enum):
    """Supported upstream AI providers."""

    OPENAI = "openai"
    GEMINI = "gemini"


class ComplexityTier(str, Enum):
    """Complexity tiers driving model selection."""

    LOW = "low"              # Cheap/fast model
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"  # Most capable model


class PriorityTier(str, Enum):
    """Scheduling priority of a request."""

    CRITICAL = "critical"  # Never queued
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class ResponseFormat(str, Enum):
    """Requested response body format."""

    TEXT = "text"
    JSON = "json"


class CacheType(str, Enum):
    """How a cached response was found."""

    EXACT = "exact"
    SIMILARITY = "similarity"


class Message(BaseModel):
    """Single chat message."""

    role: str = Field(pattern="^(system|user|assistant)$")
    content: str

    class Config:
        """Pydantic configuration."""

        frozen = True


class CompletionRequest(BaseModel):
    """Chat completion request submitted by a consumer."""

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(min_length=1, description="Requesting user")
    messages: List[Message] = Field(min_length=1, description="Chat messages")
    complexity: Optional[ComplexityTier] = Field(
        default=None,
        description="Explicit complexity override",
    )
    priority: PriorityTier = Field(default=PriorityTier.NORMAL)
    response_format: ResponseFormat = Field(default=ResponseFormat.TEXT)
    force_fresh: bool = Field(default=False)
    preferred_provider: Optional[ProviderName] = Field(default=None)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True
        frozen = True

    def message_dicts(self) -> List[dict]:
        """Messages in OpenAI chat format."""
        return [{"role": m.role, "content": m.content} for m in self.messages]


class CompletionResponse(BaseModel):
    """Completed AI response returned to the caller."""

    request_id: str
    content: str = Field(description="Response content")
    model: str = Field(description="Model that generated the response")
    provider: ProviderName
    complexity: ComplexityTier
    cached: bool = Field(default=False)
    cache_type: Optional[CacheType] = Field(default=None)
    similarity: Optional[float] = Field(default=None, ge=0, le=1)
    processing_time_ms: int = Field(default=0, description="Response time")
    fallback_used: bool = Field(default=False)
    queued: bool = Field(default=False)
    input_tokens: int = Field(default=0, description="Prompt tokens")
    output_tokens: int = Field(default=0, description="Completion tokens")

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class QueuedAcknowledgement(BaseModel):
    """Returned instead of a response when a request was batched."""

    request_id: str
    queued: bool = Field(default=True)
    queue_position: int = Field(ge=1)
    estimated_wait_seconds: float = Field(ge=0)
    priority: PriorityTier

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class ModelConfig(BaseModel):
    """Model selection for one provider at one complexity tier."""

    provider: ProviderName
    model_name: str = Field(description="Model identifier")
    tier: ComplexityTier
    max_tokens: int = Field(default=2048, description="Max output tokens")

    class Config:
        """Pydantic configuration."""

        use_enum_values = True
