"""Fingerprint cache data models."""

from datetime import datetime
from typing import FrozenSet, Optional

from pydantic import BaseModel, Field

from .llm_models import CacheType, CompletionResponse


class Fingerprint(BaseModel):
    """Normalized signature of a request."""

    key: str = Field(description="SHA-256 of normalized content")
    tokens: FrozenSet[str] = Field(default_factory=frozenset)
    response_format: str = Field(default="text")

    class Config:
        """Pydantic configuration."""

        frozen = True


class CacheEntry(BaseModel):
    """Cached response keyed by fingerprint."""

    fingerprint: str
    response: CompletionResponse
    tokens: FrozenSet[str] = Field(default_factory=frozenset)
    response_format: str = Field(default="text")
    created_at: datetime = Field(default_factory=datetime.now)
    last_accessed: datetime = Field(default_factory=datetime.now)
    hit_count: int = Field(default=0)


class CacheLookup(BaseModel):
    """Result of a successful cache lookup."""

    entry: CacheEntry
    cache_type: CacheType
    similarity: float = Field(default=1.0, ge=0, le=1)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class CacheStats(BaseModel):
    """Counters reported by /stats."""

    hits: int = 0
    misses: int = 0
    fingerprint_hits: int = 0
    size: int = 0
    max_size: int = 0
    disk_size: int = 0
    evictions: int = 0
    coalesced: int = 0
    hit_rate: float = 0.0
    created_at: datetime
    last_cleanup: Optional[datetime] = None
