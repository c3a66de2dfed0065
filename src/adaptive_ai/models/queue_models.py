"""Batch queue data models."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from .llm_models import CompletionRequest, ComplexityTier


@dataclass
class QueueItem:
    """A request waiting for a batch flush."""

    request: CompletionRequest
    priority: str
    complexity: Optional[ComplexityTier] = None
    enqueue_time: datetime = field(default_factory=datetime.now)
    attempts: int = 0
    cancelled: bool = False
    dispatched: bool = False
    future: Optional[asyncio.Future] = None

    @property
    def request_id(self) -> str:
        return self.request.request_id


class EnqueueResult(BaseModel):
    """Outcome of PriorityBatchQueue.enqueue."""

    queued: bool
    request_id: str
    position: Optional[int] = Field(default=None, ge=1)
    estimated_wait_seconds: Optional[float] = Field(default=None, ge=0)


class QueueStats(BaseModel):
    """Batch queue counters reported by /stats."""

    queue_sizes: Dict[str, int]
    is_processing_batch: bool = False
    processed: int = 0
    failed: int = 0
    retried: int = 0
    cancelled: int = 0
