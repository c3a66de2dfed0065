"""Priority batch queue for non-urgent completion requests."""

import asyncio
import logging
import math
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Optional

from .base import AIServiceError, QueueFullError
from ..models.llm_models import CompletionResponse, PriorityTier
from ..models.queue_models import EnqueueResult, QueueItem, QueueStats

logger = logging.getLogger(__name__)

Processor = Callable[[QueueItem], Awaitable[CompletionResponse]]


class PriorityBatchQueue:
    """
    Buffers requests per priority tier and flushes them in batches.

    PATTERN: One FIFO deque per tier, drained strictly high -> normal -> low
    CRITICAL: Critical priority is never queued
    CRITICAL: One item's failure never aborts the rest of its batch
    GOTCHA: No starvation protection for low priority
    """

    TIER_ORDER = (
        PriorityTier.HIGH.value,
        PriorityTier.NORMAL.value,
        PriorityTier.LOW.value,
    )

    def __init__(
        self,
        processor: Processor,
        flush_interval: float = 2.0,
        batch_size: int = 5,
        max_attempts: int = 3,
        queue_limits: Optional[Dict[str, int]] = None,
        retain_results: int = 1000,
    ):
        """
        Initialize batch queue.

        Args:
            processor: Coroutine computing the response for an item
            flush_interval: Seconds between flush ticks
            batch_size: Maximum items dispatched per tick
            max_attempts: Attempts per item before failing it
            queue_limits: Maximum waiting items per tier
            retain_results: Finished items kept for result retrieval
        """
        self.processor = processor
        self.flush_interval = flush_interval
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.queue_limits = queue_limits or {}
        self.retain_results = retain_results
        self.logger = logging.getLogger(__name__)

        self.queues: Dict[str, Deque[QueueItem]] = {
            tier: deque() for tier in self.TIER_ORDER
        }
        self.items: Dict[str, QueueItem] = {}
        self._finished: Deque[str] = deque()

        self.is_processing_batch = False
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._stopped = False

        # Statistics
        self.processed = 0
        self.failed = 0
        self.retried = 0
        self.cancelled = 0

    def enqueue(self, item: QueueItem) -> EnqueueResult:
        """
        Add an item to its tier.

        Args:
            item: Queue item

        Returns:
            EnqueueResult; queued=False for critical priority

        Raises:
            QueueFullError: If the tier is at its limit or the queue is stopped
        """
        if item.priority == PriorityTier.CRITICAL.value:
            return EnqueueResult(queued=False, request_id=item.request_id)

        if item.priority not in self.queues:
            raise ValueError(f"Unknown priority tier: {item.priority}")
        if self._stopped:
            raise QueueFullError("Batch queue is shut down")

        limit = self.queue_limits.get(item.priority)
        if limit is not None and self._live_count(item.priority) >= limit:
            raise QueueFullError(f"{item.priority} queue is full ({limit} items)")

        item.future = asyncio.get_running_loop().create_future()
        self.queues[item.priority].append(item)
        self.items[item.request_id] = item

        position = self.position_of(item)
        wait = self.estimate_wait(position)

        self.logger.info(
            f"Queued {item.request_id} at {item.priority} priority "
            f"(position {position}, ~{wait:.1f}s)"
        )
        return EnqueueResult(
            queued=True,
            request_id=item.request_id,
            position=position,
            estimated_wait_seconds=wait,
        )

    def position_of(self, item: QueueItem) -> int:
        """
        1-based service position of a waiting item.

        Counts live items in higher tiers plus those ahead in its own tier.
        """
        position = 0
        for tier in self.TIER_ORDER:
            for queued in self.queues[tier]:
                if queued.cancelled:
                    continue
                position += 1
                if queued is item:
                    return position
        return position

    def estimate_wait(self, position: int) -> float:
        """Seconds until the flush tick that will dispatch ``position``."""
        return math.ceil(position / self.batch_size) * self.flush_interval

    def cancel(self, request_id: str) -> bool:
        """
        Cancel a waiting item.

        GOTCHA: Dispatched items cannot be cancelled

        Returns:
            True if the item was waiting and is now cancelled
        """
        item = self.items.get(request_id)
        if item is None or item.dispatched or item.cancelled:
            return False

        item.cancelled = True
        if item.future is not None and not item.future.done():
            item.future.cancel()
        self.cancelled += 1
        self.logger.info(f"Cancelled queued request {request_id}")
        return True

    def get_item(self, request_id: str) -> Optional[QueueItem]:
        """Look up a waiting, in-flight or recently finished item."""
        return self.items.get(request_id)

    async def wait_for(
        self,
        request_id: str,
        timeout: Optional[float] = None,
    ) -> CompletionResponse:
        """
        Await the result of a queued item.

        Raises:
            KeyError: Unknown request id
            asyncio.TimeoutError: Result not ready within timeout
            asyncio.CancelledError: Item was cancelled
        """
        item = self.items.get(request_id)
        if item is None or item.future is None:
            raise KeyError(request_id)
        return await asyncio.wait_for(asyncio.shield(item.future), timeout)

    async def flush(self, limit: Optional[int] = None) -> int:
        """
        Dispatch up to ``limit`` items in strict priority order.

        PATTERN: Items of a batch run concurrently, dispatched in order
        CRITICAL: Cancelled items are dropped without calling the processor

        Args:
            limit: Maximum items (defaults to batch_size)

        Returns:
            Number of items dispatched
        """
        if self.is_processing_batch:
            return 0

        batch = self._next_batch(limit or self.batch_size)
        if not batch:
            return 0

        self.is_processing_batch = True
        self.logger.info(f"Flushing batch of {len(batch)} items")
        try:
            await asyncio.gather(*(self._process_item(item) for item in batch))
        finally:
            self.is_processing_batch = False

        return len(batch)

    def start(self) -> None:
        """Start the periodic flush loop."""
        if self._task is not None or self._stopped:
            return
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        self.logger.info(
            f"Batch queue started (interval {self.flush_interval}s, "
            f"batch size {self.batch_size})"
        )

    async def stop(self, drain: bool = True) -> None:
        """
        Stop the flush loop, optionally draining remaining items.

        Idempotent. In-flight batches are allowed to finish.
        """
        if self._stopped:
            return
        self._stopped = True

        if self._task is not None:
            self._wake.set()
            await self._task
            self._task = None

        if drain:
            while self.pending_count():
                await self.flush(limit=self.pending_count())
        else:
            for tier in self.TIER_ORDER:
                for item in self.queues[tier]:
                    self.cancel(item.request_id)
                    self._mark_finished(item)
                self.queues[tier].clear()

        self.logger.info("Batch queue stopped")

    def pending_count(self) -> int:
        """Live waiting items across all tiers."""
        return sum(self._live_count(tier) for tier in self.TIER_ORDER)

    def get_stats(self) -> QueueStats:
        """
        Get queue statistics.

        Returns:
            QueueStats snapshot; critical is always 0
        """
        sizes = {PriorityTier.CRITICAL.value: 0}
        sizes.update({tier: self._live_count(tier) for tier in self.TIER_ORDER})
        return QueueStats(
            queue_sizes=sizes,
            is_processing_batch=self.is_processing_batch,
            processed=self.processed,
            failed=self.failed,
            retried=self.retried,
            cancelled=self.cancelled,
        )

    async def _run(self) -> None:
        while not self._stopped:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.flush_interval)
            except asyncio.TimeoutError:
                pass
            if self._stopped:
                break
            try:
                await self.flush()
            except Exception as e:
                self.logger.error(f"Batch flush failed: {e}", exc_info=True)

    def _live_count(self, tier: str) -> int:
        return sum(1 for item in self.queues[tier] if not item.cancelled)

    def _next_batch(self, limit: int) -> List[QueueItem]:
        batch: List[QueueItem] = []
        for tier in self.TIER_ORDER:
            queue = self.queues[tier]
            while queue and len(batch) < limit:
                item = queue.popleft()
                if item.cancelled:
                    self._mark_finished(item)
                    continue
                item.dispatched = True
                batch.append(item)
        return batch

    async def _process_item(self, item: QueueItem) -> None:
        """Run the processor with bounded retries and resolve the item's future."""
        while True:
            item.attempts += 1
            try:
                result = await self.processor(item)
            except asyncio.CancelledError:
                # Fails only this item; gather still re-raises if the flush
                # itself was cancelled
                self.failed += 1
                message = f"Queued request {item.request_id} was cancelled while processing"
                self.logger.warning(message)
                self._fail(item, AIServiceError(message))
                break
            except Exception as e:
                if item.attempts < self.max_attempts:
                    self.retried += 1
                    self.logger.warning(
                        f"Queued request {item.request_id} failed "
                        f"(attempt {item.attempts}/{self.max_attempts}): {e}"
                    )
                    continue

                self.failed += 1
                self.logger.error(
                    f"Queued request {item.request_id} failed after "
                    f"{item.attempts} attempts: {e}"
                )
                self._fail(item, e)
                break

            self.processed += 1
            if not item.future.done():
                item.future.set_result(result)
            break

        self._mark_finished(item)

    def _fail(self, item: QueueItem, error: Exception) -> None:
        if item.future.done():
            return
        item.future.set_exception(error)
        # Callers may never collect the result
        item.future.exception()

    def _mark_finished(self, item: QueueItem) -> None:
        self._finished.append(item.request_id)
        while len(self._finished) > self.retain_results:
            self.items.pop(self._finished.popleft(), None)
