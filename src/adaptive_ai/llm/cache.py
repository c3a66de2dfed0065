"""Fingerprint response cache with similarity lookup and request coalescing."""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from .base import CacheIOError
from .fingerprint import compute_fingerprint, rank_candidates
from ..models.cache_models import CacheEntry, CacheLookup, CacheStats, Fingerprint
from ..models.llm_models import CacheType, CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)


class FingerprintCache:
    """
    In-memory response cache keyed by request fingerprint.

    PATTERN: OrderedDict LRU with TTL and size limits
    PATTERN: Inverted token index for near-duplicate lookups
    CRITICAL: At most one in-flight computation per fingerprint
    GOTCHA: Durable tier failures are logged, never raised
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: int = 3600,
        similarity_threshold: float = 0.85,
        durable_tier=None,
    ):
        """
        Initialize fingerprint cache.

        Args:
            max_size: Maximum number of in-memory entries
            default_ttl: Time-to-live in seconds
            similarity_threshold: Minimum token overlap for a similarity hit
            durable_tier: Optional DiskCacheTier or RedisCacheTier
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.similarity_threshold = similarity_threshold
        self.durable_tier = durable_tier
        self.logger = logging.getLogger(__name__)

        self.cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.token_index: Dict[str, Set[str]] = {}
        self.inflight: Dict[str, asyncio.Future] = {}

        # Statistics
        self.hits = 0
        self.misses = 0
        self.fingerprint_hits = 0
        self.evictions = 0
        self.coalesced = 0
        self.created_at = datetime.now()
        self.last_cleanup: Optional[datetime] = None

    async def lookup(
        self,
        request: CompletionRequest,
        fingerprint: Optional[Fingerprint] = None,
    ) -> Optional[CacheLookup]:
        """
        Find a cached response for a request.

        PATTERN: Exact memory -> exact durable -> similarity
        CRITICAL: Expired entries are never returned

        Args:
            request: Completion request
            fingerprint: Pre-computed fingerprint (computed if None)

        Returns:
            CacheLookup on hit, None on miss
        """
        fingerprint = fingerprint or compute_fingerprint(request)

        entry = self._get_fresh(fingerprint.key)
        if entry is None:
            entry = await self._read_durable(fingerprint.key)
            if entry is not None:
                self._insert(entry)

        if entry is not None:
            self._record_hit(entry)
            self.logger.debug(f"Exact cache hit: {fingerprint.key[:16]}...")
            return CacheLookup(entry=entry, cache_type=CacheType.EXACT, similarity=1.0)

        similar = self._find_similar(fingerprint)
        if similar is not None:
            entry, score = similar
            self._record_hit(entry)
            self.fingerprint_hits += 1
            self.logger.info(
                f"Similarity cache hit: {fingerprint.key[:16]}... -> "
                f"{entry.fingerprint[:16]}... (score: {score:.2f})"
            )
            return CacheLookup(
                entry=entry,
                cache_type=CacheType.SIMILARITY,
                similarity=round(score, 4),
            )

        self.misses += 1
        return None

    async def store(
        self,
        fingerprint: Fingerprint,
        response: CompletionResponse,
    ) -> CacheEntry:
        """
        Store a response, overwriting any entry for the fingerprint.

        Args:
            fingerprint: Request fingerprint
            response: Computed response

        Returns:
            The stored entry
        """
        entry = CacheEntry(
            fingerprint=fingerprint.key,
            response=response,
            tokens=fingerprint.tokens,
            response_format=fingerprint.response_format,
        )
        self._insert(entry)

        if self.durable_tier is not None:
            try:
                await self.durable_tier.set(entry)
            except CacheIOError as e:
                self.logger.warning(f"Durable cache write failed, memory only: {e}")

        self.logger.debug(
            f"Cached response: {fingerprint.key[:16]}... "
            f"(size: {len(self.cache)}/{self.max_size})"
        )
        return entry

    async def get_or_compute(
        self,
        fingerprint_key: str,
        compute: Callable[[], Awaitable[CompletionResponse]],
    ) -> CompletionResponse:
        """
        Run compute() unless the same fingerprint is already in flight.

        PATTERN: One shared task per fingerprint, awaited through a shield
        CRITICAL: Waiters get the shared result or exception
        GOTCHA: A cancelled caller stops waiting; the shared task keeps running

        Args:
            fingerprint_key: Fingerprint key
            compute: Coroutine factory producing the response

        Returns:
            The computed (or shared) response
        """
        task = self.inflight.get(fingerprint_key)
        if task is not None:
            self.coalesced += 1
            self.logger.debug(f"Coalescing request onto {fingerprint_key[:16]}...")
        else:
            task = asyncio.ensure_future(compute())
            self.inflight[fingerprint_key] = task
            task.add_done_callback(
                lambda done: self._finish_inflight(fingerprint_key, done)
            )

        return await asyncio.shield(task)

    def _finish_inflight(self, fingerprint_key: str, task: asyncio.Future) -> None:
        if self.inflight.get(fingerprint_key) is task:
            del self.inflight[fingerprint_key]
        if not task.cancelled():
            # Mark retrieved so a task nobody awaits does not log
            task.exception()

    async def run_cleanup(self) -> int:
        """
        Remove expired entries from memory and the durable tier.

        Returns:
            Number of in-memory entries removed
        """
        removed = self.cleanup_expired()
        if self.durable_tier is not None:
            try:
                await self.durable_tier.cleanup_expired()
            except CacheIOError as e:
                self.logger.warning(f"Durable cache cleanup failed: {e}")
        return removed

    def cleanup_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = datetime.now()
        expired_keys = [
            key for key, entry in self.cache.items()
            if self._is_expired(entry, now)
        ]

        for key in expired_keys:
            self._remove(key)

        self.last_cleanup = now
        if expired_keys:
            self.logger.info(f"Cleaned up {len(expired_keys)} expired entries")

        return len(expired_keys)

    def get_hit_rate(self) -> float:
        """Hit rate (0-1)."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def get_stats(self) -> CacheStats:
        """
        Get cache statistics.

        Returns:
            CacheStats snapshot
        """
        return CacheStats(
            hits=self.hits,
            misses=self.misses,
            fingerprint_hits=self.fingerprint_hits,
            size=len(self.cache),
            max_size=self.max_size,
            disk_size=self.durable_tier.size if self.durable_tier else 0,
            evictions=self.evictions,
            coalesced=self.coalesced,
            hit_rate=self.get_hit_rate(),
            created_at=self.created_at,
            last_cleanup=self.last_cleanup,
        )

    async def close(self) -> None:
        """Wait for in-flight computations, then close the durable tier."""
        if self.inflight:
            self.logger.info(f"Waiting for {len(self.inflight)} in-flight computations")
            await asyncio.gather(*self.inflight.values(), return_exceptions=True)
        if self.durable_tier is not None:
            await self.durable_tier.close()

    def _is_expired(self, entry: CacheEntry, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return now - entry.created_at > timedelta(seconds=self.default_ttl)

    def _get_fresh(self, key: str) -> Optional[CacheEntry]:
        entry = self.cache.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            self.logger.debug(f"Cache entry expired: {key[:16]}...")
            self._remove(key)
            return None
        return entry

    async def _read_durable(self, key: str) -> Optional[CacheEntry]:
        if self.durable_tier is None:
            return None
        try:
            entry = await self.durable_tier.get(key)
        except CacheIOError as e:
            self.logger.warning(f"Durable cache read failed, memory only: {e}")
            return None
        if entry is not None and self._is_expired(entry):
            return None
        return entry

    def _find_similar(self, fingerprint: Fingerprint):
        if not fingerprint.tokens or self.similarity_threshold >= 1.0:
            return None

        candidate_keys: Set[str] = set()
        for token in fingerprint.tokens:
            candidate_keys.update(self.token_index.get(token, ()))
        candidate_keys.discard(fingerprint.key)

        now = datetime.now()
        candidates = []
        for key in sorted(candidate_keys):
            entry = self.cache.get(key)
            if entry is None or self._is_expired(entry, now):
                continue
            if entry.response_format != fingerprint.response_format:
                continue
            candidates.append((key, entry.tokens))

        ranked = rank_candidates(fingerprint.tokens, candidates)
        if ranked and ranked[0][1] >= self.similarity_threshold:
            key, score = ranked[0]
            return self.cache[key], score
        return None

    def _record_hit(self, entry: CacheEntry) -> None:
        entry.hit_count += 1
        entry.last_accessed = datetime.now()
        self.cache.move_to_end(entry.fingerprint)
        self.hits += 1

    def _insert(self, entry: CacheEntry) -> None:
        if entry.fingerprint in self.cache:
            self._remove(entry.fingerprint)
        elif len(self.cache) >= self.max_size:
            self._evict_lru()

        self.cache[entry.fingerprint] = entry
        for token in entry.tokens:
            self.token_index.setdefault(token, set()).add(entry.fingerprint)

    def _evict_lru(self) -> None:
        if not self.cache:
            return
        lru_key = next(iter(self.cache))
        self._remove(lru_key)
        self.evictions += 1
        self.logger.debug(f"Evicted LRU entry: {lru_key[:16]}...")

    def _remove(self, key: str) -> None:
        entry = self.cache.pop(key, None)
        if entry is None:
            return
        for token in entry.tokens:
            keys = self.token_index.get(token)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self.token_index[token]


class DiskCacheTier:
    """
    Durable cache tier storing one JSON file per fingerprint.

    PATTERN: Blocking file I/O runs in a worker thread
    PATTERN: Oldest files (by mtime) are pruned beyond max_size
    CRITICAL: Directory changes and size updates happen under one lock
    """

    def __init__(self, cache_dir: str, default_ttl: int = 3600, max_size: int = 1000):
        """
        Initialize disk tier.

        Args:
            cache_dir: Directory holding the entry files
            default_ttl: Time-to-live in seconds
            max_size: Maximum number of entry files
        """
        self.cache_dir = Path(cache_dir)
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.size = len(self._entry_files())

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _entry_files(self) -> List[Path]:
        return list(self.cache_dir.glob("*.json"))

    async def get(self, key: str) -> Optional[CacheEntry]:
        """Read an entry; expired files are deleted."""
        return await asyncio.to_thread(self._read, key)

    async def set(self, entry: CacheEntry) -> None:
        """Write an entry atomically, pruning the oldest files over capacity."""
        await asyncio.to_thread(self._write, entry)

    async def cleanup_expired(self) -> int:
        """
        Delete files older than the TTL.

        Returns:
            Number of files removed
        """
        removed = await asyncio.to_thread(self._sweep)
        if removed:
            self.logger.info(f"Removed {removed} expired disk cache files")
        return removed

    async def close(self) -> None:
        """Nothing to release."""

    def _read(self, key: str) -> Optional[CacheEntry]:
        path = self._path(key)
        try:
            if not path.exists():
                return None
            entry = CacheEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as e:
            raise CacheIOError(f"Failed to read {path.name}: {e}")

        if datetime.now() - entry.created_at > timedelta(seconds=self.default_ttl):
            with self._lock:
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    self.logger.debug(f"Could not remove expired {path.name}: {e}")
                self.size = len(self._entry_files())
            return None
        return entry

    def _write(self, entry: CacheEntry) -> None:
        path = self._path(entry.fingerprint)
        tmp_path = path.with_suffix(".tmp")
        with self._lock:
            try:
                tmp_path.write_text(entry.model_dump_json(), encoding="utf-8")
                tmp_path.replace(path)
                files = self._entry_files()
            except OSError as e:
                raise CacheIOError(f"Failed to write {path.name}: {e}")

            overflow = len(files) - self.max_size
            if overflow > 0:
                files.sort(key=self._mtime)
                for old in files[:overflow]:
                    try:
                        old.unlink()
                    except OSError as e:
                        self.logger.debug(f"Could not prune {old.name}: {e}")
                self.logger.debug(f"Pruned {overflow} disk cache files over capacity")
                files = self._entry_files()

            self.size = len(files)

    def _sweep(self) -> int:
        cutoff = time.time() - self.default_ttl
        removed = 0
        with self._lock:
            try:
                files = self._entry_files()
            except OSError as e:
                raise CacheIOError(f"Failed to list {self.cache_dir}: {e}")

            for path in files:
                if self._mtime(path) >= cutoff:
                    continue
                try:
                    path.unlink()
                    removed += 1
                except OSError as e:
                    self.logger.debug(f"Could not remove expired {path.name}: {e}")

            self.size = len(files) - removed
        return removed

    @staticmethod
    def _mtime(path: Path) -> float:
        try:
            return path.stat().st_mtime
        except OSError:
            return 0.0


class RedisCacheTier:
    """
    Redis-backed durable cache tier.

    PATTERN: SETEX with the cache TTL, keys namespaced by prefix
    CRITICAL: Requires a reachable Redis server
    GOTCHA: Redis expires keys itself; size is refreshed by cleanup_expired
    """

    def __init__(
        self,
        redis_client,
        prefix: str = "ai_cache:",
        default_ttl: int = 3600,
    ):
        """
        Initialize Redis tier.

        Args:
            redis_client: redis.asyncio client instance
            prefix: Key prefix for namespacing
            default_ttl: TTL in seconds
        """
        self.redis = redis_client
        self.prefix = prefix
        self.default_ttl = default_ttl
        self.size = 0
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_url(cls, url: str, default_ttl: int = 3600) -> "RedisCacheTier":
        """Build a tier from a redis:// URL."""
        from redis import asyncio as redis_asyncio

        return cls(redis_asyncio.from_url(url), default_ttl=default_ttl)

    async def get(self, key: str) -> Optional[CacheEntry]:
        """Read an entry from Redis."""
        try:
            data = await self.redis.get(f"{self.prefix}{key}")
            if not data:
                return None
            return CacheEntry.model_validate_json(data)
        except Exception as e:
            raise CacheIOError(f"Redis cache get error: {e}")

    async def set(self, entry: CacheEntry) -> None:
        """Write an entry with TTL."""
        try:
            await self.redis.setex(
                f"{self.prefix}{entry.fingerprint}",
                self.default_ttl,
                entry.model_dump_json(),
            )
        except Exception as e:
            raise CacheIOError(f"Redis cache set error: {e}")

    async def cleanup_expired(self) -> int:
        """
        Recount live keys under the prefix.

        Returns:
            0; Redis removes expired keys on its own
        """
        count = 0
        try:
            async for _ in self.redis.scan_iter(match=f"{self.prefix}*"):
                count += 1
        except Exception as e:
            raise CacheIOError(f"Redis cache scan error: {e}")
        self.size = count
        return 0

    async def close(self) -> None:
        """Close the Redis connection."""
        try:
            await self.redis.aclose()
        except Exception as e:
            self.logger.warning(f"Error closing Redis client: {e}")
