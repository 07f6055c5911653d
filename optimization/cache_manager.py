"""
Cache Manager - Two-Pool Memoization Layer
==========================================

In-process cache with two independently sized regions:

- Profile pool: few entries, longer TTL (reader profiles, popular categories)
- Content pool: more entries, shorter TTL (plans, articles, recommendations,
  model selections, insights)

Keys are routed by naming convention: any key containing ``user_profile``
lives in the profile pool. Each pool evicts its least recently used entry at
capacity and expires entries by TTL on read.

The cache is never authoritative. A miss always recomputes from the real
producer, so concurrent writers may race and the last write wins.
"""

import hashlib
import inspect
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from loguru import logger

from config.constants import CACHE_LIMITS, PROFILE_KEY_MARKER
from core.models import utc_now

_MISSING = object()


class CachePool(str, Enum):
    """Cache regions."""

    PROFILE = "profile"
    CONTENT = "content"


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0


@dataclass
class CacheEntry:
    """Cache entry with insertion metadata."""

    key: str
    value: Any
    inserted_at: float
    ttl_seconds: float
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl_seconds


class LRUPool:
    """
    Bounded TTL map with least-recently-used eviction.

    Recency is kept by ``OrderedDict`` order: reads and writes move the key
    to the end, eviction pops from the front.
    """

    def __init__(
        self,
        name: CachePool,
        max_entries: int,
        default_ttl: float,
        clock: Callable[[], float],
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.name = name
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.stats = CacheStats()

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return _MISSING

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.stats.expirations += 1
            self.stats.misses += 1
            return _MISSING

        entry.access_count += 1
        self._entries.move_to_end(key)
        self.stats.hits += 1
        return entry.value

    def contains(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug(f"Evicted LRU entry from {self.name.value} pool: {evicted_key}")

        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            inserted_at=self._clock(),
            ttl_seconds=self.default_ttl if ttl is None else ttl,
        )
        self.stats.sets += 1

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self.stats.expirations += len(expired)
        return len(expired)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)


class CacheManager:
    """
    Two-pool cache facade.

    Coordinates routing, key derivation, statistics and the domain helpers
    (similar-content reuse, cache warming) used by the pipeline.
    """

    def __init__(
        self,
        content_max_entries: int = CACHE_LIMITS.CONTENT_MAX_ENTRIES,
        content_ttl: float = CACHE_LIMITS.CONTENT_TTL,
        profile_max_entries: int = CACHE_LIMITS.PROFILE_MAX_ENTRIES,
        profile_ttl: float = CACHE_LIMITS.PROFILE_TTL,
        metrics_collector: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache manager.

        Args:
            content_max_entries: Capacity of the content pool
            content_ttl: Default TTL in seconds for the content pool
            profile_max_entries: Capacity of the profile pool
            profile_ttl: Default TTL in seconds for the profile pool
            metrics_collector: Optional metrics collector for Prometheus metrics
            clock: Monotonic time source in seconds
        """
        self._pools: Dict[CachePool, LRUPool] = {
            CachePool.CONTENT: LRUPool(CachePool.CONTENT, content_max_entries, content_ttl, clock),
            CachePool.PROFILE: LRUPool(CachePool.PROFILE, profile_max_entries, profile_ttl, clock),
        }
        self.metrics_collector = metrics_collector

        logger.info(
            f"Cache manager initialized (content: {content_max_entries}/{content_ttl}s, "
            f"profile: {profile_max_entries}/{profile_ttl}s)"
        )

    # =========================================================================
    # ROUTING
    # =========================================================================

    @staticmethod
    def pool_for(key: str) -> CachePool:
        """Route a key to its pool by naming convention."""
        return CachePool.PROFILE if PROFILE_KEY_MARKER in key else CachePool.CONTENT

    def _pool(self, key: str) -> LRUPool:
        return self._pools[self.pool_for(key)]

    # =========================================================================
    # GET/SET INTERFACE
    # =========================================================================

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a live value.

        Returns:
            Cached value, or None when absent or expired
        """
        pool = self._pool(key)
        value = pool.get(key)

        if self.metrics_collector:
            if value is _MISSING:
                self.metrics_collector.record_cache_miss(pool.name.value)
            else:
                self.metrics_collector.record_cache_hit(pool.name.value)

        return None if value is _MISSING else value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a value in the key's pool.

        Args:
            key: Cache key
            value: Value to cache (None is never cached)
            ttl: Time-to-live in seconds (None = pool default)

        Returns:
            True if the value was cached
        """
        if value is None:
            return False

        self._pool(key).set(key, value, ttl)
        return True

    async def has(self, key: str) -> bool:
        return self._pool(key).contains(key)

    async def delete(self, key: str) -> bool:
        return self._pool(key).delete(key)

    async def get_or_compute(
        self,
        key: str,
        producer: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Memoize an async producer.

        The producer runs on every miss; its errors propagate to the caller
        and nothing is cached.
        """
        value = await self.get(key)
        if value is not None:
            return value

        value = producer()
        if inspect.isawaitable(value):
            value = await value
        await self.set(key, value, ttl)
        return value

    async def clear(self, pool: Optional[CachePool] = None) -> None:
        """Clear one pool, or both when ``pool`` is None."""
        targets = [self._pools[pool]] if pool else list(self._pools.values())
        for target in targets:
            target.clear()
        logger.info(f"Cleared cache pools: {[t.name.value for t in targets]}")

    # =========================================================================
    # KEY DERIVATION
    # =========================================================================

    @staticmethod
    def generate_key(prefix: str, payload: Any) -> str:
        """
        Derive a stable key from an arbitrary payload.

        Mapping keys are sorted and sets are serialized sorted, so equivalent
        payloads always hash the same.
        """
        serialized = json.dumps(_normalize(payload), sort_keys=True, ensure_ascii=False, default=str)
        digest = hashlib.md5(serialized.encode("utf-8")).hexdigest()  # nosec B324
        return f"{prefix}_{digest}"

    @classmethod
    def generate_content_key(
        cls,
        topics: Iterable[str],
        category: Optional[str] = None,
        content_style: Optional[str] = None,
        reading_level: Optional[str] = None,
        top_categories: Iterable[str] = (),
    ) -> str:
        """
        Derive a content key from the semantically relevant request fields.

        Topic order and the order of the (at most three) leading profile
        categories do not affect the key.
        """
        payload = {
            "topics": sorted(t.strip().lower() for t in topics),
            "category": category,
            "content_style": content_style,
            "reading_level": reading_level,
            "top_categories": sorted(list(top_categories)[:3]),
        }
        return cls.generate_key("content", payload)

    # =========================================================================
    # DOMAIN HELPERS
    # =========================================================================

    async def find_similar_content(
        self,
        article_repository: Any,
        topics: List[str],
        category: str,
        days: int = 7,
    ) -> Optional[Dict[str, Any]]:
        """
        Look for a recent stored article that already covers one of the topics.

        Returns:
            The article dict marked as reused, or None
        """
        try:
            recent = await article_repository.find_recent_in_category(
                category, since=utc_now() - timedelta(days=days), limit=10
            )
        except Exception as e:
            logger.warning(f"Similar-content lookup failed for category {category}: {e}")
            return None

        lowered = [t.lower() for t in topics if t]
        for article in recent:
            title = (article.get("title") or "").lower()
            content = (article.get("content") or "").lower()
            title_words = set(title.split())
            if any(t in title or t in content or t in title_words for t in lowered):
                logger.info(f"Reusing similar content: {article.get('title')}")
                return {**article, "personality_match": 85, "is_reused": True}

        return None

    async def warm_cache(self, article_repository: Any) -> int:
        """
        Preload the five most popular categories into the profile pool.

        Returns:
            Number of keys warmed
        """
        try:
            categories = await article_repository.get_popular_categories(limit=5)
        except Exception as e:
            logger.warning(f"Cache warming failed: {e}")
            return 0

        warmed = 0
        for category in categories:
            if await self.set(f"{PROFILE_KEY_MARKER}_popular_category_{category}", category):
                warmed += 1

        if categories:
            await self.set(f"{PROFILE_KEY_MARKER}_popular_categories", list(categories))

        logger.info(f"Cache warming complete: {warmed} categories preloaded")
        return warmed

    # =========================================================================
    # STATISTICS & MAINTENANCE
    # =========================================================================

    async def cleanup_expired(self) -> int:
        """
        Remove expired entries from both pools.

        Returns:
            Number of entries removed
        """
        removed = sum(pool.purge_expired() for pool in self._pools.values())
        if removed:
            logger.info(f"Cleaned up {removed} expired cache entries")
        return removed

    def get_statistics(self) -> Dict[str, Any]:
        """Per-pool and global cache statistics."""
        hits = sum(p.stats.hits for p in self._pools.values())
        misses = sum(p.stats.misses for p in self._pools.values())
        total = hits + misses

        return {
            "global": {
                "hits": hits,
                "misses": misses,
                "hit_rate": (hits / total * 100) if total > 0 else 0.0,
                "size": sum(len(p) for p in self._pools.values()),
            },
            "pools": {
                name.value: {
                    "size": len(pool),
                    "max_size": pool.max_entries,
                    "default_ttl": pool.default_ttl,
                    "hits": pool.stats.hits,
                    "misses": pool.stats.misses,
                    "sets": pool.stats.sets,
                    "evictions": pool.stats.evictions,
                    "expirations": pool.stats.expirations,
                    "hit_rate": pool.stats.hit_rate,
                }
                for name, pool in self._pools.items()
            },
        }

    @property
    def hit_rate(self) -> float:
        """Global hit rate percentage."""
        return self.get_statistics()["global"]["hit_rate"]

    @property
    def size(self) -> int:
        return sum(len(p) for p in self._pools.values())


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(_normalize(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value
