"""
In-memory cache for dashboard views.

Entries are grouped under tags so a write can drop every view that depends
on it with a single ``revalidate_tag`` call.
"""
import time
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

ADMIN_DASHBOARD_TAG = "admin-dashboard"


class TaggedCache:
    """In-memory cache with TTL and tag based invalidation."""

    def __init__(self):
        self.cache: Dict[str, tuple] = {}  # {key: (value, expiry_time)}
        self.tags: Dict[str, Set[str]] = {}  # {tag: {keys}}
        self.generations: Dict[str, int] = {}  # {tag: revalidation count}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if it exists and hasn't expired."""
        if key not in self.cache:
            self.misses += 1
            return None

        value, expiry = self.cache[key]
        if time.monotonic() > expiry:
            del self.cache[key]
            self.misses += 1
            return None

        self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl: int = 300, tags: tuple = ()):
        self.cache[key] = (value, time.monotonic() + ttl)
        for tag in tags:
            self.tags.setdefault(tag, set()).add(key)

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl: int = 300,
        tags: tuple = (),
    ) -> Any:
        """Get from cache or await ``fetch_fn`` and cache its result."""
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache HIT: %s", key)
            return cached

        logger.debug("Cache MISS: %s - fetching...", key)
        before = [self.generations.get(tag, 0) for tag in tags]
        value = await fetch_fn()
        # a tag revalidated during the fetch means the value may predate that write
        if before == [self.generations.get(tag, 0) for tag in tags]:
            self.set(key, value, ttl, tags)
        else:
            logger.debug("Not caching %s: revalidated while fetching", key)
        return value

    def revalidate_tag(self, tag: str) -> int:
        """Drop every entry stored under ``tag``. Returns how many were dropped."""
        self.generations[tag] = self.generations.get(tag, 0) + 1
        keys = self.tags.pop(tag, set())
        dropped = 0
        for key in keys:
            if self.cache.pop(key, None) is not None:
                dropped += 1
        logger.info("Revalidated tag %r (%d entries dropped)", tag, dropped)
        return dropped

    def clear(self):
        self.cache.clear()
        self.tags.clear()


# Global cache instance
_cache = TaggedCache()


def get_cache() -> TaggedCache:
    return _cache


def revalidate_tag(tag: str) -> None:
    """Fire-and-forget invalidation signal; never raises into the caller."""
    try:
        _cache.revalidate_tag(tag)
    except Exception:
        logger.exception("Failed to revalidate cache tag %r", tag)
