"""
Status cache backends.

Backends are plain key-value stores with a time-to-live. They own expiry and
eviction; the queue never relies on an entry being present.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from redis.asyncio import Redis

from jobqueue.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Global cache instance
_status_cache: "StatusCache | None" = None


class StatusCache(ABC):
    """Key-value cache holding serialized job snapshots."""

    name = "abstract"

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the cached value, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value under key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Drop a key if present."""

    @abstractmethod
    async def clear(self) -> None:
        """Drop every key."""

    async def ping(self) -> bool:
        """Check whether the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None


@dataclass
class CacheEntry:
    """A cached value and its expiry time."""

    value: str
    expires_at: float | None

    def is_expired(self, now: float) -> bool:
        """Check if the entry has outlived its TTL."""
        return self.expires_at is not None and now >= self.expires_at


class InMemoryStatusCache(StatusCache):
    """
    Process-local cache with TTL expiry and LRU eviction.

    Suitable for a single API process. Entries live in insertion/access order;
    once max_entries is exceeded the least recently used entry is dropped.
    """

    name = "memory"

    def __init__(
        self,
        ttl_seconds: float | None = 60,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Entry lifetime. None keeps entries until evicted.
            max_entries: Maximum number of entries held.
            clock: Monotonic time source.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return entry.value

    async def set(self, key: str, value: str) -> None:
        expires_at = None if self._ttl is None else self._clock() + self._ttl
        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
        self._entries.move_to_end(key)

        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()


class RedisStatusCache(StatusCache):
    """
    Redis-backed cache shared by every API process.

    Entries are written with SET ... EX so Redis owns expiry; eviction follows
    the server's maxmemory policy.
    """

    name = "redis"

    def __init__(
        self,
        client: Redis,
        ttl_seconds: int | None = 60,
        key_prefix: str = "job:",
    ):
        """
        Initialize the cache.

        Args:
            client: An asyncio Redis client.
            ttl_seconds: Entry lifetime. None keeps entries until evicted.
            key_prefix: Prefix owned by this cache, used by clear().
        """
        self._client = client
        self._ttl = ttl_seconds
        self._key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisStatusCache":
        """Create a cache connected to the Redis server at url."""
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    async def get(self, key: str) -> str | None:
        value = await self._client.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        await self._client.set(key, value, ex=self._ttl)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def clear(self) -> None:
        async for key in self._client.scan_iter(match=f"{self._key_prefix}*"):
            await self._client.delete(key)

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


def create_status_cache(settings: Settings | None = None) -> StatusCache:
    """
    Build the cache backend selected in settings.

    Args:
        settings: Settings to use. Defaults to the application settings.

    Returns:
        StatusCache: The configured backend.
    """
    settings = settings or get_settings()

    if settings.cache_backend == "redis":
        if not settings.redis_url:
            raise ValueError("cache_backend 'redis' requires redis_url")
        return RedisStatusCache.from_url(
            settings.redis_url,
            ttl_seconds=settings.cache_ttl_seconds,
            key_prefix=settings.cache_key_prefix,
        )

    return InMemoryStatusCache(
        ttl_seconds=settings.cache_ttl_seconds,
        max_entries=settings.cache_max_entries,
    )


def get_status_cache() -> StatusCache:
    """
    Get or create the status cache instance.

    Returns:
        StatusCache: The shared cache backend.
    """
    global _status_cache
    if _status_cache is None:
        _status_cache = create_status_cache()
        logger.info("Status cache initialized", extra={"backend": _status_cache.name})
    return _status_cache


async def close_status_cache() -> None:
    """Close and forget the shared cache backend."""
    global _status_cache
    if _status_cache is not None:
        await _status_cache.close()
        _status_cache = None
