"""
Status cache module.
Contains cache backends and the write-through caching policy.
"""

from jobqueue.cache.backends import (
    InMemoryStatusCache,
    RedisStatusCache,
    StatusCache,
    close_status_cache,
    create_status_cache,
    get_status_cache,
)
from jobqueue.cache.policy import StatusCachePolicy

__all__ = [
    "StatusCache",
    "InMemoryStatusCache",
    "RedisStatusCache",
    "StatusCachePolicy",
    "create_status_cache",
    "get_status_cache",
    "close_status_cache",
]
