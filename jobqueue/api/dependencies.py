"""
FastAPI dependencies wiring the queue service to a request.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.cache.backends import StatusCache, get_status_cache
from jobqueue.cache.policy import StatusCachePolicy
from jobqueue.config import get_settings
from jobqueue.db import get_async_session
from jobqueue.services.queue import QueueService


def get_cache_policy(
    cache: StatusCache = Depends(get_status_cache),
) -> StatusCachePolicy:
    """Status cache policy over the shared cache backend."""
    return StatusCachePolicy(cache, key_prefix=get_settings().cache_key_prefix)


def get_queue_service(
    session: AsyncSession = Depends(get_async_session),
    cache: StatusCachePolicy = Depends(get_cache_policy),
) -> QueueService:
    """Queue service bound to the request's database session."""
    return QueueService(session, cache)


QueueServiceDep = Annotated[QueueService, Depends(get_queue_service)]
