"""
Write-through caching policy for job status reads.

The cache is never authoritative. Every state transition overwrites the
job's entry, reads fall back to the store on a miss, and backend failures are
logged and counted but never reach the caller.
"""

import logging

from pydantic import ValidationError

from jobqueue.cache.backends import StatusCache
from jobqueue.constants import JobStatus
from jobqueue.observability.metrics import MetricsCollector, get_metrics
from jobqueue.types.job import JobSnapshot

logger = logging.getLogger(__name__)


class StatusCachePolicy:
    """
    Decides what is written to and read from the status cache.

    - record_transition: after submit, dispatch and complete (always written)
    - record_read: after a store read on a cache miss (only non-completed jobs)
    - lookup: cache read returning a snapshot, or None on miss or failure
    - forget: drop the entry after an administrative remove
    """

    def __init__(
        self,
        cache: StatusCache,
        key_prefix: str = "job:",
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the policy.

        Args:
            cache: The backend holding serialized snapshots.
            key_prefix: Prefix prepended to job ids to form cache keys.
            metrics: Metrics collector. Defaults to the shared collector.
        """
        self._cache = cache
        self._key_prefix = key_prefix
        self._metrics = metrics or get_metrics()

    def key_for(self, job_id: int) -> str:
        """Cache key for a job id."""
        return f"{self._key_prefix}{job_id}"

    async def lookup(self, job_id: int) -> JobSnapshot | None:
        """
        Read a cached snapshot.

        Args:
            job_id: The job identifier.

        Returns:
            The cached snapshot, or None on miss, corrupt entry or backend error.
        """
        key = self.key_for(job_id)
        try:
            raw = await self._cache.get(key)
        except Exception as e:
            self._metrics.record_cache_request("error")
            logger.warning(
                f"Status cache read failed: {e}",
                extra={"job_id": job_id, "backend": self._cache.name},
            )
            return None

        if raw is None:
            self._metrics.record_cache_request("miss")
            return None

        try:
            snapshot = JobSnapshot.model_validate_json(raw)
        except ValidationError:
            self._metrics.record_cache_request("error")
            logger.warning("Discarding corrupt status cache entry", extra={"job_id": job_id})
            await self._safe_delete(key)
            return None

        self._metrics.record_cache_request("hit")
        return snapshot

    async def record_transition(self, job: JobSnapshot) -> None:
        """
        Write the snapshot produced by a state transition.

        Overwrites any older entry, including with completed snapshots, so a
        cached status never lags behind a transition made through this policy.
        """
        await self._safe_set(job)

    async def record_read(self, job: JobSnapshot) -> None:
        """
        Cache a snapshot read from the store on a cache miss.

        Completed jobs are not cached on read; they are terminal and would only
        grow the cache.
        """
        if job.status == JobStatus.COMPLETED:
            return
        await self._safe_set(job)

    async def forget(self, job_id: int) -> None:
        """Drop the cached snapshot of a job."""
        await self._safe_delete(self.key_for(job_id))

    async def _safe_set(self, job: JobSnapshot) -> None:
        try:
            await self._cache.set(self.key_for(job.id), job.model_dump_json())
        except Exception as e:
            self._metrics.record_cache_request("error")
            logger.warning(
                f"Status cache write failed: {e}",
                extra={"job_id": job.id, "backend": self._cache.name},
            )

    async def _safe_delete(self, key: str) -> None:
        try:
            await self._cache.delete(key)
        except Exception as e:
            self._metrics.record_cache_request("error")
            logger.warning(
                f"Status cache delete failed: {e}",
                extra={"key": key, "backend": self._cache.name},
            )
