"""
Unit tests for the queue service.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.cache.backends import InMemoryStatusCache
from jobqueue.cache.policy import StatusCachePolicy
from jobqueue.constants import JobStatus
from jobqueue.db.repository import JobRepository
from jobqueue.errors import (
    AlreadyProcessingError,
    InvalidInputError,
    InvalidStateError,
    JobNotFoundError,
    QueueError,
    StoreError,
)
from jobqueue.observability.metrics import MetricsCollector
from jobqueue.services.queue import QueueService
from jobqueue.types.job import DispatchedJob


class TestSubmit:
    """Tests for job submission."""

    async def test_submit_returns_waiting_job(self, queue: QueueService):
        """Test that a new job is immediately waiting."""
        job_id = await queue.submit(submitter_id=7, command="echo hi", priority="high")

        assert job_id == 1
        assert await queue.get_status(job_id) == JobStatus.WAITING

    async def test_submit_stores_priority_rank(
        self,
        queue: QueueService,
        db_session: AsyncSession,
    ):
        """Test that priority names map to stored ranks."""
        ids = [
            await queue.submit(1, "echo", name)
            for name in ("low", "normal", "high")
        ]

        repo = JobRepository(db_session)
        ranks = [(await repo.get_job(job_id)).priority for job_id in ids]

        assert ranks == [0, 1, 2]

    async def test_submit_caches_snapshot(
        self,
        queue: QueueService,
        cache_policy: StatusCachePolicy,
    ):
        """Test that submission writes through to the cache."""
        job_id = await queue.submit(7, "echo hi", "normal")

        cached = await cache_policy.lookup(job_id)

        assert cached is not None
        assert cached.status == JobStatus.WAITING

    async def test_submit_accepts_digit_strings(self, queue: QueueService):
        """Test that numeric strings are accepted as identifiers."""
        job_id = await queue.submit("7", "echo hi", "low")

        assert job_id > 0

    @pytest.mark.parametrize(
        ("submitter_id", "command", "priority"),
        [
            (None, "echo", "high"),
            (0, "echo", "high"),
            (-3, "echo", "high"),
            (True, "echo", "high"),
            ("abc", "echo", "high"),
            (1.5, "echo", "high"),
            (7, "", "high"),
            (7, "   ", "high"),
            (7, None, "high"),
            (7, 42, "high"),
            (7, "x" * 256, "high"),
            (7, "echo", None),
            (7, "echo", "urgent"),
            (7, "echo", "HIGH"),
            (7, "echo", 2),
            ("\u00b2", "echo", "high"),
            ("\u0663", "echo", "high"),
            (2**63, "echo", "high"),
        ],
    )
    async def test_submit_invalid_input(
        self,
        queue: QueueService,
        submitter_id,
        command,
        priority,
    ):
        """Test that malformed submissions are rejected."""
        with pytest.raises(InvalidInputError):
            await queue.submit(submitter_id, command, priority)

    async def test_submit_records_metric(
        self,
        queue: QueueService,
        metrics_registry: CollectorRegistry,
    ):
        """Test that submissions are counted by priority rank."""
        await queue.submit(7, "echo", "high")

        value = metrics_registry.get_sample_value("jobs_submitted_total", {"priority": "2"})
        assert value == 1


class TestGetStatus:
    """Tests for status lookup."""

    async def test_status_not_found(self, queue: QueueService):
        """Test that unknown ids fail."""
        with pytest.raises(JobNotFoundError):
            await queue.get_status(999)

    async def test_status_invalid_id(self, queue: QueueService):
        """Test that non-positive ids are rejected."""
        with pytest.raises(InvalidInputError):
            await queue.get_status(0)

    @pytest.mark.parametrize("job_id", [2**63, 2**64, "\u00b2"])
    async def test_status_out_of_range_id(self, queue: QueueService, job_id):
        """Test that ids the store cannot hold are rejected before any query."""
        with pytest.raises(InvalidInputError):
            await queue.get_status(job_id)

    async def test_status_largest_id_not_found(self, queue: QueueService):
        """Test that the largest storable id is looked up normally."""
        with pytest.raises(JobNotFoundError):
            await queue.get_status(2**63 - 1)

    async def test_cache_hit_skips_store(
        self,
        queue: QueueService,
        db_session: AsyncSession,
    ):
        """Test that a cached snapshot answers without reading the store."""
        job_id = await queue.submit(7, "echo", "normal")

        # Delete behind the cache's back
        await JobRepository(db_session).remove_job(job_id)
        await db_session.commit()

        assert await queue.get_status(job_id) == JobStatus.WAITING

    async def test_cache_miss_reads_store_and_caches(
        self,
        queue: QueueService,
        status_cache: InMemoryStatusCache,
        cache_policy: StatusCachePolicy,
    ):
        """Test read-through on a cache miss for an active job."""
        job_id = await queue.submit(7, "echo", "normal")
        await status_cache.clear()

        assert await queue.get_status(job_id) == JobStatus.WAITING
        assert await cache_policy.lookup(job_id) is not None

    async def test_completed_job_not_recached_on_read(
        self,
        queue: QueueService,
        status_cache: InMemoryStatusCache,
        cache_policy: StatusCachePolicy,
    ):
        """Test that terminal jobs are served from the store without caching."""
        job_id = await queue.submit(7, "echo", "normal")
        await queue.dispatch(42)
        await queue.complete(job_id)
        await status_cache.clear()

        assert await queue.get_status(job_id) == JobStatus.COMPLETED
        assert await status_cache.get(cache_policy.key_for(job_id)) is None


class TestDispatch:
    """Tests for dispatching jobs to processors."""

    async def test_dispatch_returns_job(self, queue: QueueService):
        """Test that dispatch hands out id and command."""
        job_id = await queue.submit(7, "echo hi", "high")

        dispatched = await queue.dispatch(42)

        assert dispatched == DispatchedJob(id=job_id, command="echo hi")
        assert await queue.get_status(job_id) == JobStatus.PROCESSING

    async def test_dispatch_empty_queue(self, queue: QueueService):
        """Test that an empty queue is not an error."""
        assert await queue.dispatch(42) is None

    async def test_dispatch_wide_processor_id(self, queue: QueueService):
        """Test that processor ids beyond 32 bits are stored and enforced."""
        processor_id = 2**40
        job_id = await queue.submit(7, "echo", "normal")
        await queue.submit(7, "echo", "normal")

        dispatched = await queue.dispatch(str(processor_id))

        assert dispatched.id == job_id
        with pytest.raises(AlreadyProcessingError):
            await queue.dispatch(processor_id)

    @pytest.mark.parametrize(
        "processor_id",
        [None, 0, -1, "", "abc", False, "\u00b2", 2**63, 2**64],
    )
    async def test_dispatch_invalid_processor(self, queue: QueueService, processor_id):
        """Test that missing or non-positive processor ids are rejected."""
        with pytest.raises(InvalidInputError):
            await queue.dispatch(processor_id)

    async def test_dispatch_priority_order(self, queue: QueueService):
        """Test priority desc, then FIFO within a priority."""
        low = await queue.submit(1, "low", "low")
        high_1 = await queue.submit(1, "high-1", "high")
        normal = await queue.submit(1, "normal", "normal")
        high_2 = await queue.submit(1, "high-2", "high")

        order = [(await queue.dispatch(processor)).id for processor in (1, 2, 3, 4)]

        assert order == [high_1, high_2, normal, low]

    async def test_busy_processor_refused(self, queue: QueueService):
        """Test that a processor holds at most one active job."""
        first = await queue.submit(1, "a", "normal")
        await queue.submit(1, "b", "normal")
        await queue.dispatch(42)

        with pytest.raises(AlreadyProcessingError) as exc_info:
            await queue.dispatch(42)

        assert exc_info.value.job_id == first

    async def test_busy_processor_refused_on_empty_queue(self, queue: QueueService):
        """Test that exclusivity is checked before queue emptiness."""
        await queue.submit(1, "a", "normal")
        await queue.dispatch(42)

        with pytest.raises(AlreadyProcessingError):
            await queue.dispatch(42)

    async def test_processor_freed_after_completion(self, queue: QueueService):
        """Test that completing the active job allows the next dispatch."""
        first = await queue.submit(1, "a", "normal")
        second = await queue.submit(1, "b", "normal")

        await queue.dispatch(42)
        await queue.complete(first)
        dispatched = await queue.dispatch(42)

        assert dispatched.id == second

    async def test_dispatch_updates_cache(
        self,
        queue: QueueService,
        cache_policy: StatusCachePolicy,
    ):
        """Test that the cached snapshot follows the dispatch."""
        job_id = await queue.submit(1, "a", "normal")

        await queue.dispatch(42)

        cached = await cache_policy.lookup(job_id)
        assert cached.processor_id == 42
        assert cached.status == JobStatus.PROCESSING


class TestComplete:
    """Tests for job completion."""

    async def test_complete_processing_job(self, queue: QueueService):
        """Test that a processing job becomes completed and stays so."""
        job_id = await queue.submit(1, "a", "normal")
        await queue.dispatch(42)

        await queue.complete(job_id)

        for _ in range(3):
            assert await queue.get_status(job_id) == JobStatus.COMPLETED

    async def test_complete_twice_fails(self, queue: QueueService):
        """Test that a job cannot complete twice."""
        job_id = await queue.submit(1, "a", "normal")
        await queue.dispatch(42)
        await queue.complete(job_id)

        with pytest.raises(InvalidStateError):
            await queue.complete(job_id)

    async def test_complete_waiting_fails(self, queue: QueueService):
        """Test that a waiting job cannot be completed."""
        job_id = await queue.submit(1, "a", "normal")

        with pytest.raises(InvalidStateError):
            await queue.complete(job_id)

        assert await queue.get_status(job_id) == JobStatus.WAITING

    async def test_complete_not_found(self, queue: QueueService):
        """Test that completing an unknown job fails."""
        with pytest.raises(JobNotFoundError):
            await queue.complete(999)

    async def test_complete_missing_id(self, queue: QueueService):
        """Test that a missing job id is rejected."""
        with pytest.raises(InvalidInputError):
            await queue.complete(None)

    async def test_complete_overwrites_cached_processing_status(
        self,
        queue: QueueService,
        cache_policy: StatusCachePolicy,
    ):
        """Test that the cache never reports processing after completion."""
        job_id = await queue.submit(1, "a", "normal")
        await queue.dispatch(42)
        assert (await cache_policy.lookup(job_id)).status == JobStatus.PROCESSING

        await queue.complete(job_id)

        assert (await cache_policy.lookup(job_id)).status == JobStatus.COMPLETED

    async def test_complete_records_metrics(
        self,
        queue: QueueService,
        metrics_registry: CollectorRegistry,
    ):
        """Test that completions are counted and timed."""
        job_id = await queue.submit(1, "a", "low")
        await queue.dispatch(42)
        await queue.complete(job_id)

        assert metrics_registry.get_sample_value("jobs_completed_total", {"priority": "0"}) == 1
        assert metrics_registry.get_sample_value("job_duration_seconds_count", {"priority": "0"}) == 1


class TestLifecycle:
    """End-to-end protocol scenarios."""

    async def test_status_never_moves_backward(self, queue: QueueService):
        """Test the waiting -> processing -> completed sequence."""
        job_id = await queue.submit(7, "echo hi", "high")
        seen = [await queue.get_status(job_id)]

        await queue.dispatch(42)
        seen.append(await queue.get_status(job_id))

        # Another processor cannot take it back to waiting
        assert await queue.dispatch(43) is None
        seen.append(await queue.get_status(job_id))

        await queue.complete(job_id)
        seen.append(await queue.get_status(job_id))

        assert seen == [
            JobStatus.WAITING,
            JobStatus.PROCESSING,
            JobStatus.PROCESSING,
            JobStatus.COMPLETED,
        ]

    async def test_remove_job(
        self,
        queue: QueueService,
        cache_policy: StatusCachePolicy,
    ):
        """Test administrative removal drops the store row and cache entry."""
        job_id = await queue.submit(7, "echo", "normal")

        await queue.remove(job_id)

        assert await cache_policy.lookup(job_id) is None
        with pytest.raises(JobNotFoundError):
            await queue.get_status(job_id)

    async def test_remove_unknown_job(self, queue: QueueService):
        """Test removing an unknown job fails."""
        with pytest.raises(JobNotFoundError):
            await queue.remove(999)

    async def test_summary(
        self,
        queue: QueueService,
        metrics_registry: CollectorRegistry,
    ):
        """Test job counts and the queue depth gauge."""
        first = await queue.submit(1, "a", "normal")
        await queue.submit(1, "b", "normal")
        await queue.submit(1, "c", "normal")
        await queue.dispatch(1)
        await queue.complete(first)
        await queue.dispatch(2)

        counts, depth = await queue.summary()

        assert counts == {"waiting": 1, "processing": 1, "completed": 1}
        assert depth == 1
        assert metrics_registry.get_sample_value("job_queue_depth") == 1

    async def test_average_durations(self, queue: QueueService):
        """Test that only completed jobs are averaged."""
        done = await queue.submit(1, "a", "high")
        await queue.submit(1, "b", "low")
        await queue.dispatch(1)
        await queue.complete(done)

        durations = await queue.average_durations()

        assert len(durations) == 1
        assert durations[0].priority == 2
        assert durations[0].completed_jobs == 1
        assert durations[0].average_seconds >= 0


class TestFailureHandling:
    """Tests for cache and store failures."""

    @pytest.fixture
    def broken_cache_queue(
        self,
        db_session: AsyncSession,
        metrics: MetricsCollector,
    ) -> QueueService:
        broken = AsyncMock(spec=InMemoryStatusCache)
        broken.name = "broken"
        broken.get.side_effect = ConnectionError("cache down")
        broken.set.side_effect = ConnectionError("cache down")
        broken.delete.side_effect = ConnectionError("cache down")
        policy = StatusCachePolicy(broken, metrics=metrics)
        return QueueService(db_session, policy, metrics=metrics)

    async def test_cache_failures_do_not_fail_protocol(
        self,
        broken_cache_queue: QueueService,
    ):
        """Test that every operation succeeds with the cache down."""
        queue = broken_cache_queue

        job_id = await queue.submit(7, "echo hi", "high")
        assert await queue.get_status(job_id) == JobStatus.WAITING

        dispatched = await queue.dispatch(42)
        assert dispatched.id == job_id
        assert await queue.get_status(job_id) == JobStatus.PROCESSING

        await queue.complete(job_id)
        assert await queue.get_status(job_id) == JobStatus.COMPLETED

        await queue.remove(job_id)

    async def test_store_failure_is_not_a_domain_error(
        self,
        queue: QueueService,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test that store errors surface as StoreError."""
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        monkeypatch.setattr(queue._repo, "get_job", failing)

        with pytest.raises(StoreError) as exc_info:
            await queue.get_status(1)

        assert not isinstance(exc_info.value, QueueError)
        assert isinstance(exc_info.value.__cause__, OperationalError)


class TestConcurrentDispatch:
    """Tests for dispatch under concurrent callers."""

    async def _submit_jobs(self, session_factory, cache_policy, count: int) -> list[int]:
        async with session_factory() as session:
            queue = QueueService(session, cache_policy)
            return [await queue.submit(1, f"job-{i}", "normal") for i in range(count)]

    async def _dispatch(self, session_factory, cache_policy, processor_id: int):
        async with session_factory() as session:
            return await QueueService(session, cache_policy).dispatch(processor_id)

    async def test_no_job_claimed_twice(
        self,
        session_factory,
        cache_policy: StatusCachePolicy,
    ):
        """Test that concurrent processors receive distinct jobs."""
        submitted = await self._submit_jobs(session_factory, cache_policy, 3)

        results = await asyncio.gather(
            *(self._dispatch(session_factory, cache_policy, p) for p in range(1, 6))
        )

        claimed = [r.id for r in results if r is not None]
        assert sorted(claimed) == submitted
        assert results.count(None) == 2

    async def test_same_processor_claims_once(
        self,
        session_factory,
        cache_policy: StatusCachePolicy,
    ):
        """Test that concurrent dispatches for one processor claim one job."""
        await self._submit_jobs(session_factory, cache_policy, 3)

        results = await asyncio.gather(
            *(self._dispatch(session_factory, cache_policy, 42) for _ in range(3)),
            return_exceptions=True,
        )

        claimed = [r for r in results if isinstance(r, DispatchedJob)]
        refused = [r for r in results if isinstance(r, AlreadyProcessingError)]
        assert len(claimed) == 1
        assert len(refused) == 2
