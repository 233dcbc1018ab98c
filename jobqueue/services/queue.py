"""
Queue service.

Orchestrates the job protocol: submission, status lookup, dispatch to
processors and completion. The job store is the single source of truth; the
status cache only shortens status reads.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.cache.policy import StatusCachePolicy
from jobqueue.constants import (
    COMMAND_MAX_LENGTH,
    ID_MAX_VALUE,
    PRIORITY_WEIGHTS,
    SPAN_COMPLETE_JOB,
    SPAN_DISPATCH_JOB,
    SPAN_GET_STATUS,
    SPAN_SUBMIT_JOB,
    JobPriority,
    JobStatus,
)
from jobqueue.db.repository import JobRepository
from jobqueue.errors import (
    AlreadyProcessingError,
    InvalidInputError,
    InvalidStateError,
    JobNotFoundError,
    StoreError,
)
from jobqueue.observability.metrics import MetricsCollector, get_metrics
from jobqueue.observability.tracing import get_tracer, set_span_attributes
from jobqueue.types.job import DispatchedJob, PriorityDuration, utcnow

logger = logging.getLogger(__name__)


def require_positive_int(value: Any, field: str) -> int:
    """
    Validate an identifier field.

    Integers and ASCII decimal digit strings are accepted; booleans are not.
    Values must fit a BIGINT column.

    Raises:
        InvalidInputError: If the value is missing or not a positive integer.
    """
    if isinstance(value, str):
        digits = value.strip()
        if digits.isascii() and digits.isdigit():
            value = int(digits)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputError(f"{field} must be a positive integer")
    if value > ID_MAX_VALUE:
        raise InvalidInputError(f"{field} must be at most {ID_MAX_VALUE}")
    return value


def require_command(value: Any) -> str:
    """
    Validate a job command.

    Raises:
        InvalidInputError: If the command is missing, blank or too long.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError("command must be a non-empty string")
    if len(value) > COMMAND_MAX_LENGTH:
        raise InvalidInputError(
            f"command must be at most {COMMAND_MAX_LENGTH} characters"
        )
    return value


def parse_priority(value: Any) -> int:
    """
    Map a priority name to its stored rank.

    Raises:
        InvalidInputError: If the name is not low, normal or high.
    """
    try:
        return PRIORITY_WEIGHTS[JobPriority(value)]
    except ValueError:
        names = ", ".join(p.value for p in JobPriority)
        raise InvalidInputError(f"priority must be one of: {names}") from None


class QueueService:
    """
    Job queue protocol over one database session.

    Operations:
    - submit: enqueue a waiting job
    - get_status: cache-first status read
    - dispatch: hand the next job to a processor (one active job per processor)
    - complete: mark a processing job as completed
    - remove: administrative delete
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: StatusCachePolicy,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the service.

        Args:
            session: The async database session.
            cache: Status cache policy.
            metrics: Metrics collector. Defaults to the shared collector.
        """
        self._session = session
        self._repo = JobRepository(session)
        self._cache = cache
        self._metrics = metrics or get_metrics()
        self._tracer = get_tracer()

    @asynccontextmanager
    async def _store_operation(self, operation: str) -> AsyncGenerator[None]:
        """Roll back and wrap store failures raised inside the block."""
        try:
            yield
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(
                f"Job store failure during {operation}: {e}",
                extra={"operation": operation},
            )
            raise StoreError(f"Job store unavailable during {operation}") from e

    async def submit(self, submitter_id: Any, command: Any, priority: Any) -> int:
        """
        Submit a new job.

        Args:
            submitter_id: Positive submitter identifier.
            command: Non-empty command string.
            priority: Priority name (low, normal or high).

        Returns:
            The id of the new job.

        Raises:
            InvalidInputError: If any field is invalid.
            StoreError: If the job could not be stored.
        """
        submitter_id = require_positive_int(submitter_id, "submitter_id")
        command = require_command(command)
        rank = parse_priority(priority)

        with self._tracer.start_as_current_span(SPAN_SUBMIT_JOB):
            async with self._store_operation("submit"):
                job = await self._repo.create_job(submitter_id, command, rank)
                await self._session.commit()

            set_span_attributes(job_id=job.id, priority=rank)
            await self._cache.record_transition(job)

        self._metrics.record_job_submitted(rank)
        return job.id

    async def get_status(self, job_id: Any) -> JobStatus:
        """
        Get the derived status of a job.

        A cached snapshot is trusted as-is; the store is read only on a miss.

        Args:
            job_id: The job identifier.

        Returns:
            The job's status.

        Raises:
            InvalidInputError: If job_id is not a positive integer.
            JobNotFoundError: If the job does not exist.
        """
        job_id = require_positive_int(job_id, "job_id")

        with self._tracer.start_as_current_span(SPAN_GET_STATUS):
            set_span_attributes(job_id=job_id)

            cached = await self._cache.lookup(job_id)
            if cached is not None:
                set_span_attributes(cache_hit=True)
                return cached.status

            async with self._store_operation("get_status"):
                job = await self._repo.get_job(job_id)

            if job is None:
                raise JobNotFoundError(job_id)

            await self._cache.record_read(job)
            return job.status

    async def dispatch(self, processor_id: Any) -> DispatchedJob | None:
        """
        Hand the next waiting job to a processor.

        Args:
            processor_id: Positive processor identifier.

        Returns:
            The claimed job's id and command, or None if no job is waiting.

        Raises:
            InvalidInputError: If processor_id is not a positive integer.
            AlreadyProcessingError: If the processor has an unfinished job.
        """
        processor_id = require_positive_int(processor_id, "processor_id")

        with self._tracer.start_as_current_span(SPAN_DISPATCH_JOB):
            set_span_attributes(processor_id=processor_id)

            async with self._store_operation("dispatch"):
                active = await self._repo.find_active_by_processor(processor_id)
                job = None
                if active is None:
                    job = await self._repo.claim_next_job(processor_id)
                    if job is None:
                        # The claim also refuses busy processors
                        active = await self._repo.find_active_by_processor(processor_id)
                await self._session.commit()

            if active is not None:
                self._metrics.record_dispatch_rejected("already_processing")
                logger.info(
                    "Dispatch refused, processor busy",
                    extra={"processor_id": processor_id, "job_id": active.id},
                )
                raise AlreadyProcessingError(processor_id, active.id)

            if job is None:
                self._metrics.record_dispatch_rejected("queue_empty")
                return None

            set_span_attributes(job_id=job.id)
            await self._cache.record_transition(job)

        self._metrics.record_job_dispatched(job.priority)
        logger.info(
            "Dispatched job",
            extra={"job_id": job.id, "processor_id": processor_id},
        )
        return DispatchedJob(id=job.id, command=job.command)

    async def complete(self, job_id: Any) -> None:
        """
        Mark a processing job as completed.

        Args:
            job_id: The job identifier.

        Raises:
            InvalidInputError: If job_id is not a positive integer.
            JobNotFoundError: If the job does not exist.
            InvalidStateError: If the job is not processing.
        """
        job_id = require_positive_int(job_id, "job_id")

        with self._tracer.start_as_current_span(SPAN_COMPLETE_JOB):
            set_span_attributes(job_id=job_id)

            async with self._store_operation("complete"):
                job = await self._repo.get_job(job_id)
                if job is None:
                    raise JobNotFoundError(job_id)

                completed = await self._repo.update_job(
                    job.complete(utcnow()),
                    expected=JobStatus.PROCESSING,
                )
                if completed is None:
                    raise InvalidStateError(
                        f"Job {job_id} was completed concurrently"
                    )
                await self._session.commit()

            await self._cache.record_transition(completed)

        self._metrics.record_job_completed(completed.priority, completed.duration_seconds)
        logger.info(
            "Completed job",
            extra={"job_id": job_id, "processor_id": completed.processor_id},
        )

    async def remove(self, job_id: Any) -> None:
        """
        Delete a job regardless of its status.

        Administrative operation; not part of the dispatch protocol.

        Raises:
            InvalidInputError: If job_id is not a positive integer.
            JobNotFoundError: If the job does not exist.
        """
        job_id = require_positive_int(job_id, "job_id")

        async with self._store_operation("remove"):
            removed = await self._repo.remove_job(job_id)
            await self._session.commit()

        if not removed:
            raise JobNotFoundError(job_id)

        await self._cache.forget(job_id)

    async def average_durations(self) -> list[PriorityDuration]:
        """Average time to completion per priority rank."""
        async with self._store_operation("average_durations"):
            return await self._repo.get_average_durations()

    async def summary(self) -> tuple[dict[str, int], int]:
        """
        Job counts by status and the current queue depth.

        Also refreshes the queue depth gauge.
        """
        async with self._store_operation("summary"):
            counts = await self._repo.get_status_counts()
            depth = await self._repo.get_queue_depth()

        self._metrics.update_queue_depth(depth)
        return counts, depth
