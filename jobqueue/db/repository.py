"""
Job repository for database operations.
Implements the core data access patterns for the job queue.
"""

import logging
from typing import Any

from sqlalchemy import (
    and_,
    case,
    delete,
    exists,
    extract,
    func,
    insert,
    literal_column,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.constants import JobStatus
from jobqueue.db.models import jobs_table
from jobqueue.types.job import JobSnapshot, PriorityDuration, utcnow

logger = logging.getLogger(__name__)


def _status_filter(status: JobStatus) -> list[Any]:
    """SQL predicates matching rows in the given derived status."""
    if status == JobStatus.WAITING:
        return [jobs_table.c.processor_id.is_(None)]
    if status == JobStatus.PROCESSING:
        return [
            jobs_table.c.processor_id.is_not(None),
            jobs_table.c.completion_timestamp.is_(None),
        ]
    return [
        jobs_table.c.processor_id.is_not(None),
        jobs_table.c.completion_timestamp.is_not(None),
    ]


def _to_snapshot(row: Any) -> JobSnapshot:
    """Convert a result row into an immutable job snapshot."""
    return JobSnapshot(
        id=row.id,
        submitter_id=row.submitter_id,
        processor_id=row.processor_id,
        command=row.command,
        priority=row.priority,
        creation_timestamp=row.creation_timestamp,
        completion_timestamp=row.completion_timestamp,
    )


class JobRepository:
    """
    Repository for job database operations.

    Implements atomic operations for:
    - Job submission
    - Dispatch claims guarded by per-processor exclusivity
    - Compare-and-set status transitions
    - Queue statistics
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    @property
    def dialect(self) -> str:
        """Name of the database dialect behind the session."""
        return self._session.get_bind().dialect.name

    async def create_job(
        self,
        submitter_id: int,
        command: str,
        priority: int,
    ) -> JobSnapshot:
        """
        Insert a new waiting job.

        Args:
            submitter_id: The submitter identifier.
            command: The command to run.
            priority: Numeric priority rank.

        Returns:
            The stored job, with its assigned id.
        """
        stmt = (
            insert(jobs_table)
            .values(
                submitter_id=submitter_id,
                command=command,
                priority=priority,
                creation_timestamp=utcnow(),
            )
            .returning(*jobs_table.c)
        )

        result = await self._session.execute(stmt)
        job = _to_snapshot(result.one())

        logger.info(
            "Created new job",
            extra={"job_id": job.id, "submitter_id": submitter_id, "priority": priority},
        )
        return job

    async def update_job(
        self,
        job: JobSnapshot,
        expected: JobStatus | None = None,
    ) -> JobSnapshot | None:
        """
        Rewrite the mutable fields of a job.

        When expected is given the write only applies while the stored row is
        still in that status, which makes the update a compare-and-set.

        Args:
            job: Snapshot carrying the new field values.
            expected: Status the stored row must currently be in.

        Returns:
            The stored job, or None if no row matched.
        """
        filters = [jobs_table.c.id == job.id]
        if expected is not None:
            filters.extend(_status_filter(expected))

        stmt = (
            update(jobs_table)
            .where(and_(*filters))
            .values(
                processor_id=job.processor_id,
                completion_timestamp=job.completion_timestamp,
            )
            .returning(*jobs_table.c)
        )

        result = await self._session.execute(stmt)
        row = result.first()
        return _to_snapshot(row) if row is not None else None

    async def get_job(self, job_id: int) -> JobSnapshot | None:
        """
        Get a job by ID.

        Args:
            job_id: The job identifier.

        Returns:
            The job or None if not found.
        """
        stmt = select(jobs_table).where(jobs_table.c.id == job_id)
        result = await self._session.execute(stmt)
        row = result.first()
        return _to_snapshot(row) if row is not None else None

    async def find_active_by_processor(self, processor_id: int) -> JobSnapshot | None:
        """
        Get the unfinished job assigned to a processor.

        Args:
            processor_id: The processor identifier.

        Returns:
            The active job or None if the processor is idle.
        """
        stmt = (
            select(jobs_table)
            .where(
                and_(
                    jobs_table.c.processor_id == processor_id,
                    jobs_table.c.completion_timestamp.is_(None),
                )
            )
            .order_by(jobs_table.c.id.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        row = result.first()
        return _to_snapshot(row) if row is not None else None

    async def find_next_waiting(self) -> JobSnapshot | None:
        """
        Get the next waiting job in the priority queue.

        Ordered by priority descending, then id ascending (FIFO per tier).

        Returns:
            The next job or None if nothing is waiting.
        """
        stmt = (
            select(jobs_table)
            .where(jobs_table.c.processor_id.is_(None))
            .order_by(jobs_table.c.priority.desc(), jobs_table.c.id.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        row = result.first()
        return _to_snapshot(row) if row is not None else None

    async def claim_next_job(self, processor_id: int) -> JobSnapshot | None:
        """
        Atomically assign the next waiting job to a processor.

        This is the critical path for job distribution. The claim is a single
        conditional UPDATE:
        - the candidate must still be unassigned (processor_id IS NULL)
        - the processor must not hold an active job (NOT EXISTS)

        On PostgreSQL the candidate is picked with FOR UPDATE SKIP LOCKED and a
        transaction-scoped advisory lock on the processor id serializes
        concurrent claims by the same processor.

        Args:
            processor_id: The processor identifier.

        Returns:
            The claimed job, or None if nothing was claimed.
        """
        if self.dialect == "postgresql":
            await self._session.execute(select(func.pg_advisory_xact_lock(processor_id)))

        candidate = jobs_table.alias("candidate")
        active = jobs_table.alias("active")

        next_id = (
            select(candidate.c.id)
            .where(candidate.c.processor_id.is_(None))
            .order_by(candidate.c.priority.desc(), candidate.c.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        processor_busy = exists().where(
            and_(
                active.c.processor_id == processor_id,
                active.c.completion_timestamp.is_(None),
            )
        )

        stmt = (
            update(jobs_table)
            .where(
                and_(
                    jobs_table.c.id == next_id,
                    jobs_table.c.processor_id.is_(None),
                    ~processor_busy,
                )
            )
            .values(processor_id=processor_id)
            .returning(*jobs_table.c)
        )

        result = await self._session.execute(stmt)
        row = result.first()
        if row is None:
            return None

        job = _to_snapshot(row)
        logger.info(
            "Claimed job for processor",
            extra={"job_id": job.id, "processor_id": processor_id},
        )
        return job

    async def remove_job(self, job_id: int) -> bool:
        """
        Delete a job.

        Args:
            job_id: The job identifier.

        Returns:
            True if a row was deleted.
        """
        stmt = delete(jobs_table).where(jobs_table.c.id == job_id)
        result = await self._session.execute(stmt)
        removed = result.rowcount > 0

        if removed:
            logger.info("Removed job", extra={"job_id": job_id})

        return removed

    async def get_average_durations(self) -> list[PriorityDuration]:
        """
        Average duration of completed jobs per priority.

        Duration runs from creation to completion.

        Returns:
            One entry per priority rank, lowest rank first.
        """
        if self.dialect == "postgresql":
            seconds = extract(
                "epoch",
                jobs_table.c.completion_timestamp - jobs_table.c.creation_timestamp,
            )
        else:
            seconds = (
                func.julianday(jobs_table.c.completion_timestamp)
                - func.julianday(jobs_table.c.creation_timestamp)
            ) * 86400.0

        stmt = (
            select(
                jobs_table.c.priority,
                func.avg(seconds).label("average_seconds"),
                func.count().label("completed_jobs"),
            )
            .where(and_(*_status_filter(JobStatus.COMPLETED)))
            .group_by(jobs_table.c.priority)
            .order_by(jobs_table.c.priority.asc())
        )

        result = await self._session.execute(stmt)
        return [
            PriorityDuration(
                priority=row.priority,
                average_seconds=float(row.average_seconds or 0.0),
                completed_jobs=row.completed_jobs,
            )
            for row in result.all()
        ]

    async def get_status_counts(self) -> dict[str, int]:
        """
        Get job counts by derived status.

        Returns:
            Dictionary of status -> count, including empty statuses.
        """
        status_expr = case(
            (jobs_table.c.processor_id.is_(None), literal_column("'waiting'")),
            (jobs_table.c.completion_timestamp.is_(None), literal_column("'processing'")),
            else_=literal_column("'completed'"),
        )

        stmt = select(status_expr.label("status"), func.count()).group_by(status_expr)
        result = await self._session.execute(stmt)

        counts = {status.value: 0 for status in JobStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

    async def get_queue_depth(self) -> int:
        """
        Get the number of waiting jobs.

        Returns:
            Number of waiting jobs.
        """
        stmt = (
            select(func.count())
            .select_from(jobs_table)
            .where(and_(*_status_filter(JobStatus.WAITING)))
        )
        result = await self._session.execute(stmt)
        return result.scalar() or 0
