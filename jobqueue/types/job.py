"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, model_validator

from jobqueue.constants import JobStatus
from jobqueue.errors import InvalidStateError


def derive_status(
    processor_id: int | None,
    completion_timestamp: datetime | None,
) -> JobStatus:
    """
    Compute the lifecycle status from the two mutable job fields.

    Args:
        processor_id: The assigned processor, if any.
        completion_timestamp: The completion time, if any.

    Returns:
        The derived JobStatus.
    """
    if processor_id is None:
        return JobStatus.WAITING
    if completion_timestamp is None:
        return JobStatus.PROCESSING
    return JobStatus.COMPLETED


class JobSnapshot(BaseModel):
    """
    Immutable copy of a job at one point in time.

    This is the shape read from the store, written to the status cache and
    passed around the service. Transitions return a new snapshot and refuse to
    move the job backwards.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    submitter_id: int
    processor_id: int | None = None
    command: str
    priority: int
    creation_timestamp: datetime
    completion_timestamp: datetime | None = None

    @model_validator(mode="after")
    def _check_lifecycle(self) -> "JobSnapshot":
        if self.completion_timestamp is not None and self.processor_id is None:
            raise ValueError("completion_timestamp requires processor_id")
        return self

    @property
    def status(self) -> JobStatus:
        """Derived lifecycle status."""
        return derive_status(self.processor_id, self.completion_timestamp)

    @property
    def is_active(self) -> bool:
        """Check if a processor is currently working on the job."""
        return self.status == JobStatus.PROCESSING

    @property
    def duration_seconds(self) -> float | None:
        """Seconds from creation to completion, None until completed."""
        if self.completion_timestamp is None:
            return None
        return (
            _as_utc(self.completion_timestamp) - _as_utc(self.creation_timestamp)
        ).total_seconds()

    def assign(self, processor_id: int) -> "JobSnapshot":
        """
        Return the snapshot after dispatch to a processor.

        Raises:
            InvalidStateError: If the job is not waiting.
        """
        if self.status != JobStatus.WAITING:
            raise InvalidStateError(
                f"Job {self.id} cannot be dispatched while {self.status}"
            )
        return self.model_copy(update={"processor_id": processor_id})

    def complete(self, completed_at: datetime | None = None) -> "JobSnapshot":
        """
        Return the snapshot after completion.

        Raises:
            InvalidStateError: If the job is not processing.
        """
        if self.status != JobStatus.PROCESSING:
            raise InvalidStateError(
                f"Job {self.id} cannot be completed while {self.status}"
            )
        return self.model_copy(
            update={"completion_timestamp": completed_at or utcnow()}
        )


@dataclass(frozen=True)
class DispatchedJob:
    """Job handed to a processor by dispatch."""

    id: int
    command: str


@dataclass(frozen=True)
class PriorityDuration:
    """Average time to completion for one priority rank."""

    priority: int
    average_seconds: float
    completed_jobs: int


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
