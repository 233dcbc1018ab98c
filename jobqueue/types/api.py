"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from jobqueue.constants import COMMAND_MAX_LENGTH, ID_MAX_VALUE, JobPriority, JobStatus

# Documented shapes of loosely typed request fields
_ID_SCHEMA = {"type": "integer", "minimum": 1, "maximum": ID_MAX_VALUE}
_COMMAND_SCHEMA = {"type": "string", "minLength": 1, "maxLength": COMMAND_MAX_LENGTH}
_PRIORITY_SCHEMA = {"type": "string", "enum": [p.value for p in JobPriority]}


class SubmitJobRequest(BaseModel):
    """
    Request body for submitting a new job.

    Fields are loosely typed so malformed values reach the queue service
    validation and are reported as HTTP 400. The published schema still
    describes the accepted shapes.
    """

    submitter_id: Any = Field(
        default=None,
        description="The identifier of submitter",
        json_schema_extra=_ID_SCHEMA,
    )
    command: Any = Field(
        default=None,
        description="The command included in the job",
        json_schema_extra=_COMMAND_SCHEMA,
    )
    priority: Any = Field(
        default=None,
        description="Priority of job: one of low, normal, high",
        json_schema_extra=_PRIORITY_SCHEMA,
    )


class SubmitJobResponse(BaseModel):
    """Response body after submitting a job."""

    id: int


class JobStatusResponse(BaseModel):
    """Derived status of a job."""

    status: JobStatus


class NextJobResponse(BaseModel):
    """Job handed to a processor, or an empty answer when the queue is idle."""

    id: int | None = None
    command: str | None = None
    message: str | None = None


class CompleteJobRequest(BaseModel):
    """Request body for marking a job as finished."""

    id: Any = Field(
        default=None,
        description="The identifier of the job that has finished",
        json_schema_extra=_ID_SCHEMA,
    )


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class PriorityDurationResponse(BaseModel):
    """Average completion time for one priority rank."""

    priority: int
    average_seconds: float
    completed_jobs: int


class DurationStatsResponse(BaseModel):
    """Average completion time per priority."""

    durations: list[PriorityDurationResponse]


class SummaryStatsResponse(BaseModel):
    """Job counts by derived status."""

    stats: dict[str, int]
    queue_depth: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    cache: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
