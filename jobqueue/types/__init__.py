"""
Type definitions for the job queue.
Contains input/output type definitions for all functions, grouped by module.
"""

from jobqueue.types.api import (
    CompleteJobRequest,
    DurationStatsResponse,
    ErrorResponse,
    HealthResponse,
    JobStatusResponse,
    MessageResponse,
    NextJobResponse,
    PriorityDurationResponse,
    SubmitJobRequest,
    SubmitJobResponse,
    SummaryStatsResponse,
)
from jobqueue.types.job import (
    DispatchedJob,
    JobSnapshot,
    PriorityDuration,
    derive_status,
)

__all__ = [
    # API types
    "SubmitJobRequest",
    "SubmitJobResponse",
    "JobStatusResponse",
    "NextJobResponse",
    "CompleteJobRequest",
    "MessageResponse",
    "PriorityDurationResponse",
    "DurationStatsResponse",
    "SummaryStatsResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "JobSnapshot",
    "DispatchedJob",
    "PriorityDuration",
    "derive_status",
]
