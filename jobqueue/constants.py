"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Derived job lifecycle states.

    The status is never stored. It follows from two fields:
    - WAITING: no processor assigned
    - PROCESSING: processor assigned, no completion timestamp
    - COMPLETED: processor assigned and completion timestamp set

    State transitions only move forward:
    - WAITING -> PROCESSING (dispatch)
    - PROCESSING -> COMPLETED (completion)
    """

    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"


class JobPriority(StrEnum):
    """Job priority names accepted on submission."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


# Stored priority rank (higher = dispatched first)
PRIORITY_WEIGHTS: dict[JobPriority, int] = {
    JobPriority.HIGH: 2,
    JobPriority.NORMAL: 1,
    JobPriority.LOW: 0,
}

# Column limits
COMMAND_MAX_LENGTH = 255

# Largest value a BIGINT id column holds
ID_MAX_VALUE = 2**63 - 1

# API constants
JOB_PATH_PREFIX = "/job"
PROCESSOR_ID_HEADER = "processor-id"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_SUBMITTED = "jobs_submitted_total"
METRIC_JOBS_DISPATCHED = "jobs_dispatched_total"
METRIC_DISPATCH_REJECTED = "dispatch_rejected_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_CACHE_REQUESTS = "status_cache_requests_total"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_SUBMIT_JOB = "submit_job"
SPAN_GET_STATUS = "get_job_status"
SPAN_DISPATCH_JOB = "dispatch_job"
SPAN_COMPLETE_JOB = "complete_job"
