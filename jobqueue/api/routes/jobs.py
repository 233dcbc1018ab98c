"""
Job queue routes.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Header, Response, status

from jobqueue.api.dependencies import QueueServiceDep
from jobqueue.constants import JOB_PATH_PREFIX, PROCESSOR_ID_HEADER
from jobqueue.types.api import (
    CompleteJobRequest,
    DurationStatsResponse,
    ErrorResponse,
    JobStatusResponse,
    MessageResponse,
    NextJobResponse,
    PriorityDurationResponse,
    SubmitJobRequest,
    SubmitJobResponse,
    SummaryStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=JOB_PATH_PREFIX, tags=["Jobs"])

_BAD_REQUEST = {status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}}
_NOT_FOUND = {status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}}


@router.post(
    "",
    response_model=SubmitJobResponse,
    summary="Add a new job",
    description="Submit a job with a submitter id, a command and a priority (low, normal, high).",
    responses=_BAD_REQUEST,
)
async def add_job(
    request: SubmitJobRequest,
    service: QueueServiceDep,
) -> SubmitJobResponse:
    """
    Submit a new job.

    Args:
        request: Job submission request.
        service: Queue service for this request.

    Returns:
        SubmitJobResponse with the new job id.
    """
    job_id = await service.submit(
        submitter_id=request.submitter_id,
        command=request.command,
        priority=request.priority,
    )
    return SubmitJobResponse(id=job_id)


@router.get(
    "/stats/durations",
    response_model=DurationStatsResponse,
    summary="Average duration per priority",
    description="Average time from submission to completion of completed jobs, per priority.",
)
async def get_duration_stats(service: QueueServiceDep) -> DurationStatsResponse:
    """
    Get average completion duration grouped by priority.

    Args:
        service: Queue service for this request.

    Returns:
        DurationStatsResponse ordered by priority ascending.
    """
    durations = await service.average_durations()
    return DurationStatsResponse(
        durations=[
            PriorityDurationResponse(
                priority=entry.priority,
                average_seconds=entry.average_seconds,
                completed_jobs=entry.completed_jobs,
            )
            for entry in durations
        ]
    )


@router.get(
    "/stats/summary",
    response_model=SummaryStatsResponse,
    summary="Get job statistics",
    description="Job counts by status and the number of waiting jobs.",
)
async def get_summary_stats(service: QueueServiceDep) -> SummaryStatsResponse:
    """
    Get job counts by status.

    Args:
        service: Queue service for this request.

    Returns:
        SummaryStatsResponse with counts and queue depth.
    """
    counts, depth = await service.summary()
    return SummaryStatsResponse(stats=counts, queue_depth=depth)


@router.api_route(
    "/{job_id}",
    methods=["GET", "HEAD"],
    response_model=JobStatusResponse,
    summary="Get the job status",
    description="Return waiting, processing or completed for a job.",
    responses={**_BAD_REQUEST, **_NOT_FOUND},
)
async def get_job_status(job_id: int, service: QueueServiceDep) -> JobStatusResponse:
    """
    Get the status of a job.

    Args:
        job_id: The job id.
        service: Queue service for this request.

    Returns:
        JobStatusResponse with the derived status.
    """
    job_status = await service.get_status(job_id)
    return JobStatusResponse(status=job_status)


@router.get(
    "/",
    response_model=NextJobResponse,
    response_model_exclude_none=True,
    summary="Get the next job to process",
    description=(
        "Assign the next job in the priority queue to the processor named in "
        "the processor-id header. A processor holds at most one job at a time."
    ),
    responses=_BAD_REQUEST,
)
async def get_job_to_process(
    service: QueueServiceDep,
    processor_id: Annotated[str | None, Header(alias=PROCESSOR_ID_HEADER)] = None,
) -> NextJobResponse:
    """
    Dispatch the next job to a processor.

    Args:
        service: Queue service for this request.
        processor_id: Value of the processor-id header.

    Returns:
        NextJobResponse with id and command, or a message when nothing waits.
    """
    job = await service.dispatch(processor_id)
    if job is None:
        return NextJobResponse(message="No job found")
    return NextJobResponse(id=job.id, command=job.command)


@router.put(
    "/",
    response_model=MessageResponse,
    summary="Update job as finished",
    description="Set the completion timestamp of a job that is being processed.",
    responses={**_BAD_REQUEST, **_NOT_FOUND},
)
async def update_finished_job(
    request: CompleteJobRequest,
    service: QueueServiceDep,
) -> MessageResponse:
    """
    Mark a job as completed.

    Args:
        request: Completion request naming the job.
        service: Queue service for this request.

    Returns:
        MessageResponse acknowledging the update.
    """
    await service.complete(request.id)
    return MessageResponse(message="Data updated")


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a job",
    description="Administrative delete of a job in any status.",
    responses={**_BAD_REQUEST, **_NOT_FOUND},
)
async def remove_job(job_id: int, service: QueueServiceDep) -> Response:
    """
    Remove a job.

    Args:
        job_id: The job id.
        service: Queue service for this request.
    """
    await service.remove(job_id)
    logger.info("Job removed by administrator", extra={"job_id": job_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
