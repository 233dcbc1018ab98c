"""
Queue error taxonomy.

Domain errors are raised by the queue service and surfaced to the caller
unchanged. Store failures are reported as StoreError, which sits
outside the QueueError hierarchy.
"""


class QueueError(Exception):
    """Base class for errors in the job queue protocol."""

    kind = "queue_error"


class InvalidInputError(QueueError):
    """A request field is missing, malformed or out of range."""

    kind = "invalid_input"


class JobNotFoundError(QueueError):
    """The referenced job id does not exist."""

    kind = "not_found"

    def __init__(self, job_id: int):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidStateError(QueueError):
    """The operation is not legal for the job's current status."""

    kind = "invalid_state"


class AlreadyProcessingError(QueueError):
    """The processor still has an active job."""

    kind = "already_processing"

    def __init__(self, processor_id: int, job_id: int | None = None):
        super().__init__(f"Processor {processor_id} is still processing another job")
        self.processor_id = processor_id
        self.job_id = job_id


class StoreError(Exception):
    """The job store failed to complete an operation."""

    kind = "store_unavailable"
