"""
SQLAlchemy database models.
Defines the job table.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jobqueue.constants import COMMAND_MAX_LENGTH, JobStatus
from jobqueue.types.job import derive_status

# SQLite only auto-increments INTEGER PRIMARY KEY columns
JobId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of work in the queue.

    This is the authoritative source of truth for job state. The lifecycle
    status is not a column; it is derived from processor_id and
    completion_timestamp.

    Key constraints:
    - processor_id is written once, by the atomic dispatch claim
    - completion_timestamp is written once, only after processor_id
    - at most one active job per processor, enforced by the dispatch protocol
    """

    __tablename__ = "job"

    # Primary key
    id: Mapped[int] = mapped_column(
        JobId,
        primary_key=True,
        autoincrement=True,
    )

    submitter_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Processor assignment
    processor_id: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
    )

    # Job payload
    command: Mapped[str] = mapped_column(
        String(COMMAND_MAX_LENGTH),
        nullable=False,
    )

    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Timestamps
    creation_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    completion_timestamp: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Table constraints and indexes
    __table_args__ = (
        # Index for next-waiting polling
        Index(
            "ix_job_queue_poll",
            "priority",
            "id",
            postgresql_where=(Column("processor_id").is_(None)),
            sqlite_where=(Column("processor_id").is_(None)),
        ),
        # Index for per-processor exclusivity checks
        Index(
            "ix_job_processor_active",
            "processor_id",
            postgresql_where=(Column("completion_timestamp").is_(None)),
            sqlite_where=(Column("completion_timestamp").is_(None)),
        ),
    )

    @property
    def status(self) -> JobStatus:
        """Derived lifecycle status."""
        return derive_status(self.processor_id, self.completion_timestamp)

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, submitter={self.submitter_id}, "
            f"processor={self.processor_id}, status={self.status})"
        )


jobs_table = Job.__table__
