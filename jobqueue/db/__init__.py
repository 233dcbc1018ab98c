"""
Database module.
Contains database connection, models, and repository implementations.
"""

from jobqueue.db.connection import (
    close_db,
    create_schema,
    get_async_session,
    get_engine,
    init_db,
)
from jobqueue.db.models import Base, Job
from jobqueue.db.repository import JobRepository

__all__ = [
    "get_async_session",
    "get_engine",
    "init_db",
    "close_db",
    "create_schema",
    "Job",
    "Base",
    "JobRepository",
]
