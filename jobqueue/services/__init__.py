"""
Service layer.
Contains the queue service implementing the job protocol.
"""

from jobqueue.services.queue import QueueService

__all__ = ["QueueService"]
