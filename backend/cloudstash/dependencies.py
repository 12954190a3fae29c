# backend/cloudstash/dependencies.py
"""
Dependency providers for the API.

The queue and the producer service are created once per application (see
main.create_app) and kept on ``app.state``; routes receive them through
these providers, which tests can override or feed with an in-memory queue.
"""

from typing import Annotated

from fastapi import Depends, Request

from .queue.base import JobQueue
from .services.queue_service import FileProcessingQueueService


def get_job_queue(request: Request) -> JobQueue:
    """Get the job queue of the running application."""
    return request.app.state.job_queue


def get_queue_service(request: Request) -> FileProcessingQueueService:
    """Get the producer/snapshot service of the running application."""
    return request.app.state.queue_service


JobQueueDep = Annotated[JobQueue, Depends(get_job_queue)]
QueueServiceDep = Annotated[FileProcessingQueueService, Depends(get_queue_service)]
