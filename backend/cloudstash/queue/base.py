# backend/cloudstash/queue/base.py
"""
Job queue interface.

Producers, the worker pool and the operator routes depend on this protocol
only; the backing store (in-memory, PostgreSQL) is chosen at construction
time and injected.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

from ..enums import JobKind, JobState
from ..models.job_model import Job, RetryPolicy
from ..models.queue_model import QueueCounts


@runtime_checkable
class JobQueue(Protocol):
    """Durable, ordered, at-least-once job channel."""

    name: str

    def enqueue(
        self, kind: Union[JobKind, str], payload: Dict[str, Any], policy: RetryPolicy
    ) -> int:
        """Durably record a waiting job and return its id."""
        ...

    def dequeue_next(self) -> Optional[Job]:
        """Claim the next due job (FIFO within the same due time) or return None."""
        ...

    def ack(self, job_id: int) -> bool:
        """Mark an active job completed. False if the job is not active."""
        ...

    def fail_with_retry(self, job_id: int, error: str) -> Optional[Job]:
        """Record a failed attempt; reschedule with backoff or fail permanently."""
        ...

    def counts_by_state(self) -> QueueCounts: ...

    def get_jobs_by_state(
        self, state: JobState, offset: int = 0, limit: int = 10
    ) -> List[Job]: ...

    def get_job(self, job_id: int) -> Optional[Job]: ...

    def retry_job(self, job_id: int) -> Job:
        """Move a failed job back to waiting without touching payload or attempts."""
        ...

    def extend_lease(self, job_id: int) -> bool:
        """Push the lease of a still-active job forward. False if it is no longer active."""
        ...

    def recover_stalled_jobs(self) -> int:
        """
        Handle active jobs whose lease expired and return how many there were.

        A stalled job goes back to waiting until it has stalled more than the
        backend's max stalled count; after that it is marked failed.
        """
        ...

    def purge_jobs(self, state: JobState, older_than: datetime) -> int:
        """Delete finished jobs of a terminal state finished before the cutoff."""
        ...


def job_kind_name(kind: Union[JobKind, str]) -> str:
    return kind.value if isinstance(kind, JobKind) else str(kind)


def truncate_reason(error: str, limit: int) -> str:
    if len(error) <= limit:
        return error
    return error[: limit - 3] + "..."
