# backend/cloudstash/models/queue_model.py
"""Queue snapshot and operator API models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..constants import QUEUE_BUSY_ACTIVE_THRESHOLD, QUEUE_UNHEALTHY_FAILED_THRESHOLD
from ..enums import JobState, QueueHealth
from ..utils.time_utils import to_epoch_ms
from .job_model import Job


class QueueCounts(BaseModel):
    """Number of jobs in each state"""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    model_config = ConfigDict(from_attributes=True)

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed + self.delayed

    def for_state(self, state: JobState) -> int:
        return getattr(self, state.value)

    def to_response(self) -> Dict[str, int]:
        counts = self.model_dump()
        counts["total"] = self.total
        return counts


def classify_queue_health(
    counts: QueueCounts,
    failed_threshold: int = QUEUE_UNHEALTHY_FAILED_THRESHOLD,
    active_threshold: int = QUEUE_BUSY_ACTIVE_THRESHOLD,
) -> QueueHealth:
    """
    Derive the health classification of a queue.

    Failures dominate: a queue with too many failed jobs is unhealthy even if
    it is also busy.

    Args:
        counts: Current job counts
        failed_threshold: Failed count above which the queue is unhealthy
        active_threshold: Active count above which the queue is busy

    Returns:
        QueueHealth classification
    """
    if counts.failed > failed_threshold:
        return QueueHealth.UNHEALTHY
    if counts.active > active_threshold:
        return QueueHealth.BUSY
    return QueueHealth.HEALTHY


class QueueSnapshot(BaseModel):
    """Read-only operational view of a queue, computed on demand"""

    queue: str
    counts: Dict[str, int]
    health: QueueHealth

    @classmethod
    def from_counts(
        cls,
        queue: str,
        counts: QueueCounts,
        failed_threshold: int = QUEUE_UNHEALTHY_FAILED_THRESHOLD,
        active_threshold: int = QUEUE_BUSY_ACTIVE_THRESHOLD,
    ) -> "QueueSnapshot":
        return cls(
            queue=queue,
            counts=counts.to_response(),
            health=classify_queue_health(counts, failed_threshold, active_threshold),
        )


class JobSummary(BaseModel):
    """Operator-facing summary of a job. Timestamps are epoch milliseconds."""

    id: int
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[int] = None
    processed_on: Optional[int] = None
    finished_on: Optional[int] = None
    failed_reason: Optional[str] = None
    attempts_made: int = 0

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_job(cls, job: Job) -> "JobSummary":
        return cls(
            id=job.id,
            name=job.kind,
            data=job.data,
            timestamp=to_epoch_ms(job.created_at),
            processed_on=to_epoch_ms(job.processed_on),
            finished_on=to_epoch_ms(job.finished_on),
            failed_reason=job.failed_reason,
            attempts_made=job.attempts_made,
        )


class JobListResponse(BaseModel):
    jobs: List[JobSummary]
    count: int


class RetryJobResponse(BaseModel):
    message: str = "Job retried successfully"
    job_id: int = Field(..., serialization_alias="jobId")


class QueueMaintenanceResult(BaseModel):
    """Outcome of one stalled-job and cleanup sweep"""

    stalled_jobs_recovered: int = 0
    completed_jobs_purged: int = 0
    swept_at: Optional[datetime] = None
