# backend/cloudstash/queue/memory_queue.py
"""
In-process job queue.

Implements the full JobQueue contract, including leases and stalled job
recovery, behind a single lock. Used by tests and by single-process
deployments that accept losing queued jobs on restart.
"""

import itertools
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from ..constants import (
    DEFAULT_JOB_LEASE_SECONDS,
    DEFAULT_MAX_STALLED_COUNT,
    DEFAULT_QUEUE_NAME,
    MAX_FAILED_REASON_LENGTH,
    STALLED_JOB_FAILED_REASON,
)
from ..enums import JobKind, JobState, LoggerName, LogSource
from ..exceptions import JobNotFoundError, JobStateError
from ..models.job_model import Job, RetryPolicy
from ..models.queue_model import QueueCounts
from ..services.logger import get_service_logger
from ..utils.time_utils import Clock, utc_now
from ..workers.mixins.retry_manager import RetryManager
from .base import job_kind_name, truncate_reason

logger = get_service_logger(LoggerName.JOB_QUEUE, LogSource.WORKER)

_TERMINAL_STATES = (JobState.COMPLETED, JobState.FAILED)


class InMemoryJobQueue:
    """
    Thread-safe in-memory JobQueue.

    Stored jobs only ever hold waiting, active, completed or failed; a waiting
    job whose due time lies in the future is reported as delayed.
    """

    def __init__(
        self,
        name: str = DEFAULT_QUEUE_NAME,
        clock: Clock = utc_now,
        lease_seconds: int = DEFAULT_JOB_LEASE_SECONDS,
        max_stalled_count: int = DEFAULT_MAX_STALLED_COUNT,
    ):
        self.name = name
        self._clock = clock
        self._lease = timedelta(seconds=lease_seconds)
        self.max_stalled_count = max_stalled_count
        self._jobs: Dict[int, Job] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _effective_state(self, job: Job, now: datetime) -> JobState:
        if job.state == JobState.WAITING and job.available_at > now:
            return JobState.DELAYED
        return job.state

    def _snapshot(self, job: Job, now: datetime) -> Job:
        return job.model_copy(
            update={"state": self._effective_state(job, now)}, deep=True
        )

    def _require(self, job_id: int) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    # ------------------------------------------------------------------
    # Producer / consumer operations
    # ------------------------------------------------------------------

    def enqueue(
        self, kind: Union[JobKind, str], payload: Dict[str, Any], policy: RetryPolicy
    ) -> int:
        with self._lock:
            now = self._clock()
            job_id = next(self._ids)
            self._jobs[job_id] = Job(
                id=job_id,
                queue_name=self.name,
                kind=job_kind_name(kind),
                data=dict(payload),
                state=JobState.WAITING,
                attempts_allowed=policy.attempts_allowed,
                backoff_type=policy.backoff_type,
                backoff_base_ms=policy.backoff_base_ms,
                created_at=now,
                available_at=now,
            )
            return job_id

    def dequeue_next(self) -> Optional[Job]:
        with self._lock:
            now = self._clock()
            ready = [
                job
                for job in self._jobs.values()
                if job.state == JobState.WAITING and job.available_at <= now
            ]
            if not ready:
                return None

            job = min(ready, key=lambda j: (j.available_at, j.id))
            job.state = JobState.ACTIVE
            job.processed_on = now
            job.locked_until = now + self._lease
            return self._snapshot(job, now)

    def ack(self, job_id: int) -> bool:
        with self._lock:
            job = self._require(job_id)
            if job.state != JobState.ACTIVE:
                return False

            now = self._clock()
            job.state = JobState.COMPLETED
            job.attempts_made += 1
            job.finished_on = now
            job.locked_until = None
            return True

    def fail_with_retry(self, job_id: int, error: str) -> Optional[Job]:
        with self._lock:
            job = self._require(job_id)
            if job.state != JobState.ACTIVE:
                return None

            now = self._clock()
            retry_manager = RetryManager.for_job(job, owner_name=self.name)
            job.attempts_made += 1
            job.failed_reason = truncate_reason(error, MAX_FAILED_REASON_LENGTH)
            job.locked_until = None

            if retry_manager.should_retry(job.attempts_made):
                job.state = JobState.WAITING
                job.available_at = retry_manager.calculate_next_retry_time(
                    job.attempts_made, now
                )
            else:
                job.state = JobState.FAILED
                job.finished_on = now

            retry_manager.log_retry_scheduled(job.id, job.attempts_made, error, now)
            return self._snapshot(job, now)

    # ------------------------------------------------------------------
    # Operator operations
    # ------------------------------------------------------------------

    def counts_by_state(self) -> QueueCounts:
        with self._lock:
            now = self._clock()
            counts = {state: 0 for state in JobState}
            for job in self._jobs.values():
                counts[self._effective_state(job, now)] += 1
            return QueueCounts(**{state.value: n for state, n in counts.items()})

    def get_jobs_by_state(
        self, state: JobState, offset: int = 0, limit: int = 10
    ) -> List[Job]:
        with self._lock:
            now = self._clock()
            matching = [
                job
                for job in self._jobs.values()
                if self._effective_state(job, now) == state
            ]

            if state in _TERMINAL_STATES:
                matching.sort(
                    key=lambda j: (j.finished_on or j.created_at, j.id), reverse=True
                )
            elif state == JobState.DELAYED:
                matching.sort(key=lambda j: (j.available_at, j.id))
            else:
                matching.sort(key=lambda j: j.id)

            page = matching[max(offset, 0) : max(offset, 0) + max(limit, 0)]
            return [self._snapshot(job, now) for job in page]

    def get_job(self, job_id: int) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return self._snapshot(job, self._clock()) if job else None

    def retry_job(self, job_id: int) -> Job:
        with self._lock:
            job = self._require(job_id)
            if job.state != JobState.FAILED:
                raise JobStateError(job_id, job.state.value, JobState.FAILED.value)

            now = self._clock()
            job.state = JobState.WAITING
            job.available_at = now
            job.processed_on = None
            job.finished_on = None
            job.failed_reason = None
            job.stalled_count = 0
            logger.info(
                f"Job {job_id} moved back to waiting by operator",
                extra_context={"job_id": job_id, "attempts_made": job.attempts_made},
            )
            return self._snapshot(job, now)

    def extend_lease(self, job_id: int) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.state != JobState.ACTIVE:
                return False
            job.locked_until = self._clock() + self._lease
            return True

    def recover_stalled_jobs(self) -> int:
        with self._lock:
            now = self._clock()
            recovered = 0
            for job in self._jobs.values():
                if (
                    job.state == JobState.ACTIVE
                    and job.locked_until is not None
                    and job.locked_until <= now
                ):
                    job.locked_until = None
                    job.stalled_count += 1
                    recovered += 1
                    if job.stalled_count > self.max_stalled_count:
                        job.state = JobState.FAILED
                        job.finished_on = now
                        job.failed_reason = STALLED_JOB_FAILED_REASON
                        logger.warning(
                            f"Job {job.id} stalled {job.stalled_count} times, failing it",
                            extra_context={"job_id": job.id, "kind": job.kind},
                        )
                    else:
                        job.state = JobState.WAITING
                        job.available_at = now
            return recovered

    def purge_jobs(self, state: JobState, older_than: datetime) -> int:
        if state not in _TERMINAL_STATES:
            raise ValueError(f"Only completed or failed jobs can be purged, not '{state.value}'")

        with self._lock:
            doomed = [
                job.id
                for job in self._jobs.values()
                if job.state == state
                and job.finished_on is not None
                and job.finished_on < older_than
            ]
            for job_id in doomed:
                del self._jobs[job_id]
            return len(doomed)
