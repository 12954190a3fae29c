# backend/cloudstash/database/job_queue_operations.py
"""
Job Queue Operations - durable JobQueue backend on PostgreSQL.

Responsibilities:
- Recording jobs with their retry policy in the pipeline_jobs table
- Atomic claiming with FOR UPDATE SKIP LOCKED so no two workers get the same job
- Ack, retry scheduling with exponential backoff and permanent failure
- Lease renewal, lease-based stalled job recovery with a stall limit and
  purging of finished jobs

All timestamps come from the database clock (NOW()) so workers on different
hosts agree on due times and lease expiry.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Union

import psycopg
from psycopg.types.json import Jsonb
from psycopg_pool import PoolTimeout

from ..constants import (
    DEFAULT_JOB_LEASE_SECONDS,
    DEFAULT_MAX_STALLED_COUNT,
    DEFAULT_QUEUE_NAME,
    MAX_FAILED_REASON_LENGTH,
    STALLED_JOB_FAILED_REASON,
)
from ..enums import JobKind, JobState, LoggerName, LogSource
from ..exceptions import JobNotFoundError, JobStateError, QueueConnectionError
from ..models.job_model import Job, RetryPolicy
from ..models.queue_model import QueueCounts
from ..queue.base import job_kind_name, truncate_reason
from ..services.logger import get_service_logger
from ..workers.mixins.retry_manager import RetryManager
from .core import SyncDatabase
from .exceptions import JobQueueOperationError

logger = get_service_logger(LoggerName.JOB_QUEUE, LogSource.DATABASE)


class JobQueueQueryBuilder:
    """Centralized query builder for pipeline job operations."""

    @staticmethod
    def get_base_select_fields() -> str:
        """Get standard fields for job queries, with the derived delayed state."""
        return """
            id, queue_name, kind, data,
            CASE
                WHEN status = 'waiting' AND available_at > NOW() THEN 'delayed'
                ELSE status
            END AS state,
            attempts_made, attempts_allowed, backoff_type, backoff_base_ms,
            created_at, available_at, processed_on, finished_on, locked_until,
            failed_reason, stalled_count
        """

    @staticmethod
    def build_insert_job_query() -> str:
        fields = JobQueueQueryBuilder.get_base_select_fields()
        return f"""
            INSERT INTO pipeline_jobs (
                queue_name, kind, data, status, attempts_allowed,
                backoff_type, backoff_base_ms
            )
            VALUES (%s, %s, %s, 'waiting', %s, %s, %s)
            RETURNING {fields}
        """

    @staticmethod
    def build_claim_next_job_query() -> str:
        """Claim the oldest due waiting job, skipping rows other workers hold."""
        fields = JobQueueQueryBuilder.get_base_select_fields()
        return f"""
            UPDATE pipeline_jobs
            SET status = 'active',
                processed_on = NOW(),
                locked_until = NOW() + (%s * INTERVAL '1 second')
            WHERE id = (
                SELECT id
                FROM pipeline_jobs
                WHERE queue_name = %s
                  AND status = 'waiting'
                  AND available_at <= NOW()
                ORDER BY available_at ASC, id ASC
                LIMIT 1
                FOR UPDATE SKIP LOCKED
            )
            RETURNING {fields}
        """

    @staticmethod
    def build_lock_job_query() -> str:
        fields = JobQueueQueryBuilder.get_base_select_fields()
        return f"""
            SELECT {fields}
            FROM pipeline_jobs
            WHERE id = %s AND queue_name = %s
            FOR UPDATE
        """

    @staticmethod
    def build_complete_job_query() -> str:
        return """
            UPDATE pipeline_jobs
            SET status = 'completed',
                attempts_made = attempts_made + 1,
                finished_on = NOW(),
                locked_until = NULL
            WHERE id = %s AND queue_name = %s AND status = 'active'
            RETURNING id
        """

    @staticmethod
    def build_schedule_retry_query() -> str:
        fields = JobQueueQueryBuilder.get_base_select_fields()
        return f"""
            UPDATE pipeline_jobs
            SET status = 'waiting',
                attempts_made = %s,
                failed_reason = %s,
                available_at = NOW() + (%s * INTERVAL '1 millisecond'),
                locked_until = NULL
            WHERE id = %s
            RETURNING {fields}
        """

    @staticmethod
    def build_mark_failed_query() -> str:
        fields = JobQueueQueryBuilder.get_base_select_fields()
        return f"""
            UPDATE pipeline_jobs
            SET status = 'failed',
                attempts_made = %s,
                failed_reason = %s,
                finished_on = NOW(),
                locked_until = NULL
            WHERE id = %s
            RETURNING {fields}
        """

    @staticmethod
    def build_state_counts_query() -> str:
        return """
            SELECT
                COUNT(*) FILTER (
                    WHERE status = 'waiting' AND available_at <= NOW()
                ) AS waiting,
                COUNT(*) FILTER (WHERE status = 'active') AS active,
                COUNT(*) FILTER (WHERE status = 'completed') AS completed,
                COUNT(*) FILTER (WHERE status = 'failed') AS failed,
                COUNT(*) FILTER (
                    WHERE status = 'waiting' AND available_at > NOW()
                ) AS delayed
            FROM pipeline_jobs
            WHERE queue_name = %s
        """

    @staticmethod
    def build_jobs_by_state_query(state: JobState) -> str:
        """
        Build a paginated listing query for one state.

        Waiting and active jobs come back in insertion order, delayed jobs by
        due time, completed and failed jobs most recent first.
        """
        fields = JobQueueQueryBuilder.get_base_select_fields()
        conditions = {
            JobState.WAITING: "status = 'waiting' AND available_at <= NOW()",
            JobState.DELAYED: "status = 'waiting' AND available_at > NOW()",
            JobState.ACTIVE: "status = 'active'",
            JobState.COMPLETED: "status = 'completed'",
            JobState.FAILED: "status = 'failed'",
        }
        orderings = {
            JobState.WAITING: "id ASC",
            JobState.DELAYED: "available_at ASC, id ASC",
            JobState.ACTIVE: "id ASC",
            JobState.COMPLETED: "finished_on DESC NULLS LAST, id DESC",
            JobState.FAILED: "finished_on DESC NULLS LAST, id DESC",
        }
        return f"""
            SELECT {fields}
            FROM pipeline_jobs
            WHERE queue_name = %s AND {conditions[state]}
            ORDER BY {orderings[state]}
            LIMIT %s OFFSET %s
        """

    @staticmethod
    def build_get_job_query() -> str:
        fields = JobQueueQueryBuilder.get_base_select_fields()
        return f"""
            SELECT {fields}
            FROM pipeline_jobs
            WHERE id = %s AND queue_name = %s
        """

    @staticmethod
    def build_requeue_failed_job_query() -> str:
        fields = JobQueueQueryBuilder.get_base_select_fields()
        return f"""
            UPDATE pipeline_jobs
            SET status = 'waiting',
                available_at = NOW(),
                processed_on = NULL,
                finished_on = NULL,
                failed_reason = NULL,
                stalled_count = 0
            WHERE id = %s
            RETURNING {fields}
        """

    @staticmethod
    def build_extend_lease_query() -> str:
        return """
            UPDATE pipeline_jobs
            SET locked_until = NOW() + (%s * INTERVAL '1 second')
            WHERE id = %s AND queue_name = %s AND status = 'active'
            RETURNING id
        """

    @staticmethod
    def build_recover_stalled_jobs_query() -> str:
        """Requeue expired leases, failing jobs that stalled past the limit."""
        return """
            UPDATE pipeline_jobs
            SET status = CASE
                    WHEN stalled_count + 1 > %(max_stalled)s THEN 'failed'
                    ELSE 'waiting'
                END,
                available_at = CASE
                    WHEN stalled_count + 1 > %(max_stalled)s THEN available_at
                    ELSE NOW()
                END,
                finished_on = CASE
                    WHEN stalled_count + 1 > %(max_stalled)s THEN NOW()
                    ELSE finished_on
                END,
                failed_reason = CASE
                    WHEN stalled_count + 1 > %(max_stalled)s THEN %(reason)s
                    ELSE failed_reason
                END,
                locked_until = NULL,
                stalled_count = stalled_count + 1
            WHERE queue_name = %(queue)s
              AND status = 'active'
              AND locked_until <= NOW()
            RETURNING id, status
        """

    @staticmethod
    def build_purge_jobs_query() -> str:
        return """
            DELETE FROM pipeline_jobs
            WHERE queue_name = %s
              AND status = %s
              AND finished_on < %s
        """


class PostgresJobQueue:
    """
    Sync database operations implementing the JobQueue interface.

    Each operation runs in its own transaction; state transitions that read
    before they write lock the job row first.
    """

    def __init__(
        self,
        db: SyncDatabase,
        name: str = DEFAULT_QUEUE_NAME,
        lease_seconds: int = DEFAULT_JOB_LEASE_SECONDS,
        max_stalled_count: int = DEFAULT_MAX_STALLED_COUNT,
    ) -> None:
        """Initialize with sync database instance."""
        self.db = db
        self.name = name
        self.lease_seconds = lease_seconds
        self.max_stalled_count = max_stalled_count

    @contextmanager
    def _operation(self, operation: str, **details: Any) -> Iterator[None]:
        """Translate driver errors into queue domain errors."""
        try:
            yield
        except (psycopg.OperationalError, PoolTimeout) as e:
            raise QueueConnectionError(
                f"Queue backend unavailable during {operation}: {e}"
            ) from e
        except (psycopg.Error, KeyError, ValueError) as e:
            raise JobQueueOperationError(
                f"Failed to {operation.replace('_', ' ')}",
                operation=operation,
                details=details,
            ) from e

    def _lock_job(self, cur, job_id: int) -> Job:
        cur.execute(JobQueueQueryBuilder.build_lock_job_query(), (job_id, self.name))
        row = cur.fetchone()
        if row is None:
            raise JobNotFoundError(job_id)
        return Job.model_validate(row)

    def enqueue(
        self, kind: Union[JobKind, str], payload: Dict[str, Any], policy: RetryPolicy
    ) -> int:
        with self._operation("enqueue", kind=job_kind_name(kind)):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_insert_job_query(),
                        (
                            self.name,
                            job_kind_name(kind),
                            Jsonb(payload),
                            policy.attempts_allowed,
                            policy.backoff_type.value,
                            policy.backoff_base_ms,
                        ),
                    )
                    row = cur.fetchone()
                    if row is None:
                        raise ValueError("INSERT returned no row")
                    return int(row["id"])

    def dequeue_next(self) -> Optional[Job]:
        with self._operation("dequeue_next"):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_claim_next_job_query(),
                        (self.lease_seconds, self.name),
                    )
                    row = cur.fetchone()
                    return Job.model_validate(row) if row else None

    def ack(self, job_id: int) -> bool:
        with self._operation("ack", job_id=job_id):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_complete_job_query(),
                        (job_id, self.name),
                    )
                    if cur.fetchone() is not None:
                        return True
                    # Distinguish an unknown job from one that is no longer active
                    self._lock_job(cur, job_id)
                    return False

    def fail_with_retry(self, job_id: int, error: str) -> Optional[Job]:
        with self._operation("fail_with_retry", job_id=job_id):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    job = self._lock_job(cur, job_id)
                    if job.state != JobState.ACTIVE:
                        return None

                    retry_manager = RetryManager.for_job(job, owner_name=self.name)
                    attempts_made = job.attempts_made + 1
                    reason = truncate_reason(error, MAX_FAILED_REASON_LENGTH)

                    if retry_manager.should_retry(attempts_made):
                        cur.execute(
                            JobQueueQueryBuilder.build_schedule_retry_query(),
                            (
                                attempts_made,
                                reason,
                                retry_manager.get_retry_delay_ms(attempts_made),
                                job_id,
                            ),
                        )
                    else:
                        cur.execute(
                            JobQueueQueryBuilder.build_mark_failed_query(),
                            (attempts_made, reason, job_id),
                        )
                    row = cur.fetchone()

        retry_manager.log_retry_scheduled(job_id, attempts_made, error)
        return Job.model_validate(row) if row else None

    def counts_by_state(self) -> QueueCounts:
        with self._operation("counts_by_state"):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_state_counts_query(), (self.name,)
                    )
                    row = cur.fetchone() or {}
                    return QueueCounts(
                        **{state.value: int(row.get(state.value) or 0) for state in JobState}
                    )

    def get_jobs_by_state(
        self, state: JobState, offset: int = 0, limit: int = 10
    ) -> List[Job]:
        with self._operation("get_jobs_by_state", state=state.value):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_jobs_by_state_query(state),
                        (self.name, max(limit, 0), max(offset, 0)),
                    )
                    return [Job.model_validate(row) for row in cur.fetchall()]

    def get_job(self, job_id: int) -> Optional[Job]:
        with self._operation("get_job", job_id=job_id):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_get_job_query(), (job_id, self.name)
                    )
                    row = cur.fetchone()
                    return Job.model_validate(row) if row else None

    def retry_job(self, job_id: int) -> Job:
        with self._operation("retry_job", job_id=job_id):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    job = self._lock_job(cur, job_id)
                    if job.state != JobState.FAILED:
                        raise JobStateError(
                            job_id, job.state.value, JobState.FAILED.value
                        )
                    cur.execute(
                        JobQueueQueryBuilder.build_requeue_failed_job_query(),
                        (job_id,),
                    )
                    row = cur.fetchone()

        logger.info(
            f"Job {job_id} moved back to waiting by operator",
            extra_context={"job_id": job_id, "attempts_made": job.attempts_made},
        )
        return Job.model_validate(row)

    def extend_lease(self, job_id: int) -> bool:
        with self._operation("extend_lease", job_id=job_id):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_extend_lease_query(),
                        (self.lease_seconds, job_id, self.name),
                    )
                    return cur.fetchone() is not None

    def recover_stalled_jobs(self) -> int:
        with self._operation("recover_stalled_jobs"):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_recover_stalled_jobs_query(),
                        {
                            "max_stalled": self.max_stalled_count,
                            "reason": STALLED_JOB_FAILED_REASON,
                            "queue": self.name,
                        },
                    )
                    rows = cur.fetchall()

        failed_ids = [row["id"] for row in rows if row["status"] == "failed"]
        if failed_ids:
            logger.warning(
                f"{len(failed_ids)} jobs stalled more than {self.max_stalled_count} "
                "times and were failed",
                extra_context={"job_ids": failed_ids},
            )
        return len(rows)

    def purge_jobs(self, state: JobState, older_than: datetime) -> int:
        if state not in (JobState.COMPLETED, JobState.FAILED):
            raise ValueError(
                f"Only completed or failed jobs can be purged, not '{state.value}'"
            )

        with self._operation("purge_jobs", state=state.value):
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        JobQueueQueryBuilder.build_purge_jobs_query(),
                        (self.name, state.value, older_than),
                    )
                    return cur.rowcount or 0
