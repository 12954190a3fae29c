# backend/cloudstash/routers/queue_routers.py
"""
Queue operator HTTP endpoints.

Role: Read-only inspection of the file-processing queue plus manual retry
Responsibilities: Queue snapshot with health, paginated job listing by state,
re-queueing of permanently failed jobs
Interactions: Uses the injected JobQueue through FileProcessingQueueService;
queue calls are synchronous and run in the threadpool
"""

from fastapi import APIRouter, Path, Query
from fastapi.concurrency import run_in_threadpool

from ..constants import DEFAULT_JOB_LIST_LIMIT, MAX_JOB_LIST_LIMIT
from ..dependencies import JobQueueDep, QueueServiceDep
from ..enums import JobState, LogEmoji, LoggerName, LogSource
from ..models.queue_model import (
    JobListResponse,
    JobSummary,
    QueueSnapshot,
    RetryJobResponse,
)
from ..services.logger import get_service_logger
from ..utils.router_helpers import handle_exceptions

logger = get_service_logger(LoggerName.QUEUE_ROUTER, LogSource.API)

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/stats", response_model=QueueSnapshot)
@handle_exceptions("get queue stats")
async def get_queue_stats(queue_service: QueueServiceDep):
    """
    Get job counts per state and the derived queue health.

    Health is "unhealthy" when more than 10 jobs have failed, "busy" when
    more than 50 are active, otherwise "healthy".
    """
    return await run_in_threadpool(queue_service.get_queue_snapshot)


@router.get("/jobs", response_model=JobListResponse, response_model_by_alias=True)
@handle_exceptions("list queue jobs")
async def list_queue_jobs(
    job_queue: JobQueueDep,
    status: JobState = Query(
        JobState.FAILED, description="State of the jobs to list"
    ),
    limit: int = Query(
        DEFAULT_JOB_LIST_LIMIT,
        ge=1,
        le=MAX_JOB_LIST_LIMIT,
        description="Maximum number of jobs to return",
    ),
    offset: int = Query(0, ge=0, description="Number of jobs to skip"),
):
    """
    List jobs in one state.

    Completed and failed jobs come most recent first, waiting and active jobs
    in insertion order, delayed jobs by due time.
    """
    jobs = await run_in_threadpool(job_queue.get_jobs_by_state, status, offset, limit)
    summaries = [JobSummary.from_job(job) for job in jobs]
    return JobListResponse(jobs=summaries, count=len(summaries))


@router.post("/jobs/{job_id}/retry", response_model=RetryJobResponse)
@handle_exceptions("retry job")
async def retry_job(
    job_queue: JobQueueDep,
    job_id: int = Path(..., description="Id of a failed job"),
):
    """
    Move a failed job back to waiting.

    The payload and the attempt count are kept. Unknown ids return 404, jobs
    that are not in the failed state return 409.
    """
    await run_in_threadpool(job_queue.retry_job, job_id)
    logger.info(
        f"Job {job_id} re-queued by operator",
        emoji=LogEmoji.RETRY,
        extra_context={"job_id": job_id, "queue": job_queue.name},
    )
    return RetryJobResponse(job_id=job_id)
