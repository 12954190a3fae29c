# backend/cloudstash/workers/file_processing_worker.py
"""
File processing worker.

Runs a fixed number of execution slots against one shared JobQueue. Each
slot claims a job, dispatches it to the handler of its kind and turns the
outcome into a queue transition:

- handler returned          -> ack
- handler raised            -> fail_with_retry (capped by the job's budget)
- unknown kind / bad data   -> warning + ack (a retry cannot fix routing)

Handlers run in a thread pool sized to the slot count, so a slot blocked on
disk, image decoding or the database never stalls the other slots.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..constants import DEFAULT_JOB_LEASE_SECONDS, DEFAULT_WORKER_CONCURRENCY
from ..enums import JobState, LoggerName
from ..models.job_model import Job, parse_job_payload
from ..models.queue_model import QueueMaintenanceResult
from ..queue.base import JobQueue
from ..services.processing_pipeline.processing_pipeline import ProcessingPipeline
from ..utils.time_utils import Clock, utc_now
from .base_worker import BaseWorker
from .mixins.job_event_broadcaster import JobEventBroadcaster


class FileProcessingWorker(BaseWorker):
    """
    Bounded-concurrency consumer of the file-processing queue.

    At most ``concurrency`` jobs are active in this pool at any moment. Job
    errors never escape a slot; queue errors are logged and the slot backs
    off before trying again.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        pipeline: ProcessingPipeline,
        concurrency: int = DEFAULT_WORKER_CONCURRENCY,
        poll_interval: float = 1.0,
        error_backoff: float = 5.0,
        stalled_check_interval: float = 30.0,
        completed_retention_hours: int = 24,
        lease_renew_interval: float = DEFAULT_JOB_LEASE_SECONDS / 2,
        broadcaster: Optional[JobEventBroadcaster] = None,
        clock: Clock = utc_now,
        shutdown_timeout: float = 30.0,
        name: str = "FileProcessingWorker",
    ):
        """
        Initialize the worker.

        Args:
            job_queue: Queue to consume
            pipeline: Handler registry covering every job kind
            concurrency: Number of execution slots
            poll_interval: Idle sleep when the queue has no due job
            error_backoff: Sleep after a queue error inside a slot
            stalled_check_interval: Seconds between maintenance sweeps
            completed_retention_hours: Age after which completed jobs are purged
            lease_renew_interval: Seconds between lease renewals of a running job
            broadcaster: Lifecycle event fan-out (a private one if omitted)
            clock: Time source for the retention cutoff
            shutdown_timeout: Seconds stop() waits for running jobs
            name: Worker name for logging
        """
        super().__init__(name, LoggerName.FILE_PROCESSING_WORKER)
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.job_queue = job_queue
        self.pipeline = pipeline
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.stalled_check_interval = stalled_check_interval
        self.completed_retention_hours = completed_retention_hours
        self.lease_renew_interval = lease_renew_interval
        self.broadcaster = broadcaster or JobEventBroadcaster(name)
        self._clock = clock
        self.shutdown_timeout = shutdown_timeout

        self._executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="cloudstash-job"
        )
        # Lease renewals must not queue behind busy handler threads
        self._lease_executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="cloudstash-lease"
        )
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []

        # Statistics
        self.active_jobs = 0
        self.max_active_jobs = 0
        self.processed_jobs_count = 0
        self.failed_jobs_count = 0
        self.discarded_jobs_count = 0
        self.last_maintenance: Optional[QueueMaintenanceResult] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Recover jobs left active by a previous worker process."""
        self._stop_event = asyncio.Event()
        await self.run_maintenance()
        self.log_info(
            f"Ready with {self.concurrency} slots on queue '{self.job_queue.name}'"
        )

    async def cleanup(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._tasks:
            # Slots finish their current job; whatever is left after the
            # timeout is cancelled and redelivered once its lease expires
            _, pending = await asyncio.wait(self._tasks, timeout=self.shutdown_timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._executor.shutdown(wait=True)
        self._lease_executor.shutdown(wait=True)
        self.log_info("Stopped", extra_context=self.get_status())

    async def run(self) -> None:
        """
        Process jobs until stop() is called.

        Starts the worker if needed, then runs the slots and the maintenance
        loop side by side.
        """
        if not self.running:
            await self.start()

        self._tasks = [
            asyncio.create_task(self._slot_loop(slot), name=f"{self.name}-slot-{slot}")
            for slot in range(self.concurrency)
        ]
        self._tasks.append(
            asyncio.create_task(self._maintenance_loop(), name=f"{self.name}-maintenance")
        )
        await asyncio.gather(*self._tasks, return_exceptions=True)

    def request_stop(self) -> None:
        """Ask the slots to finish their current job and exit."""
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def _sleep(self, seconds: float) -> None:
        if self._stop_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    async def _slot_loop(self, slot: int) -> None:
        while self.running:
            try:
                job = await self.run_in_executor(self.job_queue.dequeue_next)
                if job is None:
                    await self._sleep(self.poll_interval)
                    continue
                await self._process_job(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.log_error(f"Slot {slot} queue error, backing off", e)
                await self._sleep(self.error_backoff)

    async def process_available(self) -> int:
        """
        Drain every job that is due right now using all slots, then return.

        Jobs rescheduled with a backoff are not waited for.

        Returns:
            Number of jobs taken off the queue
        """
        counts = await asyncio.gather(
            *(self._drain_slot() for _ in range(self.concurrency))
        )
        return sum(counts)

    async def _drain_slot(self) -> int:
        handled = 0
        while True:
            job = await self.run_in_executor(self.job_queue.dequeue_next)
            if job is None:
                return handled
            await self._process_job(job)
            handled += 1

    # ------------------------------------------------------------------
    # Job handling
    # ------------------------------------------------------------------

    async def _process_job(self, job: Job) -> bool:
        """
        Run one claimed job and record its outcome on the queue.

        Returns:
            True if the job was acked
        """
        self.active_jobs += 1
        self.max_active_jobs = max(self.max_active_jobs, self.active_jobs)
        try:
            try:
                payload = parse_job_payload(job.kind, job.data)
            except ValidationError as e:
                return await self._discard(job, e)

            try:
                outcome = await self._run_handler(job, payload)
            except Exception as e:
                await self._fail(job, e)
                return False

            await self._complete(job, outcome)
            return True
        finally:
            self.active_jobs -= 1

    async def _run_handler(self, job: Job, payload: Any) -> Any:
        """Dispatch the payload while keeping the job's lease alive."""
        renewer = asyncio.create_task(self._renew_lease(job.id))
        try:
            return await self.run_in_executor(self.pipeline.dispatch, payload)
        finally:
            renewer.cancel()
            await asyncio.gather(renewer, return_exceptions=True)

    async def _renew_lease(self, job_id: int) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.lease_renew_interval)
            try:
                renewed = await loop.run_in_executor(
                    self._lease_executor, self.job_queue.extend_lease, job_id
                )
            except Exception as e:
                self.log_error(f"Failed to renew lease of job {job_id}", e)
                continue
            if not renewed:
                self.log_warning(
                    f"Job {job_id} lost its lease while running",
                    extra_context={"job_id": job_id},
                )
                return

    async def _discard(self, job: Job, error: ValidationError) -> bool:
        if job.job_kind is None:
            self.log_warning(
                f"Unknown job kind '{job.kind}' for job {job.id}, discarding",
                extra_context={"job_id": job.id, "kind": job.kind},
            )
        else:
            self.log_warning(
                f"Invalid payload for {job.kind} job {job.id}, discarding: "
                f"{error.error_count()} validation errors",
                extra_context={"job_id": job.id, "kind": job.kind},
            )
        await self.run_in_executor(self.job_queue.ack, job.id)
        self.discarded_jobs_count += 1
        return True

    async def _fail(self, job: Job, error: Exception) -> None:
        message = str(error) or error.__class__.__name__
        updated = await self.run_in_executor(
            self.job_queue.fail_with_retry, job.id, message
        )
        self.failed_jobs_count += 1
        if updated is None:
            self.log_warning(
                f"Job {job.id} was no longer active when its failure was recorded",
                extra_context={"job_id": job.id},
            )
        self.broadcaster.broadcast_job_failed(updated or job, message)

    async def _complete(self, job: Job, outcome: Any) -> None:
        acked = await self.run_in_executor(self.job_queue.ack, job.id)
        self.processed_jobs_count += 1
        if not acked:
            self.log_warning(
                f"Job {job.id} finished after its lease was lost, ack ignored",
                extra_context={"job_id": job.id},
            )
        action = getattr(outcome, "action", None)
        self.log_debug(
            f"Job {job.id} ({job.kind}) completed" + (f": {action}" if action else ""),
            extra_context={"job_id": job.id, "kind": job.kind, "action": action},
        )
        completed = job.model_copy(
            update={
                "state": JobState.COMPLETED,
                "attempts_made": job.attempts_made + 1,
                "finished_on": self._clock(),
            }
        )
        self.broadcaster.broadcast_job_completed(completed)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def run_maintenance(self) -> QueueMaintenanceResult:
        """
        Recover stalled jobs and purge old completed jobs.

        Returns:
            Counts of recovered and purged jobs
        """
        recovered = await self.run_in_executor(self.job_queue.recover_stalled_jobs)
        now = self._clock()
        cutoff = now - timedelta(hours=self.completed_retention_hours)
        purged = await self.run_in_executor(
            self.job_queue.purge_jobs, JobState.COMPLETED, cutoff
        )
        result = QueueMaintenanceResult(
            stalled_jobs_recovered=recovered,
            completed_jobs_purged=purged,
            swept_at=now,
        )
        if recovered or purged:
            self.log_info(
                f"Maintenance: {recovered} stalled jobs recovered, "
                f"{purged} completed jobs purged",
                extra_context=result.model_dump(mode="json"),
            )
        self.last_maintenance = result
        return result

    async def _maintenance_loop(self) -> None:
        while self.running:
            await self._sleep(self.stalled_check_interval)
            if not self.running:
                return
            try:
                await self.run_maintenance()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.log_error("Queue maintenance failed", e)

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "queue": self.job_queue.name,
                "concurrency": self.concurrency,
                "active_jobs": self.active_jobs,
                "max_active_jobs": self.max_active_jobs,
                "processed_jobs": self.processed_jobs_count,
                "failed_jobs": self.failed_jobs_count,
                "discarded_jobs": self.discarded_jobs_count,
                "broadcaster": self.broadcaster.get_broadcast_stats(),
            }
        )
        return status
