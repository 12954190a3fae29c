#!/usr/bin/env python3
# backend/cloudstash/main_worker.py
"""
Cloudstash file-processing worker process.

Builds the queue backend, blob store, file record store and handler
pipeline from settings, then runs one FileProcessingWorker until SIGINT or
SIGTERM. Several worker processes may consume the same PostgreSQL queue;
the concurrency limit applies per process.
"""

import asyncio
import signal
from typing import Optional

from .config import Settings
from .config import settings as default_settings
from .database.file_record_operations import FileRecordOperations
from .enums import JobLifecycleEvent, LogEmoji, LoggerName, LogSource, QueueBackend
from .models.job_model import Job
from .queue.factory import build_job_queue
from .services.file_records import InMemoryFileRecordStore
from .services.logger import configure_logging, get_service_logger
from .services.processing_pipeline.processing_pipeline import (
    create_processing_pipeline,
)
from .services.storage import LocalBlobStore
from .workers.file_processing_worker import FileProcessingWorker

logger = get_service_logger(LoggerName.SYSTEM, LogSource.WORKER)


def _log_job_event(event: JobLifecycleEvent, job: Job, error: Optional[str]) -> None:
    if event == JobLifecycleEvent.FAILED:
        logger.warning(
            f"Job {job.id} ({job.kind}) failed attempt {job.attempts_made}"
            f"/{job.attempts_allowed}: {error}",
            extra_context={"job_id": job.id, "state": job.state.value},
            emoji=LogEmoji.FAILED,
        )
    else:
        logger.info(
            f"Job {job.id} ({job.kind}) completed",
            extra_context={"job_id": job.id},
            emoji=LogEmoji.SUCCESS,
        )


def build_worker(settings: Settings):
    """
    Assemble the worker and everything it depends on.

    Returns:
        Tuple of (worker, database to close or None)
    """
    job_queue, db = build_job_queue(settings)
    blob_store = LocalBlobStore(settings.storage_path)

    if settings.queue_backend == QueueBackend.MEMORY:
        file_records = InMemoryFileRecordStore()
    else:
        file_records = FileRecordOperations(db)

    pipeline = create_processing_pipeline(blob_store, file_records, settings=settings)
    worker = FileProcessingWorker(
        job_queue,
        pipeline,
        concurrency=settings.worker_concurrency,
        poll_interval=settings.worker_poll_interval_seconds,
        error_backoff=settings.worker_error_backoff_seconds,
        stalled_check_interval=settings.stalled_check_interval_seconds,
        completed_retention_hours=settings.completed_job_retention_hours,
        lease_renew_interval=settings.lease_renew_interval,
    )
    worker.broadcaster.subscribe(JobLifecycleEvent.COMPLETED, _log_job_event)
    worker.broadcaster.subscribe(JobLifecycleEvent.FAILED, _log_job_event)
    return worker, db


async def run_worker(settings: Settings) -> None:
    worker, db = build_worker(settings)
    if db is not None:
        logger.info("Database pool ready", extra_context=db.get_pool_stats())
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.request_stop)

    try:
        await worker.start()
        await worker.run()
    finally:
        await worker.stop()
        if db is not None:
            db.close()
        logger.info("Worker shut down", emoji=LogEmoji.SHUTDOWN)


def main() -> None:
    settings = default_settings
    configure_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    settings.storage_path.mkdir(parents=True, exist_ok=True)
    logger.info(
        f"Starting file-processing worker ({settings.worker_concurrency} slots, "
        f"{settings.queue_backend.value} backend)",
        emoji=LogEmoji.STARTUP,
    )
    try:
        asyncio.run(run_worker(settings))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
