#!/usr/bin/env python3
# backend/tests/unit/workers/test_file_processing_worker.py
"""
Unit tests for FileProcessingWorker.

Drives the worker against InMemoryJobQueue with a manual clock so retry
backoff can be stepped through deterministically.
"""

import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest

from cloudstash.enums import JobKind, JobLifecycleEvent, JobState
from cloudstash.models.job_model import RetryPolicy
from cloudstash.services.processing_pipeline.processing_pipeline import (
    ProcessingPipeline,
    create_processing_pipeline,
)
from cloudstash.workers.file_processing_worker import FileProcessingWorker
from cloudstash.workers.mixins import JobEventBroadcaster

from factories import thumbnail_payload_data


def make_pipeline(**overrides):
    handlers = {kind: MagicMock(return_value=None) for kind in JobKind}
    handlers.update(overrides)
    return ProcessingPipeline(handlers), handlers


@pytest.fixture
def make_worker(job_queue, clock):
    workers = []

    def _make(pipeline, **kwargs):
        kwargs.setdefault("clock", clock)
        worker = FileProcessingWorker(job_queue, pipeline, **kwargs)
        workers.append(worker)
        return worker

    yield _make
    for worker in workers:
        worker._executor.shutdown(wait=True)
        worker._lease_executor.shutdown(wait=True)


def enqueue(job_queue, kind=JobKind.GENERATE_THUMBNAIL, policy=None, file_id="file-1"):
    return job_queue.enqueue(
        kind,
        thumbnail_payload_data(file_id=file_id),
        policy or RetryPolicy(attempts_allowed=3, backoff_base_ms=1000),
    )


@pytest.mark.unit
@pytest.mark.worker
class TestFileProcessingWorker:
    """Dispatch, ack and retry behavior of the worker pool."""

    def test_concurrency_must_be_positive(self, job_queue):
        pipeline, _ = make_pipeline()

        with pytest.raises(ValueError):
            FileProcessingWorker(job_queue, pipeline, concurrency=0)

    @pytest.mark.asyncio
    async def test_job_is_dispatched_and_acked(self, make_worker, job_queue):
        pipeline, handlers = make_pipeline()
        worker = make_worker(pipeline)
        job_id = enqueue(job_queue)

        processed = await worker.process_available()

        assert processed == 1
        payload = handlers[JobKind.GENERATE_THUMBNAIL].call_args[0][0]
        assert payload.file_id == "file-1"
        assert payload.storage_path == "u1/a.jpg"
        handlers[JobKind.EXTRACT_METADATA].assert_not_called()
        job = job_queue.get_job(job_id)
        assert job.state == JobState.COMPLETED
        assert job.attempts_made == 1
        assert worker.processed_jobs_count == 1

    @pytest.mark.asyncio
    async def test_unknown_kind_is_discarded(self, make_worker, job_queue):
        pipeline, handlers = make_pipeline()
        worker = make_worker(pipeline)
        job_id = job_queue.enqueue(
            "transcode-video", {"fileId": "file-1"}, RetryPolicy(attempts_allowed=3)
        )

        await worker.process_available()

        assert job_queue.get_job(job_id).state == JobState.COMPLETED
        assert worker.discarded_jobs_count == 1
        for handler in handlers.values():
            handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_payload_is_discarded(self, make_worker, job_queue):
        pipeline, handlers = make_pipeline()
        worker = make_worker(pipeline)
        job_id = job_queue.enqueue(
            JobKind.GENERATE_THUMBNAIL, {"fileId": "file-1"}, RetryPolicy()
        )

        await worker.process_available()

        assert job_queue.get_job(job_id).state == JobState.COMPLETED
        assert worker.discarded_jobs_count == 1
        handlers[JobKind.GENERATE_THUMBNAIL].assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_job_is_retried_with_backoff_then_failed(
        self, make_worker, job_queue, clock
    ):
        pipeline, handlers = make_pipeline()
        handlers[JobKind.GENERATE_THUMBNAIL].side_effect = OSError("storage offline")
        worker = make_worker(pipeline)
        job_id = enqueue(job_queue)

        await worker.process_available()
        job = job_queue.get_job(job_id)
        assert job.state == JobState.DELAYED
        assert job.attempts_made == 1

        # Backoff not elapsed yet
        clock.advance(milliseconds=999)
        assert await worker.process_available() == 0

        clock.advance(milliseconds=1)
        await worker.process_available()
        job = job_queue.get_job(job_id)
        assert job.state == JobState.DELAYED
        assert job.attempts_made == 2

        clock.advance(milliseconds=1999)
        assert await worker.process_available() == 0
        clock.advance(milliseconds=1)
        await worker.process_available()

        job = job_queue.get_job(job_id)
        assert job.state == JobState.FAILED
        assert job.attempts_made == 3
        assert job.failed_reason == "storage offline"
        assert handlers[JobKind.GENERATE_THUMBNAIL].call_count == 3
        assert worker.failed_jobs_count == 3
        assert job_queue.counts_by_state().failed == 1

    @pytest.mark.asyncio
    async def test_error_without_message_uses_class_name(self, make_worker, job_queue):
        pipeline, handlers = make_pipeline()
        handlers[JobKind.GENERATE_THUMBNAIL].side_effect = KeyError()
        worker = make_worker(pipeline)
        job_id = enqueue(job_queue, policy=RetryPolicy(attempts_allowed=1))

        await worker.process_available()

        assert job_queue.get_job(job_id).failed_reason == "KeyError"

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, make_worker, job_queue):
        lock = threading.Lock()
        state = {"running": 0, "peak": 0}

        def slow_handler(payload):
            with lock:
                state["running"] += 1
                state["peak"] = max(state["peak"], state["running"])
            time.sleep(0.05)
            with lock:
                state["running"] -= 1

        pipeline = ProcessingPipeline(
            {
                JobKind.GENERATE_THUMBNAIL: slow_handler,
                JobKind.EXTRACT_METADATA: MagicMock(),
                JobKind.ANALYZE_IMAGE: MagicMock(),
            }
        )
        worker = make_worker(pipeline, concurrency=5)
        for i in range(20):
            enqueue(job_queue, file_id=f"file-{i}")

        processed = await worker.process_available()

        assert processed == 20
        assert 1 <= state["peak"] <= 5
        assert worker.max_active_jobs == 5
        assert job_queue.counts_by_state().completed == 20

    @pytest.mark.asyncio
    async def test_stalled_job_is_redelivered(self, make_worker, job_queue, clock):
        pipeline, handlers = make_pipeline()
        worker = make_worker(pipeline)
        job_id = enqueue(job_queue)

        # A crashed worker claimed the job and never acked it
        job_queue.dequeue_next()
        assert await worker.process_available() == 0

        clock.advance(seconds=61)
        result = await worker.run_maintenance()
        assert result.stalled_jobs_recovered == 1

        await worker.process_available()
        assert job_queue.get_job(job_id).state == JobState.COMPLETED
        handlers[JobKind.GENERATE_THUMBNAIL].assert_called_once()

    @pytest.mark.asyncio
    async def test_running_job_keeps_its_lease(self, make_worker, job_queue, clock):
        pipeline, handlers = make_pipeline()
        seen = {}

        def slow_handler(payload):
            # Runs longer than the 60s lease; renewals happen while it sleeps
            clock.advance(seconds=40)
            time.sleep(0.3)
            clock.advance(seconds=40)
            seen["recovered"] = job_queue.recover_stalled_jobs()

        handlers[JobKind.GENERATE_THUMBNAIL].side_effect = slow_handler
        worker = make_worker(pipeline, lease_renew_interval=0.02)
        job_id = enqueue(job_queue)

        await worker.process_available()

        assert seen["recovered"] == 0
        job = job_queue.get_job(job_id)
        assert job.state == JobState.COMPLETED
        assert job.stalled_count == 0
        handlers[JobKind.GENERATE_THUMBNAIL].assert_called_once()

    @pytest.mark.asyncio
    async def test_job_that_keeps_stalling_ends_up_failed(
        self, make_worker, job_queue, clock
    ):
        pipeline, handlers = make_pipeline()
        worker = make_worker(pipeline)
        job_id = enqueue(job_queue)

        # Every claim dies with its worker process
        for _ in range(5):
            if job_queue.dequeue_next() is None:
                break
            clock.advance(seconds=61)
            await worker.run_maintenance()

        job = job_queue.get_job(job_id)
        assert job.state == JobState.FAILED
        assert job.failed_reason == "job stalled more than allowable limit"
        assert await worker.process_available() == 0
        handlers[JobKind.GENERATE_THUMBNAIL].assert_not_called()

    @pytest.mark.asyncio
    async def test_maintenance_purges_old_completed_jobs(
        self, make_worker, job_queue, clock
    ):
        pipeline, _ = make_pipeline()
        worker = make_worker(pipeline, completed_retention_hours=1)
        job_id = enqueue(job_queue)
        await worker.process_available()

        clock.advance(seconds=2 * 3600)
        result = await worker.run_maintenance()

        assert result.completed_jobs_purged == 1
        assert job_queue.get_job(job_id) is None
        assert worker.last_maintenance == result

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, make_worker, job_queue):
        pipeline, handlers = make_pipeline()
        handlers[JobKind.EXTRACT_METADATA].side_effect = RuntimeError("boom")
        events = []
        broadcaster = JobEventBroadcaster("test")
        for event in JobLifecycleEvent:
            broadcaster.subscribe(
                event, lambda e, job, error: events.append((e, job.kind, error))
            )
        worker = make_worker(pipeline, broadcaster=broadcaster)
        enqueue(job_queue)
        enqueue(job_queue, kind=JobKind.EXTRACT_METADATA, file_id="file-2")

        await worker.process_available()

        assert (JobLifecycleEvent.COMPLETED, "generate-thumbnail", None) in events
        assert (JobLifecycleEvent.FAILED, "extract-metadata", "boom") in events

    @pytest.mark.asyncio
    async def test_raising_listener_does_not_change_outcome(self, make_worker, job_queue):
        pipeline, _ = make_pipeline()
        broadcaster = JobEventBroadcaster("test")
        broadcaster.subscribe(
            JobLifecycleEvent.COMPLETED, MagicMock(side_effect=RuntimeError("listener"))
        )
        worker = make_worker(pipeline, broadcaster=broadcaster)
        job_id = enqueue(job_queue)

        await worker.process_available()

        assert job_queue.get_job(job_id).state == JobState.COMPLETED
        assert broadcaster.failed_broadcast_count == 1

    @pytest.mark.asyncio
    async def test_analysis_error_is_absorbed(
        self, make_worker, job_queue, blob_store, file_records, stored_image
    ):
        analyzer = MagicMock()
        analyzer.analyze.side_effect = RuntimeError("vision api unavailable")
        pipeline = create_processing_pipeline(blob_store, file_records, analyzer=analyzer)
        worker = make_worker(pipeline)
        job_id = enqueue(
            job_queue,
            kind=JobKind.ANALYZE_IMAGE,
            policy=RetryPolicy(attempts_allowed=2, backoff_base_ms=2000),
        )

        await worker.process_available()

        job = job_queue.get_job(job_id)
        assert job.state == JobState.COMPLETED
        assert job.attempts_made == 1
        assert file_records.get_file("file-1").tags is None

    @pytest.mark.asyncio
    async def test_missing_source_thumbnail_is_retried(
        self, make_worker, job_queue, blob_store, file_records
    ):
        pipeline = create_processing_pipeline(blob_store, file_records)
        worker = make_worker(pipeline)
        job_id = enqueue(job_queue)

        await worker.process_available()

        job = job_queue.get_job(job_id)
        assert job.state == JobState.DELAYED
        assert "Source file not found" in job.failed_reason

    @pytest.mark.asyncio
    async def test_run_processes_until_stopped(self, make_worker, job_queue):
        pipeline, handlers = make_pipeline()
        worker = make_worker(pipeline, poll_interval=0.01, stalled_check_interval=60)
        job_id = enqueue(job_queue)

        runner = asyncio.create_task(worker.run())
        for _ in range(200):
            if job_queue.get_job(job_id).state == JobState.COMPLETED:
                break
            await asyncio.sleep(0.01)
        await worker.stop()
        await asyncio.wait_for(runner, timeout=5)

        assert job_queue.get_job(job_id).state == JobState.COMPLETED
        assert not worker.running
        handlers[JobKind.GENERATE_THUMBNAIL].assert_called_once()

    def test_status(self, make_worker):
        pipeline, _ = make_pipeline()
        worker = make_worker(pipeline, concurrency=3)

        status = worker.get_status()

        assert status["queue"] == "file-processing"
        assert status["concurrency"] == 3
        assert status["active_jobs"] == 0
        assert status["broadcaster"]["listeners"] == 0


@pytest.mark.unit
@pytest.mark.worker
class TestJobEventBroadcaster:
    def _job(self, job_queue):
        return job_queue.get_job(enqueue(job_queue))

    def test_subscribe_and_unsubscribe(self):
        broadcaster = JobEventBroadcaster("test")
        listener = MagicMock()

        broadcaster.subscribe(JobLifecycleEvent.FAILED, listener)
        assert broadcaster.listener_count(JobLifecycleEvent.FAILED) == 1
        assert broadcaster.listener_count() == 1

        assert broadcaster.unsubscribe(JobLifecycleEvent.FAILED, listener) is True
        assert broadcaster.unsubscribe(JobLifecycleEvent.FAILED, listener) is False
        assert broadcaster.listener_count() == 0

    def test_failed_event_carries_message(self, job_queue):
        broadcaster = JobEventBroadcaster("test")
        listener = MagicMock()
        broadcaster.subscribe(JobLifecycleEvent.FAILED, listener)
        job = self._job(job_queue)

        delivered = broadcaster.broadcast_job_failed(job, "boom")

        assert delivered == 1
        listener.assert_called_once_with(JobLifecycleEvent.FAILED, job, "boom")

    def test_listener_error_does_not_stop_others(self, job_queue):
        broadcaster = JobEventBroadcaster("test")
        second = MagicMock()
        broadcaster.subscribe(
            JobLifecycleEvent.COMPLETED, MagicMock(side_effect=ValueError("bad"))
        )
        broadcaster.subscribe(JobLifecycleEvent.COMPLETED, second)

        delivered = broadcaster.broadcast_job_completed(self._job(job_queue))

        assert delivered == 1
        second.assert_called_once()
        assert broadcaster.get_broadcast_stats() == {
            "listeners": 2,
            "failed_broadcast_count": 1,
        }
