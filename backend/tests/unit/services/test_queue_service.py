#!/usr/bin/env python3
# backend/tests/unit/services/test_queue_service.py
"""
Unit tests for FileProcessingQueueService.

The producer API must only record jobs, attach the per-kind retry policy and
never block on processing.
"""

from unittest.mock import MagicMock

import pytest

from cloudstash.config import Settings
from cloudstash.database.exceptions import JobQueueOperationError
from cloudstash.enums import JobKind, JobState, QueueHealth
from cloudstash.exceptions import QueueConnectionError
from cloudstash.models.job_model import RetryPolicy
from cloudstash.models.queue_model import QueueCounts
from cloudstash.services.queue_service import FileProcessingQueueService


@pytest.fixture
def queue_service(job_queue):
    return FileProcessingQueueService(job_queue)


@pytest.mark.unit
@pytest.mark.queue
class TestProducerApi:
    """Enqueue helpers used by the upload path."""

    def test_enqueue_thumbnail_job(self, queue_service, job_queue):
        job_id = queue_service.enqueue_thumbnail_job(
            "file-1", "u1", "u1/a.jpg", "image/jpeg", "a.jpg"
        )

        job = job_queue.get_job(job_id)
        assert job.kind == "generate-thumbnail"
        assert job.state == JobState.WAITING
        assert job.data == {
            "fileId": "file-1",
            "userId": "u1",
            "storagePath": "u1/a.jpg",
            "mimeType": "image/jpeg",
            "originalName": "a.jpg",
        }
        assert job.attempts_allowed == 3
        assert job.backoff_base_ms == 1000

    def test_enqueue_metadata_job(self, queue_service, job_queue):
        job_id = queue_service.enqueue_metadata_job(
            "file-2", "u1", "u1/notes.txt", "text/plain"
        )

        job = job_queue.get_job(job_id)
        assert job.kind == "extract-metadata"
        assert job.data["mimeType"] == "text/plain"
        assert job.attempts_allowed == 3

    def test_enqueue_image_analysis_job_uses_smaller_budget(
        self, queue_service, job_queue
    ):
        job_id = queue_service.enqueue_image_analysis_job("file-3", "u1", "u1/b.png")

        job = job_queue.get_job(job_id)
        assert job.kind == "analyze-image"
        assert job.data["mimeType"] is None
        assert job.attempts_allowed == 2
        assert job.backoff_base_ms == 2000

    def test_enqueue_does_not_run_the_job(self, queue_service, job_queue):
        queue_service.enqueue_thumbnail_job(
            "file-1", "u1", "u1/a.jpg", "image/jpeg", "a.jpg"
        )

        counts = job_queue.counts_by_state()
        assert counts.waiting == 1
        assert counts.completed == 0

    def test_invalid_payload_is_rejected_before_enqueue(self, queue_service, job_queue):
        with pytest.raises(ValueError):
            queue_service.enqueue_thumbnail_job("", "u1", "u1/a.jpg", "image/jpeg", "a.jpg")

        assert len(job_queue) == 0

    def test_connection_errors_propagate(self):
        failing_queue = MagicMock()
        failing_queue.name = "file-processing"
        failing_queue.enqueue.side_effect = QueueConnectionError("queue down")
        service = FileProcessingQueueService(failing_queue)

        with pytest.raises(QueueConnectionError):
            service.enqueue_metadata_job("file-1", "u1", "u1/a.jpg", "image/jpeg")

    def test_policies_come_from_settings(self, job_queue):
        service = FileProcessingQueueService.from_settings(
            job_queue, Settings(thumbnail_attempts=5, thumbnail_backoff_ms=250)
        )

        assert service.policies[JobKind.GENERATE_THUMBNAIL] == RetryPolicy(
            attempts_allowed=5, backoff_base_ms=250
        )
        assert service.policies[JobKind.ANALYZE_IMAGE].attempts_allowed == 2


@pytest.mark.unit
@pytest.mark.queue
class TestUploadScheduling:
    def test_image_upload_schedules_thumbnail(self, queue_service, job_queue):
        job_ids = queue_service.schedule_upload_processing(
            "file-1", "u1", "u1/a.jpg", "image/jpeg", "a.jpg"
        )

        assert len(job_ids) == 1
        assert job_queue.get_job(job_ids[0]).kind == "generate-thumbnail"

    def test_video_upload_schedules_thumbnail(self, queue_service):
        assert queue_service.schedule_upload_processing(
            "file-2", "u1", "u1/clip.mp4", "video/mp4", "clip.mp4"
        )

    def test_document_upload_schedules_nothing(self, queue_service, job_queue):
        job_ids = queue_service.schedule_upload_processing(
            "file-3", "u1", "u1/report.pdf", "application/pdf", "report.pdf"
        )

        assert job_ids == []
        assert len(job_queue) == 0

    def test_queue_outage_does_not_fail_upload(self):
        failing_queue = MagicMock()
        failing_queue.name = "file-processing"
        failing_queue.enqueue.side_effect = QueueConnectionError("queue down")
        service = FileProcessingQueueService(failing_queue)

        assert (
            service.schedule_upload_processing(
                "file-1", "u1", "u1/a.jpg", "image/jpeg", "a.jpg"
            )
            == []
        )

    def test_database_error_does_not_fail_upload(self):
        failing_queue = MagicMock()
        failing_queue.name = "file-processing"
        failing_queue.enqueue.side_effect = JobQueueOperationError(
            "Failed to enqueue", operation="enqueue"
        )
        service = FileProcessingQueueService(failing_queue)

        assert (
            service.schedule_upload_processing(
                "file-1", "u1", "u1/a.jpg", "image/jpeg", "a.jpg"
            )
            == []
        )

    def test_invalid_upload_fields_do_not_fail_upload(self, queue_service, job_queue):
        assert (
            queue_service.schedule_upload_processing(
                "file-1", "", "u1/a.jpg", "image/jpeg", "a.jpg"
            )
            == []
        )
        assert len(job_queue) == 0


@pytest.mark.unit
@pytest.mark.queue
class TestQueueSnapshot:
    def _service_with_counts(self, **counts):
        queue = MagicMock()
        queue.name = "file-processing"
        queue.counts_by_state.return_value = QueueCounts(**counts)
        return FileProcessingQueueService(queue)

    def test_empty_queue_is_healthy(self, queue_service):
        snapshot = queue_service.get_queue_snapshot()

        assert snapshot.queue == "file-processing"
        assert snapshot.health == QueueHealth.HEALTHY
        assert snapshot.counts == {
            "waiting": 0,
            "active": 0,
            "completed": 0,
            "failed": 0,
            "delayed": 0,
            "total": 0,
        }

    def test_many_failures_are_unhealthy(self):
        snapshot = self._service_with_counts(failed=12, waiting=3).get_queue_snapshot()

        assert snapshot.health == QueueHealth.UNHEALTHY
        assert snapshot.counts["total"] == 15

    def test_failure_threshold_is_exclusive(self):
        assert (
            self._service_with_counts(failed=10).get_queue_snapshot().health
            == QueueHealth.HEALTHY
        )

    def test_many_active_jobs_are_busy(self):
        assert (
            self._service_with_counts(active=51).get_queue_snapshot().health
            == QueueHealth.BUSY
        )

    def test_failures_dominate_busy(self):
        assert (
            self._service_with_counts(active=80, failed=11).get_queue_snapshot().health
            == QueueHealth.UNHEALTHY
        )
