# backend/cloudstash/services/queue_service.py
"""
File Processing Queue Service - producer API used by the upload path.

Wraps an injected JobQueue with typed enqueue helpers that attach the retry
policy configured for each job kind, plus the queue snapshot used by the
operator routes.
"""

from typing import Dict, List, Optional

from pydantic import ValidationError

from ..config import Settings
from ..constants import (
    DEFAULT_RETRY_POLICIES,
    QUEUE_BUSY_ACTIVE_THRESHOLD,
    QUEUE_UNHEALTHY_FAILED_THRESHOLD,
)
from ..database.exceptions import DatabaseOperationError
from ..enums import JobKind, LogEmoji, LoggerName, LogSource, MediaCategory
from ..exceptions import QueueError
from ..models.job_model import (
    AnalyzeImagePayload,
    ExtractMetadataPayload,
    GenerateThumbnailPayload,
    RetryPolicy,
)
from ..models.queue_model import QueueSnapshot
from ..queue.base import JobQueue
from .logger import get_service_logger
from .processing_pipeline.utils.pipeline_utils import media_category

logger = get_service_logger(LoggerName.QUEUE_SERVICE, LogSource.API)


class FileProcessingQueueService:
    """
    Producer-facing service for the file-processing queue.

    Enqueue calls only record the job; they never wait for it to run.
    Connectivity errors of the backend propagate to the caller.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        policies: Optional[Dict[JobKind, RetryPolicy]] = None,
        failed_threshold: int = QUEUE_UNHEALTHY_FAILED_THRESHOLD,
        active_threshold: int = QUEUE_BUSY_ACTIVE_THRESHOLD,
    ):
        """
        Initialize with an injected queue backend.

        Args:
            job_queue: Queue backend
            policies: Retry policy per job kind (defaults: 3/1s, 3/1s, 2/2s)
            failed_threshold: Failed count above which the queue is unhealthy
            active_threshold: Active count above which the queue is busy
        """
        self.job_queue = job_queue
        self.policies: Dict[JobKind, RetryPolicy] = {
            kind: RetryPolicy(attempts_allowed=attempts, backoff_base_ms=base_ms)
            for kind, (attempts, base_ms) in DEFAULT_RETRY_POLICIES.items()
        }
        self.policies.update(policies or {})
        self.failed_threshold = failed_threshold
        self.active_threshold = active_threshold

    @classmethod
    def from_settings(
        cls, job_queue: JobQueue, settings: Settings
    ) -> "FileProcessingQueueService":
        policies = {}
        for kind in JobKind:
            attempts, base_ms = settings.retry_policy_values(kind)
            policies[kind] = RetryPolicy(
                attempts_allowed=attempts, backoff_base_ms=base_ms
            )
        return cls(
            job_queue,
            policies=policies,
            failed_threshold=settings.queue_failed_threshold,
            active_threshold=settings.queue_active_threshold,
        )

    def _enqueue(self, kind: JobKind, payload) -> int:
        job_id = self.job_queue.enqueue(kind, payload.to_job_data(), self.policies[kind])
        logger.debug(
            f"Enqueued {kind.value} job {job_id} for file {payload.file_id}",
            emoji=LogEmoji.QUEUE,
            extra_context={
                "job_id": job_id,
                "kind": kind.value,
                "file_id": payload.file_id,
                "queue": self.job_queue.name,
            },
        )
        return job_id

    def enqueue_thumbnail_job(
        self,
        file_id: str,
        user_id: str,
        path: str,
        mime_type: str,
        original_name: str,
    ) -> int:
        """Enqueue thumbnail generation for a stored file. Returns the job id."""
        payload = GenerateThumbnailPayload(
            file_id=file_id,
            user_id=user_id,
            storage_path=path,
            mime_type=mime_type,
            original_name=original_name,
        )
        return self._enqueue(JobKind.GENERATE_THUMBNAIL, payload)

    def enqueue_metadata_job(
        self, file_id: str, user_id: str, path: str, mime_type: str
    ) -> int:
        """Enqueue metadata extraction for a stored file. Returns the job id."""
        payload = ExtractMetadataPayload(
            file_id=file_id, user_id=user_id, storage_path=path, mime_type=mime_type
        )
        return self._enqueue(JobKind.EXTRACT_METADATA, payload)

    def enqueue_image_analysis_job(
        self,
        file_id: str,
        user_id: str,
        path: str,
        mime_type: Optional[str] = None,
    ) -> int:
        """Enqueue image analysis for a stored file. Returns the job id."""
        payload = AnalyzeImagePayload(
            file_id=file_id, user_id=user_id, storage_path=path, mime_type=mime_type
        )
        return self._enqueue(JobKind.ANALYZE_IMAGE, payload)

    def schedule_upload_processing(
        self,
        file_id: str,
        user_id: str,
        path: str,
        mime_type: str,
        original_name: str,
    ) -> List[int]:
        """
        Enqueue post-upload processing for a file that is already stored.

        Only images and videos get a thumbnail job. Enqueue failures are
        logged and swallowed: the upload has already succeeded and must not
        be failed by the pipeline.

        Returns:
            Ids of the jobs that were enqueued
        """
        if media_category(mime_type) not in (MediaCategory.IMAGE, MediaCategory.VIDEO):
            return []

        try:
            return [
                self.enqueue_thumbnail_job(
                    file_id, user_id, path, mime_type, original_name
                )
            ]
        except (QueueError, DatabaseOperationError, ValidationError) as e:
            logger.error(
                f"Failed to enqueue processing for uploaded file {file_id}",
                exception=e,
                error_context={"file_id": file_id, "mime_type": mime_type},
            )
            return []

    def get_queue_snapshot(self) -> QueueSnapshot:
        """Counts per state plus the derived health classification."""
        return QueueSnapshot.from_counts(
            self.job_queue.name,
            self.job_queue.counts_by_state(),
            failed_threshold=self.failed_threshold,
            active_threshold=self.active_threshold,
        )
