# backend/cloudstash/services/processing_pipeline/handlers/thumbnail_handler.py
"""
Thumbnail Generation Handler

Reads the source blob, renders a cover-cropped JPEG for images and videos,
stores it next to the source under ``thumbnails/`` and points the file
record at it.

Failure policy per step:
- source read, not found: raise SourceNotFoundError (the job is retried)
- source read, other error: log, finish
- render / save / record patch: log, finish (the file just has no thumbnail)

The record patch is not last-write-wins: a job whose storage path no longer
matches the file record (the file was re-uploaded meanwhile) stores its blob
but leaves thumbnail_path alone, so a late job cannot overwrite the
thumbnail of the newer upload.
"""

import posixpath
from typing import Optional

from ....enums import LogEmoji, LoggerName, LogSource, MediaCategory, ThumbnailSize
from ....exceptions import SourceNotFoundError
from ....models.job_model import GenerateThumbnailPayload
from ....models.pipeline_model import HandlerOutcome, StepResult
from ....utils.temp_file_manager import TempFileManager
from ...file_records import FileRecordStore
from ...logger import get_service_logger
from ...storage.blob_store import BlobStore
from ..generators.media_transform import MediaTransformer
from ..utils.pipeline_utils import (
    derive_thumbnail_key,
    media_category,
    read_source,
    run_step,
)

logger = get_service_logger(
    LoggerName.THUMBNAIL_PIPELINE, LogSource.PIPELINE, default_emoji=LogEmoji.THUMBNAIL
)


class ThumbnailHandler:
    """Handler for generate-thumbnail jobs."""

    def __init__(
        self,
        blob_store: BlobStore,
        file_records: FileRecordStore,
        transformer: MediaTransformer,
        size: ThumbnailSize = ThumbnailSize.MEDIUM,
        temp_files: Optional[TempFileManager] = None,
    ):
        """
        Initialize thumbnail handler with injected dependencies.

        Args:
            blob_store: Source and thumbnail storage
            file_records: Store used to patch thumbnail_path
            transformer: Image and video thumbnail renderer
            size: Size class used in the derived thumbnail key
            temp_files: Spool for videos whose blobs are not on local disk
        """
        self.blob_store = blob_store
        self.file_records = file_records
        self.transformer = transformer
        self.size = size
        self.temp_files = temp_files or TempFileManager()

    def __call__(self, payload: GenerateThumbnailPayload) -> HandlerOutcome:
        return self.handle(payload)

    def handle(self, payload: GenerateThumbnailPayload) -> HandlerOutcome:
        """
        Generate and record the thumbnail of one file.

        Args:
            payload: Thumbnail job payload

        Returns:
            HandlerOutcome describing what happened

        Raises:
            SourceNotFoundError: If the source blob does not exist (yet)
        """
        context = {
            "file_id": payload.file_id,
            "storage_path": payload.storage_path,
            "mime_type": payload.mime_type,
        }

        source = read_source(self.blob_store, payload.storage_path)
        if not source.success:
            if source.not_found:
                raise SourceNotFoundError(payload.storage_path)
            logger.error(
                f"Could not read source for thumbnail of file {payload.file_id}: {source.error}",
                exception=source.exception,
                error_context=context,
            )
            return HandlerOutcome(payload.file_id, "read_failed", details=context)

        category = media_category(payload.mime_type)
        if category not in (MediaCategory.IMAGE, MediaCategory.VIDEO):
            logger.debug(
                f"No thumbnail for {payload.mime_type} file {payload.file_id}",
                extra_context=context,
            )
            return HandlerOutcome(payload.file_id, "skipped", details=context)

        thumbnail_key = derive_thumbnail_key(payload.storage_path, self.size)
        if category == MediaCategory.IMAGE:
            rendered = self.transformer.create_cover_thumbnail(source.unwrap())
        else:
            rendered = self._render_video(payload, source.unwrap())

        if not rendered.success:
            logger.error(
                f"Thumbnail rendering failed for file {payload.file_id}: {rendered.error}",
                exception=rendered.exception,
                error_context=context,
            )
            return HandlerOutcome(payload.file_id, "render_failed", details=context)

        saved = run_step(
            "thumbnail save", self.blob_store.save, thumbnail_key, rendered.unwrap()
        )
        if not saved.success:
            logger.error(
                f"Could not store thumbnail {thumbnail_key}: {saved.error}",
                exception=saved.exception,
                error_context=context,
            )
            return HandlerOutcome(payload.file_id, "save_failed", details=context)

        patched = self._patch_record(payload, thumbnail_key)
        if not patched.success:
            logger.error(
                f"Could not update thumbnail path of file {payload.file_id}: {patched.error}",
                exception=patched.exception,
                error_context=context,
            )
            return HandlerOutcome(
                payload.file_id, "record_update_failed", thumbnail_key, context
            )

        logger.info(
            f"Generated thumbnail {thumbnail_key} for file {payload.file_id}",
            extra_context={**context, "thumbnail_path": thumbnail_key},
        )
        return HandlerOutcome(
            payload.file_id,
            "thumbnail_generated" if patched.unwrap() else "thumbnail_stored",
            thumbnail_key,
            context,
        )

    def _render_video(
        self, payload: GenerateThumbnailPayload, data: bytes
    ) -> StepResult[bytes]:
        """Render a video thumbnail from the local blob file or a spooled copy."""
        local_path = self.blob_store.local_path(payload.storage_path)
        if local_path is not None:
            return self.transformer.create_video_thumbnail(local_path)

        suffix = posixpath.splitext(payload.storage_path)[1]
        spooled = run_step("video spool", self._render_spooled, data, suffix)
        if not spooled.success:
            return StepResult.fail(spooled.error or "video spool failed", spooled.exception)
        return spooled.unwrap()

    def _render_spooled(self, data: bytes, suffix: str) -> StepResult[bytes]:
        with self.temp_files.spooled_file(data, suffix=suffix) as path:
            return self.transformer.create_video_thumbnail(path)

    def _patch_record(
        self, payload: GenerateThumbnailPayload, thumbnail_key: str
    ) -> StepResult[bool]:
        """
        Point the file record at the new thumbnail.

        Returns:
            StepResult with True when the record was patched, False when the
            record is gone or now points at a newer upload

        A record whose path differs from the job's storage path belongs to a
        newer upload and is left untouched instead of last write winning.
        """
        record = run_step("file record lookup", self.file_records.get_file, payload.file_id)
        if not record.success:
            return StepResult.fail(record.error or "lookup failed", record.exception)

        current = record.unwrap()
        if current is None:
            logger.warning(
                f"File {payload.file_id} no longer exists, thumbnail not recorded",
                extra_context={"file_id": payload.file_id},
            )
            return StepResult.ok(False)

        if current.path != payload.storage_path:
            logger.warning(
                f"File {payload.file_id} was re-uploaded, keeping its newer thumbnail",
                extra_context={
                    "file_id": payload.file_id,
                    "job_path": payload.storage_path,
                    "current_path": current.path,
                },
            )
            return StepResult.ok(False)

        updated = run_step(
            "file record update",
            self.file_records.update_file,
            payload.file_id,
            thumbnail_path=thumbnail_key,
        )
        if not updated.success:
            return StepResult.fail(updated.error or "update failed", updated.exception)
        if not updated.unwrap():
            logger.warning(
                f"File {payload.file_id} was deleted during thumbnail generation",
                extra_context={"file_id": payload.file_id},
            )
        return StepResult.ok(bool(updated.unwrap()))
