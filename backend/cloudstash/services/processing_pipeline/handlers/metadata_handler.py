# backend/cloudstash/services/processing_pipeline/handlers/metadata_handler.py
"""
Metadata Extraction Handler

Best-effort enrichment: every failure is logged and the job finishes.
"""

from ....enums import LogEmoji, LoggerName, LogSource
from ....models.job_model import ExtractMetadataPayload
from ....models.pipeline_model import HandlerOutcome
from ....utils.time_utils import utc_timestamp
from ...ai.metadata_extractor import MetadataExtractor
from ...file_records import FileRecordStore
from ...logger import get_service_logger
from ...storage.blob_store import BlobStore
from ..utils.pipeline_utils import read_source, run_step

logger = get_service_logger(
    LoggerName.METADATA_PIPELINE, LogSource.PIPELINE, default_emoji=LogEmoji.METADATA
)


class MetadataHandler:
    """Handler for extract-metadata jobs."""

    def __init__(
        self,
        blob_store: BlobStore,
        file_records: FileRecordStore,
        extractor: MetadataExtractor,
    ):
        self.blob_store = blob_store
        self.file_records = file_records
        self.extractor = extractor

    def __call__(self, payload: ExtractMetadataPayload) -> HandlerOutcome:
        return self.handle(payload)

    def handle(self, payload: ExtractMetadataPayload) -> HandlerOutcome:
        context = {
            "file_id": payload.file_id,
            "storage_path": payload.storage_path,
            "mime_type": payload.mime_type,
        }

        source = read_source(self.blob_store, payload.storage_path)
        if not source.success:
            logger.warning(
                f"Skipping metadata for file {payload.file_id}: {source.error}",
                extra_context=context,
            )
            return HandlerOutcome(payload.file_id, "read_failed", details=context)

        extracted = run_step(
            "metadata extraction",
            self.extractor.extract,
            source.unwrap(),
            payload.mime_type,
            payload.storage_path,
        )
        if not extracted.success:
            logger.error(
                f"Metadata extraction failed for file {payload.file_id}: {extracted.error}",
                exception=extracted.exception,
                error_context=context,
            )
            return HandlerOutcome(payload.file_id, "extract_failed", details=context)

        metadata = {**extracted.unwrap(), "extracted_at": utc_timestamp()}
        merged = run_step(
            "file record update",
            self.file_records.merge_metadata,
            payload.file_id,
            metadata,
        )
        if not merged.success:
            logger.error(
                f"Could not store metadata of file {payload.file_id}: {merged.error}",
                exception=merged.exception,
                error_context=context,
            )
            return HandlerOutcome(payload.file_id, "record_update_failed", details=context)

        if not merged.unwrap():
            logger.warning(
                f"File {payload.file_id} no longer exists, metadata discarded",
                extra_context=context,
            )
            return HandlerOutcome(payload.file_id, "record_missing", details=context)

        logger.info(
            f"Extracted metadata for file {payload.file_id}",
            extra_context={**context, "keys": sorted(metadata)},
        )
        return HandlerOutcome(payload.file_id, "metadata_extracted", details=metadata)
