# backend/cloudstash/services/processing_pipeline/handlers/analysis_handler.py
"""
Image Analysis Handler

Stores analyzer tags on the file record and merges objects, colors and
confidence into its metadata. Best-effort: every failure is logged and the
job finishes; the job's small retry budget only applies to errors raised
outside this handler.
"""

from ....enums import LogEmoji, LoggerName, LogSource
from ....models.job_model import AnalyzeImagePayload
from ....models.pipeline_model import HandlerOutcome
from ....utils.time_utils import utc_timestamp
from ...ai.image_analyzer import ImageAnalyzer
from ...file_records import FileRecordStore
from ...logger import get_service_logger
from ...storage.blob_store import BlobStore
from ..utils.pipeline_utils import read_source, run_step

logger = get_service_logger(
    LoggerName.ANALYSIS_PIPELINE, LogSource.PIPELINE, default_emoji=LogEmoji.ANALYSIS
)


class AnalysisHandler:
    """Handler for analyze-image jobs."""

    def __init__(
        self,
        blob_store: BlobStore,
        file_records: FileRecordStore,
        analyzer: ImageAnalyzer,
    ):
        self.blob_store = blob_store
        self.file_records = file_records
        self.analyzer = analyzer

    def __call__(self, payload: AnalyzeImagePayload) -> HandlerOutcome:
        return self.handle(payload)

    def handle(self, payload: AnalyzeImagePayload) -> HandlerOutcome:
        context = {
            "file_id": payload.file_id,
            "storage_path": payload.storage_path,
            "mime_type": payload.mime_type,
        }

        source = read_source(self.blob_store, payload.storage_path)
        if not source.success:
            logger.warning(
                f"Skipping analysis for file {payload.file_id}: {source.error}",
                extra_context=context,
            )
            return HandlerOutcome(payload.file_id, "read_failed", details=context)

        analyzed = run_step(
            "image analysis", self.analyzer.analyze, source.unwrap(), payload.mime_type
        )
        if not analyzed.success:
            logger.error(
                f"Image analysis failed for file {payload.file_id}: {analyzed.error}",
                exception=analyzed.exception,
                error_context=context,
            )
            return HandlerOutcome(payload.file_id, "analysis_failed", details=context)

        analysis = analyzed.unwrap()
        metadata_patch = {
            "objects": analysis.objects,
            "colors": analysis.colors,
            "confidence": analysis.confidence,
            "analyzed_at": utc_timestamp(),
        }
        updated = run_step(
            "file record update",
            self.file_records.update_file,
            payload.file_id,
            tags=analysis.tags,
            metadata=metadata_patch,
        )
        if not updated.success:
            logger.error(
                f"Could not store analysis of file {payload.file_id}: {updated.error}",
                exception=updated.exception,
                error_context=context,
            )
            return HandlerOutcome(payload.file_id, "record_update_failed", details=context)

        if not updated.unwrap():
            logger.warning(
                f"File {payload.file_id} no longer exists, analysis discarded",
                extra_context=context,
            )
            return HandlerOutcome(payload.file_id, "record_missing", details=context)

        logger.info(
            f"Analyzed file {payload.file_id}: {', '.join(analysis.tags) or 'no tags'}",
            extra_context={**context, "tags": analysis.tags},
        )
        return HandlerOutcome(
            payload.file_id,
            "image_analyzed",
            details={"tags": analysis.tags, **metadata_patch},
        )
