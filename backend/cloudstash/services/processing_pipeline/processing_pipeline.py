# backend/cloudstash/services/processing_pipeline/processing_pipeline.py
"""
Main Processing Pipeline Class

Maps every JobKind to its handler. The mapping is checked when the pipeline
is built, so a kind without a handler fails at startup instead of at
dispatch time.
"""

from typing import Any, Callable, Dict, Mapping, Optional

from ...config import Settings
from ...enums import JobKind, LoggerName, LogSource, ThumbnailSize
from ...exceptions import ConfigurationError
from ...utils.temp_file_manager import TempFileManager
from ..ai.image_analyzer import ImageAnalyzer, PaletteImageAnalyzer
from ..ai.metadata_extractor import LocalMetadataExtractor, MetadataExtractor
from ..file_records import FileRecordStore
from ..logger import get_service_logger
from ..storage.blob_store import BlobStore
from .generators.media_transform import MediaTransformer
from .handlers import AnalysisHandler, MetadataHandler, ThumbnailHandler

logger = get_service_logger(LoggerName.SYSTEM, LogSource.PIPELINE)

JobHandler = Callable[[Any], Any]


class ProcessingPipeline:
    """Exhaustive JobKind -> handler registry used by the worker pool."""

    def __init__(self, handlers: Mapping[JobKind, JobHandler]):
        """
        Initialize the pipeline with one handler per job kind.

        Args:
            handlers: Mapping of every JobKind to a callable taking its payload

        Raises:
            ConfigurationError: If a JobKind has no handler
        """
        missing = [kind.value for kind in JobKind if kind not in handlers]
        if missing:
            raise ConfigurationError(
                f"No handler registered for job kinds: {', '.join(missing)}"
            )
        self._handlers: Dict[JobKind, JobHandler] = dict(handlers)

    def handler_for(self, kind: JobKind) -> JobHandler:
        return self._handlers[kind]

    def dispatch(self, payload: Any) -> Any:
        """
        Run the handler matching a parsed payload.

        Args:
            payload: A JobPayload union member

        Returns:
            Whatever the handler returns
        """
        return self.handler_for(JobKind(payload.kind))(payload)

    @property
    def kinds(self):
        return list(self._handlers)


def create_processing_pipeline(
    blob_store: BlobStore,
    file_records: FileRecordStore,
    settings: Optional[Settings] = None,
    transformer: Optional[MediaTransformer] = None,
    extractor: Optional[MetadataExtractor] = None,
    analyzer: Optional[ImageAnalyzer] = None,
    temp_files: Optional[TempFileManager] = None,
) -> ProcessingPipeline:
    """
    Factory function to create the processing pipeline with its handlers.

    Args:
        blob_store: Blob storage shared by all handlers
        file_records: File record store shared by all handlers
        settings: Settings for thumbnail edge, quality and frame position
        transformer: Override of the media transformer
        extractor: Override of the metadata collaborator
        analyzer: Override of the image analysis collaborator
        temp_files: Spool directory manager for video decoding

    Returns:
        Configured ProcessingPipeline instance
    """
    if transformer is None:
        if settings is not None:
            transformer = MediaTransformer(
                edge=settings.thumbnail_size,
                quality=settings.thumbnail_quality,
                frame_position=settings.video_frame_position,
            )
        else:
            transformer = MediaTransformer()
    temp_files = temp_files or TempFileManager()

    pipeline = ProcessingPipeline(
        {
            JobKind.GENERATE_THUMBNAIL: ThumbnailHandler(
                blob_store,
                file_records,
                transformer,
                size=ThumbnailSize.MEDIUM,
                temp_files=temp_files,
            ),
            JobKind.EXTRACT_METADATA: MetadataHandler(
                blob_store,
                file_records,
                extractor or LocalMetadataExtractor(transformer, temp_files),
            ),
            JobKind.ANALYZE_IMAGE: AnalysisHandler(
                blob_store, file_records, analyzer or PaletteImageAnalyzer()
            ),
        }
    )
    logger.debug(
        "Processing pipeline created",
        extra_context={"kinds": [kind.value for kind in pipeline.kinds]},
    )
    return pipeline
