# backend/cloudstash/services/ai/metadata_extractor.py
"""
Metadata extraction collaborator.

The metadata handler only depends on the MetadataExtractor protocol; the
local implementation derives what Pillow and OpenCV can see in the bytes.
"""

import posixpath
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ...enums import LoggerName, LogSource, MediaCategory
from ...utils.temp_file_manager import TempFileManager
from ..logger import get_service_logger
from ..processing_pipeline.generators.media_transform import MediaTransformer
from ..processing_pipeline.utils.pipeline_utils import (
    guess_document_type,
    media_category,
)

logger = get_service_logger(LoggerName.METADATA_PIPELINE, LogSource.PIPELINE)

TEXT_PREVIEW_CHARS = 1000


@runtime_checkable
class MetadataExtractor(Protocol):
    """Derives structured metadata from file bytes."""

    def extract(
        self, data: bytes, mime_type: str, storage_path: str
    ) -> Dict[str, Any]:
        """Return metadata for the file. Raises on failure."""
        ...


class LocalMetadataExtractor:
    """MetadataExtractor backed by Pillow (images) and OpenCV (videos)."""

    def __init__(
        self,
        transformer: Optional[MediaTransformer] = None,
        temp_files: Optional[TempFileManager] = None,
    ):
        self.transformer = transformer or MediaTransformer()
        self.temp_files = temp_files or TempFileManager()

    def extract(
        self, data: bytes, mime_type: str, storage_path: str
    ) -> Dict[str, Any]:
        """
        Extract metadata for a file.

        Args:
            data: File contents
            mime_type: MIME type reported at upload
            storage_path: Blob key, used for the spooled file suffix

        Returns:
            Dictionary with document_type, size_bytes and category specific keys

        Raises:
            ValueError: If the media cannot be decoded
        """
        metadata: Dict[str, Any] = {
            "document_type": guess_document_type(mime_type),
            "mime_type": mime_type,
            "size_bytes": len(data),
        }

        category = media_category(mime_type)
        if category == MediaCategory.IMAGE:
            result = self.transformer.get_image_metadata(data)
            if not result.success:
                raise ValueError(result.error)
            metadata.update(result.unwrap())
        elif category == MediaCategory.VIDEO:
            suffix = posixpath.splitext(storage_path)[1]
            with self.temp_files.spooled_file(data, suffix=suffix) as path:
                result = self.transformer.get_video_metadata(path)
            if not result.success:
                raise ValueError(result.error)
            metadata.update(result.unwrap())
        elif (mime_type or "").startswith("text/"):
            text = data.decode("utf-8", errors="replace")
            metadata.update(
                {
                    "extracted_text": text[:TEXT_PREVIEW_CHARS],
                    "character_count": len(text),
                    "line_count": text.count("\n") + (1 if text else 0),
                }
            )

        return metadata
