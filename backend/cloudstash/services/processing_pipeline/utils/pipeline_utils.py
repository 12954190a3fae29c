# backend/cloudstash/services/processing_pipeline/utils/pipeline_utils.py
"""
Processing Pipeline Utility Functions
"""

import posixpath
from typing import Any, Callable, Optional, TypeVar

from ....constants import (
    DOCUMENT_TYPE_RULES,
    DOCUMENT_TYPE_UNKNOWN,
    THUMBNAIL_DIRECTORY_NAME,
    THUMBNAIL_FILE_EXTENSION,
    THUMBNAIL_SIZE_PIXELS,
)
from ....enums import MediaCategory, ThumbnailSize
from ....exceptions import BlobNotFoundError
from ....models.pipeline_model import StepResult
from ...storage.blob_store import BlobStore

T = TypeVar("T")


def media_category(mime_type: Optional[str]) -> MediaCategory:
    """
    Classify a MIME type by its top-level prefix.

    Args:
        mime_type: MIME type such as "image/jpeg" (may be None)

    Returns:
        MediaCategory for the prefix, OTHER when missing or unrecognised
    """
    prefix = (mime_type or "").split("/", 1)[0].strip().lower()
    try:
        return MediaCategory(prefix)
    except ValueError:
        return MediaCategory.OTHER


def guess_document_type(mime_type: Optional[str]) -> str:
    """
    Human-readable document type for a MIME type.

    Args:
        mime_type: MIME type (may be None)

    Returns:
        Document type label, "Unknown" when nothing matches
    """
    lowered = (mime_type or "").lower()
    for needle, label in DOCUMENT_TYPE_RULES:
        if needle in lowered:
            return label
    return DOCUMENT_TYPE_UNKNOWN


def thumbnail_edge(size: ThumbnailSize) -> int:
    return THUMBNAIL_SIZE_PIXELS[size]


def derive_thumbnail_key(storage_path: str, size: ThumbnailSize) -> str:
    """
    Derive the deterministic thumbnail blob key for a source key.

    ``u1/a.jpg`` -> ``u1/thumbnails/a_medium.jpg``; a key without a directory
    maps to ``thumbnails/<stem>_<size>.jpg``.

    Args:
        storage_path: Blob key of the source file
        size: Thumbnail size class

    Returns:
        Blob key of the thumbnail
    """
    directory, filename = posixpath.split(storage_path)
    stem, _ = posixpath.splitext(filename)
    thumbnail_name = f"{stem or filename}_{size.value}{THUMBNAIL_FILE_EXTENSION}"
    return posixpath.join(directory, THUMBNAIL_DIRECTORY_NAME, thumbnail_name)


def read_source(blob_store: BlobStore, storage_path: str) -> StepResult[bytes]:
    """
    Read the source bytes of a job.

    Returns:
        StepResult with the bytes; failures carry ``not_found`` when the blob
        does not exist so callers can decide to retry
    """
    try:
        return StepResult.ok(blob_store.read(storage_path))
    except BlobNotFoundError as e:
        return StepResult.fail(str(e), exception=e, not_found=True)
    except Exception as e:
        return StepResult.fail(f"Failed to read {storage_path}: {e}", exception=e)


def run_step(step_name: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> StepResult[T]:
    """
    Run a collaborator call and capture its outcome as a StepResult.

    Args:
        step_name: Name used as prefix of the failure reason
        func: Callable to run
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        StepResult.ok with the return value, or StepResult.fail with the error
    """
    try:
        return StepResult.ok(func(*args, **kwargs))
    except Exception as e:
        return StepResult.fail(f"{step_name} failed: {e}", exception=e)
