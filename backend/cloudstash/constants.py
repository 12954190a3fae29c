# backend/cloudstash/constants.py
"""
Global Constants for Cloudstash

Centralized location for pipeline constants to avoid hardcoded values
throughout the codebase.
"""

from typing import Dict

from .enums import JobKind, ThumbnailSize

# =============================================================================
# JOB QUEUE
# =============================================================================

DEFAULT_QUEUE_NAME = "file-processing"

# Retry policy defaults per job kind: (attempts allowed, backoff base in ms)
DEFAULT_RETRY_POLICIES: Dict[JobKind, tuple] = {
    JobKind.GENERATE_THUMBNAIL: (3, 1000),
    JobKind.EXTRACT_METADATA: (3, 1000),
    JobKind.ANALYZE_IMAGE: (2, 2000),
}

DEFAULT_WORKER_CONCURRENCY = 5
DEFAULT_JOB_LEASE_SECONDS = 300
# A job whose lease expires more often than this is failed instead of requeued
DEFAULT_MAX_STALLED_COUNT = 1
STALLED_JOB_FAILED_REASON = "job stalled more than allowable limit"
DEFAULT_JOB_LIST_LIMIT = 10
MAX_JOB_LIST_LIMIT = 100
MAX_FAILED_REASON_LENGTH = 2000

# Queue snapshot health thresholds (strictly greater than)
QUEUE_UNHEALTHY_FAILED_THRESHOLD = 10
QUEUE_BUSY_ACTIVE_THRESHOLD = 50

# =============================================================================
# THUMBNAILS
# =============================================================================

THUMBNAIL_SIZE_PIXELS: Dict[ThumbnailSize, int] = {
    ThumbnailSize.SMALL: 150,
    ThumbnailSize.MEDIUM: 300,
    ThumbnailSize.LARGE: 600,
}
THUMBNAIL_DEFAULT_SIZE = ThumbnailSize.MEDIUM
THUMBNAIL_DIRECTORY_NAME = "thumbnails"
THUMBNAIL_FILE_EXTENSION = ".jpg"
THUMBNAIL_IMAGE_FORMAT = "JPEG"
THUMBNAIL_QUALITY = 80
THUMBNAIL_PROGRESSIVE_JPEG_ENABLED = True

VIDEO_FRAME_POSITION_RATIO = 0.05


# =============================================================================
# METADATA
# =============================================================================

DOCUMENT_TYPE_UNKNOWN = "Unknown"

# Ordered (substring, document type) pairs, first match wins
DOCUMENT_TYPE_RULES = (
    ("pdf", "PDF Document"),
    ("word", "Word Document"),
    ("document", "Word Document"),
    ("spreadsheet", "Spreadsheet"),
    ("excel", "Spreadsheet"),
    ("presentation", "Presentation"),
    ("powerpoint", "Presentation"),
    ("image/", "Image"),
    ("video/", "Video"),
    ("audio/", "Audio"),
)

# =============================================================================
# IMAGE ANALYSIS
# =============================================================================

ANALYSIS_PALETTE_SIZE = 5
ANALYSIS_SAMPLE_EDGE = 128
ANALYSIS_DARK_THRESHOLD = 60
ANALYSIS_BRIGHT_THRESHOLD = 190
