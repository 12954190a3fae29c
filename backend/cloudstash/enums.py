# backend/cloudstash/enums.py
"""
Application Enums - Centralized enum definitions.

All enum definitions live here so models, constants and services can import
them without creating circular dependencies.
"""

from enum import Enum


# =============================================================================
# JOB SYSTEMS
# =============================================================================


class JobKind(str, Enum):
    """Kinds of background file-processing jobs. Values are the wire job names."""

    GENERATE_THUMBNAIL = "generate-thumbnail"
    EXTRACT_METADATA = "extract-metadata"
    ANALYZE_IMAGE = "analyze-image"


class JobState(str, Enum):
    """Job states as reported by the queue. Must be: waiting, active, completed, failed, delayed."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"


class BackoffType(str, Enum):
    """Retry backoff strategies."""

    EXPONENTIAL = "exponential"
    FIXED = "fixed"


class QueueHealth(str, Enum):
    """Derived health classification of a queue snapshot."""

    HEALTHY = "healthy"
    BUSY = "busy"
    UNHEALTHY = "unhealthy"


class JobLifecycleEvent(str, Enum):
    """Lifecycle events emitted by the worker pool for observability."""

    COMPLETED = "completed"
    FAILED = "failed"


class QueueBackend(str, Enum):
    """Available job queue backends."""

    POSTGRES = "postgres"
    MEMORY = "memory"


# =============================================================================
# MEDIA
# =============================================================================


class ThumbnailSize(str, Enum):
    """Thumbnail size classes. Pixel edges live in constants.THUMBNAIL_SIZE_PIXELS."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class MediaCategory(str, Enum):
    """Coarse media category derived from a MIME type prefix."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"


# =============================================================================
# LOGGING
# =============================================================================


class LogLevel(str, Enum):
    """Log level constants for centralized logging system."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogSource(str, Enum):
    """Log source constants for identifying log origins."""

    API = "api"
    WORKER = "worker"
    SYSTEM = "system"
    DATABASE = "database"
    PIPELINE = "pipeline"
    STORAGE = "storage"


class LogEmoji(str, Enum):
    """Type-safe emoji constants for log messages."""

    SUCCESS = "✅"
    FAILED = "❌"
    ERROR = "❌"
    WARNING = "⚠️"
    INFO = "ℹ️"
    DEBUG = "🐞"
    JOB = "🔄"
    TASK = "🔄"
    RUNNING = "▶️"
    STOPPED = "⏹️"
    RETRY = "🔁"
    QUEUE = "📥"
    THUMBNAIL = "🖼️"
    VIDEO = "🎬"
    METADATA = "🏷️"
    ANALYSIS = "🔍"
    STORAGE = "💾"
    CLEANUP = "🧹"
    SYSTEM = "⚙️"
    STARTUP = "🚀"
    SHUTDOWN = "🛑"


class LoggerName(str, Enum):
    """Logger name constants for categorizing log entries."""

    # API
    QUEUE_ROUTER = "queue_router"
    API = "api"

    # Workers
    FILE_PROCESSING_WORKER = "file_processing_worker"
    EVENT_BROADCASTER = "event_broadcaster"
    RETRY_MANAGER = "retry_manager"

    # Services
    QUEUE_SERVICE = "queue_service"
    JOB_QUEUE = "job_queue"
    THUMBNAIL_PIPELINE = "thumbnail_pipeline"
    METADATA_PIPELINE = "metadata_pipeline"
    ANALYSIS_PIPELINE = "analysis_pipeline"
    MEDIA_TRANSFORM = "media_transform"
    STORAGE = "storage"
    FILE_RECORDS = "file_records"

    # Infrastructure
    DATABASE = "database"
    SYSTEM = "system"
