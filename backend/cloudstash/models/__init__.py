from .file_record_model import FileRecord
from .job_model import (
    AnalyzeImagePayload,
    ExtractMetadataPayload,
    GenerateThumbnailPayload,
    Job,
    JobPayload,
    RetryPolicy,
    parse_job_payload,
)
from .pipeline_model import HandlerOutcome, ImageAnalysis, StepResult
from .queue_model import (
    JobListResponse,
    JobSummary,
    QueueCounts,
    QueueMaintenanceResult,
    QueueSnapshot,
    RetryJobResponse,
    classify_queue_health,
)

__all__ = [
    "AnalyzeImagePayload",
    "ExtractMetadataPayload",
    "FileRecord",
    "GenerateThumbnailPayload",
    "HandlerOutcome",
    "ImageAnalysis",
    "Job",
    "JobListResponse",
    "JobPayload",
    "JobSummary",
    "QueueCounts",
    "QueueMaintenanceResult",
    "QueueSnapshot",
    "RetryJobResponse",
    "RetryPolicy",
    "StepResult",
    "classify_queue_health",
    "parse_job_payload",
]
