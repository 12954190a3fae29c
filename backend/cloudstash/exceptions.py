# backend/cloudstash/exceptions.py
"""
Custom exceptions for Cloudstash.

Centralized location for all custom exception classes to avoid
duplicating exception definitions across modules.
"""

from typing import Optional


class CloudstashError(Exception):
    """Base exception for all Cloudstash-specific errors."""

    pass


class ConfigurationError(CloudstashError):
    """Custom exception for configuration and validation errors."""

    pass


# =============================================================================
# QUEUE
# =============================================================================


class QueueError(CloudstashError):
    """Base exception for job queue failures."""

    pass


class QueueConnectionError(QueueError):
    """The queue backend could not be reached."""

    pass


class JobNotFoundError(QueueError):
    """No job exists with the requested id."""

    def __init__(self, job_id: int):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobStateError(QueueError):
    """A job is not in the state an operation requires."""

    def __init__(self, job_id: int, state: str, expected: str):
        super().__init__(f"Job {job_id} is '{state}', expected '{expected}'")
        self.job_id = job_id
        self.state = state
        self.expected = expected


# =============================================================================
# PIPELINE
# =============================================================================


class PipelineError(CloudstashError):
    """Base exception for processing handler failures that must be retried."""

    pass


class SourceNotFoundError(PipelineError):
    """The source blob of a job is not (yet) visible in the blob store."""

    def __init__(self, storage_path: str, reason: Optional[str] = None):
        message = f"Source file not found: {storage_path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.storage_path = storage_path


# =============================================================================
# STORAGE
# =============================================================================


class BlobStoreError(CloudstashError):
    """Custom exception for blob store operation failures."""

    pass


class BlobNotFoundError(BlobStoreError):
    """No blob exists under the requested key."""

    def __init__(self, key: str):
        super().__init__(f"Blob not found: {key}")
        self.key = key


class InvalidBlobKeyError(BlobStoreError):
    """A blob key is empty or escapes the storage root."""

    pass
