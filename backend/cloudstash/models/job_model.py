# backend/cloudstash/models/job_model.py
"""
Job contracts shared by producers, the queue backends and the worker pool.

Payloads form a tagged union discriminated by ``kind``; the stored job data is
the camelCase JSON form of the payload without the ``kind`` key, because the
kind is already the job name.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from ..enums import BackoffType, JobKind, JobState


class _JobPayloadBase(BaseModel):
    """Fields common to every job payload."""

    file_id: str = Field(..., min_length=1, description="Owning file record id")
    user_id: str = Field(..., min_length=1, description="Owner of the file")
    storage_path: str = Field(
        ..., min_length=1, description="Blob key of the source bytes"
    )

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_job_data(self) -> Dict[str, Any]:
        """Serialize to the stored/operator-facing job data form."""
        return self.model_dump(by_alias=True, mode="json", exclude={"kind"})


class GenerateThumbnailPayload(_JobPayloadBase):
    kind: Literal["generate-thumbnail"] = "generate-thumbnail"
    mime_type: str = Field(..., min_length=1)
    original_name: str = ""


class ExtractMetadataPayload(_JobPayloadBase):
    kind: Literal["extract-metadata"] = "extract-metadata"
    mime_type: str = Field(..., min_length=1)
    original_name: Optional[str] = None


class AnalyzeImagePayload(_JobPayloadBase):
    kind: Literal["analyze-image"] = "analyze-image"
    mime_type: Optional[str] = None


JobPayload = Annotated[
    Union[GenerateThumbnailPayload, ExtractMetadataPayload, AnalyzeImagePayload],
    Field(discriminator="kind"),
]

_JOB_PAYLOAD_ADAPTER: TypeAdapter = TypeAdapter(JobPayload)


def parse_job_payload(kind: str, data: Dict[str, Any]):
    """
    Parse stored job data into its typed payload.

    Args:
        kind: Job name as stored by the queue
        data: Stored job data (camelCase keys)

    Returns:
        One of the JobPayload union members

    Raises:
        pydantic.ValidationError: If the kind is unknown or the data is invalid
    """
    return _JOB_PAYLOAD_ADAPTER.validate_python({**data, "kind": kind})


class RetryPolicy(BaseModel):
    """Retry budget and backoff attached to a job at enqueue time."""

    attempts_allowed: int = Field(default=1, ge=1)
    backoff_type: BackoffType = BackoffType.EXPONENTIAL
    backoff_base_ms: int = Field(default=1000, gt=0)

    model_config = ConfigDict(frozen=True)


class Job(BaseModel):
    """A unit of deferred work as stored by a queue backend."""

    id: int
    queue_name: str
    kind: str
    data: Dict[str, Any] = Field(default_factory=dict)
    state: JobState
    attempts_made: int = 0
    attempts_allowed: int = 1
    backoff_type: BackoffType = BackoffType.EXPONENTIAL
    backoff_base_ms: int = 1000
    created_at: datetime
    available_at: datetime
    processed_on: Optional[datetime] = None
    finished_on: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    failed_reason: Optional[str] = None
    stalled_count: int = 0

    model_config = ConfigDict(from_attributes=True)

    @property
    def job_kind(self) -> Optional[JobKind]:
        """The JobKind of this job, or None for names no handler knows."""
        try:
            return JobKind(self.kind)
        except ValueError:
            return None

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts_allowed=self.attempts_allowed,
            backoff_type=self.backoff_type,
            backoff_base_ms=self.backoff_base_ms,
        )
