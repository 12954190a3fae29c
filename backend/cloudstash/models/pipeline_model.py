# backend/cloudstash/models/pipeline_model.py
"""
Result types returned by pipeline transform steps.

Every step returns a StepResult instead of raising, so each handler decides
explicitly whether a failure propagates (retry) or is absorbed (ack).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Outcome of a single transform step."""

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    not_found: bool = False
    exception: Optional[BaseException] = field(default=None, compare=False)

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "StepResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(
        cls,
        error: str,
        exception: Optional[BaseException] = None,
        not_found: bool = False,
    ) -> "StepResult[T]":
        return cls(success=False, error=error, exception=exception, not_found=not_found)

    def unwrap(self) -> T:
        """Return the value of a successful step."""
        if not self.success:
            raise ValueError(f"Cannot unwrap failed step: {self.error}")
        return self.value  # type: ignore[return-value]


@dataclass
class ImageAnalysis:
    """What an image analyzer reports about an image."""

    tags: List[str] = field(default_factory=list)
    objects: List[Dict[str, Any]] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class HandlerOutcome:
    """Summary of one handler run, returned for logging and tests."""

    file_id: str
    action: str
    thumbnail_path: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
