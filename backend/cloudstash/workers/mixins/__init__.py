# backend/cloudstash/workers/mixins/__init__.py
"""Shared building blocks for job processing workers."""

from .job_event_broadcaster import JobEventBroadcaster, JobEventListener
from .retry_manager import RetryManager

__all__ = ["JobEventBroadcaster", "JobEventListener", "RetryManager"]
