#!/usr/bin/env python3
# backend/tests/conftest.py
"""
Pytest configuration and shared fixtures for cloudstash tests.
"""

from datetime import datetime, timezone

import pytest

from cloudstash.enums import JobKind
from cloudstash.models.file_record_model import FileRecord
from cloudstash.models.job_model import RetryPolicy
from cloudstash.queue.memory_queue import InMemoryJobQueue
from cloudstash.services.file_records import InMemoryFileRecordStore
from cloudstash.services.storage import LocalBlobStore
from cloudstash.utils.time_utils import ManualClock
from factories import make_image_bytes

START_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    """Manual clock starting at a fixed instant."""
    return ManualClock(START_TIME)


@pytest.fixture
def job_queue(clock):
    """In-memory queue driven by the manual clock."""
    return InMemoryJobQueue(name="file-processing", clock=clock, lease_seconds=60)


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "storage")


@pytest.fixture
def file_records():
    return InMemoryFileRecordStore()


@pytest.fixture
def thumbnail_policy():
    return RetryPolicy(attempts_allowed=3, backoff_base_ms=1000)


@pytest.fixture
def retry_policies():
    return {
        JobKind.GENERATE_THUMBNAIL: RetryPolicy(attempts_allowed=3, backoff_base_ms=1000),
        JobKind.EXTRACT_METADATA: RetryPolicy(attempts_allowed=3, backoff_base_ms=1000),
        JobKind.ANALYZE_IMAGE: RetryPolicy(attempts_allowed=2, backoff_base_ms=2000),
    }


@pytest.fixture
def sample_jpeg():
    """800x600 landscape JPEG."""
    return make_image_bytes(800, 600)


@pytest.fixture
def stored_image(blob_store, file_records, sample_jpeg):
    """An uploaded JPEG with its file record."""
    blob_store.save("u1/a.jpg", sample_jpeg)
    record = FileRecord(
        id="file-1",
        user_id="u1",
        path="u1/a.jpg",
        mime_type="image/jpeg",
        original_name="a.jpg",
    )
    file_records.add(record)
    return record
