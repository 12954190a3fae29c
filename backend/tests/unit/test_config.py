#!/usr/bin/env python3
# backend/tests/unit/test_config.py
"""
Unit tests for Settings.
"""

import pytest
from pydantic import ValidationError

from cloudstash.config import Settings
from cloudstash.enums import JobKind, LogLevel, QueueBackend


@pytest.mark.unit
class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("QUEUE_BACKEND", raising=False)
        monkeypatch.delenv("WORKER_CONCURRENCY", raising=False)
        settings = Settings(_env_file=None)

        assert settings.queue_backend == QueueBackend.POSTGRES
        assert settings.queue_name == "file-processing"
        assert settings.worker_concurrency == 5
        assert settings.queue_failed_threshold == 10
        assert settings.queue_active_threshold == 50
        assert settings.thumbnail_size == 300

    def test_environment_variables_override(self, monkeypatch):
        monkeypatch.setenv("QUEUE_BACKEND", "memory")
        monkeypatch.setenv("WORKER_CONCURRENCY", "8")

        settings = Settings(_env_file=None)

        assert settings.queue_backend == QueueBackend.MEMORY
        assert settings.worker_concurrency == 8

    def test_log_level_is_case_insensitive(self):
        assert Settings(_env_file=None, log_level="debug").log_level == LogLevel.DEBUG

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="chatty")

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="moon")

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, worker_concurrency=0)

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (JobKind.GENERATE_THUMBNAIL, (3, 1000)),
            (JobKind.EXTRACT_METADATA, (3, 1000)),
            (JobKind.ANALYZE_IMAGE, (2, 2000)),
        ],
    )
    def test_default_retry_policies(self, kind, expected):
        assert Settings(_env_file=None).retry_policy_values(kind) == expected

    def test_storage_path(self):
        settings = Settings(_env_file=None, storage_root="/srv/blobs")

        assert str(settings.storage_path) == "/srv/blobs"

    def test_stall_and_lease_defaults(self):
        settings = Settings(_env_file=None, job_lease_seconds=300)

        assert settings.max_stalled_count == 1
        assert settings.lease_renew_interval == 150

    def test_lease_renewal_never_exceeds_half_the_lease(self):
        settings = Settings(
            _env_file=None, job_lease_seconds=60, job_lease_renew_seconds=45
        )

        assert settings.lease_renew_interval == 30
