# backend/cloudstash/database/__init__.py
"""
Database layer: connection pool core, schema and operation classes.

Nothing here is instantiated at import time; entrypoints construct a
SyncDatabase from settings and inject it.
"""

from .core import SyncDatabase, SyncDatabaseCore
from .exceptions import (
    DatabaseOperationError,
    FileRecordOperationError,
    JobQueueOperationError,
    SchemaOperationError,
)
from .file_record_operations import FileRecordOperations
from .job_queue_operations import JobQueueQueryBuilder, PostgresJobQueue
from .schema import ensure_schema

__all__ = [
    "DatabaseOperationError",
    "FileRecordOperationError",
    "FileRecordOperations",
    "JobQueueOperationError",
    "JobQueueQueryBuilder",
    "PostgresJobQueue",
    "SchemaOperationError",
    "SyncDatabase",
    "SyncDatabaseCore",
    "ensure_schema",
]
