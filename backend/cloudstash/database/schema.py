# backend/cloudstash/database/schema.py
"""
Idempotent schema for the durable job queue and the file records it patches.

``ensure_schema`` is safe to run on every startup.
"""

import psycopg

from .core import SyncDatabase
from .exceptions import SchemaOperationError

PIPELINE_JOBS_SCHEMA = """
CREATE TABLE IF NOT EXISTS pipeline_jobs (
    id BIGSERIAL PRIMARY KEY,
    queue_name TEXT NOT NULL,
    kind TEXT NOT NULL,
    data JSONB NOT NULL DEFAULT '{}'::jsonb,
    status TEXT NOT NULL DEFAULT 'waiting'
        CHECK (status IN ('waiting', 'active', 'completed', 'failed')),
    attempts_made INTEGER NOT NULL DEFAULT 0,
    attempts_allowed INTEGER NOT NULL DEFAULT 1 CHECK (attempts_allowed >= 1),
    backoff_type TEXT NOT NULL DEFAULT 'exponential',
    backoff_base_ms INTEGER NOT NULL DEFAULT 1000 CHECK (backoff_base_ms > 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    available_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    processed_on TIMESTAMPTZ,
    finished_on TIMESTAMPTZ,
    locked_until TIMESTAMPTZ,
    failed_reason TEXT,
    stalled_count INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_pipeline_jobs_ready
    ON pipeline_jobs (queue_name, status, available_at, id);

CREATE INDEX IF NOT EXISTS idx_pipeline_jobs_finished
    ON pipeline_jobs (queue_name, status, finished_on DESC, id DESC);
"""

FILES_SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    path TEXT NOT NULL,
    mime_type TEXT,
    original_name TEXT,
    thumbnail_path TEXT,
    metadata JSONB,
    tags JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


def ensure_schema(db: SyncDatabase, include_files: bool = True) -> None:
    """
    Create the pipeline tables if they do not exist.

    Args:
        db: Initialized database core
        include_files: Also create the files table (skip when another service owns it)

    Raises:
        SchemaOperationError: If a DDL statement fails
    """
    statements = [PIPELINE_JOBS_SCHEMA]
    if include_files:
        statements.append(FILES_SCHEMA)

    try:
        with db.get_connection() as conn:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)
    except psycopg.Error as e:
        raise SchemaOperationError(
            "Failed to create pipeline schema", operation="ensure_schema"
        ) from e
