# backend/cloudstash/queue/factory.py
"""Construct the configured JobQueue backend."""

from typing import Optional, Tuple

from ..config import Settings
from ..database.core import SyncDatabase
from ..database.job_queue_operations import PostgresJobQueue
from ..database.schema import ensure_schema
from ..enums import QueueBackend
from .base import JobQueue
from .memory_queue import InMemoryJobQueue


def build_database(settings: Settings) -> SyncDatabase:
    """Create and open the connection pool described by settings."""
    db = SyncDatabase(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        timeout=settings.db_pool_timeout,
    )
    db.initialize()
    return db


def build_job_queue(
    settings: Settings, db: Optional[SyncDatabase] = None
) -> Tuple[JobQueue, Optional[SyncDatabase]]:
    """
    Build the job queue selected by ``settings.queue_backend``.

    Args:
        settings: Application settings
        db: Already opened database to reuse (postgres backend only)

    Returns:
        Tuple of (queue, database the caller must close or None)
    """
    if settings.queue_backend == QueueBackend.MEMORY:
        return (
            InMemoryJobQueue(
                name=settings.queue_name,
                lease_seconds=settings.job_lease_seconds,
                max_stalled_count=settings.max_stalled_count,
            ),
            db,
        )

    if db is None:
        db = build_database(settings)
    ensure_schema(db)
    return (
        PostgresJobQueue(
            db,
            name=settings.queue_name,
            lease_seconds=settings.job_lease_seconds,
            max_stalled_count=settings.max_stalled_count,
        ),
        db,
    )
