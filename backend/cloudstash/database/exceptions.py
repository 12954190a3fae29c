# backend/cloudstash/database/exceptions.py
"""
Database Operation Exceptions - Clean Error Handling Pattern

Database operations raise these exceptions without logging; the service and
worker layers catch them and decide how to log and whether to retry.

Implementation Pattern:
    1. Catch specific database errors (psycopg.Error, KeyError, ValueError)
    2. Raise the domain-specific exception with descriptive message and operation
    3. Use 'from e' to preserve the original error chain
"""

from typing import Any, Dict, Optional


class DatabaseOperationError(Exception):
    """
    Base exception for all database operation failures.

    Provides a clean interface for database errors without requiring
    logging dependencies in the database layer.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}

    def __str__(self):
        if self.operation:
            return f"{self.operation}: {super().__str__()}"
        return super().__str__()


class JobQueueOperationError(DatabaseOperationError):
    """Job queue table operation errors."""

    pass


class FileRecordOperationError(DatabaseOperationError):
    """File record table operation errors."""

    pass


class SchemaOperationError(DatabaseOperationError):
    """Schema creation errors."""

    pass
