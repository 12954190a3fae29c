# backend/tests/database/conftest.py
"""
Shared fixtures for database operations tests.

Operations are tested against a mocked connection pool; assertions look at
the SQL and parameters that reach the cursor.
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest


@pytest.fixture
def mock_sync_db():
    """
    Mock sync database connection for testing sync database operations.

    Returns:
        tuple: (db_mock, connection_mock, cursor_mock) for easy access in tests
    """
    db = Mock()
    conn = Mock()
    cursor = Mock()

    # Setup sync context managers
    db.get_connection.return_value.__enter__ = Mock(return_value=conn)
    db.get_connection.return_value.__exit__ = Mock(return_value=None)
    conn.cursor.return_value.__enter__ = Mock(return_value=cursor)
    conn.cursor.return_value.__exit__ = Mock(return_value=None)

    return db, conn, cursor


@pytest.fixture
def mock_current_time():
    """Mock current time for consistent testing."""
    return datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

