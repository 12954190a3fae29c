# backend/cloudstash/utils/router_helpers.py
"""
Router Helper Functions

Common decorators for FastAPI routers: standardized error handling that maps
queue domain errors onto HTTP status codes.
"""

from functools import wraps
from typing import Callable

from fastapi import HTTPException

from ..enums import LoggerName, LogSource
from ..exceptions import JobNotFoundError, JobStateError, QueueConnectionError
from ..services.logger import get_service_logger

logger = get_service_logger(LoggerName.QUEUE_ROUTER, LogSource.API)


def handle_exceptions(operation_name: str):
    """
    Decorator for standardized exception handling in router endpoints.

    Provides consistent error logging and HTTP response patterns across all routers.

    Args:
        operation_name: Human-readable description of the operation for error messages

    Usage:
        @handle_exceptions("fetch queue stats")
        async def get_queue_stats():
            # endpoint logic here
            pass
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                # Re-raise HTTP exceptions as-is
                raise
            except JobNotFoundError:
                raise HTTPException(status_code=404, detail="Job not found")
            except JobStateError as e:
                raise HTTPException(status_code=409, detail=str(e))
            except QueueConnectionError as e:
                logger.error(
                    f"Queue backend unavailable while trying to {operation_name}",
                    exception=e,
                )
                raise HTTPException(
                    status_code=503, detail="Queue backend unavailable"
                )
            except Exception as e:
                logger.error(f"Error {operation_name}: {e}", exception=e)
                raise HTTPException(
                    status_code=500, detail=f"Failed to {operation_name}"
                )

        return wrapper

    return decorator
