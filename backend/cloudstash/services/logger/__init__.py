"""
Centralized Logger Service Module.

A thin, typed facade over loguru used by every service and worker.

Usage:
    from cloudstash.services.logger import get_service_logger
    from cloudstash.enums import LoggerName, LogSource

    logger = get_service_logger(LoggerName.JOB_QUEUE, LogSource.WORKER)
    logger.info("Job enqueued", extra_context={"job_id": 42})
"""

# Re-export commonly used enums for convenience
from ...enums import LogEmoji, LoggerName, LogLevel, LogSource
from .logger_service import ServiceLogger, configure_logging, get_service_logger

__all__ = [
    "ServiceLogger",
    "configure_logging",
    "get_service_logger",
    # Enums
    "LogLevel",
    "LogSource",
    "LoggerName",
    "LogEmoji",
]
