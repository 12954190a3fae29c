# backend/cloudstash/services/logger/logger_service.py
"""
Logger service built on loguru.

Each service obtains a ServiceLogger bound to its LoggerName and LogSource.
Records carry structured context in loguru's ``extra`` dict, so the JSON file
sink keeps job ids, file ids and MIME types next to every message.
"""

import sys
from typing import Any, Dict, Optional

from loguru import logger

from ...enums import LogEmoji, LoggerName, LogLevel, LogSource

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[source]}</cyan>:<cyan>{extra[logger_name]}</cyan> - "
    "<level>{message}</level>"
)

# Defaults so records emitted outside a ServiceLogger still render
logger.configure(extra={"source": LogSource.SYSTEM.value, "logger_name": "-"})


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    colorize: bool = True,
) -> None:
    """
    Replace loguru's default sink with the application sinks.

    Args:
        level: Minimum level for all sinks
        log_file: Optional path of a JSON-lines log file
        rotation: Size or interval at which the log file rotates
        retention: How long rotated log files are kept
        colorize: Whether console output uses ANSI colors
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.value,
        format=CONSOLE_FORMAT,
        colorize=colorize,
        backtrace=False,
        diagnose=False,
    )
    if log_file:
        logger.add(
            log_file,
            level=level.value,
            rotation=rotation,
            retention=retention,
            serialize=True,
            enqueue=True,
        )


class ServiceLogger:
    """
    Logger pre-bound to a logger name and source.

    Emoji priority: direct emoji argument, then the instance default, then the
    level fallback.
    """

    def __init__(
        self,
        logger_name: LoggerName,
        source: LogSource = LogSource.SYSTEM,
        default_emoji: Optional[LogEmoji] = None,
    ):
        self.logger_name = logger_name
        self.source = source
        self.default_emoji = default_emoji
        self._logger = logger.bind(logger_name=logger_name.value, source=source.value)

    def _resolve_emoji(
        self, method_emoji: Optional[LogEmoji], fallback_emoji: LogEmoji
    ) -> LogEmoji:
        if method_emoji is not None:
            return method_emoji
        if self.default_emoji is not None:
            return self.default_emoji
        return fallback_emoji

    def _emit(
        self,
        level: str,
        message: str,
        emoji: LogEmoji,
        context: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None,
    ) -> None:
        text = message if message.startswith(emoji.value) else f"{emoji.value} {message}"
        bound = self._logger.bind(context=context or {})
        # depth=2 reports the caller of error/info/... rather than this helper
        bound.opt(exception=exception, depth=2).log(level, text)

    def error(
        self,
        message: str,
        exception: Optional[BaseException] = None,
        error_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        """Log an error, attaching the traceback when an exception is given."""
        self._emit(
            "ERROR",
            message,
            self._resolve_emoji(emoji, LogEmoji.ERROR),
            error_context,
            exception,
        )

    def warning(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._emit(
            "WARNING", message, self._resolve_emoji(emoji, LogEmoji.WARNING), extra_context
        )

    def info(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._emit(
            "INFO", message, self._resolve_emoji(emoji, LogEmoji.INFO), extra_context
        )

    def debug(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._emit(
            "DEBUG", message, self._resolve_emoji(emoji, LogEmoji.DEBUG), extra_context
        )


def get_service_logger(
    logger_name: LoggerName,
    source: LogSource = LogSource.SYSTEM,
    default_emoji: Optional[LogEmoji] = None,
) -> ServiceLogger:
    """
    Factory function to create a pre-configured logger for a specific service.

    Args:
        logger_name: The logger name enum to use for all calls
        source: The log source enum to use for all calls (defaults to SYSTEM)
        default_emoji: Instance-level default emoji that overrides level-based fallbacks

    Returns:
        ServiceLogger instance with error, warning, info, debug methods

    Example:
        logger = get_service_logger(LoggerName.THUMBNAIL_PIPELINE, LogSource.PIPELINE)
        logger.error("Thumbnail failed", exception=e, error_context={"file_id": "f1"})
    """
    return ServiceLogger(logger_name, source, default_emoji)
