# backend/cloudstash/workers/base_worker.py
"""
Base worker class for the cloudstash worker process.

start()/stop() manage the worker lifecycle and call initialize()/cleanup().
They do not start processing; workers that consume a queue implement run().
"""

import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from typing import Any, Dict, Optional

from ..enums import LoggerName, LogSource
from ..services.logger import get_service_logger


class BaseWorker(ABC):
    """
    Abstract base class for all cloudstash workers.

    Provides common interface and utilities for worker implementation.
    """

    def __init__(self, name: str, logger_name: LoggerName = LoggerName.SYSTEM):
        """
        Initialize base worker.

        Args:
            name: Worker name for logging and identification
            logger_name: Logger name used for this worker's records
        """
        self.name = name
        self.running = False
        self._executor: Optional[Executor] = None
        self._logger = get_service_logger(logger_name, LogSource.WORKER)

    async def start(self) -> None:
        """Start the worker."""
        self.log_info(f"Starting {self.name} worker")
        self.running = True
        await self.initialize()

    async def stop(self) -> None:
        """Stop the worker."""
        self.log_info(f"Stopping {self.name} worker")
        self.running = False
        await self.cleanup()

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize worker-specific resources."""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Cleanup worker-specific resources."""
        pass

    def log_info(self, message: str, extra_context: Optional[Dict[str, Any]] = None) -> None:
        """Log info message with worker name prefix."""
        self._logger.info(f"[{self.name}] {message}", extra_context=extra_context)

    def log_error(
        self,
        message: str,
        error: Optional[BaseException] = None,
        error_context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log error message with worker name prefix."""
        text = f"[{self.name}] {message}: {error}" if error else f"[{self.name}] {message}"
        self._logger.error(text, exception=error, error_context=error_context)

    def log_warning(
        self, message: str, extra_context: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log warning message with worker name prefix."""
        self._logger.warning(f"[{self.name}] {message}", extra_context=extra_context)

    def log_debug(self, message: str, extra_context: Optional[Dict[str, Any]] = None) -> None:
        """Log debug message with worker name prefix."""
        self._logger.debug(f"[{self.name}] {message}", extra_context=extra_context)

    async def run_in_executor(self, func, *args) -> Any:
        """Run a sync function in the worker executor (the loop default if unset)."""
        return await asyncio.get_running_loop().run_in_executor(
            self._executor, func, *args
        )

    def get_status(self) -> Dict[str, Any]:
        """
        Get current worker status.

        Returns:
            Dictionary with worker status information
        """
        return {
            "name": self.name,
            "running": self.running,
            "worker_type": self.__class__.__name__,
        }

    def is_healthy(self) -> bool:
        return self.running
