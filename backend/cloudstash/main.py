# backend/cloudstash/main.py
"""
FastAPI application entry point for the cloudstash queue operator API.

This file only handles HTTP request/response wiring. The worker pool runs
in the separate main_worker process; starting it here would create a second
consumer competing for the same jobs.
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool

from .config import Settings
from .config import settings as default_settings
from .enums import LogEmoji, LoggerName, LogSource
from .queue.base import JobQueue
from .routers import queue_routers
from .services.logger import configure_logging, get_service_logger
from .services.queue_service import FileProcessingQueueService

logger = get_service_logger(LoggerName.SYSTEM, LogSource.SYSTEM)


def create_app(
    job_queue: Optional[JobQueue] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """
    Build the API application.

    Args:
        job_queue: Queue to serve; when omitted the configured backend is
            built at startup and its database closed at shutdown
        settings: Settings override (defaults to the environment settings)

    Returns:
        Configured FastAPI application
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """Handle application startup and shutdown"""
        db = None
        queue = job_queue
        if queue is None:
            from .queue.factory import build_job_queue

            queue, db = build_job_queue(settings)

        _app.state.db = db
        _app.state.job_queue = queue
        _app.state.queue_service = FileProcessingQueueService.from_settings(
            queue, settings
        )
        logger.info(
            "Queue API started",
            emoji=LogEmoji.STARTUP,
            extra_context={
                "operation": "application_startup",
                "environment": settings.environment,
                "queue": queue.name,
                "queue_backend": type(queue).__name__,
            },
        )

        yield

        logger.info(
            "Queue API shutting down",
            emoji=LogEmoji.SHUTDOWN,
            extra_context={"operation": "application_shutdown"},
        )
        if db is not None:
            db.close()

    app = FastAPI(
        title="Cloudstash Processing API",
        description="Operator API for the background file-processing queue",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(queue_routers.router)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint. Reports the database pool when the queue uses one."""
        health = {"status": "healthy", "version": "1.0.0"}
        db = getattr(request.app.state, "db", None)
        if db is not None:
            database_ok = await run_in_threadpool(db.check_pool_health)
            health["database"] = "healthy" if database_ok else "unhealthy"
            if not database_ok:
                health["status"] = "degraded"
        return health

    return app


app = create_app()


def main() -> None:
    configure_logging(
        level=default_settings.log_level,
        log_file=default_settings.log_file,
        rotation=default_settings.log_rotation,
        retention=default_settings.log_retention,
    )
    uvicorn.run(
        "cloudstash.main:app",
        host=default_settings.api_host,
        port=default_settings.api_port,
        log_level=default_settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    main()
