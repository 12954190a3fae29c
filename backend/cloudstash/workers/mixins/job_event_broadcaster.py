# backend/cloudstash/workers/mixins/job_event_broadcaster.py
"""
Job lifecycle event broadcasting for workers.

Listeners subscribe to completed/failed events of the worker pool. A
listener that raises is logged and skipped; it never affects the job
outcome or the other listeners.
"""

from typing import Callable, Dict, List, Optional

from ...enums import JobLifecycleEvent, LogEmoji, LoggerName, LogSource
from ...models.job_model import Job
from ...services.logger import get_service_logger

logger = get_service_logger(LoggerName.EVENT_BROADCASTER, LogSource.WORKER)

JobEventListener = Callable[[JobLifecycleEvent, Job, Optional[str]], None]


class JobEventBroadcaster:
    """
    Fan-out of job lifecycle events to in-process listeners.

    Features:
    - Per-event listener lists
    - Failed listener calls are counted and logged, never raised
    """

    def __init__(self, worker_name: str):
        """
        Initialize broadcaster.

        Args:
            worker_name: Name of the worker for logging and identification
        """
        self.worker_name = worker_name
        self.failed_broadcast_count = 0
        self._listeners: Dict[JobLifecycleEvent, List[JobEventListener]] = {
            event: [] for event in JobLifecycleEvent
        }

    def subscribe(self, event: JobLifecycleEvent, listener: JobEventListener) -> None:
        self._listeners[event].append(listener)

    def unsubscribe(self, event: JobLifecycleEvent, listener: JobEventListener) -> bool:
        try:
            self._listeners[event].remove(listener)
            return True
        except ValueError:
            return False

    def listener_count(self, event: Optional[JobLifecycleEvent] = None) -> int:
        if event is not None:
            return len(self._listeners[event])
        return sum(len(listeners) for listeners in self._listeners.values())

    def broadcast_job_completed(self, job: Job) -> int:
        """
        Notify completed listeners.

        Returns:
            Number of listeners that ran without raising
        """
        return self._emit(JobLifecycleEvent.COMPLETED, job, None)

    def broadcast_job_failed(self, job: Job, error_message: str) -> int:
        """
        Notify failed listeners. Sent for every failed attempt, including
        attempts that will be retried.

        Returns:
            Number of listeners that ran without raising
        """
        return self._emit(JobLifecycleEvent.FAILED, job, error_message)

    def _emit(
        self, event: JobLifecycleEvent, job: Job, error_message: Optional[str]
    ) -> int:
        delivered = 0
        for listener in list(self._listeners[event]):
            try:
                listener(event, job, error_message)
                delivered += 1
            except Exception as e:
                self.failed_broadcast_count += 1
                logger.error(
                    f"[{self.worker_name}] Job event listener failed for "
                    f"{event.value} event of job {job.id}",
                    exception=e,
                    error_context={"job_id": job.id, "event": event.value},
                    emoji=LogEmoji.WARNING,
                )
        return delivered

    def get_broadcast_stats(self) -> Dict[str, int]:
        return {
            "listeners": self.listener_count(),
            "failed_broadcast_count": self.failed_broadcast_count,
        }
