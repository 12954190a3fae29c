# backend/cloudstash/workers/mixins/retry_manager.py
"""
Retry Manager for job failure handling.

Computes exponential backoff for failed jobs from the retry policy attached
at enqueue time. Both queue backends use it, so the retry budget and the
delay schedule are decided in one place.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ...enums import BackoffType, LoggerName, LogEmoji, LogSource
from ...models.job_model import Job, RetryPolicy
from ...services.logger import get_service_logger
from ...utils.time_utils import utc_now

logger = get_service_logger(LoggerName.RETRY_MANAGER, LogSource.WORKER)


class RetryManager:
    """
    Manages exponential backoff retry logic for failed jobs.

    ``attempts_made`` is always the number of attempts that have finished,
    including the one that just failed. With attempts_allowed=3 and a 1s
    base the schedule is: fail #1 -> retry after 1s, fail #2 -> retry after
    2s, fail #3 -> permanently failed.
    """

    def __init__(self, policy: RetryPolicy, owner_name: str = "Queue"):
        """
        Initialize retry manager.

        Args:
            policy: Retry budget and backoff of the job
            owner_name: Name of the queue or worker for logging purposes
        """
        self.policy = policy
        self.owner_name = owner_name

        # Validate configuration
        if policy.attempts_allowed <= 0:
            raise ValueError("attempts_allowed must be greater than 0")
        if policy.backoff_base_ms <= 0:
            raise ValueError("backoff_base_ms must be positive")

    @classmethod
    def for_job(cls, job: Job, owner_name: str = "Queue") -> "RetryManager":
        return cls(job.retry_policy, owner_name)

    @property
    def attempts_allowed(self) -> int:
        return self.policy.attempts_allowed

    def should_retry(self, attempts_made: int) -> bool:
        """
        Determine if a job should be retried after a failed attempt.

        Args:
            attempts_made: Finished attempts including the failed one

        Returns:
            True if budget remains, False if the job has to fail permanently
        """
        return attempts_made < self.policy.attempts_allowed

    def get_retry_delay_ms(self, attempts_made: int) -> int:
        """
        Get the delay in milliseconds before the next attempt.

        Exponential: base * 2 ** (attempts_made - 1). Fixed: base.

        Args:
            attempts_made: Finished attempts including the failed one (1-based)

        Returns:
            Delay in milliseconds before the next attempt
        """
        if self.policy.backoff_type == BackoffType.FIXED:
            return self.policy.backoff_base_ms
        exponent = max(attempts_made - 1, 0)
        return self.policy.backoff_base_ms * (2**exponent)

    def get_retry_delay(self, attempts_made: int) -> float:
        """Delay in seconds before the next attempt."""
        return self.get_retry_delay_ms(attempts_made) / 1000.0

    def calculate_next_retry_time(
        self, attempts_made: int, now: Optional[datetime] = None
    ) -> datetime:
        """
        Calculate when a failed job becomes due again.

        Args:
            attempts_made: Finished attempts including the failed one
            now: Reference time (defaults to current UTC time)

        Returns:
            UTC datetime when the job should be retried
        """
        reference = now if now is not None else utc_now()
        return reference + timedelta(milliseconds=self.get_retry_delay_ms(attempts_made))

    def get_retry_info(
        self, job_id: int, attempts_made: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Get retry information for a job that just failed.

        Args:
            job_id: Id of the failed job
            attempts_made: Finished attempts including the failed one
            now: Reference time for the next retry

        Returns:
            Dictionary containing retry status and timing information
        """
        can_retry = self.should_retry(attempts_made)
        info: Dict[str, Any] = {
            "job_id": job_id,
            "attempts_made": attempts_made,
            "attempts_allowed": self.policy.attempts_allowed,
            "can_retry": can_retry,
            "is_final_attempt": attempts_made + 1 >= self.policy.attempts_allowed,
        }

        if can_retry:
            next_retry_time = self.calculate_next_retry_time(attempts_made, now)
            info.update(
                {
                    "retry_delay_ms": self.get_retry_delay_ms(attempts_made),
                    "next_retry_time": next_retry_time.isoformat(),
                }
            )

        return info

    def log_retry_scheduled(
        self,
        job_id: int,
        attempts_made: int,
        error_message: str,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Log the outcome of a failed attempt.

        Args:
            job_id: Id of the failed job
            attempts_made: Finished attempts including the failed one
            error_message: Error that caused the failure
            now: Reference time the retry was scheduled from
        """
        info = self.get_retry_info(job_id, attempts_made, now)
        if info["can_retry"]:
            logger.warning(
                f"[{self.owner_name}] Job {job_id} failed "
                f"(attempt {attempts_made}/{self.policy.attempts_allowed}), "
                f"retrying in {self.get_retry_delay(attempts_made):g}s: {error_message}",
                emoji=LogEmoji.RETRY,
                extra_context=info,
            )
        else:
            logger.error(
                f"[{self.owner_name}] Job {job_id} permanently failed after "
                f"{attempts_made} attempts: {error_message}",
                error_context=info,
            )

    def __repr__(self) -> str:
        """String representation of retry manager."""
        return (
            f"RetryManager(owner='{self.owner_name}', "
            f"attempts_allowed={self.policy.attempts_allowed}, "
            f"backoff={self.policy.backoff_type.value}:{self.policy.backoff_base_ms}ms)"
        )
