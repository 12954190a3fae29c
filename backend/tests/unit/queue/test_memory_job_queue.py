#!/usr/bin/env python3
# backend/tests/unit/queue/test_memory_job_queue.py
"""
Unit tests for InMemoryJobQueue.

Covers ordering, leases, ack/retry transitions with backoff, operator
listing and retry, lease renewal, stalled job recovery and purging.
"""

from datetime import timedelta

import pytest

from cloudstash.constants import STALLED_JOB_FAILED_REASON
from cloudstash.enums import JobKind, JobState
from cloudstash.exceptions import JobNotFoundError, JobStateError
from cloudstash.models.job_model import RetryPolicy
from cloudstash.queue import JobQueue
from cloudstash.queue.memory_queue import InMemoryJobQueue

from factories import thumbnail_payload_data


@pytest.mark.unit
@pytest.mark.queue
class TestInMemoryJobQueue:
    """Test suite for the in-memory queue backend."""

    def _enqueue(self, job_queue, policy=None, file_id="file-1"):
        return job_queue.enqueue(
            JobKind.GENERATE_THUMBNAIL,
            thumbnail_payload_data(file_id=file_id),
            policy or RetryPolicy(attempts_allowed=3, backoff_base_ms=1000),
        )

    def test_satisfies_protocol(self, job_queue):
        assert isinstance(job_queue, JobQueue)

    def test_enqueue_assigns_increasing_ids_and_waits(self, job_queue):
        first = self._enqueue(job_queue)
        second = self._enqueue(job_queue, file_id="file-2")

        assert second > first
        job = job_queue.get_job(first)
        assert job.state == JobState.WAITING
        assert job.kind == "generate-thumbnail"
        assert job.data["fileId"] == "file-1"
        assert job.attempts_made == 0
        assert job.attempts_allowed == 3

    def test_dequeue_is_fifo(self, job_queue):
        ids = [self._enqueue(job_queue, file_id=f"file-{i}") for i in range(3)]

        claimed = [job_queue.dequeue_next().id for _ in range(3)]

        assert claimed == ids
        assert job_queue.dequeue_next() is None

    def test_dequeue_marks_active_with_lease(self, job_queue, clock):
        job_id = self._enqueue(job_queue)

        job = job_queue.dequeue_next()

        assert job.id == job_id
        assert job.state == JobState.ACTIVE
        assert job.processed_on == clock()
        assert job.locked_until == clock() + timedelta(seconds=60)

    def test_no_job_is_claimed_twice(self, job_queue):
        self._enqueue(job_queue)

        assert job_queue.dequeue_next() is not None
        assert job_queue.dequeue_next() is None

    def test_ack_completes_job(self, job_queue, clock):
        job_id = self._enqueue(job_queue)
        job_queue.dequeue_next()

        assert job_queue.ack(job_id) is True

        job = job_queue.get_job(job_id)
        assert job.state == JobState.COMPLETED
        assert job.attempts_made == 1
        assert job.finished_on == clock()

    def test_ack_of_non_active_job_is_ignored(self, job_queue):
        job_id = self._enqueue(job_queue)

        assert job_queue.ack(job_id) is False
        assert job_queue.get_job(job_id).state == JobState.WAITING

    def test_ack_unknown_job_raises(self, job_queue):
        with pytest.raises(JobNotFoundError):
            job_queue.ack(999)

    def test_fail_with_retry_reschedules_with_exponential_backoff(
        self, job_queue, clock
    ):
        job_id = self._enqueue(job_queue)

        job_queue.dequeue_next()
        first = job_queue.fail_with_retry(job_id, "boom")
        assert first.state == JobState.DELAYED
        assert first.attempts_made == 1
        assert first.available_at == clock() + timedelta(seconds=1)
        assert first.failed_reason == "boom"

        # Not due yet
        assert job_queue.dequeue_next() is None

        clock.advance(seconds=1)
        assert job_queue.dequeue_next().id == job_id
        second = job_queue.fail_with_retry(job_id, "boom again")
        assert second.attempts_made == 2
        assert second.available_at == clock() + timedelta(seconds=2)

    def test_fail_with_retry_exhausts_budget(self, job_queue, clock):
        job_id = self._enqueue(
            job_queue, RetryPolicy(attempts_allowed=2, backoff_base_ms=2000)
        )

        job_queue.dequeue_next()
        job_queue.fail_with_retry(job_id, "first")
        clock.advance(seconds=2)
        job_queue.dequeue_next()
        final = job_queue.fail_with_retry(job_id, "second")

        assert final.state == JobState.FAILED
        assert final.attempts_made == 2
        assert final.failed_reason == "second"
        assert final.finished_on == clock()
        assert job_queue.counts_by_state().failed == 1

    def test_fail_with_retry_truncates_long_reasons(self, job_queue):
        job_id = self._enqueue(job_queue)
        job_queue.dequeue_next()

        job = job_queue.fail_with_retry(job_id, "x" * 5000)

        assert len(job.failed_reason) == 2000
        assert job.failed_reason.endswith("...")

    def test_fail_with_retry_of_non_active_job_returns_none(self, job_queue):
        job_id = self._enqueue(job_queue)

        assert job_queue.fail_with_retry(job_id, "boom") is None

    def test_counts_by_state_reports_delayed(self, job_queue):
        waiting = self._enqueue(job_queue)
        delayed = self._enqueue(job_queue, file_id="file-2")
        self._enqueue(job_queue, file_id="file-3")

        assert job_queue.dequeue_next().id == waiting
        job_queue.ack(waiting)
        assert job_queue.dequeue_next().id == delayed
        job_queue.fail_with_retry(delayed, "boom")

        counts = job_queue.counts_by_state()
        assert counts.completed == 1
        assert counts.delayed == 1
        assert counts.waiting == 1
        assert counts.active == 0
        assert counts.failed == 0
        assert counts.total == 3

    def test_failed_listing_is_most_recent_first(self, job_queue, clock):
        policy = RetryPolicy(attempts_allowed=1, backoff_base_ms=1000)
        ids = [self._enqueue(job_queue, policy, f"file-{i}") for i in range(3)]
        for job_id in ids:
            job_queue.dequeue_next()
            job_queue.fail_with_retry(job_id, f"failed {job_id}")
            clock.advance(seconds=1)

        listed = job_queue.get_jobs_by_state(JobState.FAILED, 0, 10)

        assert [job.id for job in listed] == list(reversed(ids))

    def test_waiting_listing_is_insertion_order_and_paginated(self, job_queue):
        ids = [self._enqueue(job_queue, file_id=f"file-{i}") for i in range(5)]

        page = job_queue.get_jobs_by_state(JobState.WAITING, offset=1, limit=2)

        assert [job.id for job in page] == ids[1:3]

    def test_retry_job_moves_failed_job_to_waiting(self, job_queue):
        policy = RetryPolicy(attempts_allowed=1, backoff_base_ms=1000)
        job_id = self._enqueue(job_queue, policy)
        job_queue.dequeue_next()
        job_queue.fail_with_retry(job_id, "boom")

        job = job_queue.retry_job(job_id)

        assert job.state == JobState.WAITING
        assert job.attempts_made == 1
        assert job.failed_reason is None
        assert job.data == thumbnail_payload_data()
        assert job_queue.dequeue_next().id == job_id

    def test_retry_job_unknown_id_raises(self, job_queue):
        with pytest.raises(JobNotFoundError):
            job_queue.retry_job(12345)

    def test_retry_job_requires_failed_state(self, job_queue):
        job_id = self._enqueue(job_queue)

        with pytest.raises(JobStateError):
            job_queue.retry_job(job_id)

    def test_recover_stalled_jobs_redelivers_expired_leases(self, job_queue, clock):
        job_id = self._enqueue(job_queue)
        job_queue.dequeue_next()

        assert job_queue.recover_stalled_jobs() == 0

        clock.advance(seconds=61)
        assert job_queue.recover_stalled_jobs() == 1

        job = job_queue.dequeue_next()
        assert job.id == job_id
        assert job.stalled_count == 1
        assert job.attempts_made == 0

    def test_job_stalling_past_limit_is_failed(self, job_queue, clock):
        job_id = self._enqueue(job_queue)

        for _ in range(10):
            if job_queue.dequeue_next() is None:
                break
            clock.advance(seconds=61)
            job_queue.recover_stalled_jobs()

        job = job_queue.get_job(job_id)
        assert job.state == JobState.FAILED
        assert job.stalled_count == 2
        assert job.attempts_made == 0
        assert job.failed_reason == STALLED_JOB_FAILED_REASON
        assert job.finished_on == clock()
        assert job.locked_until is None
        assert job_queue.counts_by_state().failed == 1

    def test_zero_stall_limit_fails_on_first_stall(self, clock):
        job_queue = InMemoryJobQueue(clock=clock, lease_seconds=60, max_stalled_count=0)
        job_id = self._enqueue(job_queue)
        job_queue.dequeue_next()

        clock.advance(seconds=61)
        assert job_queue.recover_stalled_jobs() == 1

        assert job_queue.get_job(job_id).state == JobState.FAILED
        assert job_queue.dequeue_next() is None

    def test_retry_job_resets_stall_budget(self, job_queue, clock):
        job_id = self._enqueue(job_queue)
        for _ in range(2):
            job_queue.dequeue_next()
            clock.advance(seconds=61)
            job_queue.recover_stalled_jobs()
        assert job_queue.get_job(job_id).state == JobState.FAILED

        job = job_queue.retry_job(job_id)

        assert job.stalled_count == 0
        job_queue.dequeue_next()
        clock.advance(seconds=61)
        job_queue.recover_stalled_jobs()
        assert job_queue.get_job(job_id).state == JobState.WAITING

    def test_extend_lease_keeps_running_job_active(self, job_queue, clock):
        job_id = self._enqueue(job_queue)
        job_queue.dequeue_next()

        clock.advance(seconds=50)
        assert job_queue.extend_lease(job_id) is True
        assert job_queue.get_job(job_id).locked_until == clock() + timedelta(seconds=60)

        clock.advance(seconds=30)
        assert job_queue.recover_stalled_jobs() == 0
        assert job_queue.get_job(job_id).state == JobState.ACTIVE

    def test_extend_lease_of_inactive_job_returns_false(self, job_queue):
        job_id = self._enqueue(job_queue)

        assert job_queue.extend_lease(job_id) is False
        assert job_queue.extend_lease(999) is False

    def test_purge_removes_old_completed_jobs_only(self, job_queue, clock):
        old = self._enqueue(job_queue)
        job_queue.dequeue_next()
        job_queue.ack(old)
        clock.advance(seconds=3600)
        recent = self._enqueue(job_queue, file_id="file-2")
        job_queue.dequeue_next()
        job_queue.ack(recent)

        purged = job_queue.purge_jobs(
            JobState.COMPLETED, clock() - timedelta(seconds=60)
        )

        assert purged == 1
        assert job_queue.get_job(old) is None
        assert job_queue.get_job(recent) is not None

    def test_purge_rejects_non_terminal_states(self, job_queue, clock):
        with pytest.raises(ValueError):
            job_queue.purge_jobs(JobState.WAITING, clock())

    def test_returned_jobs_are_snapshots(self, job_queue):
        job_id = self._enqueue(job_queue)

        job = job_queue.get_job(job_id)
        job.data["fileId"] = "mutated"

        assert job_queue.get_job(job_id).data["fileId"] == "file-1"
