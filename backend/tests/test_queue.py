"""
Tests for the Redis-backed job queue.

Uses fakeredis so the real list/hash commands are exercised.
"""
import json
from unittest.mock import MagicMock, patch

import pytest
import redis

from apps.core.errors import LeaseLost, QueueUnavailable
from apps.jobs.queue import JobQueue, JobState


PAYLOAD = {'publicId': 'aidocify/abc-report.pdf', 'fileUrl': 'http://blob/abc', 'originalName': 'report.pdf'}


class TestEnqueue:

    def test_enqueue_assigns_increasing_ids(self, queue):
        """Job ids are increasing integers, as strings."""
        first = queue.enqueue(PAYLOAD)
        second = queue.enqueue(PAYLOAD)

        assert first.id == '1'
        assert second.id == '2'

    def test_new_job_is_waiting(self, queue):
        """A freshly queued job reports waiting with zero progress."""
        handle = queue.enqueue(PAYLOAD)

        status = queue.get_status(handle.id)

        assert status.state == JobState.WAITING
        assert status.progress == 0
        assert not status.is_completed
        assert not status.is_failed
        assert status.timestamp is not None

    def test_broker_down_raises_queue_unavailable(self, config):
        """Enqueue fails fast instead of dropping the job."""
        client = MagicMock()
        client.incr.side_effect = redis.ConnectionError("connection refused")

        with pytest.raises(QueueUnavailable):
            JobQueue(client, config).enqueue(PAYLOAD)

    def test_unknown_job_status_is_none(self, queue):
        assert queue.get_status('999') is None


class TestClaim:

    def test_claim_returns_payload_and_marks_active(self, queue):
        handle = queue.enqueue(PAYLOAD)

        claimed = queue.claim()

        assert claimed.id == handle.id
        assert claimed.data == PAYLOAD
        assert claimed.attempts_made == 1
        status = queue.get_status(handle.id)
        assert status.state == JobState.ACTIVE
        assert status.processed_on is not None

    def test_claim_is_fifo(self, queue):
        ids = [queue.enqueue(PAYLOAD).id for _ in range(3)]

        claimed = [queue.claim().id for _ in range(3)]

        assert claimed == ids

    def test_claim_empty_queue(self, queue):
        assert queue.claim() is None

    def test_each_job_claimed_once(self, queue):
        queue.enqueue(PAYLOAD)

        assert queue.claim() is not None
        assert queue.claim() is None


class TestCompletion:

    def test_complete_is_terminal_and_stable(self, queue):
        """Polling a completed job always returns the same terminal state."""
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()
        queue.complete(handle.id, claimed.token, {'chunks': 3})

        statuses = [queue.get_status(handle.id) for _ in range(3)]

        for status in statuses:
            assert status.state == JobState.COMPLETED
            assert status.progress == 100
            assert status.is_completed
            assert status.finished_on is not None
        assert len({s.finished_on for s in statuses}) == 1
        assert queue.counts() == {JobState.WAITING: 0, JobState.ACTIVE: 0}

    def test_finished_job_expires_after_retention(self, queue, redis_client):
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()
        queue.complete(handle.id, claimed.token)

        assert 0 < redis_client.ttl(queue.job_key(handle.id)) <= 60

    def test_progress_is_clamped(self, queue):
        handle = queue.enqueue(PAYLOAD)
        queue.claim()

        queue.update_progress(handle.id, 140)

        assert queue.get_status(handle.id).progress == 100


class TestFailure:

    def test_fail_without_attempts_left_is_terminal(self, queue):
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()

        will_retry = queue.fail(handle.id, claimed.token, 'FETCH_FAILED: 404')

        assert will_retry is False
        status = queue.get_status(handle.id)
        assert status.state == JobState.FAILED
        assert status.is_failed
        assert status.failed_reason == 'FETCH_FAILED: 404'

    def test_fail_with_attempts_left_requeues(self, redis_client, config):
        from dataclasses import replace
        queue = JobQueue(redis_client, replace(config, job_attempts=2))
        handle = queue.enqueue(PAYLOAD)
        first = queue.claim()

        will_retry = queue.fail(handle.id, first.token, 'timeout')

        assert will_retry is True
        assert queue.get_status(handle.id).state == JobState.WAITING

        retried = queue.claim()
        assert retried.id == handle.id
        assert retried.attempts_made == 2

        assert queue.fail(handle.id, retried.token, 'timeout again') is False
        assert queue.get_status(handle.id).state == JobState.FAILED


class TestStalledRecovery:

    def test_expired_lease_is_requeued(self, queue, redis_client):
        """A job whose worker died goes back to waiting on the second sweep."""
        handle = queue.enqueue(PAYLOAD)
        queue.claim()
        redis_client.delete(queue.lock_key(handle.id))

        assert queue.recover_stalled() == 0
        assert queue.recover_stalled() == 1
        assert queue.get_status(handle.id).state == JobState.WAITING
        assert queue.claim().id == handle.id

    def test_held_lease_is_left_alone(self, queue):
        queue.enqueue(PAYLOAD)
        queue.claim()

        assert queue.recover_stalled() == 0
        assert queue.recover_stalled() == 0
        assert queue.counts()[JobState.ACTIVE] == 1

    def test_finished_job_left_in_active_is_dropped_not_requeued(self, queue, redis_client):
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()
        queue.complete(handle.id, claimed.token)
        redis_client.lpush(queue.active_key, handle.id)

        assert queue.recover_stalled() == 0
        assert queue.recover_stalled() == 0
        assert queue.counts() == {JobState.WAITING: 0, JobState.ACTIVE: 0}
        assert queue.get_status(handle.id).is_completed


class TestLeases:

    def sweep_during_claim(self, redis_client, queue, sweeps):
        """Run stalled-job sweeps after the id is moved but before the lease is taken."""
        real_lmove = redis_client.lmove

        def lmove_then_sweep(*args, **kwargs):
            job_id = real_lmove(*args, **kwargs)
            for _ in range(sweeps):
                queue.recover_stalled()
            return job_id

        return patch.object(redis_client, 'lmove', side_effect=lmove_then_sweep)

    def test_single_sweep_before_lease_does_not_requeue(self, queue, redis_client):
        handle = queue.enqueue(PAYLOAD)

        with self.sweep_during_claim(redis_client, queue, sweeps=1):
            claimed = queue.claim()

        assert claimed.id == handle.id
        assert queue.recover_stalled() == 0
        assert queue.recover_stalled() == 0
        assert queue.claim() is None
        assert redis_client.scard(queue.stalled_key) == 0

    def test_requeue_before_lease_does_not_double_claim(self, queue, redis_client):
        """If a sweep requeues the id mid-claim, the claim backs off."""
        handle = queue.enqueue(PAYLOAD)

        with self.sweep_during_claim(redis_client, queue, sweeps=2):
            assert queue.claim() is None

        claimed = queue.claim()
        assert claimed.id == handle.id
        assert claimed.attempts_made == 1
        assert queue.claim() is None
        assert queue.counts() == {JobState.WAITING: 0, JobState.ACTIVE: 1}

    def test_complete_after_requeue_stays_completed(self, queue, redis_client):
        """A slow job whose lease lapsed can still finish, and is not picked up again."""
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()
        redis_client.delete(queue.lock_key(handle.id))
        queue.recover_stalled()
        assert queue.recover_stalled() == 1

        queue.complete(handle.id, claimed.token)

        assert queue.claim() is None
        assert queue.counts() == {JobState.WAITING: 0, JobState.ACTIVE: 0}
        for _ in range(3):
            assert queue.get_status(handle.id).is_completed

    def test_old_holder_cannot_finish_after_takeover(self, queue, redis_client):
        handle = queue.enqueue(PAYLOAD)
        first = queue.claim()
        redis_client.delete(queue.lock_key(handle.id))
        queue.recover_stalled()
        queue.recover_stalled()
        second = queue.claim()

        with pytest.raises(LeaseLost):
            queue.complete(handle.id, first.token, {'chunks': 1})
        with pytest.raises(LeaseLost):
            queue.fail(handle.id, first.token, 'late failure')
        assert redis_client.get(queue.lock_key(handle.id)) == second.token

        queue.complete(handle.id, second.token, {'chunks': 2})
        assert queue.get_status(handle.id).is_completed
        assert not redis_client.exists(queue.lock_key(handle.id))

    def test_finished_job_cannot_be_finished_again(self, queue):
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()
        queue.complete(handle.id, claimed.token)

        with pytest.raises(LeaseLost):
            queue.fail(handle.id, claimed.token, 'late failure')
        assert queue.get_status(handle.id).is_completed

    def test_terminal_id_in_wait_list_is_skipped(self, queue, redis_client):
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()
        queue.complete(handle.id, claimed.token)
        redis_client.lpush(queue.wait_key, handle.id)

        assert queue.claim() is None
        assert queue.counts() == {JobState.WAITING: 0, JobState.ACTIVE: 0}
        assert queue.get_status(handle.id).is_completed

    def test_extend_lease_requires_matching_token(self, queue, redis_client):
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()
        redis_client.expire(queue.lock_key(handle.id), 5)

        assert queue.extend_lease(handle.id, 'someone-else') is False
        assert redis_client.ttl(queue.lock_key(handle.id)) <= 5

        assert queue.extend_lease(handle.id, claimed.token) is True
        assert redis_client.ttl(queue.lock_key(handle.id)) > 5

    def test_extend_lease_after_expiry_is_refused(self, queue, redis_client):
        handle = queue.enqueue(PAYLOAD)
        claimed = queue.claim()
        redis_client.delete(queue.lock_key(handle.id))

        assert queue.extend_lease(handle.id, claimed.token) is False


class TestStatusShape:

    def test_to_dict_matches_api_contract(self, queue):
        handle = queue.enqueue(PAYLOAD)

        data = queue.get_status(handle.id).to_dict()

        assert set(data) >= {
            'jobId', 'status', 'progress', 'isCompleted', 'isFailed',
            'failedReason', 'timestamp', 'processedOn', 'finishedOn',
        }
        json.dumps(data)
