"""
Redis-backed job queue.

Jobs move through: waiting -> active -> completed | failed

Layout under the '<prefix>' namespace:
- <prefix>:id            counter used to assign job ids
- <prefix>:wait          list of waiting job ids (LPUSH in, BLMOVE out = FIFO)
- <prefix>:active        list of claimed job ids
- <prefix>:job:<id>      hash with the job record
- <prefix>:lock:<id>     lease token of the worker processing the job
- <prefix>:stalled       active ids seen without a lease by the last sweep

A job whose lease expires while still active is considered stalled and is
moved back to waiting by recover_stalled(), so delivery is at-least-once.
The worker renews its lease with extend_lease() while a job runs.
"""
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import redis

from apps.core.config import ServiceConfig
from apps.core.errors import LeaseLost, QueueUnavailable

logger = logging.getLogger(__name__)


class JobState:
    WAITING = 'waiting'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    FAILED = 'failed'

    TERMINAL = (COMPLETED, FAILED)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class JobHandle:
    """Reference returned by enqueue()."""
    id: str


@dataclass
class ClaimedJob:
    """A job claimed by a worker."""
    id: str
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    attempts_made: int = 1
    token: str = ''


@dataclass
class JobStatus:
    """Snapshot of a job for status polling."""
    id: str
    state: str
    progress: int = 0
    failed_reason: Optional[str] = None
    attempts_made: int = 0
    timestamp: Optional[int] = None
    processed_on: Optional[int] = None
    finished_on: Optional[int] = None

    @property
    def is_completed(self) -> bool:
        return self.state == JobState.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.state == JobState.FAILED

    def to_dict(self) -> dict:
        """Convert to the JSON shape served by the job-status endpoint."""
        return {
            'jobId': self.id,
            'status': self.state,
            'progress': self.progress,
            'isCompleted': self.is_completed,
            'isFailed': self.is_failed,
            'failedReason': self.failed_reason,
            'attemptsMade': self.attempts_made,
            'timestamp': self.timestamp,
            'processedOn': self.processed_on,
            'finishedOn': self.finished_on,
        }


def _int_or_none(value) -> Optional[int]:
    return int(value) if value not in (None, '') else None


class JobQueue:
    """
    At-least-once work queue on top of Redis lists and hashes.

    The API process only calls enqueue() and get_status(); the worker calls
    claim(), extend_lease(), update_progress(), complete(), fail() and
    recover_stalled().
    """

    def __init__(self, client: redis.Redis, config: ServiceConfig):
        self.client = client
        self.prefix = f"aidocify:{config.job_queue_name}"
        self.attempts = config.job_attempts
        self.lock_seconds = config.job_lock_seconds
        self.retention_seconds = config.job_retention_seconds

    @classmethod
    def from_config(cls, config: ServiceConfig) -> 'JobQueue':
        client = redis.from_url(config.redis_url, decode_responses=True, socket_timeout=10)
        return cls(client, config)

    # Keys

    @property
    def id_key(self) -> str:
        return f"{self.prefix}:id"

    @property
    def wait_key(self) -> str:
        return f"{self.prefix}:wait"

    @property
    def active_key(self) -> str:
        return f"{self.prefix}:active"

    @property
    def stalled_key(self) -> str:
        return f"{self.prefix}:stalled"

    def job_key(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def lock_key(self, job_id: str) -> str:
        return f"{self.prefix}:lock:{job_id}"

    # Producer side

    def enqueue(self, payload: Dict[str, Any], name: str = 'file-ready') -> JobHandle:
        """
        Add a job to the waiting list.

        Raises:
            QueueUnavailable: If the broker cannot be reached
        """
        try:
            job_id = str(self.client.incr(self.id_key))
            pipe = self.client.pipeline(transaction=True)
            pipe.hset(self.job_key(job_id), mapping={
                'id': job_id,
                'name': name,
                'data': json.dumps(payload),
                'state': JobState.WAITING,
                'progress': 0,
                'attemptsMade': 0,
                'timestamp': now_ms(),
            })
            pipe.lpush(self.wait_key, job_id)
            pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Failed to enqueue job: {e}")
            raise QueueUnavailable('Failed to queue file for processing')

        logger.info(f"Enqueued job {job_id} ({name})")
        return JobHandle(id=job_id)

    def get_status(self, job_id: str) -> Optional[JobStatus]:
        """
        Get the current status of a job.

        Returns:
            JobStatus, or None if the job is unknown or its history expired

        Raises:
            QueueUnavailable: If the broker cannot be reached
        """
        try:
            record = self.client.hgetall(self.job_key(job_id))
        except redis.RedisError as e:
            logger.error(f"Failed to read job {job_id}: {e}")
            raise QueueUnavailable('Error fetching job status')

        if not record:
            return None

        return JobStatus(
            id=record.get('id', job_id),
            state=record.get('state', JobState.WAITING),
            progress=int(record.get('progress') or 0),
            failed_reason=record.get('failedReason') or None,
            attempts_made=int(record.get('attemptsMade') or 0),
            timestamp=_int_or_none(record.get('timestamp')),
            processed_on=_int_or_none(record.get('processedOn')),
            finished_on=_int_or_none(record.get('finishedOn')),
        )

    # Worker side

    def claim(self, timeout: float = 0) -> Optional[ClaimedJob]:
        """
        Move the oldest waiting job to the active list and take its lease.

        Blocks up to `timeout` seconds (0 = don't block). The lease is a
        per-claim token stored in the lock key; complete() and fail() only
        succeed for the holder of that token.

        Returns:
            The claimed job, or None if no job was available
        """
        if timeout:
            job_id = self.client.blmove(self.wait_key, self.active_key, timeout, 'RIGHT', 'LEFT')
        else:
            job_id = self.client.lmove(self.wait_key, self.active_key, 'RIGHT', 'LEFT')

        if job_id is None:
            return None

        key = self.job_key(job_id)
        token = uuid.uuid4().hex

        def activate(pipe):
            record = pipe.hgetall(key)
            still_active = job_id in pipe.lrange(self.active_key, 0, -1)
            pipe.multi()
            if not still_active:
                # A stalled-job sweep requeued it before the lease was taken
                return None
            if not record or record.get('state') in JobState.TERMINAL:
                pipe.lrem(self.active_key, 0, job_id)
                return None
            attempts_made = int(record.get('attemptsMade') or 0) + 1
            pipe.set(self.lock_key(job_id), token, ex=self.lock_seconds)
            pipe.hset(key, mapping={
                'state': JobState.ACTIVE,
                'processedOn': now_ms(),
                'attemptsMade': attempts_made,
            })
            pipe.srem(self.stalled_key, job_id)
            return record, attempts_made

        claimed = self.client.transaction(
            activate, key, self.active_key, value_from_callable=True
        )
        if claimed is None:
            logger.warning(f"Skipped job {job_id}: finished, expired or requeued")
            return None

        record, attempts_made = claimed
        logger.info(f"Claimed job {job_id} (attempt {attempts_made})")
        return ClaimedJob(
            id=job_id,
            name=record.get('name', ''),
            data=json.loads(record.get('data') or '{}'),
            attempts_made=attempts_made,
            token=token,
        )

    def extend_lease(self, job_id: str, token: str) -> bool:
        """
        Renew the lease of a running job.

        Returns:
            False if the lease is no longer held by `token`
        """
        lock = self.lock_key(job_id)

        def renew(pipe):
            held = pipe.get(lock) == token
            pipe.multi()
            if held:
                pipe.expire(lock, self.lock_seconds)
            return held

        return self.client.transaction(renew, lock, value_from_callable=True)

    def update_progress(self, job_id: str, progress: int) -> None:
        """Record progress (0-100)."""
        self.client.hset(self.job_key(job_id), 'progress', max(0, min(100, int(progress))))

    def _check_lease(self, pipe, job_id: str, token: str) -> Dict[str, str]:
        """
        Read the job record inside a WATCH block and verify the caller's lease.

        An expired lease is still accepted as long as nobody else claimed or
        finished the job in the meantime.

        Raises:
            LeaseLost: If another worker holds the job or already finished it
        """
        holder = pipe.get(self.lock_key(job_id))
        record = pipe.hgetall(self.job_key(job_id))
        if holder is not None and holder != token:
            raise LeaseLost(f"Job {job_id} is held by another worker")
        if not record or record.get('state') in JobState.TERMINAL:
            raise LeaseLost(f"Job {job_id} was already finished")
        return record

    def _release(self, pipe, job_id: str) -> None:
        """Queue the commands that take a job out of every list."""
        pipe.lrem(self.active_key, 0, job_id)
        pipe.lrem(self.wait_key, 0, job_id)
        pipe.delete(self.lock_key(job_id))
        pipe.srem(self.stalled_key, job_id)

    def complete(self, job_id: str, token: str, result: Optional[Dict[str, Any]] = None) -> None:
        """
        Mark a job completed. Only called after its work has finished.

        Raises:
            LeaseLost: If the job now belongs to another worker
        """
        key = self.job_key(job_id)

        def finish(pipe):
            self._check_lease(pipe, job_id, token)
            pipe.multi()
            self._release(pipe, job_id)
            pipe.hset(key, mapping={
                'state': JobState.COMPLETED,
                'progress': 100,
                'failedReason': '',
                'returnvalue': json.dumps(result or {}),
                'finishedOn': now_ms(),
            })
            pipe.expire(key, self.retention_seconds)

        self.client.transaction(finish, key, self.lock_key(job_id), self.wait_key)
        logger.info(f"Job {job_id} completed")

    def fail(self, job_id: str, token: str, reason: str) -> bool:
        """
        Record a failure.

        The job goes back to waiting while it has attempts left.

        Returns:
            True if the job will be retried, False if it is now failed

        Raises:
            LeaseLost: If the job now belongs to another worker
        """
        key = self.job_key(job_id)

        def record_failure(pipe):
            record = self._check_lease(pipe, job_id, token)
            attempts_made = int(record.get('attemptsMade') or 0)
            pipe.multi()
            self._release(pipe, job_id)
            if attempts_made < self.attempts:
                pipe.hset(key, mapping={'state': JobState.WAITING, 'failedReason': reason})
                pipe.lpush(self.wait_key, job_id)
                return True
            pipe.hset(key, mapping={
                'state': JobState.FAILED,
                'failedReason': reason,
                'finishedOn': now_ms(),
            })
            pipe.expire(key, self.retention_seconds)
            return False

        will_retry = self.client.transaction(
            record_failure, key, self.lock_key(job_id), self.wait_key, value_from_callable=True
        )
        if will_retry:
            logger.warning(f"Job {job_id} failed, retrying (max {self.attempts} attempts): {reason}")
        else:
            logger.error(f"Job {job_id} failed: {reason}")
        return will_retry

    def recover_stalled(self) -> int:
        """
        Move active jobs whose lease expired back to waiting.

        A job without a lease is only marked on the first sweep that sees it
        and requeued on a later one, so a claim that has moved the id but not
        yet taken the lease is left alone.

        Returns:
            Number of jobs recovered
        """
        recovered = 0
        for job_id in self.client.lrange(self.active_key, 0, -1):
            if self.client.exists(self.lock_key(job_id)):
                self.client.srem(self.stalled_key, job_id)
                continue

            state = self.client.hget(self.job_key(job_id), 'state')
            if state is None or state in JobState.TERMINAL:
                self.client.lrem(self.active_key, 0, job_id)
                self.client.srem(self.stalled_key, job_id)
                continue

            if self.client.sadd(self.stalled_key, job_id):
                continue

            if self._requeue_stalled(job_id):
                recovered += 1
                logger.warning(f"Recovered stalled job {job_id}")
        return recovered

    def _requeue_stalled(self, job_id: str) -> bool:
        lock = self.lock_key(job_id)

        def requeue(pipe):
            movable = not pipe.exists(lock) and job_id in pipe.lrange(self.active_key, 0, -1)
            pipe.multi()
            pipe.srem(self.stalled_key, job_id)
            if movable:
                pipe.lrem(self.active_key, 0, job_id)
                pipe.hset(self.job_key(job_id), 'state', JobState.WAITING)
                pipe.lpush(self.wait_key, job_id)
            return movable

        return self.client.transaction(
            requeue, lock, self.active_key, self.job_key(job_id), value_from_callable=True
        )

    def counts(self) -> Dict[str, int]:
        """Number of waiting and active jobs."""
        return {
            JobState.WAITING: self.client.llen(self.wait_key),
            JobState.ACTIVE: self.client.llen(self.active_key),
        }

    def ping(self) -> bool:
        return bool(self.client.ping())
