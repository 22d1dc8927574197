"""
Ingestion worker - consumes jobs from the queue and runs the pipeline.

The worker:
1. Recovers jobs left active by a crashed worker
2. Claims waiting jobs atomically (BLMOVE), up to WORKER_CONCURRENCY at once
3. Runs the ingestion pipeline for each job, renewing its lease meanwhile
4. Marks the job completed, or failed with the reason

A failing job never stops the worker. Jobs are independent: each runs in its
own thread with its own scratch file.

Run as: python manage.py run_worker
"""
import logging
import signal
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import redis

from apps.core.errors import DocifyError, LeaseLost
from apps.ingestion.pipeline import IngestionPipeline, UploadJob
from apps.jobs.publisher import publish_complete, publish_failed, publish_progress
from apps.jobs.queue import ClaimedJob, JobQueue

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_ERRORS = 5  # Stop a thread after too many errors in a row
STALLED_CHECK_INTERVAL = 30  # seconds between stalled-job sweeps
MIN_HEARTBEAT_INTERVAL = 0.2  # seconds


class LeaseHeartbeat:
    """
    Keeps a claimed job's lease alive while it is being processed.

    Used as a context manager around the pipeline run; a daemon thread renews
    the lease every third of its lifetime.
    """

    def __init__(self, queue: JobQueue, claimed: ClaimedJob):
        self.queue = queue
        self.claimed = claimed
        self.interval = max(MIN_HEARTBEAT_INTERVAL, queue.lock_seconds / 3)
        self._done = threading.Event()
        self._thread = threading.Thread(
            target=self._beat, name=f"lease-{claimed.id}", daemon=True
        )

    def _beat(self):
        while not self._done.wait(self.interval):
            try:
                if not self.queue.extend_lease(self.claimed.id, self.claimed.token):
                    logger.warning(f"Lost lease on job {self.claimed.id}")
                    return
            except redis.RedisError as e:
                logger.error(f"Failed to renew lease on job {self.claimed.id}: {e}")

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._done.set()
        self._thread.join()
        return False


class IngestionWorker:
    """
    Pool of threads processing ingestion jobs.

    Each thread loops: claim -> process -> complete/fail.
    """

    def __init__(
        self,
        queue: JobQueue,
        pipeline: IngestionPipeline,
        concurrency: int = 5,
        poll_interval: float = 2.0,
    ):
        self.queue = queue
        self.pipeline = pipeline
        self.concurrency = max(1, concurrency)
        self.poll_interval = poll_interval
        self.processed_count = 0
        self._stop = threading.Event()
        self._count_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    def stop(self):
        self._stop.set()

    def handle_job(self, claimed: ClaimedJob) -> bool:
        """
        Process one claimed job and record its outcome on the queue.

        Returns:
            True if the job completed
        """
        public_id = str(claimed.data.get('publicId', ''))

        def on_progress(stage: str, percent: int):
            self.queue.update_progress(claimed.id, percent)
            publish_progress(claimed.id, public_id, stage, percent)

        try:
            job = UploadJob.from_payload(claimed.id, claimed.data)
            with LeaseHeartbeat(self.queue, claimed):
                result = self.pipeline.process(job, on_progress=on_progress)
        except DocifyError as e:
            reason = f"{e.code}: {e.message}"
            self._record_failure(claimed, public_id, reason)
            return False
        except Exception as e:
            logger.exception(f"Unexpected error processing job {claimed.id}")
            self._record_failure(claimed, public_id, f"Unexpected error: {e}")
            return False

        try:
            self.queue.complete(claimed.id, claimed.token, result.to_dict())
        except LeaseLost as e:
            logger.warning(f"Discarding result of job {claimed.id}: {e}")
            return False
        publish_complete(claimed.id, public_id, result.chunks)

        with self._count_lock:
            self.processed_count += 1
        return True

    def _record_failure(self, claimed: ClaimedJob, public_id: str, reason: str):
        try:
            will_retry = self.queue.fail(claimed.id, claimed.token, reason)
        except LeaseLost as e:
            logger.warning(f"Discarding failure of job {claimed.id}: {e}")
            return
        if not will_retry:
            publish_failed(claimed.id, public_id, reason)

    def run_once(self, timeout: float = 0) -> bool:
        """
        Try to claim and process one job.

        Returns:
            True if a job was processed, False if no jobs available
        """
        claimed = self.queue.claim(timeout=timeout)
        if claimed is None:
            return False
        self.handle_job(claimed)
        return True

    def _thread_loop(self):
        consecutive_errors = 0
        while self.running:
            try:
                self.run_once(timeout=self.poll_interval)
                consecutive_errors = 0
            except Exception as e:
                consecutive_errors += 1
                logger.exception(f"Error in worker loop: {e}")
                if consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
                    logger.error("Too many consecutive errors, stopping worker")
                    self.stop()
                    break
                # Back off on errors
                self._stop.wait(self.poll_interval * 2)

    def _recover_stalled(self):
        try:
            recovered = self.queue.recover_stalled()
            if recovered:
                logger.info(f"Requeued {recovered} stalled jobs")
        except redis.RedisError as e:
            logger.error(f"Stalled-job sweep failed: {e}")

    def run(self, install_signal_handlers: bool = True):
        """
        Main worker loop.

        Blocks until stop() is called or SIGINT/SIGTERM is received.
        """
        logger.info(
            f"Starting ingestion worker | concurrency={self.concurrency} "
            f"poll_interval={self.poll_interval}s"
        )

        if install_signal_handlers:
            def handle_signal(signum, frame):
                logger.info(f"Received signal {signum}, shutting down...")
                self.stop()

            signal.signal(signal.SIGTERM, handle_signal)
            signal.signal(signal.SIGINT, handle_signal)

        self._recover_stalled()
        last_sweep = time.monotonic()

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="ingest") as executor:
            futures = [executor.submit(self._thread_loop) for _ in range(self.concurrency)]

            while self.running and not all(f.done() for f in futures):
                self._stop.wait(1.0)
                if time.monotonic() - last_sweep >= STALLED_CHECK_INTERVAL:
                    self._recover_stalled()
                    last_sweep = time.monotonic()

            self.stop()
            logger.info("Waiting for active jobs to finish...")

        for future in futures:
            error = future.exception()
            if error is not None:
                logger.error(f"Worker thread crashed: {error!r}")

        logger.info(f"Worker stopped. Total processed: {self.processed_count}")


def build_worker(services=None) -> IngestionWorker:
    """Build a worker from the configured services."""
    from apps.core.services import get_services

    services = services or get_services()
    config = services.config
    return IngestionWorker(
        queue=services.queue,
        pipeline=services.pipeline,
        concurrency=config.worker_concurrency,
        poll_interval=config.worker_poll_interval,
    )


def main():
    """Entry point for running the worker outside manage.py."""
    import os
    import django

    logging.basicConfig(
        level=logging.INFO,
        format='%(levelname)s %(asctime)s %(name)s: %(message)s'
    )
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
    django.setup()

    build_worker().run()


if __name__ == '__main__':
    main()
