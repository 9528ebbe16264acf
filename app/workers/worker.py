import threading
import time

from app.config import Config as cfg
from app.logging_config import get_logger
from app.services.delivery_service import DeliveryService
from app.services.job_service import JobService
from app.services.queue_service import get_job_queue, DELIVER_LEADS_QUEUE

logger = get_logger(__name__)


class DeliveryWorker:
    """
    One long-running worker thread. Claims a queue job, runs the delivery for
    it and records the outcome. At most one job is in flight per worker.
    """

    def __init__(self, worker_id, app, queue=None, delivery_service=None,
                 queue_name=DELIVER_LEADS_QUEUE, poll_interval=None, shutdown_timeout=None):
        self.worker_id = worker_id
        self.app = app
        self.queue = queue or get_job_queue()
        self.delivery_service = delivery_service or DeliveryService()
        self.queue_name = queue_name
        self.poll_interval = cfg.QUEUE_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.shutdown_timeout = cfg.WORKER_SHUTDOWN_TIMEOUT if shutdown_timeout is None else shutdown_timeout

        self.is_running = False
        self.active_jobs = 0
        self.jobs_completed = 0
        self.jobs_failed = 0
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None
        self.log = logger.bind(worker_id=worker_id)

    def start(self):
        if self.is_running:
            self.log.warning("Worker already running")
            return
        self.is_running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=f"worker-{self.worker_id}", daemon=True)
        self._thread.start()
        self.log.info("Worker started", queue=self.queue_name)

    def _run(self):
        while not self._stop_event.is_set():
            with self.app.app_context():
                try:
                    queue_job = self.queue.fetch(self.queue_name)
                except Exception as e:
                    self.log.error("Failed to fetch job", error=str(e), exc_info=True)
                    queue_job = None
                if queue_job is not None:
                    self.process(queue_job)
                    continue
            self._stop_event.wait(self.poll_interval)

    def process(self, queue_job):
        """Run one claimed job and settle it in the queue (completed or retry/failed)."""
        try:
            self.handle_job(queue_job)
        except Exception as e:
            try:
                self.queue.fail(queue_job.id, e)
            except Exception as queue_error:
                self.log.error("Failed to record job failure in queue", job_id=queue_job.id,
                               error=str(queue_error))
            return False

        try:
            self.queue.complete(queue_job.id)
        except Exception as queue_error:
            self.log.error("Failed to record job completion in queue", job_id=queue_job.id,
                           error=str(queue_error))
        return True

    def handle_job(self, queue_job):
        """
        Track and run one delivery job.

        Any error is recorded on the Job row and re-raised so the queue's
        retry policy decides what happens next.
        """
        from app.models import db

        data = queue_job.data or {}
        user_id = data.get("userId")

        with self._lock:
            self.active_jobs += 1
        self.log.info("Processing job", job_id=queue_job.id, user_id=user_id, active_jobs=self.active_jobs)

        try:
            JobService.mark_in_progress(queue_job.id, user_id, payload=data, job_type=queue_job.name)
            summary = self.delivery_service.deliver(queue_job.id, user_id, data)
            JobService.mark_completed(queue_job.id)
            with self._lock:
                self.jobs_completed += 1
            self.log.info("Completed job", job_id=queue_job.id)
            return summary
        except Exception as e:
            with self._lock:
                self.jobs_failed += 1
            self.log.error("Job failed", job_id=queue_job.id, error=str(e), exc_info=True)
            try:
                db.session.rollback()
                JobService.mark_failed(queue_job.id, e)
            except Exception as status_error:
                self.log.error("Failed to update job status", job_id=queue_job.id,
                               error=str(status_error))
            raise
        finally:
            with self._lock:
                self.active_jobs -= 1

    def stop(self, timeout=None):
        """
        Stop claiming jobs and wait for the active one to finish.

        Returns:
            bool: True if the worker stopped cleanly within the timeout
        """
        if not self.is_running:
            return True
        timeout = self.shutdown_timeout if timeout is None else timeout
        self.log.info("Worker stopping")
        self.is_running = False
        self._stop_event.set()

        deadline = time.monotonic() + timeout
        while self.active_jobs > 0 and time.monotonic() < deadline:
            self.log.info("Waiting for active job", active_jobs=self.active_jobs)
            time.sleep(min(1.0, max(0.0, deadline - time.monotonic())))

        if self._thread is not None and self.active_jobs == 0:
            self._thread.join(timeout=max(0.0, deadline - time.monotonic()))

        if self.active_jobs > 0:
            self.log.warning("Forced shutdown with active jobs", active_jobs=self.active_jobs)
            return False
        self.log.info("Worker stopped cleanly")
        return True

    def has_active_jobs(self):
        return self.active_jobs > 0

    def get_status(self):
        return {
            "workerId": self.worker_id,
            "isRunning": self.is_running,
            "activeJobs": self.active_jobs,
            "jobsCompleted": self.jobs_completed,
            "jobsFailed": self.jobs_failed,
        }
