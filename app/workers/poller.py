"""
Polling fallback for when the queue workers are not running.

Each tick picks up a few pending Job rows, claims each with a conditional
update on (status, attempts) so two pollers never run the same job, and
processes them one at a time. Failures go back to pending with exponential
backoff until max_attempts is reached.
"""
from sqlalchemy import or_

from app.config import Config as cfg
from app.datetime_utils import utcnow
from app.logging_config import get_logger
from app.services.delivery_service import DeliveryService
from app.services.job_service import JobService

logger = get_logger(__name__)


class JobPoller:
    def __init__(self, app, delivery_service=None, batch_size=None, retry_delay=None):
        self.app = app
        self.delivery_service = delivery_service or DeliveryService()
        self.batch_size = cfg.POLLER_BATCH_SIZE if batch_size is None else batch_size
        self.retry_delay = cfg.QUEUE_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay

    @staticmethod
    def claim(job):
        """Move a pending job to in_progress unless another poller got there first."""
        from app.models import Job, JobStatus, db

        now = utcnow()
        claimed = (Job.query
                   .filter(Job.id == job.id,
                           Job.status == JobStatus.PENDING,
                           Job.attempts == job.attempts)
                   .update({Job.status: JobStatus.IN_PROGRESS,
                            Job.attempts: job.attempts + 1,
                            Job.started_at: now,
                            Job.updated_at: now},
                           synchronize_session=False))
        db.session.commit()
        return claimed == 1

    def pending_jobs(self):
        from app.models import Job, JobStatus

        now = utcnow()
        return (Job.query
                .filter(Job.status == JobStatus.PENDING,
                        Job.attempts < Job.max_attempts,
                        or_(Job.run_after.is_(None), Job.run_after <= now))
                .order_by(Job.created_at.asc())
                .limit(self.batch_size)
                .all())

    def run_job(self, job_id, user_id, payload, attempts, max_attempts):
        from app.models import db

        try:
            self.delivery_service.deliver(job_id, user_id, payload)
        except Exception as e:
            logger.error("Job failed", job_id=job_id, attempts=attempts, error=str(e), exc_info=True)
            try:
                db.session.rollback()
                retry_in = None
                if attempts < max_attempts:
                    retry_in = self.retry_delay * (2 ** (attempts - 1))
                JobService.mark_failed(job_id, e, retry_in_seconds=retry_in)
            except Exception as status_error:
                logger.error("Failed to update job status", job_id=job_id, error=str(status_error))
            return False

        JobService.mark_completed(job_id)
        logger.info("Job completed", job_id=job_id)
        return True

    def tick(self):
        """
        Process one batch of pending jobs.

        Returns:
            dict: counts of claimed, completed and failed jobs
        """
        stats = {"claimed": 0, "completed": 0, "failed": 0}
        with self.app.app_context():
            jobs = self.pending_jobs()
            logger.info("Poller tick", pending=len(jobs))

            for job in jobs:
                job_id, user_id = job.id, job.user_id
                payload = dict(job.payload or {})
                attempts, max_attempts = job.attempts + 1, job.max_attempts
                if not self.claim(job):
                    logger.info("Job claimed by another poller, skipping", job_id=job_id)
                    continue
                stats["claimed"] += 1
                if self.run_job(job_id, user_id, payload, attempts, max_attempts):
                    stats["completed"] += 1
                else:
                    stats["failed"] += 1
        return stats


def start_poller_scheduler(poller, interval_seconds=None):
    """Run poller.tick on an APScheduler interval. Returns the started scheduler."""
    from apscheduler.schedulers.background import BackgroundScheduler
    from apscheduler.executors.pool import ThreadPoolExecutor

    interval_seconds = cfg.POLLER_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
    # One executor thread and max_instances=1 keep ticks from overlapping
    scheduler = BackgroundScheduler(executors={"default": ThreadPoolExecutor(1)})
    scheduler.add_job(
        func=poller.tick,
        trigger="interval",
        seconds=interval_seconds,
        id="job_poller",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Poller scheduled", interval_seconds=interval_seconds)
    return scheduler
