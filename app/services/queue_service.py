"""
Durable job queue on the application database.

Rows in `queue_jobs` move created -> active -> completed, or back through
retry until the retry limit is spent and they end up failed. Claims use a
conditional UPDATE so a row is only ever held by one worker.
"""
import uuid
from datetime import timedelta

from sqlalchemy import func

from app.config import Config as cfg
from app.datetime_utils import utcnow
from app.logging_config import get_logger

logger = get_logger(__name__)

DELIVER_LEADS_QUEUE = "deliver-leads"

FETCH_CANDIDATES = 5


class JobQueue:
    def __init__(self, retry_limit=None, retry_delay=None, expire_in_seconds=None):
        self.retry_limit = cfg.QUEUE_RETRY_LIMIT if retry_limit is None else retry_limit
        self.retry_delay = cfg.QUEUE_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.expire_in_seconds = cfg.QUEUE_EXPIRE_SECONDS if expire_in_seconds is None else expire_in_seconds
        self._queues = set()
        self.closed = False

    def create_queue(self, name):
        """Register a queue name. Queues are implicit, so this only records it."""
        self._queues.add(name)
        logger.info("Queue ready", queue=name)

    def send(self, name, data, retry_limit=None, retry_delay=None, retry_backoff=True,
             expire_in_seconds=None, singleton_key=None, job_id=None):
        """
        Enqueue a job and return its id.

        Returns None when `singleton_key` already belongs to a job that is
        still created, retrying or active. The caller commits.
        """
        from app.models import QueueJob, QueueState, db

        if singleton_key:
            existing = QueueJob.query.filter(
                QueueJob.name == name,
                QueueJob.singleton_key == singleton_key,
                QueueJob.state.in_(QueueState.OPEN),
            ).first()
            if existing is not None:
                logger.info("Duplicate job skipped", queue=name, singleton_key=singleton_key,
                            existing_job_id=existing.id)
                return None

        now = utcnow()
        job = QueueJob(
            id=job_id or str(uuid.uuid4()),
            name=name,
            data=dict(data or {}),
            state=QueueState.CREATED,
            retry_count=0,
            retry_limit=self.retry_limit if retry_limit is None else retry_limit,
            retry_delay=self.retry_delay if retry_delay is None else retry_delay,
            retry_backoff=retry_backoff,
            expire_in_seconds=self.expire_in_seconds if expire_in_seconds is None else expire_in_seconds,
            singleton_key=singleton_key,
            start_after=now,
            created_on=now,
        )
        db.session.add(job)
        db.session.flush()
        logger.info("Job enqueued", queue=name, job_id=job.id, singleton_key=singleton_key)
        return job.id

    def fetch(self, name):
        """Claim the oldest eligible job, or return None."""
        from app.models import QueueJob, QueueState, db

        if self.closed:
            return None

        now = utcnow()
        candidate_ids = [row.id for row in (
            db.session.query(QueueJob.id)
            .filter(
                QueueJob.name == name,
                QueueJob.state.in_(QueueState.CLAIMABLE),
                QueueJob.start_after <= now,
            )
            .order_by(QueueJob.created_on.asc())
            .limit(FETCH_CANDIDATES)
            .all()
        )]

        for job_id in candidate_ids:
            claimed = (QueueJob.query
                       .filter(QueueJob.id == job_id, QueueJob.state.in_(QueueState.CLAIMABLE))
                       .update({QueueJob.state: QueueState.ACTIVE, QueueJob.started_on: now},
                               synchronize_session=False))
            db.session.commit()
            if claimed:
                return db.session.get(QueueJob, job_id)
        return None

    def complete(self, job_id, output=None):
        from app.models import QueueJob, QueueState, db

        job = db.session.get(QueueJob, job_id)
        if job is None:
            logger.warning("Cannot complete unknown queue job", job_id=job_id)
            return None
        job.state = QueueState.COMPLETED
        job.completed_on = utcnow()
        job.output = output
        db.session.commit()
        return job

    def fail(self, job_id, error):
        """
        Record a failed run. The job goes back to retry with exponential
        backoff while retries remain, otherwise it is failed for good.

        Returns:
            str: the new state, or None for an unknown job
        """
        from app.models import QueueJob, QueueState, db

        job = db.session.get(QueueJob, job_id)
        if job is None:
            logger.warning("Cannot fail unknown queue job", job_id=job_id)
            return None
        if job.state in (QueueState.COMPLETED, QueueState.FAILED):
            return job.state

        now = utcnow()
        job.retry_count = (job.retry_count or 0) + 1
        job.output = str(error)
        if job.retry_count <= job.retry_limit:
            delay = job.retry_delay
            if job.retry_backoff:
                delay = job.retry_delay * (2 ** (job.retry_count - 1))
            job.state = QueueState.RETRY
            job.start_after = now + timedelta(seconds=delay)
            logger.warning("Job will retry", job_id=job.id, retry_count=job.retry_count,
                           retry_limit=job.retry_limit, retry_in_seconds=delay, error=str(error))
        else:
            job.state = QueueState.FAILED
            job.completed_on = now
            logger.error("Job failed after retries", job_id=job.id,
                         retry_count=job.retry_count, error=str(error))
        db.session.commit()
        return job.state

    def retry_delay_for(self, job_id):
        """Seconds until a retrying job becomes eligible again, or None."""
        from app.models import QueueJob, QueueState, db

        job = db.session.get(QueueJob, job_id)
        if job is None or job.state != QueueState.RETRY:
            return None
        return max(0, int((job.start_after - utcnow()).total_seconds()))

    def expire_active(self):
        """Fail active jobs that have run longer than their expiry."""
        from app.models import QueueJob, QueueState

        now = utcnow()
        expired = []
        for job in QueueJob.query.filter(QueueJob.state == QueueState.ACTIVE).all():
            started = job.started_on or job.created_on
            if started + timedelta(seconds=job.expire_in_seconds) <= now:
                expired.append(job.id)

        for job_id in expired:
            logger.warning("Active job expired", job_id=job_id)
            self.fail(job_id, "job expired")
        return len(expired)

    def count_by_state(self, name=None):
        from app.models import QueueJob, db

        query = db.session.query(QueueJob.state, func.count(QueueJob.id))
        if name:
            query = query.filter(QueueJob.name == name)
        return {state: count for state, count in query.group_by(QueueJob.state).all()}

    def get_queues(self):
        """Queue names seen in storage or registered in this process."""
        from app.models import QueueJob, db

        names = {row[0] for row in db.session.query(QueueJob.name).distinct().all()}
        return sorted(names | self._queues)

    def close(self):
        """Stop handing out jobs and release pooled connections."""
        from app.models import db

        self.closed = True
        db.engine.dispose()
        logger.info("Job queue closed")


_queue = None


def get_job_queue():
    '''
    Returns a singleton instance of the JobQueue class.
    '''
    global _queue
    if _queue is None:
        _queue = JobQueue()
    return _queue
