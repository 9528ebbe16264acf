import uuid

from app.config import Config as cfg
from app.logging_config import get_logger
from app.services.delivery_service import DeliveryService
from app.services.job_service import JobService, JOB_TYPE_DELIVER_LEADS, JOB_TYPE_DELIVER_LEADS_BATCH
from app.services.queue_service import get_job_queue, DELIVER_LEADS_QUEUE

logger = get_logger(__name__)


class JobProducer:
    """Turns one completed ingestion run into delivery jobs, one per user or per batch."""

    def __init__(self, queue=None, batch_size=None):
        self.queue = queue or get_job_queue()
        self.batch_size = batch_size if batch_size is not None else cfg.DELIVERY_BATCH_SIZE

    @staticmethod
    def singleton_key(run_id, user_id, batch_index=None):
        key = f"{run_id}:{user_id}"
        if batch_index is not None:
            key = f"{key}:{batch_index}"
        return key

    def _enqueue(self, user_id, payload, job_type, singleton_key):
        job_id = str(uuid.uuid4())
        sent = self.queue.send(
            DELIVER_LEADS_QUEUE,
            payload,
            retry_limit=cfg.QUEUE_RETRY_LIMIT,
            retry_delay=cfg.QUEUE_RETRY_DELAY_SECONDS,
            retry_backoff=True,
            expire_in_seconds=cfg.QUEUE_EXPIRE_SECONDS,
            singleton_key=singleton_key,
            job_id=job_id,
        )
        if sent is None:
            return None
        JobService.create(job_id, user_id, payload, job_type=job_type,
                          max_attempts=cfg.QUEUE_RETRY_LIMIT + 1)
        return job_id

    @staticmethod
    def batch_bounds(property_ids, batch_size):
        """(first_id, last_id) per batch of `batch_size` ascending ids."""
        return [
            (property_ids[i], property_ids[min(i + batch_size, len(property_ids)) - 1])
            for i in range(0, len(property_ids), batch_size)
        ]

    def enqueue_for_user(self, user, run_id, ingested_at):
        """Enqueue the jobs for one user. Returns the created job ids."""
        base = {"ingestedAt": ingested_at, "runId": run_id, "userId": user.id}

        if self.batch_size:
            property_ids = DeliveryService.matching_property_ids(user.settings)
            if len(property_ids) > self.batch_size:
                bounds = self.batch_bounds(property_ids, self.batch_size)
                job_ids = []
                for index, (first_id, last_id) in enumerate(bounds):
                    payload = {
                        **base,
                        "batchIndex": index,
                        "batchSize": self.batch_size,
                        "totalBatches": len(bounds),
                        "firstPropertyId": first_id,
                        "lastPropertyId": last_id,
                    }
                    job_id = self._enqueue(user.id, payload, JOB_TYPE_DELIVER_LEADS_BATCH,
                                           self.singleton_key(run_id, user.id, index))
                    if job_id:
                        job_ids.append(job_id)
                logger.info("Created batch jobs", user_id=user.id, batches=len(bounds),
                            properties=len(property_ids), jobs_created=len(job_ids))
                return job_ids

        job_id = self._enqueue(user.id, base, JOB_TYPE_DELIVER_LEADS,
                               self.singleton_key(run_id, user.id))
        if job_id:
            logger.info("Created job", job_id=job_id, user_id=user.id)
            return [job_id]
        return []

    def enqueue_for_run(self, run_id, ingested_at):
        """
        Create delivery jobs for every user with settings.

        Returns:
            dict: {"jobsCreated": int, "totalUsers": int, "jobIds": [...]}
        """
        from app.models import User, db

        users = User.query.order_by(User.id.asc()).all()
        logger.info("Creating delivery jobs", run_id=run_id, users=len(users))

        job_ids = []
        try:
            for user in users:
                if user.settings is None:
                    logger.warning("User has no settings, skipping", user_id=user.id)
                    continue
                job_ids.extend(self.enqueue_for_user(user, run_id, ingested_at))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Delivery jobs created", run_id=run_id, jobs_created=len(job_ids))
        return {"jobsCreated": len(job_ids), "totalUsers": len(users), "jobIds": job_ids}
