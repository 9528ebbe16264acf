from datetime import timedelta

from sqlalchemy import func

from app.datetime_utils import utcnow
from app.logging_config import get_logger

logger = get_logger(__name__)

JOB_TYPE_DELIVER_LEADS = "deliver-leads"
JOB_TYPE_DELIVER_LEADS_BATCH = "deliver-leads-batch"


class JobService:
    """Local tracking rows for delivery jobs, plus the progress sub-document the dashboard polls."""

    @staticmethod
    def create(job_id, user_id, payload, job_type=JOB_TYPE_DELIVER_LEADS, max_attempts=3):
        """
        Add a pending Job row. The caller commits.

        Args:
            job_id: Id shared with the queue row
            user_id: Owning user
            payload: Job payload dict
        """
        from app.models import Job, JobStatus, db

        job = Job(
            id=job_id,
            type=job_type,
            payload=dict(payload or {}),
            status=JobStatus.PENDING,
            attempts=0,
            max_attempts=max_attempts,
            user_id=user_id,
        )
        db.session.add(job)
        db.session.flush()
        return job

    @staticmethod
    def mark_in_progress(job_id, user_id, payload=None, job_type=JOB_TYPE_DELIVER_LEADS):
        """Upsert the row to in_progress and count the attempt."""
        from app.models import Job, JobStatus, db

        job = db.session.get(Job, job_id)
        if job is None:
            job = Job(id=job_id, type=job_type, payload=dict(payload or {}),
                      attempts=0, user_id=user_id)
            db.session.add(job)

        job.status = JobStatus.IN_PROGRESS
        job.attempts = (job.attempts or 0) + 1
        job.started_at = utcnow()
        job.finished_at = None
        job.last_error = None
        db.session.commit()
        return job

    @staticmethod
    def mark_completed(job_id):
        from app.models import Job, JobStatus, db

        job = db.session.get(Job, job_id)
        if job is None:
            logger.warning("Job row missing on completion", job_id=job_id)
            return None
        job.status = JobStatus.COMPLETED
        job.finished_at = utcnow()
        job.last_error = None
        db.session.commit()
        return job

    @staticmethod
    def mark_failed(job_id, error, retry_in_seconds=None):
        """
        Record a failure. With `retry_in_seconds` the row goes back to pending
        and is held until then; otherwise it stays failed.
        """
        from app.models import Job, JobStatus, db

        job = db.session.get(Job, job_id)
        if job is None:
            logger.warning("Job row missing on failure", job_id=job_id)
            return None
        job.last_error = str(error)
        job.finished_at = utcnow()
        if retry_in_seconds is None:
            job.status = JobStatus.FAILED
            job.run_after = None
        else:
            job.status = JobStatus.PENDING
            job.run_after = utcnow() + timedelta(seconds=retry_in_seconds)
        db.session.commit()
        return job

    @staticmethod
    def update_progress(job_id, processed, total, status):
        """
        Merge {processed, total, status} into payload['progress'].

        A failed write is logged and rolled back; progress is advisory.
        """
        from app.models import Job, db

        try:
            job = db.session.get(Job, job_id)
            if job is None:
                logger.warning("Cannot record progress, job not found", job_id=job_id)
                return False
            payload = dict(job.payload or {})
            payload["progress"] = {"processed": processed, "total": total, "status": status}
            # Reassign so the JSON column is flagged dirty
            job.payload = payload
            db.session.commit()
            return True
        except Exception as e:
            db.session.rollback()
            logger.warning("Failed to record job progress", job_id=job_id, error=str(e))
            return False

    @staticmethod
    def get_progress(job_id):
        from app.models import Job, db

        job = db.session.get(Job, job_id)
        if job is None:
            return None
        return (job.payload or {}).get("progress")

    @staticmethod
    def list_for_user(user_id, limit=50):
        from app.models import Job

        return (Job.query.filter_by(user_id=user_id)
                .order_by(Job.created_at.desc())
                .limit(limit)
                .all())

    @staticmethod
    def count_by_status():
        """{status: count} over every Job row, with zero for missing statuses."""
        from app.models import Job, JobStatus, db

        counts = {status.value: 0 for status in JobStatus}
        rows = db.session.query(Job.status, func.count(Job.id)).group_by(Job.status).all()
        for status, count in rows:
            counts[status.value] = count
        return counts
