"""
Tests for turning an ingestion run into delivery jobs.
"""
import pytest

from app.config import Config as cfg
from app.models import Job, JobStatus, QueueJob, QueueState, db
from app.services.job_producer import JobProducer
from app.services.queue_service import JobQueue


@pytest.fixture
def queue(app):
    return JobQueue()


class TestEnqueueForRun:
    """Tests for JobProducer.enqueue_for_run."""

    def test_one_job_per_user_with_settings(self, queue, make_user):
        with_settings = make_user(user_id="user-a")
        make_user(user_id="user-b", zip_codes=None)

        result = JobProducer(queue=queue).enqueue_for_run("run-1", "2025-10-20T03:56:29.000Z")

        assert result["jobsCreated"] == 1
        assert result["totalUsers"] == 2

        job_id = result["jobIds"][0]
        job = db.session.get(Job, job_id)
        assert job.status == JobStatus.PENDING
        assert job.user_id == with_settings.id
        assert job.max_attempts == cfg.QUEUE_RETRY_LIMIT + 1
        assert job.payload == {"ingestedAt": "2025-10-20T03:56:29.000Z", "runId": "run-1", "userId": "user-a"}

        queue_job = db.session.get(QueueJob, job_id)
        assert queue_job.state == QueueState.CREATED
        assert queue_job.singleton_key == "run-1:user-a"
        assert queue_job.retry_limit == cfg.QUEUE_RETRY_LIMIT
        assert queue_job.expire_in_seconds == cfg.QUEUE_EXPIRE_SECONDS

    def test_repeat_webhook_creates_no_duplicates(self, queue, make_user):
        make_user(user_id="user-a")
        producer = JobProducer(queue=queue)

        producer.enqueue_for_run("run-1", "2025-10-20T00:00:00Z")
        again = producer.enqueue_for_run("run-1", "2025-10-20T00:00:00Z")

        assert again["jobsCreated"] == 0
        assert Job.query.count() == 1

    def test_new_run_creates_new_jobs(self, queue, make_user):
        make_user(user_id="user-a")
        producer = JobProducer(queue=queue)

        producer.enqueue_for_run("run-1", "2025-10-20T00:00:00Z")
        producer.enqueue_for_run("run-2", "2025-10-21T00:00:00Z")

        assert Job.query.count() == 2

    def test_no_users(self, queue):
        assert JobProducer(queue=queue).enqueue_for_run("run-1", "2025-10-20T00:00:00Z") == {
            "jobsCreated": 0, "totalUsers": 0, "jobIds": [],
        }


class TestBatching:
    """Tests for splitting large users into several jobs."""

    def test_batch_bounds(self):
        assert JobProducer.batch_bounds([3, 5, 8, 9, 12], 2) == [(3, 5), (8, 9), (12, 12)]

    def test_singleton_key(self):
        assert JobProducer.singleton_key("r", "u") == "r:u"
        assert JobProducer.singleton_key("r", "u", 0) == "r:u:0"

    def test_large_user_gets_batches(self, queue, make_user, make_contact, make_property):
        user = make_user(user_id="user-a")
        owner = make_contact()
        props = [make_property(owner) for _ in range(5)]

        result = JobProducer(queue=queue, batch_size=2).enqueue_for_run("run-1", "2025-10-20T00:00:00Z")

        assert result["jobsCreated"] == 3
        payloads = sorted((db.session.get(Job, job_id).payload for job_id in result["jobIds"]),
                          key=lambda p: p["batchIndex"])
        assert [(p["firstPropertyId"], p["lastPropertyId"]) for p in payloads] == [
            (props[0].id, props[1].id), (props[2].id, props[3].id), (props[4].id, props[4].id),
        ]
        assert all(p["totalBatches"] == 3 and p["batchSize"] == 2 for p in payloads)
        assert all(db.session.get(Job, job_id).type == "deliver-leads-batch" for job_id in result["jobIds"])
        assert user.id == payloads[0]["userId"]

    def test_small_user_gets_one_job(self, queue, make_user, make_contact, make_property):
        make_user(user_id="user-a")
        make_property(make_contact())

        result = JobProducer(queue=queue, batch_size=2).enqueue_for_run("run-1", "2025-10-20T00:00:00Z")

        assert result["jobsCreated"] == 1
        assert "batchIndex" not in db.session.get(Job, result["jobIds"][0]).payload
