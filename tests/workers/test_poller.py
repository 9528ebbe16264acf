"""
Tests for the polling fallback worker.
"""
from datetime import timedelta

import pytest
from unittest.mock import Mock, patch

from app.datetime_utils import utcnow
from app.models import Job, JobStatus, db
from app.services.job_service import JobService
from app.workers.poller import JobPoller, start_poller_scheduler


@pytest.fixture
def delivery_service():
    return Mock()


@pytest.fixture
def poller(app, delivery_service):
    return JobPoller(app, delivery_service=delivery_service, batch_size=5, retry_delay=60)


@pytest.fixture
def pending_job(make_user):
    make_user(user_id="user-1")
    JobService.create("job-1", "user-1", {"userId": "user-1", "runId": "run-1"}, max_attempts=3)
    db.session.commit()
    return "job-1"


def _job(job_id):
    db.session.expire_all()
    return db.session.get(Job, job_id)


class TestTick:
    """Tests for JobPoller.tick."""

    def test_runs_pending_job(self, poller, pending_job, delivery_service):
        stats = poller.tick()

        assert stats == {"claimed": 1, "completed": 1, "failed": 0}
        delivery_service.deliver.assert_called_once_with(
            "job-1", "user-1", {"userId": "user-1", "runId": "run-1"})
        job = _job("job-1")
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 1

    def test_failure_backs_off(self, poller, pending_job, delivery_service):
        delivery_service.deliver.side_effect = RuntimeError("GoHighLevel down")

        stats = poller.tick()

        assert stats["failed"] == 1
        job = _job("job-1")
        assert job.status == JobStatus.PENDING
        assert job.attempts == 1
        assert job.last_error == "GoHighLevel down"
        assert job.run_after > utcnow() + timedelta(seconds=50)

    def test_backoff_doubles(self, poller, pending_job, delivery_service):
        delivery_service.deliver.side_effect = RuntimeError("down")
        job = _job("job-1")
        job.attempts = 1
        db.session.commit()

        poller.tick()

        job = _job("job-1")
        assert job.attempts == 2
        assert job.run_after > utcnow() + timedelta(seconds=110)

    def test_last_attempt_fails_for_good(self, poller, pending_job, delivery_service):
        delivery_service.deliver.side_effect = RuntimeError("down")
        job = _job("job-1")
        job.attempts = 2
        db.session.commit()

        poller.tick()

        job = _job("job-1")
        assert job.status == JobStatus.FAILED
        assert job.attempts == 3

    def test_waits_for_run_after(self, poller, pending_job, delivery_service):
        job = _job("job-1")
        job.run_after = utcnow() + timedelta(minutes=5)
        db.session.commit()

        assert poller.tick() == {"claimed": 0, "completed": 0, "failed": 0}
        delivery_service.deliver.assert_not_called()

    def test_exhausted_jobs_ignored(self, poller, pending_job, delivery_service):
        job = _job("job-1")
        job.attempts = 3
        db.session.commit()

        assert poller.tick()["claimed"] == 0


class TestClaim:
    """Tests for the conditional claim."""

    def test_claim_once(self, app, pending_job):
        job = _job("job-1")

        assert JobPoller.claim(job) is True
        assert JobPoller.claim(job) is False

        job = _job("job-1")
        assert job.status == JobStatus.IN_PROGRESS
        assert job.attempts == 1

    def test_stale_attempts_lose(self, app, pending_job):
        job = _job("job-1")
        stale = Mock(id=job.id, attempts=job.attempts + 1)

        assert JobPoller.claim(stale) is False


class TestScheduler:
    def test_interval_job(self, poller):
        with patch("apscheduler.schedulers.background.BackgroundScheduler") as mock_scheduler:
            scheduler = start_poller_scheduler(poller, interval_seconds=30)

        add_job = scheduler.add_job.call_args
        assert add_job.kwargs["seconds"] == 30
        assert add_job.kwargs["max_instances"] == 1
        assert add_job.kwargs["func"] == poller.tick
        mock_scheduler.return_value.start.assert_called_once()
