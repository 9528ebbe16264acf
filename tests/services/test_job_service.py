"""
Tests for local job tracking and progress readback.
"""
from datetime import timedelta

import pytest
from unittest.mock import patch

from app.datetime_utils import utcnow
from app.models import Job, JobStatus, db
from app.services.job_service import JobService


@pytest.fixture
def user(make_user):
    return make_user(user_id="user-1")


def _create(job_id="job-1", user_id="user-1", payload=None, max_attempts=3):
    job = JobService.create(job_id, user_id, payload or {"userId": user_id}, max_attempts=max_attempts)
    db.session.commit()
    return job


class TestJobLifecycle:
    """Tests for status transitions."""

    def test_create_is_pending(self, user):
        job = _create()

        assert job.status == JobStatus.PENDING
        assert job.attempts == 0
        assert job.type == "deliver-leads"

    def test_mark_in_progress_counts_attempts(self, user):
        _create()

        JobService.mark_in_progress("job-1", "user-1")
        job = JobService.mark_in_progress("job-1", "user-1")

        assert job.status == JobStatus.IN_PROGRESS
        assert job.attempts == 2
        assert job.started_at is not None

    def test_mark_in_progress_creates_missing_row(self, user):
        job = JobService.mark_in_progress("job-new", "user-1", payload={"userId": "user-1"})

        assert db.session.get(Job, "job-new") is job
        assert job.attempts == 1
        assert job.payload == {"userId": "user-1"}

    def test_mark_completed(self, user):
        _create()
        JobService.mark_in_progress("job-1", "user-1")

        job = JobService.mark_completed("job-1")

        assert job.status == JobStatus.COMPLETED
        assert job.finished_at is not None

    def test_mark_failed(self, user):
        _create()

        job = JobService.mark_failed("job-1", RuntimeError("GoHighLevel down"))

        assert job.status == JobStatus.FAILED
        assert job.last_error == "GoHighLevel down"
        assert job.run_after is None

    def test_mark_failed_with_retry(self, user):
        _create()

        job = JobService.mark_failed("job-1", "try later", retry_in_seconds=120)

        assert job.status == JobStatus.PENDING
        assert job.run_after > utcnow() + timedelta(seconds=100)

    def test_missing_job(self, app):
        assert JobService.mark_completed("nope") is None
        assert JobService.mark_failed("nope", "x") is None


class TestProgress:
    """Tests for the progress sub-document."""

    def test_update_and_read(self, user):
        _create(payload={"userId": "user-1", "runId": "r1"})

        assert JobService.update_progress("job-1", 3, 10, "pushing properties") is True

        assert JobService.get_progress("job-1") == {"processed": 3, "total": 10, "status": "pushing properties"}
        db.session.expire_all()
        assert db.session.get(Job, "job-1").payload["runId"] == "r1"

    def test_missing_job(self, app):
        assert JobService.update_progress("nope", 0, 0, "x") is False
        assert JobService.get_progress("nope") is None

    def test_no_progress_yet(self, user):
        _create()
        assert JobService.get_progress("job-1") is None

    def test_write_failure_is_swallowed(self, user):
        _create()

        with patch.object(db.session, "commit", side_effect=RuntimeError("db gone")):
            assert JobService.update_progress("job-1", 1, 2, "x") is False


class TestQueries:
    """Tests for readback queries."""

    def test_list_for_user_newest_first(self, user, make_user):
        make_user(user_id="user-2")
        older = _create("job-old")
        older.created_at = utcnow() - timedelta(hours=1)
        db.session.commit()
        _create("job-new")
        _create("job-other", user_id="user-2")

        jobs = JobService.list_for_user("user-1")

        assert [j.id for j in jobs] == ["job-new", "job-old"]

    def test_count_by_status(self, user):
        _create("a")
        _create("b")
        JobService.mark_failed("b", "x")

        counts = JobService.count_by_status()

        assert counts == {"pending": 1, "in_progress": 0, "completed": 0, "failed": 1}
