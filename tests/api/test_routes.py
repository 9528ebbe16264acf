"""
Tests for the API routes (Flask endpoints): ingestion webhook, worker health and job readback.
"""
import json

import pytest
from unittest.mock import patch

from app.models import Job, QueueJob, WebhookLog, db
from app.services.job_service import JobService

WEBHOOK_SECRET = "test-hook-secret"

HEADERS = {"X-Hook-Secret": WEBHOOK_SECRET}
VALID_BODY = {"runId": "run-1", "ingestedAt": "2025-10-20T03:56:29.000Z"}


# ==============================================================================
# POST /api/ingest-complete TESTS
# ==============================================================================

class TestIngestComplete:
    """Tests for POST /api/ingest-complete."""

    def test_creates_jobs(self, client, make_user):
        make_user(user_id="user-a")
        make_user(user_id="user-b")
        make_user(user_id="user-c", zip_codes=None)

        response = client.post("/api/ingest-complete", json=VALID_BODY, headers=HEADERS)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["success"] is True
        assert data["runId"] == "run-1"
        assert data["jobsCreated"] == 2
        assert data["totalUsers"] == 3
        assert Job.query.count() == 2
        assert QueueJob.query.count() == 2

    def test_numeric_run_id(self, client, make_user):
        make_user(user_id="user-a")

        response = client.post("/api/ingest-complete", json={**VALID_BODY, "runId": 42}, headers=HEADERS)

        assert response.status_code == 200
        assert json.loads(response.data)["runId"] == "42"

    def test_missing_secret(self, client):
        response = client.post("/api/ingest-complete", json=VALID_BODY)
        assert response.status_code == 401

    def test_wrong_secret(self, client):
        response = client.post("/api/ingest-complete", json=VALID_BODY, headers={"X-Hook-Secret": "nope"})
        assert response.status_code == 401

    def test_unset_secret_rejects_everything(self, app, client):
        app.config["WEBHOOK_SECRET"] = None
        response = client.post("/api/ingest-complete", json=VALID_BODY, headers=HEADERS)
        assert response.status_code == 401

    def test_missing_body(self, client):
        response = client.post("/api/ingest-complete", headers=HEADERS)
        assert response.status_code == 400

    @pytest.mark.parametrize("body", [
        {"ingestedAt": "2025-10-20T03:56:29.000Z"},
        {"runId": "", "ingestedAt": "2025-10-20T03:56:29.000Z"},
        {"runId": True, "ingestedAt": "2025-10-20T03:56:29.000Z"},
        {"runId": "run-1"},
        {"runId": "run-1", "ingestedAt": "yesterday"},
    ])
    def test_invalid_payload(self, client, body):
        response = client.post("/api/ingest-complete", json=body, headers=HEADERS)

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data["error"] == "Invalid payload format"
        assert data["received"] == body

    def test_logs_webhook_without_secret(self, client):
        client.post("/api/ingest-complete", json=VALID_BODY, headers=HEADERS)

        log = WebhookLog.query.one()
        assert log.direction == "incoming"
        assert log.run_id == "run-1"
        assert log.payload == VALID_BODY
        assert log.headers["X-Hook-Secret"] == "***"

    def test_log_failure_does_not_fail_request(self, client, make_user):
        make_user(user_id="user-a")

        with patch("app.api.routes.WebhookLog", side_effect=RuntimeError("log table missing")):
            response = client.post("/api/ingest-complete", json=VALID_BODY, headers=HEADERS)

        assert response.status_code == 200

    def test_processing_failure(self, client):
        with patch("app.api.routes.JobProducer") as mock_producer:
            mock_producer.return_value.enqueue_for_run.side_effect = RuntimeError("db down")
            response = client.post("/api/ingest-complete", json=VALID_BODY, headers=HEADERS)

        assert response.status_code == 500
        assert json.loads(response.data)["error"] == "Failed to process webhook"


# ==============================================================================
# GET /api/workers/health TESTS
# ==============================================================================

class TestWorkersHealth:
    """Tests for GET /api/workers/health."""

    def test_counts(self, client, make_user):
        make_user(user_id="user-a")
        client.post("/api/ingest-complete", json=VALID_BODY, headers=HEADERS)

        response = client.get("/api/workers/health")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["queueHealth"] == "healthy"
        assert data["activeQueues"] == 1
        assert data["jobStats"] == {"pending": 1, "active": 0, "completed": 0, "failed": 0}
        assert data["timestamp"].endswith("Z")

    def test_unhealthy(self, client):
        with patch("app.api.routes.JobService.count_by_status", side_effect=RuntimeError("db down")):
            response = client.get("/api/workers/health")

        assert response.status_code == 500
        assert json.loads(response.data)["queueHealth"] == "unhealthy"


# ==============================================================================
# Job readback TESTS
# ==============================================================================

class TestJobReadback:
    """Tests for GET /api/jobs and GET /api/jobs/<id>/progress."""

    @pytest.fixture
    def job(self, make_user):
        make_user(user_id="user-a")
        JobService.create("job-1", "user-a", {"userId": "user-a"})
        db.session.commit()
        JobService.update_progress("job-1", 4, 10, "pushing properties (Primary)")
        return "job-1"

    def test_jobs_for_user(self, client, job):
        response = client.get("/api/jobs?userId=user-a")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["total_count"] == 1
        assert data["jobs"][0]["id"] == "job-1"
        assert data["jobs"][0]["status"] == "pending"
        assert data["jobs"][0]["progress"]["processed"] == 4

    def test_jobs_requires_user_id(self, client):
        assert client.get("/api/jobs").status_code == 400

    def test_jobs_unknown_user(self, client):
        assert client.get("/api/jobs?userId=ghost").status_code == 404

    def test_progress(self, client, job):
        response = client.get("/api/jobs/job-1/progress")

        assert response.status_code == 200
        assert json.loads(response.data) == {
            "processed": 4, "total": 10, "status": "pushing properties (Primary)",
        }

    def test_progress_missing(self, client, make_user):
        assert client.get("/api/jobs/nope/progress").status_code == 404


class TestAppHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert json.loads(response.data) == {"status": "ok"}
