"""
API routes: ingestion webhook, worker health and job readback.
"""
from flask import jsonify, request, current_app
from app.api import api_bp
from app.models import User, WebhookLog, db
from app.api.helpers import PayloadError, secret_matches, validate_ingest_payload, job_summary
from app.datetime_utils import utcnow, format_datetime_utc
from app.logging_config import get_logger
from app.services.job_producer import JobProducer
from app.services.job_service import JobService
from app.services.queue_service import get_job_queue

logger = get_logger(__name__)

REDACTED_HEADERS = {"x-hook-secret", "authorization", "cookie"}


def _loggable_headers():
    return {k: ("***" if k.lower() in REDACTED_HEADERS else v) for k, v in request.headers.items()}


def _log_webhook(body, run_id=None):
    """Store the inbound call. A failure here never fails the webhook."""
    try:
        db.session.add(WebhookLog(
            direction="incoming",
            url=request.path,
            payload=body,
            headers=_loggable_headers(),
            run_id=run_id,
            received_at=utcnow(),
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.warning("Failed to log webhook (continuing anyway)", error=str(e))


@api_bp.route("/ingest-complete", methods=["POST"])
def ingest_complete():
    """
    Called by the ingestion job when a nightly run has landed.
    Creates delivery jobs for every user with settings.
    """
    logger.info("Webhook received", path=request.path)

    if not secret_matches(request.headers.get("X-Hook-Secret"), current_app.config.get("WEBHOOK_SECRET")):
        logger.warning("Invalid or missing webhook secret")
        return jsonify({"error": "Unauthorized"}), 401

    body = request.get_json(silent=True)
    if not body:
        return jsonify({"error": "Request body is required"}), 400

    raw_run_id = body.get("runId") if isinstance(body, dict) else None
    _log_webhook(body, run_id=str(raw_run_id) if raw_run_id is not None else None)

    try:
        run_id, ingested_at = validate_ingest_payload(body)
    except PayloadError as e:
        logger.warning("Webhook validation failed", error=str(e))
        return jsonify({
            "error": "Invalid payload format",
            "details": str(e),
            "received": body,
        }), 400

    try:
        result = JobProducer().enqueue_for_run(run_id, ingested_at)
    except Exception as e:
        logger.error("Failed to process webhook", run_id=run_id, error=str(e), exc_info=True)
        return jsonify({"error": "Failed to process webhook", "details": str(e)}), 500

    return jsonify({
        "success": True,
        "runId": run_id,
        "message": "Webhook processed successfully",
        "jobsCreated": result["jobsCreated"],
        "totalUsers": result["totalUsers"],
    }), 200


@api_bp.route("/workers/health", methods=["GET"])
def workers_health():
    """Queue liveness plus Job counts by status."""
    try:
        queue = get_job_queue()
        queues = queue.get_queues()
        counts = JobService.count_by_status()
        return jsonify({
            "queueHealth": "healthy",
            "activeQueues": len(queues),
            "jobStats": {
                "pending": counts.get("pending", 0),
                "active": counts.get("in_progress", 0),
                "completed": counts.get("completed", 0),
                "failed": counts.get("failed", 0),
            },
            "queueStats": queue.count_by_state(),
            "timestamp": format_datetime_utc(utcnow()),
        }), 200
    except Exception as e:
        logger.error("Error in /api/workers/health", error=str(e), exc_info=True)
        return jsonify({
            "queueHealth": "unhealthy",
            "error": str(e),
            "timestamp": format_datetime_utc(utcnow()),
        }), 500


@api_bp.route("/jobs", methods=["GET"])
def get_jobs():
    """Jobs for one user, newest first."""
    user_id = request.args.get("userId")
    if not user_id:
        return jsonify({"error": "userId is required"}), 400

    try:
        user = db.session.get(User, user_id)
        if user is None:
            return jsonify({"error": "User not found"}), 404

        jobs = [job_summary(job) for job in JobService.list_for_user(user.id)]
        return jsonify({"jobs": jobs, "total_count": len(jobs)}), 200
    except Exception as e:
        logger.error("Error in /api/jobs", error=str(e), exc_info=True)
        return jsonify({"error": str(e)}), 500


@api_bp.route("/jobs/<job_id>/progress", methods=["GET"])
def get_job_progress(job_id):
    try:
        progress = JobService.get_progress(job_id)
        if progress is None:
            return jsonify({"error": "Progress not found"}), 404
        return jsonify(progress), 200
    except Exception as e:
        logger.error("Error in /api/jobs/<id>/progress", job_id=job_id, error=str(e), exc_info=True)
        return jsonify({"error": str(e)}), 500
