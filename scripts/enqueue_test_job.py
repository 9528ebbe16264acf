#!/usr/bin/env python3
"""
Enqueue one delivery job for the first user that has settings.

Smoke test for the queue: start `python run_workers.py` in another shell and
watch the job move from pending to completed.

Usage:
    python scripts/enqueue_test_job.py
    python scripts/enqueue_test_job.py --user-id <id>
"""

import argparse
import os
import sys
import uuid

# Add parent directory to path to import app modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.datetime_utils import format_datetime_utc, utcnow
from app.logging_config import get_logger
from app.models import User, UserSettings, db
from app.services.job_producer import JobProducer

logger = get_logger(__name__)


def find_user(user_id=None):
    if user_id:
        return db.session.get(User, user_id)
    return (User.query.join(UserSettings, UserSettings.user_id == User.id)
            .order_by(User.id.asc())
            .first())


def enqueue_test_job(user_id=None):
    """
    Returns:
        list of created job ids (empty when no user qualifies)
    """
    user = find_user(user_id)
    if user is None or user.settings is None:
        print("[ERROR] No user with settings found")
        return []

    run_id = f"test-{uuid.uuid4().hex[:8]}"
    producer = JobProducer()
    try:
        job_ids = producer.enqueue_for_user(user, run_id, format_datetime_utc(utcnow()))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error("Failed to enqueue test job", user_id=user.id, error=str(e), exc_info=True)
        raise

    print(f"[SUCCESS] Enqueued {len(job_ids)} job(s) for user {user.id} (run {run_id})")
    for job_id in job_ids:
        print(f"  - {job_id}")
    return job_ids


if __name__ == "__main__":
    from app import create_app

    parser = argparse.ArgumentParser(description="Enqueue one delivery job for a user")
    parser.add_argument("--user-id", help="User to enqueue for (default: first user with settings)")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        enqueue_test_job(args.user_id)
