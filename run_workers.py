"""
Start the delivery workers.

Usage:
    python run_workers.py                  # queue workers (default)
    python run_workers.py --mode poller    # polling fallback on a schedule
    python run_workers.py --mode poller --once
"""
import argparse
import sys
import threading

from app import create_app
from app.config import Config as cfg
from app.logging_config import get_logger
from app.workers import MasterProcess, JobPoller
from app.workers.poller import start_poller_scheduler

logger = get_logger(__name__)


def run_queue_workers(app, worker_count=None):
    master = MasterProcess(app, worker_count=worker_count)
    master.start()
    master.wait()


def run_poller(app, once=False):
    poller = JobPoller(app)
    if once:
        stats = poller.tick()
        logger.info("Poller run finished", **stats)
        return

    scheduler = start_poller_scheduler(poller, cfg.POLLER_INTERVAL_SECONDS)
    stopped = threading.Event()
    try:
        while not stopped.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Stopping poller")
    finally:
        scheduler.shutdown(wait=True)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the lead delivery workers.")
    parser.add_argument(
        "--mode",
        choices=["queue", "poller"],
        default="queue",
        help="queue: worker pool on the durable queue. poller: scan the jobs table.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Worker count for queue mode (defaults to WORKER_COUNT).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Poller mode only: run a single tick and exit.",
    )
    args = parser.parse_args()

    app = create_app()
    if args.mode == "queue":
        run_queue_workers(app, worker_count=args.workers)
    else:
        run_poller(app, once=args.once)
    sys.exit(0)
