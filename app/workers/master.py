import signal
import sys
import threading

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor

from app.config import Config as cfg
from app.logging_config import get_logger
from app.services.queue_service import get_job_queue, DELIVER_LEADS_QUEUE
from app.workers.monitoring import check_memory
from app.workers.worker import DeliveryWorker

logger = get_logger(__name__)

SHUTDOWN_SIGNALS = ("SIGTERM", "SIGINT", "SIGUSR2")


class MasterProcess:
    """Starts the worker pool and owns its shutdown."""

    def __init__(self, app, worker_count=None, queue=None, worker_factory=None, exit_func=sys.exit):
        self.app = app
        self.worker_count = cfg.WORKER_COUNT if worker_count is None else worker_count
        self.queue = queue or get_job_queue()
        self.worker_factory = worker_factory or (
            lambda worker_id: DeliveryWorker(worker_id, app, queue=self.queue)
        )
        self.exit_func = exit_func

        self.workers = []
        self.scheduler = None
        self.is_shutting_down = False
        self.exit_code = None
        self._exited = False
        self._shutdown_lock = threading.Lock()
        self._stopped = threading.Event()

    def start(self):
        logger.info("Initializing worker system", worker_count=self.worker_count)
        self.queue.create_queue(DELIVER_LEADS_QUEUE)

        for worker_id in range(1, self.worker_count + 1):
            worker = self.worker_factory(worker_id)
            self.workers.append(worker)
            worker.start()

        self.scheduler = self._init_scheduler()
        self.setup_graceful_shutdown()
        logger.info("All workers started", worker_count=self.worker_count)

    def _expire_jobs(self):
        with self.app.app_context():
            expired = self.queue.expire_active()
            if expired:
                logger.warning("Expired stuck jobs", count=expired)

    def _init_scheduler(self):
        executors = {"default": ThreadPoolExecutor(2)}
        scheduler = BackgroundScheduler(executors=executors)
        scheduler.add_job(
            func=self._expire_jobs,
            trigger="interval",
            seconds=cfg.QUEUE_EXPIRE_CHECK_SECONDS,
            id="queue_expiry",
            replace_existing=True,
        )
        scheduler.add_job(
            func=lambda: check_memory("workers", cfg.MEMORY_GC_THRESHOLD_MB),
            trigger="interval",
            seconds=cfg.MEMORY_LOG_INTERVAL_SECONDS,
            id="memory_monitor",
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Scheduler started (queue expiry, memory monitor)")
        return scheduler

    def setup_graceful_shutdown(self):
        for name in SHUTDOWN_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                signal.signal(signum, self._handle_signal)

        def excepthook(exc_type, exc, tb):
            logger.error("Uncaught exception", error_type=exc_type.__name__, error=str(exc),
                         exc_info=(exc_type, exc, tb))
            self.shutdown("uncaughtException")

        def thread_excepthook(args):
            logger.error("Uncaught exception in thread", thread=getattr(args.thread, "name", None),
                         error_type=args.exc_type.__name__, error=str(args.exc_value),
                         exc_info=(args.exc_type, args.exc_value, args.exc_traceback))
            # A crashed thread cannot join itself, so shut down from a fresh one
            threading.Thread(target=self.shutdown, args=("threadException",), daemon=True).start()

        sys.excepthook = excepthook
        threading.excepthook = thread_excepthook

    def _handle_signal(self, signum, frame):
        self.shutdown(signal.Signals(signum).name)

    def shutdown(self, reason):
        """
        Stop every worker, then close the queue. Later calls are no-ops.

        Returns:
            bool: False if shutdown was already in progress
        """
        with self._shutdown_lock:
            if self.is_shutting_down:
                logger.warning("Already shutting down", reason=reason)
                return False
            self.is_shutting_down = True

        logger.info("Starting graceful shutdown", reason=reason)
        exit_code = 0
        try:
            if self.scheduler is not None:
                self.scheduler.shutdown(wait=False)

            stop_threads = [
                threading.Thread(target=worker.stop, name=f"stop-{worker.worker_id}")
                for worker in self.workers
            ]
            for t in stop_threads:
                t.start()
            for t in stop_threads:
                t.join()

            with self.app.app_context():
                self.queue.close()
            logger.info("Graceful shutdown complete")
        except Exception as e:
            logger.error("Error during shutdown", error=str(e), exc_info=True)
            exit_code = 1
        finally:
            self.exit_code = exit_code
            self._stopped.set()

        # sys.exit only ends the calling thread, so off the main thread wait() exits instead
        if threading.current_thread() is threading.main_thread():
            self._exit()
        return True

    def _exit(self):
        with self._shutdown_lock:
            if self._exited:
                return
            self._exited = True
        if self.exit_func is not None:
            self.exit_func(self.exit_code)

    def wait(self):
        """Block the main thread until shutdown finishes, then exit with its code."""
        while not self._stopped.wait(timeout=1.0):
            pass
        self._exit()

    def get_status(self):
        return {
            "totalWorkers": self.worker_count,
            "workers": [worker.get_status() for worker in self.workers],
            "isShuttingDown": self.is_shutting_down,
        }
