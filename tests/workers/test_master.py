"""
Tests for the master process: worker startup and the graceful shutdown sequence.
Signals, the scheduler and the process exit are patched out.
"""
import signal
import sys
import threading

import pytest
from unittest.mock import Mock, patch

from app.workers.master import MasterProcess


@pytest.fixture(autouse=True)
def restore_hooks(monkeypatch):
    """setup_graceful_shutdown replaces the global excepthooks."""
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)


@pytest.fixture
def queue():
    return Mock()


@pytest.fixture
def workers():
    return []


@pytest.fixture
def master(app, queue, workers):
    def factory(worker_id):
        worker = Mock()
        worker.worker_id = worker_id
        worker.get_status.return_value = {"workerId": worker_id}
        workers.append(worker)
        return worker

    return MasterProcess(app, worker_count=3, queue=queue, worker_factory=factory, exit_func=Mock())


@pytest.fixture
def started(master):
    with patch("app.workers.master.BackgroundScheduler") as mock_scheduler, \
            patch("app.workers.master.signal.signal") as mock_signal:
        master.start()
        yield master, mock_scheduler.return_value, mock_signal


class TestStart:
    """Tests for MasterProcess.start."""

    def test_starts_every_worker(self, started, workers, queue):
        master, _, _ = started

        assert len(workers) == 3
        for worker in workers:
            worker.start.assert_called_once()
        queue.create_queue.assert_called_once_with("deliver-leads")

    def test_schedules_expiry_and_memory_jobs(self, started):
        _, scheduler, _ = started

        job_ids = {call.kwargs["id"] for call in scheduler.add_job.call_args_list}
        assert job_ids == {"queue_expiry", "memory_monitor"}
        scheduler.start.assert_called_once()

    def test_installs_signal_handlers(self, started):
        master, _, mock_signal = started

        installed = {call.args[0] for call in mock_signal.call_args_list}
        assert signal.SIGTERM in installed
        assert signal.SIGINT in installed

    def test_status(self, started):
        master, _, _ = started

        status = master.get_status()
        assert status["totalWorkers"] == 3
        assert status["isShuttingDown"] is False
        assert [w["workerId"] for w in status["workers"]] == [1, 2, 3]


class TestShutdown:
    """Tests for the graceful shutdown sequence."""

    def test_stops_workers_then_closes_queue(self, started, workers, queue):
        master, scheduler, _ = started

        assert master.shutdown("SIGTERM") is True

        scheduler.shutdown.assert_called_once_with(wait=False)
        for worker in workers:
            worker.stop.assert_called_once()
        queue.close.assert_called_once()
        master.exit_func.assert_called_once_with(0)

    def test_idempotent(self, started, workers):
        master, _, _ = started

        master.shutdown("SIGTERM")
        assert master.shutdown("SIGINT") is False

        assert workers[0].stop.call_count == 1
        master.exit_func.assert_called_once_with(0)

    def test_error_exits_nonzero(self, started, queue):
        master, _, _ = started
        queue.close.side_effect = RuntimeError("pool gone")

        master.shutdown("SIGTERM")

        master.exit_func.assert_called_once_with(1)

    def test_signal_handler_triggers_shutdown(self, started):
        master, _, _ = started

        master._handle_signal(signal.SIGTERM, None)

        assert master.is_shutting_down is True
        master.exit_func.assert_called_once_with(0)

    def test_uncaught_exception_triggers_shutdown(self, started):
        master, _, _ = started

        try:
            raise RuntimeError("crash")
        except RuntimeError as e:
            sys.excepthook(type(e), e, e.__traceback__)

        assert master.is_shutting_down is True

    def test_wait_returns_after_shutdown(self, started):
        master, _, _ = started
        master.shutdown("SIGTERM")

        master.wait()
        master.exit_func.assert_called_once_with(0)

    def test_shutdown_off_main_thread_exits_from_wait(self, started, queue):
        master, _, _ = started
        queue.close.side_effect = RuntimeError("pool gone")

        stopper = threading.Thread(target=master.shutdown, args=("threadException",))
        stopper.start()
        stopper.join()

        master.exit_func.assert_not_called()
        assert master.exit_code == 1

        master.wait()

        master.exit_func.assert_called_once_with(1)

    def test_thread_exception_exits_from_main_thread(self, started, workers):
        master, _, _ = started

        crashing = threading.Thread(target=lambda: 1 / 0)
        crashing.start()
        crashing.join()
        master.wait()

        for worker in workers:
            worker.stop.assert_called_once()
        master.exit_func.assert_called_once_with(0)
