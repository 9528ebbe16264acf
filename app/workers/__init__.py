# Package
from app.workers.worker import DeliveryWorker
from app.workers.master import MasterProcess
from app.workers.poller import JobPoller

__all__ = ["DeliveryWorker", "MasterProcess", "JobPoller"]
