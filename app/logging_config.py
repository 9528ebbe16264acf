import logging
import logging.config
import os
import sys
import uuid
from typing import Optional

import structlog

from app.datetime_utils import utcnow

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("apscheduler", "urllib3")


def _handlers(log_level: str, log_file: Optional[str]):
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "console",
            "stream": sys.stdout,
        }
    }
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
        }
    return handlers


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Set up structlog on top of the standard logging module.

    Worker threads bind job and worker ids with structlog.contextvars, so
    every line logged during a delivery carries them.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional rotating JSON log file. If None, logs to stdout only.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = _handlers(log_level, log_file)
    handler_names = list(handlers)
    loggers = {
        "": {"level": log_level, "handlers": handler_names, "propagate": False},
        "app": {"level": log_level, "handlers": handler_names, "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING", "handlers": handler_names, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "format": "%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s"
            },
            "json": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": structlog.processors.JSONRenderer(),
            },
        },
        "handlers": handlers,
        "loggers": loggers,
    })

    logger = structlog.get_logger("app")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class DeliveryContext:
    """
    Wraps one delivery run: binds job/user/operation ids into the thread's
    log context and logs start, completion or failure with the duration.
    """

    def __init__(self, job_id: str, user_id: Optional[str] = None, operation_id: Optional[str] = None):
        self.job_id = job_id
        self.user_id = user_id
        self.operation_id = operation_id or uuid.uuid4().hex[:8]
        self.logger = get_logger("app.delivery")
        self.start_time = None
        self._tokens = None

    def __enter__(self):
        self._tokens = structlog.contextvars.bind_contextvars(
            job_id=self.job_id, user_id=self.user_id, operation_id=self.operation_id
        )
        self.start_time = utcnow()
        self.logger.info("Delivery started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = round((utcnow() - self.start_time).total_seconds(), 3)
        try:
            if exc_type is None:
                self.logger.info("Delivery finished", duration_seconds=elapsed, status="success")
            else:
                self.logger.error("Delivery failed", duration_seconds=elapsed, status="error",
                                  error_type=exc_type.__name__, error_message=str(exc_val))
        finally:
            structlog.contextvars.reset_contextvars(**self._tokens)
        return False
