import gc

import psutil

from app.logging_config import get_logger

logger = get_logger(__name__)

MB = 1024 * 1024


def memory_usage_mb():
    """Resident and virtual memory of this process, in MB."""
    info = psutil.Process().memory_info()
    return {"rss_mb": round(info.rss / MB), "vms_mb": round(info.vms / MB)}


def log_memory_usage(label="workers"):
    usage = memory_usage_mb()
    logger.info("Memory usage", label=label, **usage)
    return usage


def check_memory(label="workers", gc_threshold_mb=300):
    """Log memory usage and run a full collection once RSS passes the threshold."""
    usage = log_memory_usage(label)
    if usage["rss_mb"] > gc_threshold_mb:
        collected = gc.collect()
        logger.warning("High memory usage, ran garbage collection", label=label,
                       rss_mb=usage["rss_mb"], threshold_mb=gc_threshold_mb,
                       objects_collected=collected)
        return True
    return False
