"""
Outbound request throttle for the GoHighLevel API.

Bounds concurrent in-flight calls, spaces dispatches to a steady
requests-per-second rate and draws from a token reservoir refilled on a
fixed interval. A 429 from a wrapped call pauses all dispatch for a
cool-down; the failing call still raises to its caller.

Limiters are shared per destination account by every worker thread in the
process. Separate worker processes each hold their own limiter.
"""
import threading
import time

import requests

from app.config import Config as cfg
from app.logging_config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    def __init__(self, max_concurrent=5, requests_per_second=10, reservoir=100,
                 reservoir_refresh_seconds=60, cooldown_seconds=60,
                 name="default", clock=time.monotonic, sleep=time.sleep):
        self.name = name
        self.max_concurrent = max_concurrent
        self.min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self.reservoir_size = reservoir
        self.reservoir_refresh_seconds = reservoir_refresh_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._sleep = sleep

        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._lock = threading.Lock()
        self._tokens = reservoir
        self._last_refill = clock()
        self._next_dispatch = 0.0
        self._paused_until = 0.0

    @property
    def tokens(self):
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    @property
    def paused_until(self):
        return self._paused_until

    def _refill(self, now):
        if now - self._last_refill >= self.reservoir_refresh_seconds:
            self._tokens = self.reservoir_size
            self._last_refill = now

    def _acquire_dispatch(self):
        while True:
            with self._lock:
                now = self._clock()
                self._refill(now)
                wait = max(self._paused_until - now, self._next_dispatch - now, 0.0)
                if wait <= 0 and self._tokens <= 0:
                    wait = self._last_refill + self.reservoir_refresh_seconds - now
                if wait <= 0:
                    self._tokens -= 1
                    self._next_dispatch = now + self.min_interval
                    return
            self._sleep(wait)

    def pause(self, seconds=None):
        """Hold every dispatch for `seconds` (the cool-down by default)."""
        seconds = self.cooldown_seconds if seconds is None else seconds
        with self._lock:
            until = self._clock() + seconds
            if until > self._paused_until:
                self._paused_until = until
        logger.warning("Rate limited by GoHighLevel, pausing dispatch",
                       limiter=self.name, pause_seconds=seconds)

    def schedule(self, fn, *args, **kwargs):
        """Run fn(*args, **kwargs) once the concurrency, rate and reservoir bounds allow."""
        with self._slots:
            self._acquire_dispatch()
            try:
                result = fn(*args, **kwargs)
            except requests.HTTPError as e:
                if e.response is not None and e.response.status_code == 429:
                    self.pause()
                raise
            if getattr(result, "status_code", None) == 429:
                self.pause()
            return result


_limiters = {}
_limiters_lock = threading.Lock()


def get_rate_limiter(key):
    """Process-wide limiter for one destination account (keyed by location id)."""
    with _limiters_lock:
        limiter = _limiters.get(key)
        if limiter is None:
            limiter = RateLimiter(
                max_concurrent=cfg.GHL_CONCURRENT_REQUESTS,
                requests_per_second=cfg.GHL_REQUESTS_PER_SECOND,
                reservoir=cfg.GHL_RESERVOIR,
                reservoir_refresh_seconds=cfg.GHL_RESERVOIR_REFRESH_SECONDS,
                cooldown_seconds=cfg.GHL_RATE_LIMIT_COOLDOWN_SECONDS,
                name=key,
            )
            _limiters[key] = limiter
        return limiter


def reset_rate_limiters():
    with _limiters_lock:
        _limiters.clear()
