"""
Client-side throttle for the extraction call.

Anthropic tier 1 allows 50 requests per minute; the default of 45 leaves
headroom. Calls are spaced by a fixed minimum gap rather than bucketed, so
a batch never bursts. EXTRACTION_REQUESTS_PER_MINUTE (or the CLI's --rpm)
changes the rate; 0 turns throttling off.
"""

import logging
import threading
import time

from pdgm_engine import config

logger = logging.getLogger(__name__)


class RateLimiter:
    """Thread-safe spacing of calls to at most requests_per_minute."""

    def __init__(self, requests_per_minute: int = 45):
        if requests_per_minute < 0:
            raise ValueError(f"requests_per_minute must be >= 0, got {requests_per_minute}")
        self.requests_per_minute = requests_per_minute
        self.min_gap = 60.0 / requests_per_minute if requests_per_minute else 0.0
        self._last_call = 0.0
        self._lock = threading.Lock()

    def wait(self) -> float:
        """Block until the next call may go out. Returns seconds slept."""
        with self._lock:
            delay = self._last_call + self.min_gap - time.monotonic()
            if delay > 0:
                logger.debug(f"Rate limit: sleeping {delay:.2f}s before extraction call")
                time.sleep(delay)
            else:
                delay = 0.0
            self._last_call = time.monotonic()
            return delay


# One limiter per process; every extraction call draws from it
_limiter = RateLimiter(requests_per_minute=config.EXTRACTION_REQUESTS_PER_MINUTE)


def configure_rate_limit(requests_per_minute: int):
    """Replace the process-wide limiter, e.g. from a CLI flag."""
    global _limiter
    _limiter = RateLimiter(requests_per_minute=requests_per_minute)


def wait_for_rate_limit() -> float:
    """Call this before every extraction request."""
    return _limiter.wait()
