"""Token bucket used to pace calls against the place provider."""

import logging
import math
import threading
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Absorbs float drift in elapsed-time arithmetic.
_EPSILON = 1e-9


class TokenBucket:
    """Blocking token bucket.

    With the default capacity of 1 the bucket enforces a minimum spacing of
    `1 / rate` seconds between consecutive `acquire()` calls.
    """

    def __init__(self, rate: float, capacity: int = 1, name: str = "bucket") -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = rate
        self.capacity = capacity
        self.name = name
        self._tokens = float(capacity)
        self._updated = time.monotonic()
        self._lock = threading.Lock()

    @classmethod
    def from_interval(cls, seconds: float, name: str = "bucket") -> "TokenBucket":
        """Bucket allowing one call every `seconds` (0 disables the limit)."""
        if seconds <= 0:
            return cls(rate=math.inf, capacity=1, name=name)
        return cls(rate=1.0 / seconds, capacity=1, name=name)

    def _refill(self) -> None:
        if math.isinf(self.rate):
            self._tokens = float(self.capacity)
            return
        now = time.monotonic()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
            self._updated = now

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= 1 - _EPSILON:
                self._tokens -= 1
                return True
            return False

    def acquire(self) -> float:
        """Take one token, sleeping until one is available. Returns the time waited."""
        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1 - _EPSILON:
                    self._tokens -= 1
                    return waited
                delay = (1 - self._tokens) / self.rate
            logger.debug("%s limiter sleeping %.3fs", self.name, delay)
            time.sleep(delay)
            waited += delay


@dataclass
class IngestionLimiters:
    """Limiters for the three kinds of provider traffic an ingestion run makes."""

    details: TokenBucket
    sweeps: TokenBucket
    pages: TokenBucket

    @classmethod
    def from_delays(cls, detail_delay: float, sweep_delay: float, page_delay: float = 2.0) -> "IngestionLimiters":
        return cls(
            details=TokenBucket.from_interval(detail_delay, name="details"),
            sweeps=TokenBucket.from_interval(sweep_delay, name="sweeps"),
            pages=TokenBucket.from_interval(page_delay, name="pages"),
        )
