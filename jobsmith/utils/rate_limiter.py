"""
In-memory sliding-window rate limiter.

Buckets are arbitrary string keys (e.g., "resume:<user_id>"). Each bucket keeps
the timestamps of accepted requests inside the window.
"""

import math
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class LimitDecision:
    """Outcome of a rate-limit check."""

    ok: bool
    retry_after_sec: Optional[int] = None


class RateLimiter:
    """
    Sliding-window limiter keyed by bucket.

    Args:
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def check_limit(self, bucket_key: str, max_requests: int, window_s: float) -> LimitDecision:
        """
        Record a request against a bucket if it fits in the window.

        Args:
            bucket_key: Bucket identifier, usually "<kind>:<user_id>"
            max_requests: Requests allowed per window
            window_s: Window length in seconds

        Returns:
            LimitDecision; rejected decisions carry the seconds until the
            oldest request leaves the window (at least 1)
        """
        now = self._clock()
        with self._lock:
            hits = self._hits[bucket_key]
            while hits and now - hits[0] >= window_s:
                hits.popleft()

            if len(hits) >= max_requests:
                retry_after = max(1, math.ceil(window_s - (now - hits[0])))
                return LimitDecision(ok=False, retry_after_sec=retry_after)

            hits.append(now)
            return LimitDecision(ok=True)

    def reset(self, bucket_key: Optional[str] = None) -> None:
        """Forget recorded requests for one bucket, or all buckets."""
        with self._lock:
            if bucket_key is None:
                self._hits.clear()
            else:
                self._hits.pop(bucket_key, None)
