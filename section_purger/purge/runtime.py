"""
Runtime Measurement

Moving-average estimate of how long one purge request takes. The host
scheduler uses the estimate (the time hint) to decide how many
invalidations to hand the purger in one execution window.
"""

import logging
from collections import deque
from typing import Deque, Optional


logger = logging.getLogger(__name__)

MIN_TIME_HINT = 0.1
MAX_TIME_HINT = 10.0


class RuntimeMeasurement:
    """
    Tracks request durations over a sliding window.

    Usage:
        runtime = RuntimeMeasurement()
        runtime.record(0.42)
        runtime.get_time_hint()  # 0.42
    """

    def __init__(self, window: int = 50, initial_hint: float = 1.0):
        self._samples: Deque[float] = deque(maxlen=window)
        self._initial_hint = self._clamp(initial_hint)

    @staticmethod
    def _clamp(value: float) -> float:
        return max(MIN_TIME_HINT, min(MAX_TIME_HINT, value))

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    def record(self, seconds: float) -> None:
        """Record the duration of one request."""
        if seconds < 0:
            logger.warning(f"Ignoring negative request duration: {seconds}")
            return
        self._samples.append(seconds)

    def get_time_hint(self) -> float:
        """Average seconds per request, bounded to [0.1, 10.0]."""
        if not self._samples:
            return self._initial_hint
        return self._clamp(sum(self._samples) / len(self._samples))

    def reset(self, initial_hint: Optional[float] = None) -> None:
        self._samples.clear()
        if initial_hint is not None:
            self._initial_hint = self._clamp(initial_hint)
