"""Deletion progress: the shared counter and rate tracking for reports."""

import threading
import time
from collections import deque


class ProgressCounter:
    """
    Count of entries deleted so far.

    Incremented once per successful delete (files, symlinks, directories and the
    root itself). It only ever grows. Reads taken while a deletion is running may
    already be stale by the time they are used; the value is diagnostic only.
    """

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def increment(self, count: int = 1) -> int:
        """Add ``count`` deleted entries and return the new total."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        with self._lock:
            self._value += count
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __repr__(self) -> str:
        return f"<ProgressCounter value={self.value}>"


class RateTracker:
    """
    Track deletion rates from periodic counter snapshots.

    Supports:
    - Time-windowed rates (e.g. instant 10s, short-term 60s)
    - Overall rate since the tracker started
    - Peak rate tracking
    """

    def __init__(self, max_samples: int = 10000):
        # Samples are (timestamp, counter value) pairs
        self.samples: deque[tuple[float, int]] = deque(maxlen=max_samples)
        self.start_time = time.time()
        self.peak_rate = {"value": 0.0, "timestamp": None}

    def record(self, total: int, timestamp: float | None = None) -> None:
        """
        Record a counter snapshot.

        Args:
            total: Counter value at the time of the snapshot
            timestamp: Snapshot time (defaults to now)
        """
        self.samples.append((time.time() if timestamp is None else timestamp, total))

    def get_rate(self, window_seconds: float, now: float | None = None) -> float:
        """
        Calculate the rate of deletions over the trailing time window.

        Args:
            window_seconds: Time window in seconds
            now: Reference time (defaults to now)

        Returns:
            Entries per second across the samples inside the window
        """
        if window_seconds <= 0:
            return 0.0

        now = time.time() if now is None else now
        cutoff = now - window_seconds
        relevant = [s for s in self.samples if s[0] >= cutoff]
        if len(relevant) < 2:
            return 0.0

        time_span = relevant[-1][0] - relevant[0][0]
        if time_span <= 0:
            return 0.0
        return (relevant[-1][1] - relevant[0][1]) / time_span

    def get_overall_rate(self, total: int, now: float | None = None) -> float:
        """Entries per second since the tracker was created."""
        elapsed = (time.time() if now is None else now) - self.start_time
        return total / elapsed if elapsed > 0 else 0.0

    def update_peak_rate(self, rate: float) -> None:
        """Update peak rate if current rate exceeds previous peak."""
        if rate > self.peak_rate["value"]:
            self.peak_rate = {"value": rate, "timestamp": time.time()}
