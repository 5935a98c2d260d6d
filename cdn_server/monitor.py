from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Optional


class FailureMonitor:
    def __init__(
        self,
        failure_threshold: int,
        window_seconds: int = 60,
        alert_handler: Optional[Callable[[str], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the monitor with a failure threshold and optional alert handler.

        Args:
            failure_threshold: Number of failures within the window before raising an alert
            window_seconds: Time window in seconds to check for failures
            alert_handler: Optional callback function to handle alerts. If None, alerts are dropped
            clock: Source of the current time
        """
        if failure_threshold <= 0:
            raise ValueError("Failure threshold must be positive")
        if window_seconds <= 0:
            raise ValueError("Window seconds must be positive")

        self._failure_threshold = failure_threshold
        self._window_seconds = window_seconds
        self._alert_handler = alert_handler
        self._clock = clock
        self._total_passes = 0
        self._total_failures = 0
        self._failure_timestamps = deque()
        self._last_status_time = clock()

    def _clean_old_failures(self) -> None:
        """Remove failures outside the time window."""
        window_start = self._clock() - timedelta(seconds=self._window_seconds)

        while self._failure_timestamps and self._failure_timestamps[0] < window_start:
            self._failure_timestamps.popleft()

    def pass_(self) -> None:
        """Record a successful action."""
        self._total_passes += 1
        self._last_status_time = self._clock()
        self._clean_old_failures()

    def fail(self) -> None:
        """
        Record a failed action.
        Triggers the alert once when failures within the window reach the threshold.
        """
        now = self._clock()
        self._failure_timestamps.append(now)
        self._total_failures += 1
        self._last_status_time = now

        self._clean_old_failures()

        if len(self._failure_timestamps) == self._failure_threshold and self._alert_handler:
            self._alert_handler(
                f"{self._failure_threshold} failures detected within {self._window_seconds}s "
                f"(total passes: {self._total_passes}, total failures: {self._total_failures})"
            )

    @property
    def failures_in_window(self) -> int:
        self._clean_old_failures()
        return len(self._failure_timestamps)

    @property
    def stats(self) -> dict:
        """Get monitor statistics."""
        self._clean_old_failures()
        return {
            'total_passes': self._total_passes,
            'total_failures': self._total_failures,
            'failures_in_window': len(self._failure_timestamps),
            'last_status_time': int(self._last_status_time.timestamp()),
            'window_seconds': self._window_seconds
        }
