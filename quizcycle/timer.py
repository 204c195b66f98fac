"""
Tick-driven countdown timer for quiz questions.
"""
import logging
import time
from typing import Callable, Optional

# Set up logger for timer operations
logger = logging.getLogger(__name__)

# Float slack when comparing accumulated tick deltas against zero
TIME_EPSILON = 1e-9


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(timer_id: str, duration: float) -> None:
        """Log countdown start."""
        logger.debug(
            f"Timer lifecycle: COUNTDOWN_START - Timer {timer_id}, Duration {duration:.1f}s",
            extra={
                'event_type': 'timer_countdown_start',
                'timer_id': timer_id,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(timer_id: str, remaining_time: float, total_duration: float) -> None:
        """Log timer update events (throttled to whole seconds near the end)."""
        whole = int(remaining_time)
        if remaining_time > 5 or whole != remaining_time:
            return
        progress_percent = 100.0
        if total_duration > 0:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
        logger.debug(
            f"Timer lifecycle: UPDATE - Timer {timer_id}, Remaining {remaining_time:.1f}s ({progress_percent:.1f}% complete)",
            extra={
                'event_type': 'timer_update',
                'timer_id': timer_id,
                'remaining_time': remaining_time,
                'total_duration': total_duration,
                'progress_percent': progress_percent,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_completion(timer_id: str, completion_type: str, total_duration: float) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.debug(
            f"Timer lifecycle: COMPLETED - Timer {timer_id}, Type {completion_type}, Duration {total_duration:.1f}s",
            extra={
                'event_type': 'timer_completed',
                'timer_id': timer_id,
                'completion_type': completion_type,
                'total_duration': total_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(timer_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Timer {timer_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'timer_id': timer_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class CountdownTimer:
    """
    Countdown for a single question, advanced by explicit ticks.

    The timer knows nothing about wall-clock time: the owner feeds it
    elapsed seconds through tick(). The expiry callback fires exactly once
    per start(), when the remaining time reaches zero while running.
    """

    def __init__(self, on_expire: Optional[Callable[[], None]] = None, timer_id: str = "question"):
        """
        Initialize the timer.

        Args:
            on_expire: Called once when a running countdown reaches zero
            timer_id: Identifier used in lifecycle log records
        """
        self._on_expire = on_expire
        self._timer_id = timer_id
        self._remaining_time = 0.0
        self._total_duration = 0.0
        self._is_running = False
        self._is_cancelled = False
        self._is_expired = False

    def start(self, duration: float) -> None:
        """
        Start (or restart) the countdown.

        Args:
            duration: Countdown length in seconds

        Raises:
            ValueError: If duration is negative
        """
        if duration < 0:
            raise ValueError(f"Timer duration cannot be negative, got {duration}")

        self._remaining_time = float(duration)
        self._total_duration = float(duration)
        self._is_cancelled = False
        self._is_expired = False
        self._is_running = True
        TimerLifecycleLogger.log_timer_start(self._timer_id, self._total_duration)

        if self._remaining_time == 0:
            self._expire()

    def tick(self, elapsed: float) -> float:
        """
        Advance the countdown.

        Args:
            elapsed: Seconds elapsed since the previous tick

        Returns:
            Remaining time in seconds, clamped at zero

        Raises:
            ValueError: If elapsed is negative
        """
        if elapsed < 0:
            raise ValueError(f"Elapsed time cannot be negative, got {elapsed}")

        if not self._is_running:
            return self._remaining_time

        self._remaining_time = max(0.0, self._remaining_time - elapsed)
        if self._remaining_time <= TIME_EPSILON:
            self._remaining_time = 0.0
        TimerLifecycleLogger.log_timer_update(self._timer_id, self._remaining_time, self._total_duration)

        if self._remaining_time == 0:
            self._expire()
        return self._remaining_time

    def cancel(self) -> None:
        """Stop the countdown without firing the expiry signal."""
        if self._is_running:
            self._is_running = False
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._timer_id, "cancelled", self._total_duration)

    def _expire(self) -> None:
        self._is_running = False
        self._is_expired = True
        TimerLifecycleLogger.log_timer_completion(self._timer_id, "natural_expiry", self._total_duration)
        if self._on_expire is not None:
            try:
                self._on_expire()
            except Exception as e:
                TimerLifecycleLogger.log_timer_error(self._timer_id, type(e).__name__, str(e), "expire")
                raise

    @property
    def is_running(self) -> bool:
        """Check if the countdown is active."""
        return self._is_running

    @property
    def is_cancelled(self) -> bool:
        """Check if timer was cancelled before expiry."""
        return self._is_cancelled

    @property
    def is_expired(self) -> bool:
        """Check if timer reached zero."""
        return self._is_expired

    @property
    def remaining_time(self) -> float:
        """Get remaining time in seconds."""
        return self._remaining_time

    @property
    def total_duration(self) -> float:
        """Get the duration passed to the last start()."""
        return self._total_duration
