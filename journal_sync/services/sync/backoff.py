"""
Backoff Policy - delay between whole-run retries

A sync run that ends in RETRY_LATER is scheduled again after an
exponentially growing delay. Jitter keeps several clients that lost
connectivity together from retrying in lockstep.
"""
import random
import threading
from typing import Dict

from ...utils.logger import get_logger

logger = get_logger('backoff')


class BackoffPolicy:
    """Exponential backoff for run retries.

    ``get_delay(attempt)`` is stateless: attempt 0 waits ``initial_delay``,
    every further attempt multiplies by ``backoff_factor`` up to
    ``max_delay``. The failure streak is reported by ``get_stats()``.

    Example:
        >>> policy = BackoffPolicy(initial_delay=60.0, max_delay=18000.0)
        >>> policy.get_delay(0)   # ~60s with jitter
        >>> policy.get_delay(3)   # ~480s with jitter
        >>> policy.record_failure()
        >>> policy.record_success()
    """

    def __init__(
        self,
        initial_delay: float = 60.0,
        max_delay: float = 18000.0,
        backoff_factor: float = 2.0,
        jitter: float = 0.2
    ):
        """Initialize the policy.

        Args:
            initial_delay: Delay before the first retry, in seconds
            max_delay: Upper bound for any delay, in seconds
            backoff_factor: Multiply the delay by this per attempt
            jitter: Relative random spread applied to every delay (0.2 = ±20%)
        """
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

        self._failures = 0
        self._lock = threading.Lock()

    def base_delay(self, attempt: int) -> float:
        """Delay for ``attempt`` without jitter."""
        attempt = max(attempt, 0)
        try:
            delay = self.initial_delay * (self.backoff_factor ** attempt)
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)

    def get_delay(self, attempt: int) -> float:
        """Delay for ``attempt`` with random jitter, never above ``max_delay``."""
        delay = self.base_delay(attempt)
        if self.jitter:
            delay *= random.uniform(1 - self.jitter, 1 + self.jitter)
        return min(delay, self.max_delay)

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            logger.debug(f"[Backoff] Failure streak: {self._failures}")

    def record_success(self) -> None:
        with self._lock:
            if self._failures:
                logger.debug(f"[Backoff] Streak of {self._failures} failure(s) cleared")
            self._failures = 0

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                'failures': self._failures,
                'initial_delay': self.initial_delay,
                'max_delay': self.max_delay,
            }
