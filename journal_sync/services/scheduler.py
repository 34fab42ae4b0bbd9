"""
Sync Scheduler - decides when the sync engine runs

Rules:
- at most one run at a time (non-blocking thread lock in this process plus
  an optional database lock shared with other processes; busy means skip),
- an immediate request replaces a queued one that has not started,
- a periodic request is dropped while anything is queued or running,
- a RETRY_LATER outcome queues a retry after exponential backoff,
- nothing starts while the connectivity monitor reports offline.

Runs are never interrupted; ``stop()`` only prevents the next one.
"""
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..models import utcnow
from ..utils.logger import get_logger
from .sync import BackoffPolicy
from .sync_engine import SyncOutcome, SyncResult

logger = get_logger('scheduler')


@dataclass
class SyncRequest:
    force_full: bool = False
    attempt: int = 0
    reason: str = 'manual'
    not_before: float = 0.0  # clock() value
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'force_full': self.force_full,
            'attempt': self.attempt,
            'reason': self.reason,
            'created_at': self.created_at.isoformat() + 'Z',
        }


class SyncScheduler:
    """Periodic and on-demand triggering of ``SyncEngine.run_sync``.

    Example:
        >>> scheduler = SyncScheduler(engine, queue, connectivity, interval_seconds=900)
        >>> scheduler.start()
        >>> scheduler.request_immediate(force_full=True)
        >>> scheduler.stop()
    """

    # Lower bound for the worker's idle wait
    MIN_WAIT = 0.1

    # Wait before trying again when another process holds the run lock
    LOCK_RETRY_DELAY = 5.0

    def __init__(
        self,
        engine,
        queue=None,
        connectivity=None,
        backoff: Optional[BackoffPolicy] = None,
        interval_seconds: float = 15 * 60,
        probe_interval: Optional[float] = None,
        process_lock=None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.engine = engine
        self.queue = queue
        self.connectivity = connectivity
        self.backoff = backoff or BackoffPolicy()
        self.interval_seconds = interval_seconds
        self.probe_interval = probe_interval
        self.process_lock = process_lock
        self._clock = clock

        self._pending: Optional[SyncRequest] = None
        self._cond = threading.Condition()
        self._run_lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._next_periodic = 0.0
        self._next_probe = 0.0

        self.last_outcome: Optional[SyncOutcome] = None
        self.last_run_at: Optional[datetime] = None

    # ==================== Triggers ====================

    def request_immediate(self, force_full: bool = False, reason: str = 'manual') -> SyncRequest:
        """Queue a run now, replacing any request that has not started."""
        request = SyncRequest(force_full=force_full, reason=reason, not_before=self._clock())
        with self._cond:
            if self._pending is not None:
                logger.debug(f"Replacing queued {self._pending.reason} request with {reason}")
            self._pending = request
            self._cond.notify_all()
        logger.info(f"Immediate sync requested ({reason}, force_full={force_full})")
        return request

    def request_periodic(self) -> bool:
        """Queue a periodic run unless something is already queued or running."""
        with self._cond:
            if self._pending is not None or self._run_lock.locked():
                logger.debug("Periodic sync suppressed, a run is already queued or in flight")
                return False
            self._pending = SyncRequest(reason='periodic', not_before=self._clock())
            self._cond.notify_all()
        return True

    def on_connectivity_change(self, connected: bool) -> None:
        if connected:
            self.request_immediate(reason='connectivity')
        else:
            logger.info("Offline, sync paused until connectivity returns")

    # ==================== Execution ====================

    def run_pending(self) -> Optional[SyncOutcome]:
        """Run the queued request if it is due.

        Returns:
            The outcome, or None when nothing ran (nothing due, offline, or
            another run in flight in this or another process).
        """
        if self.connectivity is not None and not self.connectivity.is_connected():
            return None
        if not self._run_lock.acquire(blocking=False):
            return None

        try:
            with self._cond:
                request = self._pending
                if request is None or request.not_before > self._clock():
                    return None

            if self.process_lock is not None and not self.process_lock.acquire():
                with self._cond:
                    if self._pending is request:
                        request.not_before = self._clock() + self.LOCK_RETRY_DELAY
                logger.info("Another process is syncing, request kept for later")
                return None

            try:
                if self.process_lock is not None and self.queue is not None:
                    # Holding the lock, anything still in flight belongs to a dead run
                    reset = self.queue.reset_stale_in_progress()
                    if reset:
                        logger.warning(f"Returned {reset} interrupted operation(s) to pending")
                with self._cond:
                    # An immediate request may have replaced ours meanwhile
                    request = self._pending or request
                    self._pending = None
                return self._execute(request)
            finally:
                if self.process_lock is not None:
                    self.process_lock.release()
        finally:
            self._run_lock.release()

    def run_now(self, force_full: bool = False, reason: str = 'manual') -> Optional[SyncOutcome]:
        """Queue an immediate request and run it on the calling thread.

        Returns None when the run could not start (offline or busy).
        """
        self.request_immediate(force_full=force_full, reason=reason)
        return self.run_pending()

    def _execute(self, request: SyncRequest) -> SyncOutcome:
        try:
            outcome = self.engine.run_sync(force_full=request.force_full, attempt=request.attempt)
        except Exception as e:
            logger.opt(exception=True).error(f"[FatalError] Sync engine raised: {e}")
            outcome = SyncOutcome(
                status=SyncResult.RETRY_LATER,
                error=str(e),
                force_full=request.force_full,
                attempt=request.attempt,
            )

        self.last_outcome = outcome
        self.last_run_at = utcnow()

        if outcome.status == SyncResult.RETRY_LATER:
            self.backoff.record_failure()
            delay = self.retry_delay(request.attempt)
            with self._cond:
                # A request queued during the run takes precedence
                if self._pending is None:
                    self._pending = SyncRequest(
                        force_full=request.force_full,
                        attempt=request.attempt + 1,
                        reason='retry',
                        not_before=self._clock() + delay,
                    )
                    self._cond.notify_all()
            logger.info(f"Sync will retry in {delay:.0f}s (attempt {request.attempt + 1})")
        else:
            self.backoff.record_success()
            if outcome.status == SyncResult.PERMANENT_FAILURE:
                logger.error(f"Sync failed permanently: {outcome.error}")

        return outcome

    def retry_delay(self, attempt: int) -> float:
        """Run backoff, stretched to the queue's own suggestion when longer."""
        delay = self.backoff.get_delay(attempt)
        if self.queue is not None:
            suggested = self.queue.suggested_retry_delay()
            if suggested is not None:
                delay = max(delay, suggested)
        return delay

    # ==================== Worker ====================

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stopped.clear()
        now = self._clock()
        self._next_periodic = now + self.interval_seconds
        self._next_probe = now
        if self.connectivity is not None:
            self.connectivity.add_listener(self.on_connectivity_change)

        self._thread = threading.Thread(target=self._worker, name='sync-scheduler', daemon=True)
        self._thread.start()
        logger.info(f"Sync scheduler started, every {self.interval_seconds / 60:g} min")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Prevent further runs and wait for the worker; a run in flight finishes."""
        self._stopped.set()
        with self._cond:
            self._cond.notify_all()

        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        if self.connectivity is not None:
            self.connectivity.remove_listener(self.on_connectivity_change)
        logger.info("Sync scheduler stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def in_flight(self) -> bool:
        return self._run_lock.locked()

    def _worker(self) -> None:
        while not self._stopped.is_set():
            try:
                self._tick()
            except Exception as e:
                # The worker must survive anything a single tick throws
                logger.opt(exception=True).error(f"Sync scheduler tick failed: {e}")

            with self._cond:
                if self._stopped.is_set():
                    break
                self._cond.wait(timeout=self._seconds_until_next_event())

    def _tick(self) -> None:
        now = self._clock()
        if self.connectivity is not None and self.probe_interval and now >= self._next_probe:
            self._next_probe = now + self.probe_interval
            self.connectivity.probe()

        if now >= self._next_periodic:
            self._next_periodic = now + self.interval_seconds
            self.request_periodic()

        if not self._stopped.is_set():
            self.run_pending()

    def _seconds_until_next_event(self) -> float:
        now = self._clock()
        candidates = [self._next_periodic - now]
        if self.connectivity is not None and self.probe_interval:
            candidates.append(self._next_probe - now)

        connected = self.connectivity is None or self.connectivity.is_connected()
        if self._pending is not None and connected:
            candidates.append(self._pending.not_before - now)

        return max(min(candidates), self.MIN_WAIT)

    def status(self) -> Dict[str, Any]:
        with self._cond:
            pending = self._pending.to_dict() if self._pending else None
        return {
            'scheduler_running': self.running,
            'in_flight': self.in_flight,
            'pending_request': pending,
            'last_run_at': self.last_run_at.isoformat() + 'Z' if self.last_run_at else None,
            'last_outcome': self.last_outcome.to_dict() if self.last_outcome else None,
            'backoff': self.backoff.get_stats(),
        }
