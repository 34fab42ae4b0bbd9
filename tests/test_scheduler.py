"""
Sync Scheduler Tests

Single-flight, replace/suppress policies, retries and the worker thread.
"""
import threading
from unittest.mock import Mock

import pytest

from journal_sync.services import ConnectivityMonitor, SyncOutcome, SyncResult, SyncScheduler
from journal_sync.services.sync import BackoffPolicy


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def outcome(status):
    return SyncOutcome(status=status)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_engine():
    engine = Mock()
    engine.run_sync.return_value = outcome(SyncResult.SUCCESS)
    return engine


@pytest.fixture
def scheduler(fake_engine, clock):
    return SyncScheduler(
        fake_engine,
        backoff=BackoffPolicy(initial_delay=10.0, max_delay=100.0, jitter=0),
        interval_seconds=60,
        clock=clock,
    )


class TestTriggers:
    """Tests for request policies."""

    def test_immediate_request_runs(self, scheduler, fake_engine):
        scheduler.request_immediate(force_full=True)

        result = scheduler.run_pending()

        assert result.status == SyncResult.SUCCESS
        fake_engine.run_sync.assert_called_once_with(force_full=True, attempt=0)
        assert scheduler.last_outcome is result
        assert scheduler.run_pending() is None

    def test_nothing_queued(self, scheduler, fake_engine):
        assert scheduler.run_pending() is None
        fake_engine.run_sync.assert_not_called()

    def test_immediate_replaces_queued_request(self, scheduler, fake_engine):
        scheduler.request_immediate(force_full=False, reason='first')
        scheduler.request_immediate(force_full=True, reason='second')

        assert scheduler.status()['pending_request']['reason'] == 'second'
        scheduler.run_pending()
        fake_engine.run_sync.assert_called_once_with(force_full=True, attempt=0)

    def test_periodic_suppressed_when_queued(self, scheduler):
        scheduler.request_immediate(reason='manual')

        assert scheduler.request_periodic() is False
        assert scheduler.status()['pending_request']['reason'] == 'manual'

    def test_periodic_queues_when_idle(self, scheduler, fake_engine):
        assert scheduler.request_periodic() is True
        scheduler.run_pending()
        fake_engine.run_sync.assert_called_once()


class TestSingleFlight:
    """Tests for the one-run-at-a-time guarantee."""

    def test_no_nested_run(self, scheduler, fake_engine):
        nested = {}

        def run_sync(force_full, attempt):
            scheduler.request_immediate(reason='during run')
            nested['result'] = scheduler.run_pending()
            nested['periodic'] = scheduler.request_periodic()
            return outcome(SyncResult.SUCCESS)

        fake_engine.run_sync.side_effect = run_sync
        scheduler.request_immediate()
        scheduler.run_pending()

        assert nested['result'] is None
        assert nested['periodic'] is False
        assert fake_engine.run_sync.call_count == 1
        # The request made during the run is still queued
        assert scheduler.status()['pending_request']['reason'] == 'during run'


class TestRetries:
    """Tests for RETRY_LATER handling."""

    def test_retry_later_schedules_backoff(self, scheduler, fake_engine, clock):
        fake_engine.run_sync.return_value = outcome(SyncResult.RETRY_LATER)
        scheduler.request_immediate()
        scheduler.run_pending()

        pending = scheduler.status()['pending_request']
        assert pending['reason'] == 'retry'
        assert pending['attempt'] == 1

        clock.advance(9)
        assert scheduler.run_pending() is None

        clock.advance(1)
        scheduler.run_pending()
        assert fake_engine.run_sync.call_args_list[-1].kwargs == {'force_full': False, 'attempt': 1}

    def test_retry_delay_doubles(self, scheduler):
        assert scheduler.retry_delay(0) == 10.0
        assert scheduler.retry_delay(1) == 20.0
        assert scheduler.retry_delay(5) == 100.0

    def test_queue_suggestion_stretches_delay(self, fake_engine, clock):
        queue = Mock()
        queue.suggested_retry_delay.return_value = 32.0
        scheduler = SyncScheduler(
            fake_engine,
            queue=queue,
            backoff=BackoffPolicy(initial_delay=10.0, jitter=0),
            clock=clock,
        )

        assert scheduler.retry_delay(0) == 32.0
        assert scheduler.retry_delay(2) == 40.0

    def test_immediate_request_resets_attempts(self, scheduler, fake_engine, clock):
        fake_engine.run_sync.return_value = outcome(SyncResult.RETRY_LATER)
        scheduler.request_immediate()
        scheduler.run_pending()

        scheduler.request_immediate()
        scheduler.run_pending()

        assert fake_engine.run_sync.call_args_list[-1].kwargs['attempt'] == 0

    def test_success_clears_failure_streak(self, scheduler, fake_engine, clock):
        fake_engine.run_sync.return_value = outcome(SyncResult.RETRY_LATER)
        scheduler.request_immediate()
        scheduler.run_pending()
        assert scheduler.backoff.get_stats()['failures'] == 1

        fake_engine.run_sync.return_value = outcome(SyncResult.SUCCESS)
        clock.advance(1000)
        scheduler.run_pending()

        assert scheduler.backoff.get_stats()['failures'] == 0
        assert scheduler.status()['pending_request'] is None

    @pytest.mark.parametrize('status', [SyncResult.PERMANENT_FAILURE, SyncResult.SKIPPED])
    def test_terminal_outcomes_do_not_retry(self, scheduler, fake_engine, status):
        fake_engine.run_sync.return_value = outcome(status)
        scheduler.request_immediate()
        scheduler.run_pending()

        assert scheduler.status()['pending_request'] is None

    def test_engine_exception_becomes_retry(self, scheduler, fake_engine):
        fake_engine.run_sync.side_effect = RuntimeError('boom')
        scheduler.request_immediate()

        result = scheduler.run_pending()

        assert result.status == SyncResult.RETRY_LATER
        assert result.error == 'boom'


class TestConnectivity:
    """Tests for connectivity gating."""

    def test_offline_blocks_runs(self, fake_engine, clock):
        connectivity = ConnectivityMonitor(connected=False)
        scheduler = SyncScheduler(fake_engine, connectivity=connectivity, clock=clock)
        scheduler.request_immediate()

        assert scheduler.run_pending() is None
        fake_engine.run_sync.assert_not_called()

        connectivity.update(True)
        assert scheduler.run_pending() is not None

    def test_reconnect_requests_immediate_sync(self, fake_engine, clock):
        connectivity = ConnectivityMonitor(connected=False)
        scheduler = SyncScheduler(fake_engine, connectivity=connectivity, clock=clock)

        scheduler.on_connectivity_change(True)

        assert scheduler.status()['pending_request']['reason'] == 'connectivity'


class TestWorker:
    """Tests for the background thread."""

    def test_start_runs_requests_and_stop_joins(self, fake_engine):
        ran = threading.Event()

        def run_sync(force_full, attempt):
            ran.set()
            return outcome(SyncResult.SUCCESS)

        fake_engine.run_sync.side_effect = run_sync
        scheduler = SyncScheduler(fake_engine, interval_seconds=3600)

        scheduler.start()
        try:
            assert scheduler.running is True
            scheduler.request_immediate()
            assert ran.wait(timeout=5)
        finally:
            scheduler.stop(timeout=5)

        assert scheduler.running is False

    def test_connectivity_listener_wired_on_start(self, fake_engine):
        ran = threading.Event()
        fake_engine.run_sync.side_effect = lambda force_full, attempt: ran.set() or outcome(SyncResult.SUCCESS)
        connectivity = ConnectivityMonitor(connected=False)
        scheduler = SyncScheduler(fake_engine, connectivity=connectivity, interval_seconds=3600)

        scheduler.start()
        try:
            connectivity.update(True)
            assert ran.wait(timeout=5)
        finally:
            scheduler.stop(timeout=5)
