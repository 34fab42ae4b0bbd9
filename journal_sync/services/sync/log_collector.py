"""
Sync Log Collector - per-run record of what a sync pass did

Tracks issues (failed operations, missing records, abandoned operations,
fetch failures) plus summary counters. The finalized report is attached to
the run outcome and exposed by the sync status endpoint.
"""
import threading
from typing import Any, Dict, List, Optional

from ...models import utcnow
from ...utils.logger import get_logger

logger = get_logger('log_collector')


def _timestamp() -> str:
    return utcnow().isoformat() + 'Z'


class SyncLogCollector:
    """Collects the issues and counters of one sync run.

    Example:
        >>> collector = SyncLogCollector(force_full=False)
        >>> collector.add_issue(SyncLogCollector.TYPE_OPERATION_FAILED, record_id='abc')
        >>> collector.record_synced()
        >>> report = collector.finalize()
    """

    # Issue type constants
    TYPE_OPERATION_FAILED = 'operation_failed'   # Remote rejected or unreachable
    TYPE_RECORD_MISSING = 'record_missing'       # Add for a record that no longer exists
    TYPE_ABANDONED = 'abandoned'                 # Purged after exhausting retries
    TYPE_FETCH_FAILED = 'fetch_failed'           # Listing the remote records failed

    _SUMMARY_KEYS = {
        TYPE_OPERATION_FAILED: 'failed',
        TYPE_RECORD_MISSING: 'failed',
        TYPE_ABANDONED: 'abandoned',
        TYPE_FETCH_FAILED: 'fetch_failed',
    }

    # Maximum issues to store
    MAX_ISSUES = 500

    # Maximum message length
    MAX_MESSAGE_LENGTH = 500

    def __init__(self, force_full: bool = False, attempt: int = 0):
        self.force_full = force_full
        self.attempt = attempt
        self.start_time = _timestamp()
        self.end_time: Optional[str] = None
        self.issues: List[Dict] = []
        self.summary = {
            'synced': 0,        # Operations accepted by the server
            'failed': 0,        # Operations that failed this run
            'skipped': 0,       # Operations out of retries, not attempted
            'abandoned': 0,     # Operations purged at the end of the drain
            'fetch_failed': 0,
            'fetched': 0,       # Remote records listed
            'merged': 0,        # Remote records written locally
            'protected': 0,     # Remote records ignored for unsynced local copies
        }
        self._lock = threading.Lock()

    def add_issue(
        self,
        issue_type: str,
        record_id: Optional[str] = None,
        message: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> None:
        """Add an issue record.

        Args:
            issue_type: Type of issue (use TYPE_* constants)
            record_id: Related record id
            message: Error message (truncated to MAX_MESSAGE_LENGTH)
            extra: Additional context data
        """
        with self._lock:
            issue = {
                'type': issue_type,
                'time': _timestamp(),
            }
            if record_id:
                issue['record_id'] = record_id
            if message:
                issue['message'] = message[:self.MAX_MESSAGE_LENGTH]
            if extra:
                issue['extra'] = extra

            if len(self.issues) < self.MAX_ISSUES:
                self.issues.append(issue)

            key = self._SUMMARY_KEYS.get(issue_type)
            if key:
                self.summary[key] += 1

    def record_synced(self) -> None:
        with self._lock:
            self.summary['synced'] += 1

    def record_skipped(self) -> None:
        with self._lock:
            self.summary['skipped'] += 1

    def record_fetch(self, fetched: int, merged: int, protected: int) -> None:
        with self._lock:
            self.summary['fetched'] = fetched
            self.summary['merged'] = merged
            self.summary['protected'] = protected

    def finalize(self) -> Dict:
        """Close the run and return its report."""
        with self._lock:
            self.end_time = _timestamp()
            return {
                'force_full': self.force_full,
                'attempt': self.attempt,
                'start_time': self.start_time,
                'end_time': self.end_time,
                'summary': self.summary.copy(),
                'issues': list(self.issues),
            }

    def get_summary(self) -> Dict:
        with self._lock:
            return self.summary.copy()

    def get_issue_count(self) -> int:
        with self._lock:
            return len(self.issues)

    def has_problems(self) -> bool:
        with self._lock:
            return (
                self.summary['failed'] > 0 or
                self.summary['abandoned'] > 0 or
                self.summary['fetch_failed'] > 0
            )
