"""
Sync Engine - replay local mutations, then reconcile with the server

One run is three steps, always in this order:

1. drain the operation queue against the remote API,
2. page through the full remote listing,
3. merge the snapshot into the record store without touching entries
   that still carry unsynced local changes.

Nothing escapes ``run_sync`` except a ``SyncOutcome``; the caller (the
scheduler) decides what to do next from its status.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..database import Database
from ..models import JournalEntry, OperationKind, SyncOperation, utcnow
from ..utils.logger import get_logger
from .operation_queue import OperationQueue
from .record_store import RecordStore
from .sync import RemoteApiError, RemoteError, SyncLogCollector

logger = get_logger('sync')

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_PAGES = 1000
DEFAULT_MAX_RUN_ATTEMPTS = 3


class SyncResult(str, Enum):
    SUCCESS = 'success'
    RETRY_LATER = 'retry_later'
    PERMANENT_FAILURE = 'permanent_failure'
    SKIPPED = 'skipped'


@dataclass
class SyncOutcome:
    """What a single ``run_sync`` call did."""
    status: SyncResult
    synced_count: int = 0
    failed_count: int = 0
    fetched_count: int = 0
    merged_count: int = 0
    protected_count: int = 0
    abandoned: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    force_full: bool = False
    attempt: int = 0
    report: Optional[Dict[str, Any]] = None

    @property
    def should_retry(self) -> bool:
        return self.status == SyncResult.RETRY_LATER

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'synced_count': self.synced_count,
            'failed_count': self.failed_count,
            'fetched_count': self.fetched_count,
            'merged_count': self.merged_count,
            'protected_count': self.protected_count,
            'abandoned': list(self.abandoned),
            'error': self.error,
            'force_full': self.force_full,
            'attempt': self.attempt,
            'report': self.report,
        }


class OperationError(Exception):
    """A queued operation that can never succeed (not retried)."""


class SyncEngine:
    """Runs sync passes against the remote record API.

    The engine holds no state between runs; everything it needs to resume
    lives in the operation queue and the session store.

    Example:
        >>> engine = SyncEngine(database, records, queue, client, session_store, notifier)
        >>> outcome = engine.run_sync()
        >>> outcome.status
        <SyncResult.SUCCESS: 'success'>
    """

    def __init__(
        self,
        database: Database,
        records: RecordStore,
        queue: OperationQueue,
        client,
        session_store,
        notifier=None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_run_attempts: int = DEFAULT_MAX_RUN_ATTEMPTS
    ):
        self.database = database
        self.records = records
        self.queue = queue
        self.client = client
        self.session_store = session_store
        self.notifier = notifier
        self.page_size = page_size
        self.max_pages = max_pages
        self.max_run_attempts = max_run_attempts

    def run_sync(self, force_full: bool = False, attempt: int = 0) -> SyncOutcome:
        """Run one full pass.

        Args:
            force_full: Caller asked for a full refresh. Every pass already
                fetches the whole remote listing, so this is only reported.
            attempt: How many times the scheduler already retried this run.

        Returns:
            SyncOutcome, never raises.
        """
        if not self.session_store.is_authenticated():
            logger.info("Sync skipped: not authenticated")
            return SyncOutcome(
                status=SyncResult.SKIPPED,
                error='not authenticated',
                force_full=force_full,
                attempt=attempt,
            )

        logger.info(f"Sync started (attempt={attempt}, force_full={force_full})")
        collector = SyncLogCollector(force_full=force_full, attempt=attempt)
        outcome = SyncOutcome(status=SyncResult.SUCCESS, force_full=force_full, attempt=attempt)

        try:
            self._drain_queue(outcome, collector)

            remote_entries = self._fetch_remote(collector)
            outcome.fetched_count = len(remote_entries)

            with self.database.session_scope() as session:
                merged, protected = self.records.merge_remote_snapshot(remote_entries, session=session)
                purged = self.records.purge_deleted_synced(session=session)
            outcome.merged_count = merged
            outcome.protected_count = protected
            collector.record_fetch(len(remote_entries), merged, protected)
            if purged:
                logger.debug(f"Purged {purged} deleted entries already synced")

            self.session_store.record_last_sync_time(utcnow())
            if outcome.synced_count > 0:
                self._notify('notify_sync_success', outcome.synced_count)

            if outcome.failed_count > 0:
                outcome.status = SyncResult.RETRY_LATER

            logger.info(
                f"Sync finished: {outcome.status.value}, synced={outcome.synced_count}, "
                f"failed={outcome.failed_count}, fetched={outcome.fetched_count}, "
                f"merged={merged}, protected={protected}"
            )
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.opt(exception=True).error(f"[FatalError] Sync run failed: {message}")
            collector.add_issue(SyncLogCollector.TYPE_FETCH_FAILED, message=message)
            self._notify('notify_sync_failure', message)
            outcome.error = message
            if attempt < self.max_run_attempts:
                outcome.status = SyncResult.RETRY_LATER
            else:
                outcome.status = SyncResult.PERMANENT_FAILURE
                logger.error(f"Sync gave up after {attempt} retries: {message}")

        outcome.report = collector.finalize()
        return outcome

    # ==================== Step 1: drain ====================

    def _drain_queue(self, outcome: SyncOutcome, collector: SyncLogCollector) -> None:
        operations = self.queue.pending_operations()
        if operations:
            logger.info(f"Draining {len(operations)} queued operation(s)")

        for operation in operations:
            if operation.exhausted:
                collector.record_skipped()
                continue

            if not self.queue.mark_in_progress(operation.queue_id):
                logger.debug(f"Operation {operation.queue_id} was replaced before it ran")
                continue

            try:
                self._dispatch(operation)
            except RemoteError as e:
                outcome.failed_count += 1
                self.queue.mark_failed(operation.queue_id, str(e))
                collector.add_issue(
                    SyncLogCollector.TYPE_OPERATION_FAILED,
                    record_id=operation.record_id,
                    message=str(e),
                    extra={'kind': operation.kind, 'retry_count': operation.retry_count + 1},
                )
                logger.warning(
                    f"{operation.kind} {operation.record_id} failed "
                    f"(attempt {operation.retry_count + 1}): {e}"
                )
                if isinstance(e, RemoteApiError) and e.unauthorized:
                    logger.warning("Session rejected by the server, stopping drain")
                    break
            except Exception as e:
                outcome.failed_count += 1
                message = str(e) or e.__class__.__name__
                self.queue.abandon(operation.queue_id, message)
                collector.add_issue(
                    SyncLogCollector.TYPE_RECORD_MISSING
                    if isinstance(e, OperationError) else SyncLogCollector.TYPE_OPERATION_FAILED,
                    record_id=operation.record_id,
                    message=message,
                    extra={'kind': operation.kind},
                )
                logger.error(f"{operation.kind} {operation.record_id} cannot be synced: {message}")
            else:
                outcome.synced_count += 1
                collector.record_synced()

        self.queue.delete_completed()
        for summary in self.queue.purge_exhausted():
            outcome.abandoned.append(summary)
            collector.add_issue(
                SyncLogCollector.TYPE_ABANDONED,
                record_id=summary['record_id'],
                message=summary.get('last_error'),
                extra={'kind': summary['kind'], 'retry_count': summary['retry_count']},
            )
            logger.warning(
                f"Abandoned {summary['kind']} for {summary['record_id']} after "
                f"{summary['retry_count']} attempt(s): {summary.get('last_error')}"
            )
            self._notify('notify_operation_abandoned', summary)

    def _dispatch(self, operation: SyncOperation) -> None:
        kind = operation.operation_kind
        if kind == OperationKind.ADD:
            self._push_add(operation)
        elif kind == OperationKind.UPDATE:
            self._push_update(operation)
        elif kind == OperationKind.DELETE:
            self._apply_delete(operation)
        else:
            raise OperationError(f'unknown operation kind {operation.kind}')

    def _push_add(self, operation: SyncOperation) -> None:
        entry = self.records.get(operation.record_id)
        if entry is None:
            raise OperationError(f'entry {operation.record_id} no longer exists')

        payload = self._payload_for(operation, entry)
        response = self.client.create_record(payload)
        remote = self._entry_from_response(response, operation.record_id)

        with self.database.session_scope() as session:
            self.records.apply_created(operation.record_id, remote, session=session)
            self.queue.complete(operation.queue_id, session=session)

    def _push_update(self, operation: SyncOperation) -> None:
        payload = self._payload_for(operation)
        self.client.update_record(operation.record_id, payload)
        self.queue.complete(operation.queue_id)

    def _apply_delete(self, operation: SyncOperation) -> None:
        # The remote API has no delete endpoint; removal is local only
        with self.database.session_scope() as session:
            self.queue.complete(operation.queue_id, session=session)
            self.records.hard_delete(operation.record_id, session=session)

    def _payload_for(self, operation: SyncOperation, entry: Optional[JournalEntry] = None) -> Dict[str, Any]:
        try:
            payload = operation.payload_data()
        except (TypeError, ValueError) as e:
            raise OperationError(f'payload of operation {operation.queue_id} is not valid JSON') from e
        if payload is not None:
            return payload

        if entry is None:
            entry = self.records.get(operation.record_id)
        if entry is None:
            raise OperationError(f'entry {operation.record_id} no longer exists')
        return entry.to_payload()

    @staticmethod
    def _entry_from_response(response: Dict[str, Any], record_id: str) -> JournalEntry:
        data = dict(response or {})
        data.setdefault('id', record_id)
        return JournalEntry.from_remote(data)

    # ==================== Step 2: fetch ====================

    def _fetch_remote(self, collector: SyncLogCollector) -> List[JournalEntry]:
        """Every remote record, all pages concatenated."""
        entries: List[JournalEntry] = []
        page = 1
        has_more = True

        while has_more:
            if page > self.max_pages:
                raise RemoteError(f'remote listing did not end after {self.max_pages} pages')

            items, has_more = self.client.list_records(page=page, limit=self.page_size)
            for item in items:
                try:
                    entries.append(JournalEntry.from_remote(item))
                except (TypeError, ValueError) as e:
                    logger.warning(f"Ignoring malformed remote record on page {page}: {e}")
                    collector.add_issue(
                        SyncLogCollector.TYPE_FETCH_FAILED,
                        message=f'malformed record: {e}',
                        extra={'page': page, 'item': json.dumps(item, default=str)[:200]},
                    )
            logger.debug(f"Fetched page {page}: {len(items)} record(s), has_more={has_more}")
            page += 1

        return entries

    def _notify(self, hook: str, *args) -> None:
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, hook)(*args)
        except Exception as e:
            logger.warning(f"Notifier {hook} failed: {e}")
