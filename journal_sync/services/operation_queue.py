"""
Operation Queue - durable, ordered list of local mutations to replay

State machine:

    pending -> in_progress -> completed (row deleted)
                           -> failed    (retry_count + 1)

A failed operation is picked up again by the next drain while
``retry_count < MAX_RETRY``; past that it is purged and reported as
abandoned. Coalescing is last-writer-wins: enqueuing an update or delete
replaces whatever is still waiting for the same record.
"""
import json
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from ..database import Database
from ..models import (
    MAX_RETRY,
    JournalEntry,
    OperationKind,
    SyncOperation,
    SyncStatus,
    retry_delay,
    utcnow,
)
from ..models.sync_operation import MAX_ERROR_LENGTH
from ..utils.logger import get_logger

logger = get_logger('operation_queue')

ACTIVE_STATUSES = (SyncStatus.PENDING.value, SyncStatus.FAILED.value)


class OperationQueue:
    """Persistent sync queue backed by the ``operation_queue`` table."""

    def __init__(self, database: Database):
        self.database = database

    def enqueue(
        self,
        record_id: str,
        kind: OperationKind,
        payload: Optional[Dict[str, Any]] = None,
        session: Optional[Session] = None
    ) -> SyncOperation:
        """Queue a mutation for ``record_id``.

        Updates and deletes first drop every waiting operation for the same
        record. An operation that is in flight is left alone; its outcome is
        settled by the running drain.

        An update that replaces an add the server never received stays an
        add, otherwise the record would never be created remotely.
        """
        kind = OperationKind(kind)
        with self.database.scope(session) as s:
            if kind in (OperationKind.UPDATE, OperationKind.DELETE):
                replaced = s.scalars(
                    select(SyncOperation).where(
                        SyncOperation.record_id == record_id,
                        SyncOperation.status != SyncStatus.IN_PROGRESS.value,
                    )
                ).all()
                if kind == OperationKind.UPDATE and any(
                    op.kind == OperationKind.ADD.value for op in replaced
                ):
                    kind = OperationKind.ADD
                for op in replaced:
                    s.delete(op)
                if replaced:
                    logger.debug(
                        f"Coalesced {len(replaced)} queued operation(s) for {record_id} into {kind.value}"
                    )

            operation = SyncOperation(
                record_id=record_id,
                kind=kind.value,
                status=SyncStatus.PENDING.value,
                payload=json.dumps(payload, ensure_ascii=False) if payload is not None else '',
                created_at=utcnow(),
                retry_count=0,
            )
            s.add(operation)
            s.flush()
            return operation

    # ==================== Drain support ====================

    def pending_operations(self, session: Optional[Session] = None) -> List[SyncOperation]:
        """Pending and failed operations, oldest first."""
        with self.database.scope(session) as s:
            return list(s.scalars(
                select(SyncOperation)
                .where(SyncOperation.status.in_(ACTIVE_STATUSES))
                .order_by(SyncOperation.created_at.asc(), SyncOperation.queue_id.asc())
            ).all())

    def get(self, queue_id: int, session: Optional[Session] = None) -> Optional[SyncOperation]:
        with self.database.scope(session) as s:
            return s.get(SyncOperation, queue_id)

    def mark_in_progress(self, queue_id: int, session: Optional[Session] = None) -> bool:
        """Returns False when the operation vanished (coalesced away)."""
        with self.database.scope(session) as s:
            result = s.execute(
                update(SyncOperation)
                .where(SyncOperation.queue_id == queue_id)
                .values(status=SyncStatus.IN_PROGRESS.value, last_attempt_at=utcnow())
            )
            return result.rowcount > 0

    def complete(self, queue_id: int, session: Optional[Session] = None) -> bool:
        """Drop a finished operation and mark its record synced.

        The record stays unsynced when a newer operation for it was queued
        while this one was in flight.
        """
        with self.database.scope(session) as s:
            operation = s.get(SyncOperation, queue_id)
            if operation is None:
                return False
            record_id = operation.record_id
            s.delete(operation)
            s.flush()

            remaining = s.scalar(
                select(func.count()).select_from(SyncOperation).where(
                    SyncOperation.record_id == record_id
                )
            )
            if not remaining:
                s.execute(
                    update(JournalEntry)
                    .where(JournalEntry.id == record_id)
                    .values(synced=True)
                )
            return True

    def mark_failed(self, queue_id: int, error: str, session: Optional[Session] = None) -> bool:
        """Record a failed attempt.

        If a newer operation for the same record was queued while this one
        was in flight, the failed one is folded into it instead, so a record
        never has two active operations. A failed add turns a newer update
        into an add; a newer delete stays a delete.
        """
        with self.database.scope(session) as s:
            operation = s.get(SyncOperation, queue_id)
            if operation is None:
                return False

            newer = s.scalars(
                select(SyncOperation).where(
                    SyncOperation.record_id == operation.record_id,
                    SyncOperation.queue_id != queue_id,
                    SyncOperation.status.in_(ACTIVE_STATUSES),
                )
            ).first()
            if newer is not None:
                if (operation.kind == OperationKind.ADD.value
                        and newer.kind == OperationKind.UPDATE.value):
                    newer.kind = OperationKind.ADD.value
                logger.debug(
                    f"Folded failed {operation.kind} {queue_id} into queued {newer.kind} {newer.queue_id}"
                )
                s.delete(operation)
                return True

            operation.status = SyncStatus.FAILED.value
            operation.retry_count += 1
            operation.last_error = (error or 'Unknown error')[:MAX_ERROR_LENGTH]
            operation.last_attempt_at = utcnow()
            return True

    def abandon(self, queue_id: int, error: str, session: Optional[Session] = None) -> bool:
        """Non-retryable failure: exhaust the retries so the next purge drops it."""
        with self.database.scope(session) as s:
            operation = s.get(SyncOperation, queue_id)
            if operation is None:
                return False
            operation.status = SyncStatus.FAILED.value
            operation.retry_count = max(operation.retry_count + 1, MAX_RETRY)
            operation.last_error = (error or 'Unknown error')[:MAX_ERROR_LENGTH]
            operation.last_attempt_at = utcnow()
            return True

    def delete_completed(self, session: Optional[Session] = None) -> int:
        with self.database.scope(session) as s:
            result = s.execute(
                delete(SyncOperation).where(SyncOperation.status == SyncStatus.COMPLETED.value)
            )
            return result.rowcount

    def purge_exhausted(self, session: Optional[Session] = None) -> List[Dict[str, Any]]:
        """Delete every operation out of retries, whatever its status.

        Returns summaries of the purged operations so the caller can report
        them; their records stay unsynced locally.
        """
        with self.database.scope(session) as s:
            exhausted = s.scalars(
                select(SyncOperation).where(SyncOperation.retry_count >= MAX_RETRY)
            ).all()
            summaries = [op.summary() for op in exhausted]
            for op in exhausted:
                s.delete(op)
            return summaries

    def reset_stale_in_progress(self, session: Optional[Session] = None) -> int:
        """Startup sweep: anything left in flight by a dead process goes back to pending."""
        with self.database.scope(session) as s:
            result = s.execute(
                update(SyncOperation)
                .where(SyncOperation.status == SyncStatus.IN_PROGRESS.value)
                .values(status=SyncStatus.PENDING.value)
            )
            return result.rowcount

    # ==================== Introspection ====================

    def operations_for(self, record_id: str, session: Optional[Session] = None) -> List[SyncOperation]:
        with self.database.scope(session) as s:
            return list(s.scalars(
                select(SyncOperation)
                .where(SyncOperation.record_id == record_id)
                .order_by(SyncOperation.created_at.desc())
            ).all())

    def suggested_retry_delay(self, session: Optional[Session] = None) -> Optional[float]:
        """Shortest suggested delay among failed operations still retryable."""
        with self.database.scope(session) as s:
            retry_counts = s.scalars(
                select(SyncOperation.retry_count).where(
                    SyncOperation.status == SyncStatus.FAILED.value,
                    SyncOperation.retry_count < MAX_RETRY,
                )
            ).all()
        if not retry_counts:
            return None
        return retry_delay(min(retry_counts))

    def stats(self, session: Optional[Session] = None) -> Dict[str, int]:
        """Operation counts per status."""
        with self.database.scope(session) as s:
            rows = s.execute(
                select(SyncOperation.status, func.count()).group_by(SyncOperation.status)
            ).all()
        counts = {status.value: 0 for status in SyncStatus}
        for status, count in rows:
            counts[status] = count
        counts['total'] = sum(counts.values())
        return counts
