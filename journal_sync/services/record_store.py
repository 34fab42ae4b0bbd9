"""
Record Store - local table of journal entries and their sync metadata

Every method takes an optional session. Passing one joins the caller's
transaction (e.g. "insert entry + enqueue operation"); without it the
method runs in its own transaction.
"""
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from ..database import Database
from ..models import JournalEntry, SyncOperation, utcnow
from ..utils.logger import get_logger

logger = get_logger('record_store')


class RecordStore:
    """Durable local storage for journal entries."""

    def __init__(self, database: Database):
        self.database = database

    # ==================== Writes ====================

    def insert(self, entry: JournalEntry, session: Optional[Session] = None) -> JournalEntry:
        """Upsert by id."""
        with self.database.scope(session) as s:
            merged = s.merge(entry)
            s.flush()
            return merged

    def insert_many(self, entries: Iterable[JournalEntry], session: Optional[Session] = None) -> int:
        """Upsert every entry by id, returns the number written."""
        count = 0
        with self.database.scope(session) as s:
            for entry in entries:
                s.merge(entry)
                count += 1
        return count

    def update(self, entry: JournalEntry, session: Optional[Session] = None) -> int:
        """Full replace by id. Returns rows affected, 0 when the id is unknown."""
        with self.database.scope(session) as s:
            existing = s.get(JournalEntry, entry.id)
            if existing is None:
                return 0
            existing.copy_from(entry)
            return 1

    def soft_delete(self, entry_id: str, session: Optional[Session] = None) -> int:
        with self.database.scope(session) as s:
            result = s.execute(
                update(JournalEntry)
                .where(JournalEntry.id == entry_id)
                .values(deleted=True, synced=False, last_modified=utcnow())
            )
            return result.rowcount

    def hard_delete(self, entry_id: str, session: Optional[Session] = None) -> int:
        """Physical removal; queued operations for the entry go with it."""
        with self.database.scope(session) as s:
            result = s.execute(delete(JournalEntry).where(JournalEntry.id == entry_id))
            return result.rowcount

    def mark_synced(self, entry_id: str, session: Optional[Session] = None) -> int:
        with self.database.scope(session) as s:
            result = s.execute(
                update(JournalEntry)
                .where(JournalEntry.id == entry_id)
                .values(synced=True)
            )
            return result.rowcount

    def apply_created(
        self,
        local_id: str,
        remote: JournalEntry,
        session: Optional[Session] = None
    ) -> Optional[JournalEntry]:
        """Fold the server's view of a freshly created entry into the local row.

        Server-assigned fields (owner) are copied over while the local payload
        is kept. If the server assigned its own id, the local row is re-keyed:
        a copy is written under the server id, queued operations are pointed
        at it and the client-generated row is removed.
        """
        with self.database.scope(session) as s:
            entry = s.get(JournalEntry, local_id)
            if entry is None:
                return None

            if remote.owner_id is not None:
                entry.owner_id = remote.owner_id

            if not remote.id or remote.id == local_id:
                return entry

            logger.info(f"Server re-keyed entry {local_id} -> {remote.id}")
            replacement = JournalEntry(id=remote.id)
            replacement.copy_from(entry)
            replacement = s.merge(replacement)
            s.flush()
            s.execute(
                update(SyncOperation)
                .where(SyncOperation.record_id == local_id)
                .values(record_id=remote.id)
            )
            s.delete(entry)
            s.flush()
            return replacement

    def merge_remote_snapshot(
        self,
        remote_entries: Iterable[JournalEntry],
        session: Optional[Session] = None
    ) -> Tuple[int, int]:
        """Reconcile a full remote snapshot with local state.

        Every remote entry is inserted or replaced, except entries whose local
        copy is still unsynced: those keep the local version until their own
        queued operation succeeds or is abandoned. The synced check and the
        replace are one conditional UPDATE per row, so a local edit committed
        while the snapshot is being merged is never overwritten.

        Returns:
            (merged_count, protected_count)
        """
        merged = 0
        protected = 0
        with self.database.scope(session) as s:
            for remote in remote_entries:
                result = s.execute(
                    update(JournalEntry)
                    .where(JournalEntry.id == remote.id, JournalEntry.synced.is_(True))
                    .values(**{field: getattr(remote, field) for field in JournalEntry.COLUMN_FIELDS})
                )
                if result.rowcount:
                    merged += 1
                elif s.get(JournalEntry, remote.id) is not None:
                    protected += 1
                else:
                    s.add(remote)
                    s.flush()
                    merged += 1

        if protected:
            logger.debug(f"Merge kept {protected} unsynced local entries")
        return merged, protected

    def purge_deleted_synced(self, session: Optional[Session] = None) -> int:
        """Remove soft-deleted entries the server already agrees on."""
        with self.database.scope(session) as s:
            result = s.execute(
                delete(JournalEntry).where(
                    JournalEntry.deleted.is_(True),
                    JournalEntry.synced.is_(True),
                )
            )
            return result.rowcount

    # ==================== Reads ====================

    def get(
        self,
        entry_id: str,
        include_deleted: bool = False,
        session: Optional[Session] = None
    ) -> Optional[JournalEntry]:
        with self.database.scope(session) as s:
            entry = s.get(JournalEntry, entry_id)
            if entry is None or (entry.deleted and not include_deleted):
                return None
            return entry

    def list_entries(
        self,
        page: int = 1,
        page_size: int = 20,
        session: Optional[Session] = None
    ) -> Tuple[List[JournalEntry], int]:
        """Visible entries, newest date first. Returns (entries, total)."""
        with self.database.scope(session) as s:
            visible = JournalEntry.deleted.is_(False)
            total = s.scalar(select(func.count()).select_from(JournalEntry).where(visible))
            entries = s.scalars(
                select(JournalEntry)
                .where(visible)
                .order_by(JournalEntry.date.desc(), JournalEntry.id)
                .limit(page_size)
                .offset((page - 1) * page_size)
            ).all()
            return list(entries), total or 0

    def list_unsynced(self, session: Optional[Session] = None) -> List[JournalEntry]:
        """Non-deleted entries the server does not have yet."""
        with self.database.scope(session) as s:
            return list(s.scalars(
                select(JournalEntry).where(
                    JournalEntry.synced.is_(False),
                    JournalEntry.deleted.is_(False),
                )
            ).all())

    def count_unsynced(self, session: Optional[Session] = None) -> int:
        with self.database.scope(session) as s:
            return s.scalar(
                select(func.count()).select_from(JournalEntry).where(
                    JournalEntry.synced.is_(False),
                    JournalEntry.deleted.is_(False),
                )
            ) or 0
