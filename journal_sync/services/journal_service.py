"""
Journal Service - local create/edit/delete

Each mutation writes the entry and queues its sync operation in the same
transaction, so an entry never exists without the operation that will
ship it (and vice versa).
"""
from typing import Any, Dict, Optional

from ..database import Database
from ..models import JournalEntry, OperationKind
from ..utils.logger import get_logger
from .operation_queue import OperationQueue
from .record_store import RecordStore

logger = get_logger('journal')


class JournalService:
    """Offline-first mutations on journal entries."""

    def __init__(self, database: Database, records: RecordStore, queue: OperationQueue):
        self.database = database
        self.records = records
        self.queue = queue

    def create_entry(self, fields: Dict[str, Any]) -> JournalEntry:
        """Create an entry locally and queue its upload.

        Args:
            fields: Validated fields (see ``validate_entry_payload``)
        """
        entry = JournalEntry.create_new(**fields)
        with self.database.session_scope() as session:
            entry = self.records.insert(entry, session=session)
            self.queue.enqueue(entry.id, OperationKind.ADD, entry.to_payload(), session=session)

        logger.info(f"Entry {entry.id} created locally")
        return entry

    def update_entry(self, entry_id: str, fields: Dict[str, Any]) -> Optional[JournalEntry]:
        """Apply a partial edit. Returns None when the entry does not exist."""
        with self.database.session_scope() as session:
            entry = self.records.get(entry_id, session=session)
            if entry is None:
                return None
            entry.apply_changes(fields)
            session.flush()
            self.queue.enqueue(entry.id, OperationKind.UPDATE, entry.to_payload(), session=session)

        logger.info(f"Entry {entry_id} updated locally")
        return entry

    def delete_entry(self, entry_id: str) -> bool:
        """Soft delete; the row goes away once the delete is synced."""
        with self.database.session_scope() as session:
            entry = self.records.get(entry_id, session=session)
            if entry is None:
                return False
            self.records.soft_delete(entry_id, session=session)
            self.queue.enqueue(entry_id, OperationKind.DELETE, session=session)

        logger.info(f"Entry {entry_id} deleted locally")
        return True

    def get_entry(self, entry_id: str) -> Optional[JournalEntry]:
        return self.records.get(entry_id)

    def list_entries(self, page: int = 1, page_size: int = 20):
        return self.records.list_entries(page=page, page_size=page_size)
