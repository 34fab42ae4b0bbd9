"""
Run Lock - one sync run at a time across every process on the database

The server's scheduler and the ``flask sync`` CLI command are separate
processes sharing one database file, so an in-process lock is not enough.
The lock is a row in ``sync_locks`` claimed with a conditional UPDATE.
A holder that died without releasing is taken over after ``stale_after``
seconds.
"""
import uuid
from datetime import timedelta

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..database import Database
from ..models import SyncLock, utcnow
from ..utils.logger import get_logger

logger = get_logger('run_lock')

DEFAULT_STALE_AFTER = 10 * 60  # seconds


class RunLock:
    """Non-blocking, database-backed mutex.

    Example:
        >>> lock = RunLock(database)
        >>> if lock.acquire():
        ...     try:
        ...         engine.run_sync()
        ...     finally:
        ...         lock.release()
    """

    def __init__(self, database: Database, name: str = 'sync', stale_after: float = DEFAULT_STALE_AFTER):
        self.database = database
        self.name = name
        self.stale_after = stale_after
        self.owner = uuid.uuid4().hex

    def acquire(self) -> bool:
        """Claim the lock; False when another owner holds it."""
        self._ensure_row()
        now = utcnow()
        with self.database.session_scope() as s:
            result = s.execute(
                update(SyncLock)
                .where(
                    SyncLock.name == self.name,
                    or_(
                        SyncLock.owner.is_(None),
                        SyncLock.owner == self.owner,
                        SyncLock.acquired_at < now - timedelta(seconds=self.stale_after),
                    ),
                )
                .values(owner=self.owner, acquired_at=now)
            )
            acquired = result.rowcount > 0

        if not acquired:
            logger.debug(f"Lock {self.name} is held by another process")
        return acquired

    def release(self) -> None:
        with self.database.session_scope() as s:
            s.execute(
                update(SyncLock)
                .where(SyncLock.name == self.name, SyncLock.owner == self.owner)
                .values(owner=None, acquired_at=None)
            )

    def holder(self):
        """Current owner id, or None when free."""
        with self.database.session_scope() as s:
            lock = s.get(SyncLock, self.name)
            return lock.owner if lock is not None else None

    def _ensure_row(self) -> None:
        try:
            with self.database.session_scope() as s:
                if s.get(SyncLock, self.name) is None:
                    s.add(SyncLock(name=self.name))
        except IntegrityError:
            logger.debug(f"Lock row {self.name} created concurrently")
