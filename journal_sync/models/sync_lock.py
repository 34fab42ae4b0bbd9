"""
Run lock model
"""
from sqlalchemy import Column, DateTime, String

from ..database import Base


class SyncLock(Base):
    """One row per named lock; ``owner`` is NULL while the lock is free."""
    __tablename__ = 'sync_locks'

    name = Column(String(64), primary_key=True)
    owner = Column(String(64))
    acquired_at = Column(DateTime)

    def __repr__(self):
        return f'<SyncLock {self.name} owner={self.owner}>'
