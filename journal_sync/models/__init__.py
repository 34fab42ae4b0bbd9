"""
Database models
"""
from .entry import JournalEntry, utcnow
from .sync_lock import SyncLock
from .sync_operation import (
    MAX_RETRY,
    OperationKind,
    SyncOperation,
    SyncStatus,
    retry_delay,
)

__all__ = [
    'JournalEntry',
    'SyncLock',
    'utcnow',
    'MAX_RETRY',
    'OperationKind',
    'SyncOperation',
    'SyncStatus',
    'retry_delay',
]
