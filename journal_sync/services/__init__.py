"""
Services
"""
from .connectivity import ConnectivityMonitor
from .journal_service import JournalService
from .notifier import SyncEventBroadcaster
from .operation_queue import OperationQueue
from .record_store import RecordStore
from .run_lock import RunLock
from .scheduler import SyncRequest, SyncScheduler
from .session_store import SessionStore
from .sync_engine import SyncEngine, SyncOutcome, SyncResult

__all__ = [
    'ConnectivityMonitor',
    'JournalService',
    'SyncEventBroadcaster',
    'OperationQueue',
    'RecordStore',
    'RunLock',
    'SyncRequest',
    'SyncScheduler',
    'SessionStore',
    'SyncEngine',
    'SyncOutcome',
    'SyncResult',
]
