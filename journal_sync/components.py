"""
Application components

Every shared object (database, stores, remote client, engine, scheduler)
is built here once and handed to whoever needs it. The Flask app keeps the
bundle in ``app.extensions['journal_sync']``.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from flask import current_app

from .database import Database
from .services.connectivity import ConnectivityMonitor
from .services.journal_service import JournalService
from .services.notifier import SyncEventBroadcaster
from .services.operation_queue import OperationQueue
from .services.record_store import RecordStore
from .services.run_lock import DEFAULT_STALE_AFTER, RunLock
from .services.scheduler import SyncScheduler
from .services.session_store import SessionStore
from .services.sync import BackoffPolicy, JournalApiClient
from .services.sync_engine import SyncEngine
from .utils.crypto import TokenCrypto
from .utils.logger import get_logger

logger = get_logger('components')

EXTENSION_KEY = 'journal_sync'


@dataclass
class SyncComponents:
    database: Database
    records: RecordStore
    queue: OperationQueue
    journal: JournalService
    session_store: SessionStore
    client: Any
    notifier: SyncEventBroadcaster
    connectivity: ConnectivityMonitor
    engine: SyncEngine
    scheduler: SyncScheduler
    run_lock: RunLock

    def prepare(self) -> None:
        """Create the tables. Safe in every process, CLI included."""
        self.database.create_all()

    def start_services(self, start_scheduler: bool = True) -> int:
        """Long-running process startup: sweep interrupted operations, start the scheduler.

        The sweep only runs while holding the run lock, so operations in
        flight in another process (a CLI sync) are left alone.

        Returns:
            Number of operations returned to pending
        """
        reset = 0
        if self.run_lock.acquire():
            try:
                reset = self.queue.reset_stale_in_progress()
            finally:
                self.run_lock.release()
            if reset:
                logger.info(f"Reset {reset} interrupted operation(s) to pending")
        else:
            logger.info("Another process is syncing, startup sweep skipped")

        if start_scheduler:
            self.scheduler.start()
        return reset

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.notifier.close()
        close = getattr(self.client, 'close', None)
        if close is not None:
            close()
        self.database.dispose()


def _setting(config: Mapping[str, Any], key: str, default: Any = None) -> Any:
    value = config.get(key)
    return default if value is None else value


def build_components(
    config: Mapping[str, Any],
    client=None,
    session_store: Optional[SessionStore] = None,
    connectivity: Optional[ConnectivityMonitor] = None
) -> SyncComponents:
    """Wire everything from a config mapping (``app.config`` or a dict).

    ``client``, ``session_store`` and ``connectivity`` can be passed in to
    replace the real implementations (tests, alternative transports).
    """
    database = Database(
        config['SQLALCHEMY_DATABASE_URI'],
        echo=bool(_setting(config, 'SQLALCHEMY_ECHO', False)),
    )
    records = RecordStore(database)
    queue = OperationQueue(database)
    journal = JournalService(database, records, queue)

    if session_store is None:
        session_store = SessionStore(
            _setting(config, 'SESSION_FILE'),
            TokenCrypto(_setting(config, 'SESSION_ENCRYPTION_KEY')),
        )

    api_base_url = _setting(config, 'API_BASE_URL', 'http://localhost:3001')
    if client is None:
        client = JournalApiClient(
            api_base_url,
            session_store,
            timeout=float(_setting(config, 'API_TIMEOUT', 30)),
        )

    if connectivity is None:
        connectivity = ConnectivityMonitor(probe_url=api_base_url)

    run_lock = RunLock(
        database,
        stale_after=float(_setting(config, 'SYNC_LOCK_STALE_SECONDS', DEFAULT_STALE_AFTER)),
    )
    notifier = SyncEventBroadcaster()
    engine = SyncEngine(
        database,
        records,
        queue,
        client,
        session_store,
        notifier,
        page_size=int(_setting(config, 'SYNC_PAGE_SIZE', 50)),
        max_pages=int(_setting(config, 'SYNC_MAX_PAGES', 1000)),
        max_run_attempts=int(_setting(config, 'SYNC_MAX_RUN_ATTEMPTS', 3)),
    )
    scheduler = SyncScheduler(
        engine,
        queue=queue,
        connectivity=connectivity,
        backoff=BackoffPolicy(
            initial_delay=float(_setting(config, 'SYNC_BACKOFF_INITIAL', 60)),
            max_delay=float(_setting(config, 'SYNC_BACKOFF_MAX', 5 * 60 * 60)),
        ),
        interval_seconds=float(_setting(config, 'SYNC_INTERVAL_MINUTES', 15)) * 60,
        probe_interval=float(_setting(config, 'CONNECTIVITY_PROBE_INTERVAL', 30)),
        process_lock=run_lock,
    )

    return SyncComponents(
        database=database,
        records=records,
        queue=queue,
        journal=journal,
        session_store=session_store,
        client=client,
        notifier=notifier,
        connectivity=connectivity,
        engine=engine,
        scheduler=scheduler,
        run_lock=run_lock,
    )


def get_components(app=None) -> SyncComponents:
    """The component bundle of ``app`` (defaults to the current Flask app)."""
    return (app or current_app).extensions[EXTENSION_KEY]
