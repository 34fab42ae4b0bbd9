"""
Sync event broadcaster - pushes sync events to SSE subscribers

Every subscriber gets its own bounded queue; a slow client loses its oldest
events instead of blocking the sync thread.
"""
import json
import queue
import threading
from typing import Any, Dict, Generator, List, Tuple

from ..models import utcnow
from ..utils.logger import get_logger

logger = get_logger('notifier')

# Event types
EVENT_SYNC_SUCCESS = 'sync_success'
EVENT_SYNC_FAILURE = 'sync_failure'
EVENT_OPERATION_ABANDONED = 'operation_abandoned'

# Log levels
LEVEL_INFO = 'info'
LEVEL_WARN = 'warn'
LEVEL_ERROR = 'error'


class SyncEventBroadcaster:
    """Notifier used by the sync engine.

    One instance per application, owned by the app components.
    """

    QUEUE_SIZE = 100
    HEARTBEAT_INTERVAL = 30  # seconds
    RECENT_EVENTS = 50

    def __init__(self):
        self._subscribers: Dict[str, queue.Queue] = {}
        self._sub_lock = threading.Lock()
        self._client_counter = 0
        self._recent: List[Dict[str, Any]] = []

    # ==================== Notifier hooks ====================

    def notify_sync_success(self, count: int) -> None:
        self.broadcast(
            EVENT_SYNC_SUCCESS, LEVEL_INFO,
            f"Synced {count} change(s)",
            synced_count=count,
        )

    def notify_sync_failure(self, message: str) -> None:
        self.broadcast(
            EVENT_SYNC_FAILURE, LEVEL_ERROR,
            f"Sync failed, will retry: {message}",
        )

    def notify_operation_abandoned(self, summary: Dict[str, Any]) -> None:
        self.broadcast(
            EVENT_OPERATION_ABANDONED, LEVEL_WARN,
            f"Gave up syncing {summary.get('kind')} for entry {summary.get('record_id')}",
            operation=summary,
        )

    # ==================== Fan-out ====================

    def broadcast(self, event_type: str, level: str, message: str, **extra) -> Dict[str, Any]:
        """Send an event to every subscriber."""
        event = {
            'type': event_type,
            'timestamp': utcnow().isoformat() + 'Z',
            'level': level,
            'message': message,
        }
        if extra:
            event.update(extra)

        with self._sub_lock:
            self._recent.append(event)
            del self._recent[:-self.RECENT_EVENTS]

            dead_clients = []
            for client_id, q in self._subscribers.items():
                try:
                    q.put_nowait(event)
                except queue.Full:
                    # Drop the oldest event to make room
                    try:
                        q.get_nowait()
                        q.put_nowait(event)
                    except (queue.Empty, queue.Full):
                        dead_clients.append(client_id)

            for client_id in dead_clients:
                del self._subscribers[client_id]

        logger.debug(f"Event {event_type}: {message}")
        return event

    def subscribe(self) -> Tuple[str, Generator]:
        """Register an SSE client, returns (client_id, generator)."""
        with self._sub_lock:
            self._client_counter += 1
            client_id = f"client_{self._client_counter}"
            q = queue.Queue(maxsize=self.QUEUE_SIZE)
            self._subscribers[client_id] = q

        return client_id, self._create_generator(client_id, q)

    def unsubscribe(self, client_id: str) -> None:
        with self._sub_lock:
            q = self._subscribers.pop(client_id, None)
        if q is None:
            return
        while True:
            try:
                q.put_nowait(None)
                return
            except queue.Full:
                # Make room for the close signal
                try:
                    q.get_nowait()
                except queue.Empty:
                    continue

    def close(self) -> None:
        """Ask every open stream to end."""
        with self._sub_lock:
            client_ids = list(self._subscribers)
        for client_id in client_ids:
            self.unsubscribe(client_id)

    def _create_generator(self, client_id: str, q: queue.Queue) -> Generator:
        try:
            while True:
                try:
                    message = q.get(timeout=self.HEARTBEAT_INTERVAL)
                    if message is None:  # close signal
                        break
                    yield f"data: {json.dumps(message, ensure_ascii=False)}\n\n"
                except queue.Empty:
                    # Heartbeat keeps proxies from closing the connection
                    yield ": heartbeat\n\n"
        finally:
            self.unsubscribe(client_id)

    def recent_events(self) -> List[Dict[str, Any]]:
        with self._sub_lock:
            return list(self._recent)

    @property
    def subscriber_count(self) -> int:
        with self._sub_lock:
            return len(self._subscribers)
