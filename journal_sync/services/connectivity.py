"""
Connectivity monitor

Tracks whether the remote API is reachable. The scheduler only starts a
run while connected and asks for an immediate sync when connectivity comes
back.
"""
import threading
from typing import Callable, List, Optional

import requests

from ..utils.logger import get_logger

logger = get_logger('connectivity')

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Reachability flag with change listeners.

    ``update()`` can be fed by anything that knows the network state;
    ``probe()`` checks the API base URL directly.
    """

    def __init__(
        self,
        probe_url: Optional[str] = None,
        timeout: float = 5,
        connected: bool = True,
        session: Optional[requests.Session] = None
    ):
        self.probe_url = probe_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._connected = connected
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def update(self, connected: bool) -> bool:
        """Set the state; listeners fire only on an actual change.

        Returns:
            True if the state changed
        """
        with self._lock:
            if self._connected == connected:
                return False
            self._connected = connected
            listeners = list(self._listeners)

        logger.info(f"Connectivity {'restored' if connected else 'lost'}")
        for listener in listeners:
            try:
                listener(connected)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}")
        return True

    def probe(self) -> bool:
        """HEAD the API base URL; any HTTP answer counts as reachable."""
        if not self.probe_url:
            return self.is_connected()
        try:
            self._session.head(self.probe_url, timeout=self.timeout, allow_redirects=False)
            connected = True
        except requests.RequestException as e:
            logger.debug(f"Connectivity probe failed: {e}")
            connected = False
        self.update(connected)
        return connected
