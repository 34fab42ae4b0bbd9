"""
Journal API Client - HTTP access to the remote record service

A single pooled requests.Session is reused for every call to avoid repeated
TCP and TLS handshakes. Authentication is injected per request by
``BearerTokenAuth`` so the token is always read fresh from the session
store.
"""
import threading
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from requests.auth import AuthBase

from ...utils.logger import get_logger

logger = get_logger('remote_client')


class RemoteError(Exception):
    """Base class for remote API failures."""


class RemoteApiError(RemoteError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str = ''):
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")

    @property
    def unauthorized(self) -> bool:
        return self.status_code == 401


class RemoteTransportError(RemoteError):
    """The request never produced a response (DNS, refused, timeout...)."""


class BearerTokenAuth(AuthBase):
    """Adds ``Authorization: Bearer <token>`` unless the endpoint is public."""

    PUBLIC_ENDPOINTS = ('/login', '/register')

    def __init__(self, session_store):
        self.session_store = session_store

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        path = urlparse(request.url).path
        if any(path.endswith(endpoint) for endpoint in self.PUBLIC_ENDPOINTS):
            return request

        token = self.session_store.token() if self.session_store is not None else None
        if token:
            request.headers['Authorization'] = f'Bearer {token}'
        return request


class JournalApiClient:
    """Client for the remote journal record API.

    Example:
        >>> client = JournalApiClient('http://localhost:3001', session_store)
        >>> items, has_more = client.list_records(page=1, limit=50)
        >>> created = client.create_record(entry.to_payload())
    """

    # Connection pool configuration
    POOL_CONNECTIONS = 4
    POOL_MAXSIZE = 4
    MAX_RETRIES = 2  # connection-level retries only, never replays a sent body

    def __init__(
        self,
        base_url: str,
        session_store=None,
        timeout: float = 30,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.session_store = session_store
        self.timeout = timeout

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.POOL_CONNECTIONS,
                pool_maxsize=self.POOL_MAXSIZE,
                max_retries=self.MAX_RETRIES,
                pool_block=False
            )
            session.mount('http://', adapter)
            session.mount('https://', adapter)
        self._session = session
        self._auth = BearerTokenAuth(session_store)

        self._stats = {'requests': 0, 'errors': 0}
        self._stats_lock = threading.Lock()

    # ==================== Records ====================

    def list_records(self, page: int = 1, limit: int = 50) -> Tuple[List[Dict[str, Any]], bool]:
        """One page of the remote listing.

        Returns:
            (items, has_more)
        """
        body = self._request('GET', '/records', params={'page': page, 'limit': limit})
        if not isinstance(body, dict):
            raise RemoteApiError(200, 'unexpected listing response')
        items = body.get('items')
        if items is None:
            items = body.get('entries') or []
        return list(items), bool(body.get('hasMore', False))

    def create_record(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('POST', '/records', json=payload) or {}

    def update_record(self, record_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PUT', f'/records/{record_id}', json=payload) or {}

    # ==================== Auth ====================

    def login(self, username: str, password: str) -> Dict[str, Any]:
        """Exchange credentials for a token: ``{token, username, ...}``."""
        body = self._request('POST', '/login', json={'username': username, 'password': password})
        if not isinstance(body, dict) or not body.get('token'):
            raise RemoteApiError(200, 'login response carries no token')
        return body

    # ==================== Plumbing ====================

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f'{self.base_url}{path}'
        with self._stats_lock:
            self._stats['requests'] += 1

        try:
            response = self._session.request(
                method, url, auth=self._auth, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            with self._stats_lock:
                self._stats['errors'] += 1
            logger.debug(f"{method} {path} transport error: {e}")
            raise RemoteTransportError(str(e)) from e

        if not 200 <= response.status_code < 300:
            with self._stats_lock:
                self._stats['errors'] += 1
            if response.status_code == 401 and self.session_store is not None:
                logger.warning("Remote API rejected the token, clearing session")
                self.session_store.clear()
            raise RemoteApiError(response.status_code, self._error_message(response))

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(response.status_code, 'response is not valid JSON') from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return (response.text or response.reason or '')[:200]
        if isinstance(body, dict):
            return str(body.get('error') or body.get('message') or '')[:200]
        return ''

    def get_stats(self) -> Dict:
        with self._stats_lock:
            return self._stats.copy()

    def close(self) -> None:
        self._session.close()
