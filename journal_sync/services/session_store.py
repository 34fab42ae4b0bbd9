"""
Session Store - who is logged in, and when the last sync finished

The session lives in a small JSON file (or only in memory when no path is
configured). The bearer token is encrypted at rest with ``TokenCrypto``.
"""
import json
import os
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..models import utcnow
from ..utils.crypto import TokenCrypto
from ..utils.logger import get_logger

logger = get_logger('session')

DEFAULT_EXPIRES_IN = 24 * 60 * 60  # seconds


class SessionStore:
    """Persistent login session plus the last-sync marker.

    Example:
        >>> store = SessionStore('data/session.json', TokenCrypto(key))
        >>> store.save_session('abc', username='alice', user_id=7)
        >>> store.is_authenticated()
        True
    """

    def __init__(self, path: Optional[str] = None, crypto: Optional[TokenCrypto] = None):
        self.path = path
        self.crypto = crypto or TokenCrypto()
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    # ==================== Session ====================

    def is_authenticated(self) -> bool:
        """Logged in with a token that has not expired."""
        with self._lock:
            if not self._data.get('is_logged_in') or not self._data.get('token'):
                return False
            expires_at = self._parse_time(self._data.get('expires_at'))
            return expires_at is None or expires_at > utcnow()

    def token(self) -> Optional[str]:
        with self._lock:
            encrypted = self._data.get('token')
        if not encrypted:
            return None
        return self.crypto.decrypt(encrypted) or None

    def username(self) -> Optional[str]:
        with self._lock:
            return self._data.get('username')

    def user_id(self) -> Optional[int]:
        with self._lock:
            return self._data.get('user_id')

    def save_session(
        self,
        token: str,
        username: Optional[str] = None,
        user_id: Optional[int] = None,
        expires_in: Optional[float] = DEFAULT_EXPIRES_IN
    ) -> None:
        """Store a fresh login.

        Args:
            token: Bearer token returned by the login endpoint
            username: Display name
            user_id: Remote user id, when the server reports one
            expires_in: Token lifetime in seconds, None for no expiry
        """
        expires_at = utcnow() + timedelta(seconds=expires_in) if expires_in else None
        with self._lock:
            self._data.update({
                'token': self.crypto.encrypt(token),
                'username': username,
                'user_id': user_id,
                'is_logged_in': True,
                'expires_at': self._format_time(expires_at),
            })
            self._save()
        logger.info(f"Session saved for {username or 'unknown user'}")

    def clear(self) -> None:
        """Log out. The last-sync marker is kept."""
        with self._lock:
            last_sync = self._data.get('last_sync_time')
            self._data = {'last_sync_time': last_sync} if last_sync else {}
            self._save()
        logger.info("Session cleared")

    # ==================== Sync marker ====================

    def record_last_sync_time(self, timestamp: Optional[datetime] = None) -> None:
        with self._lock:
            self._data['last_sync_time'] = self._format_time(timestamp or utcnow())
            self._save()

    def last_sync_time(self) -> Optional[datetime]:
        with self._lock:
            return self._parse_time(self._data.get('last_sync_time'))

    def to_dict(self) -> Dict[str, Any]:
        """Public view of the session (never includes the token)."""
        last_sync = self.last_sync_time()
        return {
            'is_authenticated': self.is_authenticated(),
            'username': self.username(),
            'user_id': self.user_id(),
            'last_sync_time': last_sync.isoformat() + 'Z' if last_sync else None,
        }

    # ==================== Persistence ====================

    def _load(self) -> Dict[str, Any]:
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Session file {self.path} unreadable, starting logged out: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

        tmp_path = f'{self.path}.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    @staticmethod
    def _format_time(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @staticmethod
    def _parse_time(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except (TypeError, ValueError):
            return None
