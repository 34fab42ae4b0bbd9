"""
Collaborator Tests

Session store, token crypto, event broadcaster and connectivity monitor.
"""
import json
from unittest.mock import Mock

import requests

from journal_sync.services import ConnectivityMonitor, SessionStore, SyncEventBroadcaster
from journal_sync.utils.crypto import TokenCrypto


class TestSessionStore:
    """Tests for SessionStore."""

    def test_logged_out_by_default(self):
        store = SessionStore()

        assert store.is_authenticated() is False
        assert store.token() is None

    def test_save_session(self):
        store = SessionStore()
        store.save_session('abc', username='alice', user_id=7)

        assert store.is_authenticated() is True
        assert store.token() == 'abc'
        assert store.to_dict()['username'] == 'alice'
        assert 'token' not in store.to_dict()

    def test_expired_token_is_not_authenticated(self):
        store = SessionStore()
        store.save_session('abc', expires_in=-1)

        assert store.is_authenticated() is False

    def test_clear_keeps_last_sync_time(self):
        store = SessionStore()
        store.save_session('abc')
        store.record_last_sync_time()

        store.clear()

        assert store.is_authenticated() is False
        assert store.last_sync_time() is not None

    def test_persisted_encrypted(self, tmp_path):
        path = str(tmp_path / 'session.json')
        key = TokenCrypto.generate_key()

        store = SessionStore(path, TokenCrypto(key))
        store.save_session('super-secret-token', username='alice')

        with open(path, encoding='utf-8') as f:
            raw = f.read()
        assert 'super-secret-token' not in raw
        assert json.loads(raw)['username'] == 'alice'

        reloaded = SessionStore(path, TokenCrypto(key))
        assert reloaded.is_authenticated() is True
        assert reloaded.token() == 'super-secret-token'

    def test_corrupt_file_starts_logged_out(self, tmp_path):
        path = tmp_path / 'session.json'
        path.write_text('{not json', encoding='utf-8')

        assert SessionStore(str(path)).is_authenticated() is False


class TestTokenCrypto:
    """Tests for TokenCrypto."""

    def test_fernet_round_trip(self):
        crypto = TokenCrypto(TokenCrypto.generate_key())

        assert crypto.is_secure is True
        assert crypto.decrypt(crypto.encrypt('token')) == 'token'

    def test_obfuscation_without_key(self):
        crypto = TokenCrypto()

        encrypted = crypto.encrypt('token')

        assert crypto.is_secure is False
        assert encrypted.startswith(TokenCrypto.OBFUSCATION_PREFIX)
        assert crypto.decrypt(encrypted) == 'token'

    def test_wrong_key_yields_empty(self):
        encrypted = TokenCrypto(TokenCrypto.generate_key()).encrypt('token')

        assert TokenCrypto(TokenCrypto.generate_key()).decrypt(encrypted) == ''


class TestSyncEventBroadcaster:
    """Tests for SyncEventBroadcaster."""

    def test_subscriber_receives_event(self):
        broadcaster = SyncEventBroadcaster()
        client_id, stream = broadcaster.subscribe()

        broadcaster.notify_sync_success(3)

        message = next(stream)
        assert message.startswith('data: ')
        event = json.loads(message[len('data: '):])
        assert event['type'] == 'sync_success'
        assert event['synced_count'] == 3

        broadcaster.unsubscribe(client_id)
        assert broadcaster.subscriber_count == 0

    def test_close_ends_streams(self):
        broadcaster = SyncEventBroadcaster()
        _, stream = broadcaster.subscribe()

        broadcaster.close()

        assert list(stream) == []

    def test_abandoned_event(self):
        broadcaster = SyncEventBroadcaster()

        broadcaster.notify_operation_abandoned({'kind': 'update', 'record_id': 'B'})

        event = broadcaster.recent_events()[-1]
        assert event['type'] == 'operation_abandoned'
        assert event['level'] == 'warn'
        assert event['operation']['record_id'] == 'B'

    def test_recent_events_bounded(self):
        broadcaster = SyncEventBroadcaster()

        for i in range(SyncEventBroadcaster.RECENT_EVENTS + 5):
            broadcaster.notify_sync_failure(f'error {i}')

        events = broadcaster.recent_events()
        assert len(events) == SyncEventBroadcaster.RECENT_EVENTS
        assert 'error 5' in events[0]['message']

    def test_slow_subscriber_drops_oldest(self):
        broadcaster = SyncEventBroadcaster()
        _, stream = broadcaster.subscribe()

        for i in range(SyncEventBroadcaster.QUEUE_SIZE + 1):
            broadcaster.notify_sync_success(i)

        first = json.loads(next(stream)[len('data: '):])
        assert first['synced_count'] == 1
        broadcaster.close()


class TestConnectivityMonitor:
    """Tests for ConnectivityMonitor."""

    def test_listeners_fire_on_change_only(self):
        monitor = ConnectivityMonitor(connected=True)
        listener = Mock()
        monitor.add_listener(listener)

        assert monitor.update(True) is False
        listener.assert_not_called()

        assert monitor.update(False) is True
        listener.assert_called_once_with(False)
        assert monitor.is_connected() is False

    def test_failing_listener_does_not_break_update(self):
        monitor = ConnectivityMonitor(connected=False)
        monitor.add_listener(Mock(side_effect=RuntimeError('boom')))
        second = Mock()
        monitor.add_listener(second)

        monitor.update(True)

        second.assert_called_once_with(True)

    def test_remove_listener(self):
        monitor = ConnectivityMonitor()
        listener = Mock()
        monitor.add_listener(listener)
        monitor.remove_listener(listener)

        monitor.update(False)

        listener.assert_not_called()

    def test_probe(self):
        session = Mock(spec=requests.Session)
        monitor = ConnectivityMonitor('http://api.test', connected=True, session=session)

        session.head.side_effect = requests.ConnectionError('down')
        assert monitor.probe() is False
        assert monitor.is_connected() is False

        session.head.side_effect = None
        assert monitor.probe() is True
        assert monitor.is_connected() is True

    def test_probe_without_url_keeps_state(self):
        monitor = ConnectivityMonitor(connected=False)
        assert monitor.probe() is False
