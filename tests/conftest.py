"""
Pytest Configuration and Fixtures

This module provides shared fixtures for all tests.
"""
from unittest.mock import Mock

import pytest

from journal_sync import create_app
from journal_sync.components import build_components
from journal_sync.config import TestingConfig
from journal_sync.database import Database
from journal_sync.models import JournalEntry
from journal_sync.services import (
    ConnectivityMonitor,
    JournalService,
    OperationQueue,
    RecordStore,
    SessionStore,
    SyncEngine,
)


class FakeRemoteClient:
    """In-memory stand-in for JournalApiClient.

    ``pages`` holds one (items, has_more) tuple per listing page. Set
    ``create_error`` / ``update_error`` / ``list_error`` to an exception to
    make the matching call fail.
    """

    def __init__(self):
        self.pages = [([], False)]
        self.created = []
        self.updated = []
        self.list_calls = []
        self.create_error = None
        self.update_error = None
        self.list_error = None
        self.assigned_ids = {}
        self.owner_id = 42
        self.on_create = None

    def list_records(self, page=1, limit=50):
        self.list_calls.append((page, limit))
        if self.list_error is not None:
            raise self.list_error
        if page > len(self.pages):
            return [], False
        return self.pages[page - 1]

    def create_record(self, payload):
        self.created.append(payload)
        if self.on_create is not None:
            self.on_create(payload)
        if self.create_error is not None:
            raise self.create_error
        response = dict(payload)
        response['id'] = self.assigned_ids.get(payload.get('id'), payload.get('id'))
        response['user_id'] = self.owner_id
        return response

    def update_record(self, record_id, payload):
        self.updated.append((record_id, payload))
        if self.update_error is not None:
            raise self.update_error
        return dict(payload, id=record_id)

    def login(self, username, password):
        return {'token': 'remote-token', 'username': username}


def remote_record(record_id, **overrides):
    """Remote wire-format record."""
    record = {
        'id': record_id,
        'user_id': 42,
        'date': '2024-05-01',
        'temperature': 18.5,
        'description': f'remote {record_id}',
        'photoUrl': None,
        'coords': {'latitude': 48.85, 'longitude': 2.35},
    }
    record.update(overrides)
    return record


def config_dict(config_class=TestingConfig):
    return {key: getattr(config_class, key) for key in dir(config_class) if key.isupper()}


@pytest.fixture
def database():
    """Fresh in-memory database per test."""
    database = Database('sqlite:///:memory:')
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def records(database):
    return RecordStore(database)


@pytest.fixture
def queue(database):
    return OperationQueue(database)


@pytest.fixture
def journal(database, records, queue):
    return JournalService(database, records, queue)


@pytest.fixture
def session_store():
    """Logged-in, memory-only session."""
    store = SessionStore()
    store.save_session('test-token', username='tester', user_id=42)
    return store


@pytest.fixture
def fake_client():
    return FakeRemoteClient()


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def engine(database, records, queue, fake_client, session_store, notifier):
    return SyncEngine(database, records, queue, fake_client, session_store, notifier, page_size=50)


@pytest.fixture
def components(fake_client, session_store):
    components = build_components(
        config_dict(),
        client=fake_client,
        session_store=session_store,
        connectivity=ConnectivityMonitor(),
    )
    yield components
    components.shutdown()


@pytest.fixture
def app(components):
    """Create application for testing."""
    return create_app(TestingConfig, components=components)


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def sample_entry_data():
    """Sample entry fields for testing."""
    return {
        'date': '2024-05-01',
        'temperature': 20.0,
        'description': 'Sunny afternoon',
        'photo_ref': None,
        'latitude': 52.52,
        'longitude': 13.405,
    }


@pytest.fixture
def make_entry(records, sample_entry_data):
    """Insert an entry straight into the store (no queued operation)."""
    def _make(synced=False, **overrides):
        fields = dict(sample_entry_data, **overrides)
        entry_id = fields.pop('id', None)
        entry = JournalEntry.create_new(**fields)
        if entry_id:
            entry.id = entry_id
        entry.synced = synced
        return records.insert(entry)
    return _make
