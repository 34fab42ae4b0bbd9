"""
API Tests

Tests for REST API endpoints.
"""
import json

import pytest

from journal_sync.config import TestingConfig
from journal_sync.models import SyncStatus
from journal_sync.services import RunLock


def post_json(client, url, body):
    return client.post(url, data=json.dumps(body), content_type='application/json')


def put_json(client, url, body):
    return client.put(url, data=json.dumps(body), content_type='application/json')


@pytest.fixture
def created_entry(client, sample_entry_data):
    response = post_json(client, '/api/entries', sample_entry_data)
    return json.loads(response.data)['data']


class TestHealthCheck:
    """Tests for health check endpoint."""

    def test_health_check(self, client):
        """Test health check returns healthy status."""
        response = client.get('/api/health')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'


class TestEntriesAPI:
    """Tests for entries API endpoints."""

    def test_list_empty(self, client):
        response = client.get('/api/entries')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['success'] is True
        assert data['data']['items'] == []
        assert data['data']['total'] == 0

    def test_create_entry(self, client, components, sample_entry_data):
        """Creating an entry stores it unsynced and queues an add."""
        response = post_json(client, '/api/entries', sample_entry_data)

        assert response.status_code == 201
        data = json.loads(response.data)['data']
        assert data['synced'] is False
        assert data['description'] == 'Sunny afternoon'
        assert data['coords'] == {'latitude': 52.52, 'longitude': 13.405}

        operations = components.queue.operations_for(data['id'])
        assert [op.kind for op in operations] == ['add']

    def test_create_accepts_nested_coords(self, client):
        response = post_json(client, '/api/entries', {
            'date': '2024-05-01T10:30:00Z',
            'temperature': '12.5',
            'coords': {'latitude': -33.9, 'longitude': 151.2},
        })

        assert response.status_code == 201
        data = json.loads(response.data)['data']
        assert data['temperature'] == 12.5
        assert data['coords']['latitude'] == -33.9

    @pytest.mark.parametrize('body, message', [
        ({'temperature': 20}, 'date'),
        ({'date': 'yesterday', 'temperature': 20}, 'date'),
        ({'date': '2024-05-01', 'temperature': 'warm'}, 'temperature'),
        ({'date': '2024-05-01', 'temperature': 20, 'latitude': 91}, 'latitude'),
        ({'date': '2024-05-01', 'temperature': 20, 'description': 'x' * 2001}, 'description'),
    ])
    def test_create_validation(self, client, body, message):
        response = post_json(client, '/api/entries', body)

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['error']['code'] == 'VALIDATION_ERROR'
        assert message in data['error']['message']

    def test_create_without_body(self, client):
        response = client.post('/api/entries')

        assert response.status_code == 400

    def test_get_entry(self, client, created_entry):
        response = client.get(f"/api/entries/{created_entry['id']}")

        assert response.status_code == 200
        assert json.loads(response.data)['data']['id'] == created_entry['id']

    def test_get_missing_entry(self, client):
        response = client.get('/api/entries/nope')

        assert response.status_code == 404
        assert json.loads(response.data)['error']['code'] == 'NOT_FOUND'

    def test_update_entry(self, client, components, created_entry):
        response = put_json(client, f"/api/entries/{created_entry['id']}", {'temperature': 25})

        assert response.status_code == 200
        data = json.loads(response.data)['data']
        assert data['temperature'] == 25.0
        assert data['description'] == created_entry['description']
        # The unsent add absorbs the edit
        operations = components.queue.operations_for(created_entry['id'])
        assert len(operations) == 1

    def test_update_missing_entry(self, client):
        response = put_json(client, '/api/entries/nope', {'temperature': 25})

        assert response.status_code == 404

    def test_delete_entry(self, client, components, created_entry):
        response = client.delete(f"/api/entries/{created_entry['id']}")

        assert response.status_code == 200
        assert client.get(f"/api/entries/{created_entry['id']}").status_code == 404
        operations = components.queue.operations_for(created_entry['id'])
        assert [op.kind for op in operations] == ['delete']

    def test_delete_missing_entry(self, client):
        assert client.delete('/api/entries/nope').status_code == 404

    def test_pagination(self, client, sample_entry_data):
        for day in range(1, 6):
            post_json(client, '/api/entries', dict(sample_entry_data, date=f'2024-05-0{day}'))

        response = client.get('/api/entries?page=1&page_size=2')

        data = json.loads(response.data)['data']
        assert data['total'] == 5
        assert data['has_more'] is True
        assert [item['date'] for item in data['items']] == ['2024-05-05', '2024-05-04']

    def test_invalid_pagination(self, client):
        response = client.get('/api/entries?page=0')

        assert response.status_code == 400


class TestSyncAPI:
    """Tests for sync API endpoints."""

    def test_trigger_sync(self, client):
        response = post_json(client, '/api/sync', {'force_full': True})

        assert response.status_code == 202
        data = json.loads(response.data)['data']
        assert data['request']['force_full'] is True
        assert data['request']['reason'] == 'api'
        assert data['scheduler_running'] is False
        assert data['authenticated'] is True

    def test_trigger_sync_invalid_flag(self, client):
        response = post_json(client, '/api/sync', {'force_full': 'sometimes'})

        assert response.status_code == 400

    def test_status(self, client, created_entry):
        post_json(client, '/api/sync', {})

        response = client.get('/api/sync/status')

        assert response.status_code == 200
        data = json.loads(response.data)['data']
        assert data['pending_request']['reason'] == 'api'
        assert data['connected'] is True
        assert data['session']['username'] == 'tester'
        assert data['queue']['pending'] == 1
        assert data['unsynced_count'] == 1
        assert data['last_outcome'] is None

    def test_status_after_run(self, client, components, created_entry):
        post_json(client, '/api/sync', {})
        components.scheduler.run_pending()

        data = json.loads(client.get('/api/sync/status').data)['data']

        assert data['last_outcome']['status'] == 'success'
        assert data['unsynced_count'] == 0
        assert data['queue']['total'] == 0

    def test_queue(self, client, created_entry):
        response = client.get('/api/sync/queue')

        assert response.status_code == 200
        data = json.loads(response.data)['data']
        assert len(data) == 1
        assert data[0]['record_id'] == created_entry['id']
        assert data[0]['kind'] == 'add'

    def test_unknown_route(self, client):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        assert json.loads(response.data)['success'] is False


class TestBackgroundServices:
    """Tests for what create_app starts (and does not start)."""

    @pytest.fixture
    def interrupted_operation(self, components, sample_entry_data):
        components.prepare()
        entry = components.journal.create_entry(sample_entry_data)
        operation = components.queue.pending_operations()[0]
        components.queue.mark_in_progress(operation.queue_id)
        return entry, operation

    def test_create_app_starts_nothing(self, components, interrupted_operation):
        from journal_sync import create_app

        class SchedulerEnabledConfig(TestingConfig):
            SYNC_SCHEDULER_ENABLED = True

        create_app(SchedulerEnabledConfig, components=components)

        _, operation = interrupted_operation
        assert components.scheduler.running is False
        assert components.queue.get(operation.queue_id).status == SyncStatus.IN_PROGRESS.value

    def test_start_services_sweeps_and_starts_scheduler(self, components, interrupted_operation):
        _, operation = interrupted_operation

        assert components.start_services() == 1

        assert components.scheduler.running is True
        assert components.queue.get(operation.queue_id).status == SyncStatus.PENDING.value

    def test_sweep_skipped_while_another_process_syncs(self, components, interrupted_operation):
        _, operation = interrupted_operation
        other_process = RunLock(components.database)
        other_process.acquire()

        assert components.start_services(start_scheduler=False) == 0

        assert components.queue.get(operation.queue_id).status == SyncStatus.IN_PROGRESS.value
