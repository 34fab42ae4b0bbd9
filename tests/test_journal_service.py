"""
Journal Service and Validator Tests
"""
import pytest

from journal_sync.utils.validators import (
    validate_entry_date,
    validate_entry_payload,
    validate_force_full,
    validate_pagination,
)


class TestJournalService:
    """Tests for local mutations and their queued operations."""

    def test_create_queues_add_with_payload(self, journal, queue, sample_entry_data):
        entry = journal.create_entry(sample_entry_data)

        operations = queue.operations_for(entry.id)
        assert [op.kind for op in operations] == ['add']
        payload = operations[0].payload_data()
        assert payload['id'] == entry.id
        assert payload['description'] == 'Sunny afternoon'

    def test_update_missing_returns_none(self, journal):
        assert journal.update_entry('nope', {'temperature': 1.0}) is None

    def test_update_synced_entry_queues_update(self, journal, records, queue, make_entry):
        make_entry(id='e1', synced=True)

        entry = journal.update_entry('e1', {'description': 'edited'})

        assert entry.description == 'edited'
        assert records.get('e1').synced is False
        operations = queue.operations_for('e1')
        assert [op.kind for op in operations] == ['update']
        assert operations[0].payload_data()['description'] == 'edited'

    def test_delete_hides_and_queues(self, journal, records, queue, make_entry):
        make_entry(id='e1', synced=True)

        assert journal.delete_entry('e1') is True

        assert journal.get_entry('e1') is None
        assert records.get('e1', include_deleted=True).deleted is True
        assert [op.kind for op in queue.operations_for('e1')] == ['delete']

    def test_delete_missing(self, journal):
        assert journal.delete_entry('nope') is False


class TestValidators:
    """Tests for input validation helpers."""

    @pytest.mark.parametrize('value, valid', [
        ('2024-05-01', True),
        ('2024-05-01T10:00:00Z', True),
        ('2024-05-01T10:00:00+02:00', True),
        ('01/05/2024', False),
        ('', False),
        (None, False),
    ])
    def test_entry_date(self, value, valid):
        assert validate_entry_date(value)[0] is valid

    def test_partial_payload_keeps_only_supplied_fields(self):
        ok, _, cleaned = validate_entry_payload({'temperature': 3}, partial=True)

        assert ok is True
        assert cleaned == {'temperature': 3.0}

    def test_full_payload_defaults(self):
        ok, _, cleaned = validate_entry_payload({'date': '2024-05-01', 'temperature': 10})

        assert ok is True
        assert cleaned['description'] == ''
        assert cleaned['latitude'] == 0.0
        assert cleaned['longitude'] == 0.0

    def test_boolean_is_not_a_number(self):
        ok, msg, _ = validate_entry_payload({'date': '2024-05-01', 'temperature': True})

        assert ok is False
        assert 'temperature' in msg

    def test_pagination(self):
        assert validate_pagination(None, None) == (True, None, 1, 20)
        assert validate_pagination('2', '500')[0] is False
        assert validate_pagination('x', '10')[0] is False

    @pytest.mark.parametrize('value, expected', [
        (None, False),
        (True, True),
        ('yes', True),
        ('false', False),
    ])
    def test_force_full(self, value, expected):
        assert validate_force_full(value) == (True, None, expected)
