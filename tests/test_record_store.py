import pytest
from unittest.mock import Mock
from firebase_admin import db, exceptions

from progress_tracker.services.record_store import AbortTransaction, RecordStore, user_path, validate_key
from progress_tracker.utils.error_handler import StoreUnavailableError, ValidationError


class TestKeys:

    def test_user_path(self):
        assert user_path('abc123') == 'users/abc123'

    @pytest.mark.parametrize('key', ['', '   ', None, 'a/b', 'a.b', 'a#b', 'a$b', 'a[b]'])
    def test_invalid_keys(self, key):
        with pytest.raises(ValidationError):
            validate_key(key)


class TestRecordStore:

    def test_read_missing(self, store):
        assert store.read_record('users/nobody') is None

    def test_create_if_absent(self, store, database):
        record, created = store.create_if_absent('users/u1', {'stars': 0})

        assert created is True
        assert record == {'stars': 0}
        assert database.read('users/u1') == {'stars': 0}

    def test_create_if_absent_keeps_existing(self, store, database):
        database.write('users/u1', {'stars': 7})

        record, created = store.create_if_absent('users/u1', {'stars': 0})

        assert created is False
        assert record == {'stars': 7}
        assert database.read('users/u1') == {'stars': 7}

    def test_patch_fields(self, store, database):
        database.write('users/u1', {'name': 'Asha', 'stars': 7})

        store.patch_fields('users/u1', {'stars': 0})

        assert database.read('users/u1') == {'name': 'Asha', 'stars': 0}

    def test_apply(self, store, database):
        database.write('users/u1', {'stars': 7})

        result = store.apply('users/u1', lambda current: dict(current, stars=current['stars'] + 1))

        assert result == {'stars': 8}
        assert database.read('users/u1') == {'stars': 8}

    def test_apply_aborts_when_update_raises(self, store, database):
        database.write('users/u1', {'stars': 7})

        def _fail(current):
            raise ValidationError('bad')

        with pytest.raises(ValidationError):
            store.apply('users/u1', _fail)
        assert database.read('users/u1') == {'stars': 7}

    def test_apply_returns_current_without_writing(self, store, database):
        database.write('users/u1', {'stars': 7})

        def _unchanged(current):
            raise AbortTransaction(current)

        result = store.apply('users/u1', _unchanged)

        assert result == {'stars': 7}
        assert database.transaction_writes == 0

    @pytest.mark.parametrize('call', [
        lambda s: s.read_record('users/u1'),
        lambda s: s.create_if_absent('users/u1', {}),
        lambda s: s.patch_fields('users/u1', {'stars': 1}),
        lambda s: s.apply('users/u1', lambda current: current),
    ])
    def test_firebase_errors_become_store_unavailable(self, store, database, call):
        database.fail_with = exceptions.UnavailableError('backend down')

        with pytest.raises(StoreUnavailableError):
            call(store)

    def test_transaction_aborted_after_retries(self):
        reference = Mock()
        reference.transaction.side_effect = db.TransactionAbortedError('too much contention')
        store = RecordStore(reference=lambda path: reference)

        with pytest.raises(StoreUnavailableError):
            store.apply('users/u1', lambda current: current)

    def test_defaults_to_firebase_reference(self):
        assert RecordStore()._reference is db.reference
