from unittest.mock import patch

import pytest
from django.db import DatabaseError

from geoschema.artifacts import ArtifactStore
from geoschema.errors import PersistenceFailure
from geoschema.models import ProductState

SHOP = 'store-shop.myshopify.com'
PID = 'gid://shopify/Product/7'
HASH_A = 'a' * 64
HASH_B = 'b' * 64
SCHEMA_A = {'@context': 'https://schema.org', '@type': 'Product', 'name': 'A'}
SCHEMA_B = {'@context': 'https://schema.org', '@type': 'Product', 'name': 'B'}


@pytest.fixture()
def store():
    return ArtifactStore()


@pytest.mark.django_db
class TestRecordScan:
    def test_first_scan_creates_empty_record(self, store):
        state = store.record_scan(SHOP, PID)
        assert state.shop == SHOP
        assert state.content_hash is None
        assert state.schema_blob is None
        assert state.is_synced is False
        assert ProductState.objects.count() == 1

    def test_rescan_refreshes_timestamp(self, store):
        first = store.record_scan(SHOP, PID)
        second = store.record_scan(SHOP, PID)
        assert second.pk == first.pk
        assert second.last_scanned_at >= first.last_scanned_at
        assert ProductState.objects.count() == 1

    def test_get_unknown_returns_none(self, store):
        assert store.get(PID) is None


@pytest.mark.django_db
class TestSaveArtifact:
    def test_first_save_after_scan(self, store):
        store.record_scan(SHOP, PID)
        assert store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None) is True

        state = store.get(PID)
        assert state.content_hash == HASH_A
        assert state.schema_blob == SCHEMA_A
        assert state.is_synced is False

    def test_save_without_scan_creates_record(self, store):
        assert store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None) is True
        assert store.get(PID).schema_blob == SCHEMA_A

    def test_overwrite_with_matching_guard(self, store):
        store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None)
        store.mark_synced(PID, HASH_A)

        assert store.save_artifact(SHOP, PID, HASH_B, SCHEMA_B, expected_fingerprint=HASH_A) is True
        state = store.get(PID)
        assert (state.content_hash, state.schema_blob, state.is_synced) == (HASH_B, SCHEMA_B, False)

    def test_stale_write_does_not_overwrite_newer_fingerprint(self, store):
        """A scan that loaded HASH_A must not clobber HASH_B written meanwhile."""
        store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None)
        store.save_artifact(SHOP, PID, HASH_B, SCHEMA_B, expected_fingerprint=HASH_A)

        assert store.save_artifact(SHOP, PID, 'c' * 64, {'name': 'C'}, expected_fingerprint=HASH_A) is False
        assert store.get(PID).content_hash == HASH_B

    def test_concurrent_writer_with_same_fingerprint_is_success(self, store):
        store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None)
        assert store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None) is True

    def test_storage_error_raises_persistence_failure(self, store):
        store.record_scan(SHOP, PID)
        with patch('django.db.models.query.QuerySet.update', side_effect=DatabaseError('disk full')):
            with pytest.raises(PersistenceFailure) as excinfo:
                store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None)
        assert excinfo.value.product_id == PID
        assert store.get(PID).schema_blob is None

    def test_storage_error_reading_back_rejected_write_raises_persistence_failure(self, store):
        store.save_artifact(SHOP, PID, HASH_B, SCHEMA_B, expected_fingerprint=None)
        with patch.object(store, 'get', side_effect=DatabaseError('conn lost')):
            with pytest.raises(PersistenceFailure):
                store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None)
        assert store.get(PID).content_hash == HASH_B


@pytest.mark.django_db
class TestMarkSynced:
    def test_marks_current_artifact(self, store):
        store.save_artifact(SHOP, PID, HASH_A, SCHEMA_A, expected_fingerprint=None)
        assert store.mark_synced(PID, HASH_A) is True
        assert store.get(PID).is_synced is True

    def test_outdated_confirmation_ignored(self, store):
        store.save_artifact(SHOP, PID, HASH_B, SCHEMA_B, expected_fingerprint=None)
        assert store.mark_synced(PID, HASH_A) is False
        assert store.get(PID).is_synced is False


@pytest.mark.django_db
def test_sync_summary_counts_per_shop(store):
    store.save_artifact(SHOP, 'p1', HASH_A, SCHEMA_A, expected_fingerprint=None)
    store.save_artifact(SHOP, 'p2', HASH_A, SCHEMA_A, expected_fingerprint=None)
    store.save_artifact('other.myshopify.com', 'p3', HASH_A, SCHEMA_A, expected_fingerprint=None)
    store.mark_synced('p1', HASH_A)

    assert store.sync_summary(SHOP) == {'synced': 1, 'pending': 1}
