"""Tests for the SQLAlchemy-backed stores."""

from datetime import timedelta

import pytest

from shopsync.core.data_objects import DataObjectKind
from shopsync.core.database import session_scope, utcnow
from shopsync.core.exceptions import MappingConflictError
from shopsync.core.sync.lifecycle import SyncStats
from shopsync.models.webhook_event import WebhookEvent

PRODUCTS = DataObjectKind.PRODUCTS


class TestIdMappingStore:
    """Test suite for the identity mapping store."""

    def test_upsert_and_lookup_both_ways(self, mapping_store):
        """A mapping is visible from both sides."""
        mapping_store.upsert(PRODUCTS, "SKU-1", "gid://shopify/Product/1")

        assert mapping_store.lookup_by_external_id(PRODUCTS, "SKU-1") == "gid://shopify/Product/1"
        assert mapping_store.lookup_by_remote_id(PRODUCTS, "gid://shopify/Product/1") == "SKU-1"
        assert mapping_store.is_managed(PRODUCTS, "SKU-1")

    def test_lookup_missing_returns_none(self, mapping_store):
        assert mapping_store.lookup_by_external_id(PRODUCTS, "nope") is None
        assert mapping_store.lookup_by_remote_id(PRODUCTS, "nope") is None

    def test_upsert_repoints_existing_external_id(self, mapping_store):
        """Upserting a new remote id replaces the old pairing."""
        mapping_store.upsert(PRODUCTS, "SKU-1", "gid://shopify/Product/1")
        mapping_store.upsert(PRODUCTS, "SKU-1", "gid://shopify/Product/2")

        assert mapping_store.lookup_by_external_id(PRODUCTS, "SKU-1") == "gid://shopify/Product/2"
        assert mapping_store.lookup_by_remote_id(PRODUCTS, "gid://shopify/Product/1") is None
        assert mapping_store.count(PRODUCTS) == 1

    def test_upsert_same_pair_is_noop(self, mapping_store):
        mapping_store.upsert(PRODUCTS, "SKU-1", "gid://shopify/Product/1")
        mapping_store.upsert(PRODUCTS, "SKU-1", "gid://shopify/Product/1")
        assert mapping_store.count(PRODUCTS) == 1

    def test_remote_id_conflict_is_rejected(self, mapping_store):
        """Two external ids can never share a remote id."""
        mapping_store.upsert(PRODUCTS, "SKU-1", "gid://shopify/Product/1")

        with pytest.raises(MappingConflictError) as exc_info:
            mapping_store.upsert(PRODUCTS, "SKU-2", "gid://shopify/Product/1")

        assert exc_info.value.owner == "SKU-1"
        assert mapping_store.lookup_by_external_id(PRODUCTS, "SKU-2") is None
        assert mapping_store.lookup_by_remote_id(PRODUCTS, "gid://shopify/Product/1") == "SKU-1"

    def test_kinds_are_separate_namespaces(self, mapping_store):
        mapping_store.upsert(PRODUCTS, "SKU-1", "gid://1")
        mapping_store.upsert(DataObjectKind.INVENTORY, "SKU-1", "gid://1")

        assert mapping_store.count() == 2
        assert mapping_store.all_mappings(DataObjectKind.INVENTORY) == {"SKU-1": "gid://1"}

    def test_reset(self, mapping_store):
        mapping_store.upsert(PRODUCTS, "A", "gid://a")
        mapping_store.upsert(PRODUCTS, "B", "gid://b")
        mapping_store.upsert(DataObjectKind.INVENTORY, "A", "gid://inv")

        assert mapping_store.reset(PRODUCTS) == 2
        assert mapping_store.count() == 1
        assert mapping_store.reset() == 1
        assert mapping_store.count() == 0

    def test_delete_and_all_mappings(self, mapping_store):
        """delete removes one pair; deleting a missing pair is fine."""
        mapping_store.upsert(PRODUCTS, "A", "gid://a")
        mapping_store.upsert(PRODUCTS, "B", "gid://b")

        mapping_store.delete(PRODUCTS, "A")
        mapping_store.delete(PRODUCTS, "missing")

        assert mapping_store.all_mappings(PRODUCTS) == {"B": "gid://b"}

    def test_batch_lookup(self, mapping_store):
        mapping_store.upsert(PRODUCTS, "A", "gid://a")

        assert mapping_store.batch_lookup(PRODUCTS, ["A", "B"]) == {"A": "gid://a", "B": None}
        assert mapping_store.batch_lookup(PRODUCTS, []) == {}


class TestSyncStateStore:
    """Test suite for sync state transitions."""

    def test_get_creates_idle_state(self, state_store):
        state = state_store.get(PRODUCTS)
        assert state.status == "idle"
        assert state.last_sync_at is None

    def test_started_then_completed(self, state_store):
        """A successful run ends idle with last_success_at set."""
        state_store.mark_started(PRODUCTS)
        assert state_store.is_running(PRODUCTS)

        state_store.mark_completed(PRODUCTS, cursor="abc")

        state = state_store.get(PRODUCTS)
        assert state.status == "idle"
        assert state.last_sync_at is not None
        assert state.last_success_at is not None
        assert state.cursor == "abc"

    def test_failed_keeps_last_success(self, state_store):
        state_store.mark_started(PRODUCTS)
        state_store.mark_failed(PRODUCTS)

        state = state_store.get(PRODUCTS)
        assert state.status == "failed"
        assert state.last_success_at is None

    def test_all_states(self, state_store):
        state_store.get(PRODUCTS)
        state_store.get(DataObjectKind.ORDERS)
        assert [s.kind for s in state_store.all_states()] == ["orders", "products"]


class TestJobLogService:
    """Test suite for the job log."""

    def test_completed_job_records_counts(self, job_log_service):
        log_id = job_log_service.create(PRODUCTS, "sync")
        job_log_service.mark_started(log_id)
        job_log_service.mark_completed(log_id, SyncStats(processed=3, succeeded=2, failed=1))

        entry = job_log_service.recent(PRODUCTS)[0]
        assert entry["status"] == "completed"
        assert (entry["items_processed"], entry["items_succeeded"], entry["items_failed"]) == (3, 2, 1)
        assert entry["duration_ms"] is not None

    def test_failed_job_records_message(self, job_log_service):
        log_id = job_log_service.create(PRODUCTS, "sync")
        job_log_service.mark_failed(log_id, "boom")

        entry = job_log_service.recent()[0]
        assert entry["status"] == "failed"
        assert entry["error_message"] == "boom"

    def test_unknown_log_id(self, job_log_service):
        with pytest.raises(ValueError):
            job_log_service.mark_started(999)


class TestWebhookEventStore:
    """Test suite for stored webhook events."""

    def test_store_and_mark_processed(self, webhook_store):
        event_id = webhook_store.store("orders/create", "gid://shopify/Order/1", {"name": "#1001"})

        pending = webhook_store.unprocessed(["orders/create"])
        assert pending == [{
            "event_id": event_id,
            "topic": "orders/create",
            "remote_id": "gid://shopify/Order/1",
            "data": {"name": "#1001"},
        }]

        webhook_store.mark_processed(event_id)
        assert webhook_store.unprocessed() == []

    def test_cleanup_removes_old_processed_events(self, webhook_store, session_factory):
        """Only processed events past the retention window are removed."""
        old = webhook_store.store("orders/create", None, {})
        recent = webhook_store.store("orders/create", None, {})
        pending = webhook_store.store("orders/create", None, {})
        webhook_store.mark_processed(old)
        webhook_store.mark_processed(recent)
        with session_scope(session_factory) as db:
            db.get(WebhookEvent, old).processed_at = utcnow() - timedelta(days=8)

        assert webhook_store.cleanup(7) == 1
        assert [e["event_id"] for e in webhook_store.unprocessed()] == [pending]
