"""Unit tests for applying sync events to the vector store."""

from __future__ import annotations

import pytest

from catalog_sync.errors import PageFetchError, SyncError
from catalog_sync.ingestion.models import CatalogRecord
from catalog_sync.sync.events import EventType, SyncEvent
from catalog_sync.sync.reconciler import SyncReconciler


@pytest.fixture()
def source(source_factory, items_factory):
    return source_factory(items_factory(5))


@pytest.fixture()
def reconciler(store, source) -> SyncReconciler:
    return SyncReconciler(store, source)


class TestSyncEvent:
    def test_accepts_camel_case(self) -> None:
        event = SyncEvent.model_validate(
            {"itemId": 3, "eventType": "update", "itemData": {"id": 3, "name": "X", "isAD": True}, "operatorId": "ops"}
        )
        assert event.item_id == 3
        assert event.event_type is EventType.UPDATE
        assert event.item_data.is_ad is True
        assert event.operator_id == "ops"
        assert event.timestamp is not None

    def test_unknown_type_is_none(self) -> None:
        assert SyncEvent.model_validate({"itemId": 1, "eventType": "UPSERT"}).event_type is None
        assert SyncEvent.model_validate({"itemId": 1}).event_type is None

    def test_wire_format_is_camel_case(self) -> None:
        wire = SyncEvent.delete(9, source="admin").to_wire()
        assert wire["itemId"] == 9
        assert wire["eventType"] == "DELETE"
        assert wire["source"] == "admin"


class TestCreate:
    def test_create_with_embedded_record(self, reconciler: SyncReconciler, store) -> None:
        assert reconciler.handle_create(99, CatalogRecord(id=99, name="Embedded")) is True
        assert store.item_ids() == ["99"]

    def test_create_fetches_missing_record(self, reconciler: SyncReconciler, store) -> None:
        reconciler.handle(SyncEvent.create(2))
        assert store.item_ids() == ["2"]
        assert "Name: Item 2" in next(iter(store.documents.values())).page_content

    def test_create_unknown_item_is_skipped(self, reconciler: SyncReconciler, store) -> None:
        assert reconciler.handle_create(404) is False
        assert store.documents == {}

    def test_create_fetch_error_is_skipped(self, store, source) -> None:
        def failing_fetch(item_id):
            raise PageFetchError("catalog down")

        source.fetch_by_id = failing_fetch
        assert SyncReconciler(store, source).handle_create(1) is False
        assert store.documents == {}

    def test_add_failure_raises_sync_error(self, reconciler: SyncReconciler, store) -> None:
        store.add_errors = [RuntimeError("index read-only")]
        with pytest.raises(SyncError) as excinfo:
            reconciler.handle_create(1)
        assert str(excinfo.value) == "Indexing item 1 failed"
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_untyped_event_is_created(self, reconciler: SyncReconciler, store) -> None:
        reconciler.handle(SyncEvent(item_id=3))
        assert store.item_ids() == ["3"]


class TestUpdate:
    def test_update_twice_leaves_one_document(self, reconciler: SyncReconciler, store) -> None:
        event = SyncEvent.update(1, CatalogRecord(id=1, name="Renamed"))
        reconciler.handle(event)
        reconciler.handle(event)

        assert store.item_ids() == ["1"]
        assert next(iter(store.documents.values())).page_content == "Name: Renamed"

    def test_update_replaces_only_the_target_item(self, reconciler: SyncReconciler, store) -> None:
        reconciler.handle_create(1)
        reconciler.handle_create(11, CatalogRecord(id=11, name="Similar id"))
        reconciler.handle_update(1, CatalogRecord(id=1, name="New"))
        assert store.item_ids() == ["1", "11"]

    def test_delete_failure_does_not_block_update(self, reconciler: SyncReconciler, store) -> None:
        store.search_error = RuntimeError("search unavailable")
        assert reconciler.handle_update(1) is True
        assert store.item_ids() == ["1"]


class TestDelete:
    def test_delete_removes_all_matches(self, reconciler: SyncReconciler, store) -> None:
        reconciler.handle_create(2)
        reconciler.handle_create(2)
        reconciler.handle_create(3)
        assert reconciler.handle(SyncEvent.delete(2)) is None
        assert store.item_ids() == ["3"]

    def test_delete_filters_by_item_id(self, reconciler: SyncReconciler, store) -> None:
        reconciler.handle_delete(4)
        assert [(f.field, f.value) for f in store.last_filters] == [("id", "4")]

    def test_delete_errors_are_swallowed(self, reconciler: SyncReconciler, store) -> None:
        reconciler.handle_create(2)
        store.delete_error = RuntimeError("delete refused")
        assert reconciler.handle_delete(2) == 0
        assert store.item_ids() == ["2"]


class TestBatchSync:
    def test_batch_sync_adds_in_one_call(self, reconciler: SyncReconciler, store, items_factory) -> None:
        assert reconciler.batch_sync(items_factory(4)) == 4
        assert len(store.add_calls) == 1

    def test_empty_batch(self, reconciler: SyncReconciler, store) -> None:
        assert reconciler.batch_sync([]) == 0
        assert store.add_calls == []

    def test_batch_failure_raises(self, reconciler: SyncReconciler, store, items_factory) -> None:
        store.add_errors = [RuntimeError("boom")]
        with pytest.raises(SyncError):
            reconciler.batch_sync(items_factory(2))
