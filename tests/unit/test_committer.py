"""Unit tests for the batch committer's retry and degradation paths."""

from __future__ import annotations

import pytest

from catalog_sync.errors import ErrorKind, VectorStoreError
from catalog_sync.ingestion.committer import BatchCommitter
from catalog_sync.ingestion.models import LoadProgress
from catalog_sync.ingestion.progress import ProgressRegistry
from catalog_sync.ingestion.transformer import to_documents


@pytest.fixture()
def task(registry: ProgressRegistry) -> str:
    registry.put(LoadProgress(task_id="task-1"))
    return "task-1"


@pytest.fixture()
def committer(store, registry: ProgressRegistry, sleeps: list[float]) -> BatchCommitter:
    return BatchCommitter(store, registry, sleep=sleeps.append)


def _network_error() -> VectorStoreError:
    return VectorStoreError("connection reset", kind=ErrorKind.TRANSIENT_NETWORK)


class TestBulkPath:
    def test_empty_batch(self, committer: BatchCommitter, store, task: str) -> None:
        result = committer.commit([], task)
        assert (result.succeeded_count, result.attempted_count) == (0, 0)
        assert store.add_calls == []

    def test_bulk_success_credits_whole_batch(
        self, committer: BatchCommitter, store, registry: ProgressRegistry, task: str, items_factory
    ) -> None:
        result = committer.commit(to_documents(items_factory(3)), task)
        assert result.succeeded_count == 3
        assert result.all_succeeded and not result.degraded
        assert len(store.add_calls) == 1
        assert registry.require(task).processed_items == 3

    def test_bulk_retry_then_success(
        self, committer: BatchCommitter, store, sleeps: list[float], task: str, items_factory
    ) -> None:
        store.add_errors = [_network_error()]
        result = committer.commit(to_documents(items_factory(2)), task)
        assert result.succeeded_count == 2
        assert not result.degraded
        assert sleeps == [2.0]

    def test_no_task_id_skips_crediting(
        self, committer: BatchCommitter, registry: ProgressRegistry, task: str, items_factory
    ) -> None:
        result = committer.commit(to_documents(items_factory(2)))
        assert result.succeeded_count == 2
        assert registry.require(task).processed_items == 0


class TestDegradation:
    def test_transient_bulk_failure_degrades_to_items(
        self, committer: BatchCommitter, store, registry: ProgressRegistry, task: str, items_factory
    ) -> None:
        store.bulk_error = _network_error()
        documents = to_documents(items_factory(4))
        result = committer.commit(documents, task)

        assert result.degraded
        assert result.succeeded_count == len(documents)
        assert registry.require(task).processed_items == len(documents)
        # 3 bulk attempts, then one call per document
        assert [len(call) for call in store.add_calls] == [4, 4, 4, 1, 1, 1, 1]
        assert len(store.documents) == 4

    def test_bulk_backoff_and_item_throttle(
        self, committer: BatchCommitter, store, sleeps: list[float], task: str, items_factory
    ) -> None:
        store.bulk_error = _network_error()
        committer.commit(to_documents(items_factory(2)), task)
        assert sleeps == [2.0, 4.0, 0.8, 0.8]

    def test_persistent_failure_gets_five_bulk_attempts(
        self, committer: BatchCommitter, store, task: str, items_factory
    ) -> None:
        store.bulk_error = VectorStoreError("mapping conflict")
        committer.commit(to_documents(items_factory(2)), task)
        assert [len(call) for call in store.add_calls][:6] == [2, 2, 2, 2, 2, 1]

    def test_failing_items_are_skipped(
        self, committer: BatchCommitter, store, registry: ProgressRegistry, task: str, items_factory
    ) -> None:
        store.fail_ids = {"2"}
        result = committer.commit(to_documents(items_factory(3)), task)

        assert result.degraded
        assert result.succeeded_count == 2
        assert result.attempted_count == 3
        assert result.made_progress and not result.all_succeeded
        assert registry.require(task).processed_items == 2
        assert store.item_ids() == ["1", "3"]

    def test_total_failure_is_soft(
        self, committer: BatchCommitter, store, registry: ProgressRegistry, task: str, items_factory
    ) -> None:
        store.fail_ids = {"1", "2"}
        result = committer.commit(to_documents(items_factory(2)), task)
        assert result.succeeded_count == 0
        assert not result.made_progress
        assert registry.require(task).processed_items == 0
