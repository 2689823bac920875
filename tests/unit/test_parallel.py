"""Unit tests for the multi-threaded loader."""

from __future__ import annotations

import threading
import time

import pytest

from catalog_sync.ingestion.committer import BatchCommitter
from catalog_sync.ingestion.models import LoadMode, TaskStatus
from catalog_sync.ingestion.parallel import ParallelLoader
from catalog_sync.ingestion.progress import ProgressRegistry


def _no_sleep(_seconds: float) -> None:
    pass


@pytest.fixture()
def make_loader(store, registry: ProgressRegistry):
    created: list[ParallelLoader] = []

    def _make(source, **kwargs) -> ParallelLoader:
        committer = BatchCommitter(store, registry, sleep=_no_sleep)
        options = {
            "page_size": 10,
            "batch_size": 3,
            "thread_count": 3,
            "write_concurrency": 2,
            "vector_pool_size": 4,
            "default_total_pages": 5,
            "sleep": _no_sleep,
        }
        options.update(kwargs)
        loader = ParallelLoader(source, committer, registry, **options)
        created.append(loader)
        return loader

    yield _make
    for loader in created:
        loader.close()


class TestCoverage:
    def test_every_page_is_loaded(self, make_loader, store, registry, source_factory, items_factory) -> None:
        source = source_factory(items_factory(95))
        task_id = make_loader(source).load()

        progress = registry.require(task_id)
        assert progress.status is TaskStatus.COMPLETED
        assert progress.mode is LoadMode.PARALLEL
        assert progress.thread_count == 3
        assert progress.processed_items == 95
        assert progress.total_pages == 10
        assert progress.current_page == 10
        assert set(source.fetched_pages) == set(range(1, 11))
        assert store.item_ids() == [str(i) for i in range(1, 96)]

    def test_unknown_page_count_uses_default(self, make_loader, registry, source_factory, items_factory) -> None:
        source = source_factory(items_factory(25), report_totals=False)
        task_id = make_loader(source, default_total_pages=5).load()

        progress = registry.require(task_id)
        assert progress.status is TaskStatus.COMPLETED
        assert progress.total_pages == 5
        assert progress.processed_items == 25
        assert set(source.fetched_pages) == {1, 2, 3, 4, 5}

    def test_probe_failure_falls_back_to_default(self, make_loader, registry, source_factory, items_factory) -> None:
        source = source_factory(items_factory(25), page_failures={1: 1})
        task_id = make_loader(source, default_total_pages=3).load()

        progress = registry.require(task_id)
        assert progress.status is TaskStatus.COMPLETED
        assert progress.processed_items == 25

    def test_zero_pages_completes_immediately(self, make_loader, registry, store, source_factory) -> None:
        task_id = make_loader(source_factory([])).load()
        progress = registry.require(task_id)
        assert progress.status is TaskStatus.COMPLETED
        assert progress.total_pages == 0
        assert store.add_calls == []

    def test_thread_count_override(self, make_loader, registry, source_factory, items_factory) -> None:
        task_id = make_loader(source_factory(items_factory(10))).load(thread_count=5)
        assert registry.require(task_id).thread_count == 5


class TestFetchFailures:
    def test_failed_page_is_requeued_once(self, make_loader, registry, source_factory, items_factory) -> None:
        source = source_factory(items_factory(95), page_failures={4: 1})
        task_id = make_loader(source).load()

        progress = registry.require(task_id)
        assert progress.status is TaskStatus.COMPLETED
        assert progress.processed_items == 95
        assert source.fetched_pages.count(4) == 2

    def test_page_failing_twice_is_skipped(self, make_loader, store, registry, source_factory, items_factory) -> None:
        source = source_factory(items_factory(95), page_failures={4: 5})
        task_id = make_loader(source).load()

        progress = registry.require(task_id)
        assert progress.status is TaskStatus.COMPLETED
        assert progress.processed_items == 85
        assert source.fetched_pages.count(4) == 2
        assert "31" not in store.item_ids()


class TestBoundedWrites:
    def test_semaphore_caps_concurrent_writes(self, make_loader, store, source_factory, items_factory) -> None:
        original_add = store.add
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}

        def tracking_add(documents):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            try:
                time.sleep(0.005)
                return original_add(documents)
            finally:
                with lock:
                    state["active"] -= 1

        store.add = tracking_add
        make_loader(source_factory(items_factory(120)), thread_count=4, write_concurrency=2, vector_pool_size=8).load()

        assert 1 <= state["peak"] <= 2
        assert len(store.documents) == 120


class TestPause:
    def test_pause_keeps_lowest_unfinished_page(self, make_loader, store, registry, source_factory, items_factory) -> None:
        original_add = store.add

        def pausing_add(documents):
            registry.pause("job")
            return original_add(documents)

        store.add = pausing_add
        source = source_factory(items_factory(25))
        make_loader(source, thread_count=1, batch_size=10).load("job")

        paused = registry.require("job")
        assert paused.status is TaskStatus.PAUSED
        assert paused.current_page == 2
        assert paused.processed_items == 10

        store.add = original_add
        make_loader(source, thread_count=1, batch_size=10).load("job", resume=True)
        done = registry.require("job")
        assert done.status is TaskStatus.COMPLETED
        assert done.processed_items == 25
