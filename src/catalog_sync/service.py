"""Job-control façade over the loaders, the reconciler and the retriever.

The web surface and the pipeline component both go through
:class:`CatalogSyncService`; nothing else needs to know how the pieces
are wired.  Load tasks run on a background *data-fetch* pool: starting
or resuming a task registers its checkpoint synchronously (so the task
id is immediately queryable) and returns without waiting for the load.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from catalog_sync.config import settings
from catalog_sync.errors import IngestionError
from catalog_sync.ingestion.committer import BatchCommitter
from catalog_sync.ingestion.loader import BaseLoader, SequentialLoader
from catalog_sync.ingestion.models import CatalogRecord, LoadMode, LoadProgress, TaskStatus
from catalog_sync.ingestion.parallel import ParallelLoader
from catalog_sync.ingestion.progress import ProgressRegistry
from catalog_sync.ingestion.source import CatalogSource, HttpCatalogSource
from catalog_sync.retrieval.models import MetadataFilter, SearchHit
from catalog_sync.retrieval.retriever import CatalogRetriever
from catalog_sync.sync.events import SyncEvent
from catalog_sync.sync.reconciler import SyncReconciler

if TYPE_CHECKING:
    from catalog_sync.retrieval.base import VectorStoreBase
    from catalog_sync.sync.transport import SyncEventPublisher

logger = logging.getLogger(__name__)

# name -> (page size, batch size); small pages and batches for fragile write paths
PRESETS: dict[str, tuple[int, int]] = {
    "safe": (20, 3),
    "ultra-safe": (10, 1),
}


class CatalogSyncService:
    """Everything an operator can do with the catalog index.

    Parameters
    ----------
    store:
        Vector store; defaults to a
        :class:`~catalog_sync.retrieval.chroma_store.ChromaVectorStore`.
    source:
        Catalog source; defaults to :class:`HttpCatalogSource`.
    registry:
        Progress registry shared by both loaders.
    publisher:
        Event publisher; created lazily from settings on first publish.
    fetch_pool_size:
        Background task runners (concurrent load tasks).
    sleep:
        Injected sleep function forwarded to loaders and committer.
    """

    def __init__(
        self,
        store: VectorStoreBase | None = None,
        source: CatalogSource | None = None,
        *,
        registry: ProgressRegistry | None = None,
        publisher: SyncEventPublisher | None = None,
        fetch_pool_size: int = settings.fetch_pool_size,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if store is None:
            from catalog_sync.retrieval.chroma_store import ChromaVectorStore

            store = ChromaVectorStore()
        source = source or HttpCatalogSource()

        self.store = store
        self.registry = registry or ProgressRegistry()
        committer = BatchCommitter(store, self.registry, sleep=sleep)
        self._loaders: dict[LoadMode, BaseLoader] = {
            LoadMode.SEQUENTIAL: SequentialLoader(source, committer, self.registry, sleep=sleep),
            LoadMode.PARALLEL: ParallelLoader(source, committer, self.registry, sleep=sleep),
        }
        self.source = source
        self.reconciler = SyncReconciler(store, source)
        self.retriever = CatalogRetriever(store)
        self._publisher = publisher
        self._runners = ThreadPoolExecutor(max_workers=fetch_pool_size, thread_name_prefix="data-fetch")
        self._futures: dict[str, Future] = {}

    # ── Load tasks ────────────────────────────────────────────────────

    def start_load(
        self,
        *,
        page_size: int | None = None,
        batch_size: int | None = None,
        thread_count: int | None = None,
        mode: LoadMode | str = LoadMode.SEQUENTIAL,
        task_id: str | None = None,
    ) -> LoadProgress:
        """Register a new load task and run it in the background."""
        loader = self.loader(mode)
        options: dict[str, Any] = {}
        if loader.mode is LoadMode.PARALLEL:
            options["thread_count"] = thread_count
        progress = loader.begin(task_id, page_size=page_size, batch_size=batch_size, **options)
        self._submit(loader, progress.task_id)
        return progress

    def start_preset(self, name: str, *, mode: LoadMode | str = LoadMode.SEQUENTIAL) -> LoadProgress:
        """Start a load with one of the :data:`PRESETS` page/batch sizes."""
        try:
            page_size, batch_size = PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown preset {name!r}; choose from {sorted(PRESETS)}") from None
        logger.info("Starting %s load with preset %r", LoadMode(mode).value, name)
        return self.start_load(page_size=page_size, batch_size=batch_size, mode=mode)

    def resume_load(
        self,
        task_id: str,
        *,
        page_size: int | None = None,
        batch_size: int | None = None,
        thread_count: int | None = None,
    ) -> LoadProgress:
        """Continue *task_id* from its checkpoint with its stored parameters.

        Raises
        ------
        TaskNotFoundError
            Unknown task id.
        TaskInUseError
            The task is still being worked on.
        ValueError
            The task already completed.
        """
        record = self.registry.require(task_id)
        if record.status is TaskStatus.COMPLETED:
            raise ValueError(f"Task {task_id} already completed")
        loader = self.loader(record.mode)
        options: dict[str, Any] = {}
        if loader.mode is LoadMode.PARALLEL:
            options["thread_count"] = thread_count
        progress = loader.begin(task_id, resume=True, page_size=page_size, batch_size=batch_size, **options)
        self._submit(loader, task_id)
        return progress

    def get_progress(self, task_id: str) -> LoadProgress | None:
        return self.registry.get(task_id)

    def list_progress(self) -> dict[str, LoadProgress]:
        return self.registry.all()

    def pause(self, task_id: str) -> bool:
        """Ask a running task to stop at its next page boundary."""
        self.registry.require(task_id)
        paused = self.registry.pause(task_id)
        if paused:
            logger.info("Task %s - pause requested", task_id)
        return paused

    def remove(self, task_id: str) -> bool:
        """Forget a task's checkpoint; refused while the task is running."""
        removed = self.registry.remove(task_id)
        if removed:
            self._futures.pop(task_id, None)
        return removed

    def wait(self, task_id: str, timeout: float | None = None) -> LoadProgress:
        """Block until the background run of *task_id* finishes.

        Raises
        ------
        IngestionError
            The run failed (the record is already marked ``FAILED``).
        """
        future = self._futures.get(task_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.registry.require(task_id)

    def loader(self, mode: LoadMode | str) -> BaseLoader:
        return self._loaders[LoadMode(mode)]

    def _submit(self, loader: BaseLoader, task_id: str) -> None:
        try:
            self._futures[task_id] = self._runners.submit(loader.run, task_id)
        except RuntimeError as exc:
            # Executor already shut down: undo the claim taken by begin().
            self.registry.set_status(task_id, TaskStatus.FAILED, error_message=str(exc))
            self.registry.release(task_id)
            raise IngestionError(f"Could not schedule task {task_id}") from exc

    # ── Direct sync ───────────────────────────────────────────────────

    def sync_create(self, item_id: int, record: CatalogRecord | dict[str, Any] | None = None) -> bool:
        return self.reconciler.handle_create(item_id, record)

    def sync_update(self, item_id: int, record: CatalogRecord | dict[str, Any] | None = None) -> bool:
        return self.reconciler.handle_update(item_id, record)

    def sync_delete(self, item_id: int) -> int:
        return self.reconciler.handle_delete(item_id)

    def sync_batch(self, records: Iterable[CatalogRecord | dict[str, Any]]) -> int:
        return self.reconciler.batch_sync(records)

    def sync_batch_by_ids(self, item_ids: list[int]) -> int:
        """Fetch *item_ids* from the catalog and bulk-index them."""
        return self.reconciler.batch_sync(self.source.fetch_by_ids(item_ids))

    def publish_event(self, event: SyncEvent) -> str:
        """Put *event* on the broker; returns the routing key used."""
        if self._publisher is None:
            from catalog_sync.sync.transport import SyncEventPublisher

            self._publisher = SyncEventPublisher()
        return self._publisher.publish(event)

    # ── Search ────────────────────────────────────────────────────────

    def search(self, query: str, *, k: int | None = None, filters: list[MetadataFilter] | None = None) -> list[SearchHit]:
        return self.retriever.search(query, k=k, filters=filters)

    def health(self) -> bool:
        try:
            return self.store.health_check()
        except Exception:
            logger.warning("Vector store health check failed", exc_info=True)
            return False

    def close(self) -> None:
        self._runners.shutdown(wait=True)
        for loader in self._loaders.values():
            close = getattr(loader, "close", None)
            if close is not None:
                close()
        if self._publisher is not None:
            self._publisher.close()
