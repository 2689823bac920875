"""Multi-threaded catalog loader.

Work distribution:

1. Probe page 1 to learn the page count (``default_total_pages`` if the
   catalog never reports one or the probe fails).
2. Put every page number from the checkpoint onwards on a shared queue.
3. A pool of *page-workers* drains the queue.  Each worker fetches a page
   and fans its batches out onto the *vector-process* pool.
4. A counting semaphore caps simultaneous vector-store writes across all
   page-workers and all tasks of this loader, so adding page-workers
   never adds write pressure.
5. The loader joins every page-worker before the task reaches a terminal
   state.

Pages complete out of order, so ``current_page`` only records the highest
completed page.  A page whose fetch fails is re-offered once; a second
failure skips it for good.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from catalog_sync.config import settings
from catalog_sync.ingestion.loader import BaseLoader, partition
from catalog_sync.ingestion.models import LoadMode, LoadProgress
from catalog_sync.ingestion.transformer import to_documents

if TYPE_CHECKING:
    from catalog_sync.ingestion.committer import BatchCommitter
    from catalog_sync.ingestion.progress import ProgressRegistry
    from catalog_sync.ingestion.source import CatalogSource

logger = logging.getLogger(__name__)


class _PageQueue:
    """Shared page queue with a one-time requeue allowance per page."""

    def __init__(self, pages: range) -> None:
        self._queue: queue.Queue[int] = queue.Queue()
        for page_no in pages:
            self._queue.put(page_no)
        self._lock = threading.Lock()
        self._requeued: set[int] = set()
        self.skipped: list[int] = []
        self.completed = 0

    def next_page(self) -> int | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def requeue(self, page_no: int) -> bool:
        """Offer *page_no* again; ``False`` (and skipped) if it was already re-offered."""
        with self._lock:
            if page_no in self._requeued:
                self.skipped.append(page_no)
                return False
            self._requeued.add(page_no)
        self._queue.put(page_no)
        return True

    def mark_done(self) -> int:
        with self._lock:
            self.completed += 1
            return self.completed

    def remaining(self) -> list[int]:
        pages = []
        while (page_no := self.next_page()) is not None:
            pages.append(page_no)
        return pages


class ParallelLoader(BaseLoader):
    """Loader running several page-workers over a shared page queue.

    Parameters
    ----------
    source, committer, registry:
        As for :class:`~catalog_sync.ingestion.loader.BaseLoader`.
    page_size / batch_size:
        Defaults for new tasks.
    thread_count:
        Default number of page-workers per task.
    write_concurrency:
        Semaphore capacity: maximum simultaneous vector-store writes.
    vector_pool_size:
        Threads in the shared vector-process pool.
    default_total_pages:
        Page count assumed when the catalog does not report one.
    """

    mode = LoadMode.PARALLEL

    def __init__(
        self,
        source: CatalogSource,
        committer: BatchCommitter,
        registry: ProgressRegistry,
        *,
        page_size: int = settings.parallel_page_size,
        batch_size: int = settings.parallel_batch_size,
        thread_count: int = settings.thread_count,
        write_concurrency: int = settings.write_concurrency,
        vector_pool_size: int = settings.vector_pool_size,
        default_total_pages: int = settings.default_total_pages,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(source, committer, registry, page_size=page_size, batch_size=batch_size, sleep=sleep)
        self.thread_count = thread_count
        self.default_total_pages = default_total_pages
        self._write_slots = threading.BoundedSemaphore(write_concurrency)
        self._vector_pool = ThreadPoolExecutor(max_workers=vector_pool_size, thread_name_prefix="vector-process")

    def begin(self, task_id: str | None = None, *, resume: bool = False, **kwargs: Any) -> LoadProgress:
        if not resume:
            kwargs["thread_count"] = kwargs.get("thread_count") or self.thread_count
        return super().begin(task_id, resume=resume, **kwargs)

    def close(self) -> None:
        self._vector_pool.shutdown(wait=True)

    # -- execution ------------------------------------------------------------

    def _execute(self, progress: LoadProgress) -> bool:
        task_id = progress.task_id
        total_pages = self._discover_total_pages(task_id, progress.page_size)
        self._registry.update(task_id, {"total_pages": total_pages})

        work = _PageQueue(range(progress.current_page, total_pages + 1))
        workers = progress.thread_count or self.thread_count
        logger.info(
            "Task %s - %d pages to load from page %d with %d page-workers",
            task_id,
            total_pages,
            progress.current_page,
            workers,
        )

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="page-worker") as pool:
            futures = [pool.submit(self._page_worker, task_id, work, progress, index) for index in range(workers)]
            # Join every worker before deciding the outcome; the first error wins.
            errors = []
            for future in futures:
                try:
                    future.result()
                except Exception as exc:
                    errors.append(exc)
        if errors:
            raise errors[0]

        if work.skipped:
            logger.warning("Task %s - pages skipped after failed requeue: %s", task_id, sorted(work.skipped))

        remaining = work.remaining()
        if remaining:
            # Paused with pages left: rewind the checkpoint to the lowest unclaimed page.
            self._registry.update(task_id, {"current_page": min(remaining)})
            return False
        return True

    def _discover_total_pages(self, task_id: str, page_size: int) -> int:
        try:
            probe = self._source.fetch_page(1, page_size)
        except Exception:
            logger.error("Task %s - could not read the page count, assuming %d", task_id, self.default_total_pages, exc_info=True)
            return self.default_total_pages
        self._record_totals(task_id, probe)
        if probe.total_pages is None:
            return self.default_total_pages
        return probe.total_pages

    def _page_worker(self, task_id: str, work: _PageQueue, progress: LoadProgress, index: int) -> None:
        while not self._registry.is_paused(task_id):
            page_no = work.next_page()
            if page_no is None:
                return

            logger.debug("Task %s - worker %d fetching page %d", task_id, index, page_no)
            try:
                page = self._source.fetch_page(page_no, progress.page_size)
            except Exception as exc:
                if work.requeue(page_no):
                    logger.error("Task %s - worker %d failed to fetch page %d, requeued: %s", task_id, index, page_no, exc)
                else:
                    logger.error("Task %s - page %d failed again, skipping it: %s", task_id, page_no, exc)
                continue

            if page.is_empty:
                logger.debug("Task %s - worker %d found page %d empty", task_id, index, page_no)
                continue

            self._process_page(task_id, page.items, progress.batch_size, index)
            self._registry.advance_page(task_id, page_no)
            completed = work.mark_done()
            logger.info("Task %s - worker %d finished page %d (%d pages done)", task_id, index, page_no, completed)

    def _process_page(self, task_id: str, items: list[dict[str, Any]], batch_size: int, index: int) -> None:
        futures = [
            self._vector_pool.submit(self._commit_batch, task_id, batch, index)
            for batch in partition(items, batch_size)
        ]
        for future in futures:
            future.result()

    def _commit_batch(self, task_id: str, batch: list[dict[str, Any]], index: int) -> None:
        documents = to_documents(batch)
        with self._write_slots:
            try:
                result = self._committer.commit(documents, task_id)
            except Exception:
                logger.error("Task %s - worker %d batch of %d items failed", task_id, index, len(batch), exc_info=True)
                return
        if not result.made_progress:
            logger.error("Task %s - worker %d batch of %d items failed entirely, skipping it", task_id, index, len(batch))
