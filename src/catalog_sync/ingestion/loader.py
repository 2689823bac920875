"""Resumable catalog loaders.

:class:`BaseLoader` owns the task lifecycle shared by every loader:
registering or reloading a checkpoint, claiming the task id, marking the
outcome, and releasing the claim.  :class:`SequentialLoader` walks the
catalog page by page in strict order, so ``current_page`` and
``processed_items`` always describe a consistent prefix of the work.

Pausing is cooperative: :meth:`ProgressRegistry.pause` flips the status
to ``PAUSED`` and the loader stops at the next page boundary, keeping
its checkpoint so the task can be resumed later.  In-flight batches are
always finished first.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import uuid4

from catalog_sync.config import settings
from catalog_sync.errors import IngestionError
from catalog_sync.ingestion.models import LoadMode, LoadProgress, PageResult, TaskStatus
from catalog_sync.ingestion.transformer import to_documents

if TYPE_CHECKING:
    from catalog_sync.ingestion.committer import BatchCommitter
    from catalog_sync.ingestion.progress import ProgressRegistry
    from catalog_sync.ingestion.source import CatalogSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Slice *items* into consecutive chunks of *size*; the last may be shorter."""
    if size < 1:
        raise ValueError(f"size must be positive, got {size}")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


class BaseLoader(ABC):
    """Task lifecycle shared by the sequential and parallel loaders.

    Parameters
    ----------
    source:
        Catalog page source.
    committer:
        Batch committer writing documents to the vector store.
    registry:
        Progress registry holding every task's checkpoint.
    page_size / batch_size:
        Defaults for new tasks.
    sleep:
        Injected sleep function (tests pass a no-op).
    """

    mode: LoadMode

    def __init__(
        self,
        source: CatalogSource,
        committer: BatchCommitter,
        registry: ProgressRegistry,
        *,
        page_size: int,
        batch_size: int,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._source = source
        self._committer = committer
        self._registry = registry
        self.page_size = page_size
        self.batch_size = batch_size
        self._sleep = sleep

    # -- lifecycle ------------------------------------------------------------

    def begin(
        self,
        task_id: str | None = None,
        *,
        resume: bool = False,
        page_size: int | None = None,
        batch_size: int | None = None,
        **options: Any,
    ) -> LoadProgress:
        """Register a new task (or reload an existing one) and claim it.

        Parameters
        ----------
        task_id:
            Id for the new task (generated when ``None``), or the task to
            resume.
        resume:
            Continue an existing task from its stored ``current_page``
            instead of starting over.
        page_size / batch_size:
            Overrides; on resume the stored values are kept unless given.
        options:
            Loader-specific parameters persisted on the checkpoint.

        Raises
        ------
        TaskNotFoundError
            When resuming an unknown task.
        TaskInUseError
            When another loader currently owns the task.
        ValueError
            When starting a new task under an id that already exists.
        """
        if resume:
            if task_id is None:
                raise ValueError("resume requires a task_id")
            self._registry.require(task_id)
            self._registry.claim(task_id)
            changes: dict[str, Any] = {"status": TaskStatus.RUNNING, "error_message": None, "mode": self.mode}
            if page_size:
                changes["page_size"] = page_size
            if batch_size:
                changes["batch_size"] = batch_size
            changes.update({k: v for k, v in options.items() if v is not None})
            progress = self._registry.update(task_id, changes)
            logger.info("Resuming %s load task %s from page %d", self.mode.value, task_id, progress.current_page)
            return progress

        task_id = task_id or str(uuid4())
        if task_id in self._registry:
            raise ValueError(f"Task {task_id!r} already exists; resume it instead")
        self._registry.claim(task_id)
        progress = LoadProgress(
            task_id=task_id,
            page_size=page_size or self.page_size,
            batch_size=batch_size or self.batch_size,
            mode=self.mode,
            **{k: v for k, v in options.items() if v is not None},
        )
        self._registry.put(progress)
        logger.info(
            "Starting %s load task %s (page size %d, batch size %d)",
            self.mode.value,
            task_id,
            progress.page_size,
            progress.batch_size,
        )
        return progress

    def run(self, task_id: str) -> LoadProgress:
        """Execute a task prepared by :meth:`begin` and release its claim.

        The task ends ``COMPLETED`` when the catalog is exhausted, stays
        ``PAUSED`` when a pause stopped it early, and is marked ``FAILED``
        (then re-raised as :class:`IngestionError`) on any error.  A process
        interruption is recorded as a failure, never as a pause.
        """
        try:
            progress = self._registry.require(task_id)
            finished = self._execute(progress)
            if finished:
                self._registry.set_status(task_id, TaskStatus.COMPLETED)
                final = self._registry.require(task_id)
                logger.info("Task %s - load complete, %d items processed", task_id, final.processed_items)
            else:
                logger.info("Task %s - stopped early on pause, checkpoint kept", task_id)
        except KeyboardInterrupt:
            logger.error("Task %s - interrupted", task_id)
            self._registry.set_status(task_id, TaskStatus.FAILED, error_message="interrupted")
            raise
        except Exception as exc:
            logger.error("Task %s - load failed", task_id, exc_info=True)
            self._registry.set_status(task_id, TaskStatus.FAILED, error_message=str(exc))
            raise IngestionError(f"Loading catalog items failed: {exc}") from exc
        finally:
            self._registry.release(task_id)
        return self._registry.require(task_id)

    def load(
        self,
        task_id: str | None = None,
        *,
        resume: bool = False,
        page_size: int | None = None,
        batch_size: int | None = None,
        **options: Any,
    ) -> str:
        """:meth:`begin` + :meth:`run` in the calling thread; returns the task id."""
        progress = self.begin(task_id, resume=resume, page_size=page_size, batch_size=batch_size, **options)
        self.run(progress.task_id)
        return progress.task_id

    # -- helpers --------------------------------------------------------------

    def _record_totals(self, task_id: str, page: PageResult) -> None:
        changes: dict[str, Any] = {}
        if page.total_pages is not None:
            changes["total_pages"] = page.total_pages
        if page.total_items is not None:
            changes["total_items"] = page.total_items
        if changes:
            self._registry.update(task_id, changes)

    @abstractmethod
    def _execute(self, progress: LoadProgress) -> bool:
        """Do the work; return ``True`` when the catalog was exhausted."""
        ...


class SequentialLoader(BaseLoader):
    """Single-worker loader: pages and batches strictly in order.

    ``FETCH_PAGE → NO_DATA: stop | SHORT_PAGE: process, stop |
    FULL_PAGE: process, advance, continue``.  A page-fetch failure is fatal
    and leaves ``current_page`` on the failed page, so resuming retries it.
    """

    mode = LoadMode.SEQUENTIAL

    def __init__(
        self,
        source: CatalogSource,
        committer: BatchCommitter,
        registry: ProgressRegistry,
        *,
        page_size: int = settings.page_size,
        batch_size: int = settings.batch_size,
        inter_batch_delay: float = settings.inter_batch_delay,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(source, committer, registry, page_size=page_size, batch_size=batch_size, sleep=sleep)
        self._inter_batch_delay = inter_batch_delay

    def _execute(self, progress: LoadProgress) -> bool:
        task_id = progress.task_id
        page_size = progress.page_size
        while True:
            if self._registry.is_paused(task_id):
                return False

            page_no = self._registry.require(task_id).current_page
            logger.info("Task %s - fetching page %d (%d per page)", task_id, page_no, page_size)
            page = self._source.fetch_page(page_no, page_size)
            self._record_totals(task_id, page)

            if page.is_empty:
                logger.info("Task %s - page %d is empty, no more data", task_id, page_no)
                return True

            self._process_page(task_id, page.items, progress.batch_size)
            logger.info(
                "Task %s - page %d done, %d items processed so far",
                task_id,
                page_no,
                self._registry.require(task_id).processed_items,
            )

            if page.is_last_page(page_size):
                logger.info("Task %s - page %d is the last page", task_id, page_no)
                return True

            self._registry.update(task_id, {"current_page": page_no + 1})

    def _process_page(self, task_id: str, items: list[dict[str, Any]], batch_size: int) -> None:
        for batch in partition(items, batch_size):
            result = self._committer.commit(to_documents(batch), task_id)
            if not result.made_progress:
                logger.error("Task %s - batch of %d items failed entirely, skipping it", task_id, len(batch))
            self._registry.touch(task_id)
            self._sleep(self._inter_batch_delay)
