"""Batch committer — writes document batches with retry and degradation.

Algorithm for one batch:

1. Bulk-write the whole batch under the bulk ladder (exponential backoff
   for network blips, linear backoff for everything else, one shared
   attempt counter).
2. If the ladder gives up, *degrade*: write each document on its own
   under the per-item ladder, crediting every individual success to the
   task immediately and throttling between items.
3. Items that exhaust their own retries are logged and skipped.

Progress is only ever credited after a write has been confirmed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from catalog_sync.config import settings
from catalog_sync.errors import classify_error
from catalog_sync.ingestion.models import CommitResult
from catalog_sync.ingestion.retry import RetryLadder, bulk_write_ladder, item_write_ladder

if TYPE_CHECKING:
    from langchain_core.documents import Document

    from catalog_sync.ingestion.progress import ProgressRegistry
    from catalog_sync.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class BatchCommitter:
    """Commit document batches to a vector store.

    Parameters
    ----------
    store:
        Destination vector store.
    registry:
        Progress registry credited with every confirmed write.
    bulk_ladder / item_ladder:
        Retry ladders for whole-batch and single-document writes.
        Defaults are built from settings with the same *sleep* function.
    inter_item_delay:
        Seconds to wait after each successful per-item write.
    sleep:
        Injected sleep function (tests pass a no-op).
    """

    def __init__(
        self,
        store: VectorStoreBase,
        registry: ProgressRegistry,
        *,
        bulk_ladder: RetryLadder | None = None,
        item_ladder: RetryLadder | None = None,
        inter_item_delay: float = settings.inter_item_delay,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._registry = registry
        self._bulk = bulk_ladder or bulk_write_ladder(sleep=sleep)
        self._item = item_ladder or item_write_ladder(sleep=sleep)
        self._inter_item_delay = inter_item_delay
        self._sleep = sleep

    def commit(self, documents: list[Document], task_id: str | None = None) -> CommitResult:
        """Write *documents*, degrading to per-item writes if the batch keeps failing.

        Parameters
        ----------
        documents:
            The batch to store.
        task_id:
            Task credited with successful writes; ``None`` skips crediting.

        Returns
        -------
        CommitResult
            ``succeeded_count`` is the number of documents confirmed written.
            Zero is a soft failure: callers log it and move on.
        """
        if not documents:
            return CommitResult(succeeded_count=0, attempted_count=0)

        try:
            self._bulk.call(self._store.add, list(documents), label=f"Task {task_id} bulk write")
        except Exception as exc:
            logger.warning(
                "Task %s - bulk write of %d documents gave up (%s: %s), switching to per-item writes",
                task_id,
                len(documents),
                classify_error(exc).value,
                exc,
            )
            return self._commit_items(documents, task_id)

        self._credit(task_id, len(documents))
        logger.debug("Task %s - bulk write of %d documents succeeded", task_id, len(documents))
        return CommitResult(succeeded_count=len(documents), attempted_count=len(documents))

    def _commit_items(self, documents: list[Document], task_id: str | None) -> CommitResult:
        succeeded = 0
        failed = 0
        for index, document in enumerate(documents, 1):
            try:
                self._item.call(self._store.add, [document], label=f"Task {task_id} item write")
            except Exception as exc:
                failed += 1
                logger.warning(
                    "Task %s - skipping item %s after repeated failures: %s",
                    task_id,
                    document.metadata.get("id"),
                    exc,
                )
                continue

            succeeded += 1
            self._credit(task_id, 1)
            logger.debug("Task %s - item write succeeded (%d/%d)", task_id, index, len(documents))
            self._sleep(self._inter_item_delay)

        logger.info(
            "Task %s - per-item writes finished: %d succeeded, %d failed",
            task_id,
            succeeded,
            failed,
        )
        return CommitResult(succeeded_count=succeeded, attempted_count=len(documents), degraded=True)

    def _credit(self, task_id: str | None, count: int) -> None:
        if task_id is not None:
            self._registry.add_processed(task_id, count)
