"""Thread-safe registry of ingestion task checkpoints.

Every mutation is an atomic read-modify-write of the whole
:class:`LoadProgress` record under one lock, so concurrent page-workers
updating the same task never lose each other's increments.  Records are
stored as immutable snapshots; readers always receive a copy they can
hold on to without observing later changes.

A task id can be *claimed* by at most one loader at a time.  Claims are
released by the loader when its run ends, whatever the outcome.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from catalog_sync.errors import TaskInUseError, TaskNotFoundError
from catalog_sync.ingestion.models import LoadProgress, TaskStatus, utcnow

logger = logging.getLogger(__name__)

Changes = Mapping[str, Any]


class ProgressRegistry:
    """In-memory key-value store of :class:`LoadProgress` records."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, LoadProgress] = {}
        self._owners: set[str] = set()

    # -- reads ----------------------------------------------------------------

    def get(self, task_id: str) -> LoadProgress | None:
        with self._lock:
            return self._records.get(task_id)

    def require(self, task_id: str) -> LoadProgress:
        progress = self.get(task_id)
        if progress is None:
            raise TaskNotFoundError(f"No load task with id {task_id!r}")
        return progress

    def all(self) -> dict[str, LoadProgress]:
        with self._lock:
            return dict(self._records)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # -- writes ---------------------------------------------------------------

    def put(self, progress: LoadProgress) -> LoadProgress:
        """Insert or replace the record for ``progress.task_id``."""
        with self._lock:
            self._records[progress.task_id] = progress
            return progress

    def get_or_create(self, task_id: str, factory: Callable[[], LoadProgress]) -> LoadProgress:
        """Return the existing record or atomically insert ``factory()``."""
        with self._lock:
            existing = self._records.get(task_id)
            if existing is not None:
                return existing
            created = factory()
            if created.task_id != task_id:
                created = created.model_copy(update={"task_id": task_id})
            self._records[task_id] = created
            return created

    def update(
        self,
        task_id: str,
        changes: Changes | Callable[[LoadProgress], Changes | None],
    ) -> LoadProgress:
        """Apply *changes* to the record atomically and return the new snapshot.

        Parameters
        ----------
        task_id:
            Record to mutate.
        changes:
            Either a mapping of field updates, or a function receiving the
            current snapshot and returning such a mapping (``None`` means
            "nothing to change").  The function runs while the lock is
            held, which makes it a compare-and-swap: it always sees the
            latest value.

        Raises
        ------
        TaskNotFoundError
            If no record exists for *task_id*.
        """
        with self._lock:
            current = self._records.get(task_id)
            if current is None:
                raise TaskNotFoundError(f"No load task with id {task_id!r}")
            delta = changes(current) if callable(changes) else changes
            delta = dict(delta or {})
            if "processed_items" in delta and delta["processed_items"] < current.processed_items:
                raise ValueError("processed_items must never decrease")
            # last_update_time never moves backwards, even if the wall clock does.
            delta["last_update_time"] = max(utcnow(), current.last_update_time)
            updated = current.model_copy(update=delta)
            self._records[task_id] = updated
            return updated

    def touch(self, task_id: str) -> LoadProgress:
        return self.update(task_id, {})

    def add_processed(self, task_id: str, count: int) -> LoadProgress:
        """Credit *count* confirmed writes to the task."""
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        return self.update(task_id, lambda p: {"processed_items": p.processed_items + count})

    def advance_page(self, task_id: str, page_no: int) -> LoadProgress:
        """Move ``current_page`` to ``max(current_page, page_no)``."""
        return self.update(
            task_id,
            lambda p: {"current_page": page_no} if page_no > p.current_page else None,
        )

    def set_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        error_message: str | None = None,
    ) -> LoadProgress:
        changes: dict[str, Any] = {"status": status}
        if status is TaskStatus.FAILED:
            changes["error_message"] = error_message
        elif status is TaskStatus.RUNNING:
            changes["error_message"] = None
        return self.update(task_id, changes)

    def pause(self, task_id: str) -> bool:
        """Flip a RUNNING task to PAUSED; ``False`` for any other state."""
        with self._lock:
            current = self._records.get(task_id)
            if current is None or current.status is not TaskStatus.RUNNING:
                return False
            self.set_status(task_id, TaskStatus.PAUSED)
        logger.info("Task %s paused", task_id)
        return True

    def is_paused(self, task_id: str) -> bool:
        progress = self.get(task_id)
        return progress is not None and progress.status is TaskStatus.PAUSED

    def remove(self, task_id: str) -> bool:
        """Delete a record.  Records owned by a running loader are kept."""
        with self._lock:
            if task_id in self._owners:
                logger.warning("Refusing to remove task %s while a loader owns it", task_id)
                return False
            removed = self._records.pop(task_id, None)
        if removed is None:
            return False
        logger.info("Progress record for task %s removed", task_id)
        return True

    # -- ownership ------------------------------------------------------------

    def claim(self, task_id: str) -> None:
        """Mark *task_id* as owned by the calling loader.

        Raises
        ------
        TaskInUseError
            If another loader already owns the task.
        """
        with self._lock:
            if task_id in self._owners:
                raise TaskInUseError(f"Task {task_id!r} is already being loaded")
            self._owners.add(task_id)

    def release(self, task_id: str) -> None:
        with self._lock:
            self._owners.discard(task_id)

    def is_claimed(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._owners
