"""Domain models for catalog records, page results and load progress."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class LoadMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class CatalogRecord(BaseModel):
    """One item as served by the catalog service.

    Field names follow Python conventions; the upstream camelCase names
    (``commentCount``, ``isAD``) are accepted as aliases so raw JSON can
    be validated directly.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | None = None
    name: str | None = None
    price: float | None = None
    stock: int | None = None
    image: str | None = None
    category: str | None = None
    brand: str | None = None
    spec: str | None = None
    sold: int | None = None
    comment_count: int | None = Field(default=None, alias="commentCount")
    is_ad: bool | None = Field(default=None, alias="isAD")
    status: int | None = None


class PageResult(BaseModel):
    """One page of raw catalog items.

    Attributes
    ----------
    items:
        Raw item mappings, untouched so that malformed records still reach
        the transformer instead of failing the whole page.
    total_items:
        Total item count, when the upstream reports it.
    total_pages:
        Total page count, when the upstream reports it.
    """

    items: list[dict[str, Any]] = Field(default_factory=list)
    total_items: int | None = None
    total_pages: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def is_last_page(self, page_size: int) -> bool:
        """A page shorter than *page_size* is the final one."""
        return len(self.items) < page_size


class LoadProgress(BaseModel):
    """Checkpoint of one ingestion task.

    Attributes
    ----------
    task_id:
        Opaque identifier; generated on creation, supplied on resume.
    status:
        Lifecycle state, ``RUNNING`` on creation.
    current_page:
        Next page the sequential loader will fetch (highest completed page
        in parallel mode).
    total_pages / total_items:
        Unknown (``None``) until the source reports them.
    processed_items:
        Documents confirmed written.  Never decreases.
    batch_size / page_size / mode / thread_count:
        Parameters the task was started with, reused on resume
        (``thread_count`` only applies to parallel tasks).
    start_time / last_update_time:
        UTC timestamps; ``last_update_time`` moves on every mutation.
    error_message:
        Populated only when ``status`` is ``FAILED``.
    """

    task_id: str = Field(default_factory=lambda: str(uuid4()))
    status: TaskStatus = TaskStatus.RUNNING
    current_page: int = 1
    total_pages: int | None = None
    processed_items: int = 0
    total_items: int | None = None
    batch_size: int = 10
    page_size: int = 100
    mode: LoadMode = LoadMode.SEQUENTIAL
    thread_count: int | None = None
    start_time: datetime = Field(default_factory=utcnow)
    last_update_time: datetime = Field(default_factory=utcnow)
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)


@dataclass(frozen=True)
class CommitResult:
    """Outcome of committing one batch."""

    succeeded_count: int
    attempted_count: int
    degraded: bool = False

    @property
    def all_succeeded(self) -> bool:
        return self.succeeded_count == self.attempted_count

    @property
    def made_progress(self) -> bool:
        return self.succeeded_count > 0
