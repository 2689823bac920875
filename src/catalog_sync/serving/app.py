"""FastAPI application exposing load control, direct sync and search."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from kombu.exceptions import OperationalError
from pydantic import BaseModel, Field

from catalog_sync.errors import CatalogSyncError, TaskInUseError, TaskNotFoundError
from catalog_sync.ingestion.models import CatalogRecord, LoadMode, LoadProgress
from catalog_sync.retrieval.models import MetadataFilter, SearchHit
from catalog_sync.service import CatalogSyncService
from catalog_sync.sync.events import SyncEvent

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Catalog Sync API",
    version="0.1.0",
    description="Load the catalog into the vector store, keep it in sync, and query it.",
)


@lru_cache
def get_service() -> CatalogSyncService:
    """Process-wide service instance (overridden in tests)."""
    return CatalogSyncService()


# ── Request / Response schemas ────────────────────────────────────────
class LoadRequest(BaseModel):
    """Parameters for a new load task; omitted values use the configured defaults."""

    page_size: int | None = Field(default=None, gt=0)
    batch_size: int | None = Field(default=None, gt=0)
    thread_count: int | None = Field(default=None, gt=0)
    mode: LoadMode = LoadMode.SEQUENTIAL


class ResumeRequest(BaseModel):
    page_size: int | None = Field(default=None, gt=0)
    batch_size: int | None = Field(default=None, gt=0)
    thread_count: int | None = Field(default=None, gt=0)


class ActionResponse(BaseModel):
    """Outcome of a control action; failures carry a readable message."""

    success: bool
    message: str
    task_id: str | None = None
    count: int | None = None


class SearchRequest(BaseModel):
    query: str
    k: int | None = Field(default=None, gt=0)
    filters: list[MetadataFilter] = []


class SearchResponse(BaseModel):
    hits: list[SearchHit] = []


# Errors whose message is written by this package and safe to echo back.
_REJECTIONS = (ValueError, TaskNotFoundError, TaskInUseError)


def _rejected(exc: Exception, **extra) -> ActionResponse:
    logger.info("Request rejected: %s", exc)
    return ActionResponse(success=False, message=str(exc), **extra)


def _failure(message: str, exc: Exception, **extra) -> ActionResponse:
    """Report *message* to the caller; the underlying error only goes to the log."""
    logger.error("%s: %s", message, exc, exc_info=exc)
    return ActionResponse(success=False, message=message, **extra)


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/health/ready")
def ready(service: CatalogSyncService = Depends(get_service)) -> dict[str, bool]:
    """Readiness probe: is the vector store reachable?"""
    return {"vector_store": service.health()}


# -- load tasks --


@app.post("/loads", response_model=ActionResponse)
def start_load(request: LoadRequest, service: CatalogSyncService = Depends(get_service)) -> ActionResponse:
    """Start a sequential or parallel load in the background."""
    try:
        progress = service.start_load(
            page_size=request.page_size,
            batch_size=request.batch_size,
            thread_count=request.thread_count,
            mode=request.mode,
        )
    except _REJECTIONS as exc:
        return _rejected(exc)
    except CatalogSyncError as exc:
        return _failure("Could not start load", exc)
    return ActionResponse(success=True, message=f"{request.mode.value} load started", task_id=progress.task_id)


@app.post("/loads/presets/{name}", response_model=ActionResponse)
def start_preset(
    name: str,
    mode: LoadMode = LoadMode.SEQUENTIAL,
    service: CatalogSyncService = Depends(get_service),
) -> ActionResponse:
    """Start a load with the ``safe`` or ``ultra-safe`` page/batch sizes."""
    try:
        progress = service.start_preset(name, mode=mode)
    except _REJECTIONS as exc:
        return _rejected(exc)
    except CatalogSyncError as exc:
        return _failure("Could not start load", exc)
    return ActionResponse(success=True, message=f"{name} load started", task_id=progress.task_id)


@app.post("/loads/{task_id}/resume", response_model=ActionResponse)
def resume_load(
    task_id: str,
    request: ResumeRequest | None = None,
    service: CatalogSyncService = Depends(get_service),
) -> ActionResponse:
    """Resume a paused or failed task from its checkpoint."""
    request = request or ResumeRequest()
    try:
        progress = service.resume_load(
            task_id,
            page_size=request.page_size,
            batch_size=request.batch_size,
            thread_count=request.thread_count,
        )
    except _REJECTIONS as exc:
        return _rejected(exc, task_id=task_id)
    except CatalogSyncError as exc:
        return _failure("Could not resume load", exc, task_id=task_id)
    return ActionResponse(success=True, message=f"Resumed from page {progress.current_page}", task_id=task_id)


@app.get("/loads", response_model=dict[str, LoadProgress])
def list_loads(service: CatalogSyncService = Depends(get_service)) -> dict[str, LoadProgress]:
    return service.list_progress()


@app.get("/loads/{task_id}", response_model=LoadProgress)
def get_load(task_id: str, service: CatalogSyncService = Depends(get_service)) -> LoadProgress:
    progress = service.get_progress(task_id)
    if progress is None:
        raise HTTPException(status_code=404, detail=f"Unknown task {task_id}")
    return progress


@app.post("/loads/{task_id}/pause", response_model=ActionResponse)
def pause_load(task_id: str, service: CatalogSyncService = Depends(get_service)) -> ActionResponse:
    try:
        paused = service.pause(task_id)
    except TaskNotFoundError as exc:
        return _rejected(exc, task_id=task_id)
    if not paused:
        return ActionResponse(success=False, message="Task is not running", task_id=task_id)
    return ActionResponse(success=True, message="Pause requested", task_id=task_id)


@app.delete("/loads/{task_id}", response_model=ActionResponse)
def remove_load(task_id: str, service: CatalogSyncService = Depends(get_service)) -> ActionResponse:
    if not service.remove(task_id):
        return ActionResponse(success=False, message="Task not found or still running", task_id=task_id)
    return ActionResponse(success=True, message="Task removed", task_id=task_id)


# -- direct sync --


@app.post("/sync/items/{item_id}", response_model=ActionResponse)
def sync_create(
    item_id: int,
    record: CatalogRecord | None = None,
    service: CatalogSyncService = Depends(get_service),
) -> ActionResponse:
    """Index one item now, bypassing the broker."""
    try:
        created = service.sync_create(item_id, record)
    except CatalogSyncError as exc:
        return _failure(f"Could not index item {item_id}", exc)
    if not created:
        return ActionResponse(success=False, message=f"Item {item_id} not found")
    return ActionResponse(success=True, message=f"Item {item_id} indexed", count=1)


@app.put("/sync/items/{item_id}", response_model=ActionResponse)
def sync_update(
    item_id: int,
    record: CatalogRecord | None = None,
    service: CatalogSyncService = Depends(get_service),
) -> ActionResponse:
    try:
        updated = service.sync_update(item_id, record)
    except CatalogSyncError as exc:
        return _failure(f"Could not re-index item {item_id}", exc)
    if not updated:
        return ActionResponse(success=False, message=f"Item {item_id} not found")
    return ActionResponse(success=True, message=f"Item {item_id} re-indexed", count=1)


@app.delete("/sync/items/{item_id}", response_model=ActionResponse)
def sync_delete(item_id: int, service: CatalogSyncService = Depends(get_service)) -> ActionResponse:
    removed = service.sync_delete(item_id)
    return ActionResponse(success=True, message=f"Deleted {removed} documents for item {item_id}", count=removed)


@app.post("/sync/batch", response_model=ActionResponse)
def sync_batch(records: list[CatalogRecord], service: CatalogSyncService = Depends(get_service)) -> ActionResponse:
    try:
        count = service.sync_batch(records)
    except CatalogSyncError as exc:
        return _failure("Batch sync failed", exc)
    return ActionResponse(success=True, message=f"Synced {count} items", count=count)


@app.post("/sync/batch/ids", response_model=ActionResponse)
def sync_batch_by_ids(item_ids: list[int], service: CatalogSyncService = Depends(get_service)) -> ActionResponse:
    """Fetch the given ids from the catalog and index them in one write."""
    try:
        count = service.sync_batch_by_ids(item_ids)
    except CatalogSyncError as exc:
        return _failure("Batch sync failed", exc)
    return ActionResponse(success=True, message=f"Synced {count} of {len(item_ids)} items", count=count)


@app.post("/sync/events", response_model=ActionResponse)
def publish_event(event: SyncEvent, service: CatalogSyncService = Depends(get_service)) -> ActionResponse:
    """Enqueue a sync event for the consumer."""
    try:
        routing_key = service.publish_event(event)
    except (OperationalError, CatalogSyncError) as exc:
        return _failure("Could not publish event", exc)
    return ActionResponse(success=True, message=f"Event published on {routing_key}")


# -- search --


@app.post("/search", response_model=SearchResponse)
def search(request: SearchRequest, service: CatalogSyncService = Depends(get_service)) -> SearchResponse:
    """Similarity search over indexed catalog items."""
    return SearchResponse(hits=service.search(request.query, k=request.k, filters=request.filters or None))
