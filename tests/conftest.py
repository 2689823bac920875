"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import math
import threading
from typing import Any
from uuid import uuid4

import pytest
from langchain_core.documents import Document

from catalog_sync.errors import PageFetchError
from catalog_sync.ingestion.models import PageResult
from catalog_sync.ingestion.progress import ProgressRegistry
from catalog_sync.ingestion.source import CatalogSource
from catalog_sync.retrieval.base import VectorStoreBase
from catalog_sync.retrieval.models import MetadataFilter


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── In-memory fakes ─────────────────────────────────────────────────────


class InMemoryVectorStore(VectorStoreBase):
    """Dict-backed store with scriptable failures.

    ``add_errors`` are raised one per ``add`` call, in order.  ``bulk_error``
    is raised for every multi-document ``add``.  ``fail_ids`` makes any
    ``add`` containing one of those item ids fail.
    """

    def __init__(self) -> None:
        super().__init__("test-collection")
        self.documents: dict[str, Document] = {}
        self.add_calls: list[list[Document]] = []
        self.add_errors: list[Exception] = []
        self.bulk_error: Exception | None = None
        self.fail_ids: set[str] = set()
        self.search_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.last_filters: list[MetadataFilter] | None = None
        self._lock = threading.Lock()

    def add(self, documents: list[Document]) -> list[str]:
        with self._lock:
            self.add_calls.append(list(documents))
            if self.add_errors:
                raise self.add_errors.pop(0)
            if self.bulk_error is not None and len(documents) > 1:
                raise self.bulk_error
            if any(doc.metadata.get("id") in self.fail_ids for doc in documents):
                raise RuntimeError("rejected document")
            ids = []
            for doc in documents:
                doc_id = uuid4().hex
                self.documents[doc_id] = doc
                ids.append(doc_id)
            return ids

    def similarity_search_by_text(
        self,
        query: str,
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        self.last_filters = filters
        if self.search_error is not None:
            raise self.search_error
        hits = []
        with self._lock:
            for doc_id, doc in self.documents.items():
                if all(doc.metadata.get(f.field) == f.value for f in filters or [] if f.operator == "eq"):
                    hits.append({"id": doc_id, "content": doc.page_content, "score": 1.0, "metadata": dict(doc.metadata)})
        return hits[:k]

    def delete(self, ids: list[str]) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        with self._lock:
            for doc_id in ids:
                self.documents.pop(doc_id, None)

    def item_ids(self) -> list[str]:
        with self._lock:
            return sorted((doc.metadata["id"] for doc in self.documents.values()), key=int)


class FakeCatalogSource(CatalogSource):
    """Serves *items* in pages; ``page_failures`` maps page → failures before success."""

    def __init__(
        self,
        items: list[dict[str, Any]],
        *,
        page_failures: dict[int, int] | None = None,
        report_totals: bool = True,
    ) -> None:
        self.items = items
        self.page_failures = dict(page_failures or {})
        self.report_totals = report_totals
        self.fetched_pages: list[int] = []
        self._lock = threading.Lock()

    def fetch_page(
        self,
        page_no: int,
        page_size: int,
        *,
        sort_by: str | None = None,
        ascending: bool = True,
    ) -> PageResult:
        with self._lock:
            self.fetched_pages.append(page_no)
            if self.page_failures.get(page_no, 0) > 0:
                self.page_failures[page_no] -= 1
                raise PageFetchError(f"page {page_no} unavailable")
        start = (page_no - 1) * page_size
        chunk = self.items[start : start + page_size]
        if not self.report_totals:
            return PageResult(items=chunk)
        return PageResult(
            items=chunk,
            total_items=len(self.items),
            total_pages=math.ceil(len(self.items) / page_size),
        )

    def fetch_by_id(self, item_id: int) -> dict[str, Any] | None:
        for item in self.items:
            if item["id"] == item_id:
                return item
        return None


def make_items(count: int, *, start: int = 1) -> list[dict[str, Any]]:
    return [
        {
            "id": i,
            "name": f"Item {i}",
            "price": 10.0 + i,
            "stock": 100,
            "category": "Phones",
            "brand": "Acme",
            "sold": i,
            "commentCount": i * 2,
            "isAD": False,
            "status": 1,
        }
        for i in range(start, start + count)
    ]


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def registry() -> ProgressRegistry:
    return ProgressRegistry()


@pytest.fixture()
def items_factory():
    return make_items


@pytest.fixture()
def source_factory():
    return FakeCatalogSource


@pytest.fixture()
def sleeps() -> list[float]:
    """Recorded sleep durations; pass ``sleeps.append`` as the sleep function."""
    return []
